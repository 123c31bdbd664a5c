"""Date arithmetic over already-fetched rows."""
from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .schemas import ChartSeries

DateLike = Union[str, date, datetime]

PERIODS = ("day", "week", "month")


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def _as_datetime(value: Union[str, datetime]) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def age_in_days(birth_date: DateLike, today: Optional[date] = None) -> int:
    today = today or date.today()
    return (today - _as_date(birth_date)).days


def growth_age_days(birth_date: DateLike, measured_on: DateLike) -> int:
    return (_as_date(measured_on) - _as_date(birth_date)).days


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def age_text(birth_date: DateLike, today: Optional[date] = None) -> str:
    days = age_in_days(birth_date, today)
    if days < 30:
        return _plural(days, "day", "days")
    if days < 365:
        return _plural(days // 30, "month", "months")
    years = days // 365
    months = (days % 365) // 30
    text = _plural(years, "year", "years")
    if months > 0:
        text += f" and {_plural(months, 'month', 'months')}"
    return text


def today_counts(
    records: Iterable[Mapping[str, Any]],
    field: str,
    timestamp_field: str,
    today: Optional[date] = None,
) -> Dict[str, int]:
    """Count today's records by `field`, with the overall total under "total"."""
    today = today or date.today()
    counts: Counter = Counter()
    for record in records:
        stamp = record.get(timestamp_field)
        if not stamp or _as_date(stamp) != today:
            continue
        counts["total"] += 1
        counts[str(record.get(field))] += 1
    counts.setdefault("total", 0)
    return dict(counts)


def period_buckets(
    timestamps: Iterable[Union[str, datetime]],
    period: str,
    now: Optional[datetime] = None,
) -> ChartSeries:
    """Bucket timestamps for a chart: hourly for a day, daily for a week or month."""
    if period not in PERIODS:
        raise ValueError(f"Unsupported period: {period}")
    now = _as_datetime(now or datetime.now(tz=timezone.utc))

    if period == "day":
        start = (now - timedelta(hours=23)).replace(minute=0, second=0, microsecond=0)
        step = timedelta(hours=1)
        slots = 24
        key_format, label_format = "%Y-%m-%d %H", "%H:00"
    else:
        days = 7 if period == "week" else 30
        start = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)
        step = timedelta(days=1)
        slots = days
        key_format, label_format = "%Y-%m-%d", "%d/%m"

    grouped = Counter(
        stamp.strftime(key_format)
        for stamp in (_as_datetime(value) for value in timestamps)
        if start <= stamp <= now
    )
    labels = []
    counts = []
    for index in range(slots):
        slot = start + step * index
        labels.append(slot.strftime(label_format))
        counts.append(grouped.get(slot.strftime(key_format), 0))
    return ChartSeries(labels=labels, counts=counts)
