"""Start/stop timed activities and quick diaper logs."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from .errors import ActivityInProgress, CaregiverRequired, DiaperDetailsRequired, RecordNotFound
from .schemas import ActivityKind, BreastSide, DiaperType, FeedingType

logger = logging.getLogger(__name__)

Timestamp = Union[str, datetime]


@dataclass(frozen=True)
class TimedActivity:
    table: str
    start_field: str
    end_field: str
    defaults: Dict[str, Any] = field(default_factory=dict)
    # Extra column values that identify this activity inside a shared table.
    match: Dict[str, Any] = field(default_factory=dict)


TIMED_ACTIVITIES: Dict[ActivityKind, TimedActivity] = {
    ActivityKind.SLEEP: TimedActivity(
        table="sleep_records",
        start_field="sleep_start",
        end_field="sleep_end",
        defaults={"sleep_location": "crib"},
    ),
    ActivityKind.BREASTFEEDING: TimedActivity(
        table="feeding_records",
        start_field="breastfeeding_start",
        end_field="breastfeeding_end",
        defaults={"breast_side": BreastSide.LEFT.value},
        match={"feeding_type": FeedingType.BREASTFEEDING.value},
    ),
    ActivityKind.WALK: TimedActivity(
        table="walk_records",
        start_field="walk_start",
        end_field="walk_end",
        defaults={"location": "street"},
    ),
}

# Smell intensity (1-5) used when a diaper is logged without the form.
QUICK_DIAPER_SMELL = {
    DiaperType.GAS: 2,
    DiaperType.URINE: 1,
    DiaperType.MIXED: 2,
    DiaperType.LIQUID: 2,
}


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_timestamp(value: Timestamp) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def duration_minutes(start: Timestamp, end: Timestamp) -> int:
    """Whole minutes between start and end, never less than one."""
    elapsed = (parse_timestamp(end) - parse_timestamp(start)).total_seconds() / 60
    return max(1, math.floor(elapsed))


def is_in_progress(kind: ActivityKind, record: Mapping[str, Any]) -> bool:
    activity = TIMED_ACTIVITIES[kind]
    if any(record.get(key) != value for key, value in activity.match.items()):
        return False
    return bool(record.get(activity.start_field)) and record.get(activity.end_field) is None


def find_in_progress(
    kind: ActivityKind,
    baby_id: str,
    records: Iterable[Mapping[str, Any]],
) -> Optional[Mapping[str, Any]]:
    for record in records:
        if record.get("baby_id") == baby_id and is_in_progress(kind, record):
            return record
    return None


class QuickActions:
    """One-tap mutators. Each performs exactly one write, then calls `on_change`."""

    def __init__(
        self,
        session: Any,
        *,
        on_change: Optional[Callable[[str], Any]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session = session
        self.on_change = on_change
        self.clock = clock

    def _caregiver_id(self) -> str:
        caregiver = self.session.caregiver
        if caregiver is None:
            raise CaregiverRequired()
        return caregiver.id

    def _changed(self, table: str) -> None:
        if self.on_change is not None:
            self.on_change(table)

    async def start(
        self,
        kind: ActivityKind,
        baby_id: str,
        records: Iterable[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        """Begin a timed activity unless the cached records show one already running."""
        caregiver_id = self._caregiver_id()
        existing = find_in_progress(kind, baby_id, records)
        if existing is not None:
            logger.info(
                "activity already in progress",
                extra={"kind": kind.value, "baby_id": baby_id, "record_id": existing.get("id")},
            )
            raise ActivityInProgress()

        activity = TIMED_ACTIVITIES[kind]
        now = self.clock().isoformat()
        payload: Dict[str, Any] = {
            "baby_id": baby_id,
            "caregiver_id": caregiver_id,
            activity.start_field: now,
            **activity.defaults,
            **activity.match,
        }
        if kind is ActivityKind.BREASTFEEDING:
            payload["feeding_time"] = now
        rows = await self.session.supabase.insert(activity.table, payload)
        logger.info("activity started", extra={"kind": kind.value, "baby_id": baby_id})
        self._changed(activity.table)
        return rows[0] if rows else payload

    async def stop(
        self,
        kind: ActivityKind,
        record_id: str,
        *,
        breast_side: Optional[BreastSide] = None,
    ) -> Dict[str, Any]:
        self._caregiver_id()
        activity = TIMED_ACTIVITIES[kind]
        patch: Dict[str, Any] = {activity.end_field: self.clock().isoformat()}
        if kind is ActivityKind.BREASTFEEDING and breast_side is not None:
            patch["breast_side"] = breast_side.value
        rows = await self.session.supabase.update(
            activity.table,
            patch,
            params={"id": f"eq.{record_id}"},
        )
        if not rows:
            raise RecordNotFound()
        row = rows[0]
        logger.info(
            "activity stopped",
            extra={
                "kind": kind.value,
                "record_id": record_id,
                "duration_minutes": duration_minutes(row[activity.start_field], row[activity.end_field])
                if row.get(activity.start_field) and row.get(activity.end_field)
                else None,
            },
        )
        self._changed(activity.table)
        return row

    async def log_diaper(self, baby_id: str, diaper_type: DiaperType) -> Dict[str, Any]:
        """Record a diaper right away; solid ones need the full form for consistency."""
        caregiver_id = self._caregiver_id()
        if diaper_type is DiaperType.SOLID:
            raise DiaperDetailsRequired()
        payload = {
            "baby_id": baby_id,
            "caregiver_id": caregiver_id,
            "diaper_type": diaper_type.value,
            "recorded_at": self.clock().isoformat(),
            "smell_intensity": QUICK_DIAPER_SMELL[diaper_type],
        }
        rows = await self.session.supabase.insert("diaper_records", payload)
        logger.info("diaper logged", extra={"baby_id": baby_id, "diaper_type": diaper_type.value})
        self._changed("diaper_records")
        return rows[0] if rows else payload
