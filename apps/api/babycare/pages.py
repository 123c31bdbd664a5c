"""Dashboard screens: what each page loads and the cache the mutators check against."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import AppConfig
from .loader import PageDataLoader
from .records import RECORD_TABLES, FamilyRecords
from .schemas import ActivityKind, PageResult
from .summaries import age_in_days, age_text, period_buckets, today_counts

logger = logging.getLogger(__name__)

PAGES = ("dashboard", "babies", "caregivers", "sleep", "feeding", "walks", "diapers", "growth")

ACTIVITY_PAGES = {
    ActivityKind.SLEEP: "sleep",
    ActivityKind.BREASTFEEDING: "feeding",
    ActivityKind.WALK: "walks",
}

TABLE_PAGES = {record_table.table: page for page, record_table in RECORD_TABLES.items()}
TABLE_PAGES.update({"babies": "babies", "caregivers": "caregivers"})


class PageCache:
    """Last data loaded per page."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}

    def get(self, page: str) -> Dict[str, Any]:
        return self._data.get(page, {})

    def put(self, page: str, data: Dict[str, Any]) -> None:
        self._data[page] = data

    def records(self, page: str) -> List[Dict[str, Any]]:
        return list(self._data.get(page, {}).get("records", []))

    def add_record(self, page: str, record: Dict[str, Any]) -> None:
        data = self._data.setdefault(page, {})
        data["records"] = [record] + list(data.get("records", []))

    def replace_record(self, page: str, record: Dict[str, Any]) -> None:
        records = self.records(page)
        for index, cached in enumerate(records):
            if cached.get("id") == record.get("id"):
                records[index] = record
                break
        else:
            records.insert(0, record)
        self._data.setdefault(page, {})["records"] = records

    def clear(self) -> None:
        self._data.clear()


class Pages:
    def __init__(self, session: Any, config: AppConfig, cache: Optional[PageCache] = None) -> None:
        self.session = session
        self.config = config
        self.cache = cache or PageCache()
        self.records = FamilyRecords(session)
        self._loaders: Dict[str, PageDataLoader] = {}
        self._user_id = session.user.id if session.user else None
        self._unsubscribe = session.subscribe(self._on_session_change)

    def _on_session_change(self) -> None:
        user_id = self.session.user.id if self.session.user else None
        if user_id != self._user_id:
            self.cache.clear()
            self._user_id = user_id

    def _loader(self, page: str) -> PageDataLoader:
        loader = self._loaders.get(page)
        if loader is None:
            loader = PageDataLoader(
                self.session,
                self._load_fn(page),
                retry_delay=self.config.loader_retry_delay,
                max_retries=self.config.loader_max_retries,
                tenant_poll_interval=self.config.tenant_poll_interval,
                name=page,
            )
            self._loaders[page] = loader
        return loader

    def _load_fn(self, page: str) -> Callable[[], Awaitable[None]]:
        fetch = getattr(self, f"_load_{page}")

        async def load() -> None:
            self.cache.put(page, await fetch())

        return load

    async def load(self, page: str) -> PageResult:
        if page not in PAGES:
            raise KeyError(page)
        existing = page in self._loaders
        loader = self._loader(page)
        if existing:
            await loader.retry()
        else:
            await loader.run()
        return PageResult(page=page, data=self.cache.get(page), loader=loader.snapshot())

    def reload(self, table: str) -> None:
        """Refresh the page showing `table` after a write, if it has been opened."""
        page = TABLE_PAGES.get(table)
        loader = self._loaders.get(page) if page else None
        if loader is not None:
            loader.retry()
        dashboard = self._loaders.get("dashboard")
        if dashboard is not None and page != "dashboard":
            dashboard.retry()

    async def close(self) -> None:
        self._unsubscribe()
        await asyncio.gather(*(loader.close() for loader in self._loaders.values()))
        self._loaders.clear()

    # page loaders

    async def _with_growth(self, baby: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(baby)
        result["age_days"] = age_in_days(baby["birth_date"])
        result["age_text"] = age_text(baby["birth_date"])
        try:
            growth = await self.records.latest_growth(baby["id"])
        except Exception as exc:
            logger.warning("latest growth unavailable", extra={"baby_id": baby["id"]}, exc_info=exc)
            return result
        if growth:
            result["current_weight_grams"] = growth.get("weight_grams")
            result["current_height_cm"] = growth.get("height_cm")
        return result

    async def _with_status(self, baby: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._with_growth(baby)
        try:
            status = await self.records.current_status(baby["id"])
        except Exception as exc:
            logger.warning("current status unavailable", extra={"baby_id": baby["id"]}, exc_info=exc)
            return result
        if status:
            result["current_status"] = status.get("current_status")
            result["status_since"] = status.get("status_since")
            result["last_feeding"] = status.get("last_feeding")
            result["hours_since_feeding"] = status.get("hours_since_last_feeding")
        return result

    async def _load_dashboard(self) -> Dict[str, Any]:
        babies = await self.records.list_babies()
        overview = await asyncio.gather(*(self._with_status(baby) for baby in babies))
        family_id = self.session.family.id
        caregivers = await self.session.supabase.count(
            "caregivers", params={"family_id": f"eq.{family_id}"}
        )
        stats = {
            "total_babies": len(babies),
            "total_caregivers": caregivers,
            "today_feedings": 0,
            "today_walks": 0,
            "today_sleep_hours": 0,
        }
        if babies:
            first_id = babies[0]["id"]
            today = datetime.now(tz=timezone.utc).date()
            stats["today_feedings"] = await self.records.count_today(
                "feeding_records", first_id, "feeding_time", today
            )
            stats["today_walks"] = await self.records.count_today(
                "walk_records", first_id, "walk_start", today
            )
            report = await self.records.daily_sleep_report(first_id, today)
            stats["today_sleep_hours"] = round(((report or {}).get("total_sleep_minutes") or 0) / 60)
        return {"babies": list(overview), "stats": stats}

    async def _load_babies(self) -> Dict[str, Any]:
        babies = await self.records.list_babies()
        return {"babies": list(await asyncio.gather(*(self._with_growth(b) for b in babies)))}

    async def _load_caregivers(self) -> Dict[str, Any]:
        return {"caregivers": await self.records.list_caregivers()}

    async def _load_records_page(self, kind: str) -> Dict[str, Any]:
        babies = await self.records.list_babies()
        records = await self.records.list_records(kind)
        return {
            "babies": babies,
            "records": records,
            "in_progress": [record for record in records if record.get("in_progress")],
        }

    async def _load_sleep(self) -> Dict[str, Any]:
        return await self._load_records_page("sleep")

    async def _load_feeding(self) -> Dict[str, Any]:
        data = await self._load_records_page("feeding")
        data["today"] = today_counts(data["records"], "feeding_type", "feeding_time")
        return data

    async def _load_walks(self) -> Dict[str, Any]:
        return await self._load_records_page("walks")

    async def _load_diapers(self) -> Dict[str, Any]:
        data = await self._load_records_page("diapers")
        data["today"] = today_counts(data["records"], "diaper_type", "recorded_at")
        data["week_chart"] = period_buckets(
            [record["recorded_at"] for record in data["records"]], "week"
        ).model_dump()
        return data

    async def _load_growth(self) -> Dict[str, Any]:
        data = await self._load_records_page("growth")
        latest: Dict[str, Dict[str, Any]] = {}
        for record in data["records"]:
            # Records arrive newest first.
            latest.setdefault(record["baby_id"], record)
        data["latest"] = latest
        return data
