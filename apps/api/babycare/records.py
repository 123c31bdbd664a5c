"""Family-scoped CRUD over the hosted tables plus the backend report functions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, TypeAdapter

from .activities import duration_minutes, is_in_progress
from .errors import CaregiverRequired, RecordNotFound, SelfDeleteForbidden
from .schemas import (
    ActivityKind,
    ActivityRecord,
    BabyPayload,
    CaregiverPayload,
    DiaperEntry,
    FeedingEntry,
    GrowthEntry,
    SleepEntry,
    WalkEntry,
)
from .summaries import growth_age_days

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordTable:
    table: str
    order_field: str
    entry: Any
    timed_kind: Optional[ActivityKind] = None
    start_field: Optional[str] = None
    end_field: Optional[str] = None


RECORD_TABLES: Dict[str, RecordTable] = {
    "sleep": RecordTable(
        "sleep_records", "sleep_start", SleepEntry,
        ActivityKind.SLEEP, "sleep_start", "sleep_end",
    ),
    "feeding": RecordTable(
        "feeding_records", "feeding_time", FeedingEntry,
        ActivityKind.BREASTFEEDING, "breastfeeding_start", "breastfeeding_end",
    ),
    "walks": RecordTable(
        "walk_records", "walk_start", WalkEntry,
        ActivityKind.WALK, "walk_start", "walk_end",
    ),
    "diapers": RecordTable("diaper_records", "recorded_at", DiaperEntry),
    "growth": RecordTable("growth_records", "measurement_date", GrowthEntry),
}

REPORT_FUNCTIONS = {
    "sleep": "daily_sleep_report",
    "feeding": "daily_feeding_report",
    "status": "baby_current_status",
    "growth": "get_latest_growth",
    "growth-history": "growth_report",
}

RELATION_SELECT = "*,babies!inner(name,family_id,birth_date),caregivers(name)"


def parse_entry(kind: str, payload: Dict[str, Any]) -> BaseModel:
    """Validate a record payload against the entry type for `kind`."""
    return TypeAdapter(RECORD_TABLES[kind].entry).validate_python(payload)


def decorate_record(kind: str, row: Dict[str, Any]) -> Dict[str, Any]:
    record_table = RECORD_TABLES[kind]
    data = dict(row)
    baby = data.pop("babies", None) or {}
    caregiver = data.pop("caregivers", None) or {}
    data["baby_name"] = baby.get("name") or "Unknown baby"
    data["caregiver_name"] = caregiver.get("name") or "Unknown caregiver"

    if record_table.timed_kind is not None:
        start = data.get(record_table.start_field)
        end = data.get(record_table.end_field)
        data["in_progress"] = is_in_progress(record_table.timed_kind, data)
        data["duration_minutes"] = duration_minutes(start, end) if start and end else None
    if kind == "growth" and baby.get("birth_date") and data.get("measurement_date"):
        data["age_days"] = growth_age_days(baby["birth_date"], data["measurement_date"])
    return ActivityRecord(**data).model_dump()


class FamilyRecords:
    """Repository bound to the session's current family and caregiver."""

    def __init__(self, session: Any) -> None:
        self.session = session

    @property
    def supabase(self):
        return self.session.supabase

    def _family_id(self) -> str:
        family = self.session.family
        if family is None:
            raise CaregiverRequired("Your family is not loaded yet. Please sign in again.")
        return family.id

    def _caregiver_id(self) -> str:
        caregiver = self.session.caregiver
        if caregiver is None:
            raise CaregiverRequired()
        return caregiver.id

    # babies

    async def list_babies(self) -> List[Dict[str, Any]]:
        return await self.supabase.select(
            "babies",
            params={
                "select": "*",
                "family_id": f"eq.{self._family_id()}",
                "is_active": "eq.true",
                "order": "created_at.desc",
            },
        )

    async def require_baby(self, baby_id: str) -> Dict[str, Any]:
        rows = await self.supabase.select(
            "babies",
            params={
                "select": "id,name,birth_date",
                "id": f"eq.{baby_id}",
                "family_id": f"eq.{self._family_id()}",
                "limit": 1,
            },
        )
        if not rows:
            raise RecordNotFound("Baby not found.")
        return rows[0]

    async def create_baby(self, payload: BabyPayload) -> Dict[str, Any]:
        data = payload.model_dump(mode="json")
        data["family_id"] = self._family_id()
        data["is_active"] = True
        rows = await self.supabase.insert("babies", data)
        return rows[0] if rows else data

    async def update_baby(self, baby_id: str, payload: BabyPayload) -> Dict[str, Any]:
        rows = await self.supabase.update(
            "babies",
            payload.model_dump(mode="json"),
            params={"id": f"eq.{baby_id}", "family_id": f"eq.{self._family_id()}"},
        )
        if not rows:
            raise RecordNotFound("Baby not found.")
        return rows[0]

    async def deactivate_baby(self, baby_id: str) -> Dict[str, Any]:
        # Babies are hidden, never deleted, so their history survives.
        rows = await self.supabase.update(
            "babies",
            {"is_active": False},
            params={"id": f"eq.{baby_id}", "family_id": f"eq.{self._family_id()}"},
        )
        if not rows:
            raise RecordNotFound("Baby not found.")
        return rows[0]

    # caregivers

    async def list_caregivers(self) -> List[Dict[str, Any]]:
        return await self.supabase.select(
            "caregivers",
            params={
                "select": "*",
                "family_id": f"eq.{self._family_id()}",
                "order": "created_at.desc",
            },
        )

    async def create_caregiver(self, payload: CaregiverPayload) -> Dict[str, Any]:
        data = payload.model_dump()
        data["family_id"] = self._family_id()
        rows = await self.supabase.insert("caregivers", data)
        return rows[0] if rows else data

    async def update_caregiver(self, caregiver_id: str, payload: CaregiverPayload) -> Dict[str, Any]:
        rows = await self.supabase.update(
            "caregivers",
            payload.model_dump(),
            params={"id": f"eq.{caregiver_id}", "family_id": f"eq.{self._family_id()}"},
        )
        if not rows:
            raise RecordNotFound("Caregiver not found.")
        return rows[0]

    async def delete_caregiver(self, caregiver_id: str) -> None:
        if caregiver_id == self._caregiver_id():
            raise SelfDeleteForbidden()
        rows = await self.supabase.delete(
            "caregivers",
            params={"id": f"eq.{caregiver_id}", "family_id": f"eq.{self._family_id()}"},
        )
        if not rows:
            raise RecordNotFound("Caregiver not found.")

    # activity records

    async def list_records(self, kind: str) -> List[Dict[str, Any]]:
        record_table = RECORD_TABLES[kind]
        rows = await self.supabase.select(
            record_table.table,
            params={
                "select": RELATION_SELECT,
                "babies.family_id": f"eq.{self._family_id()}",
                "order": f"{record_table.order_field}.desc",
            },
        )
        return [decorate_record(kind, row) for row in rows]

    async def create_record(self, kind: str, entry: BaseModel) -> Dict[str, Any]:
        record_table = RECORD_TABLES[kind]
        payload = entry.model_dump(mode="json")
        await self.require_baby(payload["baby_id"])
        payload["caregiver_id"] = self._caregiver_id()
        rows = await self.supabase.insert(record_table.table, payload)
        logger.info(
            "record created",
            extra={"table": record_table.table, "baby_id": payload["baby_id"], "family_id": self._family_id()},
        )
        return rows[0] if rows else payload

    async def update_record(self, kind: str, record_id: str, entry: BaseModel) -> Dict[str, Any]:
        record_table = RECORD_TABLES[kind]
        payload = entry.model_dump(mode="json")
        await self.require_baby(payload["baby_id"])
        rows = await self.supabase.update(record_table.table, payload, params={"id": f"eq.{record_id}"})
        if not rows:
            raise RecordNotFound()
        return rows[0]

    async def delete_record(self, kind: str, record_id: str) -> None:
        record_table = RECORD_TABLES[kind]
        rows = await self.supabase.delete(record_table.table, params={"id": f"eq.{record_id}"})
        if not rows:
            raise RecordNotFound()
        logger.info("record deleted", extra={"table": record_table.table, "record_id": record_id})

    async def count_today(self, table: str, baby_id: str, field: str, day: date) -> int:
        next_day = day + timedelta(days=1)
        return await self.supabase.count(
            table,
            params={
                "baby_id": f"eq.{baby_id}",
                "and": f"({field}.gte.{day.isoformat()}T00:00:00Z,{field}.lt.{next_day.isoformat()}T00:00:00Z)",
            },
        )

    # reports

    async def _first_row(self, fn: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = await self.supabase.rpc(fn, payload)
        if isinstance(rows, list):
            return rows[0] if rows else None
        return rows

    async def daily_sleep_report(self, baby_id: str, report_date: Optional[date] = None) -> Optional[Dict[str, Any]]:
        payload: Dict[str, Any] = {"baby_uuid": baby_id}
        if report_date:
            payload["report_date"] = report_date.isoformat()
        return await self._first_row(REPORT_FUNCTIONS["sleep"], payload)

    async def daily_feeding_report(self, baby_id: str, report_date: Optional[date] = None) -> Optional[Dict[str, Any]]:
        payload: Dict[str, Any] = {"baby_uuid": baby_id}
        if report_date:
            payload["report_date"] = report_date.isoformat()
        return await self._first_row(REPORT_FUNCTIONS["feeding"], payload)

    async def current_status(self, baby_id: str) -> Optional[Dict[str, Any]]:
        return await self._first_row(REPORT_FUNCTIONS["status"], {"baby_uuid": baby_id})

    async def latest_growth(self, baby_id: str) -> Optional[Dict[str, Any]]:
        return await self._first_row(REPORT_FUNCTIONS["growth"], {"baby_uuid": baby_id})

    async def growth_report(
        self,
        baby_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Optional[Dict[str, Any]]:
        payload: Dict[str, Any] = {"baby_uuid": baby_id, "start_date": start_date.isoformat() if start_date else None}
        if end_date:
            payload["end_date"] = end_date.isoformat()
        return await self._first_row(REPORT_FUNCTIONS["growth-history"], payload)
