from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import ValidationError

from ..records import RECORD_TABLES, REPORT_FUNCTIONS, parse_entry
from ..schemas import BabyPayload, CaregiverPayload
from ..state import AppState, get_state

router = APIRouter(prefix="/api/v1", tags=["records"])


def _require_kind(kind: str) -> str:
    if kind not in RECORD_TABLES:
        raise HTTPException(status_code=404, detail=f"Unknown record type: {kind}")
    return kind


def _entry(kind: str, payload: Dict[str, Any]):
    try:
        return parse_entry(kind, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc


@router.get("/babies")
async def list_babies(state: AppState = Depends(get_state)) -> List[Dict[str, Any]]:
    return await state.records.list_babies()


@router.post("/babies")
async def create_baby(payload: BabyPayload, state: AppState = Depends(get_state)) -> Dict[str, Any]:
    baby = await state.records.create_baby(payload)
    state.pages.reload("babies")
    return baby


@router.put("/babies/{baby_id}")
async def update_baby(
    baby_id: str, payload: BabyPayload, state: AppState = Depends(get_state)
) -> Dict[str, Any]:
    baby = await state.records.update_baby(baby_id, payload)
    state.pages.reload("babies")
    return baby


@router.delete("/babies/{baby_id}")
async def remove_baby(baby_id: str, state: AppState = Depends(get_state)) -> Dict[str, Any]:
    await state.records.deactivate_baby(baby_id)
    state.pages.reload("babies")
    return {"status": "ok"}


@router.get("/caregivers")
async def list_caregivers(state: AppState = Depends(get_state)) -> List[Dict[str, Any]]:
    return await state.records.list_caregivers()


@router.post("/caregivers")
async def create_caregiver(
    payload: CaregiverPayload, state: AppState = Depends(get_state)
) -> Dict[str, Any]:
    caregiver = await state.records.create_caregiver(payload)
    state.pages.reload("caregivers")
    return caregiver


@router.put("/caregivers/{caregiver_id}")
async def update_caregiver(
    caregiver_id: str, payload: CaregiverPayload, state: AppState = Depends(get_state)
) -> Dict[str, Any]:
    caregiver = await state.records.update_caregiver(caregiver_id, payload)
    state.pages.reload("caregivers")
    return caregiver


@router.delete("/caregivers/{caregiver_id}")
async def delete_caregiver(caregiver_id: str, state: AppState = Depends(get_state)) -> Dict[str, Any]:
    await state.records.delete_caregiver(caregiver_id)
    state.pages.reload("caregivers")
    return {"status": "ok"}


@router.get("/records/{kind}")
async def list_records(kind: str, state: AppState = Depends(get_state)) -> List[Dict[str, Any]]:
    return await state.records.list_records(_require_kind(kind))


@router.post("/records/{kind}")
async def create_record(
    kind: str,
    payload: Dict[str, Any] = Body(...),
    state: AppState = Depends(get_state),
) -> Dict[str, Any]:
    _require_kind(kind)
    record = await state.records.create_record(kind, _entry(kind, payload))
    state.pages.reload(RECORD_TABLES[kind].table)
    return record


@router.put("/records/{kind}/{record_id}")
async def update_record(
    kind: str,
    record_id: str,
    payload: Dict[str, Any] = Body(...),
    state: AppState = Depends(get_state),
) -> Dict[str, Any]:
    _require_kind(kind)
    record = await state.records.update_record(kind, record_id, _entry(kind, payload))
    state.pages.reload(RECORD_TABLES[kind].table)
    return record


@router.delete("/records/{kind}/{record_id}")
async def delete_record(kind: str, record_id: str, state: AppState = Depends(get_state)) -> Dict[str, Any]:
    _require_kind(kind)
    await state.records.delete_record(kind, record_id)
    state.pages.reload(RECORD_TABLES[kind].table)
    return {"status": "ok"}


@router.get("/babies/{baby_id}/reports/{report}")
async def read_report(
    baby_id: str,
    report: str,
    report_date: Optional[date] = Query(None, description="Day to summarize (daily reports)"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    state: AppState = Depends(get_state),
) -> Dict[str, Any]:
    if report not in REPORT_FUNCTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown report: {report}")
    await state.records.require_baby(baby_id)
    records = state.records
    if report == "sleep":
        result = await records.daily_sleep_report(baby_id, report_date)
    elif report == "feeding":
        result = await records.daily_feeding_report(baby_id, report_date)
    elif report == "status":
        result = await records.current_status(baby_id)
    elif report == "growth":
        result = await records.latest_growth(baby_id)
    else:
        result = await records.growth_report(baby_id, start_date, end_date)
    return {"report": report, "baby_id": baby_id, "result": result}
