from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from ..pages import ACTIVITY_PAGES
from ..schemas import ActivityKind, QuickDiaperRequest, StopActivityRequest
from ..state import AppState, get_state

router = APIRouter(prefix="/api/v1", tags=["activities"])


@router.post("/babies/{baby_id}/activities/{kind}/start")
async def start_activity(
    baby_id: str,
    kind: ActivityKind,
    state: AppState = Depends(get_state),
) -> Dict[str, Any]:
    page = ACTIVITY_PAGES[kind]
    record = await state.actions.start(kind, baby_id, state.pages.cache.records(page))
    state.pages.cache.add_record(page, {**record, "in_progress": True})
    return {"status": "started", "record": record}


@router.post("/activities/{kind}/{record_id}/stop")
async def stop_activity(
    kind: ActivityKind,
    record_id: str,
    payload: Optional[StopActivityRequest] = Body(default=None),
    state: AppState = Depends(get_state),
) -> Dict[str, Any]:
    breast_side = payload.breast_side if payload else None
    record = await state.actions.stop(kind, record_id, breast_side=breast_side)
    state.pages.cache.replace_record(ACTIVITY_PAGES[kind], {**record, "in_progress": False})
    return {"status": "stopped", "record": record}


@router.post("/babies/{baby_id}/diapers/quick")
async def quick_diaper(
    baby_id: str,
    payload: QuickDiaperRequest,
    state: AppState = Depends(get_state),
) -> Dict[str, Any]:
    record = await state.actions.log_diaper(baby_id, payload.diaper_type)
    state.pages.cache.add_record("diapers", record)
    return {"status": "recorded", "record": record}
