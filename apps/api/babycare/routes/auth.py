from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..schemas import SessionState, SignInRequest, SignUpRequest
from ..state import AppState, get_state

router = APIRouter(prefix="/api/v1", tags=["auth"])
logger = logging.getLogger(__name__)


@router.get("/session", response_model=SessionState)
async def read_session(state: AppState = Depends(get_state)) -> SessionState:
    return state.session.snapshot()


@router.post("/auth/sign-in", response_model=SessionState)
async def sign_in(payload: SignInRequest, state: AppState = Depends(get_state)) -> SessionState:
    await state.session.sign_in_with_phone(payload.phone.strip(), payload.password)
    await state.session.refresh_user_data()
    snapshot = state.session.snapshot()
    logger.info(
        "caregiver signed in",
        extra={"user_id": snapshot.user_id, "family_id": snapshot.family.id if snapshot.family else None},
    )
    return snapshot


@router.post("/auth/sign-up", response_model=SessionState)
async def sign_up(payload: SignUpRequest, state: AppState = Depends(get_state)) -> SessionState:
    await state.session.sign_up_with_phone(
        payload.phone.strip(),
        payload.password,
        payload.name.strip(),
        payload.family_name.strip(),
    )
    return state.session.snapshot()


@router.post("/auth/sign-out", response_model=SessionState)
async def sign_out(state: AppState = Depends(get_state)) -> SessionState:
    await state.session.sign_out()
    return state.session.snapshot()


@router.post("/auth/refresh", response_model=SessionState)
async def refresh(state: AppState = Depends(get_state)) -> SessionState:
    await state.session.refresh_user_data()
    return state.session.snapshot()
