from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..pages import PAGES
from ..schemas import PageResult
from ..state import AppState, get_state

router = APIRouter(prefix="/api/v1", tags=["pages"])
logger = logging.getLogger(__name__)


@router.get("/pages/{page}", response_model=PageResult)
async def load_page(page: str, state: AppState = Depends(get_state)) -> PageResult:
    """Load a dashboard screen; loading/error/retry state travels with the data."""

    if page not in PAGES:
        raise HTTPException(status_code=404, detail=f"Unknown page: {page}")
    result = await state.pages.load(page)
    logger.info(
        "page loaded",
        extra={"page": page, "state": result.loader.state.value, "retry_count": result.loader.retry_count},
    )
    return result
