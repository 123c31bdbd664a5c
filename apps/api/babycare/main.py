from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_config
from .errors import BabyCareError
from .routes import activities as activity_routes
from .routes import auth as auth_routes
from .routes import pages as page_routes
from .routes import records as record_routes
from .state import create_state

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    config = get_config()
    logging.basicConfig(level=config.log_level.upper())
    state = await create_state(config)
    app.state.babycare = state
    logger.info("session store started", extra={"signed_in": state.session.user is not None})
    try:
        yield
    finally:
        await state.close()
        app.state.babycare = None


app = FastAPI(
    title="BabyCare Tracker API",
    version="0.1.0",
    description="Family-scoped sleep, feeding, walk, diaper and growth tracking",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


@app.exception_handler(BabyCareError)
async def handle_babycare_error(request: Request, exc: BabyCareError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "request failed",
            extra={"path": request.url.path, "error": exc.code},
            exc_info=exc,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


app.include_router(auth_routes.router)
app.include_router(page_routes.router)
app.include_router(activity_routes.router)
app.include_router(record_routes.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/")
async def root() -> dict:
    return {"message": "BabyCare Tracker API ready"}
