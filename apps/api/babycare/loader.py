"""Readiness-gated, retrying wrapper around a page's data fetch."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from .errors import is_transient
from .schemas import LoaderSnapshot, LoaderState

logger = logging.getLogger(__name__)

CONNECTION_ERROR_MESSAGE = "Connection error. Check your internet connection and try again."
TENANT_UNRESOLVED_MESSAGE = "Could not load your family data. Please sign in again."
GENERIC_LOAD_ERROR = "Failed to load data."


def describe_load_error(exc: BaseException) -> str:
    """User-facing text for a failed page load."""
    if isinstance(exc, httpx.TransportError) or is_transient(exc):
        return CONNECTION_ERROR_MESSAGE
    return str(exc) or GENERIC_LOAD_ERROR


class PageDataLoader:
    """Runs `load_data` once the session has a family, retrying on failure.

    A single driver task evaluates the state machine; dependency changes that
    arrive mid-attempt queue one rerun instead of starting a second fetch.
    """

    def __init__(
        self,
        session: Any,
        load_data: Callable[[], Awaitable[Any]],
        *,
        auto_retry: bool = True,
        retry_delay: float = 2.0,
        max_retries: int = 3,
        tenant_poll_interval: float = 0.8,
        name: str = "page",
    ) -> None:
        self.session = session
        self.load_data = load_data
        self.auto_retry = auto_retry
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self.tenant_poll_interval = tenant_poll_interval
        self.name = name

        self.state = LoaderState.AWAITING_AUTH
        self.loading = True
        self.error = ""
        self.retry_count = 0
        self._tenant_polls = 0

        self._task: Optional[asyncio.Task] = None
        self._rerun = False
        self._wake = asyncio.Event()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def is_retrying(self) -> bool:
        return self.retry_count > 0

    def snapshot(self) -> LoaderSnapshot:
        return LoaderSnapshot(
            state=self.state,
            loading=self.loading,
            error=self.error,
            retry_count=self.retry_count,
            is_retrying=self.is_retrying,
        )

    def start(self) -> asyncio.Task:
        if self._unsubscribe is None:
            self._unsubscribe = self.session.subscribe(self.invalidate)
        return self._ensure_task()

    async def run(self) -> LoaderSnapshot:
        """Start (if needed) and wait until the loader settles."""
        await self.start()
        return self.snapshot()

    def invalidate(self) -> None:
        """A dependency changed; re-evaluate after the current attempt settles."""
        if self._task is not None and not self._task.done():
            self._rerun = True
            self._wake.set()
            return
        if self._unsubscribe is not None:
            self._ensure_task()

    def retry(self) -> asyncio.Task:
        self.retry_count = 0
        self._tenant_polls = 0
        if self._task is not None and not self._task.done():
            self._rerun = True
            self._wake.set()
            return self._task
        return self._ensure_task()

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _ensure_task(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._drive())
        return self._task

    async def _drive(self) -> None:
        while True:
            self._rerun = False
            self._wake.clear()
            delay = await self._evaluate()
            if delay is None:
                if self._rerun:
                    continue
                return
            await self._pause(delay)

    async def _pause(self, delay: float) -> None:
        if delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _evaluate(self) -> Optional[float]:
        """One pass of the state machine. Returns a delay before the next pass, or None when settled."""
        if self.session.loading:
            self.state = LoaderState.AWAITING_AUTH
            self.loading = True
            await self.session.wait_until_loaded()
            return 0.0

        if self.session.user is None:
            self.state = LoaderState.IDLE
            self.loading = False
            return None

        if self.session.family is None:
            if self._tenant_polls < self.max_retries:
                self._tenant_polls += 1
                self.state = LoaderState.AWAITING_TENANT
                self.loading = True
                return self.tenant_poll_interval
            logger.warning("family never resolved", extra={"page": self.name})
            self.state = LoaderState.FAILED
            self.error = TENANT_UNRESOLVED_MESSAGE
            self.loading = False
            return None

        self.state = LoaderState.LOADING
        self.loading = True
        self.error = ""
        try:
            await self.load_data()
        except Exception as exc:
            logger.error(
                "page data load failed",
                extra={"page": self.name, "attempt": self.retry_count},
                exc_info=exc,
            )
            self.error = describe_load_error(exc)
            self.loading = False
            if self.auto_retry and self.retry_count < self.max_retries:
                self.retry_count += 1
                return self.retry_delay
            self.state = LoaderState.FAILED
            return None

        self.state = LoaderState.READY
        self.loading = False
        self.retry_count = 0
        self._tenant_polls = 0
        return None
