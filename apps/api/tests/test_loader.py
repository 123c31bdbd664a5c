import asyncio
import random
from types import SimpleNamespace

import httpx

from babycare.errors import SupabaseError
from babycare.loader import (
    CONNECTION_ERROR_MESSAGE,
    GENERIC_LOAD_ERROR,
    TENANT_UNRESOLVED_MESSAGE,
    PageDataLoader,
    describe_load_error,
)
from babycare.schemas import LoaderState

from .supabase_helpers import FAMILY_ID, USER_ID


class FakeSession:
    def __init__(self, *, loading=False, signed_in=True, family=True):
        self.loading = loading
        self.user = SimpleNamespace(id=USER_ID) if signed_in else None
        self._family = SimpleNamespace(id=FAMILY_ID) if family else None
        self._loaded = asyncio.Event()
        if not loading:
            self._loaded.set()
        self._listeners = []

    @property
    def family(self):
        return self._family

    async def wait_until_loaded(self):
        await self._loaded.wait()

    def finish_loading(self):
        self.loading = False
        self._loaded.set()
        self.notify()

    def subscribe(self, listener):
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def notify(self):
        for listener in list(self._listeners):
            listener()


class LateFamilySession(FakeSession):
    """Family appears on the Nth time it is read."""

    def __init__(self, available_on):
        super().__init__(family=False)
        self.available_on = available_on
        self.family_reads = 0

    @property
    def family(self):
        self.family_reads += 1
        if self.family_reads >= self.available_on:
            return SimpleNamespace(id=FAMILY_ID)
        return None


class Fetcher:
    def __init__(self, failures=0, exc=None):
        self.calls = 0
        self.failures = failures
        self.exc = exc or SupabaseError("relation \"sleep_records\" does not exist")

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc


def _loader(session, fetcher, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    kwargs.setdefault("tenant_poll_interval", 0)
    return PageDataLoader(session, fetcher, **kwargs)


def test_loads_once_when_family_is_ready() -> None:
    async def scenario():
        fetcher = Fetcher()
        loader = _loader(FakeSession(), fetcher)
        snapshot = await loader.run()
        assert snapshot.state is LoaderState.READY
        assert snapshot.loading is False
        assert snapshot.error == ""
        assert fetcher.calls == 1
        await loader.close()

    asyncio.run(scenario())


def test_idle_without_principal() -> None:
    async def scenario():
        fetcher = Fetcher()
        loader = _loader(FakeSession(signed_in=False), fetcher)
        snapshot = await loader.run()
        assert snapshot.state is LoaderState.IDLE
        assert snapshot.loading is False
        assert fetcher.calls == 0
        await loader.close()

    asyncio.run(scenario())


def test_waits_for_initial_auth_check() -> None:
    async def scenario():
        session = FakeSession(loading=True)
        fetcher = Fetcher()
        loader = _loader(session, fetcher)
        task = loader.start()
        for _ in range(5):
            await asyncio.sleep(0)
        assert loader.state is LoaderState.AWAITING_AUTH
        assert fetcher.calls == 0

        session.finish_loading()
        await task
        assert loader.state is LoaderState.READY
        assert fetcher.calls == 1
        await loader.close()

    asyncio.run(scenario())


def test_family_found_on_fourth_check_loads_once() -> None:
    async def scenario():
        session = LateFamilySession(available_on=4)
        fetcher = Fetcher()
        loader = _loader(session, fetcher, max_retries=3)
        snapshot = await loader.run()
        assert snapshot.state is LoaderState.READY
        assert fetcher.calls == 1
        assert session.family_reads == 4
        await loader.close()

    asyncio.run(scenario())


def test_family_never_resolves() -> None:
    async def scenario():
        session = LateFamilySession(available_on=100)
        fetcher = Fetcher()
        loader = _loader(session, fetcher, max_retries=3)
        snapshot = await loader.run()
        assert snapshot.state is LoaderState.FAILED
        assert snapshot.error == TENANT_UNRESOLVED_MESSAGE
        assert snapshot.loading is False
        assert fetcher.calls == 0
        assert session.family_reads == 4
        await loader.close()

    asyncio.run(scenario())


def test_retries_three_times_then_fails_until_manual_retry() -> None:
    async def scenario():
        fetcher = Fetcher(failures=100)
        loader = _loader(FakeSession(), fetcher, max_retries=3)
        snapshot = await loader.run()
        assert snapshot.state is LoaderState.FAILED
        assert snapshot.retry_count == 3
        assert snapshot.is_retrying is True
        assert snapshot.error == 'relation "sleep_records" does not exist'
        assert fetcher.calls == 4

        for _ in range(10):
            await asyncio.sleep(0)
        assert fetcher.calls == 4

        fetcher.failures = 0
        await loader.retry()
        assert loader.state is LoaderState.READY
        assert loader.retry_count == 0
        assert loader.error == ""
        assert fetcher.calls == 5
        await loader.close()

    asyncio.run(scenario())


def test_network_errors_get_connection_message_without_auto_retry() -> None:
    async def scenario():
        fetcher = Fetcher(failures=1, exc=Exception("TypeError: Failed to fetch"))
        loader = _loader(FakeSession(), fetcher, auto_retry=False)
        snapshot = await loader.run()
        assert snapshot.state is LoaderState.FAILED
        assert snapshot.error == CONNECTION_ERROR_MESSAGE
        assert snapshot.retry_count == 0
        assert fetcher.calls == 1
        await loader.close()

    asyncio.run(scenario())


def test_describe_load_error() -> None:
    assert describe_load_error(httpx.ConnectError("connection refused")) == CONNECTION_ERROR_MESSAGE
    assert describe_load_error(Exception("Network request failed")) == CONNECTION_ERROR_MESSAGE
    assert describe_load_error(SupabaseError("permission denied for table babies")) == (
        "permission denied for table babies"
    )
    assert describe_load_error(Exception("")) == GENERIC_LOAD_ERROR


def test_dependency_churn_never_overlaps_loads() -> None:
    class SlowFetcher:
        def __init__(self):
            self.calls = 0
            self.in_flight = 0
            self.max_in_flight = 0

        async def __call__(self):
            self.calls += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                for _ in range(3):
                    await asyncio.sleep(0)
            finally:
                self.in_flight -= 1

    async def scenario():
        rng = random.Random(7)
        session = FakeSession()
        fetcher = SlowFetcher()
        loader = _loader(session, fetcher)
        loader.start()
        for _ in range(200):
            roll = rng.random()
            if roll < 0.25:
                loader.invalidate()
            elif roll < 0.45:
                session.notify()
            elif roll < 0.55:
                loader.retry()
            else:
                await asyncio.sleep(0)
        snapshot = await loader.run()

        assert fetcher.max_in_flight == 1
        assert fetcher.calls >= 2
        assert snapshot.state is LoaderState.READY
        await loader.close()

    asyncio.run(scenario())


def test_close_cancels_pending_retry() -> None:
    async def scenario():
        session = FakeSession()
        fetcher = Fetcher(failures=100)
        loader = _loader(session, fetcher, retry_delay=60)
        task = loader.start()
        while fetcher.calls == 0:
            await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert not task.done()
        assert loader.retry_count == 1

        await loader.close()

        assert task.cancelled()
        assert fetcher.calls == 1
        assert session._listeners == []

    asyncio.run(scenario())
