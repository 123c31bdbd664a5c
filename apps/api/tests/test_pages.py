from types import SimpleNamespace

from babycare.pages import PageCache, Pages

from .supabase_helpers import USER_ID, make_config


class SwitchingSession:
    def __init__(self, user_id=USER_ID):
        self.user = SimpleNamespace(id=user_id) if user_id else None
        self._listeners = []

    def subscribe(self, listener):
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def switch_to(self, user_id):
        self.user = SimpleNamespace(id=user_id) if user_id else None
        for listener in list(self._listeners):
            listener()


def _pages(session):
    pages = Pages(session, make_config())
    pages.cache.put("babies", {"babies": [{"id": "baby-1", "name": "Leo"}]})
    return pages


def test_cache_dropped_when_another_user_signs_in() -> None:
    session = SwitchingSession()
    pages = _pages(session)

    session.switch_to("user-2")

    assert pages.cache.get("babies") == {}


def test_cache_kept_while_same_user_refreshes() -> None:
    session = SwitchingSession()
    pages = _pages(session)

    session.switch_to(USER_ID)

    assert pages.cache.get("babies")["babies"][0]["name"] == "Leo"


def test_cache_dropped_on_sign_out() -> None:
    session = SwitchingSession()
    pages = _pages(session)

    session.switch_to(None)

    assert pages.cache.get("babies") == {}


def test_replace_record_swaps_matching_row() -> None:
    cache = PageCache()
    cache.add_record("sleep", {"id": "s1", "sleep_end": None, "in_progress": True})
    cache.add_record("sleep", {"id": "s2", "sleep_end": None, "in_progress": True})

    cache.replace_record("sleep", {"id": "s1", "sleep_end": "2026-10-17T09:00:00Z", "in_progress": False})
    cache.replace_record("walks", {"id": "w1", "walk_end": "2026-10-17T09:00:00Z"})

    assert [record["id"] for record in cache.records("sleep")] == ["s2", "s1"]
    assert cache.records("sleep")[1]["in_progress"] is False
    assert [record["id"] for record in cache.records("walks")] == ["w1"]
