from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from babycare.errors import SupabaseError
from babycare.main import app
from babycare.state import create_state

from .supabase_helpers import BABY_ID, FAMILY_ID, USER_ID, FakeAuth, FakeSupabase, make_auth_session, make_config, seeded_tables

PHONE = "11999990000"


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase(seeded_tables())


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, supabase: FakeSupabase):
    auth = FakeAuth(make_auth_session())
    auth.add_user(USER_ID, "user-1@babybot.app", "secret")
    config = make_config()

    async def fake_create_state(_config):
        state = await create_state(config, auth=auth, supabase=supabase)
        await state.session.refresh_user_data()
        return state

    monkeypatch.setattr("babycare.main.get_config", lambda: config)
    monkeypatch.setattr("babycare.main.create_state", fake_create_state)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_session_reports_family(client: TestClient) -> None:
    body = client.get("/api/v1/session").json()
    assert body["loading"] is False
    assert body["user_id"] == USER_ID
    assert body["family"]["id"] == FAMILY_ID
    assert body["caregiver"]["name"] == "Ana"


def test_sign_in_with_unknown_phone(client: TestClient) -> None:
    response = client.post("/api/v1/auth/sign-in", json={"phone": "11000000000", "password": "secret"})
    assert response.status_code == 404
    assert response.json()["error"] == "phone_not_found"


def test_sign_out_then_sign_in(client: TestClient) -> None:
    signed_out = client.post("/api/v1/auth/sign-out").json()
    assert signed_out["user_id"] is None
    assert signed_out["family"] is None

    idle = client.get("/api/v1/pages/sleep").json()
    assert idle["loader"]["state"] == "idle"

    signed_in = client.post("/api/v1/auth/sign-in", json={"phone": f" {PHONE} ", "password": "secret"})
    assert signed_in.status_code == 200
    assert signed_in.json()["family"]["id"] == FAMILY_ID


def test_sign_up_with_short_password(client: TestClient) -> None:
    response = client.post(
        "/api/v1/auth/sign-up",
        json={"phone": "11888880000", "password": "123", "name": "Rui", "family_name": "Costa"},
    )
    assert response.status_code == 422


def test_sign_up_with_taken_phone(client: TestClient) -> None:
    response = client.post(
        "/api/v1/auth/sign-up",
        json={"phone": PHONE, "password": "secret1", "name": "Ana", "family_name": "Silva"},
    )
    assert response.status_code == 409
    assert response.json()["error"] == "phone_taken"


def test_sleep_page_lists_family_babies(client: TestClient) -> None:
    body = client.get("/api/v1/pages/sleep").json()
    assert body["loader"]["state"] == "ready"
    assert body["loader"]["error"] == ""
    assert [baby["name"] for baby in body["data"]["babies"]] == ["Leo"]
    assert body["data"]["records"] == []


def test_unknown_page(client: TestClient) -> None:
    assert client.get("/api/v1/pages/settings").status_code == 404


def test_dashboard_stats(client: TestClient, supabase: FakeSupabase) -> None:
    supabase.rpc_results["daily_sleep_report"] = [{"total_sleep_minutes": 500}]
    supabase.rpc_results["baby_current_status"] = [{"current_status": "sleeping", "status_since": None}]

    body = client.get("/api/v1/pages/dashboard").json()

    assert body["loader"]["state"] == "ready"
    stats = body["data"]["stats"]
    assert stats["total_babies"] == 1
    assert stats["total_caregivers"] == 1
    assert stats["today_sleep_hours"] == 8
    assert body["data"]["babies"][0]["current_status"] == "sleeping"


def test_double_start_is_rejected(client: TestClient, supabase: FakeSupabase) -> None:
    first = client.post(f"/api/v1/babies/{BABY_ID}/activities/sleep/start")
    assert first.status_code == 200
    second = client.post(f"/api/v1/babies/{BABY_ID}/activities/sleep/start")
    assert second.status_code == 409
    assert second.json()["error"] == "activity_in_progress"
    assert len(supabase.tables["sleep_records"]) == 1

    page = client.get("/api/v1/pages/sleep").json()
    assert [record["id"] for record in page["data"]["in_progress"]] == [first.json()["record"]["id"]]


def test_start_then_stop(client: TestClient) -> None:
    started = client.post(f"/api/v1/babies/{BABY_ID}/activities/breastfeeding/start").json()
    record_id = started["record"]["id"]

    stopped = client.post(
        f"/api/v1/activities/breastfeeding/{record_id}/stop",
        json={"breast_side": "right"},
    )
    assert stopped.status_code == 200
    assert stopped.json()["record"]["breast_side"] == "right"
    assert stopped.json()["record"]["breastfeeding_end"] is not None


def test_stop_unknown_record(client: TestClient) -> None:
    response = client.post("/api/v1/activities/walk/missing/stop")
    assert response.status_code == 404
    assert response.json()["error"] == "record_not_found"


def test_quick_diaper(client: TestClient) -> None:
    solid = client.post(f"/api/v1/babies/{BABY_ID}/diapers/quick", json={"diaper_type": "solid"})
    assert solid.status_code == 422
    assert solid.json()["error"] == "details_required"

    urine = client.post(f"/api/v1/babies/{BABY_ID}/diapers/quick", json={"diaper_type": "urine"})
    assert urine.status_code == 200
    assert urine.json()["record"]["smell_intensity"] == 1


def test_record_validation_and_listing(client: TestClient) -> None:
    invalid = client.post(
        "/api/v1/records/diapers",
        json={"diaper_type": "solid", "baby_id": BABY_ID, "recorded_at": "2026-10-17T08:00:00Z"},
    )
    assert invalid.status_code == 422

    created = client.post(
        "/api/v1/records/diapers",
        json={
            "diaper_type": "solid",
            "baby_id": BABY_ID,
            "recorded_at": "2026-10-17T08:00:00Z",
            "consistency": "firm",
        },
    )
    assert created.status_code == 200
    assert created.json()["caregiver_id"] == USER_ID

    listed = client.get("/api/v1/records/diapers").json()
    assert [row["consistency"] for row in listed] == ["firm"]
    assert listed[0]["baby_name"] == "Leo"


def test_unknown_record_kind(client: TestClient) -> None:
    assert client.get("/api/v1/records/baths").status_code == 404


def test_report_for_other_family_baby(client: TestClient) -> None:
    assert client.get(f"/api/v1/babies/{BABY_ID}/reports/sleep").json()["result"] is None
    response = client.get("/api/v1/babies/baby-other/reports/sleep")
    assert response.status_code == 404
    assert response.json()["error"] == "record_not_found"


def test_cannot_delete_self(client: TestClient) -> None:
    response = client.delete(f"/api/v1/caregivers/{USER_ID}")
    assert response.status_code == 403
    assert response.json()["error"] == "self_delete_forbidden"


def test_dashboard_degrades_when_growth_lookup_fails(client: TestClient, supabase: FakeSupabase) -> None:
    supabase.fail("rpc", "get_latest_growth", SupabaseError("function get_latest_growth does not exist"))

    body = client.get("/api/v1/pages/dashboard").json()

    assert body["loader"]["state"] == "ready"
    baby = body["data"]["babies"][0]
    assert baby["name"] == "Leo"
    assert "current_weight_grams" not in baby


def test_start_stop_then_start_again(client: TestClient, supabase: FakeSupabase) -> None:
    first = client.post(f"/api/v1/babies/{BABY_ID}/activities/sleep/start")
    assert first.status_code == 200

    stopped = client.post(f"/api/v1/activities/sleep/{first.json()['record']['id']}/stop")
    assert stopped.status_code == 200

    again = client.post(f"/api/v1/babies/{BABY_ID}/activities/sleep/start")
    assert again.status_code == 200
    assert len(supabase.tables["sleep_records"]) == 2


def test_dashboard_with_no_sleep_today(client: TestClient, supabase: FakeSupabase) -> None:
    supabase.rpc_results["daily_sleep_report"] = [{"total_sleep_minutes": None}]

    body = client.get("/api/v1/pages/dashboard").json()

    assert body["loader"]["state"] == "ready"
    assert body["data"]["stats"]["today_sleep_hours"] == 0
