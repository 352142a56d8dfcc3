from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from babytrack.config import AppConfig
from babytrack.main import create_app
from babytrack.store import MemoryDocumentStore

from conftest import FakeClock

EVENING = datetime(2024, 3, 4, 21, 5, tzinfo=timezone.utc)
TIMER = "/api/v1/babies/baby-1/timers/feeding"


def make_client(start: datetime = EVENING):
    store = MemoryDocumentStore()
    clock = FakeClock(start)
    app = create_app(store=store, config=AppConfig(), clock=clock, run_ticker=False)
    return TestClient(app), store, clock


def test_health() -> None:
    client, _, _ = make_client()
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_timer_round_trip() -> None:
    client, store, clock = make_client()

    resp = client.post(f"{TIMER}/start", json={"metadata": {"breast_side": "right"}})
    assert resp.status_code == 200
    assert resp.json()["state"] == "running"
    assert resp.json()["metadata"]["breast_side"] == "right"

    clock.advance(minutes=3)
    assert client.post(f"{TIMER}/pause").json()["state"] == "paused"
    clock.advance(minutes=1)
    assert client.post(f"{TIMER}/resume").json()["state"] == "running"
    clock.advance(minutes=2)

    stopped = client.post(f"{TIMER}/stop").json()
    assert stopped["state"] == "review"
    assert stopped["elapsed_seconds"] == 300

    draft = client.get(f"{TIMER}/edit").json()
    assert draft["duration_minutes"] == 5

    edited = client.post(
        f"{TIMER}/edit",
        json={"start_time": (EVENING - timedelta(hours=1)).isoformat(), "duration_minutes": 10},
    )
    assert edited.status_code == 200
    assert edited.json()["duration_minutes"] == 10

    committed = client.post(f"{TIMER}/commit", json={"notes": "sleepy at the end", "baby_mood": "sleepy"})
    assert committed.status_code == 200
    assert committed.json()["state"] == "committed"

    notices = client.get("/api/v1/babies/baby-1/notices").json()
    assert notices[-1]["level"] == "success"
    assert notices[-1]["message"] == "10m Right side logged"
    assert client.get("/api/v1/babies/baby-1/notices").json() == []

    record = store.documents("feeding_sessions")[0]
    assert record["duration"] == 600
    assert record["is_active"] is False

    summary = client.get(f"{TIMER}/summary").json()
    assert summary == {"count": 1, "total_seconds": 600}


def test_invalid_transition_is_conflict() -> None:
    client, _, _ = make_client()
    resp = client.post(f"{TIMER}/pause")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Cannot pause while idle"


def test_validation_error_is_bad_request() -> None:
    client, store, _ = make_client()
    resp = client.post(f"{TIMER}/start", json={"metadata": {"breast_side": "middle"}})
    assert resp.status_code == 400
    assert store.documents("feeding_sessions") == []


def test_unknown_activity_is_rejected() -> None:
    client, _, _ = make_client()
    assert client.get("/api/v1/babies/baby-1/timers/sleep").status_code == 422


def test_store_failure_is_bad_gateway() -> None:
    client, store, _ = make_client()
    store.fail_next("create")
    resp = client.post(f"{TIMER}/start")
    assert resp.status_code == 502
    notices = client.get("/api/v1/babies/baby-1/notices").json()
    assert notices[-1]["level"] == "error"
    assert client.get(TIMER).json()["state"] == "idle"


def test_stale_discard_route() -> None:
    client, store, clock = make_client()
    client.post(f"{TIMER}/start")
    clock.advance(hours=6)
    view = client.post(f"{TIMER}/visible").json()
    assert view["stale_prompt"] is True

    resp = client.post(f"{TIMER}/stale/discard")
    assert resp.status_code == 200
    assert resp.json()["state"] == "idle"
    assert store.documents("feeding_sessions") == []


def test_medicine_flow_and_reminder() -> None:
    client, store, clock = make_client()
    base = "/api/v1/babies/baby-1/medicines"

    bad = client.post(base, json={"name": "Tylenol", "frequency": "every_hours"})
    assert bad.status_code == 422

    created = client.post(base, json={"name": "Vitamin D", "dosage": "400 IU", "frequency": "once_daily"})
    assert created.status_code == 200
    medicine_id = created.json()["id"]

    listed = client.get(base).json()
    assert listed[0]["medicine"]["name"] == "Vitamin D"
    assert listed[0]["can_give"] is True

    reminder = client.post("/api/v1/babies/baby-1/reminders/missed-doses/check").json()
    assert reminder["is_showing"] is True
    assert reminder["last_reminder_date"] == "2024-03-04"

    given = client.post(f"{base}/{medicine_id}/give", json={"notes": "morning bottle"})
    assert given.status_code == 200
    assert given.json()["status"]["doses_today"] == 1

    again = client.post(f"{base}/{medicine_id}/give")
    assert again.status_code == 409
    assert "Maximum of 1" in again.json()["detail"]

    reminder = client.get("/api/v1/babies/baby-1/reminders/missed-doses").json()
    assert reminder["is_showing"] is False

    patched = client.patch(f"{base}/{medicine_id}", json={"is_active": False})
    assert patched.status_code == 200
    assert patched.json()["medicine"]["is_active"] is False

    assert client.post(f"{base}/missing/give").status_code == 404


def test_reminder_dismiss_route() -> None:
    client, _, _ = make_client()
    client.post("/api/v1/babies/baby-1/medicines", json={"name": "Iron", "frequency": "twice_daily"})
    assert client.post("/api/v1/babies/baby-1/reminders/missed-doses/check").json()["is_showing"] is True
    dismissed = client.post("/api/v1/babies/baby-1/reminders/missed-doses/dismiss").json()
    assert dismissed["is_showing"] is False
    assert client.post("/api/v1/babies/baby-1/reminders/missed-doses/check").json()["is_showing"] is False
