from __future__ import annotations

from datetime import datetime, timezone

from fastapi.testclient import TestClient

from rhythm.config import CONFIG
from rhythm.engine import build_engine, get_next_action
from rhythm.main import app
from rhythm.messages import PROGRESS_COPY, intent_copy, progress_copy
from rhythm.schedule import generate_adaptive_schedule
from rhythm.schemas import ActivityRecord

client = TestClient(app)

NOW = datetime(2025, 6, 15, 15, tzinfo=timezone.utc)
ACTIVITIES = [
    {"id": 1, "type": "feed", "loggedAt": "2025-06-15T12:00:00Z", "details": {"quantity": 4, "unit": "oz"}},
    {
        "id": 2,
        "type": "nap",
        "loggedAt": "2025-06-15T14:30:00Z",
        "timezone": "UTC",
        "details": {"startTime": "1:00 PM", "endTime": "2:30 PM"},
    },
    {"id": 3, "type": "diaper", "loggedAt": "2025-06-15T14:35:00Z"},
]


def payload(**overrides):
    body = {
        "activities": ACTIVITIES,
        "birthDate": "2025-01-10",
        "timezone": "UTC",
        "now": NOW.isoformat(),
    }
    body.update(overrides)
    return body


def engine_state():
    records = [ActivityRecord.model_validate(item) for item in ACTIVITIES]
    return build_engine(records, "2025-01-10", now=NOW, timezone="UTC", settings=CONFIG.engine)


def test_health() -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_next_action_matches_engine() -> None:
    resp = client.post("/api/v1/predictions/next-action", json=payload())
    assert resp.status_code == 200
    state = engine_state()
    result = get_next_action(state, NOW)
    expected = result.model_dump(mode="json", by_alias=True)
    expected["message"] = intent_copy(result, state.zone)
    expected["feedProgressMessage"] = progress_copy(result, "feeds")
    expected["napProgressMessage"] = progress_copy(result, "naps")
    assert resp.json() == expected

    body = resp.json()
    assert body["intent"] == "FEED_SOON"
    assert body["confidence"] == "medium"
    assert body["message"] == "Likely feed around 3:30 PM. Watch for hunger cues."
    assert body["feedProgressMessage"] == PROGRESS_COPY["feeds"]["below"]
    assert body["rationale"]["t_awake_now_min"] == 30
    assert body["dayProgress"]["feedsToday"] == 1
    assert body["timing"]["expectedFeedVolume"] == 4.0


def test_schedule_matches_engine() -> None:
    resp = client.post("/api/v1/predictions/schedule", json=payload())
    assert resp.status_code == 200
    expected = generate_adaptive_schedule(engine_state(), NOW).model_dump(mode="json", by_alias=True)
    assert resp.json() == expected

    body = resp.json()
    assert body["events"][0]["type"] == "wake"
    assert body["basedOn"] == "3 logged activities over 1 days"
    assert len(body["events"]) <= 20


def test_unknown_timezone_is_rejected() -> None:
    resp = client.post("/api/v1/predictions/next-action", json=payload(timezone="Mars/Base"))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Unknown timezone: Mars/Base"


def test_activity_without_logged_at_is_rejected() -> None:
    broken = [{"id": "x", "type": "feed", "details": {}}]
    resp = client.post("/api/v1/predictions/schedule", json=payload(activities=broken))
    assert resp.status_code == 422


def test_missing_now_uses_current_time() -> None:
    body = payload()
    body.pop("now")
    resp = client.post("/api/v1/predictions/next-action", json=body)
    assert resp.status_code == 200
    assert resp.json()["intent"] in {"FEED_SOON", "START_WIND_DOWN", "INDEPENDENT_TIME", "LET_SLEEP_CONTINUE"}
