"""
Tests for error handling: structured error responses, HTTP status codes,
and the custom exception classes.
"""
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.core.errors import (
    GoalNotFoundError,
    InvalidEventBatchError,
    InvalidFilterError,
    InvalidOutcomeError,
    NothingToUndoError,
    PersistenceError,
    StepNotFoundError,
)
from app.main import app
from app.routers import events as events_router
from app.services import events as events_service
from conftest import make_goal


# ---------------------------------------------------------------------------
# Unit tests on exception classes
# ---------------------------------------------------------------------------

class TestExceptionClasses:
    def test_goal_not_found(self):
        err = GoalNotFoundError(goal_id=7)
        assert err.http_status == 404
        assert err.code == "GOAL_NOT_FOUND"
        assert err.to_dict()["details"]["goal_id"] == 7

    def test_step_not_found(self):
        err = StepNotFoundError(step_id=3)
        assert err.http_status == 404
        assert err.code == "STEP_NOT_FOUND"
        assert "3" in err.message

    def test_nothing_to_undo(self):
        err = NothingToUndoError(step_id=3)
        assert err.http_status == 409
        assert err.code == "NOTHING_TO_UNDO"

    def test_invalid_outcome(self):
        err = InvalidOutcomeError("fail")
        assert err.http_status == 400
        assert err.details["outcome"] == "fail"

    def test_invalid_event_batch_index(self):
        assert InvalidEventBatchError("bad", index=4).details == {"index": 4}
        assert InvalidEventBatchError("bad").details == {}

    def test_invalid_filter(self):
        err = InvalidFilterError("from after to", field="from")
        assert err.http_status == 400
        assert err.details["field"] == "from"

    def test_persistence_error(self):
        err = PersistenceError("Could not save.", operation="upsert_events")
        assert err.http_status == 500
        assert err.code == "PERSISTENCE_ERROR"
        assert err.details["operation"] == "upsert_events"

    def test_to_dict_without_details(self):
        d = PersistenceError("oops").to_dict()
        assert "code" in d
        assert "message" in d
        # details should not be in dict when empty
        assert "details" not in d


# ---------------------------------------------------------------------------
# Integration tests on HTTP error responses
# ---------------------------------------------------------------------------

class TestValidationErrors:
    def test_missing_title_returns_validation_error(self, client):
        r = client.post("/goals", json={})
        assert r.status_code == 400
        body = r.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert isinstance(body["details"]["errors"], list)
        fields = [e["field"] for e in body["details"]["errors"]]
        assert any("title" in f for f in fields)

    def test_invalid_date_returns_validation_error(self, client):
        r = client.post("/goals", json={"title": "Sit", "target_date": "someday"})
        assert r.status_code == 400
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_negative_duration_returns_validation_error(self, client):
        step_id = make_goal(client, steps=["Sit"])["steps"][0]["id"]
        r = client.post(f"/goal-steps/{step_id}/attempt", json={"outcome": "pass", "duration_seconds": -5})
        assert r.status_code == 400

    def test_non_integer_path_returns_validation_error(self, client):
        r = client.get("/goals/abc")
        assert r.status_code == 400
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_bad_suggestion_day(self, client):
        assert client.get("/goals/suggested", params={"day": "tomorrow"}).status_code == 400


class TestNotFoundAndConflict:
    def test_404_envelope(self, client):
        body = client.get("/goals/4242").json()
        assert body == {
            "code": "GOAL_NOT_FOUND",
            "message": "Goal 4242 not found.",
            "details": {"goal_id": 4242},
        }

    def test_409_has_machine_readable_code(self, client):
        step_id = make_goal(client, steps=["Down"])["steps"][0]["id"]
        r = client.post(f"/goal-steps/{step_id}/attempt/undo")
        assert r.status_code == 409
        assert r.json()["code"] == "NOTHING_TO_UNDO"
        assert r.json()["details"]["step_id"] == step_id


class TestServerErrors:
    def test_persistence_failure_is_500(self, client, monkeypatch):
        def broken(db, payloads):
            raise PersistenceError("Could not save event batch.", operation="upsert_events")

        monkeypatch.setattr(events_router, "upsert_events", broken)
        r = client.post("/events/batch", json={"events": [
            {"client_event_id": "z", "valence": "positive", "occurred_at": "2026-10-01T08:00:00Z"},
        ]})
        assert r.status_code == 500
        assert r.json()["code"] == "PERSISTENCE_ERROR"

    def test_unhandled_error_is_500_envelope(self, client, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(events_router, "list_events", explode)
        with TestClient(app, raise_server_exceptions=False) as c:
            r = c.get("/events")
        assert r.status_code == 500
        assert r.json()["code"] == "INTERNAL_ERROR"

    def test_database_error_surfaces_as_persistence_error(self, client, monkeypatch):
        def fail_flush(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(events_service, "_upsert_one", fail_flush)
        r = client.post("/events/batch", json={"events": [
            {"client_event_id": "y", "valence": "negative", "occurred_at": "2026-10-01T08:00:00Z"},
        ]})
        assert r.status_code == 500
        assert r.json()["details"]["operation"] == "upsert_events"


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"
