"""
Tests for POST /events/batch (idempotent upsert) and GET /events filters.
"""
from app.core.config import settings
from app.models.behavior_event import BehaviorEvent, EventTag


def _event(cid, valence="positive", occurred_at="2026-10-01T08:00:00Z", **extra):
    return {"client_event_id": cid, "valence": valence, "occurred_at": occurred_at, **extra}


def _upload(client, *events):
    return client.post("/events/batch", json={"events": list(events)})


class TestBatchUpload:
    def test_saves_events(self, client):
        r = _upload(
            client,
            _event("a-1", tags=["Leash", "walk", "leash"], intensity=4, notes=" calm "),
            _event("a-2", valence="negative"),
        )
        assert r.status_code == 200
        body = r.json()
        assert body["saved_count"] == 2
        first = body["events"][0]
        assert first["client_event_id"] == "a-1"
        assert first["tags"] == ["leash", "walk"]
        assert first["intensity"] == 4
        assert first["notes"] == "calm"
        assert first["source"] == "manual"
        assert body["events"][1]["intensity"] == 3

    def test_resend_same_id_updates_in_place(self, client, db):
        _upload(client, _event("dup-1", notes="first", tags=["leash"]))
        r = _upload(client, _event("dup-1", notes="second", tags=["recall", "park"]))
        assert r.status_code == 200
        assert db.query(BehaviorEvent).filter(BehaviorEvent.client_event_id == "dup-1").count() == 1
        listed = client.get("/events").json()["events"]
        assert len(listed) == 1
        assert listed[0]["notes"] == "second"
        assert listed[0]["tags"] == ["park", "recall"]
        assert db.query(EventTag).count() == 2

    def test_retry_of_whole_batch_is_idempotent(self, client):
        batch = [_event(f"r-{i}", occurred_at=f"2026-10-01T0{i}:00:00Z") for i in range(3)]
        assert _upload(client, *batch).status_code == 200
        assert _upload(client, *batch).status_code == 200
        assert len(client.get("/events").json()["events"]) == 3

    def test_duplicate_id_within_batch_collapses(self, client):
        r = _upload(client, _event("x", notes="one"), _event("x", notes="two"))
        assert r.status_code == 200
        assert r.json()["saved_count"] == 1
        assert client.get("/events").json()["events"][0]["notes"] == "two"

    def test_context_round_trips(self, client):
        _upload(client, _event("ctx", context={"location": "park", "weather": "rain"}))
        ev = client.get("/events").json()["events"][0]
        assert ev["context"] == {"location": "park", "weather": "rain"}

    def test_import_source(self, client):
        r = _upload(client, _event("imp", source="import"))
        assert r.json()["events"][0]["source"] == "import"

    def test_empty_batch_is_400(self, client):
        r = client.post("/events/batch", json={"events": []})
        assert r.status_code == 400
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_missing_client_event_id_is_400(self, client):
        r = client.post("/events/batch", json={"events": [{"valence": "positive", "occurred_at": "2026-10-01T08:00:00Z"}]})
        assert r.status_code == 400
        fields = [e["field"] for e in r.json()["details"]["errors"]]
        assert any("client_event_id" in f for f in fields)

    def test_bad_valence_is_400(self, client):
        assert _upload(client, _event("v", valence="neutral")).status_code == 400

    def test_intensity_out_of_range_is_400(self, client):
        assert _upload(client, _event("i", intensity=9)).status_code == 400

    def test_invalid_batch_writes_nothing(self, client, db):
        r = _upload(client, _event("ok-1"), _event("bad", valence="meh"))
        assert r.status_code == 400
        assert db.query(BehaviorEvent).count() == 0

    def test_batch_over_limit_is_400(self, client, monkeypatch):
        monkeypatch.setattr(settings, "EVENT_BATCH_MAX", 2)
        r = _upload(client, _event("l1"), _event("l2"), _event("l3"))
        assert r.status_code == 400
        assert r.json()["code"] == "INVALID_EVENT_BATCH"


class TestListEvents:
    def _seed(self, client):
        _upload(
            client,
            _event("e1", occurred_at="2026-10-01T08:00:00Z", tags=["leash"]),
            _event("e2", valence="negative", occurred_at="2026-10-02T08:00:00Z", tags=["bark"]),
            _event("e3", occurred_at="2026-10-03T08:00:00Z", tags=["leash", "park"]),
        )

    def test_newest_first(self, client):
        self._seed(client)
        ids = [e["client_event_id"] for e in client.get("/events").json()["events"]]
        assert ids == ["e3", "e2", "e1"]

    def test_limit(self, client):
        self._seed(client)
        assert len(client.get("/events", params={"limit": 2}).json()["events"]) == 2

    def test_limit_out_of_range_is_400(self, client):
        assert client.get("/events", params={"limit": 0}).status_code == 400
        assert client.get("/events", params={"limit": 201}).status_code == 400

    def test_filter_by_valence(self, client):
        self._seed(client)
        events = client.get("/events", params={"valence": "negative"}).json()["events"]
        assert [e["client_event_id"] for e in events] == ["e2"]

    def test_filter_by_tag(self, client):
        self._seed(client)
        events = client.get("/events", params={"tag": "LEASH"}).json()["events"]
        assert [e["client_event_id"] for e in events] == ["e3", "e1"]

    def test_filter_by_range(self, client):
        self._seed(client)
        events = client.get(
            "/events",
            params={"from": "2026-10-01T12:00:00Z", "to": "2026-10-03T00:00:00Z"},
        ).json()["events"]
        assert [e["client_event_id"] for e in events] == ["e2"]

    def test_inverted_range_is_400(self, client):
        r = client.get(
            "/events",
            params={"from": "2026-10-05T00:00:00Z", "to": "2026-10-01T00:00:00Z"},
        )
        assert r.status_code == 400
        assert r.json()["code"] == "INVALID_FILTER"
