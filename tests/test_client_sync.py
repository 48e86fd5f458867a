"""
Tests for the offline client: local storage, the event queue, and sync
against both a mocked transport and the real app via TestClient.
"""
import json
import multiprocessing

import httpx
import pytest

from app.client.cli import main as cli_main
from app.client.goals import request_step_plan
from app.client.queue import EVENT_QUEUE_KEY, EventQueueStore, new_event
from app.client.storage import NOTICE_KEY, LocalStorage, SessionNoticeStore
from app.client.sync import SyncClient, SyncStatus
from conftest import make_goal


@pytest.fixture()
def storage(tmp_path):
    return LocalStorage(tmp_path / "client")


@pytest.fixture()
def queue(storage):
    return EventQueueStore(storage)


def _mock_http(handler):
    return httpx.Client(base_url="http://doglog.test", transport=httpx.MockTransport(handler))


def _ok(request):
    return httpx.Response(200, json={"saved_count": 0, "events": []})


def _append_many(data_dir, count):
    queue = EventQueueStore(LocalStorage(data_dir))
    for _ in range(count):
        queue.append(new_event("positive"))


class TestLocalStorage:
    def test_missing_key_returns_default(self, storage):
        assert storage.get("nope", default=[]) == []

    def test_round_trip_and_delete(self, storage):
        storage.set("k", {"a": 1})
        assert storage.get("k") == {"a": 1}
        storage.delete("k")
        assert storage.get("k") is None
        storage.delete("k")

    def test_corrupt_file_returns_default(self, storage):
        (storage.data_dir / "k.json").write_text("{not json", encoding="utf-8")
        assert storage.get("k", default="fallback") == "fallback"

    def test_no_temp_file_left_behind(self, storage):
        storage.set("k", [1, 2])
        assert [p.name for p in storage.data_dir.iterdir()] == ["k.json"]


class TestSessionNotice:
    def test_consumed_once(self, storage):
        notices = SessionNoticeStore(storage)
        notices.put("fallback", "Cloud AI key missing. Fallback plan generated.")
        assert notices.consume() == {
            "mode": "fallback",
            "notice": "Cloud AI key missing. Fallback plan generated.",
        }
        assert notices.consume() is None

    def test_survives_new_store_instance(self, storage):
        SessionNoticeStore(storage).put("cloud", None)
        assert (storage.data_dir / f"{NOTICE_KEY}.json").exists()
        assert SessionNoticeStore(LocalStorage(storage.data_dir)).consume()["mode"] == "cloud"


class TestQueue:
    def test_new_event_shape(self):
        ev = new_event("positive", intensity=4, tags=" Leash,walk,,LEASH ", notes="  ")
        assert len(ev["client_event_id"]) == 36
        assert ev["tags"] == ["leash", "walk"]
        assert ev["notes"] is None
        assert ev["occurred_at"].endswith("+00:00")
        assert ev["context"] == {}

    def test_new_event_ids_are_unique(self):
        assert new_event("negative")["client_event_id"] != new_event("negative")["client_event_id"]

    @pytest.mark.parametrize("kwargs", [{"valence": "meh"}, {"valence": "positive", "intensity": 0}])
    def test_new_event_rejects_bad_input(self, kwargs):
        with pytest.raises(ValueError):
            new_event(**kwargs)

    def test_append_is_durable_and_ordered(self, storage, queue):
        a, b = new_event("positive"), new_event("negative")
        queue.append(a)
        assert queue.append(b) == 2
        reopened = EventQueueStore(LocalStorage(storage.data_dir))
        assert [e["client_event_id"] for e in reopened.snapshot()] == [a["client_event_id"], b["client_event_id"]]
        assert (storage.data_dir / f"{EVENT_QUEUE_KEY}.json").exists()

    def test_remove_only_given_ids(self, queue):
        a, b, c = (new_event("positive") for _ in range(3))
        for ev in (a, b, c):
            queue.append(ev)
        assert queue.remove([a["client_event_id"], c["client_event_id"]]) == 1
        assert queue.snapshot() == [b]

    def test_clear(self, queue):
        queue.append(new_event("positive"))
        queue.clear()
        assert queue.pending_count() == 0

    @pytest.mark.skipif(
        "fork" not in multiprocessing.get_all_start_methods(), reason="needs fork"
    )
    def test_concurrent_processes_keep_every_event(self, storage):
        ctx = multiprocessing.get_context("fork")
        workers = [ctx.Process(target=_append_many, args=(storage.data_dir, 100)) for _ in range(2)]
        for w in workers:
            w.start()
        for w in workers:
            w.join(timeout=60)
        assert [w.exitcode for w in workers] == [0, 0]

        events = EventQueueStore(LocalStorage(storage.data_dir)).snapshot()
        assert len(events) == 200
        assert len({e["client_event_id"] for e in events}) == 200
        assert not list(storage.data_dir.glob("*.tmp"))


class TestSyncMocked:
    def test_empty_queue_is_idle(self, queue):
        calls = []
        sync = SyncClient(queue, _mock_http(lambda r: calls.append(r) or _ok(r)))
        assert sync.sync().status == SyncStatus.idle
        assert calls == []

    def test_success_sends_queue_in_order_and_clears(self, queue):
        sent = []

        def handler(request):
            assert request.url.path == "/events/batch"
            sent.append(json.loads(request.content)["events"])
            return _ok(request)

        events = [new_event("positive"), new_event("negative")]
        for ev in events:
            queue.append(ev)
        result = SyncClient(queue, _mock_http(handler)).sync()
        assert result.status == SyncStatus.synced
        assert result.sent == 2
        assert result.pending == 0
        assert sent == [events]

    @pytest.mark.parametrize("handler", [
        lambda r: httpx.Response(500, json={"code": "PERSISTENCE_ERROR"}),
        lambda r: httpx.Response(400, json={"code": "VALIDATION_ERROR"}),
    ])
    def test_error_response_keeps_queue(self, queue, handler):
        queue.append(new_event("positive"))
        before = queue.snapshot()
        result = SyncClient(queue, _mock_http(handler)).sync()
        assert result.status == SyncStatus.offline
        assert result.pending == 1
        assert queue.snapshot() == before

    def test_network_error_keeps_queue(self, queue):
        def handler(request):
            raise httpx.ConnectError("no route to host", request=request)

        queue.append(new_event("positive"))
        result = SyncClient(queue, _mock_http(handler)).sync()
        assert result.status == SyncStatus.offline
        assert "network error" in result.error
        assert queue.pending_count() == 1

    def test_event_queued_mid_flight_survives(self, queue):
        late = new_event("negative")

        def handler(request):
            queue.append(late)
            return _ok(request)

        queue.append(new_event("positive"))
        result = SyncClient(queue, _mock_http(handler)).sync()
        assert result.status == SyncStatus.synced
        assert result.pending == 1
        assert queue.snapshot() == [late]

    def test_second_trigger_while_in_flight(self, queue):
        nested = []

        def handler(request):
            nested.append(sync.on_visible())
            return _ok(request)

        sync = SyncClient(queue, _mock_http(handler))
        queue.append(new_event("positive"))
        assert sync.sync().status == SyncStatus.synced
        assert nested[0].status == SyncStatus.in_flight

    def test_listeners_run_only_on_success(self, queue):
        seen = []
        sync = SyncClient(queue, _mock_http(lambda r: httpx.Response(503)))
        sync.on_synced(seen.append)
        queue.append(new_event("positive"))
        sync.sync()
        assert seen == []

        sync.http = _mock_http(_ok)
        sync.sync()
        assert [r.status for r in seen] == [SyncStatus.synced]

    def test_offline_queueing_does_not_call_network(self, queue):
        calls = []
        sync = SyncClient(queue, _mock_http(lambda r: calls.append(r) or _ok(r)), online=False)
        event, result = sync.queue_event("positive", tags="walk")
        assert result is None
        assert sync.on_visible() is None
        assert calls == []
        assert queue.pending_count() == 1

        assert sync.on_online().status == SyncStatus.synced
        assert len(calls) == 1


class TestSyncEndToEnd:
    def test_queue_event_syncs_to_server(self, client, queue):
        sync = SyncClient(queue, client)
        event, result = sync.queue_event("positive", intensity=5, tags="Recall, park", notes="came back fast")
        assert result.status == SyncStatus.synced
        assert queue.pending_count() == 0

        stored = client.get("/events").json()["events"]
        assert len(stored) == 1
        assert stored[0]["client_event_id"] == event["client_event_id"]
        assert stored[0]["tags"] == ["park", "recall"]
        assert stored[0]["intensity"] == 5

    def test_failed_then_retried_batch_stores_each_once(self, client, queue):
        offline = SyncClient(queue, _mock_http(lambda r: httpx.Response(502)))
        offline.queue_event("negative", tags="bark")
        offline.queue_event("positive")
        assert queue.pending_count() == 2

        online = SyncClient(queue, client)
        assert online.sync().status == SyncStatus.synced
        # Pretend the response was lost and the same events come back.
        for ev in client.get("/events").json()["events"]:
            queue.append({k: ev[k] for k in ("client_event_id", "occurred_at", "valence", "intensity", "tags", "notes", "context")})
        assert online.sync().status == SyncStatus.synced
        assert len(client.get("/events").json()["events"]) == 2

    def test_step_plan_leaves_notice(self, client, storage):
        gid = make_goal(client, title="Walk nicely")["goal"]["id"]
        notices = SessionNoticeStore(storage)
        body = request_step_plan(client, notices, gid)
        assert body["generation_mode"] == "fallback"
        notice = notices.consume()
        assert notice["mode"] == "fallback"
        assert "key missing" in notice["notice"]


class TestCli:
    def test_log_offline_then_status_then_sync(self, client, tmp_path, capsys):
        data_dir = str(tmp_path / "cli")
        assert cli_main(["--data-dir", data_dir, "log", "positive", "--tags", "leash", "--offline"], http=client) == 0
        logged = json.loads(capsys.readouterr().out)
        assert logged["sync"] is None
        assert logged["pending"] == 1

        assert cli_main(["--data-dir", data_dir, "status"], http=client) == 0
        assert json.loads(capsys.readouterr().out)["pending"] == 1

        assert cli_main(["--data-dir", data_dir, "sync"], http=client) == 0
        synced = json.loads(capsys.readouterr().out)
        assert synced["sync"]["status"] == "synced"
        assert len(client.get("/events").json()["events"]) == 1

    def test_sync_failure_exit_code(self, tmp_path, capsys):
        data_dir = str(tmp_path / "cli")
        down = _mock_http(lambda r: httpx.Response(503))
        assert cli_main(["--data-dir", data_dir, "log", "negative"], http=down) == 1
        out = json.loads(capsys.readouterr().out)
        assert out["sync"]["status"] == "offline"
        assert out["pending"] == 1

    def test_bad_intensity_exit_code(self, tmp_path, capsys):
        data_dir = str(tmp_path / "cli")
        assert cli_main(["--data-dir", data_dir, "log", "positive", "--intensity", "9", "--offline"], http=_mock_http(_ok)) == 2

    def test_plan_then_notice(self, client, tmp_path, capsys):
        gid = make_goal(client)["goal"]["id"]
        data_dir = str(tmp_path / "cli")
        assert cli_main(["--data-dir", data_dir, "plan", str(gid)], http=client) == 0
        capsys.readouterr()
        assert cli_main(["--data-dir", data_dir, "notice"], http=client) == 0
        assert json.loads(capsys.readouterr().out)["notice"]["mode"] == "fallback"
        cli_main(["--data-dir", data_dir, "notice"], http=client)
        assert json.loads(capsys.readouterr().out)["notice"] is None
