"""
SyncClient — uploads the local event queue as one idempotent batch.

Triggers
--------
  sync()          explicit user action
  queue_event()   right after logging, when online
  on_online()     network came back
  on_visible()    app returned to the foreground

Only one sync runs at a time. A trigger that arrives while one is running
returns `in_flight` and does not touch the queue. After a 2xx response only
the ids that were sent are removed; on any failure the queue is left as it
was and the next trigger resends all of it. The server upserts by
client_event_id, so resending is safe.
"""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from app.client.queue import EventQueueStore, new_event

logger = logging.getLogger(__name__)

BATCH_PATH = "/events/batch"


class SyncStatus(str, enum.Enum):
    idle = "idle"            # nothing queued
    synced = "synced"        # batch accepted, sent ids removed
    offline = "offline"      # request failed, queue untouched
    in_flight = "in_flight"  # another sync is running


@dataclass
class SyncResult:
    status: SyncStatus
    sent: int = 0
    pending: int = 0
    error: Optional[str] = None


class SyncClient:
    def __init__(
        self,
        queue: EventQueueStore,
        http: httpx.Client,
        online: bool = True,
    ) -> None:
        self.queue = queue
        self.http = http
        self.online = online
        self._sync_lock = threading.Lock()
        self._listeners: list[Callable[[SyncResult], Any]] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_synced(self, callback: Callable[[SyncResult], Any]) -> None:
        """Register a callback run after every accepted batch."""
        self._listeners.append(callback)

    def _notify(self, result: SyncResult) -> None:
        for callback in self._listeners:
            callback(result)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def queue_event(self, valence: str, **fields: Any) -> tuple[dict[str, Any], Optional[SyncResult]]:
        """Log one event locally, then sync if online."""
        event = new_event(valence, **fields)
        pending = self.queue.append(event)
        logger.info("Queued event %s (%d pending)", event["client_event_id"], pending)
        if not self.online:
            return event, None
        return event, self.sync()

    def on_online(self) -> SyncResult:
        self.online = True
        return self.sync()

    def on_offline(self) -> None:
        self.online = False

    def on_visible(self) -> Optional[SyncResult]:
        if not self.online:
            return None
        return self.sync()

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync(self) -> SyncResult:
        if not self._sync_lock.acquire(blocking=False):
            return SyncResult(status=SyncStatus.in_flight, pending=self.queue.pending_count())
        try:
            return self._sync_once()
        finally:
            self._sync_lock.release()

    def _sync_once(self) -> SyncResult:
        batch = self.queue.snapshot()
        if not batch:
            return SyncResult(status=SyncStatus.idle)

        try:
            response = self.http.post(BATCH_PATH, json={"events": batch})
        except httpx.HTTPError as exc:
            return self._offline(f"network error: {exc}")
        if not response.is_success:
            return self._offline(f"server returned {response.status_code}")

        pending = self.queue.remove(e["client_event_id"] for e in batch)
        result = SyncResult(status=SyncStatus.synced, sent=len(batch), pending=pending)
        logger.info("Synced %d event(s); %d still queued", result.sent, pending)
        self._notify(result)
        return result

    def _offline(self, reason: str) -> SyncResult:
        pending = self.queue.pending_count()
        logger.warning("Sync failed (%s); %d event(s) kept locally", reason, pending)
        return SyncResult(status=SyncStatus.offline, pending=pending, error=reason)
