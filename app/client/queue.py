"""
EventQueueStore — the durable FIFO of events not yet accepted by the server.

Every logged event is appended here first. The queue is cleared by
snapshot-diff: `remove()` drops only the ids that were actually sent, so an
event appended while a sync is in flight stays queued for the next one.
"""
from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Optional

from app.client.storage import LocalStorage
from app.core.tags import normalize_tags

EVENT_QUEUE_KEY = "doglog_event_queue_v1"

VALENCES = ("positive", "negative")


def new_event(
    valence: str,
    intensity: int = 3,
    tags: Any = None,
    notes: Optional[str] = None,
    context: Optional[dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Build a queue item with a fresh idempotency key."""
    if valence not in VALENCES:
        raise ValueError(f"valence must be one of {VALENCES}, got {valence!r}")
    if not 1 <= int(intensity) <= 5:
        raise ValueError(f"intensity must be 1-5, got {intensity!r}")
    when = occurred_at or datetime.now(tz=timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return {
        "client_event_id": str(uuid.uuid4()),
        "occurred_at": when.astimezone(timezone.utc).isoformat(),
        "valence": valence,
        "intensity": int(intensity),
        "tags": normalize_tags(tags),
        "notes": (notes or "").strip() or None,
        "context": dict(context or {}),
    }


class EventQueueStore:
    def __init__(self, storage: LocalStorage, key: str = EVENT_QUEUE_KEY) -> None:
        self.storage = storage
        self.key = key
        self._lock = threading.Lock()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        # Thread lock for this process, file lock for every other client process.
        with self._lock, self.storage.lock(self.key):
            yield

    def _read(self) -> list[dict[str, Any]]:
        items = self.storage.get(self.key, default=[])
        return items if isinstance(items, list) else []

    def append(self, event: dict[str, Any]) -> int:
        """Persist one event; returns the new queue length."""
        with self._locked():
            items = self._read()
            items.append(event)
            self.storage.set(self.key, items)
            return len(items)

    def snapshot(self) -> list[dict[str, Any]]:
        with self._locked():
            return list(self._read())

    def remove(self, client_event_ids: Iterable[str]) -> int:
        """Drop the given ids; returns how many are still queued."""
        sent = set(client_event_ids)
        with self._locked():
            remaining = [e for e in self._read() if e.get("client_event_id") not in sent]
            self.storage.set(self.key, remaining)
            return len(remaining)

    def pending_count(self) -> int:
        with self._locked():
            return len(self._read())

    def clear(self) -> None:
        with self._locked():
            self.storage.set(self.key, [])
