"""
Offline-first DogLog client.

Events are written to a local queue before any network call and uploaded
in one idempotent batch whenever a sync is triggered. Nothing here imports
the server's database layer.
"""
from app.client.queue import EVENT_QUEUE_KEY, EventQueueStore, new_event
from app.client.storage import NOTICE_KEY, LocalStorage, SessionNoticeStore
from app.client.sync import SyncClient, SyncResult, SyncStatus

__all__ = [
    "EVENT_QUEUE_KEY",
    "NOTICE_KEY",
    "EventQueueStore",
    "LocalStorage",
    "SessionNoticeStore",
    "SyncClient",
    "SyncResult",
    "SyncStatus",
    "new_event",
]
