"""
Behavior event service: idempotent batch upsert + filtered listing.

Public API
----------
upsert_events(db, payloads)                         → list[BehaviorEvent]
list_events(db, limit, from_, to, valence, tag)     → list[BehaviorEvent]

Idempotency
-----------
`client_event_id` is unique in behavior_events. Re-sending an id updates the
row in place (last write wins) and replaces its tag set, so a batch retried
after a dropped response never duplicates anything. The whole batch is one
transaction: either every event is applied or none is.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.errors import InvalidFilterError, PersistenceError
from app.models.behavior_event import BehaviorEvent, EventSource, EventTag, Valence

logger = logging.getLogger(__name__)

DEFAULT_INTENSITY = 3
# A lost insert race on client_event_id is retried once as an update.
_UPSERT_ATTEMPTS = 2


@dataclass
class EventPayload:
    """Schema-agnostic DTO for one queued client event."""
    client_event_id: str
    occurred_at: datetime
    valence: str
    intensity: int = DEFAULT_INTENSITY
    tags: list[str] = field(default_factory=list)
    notes: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken as UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_context(raw: Optional[str]) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (ValueError, TypeError):
        return {}
    return value if isinstance(value, dict) else {}


def _apply_payload(db: Session, event: BehaviorEvent, payload: EventPayload) -> None:
    event.occurred_at = as_utc(payload.occurred_at)
    event.valence = Valence(payload.valence)
    event.intensity = payload.intensity if payload.intensity is not None else DEFAULT_INTENSITY
    event.notes = payload.notes
    event.context_json = json.dumps(payload.context or {}, default=str)
    event.source = EventSource(payload.source) if payload.source else EventSource.manual

    wanted = list(dict.fromkeys(payload.tags))
    if [t.tag for t in event.tags] == sorted(wanted):
        return
    # Delete old tags before inserting new ones: (event_id, tag) is unique.
    event.tags.clear()
    db.flush()
    for tag in wanted:
        event.tags.append(EventTag(tag=tag))


def _upsert_one(db: Session, payload: EventPayload) -> BehaviorEvent:
    event: Optional[BehaviorEvent] = (
        db.query(BehaviorEvent)
        .filter(BehaviorEvent.client_event_id == payload.client_event_id)
        .first()
    )
    if event is None:
        event = BehaviorEvent(client_event_id=payload.client_event_id)
        db.add(event)
    _apply_payload(db, event, payload)
    db.flush()
    return event


# ---------------------------------------------------------------------------
# Public — batch upsert
# ---------------------------------------------------------------------------

def upsert_events(db: Session, payloads: list[EventPayload]) -> list[BehaviorEvent]:
    """
    Upsert every payload in queue order inside one transaction.
    Duplicate ids within one batch collapse to the last occurrence.
    """
    for attempt in range(1, _UPSERT_ATTEMPTS + 1):
        try:
            saved = [_upsert_one(db, p) for p in payloads]
            db.commit()
            break
        except IntegrityError as exc:
            # Race condition: another request inserted the same id first.
            db.rollback()
            if attempt == _UPSERT_ATTEMPTS:
                logger.error("Event batch upsert failed after retry: %s", exc)
                raise PersistenceError("Could not save event batch.", operation="upsert_events") from exc
            logger.info("Event batch hit a concurrent insert; retrying as update")
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Event batch upsert rolled back: %s", exc)
            raise PersistenceError("Could not save event batch.", operation="upsert_events") from exc

    # Same id twice in a batch → one row, reported once.
    unique: dict[int, BehaviorEvent] = {}
    for ev in saved:
        db.refresh(ev)
        unique[ev.id] = ev
    logger.info("Upserted %d event(s) from a batch of %d", len(unique), len(payloads))
    return list(unique.values())


# ---------------------------------------------------------------------------
# Public — listing
# ---------------------------------------------------------------------------

def list_events(
    db: Session,
    limit: int = 50,
    from_: Optional[datetime] = None,
    to: Optional[datetime] = None,
    valence: Optional[str] = None,
    tag: Optional[str] = None,
) -> list[BehaviorEvent]:
    """Return events newest-first (by occurred_at), optionally filtered."""
    if from_ is not None and to is not None and as_utc(from_) > as_utc(to):
        raise InvalidFilterError("`from` must not be after `to`.", field="from")

    q = db.query(BehaviorEvent).options(selectinload(BehaviorEvent.tags))
    if from_ is not None:
        q = q.filter(BehaviorEvent.occurred_at >= as_utc(from_))
    if to is not None:
        q = q.filter(BehaviorEvent.occurred_at <= as_utc(to))
    if valence:
        q = q.filter(BehaviorEvent.valence == Valence(valence))
    if tag:
        q = q.join(EventTag, EventTag.event_id == BehaviorEvent.id).filter(
            EventTag.tag == tag.strip().lower()
        )
    return (
        q.order_by(BehaviorEvent.occurred_at.desc(), BehaviorEvent.id.desc())
        .limit(limit)
        .all()
    )
