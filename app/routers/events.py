"""
Behavior events router.

POST /events/batch   — idempotent upload of the client's offline queue
GET  /events         — list events (newest first, filterable)
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InvalidEventBatchError
from app.db.base import get_db
from app.models.behavior_event import BehaviorEvent, Valence
from app.schemas.events import (
    BehaviorEventOut,
    EventBatchRequest,
    EventBatchResponse,
    EventListResponse,
)
from app.services.events import EventPayload, list_events, parse_context, upsert_events

router = APIRouter(prefix="/events", tags=["events"])


# ---------------------------------------------------------------------------
# Serialization helper
# ---------------------------------------------------------------------------

def _ev(v) -> str:
    return v.value if hasattr(v, "value") else str(v)


def _event_to_response(ev: BehaviorEvent) -> BehaviorEventOut:
    return BehaviorEventOut(
        id=ev.id,
        client_event_id=ev.client_event_id,
        occurred_at=ev.occurred_at.isoformat(),
        valence=_ev(ev.valence),
        intensity=ev.intensity,
        tags=[t.tag for t in ev.tags],
        notes=ev.notes,
        context=parse_context(ev.context_json),
        source=_ev(ev.source),
        created_at=ev.created_at.isoformat() if ev.created_at else "",
    )


# ---------------------------------------------------------------------------
# POST /events/batch
# ---------------------------------------------------------------------------

@router.post(
    "/batch",
    response_model=EventBatchResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload queued behavior events (idempotent)",
    responses={
        200: {"description": "Every event was inserted or updated."},
        400: {"description": "Malformed event, or batch larger than EVENT_BATCH_MAX."},
    },
)
def upload_batch(body: EventBatchRequest, db: Session = Depends(get_db)):
    """
    Upsert every queued event by `client_event_id`.

    Re-sending an id that already exists updates that row instead of creating
    a duplicate, so a client may retry a batch whose response it never saw.
    The batch is all-or-nothing.
    """
    if len(body.events) > settings.EVENT_BATCH_MAX:
        raise InvalidEventBatchError(
            f"Batch has {len(body.events)} events; the maximum is {settings.EVENT_BATCH_MAX}."
        )

    payloads = [
        EventPayload(
            client_event_id=e.client_event_id,
            occurred_at=e.occurred_at,
            valence=e.valence,
            intensity=e.intensity,
            tags=e.tags,
            notes=e.notes,
            context=e.context,
            source=e.source,
        )
        for e in body.events
    ]
    saved = upsert_events(db, payloads)
    return EventBatchResponse(
        saved_count=len(saved),
        events=[_event_to_response(ev) for ev in saved],
    )


# ---------------------------------------------------------------------------
# GET /events
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=EventListResponse,
    summary="List behavior events (newest first)",
)
def get_events(
    limit: int = Query(default=50, ge=1, le=200, description="Page size."),
    from_: Optional[datetime] = Query(default=None, alias="from", description="Inclusive lower bound on occurred_at."),
    to: Optional[datetime] = Query(default=None, description="Inclusive upper bound on occurred_at."),
    valence: Optional[Valence] = Query(default=None),
    tag: Optional[str] = Query(default=None, description="Only events carrying this tag."),
    db: Session = Depends(get_db),
):
    events = list_events(
        db,
        limit=limit,
        from_=from_,
        to=to,
        valence=valence.value if valence else None,
        tag=tag,
    )
    return EventListResponse(events=[_event_to_response(ev) for ev in events])
