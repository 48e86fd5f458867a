"""
Behavior event request / response schemas.

Batch upload:  POST /events/batch  → EventBatchRequest → EventBatchResponse
Listing:       GET  /events        → EventListResponse
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.tags import normalize_tags
from app.models.behavior_event import Valence, EventSource


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class BehaviorEventIn(BaseModel):
    """One queued client event. `client_event_id` is the idempotency key."""
    model_config = ConfigDict(use_enum_values=True)

    client_event_id: Annotated[str, Field(
        min_length=1,
        max_length=64,
        description="Client-generated unique id (UUID). Re-sending it updates in place.",
        examples=["4f1c2f8e-9a53-4b8e-9d0f-2f5a1c7e6b10"],
    )]
    occurred_at: datetime = Field(description="When the behavior happened (ISO-8601).")
    valence: Valence = Field(description='"positive" or "negative".')
    intensity: int = Field(default=3, ge=1, le=5, description="1 (mild) to 5 (strong).")
    tags: list[Annotated[str, Field(max_length=64)]] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=2_000)
    context: dict[str, Any] = Field(default_factory=dict)
    source: Optional[EventSource] = Field(default=None, description='"manual" (default) or "import".')

    @field_validator("client_event_id", mode="before")
    @classmethod
    def strip_id(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("intensity", mode="before")
    @classmethod
    def default_intensity(cls, v):
        return 3 if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v):
        return normalize_tags(v)

    @field_validator("notes", mode="before")
    @classmethod
    def blank_notes_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("context", mode="before")
    @classmethod
    def null_context_to_empty(cls, v):
        return {} if v is None else v


class EventBatchRequest(BaseModel):
    """The whole local queue, sent in queue order."""
    events: Annotated[list[BehaviorEventIn], Field(
        min_length=1,
        description="Queued events. Each is upserted by client_event_id.",
    )]


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class BehaviorEventOut(BaseModel):
    id: int
    client_event_id: str
    occurred_at: str
    valence: str
    intensity: int
    tags: list[str]
    notes: Optional[str] = None
    context: dict[str, Any]
    source: str
    created_at: str


class EventBatchResponse(BaseModel):
    saved_count: int = Field(description="Events inserted or updated.")
    events: list[BehaviorEventOut]


class EventListResponse(BaseModel):
    events: list[BehaviorEventOut]
