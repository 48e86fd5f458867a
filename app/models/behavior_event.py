"""
BehaviorEvent — one logged dog behavior (positive / negative).

Created on the client, keyed by `client_event_id` (the idempotency token).
Re-uploading the same client_event_id updates the row in place. The
unique constraint makes that an upsert, never a duplicate.

Tags live in `event_tags` (one row per lowercase tag) so GET /events can
filter on a single tag with a join.

context: JSON-encoded dict stored as Text.
"""
import enum
from datetime import datetime

from sqlalchemy import (
    Integer, String, Text, DateTime, Enum, ForeignKey, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class Valence(str, enum.Enum):
    positive = "positive"
    negative = "negative"


class EventSource(str, enum.Enum):
    manual = "manual"
    import_ = "import"


class BehaviorEvent(Base):
    __tablename__ = "behavior_events"
    __table_args__ = (
        UniqueConstraint("client_event_id", name="uq_behavior_events_client_event_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    client_event_id: Mapped[str] = mapped_column(String(64), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    valence: Mapped[Valence] = mapped_column(
        Enum(Valence, name="behavior_valence_enum"), nullable=False, index=True
    )
    intensity: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    context_json: Mapped[str | None] = mapped_column(
        "context", Text, nullable=True,
        comment="JSON-encoded free-form key/value map",
    )
    source: Mapped[EventSource] = mapped_column(
        Enum(EventSource, name="event_source_enum",
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=EventSource.manual,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    tags: Mapped[list["EventTag"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventTag.tag",
    )


class EventTag(Base):
    __tablename__ = "event_tags"
    __table_args__ = (
        UniqueConstraint("event_id", "tag", name="uq_event_tags_event_tag"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("behavior_events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    event: Mapped[BehaviorEvent] = relationship(back_populates="tags")
