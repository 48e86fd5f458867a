"""
GoalSuggestion — the day's highlighted goal, cached one row per day.

source values:
  "ai"                    — picked by the external recommender
  "fallback_last_active"  — the currently active goal
  "fallback_recent"       — most recently updated non-terminal goal

Unique on `day`; writers upsert, so racing requests collapse to one row.
"""
from datetime import datetime, date

from sqlalchemy import Integer, String, Text, DateTime, Date, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class SuggestionSource:
    AI = "ai"
    FALLBACK_LAST_ACTIVE = "fallback_last_active"
    FALLBACK_RECENT = "fallback_recent"


class GoalSuggestion(Base):
    __tablename__ = "goal_suggestions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    day: Mapped[date] = mapped_column(Date, nullable=False, unique=True, index=True)
    goal_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("goals.id", ondelete="SET NULL"), nullable=True
    )
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    notice: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
