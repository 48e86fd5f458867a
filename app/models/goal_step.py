"""
GoalStep + GoalAttempt — the mastery-tracked units of a Goal.

goal_attempts is append-only (undo deletes the newest row) and is the
source of truth. The counters on goal_steps (pass_count, needs_work_count,
consecutive_passes) and `status` are a cached projection of it; see
app/services/step_mastery.py for the state machine.

Attempt order is (created_at, id): the autoincrement id breaks ties when two
attempts share a timestamp.
"""
import enum
from datetime import datetime, date

from sqlalchemy import (
    Integer, String, Text, Boolean, DateTime, Date, Enum, ForeignKey,
    UniqueConstraint, Index, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class StepStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    done = "done"


class AttemptOutcome(str, enum.Enum):
    pass_ = "pass"
    needs_work = "needs_work"


class GoalStep(Base):
    __tablename__ = "goal_steps"
    __table_args__ = (
        UniqueConstraint("goal_id", "step_order", name="uq_goal_steps_goal_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    goal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    success_criteria: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[StepStatus] = mapped_column(
        Enum(StepStatus, name="step_status_enum"),
        nullable=False,
        default=StepStatus.pending,
    )
    estimated_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scheduled_for: Mapped[date | None] = mapped_column(Date, nullable=True)
    pass_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    needs_work_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    consecutive_passes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ai_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    goal: Mapped["Goal"] = relationship(back_populates="steps")  # noqa: F821


class GoalAttempt(Base):
    __tablename__ = "goal_attempts"
    __table_args__ = (
        Index("ix_goal_attempts_step_order", "step_id", "created_at", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    step_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("goal_steps.id", ondelete="CASCADE"), nullable=False
    )
    outcome: Mapped[AttemptOutcome] = mapped_column(
        Enum(AttemptOutcome, name="attempt_outcome_enum",
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
