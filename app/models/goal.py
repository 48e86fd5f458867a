"""
Goal — a training goal broken into ordered GoalSteps.

Invariant: at most one goal has status=active. The goal service enforces it
transactionally (demote, flush, promote); the partial unique index
`uq_goals_single_active` is the storage-level backstop.
"""
import enum
from datetime import datetime, date

from sqlalchemy import Integer, String, Text, DateTime, Date, Enum, Index, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class GoalStatus(str, enum.Enum):
    draft = "draft"
    active = "active"
    paused = "paused"
    achieved = "achieved"
    archived = "archived"


# Goals in these states are never suggested or re-surfaced.
TERMINAL_GOAL_STATUSES = (GoalStatus.achieved, GoalStatus.archived)


class Goal(Base):
    __tablename__ = "goals"
    __table_args__ = (
        Index(
            "uq_goals_single_active",
            "status",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[GoalStatus] = mapped_column(
        Enum(GoalStatus, name="goal_status_enum"),
        nullable=False,
        default=GoalStatus.draft,
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    target_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    success_criteria: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    steps: Mapped[list["GoalStep"]] = relationship(  # noqa: F821
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalStep.step_order",
    )
