"""goals, goal steps and the attempt log

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-03 00:00:00.000000

uq_goals_single_active is a partial unique index: at most one row may have
status = 'active'.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_GOAL_STATUSES = ("draft", "active", "paused", "achieved", "archived")
_STEP_STATUSES = ("pending", "in_progress", "done")
_OUTCOMES = ("pass", "needs_work")


def upgrade() -> None:
    # --- ENUM types ---
    sa.Enum(*_GOAL_STATUSES, name="goal_status_enum").create(op.get_bind(), checkfirst=True)
    sa.Enum(*_STEP_STATUSES, name="step_status_enum").create(op.get_bind(), checkfirst=True)
    sa.Enum(*_OUTCOMES, name="attempt_outcome_enum").create(op.get_bind(), checkfirst=True)

    # --- goals ---
    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Enum(
            *_GOAL_STATUSES, name="goal_status_enum", create_type=False,
        ), nullable=False, server_default="draft"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column("success_criteria", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_goals_id", "goals", ["id"])
    op.create_index(
        "uq_goals_single_active",
        "goals",
        ["status"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    # --- goal_steps ---
    op.create_table(
        "goal_steps",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("goal_id", sa.Integer(), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(120), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("success_criteria", sa.Text(), nullable=True),
        sa.Column("status", sa.Enum(
            *_STEP_STATUSES, name="step_status_enum", create_type=False,
        ), nullable=False, server_default="pending"),
        sa.Column("estimated_minutes", sa.Integer(), nullable=True),
        sa.Column("scheduled_for", sa.Date(), nullable=True),
        sa.Column("pass_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("needs_work_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("consecutive_passes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["goal_id"], ["goals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("goal_id", "step_order", name="uq_goal_steps_goal_order"),
    )
    op.create_index("ix_goal_steps_id", "goal_steps", ["id"])
    op.create_index("ix_goal_steps_goal_id", "goal_steps", ["goal_id"])

    # --- goal_attempts ---
    op.create_table(
        "goal_attempts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("step_id", sa.Integer(), nullable=False),
        sa.Column("outcome", sa.Enum(
            *_OUTCOMES, name="attempt_outcome_enum", create_type=False,
        ), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["step_id"], ["goal_steps.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_goal_attempts_step_order", "goal_attempts", ["step_id", "created_at", "id"]
    )


def downgrade() -> None:
    op.drop_index("ix_goal_attempts_step_order", table_name="goal_attempts")
    op.drop_table("goal_attempts")
    op.drop_index("ix_goal_steps_goal_id", table_name="goal_steps")
    op.drop_index("ix_goal_steps_id", table_name="goal_steps")
    op.drop_table("goal_steps")
    op.drop_index("uq_goals_single_active", table_name="goals")
    op.drop_index("ix_goals_id", table_name="goals")
    op.drop_table("goals")
    for name in ("attempt_outcome_enum", "step_status_enum", "goal_status_enum"):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
