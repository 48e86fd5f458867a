"""daily goal suggestion cache and ai_runs audit table

Revision ID: 0003
Revises: 0002
Create Date: 2026-10-06 00:00:00.000000

goal_suggestions keeps one row per calendar day. ai_runs records every
step-generation call, cloud or fallback.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0003"
down_revision: Union[str, None] = "0002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- goal_suggestions ---
    op.create_table(
        "goal_suggestions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("goal_id", sa.Integer(), nullable=True),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("notice", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["goal_id"], ["goals.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_goal_suggestions_id", "goal_suggestions", ["id"])
    op.create_index("ix_goal_suggestions_day", "goal_suggestions", ["day"], unique=True)

    # --- ai_runs ---
    op.create_table(
        "ai_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("goal_id", sa.Integer(), nullable=True),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("model", sa.String(64), nullable=False),
        sa.Column("purpose", sa.String(32), nullable=False),
        sa.Column("input_summary", sa.Text(), nullable=True),
        sa.Column("request_payload", sa.Text(), nullable=True),
        sa.Column("response_payload", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="queued"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["goal_id"], ["goals.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_runs_id", "ai_runs", ["id"])
    op.create_index("ix_ai_runs_goal_id", "ai_runs", ["goal_id"])


def downgrade() -> None:
    op.drop_index("ix_ai_runs_goal_id", table_name="ai_runs")
    op.drop_index("ix_ai_runs_id", table_name="ai_runs")
    op.drop_table("ai_runs")
    op.drop_index("ix_goal_suggestions_day", table_name="goal_suggestions")
    op.drop_index("ix_goal_suggestions_id", table_name="goal_suggestions")
    op.drop_table("goal_suggestions")
