"""behavior events and tags

Revision ID: 0001
Revises:
Create Date: 2026-10-01 00:00:00.000000

client_event_id is unique: re-uploads from the offline queue update in place.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- ENUM types ---
    valence_enum = sa.Enum("positive", "negative", name="behavior_valence_enum")
    valence_enum.create(op.get_bind(), checkfirst=True)

    source_enum = sa.Enum("manual", "import", name="event_source_enum")
    source_enum.create(op.get_bind(), checkfirst=True)

    # --- behavior_events ---
    op.create_table(
        "behavior_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_event_id", sa.String(64), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valence", sa.Enum(
            "positive", "negative", name="behavior_valence_enum", create_type=False,
        ), nullable=False),
        sa.Column("intensity", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("context", sa.Text(), nullable=True,
                  comment="JSON-encoded free-form key/value map"),
        sa.Column("source", sa.Enum(
            "manual", "import", name="event_source_enum", create_type=False,
        ), nullable=False, server_default="manual"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("client_event_id", name="uq_behavior_events_client_event_id"),
    )
    op.create_index("ix_behavior_events_id", "behavior_events", ["id"])
    op.create_index("ix_behavior_events_occurred_at", "behavior_events", ["occurred_at"])
    op.create_index("ix_behavior_events_valence", "behavior_events", ["valence"])

    # --- event_tags ---
    op.create_table(
        "event_tags",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("tag", sa.String(64), nullable=False),
        sa.ForeignKeyConstraint(["event_id"], ["behavior_events.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", "tag", name="uq_event_tags_event_tag"),
    )
    op.create_index("ix_event_tags_event_id", "event_tags", ["event_id"])
    op.create_index("ix_event_tags_tag", "event_tags", ["tag"])


def downgrade() -> None:
    op.drop_index("ix_event_tags_tag", table_name="event_tags")
    op.drop_index("ix_event_tags_event_id", table_name="event_tags")
    op.drop_table("event_tags")
    op.drop_index("ix_behavior_events_valence", table_name="behavior_events")
    op.drop_index("ix_behavior_events_occurred_at", table_name="behavior_events")
    op.drop_index("ix_behavior_events_id", table_name="behavior_events")
    op.drop_table("behavior_events")
    sa.Enum(name="event_source_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="behavior_valence_enum").drop(op.get_bind(), checkfirst=True)
