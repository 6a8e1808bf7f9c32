"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-01-20

Creates the imported events table (events_base) and the per-user
override table (user_event_overrides) used by status sync.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- events_base ---
    op.create_table(
        "events_base",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("all_day", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("ritmos", sa.String(255), nullable=True),
        sa.Column("tamanho_publico", sa.String(100), nullable=True),
        sa.Column("lgbt", sa.String(50), nullable=True),
    )
    op.create_index("ix_events_base_starts_at", "events_base", ["starts_at"])

    # --- user_event_overrides ---
    op.create_table(
        "user_event_overrides",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(36), nullable=False),
        sa.Column("base_event_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("hidden", sa.Boolean, nullable=True, server_default="0"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("owner_id", "base_event_id", name="uq_user_event_overrides_owner_event"),
    )
    op.create_index("ix_user_event_overrides_owner_id", "user_event_overrides", ["owner_id"])


def downgrade() -> None:
    op.drop_index("ix_user_event_overrides_owner_id", table_name="user_event_overrides")
    op.drop_table("user_event_overrides")
    op.drop_index("ix_events_base_starts_at", table_name="events_base")
    op.drop_table("events_base")
