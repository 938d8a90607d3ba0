"""Initial schema

Revision ID: 001
Revises:
Create Date: 2024-06-01 00:00:00.000000

"""
from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create initial database schema."""

    payload_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

    # Tenders table
    op.create_table(
        "tenders",
        sa.Column("ocid", sa.String(length=200), nullable=False),
        sa.Column("release_id", sa.Text(), nullable=False),
        sa.Column("tender_id", sa.Text(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("province", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("delivery_location", sa.Text(), nullable=True),
        sa.Column("special_conditions", sa.Text(), nullable=True),
        sa.Column("procurement_method", sa.Text(), nullable=True),
        sa.Column("procurement_method_details", sa.Text(), nullable=True),
        sa.Column("main_procurement_category", sa.Text(), nullable=True),
        sa.Column("release_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tender_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tender_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("currency", sa.Text(), nullable=False, server_default="ZAR"),
        sa.Column("buyer_id", sa.Text(), nullable=True),
        sa.Column("buyer_name", sa.Text(), nullable=True),
        sa.Column("procuring_entity_id", sa.Text(), nullable=True),
        sa.Column("procuring_entity_name", sa.Text(), nullable=True),
        sa.Column("contact_name", sa.Text(), nullable=True),
        sa.Column("contact_email", sa.Text(), nullable=True),
        sa.Column("contact_phone", sa.Text(), nullable=True),
        sa.Column("briefing_is_session", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("briefing_compulsory", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("briefing_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("briefing_venue", sa.Text(), nullable=True),
        sa.Column("document_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("award_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_award_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("raw_payload", payload_type, nullable=False),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("ocid"),
    )
    op.create_index("ix_tenders_status", "tenders", ["status"])
    op.create_index("ix_tenders_category", "tenders", ["category"])
    op.create_index("ix_tenders_province", "tenders", ["province"])
    op.create_index("ix_tenders_release_date", "tenders", ["release_date"])
    op.create_index("ix_tenders_tender_period_start", "tenders", ["tender_period_start"])
    op.create_index("ix_tenders_tender_period_end", "tenders", ["tender_period_end"])
    op.create_index("ix_tenders_buyer_name", "tenders", ["buyer_name"])
    op.create_index("ix_tenders_synced_at", "tenders", ["synced_at"])

    # Sync runs table
    op.create_table(
        "sync_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="running"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("date_from", sa.String(length=10), nullable=True),
        sa.Column("date_to", sa.String(length=10), nullable=True),
        sa.Column("tenders_fetched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tenders_upserted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sync_runs_status", "sync_runs", ["status"])
    op.create_index("ix_sync_runs_started_at", "sync_runs", ["started_at"])
    op.create_index(
        "uq_sync_runs_single_running",
        "sync_runs",
        ["status"],
        unique=True,
        sqlite_where=sa.text("status = 'running'"),
        postgresql_where=sa.text("status = 'running'"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("uq_sync_runs_single_running", table_name="sync_runs")
    op.drop_index("ix_sync_runs_started_at", table_name="sync_runs")
    op.drop_index("ix_sync_runs_status", table_name="sync_runs")
    op.drop_table("sync_runs")

    for column in (
        "synced_at",
        "buyer_name",
        "tender_period_end",
        "tender_period_start",
        "release_date",
        "province",
        "category",
        "status",
    ):
        op.drop_index(f"ix_tenders_{column}", table_name="tenders")
    op.drop_table("tenders")
