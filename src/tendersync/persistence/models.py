"""
SQLAlchemy ORM models for TenderSync.

Defines the database schema:
- Tenders: one flattened row per OCDS release, keyed by ocid
- SyncRuns: append-only history of sync attempts
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus:
    """Sync run states. ``running`` is the only non-terminal state."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    TERMINAL = frozenset({SUCCESS, ERROR, CANCELLED})


# JSONB on PostgreSQL, plain JSON elsewhere
PayloadType = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# Base Class
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
    }


# =============================================================================
# Tender Model
# =============================================================================


class Tender(Base):
    """Flattened procurement release. Last write wins on ``ocid``."""

    __tablename__ = "tenders"

    # Identity
    ocid: Mapped[str] = mapped_column(String(200), primary_key=True)
    release_id: Mapped[str] = mapped_column(Text, nullable=False)
    tender_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Descriptive
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    category: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    province: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    special_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)
    procurement_method: Mapped[str | None] = mapped_column(Text, nullable=True)
    procurement_method_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    main_procurement_category: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Dates
    release_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    tender_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    tender_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    # Value
    estimated_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="ZAR")

    # Buyer / procuring entity
    buyer_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    buyer_name: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    procuring_entity_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    procuring_entity_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Contact
    contact_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Briefing session
    briefing_is_session: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    briefing_compulsory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    briefing_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    briefing_venue: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Aggregates
    document_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    award_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_award_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Original release document
    raw_payload: Mapped[dict[str, Any]] = mapped_column(PayloadType, nullable=False)

    # Bookkeeping
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Tender(ocid='{self.ocid}', title='{self.title[:50] if self.title else ''}')>"


# Columns returned by list views (everything except the raw document)
TENDER_SUMMARY_COLUMNS = tuple(
    c.name for c in Tender.__table__.columns if c.name not in {"raw_payload", "created_at", "updated_at"}
)


# =============================================================================
# Sync Run Model
# =============================================================================


class SyncRun(Base):
    """One attempt to synchronize the store with the upstream feed.

    The partial unique index admits at most one ``running`` row, so
    concurrent triggers cannot both start a run.
    """

    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RunStatus.RUNNING)

    # Timing
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Requested window (YYYY-MM-DD)
    date_from: Mapped[str | None] = mapped_column(String(10), nullable=True)
    date_to: Mapped[str | None] = mapped_column(String(10), nullable=True)

    # Counters
    tenders_fetched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tenders_upserted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_sync_runs_status", "status"),
        Index("ix_sync_runs_started_at", "started_at"),
        Index(
            "uq_sync_runs_single_running",
            "status",
            unique=True,
            sqlite_where=text("status = 'running'"),
            postgresql_where=text("status = 'running'"),
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in RunStatus.TERMINAL

    def __repr__(self) -> str:
        return f"<SyncRun(id={self.id}, status='{self.status}')>"
