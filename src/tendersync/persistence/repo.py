"""
Repository pattern for database operations.

- TenderRepository: batch upsert by natural key plus the read-only
  queries the browse/search layer needs
- SyncRunRepository: sync run lifecycle and single-flight bookkeeping
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterable, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tendersync.core.errors import AlreadyRunningError, TrackerError, UpsertError
from tendersync.core.logging import get_logger

from .models import TENDER_SUMMARY_COLUMNS, RunStatus, SyncRun, Tender, utcnow

if TYPE_CHECKING:
    from tendersync.core.transform import NormalizedRecord


logger = get_logger("persistence")

DEFAULT_CHUNK_SIZE = 50

# Every column rewritten when an existing ocid is seen again
UPSERT_COLUMNS = tuple(
    c.name for c in Tender.__table__.columns if c.name not in {"ocid", "created_at"}
)

SORT_COLUMNS = {
    "release_date": Tender.release_date,
    "title": Tender.title,
    "tender_period_end": Tender.tender_period_end,
    "tender_period_start": Tender.tender_period_start,
    "buyer_name": Tender.buyer_name,
    "total_award_value": Tender.total_award_value,
    "status": Tender.status,
    "province": Tender.province,
    "synced_at": Tender.synced_at,
}
DEFAULT_SORT = "release_date"

KEYWORD_COLUMNS = (
    Tender.title,
    Tender.description,
    Tender.buyer_name,
    Tender.procuring_entity_name,
    Tender.category,
    Tender.province,
)

# Filter values the browse UI sends to mean "no filter"
ALL_PROVINCES = "all provinces"
ALL_STATUSES = "all statuses"

MAX_PAGE_LIMIT = 100


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _serialize_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return _as_utc(value).isoformat()
    return value


def tender_summary(tender: Tender) -> dict[str, Any]:
    """List-view projection of a tender (no raw payload)."""
    return {name: _serialize_value(getattr(tender, name)) for name in TENDER_SUMMARY_COLUMNS}


# =============================================================================
# Tender Repository
# =============================================================================


@dataclass
class TenderPage:
    """One page of search results."""

    items: Sequence[Tender]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenders": [tender_summary(t) for t in self.items],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
                "hasNext": self.has_next,
                "hasPrev": self.has_prev,
            },
        }


@dataclass
class TenderStats:
    """Aggregate counts for the dashboard."""

    total: int = 0
    by_status: list[tuple[str, int]] = field(default_factory=list)
    by_province: list[tuple[str, int]] = field(default_factory=list)
    by_category: list[tuple[str, int]] = field(default_factory=list)
    unique_entities: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "byStatus": [{"status": s, "count": c} for s, c in self.by_status],
            "byProvince": [{"province": p, "count": c} for p, c in self.by_province],
            "byCategory": [{"category": k, "count": c} for k, c in self.by_category],
            "uniqueEntities": self.unique_entities,
        }


class TenderRepository:
    """Repository for Tender rows: batch upsert and read queries."""

    def __init__(self, session: Session):
        self.session = session

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite_insert
        if dialect == "postgresql":
            return pg_insert
        raise UpsertError(f"Upsert not supported for dialect: {dialect}")

    def upsert_many(
        self,
        records: Iterable["NormalizedRecord"],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        synced_at: datetime | None = None,
    ) -> int:
        """Insert or overwrite records by ocid.

        Each chunk is one ``INSERT ... ON CONFLICT (ocid) DO UPDATE``
        statement committed on its own, so a chunk lands entirely or not
        at all. Records without an ocid are skipped; a repeated ocid in
        the same batch keeps its last occurrence.

        Args:
            records: Normalized records to write
            chunk_size: Records per statement
            synced_at: Timestamp stamped on every written row (default: now)

        Returns:
            Number of rows written

        Raises:
            UpsertError: When a chunk fails; ``written`` counts rows
                committed by earlier chunks
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        latest: dict[str, NormalizedRecord] = {}
        skipped = 0
        for record in records:
            if not record.has_identity:
                skipped += 1
                continue
            latest.pop(record.ocid, None)
            latest[record.ocid] = record

        if skipped:
            logger.warning("Skipped %d release(s) without an ocid", skipped)

        if not latest:
            return 0

        insert = self._insert()
        now = synced_at or utcnow()
        rows = [
            {**record.to_row(), "synced_at": now, "created_at": now, "updated_at": now}
            for record in latest.values()
        ]

        written = 0
        for start in range(0, len(rows), chunk_size):
            chunk = rows[start:start + chunk_size]
            stmt = insert(Tender).values(chunk)
            stmt = stmt.on_conflict_do_update(
                index_elements=[Tender.ocid],
                set_={name: stmt.excluded[name] for name in UPSERT_COLUMNS},
            )
            try:
                self.session.execute(stmt)
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                raise UpsertError(
                    f"Upsert failed for {len(chunk)} record(s) after {written} written: {e}",
                    written=written,
                    cause=e,
                ) from e
            written += len(chunk)

        return written

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def count(self) -> int:
        return self.session.execute(select(func.count()).select_from(Tender)).scalar_one()

    def get_by_ocid(self, ocid: str) -> Tender | None:
        return self.session.get(Tender, ocid)

    def get_raw_payload(self, ocid: str) -> dict[str, Any] | None:
        stmt = select(Tender.raw_payload).where(Tender.ocid == ocid)
        return self.session.execute(stmt).scalar_one_or_none()

    def search(
        self,
        keyword: str | None = None,
        province: str | None = None,
        status: str | None = None,
        sort_by: str = DEFAULT_SORT,
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> TenderPage:
        """Filter, sort and paginate tenders.

        Province and status match case-insensitively; the keyword matches
        any of title, description, buyer, procuring entity, category or
        province. Unknown sort keys fall back to release date.
        """
        page = max(1, page)
        limit = min(MAX_PAGE_LIMIT, max(1, limit))

        conditions = []
        if keyword and keyword.strip():
            term = keyword.strip()
            conditions.append(or_(*(col.icontains(term, autoescape=True) for col in KEYWORD_COLUMNS)))
        if province and province.strip().lower() != ALL_PROVINCES:
            conditions.append(func.lower(Tender.province) == province.strip().lower())
        if status and status.strip().lower() != ALL_STATUSES:
            conditions.append(func.lower(Tender.status) == status.strip().lower())

        where = and_(*conditions) if conditions else None

        count_stmt = select(func.count()).select_from(Tender)
        if where is not None:
            count_stmt = count_stmt.where(where)
        total = self.session.execute(count_stmt).scalar_one()

        column = SORT_COLUMNS.get(sort_by, SORT_COLUMNS[DEFAULT_SORT])
        ordering = column.asc() if sort_order.lower() == "asc" else column.desc()

        stmt = select(Tender)
        if where is not None:
            stmt = stmt.where(where)
        stmt = stmt.order_by(ordering.nulls_last(), Tender.ocid.asc())
        stmt = stmt.limit(limit).offset((page - 1) * limit)

        items = self.session.execute(stmt).scalars().all()
        return TenderPage(items=items, page=page, limit=limit, total=total)

    def _group_counts(self, column: Any, limit: int | None = None) -> list[tuple[str, int]]:
        count = func.count().label("count")
        stmt = (
            select(column, count)
            .where(column.is_not(None), column != "")
            .group_by(column)
            .order_by(count.desc(), column.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [(value, n) for value, n in self.session.execute(stmt).all()]

    def stats(self) -> TenderStats:
        """Totals by status, province and top categories."""
        unique_entities = self.session.execute(
            select(func.count(func.distinct(Tender.buyer_name))).where(
                Tender.buyer_name.is_not(None),
                Tender.buyer_name != "",
            )
        ).scalar_one()

        return TenderStats(
            total=self.count(),
            by_status=self._group_counts(Tender.status),
            by_province=self._group_counts(Tender.province),
            by_category=self._group_counts(Tender.category, limit=10),
            unique_entities=unique_entities,
        )


# =============================================================================
# Sync Run Repository
# =============================================================================


class SyncRunRepository:
    """Sync run tracker.

    Runs move ``running -> success | error | cancelled`` exactly once.
    Every transition is a conditional update on ``status = 'running'``,
    so a terminal run can never be reopened or finalized twice.
    """

    def __init__(self, session: Session, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self._clock = clock

    def get_by_id(self, run_id: int) -> SyncRun | None:
        return self.session.get(SyncRun, run_id)

    def get_running(self) -> SyncRun | None:
        stmt = (
            select(SyncRun)
            .where(SyncRun.status == RunStatus.RUNNING)
            .order_by(SyncRun.started_at.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def is_running(self) -> bool:
        """True iff at least one run is in ``running`` state."""
        stmt = select(func.count()).select_from(SyncRun).where(SyncRun.status == RunStatus.RUNNING)
        try:
            return self.session.execute(stmt).scalar_one() > 0
        except SQLAlchemyError as e:
            raise TrackerError(f"Could not read sync state: {e}", cause=e) from e

    def start(self, date_from: str | None, date_to: str | None) -> int:
        """Create a ``running`` row and return its id.

        Raises:
            AlreadyRunningError: If the store already holds a running row
            TrackerError: On any other store failure
        """
        run = SyncRun(
            status=RunStatus.RUNNING,
            started_at=self._clock(),
            date_from=date_from,
            date_to=date_to,
            tenders_fetched=0,
            tenders_upserted=0,
        )
        self.session.add(run)
        try:
            self.session.flush()
            run_id = run.id
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            active = self.get_running()
            raise AlreadyRunningError(
                f"A sync is already in progress (run {active.id})" if active else "A sync is already in progress",
                run_id=active.id if active else None,
            ) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TrackerError(f"Could not start sync run: {e}", cause=e) from e
        return run_id

    def _transition(self, run_id: int, **values: Any) -> None:
        stmt = (
            update(SyncRun)
            .where(SyncRun.id == run_id, SyncRun.status == RunStatus.RUNNING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise TrackerError(f"Could not update sync run {run_id}: {e}", run_id=run_id, cause=e) from e

        if result.rowcount == 0:
            raise TrackerError(f"Sync run {run_id} is not running", run_id=run_id)

    def record_progress(self, run_id: int, fetched: int, upserted: int) -> None:
        self._transition(run_id, tenders_fetched=fetched, tenders_upserted=upserted)

    def record_success(self, run_id: int, fetched: int, upserted: int, duration_ms: int) -> None:
        self._transition(
            run_id,
            status=RunStatus.SUCCESS,
            completed_at=self._clock(),
            tenders_fetched=fetched,
            tenders_upserted=upserted,
            duration_ms=duration_ms,
        )

    def record_failure(
        self,
        run_id: int,
        error_message: str,
        duration_ms: int,
        fetched: int = 0,
        upserted: int = 0,
    ) -> None:
        self._transition(
            run_id,
            status=RunStatus.ERROR,
            completed_at=self._clock(),
            error_message=error_message,
            tenders_fetched=fetched,
            tenders_upserted=upserted,
            duration_ms=duration_ms,
        )

    def record_cancelled(self, run_id: int, fetched: int, upserted: int, duration_ms: int) -> None:
        self._transition(
            run_id,
            status=RunStatus.CANCELLED,
            completed_at=self._clock(),
            tenders_fetched=fetched,
            tenders_upserted=upserted,
            duration_ms=duration_ms,
        )

    def latest(self) -> SyncRun | None:
        """Most recent run by start time."""
        stmt = select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(1)
        return self.session.execute(stmt).scalar_one_or_none()

    def history(self, limit: int = 20) -> Sequence[SyncRun]:
        stmt = select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(limit)
        return self.session.execute(stmt).scalars().all()

    def abandon_stale(self, older_than: timedelta) -> list[int]:
        """Fail ``running`` rows started before ``now - older_than``.

        A process killed mid-sync leaves its row running forever, which
        blocks every later trigger; this is the operator's way out.

        Returns:
            Ids of the runs that were closed
        """
        now = self._clock()
        cutoff = now - older_than
        stmt = select(SyncRun).where(
            SyncRun.status == RunStatus.RUNNING,
            SyncRun.started_at < cutoff,
        )
        stale = self.session.execute(stmt).scalars().all()

        closed: list[int] = []
        for run in stale:
            elapsed = now - _as_utc(run.started_at)
            try:
                self.record_failure(
                    run.id,
                    f"abandoned: no completion recorded within {older_than}",
                    duration_ms=int(elapsed.total_seconds() * 1000),
                    fetched=run.tenders_fetched,
                    upserted=run.tenders_upserted,
                )
            except TrackerError:
                logger.warning("Run %s finished while being abandoned", run.id)
                continue
            closed.append(run.id)

        return closed
