"""
Interface for the display/query layer.

Thin functions over the orchestrator and repositories that return plain
dicts ready to be serialized. All of them default to the process-wide
database; tests and embedding applications pass their own session factory.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any

from tendersync.core.config.models import AppConfig
from tendersync.core.orchestrator.runner import FetcherFactory, SyncResult, SyncRunner
from tendersync.persistence.db import get_session_factory, session_scope
from tendersync.persistence.models import SyncRun
from tendersync.persistence.repo import DEFAULT_SORT, SyncRunRepository, TenderRepository

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


def run_summary(run: SyncRun) -> dict[str, Any]:
    return {
        "id": run.id,
        "status": run.status,
        "startedAt": _iso(run.started_at),
        "completedAt": _iso(run.completed_at),
        "tendersFetched": run.tenders_fetched,
        "tendersUpserted": run.tenders_upserted,
        "dateFrom": run.date_from,
        "dateTo": run.date_to,
        "durationMs": run.duration_ms,
        "error": run.error_message,
    }


async def trigger_sync(
    *,
    session_factory: "sessionmaker[Session] | None" = None,
    config: AppConfig | None = None,
    fetcher_factory: FetcherFactory | None = None,
    date_from: date | str | None = None,
    date_to: date | str | None = None,
) -> SyncResult:
    """Run one sync.

    Raises:
        AlreadyRunningError: If a sync is already in progress
        TrackerError: If the run table cannot be read or the run row created
    """
    runner = SyncRunner(
        session_factory or get_session_factory(),
        fetcher_factory=fetcher_factory,
        config=config,
    )
    return await runner.run(date_from, date_to)


def get_sync_status(session_factory: "sessionmaker[Session] | None" = None) -> dict[str, Any]:
    """Tender count, whether a sync is active, and the latest run."""
    with session_scope(session_factory or get_session_factory())() as session:
        tracker = SyncRunRepository(session)
        latest = tracker.latest()
        return {
            "tenderCount": TenderRepository(session).count(),
            "isRunning": tracker.is_running(),
            "lastSync": run_summary(latest) if latest else None,
        }


def search_tenders(
    keyword: str | None = None,
    province: str | None = None,
    status: str | None = None,
    sort_by: str = DEFAULT_SORT,
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
    *,
    session_factory: "sessionmaker[Session] | None" = None,
) -> dict[str, Any]:
    """Paged, filtered tender list with pagination metadata."""
    with session_scope(session_factory or get_session_factory())() as session:
        result = TenderRepository(session).search(
            keyword=keyword,
            province=province,
            status=status,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=limit,
        )
        return result.to_dict()


def get_tender_detail(
    ocid: str,
    *,
    session_factory: "sessionmaker[Session] | None" = None,
) -> dict[str, Any] | None:
    """Original release document for ``ocid``, or None if unknown."""
    with session_scope(session_factory or get_session_factory())() as session:
        return TenderRepository(session).get_raw_payload(ocid)


def get_tender_stats(session_factory: "sessionmaker[Session] | None" = None) -> dict[str, Any]:
    with session_scope(session_factory or get_session_factory())() as session:
        return TenderRepository(session).stats().to_dict()
