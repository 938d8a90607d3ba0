"""
Sync runner orchestrator.

Coordinates one sync run: gate -> fetch page -> transform -> upsert -> repeat,
recording progress and the final outcome on the run row.
"""

from __future__ import annotations

import asyncio
import calendar
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Callable

from tendersync.core.config.models import AppConfig
from tendersync.core.errors import AlreadyRunningError, TrackerError, UpsertError
from tendersync.core.fetch.client import UpstreamFetcher, format_day
from tendersync.core.logging import ContextualLogger, get_contextual_logger
from tendersync.core.transform import normalize_releases
from tendersync.persistence.models import RunStatus, utcnow
from tendersync.persistence.repo import SyncRunRepository, TenderRepository

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker


logger = get_contextual_logger("sync")

FetcherFactory = Callable[[], UpstreamFetcher]


@dataclass
class SyncResult:
    """Outcome of a sync run as reported to the caller."""

    status: str
    fetched: int = 0
    upserted: int = 0
    duration_ms: int = 0
    error: str | None = None
    run_id: int | None = None
    date_from: str | None = None
    date_to: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "status": self.status,
            "runId": self.run_id,
            "tendersFetched": self.fetched,
            "tendersUpserted": self.upserted,
            "durationMs": self.duration_ms,
            "dateFrom": self.date_from,
            "dateTo": self.date_to,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


def months_ago(day: date, months: int) -> date:
    """Same calendar day ``months`` earlier, clamped to the month's last day."""
    index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def default_window(today: date, window_months: int) -> tuple[str, str]:
    """Trailing window ending today, as YYYY-MM-DD bounds."""
    return format_day(months_ago(today, window_months)), format_day(today)


class SyncRunner:
    """Orchestrates a complete sync run.

    Pages are processed strictly in order: page N+1 is not requested
    until page N has been upserted, so the record cap is exact.
    """

    def __init__(
        self,
        session_factory: "sessionmaker[Session]",
        *,
        fetcher_factory: FetcherFactory | None = None,
        config: AppConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the sync runner.

        Args:
            session_factory: Source of database sessions
            fetcher_factory: Builds the upstream fetcher (default: from config)
            config: Application configuration (default: built-in defaults)
            clock: Current-time source for the window and run timestamps
        """
        self.config = config or AppConfig()
        self._session_factory = session_factory
        self._fetcher_factory = fetcher_factory or (
            lambda: UpstreamFetcher.from_config(self.config.upstream)
        )
        self._clock = clock

    def resolve_window(
        self,
        date_from: date | str | None = None,
        date_to: date | str | None = None,
    ) -> tuple[str, str]:
        default_from, default_to = default_window(self._clock().date(), self.config.sync.window_months)
        return (
            format_day(date_from) if date_from else default_from,
            format_day(date_to) if date_to else default_to,
        )

    async def run(
        self,
        date_from: date | str | None = None,
        date_to: date | str | None = None,
        *,
        target_total: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncResult:
        """Execute one sync run.

        Args:
            date_from: Start of the release window (default: window_months ago)
            date_to: End of the release window (default: today)
            target_total: Record cap for this run (overrides config)
            cancel_event: Checked between pages; when set the run is cancelled

        Returns:
            SyncResult with status success, error or cancelled

        Raises:
            AlreadyRunningError: If another run is active
            TrackerError: If the run table cannot be read or the run row created
        """
        window_from, window_to = self.resolve_window(date_from, date_to)
        cap = target_total if target_total is not None else self.config.sync.target_total

        session = self._session_factory()
        try:
            tracker = SyncRunRepository(session, clock=self._clock)
            tenders = TenderRepository(session)

            if tracker.is_running():
                active = tracker.get_running()
                raise AlreadyRunningError(run_id=active.id if active else None)

            run_id = tracker.start(window_from, window_to)
            log = logger.with_run(run_id)
            log.info(
                f"Sync started for {window_from} to {window_to} (cap {cap})",
                extra={"date_from": window_from, "date_to": window_to},
            )

            result = SyncResult(
                status=RunStatus.RUNNING,
                run_id=run_id,
                date_from=window_from,
                date_to=window_to,
            )
            started = time.perf_counter()

            try:
                cancelled = await self._execute(tracker, tenders, result, cap, log, cancel_event)
            except Exception as e:
                if isinstance(e, UpsertError):
                    result.upserted += e.written
                result.status = RunStatus.ERROR
                result.error = str(e)
                result.duration_ms = _elapsed_ms(started)
                log.exception(f"Sync failed after {result.fetched} fetched: {e}")
                self._finalize(
                    log,
                    tracker.record_failure,
                    run_id,
                    result.error,
                    result.duration_ms,
                    fetched=result.fetched,
                    upserted=result.upserted,
                )
                return result

            result.duration_ms = _elapsed_ms(started)

            if cancelled:
                result.status = RunStatus.CANCELLED
                log.warning(f"Sync cancelled after {result.fetched} fetched")
                self._finalize(
                    log,
                    tracker.record_cancelled,
                    run_id,
                    result.fetched,
                    result.upserted,
                    result.duration_ms,
                )
                return result

            result.status = RunStatus.SUCCESS
            log.info(
                f"Sync completed: {result.fetched} fetched, {result.upserted} upserted "
                f"in {result.duration_ms} ms"
            )
            self._finalize(
                log,
                tracker.record_success,
                run_id,
                result.fetched,
                result.upserted,
                result.duration_ms,
            )
            return result

        finally:
            session.close()

    async def _execute(
        self,
        tracker: SyncRunRepository,
        tenders: TenderRepository,
        result: SyncResult,
        cap: int,
        log: ContextualLogger,
        cancel_event: asyncio.Event | None,
    ) -> bool:
        """Run the page loop. Returns True if the run was cancelled."""
        assert result.run_id is not None
        sync = self.config.sync
        max_page_size = self.config.upstream.max_page_size
        page_number = 1

        async with self._fetcher_factory() as fetcher:
            while result.fetched < cap:
                if cancel_event is not None and cancel_event.is_set():
                    return True

                remaining = cap - result.fetched
                page = await fetcher.fetch_page(
                    page_number,
                    min(max_page_size, remaining),
                    result.date_from,
                    result.date_to,
                )

                releases = page.releases[:remaining]
                if not releases:
                    log.info(f"Page {page_number} empty, stopping", extra={"page": page_number})
                    break

                result.fetched += len(releases)
                records = normalize_releases(releases, sync.home_currency)
                result.upserted += tenders.upsert_many(
                    records,
                    chunk_size=sync.chunk_size,
                    synced_at=self._clock(),
                )

                try:
                    tracker.record_progress(result.run_id, result.fetched, result.upserted)
                except TrackerError as e:
                    log.warning(f"Could not record progress: {e}")

                log.info(
                    f"Page {page_number}: {len(releases)} releases, "
                    f"total {result.fetched}, next={page.has_next_page}",
                    extra={"page": page_number},
                )

                if not page.has_next_page:
                    break
                page_number += 1

        return False

    @staticmethod
    def _finalize(log: ContextualLogger, transition: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        try:
            transition(*args, **kwargs)
        except TrackerError as e:
            log.error(f"Could not record run outcome: {e}")


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


async def run_sync(
    config: AppConfig,
    *,
    date_from: date | str | None = None,
    date_to: date | str | None = None,
    target_total: int | None = None,
) -> SyncResult:
    """Convenience function to run one sync against the configured database.

    Args:
        config: Application configuration
        date_from: Start of the release window
        date_to: End of the release window
        target_total: Record cap for this run

    Returns:
        SyncResult with execution statistics
    """
    from tendersync.persistence.db import get_engine, get_session_factory

    get_engine(config.database.url, echo=config.database.echo, pool_size=config.database.pool_size)
    runner = SyncRunner(get_session_factory(), config=config)

    return await runner.run(date_from, date_to, target_total=target_total)
