"""
APScheduler integration for TenderSync.

Runs the sync on a fixed interval or crontab in the foreground. Overlap
with a manual trigger is resolved by the run tracker: a tick that finds
a sync already running is skipped.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from tendersync.core.config.models import AppConfig, SchedulerConfig
from tendersync.core.errors import AlreadyRunningError
from tendersync.core.logging import get_logger
from tendersync.core.orchestrator.runner import SyncResult, SyncRunner

logger = get_logger("scheduler")

JOB_ID = "tendersync:sync"


def build_trigger(config: SchedulerConfig) -> CronTrigger | IntervalTrigger:
    """Convert scheduler config to an APScheduler trigger."""
    jitter = int(timedelta(minutes=config.jitter_minutes).total_seconds()) or None

    if config.cron_expression:
        trigger = CronTrigger.from_crontab(config.cron_expression, timezone=config.timezone)
        trigger.jitter = jitter
        return trigger

    return IntervalTrigger(hours=config.interval_hours, timezone=config.timezone, jitter=jitter)


class SchedulerService:
    """Periodic re-sync in the foreground."""

    def __init__(self, config: AppConfig, runner_factory: Callable[[], SyncRunner]) -> None:
        self.config = config
        self._runner_factory = runner_factory
        self._scheduler: AsyncIOScheduler | None = None
        self._stopped = asyncio.Event()

    async def execute_scheduled_sync(self) -> SyncResult | None:
        """Run one sync; a tick that collides with an active run is skipped."""
        runner = self._runner_factory()
        try:
            result = await runner.run()
        except AlreadyRunningError as e:
            logger.info("Sync already running (run %s), skipping scheduled tick", e.run_id)
            return None

        if result.ok:
            logger.info(
                "Scheduled sync finished: %d fetched, %d upserted",
                result.fetched,
                result.upserted,
            )
        else:
            logger.error("Scheduled sync ended %s: %s", result.status, result.error)
        return result

    async def start(self, run_immediately: bool = False) -> None:
        """Start scheduler in foreground mode (blocks until stop())."""
        if not self.config.scheduler.enabled:
            logger.warning("Scheduler is disabled in configuration")
            return

        trigger = build_trigger(self.config.scheduler)
        scheduler = AsyncIOScheduler(timezone=self.config.scheduler.timezone)
        scheduler.add_job(
            self.execute_scheduled_sync,
            trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler = scheduler
        self._stopped.clear()

        scheduler.start()
        logger.info("Scheduler started: %s", trigger)

        try:
            if run_immediately:
                await self.execute_scheduled_sync()
            await self._stopped.wait()
        finally:
            scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Scheduler stopped")

    def next_run_time(self):
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def stop(self) -> None:
        self._stopped.set()
