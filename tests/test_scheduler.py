"""Tests for the periodic re-sync scheduler."""

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from conftest import FakeUpstream, make_page, make_release
from tendersync.core.config import AppConfig, SchedulerConfig
from tendersync.core.orchestrator import SyncRunner
from tendersync.core.scheduler import SchedulerService, build_trigger
from tendersync.persistence.repo import SyncRunRepository


def test_interval_trigger() -> None:
    trigger = build_trigger(SchedulerConfig(interval_hours=6, jitter_minutes=5))

    assert isinstance(trigger, IntervalTrigger)
    assert trigger.interval.total_seconds() == 6 * 3600
    assert trigger.jitter == 300


def test_cron_expression_overrides_interval() -> None:
    trigger = build_trigger(SchedulerConfig(cron_expression="15 6 * * 1-5", timezone="Africa/Johannesburg"))

    assert isinstance(trigger, CronTrigger)
    assert trigger.jitter is None


@pytest.mark.asyncio
async def test_scheduled_tick_runs_sync(session_factory) -> None:
    config = AppConfig()
    upstream = FakeUpstream([make_page([make_release()])])
    service = SchedulerService(
        config,
        lambda: SyncRunner(session_factory, fetcher_factory=upstream.fetcher, config=config),
    )

    result = await service.execute_scheduled_sync()

    assert result is not None
    assert result.ok
    assert result.fetched == 1


@pytest.mark.asyncio
async def test_scheduled_tick_skipped_while_running(session_factory) -> None:
    with session_factory() as session:
        SyncRunRepository(session).start(None, None)

    upstream = FakeUpstream([make_page([make_release()])])
    service = SchedulerService(
        AppConfig(),
        lambda: SyncRunner(session_factory, fetcher_factory=upstream.fetcher),
    )

    assert await service.execute_scheduled_sync() is None
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_disabled_scheduler_returns_immediately(session_factory) -> None:
    config = AppConfig.model_validate({"scheduler": {"enabled": False}})
    service = SchedulerService(config, lambda: SyncRunner(session_factory))

    await service.start()
    assert service.next_run_time() is None
