"""Scheduler service - APScheduler integration."""

from .service import SchedulerService, build_trigger

__all__ = [
    "SchedulerService",
    "build_trigger",
]
