"""Orchestrator - run gating, page loop, outcome recording."""

from .runner import SyncResult, SyncRunner, default_window, months_ago, run_sync

__all__ = [
    "SyncResult",
    "SyncRunner",
    "default_window",
    "months_ago",
    "run_sync",
]
