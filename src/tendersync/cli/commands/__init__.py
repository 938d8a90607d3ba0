"""CLI command modules."""

from . import db, schedule, sync, tenders

__all__ = [
    "db",
    "schedule",
    "sync",
    "tenders",
]
