"""Database persistence layer."""

from .db import (
    SessionScope,
    create_db_engine,
    create_session_factory,
    dispose_engines,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    session_scope,
)
from .models import Base, RunStatus, SyncRun, Tender
from .repo import SyncRunRepository, TenderPage, TenderRepository, TenderStats, tender_summary

__all__ = [
    "SessionScope",
    "create_db_engine",
    "create_session_factory",
    "dispose_engines",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "session_scope",
    "Base",
    "RunStatus",
    "SyncRun",
    "Tender",
    "SyncRunRepository",
    "TenderPage",
    "TenderRepository",
    "TenderStats",
    "tender_summary",
]
