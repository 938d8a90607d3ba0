"""
Database connection and session management.

Provides the process-wide engine and session factory, plus helpers to
build isolated ones (tests, one-off tools).
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Callable, ContextManager, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tendersync.core.config.models import DEFAULT_DATABASE_URL

from .models import Base

# A zero-arg callable yielding a transactional session
SessionScope = Callable[[], ContextManager[Session]]


# =============================================================================
# Global Engine References
# =============================================================================

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


# =============================================================================
# SQLite Configuration
# =============================================================================


def _configure_sqlite(engine: Engine) -> None:
    """Configure SQLite for better concurrency between sync and readers.

    Enables:
    - WAL mode so readers are not blocked by an in-flight upsert
    - Busy timeout instead of immediate "database is locked"
    """

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


def normalize_url(url: str) -> str:
    """Map the ``postgres://`` alias to SQLAlchemy's dialect name."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


# =============================================================================
# Engine Creation
# =============================================================================


def create_db_engine(
    url: str = DEFAULT_DATABASE_URL,
    echo: bool = False,
    pool_size: int = 5,
) -> Engine:
    """Create a new engine (not cached).

    Args:
        url: SQLAlchemy database URL
        echo: Whether to log SQL statements
        pool_size: Connection pool size (ignored for SQLite)
    """
    url = normalize_url(url)

    if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
        db_path = url.replace("sqlite:///", "")
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        _configure_sqlite(engine)
        return engine

    return create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=10,
        pool_pre_ping=True,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


def get_engine(
    url: str = DEFAULT_DATABASE_URL,
    echo: bool = False,
    pool_size: int = 5,
) -> Engine:
    """Get or create the process-wide database engine."""
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    _engine = create_db_engine(url, echo=echo, pool_size=pool_size)
    _session_factory = create_session_factory(_engine)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Session factory bound to the process-wide engine."""
    if _session_factory is None:
        get_engine()

    assert _session_factory is not None
    return _session_factory


# =============================================================================
# Session Management
# =============================================================================


def session_scope(factory: sessionmaker[Session]) -> SessionScope:
    """Build a transactional scope bound to ``factory``.

    Usage:
        scope = session_scope(factory)
        with scope() as session:
            ...
    """

    @contextmanager
    def scope() -> Generator[Session, None, None]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a session on the process-wide engine.

    Usage:
        with get_session() as session:
            session.execute(...)
    """
    with session_scope(get_session_factory())() as session:
        yield session


# =============================================================================
# Database Initialization
# =============================================================================


def init_db(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> None:
    """Create all tables if they don't exist. Prefer Alembic in production."""
    engine = get_engine(url, echo=echo)
    Base.metadata.create_all(bind=engine)


def drop_db(url: str = DEFAULT_DATABASE_URL) -> None:
    """Drop all database tables.

    WARNING: This will delete all data!
    """
    engine = get_engine(url)
    Base.metadata.drop_all(bind=engine)


def dispose_engines() -> None:
    """Dispose of the process-wide engine. Call on shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
