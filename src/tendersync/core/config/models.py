"""
Pydantic configuration models for TenderSync.

These models provide type-safe configuration with validation for:
- Database connection
- Logging
- Upstream OCDS feed access
- Sync window and batching
- Periodic re-sync scheduling
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


DEFAULT_DATABASE_URL = "sqlite:///data/tendersync.db"
DEFAULT_UPSTREAM_URL = "https://ocds-api.etenders.gov.za/api/OCDSReleases"

# Largest page the upstream API will serve
UPSTREAM_MAX_PAGE_SIZE = 1000


# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default=DEFAULT_DATABASE_URL,
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging)",
    )
    pool_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Connection pool size",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=Path("logs/tendersync.log"),
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )

    @field_validator("level")
    @classmethod
    def level_is_known(cls, v: str) -> str:
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v.upper()


# =============================================================================
# Upstream Configuration
# =============================================================================


class UpstreamConfig(BaseModel):
    """Upstream OCDS release API settings."""

    base_url: str = Field(
        default=DEFAULT_UPSTREAM_URL,
        description="OCDS releases endpoint",
    )
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Per-request timeout; None leaves the fetch unbounded",
    )
    max_page_size: int = Field(
        default=UPSTREAM_MAX_PAGE_SIZE,
        ge=1,
        le=UPSTREAM_MAX_PAGE_SIZE,
        description="Page size ceiling enforced by the upstream API",
    )
    max_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Attempts per page on transport failures (1 = no retry)",
    )


# =============================================================================
# Sync Configuration
# =============================================================================


class SyncConfig(BaseModel):
    """Ingestion window and batching settings."""

    target_total: int = Field(
        default=10_000,
        ge=1,
        description="Maximum releases fetched in a single run",
    )
    window_months: int = Field(
        default=6,
        ge=1,
        le=120,
        description="Trailing window of release dates to request",
    )
    chunk_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Records per upsert statement",
    )
    home_currency: str = Field(
        default="ZAR",
        min_length=3,
        max_length=3,
        description="Currency used when a release omits one",
    )


# =============================================================================
# Scheduler Configuration
# =============================================================================


class SchedulerConfig(BaseModel):
    """Periodic re-sync settings."""

    enabled: bool = Field(
        default=True,
        description="Master scheduler enable/disable",
    )
    interval_hours: float = Field(
        default=6.0,
        gt=0,
        description="Hours between syncs when no cron expression is set",
    )
    cron_expression: str | None = Field(
        default=None,
        description="Crontab expression (overrides interval_hours)",
    )
    timezone: str = Field(
        default="UTC",
        description="Timezone for cron schedules",
    )
    jitter_minutes: int = Field(
        default=0,
        ge=0,
        le=60,
        description="Random jitter window in minutes",
    )


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from app.yaml.
    """

    data_dir: Path = Field(
        default=Path("data"),
        description="Data storage directory",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

        if self.logging.file:
            self.logging.file.parent.mkdir(parents=True, exist_ok=True)
