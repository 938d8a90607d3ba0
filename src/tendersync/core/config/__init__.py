"""Configuration loading and validation."""

from .loader import ConfigError, load_app_config, validate_config_file
from .models import (
    AppConfig,
    DatabaseConfig,
    LoggingConfig,
    SchedulerConfig,
    SyncConfig,
    UpstreamConfig,
    UPSTREAM_MAX_PAGE_SIZE,
)

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "SyncConfig",
    "UpstreamConfig",
    "UPSTREAM_MAX_PAGE_SIZE",
    "ConfigError",
    "load_app_config",
    "validate_config_file",
]
