"""Shared CLI bootstrap: config, logging and database engine."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from tendersync.core.config import AppConfig, ConfigError, load_app_config
from tendersync.core.logging import setup_logging

err_console = Console(stderr=True)


def load_cli_config(path: Optional[Path] = None, *, connect: bool = True) -> AppConfig:
    """Load app config, configure logging and bind the process-wide engine.

    Exits with code 1 on an invalid configuration file.
    """
    try:
        config = load_app_config(path)
    except ConfigError as e:
        err_console.print(f"[red]Error loading config:[/red] {e}")
        if e.details:
            err_console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(1)

    config.ensure_directories()
    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console,
    )

    if connect:
        from tendersync.persistence.db import get_engine

        get_engine(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
        )

    return config


def format_timestamp(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "[dim]-[/dim]"
