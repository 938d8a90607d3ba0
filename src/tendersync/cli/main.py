"""
TenderSync CLI - Main entry point.

Keeps a local store of public procurement releases in sync with the
upstream OCDS feed, and lets you browse what was synced.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.traceback import install as install_rich_traceback

from tendersync import __app_name__, __version__

# Load environment variables from .env (if present)
load_dotenv()

# Install rich traceback for better error display
install_rich_traceback(show_locals=False, width=120)

console = Console()
err_console = Console(stderr=True)

# Create main app
app = typer.Typer(
    name=__app_name__,
    help="Procurement release sync and browser",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """TenderSync - OCDS procurement release sync."""


# =============================================================================
# Import and register subcommand modules
# =============================================================================

from .commands import db, schedule, sync, tenders  # noqa: E402

app.add_typer(sync.app, name="sync", help="Run and inspect upstream syncs")
app.add_typer(tenders.app, name="tenders", help="Browse synced tenders")
app.add_typer(schedule.app, name="schedule", help="Run periodic syncs")
app.add_typer(db.app, name="db", help="Database operations")


# =============================================================================
# Init Command
# =============================================================================


DEFAULT_APP_CONFIG = """\
# TenderSync Configuration

data_dir: data

# Database settings (DATABASE_URL in the environment overrides url)
database:
  url: ${DATABASE_URL:-sqlite:///data/tendersync.db}
  echo: false

# Logging settings
logging:
  level: INFO
  file: logs/tendersync.log
  json_format: true
  rich_console: true

# Upstream OCDS releases API
upstream:
  base_url: https://ocds-api.etenders.gov.za/api/OCDSReleases
  timeout_seconds: null
  max_page_size: 1000
  max_attempts: 1

# Sync window and batching
sync:
  target_total: 10000
  window_months: 6
  chunk_size: 50
  home_currency: ZAR

# Periodic re-sync
scheduler:
  enabled: true
  interval_hours: 6
  cron_expression: null
  timezone: UTC
  jitter_minutes: 5
"""


def _create_default_app_config(path: Path) -> None:
    """Create default app.yaml configuration."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_APP_CONFIG, encoding="utf-8")


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Initialize TenderSync database and configuration.

    Creates required directories, the default configuration file,
    and the database schema.
    """
    from rich.progress import Progress, SpinnerColumn, TextColumn

    from tendersync.cli.common import load_cli_config
    from tendersync.core.config.loader import DEFAULT_CONFIG_PATH
    from tendersync.persistence.db import init_db

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Creating default configuration...", total=None)

        if not DEFAULT_CONFIG_PATH.exists() or force:
            _create_default_app_config(DEFAULT_CONFIG_PATH)

        progress.update(task, description="Initializing database...")

        config = load_cli_config()
        init_db(config.database.url)

        progress.update(task, description="Done!")

    console.print()
    console.print(Panel.fit(
        "[bold green]OK - TenderSync initialized successfully![/bold green]\n\n"
        "Created:\n"
        f"  - [cyan]{DEFAULT_CONFIG_PATH}[/cyan] - Application configuration\n"
        f"  - [cyan]{config.data_dir}/[/cyan] - Database storage\n"
        "  - [cyan]logs/[/cyan] - Log files\n\n"
        "Next steps:\n"
        "  1. Run a sync: [yellow]tendersync sync run[/yellow]\n"
        "  2. Browse results: [yellow]tendersync tenders list[/yellow]\n"
        "  3. Keep it fresh: [yellow]tendersync schedule start[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


# =============================================================================
# Status Command
# =============================================================================


@app.command()
def status() -> None:
    """Show TenderSync status and statistics."""
    from rich.table import Table
    from sqlalchemy import inspect

    from tendersync.cli.common import load_cli_config
    from tendersync.persistence.db import get_engine
    from tendersync.service import get_sync_status, get_tender_stats

    config = load_cli_config()

    if not inspect(get_engine()).has_table("tenders"):
        err_console.print("[red]TenderSync not initialized. Run:[/red] tendersync init")
        raise typer.Exit(1)

    sync_state = get_sync_status()
    stats = get_tender_stats()

    console.print()
    console.print("[bold]TenderSync Status[/bold]")
    console.print()

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Database", config.database.url)
    table.add_row("Tenders", str(sync_state["tenderCount"]))
    table.add_row("Buyers", str(stats["uniqueEntities"]))
    table.add_row("Sync running", "[yellow]yes[/yellow]" if sync_state["isRunning"] else "no")

    last = sync_state["lastSync"]
    if last:
        table.add_row("Last sync", f"#{last['id']} {last['status']} at {last['startedAt']}")
    else:
        table.add_row("Last sync", "[dim]Never[/dim]")
    console.print(table)

    if stats["byStatus"]:
        console.print()
        status_table = Table(title="Tender Status", show_header=True, header_style="bold magenta")
        status_table.add_column("Status", style="cyan")
        status_table.add_column("Count", justify="right")
        for row in stats["byStatus"]:
            status_table.add_row(row["status"], str(row["count"]))
        console.print(status_table)


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
