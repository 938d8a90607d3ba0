"""
Scheduled sync commands.
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from tendersync.cli.common import load_cli_config

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Run periodic syncs",
    no_args_is_help=True,
)


@app.command("start")
def start_scheduler(
    now: bool = typer.Option(
        False,
        "--now",
        help="Run one sync immediately before waiting for the first tick",
    ),
) -> None:
    """Start the scheduler in the foreground (Ctrl+C to stop)."""
    from tendersync.core.orchestrator import SyncRunner
    from tendersync.core.scheduler import SchedulerService
    from tendersync.persistence.db import get_session_factory

    config = load_cli_config()

    if not config.scheduler.enabled:
        err_console.print("[yellow]Scheduler is disabled in configs/app.yaml[/yellow]")
        raise typer.Exit(1)

    scheduler = config.scheduler
    if scheduler.cron_expression:
        console.print(f"Syncing on cron [cyan]{scheduler.cron_expression}[/cyan] ({scheduler.timezone})")
    else:
        console.print(f"Syncing every [cyan]{scheduler.interval_hours:g}h[/cyan]")
    console.print("[dim]Press Ctrl+C to stop[/dim]")

    factory = get_session_factory()
    service = SchedulerService(config, lambda: SyncRunner(factory, config=config))

    try:
        asyncio.run(service.start(run_immediately=now))
    except KeyboardInterrupt:
        console.print("\n[yellow]Scheduler stopped[/yellow]")
