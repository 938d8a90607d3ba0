"""
Sync commands: run a sync, inspect and repair run history.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import timedelta
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from tendersync.cli.common import format_timestamp, load_cli_config
from tendersync.core.logging import json_dumps

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Run and inspect upstream syncs",
    no_args_is_help=True,
)

STATUS_STYLES = {
    "running": "yellow",
    "success": "green",
    "error": "red",
    "cancelled": "magenta",
}


def _styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "default")
    return f"[{style}]{status}[/{style}]"


async def _run_with_cancel(runner, date_from, date_to, target):
    """Run a sync; Ctrl+C cancels at the next page boundary."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        pass  # Windows: Ctrl+C aborts the process instead

    try:
        return await runner.run(date_from, date_to, target_total=target, cancel_event=cancel_event)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


@app.command("run")
def run_sync(
    date_from: Optional[str] = typer.Option(
        None,
        "--from",
        help="Start of release window (YYYY-MM-DD, default: window_months ago)",
    ),
    date_to: Optional[str] = typer.Option(
        None,
        "--to",
        help="End of release window (YYYY-MM-DD, default: today)",
    ),
    target: Optional[int] = typer.Option(
        None,
        "--target",
        "-t",
        min=1,
        help="Maximum releases to fetch this run",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the result as JSON",
    ),
) -> None:
    """Fetch the release window from upstream and upsert it.

    Examples:
        tendersync sync run
        tendersync sync run --from 2024-01-01 --to 2024-03-31
        tendersync sync run --target 500
    """
    from tendersync.core.errors import AlreadyRunningError
    from tendersync.core.orchestrator import SyncRunner
    from tendersync.persistence.db import get_session_factory

    config = load_cli_config()
    runner = SyncRunner(get_session_factory(), config=config)

    window_from, window_to = runner.resolve_window(date_from, date_to)
    if not as_json:
        console.print(f"[bold]Syncing releases[/bold] {window_from} to {window_to}")
        console.print()

    try:
        result = asyncio.run(_run_with_cancel(runner, date_from, date_to, target))
    except AlreadyRunningError as e:
        err_console.print(f"[yellow]A sync is already running[/yellow] (run {e.run_id})")
        raise typer.Exit(2)

    if as_json:
        console.print_json(json_dumps(result.to_dict()))
    else:
        table = Table(show_header=False, box=None)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Run", str(result.run_id))
        table.add_row("Status", _styled_status(result.status))
        table.add_row("Fetched", str(result.fetched))
        table.add_row("Upserted", str(result.upserted))
        table.add_row("Duration", f"{result.duration_ms / 1000:.1f}s")
        if result.error:
            table.add_row("Error", f"[red]{result.error}[/red]")
        console.print(table)

    if not result.ok:
        raise typer.Exit(1)


@app.command("status")
def sync_status(
    as_json: bool = typer.Option(False, "--json", help="Print status as JSON"),
) -> None:
    """Show tender count, whether a sync is running, and the last run."""
    from tendersync.service import get_sync_status

    load_cli_config()
    status = get_sync_status()

    if as_json:
        console.print_json(json_dumps(status))
        return

    console.print(f"Tenders stored: [bold]{status['tenderCount']}[/bold]")
    running = "[yellow]yes[/yellow]" if status["isRunning"] else "no"
    console.print(f"Sync running:   {running}")

    last = status["lastSync"]
    if last is None:
        console.print("[dim]No sync has run yet.[/dim]")
        return

    console.print()
    console.print(
        f"Last run #{last['id']}: {_styled_status(last['status'])} "
        f"({last['dateFrom']} to {last['dateTo']}), "
        f"{last['tendersFetched']} fetched, {last['tendersUpserted']} upserted"
    )
    if last["error"]:
        console.print(f"[red]{last['error']}[/red]")


@app.command("history")
def sync_history(
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        min=1,
        help="Number of runs to show",
    ),
) -> None:
    """Show recent sync runs, newest first."""
    from tendersync.persistence.db import get_session
    from tendersync.persistence.repo import SyncRunRepository

    load_cli_config()

    with get_session() as session:
        runs = SyncRunRepository(session).history(limit)

        if not runs:
            console.print("[dim]No sync runs recorded.[/dim]")
            return

        table = Table(title="Sync Runs", show_header=True, header_style="bold magenta")
        table.add_column("ID", justify="right", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Started")
        table.add_column("Window")
        table.add_column("Fetched", justify="right")
        table.add_column("Upserted", justify="right")
        table.add_column("Duration", justify="right")
        table.add_column("Error", overflow="fold", max_width=50)

        for run in runs:
            duration = f"{run.duration_ms / 1000:.1f}s" if run.duration_ms is not None else "[dim]-[/dim]"
            table.add_row(
                str(run.id),
                _styled_status(run.status),
                format_timestamp(run.started_at),
                f"{run.date_from or '?'} to {run.date_to or '?'}",
                str(run.tenders_fetched),
                str(run.tenders_upserted),
                duration,
                run.error_message or "",
            )

        console.print(table)


@app.command("reset-stale")
def reset_stale(
    older_than: int = typer.Option(
        120,
        "--older-than",
        min=1,
        help="Minutes after which a running sync is considered abandoned",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Mark syncs stuck in 'running' as failed.

    A sync interrupted by a crash or kill never records its outcome and
    blocks all later syncs until it is reset.
    """
    from tendersync.persistence.db import get_session
    from tendersync.persistence.repo import SyncRunRepository

    load_cli_config()

    if not yes and not typer.confirm(
        f"Mark runs running for more than {older_than} minutes as failed?",
        default=True,
    ):
        raise typer.Abort()

    with get_session() as session:
        closed = SyncRunRepository(session).abandon_stale(timedelta(minutes=older_than))

    if closed:
        console.print(f"[green]OK[/green] Reset {len(closed)} run(s): {', '.join(map(str, closed))}")
    else:
        console.print("[dim]No stale runs found.[/dim]")
