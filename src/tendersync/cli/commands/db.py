"""
Database management commands.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from tendersync.cli.common import load_cli_config

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Database operations",
    no_args_is_help=True,
)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent.parent / "persistence" / "migrations"


def _alembic_config(url: str):
    from alembic.config import Config

    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    alembic_cfg.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return alembic_cfg


@app.command("init")
def init_database(
    drop_existing: bool = typer.Option(
        False,
        "--drop",
        help="Drop existing tables before creating",
    ),
) -> None:
    """Initialize the database schema.

    Creates all tables. Use --drop to reset the database.
    """
    from tendersync.persistence.db import drop_db, init_db

    config = load_cli_config()

    if drop_existing:
        if not typer.confirm("This will DELETE ALL DATA. Continue?", default=False):
            raise typer.Abort()

        console.print("[yellow]Dropping existing tables...[/yellow]")
        drop_db(config.database.url)

    console.print("Creating database schema...")
    init_db(config.database.url)

    console.print("[green]OK[/green] Database initialized")


@app.command("migrate")
def run_migrations(
    revision: str = typer.Option(
        "head",
        "--revision",
        "-r",
        help="Target revision (default: head)",
    ),
) -> None:
    """Run database migrations."""
    from alembic import command
    from alembic.util import CommandError

    config = load_cli_config(connect=False)

    console.print(f"Running migrations to: {revision}")

    try:
        command.upgrade(_alembic_config(config.database.url), revision)
    except CommandError as e:
        err_console.print(f"[red]Migration failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]OK[/green] Migrations complete")


@app.command("current")
def show_current() -> None:
    """Show current database revision."""
    from alembic import command

    config = load_cli_config(connect=False)

    console.print("[bold]Current database revision:[/bold]")
    command.current(_alembic_config(config.database.url), verbose=True)
