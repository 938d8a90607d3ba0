"""
Tender browsing commands.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from tendersync.cli.common import load_cli_config
from tendersync.core.logging import json_dumps

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Browse synced tenders",
    no_args_is_help=True,
)


def _day(value: str | None) -> str:
    return value[:10] if value else "[dim]-[/dim]"


@app.command("list")
def list_tenders(
    keyword: Optional[str] = typer.Option(
        None,
        "--keyword",
        "-k",
        help="Match title, description, buyer, entity, category or province",
    ),
    province: Optional[str] = typer.Option(
        None,
        "--province",
        "-p",
        help="Filter by province",
    ),
    status: Optional[str] = typer.Option(
        None,
        "--status",
        "-s",
        help="Filter by tender status (active, complete, cancelled, ...)",
    ),
    sort_by: str = typer.Option(
        "release_date",
        "--sort",
        help="Sort key (release_date, title, tender_period_end, buyer_name, total_award_value, ...)",
    ),
    sort_order: str = typer.Option(
        "desc",
        "--order",
        help="Sort order (asc, desc)",
    ),
    page: int = typer.Option(1, "--page", min=1, help="Page number"),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        min=1,
        max=100,
        help="Results per page",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, json)",
    ),
) -> None:
    """List tenders with filters.

    Examples:
        tendersync tenders list --keyword cleaning --province Gauteng
        tendersync tenders list --status active --sort tender_period_end --order asc
    """
    from tendersync.service import search_tenders

    load_cli_config()
    result = search_tenders(
        keyword=keyword,
        province=province,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )

    if format == "json":
        console.print_json(json_dumps(result))
        return

    tenders = result["tenders"]
    pagination = result["pagination"]

    if not tenders:
        console.print("[dim]No tenders found matching criteria.[/dim]")
        return

    table = Table(
        title=f"Tenders (page {pagination['page']} of {pagination['totalPages']}, {pagination['total']} total)",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("OCID", style="dim", no_wrap=True)
    table.add_column("Title", max_width=50)
    table.add_column("Status", justify="center")
    table.add_column("Buyer", max_width=30)
    table.add_column("Province")
    table.add_column("Released", justify="right")
    table.add_column("Closes", justify="right")

    for tender in tenders:
        table.add_row(
            tender["ocid"],
            tender["title"] or "[dim]-[/dim]",
            tender["status"] or "[dim]-[/dim]",
            tender["buyer_name"] or "[dim]-[/dim]",
            tender["province"] or "[dim]-[/dim]",
            _day(tender["release_date"]),
            _day(tender["tender_period_end"]),
        )

    console.print(table)

    if pagination["hasNext"]:
        console.print(f"[dim]More results: --page {pagination['page'] + 1}[/dim]")


@app.command("show")
def show_tender(
    ocid: str = typer.Argument(..., help="Open contracting id"),
) -> None:
    """Print the original release document for a tender."""
    from tendersync.service import get_tender_detail

    load_cli_config()
    payload = get_tender_detail(ocid)

    if payload is None:
        err_console.print(f"[red]Tender not found:[/red] {ocid}")
        raise typer.Exit(1)

    console.print_json(json_dumps(payload))


@app.command("stats")
def tender_stats(
    as_json: bool = typer.Option(False, "--json", help="Print stats as JSON"),
) -> None:
    """Show counts by status, province and top categories."""
    from tendersync.service import get_tender_stats

    load_cli_config()
    stats = get_tender_stats()

    if as_json:
        console.print_json(json_dumps(stats))
        return

    console.print(f"Total tenders:   [bold]{stats['total']}[/bold]")
    console.print(f"Unique buyers:   [bold]{stats['uniqueEntities']}[/bold]")
    console.print()

    for title, key, label in (
        ("By Status", "byStatus", "status"),
        ("By Province", "byProvince", "province"),
        ("Top Categories", "byCategory", "category"),
    ):
        rows = stats[key]
        if not rows:
            continue

        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column(label.title(), style="cyan")
        table.add_column("Count", justify="right")
        for row in rows:
            table.add_row(row[label], str(row["count"]))
        console.print(table)
