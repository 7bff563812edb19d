# ABOUTME: The `earshelf search` command for querying metadata providers directly.
# ABOUTME: Prints every provider candidate with its match confidence, best first.

import asyncio
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from earshelf.cli.options import cache_option, cli_settings
from earshelf.config import Settings
from earshelf.core.context import build_context
from earshelf.core.resolver import MetadataResolver
from earshelf.metadata.candidate import MetadataCandidate


async def _search(settings: Settings, query: str) -> list[MetadataCandidate]:
    context = build_context(settings)
    try:
        return await MetadataResolver(context).search(query)
    finally:
        await context.aclose()


@click.command("search")
@click.argument("query")
@click.option(
    "-n",
    "--limit",
    type=click.IntRange(min=1),
    default=10,
    help="Maximum candidates to show (default 10).",
)
@cache_option
def search(query: str, limit: int, cache_path: Path | None) -> None:
    """Search metadata providers for an audiobook by free text."""
    console = Console()
    settings = cli_settings(console, cache_path=cache_path)

    candidates = asyncio.run(_search(settings, query))
    if not candidates:
        console.print("[yellow]No results found.[/yellow]")
        return

    table = Table()
    table.add_column("#", style="dim", width=3)
    table.add_column("Title", style="bold")
    table.add_column("Author")
    table.add_column("Series")
    table.add_column("Published", width=10)
    table.add_column("Confidence", justify="right")
    table.add_column("Source", style="dim")

    for i, candidate in enumerate(candidates[:limit], start=1):
        meta = candidate.metadata
        series = meta.series
        if series and meta.series_position:
            series = f"{series} #{meta.series_position}"
        table.add_row(
            str(i),
            meta.full_title,
            meta.author or "[dim]unknown[/dim]",
            series or "—",
            meta.published_date or "?",
            f"{candidate.confidence:.0%}",
            candidate.source,
        )

    console.print(table)
    console.print(f"\n[dim]{len(candidates)} result(s)[/dim]")
