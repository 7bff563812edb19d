# ABOUTME: The `earshelf cache` command group for inspecting and clearing the metadata cache.
# ABOUTME: Provides stats and clear subcommands over the query and file namespaces.

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from earshelf.cli.options import cache_option, cli_settings
from earshelf.db.cache import MetadataCache


@click.group("cache")
def cache() -> None:
    """Inspect or clear the metadata cache."""


@cache.command("stats")
@cache_option
def cache_stats(cache_path: Path | None) -> None:
    """Show how many queries and files are cached."""
    console = Console()
    settings = cli_settings(console, cache_path=cache_path)
    store = MetadataCache.open(settings.cache_path)
    try:
        queries, files = len(store.queries), len(store.files)
    finally:
        store.close()

    table = Table(title=str(settings.cache_path), show_header=False, pad_edge=False)
    table.add_column("Namespace", style="bold")
    table.add_column("Entries", justify="right")
    table.add_row("Queries", str(queries))
    table.add_row("Files", str(files))
    console.print(table)


@cache.command("clear")
@click.option("-y", "--yes", is_flag=True, default=False, help="Do not ask for confirmation.")
@cache_option
def cache_clear(yes: bool, cache_path: Path | None) -> None:
    """Remove every cached query and file record."""
    console = Console()
    settings = cli_settings(console, cache_path=cache_path)
    if not yes and not click.confirm(f"Clear all entries in {settings.cache_path}?"):
        console.print("Aborted.")
        return
    store = MetadataCache.open(settings.cache_path)
    try:
        store.clear()
    finally:
        store.close()
    console.print("[green]Cache cleared.[/green]")
