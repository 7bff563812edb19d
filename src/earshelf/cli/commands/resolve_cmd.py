# ABOUTME: The `earshelf resolve` command: resolve metadata for files or a whole library.
# ABOUTME: Runs the resolver in batches with a progress bar and optionally writes results back.

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from earshelf.cli.options import cache_option, cli_settings, threshold_option
from earshelf.config import Settings
from earshelf.core.context import build_context
from earshelf.core.library import LibraryReport, find_audio_files, process_library
from earshelf.core.persistence import PersistenceEngine
from earshelf.core.resolver import MetadataResolver, Resolution

logger = logging.getLogger(__name__)


def _make_progress(console: Console) -> Progress:
    """Create a Rich progress bar for batch processing."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
        console=console,
    )


async def _run(
    settings: Settings, files: list[Path], write: bool, console: Console
) -> LibraryReport:
    context = build_context(settings)
    try:
        resolver = MetadataResolver(context)
        engine = PersistenceEngine(context) if write else None
        with _make_progress(console) as progress:
            task_id = progress.add_task("Resolving", total=len(files))

            def advance(resolution: Resolution) -> None:
                progress.update(task_id, description=resolution.path.name)
                progress.advance(task_id)

            return await process_library(
                files,
                resolver,
                engine,
                batch_size=settings.batch_size,
                write=write,
                on_progress=advance,
            )
    finally:
        await context.aclose()


def _print_report(console: Console, report: LibraryReport) -> None:
    if report.resolved:
        table = Table(title="Resolved")
        table.add_column("File")
        table.add_column("Title", style="bold")
        table.add_column("Author")
        table.add_column("Series")
        table.add_column("Source", style="dim")
        for resolution in sorted(report.resolved, key=lambda r: r.path):
            meta = resolution.metadata
            series = meta.series
            if series and meta.series_position:
                series = f"{series} #{meta.series_position}"
            table.add_row(
                resolution.path.name,
                meta.full_title or "[dim]unknown[/dim]",
                meta.author or "[dim]unknown[/dim]",
                series or "—",
                resolution.source.value,
            )
        console.print(table)

    for path in sorted(report.unresolved):
        console.print(f"[yellow]Unresolved:[/yellow] {path.name}")
    for result in report.failed:
        console.print(f"[red]Write failed:[/red] {result.path.name}: {result.error}")
    for error in report.auth_errors:
        console.print(f"[yellow]Provider rejected request:[/yellow] {error}")

    parts = [f"[green]{len(report.resolved)} resolved[/green]"]
    if report.unresolved:
        parts.append(f"[yellow]{len(report.unresolved)} unresolved[/yellow]")
    if report.written:
        parts.append(f"[green]{len(report.written)} written[/green]")
    if report.failed:
        parts.append(f"[red]{len(report.failed)} failed[/red]")
    console.print(f"\nDone: {', '.join(parts)}")


@click.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-w",
    "--write",
    is_flag=True,
    default=False,
    help="Write resolved metadata (and cover) back into each file.",
)
@click.option(
    "-b",
    "--batch-size",
    type=click.IntRange(min=1),
    default=None,
    help="Files resolved concurrently per batch (default 5).",
)
@threshold_option
@cache_option
def resolve(
    path: Path,
    write: bool,
    batch_size: int | None,
    threshold: float | None,
    cache_path: Path | None,
) -> None:
    """Resolve metadata for an audiobook file or every audiobook under a directory."""
    console = Console()
    settings = cli_settings(
        console, cache_path=cache_path, match_threshold=threshold, batch_size=batch_size
    )

    files = find_audio_files(path)
    if not files:
        console.print("[yellow]No supported audio files found.[/yellow]")
        return

    report = asyncio.run(_run(settings, files, write, console))
    _print_report(console, report)
    if report.failed:
        raise SystemExit(1)
