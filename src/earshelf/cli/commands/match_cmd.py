# ABOUTME: The `earshelf match` command for interactive metadata lookup and correction.
# ABOUTME: Shows ranked provider candidates per file, then writes the chosen record in place.

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console

from earshelf.cli.options import cache_option, cli_settings
from earshelf.cli.review import ReviewSession
from earshelf.config import Settings
from earshelf.core.context import LibraryContext, build_context
from earshelf.core.library import find_audio_files
from earshelf.core.persistence import PersistenceEngine
from earshelf.core.resolver import MetadataResolver
from earshelf.formats.base import CodecError
from earshelf.metadata.merge import MergePolicy, enhance, merge

logger = logging.getLogger(__name__)


class _Tally:
    def __init__(self) -> None:
        self.matched = 0
        self.kept = 0
        self.skipped = 0
        self.errors = 0


async def _match_one(
    path: Path,
    context: LibraryContext,
    resolver: MetadataResolver,
    engine: PersistenceEngine,
    review: ReviewSession,
    limit: int,
    console: Console,
    tally: _Tally,
) -> None:
    current, query = await resolver.local_query(path)
    if not query:
        console.print("  [yellow]Nothing to search for.[/yellow]")
        tally.skipped += 1
        return
    console.print(f"  [dim]Query:[/dim] {query}")

    candidates = (await resolver.search(query))[:limit]
    if not candidates:
        console.print("  [yellow]No candidates found.[/yellow]")
        tally.skipped += 1
        return

    selected = review.review(current, candidates)
    if selected is None:
        tally.skipped += 1
        return
    if selected is current:
        tally.kept += 1
        return

    # The chosen edition wins; the file's own values fill what it lacks.
    updated = enhance(merge(current, selected, MergePolicy.UPDATE_VERSION), current)
    if context.covers is not None:
        try:
            codec = context.codec_lookup(path)
        except CodecError:
            codec = None
        updated = await context.covers.localize(path, updated, codec)

    result = await engine.persist(path, updated)
    if result.success:
        console.print(f"  [green]Written:[/green] {path.name} ({result.strategy})")
        tally.matched += 1
    else:
        console.print(f"  [red]Write failed:[/red] {result.error}")
        tally.errors += 1


async def _run(
    settings: Settings,
    files: list[Path],
    review: ReviewSession,
    limit: int,
    quiet: bool,
    console: Console,
) -> _Tally:
    context = build_context(settings)
    tally = _Tally()
    try:
        resolver = MetadataResolver(context)
        engine = PersistenceEngine(context)
        for i, path in enumerate(files, start=1):
            if not quiet:
                console.print(f"\n[bold][{i}/{len(files)}] Processing:[/bold] {path.name}")
            await _match_one(path, context, resolver, engine, review, limit, console, tally)
    finally:
        await context.aclose()
    return tally


@click.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    default=False,
    help="Auto-accept high-confidence matches without prompting.",
)
@click.option(
    "-t",
    "--threshold",
    type=click.FloatRange(0.0, 1.0),
    default=0.8,
    help="Confidence cutoff for auto-accept (0.0-1.0, default 0.8).",
)
@click.option(
    "-n",
    "--limit",
    type=click.IntRange(min=1),
    default=5,
    help="Candidates shown per file (default 5).",
)
@cache_option
def match(path: Path, quiet: bool, threshold: float, limit: int, cache_path: Path | None) -> None:
    """Review provider matches for audiobooks and write the chosen metadata."""
    console = Console()
    settings = cli_settings(console, cache_path=cache_path)

    files = find_audio_files(path)
    if not files:
        console.print("[yellow]No supported audio files found.[/yellow]")
        return

    review = ReviewSession(console=console, quiet=quiet, threshold=threshold)
    tally = asyncio.run(_run(settings, files, review, limit, quiet, console))

    parts = []
    if tally.matched:
        parts.append(f"[green]{tally.matched} matched[/green]")
    if tally.kept:
        parts.append(f"{tally.kept} kept")
    if tally.skipped:
        parts.append(f"[yellow]{tally.skipped} skipped[/yellow]")
    if tally.errors:
        parts.append(f"[red]{tally.errors} error{'s' if tally.errors != 1 else ''}[/red]")
    console.print(f"\nDone: {', '.join(parts) or 'nothing to do'}")
    if tally.errors:
        raise SystemExit(1)
