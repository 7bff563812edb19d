# ABOUTME: The `earshelf tag` command for manual metadata edits written into a file.
# ABOUTME: Overlays the given fields on the file's current tags and persists them transactionally.

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Any

import click
from rich.console import Console

from earshelf.cli.options import cache_option, cli_settings
from earshelf.config import Settings
from earshelf.core.context import build_context
from earshelf.core.persistence import PersistenceEngine, PersistResult
from earshelf.formats import codec_for_path
from earshelf.formats.base import CodecError, NotTagged, with_technical
from earshelf.metadata.normalizer import parse_authors
from earshelf.metadata.types import PROVIDER_FILE, PROVIDER_MANUAL, AudiobookMetadata


def _current_record(path: Path) -> AudiobookMetadata:
    codec = codec_for_path(path)
    try:
        return codec.read(path)
    except NotTagged as exc:
        return with_technical(AudiobookMetadata(id=f"{PROVIDER_FILE}:{path}"), exc.technical)


async def _persist(
    settings: Settings, path: Path, metadata: AudiobookMetadata, cover: Path | None
) -> PersistResult:
    context = build_context(settings, providers=[])
    try:
        return await PersistenceEngine(context).persist(path, metadata, cover)
    finally:
        await context.aclose()


@click.command("tag")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--title", default=None, help="Book title.")
@click.option("--subtitle", default=None, help="Book subtitle.")
@click.option("--author", default=None, help="Author(s), separated by ',', ';', '&' or 'and'.")
@click.option("--narrator", default=None, help="Narrator.")
@click.option("--series", default=None, help="Series name.")
@click.option("--position", "series_position", default=None, help="Position in the series.")
@click.option("--publisher", default=None, help="Publisher.")
@click.option("--date", "published_date", default=None, help="Publication date.")
@click.option("--description", default=None, help="Description.")
@click.option("--genre", default=None, help="Genre.")
@click.option("--language", default=None, help="Language code.")
@click.option("--keyword", "keywords", multiple=True, help="User tag; repeat for several.")
@click.option(
    "--cover",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Local image to embed as cover art.",
)
@cache_option
def tag(path: Path, keywords: tuple[str, ...], cover: Path | None, cache_path: Path | None, **edits: Any) -> None:
    """Edit metadata by hand and write it into an audiobook file."""
    console = Console()
    settings = cli_settings(console, cache_path=cache_path)

    try:
        current = _current_record(path)
    except CodecError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc

    changes: dict[str, Any] = {k: v.strip() for k, v in edits.items() if v is not None}
    if "author" in changes:
        changes["authors"] = parse_authors(changes.pop("author"))
    if "genre" in changes:
        changes["categories"] = (changes.pop("genre"),)
    if keywords:
        changes["user_tags"] = tuple(k.strip() for k in keywords if k.strip())
    if not changes and cover is None:
        console.print("[yellow]Nothing to change.[/yellow]")
        return

    updated = replace(current, provider=PROVIDER_MANUAL, **changes)
    result = asyncio.run(_persist(settings, path, updated, cover))
    if not result.success:
        console.print(f"[red]Write failed:[/red] {result.error}")
        raise SystemExit(1)
    console.print(
        f"Tagged [bold]{updated.full_title or path.name}[/bold] using [cyan]{result.strategy}[/cyan]."
    )
