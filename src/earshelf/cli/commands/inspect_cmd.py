# ABOUTME: The `earshelf inspect` command for viewing embedded audiobook tags.
# ABOUTME: Shows the record decoded from a single MP3/M4B file plus stream facts.

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from earshelf.formats import codec_for_path
from earshelf.formats.base import CodecError, NotTagged
from earshelf.metadata.types import AudiobookMetadata


def _metadata_table(title: str, meta: AudiobookMetadata, has_cover: bool | None) -> Table:
    table = Table(title=title, show_header=False, pad_edge=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Title", meta.full_title or "[dim]unknown[/dim]")
    table.add_row("Author", meta.author or "[dim]unknown[/dim]")
    table.add_row("Narrator", meta.narrator or "[dim]unknown[/dim]")
    table.add_row("Series", meta.series or "[dim]none[/dim]")
    if meta.series_position:
        table.add_row("Series Position", meta.series_position)
    table.add_row("Publisher", meta.publisher or "[dim]unknown[/dim]")
    table.add_row("Published", meta.published_date or "[dim]unknown[/dim]")
    table.add_row("Language", meta.language or "[dim]unknown[/dim]")
    table.add_row("ISBN", meta.isbn or "[dim]none[/dim]")
    if meta.categories:
        table.add_row("Genre", ", ".join(meta.categories))
    table.add_row("Description", meta.description or "[dim]none[/dim]")
    if meta.audio_duration_ms is not None:
        table.add_row("Duration", meta.duration_formatted)
    if meta.bitrate:
        table.add_row("Bitrate", f"{meta.bitrate} kbps")
    if meta.sample_rate:
        table.add_row("Sample Rate", f"{meta.sample_rate} Hz")
    if meta.channels:
        table.add_row("Channels", str(meta.channels))
    if meta.file_format:
        table.add_row("Format", meta.file_format)
    if has_cover is not None:
        table.add_row("Cover", "yes" if has_cover else "no")
    return table


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def inspect(path: Path) -> None:
    """Show metadata embedded in an audiobook file."""
    console = Console()
    try:
        codec = codec_for_path(path)
        meta = codec.read(path)
        picture = codec.read_picture(path)
    except NotTagged as exc:
        console.print(f"[yellow]{exc}[/yellow]")
        console.print(_metadata_table(path.name, exc.technical, None))
        return
    except CodecError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc

    console.print(_metadata_table(path.name, meta, picture is not None and len(picture) > 0))
