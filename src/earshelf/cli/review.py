# ABOUTME: Interactive review session for metadata candidate selection.
# ABOUTME: Displays candidates in a Rich table and prompts the user to choose.

import click
from rich.console import Console
from rich.table import Table

from earshelf.metadata.candidate import MetadataCandidate
from earshelf.metadata.types import AudiobookMetadata


class ReviewSession:
    """Interactive review for metadata candidates.

    Displays current metadata and a table of candidates, then prompts
    the user to select one, skip, or keep the original.
    """

    def __init__(
        self,
        *,
        console: Console | None = None,
        quiet: bool = False,
        threshold: float = 0.8,
    ) -> None:
        self._console = console or Console()
        self._quiet = quiet
        self._threshold = threshold

    def review(
        self, current: AudiobookMetadata, candidates: list[MetadataCandidate]
    ) -> AudiobookMetadata | None:
        """Present candidates for user review and return the chosen metadata.

        Returns:
            Selected AudiobookMetadata, ``current`` to keep the file as is,
            or None if the user skips.
        """
        if not candidates:
            return None

        if self._quiet:
            best = candidates[0]
            if best.confidence >= self._threshold:
                return best.metadata
            return None

        self._console.print(f"\n[bold]Current:[/bold] {current.full_title or '[dim]untitled[/dim]'}")
        if current.authors:
            self._console.print(f"  Author: {current.author}")
        if current.narrator:
            self._console.print(f"  Narrator: {current.narrator}")

        table = Table(title="Candidates")
        table.add_column("#", style="bold", width=3)
        table.add_column("Title")
        table.add_column("Author")
        table.add_column("Series")
        table.add_column("Published")
        table.add_column("ID", style="dim")
        table.add_column("Confidence", justify="right")
        table.add_column("Source")

        for i, candidate in enumerate(candidates, start=1):
            meta = candidate.metadata
            series = meta.series
            if series and meta.series_position:
                series = f"{series} #{meta.series_position}"
            table.add_row(
                str(i),
                meta.full_title,
                meta.author,
                series or "—",
                meta.published_date or "—",
                candidate.source_id,
                f"{candidate.confidence:.0%}",
                candidate.source,
            )

        self._console.print(table)

        prompt_parts = "[1-N] Accept  [v1-vN] View details  [s] Skip  [k] Keep current"
        while True:
            choice = click.prompt(prompt_parts, type=str, default="s")

            if choice.lower() == "s":
                return None
            if choice.lower() == "k":
                return current

            if choice.lower().startswith("v"):
                try:
                    idx = int(choice[1:]) - 1
                except ValueError:
                    continue
                if 0 <= idx < len(candidates):
                    result = self._detail_prompt(current, candidates[idx])
                    if result is not None:
                        return result
                continue

            try:
                idx = int(choice) - 1
            except ValueError:
                continue
            if 0 <= idx < len(candidates):
                return candidates[idx].metadata

    def _show_detail(self, current: AudiobookMetadata, candidate: MetadataCandidate) -> None:
        """Render a side-by-side comparison of current vs candidate metadata."""
        detail = Table(title="Detail Comparison")
        detail.add_column("Field", style="bold")
        detail.add_column("Current → Candidate")

        proposed = candidate.metadata
        fields = [
            ("Title", current.full_title, proposed.full_title),
            ("Author", current.author, proposed.author),
            ("Narrator", current.narrator, proposed.narrator),
            ("Series", current.series, proposed.series),
            ("Position", current.series_position, proposed.series_position),
            ("Publisher", current.publisher, proposed.publisher),
            ("Published", current.published_date, proposed.published_date),
            ("ISBN", current.isbn, proposed.isbn),
            ("Language", current.language, proposed.language),
            ("Description", current.description, proposed.description),
        ]

        for label, cur, prop in fields:
            detail.add_row(label, f"{cur or '—'} → {prop or '—'}")

        self._console.print(detail)

    def _detail_prompt(
        self, current: AudiobookMetadata, candidate: MetadataCandidate
    ) -> AudiobookMetadata | None:
        """Show detail view and prompt to accept or go back.

        Returns the candidate's metadata if accepted, or None to go back.
        """
        self._show_detail(current, candidate)

        detail_choice = click.prompt(
            "[a] Accept  [b] Back to list",
            type=str,
            default="b",
        )

        if detail_choice.lower() == "a":
            return candidate.metadata
        return None
