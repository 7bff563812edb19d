# ABOUTME: Core metadata data structures for audiobook metadata representation.
# ABOUTME: AudiobookMetadata is the interchange format between codecs, providers, cache, and writers.

from dataclasses import dataclass

PROVIDER_FILE = "file"
PROVIDER_MANUAL = "manual"
PROVIDER_FILENAME = "filename-heuristic"

_ISBN_TYPES = ("ISBN_13", "ISBN_10", "ISBN")


@dataclass(frozen=True)
class Identifier:
    """A typed catalog identifier such as an ISBN or a provider work key."""

    type: str
    value: str


@dataclass(frozen=True)
class Bookmark:
    """A user-placed bookmark inside an audiobook."""

    id: str
    title: str
    position_ms: int
    created_at: str
    note: str = ""


@dataclass(frozen=True)
class Note:
    """A free-form user note, optionally anchored to a playback position."""

    id: str
    content: str
    created_at: str
    position_ms: int | None = None
    chapter: str = ""


@dataclass(frozen=True)
class AudiobookMetadata:
    """Structured metadata for an audiobook file.

    This is the central value object of the resolution pipeline:
    extraction -> matching -> merge -> cache -> tag writing. Records are
    immutable; merge policies in ``earshelf.metadata.merge`` build new ones.

    Empty values are ``""`` for strings, ``()`` for sequences and ``None``
    for optional numbers.
    """

    # Identity
    id: str = ""
    provider: str = ""

    # Descriptive
    title: str = ""
    subtitle: str = ""
    authors: tuple[str, ...] = ()
    narrator: str = ""
    series: str = ""
    series_position: str = ""
    description: str = ""
    publisher: str = ""
    published_date: str = ""
    categories: tuple[str, ...] = ()
    main_category: str = ""
    language: str = ""

    # Catalog extras
    identifiers: tuple[Identifier, ...] = ()
    page_count: int | None = None
    average_rating: float | None = None
    ratings_count: int | None = None
    thumbnail_url: str = ""

    # Audio-technical
    audio_duration_ms: int | None = None
    bitrate: int | None = None
    channels: int | None = None
    sample_rate: int | None = None
    file_format: str = ""

    # User data
    user_rating: float | None = None
    is_favorite: bool = False
    user_tags: tuple[str, ...] = ()
    bookmarks: tuple[Bookmark, ...] = ()
    notes: tuple[Note, ...] = ()
    playback_position_ms: int | None = None
    last_played_at: str = ""

    @property
    def author(self) -> str:
        """Convenience property: joined author string for display."""
        return ", ".join(self.authors) if self.authors else ""

    @property
    def primary_author(self) -> str:
        return self.authors[0] if self.authors else ""

    @property
    def full_title(self) -> str:
        """Title with the subtitle appended after a colon, when present."""
        if self.subtitle:
            return f"{self.title}: {self.subtitle}"
        return self.title

    @property
    def isbn(self) -> str:
        """First ISBN identifier, preferring ISBN-13."""
        for id_type in _ISBN_TYPES:
            for identifier in self.identifiers:
                if identifier.type == id_type and identifier.value:
                    return identifier.value
        return ""

    @property
    def duration_formatted(self) -> str:
        """Duration as ``h:mm:ss`` (or ``m:ss`` under an hour), truncated to seconds."""
        if self.audio_duration_ms is None:
            return ""
        total_seconds = self.audio_duration_ms // 1000
        hours = total_seconds // 3600
        minutes = (total_seconds % 3600) // 60
        seconds = total_seconds % 60
        if hours:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes}:{seconds:02d}"

    @property
    def is_comprehensive(self) -> bool:
        """Whether the record is complete enough to skip remote lookups.

        Requires a title, at least one author, and one of series,
        published date, or description.
        """
        if not self.title or not self.authors:
            return False
        return bool(self.series or self.published_date or self.description)

    @property
    def is_empty(self) -> bool:
        """Whether the record carries no descriptive data at all."""
        return not (
            self.title
            or self.authors
            or self.series
            or self.description
            or self.narrator
            or self.publisher
        )

    @property
    def has_local_thumbnail(self) -> bool:
        return bool(self.thumbnail_url) and not is_remote_url(self.thumbnail_url)


def is_remote_url(value: str) -> bool:
    """Whether a thumbnail reference points at a network location."""
    return value.startswith(("http://", "https://"))


def parse_duration(text: str) -> int | None:
    """Parse ``h:mm:ss`` or ``m:ss`` into integer milliseconds."""
    parts = text.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        return None
    numbers = [int(p) for p in parts]
    if len(numbers) == 2:
        numbers.insert(0, 0)
    hours, minutes, seconds = numbers
    return ((hours * 60 + minutes) * 60 + seconds) * 1000
