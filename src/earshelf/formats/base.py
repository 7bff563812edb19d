# ABOUTME: Shared tag-codec contract: logical tag fields, errors, pictures, and record<->field mapping.
# ABOUTME: Container codecs (ID3, MP4) translate their alias tables to TagField and reuse this mapping.

import re
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from earshelf.metadata.normalizer import (
    extract_series_position,
    parse_authors,
    split_album_series,
)
from earshelf.metadata.types import PROVIDER_FILE, AudiobookMetadata, Identifier

DEFAULT_GENRE = "Audiobook"


class CodecError(Exception):
    """Raised when a container is malformed or cannot be written."""


class UnsupportedFormatError(CodecError):
    """Raised when no codec handles the file's extension."""


class NotTagged(Exception):
    """The file carries no readable tags. A valid outcome, not a failure.

    ``technical`` holds whatever stream facts (duration, bitrate) could still
    be read from the container.
    """

    def __init__(self, path: Path, technical: AudiobookMetadata | None = None) -> None:
        super().__init__(f"No readable tags in {path}")
        self.path = path
        self.technical = technical or AudiobookMetadata()


class TagField(Enum):
    """Logical tag fields modelled by earshelf, independent of container."""

    TITLE = "title"
    ARTIST = "artist"
    ALBUM_ARTIST = "album_artist"
    ALBUM = "album"
    COMPOSER = "composer"
    GENRE = "genre"
    DATE = "date"
    TRACK = "track"
    COMMENT = "comment"
    PUBLISHER = "publisher"
    LANGUAGE = "language"
    ISBN = "isbn"
    KEYWORDS = "keywords"


@dataclass(frozen=True)
class Picture:
    """Embedded cover art."""

    data: bytes
    mime_type: str

    def __len__(self) -> int:
        return len(self.data)


_MIME_BY_SUFFIX = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def detect_image_mime(data: bytes, filename: str | Path | None = None) -> str:
    """Detect an image MIME type from magic bytes, falling back to the file extension."""
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if filename is not None:
        return _MIME_BY_SUFFIX.get(Path(filename).suffix.lower(), "image/jpeg")
    return "image/jpeg"


def load_picture(path: Path) -> Picture:
    """Read a local image file into a Picture."""
    data = path.read_bytes()
    return Picture(data=data, mime_type=detect_image_mime(data, path))


@runtime_checkable
class TagCodec(Protocol):
    """Reads and writes AudiobookMetadata from/to one container family.

    All methods are synchronous and touch only the given file; async callers
    run them through ``asyncio.to_thread``.
    """

    extensions: frozenset[str]

    def read(self, path: Path) -> AudiobookMetadata: ...

    def read_picture(self, path: Path) -> Picture | None: ...

    def write(self, path: Path, metadata: AudiobookMetadata, cover: Picture | None = None) -> None: ...

    def replace(self, path: Path, metadata: AudiobookMetadata, cover: Picture | None = None) -> None: ...

    def strip_picture(self, path: Path) -> None: ...


_TRACK_RE = re.compile(r"^\s*([^/]+)")


def _isbn_identifier(value: str) -> Identifier:
    digits = value.replace("-", "").replace(" ", "")
    if len(digits) == 13:
        return Identifier("ISBN_13", digits)
    if len(digits) == 10:
        return Identifier("ISBN_10", digits)
    return Identifier("ISBN", value)


def metadata_to_fields(metadata: AudiobookMetadata) -> dict[TagField, str]:
    """Map a record onto logical tag fields for writing.

    Empty values are omitted, except genre which defaults to "Audiobook".
    """
    genre = (
        metadata.categories[0]
        if metadata.categories
        else metadata.main_category or DEFAULT_GENRE
    )
    fields = {
        TagField.TITLE: metadata.full_title,
        TagField.ARTIST: metadata.primary_author,
        TagField.ALBUM_ARTIST: metadata.author,
        TagField.COMPOSER: metadata.narrator,
        TagField.ALBUM: metadata.series or metadata.title,
        TagField.TRACK: metadata.series_position,
        TagField.PUBLISHER: metadata.publisher,
        TagField.DATE: metadata.published_date,
        TagField.GENRE: genre,
        TagField.COMMENT: metadata.description,
        TagField.LANGUAGE: metadata.language,
        TagField.ISBN: metadata.isbn,
        TagField.KEYWORDS: ", ".join(metadata.user_tags),
    }
    return {key: value for key, value in fields.items() if value}


def fields_to_metadata(
    fields: dict[TagField, str],
    path: Path,
    technical: AudiobookMetadata | None = None,
) -> AudiobookMetadata:
    """Decode logical tag fields into a record; the inverse of metadata_to_fields.

    The album is read as a series name unless it merely repeats the title.
    The track number is only taken as a series position when a series exists,
    otherwise the position is looked for in the title and file name.
    """
    raw_title = fields.get(TagField.TITLE, "").strip()
    title, _, subtitle = raw_title.partition(": ")

    authors = parse_authors(fields.get(TagField.ALBUM_ARTIST, ""))
    if not authors:
        authors = parse_authors(fields.get(TagField.ARTIST, ""))

    album = fields.get(TagField.ALBUM, "").strip()
    series = ""
    position = ""
    if album and album not in (title, raw_title):
        series, position = split_album_series(album)

    track_match = _TRACK_RE.match(fields.get(TagField.TRACK, ""))
    if series and track_match:
        position = track_match.group(1).strip()
    if not position:
        position = extract_series_position(raw_title) or extract_series_position(path.stem)

    genre = fields.get(TagField.GENRE, "").strip()
    isbn = fields.get(TagField.ISBN, "").strip()
    keywords = fields.get(TagField.KEYWORDS, "")

    record = AudiobookMetadata(
        id=f"{PROVIDER_FILE}:{path}",
        provider=PROVIDER_FILE,
        title=title.strip(),
        subtitle=subtitle.strip(),
        authors=authors,
        narrator=fields.get(TagField.COMPOSER, "").strip(),
        series=series,
        series_position=position,
        description=fields.get(TagField.COMMENT, "").strip(),
        publisher=fields.get(TagField.PUBLISHER, "").strip(),
        published_date=fields.get(TagField.DATE, "").strip(),
        categories=(genre,) if genre else (),
        language=fields.get(TagField.LANGUAGE, "").strip(),
        identifiers=(_isbn_identifier(isbn),) if isbn else (),
        user_tags=tuple(t.strip() for t in keywords.split(",") if t.strip()),
    )
    if technical is not None:
        record = with_technical(record, technical)
    return record


def with_technical(record: AudiobookMetadata, technical: AudiobookMetadata) -> AudiobookMetadata:
    """Copy stream facts from ``technical`` onto ``record``."""
    return replace(
        record,
        audio_duration_ms=technical.audio_duration_ms,
        bitrate=technical.bitrate,
        channels=technical.channels,
        sample_rate=technical.sample_rate,
        file_format=technical.file_format,
    )


def technical_record(
    *,
    length_seconds: float | None,
    bitrate_bps: int | None,
    channels: int | None,
    sample_rate: int | None,
    file_format: str,
) -> AudiobookMetadata:
    """Build a record holding only stream facts; duration in whole milliseconds."""
    return AudiobookMetadata(
        audio_duration_ms=int(length_seconds * 1000) if length_seconds else None,
        bitrate=bitrate_bps // 1000 if bitrate_bps else None,
        channels=channels or None,
        sample_rate=sample_rate or None,
        file_format=file_format,
    )
