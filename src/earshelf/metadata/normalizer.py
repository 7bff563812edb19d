# ABOUTME: Search-query building and cleanup of mangled tag, folder, and file names.
# ABOUTME: Splits garbage like "JimButcher-StormFront", strips track/part tokens, parses "Author - Title".

import re
from dataclasses import dataclass, replace
from pathlib import Path

from earshelf.metadata.types import PROVIDER_FILENAME, AudiobookMetadata

# Minimum length for a spaceless string to be considered "concatenated" and worth splitting.
# Shorter strings (e.g. "Dune", "1984") are left alone.
_MIN_CONCAT_LENGTH = 8

# Pre-compiled regexes for normalization detection and splitting.
_CAMEL_CASE_RE = re.compile(r"[a-z][A-Z]")
_CAMEL_LOWER_UPPER_RE = re.compile(r"([a-z\d])([A-Z])")
_CAMEL_UPPER_SEQUENCE_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")
_LETTER_DIGIT_RE = re.compile(r"([a-zA-Z])(\d)")
_DIGIT_LETTER_RE = re.compile(r"(\d)([a-zA-Z])")
_SEPARATOR_RE = re.compile(r"[-_]")

# Common English stop words that appear in titles but not person names.
_TITLE_STOP_WORDS = frozenset(
    {
        "the",
        "a",
        "an",
        "of",
        "and",
        "in",
        "on",
        "at",
        "to",
        "for",
        "by",
        "with",
        "from",
        "is",
        "was",
        "are",
        "were",
        "be",
        "been",
    }
)

# Folder names that say nothing about the book inside them.
GENERIC_FOLDERS = frozenset(
    {"audio", "audiobooks", "audiobook", "books", "files", "media", "library", "mp3", "m4b"}
)

# Words that mark the left side of "X - Y" as a title fragment rather than an author.
_TITLE_KEYWORDS = frozenset({"book", "part", "volume", "chapter", "series"})

_ABRIDGED_RE = re.compile(r"\(\s*(?:un)?abridged\s*\)|\b(?:un)?abridged\b", re.IGNORECASE)
_AUDIOBOOK_WORD_RE = re.compile(r"\baudiobook\b", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_AUTHOR_SPLIT_RE = re.compile(r",|;|\band\b|\s*&\s*")

_LEADING_NUMBER_RE = re.compile(r"^\s*\d+\s*(?:[-_.:)]\s*|\s+)")
_SEGMENT_TOKEN_RE = re.compile(
    r"\b(?:vol(?:ume)?|pt|part|ch(?:apter)?|dis[ck]|cd|track)\.?\s*\d+\b",
    re.IGNORECASE,
)
_QUERY_SEPARATOR_RE = re.compile(r"[_.\-]+")
_BRACKETS_RE = re.compile(r"[\[\](){}]")

_SERIES_POSITION_PATTERNS = (
    re.compile(r"Book\s*(\d+)", re.IGNORECASE),
    re.compile(r"#(\d+)"),
    re.compile(r"\b(\d+)\s*(?:st|nd|rd|th)\s*(?:book|volume)", re.IGNORECASE),
    re.compile(r"(?:book|volume)\s*(\d+)", re.IGNORECASE),
)

# Album values like "The Dresden Files Book 1" or "Dresden Files #1".
_ALBUM_SERIES_RE = re.compile(r"^(?P<series>.*?)(?:\s+Book\s+|\s*#)(?P<position>\d+)\s*$", re.IGNORECASE)


def _needs_normalization(text: str) -> bool:
    """Check whether a title string looks mangled and needs normalization.

    Returns True for CamelCase-joined words, underscore-joined words,
    or long spaceless strings that are likely concatenated.
    """
    text = text.strip()
    if not text:
        return False

    if "_" in text:
        return True

    if _CAMEL_CASE_RE.search(text):
        return True

    # Hyphens are valid separators, so check each segment on its own
    segments = text.split("-") if "-" in text else [text]

    return any(" " not in seg and len(seg) >= _MIN_CONCAT_LENGTH for seg in segments)


def _split_camel_case(text: str) -> list[str]:
    """Split a CamelCase string into individual words.

    Handles boundaries between:
    - lowercase -> uppercase (e.g. "stormF" -> "storm", "F")
    - uppercase sequence -> uppercase+lowercase (e.g. "MP3Audio" -> "MP3", "Audio")
    - letter -> digit and digit -> letter (e.g. "Book3" -> "Book", "3")
    """
    result = _CAMEL_LOWER_UPPER_RE.sub(r"\1_SPLIT_\2", text)
    result = _CAMEL_UPPER_SEQUENCE_RE.sub(r"\1_SPLIT_\2", result)
    result = _LETTER_DIGIT_RE.sub(r"\1_SPLIT_\2", result)
    result = _DIGIT_LETTER_RE.sub(r"\1_SPLIT_\2", result)

    parts = [p for p in result.split("_SPLIT_") if p]
    return parts if parts else [text]


def split_concatenated(text: str) -> str:
    """Split a concatenated/mangled string into space-separated words.

    Pipeline:
    1. Split on hyphens and underscores into segments
    2. Apply CamelCase splitting to each segment
    3. Join everything with spaces

    All-lowercase runs like "stormfront" carry no boundary signal and are kept whole.
    """
    if not _needs_normalization(text):
        return text

    raw_segments = _SEPARATOR_RE.split(text)

    words: list[str] = []
    for segment in raw_segments:
        segment = segment.strip()
        if not segment:
            continue

        words.extend(_split_camel_case(segment))

    return " ".join(words)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_audiobook_title(title: str) -> str:
    """Remove "(Unabridged)" style markers and collapse whitespace."""
    return collapse_whitespace(_ABRIDGED_RE.sub("", title))


def parse_authors(text: str) -> tuple[str, ...]:
    """Split a free-form author string on commas, semicolons, "and", and "&"."""
    if not text:
        return ()
    parts = (collapse_whitespace(p) for p in _AUTHOR_SPLIT_RE.split(text))
    return tuple(p for p in parts if p)


def extract_series_position(text: str) -> str:
    """Pull a series position out of text like "Book 3", "#3", or "3rd Volume"."""
    for pattern in _SERIES_POSITION_PATTERNS:
        m = pattern.search(text)
        if m:
            return m.group(1)
    return ""


def split_album_series(album: str) -> tuple[str, str]:
    """Split an album tag like "Dresden Files Book 1" into (series, position).

    Returns (album, "") when no trailing position is present.
    """
    m = _ALBUM_SERIES_RE.match(album.strip())
    if m and m.group("series").strip():
        return m.group("series").strip(), m.group("position")
    return album.strip(), ""


def _clean_name_for_query(name: str) -> str:
    """Shared cleanup for folder and file names used as search queries."""
    text = _ABRIDGED_RE.sub(" ", name.replace("_", " "))
    text = _AUDIOBOOK_WORD_RE.sub(" ", text)
    text = _LEADING_NUMBER_RE.sub("", text)
    text = _SEGMENT_TOKEN_RE.sub(" ", text)
    text = _BRACKETS_RE.sub(" ", text)
    if _needs_normalization(text.replace(" - ", " ")):
        text = " ".join(split_concatenated(word) for word in text.split())
    text = _QUERY_SEPARATOR_RE.sub(" ", text)
    return collapse_whitespace(text)


def clean_filename_query(path: Path) -> str:
    """Build a search query from a file name.

    Strips the extension, a leading track number, volume/part/chapter/disc
    tokens, and abridgement markers; turns ``_ . -`` separators into spaces
    and collapses whitespace.
    """
    return _clean_name_for_query(path.stem)


def clean_folder_query(path: Path) -> str | None:
    """Build a search query from the file's parent folder name.

    Returns None for generic container folders like "Audiobooks".
    """
    folder = path.parent.name
    if not folder or folder.strip().lower() in GENERIC_FOLDERS:
        return None
    query = _clean_name_for_query(folder)
    return query or None


def build_metadata_query(metadata: AudiobookMetadata) -> str | None:
    """Build "title primary-author series" from a partial record, if it has a title."""
    title = clean_audiobook_title(metadata.title)
    if not title:
        return None
    parts = [title, metadata.primary_author]
    if metadata.series and metadata.series.lower() not in title.lower():
        parts.append(metadata.series)
    return collapse_whitespace(" ".join(p for p in parts if p))


def _is_likely_person_name(text: str) -> bool:
    """Heuristic check whether a string looks like a person's name.

    Recognizes 2-3 capitalized words (including single-letter initials)
    without common stop words.
    """
    words = text.split()

    if len(words) < 2 or len(words) > 3:
        return False

    for word in words:
        if not word[0].isupper():
            return False

    return not any(w.lower().strip(".") in _TITLE_STOP_WORDS for w in words)


def _looks_like_title(text: str) -> bool:
    return any(word in _TITLE_KEYWORDS for word in text.lower().split())


def _detect_author_in_title(title: str) -> tuple[str, str | None]:
    """Try to detect an author name embedded at the start of a title string.

    Checks if the first 2 or 3 words look like a person name. If so, splits
    them off as the author and returns the remainder as the title.

    Returns:
        (cleaned_title, detected_author) with author None if not detected.
    """
    words = title.split()

    for name_len in (3, 2):
        if len(words) <= name_len:
            continue
        candidate = " ".join(words[:name_len])
        if _is_likely_person_name(candidate):
            remaining = " ".join(words[name_len:])
            return remaining, candidate

    return title, None


# Author values that indicate missing/unknown authorship.
_UNKNOWN_AUTHORS = frozenset({"unknown", "unknown author", "various", "anonymous", ""})

# "Author - Title" or "Author - [Series NN] - Title"
_AUTHOR_DASH_TITLE_RE = re.compile(
    r"^(?P<author>.+?)\s+-\s+(?:\[(?P<series>[^\]]+)\]\s+-\s+)?(?P<title>.+)$"
)
# "Title by Author" with author as 2-3 capitalized words
_TITLE_BY_AUTHOR_RE = re.compile(
    r"^(?P<title>.+?)\s+by\s+(?P<author>[A-Z][a-z.]*(?:\s+[A-Z][a-z.]*)+)$"
)
# "Series Book 3 - Title"
_SERIES_BOOK_TITLE_RE = re.compile(
    r"^(?P<series>.+?)\s+Book\s+(?P<index>\d+)\s+-\s+(?P<title>.+)$", re.IGNORECASE
)
# Series index inside brackets: "Dresden Files 01" or "Dresden Files 1"
_SERIES_INDEX_RE = re.compile(r"^(?P<name>.+?)\s+(?P<index>\d+)$")


@dataclass
class _StructuralMatch:
    """Result of detecting a structural pattern in a title string."""

    title: str
    author: str = ""
    series: str = ""
    series_position: str = ""


def _parse_series_bracket(series_text: str) -> tuple[str, str]:
    """Parse a series bracket like 'Dresden Files 01' into name and position."""
    m = _SERIES_INDEX_RE.match(series_text.strip())
    if m:
        return m.group("name"), str(int(m.group("index")))
    return series_text.strip(), ""


def _detect_structural_pattern(title: str) -> _StructuralMatch | None:
    """Detect 'Author - Title', 'Author - [Series] - Title', 'Title by Author', 'Series Book N - Title'."""
    m = _AUTHOR_DASH_TITLE_RE.match(title)
    if m:
        candidate_author = m.group("author").strip()
        if _is_likely_person_name(candidate_author) and not _looks_like_title(candidate_author):
            series_name = ""
            series_position = ""
            if m.group("series"):
                series_name, series_position = _parse_series_bracket(m.group("series"))
            return _StructuralMatch(
                title=m.group("title").strip(),
                author=candidate_author,
                series=series_name,
                series_position=series_position,
            )

    m = _TITLE_BY_AUTHOR_RE.match(title)
    if m:
        candidate_author = m.group("author").strip()
        if _is_likely_person_name(candidate_author):
            return _StructuralMatch(title=m.group("title").strip(), author=candidate_author)

    m = _SERIES_BOOK_TITLE_RE.match(title)
    if m:
        return _StructuralMatch(
            title=m.group("title").strip(),
            series=m.group("series").strip(),
            series_position=m.group("index"),
        )

    return None


def parse_filename(path: Path) -> AudiobookMetadata | None:
    """Derive a partial record from a file name such as "01 - Jim Butcher - Storm Front.mp3".

    Returns None when the name carries no recognizable author/title structure.
    """
    stem = _ABRIDGED_RE.sub(" ", path.stem)
    stem = _AUDIOBOOK_WORD_RE.sub(" ", stem)
    stem = _LEADING_NUMBER_RE.sub("", stem)
    stem = collapse_whitespace(stem.replace("_", " "))
    structural = _detect_structural_pattern(stem)
    if structural is None or not structural.title:
        return None
    return AudiobookMetadata(
        id=f"{PROVIDER_FILENAME}:{path.name}",
        provider=PROVIDER_FILENAME,
        title=structural.title,
        authors=(structural.author,) if structural.author else (),
        series=structural.series,
        series_position=structural.series_position,
    )


@dataclass
class NormalizationResult:
    """Result of normalizing a tag-derived AudiobookMetadata record.

    Attributes:
        original: The unmodified input metadata.
        normalized: The cleaned metadata (same object as original if unmodified).
        was_modified: Whether any fields were changed.
    """

    original: AudiobookMetadata
    normalized: AudiobookMetadata
    was_modified: bool


def _has_valid_authors(meta: AudiobookMetadata) -> bool:
    """Check whether metadata has meaningful author information."""
    if not meta.authors:
        return False
    return not all(a.strip().lower() in _UNKNOWN_AUTHORS for a in meta.authors)


def normalize_metadata(metadata: AudiobookMetadata) -> NormalizationResult:
    """Normalize mangled tag metadata for better search queries.

    Strips placeholder authors, removes abridgement markers, then applies
    structural detection ("Author - Title") or title splitting (CamelCase,
    digits, separators) with author detection. The original record is kept intact.
    """
    modified = False
    title = metadata.title
    authors = metadata.authors
    series = metadata.series
    series_position = metadata.series_position

    if not _has_valid_authors(metadata) and metadata.authors:
        authors = ()
        modified = True

    cleaned = clean_audiobook_title(title)
    if cleaned != title:
        title = cleaned
        modified = True

    structural = _detect_structural_pattern(title) if not authors else None
    if structural and structural.author:
        title = structural.title
        authors = (structural.author,)
        series = structural.series or series
        series_position = structural.series_position or series_position
        modified = True
    elif _needs_normalization(title):
        title = split_concatenated(title)
        modified = True
        if not authors:
            cleaned_title, detected_author = _detect_author_in_title(title)
            if detected_author:
                title = cleaned_title
                authors = (detected_author,)

    if not modified:
        return NormalizationResult(original=metadata, normalized=metadata, was_modified=False)

    normalized = replace(
        metadata,
        title=title,
        authors=authors,
        series=series,
        series_position=series_position,
    )
    return NormalizationResult(original=metadata, normalized=normalized, was_modified=True)
