# ABOUTME: Parsing functions for Open Library API JSON responses.
# ABOUTME: Converts OL-specific data structures into AudiobookMetadata instances.

import re
from typing import Any

from earshelf.metadata.types import AudiobookMetadata, Identifier

PROVIDER_NAME = "openlibrary"

_COVERS_BASE_URL = "https://covers.openlibrary.org/b"

# Series hints embedded in titles, tried in order.
_TITLE_SERIES_PATTERNS = (
    re.compile(r"^.*?\((?P<series>[^()]+?),?\s+(?:Book\s*|#)(?P<position>\d+)\)"),
    re.compile(r"^(?P<series>.*?)\s*\((?:Book|#)\s*(?P<position>\d+)\)"),
    re.compile(r"^(?P<series>.*?)\s*\[(?:Book|#)\s*(?P<position>\d+)\]"),
    re.compile(r"^(?P<series>.*?)\s*(?:Series)?\s*Book\s*(?P<position>\d+)"),
    re.compile(r"^(?P<series>.*?)\s*#(?P<position>\d+)"),
)


def extract_series_from_title(title: str) -> tuple[str, str]:
    """Return (series, position) when the title embeds a series marker."""
    for pattern in _TITLE_SERIES_PATTERNS:
        m = pattern.match(title)
        if m and m.group("series").strip():
            return m.group("series").strip(" ,:-"), m.group("position")
    return "", ""


def build_cover_url(cover_id: int | str, size: str = "L") -> str:
    """Build an Open Library cover image URL from a numeric cover id.

    Args:
        cover_id: The ``cover_i`` / ``covers`` value from a search or works response.
        size: Image size: "S" (small), "M" (medium), or "L" (large).
    """
    return f"{_COVERS_BASE_URL}/id/{cover_id}-{size}.jpg"


def _work_id(key: str) -> str:
    """'/works/OL123W' -> 'OL123W'."""
    return key.rsplit("/", 1)[-1] if key else ""


def _strings(values: Any) -> tuple[str, ...]:
    if not isinstance(values, list):
        return ()
    return tuple(str(v) for v in values if v)


def parse_works_description(data: dict[str, Any]) -> str:
    """Extract the description from an Open Library Works response.

    Handles the OL quirk where description can be either a plain string
    or a dict with {"type": ..., "value": "actual text"}.
    """
    desc = data.get("description")
    if isinstance(desc, str):
        return desc
    if isinstance(desc, dict):
        return desc.get("value") or ""
    return ""


def parse_search_doc(doc: dict[str, Any]) -> AudiobookMetadata:
    """Parse a single doc of an Open Library Search API response."""
    title = doc.get("title") or ""
    series, position = extract_series_from_title(title)

    thumbnail = ""
    if doc.get("cover_i"):
        thumbnail = build_cover_url(doc["cover_i"])
    elif doc.get("cover_edition_key"):
        thumbnail = f"{_COVERS_BASE_URL}/olid/{doc['cover_edition_key']}-L.jpg"

    publishers = _strings(doc.get("publisher"))
    languages = _strings(doc.get("language"))
    year = doc.get("first_publish_year")

    identifiers: list[Identifier] = []
    for isbn in _strings(doc.get("isbn"))[:2]:
        identifiers.append(Identifier("ISBN_13" if len(isbn) == 13 else "ISBN_10", isbn))
    if doc.get("key"):
        identifiers.append(Identifier("openlibrary_work", doc["key"]))

    subjects = _strings(doc.get("subject"))
    return AudiobookMetadata(
        id=_work_id(doc.get("key", "")),
        provider=PROVIDER_NAME,
        title=title,
        subtitle=doc.get("subtitle") or "",
        authors=_strings(doc.get("author_name")),
        series=series,
        series_position=position,
        publisher=publishers[0] if publishers else "",
        published_date=str(year) if year else "",
        categories=subjects[:10],
        language=languages[0] if languages else "",
        identifiers=tuple(identifiers),
        page_count=doc.get("number_of_pages_median"),
        average_rating=doc.get("ratings_average"),
        ratings_count=doc.get("ratings_count"),
        thumbnail_url=thumbnail,
    )


def parse_search_results(data: dict[str, Any]) -> list[AudiobookMetadata]:
    """Parse an Open Library Search API response into a list of records."""
    return [parse_search_doc(doc) for doc in data.get("docs", []) if doc.get("title")]


def parse_works_metadata(data: dict[str, Any], work_id: str) -> AudiobookMetadata:
    """Parse an Open Library Works endpoint response.

    Authors are not inlined in works responses; their keys are returned by
    ``parse_works_author_keys`` for resolution via the authors endpoint.
    """
    title = data.get("title") or ""
    series, position = extract_series_from_title(title)
    covers = data.get("covers") or []
    thumbnail = build_cover_url(covers[0]) if covers else f"{_COVERS_BASE_URL}/olid/{work_id}-L.jpg"
    return AudiobookMetadata(
        id=work_id,
        provider=PROVIDER_NAME,
        title=title,
        subtitle=data.get("subtitle") or "",
        series=series,
        series_position=position,
        description=parse_works_description(data),
        published_date=str(data.get("first_publish_date") or ""),
        categories=_strings(data.get("subjects"))[:10],
        identifiers=(Identifier("openlibrary_work", f"/works/{work_id}"),),
        thumbnail_url=thumbnail,
    )


def parse_works_author_keys(data: dict[str, Any]) -> list[str]:
    """Works responses store authors as [{author: {key: "/authors/..."}}]."""
    keys: list[str] = []
    for entry in data.get("authors", []):
        key = (entry.get("author") or {}).get("key", "")
        if key:
            keys.append(key)
    return keys


def parse_author_name(data: dict[str, Any]) -> str:
    """Extract the author name from an Open Library Author response."""
    return data.get("name", "")
