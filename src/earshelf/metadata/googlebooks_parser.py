# ABOUTME: Parsing functions for Google Books API JSON responses.
# ABOUTME: Converts volume resources (volumeInfo, seriesInfo, imageLinks) into AudiobookMetadata.

import re
from typing import Any

from earshelf.metadata.types import AudiobookMetadata, Identifier

PROVIDER_NAME = "googlebooks"

# Largest first.
_IMAGE_SIZES = ("extraLarge", "large", "medium", "small", "thumbnail", "smallThumbnail")

_SERIES_IN_TEXT_RE = re.compile(r"(?P<series>.*?)\s*(?:#|Book\s+)(?P<position>\d+)", re.IGNORECASE)


def select_thumbnail(image_links: dict[str, Any]) -> str:
    """Pick the largest available image link, upgraded to https."""
    for size in _IMAGE_SIZES:
        url = image_links.get(size)
        if url:
            if url.startswith("http:"):
                url = "https:" + url[len("http:"):]
            return url
    return ""


def _parse_series(volume_info: dict[str, Any]) -> tuple[str, str]:
    series = ""
    position = ""
    series_info = volume_info.get("seriesInfo") or {}
    volume_series = series_info.get("volumeSeries") or []
    if volume_series:
        first = volume_series[0]
        series = ((first.get("series") or {}).get("title")) or ""
        if first.get("orderNumber") is not None:
            position = str(first["orderNumber"])
    if not position and series_info.get("bookDisplayNumber") is not None:
        position = str(series_info["bookDisplayNumber"])

    if not series:
        for text in (volume_info.get("title") or "", volume_info.get("subtitle") or ""):
            m = _SERIES_IN_TEXT_RE.match(text)
            if m and m.group("series").strip():
                return m.group("series").strip(" ,:-"), m.group("position")
    return series, position


def parse_volume(data: dict[str, Any]) -> AudiobookMetadata | None:
    """Parse a single Google Books volume resource.

    Returns None when the resource carries no volumeInfo.
    """
    volume_info = data.get("volumeInfo") or {}
    if not volume_info:
        return None

    identifiers = tuple(
        Identifier(entry["type"], entry["identifier"])
        for entry in volume_info.get("industryIdentifiers") or []
        if entry.get("type") and entry.get("identifier")
    )
    series, position = _parse_series(volume_info)

    return AudiobookMetadata(
        id=data.get("id") or "",
        provider=PROVIDER_NAME,
        title=volume_info.get("title") or "",
        subtitle=volume_info.get("subtitle") or "",
        authors=tuple(volume_info.get("authors") or ()),
        series=series,
        series_position=position,
        description=volume_info.get("description") or "",
        publisher=volume_info.get("publisher") or "",
        published_date=volume_info.get("publishedDate") or "",
        categories=tuple(volume_info.get("categories") or ()),
        main_category=volume_info.get("mainCategory") or "",
        language=volume_info.get("language") or "",
        identifiers=identifiers,
        page_count=volume_info.get("pageCount"),
        average_rating=volume_info.get("averageRating"),
        ratings_count=volume_info.get("ratingsCount"),
        thumbnail_url=select_thumbnail(volume_info.get("imageLinks") or {}),
    )


def parse_search_results(data: dict[str, Any]) -> list[AudiobookMetadata]:
    """Parse a volumes search response; a missing ``items`` key means no results."""
    results: list[AudiobookMetadata] = []
    for item in data.get("items") or []:
        metadata = parse_volume(item)
        if metadata is not None and metadata.title:
            results.append(metadata)
    return results
