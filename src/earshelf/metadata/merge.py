# ABOUTME: Merge policies combining two AudiobookMetadata records (base and incoming).
# ABOUTME: Enhance fills gaps, update-version refreshes descriptive data, replace-book also resets user data.

from dataclasses import replace
from enum import Enum
from typing import Any

from earshelf.metadata.types import AudiobookMetadata

# Field groups. User data never flows from incoming.
DESCRIPTIVE_FIELDS = (
    "title",
    "subtitle",
    "authors",
    "narrator",
    "series",
    "series_position",
    "description",
    "publisher",
    "published_date",
    "categories",
    "main_category",
    "language",
)
CATALOG_FIELDS = (
    "identifiers",
    "page_count",
    "average_rating",
    "ratings_count",
    "thumbnail_url",
)
TECHNICAL_FIELDS = (
    "audio_duration_ms",
    "bitrate",
    "channels",
    "sample_rate",
    "file_format",
)
USER_FIELDS = (
    "user_rating",
    "is_favorite",
    "user_tags",
    "bookmarks",
    "notes",
    "playback_position_ms",
    "last_played_at",
)

_DEFAULTS = AudiobookMetadata()


class MergePolicy(Enum):
    ENHANCE = "enhance"
    UPDATE_VERSION = "update-version"
    REPLACE_BOOK = "replace-book"


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == ()


def enhance(base: AudiobookMetadata, incoming: AudiobookMetadata) -> AudiobookMetadata:
    """Fill base's empty descriptive and catalog fields from incoming.

    Technical facts already extracted from the file are kept; incoming only
    fills a technical field base has no value for. User data always comes
    from base.
    """
    changes: dict[str, Any] = {}
    for name in ("id", "provider", *DESCRIPTIVE_FIELDS, *CATALOG_FIELDS, *TECHNICAL_FIELDS):
        if _is_empty(getattr(base, name)) and not _is_empty(getattr(incoming, name)):
            changes[name] = getattr(incoming, name)
    if not changes:
        return base
    return replace(base, **changes)


def update_version(base: AudiobookMetadata, incoming: AudiobookMetadata) -> AudiobookMetadata:
    """Treat base as a stale version of incoming: descriptive and catalog data from incoming.

    Identity and technical fields stay with base (same physical file), as does
    all user data.
    """
    changes = {name: getattr(incoming, name) for name in (*DESCRIPTIVE_FIELDS, *CATALOG_FIELDS)}
    if incoming.provider:
        changes["provider"] = incoming.provider
    return replace(base, **changes)


def replace_book(base: AudiobookMetadata, incoming: AudiobookMetadata) -> AudiobookMetadata:
    """The file holds a different work: take incoming's descriptive data and reset user data."""
    changes = {name: getattr(incoming, name) for name in (*DESCRIPTIVE_FIELDS, *CATALOG_FIELDS)}
    changes.update({name: getattr(_DEFAULTS, name) for name in USER_FIELDS})
    if incoming.provider:
        changes["provider"] = incoming.provider
    return replace(base, **changes)


_POLICIES = {
    MergePolicy.ENHANCE: enhance,
    MergePolicy.UPDATE_VERSION: update_version,
    MergePolicy.REPLACE_BOOK: replace_book,
}


def merge(
    base: AudiobookMetadata,
    incoming: AudiobookMetadata,
    policy: MergePolicy = MergePolicy.ENHANCE,
) -> AudiobookMetadata:
    """Merge incoming into base using the given policy."""
    return _POLICIES[policy](base, incoming)
