# ABOUTME: Converts between AudiobookMetadata and JSON-safe dicts for cache payloads.
# ABOUTME: Handles nested identifiers, bookmarks, and notes; tolerant of missing or unknown keys.

import json
from dataclasses import asdict, fields
from typing import Any

from earshelf.metadata.types import AudiobookMetadata, Bookmark, Identifier, Note

_FIELD_NAMES = frozenset(f.name for f in fields(AudiobookMetadata))
_TUPLE_FIELDS = frozenset({"authors", "categories", "user_tags"})


def metadata_to_dict(metadata: AudiobookMetadata) -> dict[str, Any]:
    """Convert a record to a plain dict (tuples become lists)."""
    return asdict(metadata)


def metadata_from_dict(data: dict[str, Any]) -> AudiobookMetadata:
    """Rebuild a record from ``metadata_to_dict`` output.

    Unknown keys are ignored and missing keys take their defaults, so payloads
    written by older versions still load.
    """
    kwargs: dict[str, Any] = {k: v for k, v in data.items() if k in _FIELD_NAMES}
    for name in _TUPLE_FIELDS:
        if name in kwargs:
            kwargs[name] = tuple(kwargs[name] or ())
    if "identifiers" in kwargs:
        kwargs["identifiers"] = tuple(Identifier(**i) for i in kwargs["identifiers"] or ())
    if "bookmarks" in kwargs:
        kwargs["bookmarks"] = tuple(Bookmark(**b) for b in kwargs["bookmarks"] or ())
    if "notes" in kwargs:
        kwargs["notes"] = tuple(Note(**n) for n in kwargs["notes"] or ())
    return AudiobookMetadata(**kwargs)


def metadata_to_json(metadata: AudiobookMetadata) -> str:
    return json.dumps(metadata_to_dict(metadata), ensure_ascii=False, sort_keys=True)


def metadata_from_json(payload: str) -> AudiobookMetadata:
    return metadata_from_dict(json.loads(payload))
