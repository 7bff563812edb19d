# ABOUTME: Public API for the earshelf metadata cache storage layer.
# ABOUTME: Exports connection management, the two-namespace cache, and record serialization.

from earshelf.db.cache import CacheNamespace, MetadataCache, file_key, normalize_query
from earshelf.db.connection import DEFAULT_DB_PATH, open_cache
from earshelf.db.mapping import metadata_from_dict, metadata_to_dict

__all__ = [
    "DEFAULT_DB_PATH",
    "CacheNamespace",
    "MetadataCache",
    "file_key",
    "metadata_from_dict",
    "metadata_to_dict",
    "normalize_query",
    "open_cache",
]
