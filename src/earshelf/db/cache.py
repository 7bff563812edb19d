# ABOUTME: Durable two-namespace metadata cache: normalized query -> record and file path -> record.
# ABOUTME: Overwrite-on-write key/value maps over SQLite, serialized by a lock for thread use.

import json
import logging
import re
import sqlite3
import threading
from collections.abc import Callable
from pathlib import Path

from earshelf.db.connection import open_cache
from earshelf.db.mapping import metadata_from_json, metadata_to_json
from earshelf.db.schema import FILE_NAMESPACE, QUERY_NAMESPACE
from earshelf.metadata.types import AudiobookMetadata

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    """Cache key for a search query: case-folded with whitespace collapsed."""
    return _WHITESPACE_RE.sub(" ", query.casefold()).strip()


def file_key(path: str | Path) -> str:
    """Cache key for a file: its absolute, resolved path."""
    return str(Path(path).expanduser().resolve())


class CacheNamespace:
    """One key/value namespace of the metadata cache."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        lock: threading.Lock,
        namespace: str,
        key_fn: Callable[[str], str],
    ) -> None:
        self._conn = conn
        self._lock = lock
        self._namespace = namespace
        self._key_fn = key_fn

    @property
    def namespace(self) -> str:
        return self._namespace

    def get(self, key: str | Path) -> AudiobookMetadata | None:
        """Return the cached record, or None on a miss or unreadable payload."""
        cache_key = self._key_fn(key)
        with self._lock:
            row = self._conn.execute(
                "SELECT payload FROM metadata_cache WHERE namespace = ? AND key = ?",
                (self._namespace, cache_key),
            ).fetchone()
        if row is None:
            return None
        try:
            return metadata_from_json(row["payload"])
        except (json.JSONDecodeError, TypeError, ValueError) as exc:
            logger.warning("Discarding unreadable %s cache entry %r: %s", self._namespace, cache_key, exc)
            return None

    def put(self, key: str | Path, metadata: AudiobookMetadata) -> None:
        """Store a record, overwriting any previous entry for the key."""
        payload = metadata_to_json(metadata)
        with self._lock:
            self._conn.execute(
                "INSERT INTO metadata_cache (namespace, key, payload) VALUES (?, ?, ?) "
                "ON CONFLICT(namespace, key) DO UPDATE SET "
                "payload = excluded.payload, "
                "updated_at = strftime('%Y-%m-%dT%H:%M:%S', 'now')",
                (self._namespace, self._key_fn(key), payload),
            )
            self._conn.commit()

    def delete(self, key: str | Path) -> bool:
        """Remove an entry. Returns True if one existed."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM metadata_cache WHERE namespace = ? AND key = ?",
                (self._namespace, self._key_fn(key)),
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def clear(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM metadata_cache WHERE namespace = ?", (self._namespace,))
            self._conn.commit()

    def __len__(self) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM metadata_cache WHERE namespace = ?", (self._namespace,)
            ).fetchone()
        return row[0]

    def __contains__(self, key: str | Path) -> bool:
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM metadata_cache WHERE namespace = ? AND key = ?",
                (self._namespace, self._key_fn(key)),
            ).fetchone()
        return row is not None


class MetadataCache:
    """Query and file caches sharing one SQLite connection.

    No eviction: entries live until overwritten or explicitly cleared.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()
        self.queries = CacheNamespace(conn, self._lock, QUERY_NAMESPACE, normalize_query)
        self.files = CacheNamespace(conn, self._lock, FILE_NAMESPACE, file_key)

    @classmethod
    def open(cls, path: Path | None = None) -> "MetadataCache":
        return cls(open_cache(path))

    def clear(self) -> None:
        """Remove every entry from both namespaces."""
        with self._lock:
            self._conn.execute("DELETE FROM metadata_cache")
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()
