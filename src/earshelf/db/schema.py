# ABOUTME: SQL DDL statements for the earshelf metadata cache database.
# ABOUTME: One key/value table shared by the query and file namespaces, plus schema versioning.

QUERY_NAMESPACE = "query"
FILE_NAMESPACE = "file"

SCHEMA_V1 = """
-- Resolved metadata records keyed by normalized query or absolute file path
CREATE TABLE metadata_cache (
    namespace  TEXT NOT NULL,
    key        TEXT NOT NULL,
    payload    TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S', 'now')),
    PRIMARY KEY (namespace, key)
);

-- Schema versioning for future migrations
CREATE TABLE schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S', 'now'))
);

INSERT INTO schema_version (version) VALUES (1);
"""

# Migrations as (version, sql) tuples, applied in order past the stored version.
MIGRATIONS: list[tuple[int, str]] = []
