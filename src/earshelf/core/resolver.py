# ABOUTME: Metadata resolver: file cache -> embedded tags -> query cache -> providers -> partial fallback.
# ABOUTME: Degrades to partial data on provider failure; surfaces auth/quota errors separately.

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

from earshelf.core.context import LibraryContext
from earshelf.formats.base import CodecError, NotTagged, TagCodec, with_technical
from earshelf.metadata.candidate import MetadataCandidate
from earshelf.metadata.http import MetadataFetchError, ProviderAuthError
from earshelf.metadata.merge import enhance
from earshelf.metadata.normalizer import (
    build_metadata_query,
    clean_filename_query,
    clean_folder_query,
    normalize_metadata,
    parse_filename,
)
from earshelf.metadata.provider import MetadataProvider
from earshelf.metadata.scoring import rank_candidates
from earshelf.metadata.types import PROVIDER_FILE, AudiobookMetadata

logger = logging.getLogger(__name__)


class ResolutionStatus(Enum):
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


class ResolutionSource(Enum):
    FILE_CACHE = "file-cache"
    FILE_TAGS = "file-tags"
    QUERY_CACHE = "query-cache"
    PROVIDER = "provider"
    PARTIAL = "partial"


class QueryKind(Enum):
    METADATA = "metadata"
    FOLDER = "folder"
    FILENAME = "filename"


@dataclass
class Resolution:
    """Outcome of resolving one file."""

    path: Path
    status: ResolutionStatus
    metadata: AudiobookMetadata | None = None
    source: ResolutionSource | None = None
    query: str = ""
    candidate: MetadataCandidate | None = None
    auth_errors: list[ProviderAuthError] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.status is ResolutionStatus.RESOLVED


@dataclass
class _LocalRecord:
    """What could be learned about a file without asking a provider."""

    extracted: AudiobookMetadata | None
    partial: AudiobookMetadata
    codec: TagCodec | None


class MetadataResolver:
    """Turns a file's local, partial metadata into one confident record.

    Resolution never raises for provider or codec problems: unavailable
    providers count as returning nothing, auth/quota failures are collected
    on the Resolution, and unreadable containers fall back to file-name
    heuristics.
    """

    def __init__(self, context: LibraryContext) -> None:
        self._ctx = context

    @property
    def threshold(self) -> float:
        return self._ctx.settings.match_threshold

    async def resolve(self, path: Path) -> Resolution:
        """Resolve one file to a record, or Unresolved if nothing is known about it."""
        path = Path(path)
        cached = await asyncio.to_thread(self._ctx.cache.files.get, path)
        if cached is not None:
            logger.debug("File cache hit for %s", path)
            return Resolution(
                path, ResolutionStatus.RESOLVED, cached, ResolutionSource.FILE_CACHE
            )

        local = await self._read_local(path)
        if local.extracted is not None and local.extracted.is_comprehensive:
            record = await self._store_file(path, local.extracted, local.codec)
            return Resolution(path, ResolutionStatus.RESOLVED, record, ResolutionSource.FILE_TAGS)

        auth_errors: list[ProviderAuthError] = []
        queries = self._build_queries(path, local.extracted)
        for kind, query in queries:
            logger.debug("Resolving %s with %s query %r", path, kind.value, query)
            resolution = await self._try_query(path, query, local, auth_errors)
            if resolution is not None:
                return resolution

        if not local.partial.is_empty:
            logger.info("No catalog match for %s, keeping partial metadata", path)
            record = await self._store_file(path, local.partial, local.codec)
            return Resolution(
                path,
                ResolutionStatus.RESOLVED,
                record,
                ResolutionSource.PARTIAL,
                query=queries[0][1] if queries else "",
                auth_errors=auth_errors,
            )

        logger.info("Could not resolve %s", path)
        return Resolution(
            path,
            ResolutionStatus.UNRESOLVED,
            query=queries[0][1] if queries else "",
            auth_errors=auth_errors,
        )

    async def search(self, query: str) -> list[MetadataCandidate]:
        """Query every provider and return all candidates ranked best first.

        Auth/quota failures are logged by the provider lookup and otherwise
        treated as an empty result; use resolve() to have them reported.
        """
        records, _ = await self._search_providers(query)
        return rank_candidates(query, records)

    async def local_query(self, path: Path) -> tuple[AudiobookMetadata, str]:
        """Return what the file already says about itself and the primary search query."""
        path = Path(path)
        local = await self._read_local(path)
        queries = self._build_queries(path, local.extracted)
        return local.partial, queries[0][1] if queries else ""

    def invalidate_cache(self, path: Path) -> bool:
        """Forget the resolved record for one file."""
        return self._ctx.cache.files.delete(path)

    def clear_cache(self) -> None:
        """Forget every cached query and file record."""
        self._ctx.cache.clear()

    async def _read_local(self, path: Path) -> _LocalRecord:
        codec: TagCodec | None
        try:
            codec = self._ctx.codec_lookup(path)
        except CodecError as exc:
            logger.warning("%s", exc)
            codec = None

        extracted: AudiobookMetadata | None = None
        technical = AudiobookMetadata()
        if codec is not None:
            try:
                extracted = await asyncio.to_thread(codec.read, path)
            except NotTagged as exc:
                logger.debug("%s", exc)
                technical = exc.technical
            except (CodecError, OSError) as exc:
                logger.warning("Could not read tags from %s: %s", path, exc)

        if extracted is not None:
            return _LocalRecord(extracted=extracted, partial=extracted, codec=codec)

        heuristic = parse_filename(path)
        base = heuristic or AudiobookMetadata(id=f"{PROVIDER_FILE}:{path}")
        return _LocalRecord(extracted=None, partial=with_technical(base, technical), codec=codec)

    def _build_queries(
        self, path: Path, extracted: AudiobookMetadata | None
    ) -> list[tuple[QueryKind, str]]:
        """Primary query first, then at most one alternate (folder <-> filename)."""
        candidates: dict[QueryKind, str | None] = {
            QueryKind.METADATA: (
                build_metadata_query(normalize_metadata(extracted).normalized)
                if extracted is not None
                else None
            ),
            QueryKind.FOLDER: clean_folder_query(path),
            QueryKind.FILENAME: clean_filename_query(path) or None,
        }
        order = [kind for kind in QueryKind if candidates[kind]]
        if not order:
            return []
        primary = order[0]
        queries = [(primary, candidates[primary])]
        alternate = {QueryKind.FOLDER: QueryKind.FILENAME, QueryKind.FILENAME: QueryKind.FOLDER}
        alt_kind = alternate.get(primary)
        alt_query = candidates.get(alt_kind) if alt_kind else None
        if alt_query and alt_query.casefold() != candidates[primary].casefold():
            queries.append((alt_kind, alt_query))
        return queries

    async def _try_query(
        self,
        path: Path,
        query: str,
        local: _LocalRecord,
        auth_errors: list[ProviderAuthError],
    ) -> Resolution | None:
        cached = await asyncio.to_thread(self._ctx.cache.queries.get, query)
        if cached is not None:
            logger.debug("Query cache hit for %r", query)
            record = await self._store_file(path, enhance(local.partial, cached), local.codec)
            return Resolution(
                path,
                ResolutionStatus.RESOLVED,
                record,
                ResolutionSource.QUERY_CACHE,
                query=query,
                auth_errors=auth_errors,
            )

        records, errors = await self._search_providers(query)
        auth_errors.extend(errors)
        ranked = rank_candidates(query, records)
        if not ranked or ranked[0].confidence < self.threshold:
            if ranked:
                logger.info(
                    "Best candidate for %r scored %.3f, below threshold %.2f",
                    query,
                    ranked[0].confidence,
                    self.threshold,
                )
            return None

        best = ranked[0]
        logger.info(
            "Matched %s to %r (%s, score %.3f)",
            path.name,
            best.metadata.title,
            best.source,
            best.confidence,
        )
        await asyncio.to_thread(self._ctx.cache.queries.put, query, best.metadata)
        record = await self._store_file(path, enhance(local.partial, best.metadata), local.codec)
        return Resolution(
            path,
            ResolutionStatus.RESOLVED,
            record,
            ResolutionSource.PROVIDER,
            query=query,
            candidate=best,
            auth_errors=auth_errors,
        )

    async def _search_providers(
        self, query: str
    ) -> tuple[list[tuple[str, AudiobookMetadata]], list[ProviderAuthError]]:
        """Ask every provider concurrently; results keep provider priority order."""
        outcomes = await asyncio.gather(
            *(self._search_one(provider, query) for provider in self._ctx.providers)
        )
        records: list[tuple[str, AudiobookMetadata]] = []
        auth_errors: list[ProviderAuthError] = []
        for provider_records, error in outcomes:
            records.extend(provider_records)
            if error is not None:
                auth_errors.append(error)
        return records, auth_errors

    async def _search_one(
        self, provider: MetadataProvider, query: str
    ) -> tuple[list[tuple[str, AudiobookMetadata]], ProviderAuthError | None]:
        try:
            results = await provider.search(query)
        except ProviderAuthError as exc:
            logger.warning("Provider %s rejected credentials: %s", provider.name, exc)
            return [], exc
        except MetadataFetchError as exc:
            logger.warning("Provider %s unavailable, skipping: %s", provider.name, exc)
            return [], None
        return [(provider.name, record) for record in results], None

    async def _store_file(
        self, path: Path, record: AudiobookMetadata, codec: TagCodec | None
    ) -> AudiobookMetadata:
        if self._ctx.covers is not None:
            record = await self._ctx.covers.localize(path, record, codec)
        if not record.id:
            record = replace(record, id=f"{PROVIDER_FILE}:{path}")
        await asyncio.to_thread(self._ctx.cache.files.put, path, record)
        return record
