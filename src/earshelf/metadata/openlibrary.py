# ABOUTME: Open Library metadata provider implementation.
# ABOUTME: Searches openlibrary.org by free-text query and fetches works by id.

import asyncio
import logging
from dataclasses import replace

from earshelf.metadata.http import (
    HttpClient,
    MetadataFetchError,
    ProviderAuthError,
    ProviderUnavailable,
)
from earshelf.metadata.openlibrary_parser import (
    PROVIDER_NAME,
    parse_author_name,
    parse_search_results,
    parse_works_author_keys,
    parse_works_description,
    parse_works_metadata,
)
from earshelf.metadata.types import AudiobookMetadata

logger = logging.getLogger(__name__)

_OL_BASE = "https://openlibrary.org"
_SEARCH_LIMIT = 10
_ENRICH_DESCRIPTION_LIMIT = 3


class OpenLibraryProvider:
    """Metadata provider backed by the Open Library API.

    Uses dependency-injected HttpClient for testability. Transport failures
    and auth failures propagate as ProviderUnavailable/ProviderAuthError so
    the resolver can decide what to do; other HTTP errors yield no results.
    """

    def __init__(self, http_client: HttpClient) -> None:
        self._http = http_client

    @property
    def name(self) -> str:
        return PROVIDER_NAME

    async def search(self, query: str) -> list[AudiobookMetadata]:
        """Search Open Library with a free-text query.

        The top results are enriched with descriptions from the works endpoint.
        """
        if not query.strip():
            return []
        params = {"q": query, "limit": str(_SEARCH_LIMIT)}
        try:
            data = await self._http.get(f"{_OL_BASE}/search.json", params=params)
        except (ProviderUnavailable, ProviderAuthError):
            raise
        except MetadataFetchError as exc:
            logger.warning("Search failed for %r: %s", query, exc)
            return []

        results = parse_search_results(data)
        if not results:
            return []
        return await self._enrich_descriptions(results)

    async def get_by_id(self, provider_id: str) -> AudiobookMetadata | None:
        """Fetch a work by its Open Library id (``OL123W`` or ``/works/OL123W``)."""
        work_id = provider_id.rsplit("/", 1)[-1]
        if not work_id:
            return None
        try:
            data = await self._http.get(f"{_OL_BASE}/works/{work_id}.json")
        except (ProviderUnavailable, ProviderAuthError):
            raise
        except MetadataFetchError as exc:
            logger.warning("Works lookup failed for %s: %s", work_id, exc)
            return None

        metadata = parse_works_metadata(data, work_id)
        authors = await self._resolve_authors(parse_works_author_keys(data))
        if authors:
            metadata = replace(metadata, authors=tuple(authors))
        return metadata

    async def _resolve_authors(self, author_keys: list[str]) -> list[str]:
        """Fetch author names from the authors endpoint, skipping failures."""
        authors: list[str] = []
        for author_key in author_keys:
            try:
                author_data = await self._http.get(f"{_OL_BASE}{author_key}.json")
            except MetadataFetchError:
                continue
            name = parse_author_name(author_data)
            if name:
                authors.append(name)
        return authors

    async def _enrich_descriptions(
        self, results: list[AudiobookMetadata]
    ) -> list[AudiobookMetadata]:
        """Fetch descriptions from the works endpoint for the top results."""

        async def enrich(metadata: AudiobookMetadata) -> AudiobookMetadata:
            if metadata.description or not metadata.id:
                return metadata
            try:
                works_data = await self._http.get(f"{_OL_BASE}/works/{metadata.id}.json")
            except MetadataFetchError:
                return metadata
            description = parse_works_description(works_data)
            return replace(metadata, description=description) if description else metadata

        head = await asyncio.gather(*(enrich(m) for m in results[:_ENRICH_DESCRIPTION_LIMIT]))
        return [*head, *results[_ENRICH_DESCRIPTION_LIMIT:]]
