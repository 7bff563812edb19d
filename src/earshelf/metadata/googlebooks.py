# ABOUTME: Google Books metadata provider implementation.
# ABOUTME: Searches the volumes API with an optional API key; 401/403 surface as ProviderAuthError.

import logging

from earshelf.metadata.googlebooks_parser import PROVIDER_NAME, parse_search_results, parse_volume
from earshelf.metadata.http import (
    HttpClient,
    MetadataFetchError,
    ProviderAuthError,
    ProviderUnavailable,
)
from earshelf.metadata.types import AudiobookMetadata

logger = logging.getLogger(__name__)

_GB_BASE = "https://www.googleapis.com/books/v1/volumes"
_MAX_RESULTS = 10


class GoogleBooksProvider:
    """Metadata provider backed by the Google Books volumes API."""

    def __init__(self, http_client: HttpClient, api_key: str = "") -> None:
        self._http = http_client
        self._api_key = api_key

    @property
    def name(self) -> str:
        return PROVIDER_NAME

    def _params(self, **params: str) -> dict[str, str]:
        if self._api_key:
            params["key"] = self._api_key
        return params

    async def search(self, query: str) -> list[AudiobookMetadata]:
        if not query.strip():
            return []
        try:
            data = await self._http.get(
                _GB_BASE, params=self._params(q=query, maxResults=str(_MAX_RESULTS))
            )
        except (ProviderUnavailable, ProviderAuthError):
            raise
        except MetadataFetchError as exc:
            logger.warning("Google Books search failed for %r: %s", query, exc)
            return []
        return parse_search_results(data)

    async def get_by_id(self, provider_id: str) -> AudiobookMetadata | None:
        if not provider_id:
            return None
        try:
            data = await self._http.get(f"{_GB_BASE}/{provider_id}", params=self._params())
        except (ProviderUnavailable, ProviderAuthError):
            raise
        except MetadataFetchError as exc:
            logger.warning("Google Books lookup failed for %s: %s", provider_id, exc)
            return None
        return parse_volume(data)
