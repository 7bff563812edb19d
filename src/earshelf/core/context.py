# ABOUTME: Explicit library context shared by the resolver and persistence engine.
# ABOUTME: Bundles settings, cache, providers, cover store, and codec lookup; built once per run.

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from earshelf.config import Settings
from earshelf.core.covers import CoverStore
from earshelf.db.cache import MetadataCache
from earshelf.formats import codec_for_path
from earshelf.formats.base import TagCodec
from earshelf.metadata.googlebooks import GoogleBooksProvider
from earshelf.metadata.http import EarshelfHttpClient, HttpClient
from earshelf.metadata.openlibrary import OpenLibraryProvider
from earshelf.metadata.provider import MetadataProvider

logger = logging.getLogger(__name__)


@dataclass
class LibraryContext:
    """Everything the resolver and persistence engine need, injected rather than global."""

    settings: Settings
    cache: MetadataCache
    providers: list[MetadataProvider] = field(default_factory=list)
    covers: CoverStore | None = None
    codec_lookup: Callable[[Path], TagCodec] = codec_for_path
    http_client: EarshelfHttpClient | None = None

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
        self.cache.close()


def create_provider(
    name: str, http_client: HttpClient, settings: Settings
) -> MetadataProvider:
    """Instantiate a provider by its configured name.

    Raises:
        ValueError: For an unknown provider name.
    """
    if name == "openlibrary":
        return OpenLibraryProvider(http_client=http_client)
    if name == "googlebooks":
        return GoogleBooksProvider(http_client=http_client, api_key=settings.google_books_api_key)
    raise ValueError(f"Unknown metadata provider: {name}")


def build_context(
    settings: Settings,
    *,
    cache: MetadataCache | None = None,
    providers: list[MetadataProvider] | None = None,
    http_client: EarshelfHttpClient | None = None,
) -> LibraryContext:
    """Wire up a LibraryContext from settings, creating what was not injected."""
    if http_client is None:
        http_client = EarshelfHttpClient(timeout=settings.http_timeout)
    if providers is None:
        providers = [create_provider(name, http_client, settings) for name in settings.providers]
    if cache is None:
        cache = MetadataCache.open(settings.cache_path)
    covers = CoverStore(settings.covers_dir, http_client, download=settings.download_covers)
    logger.debug("Providers in priority order: %s", ", ".join(p.name for p in providers))
    return LibraryContext(
        settings=settings,
        cache=cache,
        providers=providers,
        covers=covers,
        http_client=http_client,
    )
