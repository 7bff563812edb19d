# ABOUTME: MetadataProvider protocol defining the contract for catalog sources.
# ABOUTME: Any external catalog API (Open Library, Google Books, etc.) implements this.

from typing import Protocol, runtime_checkable

from earshelf.metadata.types import AudiobookMetadata


@runtime_checkable
class MetadataProvider(Protocol):
    """Protocol for asynchronous catalog lookup services.

    ``search`` returns raw candidate records in the provider's own order; the
    resolver does the scoring. Implementations raise
    ``ProviderUnavailable`` for timeouts and transport failures and
    ``ProviderAuthError`` for credential or quota problems.
    """

    @property
    def name(self) -> str: ...

    async def search(self, query: str) -> list[AudiobookMetadata]: ...

    async def get_by_id(self, provider_id: str) -> AudiobookMetadata | None: ...
