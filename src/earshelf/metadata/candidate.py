# ABOUTME: MetadataCandidate wraps AudiobookMetadata with match confidence and source info.
# ABOUTME: Produced by the resolver when scoring provider results against a search query.

from dataclasses import dataclass

from earshelf.metadata.types import AudiobookMetadata


@dataclass(frozen=True)
class MetadataCandidate:
    """A scored candidate record returned by a metadata provider.

    Carries the provider name and the candidate's position in that provider's
    result list so ties can be broken deterministically.
    """

    metadata: AudiobookMetadata
    confidence: float
    source: str
    rank: int = 0

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            msg = f"confidence must be between 0.0 and 1.0, got {self.confidence}"
            raise ValueError(msg)

    @property
    def source_id(self) -> str:
        return self.metadata.id
