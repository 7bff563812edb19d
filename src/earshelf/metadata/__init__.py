# ABOUTME: Metadata package for audiobook metadata representation, merging, matching, and providers.
# ABOUTME: Exports the core AudiobookMetadata dataclass used throughout earshelf.

from earshelf.metadata.candidate import MetadataCandidate
from earshelf.metadata.merge import MergePolicy, enhance, merge, replace_book, update_version
from earshelf.metadata.normalizer import NormalizationResult, normalize_metadata
from earshelf.metadata.provider import MetadataProvider
from earshelf.metadata.types import AudiobookMetadata, Bookmark, Identifier, Note

__all__ = [
    "AudiobookMetadata",
    "Bookmark",
    "Identifier",
    "MergePolicy",
    "MetadataCandidate",
    "MetadataProvider",
    "NormalizationResult",
    "Note",
    "enhance",
    "merge",
    "normalize_metadata",
    "replace_book",
    "update_version",
]
