# ABOUTME: Library-level orchestration: discover audio files, resolve them in batches, optionally persist.
# ABOUTME: Aggregates per-file outcomes into a LibraryReport for the CLI.

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from earshelf.core.persistence import PersistenceEngine, PersistResult
from earshelf.core.resolver import MetadataResolver, Resolution, ResolutionSource
from earshelf.formats import SUPPORTED_EXTENSIONS
from earshelf.metadata.http import ProviderAuthError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5

# Called once per finished file, for progress reporting.
ProgressFn = Callable[[Resolution], None]


@dataclass
class LibraryReport:
    """Summary of a library run."""

    resolved: list[Resolution] = field(default_factory=list)
    unresolved: list[Path] = field(default_factory=list)
    written: list[PersistResult] = field(default_factory=list)
    failed: list[PersistResult] = field(default_factory=list)
    auth_errors: list[ProviderAuthError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.resolved) + len(self.unresolved)


def find_audio_files(path: Path) -> list[Path]:
    """Return supported audio files: the path itself, or all under a directory, sorted."""
    if path.is_file():
        return [path] if path.suffix.lower() in SUPPORTED_EXTENSIONS else []
    return sorted(
        p for p in path.rglob("*")
        if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
    )


async def process_library(
    paths: list[Path],
    resolver: MetadataResolver,
    engine: PersistenceEngine | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    write: bool = False,
    *,
    on_progress: ProgressFn | None = None,
) -> LibraryReport:
    """Resolve every path, ``batch_size`` at a time, writing results back when asked.

    Files whose own tags were already comprehensive are not rewritten.
    """
    if write and engine is None:
        raise ValueError("write=True requires a PersistenceEngine")

    report = LibraryReport()
    for start in range(0, len(paths), batch_size):
        batch = paths[start:start + batch_size]
        logger.debug("Processing batch of %d starting at %d", len(batch), start)
        resolutions = await asyncio.gather(
            *(_process_one(path, resolver, engine, write, report, on_progress) for path in batch)
        )
        for resolution in resolutions:
            report.auth_errors.extend(resolution.auth_errors)
            if resolution.resolved:
                report.resolved.append(resolution)
            else:
                report.unresolved.append(resolution.path)
    return report


async def _process_one(
    path: Path,
    resolver: MetadataResolver,
    engine: PersistenceEngine | None,
    write: bool,
    report: LibraryReport,
    on_progress: ProgressFn | None,
) -> Resolution:
    resolution = await resolver.resolve(path)
    rewrite = resolution.resolved and resolution.source is not ResolutionSource.FILE_TAGS
    if write and engine is not None and rewrite:
        result = await engine.persist(path, resolution.metadata)
        if result.success:
            report.written.append(result)
        else:
            report.failed.append(result)
    if on_progress is not None:
        on_progress(resolution)
    return resolution
