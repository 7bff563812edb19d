# ABOUTME: Transactional metadata persistence: backup, write a temp copy, verify, then swap.
# ABOUTME: Tries write strategies in order; the original file is restored byte-for-byte on any failure.

import asyncio
import contextlib
import logging
import os
import shutil
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path

from earshelf.core.context import LibraryContext
from earshelf.core.strategies import WriteStrategy, default_strategies, run_in_thread
from earshelf.formats.base import CodecError, TagCodec
from earshelf.metadata.types import AudiobookMetadata, is_remote_url

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup"
MIN_SIZE_RATIO = 0.7


class PersistenceError(Exception):
    """Base class for persistence failures."""


class VerificationFailed(PersistenceError):
    """Raised when a strategy's output does not pass post-write checks."""


class AllStrategiesExhausted(PersistenceError):
    """Every applicable strategy failed; the original file is untouched."""

    def __init__(self, path: Path, attempts: list["StrategyAttempt"]) -> None:
        tried = ", ".join(f"{a.strategy} ({a.error})" for a in attempts) or "none applicable"
        super().__init__(f"All write strategies failed for {path}: {tried}")
        self.path = path
        self.attempts = attempts


@dataclass
class StrategyAttempt:
    """Outcome of one strategy inside its own transaction."""

    strategy: str
    success: bool
    error: str | None = None


@dataclass
class PersistResult:
    """Outcome of a persist call."""

    path: Path
    success: bool
    strategy: str | None = None
    attempts: list[StrategyAttempt] = field(default_factory=list)
    error: PersistenceError | None = None


class WriteTransaction:
    """Backup, temp output, verification, and commit/rollback for one attempt.

    All methods are blocking; the engine runs them in worker threads.
    """

    def __init__(self, path: Path, codec: TagCodec | None, cover_requested: bool) -> None:
        self.path = path
        self.backup = path.with_name(path.name + BACKUP_SUFFIX)
        self.temp: Path | None = None
        self._codec = codec
        self._cover_requested = cover_requested
        self._original_size = 0
        self._backed_up = False

    def begin(self) -> Path:
        """Back up the original and reserve a temp output beside it.

        Raises:
            PersistenceError: A file already occupies the backup path.
        """
        if self.backup.exists():
            raise PersistenceError(f"Backup path {self.backup} already exists")
        self._original_size = self.path.stat().st_size
        try:
            shutil.copy2(self.path, self.backup)
        except BaseException:
            self.backup.unlink(missing_ok=True)
            raise
        self._backed_up = True
        fd, name = tempfile.mkstemp(
            prefix=f".{self.path.stem}.", suffix=self.path.suffix, dir=self.path.parent
        )
        os.close(fd)
        self.temp = Path(name)
        return self.temp

    def verify(self) -> None:
        """Check the temp output before it may replace the original.

        Raises:
            VerificationFailed: Output missing, implausibly small, or missing
                the requested cover.
        """
        if self.temp is None or not self.temp.exists():
            raise VerificationFailed("Output file was not created")
        size = self.temp.stat().st_size
        if size < MIN_SIZE_RATIO * self._original_size:
            raise VerificationFailed(
                f"Output is {size} bytes, less than {MIN_SIZE_RATIO:.0%} "
                f"of the original {self._original_size}"
            )
        if not self._cover_requested:
            return
        if self._codec is None:
            raise VerificationFailed("Cannot verify cover: no codec for this format")
        try:
            picture = self._codec.read_picture(self.temp)
        except CodecError as exc:
            raise VerificationFailed(f"Cannot read back output: {exc}") from exc
        if picture is None or len(picture) == 0:
            raise VerificationFailed("Requested cover is missing from the output")

    def commit(self) -> None:
        """Copy the verified output over the original and clean up."""
        if self.temp is None:
            raise PersistenceError("Transaction was not started")
        shutil.copyfile(self.temp, self.path)
        self.temp.unlink(missing_ok=True)
        self.backup.unlink(missing_ok=True)
        self._backed_up = False

    def rollback(self) -> None:
        """Discard the output and restore the original from the backup."""
        if self.temp is not None:
            self.temp.unlink(missing_ok=True)
        if not self._backed_up:
            return
        shutil.copy2(self.backup, self.path)
        self.backup.unlink()
        self._backed_up = False


class PersistenceEngine:
    """Writes records into audio files, one verified transaction per strategy attempt.

    Calls for the same path are serialized; calls for different paths run
    concurrently up to ``max_parallel_jobs``.
    """

    def __init__(
        self,
        context: LibraryContext,
        strategies: list[WriteStrategy] | None = None,
    ) -> None:
        self._ctx = context
        self._strategies = (
            strategies
            if strategies is not None
            else default_strategies(context.codec_lookup, use_ffmpeg=context.settings.use_ffmpeg)
        )
        self._semaphore = asyncio.Semaphore(context.settings.max_parallel_jobs)
        self._in_flight: set[Path] = set()
        self._condition = asyncio.Condition()

    @property
    def strategies(self) -> list[WriteStrategy]:
        return list(self._strategies)

    async def persist(
        self,
        path: Path,
        metadata: AudiobookMetadata,
        cover_path: Path | str | None = None,
    ) -> PersistResult:
        """Write ``metadata`` (and optionally a cover) into the file at ``path``.

        Strategy failures never raise; they are reported on the result.
        """
        path = Path(path).resolve()
        if not path.is_file():
            return PersistResult(
                path, False, error=PersistenceError(f"File not found: {path}")
            )
        cover = self._select_cover(metadata, cover_path)

        async with self._claim(path):
            async with self._semaphore:
                return await self._run_strategies(path, metadata, cover)

    def _select_cover(self, metadata: AudiobookMetadata, cover_path: Path | str | None) -> Path | None:
        if cover_path is not None:
            if is_remote_url(str(cover_path)):
                logger.warning("Ignoring remote cover %s; covers must be local files", cover_path)
                return None
            cover = Path(cover_path)
            if not cover.is_file():
                logger.warning("Ignoring missing cover file %s", cover)
                return None
            return cover
        thumbnail = metadata.thumbnail_url
        if thumbnail and not is_remote_url(thumbnail) and Path(thumbnail).is_file():
            return Path(thumbnail)
        return None

    @contextlib.asynccontextmanager
    async def _claim(self, path: Path) -> AsyncIterator[None]:
        async with self._condition:
            if path in self._in_flight:
                logger.debug("Waiting for in-flight write to %s", path)
            await self._condition.wait_for(lambda: path not in self._in_flight)
            self._in_flight.add(path)
        try:
            yield
        finally:
            await asyncio.shield(self._release(path))

    async def _release(self, path: Path) -> None:
        async with self._condition:
            self._in_flight.discard(path)
            self._condition.notify_all()

    def _codec(self, path: Path) -> TagCodec | None:
        try:
            return self._ctx.codec_lookup(path)
        except CodecError:
            return None

    async def _run_strategies(
        self, path: Path, metadata: AudiobookMetadata, cover: Path | None
    ) -> PersistResult:
        attempts: list[StrategyAttempt] = []
        for strategy in self._strategies:
            if not strategy.applicable(path, cover):
                logger.debug("Strategy %s not applicable to %s", strategy.name, path.name)
                continue
            if not await strategy.available():
                logger.debug("Strategy %s unavailable", strategy.name)
                continue
            attempt = await self._attempt(strategy, path, metadata, cover)
            attempts.append(attempt)
            if attempt.success:
                logger.info("Wrote metadata to %s using %s", path.name, strategy.name)
                await asyncio.to_thread(self._ctx.cache.files.delete, path)
                return PersistResult(path, True, strategy.name, attempts)

        error = AllStrategiesExhausted(path, attempts)
        logger.error("%s", error)
        return PersistResult(path, False, None, attempts, error)

    async def _attempt(
        self,
        strategy: WriteStrategy,
        path: Path,
        metadata: AudiobookMetadata,
        cover: Path | None,
    ) -> StrategyAttempt:
        txn = WriteTransaction(path, self._codec(path), cover is not None)
        try:
            temp = await run_in_thread(txn.begin)
            await strategy.write(path, temp, metadata, cover)
            await run_in_thread(txn.verify)
            await run_in_thread(txn.commit)
        except asyncio.CancelledError:
            logger.warning("Write to %s cancelled, restoring original", path.name)
            await asyncio.shield(run_in_thread(txn.rollback))
            raise
        except Exception as exc:
            logger.warning("Strategy %s failed for %s: %s", strategy.name, path.name, exc)
            await run_in_thread(txn.rollback)
            return StrategyAttempt(strategy.name, False, str(exc))
        return StrategyAttempt(strategy.name, True)
