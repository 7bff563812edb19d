# ABOUTME: Ordered write strategies used by the persistence engine to retag a temp copy.
# ABOUTME: ffmpeg binding, ffmpeg subprocess, full tag replacement, and two-stage cover write.

import asyncio
import logging
import shutil
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Protocol, TypeVar, runtime_checkable

import ffmpeg

from earshelf.core.ffmpeg import FfmpegError, build_arguments, find_ffmpeg, metadata_pairs, run_ffmpeg
from earshelf.formats import SUPPORTED_EXTENSIONS, codec_for_path
from earshelf.formats.base import CodecError, TagCodec, load_picture
from earshelf.metadata.types import AudiobookMetadata

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StrategyError(Exception):
    """Raised when a strategy fails to produce its output file."""


async def run_in_thread(func: Callable[..., T], *args) -> T:
    """Run a blocking call in a worker thread.

    On cancellation the call is allowed to finish before CancelledError
    propagates, so callers never clean up a file a thread is still writing.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait([task])
        raise


@runtime_checkable
class WriteStrategy(Protocol):
    """One way of writing a record into a copy of an audio file.

    ``write`` never touches ``source``; it produces ``dest``, which the
    engine verifies before it replaces the original.
    """

    name: str

    async def available(self) -> bool: ...

    def applicable(self, path: Path, cover: Path | None) -> bool: ...

    async def write(
        self,
        source: Path,
        dest: Path,
        metadata: AudiobookMetadata,
        cover: Path | None,
    ) -> None: ...


class _FfmpegStrategy:
    """Shared executable lookup for the two ffmpeg-backed strategies."""

    name = "ffmpeg"

    def __init__(self, executable: str | None = None, env: Mapping[str, str] | None = None) -> None:
        self._executable = executable
        self._env = env
        self._probed = executable is not None

    async def _find(self) -> str | None:
        if not self._probed:
            self._executable = await find_ffmpeg(self._env)
            self._probed = True
        return self._executable

    async def available(self) -> bool:
        return await self._find() is not None

    def applicable(self, path: Path, cover: Path | None) -> bool:
        return path.suffix.lower() in SUPPORTED_EXTENSIONS


class FfmpegBindingStrategy(_FfmpegStrategy):
    """Stream-copy retag through the ffmpeg-python graph binding."""

    name = "ffmpeg-binding"

    @staticmethod
    def _run(
        executable: str,
        source: Path,
        dest: Path,
        metadata: AudiobookMetadata,
        cover: Path | None,
    ) -> None:
        # One -metadata flag per pair; ffmpeg ignores the index on global metadata.
        options: dict = {f"metadata:g:{i}": pair for i, pair in enumerate(metadata_pairs(metadata))}
        source_stream = ffmpeg.input(str(source))
        if cover is not None:
            streams = [source_stream["a"], ffmpeg.input(str(cover))["v"]]
            options.update({"c:a": "copy", "c:v": "copy", "disposition:v:0": "attached_pic"})
        else:
            # All streams, existing attached picture included.
            streams = [source_stream]
            options.update({"map": "0", "c": "copy"})
        (
            ffmpeg.output(*streams, str(dest), **options)
            .run(cmd=executable, overwrite_output=True, quiet=True)
        )

    async def write(
        self,
        source: Path,
        dest: Path,
        metadata: AudiobookMetadata,
        cover: Path | None,
    ) -> None:
        executable = await self._find()
        if executable is None:
            raise StrategyError("ffmpeg is not available")
        try:
            await run_in_thread(self._run, executable, source, dest, metadata, cover)
        except ffmpeg.Error as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
            raise StrategyError(f"ffmpeg binding failed: {stderr or exc}") from exc


class FfmpegSubprocessStrategy(_FfmpegStrategy):
    """Stream-copy retag by running the discovered ffmpeg executable."""

    name = "ffmpeg-subprocess"

    async def write(
        self,
        source: Path,
        dest: Path,
        metadata: AudiobookMetadata,
        cover: Path | None,
    ) -> None:
        executable = await self._find()
        if executable is None:
            raise StrategyError("ffmpeg is not available")
        try:
            await run_ffmpeg(executable, build_arguments(source, dest, metadata, cover))
        except (FfmpegError, OSError) as exc:
            raise StrategyError(str(exc)) from exc


class _CodecStrategy:
    """Copy the source to the destination, then rewrite tags with a mutagen codec."""

    name = "codec"

    def __init__(self, codec_lookup: Callable[[Path], TagCodec] = codec_for_path) -> None:
        self._codec_lookup = codec_lookup

    async def available(self) -> bool:
        return True

    def applicable(self, path: Path, cover: Path | None) -> bool:
        try:
            self._codec_lookup(path)
        except CodecError:
            return False
        return True

    def _apply(self, codec: TagCodec, dest: Path, metadata: AudiobookMetadata, cover: Path | None) -> None:
        raise NotImplementedError

    def _run(self, source: Path, dest: Path, metadata: AudiobookMetadata, cover: Path | None) -> None:
        codec = self._codec_lookup(source)
        shutil.copyfile(source, dest)
        self._apply(codec, dest, metadata, cover)

    async def write(
        self,
        source: Path,
        dest: Path,
        metadata: AudiobookMetadata,
        cover: Path | None,
    ) -> None:
        try:
            await run_in_thread(self._run, source, dest, metadata, cover)
        except (CodecError, OSError) as exc:
            raise StrategyError(f"{self.name} failed: {exc}") from exc


class FullReplacementStrategy(_CodecStrategy):
    """Drop every existing tag and write the record (and cover) from scratch."""

    name = "full-replacement"

    def _apply(self, codec: TagCodec, dest: Path, metadata: AudiobookMetadata, cover: Path | None) -> None:
        codec.replace(dest, metadata, load_picture(cover) if cover else None)


class TwoStageCoverStrategy(_CodecStrategy):
    """Strip embedded pictures in one save, then write tags and cover in a second."""

    name = "two-stage-cover"

    def applicable(self, path: Path, cover: Path | None) -> bool:
        return cover is not None and super().applicable(path, cover)

    def _apply(self, codec: TagCodec, dest: Path, metadata: AudiobookMetadata, cover: Path | None) -> None:
        codec.strip_picture(dest)
        codec.replace(dest, metadata, load_picture(cover) if cover else None)


def default_strategies(
    codec_lookup: Callable[[Path], TagCodec] = codec_for_path,
    *,
    use_ffmpeg: bool = True,
    env: Mapping[str, str] | None = None,
) -> list[WriteStrategy]:
    """The standard strategy order: in-process ffmpeg, ffmpeg subprocess, then mutagen."""
    strategies: list[WriteStrategy] = []
    if use_ffmpeg:
        strategies += [FfmpegBindingStrategy(env=env), FfmpegSubprocessStrategy(env=env)]
    strategies += [FullReplacementStrategy(codec_lookup), TwoStageCoverStrategy(codec_lookup)]
    return strategies
