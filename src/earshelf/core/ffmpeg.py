# ABOUTME: ffmpeg executable discovery and metadata-rewrite command construction.
# ABOUTME: Shared by the in-process binding strategy and the subprocess strategy.

import asyncio
import logging
import os
import shutil
from collections.abc import Mapping
from pathlib import Path

from earshelf.formats.base import TagField, metadata_to_fields
from earshelf.metadata.types import AudiobookMetadata

logger = logging.getLogger(__name__)

WELL_KNOWN_LOCATIONS = (
    "/usr/bin/ffmpeg",
    "/usr/local/bin/ffmpeg",
    "/opt/homebrew/bin/ffmpeg",
    r"C:\ffmpeg\bin\ffmpeg.exe",
    r"C:\Program Files\ffmpeg\bin\ffmpeg.exe",
    r"C:\tools\ffmpeg\bin\ffmpeg.exe",
)

PROBE_TIMEOUT = 10.0

# Logical field -> ffmpeg global metadata keys. COMMENT is written twice so
# both MP4 (desc/ldes) and ID3 (COMM) readers find it.
FFMPEG_KEYS: dict[TagField, tuple[str, ...]] = {
    TagField.TITLE: ("title",),
    TagField.ARTIST: ("artist",),
    TagField.ALBUM_ARTIST: ("album_artist",),
    TagField.COMPOSER: ("composer",),
    TagField.ALBUM: ("album",),
    TagField.TRACK: ("track",),
    TagField.PUBLISHER: ("publisher",),
    TagField.DATE: ("date",),
    TagField.GENRE: ("genre",),
    TagField.COMMENT: ("comment", "description"),
    TagField.LANGUAGE: ("language",),
    TagField.ISBN: ("ISBN",),
    TagField.KEYWORDS: ("keywords",),
}


class FfmpegError(Exception):
    """Raised when an ffmpeg run exits non-zero."""

    def __init__(self, returncode: int, stderr: str) -> None:
        tail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"ffmpeg exited with {returncode}: {tail}")
        self.returncode = returncode
        self.stderr = stderr


def metadata_pairs(metadata: AudiobookMetadata) -> list[str]:
    """Render a record as ``key=value`` strings for ``-metadata``."""
    pairs: list[str] = []
    for tag_field, value in metadata_to_fields(metadata).items():
        for key in FFMPEG_KEYS[tag_field]:
            pairs.append(f"{key}={value}")
    return pairs


def build_arguments(
    source: Path,
    dest: Path,
    metadata: AudiobookMetadata,
    cover: Path | None = None,
) -> list[str]:
    """Build the argument list (without the executable) for a stream-copy retag."""
    args = ["-i", str(source)]
    if cover is not None:
        args += [
            "-i", str(cover),
            "-map", "0:a",
            "-map", "1:v",
            "-c:a", "copy",
            "-c:v", "copy",
            "-disposition:v:0", "attached_pic",
        ]
    else:
        args += ["-map", "0", "-c", "copy"]
    for pair in metadata_pairs(metadata):
        args += ["-metadata", pair]
    args += ["-y", str(dest)]
    return args


def candidate_executables(env: Mapping[str, str] | None = None) -> list[str]:
    """List executables to probe, in order: $FFMPEG, PATH, well-known locations."""
    env = os.environ if env is None else env
    candidates: list[str] = []
    if env.get("FFMPEG"):
        candidates.append(env["FFMPEG"])
    on_path = shutil.which("ffmpeg", path=env.get("PATH"))
    if on_path:
        candidates.append(on_path)
    candidates.extend(WELL_KNOWN_LOCATIONS)

    seen: set[str] = set()
    unique = []
    for candidate in candidates:
        if candidate not in seen:
            seen.add(candidate)
            unique.append(candidate)
    return unique


async def probe(executable: str, timeout: float = PROBE_TIMEOUT) -> bool:
    """True when ``executable -version`` runs and identifies itself as ffmpeg."""
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError:
        return False
    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return False
    return process.returncode == 0 and b"ffmpeg version" in stdout


async def find_ffmpeg(env: Mapping[str, str] | None = None) -> str | None:
    """Return the first working ffmpeg executable, or None."""
    for candidate in candidate_executables(env):
        if await probe(candidate):
            logger.debug("Using ffmpeg at %s", candidate)
            return candidate
    logger.debug("No working ffmpeg executable found")
    return None


async def run_ffmpeg(executable: str, args: list[str]) -> None:
    """Run ffmpeg to completion, killing it if the caller is cancelled.

    Raises:
        FfmpegError: When ffmpeg exits non-zero.
    """
    logger.debug("Running %s %s", executable, " ".join(args))
    process = await asyncio.create_subprocess_exec(
        executable,
        "-hide_banner",
        "-loglevel", "error",
        *args,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        _, stderr = await process.communicate()
    except asyncio.CancelledError:
        process.kill()
        await process.wait()
        raise
    if process.returncode != 0:
        raise FfmpegError(process.returncode, stderr.decode("utf-8", errors="replace"))
