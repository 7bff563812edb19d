# ABOUTME: Shared pytest fixtures for earshelf tests.
# ABOUTME: Builds synthetic MP3 and M4B files, tiny cover images, a temp cache, and test settings.

import logging
import struct
from pathlib import Path

import pytest
from mutagen.id3 import COMM, ID3, TALB, TDRC, TIT2, TPE1

from earshelf.config import Settings
from earshelf.db.cache import MetadataCache

# MPEG-1 Layer III, 128 kbps, 44.1 kHz, no padding: 417-byte frames.
_MP3_FRAME = b"\xff\xfb\x90\x64" + b"\x00" * 413
_MP3_FRAME_COUNT = 40

JPEG_BYTES = (
    b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    + b"\x00" * 64
    + b"\xff\xd9"
)
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 64


def build_mp3_bytes(frames: int = _MP3_FRAME_COUNT) -> bytes:
    """Raw MPEG audio frames with no tag."""
    return _MP3_FRAME * frames


def _atom(kind: bytes, payload: bytes) -> bytes:
    return struct.pack(">I", 8 + len(payload)) + kind + payload


def build_m4b_bytes(timescale: int = 1000, duration: int = 5000, mdat_size: int = 8192) -> bytes:
    """A minimal MP4 container: ftyp, moov with one sound track, and an mdat blob."""
    ftyp = _atom(b"ftyp", b"M4B " + struct.pack(">I", 0) + b"M4B mp42isom")
    mvhd = _atom(
        b"mvhd",
        b"\x00\x00\x00\x00"
        + struct.pack(">IIII", 0, 0, timescale, duration)
        + b"\x00" * 80,
    )
    mdhd = _atom(
        b"mdhd",
        b"\x00\x00\x00\x00"
        + struct.pack(">IIII", 0, 0, timescale, duration)
        + b"\x55\xc4\x00\x00",
    )
    hdlr = _atom(
        b"hdlr",
        b"\x00\x00\x00\x00" + b"\x00\x00\x00\x00" + b"soun" + b"\x00" * 12 + b"SoundHandler\x00",
    )
    minf = _atom(b"minf", b"")
    mdia = _atom(b"mdia", mdhd + hdlr + minf)
    trak = _atom(b"trak", mdia)
    moov = _atom(b"moov", mvhd + trak)
    mdat = _atom(b"mdat", b"\x00" * mdat_size)
    return ftyp + moov + mdat


@pytest.fixture
def fixtures_dir() -> Path:
    """Path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def untagged_mp3(tmp_path: Path) -> Path:
    """An MP3 with audio frames and no ID3 tag."""
    path = tmp_path / "untagged.mp3"
    path.write_bytes(build_mp3_bytes())
    return path


@pytest.fixture
def tagged_mp3(tmp_path: Path) -> Path:
    """An MP3 whose ID3 tag holds a complete record."""
    path = tmp_path / "tagged.mp3"
    path.write_bytes(build_mp3_bytes())
    tags = ID3()
    tags.add(TIT2(encoding=3, text=["The Name of the Wind"]))
    tags.add(TPE1(encoding=3, text=["Patrick Rothfuss"]))
    tags.add(TALB(encoding=3, text=["The Kingkiller Chronicle Book 1"]))
    tags.add(TDRC(encoding=3, text=["2007"]))
    tags.add(COMM(encoding=3, lang="eng", desc="", text=["A young man grows into a legend."]))
    tags.save(path)
    return path


@pytest.fixture
def partial_mp3(tmp_path: Path) -> Path:
    """An MP3 whose tag only has a title, so it is not comprehensive."""
    path = tmp_path / "partial.mp3"
    path.write_bytes(build_mp3_bytes())
    tags = ID3()
    tags.add(TIT2(encoding=3, text=["Storm Front"]))
    tags.save(path)
    return path


@pytest.fixture
def untagged_m4b(tmp_path: Path) -> Path:
    """An M4B with a sound track and no ilst atom."""
    path = tmp_path / "untagged.m4b"
    path.write_bytes(build_m4b_bytes())
    return path


@pytest.fixture
def jpeg_cover(tmp_path: Path) -> Path:
    """A tiny JPEG file on disk."""
    path = tmp_path / "cover.jpg"
    path.write_bytes(JPEG_BYTES)
    return path


@pytest.fixture
def png_cover(tmp_path: Path) -> Path:
    """A tiny PNG file on disk."""
    path = tmp_path / "cover.png"
    path.write_bytes(PNG_BYTES)
    return path


@pytest.fixture
def cache(tmp_path: Path):
    """A fresh metadata cache in the temp directory."""
    store = MetadataCache.open(tmp_path / "cache.db")
    yield store
    store.close()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated to the temp directory, without ffmpeg strategies."""
    return Settings(
        cache_path=tmp_path / "cache.db",
        covers_dir=tmp_path / "covers",
        max_parallel_jobs=2,
        use_ffmpeg=False,
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """A config.toml isolating the CLI to the temp directory, without ffmpeg."""
    path = tmp_path / "config.toml"
    path.write_text(
        f"cache_path = '{tmp_path / 'cache.db'}'\n"
        f"covers_dir = '{tmp_path / 'covers'}'\n"
        "use_ffmpeg = false\n"
        "max_parallel_jobs = 2\n"
    )
    return path


@pytest.fixture(autouse=True)
def _reset_earshelf_logger():
    """Undo CLI logging setup so log capture works in every test."""
    yield
    logger = logging.getLogger("earshelf")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
