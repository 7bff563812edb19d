# ABOUTME: Tag codec registry keyed by file extension.
# ABOUTME: Exports the codec contract, errors, and codec_for_path lookup.

from pathlib import Path

from earshelf.formats.base import (
    CodecError,
    NotTagged,
    Picture,
    TagCodec,
    TagField,
    UnsupportedFormatError,
    detect_image_mime,
    load_picture,
)
from earshelf.formats.id3 import Id3Codec
from earshelf.formats.mp4 import Mp4Codec

_CODECS: tuple[TagCodec, ...] = (Id3Codec(), Mp4Codec())

SUPPORTED_EXTENSIONS = frozenset(ext for codec in _CODECS for ext in codec.extensions)


def codec_for_path(path: Path) -> TagCodec:
    """Return the codec handling the file's extension.

    Raises:
        UnsupportedFormatError: If no registered codec handles the extension.
    """
    suffix = path.suffix.lower()
    for codec in _CODECS:
        if suffix in codec.extensions:
            return codec
    raise UnsupportedFormatError(f"Unsupported audio format: {path.suffix or path.name}")


__all__ = [
    "SUPPORTED_EXTENSIONS",
    "CodecError",
    "Id3Codec",
    "Mp4Codec",
    "NotTagged",
    "Picture",
    "TagCodec",
    "TagField",
    "UnsupportedFormatError",
    "codec_for_path",
    "detect_image_mime",
    "load_picture",
]
