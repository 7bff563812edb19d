# ABOUTME: Atom-based tag codec for M4B/M4A audiobooks using mutagen's MP4 support.
# ABOUTME: Maps iTunes atoms and com.apple.iTunes freeform atoms; cover art is a typed covr blob.

import logging
from pathlib import Path

from mutagen import MutagenError
from mutagen.mp4 import MP4, MP4Cover, MP4FreeForm

from earshelf.formats.base import (
    CodecError,
    NotTagged,
    Picture,
    TagField,
    fields_to_metadata,
    metadata_to_fields,
    technical_record,
)
from earshelf.metadata.types import AudiobookMetadata

logger = logging.getLogger(__name__)

_FREEFORM = "----:com.apple.iTunes:"

MP4_ALIASES: dict[TagField, tuple[str, ...]] = {
    TagField.TITLE: ("\xa9nam",),
    TagField.ARTIST: ("\xa9ART",),
    TagField.ALBUM_ARTIST: ("aART",),
    TagField.ALBUM: ("\xa9alb",),
    TagField.COMPOSER: ("\xa9wrt", f"{_FREEFORM}COMPOSER", f"{_FREEFORM}NARRATOR"),
    TagField.GENRE: ("\xa9gen",),
    TagField.DATE: ("\xa9day",),
    TagField.TRACK: (f"{_FREEFORM}SERIES-PART", "trkn"),
    TagField.COMMENT: ("\xa9cmt", "desc", "ldes"),
    TagField.PUBLISHER: (f"{_FREEFORM}PUBLISHER", "\xa9pub"),
    TagField.LANGUAGE: (f"{_FREEFORM}LANGUAGE",),
    TagField.ISBN: (f"{_FREEFORM}ISBN",),
    TagField.KEYWORDS: (f"{_FREEFORM}KEYWORDS",),
}

# Atom each field is written to; trkn is also set when the position is an integer.
_WRITE_KEYS: dict[TagField, str] = {
    TagField.TITLE: "\xa9nam",
    TagField.ARTIST: "\xa9ART",
    TagField.ALBUM_ARTIST: "aART",
    TagField.ALBUM: "\xa9alb",
    TagField.COMPOSER: "\xa9wrt",
    TagField.GENRE: "\xa9gen",
    TagField.DATE: "\xa9day",
    TagField.TRACK: f"{_FREEFORM}SERIES-PART",
    TagField.COMMENT: "\xa9cmt",
    TagField.PUBLISHER: f"{_FREEFORM}PUBLISHER",
    TagField.LANGUAGE: f"{_FREEFORM}LANGUAGE",
    TagField.ISBN: f"{_FREEFORM}ISBN",
    TagField.KEYWORDS: f"{_FREEFORM}KEYWORDS",
}


def _atom_text(tags, key: str) -> str:
    values = tags.get(key)
    if not values:
        return ""
    first = values[0]
    if key == "trkn":
        return str(first[0]) if first and first[0] else ""
    if isinstance(first, bytes):
        return first.decode("utf-8", errors="replace").strip()
    return str(first).strip()


def _read_fields(tags) -> dict[TagField, str]:
    fields: dict[TagField, str] = {}
    for field, aliases in MP4_ALIASES.items():
        for alias in aliases:
            value = _atom_text(tags, alias)
            if value:
                fields[field] = value
                break
    return fields


class Mp4Codec:
    """Tag codec for MP4-family audiobooks (.m4b, .m4a, .mp4)."""

    extensions = frozenset({".m4b", ".m4a", ".mp4"})

    def _load(self, path: Path) -> MP4:
        try:
            return MP4(path)
        except MutagenError as exc:
            raise CodecError(f"Cannot read MP4 container {path}: {exc}") from exc

    def _technical(self, audio: MP4, path: Path) -> AudiobookMetadata:
        info = audio.info
        return technical_record(
            length_seconds=info.length,
            bitrate_bps=info.bitrate,
            channels=info.channels,
            sample_rate=info.sample_rate,
            file_format=path.suffix.lower().lstrip("."),
        )

    def read(self, path: Path) -> AudiobookMetadata:
        """Read the modelled atoms.

        Raises:
            NotTagged: When the file has no ilst atom or none of the modelled fields.
            CodecError: When the container cannot be parsed.
        """
        audio = self._load(path)
        technical = self._technical(audio, path)
        if audio.tags is None:
            raise NotTagged(path, technical)
        fields = _read_fields(audio.tags)
        if not fields:
            raise NotTagged(path, technical)
        return fields_to_metadata(fields, path, technical)

    def read_picture(self, path: Path) -> Picture | None:
        audio = self._load(path)
        if audio.tags is None:
            return None
        covers = audio.tags.get("covr") or []
        if not covers:
            return None
        cover = covers[0]
        mime = "image/png" if cover.imageformat == MP4Cover.FORMAT_PNG else "image/jpeg"
        return Picture(data=bytes(cover), mime_type=mime)

    def write(self, path: Path, metadata: AudiobookMetadata, cover: Picture | None = None) -> None:
        """Update the modelled atoms in place, keeping any other atoms."""
        audio = self._load(path)
        if audio.tags is None:
            audio.add_tags()
        self._apply(audio, metadata, cover)
        self._save(audio, path)

    def replace(self, path: Path, metadata: AudiobookMetadata, cover: Picture | None = None) -> None:
        """Build a fresh ilst from the record; the audio track and its duration are untouched."""
        audio = self._load(path)
        if audio.tags is None:
            audio.add_tags()
        for key in list(audio.tags.keys()):
            del audio.tags[key]
        self._apply(audio, metadata, cover)
        self._save(audio, path)

    def strip_picture(self, path: Path) -> None:
        audio = self._load(path)
        if audio.tags is None or "covr" not in audio.tags:
            return
        del audio.tags["covr"]
        self._save(audio, path)

    def _apply(self, audio: MP4, metadata: AudiobookMetadata, cover: Picture | None) -> None:
        tags = audio.tags
        for field, value in metadata_to_fields(metadata).items():
            for alias in MP4_ALIASES[field]:
                if alias in tags:
                    del tags[alias]
            key = _WRITE_KEYS[field]
            if key.startswith(_FREEFORM):
                tags[key] = [MP4FreeForm(value.encode("utf-8"))]
            else:
                tags[key] = [value]
            if field is TagField.TRACK and value.isdigit():
                tags["trkn"] = [(int(value), 0)]

        if cover is not None:
            image_format = (
                MP4Cover.FORMAT_PNG if cover.mime_type == "image/png" else MP4Cover.FORMAT_JPEG
            )
            tags["covr"] = [MP4Cover(cover.data, imageformat=image_format)]

    def _save(self, audio: MP4, path: Path) -> None:
        try:
            audio.save()
        except MutagenError as exc:
            raise CodecError(f"Cannot write MP4 tags to {path}: {exc}") from exc
