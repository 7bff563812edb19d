# ABOUTME: Frame-based tag codec for MP3 files using mutagen's ID3 support.
# ABOUTME: Probes every historical frame alias per field; writes v2.4 frames plus APIC cover art.

import logging
from pathlib import Path

from mutagen import MutagenError
from mutagen.id3 import (
    APIC,
    COMM,
    ID3,
    TALB,
    TCOM,
    TCON,
    TDRC,
    TIT2,
    TLAN,
    TPE1,
    TPE2,
    TPUB,
    TRCK,
    TXXX,
    ID3NoHeaderError,
)
from mutagen.id3 import delete as delete_id3
from mutagen.mp3 import MP3

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

# Reader probes aliases left to right and takes the first non-empty value.
# v2.2 identifiers are normally upgraded by mutagen on load but are kept for
# files it leaves untranslated.
ID3_ALIASES: dict[TagField, tuple[str, ...]] = {
    TagField.TITLE: ("TIT2", "TT2"),
    TagField.ARTIST: ("TPE1", "TP1"),
    TagField.ALBUM_ARTIST: ("TPE2", "TP2"),
    TagField.ALBUM: ("TALB", "TAL"),
    TagField.COMPOSER: ("TCOM", "TCM"),
    TagField.GENRE: ("TCON", "TCO"),
    TagField.DATE: ("TDRC", "TYER", "TYE", "TDRL"),
    TagField.TRACK: ("TRCK", "TRK"),
    TagField.COMMENT: ("COMM", "COM", "TXXX:DESCRIPTION"),
    TagField.PUBLISHER: ("TPUB", "TPB", "TXXX:PUBLISHER"),
    TagField.LANGUAGE: ("TLAN", "TXXX:LANGUAGE"),
    TagField.ISBN: ("TXXX:ISBN",),
    TagField.KEYWORDS: ("TXXX:KEYWORDS",),
}

_TXXX_DESCRIPTIONS = {
    TagField.ISBN: "ISBN",
    TagField.KEYWORDS: "KEYWORDS",
}

_TEXT_FRAMES = {
    TagField.TITLE: TIT2,
    TagField.ARTIST: TPE1,
    TagField.ALBUM_ARTIST: TPE2,
    TagField.ALBUM: TALB,
    TagField.COMPOSER: TCOM,
    TagField.GENRE: TCON,
    TagField.DATE: TDRC,
    TagField.TRACK: TRCK,
    TagField.PUBLISHER: TPUB,
    TagField.LANGUAGE: TLAN,
}

_COVER_TYPE = 3  # front cover


def _frame_text(tags: ID3, frame_id: str) -> str:
    for frame in tags.getall(frame_id):
        text = getattr(frame, "text", None)
        if text:
            value = str(text[0]).strip()
            if value:
                return value
    return ""


def _read_fields(tags: ID3) -> dict[TagField, str]:
    fields: dict[TagField, str] = {}
    for field, aliases in ID3_ALIASES.items():
        for alias in aliases:
            value = _frame_text(tags, alias)
            if value:
                fields[field] = value
                break
    return fields


class Id3Codec:
    """Tag codec for MP3 files with ID3v2 tags."""

    extensions = frozenset({".mp3"})

    def _load(self, path: Path) -> MP3:
        try:
            return MP3(path)
        except MutagenError as exc:
            raise CodecError(f"Cannot read MP3 container {path}: {exc}") from exc

    def _technical(self, audio: MP3) -> AudiobookMetadata:
        info = audio.info
        return technical_record(
            length_seconds=info.length,
            bitrate_bps=info.bitrate,
            channels=info.channels,
            sample_rate=info.sample_rate,
            file_format="mp3",
        )

    def read(self, path: Path) -> AudiobookMetadata:
        """Read the modelled fields from an MP3's ID3 tag.

        Raises:
            NotTagged: When the file has no ID3 tag or none of the modelled fields.
            CodecError: When the MPEG stream cannot be parsed.
        """
        audio = self._load(path)
        technical = self._technical(audio)
        if audio.tags is None:
            raise NotTagged(path, technical)
        fields = _read_fields(audio.tags)
        if not fields:
            raise NotTagged(path, technical)
        return fields_to_metadata(fields, path, technical)

    def read_picture(self, path: Path) -> Picture | None:
        try:
            tags = ID3(path)
        except ID3NoHeaderError:
            return None
        except MutagenError as exc:
            raise CodecError(f"Cannot read ID3 tag of {path}: {exc}") from exc
        frames = tags.getall("APIC")
        if not frames:
            return None
        front = [f for f in frames if f.type == _COVER_TYPE]
        frame = (front or frames)[0]
        return Picture(data=bytes(frame.data), mime_type=frame.mime or "image/jpeg")

    def write(self, path: Path, metadata: AudiobookMetadata, cover: Picture | None = None) -> None:
        """Update the modelled frames in place, keeping any other frames."""
        try:
            tags = ID3(path)
        except ID3NoHeaderError:
            tags = ID3()
        except MutagenError as exc:
            raise CodecError(f"Cannot read ID3 tag of {path}: {exc}") from exc
        self._apply(tags, metadata, cover)
        self._save(tags, path)

    def replace(self, path: Path, metadata: AudiobookMetadata, cover: Picture | None = None) -> None:
        """Drop every existing tag and write a fresh one built from the record."""
        try:
            delete_id3(path)
        except MutagenError as exc:
            raise CodecError(f"Cannot remove ID3 tag from {path}: {exc}") from exc
        tags = ID3()
        self._apply(tags, metadata, cover)
        self._save(tags, path)

    def strip_picture(self, path: Path) -> None:
        try:
            tags = ID3(path)
        except ID3NoHeaderError:
            return
        except MutagenError as exc:
            raise CodecError(f"Cannot read ID3 tag of {path}: {exc}") from exc
        if tags.getall("APIC"):
            tags.delall("APIC")
            self._save(tags, path)

    def _apply(self, tags: ID3, metadata: AudiobookMetadata, cover: Picture | None) -> None:
        for field, value in metadata_to_fields(metadata).items():
            for alias in ID3_ALIASES[field]:
                tags.delall(alias)
            if field in _TEXT_FRAMES:
                tags.add(_TEXT_FRAMES[field](encoding=3, text=[value]))
            elif field is TagField.COMMENT:
                tags.add(COMM(encoding=3, lang="eng", desc="", text=[value]))
            else:
                tags.add(TXXX(encoding=3, desc=_TXXX_DESCRIPTIONS[field], text=[value]))

        if cover is not None:
            tags.delall("APIC")
            tags.add(
                APIC(
                    encoding=3,
                    mime=cover.mime_type,
                    type=_COVER_TYPE,
                    desc="Cover",
                    data=cover.data,
                )
            )

    def _save(self, tags: ID3, path: Path) -> None:
        try:
            tags.save(path)
        except MutagenError as exc:
            raise CodecError(f"Cannot write ID3 tag to {path}: {exc}") from exc
