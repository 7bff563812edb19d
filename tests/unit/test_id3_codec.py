# ABOUTME: Unit tests for the MP3 ID3 tag codec.
# ABOUTME: Reads, writes, replaces, and strips tags on synthetic MPEG files built in conftest.

from pathlib import Path

import pytest
from mutagen.id3 import ID3, TIT2, TXXX

from earshelf.formats import codec_for_path
from earshelf.formats.base import CodecError, NotTagged, Picture
from earshelf.formats.id3 import Id3Codec
from earshelf.metadata.types import AudiobookMetadata, Identifier
from tests.conftest import JPEG_BYTES

RECORD = AudiobookMetadata(
    title="Storm Front",
    authors=("Jim Butcher",),
    narrator="James Marsters",
    series="The Dresden Files",
    series_position="1",
    description="Harry Dresden is the best at what he does.",
    publisher="Buzzy Multimedia",
    published_date="2002",
    categories=("Fantasy",),
    language="eng",
    identifiers=(Identifier("ISBN_13", "9780451457813"),),
    user_tags=("wizards",),
)


class TestId3Read:
    """Tests for reading ID3 tags."""

    def test_reads_tagged_file(self, tagged_mp3: Path) -> None:
        """Modelled frames decode into a record with stream facts."""
        meta = Id3Codec().read(tagged_mp3)
        assert meta.title == "The Name of the Wind"
        assert meta.authors == ("Patrick Rothfuss",)
        assert meta.series == "The Kingkiller Chronicle"
        assert meta.series_position == "1"
        assert meta.published_date == "2007"
        assert meta.description == "A young man grows into a legend."
        assert meta.file_format == "mp3"
        assert meta.sample_rate == 44100
        assert meta.is_comprehensive is True

    def test_untagged_file_raises_not_tagged(self, untagged_mp3: Path) -> None:
        """A file without an ID3 tag raises NotTagged with stream facts."""
        with pytest.raises(NotTagged) as exc_info:
            Id3Codec().read(untagged_mp3)
        assert exc_info.value.technical.file_format == "mp3"
        assert exc_info.value.technical.audio_duration_ms is not None

    def test_legacy_alias_is_read(self, untagged_mp3: Path) -> None:
        """A publisher stored only in the TXXX fallback alias is still found."""
        tags = ID3()
        tags.add(TXXX(encoding=3, desc="PUBLISHER", text=["Roc"]))
        tags.add(TIT2(encoding=3, text=["Storm Front"]))
        tags.save(untagged_mp3)
        meta = Id3Codec().read(untagged_mp3)
        assert meta.publisher == "Roc"

    def test_corrupt_file_raises_codec_error(self, tmp_path: Path) -> None:
        """Bytes that are not MPEG audio raise CodecError."""
        path = tmp_path / "junk.mp3"
        path.write_bytes(b"not audio at all" * 4)
        with pytest.raises(CodecError):
            Id3Codec().read(path)

    def test_no_picture(self, tagged_mp3: Path, untagged_mp3: Path) -> None:
        """Files without APIC frames have no picture."""
        assert Id3Codec().read_picture(tagged_mp3) is None
        assert Id3Codec().read_picture(untagged_mp3) is None


class TestId3Write:
    """Tests for writing ID3 tags."""

    def test_replace_then_read(self, untagged_mp3: Path) -> None:
        """Every modelled field written by replace reads back."""
        codec = Id3Codec()
        codec.replace(untagged_mp3, RECORD)
        meta = codec.read(untagged_mp3)
        assert meta.title == "Storm Front"
        assert meta.authors == ("Jim Butcher",)
        assert meta.narrator == "James Marsters"
        assert meta.series == "The Dresden Files"
        assert meta.series_position == "1"
        assert meta.publisher == "Buzzy Multimedia"
        assert meta.categories == ("Fantasy",)
        assert meta.language == "eng"
        assert meta.isbn == "9780451457813"
        assert meta.user_tags == ("wizards",)

    def test_replace_drops_unmodelled_frames(self, tagged_mp3: Path) -> None:
        """replace starts from an empty tag."""
        tags = ID3(tagged_mp3)
        tags.add(TXXX(encoding=3, desc="CUSTOM", text=["keep?"]))
        tags.save(tagged_mp3)
        Id3Codec().replace(tagged_mp3, RECORD)
        assert not ID3(tagged_mp3).getall("TXXX:CUSTOM")

    def test_write_keeps_unmodelled_frames(self, tagged_mp3: Path) -> None:
        """write updates modelled frames and leaves others alone."""
        tags = ID3(tagged_mp3)
        tags.add(TXXX(encoding=3, desc="CUSTOM", text=["kept"]))
        tags.save(tagged_mp3)
        Id3Codec().write(tagged_mp3, RECORD)
        reread = ID3(tagged_mp3)
        assert reread.getall("TXXX:CUSTOM")[0].text == ["kept"]
        assert str(reread["TIT2"]) == "Storm Front"

    def test_cover_round_trip_and_strip(self, untagged_mp3: Path) -> None:
        """An embedded cover reads back and strip_picture removes it."""
        codec = Id3Codec()
        codec.replace(untagged_mp3, RECORD, Picture(JPEG_BYTES, "image/jpeg"))
        picture = codec.read_picture(untagged_mp3)
        assert picture is not None
        assert picture.data == JPEG_BYTES
        assert picture.mime_type == "image/jpeg"

        codec.strip_picture(untagged_mp3)
        assert codec.read_picture(untagged_mp3) is None
        assert codec.read(untagged_mp3).title == "Storm Front"

    def test_audio_frames_are_untouched(self, untagged_mp3: Path) -> None:
        """Tag writes do not change the stream facts."""
        codec = Id3Codec()
        with pytest.raises(NotTagged) as exc_info:
            codec.read(untagged_mp3)
        before = exc_info.value.technical
        codec.replace(untagged_mp3, RECORD)
        after = codec.read(untagged_mp3)
        assert after.sample_rate == before.sample_rate
        assert after.bitrate == before.bitrate


class TestCodecRegistry:
    """Tests for codec_for_path."""

    def test_lookup_by_extension(self) -> None:
        """Extensions map to their codec, case-insensitively."""
        assert isinstance(codec_for_path(Path("a.MP3")), Id3Codec)

    def test_unsupported_extension(self) -> None:
        """Unknown extensions raise a CodecError subclass."""
        with pytest.raises(CodecError, match="Unsupported"):
            codec_for_path(Path("a.flac"))
