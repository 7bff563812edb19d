# ABOUTME: Unit tests for the metadata merge policies.
# ABOUTME: Verifies which field groups flow from incoming under enhance, update-version, and replace-book.

from earshelf.metadata.merge import MergePolicy, enhance, merge
from earshelf.metadata.types import AudiobookMetadata, Bookmark

_BOOKMARK = Bookmark(id="b1", title="Chapter 3", position_ms=60_000, created_at="2026-01-01")


def _base() -> AudiobookMetadata:
    return AudiobookMetadata(
        id="file:/books/storm.mp3",
        provider="file",
        title="Storm Front",
        audio_duration_ms=36_000_000,
        bitrate=64_000,
        file_format="mp3",
        user_rating=4.5,
        is_favorite=True,
        user_tags=("urban fantasy",),
        bookmarks=(_BOOKMARK,),
        playback_position_ms=120_000,
    )


def _incoming() -> AudiobookMetadata:
    return AudiobookMetadata(
        id="OL5738148W",
        provider="openlibrary",
        title="Storm Front (Dresden Files 1)",
        authors=("Jim Butcher",),
        series="The Dresden Files",
        series_position="1",
        description="A wizard for hire.",
        thumbnail_url="https://covers.openlibrary.org/b/id/1-L.jpg",
        audio_duration_ms=1,
        bitrate=1,
        user_rating=1.0,
        is_favorite=False,
    )


class TestEnhance:
    """Tests for the enhance policy."""

    def test_fills_empty_descriptive_fields(self) -> None:
        """Empty base fields are filled; populated ones are kept."""
        result = enhance(_base(), _incoming())
        assert result.title == "Storm Front"
        assert result.authors == ("Jim Butcher",)
        assert result.series == "The Dresden Files"
        assert result.thumbnail_url.startswith("https://")

    def test_keeps_identity_and_technical_data(self) -> None:
        """The file's identity and extracted technical facts win."""
        result = enhance(_base(), _incoming())
        assert result.id == "file:/books/storm.mp3"
        assert result.provider == "file"
        assert result.audio_duration_ms == 36_000_000
        assert result.bitrate == 64_000

    def test_fills_missing_technical_fields(self) -> None:
        """A technical field base lacks is taken from incoming."""
        base = AudiobookMetadata(title="Storm Front")
        result = enhance(base, AudiobookMetadata(sample_rate=44100, file_format="m4b"))
        assert result.sample_rate == 44100
        assert result.file_format == "m4b"

    def test_never_takes_user_data(self) -> None:
        """User data always comes from base."""
        result = enhance(_base(), _incoming())
        assert result.user_rating == 4.5
        assert result.is_favorite is True
        assert result.bookmarks == (_BOOKMARK,)

    def test_returns_base_when_nothing_changes(self) -> None:
        """When incoming adds nothing, base itself is returned."""
        base = _base()
        assert enhance(base, AudiobookMetadata()) is base


class TestUpdateVersion:
    """Tests for the update-version policy."""

    def test_takes_descriptive_data_from_incoming(self) -> None:
        """Descriptive and catalog data are replaced wholesale."""
        result = merge(_base(), _incoming(), MergePolicy.UPDATE_VERSION)
        assert result.title == "Storm Front (Dresden Files 1)"
        assert result.series_position == "1"
        assert result.provider == "openlibrary"

    def test_keeps_identity_technical_and_user_data(self) -> None:
        """Identity, technical facts, and user data stay with base."""
        result = merge(_base(), _incoming(), MergePolicy.UPDATE_VERSION)
        assert result.id == "file:/books/storm.mp3"
        assert result.audio_duration_ms == 36_000_000
        assert result.user_tags == ("urban fantasy",)
        assert result.playback_position_ms == 120_000


class TestReplaceBook:
    """Tests for the replace-book policy."""

    def test_resets_user_data(self) -> None:
        """A different work resets ratings, favorites, tags, and bookmarks."""
        result = merge(_base(), _incoming(), MergePolicy.REPLACE_BOOK)
        assert result.user_rating is None
        assert result.is_favorite is False
        assert result.user_tags == ()
        assert result.bookmarks == ()
        assert result.playback_position_ms is None

    def test_keeps_technical_data(self) -> None:
        """The physical file is unchanged, so technical data stays."""
        result = merge(_base(), _incoming(), MergePolicy.REPLACE_BOOK)
        assert result.bitrate == 64_000
        assert result.authors == ("Jim Butcher",)


class TestMergeDefault:
    """Tests for the merge dispatcher."""

    def test_default_policy_is_enhance(self) -> None:
        """merge without a policy behaves like enhance."""
        assert merge(_base(), _incoming()) == enhance(_base(), _incoming())
