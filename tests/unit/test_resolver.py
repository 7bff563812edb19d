# ABOUTME: Unit tests for MetadataResolver's resolution chain.
# ABOUTME: Uses FakeProvider and a temp cache to cover cache hits, tags, queries, thresholds, and failures.

import asyncio
import logging
from dataclasses import replace
from pathlib import Path

import pytest

from earshelf.config import Settings
from earshelf.core.context import LibraryContext
from earshelf.core.covers import CoverStore
from earshelf.core.resolver import MetadataResolver, ResolutionSource, ResolutionStatus
from earshelf.db.cache import MetadataCache
from earshelf.metadata.http import ProviderAuthError, ProviderUnavailable
from earshelf.metadata.types import AudiobookMetadata
from tests.conftest import build_mp3_bytes
from tests.fixtures.fakes import FakeHttpClient, FakeProvider

STORM_FRONT = AudiobookMetadata(
    id="OL5738148W",
    provider="openlibrary",
    title="Storm Front",
    authors=("Jim Butcher",),
    series="The Dresden Files",
    series_position="1",
    description="Harry Dresden is the best at what he does.",
)
GARDENING = AudiobookMetadata(id="OL9W", provider="openlibrary", title="Gardening Basics", authors=("Ann Smith",))


def _resolver(settings: Settings, cache: MetadataCache, *providers: FakeProvider) -> MetadataResolver:
    return MetadataResolver(LibraryContext(settings=settings, cache=cache, providers=list(providers)))


def _audio(directory: Path, name: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(build_mp3_bytes())
    return path


@pytest.fixture
def storm_front_file(tmp_path: Path) -> Path:
    """An untagged MP3 whose name carries author and title."""
    return _audio(tmp_path / "Audiobooks", "01 - Jim Butcher - Storm Front.mp3")


class TestLocalResolution:
    """Resolution without providers."""

    def test_comprehensive_tags_skip_providers(
        self, settings: Settings, cache: MetadataCache, tagged_mp3: Path
    ) -> None:
        """Comprehensive embedded tags resolve directly and are cached."""
        provider = FakeProvider("openlibrary", [STORM_FRONT])
        result = asyncio.run(_resolver(settings, cache, provider).resolve(tagged_mp3))
        assert result.status is ResolutionStatus.RESOLVED
        assert result.source is ResolutionSource.FILE_TAGS
        assert result.metadata.title == "The Name of the Wind"
        assert provider.queries == []
        assert cache.files.get(tagged_mp3) == result.metadata

    def test_file_cache_hit(self, settings: Settings, cache: MetadataCache, tagged_mp3: Path) -> None:
        """A second resolve is served from the file cache."""
        resolver = _resolver(settings, cache)
        first = asyncio.run(resolver.resolve(tagged_mp3))
        second = asyncio.run(resolver.resolve(tagged_mp3))
        assert second.source is ResolutionSource.FILE_CACHE
        assert second.metadata == first.metadata

    def test_invalidate_cache(self, settings: Settings, cache: MetadataCache, tagged_mp3: Path) -> None:
        """Invalidating forces the file to be read again."""
        resolver = _resolver(settings, cache)
        asyncio.run(resolver.resolve(tagged_mp3))
        assert resolver.invalidate_cache(tagged_mp3) is True
        assert asyncio.run(resolver.resolve(tagged_mp3)).source is ResolutionSource.FILE_TAGS

    def test_clear_cache(self, settings: Settings, cache: MetadataCache, tagged_mp3: Path) -> None:
        """clear_cache empties both namespaces."""
        resolver = _resolver(settings, cache)
        asyncio.run(resolver.resolve(tagged_mp3))
        cache.queries.put("q", STORM_FRONT)
        resolver.clear_cache()
        assert len(cache.files) == 0
        assert len(cache.queries) == 0


class TestProviderResolution:
    """Resolution through queries and providers."""

    def test_filename_query_matches_provider(
        self, settings: Settings, cache: MetadataCache, storm_front_file: Path
    ) -> None:
        """An untagged file resolves from its name and keeps its stream facts."""
        provider = FakeProvider("openlibrary", [GARDENING, STORM_FRONT])
        result = asyncio.run(_resolver(settings, cache, provider).resolve(storm_front_file))
        assert result.source is ResolutionSource.PROVIDER
        assert provider.queries == ["Jim Butcher Storm Front"]
        assert result.query == "Jim Butcher Storm Front"
        assert result.candidate is not None
        assert result.candidate.source == "openlibrary"
        assert result.metadata.title == "Storm Front"
        assert result.metadata.series == "The Dresden Files"
        assert result.metadata.description.startswith("Harry Dresden")
        assert result.metadata.file_format == "mp3"

    def test_match_is_cached_under_both_namespaces(
        self, settings: Settings, cache: MetadataCache, storm_front_file: Path
    ) -> None:
        """The accepted candidate is cached by query and the result by file."""
        provider = FakeProvider("openlibrary", [STORM_FRONT])
        result = asyncio.run(_resolver(settings, cache, provider).resolve(storm_front_file))
        assert cache.queries.get("jim butcher storm front") == STORM_FRONT
        assert cache.files.get(storm_front_file) == result.metadata

    def test_query_cache_hit_skips_providers(
        self, settings: Settings, cache: MetadataCache, storm_front_file: Path
    ) -> None:
        """A cached query answer is used without calling providers."""
        cache.queries.put("Jim Butcher Storm Front", STORM_FRONT)
        provider = FakeProvider("openlibrary", [GARDENING])
        result = asyncio.run(_resolver(settings, cache, provider).resolve(storm_front_file))
        assert result.source is ResolutionSource.QUERY_CACHE
        assert result.metadata.series == "The Dresden Files"
        assert provider.queries == []

    def test_partial_tags_are_enhanced(
        self, settings: Settings, cache: MetadataCache, partial_mp3: Path
    ) -> None:
        """A title-only tag is searched and gaps are filled from the match."""
        provider = FakeProvider("openlibrary", [STORM_FRONT])
        result = asyncio.run(_resolver(settings, cache, provider).resolve(partial_mp3))
        assert provider.queries == ["Storm Front"]
        assert result.source is ResolutionSource.PROVIDER
        assert result.metadata.authors == ("Jim Butcher",)
        assert result.metadata.id == f"file:{partial_mp3}"

    def test_alternate_query_is_tried(self, settings: Settings, cache: MetadataCache, tmp_path: Path) -> None:
        """When the folder query finds nothing, the filename query is tried."""
        path = _audio(tmp_path / "Some Junk Folder", "Jim Butcher - Storm Front.mp3")
        provider = FakeProvider("openlibrary", [STORM_FRONT])
        result = asyncio.run(_resolver(settings, cache, provider).resolve(path))
        assert provider.queries == ["Some Junk Folder", "Jim Butcher Storm Front"]
        assert result.query == "Jim Butcher Storm Front"
        assert result.source is ResolutionSource.PROVIDER

    def test_best_candidate_across_providers(
        self, settings: Settings, cache: MetadataCache, storm_front_file: Path
    ) -> None:
        """The best score wins regardless of which provider returned it."""
        first = FakeProvider("openlibrary", [GARDENING])
        second = FakeProvider("googlebooks", [STORM_FRONT])
        result = asyncio.run(_resolver(settings, cache, first, second).resolve(storm_front_file))
        assert result.candidate.source == "googlebooks"

    def test_unreachable_cover_url_not_cached(
        self, settings: Settings, cache: MetadataCache, storm_front_file: Path
    ) -> None:
        """A catalog cover that fails to download leaves no remote URL in the file cache."""
        record = replace(STORM_FRONT, thumbnail_url="https://covers.example/x.jpg")
        http = FakeHttpClient(binaries={"covers.example": ProviderUnavailable("timed out")})
        ctx = LibraryContext(
            settings=settings,
            cache=cache,
            providers=[FakeProvider("openlibrary", [record])],
            covers=CoverStore(settings.covers_dir, http),
        )

        result = asyncio.run(MetadataResolver(ctx).resolve(storm_front_file))

        assert result.source is ResolutionSource.PROVIDER
        assert result.metadata.thumbnail_url == ""
        assert cache.files.get(storm_front_file).thumbnail_url == ""


class TestFallbacks:
    """Thresholds, failures, and partial results."""

    def test_below_threshold_keeps_partial(
        self, settings: Settings, cache: MetadataCache, storm_front_file: Path
    ) -> None:
        """A weak best candidate is rejected and the partial record kept."""
        provider = FakeProvider("openlibrary", [GARDENING])
        result = asyncio.run(_resolver(settings, cache, provider).resolve(storm_front_file))
        assert result.status is ResolutionStatus.RESOLVED
        assert result.source is ResolutionSource.PARTIAL
        assert result.metadata.title == "Storm Front"
        assert result.metadata.authors == ("Jim Butcher",)
        assert len(cache.queries) == 0
        assert cache.files.get(storm_front_file) is not None

    def test_configured_threshold_applies(
        self, tmp_path: Path, cache: MetadataCache, partial_mp3: Path
    ) -> None:
        """A stricter threshold rejects a match the default would accept."""
        strict = Settings(cache_path=tmp_path / "c.db", covers_dir=tmp_path / "covers", match_threshold=0.9)
        provider = FakeProvider("openlibrary", [STORM_FRONT])
        resolver = _resolver(strict, cache, provider)
        assert resolver.threshold == 0.9
        assert asyncio.run(resolver.resolve(partial_mp3)).source is ResolutionSource.PARTIAL

    def test_nothing_known_is_unresolved(self, settings: Settings, cache: MetadataCache, tmp_path: Path) -> None:
        """No tags, no usable name, and no match gives Unresolved, uncached."""
        path = _audio(tmp_path / "audiobooks", "x.mp3")
        result = asyncio.run(_resolver(settings, cache, FakeProvider("openlibrary")).resolve(path))
        assert result.status is ResolutionStatus.UNRESOLVED
        assert result.resolved is False
        assert result.metadata is None
        assert cache.files.get(path) is None

    def test_unavailable_provider_is_skipped(
        self,
        settings: Settings,
        cache: MetadataCache,
        storm_front_file: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A timed-out provider counts as no results."""
        broken = FakeProvider("openlibrary", error=ProviderUnavailable("timed out"))
        working = FakeProvider("googlebooks", [STORM_FRONT])
        with caplog.at_level(logging.WARNING, logger="earshelf.core.resolver"):
            result = asyncio.run(_resolver(settings, cache, broken, working).resolve(storm_front_file))
        assert result.source is ResolutionSource.PROVIDER
        assert result.auth_errors == []
        assert "unavailable" in caplog.text

    def test_auth_errors_are_reported(
        self, settings: Settings, cache: MetadataCache, storm_front_file: Path
    ) -> None:
        """Auth failures are collected on the resolution without failing it."""
        rejected = FakeProvider("googlebooks", error=ProviderAuthError("HTTP 403", 403))
        working = FakeProvider("openlibrary", [STORM_FRONT])
        result = asyncio.run(_resolver(settings, cache, working, rejected).resolve(storm_front_file))
        assert result.resolved
        assert len(result.auth_errors) == 1
        assert result.auth_errors[0].status_code == 403

    def test_all_providers_failing_keeps_partial(
        self, settings: Settings, cache: MetadataCache, storm_front_file: Path
    ) -> None:
        """With every provider down the filename heuristic still resolves."""
        broken = FakeProvider("openlibrary", error=ProviderUnavailable("down"))
        result = asyncio.run(_resolver(settings, cache, broken).resolve(storm_front_file))
        assert result.source is ResolutionSource.PARTIAL

    def test_unsupported_format_uses_filename(
        self, settings: Settings, cache: MetadataCache, tmp_path: Path
    ) -> None:
        """A file no codec handles still resolves by name."""
        path = tmp_path / "Jim Butcher - Storm Front.flac"
        path.write_bytes(b"fLaC")
        provider = FakeProvider("openlibrary", [STORM_FRONT])
        result = asyncio.run(_resolver(settings, cache, provider).resolve(path))
        assert result.source is ResolutionSource.PROVIDER


class TestSearchAndLocalQuery:
    """Tests for the interactive helpers."""

    def test_search_ranks_all_providers(self, settings: Settings, cache: MetadataCache) -> None:
        """search returns candidates from every provider, best first."""
        resolver = _resolver(
            settings,
            cache,
            FakeProvider("openlibrary", [GARDENING]),
            FakeProvider("googlebooks", [STORM_FRONT]),
        )
        candidates = asyncio.run(resolver.search("Jim Butcher Storm Front"))
        assert [c.source for c in candidates] == ["googlebooks", "openlibrary"]

    def test_local_query_for_partial_tags(
        self, settings: Settings, cache: MetadataCache, partial_mp3: Path
    ) -> None:
        """local_query returns the tag record and its metadata query."""
        current, query = asyncio.run(_resolver(settings, cache).local_query(partial_mp3))
        assert current.title == "Storm Front"
        assert query == "Storm Front"
