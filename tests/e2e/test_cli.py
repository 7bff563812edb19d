# ABOUTME: End-to-end tests for the earshelf inspect, resolve, search, and cache commands.
# ABOUTME: Drives the CLI through Click's CliRunner with synthetic audio files and fake providers.

from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from earshelf.cli import cli
from earshelf.db.cache import MetadataCache
from earshelf.formats import Id3Codec
from earshelf.metadata.types import AudiobookMetadata
from tests.conftest import build_mp3_bytes
from tests.fixtures.fakes import FakeProvider, context_factory

WIDE = {"COLUMNS": "200"}

STORM_FRONT = AudiobookMetadata(
    id="OL5738148W",
    provider="openlibrary",
    title="Storm Front",
    authors=("Jim Butcher",),
    series="The Dresden Files",
    series_position="1",
    published_date="2000",
)


@pytest.fixture
def library(tmp_path: Path) -> Path:
    """A library folder holding one untagged, well-named MP3."""
    root = tmp_path / "Audiobooks"
    root.mkdir()
    (root / "01 - Jim Butcher - Storm Front.mp3").write_bytes(build_mp3_bytes())
    return root


class TestCliBasics:
    """Tests for the root command group."""

    def test_help_lists_commands(self) -> None:
        """--help shows every subcommand."""
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("inspect", "resolve", "search", "tag", "match", "cache"):
            assert name in result.output

    def test_missing_config_file_is_an_error(self, tmp_path: Path, library: Path) -> None:
        """An explicitly named config file that does not exist stops the command."""
        result = CliRunner().invoke(
            cli, ["--config", str(tmp_path / "nope.toml"), "resolve", str(library)]
        )
        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestCliInspect:
    """E2e tests for `earshelf inspect`."""

    def test_inspect_shows_tags(self, tagged_mp3: Path) -> None:
        """Embedded fields and stream facts are displayed."""
        result = CliRunner().invoke(cli, ["inspect", str(tagged_mp3)], env=WIDE)
        assert result.exit_code == 0
        assert "The Name of the Wind" in result.output
        assert "Patrick Rothfuss" in result.output
        assert "mp3" in result.output
        assert "Cover" in result.output

    def test_inspect_untagged_file(self, untagged_mp3: Path) -> None:
        """A file without tags is reported, not treated as an error."""
        result = CliRunner().invoke(cli, ["inspect", str(untagged_mp3)], env=WIDE)
        assert result.exit_code == 0
        assert "No readable tags" in result.output
        assert "Bitrate" in result.output

    def test_inspect_unsupported_format(self, tmp_path: Path) -> None:
        """Files no codec handles exit with an error."""
        path = tmp_path / "book.flac"
        path.write_bytes(b"fLaC")
        result = CliRunner().invoke(cli, ["inspect", str(path)])
        assert result.exit_code == 1
        assert "Unsupported audio format" in result.output


class TestCliResolve:
    """E2e tests for `earshelf resolve`."""

    def test_resolve_without_write(self, config_file: Path, library: Path) -> None:
        """Files are resolved and reported but left untouched."""
        path = library / "01 - Jim Butcher - Storm Front.mp3"
        before = path.read_bytes()
        provider = FakeProvider("openlibrary", [STORM_FRONT])
        with patch("earshelf.cli.commands.resolve_cmd.build_context", context_factory(provider)):
            result = CliRunner().invoke(
                cli, ["--config", str(config_file), "resolve", str(library)], env=WIDE
            )

        assert result.exit_code == 0, result.output
        assert "The Dresden Files #1" in result.output
        assert "1 resolved" in result.output
        assert "written" not in result.output
        assert path.read_bytes() == before
        assert provider.queries == ["Jim Butcher Storm Front"]

    def test_resolve_and_write(self, config_file: Path, library: Path) -> None:
        """--write stores the resolved record in the file."""
        provider = FakeProvider("openlibrary", [STORM_FRONT])
        with patch("earshelf.cli.commands.resolve_cmd.build_context", context_factory(provider)):
            result = CliRunner().invoke(
                cli, ["--config", str(config_file), "resolve", str(library), "--write"], env=WIDE
            )

        assert result.exit_code == 0, result.output
        assert "1 written" in result.output
        written = Id3Codec().read(library / "01 - Jim Butcher - Storm Front.mp3")
        assert written.series == "The Dresden Files"
        assert written.published_date == "2000"

    def test_resolve_reports_unresolved(self, config_file: Path, tmp_path: Path) -> None:
        """Files nothing is known about are listed as unresolved."""
        root = tmp_path / "audiobooks"
        root.mkdir()
        (root / "x.mp3").write_bytes(build_mp3_bytes())
        with patch("earshelf.cli.commands.resolve_cmd.build_context", context_factory(FakeProvider("openlibrary"))):
            result = CliRunner().invoke(
                cli, ["--config", str(config_file), "resolve", str(root)], env=WIDE
            )
        assert result.exit_code == 0, result.output
        assert "Unresolved: x.mp3" in result.output
        assert "1 unresolved" in result.output

    def test_resolve_empty_directory(self, config_file: Path, tmp_path: Path) -> None:
        """A directory without audio files is reported."""
        empty = tmp_path / "empty"
        empty.mkdir()
        result = CliRunner().invoke(cli, ["--config", str(config_file), "resolve", str(empty)])
        assert result.exit_code == 0
        assert "No supported audio files found" in result.output


class TestCliSearch:
    """E2e tests for `earshelf search`."""

    def test_search_lists_candidates(self, config_file: Path) -> None:
        """Candidates are shown with confidence and source."""
        provider = FakeProvider(
            "openlibrary",
            [AudiobookMetadata(title="Gardening Basics", authors=("Ann Smith",)), STORM_FRONT],
        )
        with patch("earshelf.cli.commands.search_cmd.build_context", context_factory(provider)):
            result = CliRunner().invoke(
                cli, ["--config", str(config_file), "search", "Jim Butcher Storm Front"], env=WIDE
            )

        assert result.exit_code == 0, result.output
        assert "Storm Front" in result.output
        assert "openlibrary" in result.output
        assert "2 result(s)" in result.output
        assert result.output.index("Storm Front") < result.output.index("Gardening Basics")

    def test_search_no_results(self, config_file: Path) -> None:
        """An empty result set is reported."""
        with patch("earshelf.cli.commands.search_cmd.build_context", context_factory(FakeProvider("openlibrary"))):
            result = CliRunner().invoke(cli, ["--config", str(config_file), "search", "nothing"])
        assert result.exit_code == 0
        assert "No results found" in result.output


class TestCliCache:
    """E2e tests for `earshelf cache`."""

    def _seed(self, path: Path) -> None:
        store = MetadataCache.open(path)
        try:
            store.queries.put("Jim Butcher Storm Front", STORM_FRONT)
            store.files.put(Path("/library/storm-front.mp3"), STORM_FRONT)
            store.files.put(Path("/library/fool-moon.mp3"), STORM_FRONT)
        finally:
            store.close()

    def test_stats(self, config_file: Path, tmp_path: Path) -> None:
        """Entry counts are shown per namespace."""
        self._seed(tmp_path / "cache.db")
        result = CliRunner().invoke(cli, ["--config", str(config_file), "cache", "stats"], env=WIDE)
        assert result.exit_code == 0
        assert "Queries" in result.output
        assert "Files" in result.output
        assert "2" in result.output

    def test_clear_with_yes(self, config_file: Path, tmp_path: Path) -> None:
        """--yes clears both namespaces without prompting."""
        self._seed(tmp_path / "cache.db")
        result = CliRunner().invoke(cli, ["--config", str(config_file), "cache", "clear", "--yes"])
        assert result.exit_code == 0
        assert "Cache cleared" in result.output
        store = MetadataCache.open(tmp_path / "cache.db")
        try:
            assert len(store.queries) == 0
            assert len(store.files) == 0
        finally:
            store.close()

    def test_clear_aborted(self, config_file: Path, tmp_path: Path) -> None:
        """Declining the confirmation keeps the cache."""
        self._seed(tmp_path / "cache.db")
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "cache", "clear"], input="n\n"
        )
        assert result.exit_code == 0
        assert "Aborted" in result.output
        store = MetadataCache.open(tmp_path / "cache.db")
        try:
            assert len(store.files) == 2
        finally:
            store.close()

    def test_cache_option_overrides_config(self, config_file: Path, tmp_path: Path) -> None:
        """--cache points the command at another database."""
        other = tmp_path / "other" / "cache.db"
        self._seed(other)
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "cache", "stats", "--cache", str(other)], env=WIDE
        )
        assert result.exit_code == 0
        assert "other" in result.output
