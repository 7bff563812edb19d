# ABOUTME: Shared Click options and settings loading for earshelf CLI commands.
# ABOUTME: Provides reusable decorators for --cache and --threshold plus the root command state.

from dataclasses import dataclass
from pathlib import Path

import click
from rich.console import Console

from earshelf.config import ConfigError, Settings, load_settings
from earshelf.db.connection import DEFAULT_DB_PATH


@dataclass
class CliState:
    """Options given to the root command, shared with subcommands."""

    config_path: Path | None = None
    verbose: bool = False


cache_option = click.option(
    "--cache",
    "cache_path",
    type=click.Path(path_type=Path),
    default=None,
    help=f"Path to metadata cache database (default: {DEFAULT_DB_PATH})",
)

threshold_option = click.option(
    "-t",
    "--threshold",
    type=click.FloatRange(0.0, 1.0),
    default=None,
    help="Minimum match confidence (0.0-1.0, default from config, 0.15).",
)


def cli_settings(console: Console, **overrides) -> Settings:
    """Load settings for the current invocation, exiting with a message on bad config."""
    state = click.get_current_context().find_object(CliState) or CliState()
    try:
        return load_settings(state.config_path, **overrides)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise SystemExit(1) from exc
