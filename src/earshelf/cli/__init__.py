# ABOUTME: CLI package for earshelf, built on Click.
# ABOUTME: Defines the root command group, logging setup, and registers subcommands.

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from earshelf.cli.commands import (
    cache_cmd,
    inspect_cmd,
    match_cmd,
    resolve_cmd,
    search_cmd,
    tag_cmd,
)
from earshelf.cli.options import CliState


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Route the earshelf logger through a RichHandler on stderr."""
    logger = logging.getLogger("earshelf")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    handler = RichHandler(console=Console(stderr=True), show_path=verbose, markup=False)
    handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


@click.group()
@click.version_option(package_name="earshelf")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Show debug logging.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to config.toml (default: ~/.earshelf/config.toml).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """earshelf - resolve and write audiobook metadata."""
    setup_logging(verbose)
    ctx.obj = CliState(config_path=config_path, verbose=verbose)


cli.add_command(inspect_cmd.inspect)
cli.add_command(resolve_cmd.resolve)
cli.add_command(search_cmd.search)
cli.add_command(tag_cmd.tag)
cli.add_command(match_cmd.match)
cli.add_command(cache_cmd.cache)
