# ABOUTME: earshelf configuration: defaults, optional TOML file, and environment overrides.
# ABOUTME: Settings is an immutable value passed into the library context; no global singleton.

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from earshelf.db.connection import DEFAULT_DB_PATH
from earshelf.metadata.scoring import DEFAULT_MATCH_THRESHOLD

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".earshelf"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"
DEFAULT_COVERS_DIR = DEFAULT_CONFIG_DIR / "covers"
DEFAULT_PROVIDERS = ("openlibrary", "googlebooks")


class ConfigError(Exception):
    """Raised when the configuration file is unreadable or holds invalid values."""


def _default_parallel_jobs() -> int:
    return max(1, min(4, os.cpu_count() or 1))


@dataclass(frozen=True)
class Settings:
    """Runtime settings for resolution and persistence."""

    cache_path: Path = DEFAULT_DB_PATH
    covers_dir: Path = DEFAULT_COVERS_DIR
    match_threshold: float = DEFAULT_MATCH_THRESHOLD
    max_parallel_jobs: int = field(default_factory=_default_parallel_jobs)
    batch_size: int = 5
    download_covers: bool = True
    providers: tuple[str, ...] = DEFAULT_PROVIDERS
    google_books_api_key: str = ""
    http_timeout: float = 10.0
    use_ffmpeg: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= self.match_threshold <= 1.0:
            raise ConfigError(f"match_threshold must be within [0, 1], got {self.match_threshold}")
        if self.max_parallel_jobs < 1:
            raise ConfigError(f"max_parallel_jobs must be >= 1, got {self.max_parallel_jobs}")
        if self.batch_size < 1:
            raise ConfigError(f"batch_size must be >= 1, got {self.batch_size}")


_PATH_KEYS = {"cache_path", "covers_dir"}
_KNOWN_KEYS = {f.name for f in fields(Settings)}


def _coerce(values: Mapping[str, Any]) -> dict[str, Any]:
    coerced: dict[str, Any] = {}
    for key, value in values.items():
        if key not in _KNOWN_KEYS:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        if key in _PATH_KEYS:
            value = Path(value).expanduser()
        elif key == "providers":
            value = tuple(value)
        coerced[key] = value
    return coerced


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if env.get("EARSHELF_GOOGLE_BOOKS_API_KEY"):
        overrides["google_books_api_key"] = env["EARSHELF_GOOGLE_BOOKS_API_KEY"]
    if env.get("EARSHELF_MAX_PARALLEL_JOBS"):
        try:
            overrides["max_parallel_jobs"] = int(env["EARSHELF_MAX_PARALLEL_JOBS"])
        except ValueError as exc:
            raise ConfigError(f"EARSHELF_MAX_PARALLEL_JOBS must be an integer: {exc}") from exc
    if env.get("EARSHELF_CACHE"):
        overrides["cache_path"] = Path(env["EARSHELF_CACHE"]).expanduser()
    return overrides


def load_settings(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> Settings:
    """Load settings from defaults, then the TOML file, then the environment, then overrides.

    A missing file at the default location is not an error; a missing file
    that was explicitly requested is.
    """
    config_path = path or DEFAULT_CONFIG_PATH
    values: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("rb") as fh:
                values = _coerce(tomllib.load(fh))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc
        logger.debug("Loaded configuration from %s", config_path)
    elif path is not None:
        raise ConfigError(f"Config file not found: {config_path}")

    values.update(_env_overrides(os.environ if env is None else env))
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return replace(Settings(), **values)
    except TypeError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
