"""Config: root directories to scan and where the index lives.

The configuration file is YAML with a single recognised option::

    paths:
      - ~/notes
      - ~/work/journal

A missing or malformed file is not an error; it simply yields no roots.

Default locations follow the XDG base directory convention:

    $XDG_CONFIG_HOME/zest/config.yml   (~/.config/zest/config.yml)
    $XDG_CACHE_HOME/zest/index/        (~/.cache/zest/index/)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_APP_DIR = "zest"
_CONFIG_FILENAME = "config.yml"
_INDEX_DIRNAME = "index"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    value = os.getenv(env_var, "")
    return Path(value) if value else Path.home() / fallback


def default_config_path() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / _APP_DIR / _CONFIG_FILENAME


def default_index_dir() -> Path:
    return _xdg_dir("XDG_CACHE_HOME", ".cache") / _APP_DIR / _INDEX_DIRNAME


@dataclass
class Config:
    """Resolved configuration for one zest session."""

    paths: list[str] = field(default_factory=list)
    index_dir: Path = field(default_factory=default_index_dir)

    @property
    def roots(self) -> list[Path]:
        """Configured root directories with ``~`` expanded."""
        return [Path(p).expanduser() for p in self.paths]


def _read_paths(config_path: Path) -> list[str]:
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except FileNotFoundError:
        logger.debug("No configuration file at %s", config_path)
        return []
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.debug("Ignoring unreadable configuration %s: %s", config_path, exc)
        return []

    if not isinstance(raw, dict):
        return []
    paths = raw.get("paths") or []
    if not isinstance(paths, list):
        logger.debug("Ignoring non-list paths option in %s", config_path)
        return []
    return [p for p in paths if isinstance(p, str)]


def load_config(
    path: Path | str | None = None,
    *,
    index_dir: Path | str | None = None,
) -> Config:
    """Load the YAML config at *path* (or the XDG default location)."""
    config_path = Path(path) if path else default_config_path()
    config = Config(
        paths=_read_paths(config_path),
        index_dir=Path(index_dir) if index_dir else default_index_dir(),
    )
    logger.debug("Using config: %s", config)
    return config
