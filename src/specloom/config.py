"""Project configuration: ``.specloom/config.yml`` and ``.specloomignore``."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from specloom.assets import read_ignore_file

logger = logging.getLogger(__name__)

CONFIG_DIR = ".specloom"
CONFIG_FILE = "config.yml"
IGNORE_FILE = ".specloomignore"

DEFAULT_DOCS_DIR = "docs"
DEFAULT_RULES_PATH = f"{CONFIG_DIR}/rules.yml"
DEFAULT_CACHE_PATH = f"{CONFIG_DIR}/cache/parse-cache.json"
DEFAULT_CACHE_MAX_AGE_DAYS = 30
DEFAULT_SYSTEM_FOLDERS: tuple[str, ...] = ("others", "footnotes")


class ConfigError(Exception):
    """Raised when a configuration value has the wrong type or range."""


def default_workers() -> int:
    return min(8, os.cpu_count() or 1)


@dataclass(frozen=True)
class ProjectConfig:
    """Resolved configuration for one project root."""

    project_root: Path
    docs_dir: str = DEFAULT_DOCS_DIR
    rules: str = DEFAULT_RULES_PATH
    cache_enabled: bool = True
    cache_path: str = DEFAULT_CACHE_PATH
    cache_max_age_days: float = DEFAULT_CACHE_MAX_AGE_DAYS
    workers: int = field(default_factory=default_workers)
    ignore: tuple[str, ...] = ()
    exempt_ids: tuple[str, ...] = ()
    system_folders: tuple[str, ...] = DEFAULT_SYSTEM_FOLDERS

    @property
    def docs_path(self) -> Path:
        return self.project_root / self.docs_dir

    @property
    def rules_path(self) -> Path:
        return self.project_root / self.rules

    @property
    def cache_file(self) -> Path:
        return self.project_root / self.cache_path


def _str_list(data: dict[str, Any], key: str) -> tuple[str, ...] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        msg = f"config.yml: '{key}' must be a list of strings"
        raise ConfigError(msg)
    return tuple(value)


def _string(data: dict[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value.strip():
        msg = f"config.yml: '{key}' must be a non-empty string"
        raise ConfigError(msg)
    return value


def _read_config_file(path: Path) -> dict[str, Any]:
    """Return the config mapping, or ``{}`` (with a warning) when unusable."""
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.warning("Ignoring unreadable config %s, using defaults: %s", path, exc)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: top level must be a mapping", path)
        return {}
    return data


def load_config(project_root: Path) -> ProjectConfig:
    """Read ``<project_root>/.specloom/config.yml`` and ``.specloomignore``.

    Every key is optional.  A missing or unparseable file yields the
    defaults; a value of the wrong type raises :class:`ConfigError`.
    """
    data = _read_config_file(project_root / CONFIG_DIR / CONFIG_FILE)

    cache = data.get("cache") or {}
    if not isinstance(cache, dict):
        msg = "config.yml: 'cache' must be a mapping"
        raise ConfigError(msg)

    enabled = cache.get("enabled", True)
    if not isinstance(enabled, bool):
        msg = "config.yml: 'cache.enabled' must be true or false"
        raise ConfigError(msg)

    max_age = cache.get("max_age_days", DEFAULT_CACHE_MAX_AGE_DAYS)
    if isinstance(max_age, bool) or not isinstance(max_age, (int, float)) or max_age < 0:
        msg = "config.yml: 'cache.max_age_days' must be a non-negative number"
        raise ConfigError(msg)

    workers = data.get("workers")
    if workers is None:
        workers = default_workers()
    elif isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        msg = "config.yml: 'workers' must be a positive integer"
        raise ConfigError(msg)

    ignore = list(_str_list(data, "ignore") or ())
    ignore.extend(read_ignore_file(project_root / IGNORE_FILE))

    system_folders = _str_list(data, "system_folders")

    return ProjectConfig(
        project_root=project_root,
        docs_dir=_string(data, "docs_dir", DEFAULT_DOCS_DIR),
        rules=_string(data, "rules", DEFAULT_RULES_PATH),
        cache_enabled=enabled,
        cache_path=_string(cache, "path", DEFAULT_CACHE_PATH),
        cache_max_age_days=max_age,
        workers=workers,
        ignore=tuple(ignore),
        exempt_ids=_str_list(data, "exempt_ids") or (),
        system_folders=system_folders if system_folders is not None else DEFAULT_SYSTEM_FOLDERS,
    )
