"""Thresholds and timeouts, layered from defaults, a JSON file and the environment."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Mapping

from reclaim.utils import parse_duration, parse_size, xdg_config_home

log = logging.getLogger(__name__)

_CONFIG_DIR = "reclaim"
_CONFIG_FILE = "config.json"


class ConfigError(Exception):
    """Raised when a configured value cannot be parsed."""


@dataclass(frozen=True)
class Config:
    """Effective settings for one invocation."""

    journal_max_size: int = 200_000_000
    journal_max_age: timedelta = timedelta(days=7)
    truncate_min_size: int = 100_000_000
    large_file_min_size: int = 500_000_000
    root_usage_target: float = 80.0
    journal_target_min: int = 50_000_000
    journal_target_max: int = 200_000_000
    command_timeout: float = 600.0
    sample_timeout: float = 30.0
    staleness_window: float = 5.0
    root_mount: str = "/"

    def with_overrides(self, **changes: Any) -> Config:
        """Return a copy with every non-None keyword applied."""
        return dataclasses.replace(self, **{k: v for k, v in changes.items() if v is not None})


def _positive_float(text: str) -> float:
    value = float(text)
    if not value > 0 or value == float("inf"):
        raise ValueError(f"must be positive: {text}")
    return value


def _positive_size(text: str) -> int:
    value = parse_size(text)
    if value <= 0:
        raise ValueError(f"must be positive: {text}")
    return value


def _percent(text: str) -> float:
    value = float(text)
    if not 0 < value <= 100:
        raise ValueError(f"must be a percentage: {text}")
    return value


# (field, environment variable, dot-notation key in config.json, parser)
_FIELDS: tuple[tuple[str, str, str, Callable[[str], Any]], ...] = (
    ("journal_max_size", "RECLAIM_JOURNAL_MAX_SIZE", "journal.max_size", _positive_size),
    ("journal_max_age", "RECLAIM_JOURNAL_MAX_AGE", "journal.max_age", parse_duration),
    ("truncate_min_size", "RECLAIM_TRUNCATE_MIN_SIZE", "logs.truncate_min_size", _positive_size),
    ("large_file_min_size", "RECLAIM_LARGE_FILE_MIN_SIZE", "diagnose.large_file_min_size", _positive_size),
    ("root_usage_target", "RECLAIM_ROOT_USAGE_TARGET", "health.root_usage_target", _percent),
    ("journal_target_min", "RECLAIM_JOURNAL_TARGET_MIN", "health.journal_min", parse_size),
    ("journal_target_max", "RECLAIM_JOURNAL_TARGET_MAX", "health.journal_max", parse_size),
    ("command_timeout", "RECLAIM_COMMAND_TIMEOUT", "timeouts.command", _positive_float),
    ("sample_timeout", "RECLAIM_SAMPLE_TIMEOUT", "timeouts.sample", _positive_float),
    ("staleness_window", "RECLAIM_STALENESS_WINDOW", "timeouts.staleness_window", _positive_float),
    ("root_mount", "RECLAIM_ROOT_MOUNT", "diagnose.root_mount", str),
)


def default_config_path() -> Path:
    return xdg_config_home() / _CONFIG_DIR / _CONFIG_FILE


def _read_config_file(path: Path) -> dict[str, Any]:
    """Load the optional JSON config, gracefully handling errors."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Could not load config from %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        log.warning("Ignoring config %s: top level is not an object", path)
        return {}
    return data


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    """Get a value by dot-notation key."""
    node: Any = data
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> Config:
    """Build the effective config: defaults < config file < environment.

    Raises:
        ConfigError: If a value is present but unparseable.
    """
    environ = os.environ if environ is None else environ
    file_data = _read_config_file(path or default_config_path())

    values: dict[str, Any] = {}
    for name, env_var, key, parser in _FIELDS:
        if env_var in environ:
            raw, source = environ[env_var], env_var
        else:
            raw, source = _lookup(file_data, key), key
        if raw is None:
            continue
        try:
            values[name] = parser(str(raw))
        except ValueError as e:
            raise ConfigError(f"Invalid value for {source}: {raw!r} ({e})") from e

    config = Config(**values)
    if config.journal_target_min > config.journal_target_max:
        raise ConfigError("Journal health target minimum exceeds its maximum")
    return config
