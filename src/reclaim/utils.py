"""Shared utility functions."""

from __future__ import annotations

import os
import re
from datetime import timedelta
from pathlib import Path

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGTP]?)(i?)B?\s*$", re.IGNORECASE)
_DURATION_RE = re.compile(r"^\s*(\d+)\s*(s|min|h|d|w|months?|y|years?)\s*$")

_UNIT_POWERS = {"": 0, "K": 1, "M": 2, "G": 3, "T": 4, "P": 5}

_DURATION_SECONDS = {
    "s": 1,
    "min": 60,
    "h": 3600,
    "d": 86400,
    "w": 7 * 86400,
    "month": 30 * 86400,
    "months": 30 * 86400,
    "y": 365 * 86400,
    "year": 365 * 86400,
    "years": 365 * 86400,
}


def xdg_config_home() -> Path:
    """Return XDG_CONFIG_HOME, defaulting to ~/.config."""
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def is_root() -> bool:
    """Check if the current process is running as root."""
    return os.geteuid() == 0


def bytes_to_human(size_bytes: int | float) -> str:
    """Convert byte count to a human-readable string (decimal units)."""
    if size_bytes < 0:
        return f"-{bytes_to_human(-size_bytes)}"
    if size_bytes == 0:
        return "0 B"

    units = ("B", "KB", "MB", "GB", "TB")
    value = float(size_bytes)
    for unit in units[:-1]:
        if abs(value) < 1000:
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1000
    return f"{value:.1f} {units[-1]}"


def parse_size(text: str, base: int = 1000) -> int:
    """Parse a size such as ``200M``, ``1.5GB``, ``512kB`` or ``3GiB`` into bytes.

    Suffixes without an ``i`` use *base*; ``KiB``/``MiB``/... are always 1024-based.

    Raises:
        ValueError: If *text* is not a recognisable size.
    """
    match = _SIZE_RE.match(text)
    if not match:
        raise ValueError(f"Invalid size: {text!r}")
    number, unit, binary = match.groups()
    multiplier = (1024 if binary else base) ** _UNIT_POWERS[unit.upper()]
    return int(round(float(number) * multiplier))


def parse_duration(text: str) -> timedelta:
    """Parse a journald-style time span such as ``7d``, ``2w`` or ``12h``."""
    match = _DURATION_RE.match(text)
    if not match:
        raise ValueError(f"Invalid duration: {text!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_SECONDS[unit])


def excerpt(text: str, max_lines: int = 20, max_chars: int = 2000) -> str:
    """Return the tail of command output, bounded in lines and characters."""
    lines = text.strip().splitlines()
    tail = "\n".join(lines[-max_lines:])
    if len(tail) > max_chars:
        tail = tail[-max_chars:]
    return tail



def format_duration(span: timedelta) -> str:
    """Format a time span the way journald accepts it: whole days as ``7d``, else seconds."""
    if span.days and not span.seconds and not span.microseconds:
        return f"{span.days}d"
    return f"{int(span.total_seconds())}s"
