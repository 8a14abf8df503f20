"""Disk usage snapshot dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True, slots=True)
class MountUsage:
    """Capacity of a single mounted filesystem."""

    total_bytes: int
    used_bytes: int
    free_bytes: int


@dataclass(frozen=True)
class DiskSnapshot:
    """Disk usage at one point in time.

    ``total_bytes``, ``used_bytes`` and ``free_bytes`` describe the watched
    root mount.  Snapshots are never mutated; compare two of them by
    subtracting their fields.
    """

    total_bytes: int
    used_bytes: int
    free_bytes: int
    root: str = "/"
    per_mount: Mapping[str, MountUsage] = field(default_factory=dict)
    subsystem_usage: Mapping[str, int] = field(default_factory=dict)
    taken_at: datetime | None = None
    elapsed: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "per_mount", MappingProxyType(dict(self.per_mount)))
        object.__setattr__(self, "subsystem_usage", MappingProxyType(dict(self.subsystem_usage)))

    @property
    def used_percent(self) -> float:
        """Share of the root mount in use, as a percentage."""
        if self.total_bytes <= 0:
            return 0.0
        return self.used_bytes * 100.0 / self.total_bytes

    def subsystem(self, name: str) -> int:
        """Bytes used by a subsystem, 0 when it was not measured."""
        return self.subsystem_usage.get(name, 0)


@dataclass(frozen=True, slots=True)
class LargeFile:
    """A file found by the large-file scan."""

    path: Path
    size_bytes: int


@dataclass(frozen=True, slots=True)
class DirectoryUsage:
    """Size of one directory in a ``du`` breakdown."""

    path: Path
    size_bytes: int
