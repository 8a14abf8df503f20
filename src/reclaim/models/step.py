"""Cleanup step model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from pathlib import Path

from reclaim.utils import bytes_to_human, format_duration

# Only files below this directory may be truncated.
LOG_ROOT = Path("/var/log")


class RiskTier(str, Enum):
    """How much operator consent a step needs before it runs."""

    SAFE = "safe"
    REQUIRES_CONFIRMATION = "requires-confirmation"
    DANGEROUS = "dangerous"

    @property
    def needs_confirmation(self) -> bool:
        return self is not RiskTier.SAFE


class StepKind(str, Enum):
    """Kinds of cleanup action, declared in the recommended safe order."""

    PRUNE_DANGLING_IMAGES = "prune-images"
    PRUNE_BUILD_CACHE = "prune-build-cache"
    VACUUM_LOGS_BY_SIZE = "vacuum-journal-size"
    VACUUM_LOGS_BY_TIME = "vacuum-journal-time"
    PURGE_PACKAGE_CACHE = "purge-apt-cache"
    AUTOREMOVE_PACKAGES = "autoremove-packages"
    REMOVE_DISABLED_PACKAGE_REVISIONS = "remove-snap-revisions"
    ROTATE_LOGS = "rotate-logs"
    TRUNCATE_LOG_FILE = "truncate-log"


SAFE_ORDER: tuple[StepKind, ...] = tuple(StepKind)

_DEFAULT_TIERS: dict[StepKind, RiskTier] = {
    StepKind.PRUNE_DANGLING_IMAGES: RiskTier.SAFE,
    StepKind.PRUNE_BUILD_CACHE: RiskTier.SAFE,
    StepKind.VACUUM_LOGS_BY_SIZE: RiskTier.SAFE,
    StepKind.VACUUM_LOGS_BY_TIME: RiskTier.SAFE,
    StepKind.PURGE_PACKAGE_CACHE: RiskTier.SAFE,
    StepKind.AUTOREMOVE_PACKAGES: RiskTier.REQUIRES_CONFIRMATION,
    StepKind.REMOVE_DISABLED_PACKAGE_REVISIONS: RiskTier.REQUIRES_CONFIRMATION,
    StepKind.ROTATE_LOGS: RiskTier.REQUIRES_CONFIRMATION,
    StepKind.TRUNCATE_LOG_FILE: RiskTier.REQUIRES_CONFIRMATION,
}

_TARGET_TYPES: dict[StepKind, type] = {
    StepKind.VACUUM_LOGS_BY_SIZE: int,
    StepKind.VACUUM_LOGS_BY_TIME: timedelta,
    StepKind.TRUNCATE_LOG_FILE: Path,
}


def default_tier(kind: StepKind) -> RiskTier:
    """Risk tier a step of *kind* gets when none is given."""
    return _DEFAULT_TIERS[kind]


@dataclass(frozen=True)
class CleanupStep:
    """One cleanup action, immutable for the lifetime of a pipeline run.

    ``target`` carries the kind-specific parameter: a byte threshold for
    ``VACUUM_LOGS_BY_SIZE``, a ``timedelta`` for ``VACUUM_LOGS_BY_TIME`` and
    a log file path for ``TRUNCATE_LOG_FILE``.  Other kinds take no target.
    """

    kind: StepKind
    risk_tier: RiskTier | None = None
    target: int | timedelta | Path | None = None
    continue_on_error: bool = False

    def __post_init__(self) -> None:
        if self.risk_tier is None:
            object.__setattr__(self, "risk_tier", default_tier(self.kind))

        expected = _TARGET_TYPES.get(self.kind)
        if expected is None:
            if self.target is not None:
                raise ValueError(f"{self.kind.value} takes no target")
            return

        target = self.target
        if expected is Path and isinstance(target, str):
            target = Path(target)
            object.__setattr__(self, "target", target)
        if not isinstance(target, expected) or isinstance(target, bool):
            raise ValueError(f"{self.kind.value} requires a {expected.__name__} target")

        if isinstance(target, int) and target <= 0:
            raise ValueError("Size threshold must be positive")
        if isinstance(target, timedelta) and target.total_seconds() < 1:
            raise ValueError("Time threshold must be at least one second")
        if isinstance(target, Path):
            _validate_log_path(target)

    # ── constructors ─────────────────────────────────────────────────────

    @classmethod
    def prune_dangling_images(cls, **kwargs) -> CleanupStep:
        return cls(StepKind.PRUNE_DANGLING_IMAGES, **kwargs)

    @classmethod
    def prune_build_cache(cls, **kwargs) -> CleanupStep:
        return cls(StepKind.PRUNE_BUILD_CACHE, **kwargs)

    @classmethod
    def vacuum_logs_by_size(cls, threshold: int, **kwargs) -> CleanupStep:
        return cls(StepKind.VACUUM_LOGS_BY_SIZE, target=threshold, **kwargs)

    @classmethod
    def vacuum_logs_by_time(cls, duration: timedelta, **kwargs) -> CleanupStep:
        return cls(StepKind.VACUUM_LOGS_BY_TIME, target=duration, **kwargs)

    @classmethod
    def purge_package_cache(cls, **kwargs) -> CleanupStep:
        return cls(StepKind.PURGE_PACKAGE_CACHE, **kwargs)

    @classmethod
    def autoremove_packages(cls, **kwargs) -> CleanupStep:
        return cls(StepKind.AUTOREMOVE_PACKAGES, **kwargs)

    @classmethod
    def remove_disabled_package_revisions(cls, **kwargs) -> CleanupStep:
        return cls(StepKind.REMOVE_DISABLED_PACKAGE_REVISIONS, **kwargs)

    @classmethod
    def rotate_logs(cls, **kwargs) -> CleanupStep:
        return cls(StepKind.ROTATE_LOGS, **kwargs)

    @classmethod
    def truncate_log_file(cls, path: Path | str, **kwargs) -> CleanupStep:
        return cls(StepKind.TRUNCATE_LOG_FILE, target=Path(path), **kwargs)

    # ── display ──────────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        """Catalog name, e.g. 'prune-build-cache'."""
        return self.kind.value

    @property
    def label(self) -> str:
        """Name including the target, e.g. 'truncate-log /var/log/syslog'."""
        if self.target is None:
            return self.name
        if isinstance(self.target, timedelta):
            return f"{self.name} {format_duration(self.target)}"
        if isinstance(self.target, int):
            return f"{self.name} {bytes_to_human(self.target)}"
        return f"{self.name} {self.target}"


def _validate_log_path(path: Path) -> None:
    if not path.is_absolute():
        raise ValueError(f"Log path must be absolute: {path}")
    if ".." in path.parts:
        raise ValueError(f"Log path must not contain '..': {path}")
    if path == LOG_ROOT or not path.is_relative_to(LOG_ROOT):
        raise ValueError(f"Only files under {LOG_ROOT} can be truncated: {path}")
    # truncate follows symlinks in any component
    if path.resolve() != path:
        raise ValueError(f"Log path must not go through a symbolic link: {path}")
