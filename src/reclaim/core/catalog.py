"""Named step catalog, default step set and safe ordering."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from reclaim.config import Config
from reclaim.models.step import SAFE_ORDER, CleanupStep, RiskTier, StepKind

log = logging.getLogger(__name__)

# Steps run by a plain ``reclaim clean``.  Never contains a dangerous tier.
DEFAULT_STEP_KINDS: tuple[StepKind, ...] = (
    StepKind.PRUNE_DANGLING_IMAGES,
    StepKind.PRUNE_BUILD_CACHE,
    StepKind.VACUUM_LOGS_BY_SIZE,
    StepKind.VACUUM_LOGS_BY_TIME,
    StepKind.PURGE_PACKAGE_CACHE,
    StepKind.AUTOREMOVE_PACKAGES,
    StepKind.REMOVE_DISABLED_PACKAGE_REVISIONS,
)


class UnknownStepError(ValueError):
    """Raised for a step name that is not in the catalog."""


def build_step(
    kind: StepKind,
    config: Config,
    *,
    target: Path | None = None,
    continue_on_error: bool = False,
) -> CleanupStep:
    """Construct a step of *kind*, taking thresholds from *config*."""
    if kind is StepKind.VACUUM_LOGS_BY_SIZE:
        return CleanupStep.vacuum_logs_by_size(config.journal_max_size, continue_on_error=continue_on_error)
    if kind is StepKind.VACUUM_LOGS_BY_TIME:
        return CleanupStep.vacuum_logs_by_time(config.journal_max_age, continue_on_error=continue_on_error)
    if kind is StepKind.TRUNCATE_LOG_FILE:
        if target is None:
            raise ValueError("truncate-log needs a file path (use --truncate PATH)")
        return CleanupStep.truncate_log_file(target, continue_on_error=continue_on_error)
    return CleanupStep(kind, continue_on_error=continue_on_error)


def default_steps(config: Config, continue_on_error: bool = False) -> list[CleanupStep]:
    steps = [build_step(kind, config, continue_on_error=continue_on_error) for kind in DEFAULT_STEP_KINDS]
    return [s for s in steps if s.risk_tier is not RiskTier.DANGEROUS]


def parse_step_names(raw: str) -> list[StepKind]:
    """Parse a comma-separated list of step names.

    Raises:
        UnknownStepError: If a name is not in the catalog.
    """
    kinds: list[StepKind] = []
    for part in raw.split(","):
        name = part.strip()
        if not name:
            continue
        try:
            kind = StepKind(name)
        except ValueError:
            known = ", ".join(k.value for k in StepKind)
            raise UnknownStepError(f"Unknown step '{name}' (known: {known})") from None
        if kind not in kinds:
            kinds.append(kind)
    return kinds


def select_steps(
    config: Config,
    kinds: Iterable[StepKind] | None = None,
    truncate_paths: Iterable[Path | str] = (),
    continue_on_error: bool = False,
) -> list[CleanupStep]:
    """Build the step list for a clean run, in safe order.

    With no *kinds*, the default step set is used.  Each path in
    *truncate_paths* adds one truncation step.
    """
    truncate_paths = [Path(p) for p in truncate_paths]
    if kinds is None:
        steps = default_steps(config, continue_on_error)
    else:
        steps = []
        for kind in kinds:
            if kind is StepKind.TRUNCATE_LOG_FILE:
                if not truncate_paths:
                    raise ValueError("truncate-log needs a file path (use --truncate PATH)")
                continue
            steps.append(build_step(kind, config, continue_on_error=continue_on_error))

    for path in truncate_paths:
        steps.append(
            build_step(StepKind.TRUNCATE_LOG_FILE, config, target=path, continue_on_error=continue_on_error)
        )
    return in_safe_order(steps)


def in_safe_order(steps: Iterable[CleanupStep]) -> list[CleanupStep]:
    """Sort steps into the recommended order, keeping the relative order of equal kinds."""
    return sorted(steps, key=lambda s: SAFE_ORDER.index(s.kind))
