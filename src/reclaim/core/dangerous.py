"""Explicitly gated execution of a single dangerous action."""

from __future__ import annotations

import logging
from typing import Callable

from reclaim.actions.base import DangerousAction
from reclaim.config import Config
from reclaim.core.pipeline import CONFIRMATION_DECLINED, usage_growth_warning
from reclaim.core.registry import ActionRegistry
from reclaim.core.runner import Cancelled, CommandRunner, ExecutionError, NotFound
from reclaim.core.sampler import DiskUsageSampler, SampleError
from reclaim.models.outcome import PipelineRun, StepOutcome, StepState
from reclaim.utils import excerpt

log = logging.getLogger(__name__)

DangerousConfirmCallback = Callable[[DangerousAction], bool]


class UnknownActionError(ValueError):
    """Raised for a dangerous action name that is not registered."""


def run_dangerous(
    name: str,
    registry: ActionRegistry,
    runner: CommandRunner,
    sampler: DiskUsageSampler,
    config: Config,
    confirm: DangerousConfirmCallback,
) -> PipelineRun:
    """Run one named dangerous action after asking *confirm* for this call.

    The result is a one-outcome ``PipelineRun`` so it can be reported like
    a normal clean.

    Raises:
        UnknownActionError: If *name* is not a registered dangerous action.
        SampleError: If the baseline snapshot cannot be taken.
    """
    action = registry.get_dangerous(name)
    if action is None:
        known = ", ".join(a.name for a in registry.dangerous_actions())
        raise UnknownActionError(f"Unknown dangerous action '{name}' (known: {known})")

    baseline = sampler.sample()

    if not confirm(action):
        log.info("Dangerous action '%s' declined", name)
        outcome = StepOutcome(
            step=action,
            status=StepState.SKIPPED,
            snapshot_before=baseline,
            snapshot_after=baseline,
            error=CONFIRMATION_DECLINED,
            message="confirmation declined",
        )
        return PipelineRun(baseline=baseline, outcomes=(outcome,), dry_run=runner.dry_run)

    log.warning("Running dangerous action '%s'", name)
    try:
        result = action.run(runner, config)
    except NotFound as exc:
        log.info("Dangerous action '%s' skipped: %s", name, exc)
        outcome = StepOutcome(
            step=action,
            status=StepState.SKIPPED,
            snapshot_before=baseline,
            snapshot_after=baseline,
            error=exc.kind,
            message=f"{exc}, skipped",
        )
        return PipelineRun(baseline=baseline, outcomes=(outcome,), dry_run=runner.dry_run)
    except ExecutionError as exc:
        log.error("Dangerous action '%s' failed: %s", name, exc)
        after = baseline if isinstance(exc, Cancelled) else _sample_or(sampler, baseline)
        res = exc.result
        outcome = StepOutcome(
            step=action,
            status=StepState.FAILED,
            snapshot_before=baseline,
            snapshot_after=after,
            exit_status=res.exit_code if res else None,
            stdout_excerpt=excerpt(res.stdout) if res else "",
            stderr_excerpt=excerpt(res.stderr) if res else "",
            error=exc.kind,
            message=str(exc),
            warnings=usage_growth_warning(baseline, after),
            commands=(res.argv,) if res else (),
        )
        return PipelineRun(baseline=baseline, outcomes=(outcome,), halted=True, dry_run=runner.dry_run)

    after = baseline if runner.dry_run else _sample_or(sampler, baseline)
    last = result.last
    outcome = StepOutcome(
        step=action,
        status=StepState.SUCCEEDED,
        snapshot_before=baseline,
        snapshot_after=after,
        exit_status=last.exit_code if last else None,
        stdout_excerpt=excerpt("\n".join(r.stdout for r in result.commands)),
        stderr_excerpt=excerpt("\n".join(r.stderr for r in result.commands)),
        message=result.message,
        warnings=usage_growth_warning(baseline, after),
        commands=tuple(r.argv for r in result.commands),
    )
    return PipelineRun(baseline=baseline, outcomes=(outcome,), dry_run=runner.dry_run)


def _sample_or(sampler: DiskUsageSampler, fallback):
    try:
        return sampler.sample()
    except (SampleError, Cancelled) as exc:
        log.warning("Could not sample disk usage after dangerous action: %s", exc)
        return fallback
