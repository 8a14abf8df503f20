"""Sequenced, verified cleanup orchestration."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from reclaim.actions.base import ActionResult, StepSkipped
from reclaim.config import Config
from reclaim.core.registry import ActionRegistry
from reclaim.core.runner import Cancelled, CommandRunner, ExecutionError, NotFound, PermissionDenied
from reclaim.core.sampler import DiskUsageSampler, SampleError
from reclaim.models.outcome import PipelineRun, StepOutcome, StepState
from reclaim.models.snapshot import DiskSnapshot
from reclaim.models.step import CleanupStep
from reclaim.utils import bytes_to_human, excerpt

log = logging.getLogger(__name__)

ConfirmCallback = Callable[[CleanupStep], bool]
ProgressCallback = Callable[[CleanupStep, StepState], None]

CONFIRMATION_DECLINED = "confirmation_declined"
SAMPLE_FAILED = "sample_failed"
ACTION_CRASHED = "action_crashed"
NO_ACTION = "no_action"

# Failures that stop the run even for continue-on-error steps.
_ALWAYS_FATAL = {Cancelled.kind, PermissionDenied.kind, SAMPLE_FAILED}


def usage_growth_warning(before: DiskSnapshot, after: DiskSnapshot) -> tuple[str, ...]:
    """Warn when a step left more space used than it found."""
    grown = after.used_bytes - before.used_bytes
    if grown > 0:
        return (f"used space on {after.root} grew by {bytes_to_human(grown)} during this step",)
    return ()


class CleanupPipeline:
    """Runs cleanup steps one at a time with a snapshot on each side.

    Steps run strictly in the order given.  A step that needs confirmation
    and is declined is recorded as skipped without sampling or running
    anything.  A failed step halts the run unless it is marked
    ``continue_on_error``; cancellation, permission errors and sampling
    failures always halt.  Nothing is retried or rolled back.  In a dry run the
    snapshot after each step is the one taken before it.
    """

    def __init__(
        self,
        registry: ActionRegistry,
        runner: CommandRunner,
        sampler: DiskUsageSampler,
        config: Config,
    ) -> None:
        self.registry = registry
        self.runner = runner
        self.sampler = sampler
        self.config = config

    def execute(
        self,
        steps: Sequence[CleanupStep],
        confirm: ConfirmCallback,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineRun:
        """Run *steps* in order and return the finished run.

        Raises:
            SampleError: If the baseline snapshot cannot be taken.
            Cancelled: If cancelled while taking the baseline.
        """
        baseline = self.sampler.sample()
        log.info("Baseline: %s used of %s on %s", bytes_to_human(baseline.used_bytes),
                 bytes_to_human(baseline.total_bytes), baseline.root)

        latest = baseline
        outcomes: list[StepOutcome] = []
        halted = False

        for step in steps:
            if on_progress:
                on_progress(step, StepState.PENDING)
            outcome = self._execute_step(step, confirm, latest, on_progress)
            outcomes.append(outcome)
            latest = outcome.snapshot_after
            if on_progress:
                on_progress(step, outcome.status)

            if outcome.status is StepState.FAILED and (
                outcome.error in _ALWAYS_FATAL or not step.continue_on_error
            ):
                log.warning("Step '%s' failed, not running the remaining steps", step.label)
                halted = True
                break

        return PipelineRun(
            baseline=baseline,
            outcomes=tuple(outcomes),
            halted=halted,
            dry_run=self.runner.dry_run,
        )

    def _execute_step(
        self,
        step: CleanupStep,
        confirm: ConfirmCallback,
        latest: DiskSnapshot,
        on_progress: ProgressCallback | None,
    ) -> StepOutcome:
        if step.risk_tier.needs_confirmation and not confirm(step):
            log.info("Step '%s' declined by operator", step.label)
            return StepOutcome(
                step=step,
                status=StepState.SKIPPED,
                snapshot_before=latest,
                snapshot_after=latest,
                error=CONFIRMATION_DECLINED,
                message="confirmation declined",
            )

        action = self.registry.get(step.kind)
        if action is None:
            return StepOutcome(
                step=step,
                status=StepState.FAILED,
                snapshot_before=latest,
                snapshot_after=latest,
                error=NO_ACTION,
                message=f"no action registered for {step.name}",
            )

        try:
            before = self.sampler.sample()
        except (SampleError, Cancelled) as exc:
            return self._sample_failure(step, latest, latest, exc)

        if on_progress:
            on_progress(step, StepState.RUNNING)
        log.info("Running step '%s'", step.label)

        try:
            result = action.run(step, self.runner, self.config)
        except StepSkipped as exc:
            return StepOutcome(step=step, status=StepState.SKIPPED, snapshot_before=before,
                               snapshot_after=before, message=str(exc))
        except NotFound as exc:
            log.info("Step '%s' skipped: %s", step.label, exc)
            return StepOutcome(step=step, status=StepState.SKIPPED, snapshot_before=before,
                               snapshot_after=before, error=exc.kind, message=f"{exc}, skipped")
        except Cancelled as exc:
            return self._execution_failure(step, before, before, exc)
        except ExecutionError as exc:
            after = self._sample_after(before)
            return self._execution_failure(step, before, after, exc)
        except Exception as exc:
            log.exception("Action for step '%s' crashed", step.label)
            after = self._sample_after(before)
            return StepOutcome(step=step, status=StepState.FAILED, snapshot_before=before,
                               snapshot_after=after, error=ACTION_CRASHED,
                               message=f"action crashed: {exc}",
                               warnings=usage_growth_warning(before, after))

        if self.runner.dry_run:
            # nothing was changed, so the usage cannot have moved
            return self._success(step, before, before, result)

        try:
            after = self.sampler.sample()
        except (SampleError, Cancelled) as exc:
            return self._sample_failure(step, before, before, exc, result)

        return self._success(step, before, after, result)

    def _sample_after(self, before: DiskSnapshot) -> DiskSnapshot:
        """Snapshot after a failed step, falling back to *before* if sampling fails too."""
        if self.runner.dry_run:
            return before
        try:
            return self.sampler.sample()
        except (SampleError, Cancelled) as exc:
            log.warning("Could not sample disk usage after failed step: %s", exc)
            return before

    def _success(self, step: CleanupStep, before: DiskSnapshot, after: DiskSnapshot,
                 result: ActionResult) -> StepOutcome:
        last = result.last
        warnings = usage_growth_warning(before, after)
        for warning in warnings:
            log.warning("Step '%s': %s", step.label, warning)
        return StepOutcome(
            step=step,
            status=StepState.SUCCEEDED,
            snapshot_before=before,
            snapshot_after=after,
            exit_status=last.exit_code if last else None,
            stdout_excerpt=excerpt("\n".join(r.stdout for r in result.commands)),
            stderr_excerpt=excerpt("\n".join(r.stderr for r in result.commands)),
            message=result.message,
            warnings=warnings,
            commands=tuple(r.argv for r in result.commands),
        )

    def _execution_failure(self, step: CleanupStep, before: DiskSnapshot, after: DiskSnapshot,
                           exc: ExecutionError) -> StepOutcome:
        log.error("Step '%s' failed: %s", step.label, exc)
        res = exc.result
        return StepOutcome(
            step=step,
            status=StepState.FAILED,
            snapshot_before=before,
            snapshot_after=after,
            exit_status=res.exit_code if res else None,
            stdout_excerpt=excerpt(res.stdout) if res else "",
            stderr_excerpt=excerpt(res.stderr) if res else "",
            error=exc.kind,
            message=str(exc),
            warnings=usage_growth_warning(before, after),
            commands=(res.argv,) if res else (),
        )

    def _sample_failure(self, step: CleanupStep, before: DiskSnapshot, after: DiskSnapshot,
                        exc: Exception, result: ActionResult | None = None) -> StepOutcome:
        error = exc.kind if isinstance(exc, Cancelled) else SAMPLE_FAILED
        log.error("Step '%s': disk sampling failed: %s", step.label, exc)
        return StepOutcome(
            step=step,
            status=StepState.FAILED,
            snapshot_before=before,
            snapshot_after=after,
            error=error,
            message=f"could not verify disk usage: {exc}",
            commands=tuple(r.argv for r in result.commands) if result else (),
        )
