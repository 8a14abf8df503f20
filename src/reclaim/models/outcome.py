"""Step outcome and pipeline run dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from reclaim.models.snapshot import DiskSnapshot
from reclaim.models.step import CleanupStep

if TYPE_CHECKING:
    from reclaim.actions.base import DangerousAction


class StepState(str, Enum):
    """Lifecycle of a single step: Pending -> {Skipped | Running -> (Succeeded | Failed)}."""

    PENDING = "pending"
    RUNNING = "running"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    """Result of running (or skipping) one cleanup step or dangerous action."""

    step: CleanupStep | DangerousAction
    status: StepState
    snapshot_before: DiskSnapshot
    snapshot_after: DiskSnapshot
    exit_status: int | None = None
    stdout_excerpt: str = ""
    stderr_excerpt: str = ""
    error: str | None = None
    message: str = ""
    warnings: tuple[str, ...] = ()
    commands: tuple[tuple[str, ...], ...] = ()

    @property
    def label(self) -> str:
        return self.step.label

    @property
    def freed_bytes(self) -> int:
        """Drop in used bytes across the step; negative if usage grew."""
        return self.snapshot_before.used_bytes - self.snapshot_after.used_bytes


@dataclass(frozen=True)
class PipelineRun:
    """Baseline snapshot plus the outcomes of a finished pipeline, in execution order."""

    baseline: DiskSnapshot
    outcomes: tuple[StepOutcome, ...] = field(default_factory=tuple)
    halted: bool = False
    dry_run: bool = False

    @property
    def final_snapshot(self) -> DiskSnapshot:
        """Most recent snapshot of the run."""
        if self.outcomes:
            return self.outcomes[-1].snapshot_after
        return self.baseline

    @property
    def freed_bytes(self) -> int:
        return self.baseline.used_bytes - self.final_snapshot.used_bytes

    @property
    def failed(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.status is StepState.FAILED]
