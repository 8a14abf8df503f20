"""Base action interfaces."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from reclaim.config import Config
from reclaim.core.runner import CommandResult, CommandRunner
from reclaim.models.step import CleanupStep, RiskTier, StepKind

log = logging.getLogger(__name__)


class StepSkipped(Exception):
    """Raised by an action whose precondition says there is nothing to do safely."""


@dataclass(slots=True)
class ActionResult:
    """Commands an action ran and a short human-readable summary."""

    commands: list[CommandResult] = field(default_factory=list)
    message: str = ""

    @property
    def last(self) -> CommandResult | None:
        return self.commands[-1] if self.commands else None


class CleanupAction(ABC):
    """Base class for the implementation behind one ``StepKind``.

    Actions translate a ``CleanupStep`` into fixed command templates and run
    them through the ``CommandRunner``.  Execution errors propagate to the
    pipeline, which decides whether to halt.
    """

    @property
    @abstractmethod
    def kind(self) -> StepKind:
        """The step kind this action executes."""

    @property
    @abstractmethod
    def description(self) -> str:
        """What the action removes and why it is reasonably safe."""

    @property
    def collaborator(self) -> str:
        """Binary the action depends on, e.g. 'docker'."""
        return ""

    @abstractmethod
    def run(self, step: CleanupStep, runner: CommandRunner, config: Config) -> ActionResult:
        """Execute *step*.

        Raises:
            ExecutionError: Propagated from the runner.
            StepSkipped: When a precondition makes the step a no-op.
        """


class DangerousAction(ABC):
    """An irreversible action that is never part of a cleanup step set.

    Dangerous actions only run through ``reclaim.core.dangerous`` with an
    explicit, per-call confirmation.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name used on the command line, e.g. 'docker-system-prune'."""

    @property
    @abstractmethod
    def description(self) -> str:
        """What is destroyed."""

    risk_tier = RiskTier.DANGEROUS
    target = None
    continue_on_error = False

    @property
    def label(self) -> str:
        return self.name

    @abstractmethod
    def run(self, runner: CommandRunner, config: Config) -> ActionResult:
        """Execute the action."""
