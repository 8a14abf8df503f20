"""Actions that vacuum the systemd journal."""

from __future__ import annotations

import logging
import re

from reclaim.actions.base import ActionResult, CleanupAction
from reclaim.config import Config
from reclaim.core.runner import CommandRunner
from reclaim.models.step import CleanupStep, StepKind

log = logging.getLogger(__name__)

_FREED_RE = re.compile(r"freed (\S+) of archived journals")


def _vacuum(runner: CommandRunner, option: str, config: Config) -> ActionResult:
    result = runner.run("journalctl", [option], config.command_timeout)
    # journalctl reports on stderr
    match = _FREED_RE.search(result.stderr + result.stdout)
    message = f"journald freed {match.group(1)}" if match else ""
    return ActionResult(commands=[result], message=message)


class VacuumLogsBySizeAction(CleanupAction):
    """Shrinks archived journal files until the journal fits the threshold."""

    kind = StepKind.VACUUM_LOGS_BY_SIZE
    description = "Deletes the oldest archived journal files until the journal fits the size limit."
    collaborator = "journalctl"

    def run(self, step: CleanupStep, runner: CommandRunner, config: Config) -> ActionResult:
        return _vacuum(runner, f"--vacuum-size={step.target}", config)


class VacuumLogsByTimeAction(CleanupAction):
    kind = StepKind.VACUUM_LOGS_BY_TIME
    description = "Deletes archived journal entries older than the age limit."
    collaborator = "journalctl"

    def run(self, step: CleanupStep, runner: CommandRunner, config: Config) -> ActionResult:
        return _vacuum(runner, f"--vacuum-time={int(step.target.total_seconds())}s", config)
