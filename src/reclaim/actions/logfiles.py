"""Log rotation and targeted log truncation."""

from __future__ import annotations

import logging

from reclaim.actions.base import ActionResult, CleanupAction, StepSkipped
from reclaim.config import Config
from reclaim.core.runner import CommandRunner
from reclaim.models.step import CleanupStep, StepKind
from reclaim.utils import bytes_to_human

log = logging.getLogger(__name__)

_LOGROTATE_CONF = "/etc/logrotate.conf"


class RotateLogsAction(CleanupAction):
    kind = StepKind.ROTATE_LOGS
    description = "Forces logrotate to rotate and compress every configured log now."
    collaborator = "logrotate"

    def run(self, step: CleanupStep, runner: CommandRunner, config: Config) -> ActionResult:
        result = runner.run("logrotate", ["-f", _LOGROTATE_CONF], config.command_timeout)
        return ActionResult(commands=[result])


class TruncateLogFileAction(CleanupAction):
    """Empties one log file in place so writers holding it open keep working.

    Files smaller than the configured truncation floor are left alone.
    """

    kind = StepKind.TRUNCATE_LOG_FILE
    description = "Truncates a named file under /var/log to zero bytes."
    collaborator = "truncate"

    def run(self, step: CleanupStep, runner: CommandRunner, config: Config) -> ActionResult:
        path = str(step.target)
        sized = runner.run("du", ["-b", "--apparent-size", path], config.sample_timeout, read_only=True)
        size_field = sized.stdout.split("\t", 1)[0].strip()
        if not size_field.isdigit():
            raise ValueError(f"Unexpected du output for {path}: {sized.stdout!r}")
        size = int(size_field)

        if size < config.truncate_min_size:
            raise StepSkipped(
                f"{path} is {bytes_to_human(size)}, below the "
                f"{bytes_to_human(config.truncate_min_size)} truncation floor"
            )

        result = runner.run("truncate", ["-s", "0", path], config.command_timeout)
        return ActionResult(commands=[sized, result], message=f"{path} truncated from {bytes_to_human(size)}")
