"""APT package cache actions."""

from __future__ import annotations

import logging
import re

from reclaim.actions.base import ActionResult, CleanupAction
from reclaim.config import Config
from reclaim.core.runner import CommandRunner
from reclaim.models.step import CleanupStep, StepKind

log = logging.getLogger(__name__)

_REMOVED_RE = re.compile(r"(\d+) to remove")


class PurgePackageCacheAction(CleanupAction):
    """Cleans downloaded APT package files."""

    kind = StepKind.PURGE_PACKAGE_CACHE
    description = (
        "Removes downloaded .deb package files from /var/cache/apt/archives. "
        "These are no longer needed after installation."
    )
    collaborator = "apt-get"

    def run(self, step: CleanupStep, runner: CommandRunner, config: Config) -> ActionResult:
        result = runner.run("apt-get", ["clean"], config.command_timeout)
        return ActionResult(commands=[result])


class AutoremovePackagesAction(CleanupAction):
    """Removes packages installed as dependencies that nothing needs any more."""

    kind = StepKind.AUTOREMOVE_PACKAGES
    description = "Purges automatically installed packages that no installed package depends on."
    collaborator = "apt-get"

    def run(self, step: CleanupStep, runner: CommandRunner, config: Config) -> ActionResult:
        result = runner.run("apt-get", ["autoremove", "--purge", "-y"], config.command_timeout)
        match = _REMOVED_RE.search(result.stdout)
        message = f"{match.group(1)} package(s) removed" if match else ""
        return ActionResult(commands=[result], message=message)
