"""Action to remove disabled snap revisions."""

from __future__ import annotations

import logging
import re

from reclaim.actions.base import ActionResult, CleanupAction
from reclaim.config import Config
from reclaim.core.runner import CommandResult, CommandRunner
from reclaim.models.step import CleanupStep, StepKind

log = logging.getLogger(__name__)

_SNAP_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


def parse_disabled_revisions(output: str) -> list[tuple[str, str]]:
    """Return (name, revision) pairs for disabled revisions in ``snap list --all``."""
    revisions: list[tuple[str, str]] = []
    for line in output.splitlines()[1:]:  # skip header
        parts = line.split()
        if len(parts) < 6 or "disabled" not in parts[-1].split(","):
            continue
        snap_name, revision = parts[0], parts[2]
        if not _SNAP_NAME_RE.match(snap_name) or not revision.isdigit():
            log.debug("Ignoring unexpected snap list row: %s", line)
            continue
        revisions.append((snap_name, revision))
    return revisions


class RemoveDisabledRevisionsAction(CleanupAction):
    """Removes old snap revisions, keeping only the active one."""

    kind = StepKind.REMOVE_DISABLED_PACKAGE_REVISIONS
    description = (
        "Removes disabled snap package revisions. Snap keeps previous revisions "
        "for rollback; this removes all but the currently active revision."
    )
    collaborator = "snap"

    def run(self, step: CleanupStep, runner: CommandRunner, config: Config) -> ActionResult:
        listing = runner.run("snap", ["list", "--all"], config.sample_timeout, read_only=True)
        revisions = parse_disabled_revisions(listing.stdout)
        if not revisions:
            return ActionResult(commands=[listing], message="no disabled revisions")

        commands: list[CommandResult] = [listing]
        for snap_name, revision in revisions:
            log.info("Removing snap %s revision %s", snap_name, revision)
            commands.append(
                runner.run("snap", ["remove", snap_name, f"--revision={revision}"], config.command_timeout)
            )
        return ActionResult(commands=commands, message=f"{len(revisions)} revision(s) removed")
