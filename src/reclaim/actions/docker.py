"""Docker image, build cache and data actions."""

from __future__ import annotations

import logging
import re

from reclaim.actions.base import ActionResult, CleanupAction, DangerousAction
from reclaim.config import Config
from reclaim.core.runner import CommandRunner, ExecutionError
from reclaim.models.step import CleanupStep, StepKind

log = logging.getLogger(__name__)

_RECLAIMED_RE = re.compile(r"Total reclaimed space:\s*(\S+)")
_DOCKER_DATA_DIR = "/var/lib/docker"


def _reclaimed(output: str) -> str:
    match = _RECLAIMED_RE.search(output)
    return f"docker reports {match.group(1)} reclaimed" if match else ""


class PruneDanglingImagesAction(CleanupAction):
    """Removes untagged image layers."""

    kind = StepKind.PRUNE_DANGLING_IMAGES
    description = "Removes dangling Docker images (layers no tag refers to)."
    collaborator = "docker"

    def run(self, step: CleanupStep, runner: CommandRunner, config: Config) -> ActionResult:
        result = runner.run("docker", ["image", "prune", "-f"], config.command_timeout)
        return ActionResult(commands=[result], message=_reclaimed(result.stdout))


class PruneBuildCacheAction(CleanupAction):
    """Removes unused BuildKit cache."""

    kind = StepKind.PRUNE_BUILD_CACHE
    description = "Removes Docker build cache not used by any running build."
    collaborator = "docker"

    def run(self, step: CleanupStep, runner: CommandRunner, config: Config) -> ActionResult:
        result = runner.run("docker", ["builder", "prune", "-f"], config.command_timeout)
        return ActionResult(commands=[result], message=_reclaimed(result.stdout))


class DockerSystemPruneAction(DangerousAction):
    name = "docker-system-prune"
    description = (
        "Removes ALL unused images, stopped containers, networks, build cache "
        "and volumes. Volume data cannot be recovered."
    )

    def run(self, runner: CommandRunner, config: Config) -> ActionResult:
        result = runner.run(
            "docker", ["system", "prune", "-a", "--volumes", "-f"], config.command_timeout
        )
        return ActionResult(commands=[result], message=_reclaimed(result.stdout))


class DockerDataResetAction(DangerousAction):
    """Stops the daemon, wipes its data directory and starts it again."""

    name = "docker-data-reset"
    description = (
        f"Stops Docker and recursively deletes {_DOCKER_DATA_DIR}: every image, "
        "container and volume on this host is lost."
    )

    def run(self, runner: CommandRunner, config: Config) -> ActionResult:
        timeout = config.command_timeout
        commands = [runner.run("systemctl", ["stop", "docker.socket", "docker.service"], timeout)]
        try:
            commands.append(runner.run("rm", ["-rf", "--one-file-system", _DOCKER_DATA_DIR], timeout))
        finally:
            try:
                commands.append(runner.run("systemctl", ["start", "docker.service"], timeout))
            except ExecutionError as exc:
                log.error("Docker did not restart after data reset: %s", exc)
        return ActionResult(commands=commands, message=f"{_DOCKER_DATA_DIR} removed")
