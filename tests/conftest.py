"""Shared test fixtures."""

from __future__ import annotations

import os
from typing import Sequence

import pytest

from reclaim.config import Config
from reclaim.core.registry import ActionRegistry, load_actions
from reclaim.core.runner import CommandResult, CommandRunner
from reclaim.models.snapshot import DiskSnapshot, MountUsage

TB = 1_000_000_000_000


def make_snapshot(used: int, total: int = TB, root: str = "/", **subsystems: int) -> DiskSnapshot:
    """Build a snapshot of the root mount with the given usage."""
    usage = MountUsage(total_bytes=total, used_bytes=used, free_bytes=total - used)
    return DiskSnapshot(
        total_bytes=total,
        used_bytes=used,
        free_bytes=total - used,
        root=root,
        per_mount={root: usage},
        subsystem_usage=dict(subsystems),
    )


class FakeSampler:
    """Returns queued snapshots in order, repeating the last one."""

    def __init__(self, *snapshots: DiskSnapshot, error: Exception | None = None) -> None:
        self._queue = list(snapshots)
        self._error = error
        self.calls = 0

    def sample(self) -> DiskSnapshot:
        self.calls += 1
        if self._error is not None:
            raise self._error
        if len(self._queue) > 1:
            return self._queue.pop(0)
        return self._queue[0]


class ScriptedRunner(CommandRunner):
    """Runner that never spawns processes.

    ``responses`` maps a full argv tuple, or just a command name, to a
    ``CommandResult`` to return or an exception to raise.  Unscripted
    commands succeed with empty output.
    """

    def __init__(self, responses: dict | None = None, dry_run: bool = False) -> None:
        super().__init__(dry_run=dry_run)
        self.responses = responses or {}
        self.calls: list[tuple[str, ...]] = []

    def run(self, command: str, args: Sequence[str], timeout: float, *, read_only: bool = False) -> CommandResult:
        argv = (command, *args)
        self.calls.append(argv)
        response = self.responses.get(argv, self.responses.get(command))
        if isinstance(response, BaseException):
            raise response
        if response is None:
            return CommandResult(argv=argv, exit_code=0)
        return response

    def ran(self, command: str) -> bool:
        return any(argv[0] == command for argv in self.calls)


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def registry() -> ActionRegistry:
    reg = ActionRegistry()
    load_actions(reg)
    return reg


@pytest.fixture
def isolate_config(tmp_path, monkeypatch):
    """Point the config file at a temp directory and clear RECLAIM_* variables."""
    config_home = tmp_path / "config"
    config_home.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    for name in list(os.environ):
        if name.startswith("RECLAIM_"):
            monkeypatch.delenv(name)
    return config_home / "reclaim" / "config.json"
