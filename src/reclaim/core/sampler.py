"""Disk usage sampling via the standard diagnostic commands."""

from __future__ import annotations

import json
import logging
import re
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from reclaim.core.runner import (
    Cancelled,
    CommandResult,
    CommandRunner,
    ExecutionError,
    ExecutionFailed,
    PermissionDenied,
)
from reclaim.models.snapshot import DirectoryUsage, DiskSnapshot, LargeFile, MountUsage
from reclaim.utils import parse_size

log = logging.getLogger(__name__)

# Directories measured with ``du`` on every sample.
SUBSYSTEM_DIRS: dict[str, str] = {
    "apt_cache": "/var/cache/apt/archives",
    "snap": "/var/lib/snapd/snaps",
    "var_log": "/var/log",
}

_PSEUDO_FILESYSTEMS = ("tmpfs", "devtmpfs", "squashfs", "overlay")
_JOURNAL_USAGE_RE = re.compile(r"take up ([\d.]+\s*[KMGTP]?i?B?)")


class SampleError(Exception):
    """Raised when the core filesystem usage query fails."""


class DiskUsageSampler:
    """Produces ``DiskSnapshot`` values from df, du, docker and journalctl.

    The filesystem query is mandatory; every other sub-query is optional and
    contributes a zero when its collaborator is missing or fails.  All
    sub-queries run concurrently so the results describe roughly the same
    instant.
    """

    def __init__(
        self,
        runner: CommandRunner,
        root: str = "/",
        timeout: float = 30.0,
        staleness_window: float = 5.0,
    ) -> None:
        self.runner = runner
        self.root = root
        self.timeout = timeout
        self.staleness_window = staleness_window

    def sample(self) -> DiskSnapshot:
        """Take a snapshot of disk usage.

        Raises:
            SampleError: If ``df`` fails or reports no usable mount.
            Cancelled: If the runner was cancelled or interrupted mid-sample.
        """
        started = time.monotonic()
        taken_at = datetime.now(timezone.utc)

        optional: dict[str, Callable[[], int]] = {
            "docker": self._docker_usage,
            "journal": self._journal_usage,
        }
        for name, path in SUBSYSTEM_DIRS.items():
            optional[name] = lambda path=path: self._du_bytes(path)

        with ThreadPoolExecutor(max_workers=4) as executor:
            df_future = executor.submit(self._filesystem_usage)
            futures = {name: executor.submit(query) for name, query in optional.items()}
            try:
                per_mount = self._core_result(df_future)
                subsystems = {name: self._optional_result(name, future) for name, future in futures.items()}
            except KeyboardInterrupt:
                self.runner.cancel()
                raise Cancelled("Interrupted while sampling disk usage") from None

        root_mount = _mount_for(self.root, per_mount)
        if root_mount is None:
            raise SampleError(f"No mounted filesystem found for {self.root}")
        root_usage = per_mount[root_mount]

        elapsed = time.monotonic() - started
        if elapsed > self.staleness_window:
            log.warning(
                "Disk sample took %.1fs (window %.1fs); figures may not describe a single instant",
                elapsed,
                self.staleness_window,
            )

        return DiskSnapshot(
            total_bytes=root_usage.total_bytes,
            used_bytes=root_usage.used_bytes,
            free_bytes=root_usage.free_bytes,
            root=root_mount,
            per_mount=per_mount,
            subsystem_usage=subsystems,
            taken_at=taken_at,
            elapsed=elapsed,
        )

    # ── sub-queries ──────────────────────────────────────────────────────

    def _filesystem_usage(self) -> dict[str, MountUsage]:
        args = ["-B1", "--output=target,size,used,avail"]
        for fstype in _PSEUDO_FILESYSTEMS:
            args += ["-x", fstype]
        result = self._run_partial("df", args, self.timeout)
        mounts = parse_df(result.stdout)
        if not mounts:
            raise SampleError("df reported no filesystems")
        return mounts

    def _docker_usage(self) -> int:
        result = self.runner.run(
            "docker", ["system", "df", "--format", "{{json .}}"], self.timeout, read_only=True
        )
        return parse_docker_df(result.stdout)

    def _journal_usage(self) -> int:
        result = self.runner.run("journalctl", ["--disk-usage"], self.timeout, read_only=True)
        return parse_journal_usage(result.stdout + result.stderr)

    def _du_bytes(self, path: str) -> int:
        result = self._run_partial("du", ["-sb", path], self.timeout)
        for line in result.stdout.splitlines():
            size, _, _name = line.partition("\t")
            if size.strip().isdigit():
                return int(size)
        raise ValueError(f"Unexpected du output for {path}")

    def _run_partial(self, command: str, args: list[str], timeout: float) -> CommandResult:
        """Run a read-only command, accepting output from runs that hit unreadable entries."""
        try:
            return self.runner.run(command, args, timeout, read_only=True)
        except (ExecutionFailed, PermissionDenied) as exc:
            if exc.result is not None and exc.result.stdout.strip():
                log.debug("%s exited with errors, using partial output: %s", command, exc)
                return exc.result
            raise

    def _core_result(self, future: Future) -> dict[str, MountUsage]:
        try:
            return future.result()
        except Cancelled:
            raise
        except ExecutionError as exc:
            raise SampleError(f"Filesystem usage query failed: {exc}") from exc

    def _optional_result(self, name: str, future: Future) -> int:
        try:
            return future.result()
        except Cancelled:
            raise
        except (ExecutionError, ValueError) as exc:
            log.debug("Optional usage query '%s' unavailable: %s", name, exc)
            return 0

    # ── diagnostics beyond the snapshot ──────────────────────────────────

    def scan_large_files(self, path: str = "/", min_bytes: int = 500_000_000, limit: int = 20,
                         timeout: float = 300.0) -> list[LargeFile]:
        """Find the largest regular files on the filesystem holding *path*."""
        result = self._run_partial(
            "find",
            [path, "-xdev", "-type", "f", "-size", f"+{min_bytes}c", "-printf", "%s\t%p\n"],
            timeout,
        )
        files: list[LargeFile] = []
        for line in result.stdout.splitlines():
            size, sep, name = line.partition("\t")
            if sep and size.isdigit():
                files.append(LargeFile(path=Path(name), size_bytes=int(size)))
        files.sort(key=lambda f: f.size_bytes, reverse=True)
        return files[:limit]

    def top_directories(self, path: str = "/var", limit: int = 10) -> list[DirectoryUsage]:
        """Break down usage of the immediate children of *path*."""
        result = self._run_partial("du", ["-x", "-B1", "--max-depth=1", path], self.timeout)
        dirs: list[DirectoryUsage] = []
        base = Path(path)
        for line in result.stdout.splitlines():
            size, sep, name = line.partition("\t")
            if not sep or not size.isdigit() or Path(name) == base:
                continue
            dirs.append(DirectoryUsage(path=Path(name), size_bytes=int(size)))
        dirs.sort(key=lambda d: d.size_bytes, reverse=True)
        return dirs[:limit]


# ── parsers ──────────────────────────────────────────────────────────────


def parse_df(output: str) -> dict[str, MountUsage]:
    """Parse ``df -B1 --output=target,size,used,avail`` into a mount mapping."""
    mounts: dict[str, MountUsage] = {}
    for line in output.splitlines()[1:]:  # skip header
        parts = line.rsplit(None, 3)
        if len(parts) != 4 or not all(p.isdigit() for p in parts[1:]):
            continue
        target, size, used, avail = parts
        mounts[target] = MountUsage(total_bytes=int(size), used_bytes=int(used), free_bytes=int(avail))
    return mounts


def parse_docker_df(output: str) -> int:
    """Sum the Size column of ``docker system df --format '{{json .}}'``."""
    total = 0
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        row = json.loads(line)
        total += parse_size(row.get("Size", "0B"))
    return total


def parse_journal_usage(output: str) -> int:
    """Parse ``journalctl --disk-usage``; journald prints 1024-based units."""
    match = _JOURNAL_USAGE_RE.search(output)
    if not match:
        raise ValueError(f"Unexpected journalctl output: {output.strip()!r}")
    return parse_size(match.group(1), base=1024)


def _mount_for(path: str, mounts: dict[str, MountUsage]) -> str | None:
    """Longest mount point containing *path*."""
    target = Path(path)
    best: str | None = None
    for mount in mounts:
        if target == Path(mount) or target.is_relative_to(mount):
            if best is None or len(mount) > len(best):
                best = mount
    return best
