"""Allow-listed external command execution."""

from __future__ import annotations

import logging
import math
import os
import shlex
import shutil
import subprocess
import threading
from dataclasses import dataclass
from typing import Iterable, Sequence

log = logging.getLogger(__name__)

# Binaries the tool may spawn.  Arguments are always passed as an argv list.
ALLOWED_COMMANDS = frozenset(
    {
        "df",
        "du",
        "find",
        "docker",
        "journalctl",
        "apt-get",
        "snap",
        "logrotate",
        "truncate",
        "systemctl",
        "rm",
    }
)

_PERMISSION_MARKERS = (
    "permission denied",
    "operation not permitted",
    "are you root",
    "must be run as root",
    "must be root",
    "access denied",
    "interactive authentication required",
)


class ExecutionError(Exception):
    """Base class for failures to run an external command."""

    kind = "execution_error"

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class NotFound(ExecutionError):
    """The command's binary is not installed."""

    kind = "not_found"


class Timeout(ExecutionError):
    """The command exceeded its time bound and was killed."""

    kind = "timeout"


class PermissionDenied(ExecutionError):
    """The command lacked the privileges it needs."""

    kind = "permission_denied"


class ExecutionFailed(ExecutionError):
    """The command exited with a non-zero status."""

    kind = "execution_failed"


class Cancelled(ExecutionError):
    """The command was interrupted before it finished."""

    kind = "cancelled"


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Captured result of one external command."""

    argv: tuple[str, ...]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    dry_run: bool = False


def _looks_like_permission_error(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in _PERMISSION_MARKERS)


class CommandRunner:
    """Runs allow-listed commands with a mandatory timeout.

    In dry-run mode, invocations that would change the system are logged
    and reported as successful without spawning anything; ``read_only``
    invocations (diagnostics and listings) always run.
    """

    def __init__(self, dry_run: bool = False, allowed: Iterable[str] = ALLOWED_COMMANDS) -> None:
        self.dry_run = dry_run
        self._allowed = frozenset(allowed)
        self._lock = threading.Lock()
        self._active: set[subprocess.Popen] = set()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(
        self,
        command: str,
        args: Sequence[str],
        timeout: float,
        *,
        read_only: bool = False,
    ) -> CommandResult:
        """Run *command* with *args* and return its captured output.

        Raises:
            ValueError: If the command is not allow-listed or the timeout is not finite.
            NotFound: If the binary is missing.
            Timeout: If the process outlived *timeout* seconds.
            PermissionDenied: If the process could not run for lack of privileges.
            ExecutionFailed: If the process exited non-zero.
            Cancelled: If the runner was cancelled or interrupted.
        """
        if command not in self._allowed:
            raise ValueError(f"Command not allowed: {command!r}")
        if timeout is None or not math.isfinite(timeout) or timeout <= 0:
            raise ValueError("A finite, positive timeout is required")
        args = list(args)
        if not all(isinstance(a, str) for a in args):
            raise TypeError("Command arguments must be strings")

        argv = (command, *args)
        printable = shlex.join(argv)

        if self._cancelled.is_set():
            raise Cancelled(f"Not started, runner cancelled: {printable}")

        executable = shutil.which(command)
        if executable is None:
            raise NotFound(f"{command}: command not found")

        if self.dry_run and not read_only:
            log.info("[dry-run] Would execute: %s", printable)
            return CommandResult(argv=argv, exit_code=0, dry_run=True)

        log.debug("Executing command: %s", printable)
        try:
            proc = subprocess.Popen(
                [executable, *args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env={**os.environ, "LC_ALL": "C"},
            )
        except FileNotFoundError:
            raise NotFound(f"{command}: command not found")
        except PermissionError as exc:
            raise PermissionDenied(f"{printable}: {exc}")

        with self._lock:
            self._active.add(proc)
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            raise Timeout(f"{printable} timed out after {timeout:g}s")
        except KeyboardInterrupt:
            proc.kill()
            proc.wait()
            raise Cancelled(f"Interrupted: {printable}")
        finally:
            with self._lock:
                self._active.discard(proc)

        result = CommandResult(argv=argv, exit_code=proc.returncode, stdout=stdout or "", stderr=stderr or "")
        log.debug("Command completed with return code: %d", result.exit_code)

        if self._cancelled.is_set():
            raise Cancelled(f"Cancelled: {printable}", result)

        if result.exit_code != 0:
            detail = result.stderr.strip() or result.stdout.strip()
            if _looks_like_permission_error(detail):
                raise PermissionDenied(f"{printable}: {detail}", result)
            raise ExecutionFailed(f"{printable} exited with status {result.exit_code}: {detail}", result)

        return result

    def cancel(self) -> None:
        """Kill every in-flight command and refuse new ones."""
        self._cancelled.set()
        with self._lock:
            active = list(self._active)
        for proc in active:
            log.debug("Killing in-flight command (pid %d)", proc.pid)
            proc.kill()
