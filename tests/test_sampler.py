"""Tests for disk usage sampling and output parsers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import ScriptedRunner
from reclaim.core.runner import Cancelled, CommandResult, ExecutionFailed, NotFound, PermissionDenied
from reclaim.core.sampler import (
    DiskUsageSampler,
    SampleError,
    parse_df,
    parse_docker_df,
    parse_journal_usage,
)

DF_OUTPUT = """\
Mounted on         1B-blocks          Used         Avail
/              1000000000000  800000000000  200000000000
/boot             1000000000     200000000     800000000
/mnt/my disk      5000000000    1000000000    4000000000
"""

DOCKER_OUTPUT = "\n".join(
    json.dumps(row)
    for row in (
        {"Type": "Images", "TotalCount": "5", "Active": "2", "Size": "2.4GB", "Reclaimable": "1.2GB (50%)"},
        {"Type": "Containers", "TotalCount": "2", "Active": "1", "Size": "0B", "Reclaimable": "0B"},
        {"Type": "Local Volumes", "TotalCount": "1", "Active": "1", "Size": "512kB", "Reclaimable": "0B"},
        {"Type": "Build Cache", "TotalCount": "40", "Active": "0", "Size": "1.1GB", "Reclaimable": "1.1GB"},
    )
)

JOURNAL_OUTPUT = "Archived and active journals take up 1.5G in the file system.\n"


def _result(argv: tuple[str, ...], stdout: str) -> CommandResult:
    return CommandResult(argv=argv, exit_code=0, stdout=stdout)


def _healthy_responses() -> dict:
    return {
        "df": _result(("df",), DF_OUTPUT),
        "docker": _result(("docker",), DOCKER_OUTPUT),
        "journalctl": _result(("journalctl",), JOURNAL_OUTPUT),
        ("du", "-sb", "/var/cache/apt/archives"): _result(("du",), "1000\t/var/cache/apt/archives\n"),
        ("du", "-sb", "/var/lib/snapd/snaps"): _result(("du",), "2000\t/var/lib/snapd/snaps\n"),
        ("du", "-sb", "/var/log"): _result(("du",), "3000\t/var/log\n"),
    }


class TestParsers:
    def test_parse_df(self):
        mounts = parse_df(DF_OUTPUT)
        assert set(mounts) == {"/", "/boot", "/mnt/my disk"}
        assert mounts["/"].used_bytes == 800_000_000_000
        assert mounts["/"].free_bytes == 200_000_000_000
        assert mounts["/mnt/my disk"].total_bytes == 5_000_000_000

    def test_parse_df_ignores_garbage(self):
        assert parse_df("Mounted on 1B-blocks Used Avail\nnot a row\n") == {}

    def test_parse_docker_df(self):
        assert parse_docker_df(DOCKER_OUTPUT) == 2_400_000_000 + 512_000 + 1_100_000_000

    def test_parse_docker_df_empty(self):
        assert parse_docker_df("") == 0

    def test_parse_journal_usage_is_binary(self):
        assert parse_journal_usage(JOURNAL_OUTPUT) == int(1.5 * 1024**3)

    def test_parse_journal_usage_rejects_unknown(self):
        with pytest.raises(ValueError):
            parse_journal_usage("No journal files were found.")


class TestSample:
    def test_full_sample(self):
        runner = ScriptedRunner(_healthy_responses())
        snapshot = DiskUsageSampler(runner).sample()

        assert snapshot.root == "/"
        assert snapshot.total_bytes == 1_000_000_000_000
        assert snapshot.used_bytes == 800_000_000_000
        assert snapshot.free_bytes == 200_000_000_000
        assert snapshot.used_percent == pytest.approx(80.0)
        assert snapshot.subsystem_usage == {
            "docker": 3_500_512_000,
            "journal": int(1.5 * 1024**3),
            "apt_cache": 1000,
            "snap": 2000,
            "var_log": 3000,
        }
        assert snapshot.taken_at is not None

    def test_missing_docker_is_zero(self):
        responses = _healthy_responses()
        responses["docker"] = NotFound("docker: command not found")
        snapshot = DiskUsageSampler(ScriptedRunner(responses)).sample()
        assert snapshot.subsystem("docker") == 0
        assert snapshot.subsystem("journal") > 0

    def test_failed_optional_queries_are_zero(self):
        responses = _healthy_responses()
        responses["journalctl"] = ExecutionFailed("journalctl exited with status 1")
        responses[("du", "-sb", "/var/lib/snapd/snaps")] = ExecutionFailed("du exited with status 1")
        snapshot = DiskUsageSampler(ScriptedRunner(responses)).sample()
        assert snapshot.subsystem("journal") == 0
        assert snapshot.subsystem("snap") == 0
        assert snapshot.subsystem("apt_cache") == 1000

    def test_du_partial_output_is_used(self):
        responses = _healthy_responses()
        partial = CommandResult(("du", "-sb", "/var/log"), 1, "4096\t/var/log\n", "du: cannot read: Permission denied")
        responses[("du", "-sb", "/var/log")] = PermissionDenied("du: Permission denied", partial)
        snapshot = DiskUsageSampler(ScriptedRunner(responses)).sample()
        assert snapshot.subsystem("var_log") == 4096

    def test_df_failure_fails_sample(self):
        responses = _healthy_responses()
        responses["df"] = ExecutionFailed("df exited with status 1")
        with pytest.raises(SampleError, match="Filesystem usage"):
            DiskUsageSampler(ScriptedRunner(responses)).sample()

    def test_df_missing_fails_sample(self):
        responses = _healthy_responses()
        responses["df"] = NotFound("df: command not found")
        with pytest.raises(SampleError):
            DiskUsageSampler(ScriptedRunner(responses)).sample()

    def test_interrupt_cancels_runner(self):
        responses = _healthy_responses()
        responses["df"] = KeyboardInterrupt()
        runner = ScriptedRunner(responses)

        with pytest.raises(Cancelled, match="Interrupted"):
            DiskUsageSampler(runner).sample()

        assert runner.cancelled

    def test_snapshot_mappings_are_read_only(self):
        snapshot = DiskUsageSampler(ScriptedRunner(_healthy_responses())).sample()
        with pytest.raises(TypeError):
            snapshot.subsystem_usage["docker"] = 0
        with pytest.raises(TypeError):
            snapshot.per_mount["/"] = None

    def test_root_resolves_to_containing_mount(self):
        runner = ScriptedRunner(_healthy_responses())
        snapshot = DiskUsageSampler(runner, root="/boot/efi").sample()
        assert snapshot.root == "/boot"
        assert snapshot.used_bytes == 200_000_000

    def test_slow_sample_warns(self, caplog):
        runner = ScriptedRunner(_healthy_responses())
        sampler = DiskUsageSampler(runner, staleness_window=1e-9)
        with caplog.at_level("WARNING"):
            sampler.sample()
        assert "may not describe a single instant" in caplog.text

    def test_queries_are_read_only(self):
        seen = []

        class RecordingRunner(ScriptedRunner):
            def run(self, command, args, timeout, *, read_only=False):
                seen.append(read_only)
                return super().run(command, args, timeout, read_only=read_only)

        DiskUsageSampler(RecordingRunner(_healthy_responses())).sample()
        assert seen and all(seen)


class TestDiagnostics:
    def test_scan_large_files(self):
        output = "600000000\t/var/lib/big.img\n900000000\t/home/u/video.mkv\n"
        runner = ScriptedRunner({"find": _result(("find",), output)})
        files = DiskUsageSampler(runner).scan_large_files("/", min_bytes=500_000_000)

        assert [f.path for f in files] == [Path("/home/u/video.mkv"), Path("/var/lib/big.img")]
        assert runner.calls[0][:6] == ("find", "/", "-xdev", "-type", "f", "-size")
        assert "+500000000c" in runner.calls[0]

    def test_scan_large_files_limit(self):
        output = "".join(f"{i}\t/f{i}\n" for i in range(1, 30))
        runner = ScriptedRunner({"find": _result(("find",), output)})
        files = DiskUsageSampler(runner).scan_large_files("/", min_bytes=1, limit=3)
        assert [f.size_bytes for f in files] == [29, 28, 27]

    def test_top_directories_excludes_parent(self):
        output = "100\t/var/tmp\n900\t/var/lib\n1000\t/var\n"
        runner = ScriptedRunner({"du": _result(("du",), output)})
        dirs = DiskUsageSampler(runner).top_directories("/var")
        assert [(str(d.path), d.size_bytes) for d in dirs] == [("/var/lib", 900), ("/var/tmp", 100)]
