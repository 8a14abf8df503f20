"""Tests for text and JSON reporting."""

from __future__ import annotations

import json
from pathlib import Path

from conftest import make_snapshot
from reclaim.config import Config
from reclaim.models.outcome import PipelineRun, StepOutcome, StepState
from reclaim.models.snapshot import DirectoryUsage, LargeFile
from reclaim.models.step import CleanupStep
from reclaim.report import health_lines, render, render_diagnosis, run_to_dict

GB = 1_000_000_000


def _sample_run(**kwargs) -> PipelineRun:
    baseline = make_snapshot(850 * GB, journal=900_000_000)
    mid = make_snapshot(800 * GB, journal=900_000_000)
    end = make_snapshot(799 * GB, journal=150_000_000)
    outcomes = (
        StepOutcome(
            step=CleanupStep.prune_build_cache(),
            status=StepState.SUCCEEDED,
            snapshot_before=baseline,
            snapshot_after=mid,
            exit_status=0,
            message="docker reports 50GB reclaimed",
            commands=(("docker", "builder", "prune", "-f"),),
        ),
        StepOutcome(
            step=CleanupStep.remove_disabled_package_revisions(),
            status=StepState.SKIPPED,
            snapshot_before=mid,
            snapshot_after=mid,
            error="confirmation_declined",
            message="confirmation declined",
        ),
        StepOutcome(
            step=CleanupStep.vacuum_logs_by_size(200_000_000),
            status=StepState.FAILED,
            snapshot_before=mid,
            snapshot_after=end,
            exit_status=1,
            stderr_excerpt="first\nsecond\nthird\nfourth",
            error="execution_failed",
            message="journalctl exited with status 1",
        ),
    )
    return PipelineRun(baseline=baseline, outcomes=outcomes, **kwargs)


class TestRender:
    def test_render_is_deterministic(self):
        run = _sample_run()
        assert render(run, Config()) == render(run, Config())

    def test_per_step_lines(self):
        text = render(_sample_run())
        lines = text.splitlines()

        ok = next(line for line in lines if "prune-build-cache" in line)
        assert "✓" in ok and "freed 50.0 GB" in ok and "(docker reports 50GB reclaimed)" in ok
        skipped = next(line for line in lines if "remove-snap-revisions" in line)
        assert "skipped" in skipped and "freed 0 B" in skipped
        failed = next(line for line in lines if "vacuum-journal-size" in line)
        assert "✗" in failed and "failed" in failed

    def test_failed_step_shows_stderr_tail(self):
        text = render(_sample_run())
        assert "| fourth" in text
        assert "| first" not in text

    def test_totals_and_final_usage(self):
        text = render(_sample_run())
        assert "Baseline: 850.0 GB used of 1.0 TB on / (85.0%)" in text
        assert "Total: freed 51.0 GB across 2 step(s)" in text
        assert "Now:   799.0 GB used of 1.0 TB" in text

    def test_growth_is_shown(self):
        before, after = make_snapshot(100), make_snapshot(3_000_100)
        outcome = StepOutcome(
            step=CleanupStep.purge_package_cache(),
            status=StepState.SUCCEEDED,
            snapshot_before=before,
            snapshot_after=after,
            warnings=("used space on / grew by 3.0 MB during this step",),
        )
        text = render(PipelineRun(baseline=before, outcomes=(outcome,)))
        assert "grew by 3.0 MB" in text
        assert "      ! used space on / grew by 3.0 MB" in text

    def test_empty_run(self):
        text = render(PipelineRun(baseline=make_snapshot(10)))
        assert "(no steps run)" in text
        assert "Total: freed 0 B across 0 step(s)" in text

    def test_halted_and_dry_run_notes(self):
        text = render(_sample_run(halted=True, dry_run=True))
        assert "remaining steps were not attempted" in text
        assert "dry run" in text


class TestHealth:
    def test_root_above_target(self):
        lines = health_lines(make_snapshot(850 * GB), Config())
        assert lines[0] == "root filesystem usage 85.0% (target < 80%): above target"

    def test_journal_within_target(self):
        lines = health_lines(make_snapshot(100, journal=120_000_000), Config())
        assert lines[1] == "journal usage 120.0 MB (target 50.0 MB - 200.0 MB): ok"

    def test_journal_not_measured(self):
        lines = health_lines(make_snapshot(100), Config())
        assert lines[1].startswith("journal usage not measured")

    def test_targets_come_from_config(self):
        config = Config(root_usage_target=90.0)
        lines = health_lines(make_snapshot(850 * GB), config)
        assert lines[0].endswith(": ok")


class TestDiagnosis:
    def test_lists_subsystems_and_scans(self):
        snapshot = make_snapshot(500 * GB, docker=3 * GB, journal=150_000_000)
        text = render_diagnosis(
            snapshot,
            Config(),
            large_files=[LargeFile(Path("/home/u/disk.img"), 20 * GB)],
            directories=[DirectoryUsage(Path("/var/lib"), 40 * GB)],
        )
        assert "Docker (images, containers, volumes, build cache)" in text
        assert "3.0 GB" in text
        assert "40.0 GB  /var/lib" in text
        assert "20.0 GB  /home/u/disk.img" in text

    def test_empty_scan(self):
        text = render_diagnosis(make_snapshot(10), Config(), large_files=[])
        assert "(none)" in text


class TestJson:
    def test_run_to_dict_is_serialisable(self):
        data = json.loads(json.dumps(run_to_dict(_sample_run())))

        assert data["status"] == "failed"
        assert data["freed_bytes"] == 51 * GB
        assert [o["status"] for o in data["outcomes"]] == ["succeeded", "skipped", "failed"]
        first = data["outcomes"][0]
        assert first["step"] == "prune-build-cache"
        assert first["risk_tier"] == "safe"
        assert first["commands"] == [["docker", "builder", "prune", "-f"]]
        assert data["outcomes"][2]["target"] == 200_000_000
        assert data["baseline"]["used_bytes"] == 850 * GB
