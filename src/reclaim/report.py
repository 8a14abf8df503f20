"""Human-readable and JSON rendering of snapshots and pipeline runs."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from reclaim.config import Config
from reclaim.models.outcome import PipelineRun, StepOutcome, StepState
from reclaim.models.snapshot import DirectoryUsage, DiskSnapshot, LargeFile
from reclaim.utils import bytes_to_human

_STATUS_WORDS = {
    StepState.SUCCEEDED: ("✓", "ok"),
    StepState.SKIPPED: ("·", "skipped"),
    StepState.FAILED: ("✗", "failed"),
}

_SUBSYSTEM_LABELS = {
    "docker": "Docker (images, containers, volumes, build cache)",
    "journal": "systemd journal",
    "apt_cache": "APT package cache",
    "snap": "Snap revisions",
    "var_log": "/var/log",
}


def _delta(freed: int) -> str:
    if freed >= 0:
        return f"freed {bytes_to_human(freed)}"
    return f"grew by {bytes_to_human(-freed)}"


def _usage_line(snapshot: DiskSnapshot) -> str:
    return (
        f"{bytes_to_human(snapshot.used_bytes)} used of {bytes_to_human(snapshot.total_bytes)} "
        f"on {snapshot.root} ({snapshot.used_percent:.1f}%), {bytes_to_human(snapshot.free_bytes)} free"
    )


def health_lines(snapshot: DiskSnapshot, config: Config) -> list[str]:
    """Compare a snapshot against the healthy targets.  Reporting only."""
    lines: list[str] = []
    usage = snapshot.used_percent
    verdict = "ok" if usage < config.root_usage_target else "above target"
    lines.append(
        f"root filesystem usage {usage:.1f}% (target < {config.root_usage_target:g}%): {verdict}"
    )

    journal = snapshot.subsystem("journal")
    target = f"target {bytes_to_human(config.journal_target_min)} - {bytes_to_human(config.journal_target_max)}"
    if journal <= 0:
        lines.append(f"journal usage not measured ({target})")
    else:
        if journal > config.journal_target_max:
            verdict = "above target"
        elif journal < config.journal_target_min:
            verdict = "below target"
        else:
            verdict = "ok"
        lines.append(f"journal usage {bytes_to_human(journal)} ({target}): {verdict}")
    return lines


def _outcome_lines(outcome: StepOutcome) -> list[str]:
    symbol, word = _STATUS_WORDS[outcome.status]
    line = f"  {symbol} {outcome.label:34s} {word:8s} {_delta(outcome.freed_bytes)}"
    if outcome.message:
        line += f"  ({outcome.message})"
    lines = [line]
    for warning in outcome.warnings:
        lines.append(f"      ! {warning}")
    if outcome.status is StepState.FAILED and outcome.stderr_excerpt:
        for err_line in outcome.stderr_excerpt.splitlines()[-3:]:
            lines.append(f"      | {err_line}")
    return lines


def render(run: PipelineRun, config: Config | None = None) -> str:
    """Render a finished run as text.  Output depends only on its arguments."""
    config = config or Config()
    lines: list[str] = [f"Baseline: {_usage_line(run.baseline)}", ""]

    if not run.outcomes:
        lines.append("  (no steps run)")
    for outcome in run.outcomes:
        lines.extend(_outcome_lines(outcome))

    ran = sum(1 for o in run.outcomes if o.status is not StepState.SKIPPED)
    final = run.final_snapshot
    lines += [
        "",
        f"Total: {_delta(run.freed_bytes)} across {ran} step(s)",
        f"Now:   {_usage_line(final)}",
        "",
        "Health:",
    ]
    lines.extend(f"  {line}" for line in health_lines(final, config))

    if run.halted:
        lines += ["", "Stopped after a failed step; the remaining steps were not attempted."]
    if run.dry_run:
        lines += ["", "(dry run: no cleanup commands were executed)"]
    return "\n".join(lines) + "\n"


def render_diagnosis(
    snapshot: DiskSnapshot,
    config: Config | None = None,
    large_files: list[LargeFile] | None = None,
    directories: list[DirectoryUsage] | None = None,
) -> str:
    """Render the output of ``reclaim diagnose``."""
    config = config or Config()
    lines = ["Filesystems:"]
    for mount, usage in sorted(snapshot.per_mount.items()):
        percent = usage.used_bytes * 100.0 / usage.total_bytes if usage.total_bytes else 0.0
        lines.append(
            f"  {mount:24s} {bytes_to_human(usage.used_bytes):>10s} used  "
            f"{bytes_to_human(usage.free_bytes):>10s} free  {percent:5.1f}%"
        )

    lines += ["", "Subsystems:"]
    for name, label in _SUBSYSTEM_LABELS.items():
        size = snapshot.subsystem(name)
        shown = bytes_to_human(size) if size else "-"
        lines.append(f"  {label:50s} {shown:>10s}")

    if directories:
        lines += ["", "Largest directories:"]
        for d in directories:
            lines.append(f"  {bytes_to_human(d.size_bytes):>10s}  {d.path}")

    if large_files is not None:
        lines += ["", f"Files larger than {bytes_to_human(config.large_file_min_size)}:"]
        if not large_files:
            lines.append("  (none)")
        for f in large_files:
            lines.append(f"  {bytes_to_human(f.size_bytes):>10s}  {f.path}")

    lines += ["", "Health:"]
    lines.extend(f"  {line}" for line in health_lines(snapshot, config))
    return "\n".join(lines) + "\n"


# ── JSON ─────────────────────────────────────────────────────────────────


def snapshot_to_dict(snapshot: DiskSnapshot) -> dict[str, Any]:
    return {
        "root": snapshot.root,
        "total_bytes": snapshot.total_bytes,
        "used_bytes": snapshot.used_bytes,
        "free_bytes": snapshot.free_bytes,
        "used_percent": round(snapshot.used_percent, 2),
        "per_mount": {
            mount: {"total_bytes": u.total_bytes, "used_bytes": u.used_bytes, "free_bytes": u.free_bytes}
            for mount, u in sorted(snapshot.per_mount.items())
        },
        "subsystem_usage": dict(sorted(snapshot.subsystem_usage.items())),
        "taken_at": snapshot.taken_at.isoformat() if snapshot.taken_at else None,
        "elapsed": round(snapshot.elapsed, 3),
    }


def _target_to_json(target: Any) -> Any:
    if target is None or isinstance(target, int):
        return target
    if isinstance(target, timedelta):
        return int(target.total_seconds())
    return str(target)


def outcome_to_dict(outcome: StepOutcome) -> dict[str, Any]:
    step = outcome.step
    return {
        "step": step.name,
        "risk_tier": step.risk_tier.value,
        "target": _target_to_json(step.target),
        "continue_on_error": step.continue_on_error,
        "status": outcome.status.value,
        "freed_bytes": outcome.freed_bytes,
        "exit_status": outcome.exit_status,
        "error": outcome.error,
        "message": outcome.message,
        "warnings": list(outcome.warnings),
        "commands": [list(argv) for argv in outcome.commands],
        "stdout_excerpt": outcome.stdout_excerpt,
        "stderr_excerpt": outcome.stderr_excerpt,
        "snapshot_before": snapshot_to_dict(outcome.snapshot_before),
        "snapshot_after": snapshot_to_dict(outcome.snapshot_after),
    }


def run_to_dict(run: PipelineRun) -> dict[str, Any]:
    return {
        "status": "failed" if run.failed else "ok",
        "dry_run": run.dry_run,
        "halted": run.halted,
        "freed_bytes": run.freed_bytes,
        "baseline": snapshot_to_dict(run.baseline),
        "outcomes": [outcome_to_dict(o) for o in run.outcomes],
    }
