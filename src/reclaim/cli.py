"""CLI interface for Reclaim."""

from __future__ import annotations

import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import click

from reclaim.actions.base import DangerousAction
from reclaim.config import Config, ConfigError, load_config
from reclaim.core.catalog import DEFAULT_STEP_KINDS, UnknownStepError, parse_step_names, select_steps
from reclaim.core.dangerous import UnknownActionError, run_dangerous
from reclaim.core.pipeline import CleanupPipeline
from reclaim.core.registry import ActionRegistry, default_registry
from reclaim.core.runner import Cancelled, CommandRunner, ExecutionError
from reclaim.core.sampler import DiskUsageSampler, SampleError
from reclaim.models.outcome import PipelineRun, StepState
from reclaim.models.step import CleanupStep, default_tier
from reclaim.report import render, render_diagnosis, run_to_dict, snapshot_to_dict
from reclaim.utils import bytes_to_human, format_duration, is_root, parse_duration, parse_size

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_STEP_FAILED = 2
EXIT_CANCELLED = 130


class SizeParamType(click.ParamType):
    name = "size"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> int:
        if isinstance(value, int):
            return value
        try:
            return parse_size(value)
        except ValueError as exc:
            self.fail(str(exc), param, ctx)


class DurationParamType(click.ParamType):
    name = "duration"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None):
        try:
            return parse_duration(value)
        except ValueError as exc:
            self.fail(str(exc), param, ctx)


SIZE = SizeParamType()
DURATION = DurationParamType()


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _load_config(**overrides: Any) -> Config:
    try:
        return load_config().with_overrides(**overrides)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_ERROR)


def _build_sampler(runner: CommandRunner, config: Config) -> DiskUsageSampler:
    return DiskUsageSampler(
        runner,
        root=config.root_mount,
        timeout=config.sample_timeout,
        staleness_window=config.staleness_window,
    )


def _cancel_on_sigterm(runner: CommandRunner) -> None:
    def _handler(signum, frame) -> None:
        log.warning("Received signal %d, cancelling running commands", signum)
        runner.cancel()

    signal.signal(signal.SIGTERM, _handler)


def _exit_code(run: PipelineRun) -> int:
    if any(o.error == Cancelled.kind for o in run.outcomes):
        return EXIT_CANCELLED
    if run.failed:
        return EXIT_STEP_FAILED
    return EXIT_OK


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
def main(verbose: int) -> None:
    """Reclaim: diagnose and reclaim disk space on Linux hosts."""
    _setup_logging(verbose)


# ── diagnose ─────────────────────────────────────────────────────────────

@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--large-files/--no-large-files", default=True, help="Scan for large files (slow on big disks)")
@click.option("--min-size", type=SIZE, default=None, help="Large-file threshold, e.g. 1G")
@click.option("--path", "scan_path", default=None, help="Where to look for large files (default: root mount)")
def diagnose(as_json: bool, large_files: bool, min_size: int | None, scan_path: str | None) -> None:
    """Show disk usage without changing anything."""
    config = _load_config(large_file_min_size=min_size)
    runner = CommandRunner()
    sampler = _build_sampler(runner, config)

    try:
        snapshot = sampler.sample()
    except (SampleError, Cancelled) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_CANCELLED if isinstance(exc, Cancelled) else EXIT_ERROR)

    try:
        directories = sampler.top_directories("/var")
    except ExecutionError as exc:
        log.warning("Directory breakdown unavailable: %s", exc)
        directories = []

    found = None
    if large_files:
        try:
            found = sampler.scan_large_files(
                scan_path or snapshot.root, min_bytes=config.large_file_min_size, timeout=config.command_timeout
            )
        except ExecutionError as exc:
            log.warning("Large-file scan failed: %s", exc)
            found = []

    if as_json:
        data = snapshot_to_dict(snapshot)
        data["directories"] = [{"path": str(d.path), "size_bytes": d.size_bytes} for d in directories]
        if found is not None:
            data["large_files"] = [{"path": str(f.path), "size_bytes": f.size_bytes} for f in found]
        click.echo(json.dumps(data, indent=2))
        return

    click.echo()
    click.echo(render_diagnosis(snapshot, config, large_files=found, directories=directories))


# ── clean ────────────────────────────────────────────────────────────────

@main.command()
@click.option("--dry-run", is_flag=True, help="Show what would be run without changing anything")
@click.option("--yes", "-y", is_flag=True, help="Do not ask before steps that need confirmation")
@click.option("--steps", "steps_raw", default=None, help="Comma-separated step names (default: standard set)")
@click.option(
    "--truncate", "truncate_paths", multiple=True, type=click.Path(path_type=Path),
    help="Truncate this file under /var/log (repeatable)",
)
@click.option("--continue-on-error", is_flag=True, help="Keep going after a failed step")
@click.option("--journal-max-size", type=SIZE, default=None, help="Vacuum the journal down to this size")
@click.option("--journal-max-age", type=DURATION, default=None, help="Vacuum journal entries older than this")
@click.option("--truncate-min-size", type=SIZE, default=None, help="Leave log files smaller than this alone")
@click.option("--dangerous", "dangerous_name", default=None, metavar="NAME", help="Run one dangerous action")
@click.option("--confirm", "confirm_flag", is_flag=True, help="Required together with --dangerous")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def clean(
    dry_run: bool,
    yes: bool,
    steps_raw: str | None,
    truncate_paths: tuple[Path, ...],
    continue_on_error: bool,
    journal_max_size: int | None,
    journal_max_age,
    truncate_min_size: int | None,
    dangerous_name: str | None,
    confirm_flag: bool,
    as_json: bool,
) -> None:
    """Run the cleanup steps, verifying disk usage after each one."""
    config = _load_config(
        journal_max_size=journal_max_size,
        journal_max_age=journal_max_age,
        truncate_min_size=truncate_min_size,
    )
    registry = default_registry()
    runner = CommandRunner(dry_run=dry_run)
    sampler = _build_sampler(runner, config)
    _cancel_on_sigterm(runner)

    if not dry_run and not is_root():
        click.echo(
            click.style("Warning:", fg="yellow") + " not running as root; most steps need root privileges.",
            err=True,
        )

    try:
        if dangerous_name is not None:
            run = _clean_dangerous(
                dangerous_name, confirm_flag, yes, bool(steps_raw or truncate_paths), as_json,
                registry, runner, sampler, config,
            )
        else:
            run = _clean_steps(
                steps_raw, truncate_paths, continue_on_error, yes, as_json, registry, runner, sampler, config
            )
    except (SampleError, Cancelled) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_CANCELLED if isinstance(exc, Cancelled) else EXIT_ERROR)

    if as_json:
        click.echo(json.dumps(run_to_dict(run), indent=2))
    else:
        click.echo()
        click.echo(render(run, config))
    sys.exit(_exit_code(run))


def _clean_steps(
    steps_raw: str | None,
    truncate_paths: tuple[Path, ...],
    continue_on_error: bool,
    yes: bool,
    as_json: bool,
    registry: ActionRegistry,
    runner: CommandRunner,
    sampler: DiskUsageSampler,
    config: Config,
) -> PipelineRun:
    try:
        kinds = parse_step_names(steps_raw) if steps_raw else None
        steps = select_steps(config, kinds, truncate_paths, continue_on_error)
    except (UnknownStepError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_ERROR)

    def confirm(step: CleanupStep) -> bool:
        if yes:
            return True
        action = registry.get(step.kind)
        detail = f": {action.description}" if action else ""
        return click.confirm(f"Run {step.label} [{step.risk_tier.value}]{detail}", default=False, err=as_json)

    def on_progress(step: CleanupStep, state: StepState) -> None:
        if as_json:
            return
        if state is StepState.RUNNING:
            click.echo(f"  {click.style('→', fg='cyan')} {step.label}")
        elif state is StepState.FAILED:
            click.echo(f"  {click.style('✗', fg='red')} {step.label} failed")

    pipeline = CleanupPipeline(registry, runner, sampler, config)
    if not as_json:
        click.echo(f"\n{click.style('🧹', bold=True)} Running {len(steps)} step(s)...\n")
    return pipeline.execute(steps, confirm, on_progress=on_progress)


def _clean_dangerous(
    name: str,
    confirm_flag: bool,
    yes: bool,
    has_steps: bool,
    as_json: bool,
    registry: ActionRegistry,
    runner: CommandRunner,
    sampler: DiskUsageSampler,
    config: Config,
) -> PipelineRun:
    if has_steps:
        click.echo("Error: --dangerous cannot be combined with --steps or --truncate", err=True)
        sys.exit(EXIT_ERROR)
    if not confirm_flag:
        click.echo(f"Error: --dangerous={name} requires the --confirm flag", err=True)
        sys.exit(EXIT_ERROR)

    def confirm(action: DangerousAction) -> bool:
        if yes:
            return True
        click.echo(f"{click.style('DANGER:', fg='red', bold=True)} {action.description}", err=as_json)
        typed = click.prompt(f"Type '{action.name}' to proceed", default="", show_default=False, err=as_json)
        return typed.strip() == action.name

    try:
        return run_dangerous(name, registry, runner, sampler, config, confirm)
    except UnknownActionError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_ERROR)


# ── steps ────────────────────────────────────────────────────────────────

@main.command("steps")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def steps_cmd(as_json: bool) -> None:
    """List available cleanup steps and dangerous actions."""
    registry = default_registry()

    if as_json:
        data = {
            "steps": [
                {
                    "name": action.kind.value,
                    "risk_tier": default_tier(action.kind).value,
                    "default": action.kind in DEFAULT_STEP_KINDS,
                    "collaborator": action.collaborator,
                    "description": action.description,
                }
                for action in registry
            ],
            "dangerous": [{"name": a.name, "description": a.description} for a in registry.dangerous_actions()],
        }
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(f"\n  {click.style('Cleanup steps', fg='blue', bold=True)} (in execution order)")
    for action in registry:
        tier = default_tier(action.kind)
        tags = ""
        if action.kind in DEFAULT_STEP_KINDS:
            tags += click.style(" [default]", fg="green")
        if tier.needs_confirmation:
            tags += click.style(" [asks first]", fg="yellow")
        click.echo(f"    {click.style(action.kind.value, fg='cyan', bold=True):30s}{tags}")
        click.echo(f"      {action.description}")

    click.echo(f"\n  {click.style('Dangerous actions', fg='red', bold=True)} (clean --dangerous NAME --confirm)")
    for action in registry.dangerous_actions():
        click.echo(f"    {click.style(action.name, fg='red', bold=True)}")
        click.echo(f"      {action.description}")

    config = _load_config()
    click.echo(
        f"\n  Journal limits: {bytes_to_human(config.journal_max_size)}, "
        f"{format_duration(config.journal_max_age)} max age; "
        f"truncation floor {bytes_to_human(config.truncate_min_size)}\n"
    )
