"""mlralph replay — re-render a recorded run."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import click

from mlralph.activity import ActivityAggregator, format_activity
from mlralph.session import (
    AgentEventRecord,
    IterationBoundaryEvent,
    RunErrorEvent,
    RunRecord,
    read_run_file,
    runs_dir,
    summarize,
)


def _timestamp(ts: str) -> float:
    return datetime.fromisoformat(ts.replace("Z", "+00:00")).timestamp()


def replay_activities(records: list[RunRecord]) -> list[str]:
    """Feed recorded events through a fresh aggregator and render the result.

    The aggregator's clock follows the recorded timestamps, so reads are
    grouped exactly as they were during the live run.
    """
    now = [0.0]
    aggregator = ActivityAggregator(clock=lambda: now[0])
    lines: list[str] = []

    for record in records:
        now[0] = _timestamp(record.ts)
        if isinstance(record, IterationBoundaryEvent):
            if record.boundary == "start":
                activities = aggregator.mark_iteration(record.iteration)
            else:
                activities = aggregator.flush()
        elif isinstance(record, AgentEventRecord):
            activities = aggregator.process(record.event)
        elif isinstance(record, RunErrorEvent):
            activities = aggregator.flush()
            lines.extend(format_activity(a) for a in activities)
            lines.append(click.style(f"Error: {record.message}", fg="red"))
            continue
        else:
            continue
        lines.extend(format_activity(a) for a in activities)

    lines.extend(format_activity(a) for a in aggregator.flush())
    return lines


@click.command()
@click.argument(
    "run_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=False,
)
@click.option(
    "-C",
    "--project",
    "project_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project directory (used to list runs when no file is given).",
)
def replay(run_file: Path | None, project_dir: Path) -> None:
    """Replay a recorded run, or list recorded runs."""
    if run_file is None:
        _list_runs(runs_dir(project_dir.resolve()))
        return

    try:
        records, warnings = read_run_file(run_file)
    except OSError as exc:
        raise click.ClickException(f"Cannot read {run_file}: {exc}") from exc

    for warning in warnings:
        click.echo(f"Warning: {warning}", err=True)

    summary = summarize(records)
    click.echo(f"Run {summary.run_id} ({summary.project})")
    click.echo(
        f"  Iterations: {summary.iterations} | Duration: {summary.duration_str}"
        f" | Cost: ${summary.cost_usd:.4f}"
    )

    for line in replay_activities(records):
        click.echo(line)

    if summary.end_reason is not None:
        click.echo(f"\nEnded: {summary.end_reason}")
    else:
        click.echo("\nRun did not finish (no end record).")


def _list_runs(directory: Path) -> None:
    files: list[Path] = []
    if directory.is_dir():
        files = sorted(directory.glob("*.jsonl"), reverse=True)
    if not files:
        click.echo(f"No recorded runs in {directory}")
        return

    for path in files:
        try:
            records, _ = read_run_file(path)
        except OSError as exc:
            click.echo(f"Failed to read {path.name}: {exc}", err=True)
            continue
        summary = summarize(records)
        reason = summary.end_reason or "in progress"
        click.echo(
            f"  {path.name}  {summary.iterations} iterations"
            f"  {summary.duration_str}  {reason}"
        )
