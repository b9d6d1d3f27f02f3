"""mlralph run — drive the agent loop against a project."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import select
import signal
import sys
import threading
from pathlib import Path

import click

from mlralph.activity import ActivityAggregator, format_activity
from mlralph.activity.aggregator import Activity
from mlralph.config import ConfigError, RalphConfig, load_config
from mlralph.orchestrator import IterationOrchestrator, RunListener
from mlralph.orchestrator.runner import CompleteReason
from mlralph.project import is_initialized
from mlralph.session import RecordingListener, RunRecorder
from mlralph.stream.events import DoneEvent, NormalizedEvent

logger = logging.getLogger(__name__)

_COMPLETE_MESSAGES = {
    "project_complete": "Project complete.",
    "max_iterations": "Reached the iteration limit.",
}


class ConsoleListener(RunListener):
    """Prints aggregated activities as the loop runs."""

    def __init__(self, aggregator: ActivityAggregator) -> None:
        self._aggregator = aggregator
        self.failed = False

    def on_iteration_start(self, iteration: int) -> None:
        self._echo(self._aggregator.mark_iteration(iteration))

    def on_event(self, iteration: int, event: NormalizedEvent) -> None:
        self._echo(self._aggregator.process(event))
        if isinstance(event, DoneEvent):
            _echo_done(event)

    def on_iteration_end(self, iteration: int, result: str) -> None:
        self._echo(self._aggregator.flush())

    def on_complete(self, reason: CompleteReason) -> None:
        click.echo(click.style(f"\n{_COMPLETE_MESSAGES[reason]}", fg="green"))

    def on_error(self, message: str) -> None:
        self.failed = True
        click.echo(click.style(f"Error: {message}", fg="red"), err=True)

    @staticmethod
    def _echo(activities: list[Activity]) -> None:
        for activity in activities:
            click.echo(format_activity(activity))


def _echo_done(event: DoneEvent) -> None:
    parts: list[str] = []
    if event.num_turns is not None:
        parts.append(f"{event.num_turns} turns")
    if event.duration_ms is not None:
        parts.append(f"{event.duration_ms / 1000:.1f}s")
    if event.cost_usd is not None:
        parts.append(f"${event.cost_usd:.4f}")
    if parts:
        click.echo(click.style(f"  ({', '.join(parts)})", dim=True))


# ------------------------------------------------------------------ #
# Click command
# ------------------------------------------------------------------ #


@click.command()
@click.option(
    "-C",
    "--project",
    "project_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project directory.",
)
@click.option(
    "-n",
    "--max-iterations",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum iterations (default: from config, else 10).",
)
@click.option(
    "--hint",
    "hints",
    multiple=True,
    help="Hint for the first iteration. Repeatable.",
)
@click.option("--model", default=None, help="Model name or alias for the agent.")
@click.option("--no-record", is_flag=True, help="Do not record this run.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def run(
    project_dir: Path,
    max_iterations: int | None,
    hints: tuple[str, ...],
    model: str | None,
    no_record: bool,
    verbose: bool,
) -> None:
    """Run the autonomous agent loop.

    While the loop runs, lines typed on the terminal are queued as hints
    for the next iteration.  Ctrl+C stops the loop and kills the agent.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    root = project_dir.resolve()
    overrides: dict[str, object] = {"max_iterations": max_iterations, "model": model}
    if no_record:
        overrides["record"] = False

    try:
        config = load_config(root, overrides)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    ok = asyncio.run(_run_loop(root, config, list(hints)))
    if not ok:
        raise SystemExit(1)


async def _run_loop(root: Path, config: RalphConfig, hints: list[str]) -> bool:
    """Run the orchestrator until it ends.  Returns ``False`` on error."""
    orchestrator = IterationOrchestrator(root, config)
    for hint in hints:
        orchestrator.add_hint(hint)

    console = ConsoleListener(
        ActivityAggregator(
            read_window=config.read_group_window_ms / 1000,
            history=config.activity_history,
        )
    )
    orchestrator.subscribe(console)

    recording: RecordingListener | None = None
    if config.record and is_initialized(root):
        recorder = RunRecorder(root, config.max_iterations, model=config.model)
        recording = RecordingListener(recorder)
        orchestrator.subscribe(recording)
        click.echo(f"  Recording to {recorder.run_file.relative_to(root)}")

    loop = asyncio.get_running_loop()
    stop_reading = threading.Event()

    def _on_signal(sig_name: str) -> None:
        if not orchestrator.is_running():
            return
        click.echo(f"\nReceived {sig_name}, stopping...", err=True)
        orchestrator.stop()

    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _on_signal, sig.name)
            installed.append(sig)

    if sys.stdin.isatty():
        reader = threading.Thread(
            target=_read_hints,
            args=(orchestrator, stop_reading),
            name="hint-reader",
            daemon=True,
        )
        reader.start()
        click.echo("  Type a line and press Enter to queue a hint.")

    try:
        await orchestrator.start()
    finally:
        stop_reading.set()
        for sig in installed:
            loop.remove_signal_handler(sig)
        if recording is not None:
            # No-op when the loop already completed or failed.
            recording.finish("stopped")

    if orchestrator.state.stop_requested:
        click.echo("Stopped.")
    return not console.failed


def _read_hints(orchestrator: IterationOrchestrator, cancel: threading.Event) -> None:
    """Blocking stdin reader that queues each non-empty line as a hint.

    Polls with ``select.select`` so the thread notices *cancel* instead of
    blocking forever on an idle terminal.
    """
    while not cancel.is_set():
        ready, _, _ = select.select([sys.stdin], [], [], 0.5)
        if not ready:
            continue
        line = sys.stdin.readline()
        if not line:
            return
        hint = line.strip()
        if not hint:
            continue
        orchestrator.add_hint(hint)
        click.echo(
            click.style(
                f"  hint queued ({orchestrator.pending_hints_count()} pending)",
                fg="blue",
            )
        )
