"""Run recorder — append-only JSONL writer for orchestrated runs."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import IO

from mlralph.orchestrator.runner import CompleteReason, RunListener
from mlralph.project import STATE_DIR
from mlralph.session.models import (
    AgentEventRecord,
    EndReason,
    IterationBoundaryEvent,
    RunEndEvent,
    RunErrorEvent,
    RunRecord,
    RunStartEvent,
)
from mlralph.stream.events import DoneEvent, NormalizedEvent

logger = logging.getLogger(__name__)

#: Directory, under the state directory, holding recorded runs.
RUNS_DIRNAME = "runs"


def runs_dir(project_path: Path) -> Path:
    return Path(project_path) / STATE_DIR / RUNS_DIRNAME


class RunRecorder:
    """Records run events to an append-only JSONL file.

    Thread-safe: all writes are serialized through a ``threading.Lock``.
    Crash-safe: the file is flushed after every record.
    """

    def __init__(
        self,
        project_path: Path,
        max_iterations: int,
        model: str | None = None,
        directory: Path | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._seq = 0
        self._closed = False
        self._start_ns = time.monotonic_ns()
        self._run_id = uuid.uuid4().hex[:12]

        if directory is None:
            directory = runs_dir(project_path)
        directory.mkdir(parents=True, exist_ok=True)

        date_str = datetime.now(tz=UTC).strftime("%Y-%m-%d")
        self._run_file = directory / f"{date_str}_{self._run_id}.jsonl"

        self._fh: IO[str] | None = None
        try:
            self._fh = self._run_file.open("a", encoding="utf-8")
            self.record(
                RunStartEvent(
                    ts="",  # stamped by record()
                    seq=0,
                    run_id=self._run_id,
                    project=str(project_path),
                    max_iterations=max_iterations,
                    model=model,
                )
            )
        except Exception:
            self._close_handle()
            raise

    @property
    def run_id(self) -> str:
        """Unique run identifier (12-char hex)."""
        return self._run_id

    @property
    def run_file(self) -> Path:
        return self._run_file

    @property
    def record_count(self) -> int:
        return self._seq

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, record: RunRecord) -> None:
        """Stamp ``ts`` and ``seq`` on *record* and append it to the file.

        Records written after the recorder has been closed are dropped.
        """
        with self._lock:
            if self._closed or self._fh is None:
                return
            record.seq = self._seq
            record.ts = _iso_now()
            self._seq += 1
            self._fh.write(record.model_dump_json() + "\n")
            self._fh.flush()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def end(self, reason: EndReason, iterations: int, cost_usd: float = 0.0) -> None:
        """Write a ``run_end`` record and close the file.  Idempotent."""
        if self._closed:
            return
        elapsed_ms = int((time.monotonic_ns() - self._start_ns) / 1_000_000)
        self.record(
            RunEndEvent(
                ts="",
                seq=0,
                reason=reason,
                iterations=iterations,
                duration_ms=elapsed_ms,
                cost_usd=cost_usd,
            )
        )
        self.close()

    def close(self) -> None:
        """Close the file **without** writing a ``run_end`` record."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._close_handle()

    def _close_handle(self) -> None:
        if self._fh is not None and not self._fh.closed:
            self._fh.close()


class RecordingListener(RunListener):
    """Writes every orchestrator notification to a :class:`RunRecorder`."""

    def __init__(self, recorder: RunRecorder) -> None:
        self.recorder = recorder
        self._iterations = 0
        self._cost_usd = 0.0

    def on_iteration_start(self, iteration: int) -> None:
        self._iterations = iteration
        self.recorder.record(
            IterationBoundaryEvent(ts="", seq=0, boundary="start", iteration=iteration)
        )

    def on_event(self, iteration: int, event: NormalizedEvent) -> None:
        if isinstance(event, DoneEvent) and event.cost_usd is not None:
            self._cost_usd += event.cost_usd
        self.recorder.record(
            AgentEventRecord(ts="", seq=0, iteration=iteration, event=event)
        )

    def on_iteration_end(self, iteration: int, result: str) -> None:
        self.recorder.record(
            IterationBoundaryEvent(
                ts="", seq=0, boundary="end", iteration=iteration, result=result
            )
        )

    def on_complete(self, reason: CompleteReason) -> None:
        self.finish(reason)

    def on_error(self, message: str) -> None:
        self.recorder.record(RunErrorEvent(ts="", seq=0, message=message))
        self.finish("error")

    def finish(self, reason: EndReason) -> None:
        """End the recording unless it has already ended."""
        if not self.recorder.closed:
            logger.debug("run %s ended: %s", self.recorder.run_id, reason)
        self.recorder.end(reason, self._iterations, self._cost_usd)


def _iso_now() -> str:
    """Return the current UTC time as ISO 8601 with milliseconds."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
