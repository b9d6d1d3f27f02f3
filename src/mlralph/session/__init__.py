"""Run recording — record models, JSONL recorder and reader."""

from mlralph.session.models import (
    AgentEventRecord,
    EndReason,
    IterationBoundaryEvent,
    RunEndEvent,
    RunErrorEvent,
    RunRecord,
    RunStartEvent,
)
from mlralph.session.reader import RunSummary, read_run_file, summarize
from mlralph.session.recorder import RecordingListener, RunRecorder, runs_dir

__all__ = [
    "AgentEventRecord",
    "EndReason",
    "IterationBoundaryEvent",
    "RecordingListener",
    "RunEndEvent",
    "RunErrorEvent",
    "RunRecord",
    "RunRecorder",
    "RunStartEvent",
    "RunSummary",
    "read_run_file",
    "runs_dir",
    "summarize",
]
