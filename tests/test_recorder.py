"""Tests for run recording: recorder, listener and reader."""

from __future__ import annotations

import json
import threading
from pathlib import Path

from mlralph.session import (
    AgentEventRecord,
    IterationBoundaryEvent,
    RecordingListener,
    RunEndEvent,
    RunErrorEvent,
    RunRecorder,
    RunStartEvent,
    read_run_file,
    runs_dir,
    summarize,
)
from mlralph.stream.events import DoneEvent, TextEvent, ToolStartEvent

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _make_recorder(tmp_path: Path) -> RunRecorder:
    return RunRecorder(tmp_path, max_iterations=3, model="opus")


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


# ------------------------------------------------------------------ #
# RunRecorder
# ------------------------------------------------------------------ #


class TestRunRecorder:
    def test_file_location_and_start_record(self, tmp_path: Path) -> None:
        recorder = _make_recorder(tmp_path)
        assert recorder.run_file.parent == runs_dir(tmp_path)
        assert recorder.run_file.name.endswith(f"_{recorder.run_id}.jsonl")
        recorder.close()

        [start] = _lines(recorder.run_file)
        assert start["type"] == "run_start"
        assert start["seq"] == 0
        assert start["max_iterations"] == 3
        assert start["model"] == "opus"
        assert start["ts"].endswith("Z")

    def test_seq_is_monotonic(self, tmp_path: Path) -> None:
        recorder = _make_recorder(tmp_path)
        for i in range(1, 4):
            recorder.record(
                IterationBoundaryEvent(ts="", seq=0, boundary="start", iteration=i)
            )
        recorder.close()
        assert [r["seq"] for r in _lines(recorder.run_file)] == [0, 1, 2, 3]
        assert recorder.record_count == 4

    def test_end_is_idempotent_and_drops_later_records(self, tmp_path: Path) -> None:
        recorder = _make_recorder(tmp_path)
        recorder.end("max_iterations", iterations=3, cost_usd=0.5)
        recorder.end("error", iterations=3)
        recorder.record(RunErrorEvent(ts="", seq=0, message="late"))

        records = _lines(recorder.run_file)
        assert [r["type"] for r in records] == ["run_start", "run_end"]
        assert records[1]["reason"] == "max_iterations"
        assert records[1]["cost_usd"] == 0.5
        assert recorder.closed

    def test_thread_safe_writes(self, tmp_path: Path) -> None:
        recorder = _make_recorder(tmp_path)

        def worker() -> None:
            for _ in range(50):
                recorder.record(RunErrorEvent(ts="", seq=0, message="x"))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        recorder.close()

        seqs = [r["seq"] for r in _lines(recorder.run_file)]
        assert seqs == list(range(201))


# ------------------------------------------------------------------ #
# RecordingListener
# ------------------------------------------------------------------ #


class TestRecordingListener:
    def test_records_full_run(self, tmp_path: Path) -> None:
        recorder = _make_recorder(tmp_path)
        listener = RecordingListener(recorder)

        listener.on_iteration_start(1)
        listener.on_event(1, TextEvent(content="hello"))
        listener.on_event(1, DoneEvent(result="ok", cost_usd=0.25))
        listener.on_iteration_end(1, "hello\nok")
        listener.on_complete("project_complete")
        listener.finish("stopped")

        records, warnings = read_run_file(recorder.run_file)
        assert warnings == []
        assert [r.type for r in records] == [
            "run_start",
            "iteration_boundary",
            "agent_event",
            "agent_event",
            "iteration_boundary",
            "run_end",
        ]
        assert isinstance(records[2], AgentEventRecord)
        assert records[2].event == TextEvent(content="hello")
        end = records[-1]
        assert isinstance(end, RunEndEvent)
        assert end.reason == "project_complete"
        assert end.iterations == 1
        assert end.cost_usd == 0.25

    def test_error_ends_recording(self, tmp_path: Path) -> None:
        recorder = _make_recorder(tmp_path)
        listener = RecordingListener(recorder)

        listener.on_error("Not initialized")

        records, _ = read_run_file(recorder.run_file)
        assert isinstance(records[1], RunErrorEvent)
        assert isinstance(records[2], RunEndEvent)
        assert records[2].reason == "error"

    def test_finish_marks_stopped_run(self, tmp_path: Path) -> None:
        recorder = _make_recorder(tmp_path)
        listener = RecordingListener(recorder)
        listener.on_iteration_start(1)
        listener.finish("stopped")

        records, _ = read_run_file(recorder.run_file)
        assert isinstance(records[-1], RunEndEvent)
        assert records[-1].reason == "stopped"


# ------------------------------------------------------------------ #
# Reader
# ------------------------------------------------------------------ #


class TestReadRunFile:
    def test_malformed_lines_become_warnings(self, tmp_path: Path) -> None:
        recorder = _make_recorder(tmp_path)
        recorder.close()
        with recorder.run_file.open("a", encoding="utf-8") as fh:
            fh.write("{not json\n\n")
            fh.write('{"type":"mystery","ts":"x","seq":1}\n')
            fh.write('{"type":"run_error","ts":"2026-01-01T00:00:00.000Z","seq":2,"message":"m"}\n')

        records, warnings = read_run_file(recorder.run_file)

        assert [type(r) for r in records] == [RunStartEvent, RunErrorEvent]
        assert len(warnings) == 2
        assert warnings[0].startswith("Line 2: Invalid JSON")
        assert warnings[1].startswith("Line 4: Validation error")

    def test_summarize(self, tmp_path: Path) -> None:
        recorder = _make_recorder(tmp_path)
        listener = RecordingListener(recorder)
        listener.on_iteration_start(1)
        listener.on_event(1, ToolStartEvent(tool_id="t1", tool="Bash", input={}))
        listener.on_event(1, ToolStartEvent(tool_id="t2", tool="Bash", input={}))
        listener.on_iteration_end(1, "")
        listener.on_iteration_start(2)
        listener.on_complete("max_iterations")

        records, _ = read_run_file(recorder.run_file)
        summary = summarize(records)

        assert summary.run_id == recorder.run_id
        assert summary.iterations == 2
        assert summary.tools == {"Bash": 2}
        assert summary.end_reason == "max_iterations"
        assert summary.is_complete
        assert summary.duration_str.endswith("s")

    def test_summary_of_unfinished_run(self) -> None:
        summary = summarize([])
        assert not summary.is_complete
        assert summary.duration_str == "in progress"
