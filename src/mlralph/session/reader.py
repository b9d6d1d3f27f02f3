"""Parsing recorded runs back into records."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from mlralph.session.models import (
    AgentEventRecord,
    IterationBoundaryEvent,
    RunEndEvent,
    RunRecord,
    RunStartEvent,
)
from mlralph.stream.events import ToolStartEvent

_ADAPTER: TypeAdapter[RunRecord] = TypeAdapter(RunRecord)


@dataclass
class RunSummary:
    """Metadata extracted from a run file."""

    run_id: str = "unknown"
    project: str = "unknown"
    started_at: str | None = None
    iterations: int = 0
    event_count: int = 0
    end_reason: str | None = None
    duration_ms: int | None = None
    cost_usd: float = 0.0
    tools: dict[str, int] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.end_reason is not None

    @property
    def duration_str(self) -> str:
        """Human-readable duration string."""
        if self.duration_ms is None:
            return "in progress"
        seconds = self.duration_ms / 1000
        if seconds < 60:
            return f"{seconds:.1f}s"
        minutes = seconds / 60
        if minutes < 60:
            return f"{minutes:.1f}m"
        return f"{minutes / 60:.1f}h"


def parse_record(raw: object) -> RunRecord:
    """Validate one decoded JSON value into a :data:`RunRecord`."""
    return _ADAPTER.validate_python(raw)


def read_run_file(path: Path) -> tuple[list[RunRecord], list[str]]:
    """Parse a run JSONL file.

    Malformed lines are skipped and reported as warnings rather than
    aborting the read, so a run cut short by a crash can still be replayed.
    """
    records: list[RunRecord] = []
    warnings: list[str] = []

    with Path(path).open("r", encoding="utf-8") as fh:
        for line_num, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(parse_record(json.loads(line)))
            except json.JSONDecodeError as e:
                warnings.append(f"Line {line_num}: Invalid JSON - {e}")
            except ValidationError as e:
                warnings.append(f"Line {line_num}: Validation error - {e}")

    return records, warnings


def summarize(records: list[RunRecord]) -> RunSummary:
    """Collect run metadata from parsed records."""
    summary = RunSummary(event_count=len(records))
    for record in records:
        if isinstance(record, RunStartEvent):
            summary.run_id = record.run_id
            summary.project = record.project
            summary.started_at = record.ts
        elif isinstance(record, RunEndEvent):
            summary.end_reason = record.reason
            summary.duration_ms = record.duration_ms
            summary.cost_usd = record.cost_usd
        elif isinstance(record, IterationBoundaryEvent):
            summary.iterations = max(summary.iterations, record.iteration)
        elif isinstance(record, AgentEventRecord) and isinstance(
            record.event, ToolStartEvent
        ):
            tool = record.event.tool
            summary.tools[tool] = summary.tools.get(tool, 0) + 1
    return summary
