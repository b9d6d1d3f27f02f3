"""Pydantic v2 models for run recording records."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

from mlralph.stream.events import NormalizedEvent

EndReason = Literal["project_complete", "max_iterations", "stopped", "error"]


class _RecordBase(BaseModel):
    """Envelope fields shared by every record."""

    model_config = ConfigDict(extra="forbid")

    ts: str = Field(description="ISO 8601 timestamp with milliseconds")
    seq: int = Field(ge=0, description="Monotonic sequence number")


class RunStartEvent(_RecordBase):
    """Written once when a run begins."""

    type: Literal["run_start"] = "run_start"
    run_id: str = Field(description="Unique run identifier")
    project: str = Field(description="Project directory")
    max_iterations: int = Field(ge=1, description="Iteration bound at start")
    model: str | None = Field(default=None, description="Configured model, if any")


class RunEndEvent(_RecordBase):
    """Written once when a run ends."""

    type: Literal["run_end"] = "run_end"
    reason: EndReason = Field(description="Why the run ended")
    iterations: int = Field(ge=0, description="Iterations started")
    duration_ms: int = Field(description="Total run duration in milliseconds")
    cost_usd: float = Field(default=0.0, description="Summed agent cost in USD")


class IterationBoundaryEvent(_RecordBase):
    """Written when an iteration starts or ends."""

    type: Literal["iteration_boundary"] = "iteration_boundary"
    boundary: Literal["start", "end"] = Field(
        description="Whether this is an iteration start or end"
    )
    iteration: int = Field(ge=1, description="Iteration number (1-indexed)")
    result: str | None = Field(
        default=None, description="Accumulated result text (end only)"
    )


class AgentEventRecord(_RecordBase):
    """One normalized agent event, tagged with its iteration."""

    type: Literal["agent_event"] = "agent_event"
    iteration: int = Field(ge=1, description="Iteration that produced the event")
    event: NormalizedEvent = Field(description="The normalized event")


class RunErrorEvent(_RecordBase):
    """A run-level error (setup failure or unexpected exception)."""

    type: Literal["run_error"] = "run_error"
    message: str = Field(description="Error description")


def _record_discriminator(v: Any) -> str:
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


RunRecord = Annotated[
    Annotated[RunStartEvent, Tag("run_start")]
    | Annotated[RunEndEvent, Tag("run_end")]
    | Annotated[IterationBoundaryEvent, Tag("iteration_boundary")]
    | Annotated[AgentEventRecord, Tag("agent_event")]
    | Annotated[RunErrorEvent, Tag("run_error")],
    Discriminator(_record_discriminator),
]
"""Discriminated union of all run record types."""
