"""Pydantic v2 models for normalized agent stream events."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class _EventBase(BaseModel):
    """Common configuration shared by every normalized event."""

    model_config = ConfigDict(extra="forbid")


class TokenUsage(BaseModel):
    """Token accounting reported in the final ``result`` frame."""

    model_config = ConfigDict(extra="ignore")

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cache_read_input_tokens: int | None = Field(default=None, ge=0)
    cache_creation_input_tokens: int | None = Field(default=None, ge=0)


class InitEvent(_EventBase):
    """The agent process announced its session."""

    type: Literal["init"] = "init"
    session_id: str = Field(description="Agent session identifier")
    model: str = Field(default="unknown", description="Model serving the session")
    tools: list[str] = Field(default_factory=list, description="Available tools")


class TextEvent(_EventBase):
    """A block of assistant text."""

    type: Literal["text"] = "text"
    content: str = Field(description="Text content")


class ToolStartEvent(_EventBase):
    """The assistant invoked a tool."""

    type: Literal["tool_start"] = "tool_start"
    tool_id: str = Field(description="Tool invocation id")
    tool: str = Field(description="Tool name")
    input: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")
    description: str | None = Field(
        default=None,
        description="Human description supplied with the call (Bash only)",
    )


class ToolResultEvent(_EventBase):
    """A tool invocation returned."""

    type: Literal["tool_result"] = "tool_result"
    tool_id: str = Field(description="Id of the invocation this result answers")
    output: str = Field(default="", description="Tool output text")
    is_error: bool = Field(default=False, description="Whether the tool failed")
    stdout: str | None = Field(default=None, description="Raw stdout (Bash only)")
    stderr: str | None = Field(default=None, description="Raw stderr (Bash only)")
    tool: str | None = Field(
        default=None,
        description="Tool name resolved from the pairing state, if known",
    )


class ErrorEvent(_EventBase):
    """An error surfaced by the agent, the protocol, or the process."""

    type: Literal["error"] = "error"
    message: str = Field(description="Error description")


class DoneEvent(_EventBase):
    """Final result of one agent invocation."""

    type: Literal["done"] = "done"
    result: str | None = Field(default=None, description="Final result text")
    session_id: str | None = Field(default=None, description="Agent session id")
    duration_ms: int | None = Field(default=None, description="Wall time in ms")
    num_turns: int | None = Field(default=None, description="Agent turns taken")
    cost_usd: float | None = Field(default=None, description="Total cost in USD")
    usage: TokenUsage | None = Field(default=None, description="Token usage")


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


NormalizedEvent = Annotated[
    Annotated[InitEvent, Tag("init")]
    | Annotated[TextEvent, Tag("text")]
    | Annotated[ToolStartEvent, Tag("tool_start")]
    | Annotated[ToolResultEvent, Tag("tool_result")]
    | Annotated[ErrorEvent, Tag("error")]
    | Annotated[DoneEvent, Tag("done")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all normalized stream events."""
