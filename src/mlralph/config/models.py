"""Pydantic v2 models for ``.ml-ralph/config.yaml``."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RalphConfig(BaseModel):
    """Settings for an orchestrated run.  Every field has a default."""

    model_config = ConfigDict(extra="forbid")

    max_iterations: int = Field(
        default=10,
        ge=1,
        description="Upper bound on iterations per run",
    )
    model: str | None = Field(
        default=None,
        description="Model name or alias passed to the Claude CLI",
    )
    system_prompt: str | None = Field(
        default=None,
        description="Extra text appended to the CLI's system prompt",
    )
    max_turns: int | None = Field(
        default=None,
        ge=1,
        description="Per-iteration agent turn cap (unset for no cap)",
    )
    skip_permissions: bool = Field(
        default=True,
        description="Run the CLI with --dangerously-skip-permissions",
    )
    claude_command: str | None = Field(
        default=None,
        description="Path to the claude executable (default: auto-detect)",
    )
    read_group_window_ms: int = Field(
        default=500,
        ge=0,
        description="Consecutive file reads closer than this are grouped",
    )
    activity_history: int = Field(
        default=500,
        ge=1,
        description="Activities retained in memory for display",
    )
    record: bool = Field(
        default=True,
        description="Record every run to .ml-ralph/runs/",
    )

    @field_validator("model", "claude_command")
    @classmethod
    def _blank_is_unset(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value
