"""Agent process management — one Claude CLI invocation at a time."""

from mlralph.agent.session import (
    ClaudeSession,
    ExecuteOptions,
    build_command,
    find_claude_command,
)

__all__ = [
    "ClaudeSession",
    "ExecuteOptions",
    "build_command",
    "find_claude_command",
]
