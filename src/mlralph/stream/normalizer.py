"""Normalize Claude CLI ``stream-json`` frames into :data:`NormalizedEvent`.

Claude CLI ``--output-format stream-json --verbose`` emits these top-level
frame types:

* ``system``    — ``subtype: init`` carries session_id, model and tools.
* ``assistant`` — wraps an API message; ``message.content[]`` holds
  ``text`` and ``tool_use`` blocks.  One frame may yield several events.
* ``user``      — tool results fed back to the model
  (``message.content[]`` of ``tool_result`` blocks).
* ``result``    — final aggregated result, cost and usage.

Unknown frame types are ignored so protocol additions never break the
pipeline.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from mlralph.stream.decoder import FallbackMode, FrameDecoder, RawFrame, UnparsedLine
from mlralph.stream.events import (
    DoneEvent,
    ErrorEvent,
    InitEvent,
    NormalizedEvent,
    TextEvent,
    TokenUsage,
    ToolResultEvent,
    ToolStartEvent,
)

logger = logging.getLogger(__name__)

#: Prefix the CLI uses when it reports an API failure as assistant text.
_API_ERROR_PREFIX = "API Error:"


class ToolPairing:
    """Tracks in-flight tool invocations so results can be matched by id."""

    def __init__(self) -> None:
        self._in_flight: dict[str, str] = {}
        self._current: str | None = None

    @property
    def current(self) -> str | None:
        """Id of the most recently started tool that has not returned."""
        return self._current

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def register(self, tool_id: str, tool: str) -> None:
        self._in_flight[tool_id] = tool
        self._current = tool_id

    def resolve(self, tool_id: str) -> str | None:
        """Clear *tool_id* and return its tool name (``None`` if unknown)."""
        tool = self._in_flight.pop(tool_id, None)
        if self._current == tool_id:
            self._current = next(reversed(self._in_flight), None)
        return tool

    def clear(self) -> None:
        self._in_flight.clear()
        self._current = None


def normalize(frame: RawFrame, pairing: ToolPairing) -> list[NormalizedEvent]:
    """Map one raw frame to zero or more normalized events."""
    if not isinstance(frame, dict):
        return []

    frame_type = frame.get("type")

    if frame_type == "system":
        return _normalize_system(frame)
    if frame_type == "assistant":
        return _normalize_assistant(frame, pairing)
    if frame_type == "user":
        return _normalize_user(frame, pairing)
    if frame_type == "result":
        return [_normalize_result(frame)]

    return []


def _normalize_system(frame: RawFrame) -> list[NormalizedEvent]:
    if frame.get("subtype") != "init":
        return []
    session_id = frame.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        logger.debug("init frame without session_id, ignoring")
        return []
    model = frame.get("model")
    tools = frame.get("tools")
    return [
        InitEvent(
            session_id=session_id,
            model=model if isinstance(model, str) and model else "unknown",
            tools=[t for t in tools if isinstance(t, str)]
            if isinstance(tools, list)
            else [],
        )
    ]


def _content_blocks(frame: RawFrame) -> list[dict[str, Any]]:
    """Return the dict-shaped blocks of ``message.content``."""
    message = frame.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [block for block in content if isinstance(block, dict)]


def _normalize_assistant(
    frame: RawFrame, pairing: ToolPairing
) -> list[NormalizedEvent]:
    events: list[NormalizedEvent] = []

    for block in _content_blocks(frame):
        block_type = block.get("type")

        if block_type == "text":
            text = block.get("text")
            if not isinstance(text, str) or not text:
                continue
            if text.startswith(_API_ERROR_PREFIX):
                events.append(ErrorEvent(message=text))
            else:
                events.append(TextEvent(content=text))

        elif block_type == "tool_use":
            tool_id = block.get("id")
            tool = block.get("name")
            if not isinstance(tool_id, str) or not isinstance(tool, str):
                continue
            if not tool_id or not tool:
                continue
            tool_input = block.get("input")
            if not isinstance(tool_input, dict):
                tool_input = {}
            description = tool_input.get("description") if tool == "Bash" else None
            pairing.register(tool_id, tool)
            events.append(
                ToolStartEvent(
                    tool_id=tool_id,
                    tool=tool,
                    input=tool_input,
                    description=description if isinstance(description, str) else None,
                )
            )

    return events


def _normalize_user(frame: RawFrame, pairing: ToolPairing) -> list[NormalizedEvent]:
    events: list[NormalizedEvent] = []

    extra = frame.get("tool_use_result")
    if not isinstance(extra, dict):
        extra = {}
    stdout = extra.get("stdout")
    stderr = extra.get("stderr")

    for block in _content_blocks(frame):
        if block.get("type") != "tool_result":
            continue
        tool_id = block.get("tool_use_id")
        if not isinstance(tool_id, str) or not tool_id:
            continue
        tool = pairing.resolve(tool_id)
        if tool is None:
            logger.debug("tool_result for unknown tool id %s", tool_id)
        events.append(
            ToolResultEvent(
                tool_id=tool_id,
                output=_result_text(block.get("content")),
                is_error=bool(block.get("is_error", False)),
                stdout=stdout if isinstance(stdout, str) else None,
                stderr=stderr if isinstance(stderr, str) else None,
                tool=tool,
            )
        )

    return events


def _result_text(content: object) -> str:
    """Flatten tool_result content (a string or a list of text blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            str(part.get("text", ""))
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        ]
        return "\n".join(parts)
    return ""


def _normalize_result(frame: RawFrame) -> NormalizedEvent:
    result = frame.get("result")
    if frame.get("is_error"):
        message = result if isinstance(result, str) and result else frame.get("error")
        if not isinstance(message, str) or not message:
            message = "Unknown error"
        return ErrorEvent(message=message)

    session_id = frame.get("session_id")
    return DoneEvent(
        result=result if isinstance(result, str) else None,
        session_id=session_id if isinstance(session_id, str) else None,
        duration_ms=_as_int(frame.get("duration_ms")),
        num_turns=_as_int(frame.get("num_turns")),
        cost_usd=_as_float(frame.get("total_cost_usd")),
        usage=_usage(frame.get("usage")),
    )


def _as_float(value: object) -> float | None:
    # json.loads accepts NaN, Infinity and overflowing literals like 1e400.
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def _as_int(value: object) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = _as_float(value)
    return None if number is None else int(number)


def _usage(value: object) -> TokenUsage | None:
    if not isinstance(value, dict):
        return None
    fields: dict[str, int] = {}
    for key in TokenUsage.model_fields:
        count = _as_int(value.get(key))
        if count is not None and count >= 0:
            fields[key] = count
    return TokenUsage(**fields)


class StreamPipeline:
    """Bytes in, normalized events out, for one subprocess invocation."""

    def __init__(self, fallback: FallbackMode = "text") -> None:
        self._decoder = FrameDecoder(fallback=fallback)
        self.pairing = ToolPairing()

    def feed(self, chunk: bytes) -> list[NormalizedEvent]:
        return self._normalize_all(self._decoder.feed(chunk))

    def close(self) -> list[NormalizedEvent]:
        return self._normalize_all(self._decoder.close())

    def _normalize_all(
        self, frames: list[RawFrame | UnparsedLine]
    ) -> list[NormalizedEvent]:
        events: list[NormalizedEvent] = []
        for frame in frames:
            if isinstance(frame, UnparsedLine):
                events.append(TextEvent(content=frame.text))
            else:
                events.extend(normalize(frame, self.pairing))
        return events


# ------------------------------------------------------------------ #
# Display helpers
# ------------------------------------------------------------------ #


def describe_tool(tool: str, tool_input: dict[str, Any]) -> str:
    """Human-readable one-liner for a tool call."""
    match tool:
        case "Bash":
            return str(
                tool_input.get("description")
                or tool_input.get("command")
                or "Running command..."
            )
        case "Read":
            return f"Reading: {tool_input.get('file_path', '')}"
        case "Edit":
            return f"Editing: {tool_input.get('file_path', '')}"
        case "Write":
            return f"Writing: {tool_input.get('file_path', '')}"
        case "Glob":
            return f"Finding files: {tool_input.get('pattern', '')}"
        case "Grep":
            return f"Searching: {tool_input.get('pattern', '')}"
        case "WebSearch":
            return f"Searching web: {tool_input.get('query', '')}"
        case "WebFetch":
            return f"Fetching: {tool_input.get('url', '')}"
        case "Task":
            return f"Running task: {tool_input.get('description', '')}"
    return f"Running: {tool}"


def abbreviate_output(output: str, max_length: int = 200) -> str:
    """Shorten tool output for display, keeping head and tail lines."""
    if len(output) <= max_length:
        return output

    lines = output.split("\n")
    if len(lines) <= 5:
        return f"{output[:max_length]}..."

    first = "\n".join(lines[:2])
    last = "\n".join(lines[-2:])
    return f"{first}\n... ({len(lines) - 4} more lines) ...\n{last}"
