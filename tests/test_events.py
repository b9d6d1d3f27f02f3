"""Tests for normalized event models and shared helpers."""

from __future__ import annotations

import pytest
from pydantic import TypeAdapter, ValidationError

from mlralph.agent.helpers import format_stderr_preview, shorten_path
from mlralph.stream.events import (
    DoneEvent,
    NormalizedEvent,
    TextEvent,
    TokenUsage,
    ToolStartEvent,
)

_ADAPTER: TypeAdapter[NormalizedEvent] = TypeAdapter(NormalizedEvent)


class TestNormalizedEvent:
    def test_discriminates_on_type(self) -> None:
        event = _ADAPTER.validate_python(
            {"type": "tool_start", "tool_id": "t1", "tool": "Read"}
        )
        assert isinstance(event, ToolStartEvent)
        assert event.input == {}

    def test_json_round_trip_keeps_variant(self) -> None:
        done = DoneEvent(result="ok", usage=TokenUsage(input_tokens=1, output_tokens=2))
        assert _ADAPTER.validate_json(done.model_dump_json()) == done

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _ADAPTER.validate_python({"type": "thinking", "content": "x"})

    def test_extra_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TextEvent.model_validate({"type": "text", "content": "x", "extra": 1})

    def test_usage_ignores_unknown_counters(self) -> None:
        usage = TokenUsage.model_validate({"input_tokens": 3, "server_tool_use": {}})
        assert usage.input_tokens == 3
        assert usage.cache_read_input_tokens is None


class TestHelpers:
    def test_stderr_preview_keeps_last_lines(self) -> None:
        text = "\n".join(f"line {i}" for i in range(10)) + "\n\n"
        assert format_stderr_preview(text, max_lines=2) == "line 8\n  line 9"

    def test_shorten_path(self) -> None:
        assert shorten_path("/home/me/proj/data.csv") == "proj/data.csv"
        assert shorten_path("data.csv") == "data.csv"
