"""Stream decoding — line buffering, frame decoding and normalization."""

from mlralph.stream.decoder import FrameDecoder, LineBuffer, RawFrame, UnparsedLine
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
from mlralph.stream.normalizer import StreamPipeline, ToolPairing, normalize

__all__ = [
    "DoneEvent",
    "ErrorEvent",
    "FrameDecoder",
    "InitEvent",
    "LineBuffer",
    "NormalizedEvent",
    "RawFrame",
    "StreamPipeline",
    "TextEvent",
    "TokenUsage",
    "ToolPairing",
    "ToolResultEvent",
    "ToolStartEvent",
    "UnparsedLine",
    "normalize",
]
