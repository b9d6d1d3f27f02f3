"""Line buffering and JSON frame decoding for subprocess stdout."""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, Literal

logger = logging.getLogger(__name__)

#: Maximum characters per JSONL line before it is dropped (1 MB).
_MAX_LINE_CHARS = 1_048_576

#: A decoded JSON value from one line of output.
RawFrame = dict[str, Any]

FallbackMode = Literal["text", "drop"]


@dataclass(frozen=True)
class UnparsedLine:
    """A non-empty line that was not valid JSON."""

    text: str


class LineBuffer:
    """Accumulates byte chunks into complete newline-terminated lines.

    Pipe reads do not respect line boundaries, so the trailing fragment of
    every chunk is retained until the next ``feed()``.  UTF-8 decoding is
    incremental: a multi-byte character split across two chunks is
    reassembled rather than replaced.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._closed = False

    @property
    def pending(self) -> str:
        """The retained incomplete fragment."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Append *chunk* and return every line it completed."""
        if self._closed:
            msg = "LineBuffer is closed"
            raise RuntimeError(msg)
        self._buffer += self._decoder.decode(chunk)
        if "\n" not in self._buffer:
            return []
        *lines, self._buffer = self._buffer.split("\n")
        return lines

    def close(self) -> list[str]:
        """Flush the retained fragment as a final line, if non-empty."""
        if self._closed:
            return []
        self._closed = True
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        return [tail] if tail.strip() else []


def decode_frame(line: str) -> RawFrame | UnparsedLine | None:
    """Parse one trimmed, non-empty line.

    Returns the JSON object, an :class:`UnparsedLine` if *line* is not JSON
    at all, or ``None`` for valid JSON that is not an object.
    """
    try:
        value = json.loads(line)
    except (json.JSONDecodeError, RecursionError):
        return UnparsedLine(line)
    if not isinstance(value, dict):
        logger.debug("ignoring non-object frame: %s", line[:200])
        return None
    return value


class FrameDecoder:
    """Turns raw stdout chunks into JSON frames.

    Lines that fail to parse are never fatal.  With ``fallback="text"``
    they are returned as :class:`UnparsedLine` so the caller can surface
    them; with ``fallback="drop"`` they are discarded.
    """

    def __init__(self, fallback: FallbackMode = "text") -> None:
        self._lines = LineBuffer()
        self._fallback = fallback

    def feed(self, chunk: bytes) -> list[RawFrame | UnparsedLine]:
        """Decode every complete line in *chunk*."""
        return self._decode_lines(self._lines.feed(chunk))

    def close(self) -> list[RawFrame | UnparsedLine]:
        """Decode whatever was left in the buffer at end of stream."""
        return self._decode_lines(self._lines.close())

    def _decode_lines(self, lines: list[str]) -> list[RawFrame | UnparsedLine]:
        frames: list[RawFrame | UnparsedLine] = []
        for raw_line in lines:
            line = raw_line.strip()
            if not line:
                continue
            if len(line) > _MAX_LINE_CHARS:
                logger.warning(
                    "stdout line exceeds %d characters, skipping", _MAX_LINE_CHARS
                )
                continue
            frame = decode_frame(line)
            if frame is None:
                continue
            if isinstance(frame, UnparsedLine):
                if self._fallback == "drop":
                    logger.debug("dropping non-JSON stdout line: %s", line[:200])
                    continue
                logger.debug("non-JSON stdout line: %s", line[:200])
            frames.append(frame)
        return frames
