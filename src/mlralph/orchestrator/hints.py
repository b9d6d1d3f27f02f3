"""Pending user hints, consumed once at the start of an iteration."""

from __future__ import annotations

import threading


class HintQueue:
    """FIFO of hint strings shared between the CLI thread and the event loop."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hints: list[str] = []

    def add(self, hint: str) -> None:
        with self._lock:
            self._hints.append(hint)

    def drain(self) -> list[str]:
        """Remove and return every pending hint in insertion order."""
        with self._lock:
            hints, self._hints = self._hints, []
        return hints

    def __len__(self) -> int:
        with self._lock:
            return len(self._hints)


def format_hints(hints: list[str]) -> str:
    """Render *hints* as a prompt suffix (empty string when there are none)."""
    if not hints:
        return ""
    if len(hints) == 1:
        return f"\n\nUser hint for this iteration:\n{hints[0]}"
    numbered = "\n".join(f"{i}. {hint}" for i, hint in enumerate(hints, start=1))
    return f"\n\nUser hints for this iteration:\n{numbered}"
