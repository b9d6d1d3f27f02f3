"""Shared formatting helpers for agent output."""

from __future__ import annotations


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def shorten_path(path: str) -> str:
    """Keep only the last two components of a file path for display."""
    parts = path.split("/")
    if len(parts) <= 2:
        return path
    return "/".join(parts[-2:])
