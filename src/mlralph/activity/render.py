"""Plain-terminal rendering of activities.

Styles are always applied; ``click.echo`` strips them when the output is
not a terminal.
"""

from __future__ import annotations

from click import style

from mlralph.activity.aggregator import Activity, tool_icon
from mlralph.stream.normalizer import abbreviate_output

_STATUS_MARKS = {
    "pending": ("·", "white"),
    "running": ("…", "yellow"),
    "success": ("✓", "green"),
    "error": ("✗", "red"),
}


def format_activity(activity: Activity) -> str:
    """Display text for *activity* (one line, or one per group member)."""
    mark, fg = _STATUS_MARKS[activity.status]
    icon = tool_icon(activity.tool_name or "")

    match activity.type:
        case "iteration":
            return style(f"\n═══ {activity.content} ═══", bold=True)
        case "phase":
            header = style(f"▶ {activity.phase}", fg="cyan", bold=True)
            return f"{header}  {_first_line(activity.content)}"
        case "thinking":
            return f"  {activity.content}"
        case "error":
            return style(f"  ✗ {activity.content}", fg="red")
        case "milestone":
            line = style(f"  ★ {activity.content}", fg="magenta")
            return line + " " + style(mark, fg=fg) + _failure_output(activity)
        case "tool_group":
            lines = [f"  {icon} {activity.content} {style(mark, fg=fg)}"]
            for member in activity.grouped_tools:
                member_mark, member_fg = _STATUS_MARKS[member.status]
                lines.append(f"      {member.detail} {style(member_mark, fg=member_fg)}")
            return "\n".join(lines)

    line = f"  {icon} {activity.content} {style(mark, fg=fg)}"
    return line + _failure_output(activity)


def _failure_output(activity: Activity) -> str:
    if activity.status != "error" or not activity.output:
        return ""
    text = abbreviate_output(activity.output.strip())
    lines = [style(f"      {line}", dim=True) for line in text.split("\n")]
    return "\n" + "\n".join(lines)


def _first_line(text: str) -> str:
    return text.strip().split("\n", 1)[0]
