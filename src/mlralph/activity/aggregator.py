"""Activity aggregator — coalesces normalized events into display activities.

The aggregator is a streaming reducer.  :meth:`ActivityAggregator.process`
takes one event and returns the activities it produced; nothing is emitted
for a file read until its group is flushed, so a burst of reads shows up as
a single ``tool_group`` entry.

Returned activities are usually new.  The exception is a tool that was
flushed while still running: when its result arrives later, the same
:class:`Activity` object is updated and returned again, so consumers should
key activities by ``id``.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from mlralph.agent.helpers import shorten_path
from mlralph.stream.events import (
    ErrorEvent,
    NormalizedEvent,
    TextEvent,
    ToolResultEvent,
    ToolStartEvent,
)
from mlralph.stream.normalizer import describe_tool

logger = logging.getLogger(__name__)

ActivityType = Literal[
    "thinking", "tool", "tool_group", "phase", "milestone", "error", "iteration"
]
ActivityStatus = Literal["pending", "running", "success", "error"]

#: Phase markers announced by the agent, matched case-insensitively.
PHASES = ("UNDERSTAND", "STRATEGIZE", "EXECUTE", "REFLECT")

#: State files whose update is reported as a milestone.
_MILESTONE_FILES = (
    ("kanban.json", "kanban"),
    ("log.jsonl", "log"),
    ("prd.json", "prd"),
)

_READ_TOOLS = frozenset({"Read"})
_WRITE_TOOLS = frozenset({"Write", "Edit"})

_TOOL_ICONS = {
    "Read": "📂",
    "Write": "📝",
    "Edit": "✏️",
    "Bash": "🔧",
    "Glob": "🔍",
    "Grep": "🔎",
    "Task": "🤖",
    "WebFetch": "🌐",
    "WebSearch": "🔎",
}


def tool_icon(tool_name: str) -> str:
    """Display icon for *tool_name*."""
    return _TOOL_ICONS.get(tool_name, "►")


@dataclass
class GroupedTool:
    """One member of a ``tool_group`` activity."""

    name: str
    detail: str
    status: ActivityStatus = "running"
    tool_id: str | None = None


@dataclass
class Activity:
    """A display-oriented unit derived from one or more events."""

    id: str
    type: ActivityType
    status: ActivityStatus
    content: str
    started_at: float
    tool_name: str | None = None
    tool_details: str | None = None
    tool_id: str | None = None
    grouped_tools: list[GroupedTool] = field(default_factory=list)
    phase: str | None = None
    completed_at: float | None = None
    #: Tool output, kept only for failed tools.
    output: str | None = None


@dataclass
class _OpenTool:
    tool_id: str
    name: str
    detail: str
    content: str
    started_at: float
    status: ActivityStatus = "running"


def detect_phase(text: str) -> str | None:
    upper = text.upper()
    for phase in PHASES:
        if phase in upper:
            return phase
    return None


def _milestone(tool_name: str, detail: str) -> str | None:
    if tool_name not in _WRITE_TOOLS:
        return None
    for filename, label in _MILESTONE_FILES:
        if filename in detail:
            return label
    return None


def _tool_detail(tool: str, tool_input: dict[str, Any]) -> str:
    """The argument worth showing next to the tool name."""
    if tool == "Bash":
        detail = tool_input.get("description") or str(
            tool_input.get("command", "")
        )[:50]
    elif tool in ("Read", "Write", "Edit"):
        detail = tool_input.get("file_path", "")
    elif tool in ("Glob", "Grep"):
        detail = tool_input.get("pattern", "")
    else:
        detail = ""
    return detail if isinstance(detail, str) else str(detail)


class ActivityAggregator:
    """Turns a :data:`NormalizedEvent` stream into :class:`Activity` items.

    Args:
        read_window: Seconds within which consecutive reads join one group.
        history: Number of activities retained in :attr:`activities`.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        read_window: float = 0.5,
        history: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._read_window = read_window
        self._clock = clock
        self._history: deque[Activity] = deque(maxlen=history)
        self._counter = 0
        self._reads: list[_OpenTool] = []
        self._last_read_at: float | None = None
        self._tools: dict[str, _OpenTool] = {}
        # Activities flushed before their result arrived, by tool id.
        self._running: dict[str, Activity] = {}

    @property
    def activities(self) -> list[Activity]:
        """Retained activities, oldest first."""
        return list(self._history)

    def clear(self) -> None:
        self._history.clear()
        self._counter = 0
        self._reads = []
        self._last_read_at = None
        self._tools.clear()
        self._running.clear()

    # ------------------------------------------------------------------ #
    # Reducer
    # ------------------------------------------------------------------ #

    def process(self, event: NormalizedEvent) -> list[Activity]:
        """Consume one event and return the activities it produced."""
        if isinstance(event, TextEvent):
            out = self.flush()
            phase = detect_phase(event.content)
            out.append(
                self._record(
                    self._new(
                        "phase" if phase else "thinking",
                        "success",
                        event.content,
                        phase=phase,
                    )
                )
            )
            return out

        if isinstance(event, ToolStartEvent):
            return self._tool_start(event)

        if isinstance(event, ToolResultEvent):
            return self._tool_result(event)

        if isinstance(event, ErrorEvent):
            out = self.flush()
            out.append(self._record(self._new("error", "error", event.message)))
            return out

        return []

    def mark_iteration(self, iteration: int) -> list[Activity]:
        """Flush pending state and emit an iteration divider."""
        out = self.flush()
        out.append(
            self._record(self._new("iteration", "success", f"Iteration {iteration}"))
        )
        return out

    def flush(self) -> list[Activity]:
        """Emit the pending read group and every tool still awaiting a result."""
        out = self._flush_reads()
        for tool in self._tools.values():
            activity = self._tool_activity(tool)
            self._running[tool.tool_id] = activity
            out.append(self._record(activity))
        self._tools.clear()
        return out

    # ------------------------------------------------------------------ #
    # Tools
    # ------------------------------------------------------------------ #

    def _tool_start(self, event: ToolStartEvent) -> list[Activity]:
        now = self._clock()
        detail = _tool_detail(event.tool, event.input)
        tool = _OpenTool(
            tool_id=event.tool_id,
            name=event.tool,
            detail=detail,
            content=describe_tool(event.tool, event.input),
            started_at=now,
        )

        if event.tool not in _READ_TOOLS:
            out = self._flush_reads()
            self._tools[event.tool_id] = tool
            return out

        expired = (
            self._last_read_at is None or now - self._last_read_at >= self._read_window
        )
        out = self._flush_reads() if expired else []
        self._reads.append(tool)
        self._last_read_at = now
        return out

    def _tool_result(self, event: ToolResultEvent) -> list[Activity]:
        status: ActivityStatus = "error" if event.is_error else "success"
        now = self._clock()

        for read in self._reads:
            if read.tool_id == event.tool_id:
                # Finalized by the next flush.
                read.status = status
                return []

        tool = self._tools.pop(event.tool_id, None)
        if tool is not None:
            tool.status = status
            activity = self._tool_activity(tool)
            activity.completed_at = now
            if event.is_error:
                activity.output = event.output
            return [self._record(activity)]

        activity = self._running.pop(event.tool_id, None)
        if activity is not None:
            self._complete_running(activity, event.tool_id, status, now)
            if event.is_error and activity.type != "tool_group":
                activity.output = event.output
            return [activity]

        logger.debug("tool result for unknown id %s, ignoring", event.tool_id)
        return []

    def _complete_running(
        self,
        activity: Activity,
        tool_id: str,
        status: ActivityStatus,
        now: float,
    ) -> None:
        if activity.type != "tool_group":
            activity.status = status
            activity.completed_at = now
            milestone = _milestone(
                activity.tool_name or "", activity.tool_details or ""
            )
            if milestone is not None:
                activity.type = "milestone"
                activity.content = f"Updated {milestone}"
            return
        for member in activity.grouped_tools:
            if member.tool_id == tool_id:
                member.status = status
        activity.status = _group_status([m.status for m in activity.grouped_tools])
        if activity.status != "running":
            activity.completed_at = now

    def _tool_activity(self, tool: _OpenTool) -> Activity:
        milestone = None
        if tool.status != "running":
            milestone = _milestone(tool.name, tool.detail)
        if milestone is not None:
            return self._new(
                "milestone",
                tool.status,
                f"Updated {milestone}",
                started_at=tool.started_at,
                tool_name=tool.name,
                tool_details=shorten_path(tool.detail),
                tool_id=tool.tool_id,
            )
        return self._new(
            "tool",
            tool.status,
            tool.content,
            started_at=tool.started_at,
            tool_name=tool.name,
            tool_details=shorten_path(tool.detail) if tool.detail else None,
            tool_id=tool.tool_id,
        )

    def _flush_reads(self) -> list[Activity]:
        reads, self._reads = self._reads, []
        self._last_read_at = None
        if not reads:
            return []

        if len(reads) == 1:
            read = reads[0]
            activity = self._new(
                "tool",
                read.status,
                shorten_path(read.detail),
                started_at=read.started_at,
                tool_name=read.name,
                tool_details=shorten_path(read.detail),
                tool_id=read.tool_id,
            )
        else:
            members = [
                GroupedTool(
                    read.name, shorten_path(read.detail), read.status, read.tool_id
                )
                for read in reads
            ]
            activity = self._new(
                "tool_group",
                _group_status([m.status for m in members]),
                f"Read {len(reads)} files",
                started_at=reads[0].started_at,
                tool_name="Read",
                grouped_tools=members,
            )

        for read in reads:
            if read.status == "running":
                self._running[read.tool_id] = activity
        return [self._record(activity)]

    # ------------------------------------------------------------------ #
    # Bookkeeping
    # ------------------------------------------------------------------ #

    def _new(
        self,
        activity_type: ActivityType,
        status: ActivityStatus,
        content: str,
        started_at: float | None = None,
        **kwargs: Any,
    ) -> Activity:
        self._counter += 1
        now = self._clock()
        activity = Activity(
            id=f"activity-{self._counter}",
            type=activity_type,
            status=status,
            content=content,
            started_at=now if started_at is None else started_at,
            **kwargs,
        )
        if status in ("success", "error") and activity.completed_at is None:
            activity.completed_at = now
        return activity

    def _record(self, activity: Activity) -> Activity:
        self._history.append(activity)
        return activity


def _group_status(statuses: list[ActivityStatus]) -> ActivityStatus:
    if "error" in statuses:
        return "error"
    if "running" in statuses:
        return "running"
    return "success"
