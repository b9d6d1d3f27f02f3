"""Display activities derived from the normalized event stream."""

from mlralph.activity.aggregator import (
    PHASES,
    Activity,
    ActivityAggregator,
    GroupedTool,
    detect_phase,
    tool_icon,
)
from mlralph.activity.render import format_activity

__all__ = [
    "PHASES",
    "Activity",
    "ActivityAggregator",
    "GroupedTool",
    "detect_phase",
    "format_activity",
    "tool_icon",
]
