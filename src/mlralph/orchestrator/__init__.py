"""Iteration loop: prompts, hints, listeners."""

from mlralph.orchestrator.hints import HintQueue, format_hints
from mlralph.orchestrator.runner import (
    BASE_PROMPT,
    COMPLETE_SENTINEL,
    NOT_INITIALIZED_MESSAGE,
    IterationOrchestrator,
    IterationState,
    RunListener,
)

__all__ = [
    "BASE_PROMPT",
    "COMPLETE_SENTINEL",
    "NOT_INITIALIZED_MESSAGE",
    "HintQueue",
    "IterationOrchestrator",
    "IterationState",
    "RunListener",
    "format_hints",
]
