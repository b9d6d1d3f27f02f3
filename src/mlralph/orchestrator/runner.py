"""Iteration orchestrator — drives the agent loop one session at a time."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from mlralph import project
from mlralph.agent.session import ClaudeSession, ExecuteOptions
from mlralph.config.models import RalphConfig
from mlralph.orchestrator.hints import HintQueue, format_hints
from mlralph.stream.events import DoneEvent, NormalizedEvent, TextEvent

logger = logging.getLogger(__name__)

BASE_PROMPT = """\
Read .ml-ralph/RALPH.md for instructions.

Execute one iteration of the cognitive loop. Update state files as needed.
When done, output exactly: <iteration_complete>

If the project is complete (success criteria met), output: <project_complete>"""

#: Marker in an iteration's result that ends the run early.
COMPLETE_SENTINEL = "<project_complete>"

NOT_INITIALIZED_MESSAGE = "Not initialized. Run `mlralph init` first."

CompleteReason = Literal["project_complete", "max_iterations"]
Phase = Literal["idle", "running", "completed"]


class RunListener:
    """Receives orchestrator notifications.  Override the hooks you need."""

    def on_iteration_start(self, iteration: int) -> None:
        pass

    def on_event(self, iteration: int, event: NormalizedEvent) -> None:
        pass

    def on_iteration_end(self, iteration: int, result: str) -> None:
        pass

    def on_complete(self, reason: CompleteReason) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


@dataclass
class IterationState:
    """Snapshot of the loop's progress."""

    iteration: int = 0
    max_iterations: int = 10
    running: bool = False
    stop_requested: bool = False
    phase: Phase = "idle"


class IterationOrchestrator:
    """Runs up to ``max_iterations`` agent sessions against one project.

    Each iteration spawns one session with the base prompt plus any hints
    queued since the previous iteration.  The loop ends when an iteration's
    result contains ``<project_complete>``, when the bound is reached, or
    when :meth:`stop` is called.  Errors reported by the agent are
    forwarded as events and never end the loop by themselves.
    """

    def __init__(
        self,
        project_path: Path,
        config: RalphConfig | None = None,
        session: ClaudeSession | None = None,
        is_initialized: Callable[[Path], bool] = project.is_initialized,
        base_prompt: str = BASE_PROMPT,
    ) -> None:
        self._project_path = Path(project_path)
        self._config = config or RalphConfig()
        self._session = session or ClaudeSession(
            self._project_path, claude_command=self._config.claude_command
        )
        self._is_initialized = is_initialized
        self._base_prompt = base_prompt
        self._hints = HintQueue()
        self._listeners: list[RunListener] = []
        self._state = IterationState(max_iterations=self._config.max_iterations)

    # ------------------------------------------------------------------ #
    # Listeners
    # ------------------------------------------------------------------ #

    def subscribe(self, listener: RunListener) -> Callable[[], None]:
        """Register *listener*; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, hook: str, *args: object) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, hook)(*args)
            except Exception:
                logger.exception("listener %r failed in %s", listener, hook)

    # ------------------------------------------------------------------ #
    # Control
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> IterationState:
        return self._state

    @property
    def current_iteration(self) -> int:
        return self._state.iteration

    def is_running(self) -> bool:
        return self._state.running

    def add_hint(self, hint: str) -> None:
        """Queue *hint* for the next iteration that starts."""
        self._hints.add(hint)
        logger.debug("hint queued (%d pending)", len(self._hints))

    def pending_hints_count(self) -> int:
        return len(self._hints)

    def set_max_iterations(self, max_iterations: int) -> None:
        """Change the bound; a running loop picks it up before its next iteration."""
        if max_iterations < 1:
            msg = f"max_iterations must be at least 1, got {max_iterations}"
            raise ValueError(msg)
        self._state.max_iterations = max_iterations

    def stop(self) -> None:
        """Request the loop to end and kill the active session, if any."""
        if not self._state.running:
            return
        logger.info("stop requested at iteration %d", self._state.iteration)
        self._state.stop_requested = True
        self._session.cancel()

    # ------------------------------------------------------------------ #
    # Loop
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Run the loop to completion.  Returns once the loop has ended."""
        if self._state.running:
            logger.warning("orchestrator already running, ignoring start()")
            return

        if not self._is_initialized(self._project_path):
            self._notify("on_error", NOT_INITIALIZED_MESSAGE)
            return

        state = self._state
        state.running = True
        state.stop_requested = False
        state.iteration = 0
        state.phase = "running"

        try:
            iteration = 1
            while iteration <= state.max_iterations and not state.stop_requested:
                state.iteration = iteration
                self._notify("on_iteration_start", iteration)

                prompt = self._base_prompt + format_hints(self._hints.drain())
                result = await self._run_iteration(iteration, prompt)
                self._notify("on_iteration_end", iteration, result)

                if state.stop_requested:
                    break
                if COMPLETE_SENTINEL in result:
                    logger.info("project complete after %d iterations", iteration)
                    state.phase = "completed"
                    self._notify("on_complete", "project_complete")
                    return
                iteration += 1

            if not state.stop_requested:
                state.phase = "completed"
                self._notify("on_complete", "max_iterations")
        except Exception as exc:
            logger.exception("iteration loop failed")
            self._notify("on_error", str(exc) or type(exc).__name__)
        finally:
            state.running = False
            if state.phase == "running":
                state.phase = "idle"

    async def _run_iteration(self, iteration: int, prompt: str) -> str:
        """Run one session, forwarding its events.  Returns the result text."""
        logger.debug("iteration %d prompt: %s", iteration, prompt)
        parts: list[str] = []
        if self._state.stop_requested:
            # stop() from an on_iteration_start listener: nothing to cancel yet.
            return ""
        events = self._session.execute(prompt, self._execute_options())
        async with contextlib.aclosing(events):
            async for event in events:
                self._notify("on_event", iteration, event)
                if isinstance(event, TextEvent):
                    parts.append(event.content)
                elif isinstance(event, DoneEvent) and event.result:
                    parts.append(event.result)
        return "\n".join(parts)

    def _execute_options(self) -> ExecuteOptions:
        return ExecuteOptions(
            cwd=self._project_path,
            system_prompt=self._config.system_prompt,
            model=self._config.model,
            max_turns=self._config.max_turns,
            skip_permissions=self._config.skip_permissions,
        )
