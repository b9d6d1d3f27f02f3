"""Claude session — runs one ``claude`` CLI invocation and streams its events."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import signal
from collections.abc import AsyncIterator
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from mlralph.agent.helpers import format_stderr_preview
from mlralph.stream.events import ErrorEvent, NormalizedEvent
from mlralph.stream.normalizer import StreamPipeline

logger = logging.getLogger(__name__)

#: Bytes requested per stdout read.  Reads return as soon as any data is
#: available, so this only bounds a single chunk.
_READ_CHUNK = 64 * 1024

#: Maximum stderr bytes retained for error reporting (the tail is kept).
_MAX_STDERR_BYTES = 64 * 1024

#: Seconds to wait for stderr EOF once the process has exited.
_STDERR_GRACE = 2.0

#: Install locations checked when ``claude`` is not on PATH.
_CLAUDE_CANDIDATES = (
    Path.home() / ".local" / "bin" / "claude",
    Path.home() / ".npm-global" / "bin" / "claude",
    Path("/usr/local/bin/claude"),
    Path("/opt/homebrew/bin/claude"),
)


class ExecuteOptions(BaseModel):
    """Per-invocation flags for the Claude CLI."""

    model_config = ConfigDict(extra="forbid")

    cwd: Path | None = Field(default=None, description="Working directory override")
    system_prompt: str | None = Field(
        default=None, description="Text appended to the CLI's system prompt"
    )
    model: str | None = Field(default=None, description="Model name or alias")
    continue_conversation: bool = Field(
        default=False, description="Continue the most recent conversation"
    )
    resume_session: str | None = Field(
        default=None, description="Resume a specific session id"
    )
    max_turns: int | None = Field(default=None, ge=1, description="Agent turn cap")
    allowed_tools: list[str] = Field(
        default_factory=list, description="Restrict the tools the agent may use"
    )
    skip_permissions: bool = Field(
        default=True, description="Pass --dangerously-skip-permissions"
    )


def find_claude_command() -> str:
    """Locate the ``claude`` executable, falling back to the bare name."""
    found = shutil.which("claude")
    if found:
        return found
    for candidate in _CLAUDE_CANDIDATES:
        if candidate.is_file():
            return str(candidate)
    return "claude"


def build_command(claude: str, prompt: str, options: ExecuteOptions) -> list[str]:
    """Assemble the argv for one streaming invocation."""
    cmd_args = [
        claude,
        "-p",
        prompt,
        "--output-format",
        "stream-json",
        "--verbose",
    ]

    if options.system_prompt:
        cmd_args.extend(["--append-system-prompt", options.system_prompt])

    if options.model:
        cmd_args.extend(["--model", options.model])

    # --resume names a session explicitly, so it takes precedence.
    if options.resume_session:
        cmd_args.extend(["--resume", options.resume_session])
    elif options.continue_conversation:
        cmd_args.append("--continue")

    if options.max_turns is not None:
        cmd_args.extend(["--max-turns", str(options.max_turns)])

    if options.allowed_tools:
        cmd_args.extend(["--allowedTools", ",".join(options.allowed_tools)])

    if options.skip_permissions:
        cmd_args.append("--dangerously-skip-permissions")

    return cmd_args


class ClaudeSession:
    """Owns at most one running ``claude`` subprocess at a time.

    :meth:`execute` is an async generator: events are yielded while the
    process is still running, not collected until it exits.  Cancellation
    is cooperative on the consumer side and hard on the process side:
    :meth:`cancel` kills the process group and wakes any pending stdout
    read, so a consumer never waits on a pipe a grandchild still holds.
    """

    def __init__(
        self,
        project_path: Path,
        claude_command: str | None = None,
    ) -> None:
        self._project_path = Path(project_path)
        self._claude_command = claude_command
        self._process: asyncio.subprocess.Process | None = None
        self._active = False
        self._cancelled = False
        self._cancel_event = asyncio.Event()

    @property
    def pid(self) -> int | None:
        """PID of the running subprocess, if any."""
        if self._process is not None and self._process.returncode is None:
            return self._process.pid
        return None

    def is_running(self) -> bool:
        return self._active

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def execute(
        self,
        prompt: str,
        options: ExecuteOptions | None = None,
    ) -> AsyncIterator[NormalizedEvent]:
        """Run one invocation, yielding normalized events as they arrive."""
        if self._active:
            logger.warning("session already running, rejecting new invocation")
            return

        options = options or ExecuteOptions()
        claude = self._claude_command or find_claude_command()
        cmd_args = build_command(claude, prompt, options)
        cwd = options.cwd or self._project_path

        self._active = True
        self._cancelled = False
        self._cancel_event = asyncio.Event()
        stderr_tail = bytearray()
        stderr_task: asyncio.Task[None] | None = None

        try:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd_args,
                    cwd=str(cwd),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    start_new_session=True,
                )
            except FileNotFoundError:
                logger.error("Claude CLI not found: %s", claude)
                yield ErrorEvent(
                    message=(
                        f"Claude CLI not found ({claude}). Make sure 'claude' is "
                        "installed and on your PATH."
                    )
                )
                return
            except OSError as exc:
                logger.error("failed to spawn Claude CLI: %s", exc)
                yield ErrorEvent(message=f"Failed to spawn Claude CLI: {exc}")
                return

            self._process = proc
            logger.debug("spawned claude pid=%s in %s", proc.pid, cwd)
            if self._cancelled:
                # cancel() arrived while the process was being spawned.
                return

            if proc.stderr is not None:
                stderr_task = asyncio.create_task(
                    _drain_stderr(proc.stderr, stderr_tail)
                )

            pipeline = StreamPipeline(fallback="text")
            stream_error: str | None = None

            while proc.stdout is not None and not self._cancelled:
                try:
                    chunk = await self._read_chunk(proc.stdout)
                except (OSError, ValueError) as exc:
                    logger.error("error reading Claude stdout: %s", exc)
                    stream_error = f"Error reading Claude output: {exc}"
                    break
                if not chunk:
                    break
                for event in pipeline.feed(chunk):
                    if self._cancelled:
                        break
                    yield event

            if self._cancelled:
                return

            for event in pipeline.close():
                yield event

            if stream_error is not None:
                yield ErrorEvent(message=stream_error)
                return

            returncode = await proc.wait()
            if stderr_task is not None:
                # A grandchild may keep stderr open after the CLI exits.
                await asyncio.wait({stderr_task}, timeout=_STDERR_GRACE)

            if returncode != 0 and not self._cancelled:
                stderr_text = stderr_tail.decode(errors="replace").strip()
                logger.error(
                    "claude exited with code %d: %s",
                    returncode,
                    format_stderr_preview(stderr_text),
                )
                yield ErrorEvent(
                    message=stderr_text
                    or f"Claude process exited with code {returncode}"
                )
        finally:
            await self._cleanup(stderr_task)

    async def _read_chunk(self, stdout: asyncio.StreamReader) -> bytes:
        """Read one chunk, returning ``b""`` early if :meth:`cancel` is called."""
        read_task = asyncio.ensure_future(stdout.read(_READ_CHUNK))
        cancel_task = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait(
                {read_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (read_task, cancel_task):
                if not task.done():
                    task.cancel()
        if read_task.done() and not read_task.cancelled():
            return read_task.result()
        return b""

    async def _cleanup(self, stderr_task: asyncio.Task[None] | None) -> None:
        """Release the process on every exit path."""
        proc = self._process
        if proc is not None and proc.returncode is None:
            _kill_process_group(proc)
            if proc.stdout is not None:
                # Unread output would otherwise keep the pipe transport paused.
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(
                        _discard(proc.stdout), timeout=_STDERR_GRACE
                    )
            with contextlib.suppress(ProcessLookupError):
                await proc.wait()
        if stderr_task is not None and not stderr_task.done():
            stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stderr_task
        self._process = None
        self._active = False

    # ------------------------------------------------------------------ #
    # Cancellation
    # ------------------------------------------------------------------ #

    def cancel(self) -> None:
        """Kill the running invocation.  Safe to call repeatedly or when idle."""
        if not self._active or self._cancelled:
            return
        self._cancelled = True
        self._cancel_event.set()

        proc = self._process
        if proc is not None and proc.returncode is None:
            logger.info("cancelling claude pid=%s", proc.pid)
            _kill_process_group(proc)


def _kill_process_group(proc: asyncio.subprocess.Process) -> None:
    """SIGKILL the process group started for *proc*, falling back to the PID."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError, OSError):
        with contextlib.suppress(ProcessLookupError):
            proc.kill()


async def _discard(stream: asyncio.StreamReader) -> None:
    """Read *stream* to EOF, dropping the data."""
    try:
        while await stream.read(_READ_CHUNK):
            pass
    except (OSError, ValueError) as exc:
        logger.debug("stdout discard stopped: %s", exc)


async def _drain_stderr(stream: asyncio.StreamReader, tail: bytearray) -> None:
    """Read stderr until EOF, keeping only the last ``_MAX_STDERR_BYTES``."""
    try:
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            tail.extend(chunk)
            if len(tail) > _MAX_STDERR_BYTES:
                del tail[: len(tail) - _MAX_STDERR_BYTES]
    except (OSError, ValueError) as exc:
        logger.debug("stderr drain stopped: %s", exc)
