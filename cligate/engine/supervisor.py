"""Claude CLI process supervisor (one process per request).

The supervisor owns a single `claude --print` subprocess:
- stdout and stderr are read concurrently, line by line
- every line read (either stream) pushes back one inactivity deadline
- stdout lines are parsed into normalized events and forwarded, in order,
  into a bounded anyio memory channel
- a failed send (receiving end closed) means the consumer is gone: the
  process is killed and the supervisor stops

The process is killed or reaped on every return path.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Mapping

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from .events import Closed, CliRequest, Completed, ContentDelta, Failed, NormalizedEvent
from .line_parser import decode_line, events_for

logger = logging.getLogger(__name__)

INACTIVITY_TIMEOUT_S = 30 * 60
CLI_NOT_FOUND_MESSAGE = "claude CLI not found. Install it with: npm install -g @anthropic-ai/claude-code"

_CONSUMER_GONE = (anyio.BrokenResourceError, anyio.ClosedResourceError)


@dataclass(frozen=True)
class SupervisorConfig:
    """Per-process limits and launch settings."""

    cli_command: tuple[str, ...] = ("claude",)
    inactivity_timeout_s: float = INACTIVITY_TIMEOUT_S
    queue_size: int = 64
    line_limit_bytes: int = 16 * 1024 * 1024
    env: Mapping[str, str] = field(
        default_factory=lambda: {"CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS": "1"}
    )


def build_args(request: CliRequest) -> list[str]:
    """CLI arguments for one request (the executable itself is not included)."""
    args = [
        "--print",
        "--output-format",
        "stream-json",
        "--verbose",
        "--include-partial-messages",
        "--model",
        request.model,
        "--no-session-persistence",
        "--permission-mode",
        "bypassPermissions",
        request.prompt,
    ]
    if request.session_id is not None:
        args.extend(["--session-id", request.session_id])
    return args


def _format_duration(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds:g} seconds"


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


class ProcessSupervisor:
    """Runs one CLI process and streams its normalized events.

    Thread-safety:
        Single-writer. One instance per request; never reused.
    """

    def __init__(
        self,
        request: CliRequest,
        *,
        config: SupervisorConfig | None = None,
        request_id: str | None = None,
    ) -> None:
        self._request = request
        self._config = config or SupervisorConfig()
        self._prefix = f"[req={request_id}] " if request_id else ""
        self.process: asyncio.subprocess.Process | None = None

    @property
    def command(self) -> list[str]:
        return [*self._config.cli_command, *build_args(self._request)]

    async def run(self, send_stream: MemoryObjectSendStream[NormalizedEvent]) -> None:
        """Spawn the process and forward events until a terminal outcome.

        The send stream is always closed on return so the consumer's
        iteration ends.
        """
        with send_stream:
            await self._run(send_stream)

    async def _send_quietly(
        self, send_stream: MemoryObjectSendStream[NormalizedEvent], event: NormalizedEvent
    ) -> None:
        try:
            await send_stream.send(event)
        except _CONSUMER_GONE:
            pass

    async def _run(self, send_stream: MemoryObjectSendStream[NormalizedEvent]) -> None:
        request = self._request
        started = time.monotonic()
        command = self.command

        logger.info("%sSpawning claude subprocess with model=%s, cwd=%s", self._prefix, request.model, request.cwd)

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=request.cwd,
                env={**os.environ, **self._config.env},
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=self._config.line_limit_bytes,
            )
        except FileNotFoundError as exc:
            # A missing cwd also surfaces as FileNotFoundError (filename=cwd).
            if exc.filename == request.cwd:
                message = f"Failed to spawn claude: {exc}"
            else:
                message = CLI_NOT_FOUND_MESSAGE
            logger.error("%s%s", self._prefix, message)
            await self._send_quietly(send_stream, Failed(message))
            return
        except OSError as exc:
            message = f"Failed to spawn claude: {exc}"
            logger.error("%s%s", self._prefix, message)
            await self._send_quietly(send_stream, Failed(message))
            return

        self.process = process
        logger.info("%sClaude subprocess started with PID %s", self._prefix, process.pid)

        try:
            if not await self._pump(process, send_stream, started):
                return
            _, stderr_tail = await process.communicate()
        finally:
            if process.returncode is None:
                _kill(process)

        for line in stderr_tail.decode("utf-8", errors="replace").splitlines():
            logger.debug("%sclaude stderr: %s", self._prefix, line)

        returncode = process.returncode
        exit_code = returncode if returncode is not None and returncode >= 0 else -1
        logger.info(
            "%sClaude subprocess PID %s exited with code %s after %.2fs",
            self._prefix,
            process.pid,
            exit_code,
            time.monotonic() - started,
        )
        await self._send_quietly(send_stream, Closed(exit_code))

    async def _pump(
        self,
        process: asyncio.subprocess.Process,
        send_stream: MemoryObjectSendStream[NormalizedEvent],
        started: float,
    ) -> bool:
        """Forward stdout events until EOF.

        Returns:
            True when stdout reached end-of-stream, False when the run was cut
            short (inactivity timeout or consumer gone; the process is killed).
        """
        assert process.stdout is not None and process.stderr is not None
        loop = asyncio.get_running_loop()
        timeout_s = float(self._config.inactivity_timeout_s)
        deadline = loop.time() + timeout_s
        first_token = True

        stdout_read: asyncio.Future[bytes] = asyncio.ensure_future(process.stdout.readline())
        stderr_read: asyncio.Future[bytes] | None = asyncio.ensure_future(process.stderr.readline())

        try:
            while True:
                waiting = {stdout_read} if stderr_read is None else {stdout_read, stderr_read}
                done, _ = await asyncio.wait(
                    waiting,
                    timeout=max(deadline - loop.time(), 0.0),
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if not done:
                    duration = _format_duration(timeout_s)
                    logger.warning(
                        "%sInactivity timeout after %s, killing subprocess PID %s",
                        self._prefix,
                        duration,
                        process.pid,
                    )
                    _kill(process)
                    await self._send_quietly(send_stream, Failed(f"Inactivity timeout after {duration}"))
                    return False

                if stderr_read is not None and stderr_read in done:
                    try:
                        err_line = stderr_read.result()
                    except ValueError as exc:
                        logger.debug("%sDropping oversized stderr line: %s", self._prefix, exc)
                        err_line = b"\n"
                    except OSError as exc:
                        logger.debug("%sError reading stderr: %s", self._prefix, exc)
                        err_line = b""
                    if err_line:
                        deadline = loop.time() + timeout_s
                        logger.debug(
                            "%sclaude stderr: %s",
                            self._prefix,
                            err_line.decode("utf-8", errors="replace").rstrip("\r\n"),
                        )
                        stderr_read = asyncio.ensure_future(process.stderr.readline())
                    else:
                        stderr_read = None

                if stdout_read not in done:
                    continue

                try:
                    raw = stdout_read.result()
                except ValueError as exc:
                    # Line longer than the reader limit; the reader has already discarded it.
                    logger.warning("%sDropping oversized stdout line: %s", self._prefix, exc)
                    raw = b"\n"
                except OSError as exc:
                    logger.error("%sError reading stdout: %s", self._prefix, exc)
                    return True
                if not raw:
                    return True

                deadline = loop.time() + timeout_s
                stdout_read = asyncio.ensure_future(process.stdout.readline())

                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if not line.strip():
                    continue

                decoded = decode_line(line)
                if decoded is None:
                    logger.debug("%sIgnoring unrecognized line: %s", self._prefix, line)
                    continue

                for event in events_for(decoded):
                    if first_token and isinstance(event, ContentDelta):
                        first_token = False
                        logger.info("%sFirst token after %.2fs", self._prefix, time.monotonic() - started)
                    elif isinstance(event, Completed):
                        summary = event.summary
                        logger.info(
                            "%sResult after %.2fs: turns=%s duration_ms=%s duration_api_ms=%s",
                            self._prefix,
                            time.monotonic() - started,
                            summary.num_turns,
                            summary.duration_ms,
                            summary.duration_api_ms,
                        )
                    try:
                        await send_stream.send(event)
                    except _CONSUMER_GONE:
                        logger.info(
                            "%sClient disconnected, killing subprocess PID %s", self._prefix, process.pid
                        )
                        _kill(process)
                        return False
        finally:
            for pending in (stdout_read, stderr_read):
                if pending is not None and not pending.done():
                    pending.cancel()


@dataclass
class EventStream:
    """Receiving end of one supervisor's channel.

    Closing the receive stream is the disconnect signal: the supervisor's next
    send fails and the process is killed.
    """

    receive: MemoryObjectReceiveStream[NormalizedEvent]
    supervisor: ProcessSupervisor
    task: asyncio.Task[None]

    def close(self) -> None:
        self.receive.close()

    def __aiter__(self) -> MemoryObjectReceiveStream[NormalizedEvent]:
        return self.receive

    def __enter__(self) -> EventStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _log_task_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Supervisor task failed: %r", exc, exc_info=exc)


def start_event_stream(
    request: CliRequest,
    *,
    config: SupervisorConfig | None = None,
    request_id: str | None = None,
) -> EventStream:
    """Spawn a supervisor task and return the receiving end of its channel."""
    config = config or SupervisorConfig()
    send_stream, receive_stream = anyio.create_memory_object_stream(max_buffer_size=config.queue_size)
    supervisor = ProcessSupervisor(request, config=config, request_id=request_id)
    task = asyncio.create_task(
        supervisor.run(send_stream),
        name=f"cligate-supervisor-{request_id or 'anon'}",
    )
    task.add_done_callback(_log_task_failure)
    return EventStream(receive=receive_stream, supervisor=supervisor, task=task)
