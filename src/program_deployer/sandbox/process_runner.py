"""
program-deployer — bounded external command execution.

File: src/program_deployer/sandbox/process_runner.py

Purpose
- Run one external toolchain command with a hard timeout and capture its output.

Functional requirements
- Commands run as argv (no shell) in their own session so the whole tree can be killed.
- stdout and stderr are read concurrently; complete lines are appended to an
  interleaved log in arrival order and optionally emitted at debug level.
- Timeout kills the process tree and raises a ``TIMEOUT`` ``DeployError``.
- Cancellation kills the process tree and propagates.
- Non-zero exit and spawn failure raise ``CommandExecutionError``.
- No retries at this layer.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import shlex
import signal
import time
from collections import deque
from collections.abc import Mapping, Sequence
from contextlib import suppress
from pathlib import Path
from typing import Any, Final, Protocol

import psutil
import structlog

from program_deployer.domain.errors import DeployError, ErrorKind
from program_deployer.domain.models import ProcessResult

_READ_CHUNK_BYTES: Final[int] = 64 * 1024
_MAX_LOG_LINES: Final[int] = 10_000
_ERROR_TAIL_LINES: Final[int] = 20


class CommandExecutionError(RuntimeError):
    """A command could not be started or exited with a non-zero status."""

    def __init__(
        self,
        command: Sequence[str],
        message: str,
        *,
        result: ProcessResult | None = None,
    ) -> None:
        self.command = tuple(command)
        self.result = result
        super().__init__(message)

    @property
    def exit_code(self) -> int | None:
        return self.result.exit_code if self.result is not None else None

    @property
    def log_lines(self) -> tuple[str, ...]:
        return self.result.log_lines if self.result is not None else ()

    @property
    def output(self) -> str:
        return self.result.combined_output if self.result is not None else ""


class CommandRunner(Protocol):
    """Seam used by every component that talks to the toolchain."""

    async def execute(
        self,
        command: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout_seconds: float,
        stream_to_log: bool = False,
    ) -> ProcessResult: ...


class ProcessRunner:
    """Async local process runner with tree-kill timeout semantics."""

    def __init__(
        self,
        *,
        max_output_chars: int | None = 200_000,
        kill_grace_seconds: float = 3.0,
        drain_timeout_seconds: float = 2.0,
        logger: Any | None = None,
    ) -> None:
        if max_output_chars is not None and max_output_chars <= 0:
            raise ValueError("max_output_chars must be > 0")
        self._max_output_chars = max_output_chars
        self._kill_grace_seconds = kill_grace_seconds
        self._drain_timeout_seconds = drain_timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def execute(
        self,
        command: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout_seconds: float,
        stream_to_log: bool = False,
    ) -> ProcessResult:
        argv = tuple(str(part) for part in command)
        if not argv:
            raise ValueError("command must not be empty")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        command_text = _render_command(argv)
        started_ns = time.monotonic_ns()
        self._logger.debug("process_started", command=command_text, cwd=_as_text(cwd))

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd is not None else None,
                env=_build_environment(env),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise CommandExecutionError(
                argv, f"unable to start {argv[0]!r}: {exc.strerror or exc}"
            ) from exc

        capture = _OutputCapture(
            logger=self._logger if stream_to_log else None,
            program=Path(argv[0]).name,
        )
        assert process.stdout is not None
        assert process.stderr is not None
        readers = [
            asyncio.create_task(capture.pump(process.stdout, "stdout")),
            asyncio.create_task(capture.pump(process.stderr, "stderr")),
        ]

        try:
            await asyncio.wait_for(process.wait(), timeout=timeout_seconds)
        except TimeoutError:
            await self._terminate_tree(process)
            await self._drain(readers)
            self._logger.warning(
                "process_timed_out",
                command=command_text,
                timeout_seconds=timeout_seconds,
            )
            raise DeployError(
                ErrorKind.TIMEOUT,
                f"Command timed out after {timeout_seconds:g}s: {command_text}",
                details={"command": command_text, "timeout_seconds": timeout_seconds},
                logs=capture.tail(_ERROR_TAIL_LINES),
            ) from None
        except asyncio.CancelledError:
            await self._terminate_tree(process)
            await self._drain(readers)
            raise

        await self._drain(readers)
        exit_code = process.returncode if process.returncode is not None else -1
        result = ProcessResult(
            command=argv,
            exit_code=exit_code,
            stdout=_truncate_keep_tail(capture.text("stdout"), self._max_output_chars),
            stderr=_truncate_keep_tail(capture.text("stderr"), self._max_output_chars),
            log_lines=capture.lines(),
            duration_ms=_elapsed_ms(started_ns),
        )
        self._logger.debug(
            "process_finished",
            command=command_text,
            exit_code=exit_code,
            duration_ms=result.duration_ms,
        )

        if exit_code != 0:
            raise CommandExecutionError(
                argv,
                _failure_message(result),
                result=result,
            )
        return result

    async def _terminate_tree(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            await asyncio.to_thread(kill_process_tree, process.pid, self._kill_grace_seconds)
        with suppress(ProcessLookupError):
            process.kill()
        with suppress(TimeoutError):
            await asyncio.wait_for(process.wait(), timeout=self._kill_grace_seconds)

    async def _drain(self, readers: list[asyncio.Task[None]]) -> None:
        # A surviving grandchild can hold a pipe open; do not wait on it forever.
        _, pending = await asyncio.wait(readers, timeout=self._drain_timeout_seconds)
        for task in pending:
            task.cancel()
        for task in pending:
            with suppress(asyncio.CancelledError):
                await task


def kill_process_tree(pid: int, grace_seconds: float = 3.0) -> None:
    """SIGKILL ``pid``, its process group, and every descendant found beforehand."""

    try:
        root = psutil.Process(pid)
        descendants = root.children(recursive=True)
    except psutil.NoSuchProcess:
        root = None
        descendants = []

    if hasattr(os, "killpg"):
        with suppress(ProcessLookupError, PermissionError):
            os.killpg(pid, signal.SIGKILL)

    if root is not None:
        with suppress(psutil.NoSuchProcess, psutil.AccessDenied):
            root.kill()
    for proc in descendants:
        with suppress(psutil.NoSuchProcess, psutil.AccessDenied):
            proc.kill()
    # The root is reaped by its asyncio owner; only wait on the descendants here.
    psutil.wait_procs(descendants, timeout=grace_seconds)


class _OutputCapture:
    """Line splitter and accumulator for both pipes of one process."""

    def __init__(self, *, logger: Any | None, program: str) -> None:
        self._logger = logger
        self._program = program
        self._chunks: dict[str, list[str]] = {"stdout": [], "stderr": []}
        self._lines: deque[str] = deque(maxlen=_MAX_LOG_LINES)

    async def pump(self, stream: asyncio.StreamReader, name: str) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while True:
            chunk = await stream.read(_READ_CHUNK_BYTES)
            if not chunk:
                break
            text = decoder.decode(chunk)
            self._chunks[name].append(text)
            pending = self._emit_lines(pending + text, name)
        tail = decoder.decode(b"", final=True)
        if tail:
            self._chunks[name].append(tail)
        remainder = (pending + tail).rstrip("\r")
        if remainder:
            self._record_line(remainder, name)

    def text(self, name: str) -> str:
        return _normalize_newlines("".join(self._chunks[name]))

    def lines(self) -> tuple[str, ...]:
        return tuple(self._lines)

    def tail(self, count: int) -> tuple[str, ...]:
        return tuple(self._lines)[-count:]

    def _emit_lines(self, buffer: str, name: str) -> str:
        *complete, pending = buffer.split("\n")
        for line in complete:
            self._record_line(line.rstrip("\r"), name)
        return pending

    def _record_line(self, line: str, name: str) -> None:
        self._lines.append(line)
        if self._logger is not None:
            self._logger.debug("process_output", program=self._program, stream=name, line=line)


def split_command(command: Sequence[str] | str) -> tuple[str, ...]:
    """Normalize a configured command (``"anchor"`` or ``"python fake.py"``) to argv."""

    if isinstance(command, str):
        parts = tuple(shlex.split(command, posix=os.name != "nt"))
    else:
        parts = tuple(str(part) for part in command)
    if not parts:
        raise ValueError("command must not be empty")
    return parts


def _build_environment(overrides: Mapping[str, str] | None) -> dict[str, str]:
    environment = dict(os.environ)
    if overrides:
        environment.update({str(key): str(value) for key, value in overrides.items()})
    return environment


def _failure_message(result: ProcessResult) -> str:
    source = result.stderr.strip() or result.stdout.strip()
    tail = "\n".join(source.splitlines()[-_ERROR_TAIL_LINES:])
    message = f"Command failed with code {result.exit_code}: {result.command_text}"
    return f"{message}\n{tail}" if tail else message


def _render_command(argv: tuple[str, ...]) -> str:
    return " ".join(argv)


def _as_text(value: str | Path | None) -> str | None:
    return None if value is None else str(value)


def _elapsed_ms(started_ns: int) -> int:
    delta_ns = time.monotonic_ns() - started_ns
    if delta_ns < 0:
        return 0
    return delta_ns // 1_000_000


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _truncate_keep_tail(text: str, max_chars: int | None) -> str:
    if max_chars is None or len(text) <= max_chars:
        return text
    omitted = len(text) - max_chars
    return f"...[truncated {omitted} chars]\n{text[-max_chars:]}"


__all__ = [
    "CommandExecutionError",
    "CommandRunner",
    "ProcessRunner",
    "kill_process_tree",
    "split_command",
]
