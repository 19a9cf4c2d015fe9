"""
guardrail-suite: external process runner.

File: src/guardrail_suite/sandbox/process_runner.py

Purpose
- Execute one external command and capture its merged stdout/stderr.

Functional requirements
- Never raise on non-zero exit; the exit code is data for the caller.
- A binary that cannot be located or started yields a failed result carrying the
  error text (exit 127 when not found, 126 when not startable).
- Optional per-invocation timeout: the command and every process it started are
  killed and the result is failed with exit 124.
- Output longer than the line limit keeps the first and last halves around a
  single elision marker line.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import signal
import sys
import time
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from guardrail_suite.constants import (
    EXIT_CODE_NOT_FOUND,
    EXIT_CODE_TIMEOUT,
    OUTPUT_ELISION_MARKER,
    OUTPUT_LINE_LIMIT,
)

EXIT_CODE_NOT_EXECUTABLE = 126
_KILL_GRACE_SECONDS = 2.0


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """One external command invocation."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if not self.argv or not self.argv[0]:
            raise ValueError("CommandSpec.argv must be strings with a non-empty program")
        if not all(isinstance(part, str) for part in self.argv):
            raise ValueError("CommandSpec.argv must contain only strings")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("CommandSpec.timeout_seconds must be > 0 when set")

    @property
    def display(self) -> str:
        return " ".join(self.argv)

    def build_env(self) -> dict[str, str] | None:
        if not self.env:
            return None
        merged = dict(os.environ)
        merged.update(self.env)
        return merged


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Normalized outcome of a single command execution."""

    argv: tuple[str, ...]
    exit_code: int
    output: str
    duration_ms: int
    timed_out: bool = False
    error: str | None = None
    truncated: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and self.error is None

    def to_dict(self) -> dict[str, object]:
        return {
            "argv": list(self.argv),
            "exit_code": self.exit_code,
            "output": self.output,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "error": self.error,
            "truncated": self.truncated,
        }


@runtime_checkable
class ProcessRunner(Protocol):
    """Pluggable async command execution interface."""

    async def run(self, spec: CommandSpec) -> ProcessResult: ...


class LocalProcessRunner(ProcessRunner):
    """Async local subprocess runner with merged capture and timeout handling."""

    def __init__(
        self,
        *,
        default_timeout_seconds: float | None = None,
        max_output_lines: int = OUTPUT_LINE_LIMIT,
    ) -> None:
        if default_timeout_seconds is not None and default_timeout_seconds <= 0:
            default_timeout_seconds = None
        if max_output_lines < 2:
            raise ValueError("max_output_lines must be >= 2")
        self._default_timeout_seconds = default_timeout_seconds
        self._max_output_lines = max_output_lines

    async def run(self, spec: CommandSpec) -> ProcessResult:
        started_ns = time.monotonic_ns()
        timeout = (
            spec.timeout_seconds
            if spec.timeout_seconds is not None
            else self._default_timeout_seconds
        )
        env = spec.build_env()

        if resolve_executable(spec.argv[0], env=env, cwd=spec.cwd) is None:
            return ProcessResult(
                argv=spec.argv,
                exit_code=EXIT_CODE_NOT_FOUND,
                output="",
                duration_ms=_elapsed_ms(started_ns),
                error=f"command not found: {spec.argv[0]}",
            )

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=sys.platform != "win32",
            )
        except OSError as exc:
            return ProcessResult(
                argv=spec.argv,
                exit_code=EXIT_CODE_NOT_EXECUTABLE,
                output="",
                duration_ms=_elapsed_ms(started_ns),
                error=str(exc),
            )

        timed_out = False
        error_text: str | None = None
        try:
            raw_output = await _communicate_with_timeout(process=process, timeout_seconds=timeout)
            exit_code = process.returncode if process.returncode is not None else 1
        except _CommandTimeoutError as exc:
            raw_output = exc.output
            timed_out = True
            error_text = f"command timed out after {timeout or 0.0:.3f}s"
            exit_code = EXIT_CODE_TIMEOUT

        output, truncated = truncate_output(
            _normalize_output_text(raw_output), max_lines=self._max_output_lines
        )
        return ProcessResult(
            argv=spec.argv,
            exit_code=exit_code,
            output=output,
            duration_ms=_elapsed_ms(started_ns),
            timed_out=timed_out,
            error=error_text,
            truncated=truncated,
        )


def resolve_executable(
    program: str,
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
) -> str | None:
    """Return the resolved executable path, or ``None`` when it cannot be located."""

    if os.sep in program or (os.altsep is not None and os.altsep in program):
        candidate = program if os.path.isabs(program) or cwd is None else os.path.join(cwd, program)
        return candidate if os.path.isfile(candidate) else None
    search_path = (env or os.environ).get("PATH")
    return shutil.which(program, path=search_path)


def truncate_output(text: str, *, max_lines: int = OUTPUT_LINE_LIMIT) -> tuple[str, bool]:
    """Keep the first and last ``max_lines // 2`` lines around an elision marker."""

    lines = text.splitlines()
    if len(lines) <= max_lines:
        return text, False
    half = max_lines // 2
    kept = [*lines[:half], OUTPUT_ELISION_MARKER, *lines[-half:]]
    return "\n".join(kept), True


class _CommandTimeoutError(Exception):
    def __init__(self, output: bytes) -> None:
        super().__init__("command timed out")
        self.output = output


async def _communicate_with_timeout(
    *,
    process: asyncio.subprocess.Process,
    timeout_seconds: float | None,
) -> bytes:
    try:
        if timeout_seconds is None:
            stdout_bytes, _ = await process.communicate()
        else:
            stdout_bytes, _ = await asyncio.wait_for(
                process.communicate(), timeout=timeout_seconds
            )
        return stdout_bytes or b""
    except TimeoutError as exc:
        _kill_process_group(process)
        raise _CommandTimeoutError(await _drain_after_kill(process)) from exc
    except asyncio.CancelledError:
        _kill_process_group(process)
        await _drain_after_kill(process)
        raise


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill the command and every process it started in its session."""

    if sys.platform == "win32":
        with suppress(ProcessLookupError):
            process.kill()
        return
    try:
        os.killpg(os.getpgid(process.pid), signal.SIGKILL)
    except (ProcessLookupError, OSError):
        with suppress(ProcessLookupError):
            process.kill()


async def _drain_after_kill(process: asyncio.subprocess.Process) -> bytes:
    # A descendant that left the process group can keep the pipe open.
    try:
        stdout_bytes, _ = await asyncio.wait_for(
            process.communicate(), timeout=_KILL_GRACE_SECONDS
        )
    except TimeoutError:
        return b""
    return stdout_bytes or b""


def _elapsed_ms(started_ns: int) -> int:
    delta_ns = time.monotonic_ns() - started_ns
    if delta_ns < 0:
        return 0
    return delta_ns // 1_000_000


def _normalize_output_text(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n")


__all__ = [
    "CommandSpec",
    "EXIT_CODE_NOT_EXECUTABLE",
    "LocalProcessRunner",
    "ProcessResult",
    "ProcessRunner",
    "resolve_executable",
    "truncate_output",
]
