"""
guardrail-suite: unit tests for the external process runner

File: tests/unit/sandbox/test_process_runner.py

Purpose
- Validate merged output capture, truncation, missing binaries and timeouts.

What this test file should cover
- Non-zero exit codes are returned as data, never raised.
- Missing executables yield exit 127 with an error message.
- Timeouts kill the process and yield exit 124.
- Long output keeps the head and tail around a single elision marker.
"""

from __future__ import annotations

import sys
import time
from typing import TYPE_CHECKING

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from guardrail_suite.constants import (
    EXIT_CODE_NOT_FOUND,
    EXIT_CODE_TIMEOUT,
    OUTPUT_ELISION_MARKER,
)
from guardrail_suite.sandbox.process_runner import (
    CommandSpec,
    LocalProcessRunner,
    ProcessResult,
    truncate_output,
)

if TYPE_CHECKING:
    from pathlib import Path


def _python(code: str) -> tuple[str, ...]:
    return (sys.executable, "-c", code)


@pytest.mark.unit
def test_truncate_output_keeps_head_and_tail_around_marker() -> None:
    text = "\n".join(f"line {index}" for index in range(1, 51))

    truncated, was_truncated = truncate_output(text, max_lines=40)

    lines = truncated.splitlines()
    assert was_truncated is True
    assert len(lines) == 41
    assert lines[:20] == [f"line {index}" for index in range(1, 21)]
    assert lines[20] == OUTPUT_ELISION_MARKER
    assert lines[21:] == [f"line {index}" for index in range(31, 51)]


@pytest.mark.unit
def test_truncate_output_leaves_short_output_untouched() -> None:
    text = "alpha\nbeta\ngamma"

    assert truncate_output(text, max_lines=40) == (text, False)


@pytest.mark.unit
@settings(max_examples=50, deadline=None)
@given(
    line_count=st.integers(min_value=0, max_value=200),
    limit=st.integers(min_value=2, max_value=60),
)
def test_truncate_output_never_exceeds_limit_plus_marker(line_count: int, limit: int) -> None:
    text = "\n".join(f"row-{index}" for index in range(line_count))

    truncated, was_truncated = truncate_output(text, max_lines=limit)

    lines = truncated.splitlines()
    assert was_truncated is (line_count > limit)
    if was_truncated:
        assert lines.count(OUTPUT_ELISION_MARKER) == 1
        assert len(lines) == 2 * (limit // 2) + 1
        assert lines[0] == "row-0"
        assert lines[-1] == f"row-{line_count - 1}"
    else:
        assert truncated == text


@pytest.mark.unit
def test_command_spec_rejects_empty_argv_and_bad_timeout() -> None:
    with pytest.raises(ValueError, match="non-empty"):
        CommandSpec(argv=())
    with pytest.raises(ValueError, match="non-empty program"):
        CommandSpec(argv=("", "--help"))
    with pytest.raises(ValueError, match="timeout_seconds"):
        CommandSpec(argv=("true",), timeout_seconds=0)

    assert CommandSpec(argv=("git", "commit", "-m", "")).argv[-1] == ""


@pytest.mark.unit
def test_process_result_success_requires_zero_exit_and_no_error() -> None:
    ok = ProcessResult(argv=("x",), exit_code=0, output="", duration_ms=1)
    failed = ProcessResult(argv=("x",), exit_code=2, output="", duration_ms=1)
    timed_out = ProcessResult(argv=("x",), exit_code=0, output="", duration_ms=1, timed_out=True)

    assert ok.succeeded is True
    assert failed.succeeded is False
    assert timed_out.succeeded is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_runner_merges_stdout_and_stderr() -> None:
    runner = LocalProcessRunner()
    code = "import sys; print('to-out'); sys.stdout.flush(); print('to-err', file=sys.stderr)"

    result = await runner.run(CommandSpec(argv=_python(code)))

    assert result.exit_code == 0
    assert result.succeeded is True
    assert "to-out" in result.output
    assert "to-err" in result.output


@pytest.mark.integration
@pytest.mark.asyncio
async def test_runner_returns_nonzero_exit_as_data() -> None:
    runner = LocalProcessRunner()

    result = await runner.run(CommandSpec(argv=_python("import sys; print('boom'); sys.exit(3)")))

    assert result.exit_code == 3
    assert result.succeeded is False
    assert result.error is None
    assert result.output.strip() == "boom"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_runner_reports_missing_binary_as_127() -> None:
    runner = LocalProcessRunner()

    result = await runner.run(CommandSpec(argv=("guardrail-no-such-binary-xyz", "--help")))

    assert result.exit_code == EXIT_CODE_NOT_FOUND
    assert result.succeeded is False
    assert result.error is not None
    assert "guardrail-no-such-binary-xyz" in result.error


@pytest.mark.integration
@pytest.mark.asyncio
async def test_runner_kills_process_on_timeout() -> None:
    runner = LocalProcessRunner()

    result = await runner.run(
        CommandSpec(argv=_python("import time; time.sleep(30)"), timeout_seconds=0.5)
    )

    assert result.exit_code == EXIT_CODE_TIMEOUT
    assert result.timed_out is True
    assert result.error is not None
    assert "timed out" in result.error


@pytest.mark.integration
@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")
async def test_timeout_also_kills_child_processes() -> None:
    runner = LocalProcessRunner()
    parent = (
        "import subprocess, sys; print('parent up', flush=True); "
        "subprocess.run([sys.executable, '-c', 'import time; time.sleep(30)'])"
    )
    started = time.monotonic()

    result = await runner.run(CommandSpec(argv=_python(parent), timeout_seconds=0.5))

    assert result.timed_out is True
    assert result.exit_code == EXIT_CODE_TIMEOUT
    assert time.monotonic() - started < 5.0


@pytest.mark.integration
@pytest.mark.asyncio
async def test_runner_truncates_long_output() -> None:
    runner = LocalProcessRunner(max_output_lines=10)

    result = await runner.run(
        CommandSpec(argv=_python("for i in range(1, 51): print(f'line {i}')"))
    )

    lines = result.output.splitlines()
    assert result.truncated is True
    assert lines[:5] == [f"line {index}" for index in range(1, 6)]
    assert lines[5] == OUTPUT_ELISION_MARKER
    assert lines[-1] == "line 50"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_runner_uses_working_directory(tmp_path: Path) -> None:
    (tmp_path / "marker.txt").write_text("present\n", encoding="utf-8")
    runner = LocalProcessRunner()

    result = await runner.run(
        CommandSpec(argv=_python("print(open('marker.txt').read().strip())"), cwd=str(tmp_path))
    )

    assert result.output.strip() == "present"


@pytest.mark.unit
def test_runner_rejects_tiny_output_limit() -> None:
    with pytest.raises(ValueError, match="max_output_lines"):
        LocalProcessRunner(max_output_lines=1)
