"""Sandboxed external process execution."""

from guardrail_suite.sandbox.process_runner import (
    CommandSpec,
    LocalProcessRunner,
    ProcessResult,
    ProcessRunner,
    truncate_output,
)

__all__ = [
    "CommandSpec",
    "LocalProcessRunner",
    "ProcessResult",
    "ProcessRunner",
    "truncate_output",
]
