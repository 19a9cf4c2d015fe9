"""Exception taxonomy shared by every guardrail command.

Each error type carries the process exit code it maps to at the CLI boundary.
Task failures inside the scheduler are data, not exceptions; these types are
reserved for preconditions, validation outcomes and internal faults.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from guardrail_suite.constants import ExitCode

if TYPE_CHECKING:
    from collections.abc import Sequence


class GuardrailError(RuntimeError):
    """Base error for guardrail failures."""

    exit_code: ClassVar[ExitCode] = ExitCode.EXECUTION_ERROR


class PreconditionFailed(GuardrailError):
    """Raised when a required external tool or credential is missing or unreachable."""

    exit_code: ClassVar[ExitCode] = ExitCode.PRECONDITION_FAILED


class ExecutionError(GuardrailError):
    """Raised for unexpected internal faults (malformed config, failing git query)."""

    exit_code: ClassVar[ExitCode] = ExitCode.EXECUTION_ERROR


class ValidationFailed(GuardrailError):
    """Raised when checks did not pass; the full issue list travels with it."""

    exit_code: ClassVar[ExitCode] = ExitCode.VALIDATION_FAILED

    def __init__(self, message: str, *, issues: Sequence[object] = ()) -> None:
        self.issues = tuple(issues)
        super().__init__(message)


class NamingViolation(ValidationFailed):
    """Raised when a branch, commit or pull-request title breaks naming rules."""

    exit_code: ClassVar[ExitCode] = ExitCode.NAMING_VIOLATION


class UnsafePatternDetected(ValidationFailed):
    """Raised when a dangerous code pattern was found."""

    exit_code: ClassVar[ExitCode] = ExitCode.UNSAFE_PATTERN


class FailFastAbort(ValidationFailed):
    """Internal signal: a required task failed while fail-fast is active."""

    def __init__(self, task_key: str) -> None:
        self.task_key = task_key
        super().__init__(f"fail-fast: required task {task_key} failed")


__all__ = [
    "ExecutionError",
    "FailFastAbort",
    "GuardrailError",
    "NamingViolation",
    "PreconditionFailed",
    "UnsafePatternDetected",
    "ValidationFailed",
]
