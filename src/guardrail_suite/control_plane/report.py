"""Result aggregation and rendering for guardrail runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from guardrail_suite.constants import ExitCode

if TYPE_CHECKING:
    from guardrail_suite.control_plane.registry import Task
    from guardrail_suite.sandbox.process_runner import ProcessResult


class TaskStatus(StrEnum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Outcome of one task; the status is decided once, at construction."""

    scope: str
    id: str
    command: str
    status: TaskStatus
    exit_code: int
    duration_ms: int
    output: str = ""
    optional: bool = False
    skip_reason: str | None = None
    error: str | None = None
    timed_out: bool = False

    @classmethod
    def from_execution(cls, task: Task, result: ProcessResult) -> TaskResult:
        """Map a process outcome onto ``passed | failed | skipped(reason)``.

        A failing optional task is downgraded to ``skipped`` with exit code 0.
        """

        if result.succeeded:
            status = TaskStatus.PASSED
            exit_code = 0
            skip_reason = None
        elif task.optional:
            status = TaskStatus.SKIPPED
            exit_code = 0
            detail = result.error or f"exit {result.exit_code}"
            skip_reason = f"optional task failed ({detail})"
        else:
            status = TaskStatus.FAILED
            exit_code = result.exit_code
            skip_reason = None

        return cls(
            scope=task.scope,
            id=task.id,
            command=task.display_command,
            status=status,
            exit_code=exit_code,
            duration_ms=result.duration_ms,
            output=_join_output(result.output, result.error),
            optional=task.optional,
            skip_reason=skip_reason,
            error=result.error,
            timed_out=result.timed_out,
        )

    @property
    def key(self) -> str:
        return f"{self.scope}:{self.id}"

    @property
    def failed(self) -> bool:
        return self.status is TaskStatus.FAILED

    def to_dict(self, *, include_output: bool = True) -> dict[str, object]:
        payload: dict[str, object] = {
            "scope": self.scope,
            "id": self.id,
            "command": self.command,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "optional": self.optional,
        }
        if self.skip_reason is not None:
            payload["skip_reason"] = self.skip_reason
        if self.timed_out:
            payload["timed_out"] = True
        if include_output:
            payload["output"] = self.output
        return payload


@dataclass(frozen=True, slots=True)
class RunReport:
    """Queue-ordered results of one guardrail run."""

    run_id: str
    scopes: tuple[str, ...]
    results: tuple[TaskResult, ...]
    queued: int
    concurrency: int
    fail_fast: bool = False
    aborted: bool = False
    unknown_scopes: tuple[str, ...] = ()
    duration_ms: int = 0
    dry_run: bool = False
    planned: tuple[str, ...] = field(default_factory=tuple)

    @property
    def failures(self) -> int:
        return sum(1 for item in self.results if item.failed)

    @property
    def ok(self) -> bool:
        return self.failures == 0 and not self.aborted

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.SUCCESS if self.ok else ExitCode.VALIDATION_FAILED

    def summary(self) -> dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for item in self.results:
            counts[item.status.value] += 1
        return {
            "total": len(self.results),
            "queued": self.queued,
            "passed": counts[TaskStatus.PASSED.value],
            "failed": counts[TaskStatus.FAILED.value],
            "skipped": counts[TaskStatus.SKIPPED.value],
        }

    def to_dict(self) -> dict[str, object]:
        """Structured form: flat results plus per-scope nesting, always with output."""

        by_scope: dict[str, list[dict[str, object]]] = {scope: [] for scope in self.scopes}
        for item in self.results:
            by_scope.setdefault(item.scope, []).append(item.to_dict(include_output=True))

        payload: dict[str, object] = {
            "script": "guardrails",
            "run_id": self.run_id,
            "ok": self.ok,
            "aborted": self.aborted,
            "fail_fast": self.fail_fast,
            "concurrency": self.concurrency,
            "duration_ms": self.duration_ms,
            "scopes": list(self.scopes),
            "unknown_scopes": list(self.unknown_scopes),
            "summary": self.summary(),
            "results": [item.to_dict(include_output=True) for item in self.results],
            "by_scope": by_scope,
        }
        if self.dry_run:
            payload["dry_run"] = True
            payload["planned"] = list(self.planned)
        return payload


def render_text(report: RunReport, *, verbose: bool = False) -> list[str]:
    """Condensed form: one line per task, output only for failures or when verbose."""

    lines: list[str] = []
    if report.dry_run:
        lines.append(f"dry run: {len(report.planned)} task(s) planned")
        lines.extend(f"  PLAN  {entry}" for entry in report.planned)
        return lines

    for item in report.results:
        lines.append(_result_line(item))
        if item.output and (item.failed or verbose):
            lines.extend(f"      {line}" for line in item.output.splitlines())

    summary = report.summary()
    verdict = "OK" if report.ok else ("ABORTED" if report.aborted else "FAILED")
    lines.append(
        f"guardrails: {summary['passed']} passed, {summary['failed']} failed, "
        f"{summary['skipped']} skipped of {summary['queued']} queued -> {verdict}"
    )
    return lines


def _result_line(item: TaskResult) -> str:
    if item.status is TaskStatus.PASSED:
        return f"  PASS  {item.key} ({item.duration_ms} ms)"
    if item.status is TaskStatus.SKIPPED:
        return f"  SKIP  {item.key} ({item.skip_reason})"
    suffix = "timed out" if item.timed_out else f"exit {item.exit_code}"
    return f"  FAIL  {item.key} ({suffix}, {item.duration_ms} ms)"


def _join_output(output: str, error: str | None) -> str:
    if error and output:
        return f"{output}\n{error}"
    return error or output


__all__ = ["RunReport", "TaskResult", "TaskStatus", "render_text"]
