"""
guardrail-suite: bounded-concurrency task scheduler.

File: src/guardrail_suite/control_plane/scheduler.py

Purpose
- Flatten selected scopes into one queue and execute it through a bounded pool of
  asyncio workers sharing a single cursor.

Functional requirements
- ``min(concurrency, len(queue))`` workers; fail-fast or sequential forces one.
- Each result is written to its queue index, so report order equals queue order.
- Optional task failures are downgraded to ``skipped`` and never counted.
- Under fail-fast, dispatch stops right after the first required failure and the
  results collected so far are reported.
- Parallel runs never cancel in-flight or queued tasks.
- Unknown scopes are skipped with a warning.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Final

import structlog

from guardrail_suite.constants import DEFAULT_CONCURRENCY
from guardrail_suite.control_plane.registry import Task, TaskRegistry
from guardrail_suite.control_plane.report import RunReport, TaskResult
from guardrail_suite.errors import FailFastAbort
from guardrail_suite.observability.logging import generate_run_id
from guardrail_suite.sandbox.process_runner import CommandSpec, ProcessResult, ProcessRunner

_PROGRESS_WIDTH: Final[int] = 20

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SchedulerOptions:
    """Execution knobs for one guardrail run."""

    concurrency: int = DEFAULT_CONCURRENCY
    fail_fast: bool = False
    sequential: bool = False
    task_timeout_seconds: float | None = None
    cwd: str | None = None
    dry_run: bool = False

    @property
    def effective_concurrency(self) -> int:
        if self.fail_fast or self.sequential:
            return 1
        return self.concurrency if self.concurrency >= 1 else DEFAULT_CONCURRENCY


class _RunState:
    """Cursor, failure counter and result slots for one run.

    All mutation happens between awaits on a single event loop, so claims and
    writes are atomic without locks.
    """

    __slots__ = ("completed", "cursor", "failures", "halted", "slots")

    def __init__(self, size: int) -> None:
        self.cursor = 0
        self.failures = 0
        self.completed = 0
        self.halted = False
        self.slots: list[TaskResult | None] = [None] * size

    def claim(self) -> int | None:
        if self.halted or self.cursor >= len(self.slots):
            return None
        index = self.cursor
        self.cursor += 1
        return index

    def record(self, index: int, result: TaskResult) -> None:
        if self.slots[index] is not None:
            raise RuntimeError(f"result slot {index} written twice")
        self.slots[index] = result
        self.completed += 1
        if result.failed:
            self.failures += 1

    def results(self) -> tuple[TaskResult, ...]:
        return tuple(item for item in self.slots if item is not None)


class ProgressReporter:
    """Debug-level progress bar for suite runs."""

    def __init__(self, total: int, *, log: logging.Logger | None = None) -> None:
        self._total = total
        self._log = log or logger

    def advance(self, completed: int, result: TaskResult) -> None:
        if not self._log.isEnabledFor(logging.DEBUG):
            return
        self._log.debug(
            "progress %s %d/%d",
            render_progress_bar(completed, self._total),
            completed,
            self._total,
            extra={"task": result.key, "status": result.status.value},
        )

    def finish(self, completed: int, *, halted: bool) -> None:
        self._log.debug(
            "progress %s",
            "halted" if halted else "complete",
            extra={"completed": completed, "total": self._total},
        )


def render_progress_bar(completed: int, total: int, *, width: int = _PROGRESS_WIDTH) -> str:
    """Render ``[=====.....]`` for ``completed`` of ``total``."""

    if total <= 0:
        return "[" + "=" * width + "]"
    filled = min(width, (completed * width) // total)
    return "[" + "=" * filled + "." * (width - filled) + "]"


class Scheduler:
    """Runs registry tasks through a :class:`ProcessRunner` with bounded concurrency."""

    def __init__(
        self,
        registry: TaskRegistry,
        runner: ProcessRunner,
        *,
        decision_logger: Any | None = None,
    ) -> None:
        self._registry = registry
        self._runner = runner
        self._logger = (
            decision_logger if decision_logger is not None else structlog.get_logger(__name__)
        )

    async def run(
        self,
        scopes: Sequence[str] | None = None,
        options: SchedulerOptions | None = None,
        *,
        run_id: str | None = None,
    ) -> RunReport:
        opts = options or SchedulerOptions()
        resolved_run_id = run_id or generate_run_id()
        started_ns = time.monotonic_ns()

        selection = self._registry.resolve_scopes(scopes)
        for name in selection.unknown:
            self._logger.warning("unknown_scope_skipped", scope=name)

        queue = self._registry.build_queue(selection.scopes)
        concurrency = min(opts.effective_concurrency, len(queue)) if queue else 0
        self._logger.info(
            "guardrail_run_starting",
            run_id=resolved_run_id,
            scopes=list(selection.scopes),
            tasks=len(queue),
            concurrency=concurrency,
            fail_fast=opts.fail_fast,
            dry_run=opts.dry_run,
        )

        if opts.dry_run:
            return RunReport(
                run_id=resolved_run_id,
                scopes=selection.scopes,
                results=(),
                queued=len(queue),
                concurrency=concurrency,
                fail_fast=opts.fail_fast,
                unknown_scopes=selection.unknown,
                dry_run=True,
                planned=tuple(f"{task.key}: {task.display_command}" for task in queue),
            )

        state = _RunState(len(queue))
        progress = ProgressReporter(len(queue))
        aborted = False

        if queue:
            workers = [
                self._worker(worker_index, queue, state, opts, progress)
                for worker_index in range(concurrency)
            ]
            try:
                await asyncio.gather(*workers)
            except FailFastAbort as exc:
                aborted = True
                self._logger.warning(
                    "fail_fast_halt",
                    task=exc.task_key,
                    completed=state.completed,
                    undispatched=len(queue) - state.cursor,
                )
        progress.finish(state.completed, halted=aborted)

        report = RunReport(
            run_id=resolved_run_id,
            scopes=selection.scopes,
            results=state.results(),
            queued=len(queue),
            concurrency=concurrency,
            fail_fast=opts.fail_fast,
            aborted=aborted,
            unknown_scopes=selection.unknown,
            duration_ms=(time.monotonic_ns() - started_ns) // 1_000_000,
        )
        self._logger.info(
            "guardrail_run_finished",
            ok=report.ok,
            failures=report.failures,
            **report.summary(),
        )
        return report

    def run_sync(
        self,
        scopes: Sequence[str] | None = None,
        options: SchedulerOptions | None = None,
        *,
        run_id: str | None = None,
    ) -> RunReport:
        return asyncio.run(self.run(scopes, options, run_id=run_id))

    async def _worker(
        self,
        worker_index: int,
        queue: Sequence[Task],
        state: _RunState,
        options: SchedulerOptions,
        progress: ProgressReporter,
    ) -> None:
        while True:
            index = state.claim()
            if index is None:
                return
            task = queue[index]
            logger.debug(
                "task dispatched",
                extra={"task": task.key, "index": index, "worker": worker_index},
            )
            outcome = await self._execute(task, options)
            result = TaskResult.from_execution(task, outcome)
            state.record(index, result)
            progress.advance(state.completed, result)

            if result.failed and options.fail_fast:
                state.halted = True
                raise FailFastAbort(task.key)

    async def _execute(self, task: Task, options: SchedulerOptions) -> ProcessResult:
        """Run one task; a command that cannot even be described becomes a failed result."""

        try:
            spec = CommandSpec(
                argv=task.command,
                cwd=options.cwd,
                timeout_seconds=options.task_timeout_seconds or None,
            )
        except ValueError as exc:
            logger.warning("task rejected", extra={"task": task.key, "error": str(exc)})
            return _failed_outcome(task, exc)
        try:
            return await self._runner.run(spec)
        except OSError as exc:
            logger.warning("task could not start", extra={"task": task.key, "error": str(exc)})
            return _failed_outcome(task, exc)


def _failed_outcome(task: Task, exc: Exception) -> ProcessResult:
    return ProcessResult(argv=task.command, exit_code=1, output="", duration_ms=0, error=str(exc))


__all__ = [
    "ProgressReporter",
    "Scheduler",
    "SchedulerOptions",
    "render_progress_bar",
]
