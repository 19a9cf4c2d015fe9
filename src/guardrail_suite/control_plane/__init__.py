"""Control plane: task registry, scheduler and run reporting."""

from guardrail_suite.control_plane.registry import (
    DuplicateTaskError,
    ScopeSelection,
    Task,
    TaskRegistry,
    builtin_scopes,
)
from guardrail_suite.control_plane.report import RunReport, TaskResult, TaskStatus, render_text
from guardrail_suite.control_plane.scheduler import Scheduler, SchedulerOptions

__all__ = [
    "DuplicateTaskError",
    "RunReport",
    "Scheduler",
    "SchedulerOptions",
    "ScopeSelection",
    "Task",
    "TaskRegistry",
    "TaskResult",
    "TaskStatus",
    "builtin_scopes",
    "render_text",
]
