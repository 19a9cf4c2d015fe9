"""Static task registry: scope name -> ordered verification tasks."""

from __future__ import annotations

import shlex
import sys
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from guardrail_suite.constants import DEFAULT_SCOPE_ORDER, SCOPE_ALIASES


class DuplicateTaskError(ValueError):
    """Raised when two tasks share the same ``(scope, id)`` identity."""


@dataclass(frozen=True, slots=True)
class Task:
    """One executable verification step inside a scope."""

    scope: str
    id: str
    command: tuple[str, ...]
    optional: bool = False

    def __post_init__(self) -> None:
        if not self.scope or not self.id:
            raise ValueError("Task.scope and Task.id must be non-empty")
        if not self.command:
            raise ValueError(f"Task {self.scope}:{self.id} has an empty command")

    @property
    def key(self) -> str:
        return f"{self.scope}:{self.id}"

    @property
    def display_command(self) -> str:
        return " ".join(self.command)

    def to_dict(self) -> dict[str, object]:
        return {
            "scope": self.scope,
            "id": self.id,
            "command": self.display_command,
            "optional": self.optional,
        }


@dataclass(frozen=True, slots=True)
class ScopeSelection:
    """Resolved scope names plus names that matched nothing."""

    scopes: tuple[str, ...]
    unknown: tuple[str, ...] = ()


def builtin_scopes(python: str | None = None) -> dict[str, tuple[Task, ...]]:
    """Return the built-in scope table; guardrail checks run through this interpreter."""

    interpreter = python or sys.executable
    suite = (interpreter, "-m", "guardrail_suite")
    return {
        "app": (
            Task("app", "build", (interpreter, "-m", "compileall", "-q", "src")),
            Task("app", "typecheck", ("mypy", "src")),
            Task("app", "lint", ("ruff", "check", "src", "tests")),
            Task("app", "test", (interpreter, "-m", "pytest", "-q")),
        ),
        "scripts": (
            Task("scripts", "policy-lint", (*suite, "policy-lint")),
            Task("scripts", "smoke", (*suite, "script-smoke")),
            Task(
                "scripts",
                "deprecation",
                (*suite, "policy-lint", "--include-deprecated", "--filter", "DEPRECATED"),
            ),
        ),
        "docs": (Task("docs", "docs:check", ("mkdocs", "build", "--strict")),),
        "pr": (
            Task("pr", "branch-guard", (*suite, "branch-guard")),
            Task("pr", "commit-guard", (*suite, "commit-guard")),
            Task("pr", "pr-title-guard", (*suite, "pr-title-guard"), optional=True),
        ),
        "issues": (Task("issues", "drift-check", (*suite, "drift-check")),),
        "recordings": (
            Task("recordings", "record:help", ("vhs", "--help"), optional=True),
        ),
    }


class TaskRegistry:
    """Immutable mapping of scope names to ordered task tuples."""

    __slots__ = ("_order", "_scopes")

    def __init__(
        self,
        scopes: Mapping[str, Sequence[Task]],
        *,
        order: Sequence[str] = DEFAULT_SCOPE_ORDER,
    ) -> None:
        materialized: dict[str, tuple[Task, ...]] = {}
        seen: set[tuple[str, str]] = set()
        for scope_name, tasks in scopes.items():
            for task in tasks:
                if task.scope != scope_name:
                    raise ValueError(
                        f"task {task.key} registered under mismatched scope {scope_name!r}"
                    )
                identity = (task.scope, task.id)
                if identity in seen:
                    raise DuplicateTaskError(f"duplicate task identity {task.key}")
                seen.add(identity)
            materialized[scope_name] = tuple(tasks)

        ordered = [name for name in order if name in materialized]
        ordered.extend(sorted(name for name in materialized if name not in ordered))
        self._order = tuple(ordered)
        self._scopes = materialized

    @classmethod
    def from_config(
        cls,
        scope_overrides: Mapping[str, Sequence[Mapping[str, object]]] | None = None,
        *,
        python: str | None = None,
    ) -> TaskRegistry:
        """Build the registry from built-ins overlaid with ``[[scopes.<name>]]`` tables.

        A configured scope replaces the built-in scope of the same name entirely.
        """

        scopes: dict[str, tuple[Task, ...]] = dict(builtin_scopes(python))
        for scope_name, raw_tasks in sorted((scope_overrides or {}).items()):
            scopes[scope_name] = tuple(_task_from_mapping(scope_name, raw) for raw in raw_tasks)
        return cls(scopes)

    @property
    def scope_names(self) -> tuple[str, ...]:
        return self._order

    def tasks_for(self, scope: str) -> tuple[Task, ...]:
        return self._scopes.get(scope, ())

    def resolve_scopes(self, requested: Iterable[str] | None) -> ScopeSelection:
        """Normalize requested names: split comma lists, apply aliases, drop duplicates."""

        if requested is None:
            return ScopeSelection(scopes=self._order)

        selected: list[str] = []
        unknown: list[str] = []
        for raw in requested:
            for part in raw.split(","):
                name = part.strip().lower()
                if not name:
                    continue
                name = SCOPE_ALIASES.get(name, name)
                if name not in self._scopes:
                    if name not in unknown:
                        unknown.append(name)
                    continue
                if name not in selected:
                    selected.append(name)
        return ScopeSelection(scopes=tuple(selected), unknown=tuple(unknown))

    def build_queue(self, scopes: Sequence[str]) -> tuple[Task, ...]:
        """Flatten scopes into one queue preserving scope order then task order."""

        queue: list[Task] = []
        for scope in scopes:
            queue.extend(self._scopes.get(scope, ()))
        return tuple(queue)


def _task_from_mapping(scope: str, raw: Mapping[str, object]) -> Task:
    task_id = raw.get("id")
    command = raw.get("command")
    if not isinstance(task_id, str):
        raise ValueError(f"scopes.{scope}: task id must be a string")
    if isinstance(command, str):
        argv = tuple(shlex.split(command))
    elif isinstance(command, (list, tuple)):
        argv = tuple(str(part) for part in command)
    else:
        raise ValueError(f"scopes.{scope}.{task_id}: command must be a list of strings")
    return Task(scope=scope, id=task_id, command=argv, optional=bool(raw.get("optional", False)))


__all__ = [
    "DuplicateTaskError",
    "ScopeSelection",
    "Task",
    "TaskRegistry",
    "builtin_scopes",
]
