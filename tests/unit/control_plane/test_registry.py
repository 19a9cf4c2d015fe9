"""Unit tests for the static task registry."""

from __future__ import annotations

import sys

import pytest

from guardrail_suite.constants import DEFAULT_SCOPE_ORDER
from guardrail_suite.control_plane.registry import (
    DuplicateTaskError,
    Task,
    TaskRegistry,
    builtin_scopes,
)


def _registry() -> TaskRegistry:
    return TaskRegistry(
        {
            "docs": (Task("docs", "docs:check", ("mkdocs", "build")),),
            "app": (
                Task("app", "build", ("make", "build")),
                Task("app", "test", ("make", "test")),
            ),
            "issues": (Task("issues", "drift-check", ("drift-check",)),),
        }
    )


@pytest.mark.unit
def test_builtin_scopes_cover_default_order() -> None:
    scopes = builtin_scopes(python=sys.executable)

    assert set(scopes) == set(DEFAULT_SCOPE_ORDER)
    assert [task.id for task in scopes["pr"]] == ["branch-guard", "commit-guard", "pr-title-guard"]
    assert scopes["pr"][2].optional is True
    assert scopes["scripts"][0].command[:3] == (sys.executable, "-m", "guardrail_suite")


@pytest.mark.unit
def test_scope_order_follows_default_then_alphabetical() -> None:
    registry = TaskRegistry(
        {
            "zeta": (Task("zeta", "one", ("true",)),),
            "docs": (Task("docs", "one", ("true",)),),
            "alpha": (Task("alpha", "one", ("true",)),),
            "app": (Task("app", "one", ("true",)),),
        }
    )

    assert registry.scope_names == ("app", "docs", "alpha", "zeta")


@pytest.mark.unit
def test_resolve_scopes_applies_aliases_commas_and_dedup() -> None:
    selection = _registry().resolve_scopes(["app,ideas", "APP", " docs "])

    assert selection.scopes == ("app", "issues", "docs")
    assert selection.unknown == ()


@pytest.mark.unit
def test_resolve_scopes_reports_unknown_names_once() -> None:
    selection = _registry().resolve_scopes(["app", "bogus", "bogus,nope"])

    assert selection.scopes == ("app",)
    assert selection.unknown == ("bogus", "nope")


@pytest.mark.unit
def test_resolve_scopes_defaults_to_every_scope() -> None:
    registry = _registry()

    assert registry.resolve_scopes(None).scopes == registry.scope_names


@pytest.mark.unit
def test_build_queue_preserves_scope_then_task_order() -> None:
    queue = _registry().build_queue(("docs", "app"))

    assert [task.key for task in queue] == ["docs:docs:check", "app:build", "app:test"]


@pytest.mark.unit
def test_duplicate_task_identity_is_rejected() -> None:
    with pytest.raises(DuplicateTaskError, match="app:build"):
        TaskRegistry(
            {
                "app": (
                    Task("app", "build", ("make",)),
                    Task("app", "build", ("make", "again")),
                )
            }
        )


@pytest.mark.unit
def test_task_scope_must_match_registration() -> None:
    with pytest.raises(ValueError, match="mismatched scope"):
        TaskRegistry({"app": (Task("docs", "check", ("true",)),)})


@pytest.mark.unit
def test_task_requires_command() -> None:
    with pytest.raises(ValueError, match="empty command"):
        Task("app", "build", ())


@pytest.mark.unit
def test_from_config_replaces_builtin_scope() -> None:
    registry = TaskRegistry.from_config(
        {
            "docs": [
                {"id": "lint", "command": "markdownlint 'docs/**/*.md'"},
                {"id": "links", "command": ["lychee", "docs"], "optional": True},
            ]
        },
        python=sys.executable,
    )

    tasks = registry.tasks_for("docs")
    assert [task.id for task in tasks] == ["lint", "links"]
    assert tasks[0].command == ("markdownlint", "docs/**/*.md")
    assert tasks[1].optional is True
    assert registry.tasks_for("app")


@pytest.mark.unit
def test_from_config_rejects_bad_command_type() -> None:
    with pytest.raises(ValueError, match="command must be"):
        TaskRegistry.from_config({"docs": [{"id": "lint", "command": 42}]})
