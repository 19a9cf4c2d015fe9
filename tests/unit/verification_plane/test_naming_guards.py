"""
guardrail-suite: unit tests for naming guards

File: tests/unit/verification_plane/test_naming_guards.py

Purpose
- Validate branch, commit-header and pull-request title guards with scripted
  git and gh runners.

What this test file should cover
- Protected branches are valid and skipped.
- Commit range resolution order and every violation reported.
- Pull-request title id must match the branch id.
- The fixed report envelope.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import pytest

from guardrail_suite.config.lifecycle import default_lifecycle_config
from guardrail_suite.constants import ExitCode
from guardrail_suite.errors import ExecutionError, NamingViolation, PreconditionFailed
from guardrail_suite.integration_plane.git_client import GitClient, GitResult
from guardrail_suite.integration_plane.hosting import HostingClient, HostingResult
from guardrail_suite.verification_plane.naming_guards import (
    GuardName,
    check_branch,
    check_commits,
    check_pr_title,
    resolve_commit_range,
)

Response = tuple[int, str, str]


class ScriptedGit:
    """Git runner answering from a table keyed by the arguments after ``git``."""

    def __init__(self, responses: dict[tuple[str, ...], Response]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, ...]] = []

    def __call__(self, command: Sequence[str], repo_path: Path) -> GitResult:
        args = tuple(command[1:])
        self.calls.append(args)
        code, stdout, stderr = self.responses.get(args, (128, "", f"unscripted: {args}"))
        return GitResult(command=tuple(command), returncode=code, stdout=stdout, stderr=stderr)


class ScriptedGh:
    def __init__(self, responses: dict[tuple[str, ...], Response]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, ...]] = []

    def __call__(self, command: Sequence[str], repo_path: Path) -> HostingResult:
        args = tuple(command[1:])
        self.calls.append(args)
        code, stdout, stderr = self.responses.get(args, (1, "", f"unscripted: {args}"))
        return HostingResult(command=tuple(command), returncode=code, stdout=stdout, stderr=stderr)


def _log_args(spec: str, max_count: int = 50) -> tuple[str, ...]:
    return ("log", f"--max-count={max_count}", "--format=%H%x00%s", spec, "--")


def _log_output(*entries: tuple[str, str]) -> str:
    return "".join(f"{commit_hash}\x00{subject}\n" for commit_hash, subject in entries)


def _git(tmp_path: Path, responses: dict[tuple[str, ...], Response]) -> GitClient:
    return GitClient(tmp_path, runner=ScriptedGit(responses))


def _pr_list_args(branch: str) -> tuple[str, ...]:
    return (
        "pr",
        "list",
        "--state",
        "open",
        "--head",
        branch,
        "--json",
        "number,title,headRefName,state,url",
        "--limit",
        "1",
    )


def _pr_payload(number: int, title: str, head: str) -> str:
    return json.dumps(
        {"number": number, "title": title, "headRefName": head, "state": "OPEN", "url": ""}
    )


AUTH_OK: dict[tuple[str, ...], Response] = {("auth", "status"): (0, "Logged in", "")}


@pytest.mark.unit
@pytest.mark.parametrize("branch", ["main", "master", "develop", "HEAD"])
def test_protected_branches_are_valid_and_skipped(branch: str) -> None:
    result = check_branch(default_lifecycle_config(), branch=branch)

    assert result.valid is True
    assert result.exit_code is ExitCode.SUCCESS
    assert result.envelope() == {
        "branch-guard": {
            "valid": True,
            "message": f"branch '{branch}' is protected; naming check skipped",
            "branch": branch,
            "skipped": True,
            "reason": "protected branch",
        }
    }


@pytest.mark.unit
def test_conforming_branch_reports_parts() -> None:
    result = check_branch(default_lifecycle_config(), branch="feat/ARCH-123-add-guardrails")

    assert result.valid is True
    assert result.payload["type"] == "feat"
    assert result.payload["id"] == "ARCH-123"
    assert result.payload["slug"] == "add-guardrails"


@pytest.mark.unit
@pytest.mark.parametrize(
    "branch",
    ["feature/ARCH-1-x", "feat/arch-1-x", "feat/ARCH-1", "feat/ARCH-1-Bad_Slug", "random"],
)
def test_nonconforming_branch_is_a_naming_violation(branch: str) -> None:
    lifecycle = default_lifecycle_config()

    result = check_branch(lifecycle, branch=branch)

    assert result.valid is False
    assert result.exit_code is ExitCode.NAMING_VIOLATION
    assert result.payload["error"] == (
        f"Branch name '{branch}' does not match required format: type/ID-slug"
    )
    assert result.payload["examples"] == list(lifecycle.branch_examples)
    with pytest.raises(NamingViolation):
        result.raise_for_status()


@pytest.mark.unit
def test_branch_defaults_to_current_git_branch(tmp_path: Path) -> None:
    git = _git(
        tmp_path, {("rev-parse", "--abbrev-ref", "HEAD"): (0, "fix/U-456-button-state\n", "")}
    )

    result = check_branch(default_lifecycle_config(), git=git)

    assert result.valid is True
    assert result.payload["branch"] == "fix/U-456-button-state"


@pytest.mark.unit
def test_branch_without_source_is_an_execution_error() -> None:
    with pytest.raises(ExecutionError, match="no branch given"):
        check_branch(default_lifecycle_config())


@pytest.mark.unit
def test_commit_guard_reports_every_violation(tmp_path: Path) -> None:
    git = _git(
        tmp_path,
        {
            _log_args("HEAD~3..HEAD"): (
                0,
                _log_output(
                    ("c3", "[ARCH-123-add-guardrails] add suite runner"),
                    ("c2", "fix bug"),
                    ("c1", "[U-7-x] tweak"),
                ),
                "",
            )
        },
    )

    result = check_commits(default_lifecycle_config(), git, revision_range="HEAD~3..HEAD")

    assert result.valid is False
    assert result.exit_code is ExitCode.NAMING_VIOLATION
    assert result.payload["commits"] == 3
    assert result.payload["range_source"] == "range"
    assert result.payload["violations"] == [{"hash": "c2", "subject": "fix bug"}]
    with pytest.raises(NamingViolation) as exc_info:
        result.raise_for_status()
    assert exc_info.value.exit_code is ExitCode.NAMING_VIOLATION
    assert exc_info.value.issues == ({"hash": "c2", "subject": "fix bug"},)


@pytest.mark.unit
def test_commit_guard_passes_when_all_headers_conform(tmp_path: Path) -> None:
    git = _git(
        tmp_path,
        {_log_args("v1..HEAD", 5): (0, _log_output(("a1", "[OPS-9-ship-it] release")), "")},
    )

    result = check_commits(default_lifecycle_config(), git, from_ref="v1", max_count=5)

    assert result.valid is True
    assert result.message == "1 commit header(s) valid"
    assert result.envelope()["commit-guard"]["range"] == "v1..HEAD"


@pytest.mark.unit
def test_range_resolution_prefers_explicit_range(tmp_path: Path) -> None:
    git = _git(tmp_path, {})

    resolved = resolve_commit_range(git, revision_range="a..b", from_ref="x", to_ref="y")

    assert (resolved.spec, resolved.source) == ("a..b", "range")


@pytest.mark.unit
def test_range_resolution_uses_from_to(tmp_path: Path) -> None:
    resolved = resolve_commit_range(_git(tmp_path, {}), from_ref="v1", to_ref="v2")

    assert (resolved.spec, resolved.source) == ("v1..v2", "from-to")


@pytest.mark.unit
def test_range_resolution_rejects_to_without_from_and_bad_max(tmp_path: Path) -> None:
    git = _git(tmp_path, {})

    with pytest.raises(ExecutionError, match="--to requires --from"):
        resolve_commit_range(git, to_ref="v2")
    with pytest.raises(ExecutionError, match="positive integer"):
        resolve_commit_range(git, max_count=0)


@pytest.mark.unit
def test_range_resolution_uses_upstream_merge_base(tmp_path: Path) -> None:
    git = _git(
        tmp_path,
        {
            ("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"): (
                0,
                "origin/feat/ARCH-1-x\n",
                "",
            ),
            ("merge-base", "origin/feat/ARCH-1-x", "HEAD"): (0, "abc123\n", ""),
        },
    )

    resolved = resolve_commit_range(git)

    assert resolved.spec == "abc123..HEAD"
    assert resolved.source == "origin/feat/ARCH-1-x"
    assert resolved.max_count == 50


@pytest.mark.unit
def test_range_resolution_falls_back_to_latest_commit(tmp_path: Path) -> None:
    git = _git(
        tmp_path,
        {
            ("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"): (
                128,
                "",
                "fatal: no upstream configured",
            )
        },
    )

    resolved = resolve_commit_range(git, max_count=20)

    assert (resolved.spec, resolved.source, resolved.max_count) == ("HEAD", "fallback", 1)


@pytest.mark.unit
def test_pr_title_matching_branch_id_is_valid(tmp_path: Path) -> None:
    branch = "feat/ARCH-123-add-guardrails"
    gh = ScriptedGh(
        {
            **AUTH_OK,
            _pr_list_args(branch): (
                0,
                "[" + _pr_payload(42, "[ARCH-123] Add guardrails", branch) + "]",
                "",
            ),
        }
    )

    result = check_pr_title(
        default_lifecycle_config(), HostingClient(tmp_path, runner=gh), branch=branch
    )

    assert result.valid is True
    assert result.check is GuardName.PR_TITLE
    assert result.payload["pr"] == 42
    assert result.payload["id"] == "ARCH-123"
    assert gh.calls[0] == ("auth", "status")


@pytest.mark.unit
@pytest.mark.parametrize(
    ("title", "error"),
    [
        ("Add guardrails", "title must start with [ID]: 'Add guardrails'"),
        ("[ARCH-999] Add guardrails", "title id [ARCH-999] does not match branch id ARCH-123"),
        ("[ARCH-123]   ", "title text after [ID] is empty"),
    ],
)
def test_pr_title_violations(tmp_path: Path, title: str, error: str) -> None:
    branch = "feat/ARCH-123-add-guardrails"
    view_args = ("pr", "view", "7", "--json", "number,title,headRefName,state,url")
    gh = ScriptedGh({**AUTH_OK, view_args: (0, _pr_payload(7, title, branch), "")})

    result = check_pr_title(
        default_lifecycle_config(), HostingClient(tmp_path, runner=gh), pr_number=7
    )

    assert result.valid is False
    assert result.exit_code is ExitCode.NAMING_VIOLATION
    assert result.payload["error"] == error
    assert result.payload["branch"] == branch


@pytest.mark.unit
def test_no_open_pull_request_is_valid_and_skipped(tmp_path: Path) -> None:
    branch = "fix/U-1-x"
    gh = ScriptedGh({**AUTH_OK, _pr_list_args(branch): (0, "[]", "")})

    result = check_pr_title(
        default_lifecycle_config(), HostingClient(tmp_path, runner=gh), branch=branch
    )

    assert result.valid is True
    assert result.payload == {"branch": branch, "pr": None, "skipped": True}


@pytest.mark.unit
def test_pr_title_requires_authenticated_cli(tmp_path: Path) -> None:
    gh = ScriptedGh({("auth", "status"): (1, "", "You are not logged into any GitHub hosts.")})

    with pytest.raises(PreconditionFailed) as exc_info:
        check_pr_title(
            default_lifecycle_config(), HostingClient(tmp_path, runner=gh), branch="fix/U-1-x"
        )

    assert exc_info.value.exit_code is ExitCode.PRECONDITION_FAILED
    assert gh.calls == [("auth", "status")]
