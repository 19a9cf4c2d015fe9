"""
guardrail-suite: naming guards

File: src/guardrail_suite/verification_plane/naming_guards.py

Purpose
- Validate branch names, commit headers and pull-request titles against the
  lifecycle naming conventions.

What should be included in this file
- One check function per guard returning a :class:`GuardResult`.
- Commit range resolution: explicit range, then ``from..to``, then the upstream
  merge-base, then the latest commit only.
- The fixed ``{"<check-name>": {...}}`` report envelope.

Functional requirements
- Protected branch names are valid and skipped regardless of pattern.
- Commit violations are returned in full, never truncated to the first hit.
- No open pull request for the branch is not a violation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from guardrail_suite.constants import DEFAULT_COMMIT_LIMIT, PROTECTED_BRANCHES, ExitCode
from guardrail_suite.errors import ExecutionError, NamingViolation

if TYPE_CHECKING:
    from guardrail_suite.config.lifecycle import LifecycleConfig
    from guardrail_suite.integration_plane.git_client import CommitSubject, GitClient
    from guardrail_suite.integration_plane.hosting import HostingClient, PullRequest

logger = logging.getLogger(__name__)


class GuardName(StrEnum):
    BRANCH = "branch-guard"
    COMMIT = "commit-guard"
    PR_TITLE = "pr-title-guard"


@dataclass(frozen=True, slots=True)
class GuardResult:
    """Outcome of one naming guard; ``payload`` is the report body."""

    check: GuardName
    valid: bool
    message: str
    payload: dict[str, object] = field(default_factory=dict)

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.SUCCESS if self.valid else ExitCode.NAMING_VIOLATION

    def to_dict(self) -> dict[str, object]:
        return {"valid": self.valid, "message": self.message, **self.payload}

    def envelope(self) -> dict[str, object]:
        return {self.check.value: self.to_dict()}

    def raise_for_status(self) -> None:
        if self.valid:
            return
        issues = self.payload.get("violations")
        raise NamingViolation(
            f"{self.check.value}: {self.message}",
            issues=issues if isinstance(issues, list) else (),
        )


@dataclass(frozen=True, slots=True)
class CommitRange:
    """Resolved revision range; ``source`` records how it was chosen."""

    spec: str
    source: str
    max_count: int


def check_branch(
    lifecycle: LifecycleConfig,
    *,
    branch: str | None = None,
    git: GitClient | None = None,
) -> GuardResult:
    """Validate ``branch`` (or the current branch) against ``type/ID-slug``."""

    name = _resolve_branch(branch, git)
    pattern = lifecycle.branch_pattern.pattern
    logger.debug("validating branch name", extra={"branch": name, "pattern": pattern})

    if name in PROTECTED_BRANCHES:
        return GuardResult(
            check=GuardName.BRANCH,
            valid=True,
            message=f"branch '{name}' is protected; naming check skipped",
            payload={"branch": name, "skipped": True, "reason": "protected branch"},
        )

    match = lifecycle.branch_pattern.match(name)
    if match is None:
        return GuardResult(
            check=GuardName.BRANCH,
            valid=False,
            message=f"branch '{name}' does not match type/ID-slug",
            payload={
                "branch": name,
                "skipped": False,
                "pattern": pattern,
                "error": f"Branch name '{name}' does not match required format: type/ID-slug",
                "examples": list(lifecycle.branch_examples),
            },
        )

    groups = match.groupdict()
    return GuardResult(
        check=GuardName.BRANCH,
        valid=True,
        message=f"branch '{name}' is valid",
        payload={
            "branch": name,
            "skipped": False,
            "pattern": pattern,
            "type": groups.get("type"),
            "id": groups.get("id"),
            "slug": groups.get("slug"),
        },
    )


def resolve_commit_range(
    git: GitClient,
    *,
    revision_range: str | None = None,
    from_ref: str | None = None,
    to_ref: str | None = None,
    max_count: int = DEFAULT_COMMIT_LIMIT,
) -> CommitRange:
    if max_count < 1:
        raise ExecutionError("--max must be a positive integer")
    if revision_range:
        return CommitRange(spec=revision_range, source="range", max_count=max_count)
    if to_ref and not from_ref:
        raise ExecutionError("--to requires --from")
    if from_ref:
        return CommitRange(
            spec=f"{from_ref}..{to_ref or 'HEAD'}", source="from-to", max_count=max_count
        )

    upstream = git.upstream_ref()
    if upstream is not None:
        base = git.merge_base(upstream)
        if base is not None:
            return CommitRange(spec=f"{base}..HEAD", source=upstream, max_count=max_count)
    return CommitRange(spec="HEAD", source="fallback", max_count=1)


def check_commits(
    lifecycle: LifecycleConfig,
    git: GitClient,
    *,
    revision_range: str | None = None,
    from_ref: str | None = None,
    to_ref: str | None = None,
    max_count: int = DEFAULT_COMMIT_LIMIT,
) -> GuardResult:
    """Validate every commit subject in the resolved range."""

    resolved = resolve_commit_range(
        git,
        revision_range=revision_range,
        from_ref=from_ref,
        to_ref=to_ref,
        max_count=max_count,
    )
    logger.info(
        "validating commit headers",
        extra={"range": resolved.spec, "source": resolved.source, "max": resolved.max_count},
    )
    commits = git.log_subjects(resolved.spec, max_count=resolved.max_count)
    violations: list[CommitSubject] = [
        commit for commit in commits if lifecycle.commit_pattern.match(commit.subject) is None
    ]

    payload: dict[str, object] = {
        "range": resolved.spec,
        "range_source": resolved.source,
        "commits": len(commits),
        "pattern": lifecycle.commit_pattern.pattern,
        "violations": [item.to_dict() for item in violations],
    }
    if violations:
        return GuardResult(
            check=GuardName.COMMIT,
            valid=False,
            message=f"{len(violations)} of {len(commits)} commit header(s) invalid",
            payload=payload,
        )
    return GuardResult(
        check=GuardName.COMMIT,
        valid=True,
        message=f"{len(commits)} commit header(s) valid",
        payload=payload,
    )


def check_pr_title(
    lifecycle: LifecycleConfig,
    hosting: HostingClient,
    *,
    branch: str | None = None,
    pr_number: int | None = None,
    git: GitClient | None = None,
) -> GuardResult:
    """Validate the ``[ID] Title`` form of the branch's open pull request.

    The bracketed id must equal the id encoded in the branch name.
    """

    hosting.ensure_authenticated()

    pull_request: PullRequest | None
    if pr_number is not None:
        pull_request = hosting.get_pull_request(pr_number)
        name = branch or pull_request.head_ref or _resolve_branch(None, git)
    else:
        name = _resolve_branch(branch, git)
        pull_request = hosting.find_open_pull_request(name)

    if pull_request is None:
        return GuardResult(
            check=GuardName.PR_TITLE,
            valid=True,
            message=f"no open pull request for branch '{name}'",
            payload={"branch": name, "pr": None, "skipped": True},
        )

    expected_id = lifecycle.extract_branch_id(name)
    base: dict[str, object] = {
        "branch": name,
        "pr": pull_request.number,
        "title": pull_request.title,
        "expected_id": expected_id,
        "skipped": False,
    }
    match = lifecycle.pr_title_pattern.match(pull_request.title)
    if match is None:
        return _pr_violation(base, f"title must start with [ID]: {pull_request.title!r}")

    groups = match.groupdict()
    title_id = (groups.get("id") or "").strip()
    text = (groups.get("text") or "").strip()
    base["id"] = title_id
    if expected_id is None:
        return _pr_violation(base, f"cannot derive artifact id from branch '{name}'")
    if title_id != expected_id:
        return _pr_violation(base, f"title id [{title_id}] does not match branch id {expected_id}")
    if not text:
        return _pr_violation(base, "title text after [ID] is empty")
    return GuardResult(
        check=GuardName.PR_TITLE,
        valid=True,
        message=f"PR #{pull_request.number} title is valid",
        payload=base,
    )


def _pr_violation(payload: dict[str, object], error: str) -> GuardResult:
    return GuardResult(
        check=GuardName.PR_TITLE,
        valid=False,
        message=error,
        payload={**payload, "error": error},
    )


def _resolve_branch(branch: str | None, git: GitClient | None) -> str:
    if branch:
        return branch.strip()
    if git is None:
        raise ExecutionError("no branch given and no git repository to read it from")
    return git.current_branch()


__all__ = [
    "CommitRange",
    "GuardName",
    "GuardResult",
    "check_branch",
    "check_commits",
    "check_pr_title",
    "resolve_commit_range",
]
