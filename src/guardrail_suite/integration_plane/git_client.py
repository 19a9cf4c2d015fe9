"""Read-only git queries used by the naming guards."""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from guardrail_suite.errors import ExecutionError, PreconditionFailed

_LOG_FIELD_SEPARATOR: Final[str] = "\x00"
_UNKNOWN_REVISION_MARKERS: Final[tuple[str, ...]] = (
    "unknown revision",
    "bad revision",
    "ambiguous argument",
    "invalid revision range",
)


class GitCommandError(ExecutionError):
    """Raised when a git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class GitRangeNotFound(ExecutionError):
    """Raised when a revision range does not resolve."""

    def __init__(self, revision_range: str) -> None:
        self.revision_range = revision_range
        super().__init__(f"Git range '{revision_range}' not found.")


@dataclass(frozen=True, slots=True)
class GitResult:
    """Normalized subprocess result for git queries."""

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True, slots=True)
class CommitSubject:
    hash: str
    subject: str

    def to_dict(self) -> dict[str, str]:
        return {"hash": self.hash, "subject": self.subject}


GitRunner = Callable[[Sequence[str], Path], GitResult]


class GitClient:
    """Thin wrapper around the git CLI; every call is side-effect free."""

    def __init__(
        self,
        repo_path: Path | str,
        *,
        runner: GitRunner | None = None,
        git_binary: str = "git",
    ) -> None:
        self.repo_path = Path(repo_path).expanduser().resolve()
        self._git_binary = git_binary
        self._runner = runner

    def current_branch(self) -> str:
        """Return the checked-out branch name, or ``HEAD`` when detached."""

        return self._run_git(("rev-parse", "--abbrev-ref", "HEAD")).stdout.strip()

    def upstream_ref(self) -> str | None:
        """Return the upstream tracking ref of the current branch, if configured."""

        result = self._run_git(
            ("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"), check=False
        )
        upstream = result.stdout.strip()
        if result.returncode != 0 or not upstream:
            return None
        return upstream

    def merge_base(self, left: str, right: str = "HEAD") -> str | None:
        result = self._run_git(("merge-base", left, right), check=False)
        merge_base = result.stdout.strip()
        if result.returncode != 0 or not merge_base:
            return None
        return merge_base

    def log_subjects(self, revision_range: str, *, max_count: int) -> list[CommitSubject]:
        """Return ``(hash, subject)`` pairs for ``revision_range``, newest first."""

        if max_count < 1:
            raise ValueError("max_count must be >= 1")
        result = self._run_git(
            (
                "log",
                f"--max-count={max_count}",
                "--format=%H%x00%s",
                revision_range,
                "--",
            ),
            check=False,
        )
        if result.returncode != 0:
            lowered = result.stderr.lower()
            if any(marker in lowered for marker in _UNKNOWN_REVISION_MARKERS):
                raise GitRangeNotFound(revision_range)
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        commits: list[CommitSubject] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            commit_hash, _, subject = line.partition(_LOG_FIELD_SEPARATOR)
            commits.append(CommitSubject(hash=commit_hash.strip(), subject=subject.strip()))
        return commits

    def _run_git(self, args: Sequence[str], *, check: bool = True) -> GitResult:
        command = (self._git_binary, *args)
        if self._runner is not None:
            result = self._runner(command, self.repo_path)
        else:
            result = self._run_subprocess(command)

        if check and result.returncode != 0:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def _run_subprocess(self, command: tuple[str, ...]) -> GitResult:
        if shutil.which(self._git_binary) is None:
            raise PreconditionFailed(f"git executable not found: {self._git_binary}")
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_CONFIG_NOSYSTEM", "1")

        completed = subprocess.run(
            command,
            cwd=self.repo_path,
            env=env,
            text=True,
            capture_output=True,
            check=False,
        )
        return GitResult(
            command=command,
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


__all__ = [
    "CommitSubject",
    "GitClient",
    "GitCommandError",
    "GitRangeNotFound",
    "GitResult",
    "GitRunner",
]
