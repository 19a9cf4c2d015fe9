"""
guardrail-suite: test suite for the read-only git client.

File: tests/unit/integration_plane/test_git_client.py

Purpose
- Validate GitClient queries over local temporary repositories and scripted runners.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

import pytest

from guardrail_suite.errors import ExecutionError
from guardrail_suite.integration_plane.git_client import (
    GitClient,
    GitCommandError,
    GitRangeNotFound,
    GitResult,
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def run_git(cwd: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=os.environ.copy(),
        text=True,
        capture_output=True,
        check=False,
    )
    if completed.returncode != 0:
        raise AssertionError(f"git {' '.join(args)} failed:\n{completed.stderr}")
    return completed.stdout


@pytest.fixture
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Guardrail Tests")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tests@example.invalid")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Guardrail Tests")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tests@example.invalid")


def init_repo(tmp_path: Path, *subjects: str) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    run_git(repo, "init", "--quiet", "--initial-branch=main")
    for index, subject in enumerate(subjects):
        (repo / f"file{index}.txt").write_text(f"{index}\n", encoding="utf-8")
        run_git(repo, "add", "--all")
        run_git(repo, "commit", "--quiet", "-m", subject)
    return repo


@requires_git
@pytest.mark.integration
@pytest.mark.usefixtures("isolated_git_env")
def test_log_subjects_newest_first(tmp_path: Path) -> None:
    repo = init_repo(tmp_path, "[A-1-one] first", "fix bug", "[A-1-three] third")
    client = GitClient(repo)

    commits = client.log_subjects("HEAD~2..HEAD", max_count=50)

    assert [commit.subject for commit in commits] == ["[A-1-three] third", "fix bug"]
    assert all(len(commit.hash) == 40 for commit in commits)


@requires_git
@pytest.mark.integration
@pytest.mark.usefixtures("isolated_git_env")
def test_current_branch_and_missing_upstream(tmp_path: Path) -> None:
    repo = init_repo(tmp_path, "[A-1-one] first")
    run_git(repo, "checkout", "--quiet", "-b", "feat/A-1-one")
    client = GitClient(repo)

    assert client.current_branch() == "feat/A-1-one"
    assert client.upstream_ref() is None
    assert client.merge_base("main") == run_git(repo, "rev-parse", "HEAD").strip()


@requires_git
@pytest.mark.integration
@pytest.mark.usefixtures("isolated_git_env")
def test_unknown_range_raises_range_not_found(tmp_path: Path) -> None:
    client = GitClient(init_repo(tmp_path, "[A-1-one] first"))

    with pytest.raises(GitRangeNotFound, match="Git range 'nope..HEAD' not found."):
        client.log_subjects("nope..HEAD", max_count=5)


def _scripted(code: int, stdout: str = "", stderr: str = ""):
    calls: list[tuple[str, ...]] = []

    def runner(command: Sequence[str], repo_path: Path) -> GitResult:
        calls.append(tuple(command))
        return GitResult(command=tuple(command), returncode=code, stdout=stdout, stderr=stderr)

    return runner, calls


@pytest.mark.unit
def test_log_parsing_skips_blank_lines(tmp_path: Path) -> None:
    runner, calls = _scripted(0, "abc\x00[A-1-x] one\n\ndef\x00two words \n")
    client = GitClient(tmp_path, runner=runner)

    commits = client.log_subjects("main..HEAD", max_count=3)

    assert [commit.to_dict() for commit in commits] == [
        {"hash": "abc", "subject": "[A-1-x] one"},
        {"hash": "def", "subject": "two words"},
    ]
    assert calls == [("git", "log", "--max-count=3", "--format=%H%x00%s", "main..HEAD", "--")]


@pytest.mark.unit
def test_other_log_failures_raise_command_error(tmp_path: Path) -> None:
    runner, _ = _scripted(128, stderr="fatal: not a git repository")
    client = GitClient(tmp_path, runner=runner)

    with pytest.raises(GitCommandError) as exc_info:
        client.log_subjects("HEAD", max_count=1)

    assert isinstance(exc_info.value, ExecutionError)
    assert exc_info.value.returncode == 128
    assert "not a git repository" in str(exc_info.value)


@pytest.mark.unit
def test_checked_queries_raise_on_failure(tmp_path: Path) -> None:
    runner, _ = _scripted(128, stderr="fatal: bad HEAD")
    client = GitClient(tmp_path, runner=runner)

    with pytest.raises(GitCommandError, match="bad HEAD"):
        client.current_branch()
    assert client.upstream_ref() is None
    assert client.merge_base("origin/main") is None


@pytest.mark.unit
def test_log_subjects_rejects_non_positive_limit(tmp_path: Path) -> None:
    runner, calls = _scripted(0)

    with pytest.raises(ValueError, match="max_count"):
        GitClient(tmp_path, runner=runner).log_subjects("HEAD", max_count=0)
    assert calls == []
