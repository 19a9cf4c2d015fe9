"""
guardrail-suite: in-process CLI routing tests

File: tests/unit/ui/test_cli.py

Purpose
- Drive ``run_cli`` end to end against temporary repositories.

What this test file should cover
- Report envelopes and exit codes for the naming guards.
- policy-lint aggregate exit codes (0, 11, 13).
- Suite listing, dry runs and real runs through configured scopes.
- drift-check against a snapshot status source.
- Config errors mapping to exit code 2.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from guardrail_suite.constants import ExitCode
from guardrail_suite.ui.cli import build_parser, build_tool_parser, run_cli

GOOD_SCRIPT = '''"""Rotate keys.

@since 2026-01-01
@version 1.0.0
"""

import argparse


def main() -> int:
    parser = argparse.ArgumentParser()
    for flag in ("--dry-run", "--yes", "--output", "--log-level", "--cwd"):
        parser.add_argument(flag)
    parser.parse_args()
    return 0
'''


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _json_stdout(capsys: pytest.CaptureFixture[str]) -> dict[str, object]:
    out = capsys.readouterr().out.strip()
    return json.loads(out.splitlines()[-1])


def _suite_config(root: Path) -> None:
    python = json.dumps(sys.executable)
    _write(
        root / "guardrails.toml",
        "[[scopes.demo]]\n"
        'id = "hello"\n'
        f"command = [{python}, \"-c\", \"print('hello')\"]\n"
        "\n"
        "[[scopes.demo]]\n"
        'id = "broken"\n'
        f'command = [{python}, "-c", "raise SystemExit(4)"]\n'
        "optional = true\n",
    )


@pytest.mark.unit
def test_branch_guard_report_envelope_for_protected_branch(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(["branch-guard", "--branch", "main", "--report", "--cwd", str(tmp_path)])

    assert code == 0
    assert _json_stdout(capsys) == {
        "branch-guard": {
            "valid": True,
            "message": "branch 'main' is protected; naming check skipped",
            "branch": "main",
            "skipped": True,
            "reason": "protected branch",
        }
    }


@pytest.mark.unit
def test_branch_guard_violation_exits_12(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(["branch-guard", "--branch", "fix bug", "--cwd", str(tmp_path), "--no-color"])

    assert code == ExitCode.NAMING_VIOLATION
    out = capsys.readouterr().out
    assert "FAIL  branch-guard: branch 'fix bug' does not match type/ID-slug" in out


@pytest.mark.unit
def test_failed_check_is_logged_through_the_error_taxonomy(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(
        ["branch-guard", "--branch", "fix bug", "--cwd", str(tmp_path), "--log-level", "info"]
    )

    assert code == ExitCode.NAMING_VIOLATION
    err = capsys.readouterr().err
    assert "check failed" in err
    assert "does not match type/ID-slug" in err


@pytest.mark.unit
def test_guard_errors_under_report_emit_failure_envelope(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(["commit-guard", "--to", "HEAD", "--report", "--cwd", str(tmp_path)])

    assert code == ExitCode.EXECUTION_ERROR
    assert _json_stdout(capsys) == {
        "commit-guard": {"valid": False, "error": "--to requires --from"}
    }


@pytest.mark.unit
@pytest.mark.parametrize(
    ("script", "expected"),
    [
        (GOOD_SCRIPT, ExitCode.SUCCESS),
        (GOOD_SCRIPT.replace("@version 1.0.0\n", ""), ExitCode.VALIDATION_FAILED),
        (GOOD_SCRIPT + "\nresult = eval('1 + 1')\n", ExitCode.UNSAFE_PATTERN),
    ],
)
def test_policy_lint_exit_codes(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    script: str,
    expected: ExitCode,
) -> None:
    _write(tmp_path / "tools" / "ops" / "rotate.py", script)

    code = run_cli(
        ["policy-lint", "--scripts-dir", "tools", "--report", "--cwd", str(tmp_path)]
    )

    assert code == expected
    envelope = _json_stdout(capsys)
    report = envelope["policy-lint"]
    assert isinstance(report, dict)
    assert report["total_files"] == 1
    assert report["status"] == ("passed" if expected is ExitCode.SUCCESS else "failed")


@pytest.mark.unit
def test_suite_list_outputs_configured_scopes(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _suite_config(tmp_path)

    code = run_cli(["suite", "--list", "--output", "json", "--cwd", str(tmp_path)])

    assert code == 0
    scopes = _json_stdout(capsys)["scopes"]
    assert isinstance(scopes, dict)
    assert [task["id"] for task in scopes["demo"]] == ["hello", "broken"]
    assert "app" in scopes


@pytest.mark.unit
def test_suite_dry_run_plans_without_executing(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _suite_config(tmp_path)

    code = run_cli(["suite", "--scope", "demo", "--dry-run", "--cwd", str(tmp_path)])

    assert code == 0
    out = capsys.readouterr().out
    assert "guardrails (dry run): 2 task(s) planned" in out
    assert "demo:hello" in out


@pytest.mark.integration
def test_suite_runs_configured_scope(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _suite_config(tmp_path)

    code = run_cli(
        ["suite", "--scope", "demo", "--sequential", "--output", "json", "--cwd", str(tmp_path)]
    )

    assert code == 0
    payload = _json_stdout(capsys)
    assert payload["ok"] is True
    results = payload["results"]
    assert isinstance(results, list)
    assert [(item["id"], item["status"]) for item in results] == [
        ("hello", "passed"),
        ("broken", "skipped"),
    ]
    assert results[0]["output"].strip() == "hello"


@pytest.mark.unit
def test_drift_check_with_snapshot(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _write(tmp_path / "ideas" / "ARCH-1-cache.md", "# Cache\n\nStatus: Draft\n")
    _write(tmp_path / "ideas" / "ARCH-2-queue.md", "# Queue\n\nStatus: Merged\n")
    _write(tmp_path / "status.yaml", "ARCH-1: Draft\nARCH-2: In Review\n")

    code = run_cli(
        ["drift-check", "--snapshot", "status.yaml", "--output", "json", "--cwd", str(tmp_path)]
    )

    assert code == ExitCode.VALIDATION_FAILED
    payload = _json_stdout(capsys)
    assert payload["scanned"] == 2
    violations = payload["violations"]
    assert isinstance(violations, list)
    assert [item["id"] for item in violations] == ["ARCH-2"]


@pytest.mark.unit
def test_config_errors_exit_2(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _write(tmp_path / "guardrails.toml", "[suite]\nconcurrency = 0\n")

    code = run_cli(["config", "--cwd", str(tmp_path)])

    assert code == ExitCode.CONFIG_ERROR
    assert "suite.concurrency" in capsys.readouterr().err


@pytest.mark.unit
def test_missing_cwd_is_a_config_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = run_cli(["config", "--cwd", str(tmp_path / "absent")])

    assert code == ExitCode.CONFIG_ERROR
    assert "--cwd is not a directory" in capsys.readouterr().err


@pytest.mark.unit
def test_config_command_prints_redacted_json(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(["config", "--output", "json", "--cwd", str(tmp_path)])

    assert code == 0
    payload = _json_stdout(capsys)
    assert payload["command"] == "config"
    config = payload["config"]
    assert isinstance(config, dict)
    assert config["suite"]["concurrency"] == 3


@pytest.mark.unit
def test_parsers_share_the_common_contract_flags() -> None:
    parser = build_parser()
    namespace = parser.parse_args(["suite", "--scope", "app,pr", "--concurrency", "2"])
    assert namespace.command == "suite"
    assert namespace.scope == ["app,pr"]
    assert namespace.concurrency == 2

    tool = build_tool_parser("policy-lint")
    parsed = tool.parse_args(["--dry-run", "--yes", "--output", "json", "--log-level", "debug"])
    assert parsed.command == "policy-lint"
    assert parsed.output == "json"

    with pytest.raises(KeyError):
        build_tool_parser("deploy")
    with pytest.raises(SystemExit):
        parser.parse_args(["suite", "--concurrency", "0"])
