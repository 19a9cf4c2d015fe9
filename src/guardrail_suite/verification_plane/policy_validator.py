"""Policy lint: discover automation scripts and apply every policy rule to each."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from fnmatch import fnmatch
from pathlib import Path

from guardrail_suite.constants import (
    DEPRECATION_MAX_AGE_DAYS,
    MAX_FUNCTION_LINES,
    MAX_SCRIPT_LINES,
    ExitCode,
)
from guardrail_suite.errors import UnsafePatternDetected, ValidationFailed
from guardrail_suite.observability.logging import generate_run_id
from guardrail_suite.verification_plane.policy_rules import (
    RuleContext,
    RuleId,
    ScriptSource,
    Severity,
    ValidationIssue,
    evaluate_script,
)

logger = logging.getLogger(__name__)

_TEST_FILE_PATTERNS = ("test_*.py", "*_test.py", "conftest.py")


@dataclass(frozen=True, slots=True)
class PolicyOptions:
    """Inputs for one policy-lint run."""

    scripts_dir: Path
    strict: bool = False
    filters: tuple[str, ...] = ()
    ignore_dirs: tuple[str, ...] = ("DEPRECATED",)
    include_deprecated: bool = False
    ignore_patterns: tuple[str, ...] = ()
    library_dirs: tuple[str, ...] = ("_lib",)
    max_script_lines: int = MAX_SCRIPT_LINES
    max_function_lines: int = MAX_FUNCTION_LINES
    deprecation_max_days: int = DEPRECATION_MAX_AGE_DAYS
    today: date | None = None

    def rule_context(self) -> RuleContext:
        return RuleContext(
            today=self.today or date.today(),
            max_script_lines=self.max_script_lines,
            max_function_lines=self.max_function_lines,
            deprecation_max_days=self.deprecation_max_days,
        )


@dataclass(frozen=True, slots=True)
class FileReport:
    """All findings for one script."""

    file: str
    issues: tuple[ValidationIssue, ...] = ()

    @property
    def errors(self) -> tuple[ValidationIssue, ...]:
        return tuple(item for item in self.issues if item.severity is Severity.ERROR)

    @property
    def warnings(self) -> tuple[ValidationIssue, ...]:
        return tuple(item for item in self.issues if item.severity is Severity.WARNING)

    @property
    def unsafe(self) -> bool:
        return any(item.rule is RuleId.DANGEROUS_PATTERN for item in self.errors)

    def to_dict(self) -> dict[str, object]:
        return {
            "file": self.file,
            "errors": [item.message for item in self.errors],
            "warnings": [item.message for item in self.warnings],
            "issues": [item.to_dict() for item in self.issues],
        }


@dataclass(frozen=True, slots=True)
class PolicyReport:
    """Aggregate policy-lint outcome."""

    run_id: str
    files: tuple[FileReport, ...]
    strict: bool = False
    duration_ms: int = 0
    scripts_dir: str = ""
    skipped: tuple[str, ...] = field(default_factory=tuple)

    @property
    def total_errors(self) -> int:
        return sum(len(item.errors) for item in self.files)

    @property
    def total_warnings(self) -> int:
        return sum(len(item.warnings) for item in self.files)

    @property
    def unsafe(self) -> bool:
        return any(item.unsafe for item in self.files)

    @property
    def exit_code(self) -> ExitCode:
        if self.unsafe:
            return ExitCode.UNSAFE_PATTERN
        if self.total_errors or (self.strict and self.total_warnings):
            return ExitCode.VALIDATION_FAILED
        return ExitCode.SUCCESS

    @property
    def status(self) -> str:
        return "passed" if self.exit_code is ExitCode.SUCCESS else "failed"

    def raise_for_status(self) -> None:
        """Raise the taxonomy error matching this report, if any."""

        if self.exit_code is ExitCode.SUCCESS:
            return
        failing = [item for item in self.files if item.errors or (self.strict and item.warnings)]
        issues = [issue for item in failing for issue in item.issues]
        if self.unsafe:
            raise UnsafePatternDetected(
                f"policy-lint: dangerous patterns found in "
                f"{sum(1 for item in self.files if item.unsafe)} file(s)",
                issues=issues,
            )
        raise ValidationFailed(
            f"policy-lint: {self.total_errors} error(s), {self.total_warnings} warning(s)"
            f"{' (strict)' if self.strict else ''} in {len(failing)} file(s)",
            issues=issues,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "script": "policy-lint",
            "status": self.status,
            "strict": self.strict,
            "scripts_dir": self.scripts_dir,
            "total_files": len(self.files),
            "total_errors": self.total_errors,
            "total_warnings": self.total_warnings,
            "duration_ms": self.duration_ms,
            "results": [item.to_dict() for item in self.files],
        }


def discover_scripts(options: PolicyOptions) -> tuple[list[Path], list[str]]:
    """Return ``(scripts_to_check, skipped_relative_paths)`` in sorted order."""

    root = options.scripts_dir
    if not root.is_dir():
        logger.warning("scripts directory not found", extra={"path": root.as_posix()})
        return [], []

    ignored_dirs = () if options.include_deprecated else options.ignore_dirs
    selected: list[Path] = []
    skipped: list[str] = []
    for path in sorted(root.rglob("*.py")):
        relative = path.relative_to(root).as_posix()
        parts = path.relative_to(root).parts
        if "__pycache__" in parts or path.name == "__init__.py":
            continue
        if any(fnmatch(path.name, pattern) for pattern in _TEST_FILE_PATTERNS):
            continue
        if any(part in ignored_dirs for part in parts[:-1]):
            skipped.append(relative)
            continue
        if any(_matches_ignore(relative, pattern) for pattern in options.ignore_patterns):
            skipped.append(relative)
            continue
        if options.filters and not any(token in relative for token in options.filters):
            continue
        selected.append(path)
    return selected, skipped


def validate_scripts(options: PolicyOptions, *, run_id: str | None = None) -> PolicyReport:
    """Run every policy rule over the discovered scripts."""

    started_ns = time.monotonic_ns()
    context = options.rule_context()
    scripts, skipped = discover_scripts(options)

    reports: list[FileReport] = []
    for path in scripts:
        relative = path.relative_to(options.scripts_dir).as_posix()
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            reports.append(
                FileReport(
                    file=relative,
                    issues=(
                        ValidationIssue(
                            severity=Severity.ERROR,
                            rule=RuleId.SYNTAX,
                            message=f"Unable to read script: {exc}",
                        ),
                    ),
                )
            )
            continue
        is_library = any(
            part in options.library_dirs for part in path.relative_to(options.scripts_dir).parts
        )
        source = ScriptSource.parse(relative, text, is_library=is_library)
        issues = evaluate_script(source, context)
        logger.debug(
            "script checked",
            extra={"file": relative, "issues": len(issues), "library": is_library},
        )
        reports.append(FileReport(file=relative, issues=issues))

    return PolicyReport(
        run_id=run_id or generate_run_id(),
        files=tuple(reports),
        strict=options.strict,
        duration_ms=(time.monotonic_ns() - started_ns) // 1_000_000,
        scripts_dir=options.scripts_dir.as_posix(),
        skipped=tuple(skipped),
    )


def render_policy_text(report: PolicyReport, *, verbose: bool = False) -> list[str]:
    lines: list[str] = []
    for item in report.files:
        if not item.issues:
            if verbose:
                lines.append(f"  OK    {item.file}")
            continue
        lines.append(f"  {'FAIL' if item.errors else 'WARN'}  {item.file}")
        for issue in item.issues:
            location = f":{issue.line}" if issue.line is not None else ""
            lines.append(
                f"      {issue.severity.value}{location} [{issue.rule.value}] {issue.message}"
            )
    lines.append(
        f"policy-lint: {len(report.files)} file(s), {report.total_errors} error(s), "
        f"{report.total_warnings} warning(s) -> {report.status}"
    )
    return lines


def split_csv(values: Sequence[str] | None) -> tuple[str, ...]:
    """Flatten repeated and comma-separated CLI values."""

    out: list[str] = []
    for raw in values or ():
        for part in raw.split(","):
            cleaned = part.strip()
            if cleaned and cleaned not in out:
                out.append(cleaned)
    return tuple(out)


def _matches_ignore(relative: str, pattern: str) -> bool:
    if pattern.endswith("/"):
        return relative.startswith(pattern)
    if pattern.endswith("/*"):
        return relative.startswith(pattern[:-1])
    return relative == pattern or fnmatch(relative, pattern)


__all__ = [
    "FileReport",
    "PolicyOptions",
    "PolicyReport",
    "discover_scripts",
    "render_policy_text",
    "split_csv",
    "validate_scripts",
]
