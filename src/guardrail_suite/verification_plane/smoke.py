"""Script smoke tests: each script must answer ``--help``; ops scripts also a JSON dry run."""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path
from typing import Final

from guardrail_suite.constants import DEFAULT_SMOKE_TIMEOUT_SECONDS, ExitCode
from guardrail_suite.errors import ValidationFailed
from guardrail_suite.observability.logging import generate_run_id
from guardrail_suite.sandbox.process_runner import CommandSpec, ProcessResult, ProcessRunner

logger = logging.getLogger(__name__)

HELP_PROBE: Final[tuple[str, ...]] = ("--help",)
DRY_RUN_PROBE: Final[tuple[str, ...]] = ("--dry-run", "--output", "json")
_SKIPPED_FILES: Final[tuple[str, ...]] = ("__init__.py", "test_*.py", "*_test.py", "conftest.py")


@dataclass(frozen=True, slots=True)
class SmokeOptions:
    scripts_dir: Path
    filters: tuple[str, ...] = ()
    timeout_seconds: float = DEFAULT_SMOKE_TIMEOUT_SECONDS
    dry_run_dirs: tuple[str, ...] = ("ops",)
    skip_dirs: tuple[str, ...] = ("_lib", "DEPRECATED")
    python: str = sys.executable
    cwd: Path | None = None


@dataclass(frozen=True, slots=True)
class SmokeProbe:
    """One invocation of a script with a fixed argument set."""

    name: str
    passed: bool
    exit_code: int
    error: str | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "passed": self.passed,
            "exit_code": self.exit_code,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True, slots=True)
class ScriptSmokeResult:
    file: str
    probes: tuple[SmokeProbe, ...]

    @property
    def passed(self) -> bool:
        return all(probe.passed for probe in self.probes)

    def to_dict(self) -> dict[str, object]:
        return {
            "file": self.file,
            "passed": self.passed,
            "tests": [probe.to_dict() for probe in self.probes],
        }


@dataclass(frozen=True, slots=True)
class SmokeReport:
    run_id: str
    results: tuple[ScriptSmokeResult, ...] = ()
    duration_ms: int = 0

    @property
    def total_tests(self) -> int:
        return sum(len(item.probes) for item in self.results)

    @property
    def failed_tests(self) -> int:
        return sum(1 for item in self.results for probe in item.probes if not probe.passed)

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.VALIDATION_FAILED if self.failed_tests else ExitCode.SUCCESS

    def raise_for_status(self) -> None:
        if not self.failed_tests:
            return
        failing = [item.to_dict() for item in self.results if not item.passed]
        raise ValidationFailed(
            f"script-smoke: {self.failed_tests} of {self.total_tests} probe(s) failed",
            issues=failing,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "script": "script-smoke",
            "status": "passed" if not self.failed_tests else "failed",
            "total_scripts": len(self.results),
            "total_tests": self.total_tests,
            "passed": self.total_tests - self.failed_tests,
            "failed": self.failed_tests,
            "duration_ms": self.duration_ms,
            "results": [item.to_dict() for item in self.results if not item.passed],
        }


def discover_smoke_targets(options: SmokeOptions) -> list[Path]:
    root = options.scripts_dir
    if not root.is_dir():
        logger.warning("scripts directory not found", extra={"path": root.as_posix()})
        return []

    lowered_filters = tuple(item.lower() for item in options.filters)
    targets: list[Path] = []
    for path in sorted(root.rglob("*.py")):
        parts = path.relative_to(root).parts
        if "__pycache__" in parts or any(part in options.skip_dirs for part in parts[:-1]):
            continue
        if any(fnmatch(path.name, pattern) for pattern in _SKIPPED_FILES):
            continue
        relative = path.relative_to(root).as_posix().lower()
        if lowered_filters and not any(token in relative for token in lowered_filters):
            continue
        targets.append(path)
    return targets


async def run_smoke(
    options: SmokeOptions,
    runner: ProcessRunner,
    *,
    run_id: str | None = None,
) -> SmokeReport:
    """Probe each discovered script in turn and collect the outcome."""

    started_ns = time.monotonic_ns()
    targets = discover_smoke_targets(options)
    logger.info("starting smoke tests", extra={"scripts": len(targets)})

    results: list[ScriptSmokeResult] = []
    for path in targets:
        relative = path.relative_to(options.scripts_dir).as_posix()
        probes = [await _probe(path, HELP_PROBE, options, runner, expect_json=False)]
        parts = path.relative_to(options.scripts_dir).parts
        if any(part in options.dry_run_dirs for part in parts):
            probes.append(await _probe(path, DRY_RUN_PROBE, options, runner, expect_json=True))
        result = ScriptSmokeResult(file=relative, probes=tuple(probes))
        logger.debug("script probed", extra={"file": relative, "passed": result.passed})
        results.append(result)

    return SmokeReport(
        run_id=run_id or generate_run_id(),
        results=tuple(results),
        duration_ms=(time.monotonic_ns() - started_ns) // 1_000_000,
    )


def render_smoke_text(report: SmokeReport, *, verbose: bool = False) -> list[str]:
    lines: list[str] = []
    for item in report.results:
        if item.passed and not verbose:
            continue
        lines.append(f"  {'OK  ' if item.passed else 'FAIL'}  {item.file}")
        for probe in item.probes:
            if not probe.passed:
                lines.append(f"      {probe.name}: {probe.error}")
    lines.append(
        f"script-smoke: {len(report.results)} script(s), {report.total_tests} test(s), "
        f"{report.failed_tests} failed"
    )
    return lines


def extract_json(output: str) -> object | None:
    """Return the last JSON document found in ``output``, tolerating log lines before it."""

    stripped = output.strip()
    if not stripped:
        return None
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass
    lines = stripped.splitlines()
    for index in range(len(lines) - 1, -1, -1):
        if not lines[index].lstrip().startswith(("{", "[")):
            continue
        try:
            return json.loads("\n".join(lines[index:]))
        except json.JSONDecodeError:
            continue
    return None


async def _probe(
    path: Path,
    args: tuple[str, ...],
    options: SmokeOptions,
    runner: ProcessRunner,
    *,
    expect_json: bool,
) -> SmokeProbe:
    spec = CommandSpec(
        argv=(options.python, path.as_posix(), *args),
        cwd=options.cwd.as_posix() if options.cwd is not None else None,
        timeout_seconds=options.timeout_seconds,
    )
    outcome: ProcessResult = await runner.run(spec)
    name = " ".join(args)

    error: str | None = None
    if outcome.error is not None:
        error = outcome.error
    elif outcome.exit_code != 0:
        error = f"Exited with code {outcome.exit_code}"
    elif expect_json and extract_json(outcome.output) is None:
        error = "Output is not valid JSON"

    return SmokeProbe(
        name=name,
        passed=error is None,
        exit_code=outcome.exit_code,
        error=error,
        duration_ms=outcome.duration_ms,
    )


__all__ = [
    "DRY_RUN_PROBE",
    "HELP_PROBE",
    "ScriptSmokeResult",
    "SmokeOptions",
    "SmokeProbe",
    "SmokeReport",
    "discover_smoke_targets",
    "extract_json",
    "render_smoke_text",
    "run_smoke",
]
