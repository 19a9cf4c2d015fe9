"""
guardrail-suite: lifecycle drift detector

File: src/guardrail_suite/verification_plane/drift.py

Purpose
- Compare each artifact's locally declared lifecycle status with the status
  tracked on the project board (or an offline snapshot of it).

What should be included in this file
- Local status extraction from YAML front matter or a ``Status:`` line.
- Pluggable external status sources (``gh`` project items, snapshot file).
- Per-artifact findings, aggregate report and text rendering.

Functional requirements
- Any status outside the seven-state vocabulary is flagged, even when both
  sides agree on it.
- A mismatch between local and external status is flagged.
- A missing local status line is a warning only.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

import yaml

from guardrail_suite.config.lifecycle import BRANCH_ID_FALLBACK, LifecycleConfig
from guardrail_suite.constants import ExitCode
from guardrail_suite.errors import ExecutionError, PreconditionFailed, ValidationFailed
from guardrail_suite.integration_plane.hosting import HostingClient
from guardrail_suite.observability.logging import generate_run_id

logger = logging.getLogger(__name__)

_FRONT_MATTER: Final[re.Pattern[str]] = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.S)
_STATUS_LINE: Final[re.Pattern[str]] = re.compile(
    r"^\**Status(?::\**|\**:)\s*(.+?)\s*$", re.I | re.M
)


@runtime_checkable
class StatusSource(Protocol):
    """Provides externally tracked statuses keyed by artifact id."""

    name: str

    def statuses(self) -> Mapping[str, str]: ...


@dataclass(slots=True)
class GhProjectStatusSource:
    """Reads item statuses from a project board through the ``gh`` CLI."""

    client: HostingClient
    project_number: int
    owner: str = "@me"
    status_field: str = "status"
    id_field: str = "artifact id"
    name: str = "gh-project"

    def statuses(self) -> Mapping[str, str]:
        if self.project_number < 1:
            raise PreconditionFailed(
                "hosting.project_number is not configured; set it or pass --snapshot"
            )
        return self.client.project_statuses(
            self.project_number,
            owner=self.owner,
            status_field=self.status_field,
            id_field=self.id_field,
        )


@dataclass(slots=True)
class SnapshotStatusSource:
    """Reads an offline ``id -> status`` mapping from a YAML or JSON file."""

    path: Path
    name: str = "snapshot"

    def statuses(self) -> Mapping[str, str]:
        if not self.path.is_file():
            raise PreconditionFailed(f"status snapshot not found: {self.path}")
        try:
            loaded = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ExecutionError(f"{self.path}: unable to parse status snapshot ({exc})") from exc

        if isinstance(loaded, Mapping) and isinstance(loaded.get("statuses"), Mapping):
            loaded = loaded["statuses"]
        if not isinstance(loaded, Mapping):
            raise ExecutionError(f"{self.path}: expected a mapping of artifact id to status")

        out: dict[str, str] = {}
        for key, value in loaded.items():
            if not isinstance(value, str):
                raise ExecutionError(f"{self.path}: status for {key!r} must be a string")
            out[str(key)] = value
        return out


@dataclass(frozen=True, slots=True)
class LocalArtifact:
    id: str
    file: str
    status: str | None
    exists: bool = True
    read_error: str | None = None


@dataclass(frozen=True, slots=True)
class DriftFinding:
    """Comparison outcome for one artifact id."""

    id: str
    file: str
    local_status: str | None
    external_status: str | None
    issues: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def flagged(self) -> bool:
        return bool(self.issues)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "file": self.file,
            "local_status": self.local_status,
            "external_status": self.external_status,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True, slots=True)
class DriftReport:
    run_id: str
    source: str
    findings: tuple[DriftFinding, ...] = ()
    duration_ms: int = 0

    @property
    def flagged(self) -> tuple[DriftFinding, ...]:
        return tuple(item for item in self.findings if item.flagged)

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.VALIDATION_FAILED if self.flagged else ExitCode.SUCCESS

    def raise_for_status(self) -> None:
        if not self.flagged:
            return
        raise ValidationFailed(
            f"drift-check: {len(self.flagged)} artifact(s) drifted",
            issues=[item.to_dict() for item in self.flagged],
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "script": "drift-check",
            "status": "passed" if not self.flagged else "failed",
            "source": self.source,
            "scanned": len(self.findings),
            "duration_ms": self.duration_ms,
            "violations": [item.to_dict() for item in self.flagged],
            "warnings": [
                {"id": item.id, "file": item.file, "warnings": list(item.warnings)}
                for item in self.findings
                if item.warnings
            ],
            "results": [item.to_dict() for item in self.findings],
        }


@dataclass(frozen=True, slots=True)
class DriftOptions:
    root: Path
    ideas_dir: Path
    paths: tuple[str, ...] = ()


def extract_local_status(text: str) -> str | None:
    """Return the declared status from front matter or a ``Status:`` line."""

    front = _parse_front_matter(text)
    for key, value in front.items():
        if str(key).lower() == "status" and isinstance(value, str) and value.strip():
            return value.strip()

    body = _FRONT_MATTER.sub("", text, count=1)
    match = _STATUS_LINE.search(body)
    return match.group(1).strip() if match is not None else None


def artifact_id_for(path: Path, text: str) -> str:
    front = _parse_front_matter(text)
    declared = front.get("id")
    if isinstance(declared, str) and declared.strip():
        return declared.strip()
    match = BRANCH_ID_FALLBACK.match(f"{path.stem}-")
    return match.group(1) if match is not None else path.stem


def collect_local_artifacts(options: DriftOptions) -> list[LocalArtifact]:
    """Read the artifacts named in ``options.paths`` or every markdown file."""

    if options.paths:
        files = [_resolve_artifact_path(item, options) for item in options.paths]
    elif options.ideas_dir.is_dir():
        files = sorted(options.ideas_dir.rglob("*.md"))
    else:
        logger.warning("ideas directory not found", extra={"path": options.ideas_dir.as_posix()})
        files = []

    artifacts: list[LocalArtifact] = []
    for path in files:
        display = _display_path(path, options.root)
        if not path.is_file():
            artifacts.append(LocalArtifact(id=path.stem, file=display, status=None, exists=False))
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            artifacts.append(
                LocalArtifact(
                    id=artifact_id_for(path, ""), file=display, status=None, read_error=str(exc)
                )
            )
            continue
        artifacts.append(
            LocalArtifact(
                id=artifact_id_for(path, text),
                file=display,
                status=extract_local_status(text),
            )
        )
    return artifacts


def compare_artifact(
    artifact: LocalArtifact,
    external: str | None,
    lifecycle: LifecycleConfig,
) -> DriftFinding:
    issues: list[str] = []
    warnings: list[str] = []
    expected = ", ".join(lifecycle.statuses)

    if not artifact.exists:
        issues.append("Artifact file not found")
    if artifact.read_error is not None:
        issues.append(f"Unable to read artifact: {artifact.read_error}")

    local_canonical = lifecycle.resolve_status(artifact.status)
    if artifact.exists and artifact.read_error is None and artifact.status is None:
        warnings.append("Missing Status line")
    elif artifact.status is not None and local_canonical is None:
        issues.append(f"Unrecognized local status '{artifact.status}'. Expected one of {expected}.")

    external_canonical = lifecycle.resolve_status(external)
    if external is None:
        issues.append("No externally tracked status for this artifact")
    elif external_canonical is None:
        issues.append(f"Unrecognized external status '{external}'. Expected one of {expected}.")

    if (
        local_canonical is not None
        and external_canonical is not None
        and local_canonical != external_canonical
    ):
        issues.append(f"Status drift: local '{local_canonical}' != tracked '{external_canonical}'")

    return DriftFinding(
        id=artifact.id,
        file=artifact.file,
        local_status=artifact.status,
        external_status=external,
        issues=tuple(issues),
        warnings=tuple(warnings),
    )


def detect_drift(
    options: DriftOptions,
    source: StatusSource,
    lifecycle: LifecycleConfig,
    *,
    run_id: str | None = None,
) -> DriftReport:
    """Compare every local artifact with the externally tracked status."""

    started_ns = time.monotonic_ns()
    artifacts = collect_local_artifacts(options)
    external = source.statuses() if artifacts else {}
    logger.debug(
        "drift inputs loaded",
        extra={"artifacts": len(artifacts), "tracked": len(external), "source": source.name},
    )

    findings = tuple(
        compare_artifact(artifact, external.get(artifact.id), lifecycle) for artifact in artifacts
    )
    for finding in findings:
        if finding.flagged:
            logger.info("drift detected", extra={"id": finding.id, "issues": len(finding.issues)})
    return DriftReport(
        run_id=run_id or generate_run_id(),
        source=source.name,
        findings=findings,
        duration_ms=(time.monotonic_ns() - started_ns) // 1_000_000,
    )


def render_drift_text(report: DriftReport, *, verbose: bool = False) -> list[str]:
    lines: list[str] = []
    for finding in report.findings:
        if finding.flagged:
            lines.append(f"  DRIFT {finding.id} ({finding.file})")
            lines.extend(f"      {issue}" for issue in finding.issues)
        elif verbose:
            lines.append(f"  OK    {finding.id} ({finding.file})")
        lines.extend(f"      warning: {warning}" for warning in finding.warnings)
    lines.append(
        f"drift-check: {len(report.findings)} artifact(s), {len(report.flagged)} drifted "
        f"[{report.source}]"
    )
    return lines


def _parse_front_matter(text: str) -> Mapping[object, object]:
    match = _FRONT_MATTER.match(text)
    if match is None:
        return {}
    try:
        loaded = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        logger.debug("front matter is not valid YAML; falling back to Status line")
        return {}
    return loaded if isinstance(loaded, Mapping) else {}


def _resolve_artifact_path(item: str, options: DriftOptions) -> Path:
    candidate = Path(item)
    if candidate.suffix == ".md" or len(candidate.parts) > 1:
        return candidate if candidate.is_absolute() else options.root / candidate
    return options.ideas_dir / f"{item}.md"


def _display_path(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


__all__ = [
    "DriftFinding",
    "DriftOptions",
    "DriftReport",
    "GhProjectStatusSource",
    "LocalArtifact",
    "SnapshotStatusSource",
    "StatusSource",
    "artifact_id_for",
    "collect_local_artifacts",
    "compare_artifact",
    "detect_drift",
    "extract_local_status",
    "render_drift_text",
]
