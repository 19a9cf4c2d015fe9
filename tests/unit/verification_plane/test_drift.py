"""
guardrail-suite: unit tests for the lifecycle drift detector

File: tests/unit/verification_plane/test_drift.py

Purpose
- Validate local status extraction and comparison against tracked statuses.

What this test file should cover
- Front matter and ``Status:`` line extraction.
- Vocabulary violations flagged even when both sides agree.
- Status mismatches, missing tracked status, missing local status warnings.
- Snapshot and gh project status sources.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from guardrail_suite.config.lifecycle import default_lifecycle_config
from guardrail_suite.constants import ExitCode
from guardrail_suite.errors import ExecutionError, PreconditionFailed, ValidationFailed
from guardrail_suite.integration_plane.hosting import HostingClient, HostingResult
from guardrail_suite.verification_plane.drift import (
    DriftOptions,
    DriftReport,
    GhProjectStatusSource,
    LocalArtifact,
    SnapshotStatusSource,
    artifact_id_for,
    collect_local_artifacts,
    compare_artifact,
    detect_drift,
    extract_local_status,
    render_drift_text,
)


@dataclass
class StaticSource:
    mapping: dict[str, str]
    name: str = "static"
    calls: list[int] = field(default_factory=list)

    def statuses(self) -> Mapping[str, str]:
        self.calls.append(1)
        return self.mapping


def _idea(root: Path, name: str, text: str) -> Path:
    ideas = root / "ideas"
    ideas.mkdir(parents=True, exist_ok=True)
    path = ideas / f"{name}.md"
    path.write_text(text, encoding="utf-8")
    return path


def _options(root: Path, *paths: str) -> DriftOptions:
    return DriftOptions(root=root, ideas_dir=root / "ideas", paths=paths)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("---\nid: ARCH-1\nstatus: Ticketed\n---\n# Idea\n", "Ticketed"),
        ("# Idea\n\nStatus: In Review\n", "In Review"),
        ("# Idea\n\n**Status:** PR Open\n", "PR Open"),
        ("# Idea\n\n**Status**: Merged  \n", "Merged"),
        ("---\nid: ARCH-1\n---\nstatus: draft\n", "draft"),
        ("# Idea\n\nNo status here.\n", None),
    ],
)
def test_extract_local_status(text: str, expected: str | None) -> None:
    assert extract_local_status(text) == expected


@pytest.mark.unit
def test_artifact_id_prefers_front_matter_then_file_name() -> None:
    assert artifact_id_for(Path("ideas/whatever.md"), "---\nid: OPS-7\n---\n") == "OPS-7"
    assert artifact_id_for(Path("ideas/ARCH-12-better-cache.md"), "# x\n") == "ARCH-12"
    assert artifact_id_for(Path("ideas/notes.md"), "# x\n") == "notes"


@pytest.mark.unit
def test_agreeing_canonical_statuses_pass() -> None:
    finding = compare_artifact(
        LocalArtifact(id="A-1", file="ideas/A-1.md", status="pr open"),
        "PR Open",
        default_lifecycle_config(),
    )

    assert finding.flagged is False
    assert finding.issues == ()


@pytest.mark.unit
def test_out_of_vocabulary_status_is_flagged_even_when_sides_agree() -> None:
    finding = compare_artifact(
        LocalArtifact(id="A-1", file="ideas/A-1.md", status="Done"),
        "Done",
        default_lifecycle_config(),
    )

    assert finding.flagged is True
    assert len(finding.issues) == 2
    assert finding.issues[0].startswith("Unrecognized local status 'Done'")
    assert finding.issues[1].startswith("Unrecognized external status 'Done'")


@pytest.mark.unit
def test_mismatch_is_flagged() -> None:
    finding = compare_artifact(
        LocalArtifact(id="A-1", file="ideas/A-1.md", status="Draft"),
        "Merged",
        default_lifecycle_config(),
    )

    assert finding.issues == ("Status drift: local 'Draft' != tracked 'Merged'",)


@pytest.mark.unit
def test_missing_local_status_is_a_warning_only() -> None:
    finding = compare_artifact(
        LocalArtifact(id="A-1", file="ideas/A-1.md", status=None),
        "Draft",
        default_lifecycle_config(),
    )

    assert finding.flagged is False
    assert finding.warnings == ("Missing Status line",)


@pytest.mark.unit
def test_untracked_and_missing_artifacts_are_flagged() -> None:
    lifecycle = default_lifecycle_config()

    untracked = compare_artifact(LocalArtifact("A-1", "ideas/A-1.md", "Draft"), None, lifecycle)
    missing = compare_artifact(
        LocalArtifact("A-2", "ideas/A-2.md", None, exists=False), "Draft", lifecycle
    )

    assert untracked.issues == ("No externally tracked status for this artifact",)
    assert missing.issues == ("Artifact file not found",)
    assert missing.warnings == ()


@pytest.mark.unit
def test_detect_drift_scans_ideas_directory(tmp_path: Path) -> None:
    _idea(tmp_path, "ARCH-1-cache", "# Cache\n\nStatus: Draft\n")
    _idea(tmp_path, "ARCH-2-queue", "# Queue\n\nStatus: Merged\n")
    _idea(tmp_path, "ARCH-3-logs", "# Logs\n")
    source = StaticSource({"ARCH-1": "Draft", "ARCH-2": "In Review", "ARCH-3": "Ticketed"})

    report = detect_drift(_options(tmp_path), source, default_lifecycle_config(), run_id="r1")

    assert [finding.id for finding in report.findings] == ["ARCH-1", "ARCH-2", "ARCH-3"]
    assert [finding.id for finding in report.flagged] == ["ARCH-2"]
    assert report.exit_code is ExitCode.VALIDATION_FAILED
    payload = report.to_dict()
    assert payload["status"] == "failed"
    assert payload["scanned"] == 3
    assert payload["warnings"] == [
        {"id": "ARCH-3", "file": "ideas/ARCH-3-logs.md", "warnings": ["Missing Status line"]}
    ]
    with pytest.raises(ValidationFailed, match="1 artifact"):
        report.raise_for_status()


@pytest.mark.unit
def test_unreadable_artifact_is_flagged_not_fatal(tmp_path: Path) -> None:
    _idea(tmp_path, "ARCH-1-cache", "Status: Draft\n")
    bad = tmp_path / "ideas" / "ARCH-9-latin1.md"
    bad.write_bytes(b"Status: Draft \xff\xfe\n")
    source = StaticSource({"ARCH-1": "Draft", "ARCH-9": "Draft"})

    report = detect_drift(_options(tmp_path), source, default_lifecycle_config())

    assert [finding.id for finding in report.flagged] == ["ARCH-9"]
    (finding,) = report.flagged
    assert len(finding.issues) == 1
    assert finding.issues[0].startswith("Unable to read artifact:")
    assert finding.warnings == ()
    assert report.exit_code is ExitCode.VALIDATION_FAILED


@pytest.mark.unit
def test_explicit_paths_resolve_ids_and_files(tmp_path: Path) -> None:
    _idea(tmp_path, "OPS-4", "Status: Branched\n")
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "OPS-5-plan.md").write_text("Status: Draft\n", encoding="utf-8")

    artifacts = collect_local_artifacts(_options(tmp_path, "OPS-4", "docs/OPS-5-plan.md", "OPS-6"))

    assert [(item.id, item.file, item.exists) for item in artifacts] == [
        ("OPS-4", "ideas/OPS-4.md", True),
        ("OPS-5", "docs/OPS-5-plan.md", True),
        ("OPS-6", "ideas/OPS-6.md", False),
    ]


@pytest.mark.unit
def test_missing_ideas_dir_skips_the_external_query(tmp_path: Path) -> None:
    source = StaticSource({})

    report = detect_drift(_options(tmp_path), source, default_lifecycle_config())

    assert report.findings == ()
    assert report.exit_code is ExitCode.SUCCESS
    assert source.calls == []


@pytest.mark.unit
def test_snapshot_source_reads_yaml_and_json(tmp_path: Path) -> None:
    yaml_path = tmp_path / "statuses.yaml"
    yaml_path.write_text("statuses:\n  ARCH-1: Draft\n  ARCH-2: PR Open\n", encoding="utf-8")
    json_path = tmp_path / "statuses.json"
    json_path.write_text(json.dumps({"ARCH-3": "Merged"}), encoding="utf-8")

    assert SnapshotStatusSource(yaml_path).statuses() == {"ARCH-1": "Draft", "ARCH-2": "PR Open"}
    assert SnapshotStatusSource(json_path).statuses() == {"ARCH-3": "Merged"}


@pytest.mark.unit
def test_snapshot_source_errors(tmp_path: Path) -> None:
    bad = tmp_path / "bad.yaml"
    bad.write_text("- just a list\n", encoding="utf-8")
    wrong_type = tmp_path / "wrong.yaml"
    wrong_type.write_text("ARCH-1: [Draft]\n", encoding="utf-8")

    with pytest.raises(PreconditionFailed, match="snapshot not found"):
        SnapshotStatusSource(tmp_path / "absent.yaml").statuses()
    with pytest.raises(ExecutionError, match="expected a mapping"):
        SnapshotStatusSource(bad).statuses()
    with pytest.raises(ExecutionError, match="must be a string"):
        SnapshotStatusSource(wrong_type).statuses()


@pytest.mark.unit
def test_gh_project_source_requires_project_number(tmp_path: Path) -> None:
    source = GhProjectStatusSource(client=HostingClient(tmp_path, runner=_never), project_number=0)

    with pytest.raises(PreconditionFailed, match="project_number"):
        source.statuses()


@pytest.mark.unit
def test_gh_project_source_maps_item_statuses(tmp_path: Path) -> None:
    items = {
        "items": [
            {"title": "[ARCH-1] Cache", "status": "Draft"},
            {"Artifact ID": "ARCH-2", "title": "Queue", "Status": "In Review"},
            {"content": {"title": "[ARCH-3] Logs"}, "status": "Merged"},
            {"title": "No id", "status": "Draft"},
        ]
    }

    def runner(command: Sequence[str], repo_path: Path) -> HostingResult:
        if tuple(command[1:]) == ("auth", "status"):
            return HostingResult(tuple(command), 0, "", "")
        return HostingResult(tuple(command), 0, json.dumps(items), "")

    source = GhProjectStatusSource(
        client=HostingClient(tmp_path, runner=runner), project_number=3, owner="acme"
    )

    assert source.statuses() == {"ARCH-1": "Draft", "ARCH-2": "In Review", "ARCH-3": "Merged"}


@pytest.mark.unit
def test_render_drift_text() -> None:
    lifecycle = default_lifecycle_config()
    findings = (
        compare_artifact(LocalArtifact("A-1", "ideas/A-1.md", "Draft"), "Merged", lifecycle),
        compare_artifact(LocalArtifact("A-2", "ideas/A-2.md", None), "Draft", lifecycle),
    )

    lines = render_drift_text(DriftReport(run_id="r", source="snapshot", findings=findings))

    assert lines == [
        "  DRIFT A-1 (ideas/A-1.md)",
        "      Status drift: local 'Draft' != tracked 'Merged'",
        "      warning: Missing Status line",
        "drift-check: 2 artifact(s), 1 drifted [snapshot]",
    ]


def _never(command: Sequence[str], repo_path: Path) -> HostingResult:
    raise AssertionError(f"unexpected gh call: {command}")
