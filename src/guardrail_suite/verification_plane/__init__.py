"""
guardrail-suite: verification plane public API.

File: src/guardrail_suite/verification_plane/__init__.py

Purpose
- Export the static checks: policy lint, naming guards, drift detection and
  script smoke tests.

Functional requirements
- Keep import-time behavior deterministic and lightweight.
"""

from guardrail_suite.verification_plane.drift import (
    DriftFinding,
    DriftOptions,
    DriftReport,
    GhProjectStatusSource,
    SnapshotStatusSource,
    StatusSource,
    detect_drift,
    extract_local_status,
)
from guardrail_suite.verification_plane.naming_guards import (
    GuardName,
    GuardResult,
    check_branch,
    check_commits,
    check_pr_title,
    resolve_commit_range,
)
from guardrail_suite.verification_plane.policy_rules import (
    ArtifactHeader,
    RuleId,
    Severity,
    ValidationIssue,
    evaluate_script,
    parse_header,
)
from guardrail_suite.verification_plane.policy_validator import (
    PolicyOptions,
    PolicyReport,
    discover_scripts,
    validate_scripts,
)
from guardrail_suite.verification_plane.smoke import SmokeOptions, SmokeReport, run_smoke

__all__ = [
    "ArtifactHeader",
    "DriftFinding",
    "DriftOptions",
    "DriftReport",
    "GhProjectStatusSource",
    "GuardName",
    "GuardResult",
    "PolicyOptions",
    "PolicyReport",
    "RuleId",
    "Severity",
    "SmokeOptions",
    "SmokeReport",
    "SnapshotStatusSource",
    "StatusSource",
    "ValidationIssue",
    "check_branch",
    "check_commits",
    "check_pr_title",
    "detect_drift",
    "discover_scripts",
    "evaluate_script",
    "extract_local_status",
    "parse_header",
    "resolve_commit_range",
    "run_smoke",
    "validate_scripts",
]
