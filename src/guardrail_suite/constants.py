"""Stable constants shared across guardrail planes."""

from __future__ import annotations

from enum import IntEnum
from pathlib import PurePosixPath
from typing import Final


class ExitCode(IntEnum):
    """Deterministic process exit-code contract."""

    SUCCESS = 0
    EXECUTION_ERROR = 1
    CONFIG_ERROR = 2
    PRECONDITION_FAILED = 3
    VALIDATION_FAILED = 11
    NAMING_VIOLATION = 12
    UNSAFE_PATTERN = 13


# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
LIFECYCLE_SCHEMA_VERSION: Final[int] = 1

# Default runtime paths (relative to the repository root unless overridden by config).
DEFAULT_CONFIG_FILE: Final[str] = "guardrails.toml"
DEFAULT_LIFECYCLE_FILE: Final[PurePosixPath] = PurePosixPath("config/lifecycle.yaml")
DEFAULT_SCRIPTS_DIR: Final[PurePosixPath] = PurePosixPath("scripts")
DEFAULT_IDEAS_DIR: Final[PurePosixPath] = PurePosixPath("ideas")

# Scheduler.
DEFAULT_CONCURRENCY: Final[int] = 3
DEFAULT_SCOPE_ORDER: Final[tuple[str, ...]] = (
    "app",
    "scripts",
    "docs",
    "pr",
    "issues",
    "recordings",
)
SCOPE_ALIASES: Final[dict[str, str]] = {"ideas": "issues", "issue": "issues"}

# Process runner.
OUTPUT_LINE_LIMIT: Final[int] = 40
OUTPUT_ELISION_MARKER: Final[str] = "..."
EXIT_CODE_TIMEOUT: Final[int] = 124
EXIT_CODE_NOT_FOUND: Final[int] = 127

# Policy thresholds.
MAX_SCRIPT_LINES: Final[int] = 300
MAX_FUNCTION_LINES: Final[int] = 60
DEPRECATION_MAX_AGE_DAYS: Final[int] = 90
REQUIRED_CLI_FLAGS: Final[tuple[str, ...]] = (
    "--dry-run",
    "--yes",
    "--output",
    "--log-level",
    "--cwd",
)

# Naming guards.
PROTECTED_BRANCHES: Final[frozenset[str]] = frozenset({"main", "master", "develop", "HEAD"})
DEFAULT_COMMIT_LIMIT: Final[int] = 50

# Lifecycle status vocabulary, in lifecycle order.
CANONICAL_STATUSES: Final[tuple[str, ...]] = (
    "Draft",
    "Ticketed",
    "Branched",
    "PR Open",
    "In Review",
    "Merged",
    "Archived",
)

# Script smoke checks.
DEFAULT_SMOKE_TIMEOUT_SECONDS: Final[float] = 5.0

__all__ = [
    "CANONICAL_STATUSES",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_COMMIT_LIMIT",
    "DEFAULT_CONCURRENCY",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_IDEAS_DIR",
    "DEFAULT_LIFECYCLE_FILE",
    "DEFAULT_SCOPE_ORDER",
    "DEFAULT_SCRIPTS_DIR",
    "DEFAULT_SMOKE_TIMEOUT_SECONDS",
    "DEPRECATION_MAX_AGE_DAYS",
    "EXIT_CODE_NOT_FOUND",
    "EXIT_CODE_TIMEOUT",
    "ExitCode",
    "LIFECYCLE_SCHEMA_VERSION",
    "MAX_FUNCTION_LINES",
    "MAX_SCRIPT_LINES",
    "OUTPUT_ELISION_MARKER",
    "OUTPUT_LINE_LIMIT",
    "PROTECTED_BRANCHES",
    "REQUIRED_CLI_FLAGS",
    "SCOPE_ALIASES",
]
