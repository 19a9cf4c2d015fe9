"""
guardrail-suite: lifecycle configuration.

File: src/guardrail_suite/config/lifecycle.py

Purpose
- Load the versioned lifecycle artifact (``config/lifecycle.yaml``) shared by the
  naming guards and the drift detector.

What should be included in this file
- Built-in defaults for the branch, commit-header and pull-request title patterns.
- YAML parsing via ``yaml.safe_load`` overlaid on the defaults.
- One-time regex compilation and a per-process cache keyed by resolved path.
- Canonical status vocabulary checks and status canonicalization.

Functional requirements
- The status vocabulary must be exactly the seven canonical states.
- Invalid YAML, unknown fields and invalid regexes are configuration faults.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final, cast

import yaml

from guardrail_suite.constants import CANONICAL_STATUSES, LIFECYCLE_SCHEMA_VERSION
from guardrail_suite.errors import ExecutionError

ID_PATTERN: Final[str] = r"[A-Z]+-[A-Za-z0-9]+"
SLUG_PATTERN: Final[str] = r"[a-z0-9]+(?:-[a-z0-9]+)*"
DEFAULT_BRANCH_TYPES: Final[tuple[str, ...]] = (
    "feat",
    "fix",
    "refactor",
    "docs",
    "chore",
    "test",
    "perf",
    "build",
    "ci",
    "ops",
)
DEFAULT_BRANCH_EXAMPLES: Final[tuple[str, ...]] = (
    "feat/ARCH-123-add-guardrails",
    "fix/U-456-button-state",
    "refactor/C-789-cleanup-tests",
)
DEFAULT_COMMIT_PATTERN: Final[str] = rf"^\[(?P<id>{ID_PATTERN})-(?P<slug>{SLUG_PATTERN})\]\s+\S.*$"
DEFAULT_PR_TITLE_PATTERN: Final[str] = r"^\[(?P<id>[^\]]+)\]\s*(?P<text>.*)$"
BRANCH_ID_FALLBACK: Final[re.Pattern[str]] = re.compile(rf"^({ID_PATTERN})-")

_ALLOWED_ROOT_KEYS: Final[frozenset[str]] = frozenset(
    {"version", "statuses", "branches", "commits", "pull_requests"}
)
_NON_ALNUM = re.compile(r"[^a-z0-9]")


class LifecycleConfigError(ExecutionError):
    """Raised when the lifecycle artifact is missing, malformed or inconsistent."""


def default_branch_pattern(types: tuple[str, ...] = DEFAULT_BRANCH_TYPES) -> str:
    """Build the ``type/ID-slug`` branch pattern for the given branch types."""

    alternatives = "|".join(re.escape(item) for item in types)
    return rf"^(?P<type>{alternatives})/(?P<id>{ID_PATTERN})-(?P<slug>{SLUG_PATTERN})$"


def canonicalize_status(value: str) -> str:
    """Case and punctuation insensitive key used to compare statuses."""

    return _NON_ALNUM.sub("", value.lower())


_CANONICAL_BY_KEY: Final[dict[str, str]] = {
    canonicalize_status(status): status for status in CANONICAL_STATUSES
}


@dataclass(frozen=True, slots=True)
class LifecycleConfig:
    """Immutable lifecycle rules with patterns compiled once at load time."""

    version: int
    statuses: tuple[str, ...]
    branch_types: tuple[str, ...]
    branch_pattern: re.Pattern[str]
    branch_examples: tuple[str, ...]
    commit_pattern: re.Pattern[str]
    pr_title_pattern: re.Pattern[str]
    source: str | None = None

    def resolve_status(self, value: str | None) -> str | None:
        """Return the vocabulary spelling of ``value`` or ``None`` when unrecognized."""

        if value is None:
            return None
        key = canonicalize_status(value)
        if not key:
            return None
        resolved = _CANONICAL_BY_KEY.get(key)
        if resolved is None or resolved not in self.statuses:
            return None
        return resolved

    def extract_branch_id(self, branch: str) -> str | None:
        """Extract the artifact id from a ``type/ID-slug`` branch name."""

        match = self.branch_pattern.match(branch)
        if match is not None:
            named = match.groupdict().get("id")
            if named:
                return named
            if match.groups():
                return match.group(1)

        _, separator, remainder = branch.partition("/")
        candidate = remainder if separator else branch
        fallback = BRANCH_ID_FALLBACK.match(candidate)
        return fallback.group(1) if fallback is not None else None

    def to_dict(self) -> dict[str, object]:
        return {
            "version": self.version,
            "statuses": list(self.statuses),
            "branches": {
                "types": list(self.branch_types),
                "pattern": self.branch_pattern.pattern,
                "examples": list(self.branch_examples),
            },
            "commits": {"pattern": self.commit_pattern.pattern},
            "pull_requests": {"title_pattern": self.pr_title_pattern.pattern},
            "source": self.source,
        }


def default_lifecycle_config() -> LifecycleConfig:
    """Return built-in lifecycle rules (used when no artifact is present)."""

    return _build_config({}, source=None)


def load_lifecycle_config(
    path: str | Path | None = None, *, required: bool = False
) -> LifecycleConfig:
    """Load and cache lifecycle rules from ``path``.

    A missing file yields the built-in defaults unless ``required`` is set.
    """

    if path is None:
        return _cached_default()
    resolved = Path(path).expanduser().resolve()
    return _load_cached(resolved.as_posix(), required)


def clear_lifecycle_cache() -> None:
    """Drop cached lifecycle configs (tests and long-lived embedders)."""

    _load_cached.cache_clear()
    _cached_default.cache_clear()


@lru_cache(maxsize=1)
def _cached_default() -> LifecycleConfig:
    return default_lifecycle_config()


@lru_cache(maxsize=8)
def _load_cached(resolved: str, required: bool) -> LifecycleConfig:
    path = Path(resolved)
    if not path.is_file():
        if required:
            raise LifecycleConfigError(f"lifecycle config not found: {path}")
        return _cached_default()

    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise LifecycleConfigError(f"{path}: invalid YAML ({exc})") from exc
    except OSError as exc:
        raise LifecycleConfigError(f"{path}: unable to read lifecycle config ({exc})") from exc

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise LifecycleConfigError(
            f"{path}: expected top-level YAML mapping, got {type(loaded).__name__}"
        )
    return _build_config(loaded, source=path.as_posix())


def _build_config(payload: dict[object, object], *, source: str | None) -> LifecycleConfig:
    location = source or "<builtin lifecycle>"

    unknown = sorted(str(key) for key in payload if key not in _ALLOWED_ROOT_KEYS)
    if unknown:
        raise LifecycleConfigError(f"{location}: unexpected fields: {unknown}")

    version = payload.get("version", LIFECYCLE_SCHEMA_VERSION)
    if isinstance(version, bool) or not isinstance(version, int):
        raise LifecycleConfigError(f"{location}.version: expected integer")
    if version != LIFECYCLE_SCHEMA_VERSION:
        raise LifecycleConfigError(
            f"{location}.version: unsupported lifecycle version {version} "
            f"(expected {LIFECYCLE_SCHEMA_VERSION})"
        )

    statuses = _parse_statuses(payload.get("statuses"), location)

    branches = _section(payload, "branches", location)
    branch_types = _string_tuple(
        branches.get("types", list(DEFAULT_BRANCH_TYPES)), f"{location}.branches.types"
    )
    branch_pattern = _compile(
        branches.get("pattern", default_branch_pattern(branch_types)),
        f"{location}.branches.pattern",
    )
    branch_examples = _string_tuple(
        branches.get("examples", list(DEFAULT_BRANCH_EXAMPLES)), f"{location}.branches.examples"
    )

    commits = _section(payload, "commits", location)
    commit_pattern = _compile(
        commits.get("pattern", DEFAULT_COMMIT_PATTERN), f"{location}.commits.pattern"
    )

    pull_requests = _section(payload, "pull_requests", location)
    pr_title_pattern = _compile(
        pull_requests.get("title_pattern", DEFAULT_PR_TITLE_PATTERN),
        f"{location}.pull_requests.title_pattern",
    )

    return LifecycleConfig(
        version=version,
        statuses=statuses,
        branch_types=branch_types,
        branch_pattern=branch_pattern,
        branch_examples=branch_examples,
        commit_pattern=commit_pattern,
        pr_title_pattern=pr_title_pattern,
        source=source,
    )


def _parse_statuses(raw: object, location: str) -> tuple[str, ...]:
    if raw is None:
        return CANONICAL_STATUSES
    values = _string_tuple(raw, f"{location}.statuses")
    resolved: list[str] = []
    for value in values:
        canonical = _CANONICAL_BY_KEY.get(canonicalize_status(value))
        if canonical is None:
            raise LifecycleConfigError(f"{location}.statuses: unknown status {value!r}")
        resolved.append(canonical)
    if sorted(resolved) != sorted(CANONICAL_STATUSES):
        expected = ", ".join(CANONICAL_STATUSES)
        raise LifecycleConfigError(
            f"{location}.statuses: vocabulary must be exactly: {expected}"
        )
    return CANONICAL_STATUSES


def _section(payload: dict[object, object], key: str, location: str) -> dict[object, object]:
    raw = payload.get(key)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise LifecycleConfigError(f"{location}.{key}: expected mapping")
    return raw


def _string_tuple(raw: object, location: str) -> tuple[str, ...]:
    if not isinstance(raw, list) or not raw:
        raise LifecycleConfigError(f"{location}: expected non-empty list of strings")
    out: list[str] = []
    for index, item in enumerate(raw):
        if not isinstance(item, str) or not item.strip():
            raise LifecycleConfigError(f"{location}[{index}]: expected non-empty string")
        out.append(item.strip())
    return tuple(out)


def _compile(raw: object, location: str) -> re.Pattern[str]:
    if not isinstance(raw, str) or not raw.strip():
        raise LifecycleConfigError(f"{location}: expected regex string")
    try:
        return re.compile(raw)
    except re.error as exc:
        raise LifecycleConfigError(f"{location}: invalid regex ({exc})") from exc


__all__ = [
    "BRANCH_ID_FALLBACK",
    "DEFAULT_BRANCH_EXAMPLES",
    "DEFAULT_BRANCH_TYPES",
    "DEFAULT_COMMIT_PATTERN",
    "DEFAULT_PR_TITLE_PATTERN",
    "ID_PATTERN",
    "LifecycleConfig",
    "LifecycleConfigError",
    "SLUG_PATTERN",
    "canonicalize_status",
    "clear_lifecycle_cache",
    "default_branch_pattern",
    "default_lifecycle_config",
    "load_lifecycle_config",
]
