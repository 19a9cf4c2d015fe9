"""
guardrail-suite: configuration schema and validation.

File: src/guardrail_suite/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning with explicit migration messages.
- Validation rules for required fields, types, enums, and numeric constraints.
- Scope task overrides (``[[scopes.<name>]]`` tables) validation.
- Deterministic deep-merge and redaction helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject embedded secrets; only ``*_env`` indirections are accepted.
"""

from __future__ import annotations

import copy
import math
import re
import shlex
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, NotRequired, TypedDict

from guardrail_suite.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_CONCURRENCY,
    DEFAULT_IDEAS_DIR,
    DEFAULT_LIFECYCLE_FILE,
    DEFAULT_SCOPE_ORDER,
    DEFAULT_SCRIPTS_DIR,
    DEFAULT_SMOKE_TIMEOUT_SECONDS,
    DEPRECATION_MAX_AGE_DAYS,
    MAX_FUNCTION_LINES,
    MAX_SCRIPT_LINES,
    OUTPUT_LINE_LIMIT,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
LOG_LEVELS: Final[tuple[str, ...]] = ("TRACE", "DEBUG", "INFO", "WARNING", "ERROR")

_SCOPE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "apikey", "credential", "credentials"}
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
)

# Config paths that are normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("policy", "scripts_dir"),
    ("lifecycle", "config_path"),
    ("lifecycle", "ideas_dir"),
    ("smoke", "scripts_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class SuiteConfig(TypedDict):
    concurrency: int
    fail_fast: bool
    sequential: bool
    default_scopes: list[str]
    task_timeout_seconds: float
    output_line_limit: int


class ScopeTaskConfig(TypedDict):
    id: str
    command: list[str]
    optional: NotRequired[bool]


class PolicyConfig(TypedDict):
    scripts_dir: str
    library_dirs: list[str]
    ignore_dirs: list[str]
    ignore: list[str]
    strict: bool
    max_script_lines: int
    max_function_lines: int
    deprecation_max_days: int


class LifecycleSection(TypedDict):
    config_path: str
    ideas_dir: str


class HostingConfig(TypedDict):
    cli: str
    project_number: int
    project_owner: str
    status_field: str
    id_field: str
    token_env: str


class SmokeConfig(TypedDict):
    scripts_dir: str
    timeout_seconds: float
    dry_run_dirs: list[str]


class ObservabilityConfig(TypedDict):
    log_level: str
    log_format: str
    redact_secrets: bool


class GuardrailConfig(TypedDict):
    meta: MetaConfig
    suite: SuiteConfig
    scopes: dict[str, list[ScopeTaskConfig]]
    policy: PolicyConfig
    lifecycle: LifecycleSection
    hosting: HostingConfig
    smoke: SmokeConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[GuardrailConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "suite": {
        "concurrency": DEFAULT_CONCURRENCY,
        "fail_fast": False,
        "sequential": False,
        "default_scopes": list(DEFAULT_SCOPE_ORDER),
        "task_timeout_seconds": 0.0,
        "output_line_limit": OUTPUT_LINE_LIMIT,
    },
    "scopes": {},
    "policy": {
        "scripts_dir": DEFAULT_SCRIPTS_DIR.as_posix(),
        "library_dirs": ["_lib"],
        "ignore_dirs": ["DEPRECATED"],
        "ignore": [],
        "strict": False,
        "max_script_lines": MAX_SCRIPT_LINES,
        "max_function_lines": MAX_FUNCTION_LINES,
        "deprecation_max_days": DEPRECATION_MAX_AGE_DAYS,
    },
    "lifecycle": {
        "config_path": DEFAULT_LIFECYCLE_FILE.as_posix(),
        "ideas_dir": DEFAULT_IDEAS_DIR.as_posix(),
    },
    "hosting": {
        "cli": "gh",
        "project_number": 0,
        "project_owner": "@me",
        "status_field": "status",
        "id_field": "artifact id",
        "token_env": "GH_TOKEN",
    },
    "smoke": {
        "scripts_dir": DEFAULT_SCRIPTS_DIR.as_posix(),
        "timeout_seconds": DEFAULT_SMOKE_TIMEOUT_SECONDS,
        "dry_run_dirs": ["ops"],
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "text",
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> GuardrailConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade guardrails.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the guardrail-suite runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return deterministic redacted representation for logs."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    if isinstance(redacted, dict):
        return redacted
    return {}


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    validators: dict[str, Callable[[dict[str, object], str, _IssueCollector], object]] = {
        "meta": _validate_meta,
        "suite": _validate_suite,
        "scopes": _validate_scopes,
        "policy": _validate_policy,
        "lifecycle": _validate_lifecycle,
        "hosting": _validate_hosting,
        "smoke": _validate_smoke,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(payload, set(validators), "", issues)

    out: dict[str, Any] = {}
    for key in sorted(validators):
        raw = payload.get(key)
        if raw is None:
            issues.add(key, "missing required section")
            continue
        section = _as_object(raw, key, issues)
        if section is None:
            continue
        out[key] = validators[key](section, key, issues)
    return out


def _validate_meta(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    parsed = _as_int(
        payload.get("schema_version"), _join(path, "schema_version"), issues, minimum=1
    )
    if parsed is not None:
        out["schema_version"] = parsed
        if parsed != ConfigSchemaVersion:
            issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_suite(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {
        "concurrency",
        "fail_fast",
        "sequential",
        "default_scopes",
        "task_timeout_seconds",
        "output_line_limit",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    _parse_into(out, payload, path, "concurrency", issues, _as_int, minimum=1)
    _parse_into(out, payload, path, "fail_fast", issues, _as_bool)
    _parse_into(out, payload, path, "sequential", issues, _as_bool)
    _store(
        out,
        "default_scopes",
        _as_scope_list(payload.get("default_scopes"), _join(path, "default_scopes"), issues),
    )
    _store(
        out,
        "task_timeout_seconds",
        _as_float(
            payload.get("task_timeout_seconds"),
            _join(path, "task_timeout_seconds"),
            issues,
            minimum=0.0,
        ),
    )
    _parse_into(out, payload, path, "output_line_limit", issues, _as_int, minimum=2)
    return out


def _validate_scopes(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for scope_name in sorted(payload):
        scope_path = _join(path, scope_name)
        if not _SCOPE_NAME_PATTERN.fullmatch(scope_name):
            issues.add(scope_path, "scope names must be lowercase identifiers")
            continue
        raw_tasks = payload[scope_name]
        if not isinstance(raw_tasks, list):
            issues.add(scope_path, f"expected list of tasks, got {type(raw_tasks).__name__}")
            continue

        tasks: list[dict[str, Any]] = []
        seen_ids: set[str] = set()
        for index, raw_task in enumerate(raw_tasks):
            task_path = f"{scope_path}[{index}]"
            task = _as_object(raw_task, task_path, issues)
            if task is None:
                continue
            parsed = _validate_scope_task(task, task_path, issues)
            if parsed is None:
                continue
            if parsed["id"] in seen_ids:
                issues.add(_join(task_path, "id"), f"duplicate task id {parsed['id']!r}")
                continue
            seen_ids.add(parsed["id"])
            tasks.append(parsed)
        out[scope_name] = tasks
    return out


def _validate_scope_task(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any] | None:
    _reject_unknown_keys(payload, {"id", "command", "optional"}, path, issues)
    _require_keys(payload, {"id", "command"}, path, issues)

    task_id = None
    if "id" in payload:
        task_id = _as_str(payload["id"], _join(path, "id"), issues)
    command = None
    if "command" in payload:
        command = _as_command(payload["command"], _join(path, "command"), issues)
    optional = False
    if "optional" in payload:
        parsed_optional = _as_bool(payload["optional"], _join(path, "optional"), issues)
        optional = bool(parsed_optional)
    if task_id is None or command is None:
        return None
    return {"id": task_id, "command": command, "optional": optional}


def _validate_policy(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {
        "scripts_dir",
        "library_dirs",
        "ignore_dirs",
        "ignore",
        "strict",
        "max_script_lines",
        "max_function_lines",
        "deprecation_max_days",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    _parse_into(out, payload, path, "scripts_dir", issues, _as_path_text)
    for key in ("library_dirs", "ignore_dirs", "ignore"):
        _store(out, key, _as_str_list(payload.get(key), _join(path, key), issues))
    _store(out, "strict", _as_bool(payload.get("strict"), _join(path, "strict"), issues))
    for key in ("max_script_lines", "max_function_lines", "deprecation_max_days"):
        _store(out, key, _as_int(payload.get(key), _join(path, key), issues, minimum=1))
    return out


def _validate_lifecycle(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"config_path", "ideas_dir"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        _store(out, key, _as_path_text(payload.get(key), _join(path, key), issues))
    return out


def _validate_hosting(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"cli", "project_number", "project_owner", "status_field", "id_field", "token_env"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("cli", "project_owner", "status_field", "id_field", "token_env"):
        _store(out, key, _as_str(payload.get(key), _join(path, key), issues))
    _store(
        out,
        "project_number",
        _as_int(payload.get("project_number"), _join(path, "project_number"), issues, minimum=0),
    )
    return out


def _validate_smoke(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"scripts_dir", "timeout_seconds", "dry_run_dirs"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    _parse_into(out, payload, path, "scripts_dir", issues, _as_path_text)
    parsed_timeout = _as_float(
        payload.get("timeout_seconds"), _join(path, "timeout_seconds"), issues, minimum=0.0
    )
    if parsed_timeout is not None and parsed_timeout == 0.0:
        issues.add(_join(path, "timeout_seconds"), "must be > 0")
        parsed_timeout = None
    _store(out, "timeout_seconds", parsed_timeout)
    _parse_into(out, payload, path, "dry_run_dirs", issues, _as_str_list)
    return out


def _validate_observability(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_format", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    raw_level = payload.get("log_level")
    if isinstance(raw_level, str):
        raw_level = raw_level.strip().upper()
        if raw_level == "WARN":
            raw_level = "WARNING"
    _store(
        out,
        "log_level",
        _as_enum(raw_level, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS),
    )
    _parse_into(
        out, payload, path, "log_format", issues, _as_enum, allowed_values=("json", "text")
    )
    _parse_into(out, payload, path, "redact_secrets", issues, _as_bool)
    return out


def _store(out: dict[str, Any], key: str, value: object | None) -> None:
    if value is not None:
        out[key] = value


def _parse_into(
    out: dict[str, Any],
    payload: Mapping[str, object],
    path: str,
    key: str,
    issues: _IssueCollector,
    parser: Callable[..., object | None],
    **options: Any,
) -> None:
    _store(out, key, parser(payload.get(key), _join(path, key), issues, **options))


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if not isinstance(value, list):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is not None:
            out.append(parsed)
    return out


def _as_scope_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    parsed = _as_str_list(value, path, issues)
    if parsed is None:
        return None
    for index, name in enumerate(parsed):
        if not _SCOPE_NAME_PATTERN.fullmatch(name):
            issues.add(f"{path}[{index}]", f"invalid scope name {name!r}")
    return parsed


def _as_command(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if isinstance(value, str):
        try:
            parts = shlex.split(value)
        except ValueError as exc:
            issues.add(path, f"unparseable command ({exc})")
            return None
        if not parts:
            issues.add(path, "must not be empty")
            return None
        return parts
    parsed = _as_str_list(value, path, issues)
    if parsed is not None and not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS or token == "token" for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: _deep_copy_value(value[key]) for key in sorted(value)}


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_deep_copy_value(item) for item in value)
    return copy.deepcopy(value)


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            item = value[key]
            if _looks_sensitive_key(key):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(item, key)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "GuardrailConfig",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ScopeTaskConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
