"""Structured stderr logging with key=value or JSON-lines output and redaction support."""

from __future__ import annotations

import json
import logging
import math
import os
import re
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, TextIO
from uuid import uuid4

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

TRACE: Final[int] = 5
logging.addLevelName(TRACE, "TRACE")

LOG_LEVEL_ENV: Final[str] = "LOG_LEVEL"
CLI_LOG_LEVELS: Final[tuple[str, ...]] = ("trace", "debug", "info", "warn", "error")

_REDACTED_VALUE: Final[str] = "***REDACTED***"
_DEFAULT_LOGGER_NAME: Final[str] = "guardrail_suite"
_HANDLER_MARKER: Final[str] = "_guardrail_handler"

_LEVEL_ALIASES: Final[dict[str, int]] = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|client_secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")
_GITHUB_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})\b"
)

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for process-wide stderr logging."""

    run_id: str
    level: int | str = "INFO"
    log_format: str = "text"
    logger_name: str = _DEFAULT_LOGGER_NAME
    redact: bool = True
    stream: TextIO | None = None


def generate_run_id() -> str:
    """Return a sortable run identifier (UTC timestamp plus random hex suffix)."""

    stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}-{uuid4().hex[:8]}"


def resolve_log_level(
    cli_level: str | None = None,
    *,
    verbose: bool = False,
    environ: Mapping[str, str] | None = None,
    configured: str | None = None,
) -> int:
    """Resolve the effective level: ``--log-level`` > ``--verbose`` > ``LOG_LEVEL`` > config."""

    if cli_level:
        return parse_log_level(cli_level)
    if verbose:
        return logging.DEBUG
    env_map = os.environ if environ is None else environ
    env_level = env_map.get(LOG_LEVEL_ENV, "").strip()
    if env_level and env_level.lower() in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[env_level.lower()]
    if configured:
        return parse_log_level(configured)
    return logging.INFO


def parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    normalized = value.strip().lower()
    if normalized in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[normalized]
    raise ValueError(f"unsupported logging level {value!r}")


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    level: int | str | None = None,
    stream: TextIO | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Configure guardrail logging from an ``[observability]`` mapping and return the logger.

    Parameters
    ----------
    observability_config:
        Mapping compatible with ``[observability]`` settings in ``guardrails.toml``.
    run_id:
        Correlation identifier stamped on every record.
    level:
        Already-resolved level overriding the configured one.
    stream:
        Destination stream; defaults to ``sys.stderr`` at emit time.
    """

    cfg = dict(observability_config or {})
    raw_level = cfg.get("log_level", "INFO")
    configured_level: int | str = raw_level if isinstance(raw_level, (int, str)) else "INFO"
    raw_format = cfg.get("log_format", "text")
    log_format = raw_format if isinstance(raw_format, str) else "text"

    return setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            level=level if level is not None else configured_level,
            log_format=log_format,
            logger_name=logger_name,
            redact=bool(cfg.get("redact_secrets", True)),
            stream=stream,
        )
    )


def setup_structured_logging(config: LoggingConfig) -> logging.Logger:
    """Install one stream handler on the package logger, replacing any previous one."""

    if not config.run_id.strip():
        raise ValueError("run_id must not be empty")
    level = parse_log_level(config.level)
    redactor = default_log_redactor if config.redact else _identity_redactor

    formatter: logging.Formatter
    if config.log_format == "json":
        formatter = _JsonLineFormatter(redactor=redactor, run_id=config.run_id)
    elif config.log_format == "text":
        formatter = _KeyValueFormatter(redactor=redactor)
    else:
        raise ValueError(f"unsupported log format {config.log_format!r}")

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False

    for existing in list(logger.handlers):
        if getattr(existing, _HANDLER_MARKER, False):
            logger.removeHandler(existing)
            existing.close()

    handler = _StderrHandler(config.stream)
    setattr(handler, _HANDLER_MARKER, True)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    configure_structlog()
    return logger


def configure_structlog() -> None:
    """Route ``structlog`` decision logs through the stdlib handlers installed here.

    Event keyword arguments become ``extra`` fields, so both output formats render
    them like any other structured field.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def shutdown_logging(logger_name: str = _DEFAULT_LOGGER_NAME) -> None:
    """Remove handlers installed by :func:`setup_structured_logging`."""

    logger = logging.getLogger(logger_name)
    for existing in list(logger.handlers):
        if getattr(existing, _HANDLER_MARKER, False):
            existing.flush()
            logger.removeHandler(existing)
            existing.close()
    logger.propagate = True


def trace(logger: logging.Logger, message: str, *args: object, **kwargs: object) -> None:
    """Emit ``message`` at TRACE level."""

    if logger.isEnabledFor(TRACE):
        logger.log(TRACE, message, *args, **kwargs)  # type: ignore[arg-type]


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Default deep redaction for secret-looking keys and token-shaped strings."""

    return _redact_value(value, key_context=None)


class _StderrHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler that resolves ``sys.stderr`` lazily so captured streams work."""

    def __init__(self, stream: TextIO | None) -> None:
        super().__init__(stream if stream is not None else sys.stderr)
        self._explicit = stream is not None

    def emit(self, record: logging.LogRecord) -> None:
        if not self._explicit:
            self.stream = sys.stderr
        super().emit(record)


class _JsonLineFormatter(logging.Formatter):
    """Formatter that emits canonical JSON objects per log line."""

    def __init__(self, *, redactor: LogRedactor, run_id: str) -> None:
        super().__init__()
        self._redactor = redactor
        self._run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "run_id": self._run_id,
            "message": _coerce_log_message(
                self._redactor(_normalize_json_value(record.getMessage()))
            ),
        }

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = self._redactor(_normalize_json_value(extras))

        if record.exc_info is not None:
            event["exception"] = _coerce_log_message(
                self._redactor(_normalize_json_value(self.formatException(record.exc_info)))
            )

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _KeyValueFormatter(logging.Formatter):
    """Formatter that emits ``[LEVEL] message key=value`` lines."""

    def __init__(self, *, redactor: LogRedactor) -> None:
        super().__init__()
        self._redactor = redactor

    def format(self, record: logging.LogRecord) -> str:
        message = _coerce_log_message(self._redactor(_normalize_json_value(record.getMessage())))
        parts = [f"[{record.levelname}]", message]

        extras = self._redactor(_normalize_json_value(_extract_extra_fields(record)))
        if isinstance(extras, dict):
            for key in sorted(extras):
                parts.append(f"{key}={_format_kv_value(extras[key])}")

        line = " ".join(part for part in parts if part)
        if record.exc_info is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _format_kv_value(value: JSONValue) -> str:
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False) if (" " in value or not value) else value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce_log_message(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    fields: dict[str, JSONValue] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS or key.startswith("_"):
            continue
        fields[key] = _normalize_json_value(value)
    return fields


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if math.isfinite(value):
            return value
        return _REDACTED_VALUE
    if isinstance(value, datetime):
        if value.tzinfo is None or value.utcoffset() is None:
            normalized = value.replace(tzinfo=UTC)
        else:
            normalized = value.astimezone(UTC)
        return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize_json_value(item) for item in value), key=repr)
    return repr(value)


def _identity_redactor(value: JSONValue) -> JSONValue:
    return value


def _redact_value(value: JSONValue, *, key_context: str | None) -> JSONValue:
    if key_context is not None and _requires_redaction_for_key(key_context):
        return _REDACTED_VALUE
    if isinstance(value, str):
        return _redact_string(value)
    if isinstance(value, list):
        return [_redact_value(item, key_context=None) for item in value]
    if isinstance(value, dict):
        return {key: _redact_value(item, key_context=key) for key, item in value.items()}
    return value


def _requires_redaction_for_key(key: str) -> bool:
    key_lower = key.lower()
    return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


def _redact_string(text: str) -> str:
    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", text
    )
    redacted = _BEARER_TOKEN_PATTERN.sub(f"Bearer {_REDACTED_VALUE}", redacted)
    return _GITHUB_TOKEN_PATTERN.sub(_REDACTED_VALUE, redacted)


__all__ = [
    "CLI_LOG_LEVELS",
    "JSONScalar",
    "JSONValue",
    "LOG_LEVEL_ENV",
    "LogRedactor",
    "LoggingConfig",
    "TRACE",
    "configure_structlog",
    "default_log_redactor",
    "generate_run_id",
    "parse_log_level",
    "resolve_log_level",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
    "trace",
]
