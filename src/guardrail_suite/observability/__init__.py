"""Observability helpers: structured stderr logging."""

from guardrail_suite.observability.logging import (
    TRACE,
    LoggingConfig,
    configure_structlog,
    generate_run_id,
    resolve_log_level,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "TRACE",
    "configure_structlog",
    "generate_run_id",
    "resolve_log_level",
    "setup_logging",
    "shutdown_logging",
]
