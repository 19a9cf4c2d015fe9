"""Configuration loading, schema validation and lifecycle rules."""

from guardrail_suite.config.lifecycle import (
    LifecycleConfig,
    LifecycleConfigError,
    canonicalize_status,
    clear_lifecycle_cache,
    default_lifecycle_config,
    load_lifecycle_config,
)
from guardrail_suite.config.loader import (
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
)
from guardrail_suite.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DEFAULT_CONFIG",
    "ENV_PREFIX",
    "LifecycleConfig",
    "LifecycleConfigError",
    "assert_valid_config",
    "canonicalize_status",
    "clear_lifecycle_cache",
    "default_config",
    "default_lifecycle_config",
    "dump_effective_config",
    "load_config",
    "load_lifecycle_config",
    "merge_config",
    "redact_config",
    "validate_config",
]
