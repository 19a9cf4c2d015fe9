"""Executable CLI entrypoints for ``guardrail_suite``."""

from __future__ import annotations

import sys
import traceback
from typing import TYPE_CHECKING

from guardrail_suite.constants import ExitCode

if TYPE_CHECKING:
    from collections.abc import Sequence

_KNOWN_EXIT_CODES = frozenset(int(code) for code in ExitCode)


def cli_entrypoint(argv: Sequence[str] | None = None, *, tool: str | None = None) -> int:
    """Entrypoint used by ``python -m guardrail_suite`` and the console scripts."""

    try:
        from guardrail_suite.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv, tool=tool))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = _route_exception(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def suite_entrypoint() -> int:
    return cli_entrypoint(tool="suite")


def policy_lint_entrypoint() -> int:
    return cli_entrypoint(tool="policy-lint")


def branch_guard_entrypoint() -> int:
    return cli_entrypoint(tool="branch-guard")


def commit_guard_entrypoint() -> int:
    return cli_entrypoint(tool="commit-guard")


def pr_title_guard_entrypoint() -> int:
    return cli_entrypoint(tool="pr-title-guard")


def drift_check_entrypoint() -> int:
    return cli_entrypoint(tool="drift-check")


def script_smoke_entrypoint() -> int:
    return cli_entrypoint(tool="script-smoke")


def _normalize_exit_code(raw_code: object) -> int:
    if isinstance(raw_code, int) and raw_code in _KNOWN_EXIT_CODES:
        return raw_code
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.EXECUTION_ERROR)


def _route_exception(exc: BaseException) -> ExitCode:
    from guardrail_suite.config.loader import ConfigLoadError
    from guardrail_suite.config.schema import ConfigValidationError
    from guardrail_suite.errors import GuardrailError

    for item in _iter_exception_chain(exc):
        if isinstance(item, GuardrailError):
            return item.exit_code
        if isinstance(item, (ConfigLoadError, ConfigValidationError)):
            return ExitCode.CONFIG_ERROR
        if isinstance(item, (FileNotFoundError, NotADirectoryError, PermissionError, ValueError)):
            return ExitCode.CONFIG_ERROR
    return ExitCode.EXECUTION_ERROR


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None:
        marker = id(current)
        if marker in seen:
            break
        seen.add(marker)
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
            continue
        if current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
            continue
        break
    return items


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.EXECUTION_ERROR and not _is_expected(exc):
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    _write_stderr(f"error: {str(exc).strip() or exc.__class__.__name__}")


def _is_expected(exc: BaseException) -> bool:
    from guardrail_suite.errors import GuardrailError

    return any(isinstance(item, GuardrailError) for item in _iter_exception_chain(exc))


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = [
    "branch_guard_entrypoint",
    "cli_entrypoint",
    "commit_guard_entrypoint",
    "drift_check_entrypoint",
    "policy_lint_entrypoint",
    "pr_title_guard_entrypoint",
    "script_smoke_entrypoint",
    "suite_entrypoint",
]
