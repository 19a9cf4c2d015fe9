"""
guardrail-suite: automation script policy rules.

File: src/guardrail_suite/verification_plane/policy_rules.py

Purpose
- Static rules applied to each automation script's source text.

What should be included in this file
- Header rule: ``@since`` / ``@version`` tags in the module docstring and the
  ``@deprecated since=YYYY-MM-DD`` expiry check.
- CLI-contract rule: the five canonical flags and interactive prompt detection.
- Dangerous-pattern rule: privilege escalation, recursive root deletion, dynamic
  code execution, secret-named environment reads, raw subprocess invocation.
- Size rule: script and function length warnings.

Functional requirements
- Every rule reports all findings; nothing stops at the first one.
- Size findings are warnings only.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from enum import StrEnum
from typing import Final

from guardrail_suite.constants import (
    DEPRECATION_MAX_AGE_DAYS,
    MAX_FUNCTION_LINES,
    MAX_SCRIPT_LINES,
    REQUIRED_CLI_FLAGS,
)

SANCTIONED_RUNNER: Final[str] = "guardrail_suite.sandbox.process_runner"


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class RuleId(StrEnum):
    SYNTAX = "syntax"
    HEADER = "header"
    CLI_CONTRACT = "cli-contract"
    DANGEROUS_PATTERN = "dangerous-pattern"
    SIZE = "size"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """One finding produced by a policy rule."""

    severity: Severity
    rule: RuleId
    message: str
    line: int | None = None

    @property
    def sort_key(self) -> tuple[int, int, str, str]:
        severity_rank = 0 if self.severity is Severity.ERROR else 1
        return (severity_rank, self.line or 0, self.rule.value, self.message)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "severity": self.severity.value,
            "rule": self.rule.value,
            "message": self.message,
        }
        if self.line is not None:
            payload["line"] = self.line
        return payload


@dataclass(frozen=True, slots=True)
class ArtifactHeader:
    """Metadata tags parsed from a script's module docstring."""

    since: str | None
    version: str | None
    deprecated_since: date | None = None
    deprecated_raw: str | None = None

    def deprecation_age_days(self, today: date) -> int | None:
        if self.deprecated_since is None:
            return None
        return (today - self.deprecated_since).days

    def is_expired(self, today: date, *, max_age_days: int = DEPRECATION_MAX_AGE_DAYS) -> bool:
        age = self.deprecation_age_days(today)
        return age is not None and age > max_age_days


@dataclass(frozen=True, slots=True)
class RuleContext:
    """Per-run rule parameters."""

    today: date
    max_script_lines: int = MAX_SCRIPT_LINES
    max_function_lines: int = MAX_FUNCTION_LINES
    deprecation_max_days: int = DEPRECATION_MAX_AGE_DAYS


@dataclass(frozen=True, slots=True)
class ScriptSource:
    """Source text plus its parsed module, when it parses."""

    path: str
    text: str
    is_library: bool = False
    tree: ast.Module | None = None
    syntax_error: str | None = None

    @classmethod
    def parse(cls, path: str, text: str, *, is_library: bool = False) -> ScriptSource:
        try:
            tree = ast.parse(text, filename=path)
        except SyntaxError as exc:
            detail = f"{exc.msg} (line {exc.lineno})" if exc.lineno else exc.msg
            return cls(path=path, text=text, is_library=is_library, syntax_error=detail)
        return cls(path=path, text=text, is_library=is_library, tree=tree)

    @property
    def line_count(self) -> int:
        return len(self.text.splitlines())

    def docstring(self) -> str | None:
        if self.tree is not None:
            return ast.get_docstring(self.tree, clean=False)
        match = _LEADING_DOCSTRING.match(self.text)
        return match.group("body") if match is not None else None

    def docstring_lines(self) -> range:
        if self.tree is None or not self.tree.body:
            return range(0)
        first = self.tree.body[0]
        if (
            isinstance(first, ast.Expr)
            and isinstance(first.value, ast.Constant)
            and isinstance(first.value.value, str)
        ):
            return range(first.lineno, (first.end_lineno or first.lineno) + 1)
        return range(0)


@dataclass(frozen=True, slots=True)
class _Pattern:
    regex: re.Pattern[str]
    message: str


_LEADING_DOCSTRING: Final[re.Pattern[str]] = re.compile(
    r"\A(?:[ \t]*(?:#[^\n]*)?\n)*[ \t]*[rRuU]?(?P<quote>\"\"\"|''')(?P<body>.*?)(?P=quote)",
    re.DOTALL,
)
_SINCE_TAG: Final[re.Pattern[str]] = re.compile(r"@since\b[ \t]*(?P<value>\S*)")
_VERSION_TAG: Final[re.Pattern[str]] = re.compile(r"@version\b[ \t]*(?P<value>\S*)")
_DEPRECATED_TAG: Final[re.Pattern[str]] = re.compile(
    r"@deprecated\s+since=(?P<value>\S*)"
)
_ISO_DATE: Final[re.Pattern[str]] = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_INTERACTIVE_PATTERNS: Final[tuple[tuple[str, re.Pattern[str]], ...]] = (
    ("input(", re.compile(r"(?<![\w.])input\s*\(")),
    ("getpass", re.compile(r"\bgetpass\b")),
    ("click.prompt", re.compile(r"\bclick\.(?:prompt|confirm)\s*\(")),
    ("questionary", re.compile(r"\bquestionary\b")),
    ("inquirer", re.compile(r"\binquirer\b")),
    ("sys.stdin.readline", re.compile(r"\bsys\.stdin\.readlines?\s*\(")),
    ("Prompt.ask", re.compile(r"\b(?:Prompt|Confirm|IntPrompt)\.ask\s*\(")),
)

_DANGEROUS_PATTERNS: Final[tuple[_Pattern, ...]] = (
    _Pattern(
        re.compile(r"(?:\bsudo\s+|[\"']sudo[\"'])"),
        "Detected 'sudo' usage",
    ),
    _Pattern(
        re.compile(
            r"(?:\brm\s+-(?:rf|fr|Rf|fR)\s+/"
            r"|\bshutil\.rmtree\(\s*(?:[\"']/[\"']|Path\([\"']/[\"']\)))"
        ),
        "Detected dangerous recursive delete pattern",
    ),
    _Pattern(
        re.compile(r"(?<![\w.])(?:eval|exec)\s*\("),
        "Detected dynamic code execution usage",
    ),
    _Pattern(
        re.compile(
            r"\bos\.(?:environ(?:\.get)?\s*[\[(]|getenv\s*\()\s*[\"']"
            r"(?i:[a-z0-9_]*(?:token|secret|key|password)[a-z0-9_]*)[\"']"
        ),
        "Potential secret in code",
    ),
    _Pattern(
        re.compile(
            r"\b(?:subprocess\.(?:run|call|check_call|check_output|Popen|getoutput|getstatusoutput)"
            r"|os\.(?:system|popen|spawn\w*|exec[lv]p?e?)"
            r"|asyncio\.create_subprocess_(?:exec|shell))\s*\("
        ),
        f"Detected raw subprocess invocation - use {SANCTIONED_RUNNER} instead",
    ),
)

RuleCheck = Callable[[ScriptSource, RuleContext], list[ValidationIssue]]


def parse_header(script: ScriptSource) -> ArtifactHeader | None:
    """Parse ``@since``/``@version``/``@deprecated`` tags; ``None`` without a docstring."""

    docstring = script.docstring()
    if docstring is None:
        return None

    since_match = _SINCE_TAG.search(docstring)
    version_match = _VERSION_TAG.search(docstring)
    deprecated_match = _DEPRECATED_TAG.search(docstring)

    deprecated_since: date | None = None
    deprecated_raw: str | None = None
    if deprecated_match is not None:
        deprecated_raw = deprecated_match.group("value")
        if _is_iso_date(deprecated_raw):
            deprecated_since = date.fromisoformat(deprecated_raw)

    return ArtifactHeader(
        since=since_match.group("value") if since_match is not None else None,
        version=version_match.group("value") if version_match is not None else None,
        deprecated_since=deprecated_since,
        deprecated_raw=deprecated_raw,
    )


def check_syntax(script: ScriptSource, context: RuleContext) -> list[ValidationIssue]:
    _ = context
    if script.syntax_error is None:
        return []
    return [_error(RuleId.SYNTAX, f"Unable to parse script: {script.syntax_error}")]


def check_header(script: ScriptSource, context: RuleContext) -> list[ValidationIssue]:
    header = parse_header(script)
    if header is None:
        return [_error(RuleId.HEADER, "Missing header docstring")]

    issues: list[ValidationIssue] = []
    if header.since is None:
        issues.append(_error(RuleId.HEADER, "Missing @since tag in header"))
    elif not _is_iso_date(header.since):
        issues.append(_error(RuleId.HEADER, f"Invalid @since date in header: {header.since!r}"))
    if header.version is None:
        issues.append(_error(RuleId.HEADER, "Missing @version tag in header"))
    elif not header.version:
        issues.append(_error(RuleId.HEADER, "Empty @version tag in header"))

    if header.deprecated_raw is not None and header.deprecated_since is None:
        issues.append(
            _error(RuleId.HEADER, f"Invalid @deprecated date in header: {header.deprecated_raw!r}")
        )
    deprecated_since = header.deprecated_since
    if deprecated_since is not None and header.is_expired(
        context.today, max_age_days=context.deprecation_max_days
    ):
        issues.append(
            _error(
                RuleId.HEADER,
                f"Script deprecated since {deprecated_since.isoformat()} "
                f"(>{context.deprecation_max_days} days ago) - should be removed",
            )
        )
    return issues


def check_cli_contract(script: ScriptSource, context: RuleContext) -> list[ValidationIssue]:
    _ = context
    issues: list[ValidationIssue] = []
    if not script.is_library:
        for flag in REQUIRED_CLI_FLAGS:
            if flag not in script.text:
                issues.append(_error(RuleId.CLI_CONTRACT, f"Missing required CLI flag: {flag}"))

    skipped = script.docstring_lines()
    for label, pattern in _INTERACTIVE_PATTERNS:
        line = _first_code_match(script, pattern, skipped)
        if line is not None:
            issues.append(
                _error(
                    RuleId.CLI_CONTRACT,
                    f"Detected interactive prompt pattern: {label} - violates CLI contract",
                    line=line,
                )
            )
    return issues


def check_dangerous_patterns(
    script: ScriptSource, context: RuleContext
) -> list[ValidationIssue]:
    _ = context
    skipped = script.docstring_lines()
    issues: list[ValidationIssue] = []
    for item in _DANGEROUS_PATTERNS:
        line = _first_code_match(script, item.regex, skipped)
        if line is not None:
            issues.append(_error(RuleId.DANGEROUS_PATTERN, item.message, line=line))
    return issues


def check_size(script: ScriptSource, context: RuleContext) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    line_count = script.line_count
    if line_count > context.max_script_lines:
        issues.append(
            _warning(
                RuleId.SIZE,
                f"Script is {line_count} lines (>{context.max_script_lines} LOC limit)",
            )
        )

    if script.tree is None:
        return issues
    for node in ast.walk(script.tree):
        if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            continue
        start = node.decorator_list[0].lineno if node.decorator_list else node.lineno
        length = (node.end_lineno or node.lineno) - start + 1
        if length > context.max_function_lines:
            issues.append(
                _warning(
                    RuleId.SIZE,
                    f"Function {node.name}() exceeds {context.max_function_lines} lines "
                    f"({length} lines)",
                    line=node.lineno,
                )
            )
    return issues


RULES: Final[tuple[RuleCheck, ...]] = (
    check_syntax,
    check_header,
    check_cli_contract,
    check_dangerous_patterns,
    check_size,
)


def evaluate_script(script: ScriptSource, context: RuleContext) -> tuple[ValidationIssue, ...]:
    """Apply every rule to ``script`` and return all findings in stable order."""

    issues: list[ValidationIssue] = []
    for rule in RULES:
        issues.extend(rule(script, context))
    return tuple(sorted(issues, key=lambda item: item.sort_key))


def _first_code_match(
    script: ScriptSource, pattern: re.Pattern[str], skipped: range
) -> int | None:
    for number, raw_line in enumerate(script.text.splitlines(), start=1):
        if number in skipped:
            continue
        if raw_line.lstrip().startswith("#"):
            continue
        if pattern.search(raw_line):
            return number
    return None


def _is_iso_date(value: str) -> bool:
    if not _ISO_DATE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _error(rule: RuleId, message: str, *, line: int | None = None) -> ValidationIssue:
    return ValidationIssue(severity=Severity.ERROR, rule=rule, message=message, line=line)


def _warning(rule: RuleId, message: str, *, line: int | None = None) -> ValidationIssue:
    return ValidationIssue(severity=Severity.WARNING, rule=rule, message=message, line=line)


__all__ = [
    "ArtifactHeader",
    "RULES",
    "RuleContext",
    "RuleId",
    "SANCTIONED_RUNNER",
    "ScriptSource",
    "Severity",
    "ValidationIssue",
    "check_cli_contract",
    "check_dangerous_patterns",
    "check_header",
    "check_size",
    "check_syntax",
    "evaluate_script",
    "parse_header",
]
