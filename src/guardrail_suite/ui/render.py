"""Output rendering for the guardrail CLI.

File: src/guardrail_suite/ui/render.py

Purpose
- Provide a thin rendering layer for human-readable CLI output on stdout.
- Respect the NO_COLOR environment variable.

What should be included in this file
- CLIRenderer class with methods for common output patterns.
- Factory function to create a renderer with appropriate settings.

Functional requirements
- Plain-text rendering must always work without external dependencies.
- Machine-readable JSON output never passes through this layer.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

_GREEN = "\x1b[32m"
_RED = "\x1b[31m"
_YELLOW = "\x1b[33m"
_RESET = "\x1b[0m"


def _color_allowed(no_color_flag: bool, stream: TextIO | None) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    target = stream if stream is not None else sys.stdout
    return hasattr(target, "isatty") and target.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces clean, deterministic plain-text output; status markers are colored
    only on a terminal.
    """

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream
        self._color = _color_allowed(no_color, stream)

    def heading(self, text: str) -> None:
        self._print(text)

    def kv(self, key: str, value: object) -> None:
        """Print a key: value pair."""

        self._print(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._print(line)

    def lines(self, lines: Sequence[str]) -> None:
        for line in lines:
            self._print(line)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._print(f"\n{title}")

    def warning(self, text: str) -> None:
        self._print(f"  {self._paint('Warning', _YELLOW)}: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        """Print a bulleted list."""

        for entry in entries:
            self._print(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self._print(f"  {_pad(list(headers))}")
        self._print(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self._print(f"  {_pad(list(row))}")

    def ok(self, label: str) -> None:
        """Print a passing check."""

        self._print(f"  {self._paint('OK', _GREEN)}  {label}")

    def fail(self, label: str) -> None:
        """Print a failing check."""

        self._print(f"  {self._paint('FAIL', _RED)}  {label}")

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}" if self._color else text

    def _print(self, text: str) -> None:
        print(text, file=self._stream if self._stream is not None else sys.stdout)


def create_renderer(
    *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None
) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer"]
