"""Module entrypoint for ``python -m guardrail_suite``."""

from __future__ import annotations

from guardrail_suite.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
