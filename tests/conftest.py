"""Shared pytest fixtures for guardrail-suite tests."""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from guardrail_suite.config.lifecycle import clear_lifecycle_cache
from guardrail_suite.observability.logging import configure_structlog, shutdown_logging


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset caches and logging handlers so tests never observe each other."""

    for name in ("LOG_LEVEL", "NO_COLOR", "GH_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    for name in [key for key in os.environ if key.startswith("GUARDRAIL_")]:
        monkeypatch.delenv(name)
    clear_lifecycle_cache()
    configure_structlog()
    yield
    shutdown_logging()
    clear_lifecycle_cache()
