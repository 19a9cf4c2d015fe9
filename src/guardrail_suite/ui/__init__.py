"""CLI surface: argument routing and plain-text rendering."""

from guardrail_suite.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIRenderer", "create_renderer"]
