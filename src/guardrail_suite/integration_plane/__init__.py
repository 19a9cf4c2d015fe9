"""External boundaries: git and the code-hosting CLI."""

from guardrail_suite.integration_plane.git_client import (
    CommitSubject,
    GitClient,
    GitCommandError,
    GitRangeNotFound,
    GitResult,
)
from guardrail_suite.integration_plane.hosting import HostingClient, HostingResult, PullRequest

__all__ = [
    "CommitSubject",
    "GitClient",
    "GitCommandError",
    "GitRangeNotFound",
    "GitResult",
    "HostingClient",
    "HostingResult",
    "PullRequest",
]
