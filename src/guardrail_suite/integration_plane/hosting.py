"""Code-hosting boundary: pull requests and project tracking status via the ``gh`` CLI."""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from guardrail_suite.errors import ExecutionError, PreconditionFailed

_PR_FIELDS: Final[str] = "number,title,headRefName,state,url"
_PROJECT_ITEM_LIMIT: Final[int] = 1000
_TITLE_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\[([^\]]+)\]")
_PRECONDITION_MARKERS: Final[tuple[str, ...]] = (
    "gh auth login",
    "not logged in",
    "authentication",
    "http 401",
    "bad credentials",
    "missing required scopes",
    "requires authentication",
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HostingResult:
    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


HostingRunner = Callable[[Sequence[str], Path], HostingResult]


@dataclass(frozen=True, slots=True)
class PullRequest:
    number: int
    title: str
    head_ref: str
    state: str
    url: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> PullRequest:
        number = payload.get("number")
        title = payload.get("title")
        if isinstance(number, bool) or not isinstance(number, int) or not isinstance(title, str):
            raise ExecutionError(f"unexpected pull request payload: {sorted(payload)}")
        return cls(
            number=number,
            title=title,
            head_ref=str(payload.get("headRefName") or ""),
            state=str(payload.get("state") or ""),
            url=str(payload.get("url") or ""),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "number": self.number,
            "title": self.title,
            "head_ref": self.head_ref,
            "state": self.state,
            "url": self.url,
        }


class HostingClient:
    """Read-only ``gh`` CLI queries."""

    def __init__(
        self,
        repo_path: Path | str,
        *,
        cli: str = "gh",
        runner: HostingRunner | None = None,
        token: str | None = None,
    ) -> None:
        self.repo_path = Path(repo_path).expanduser().resolve()
        self._cli = cli
        self._runner = runner
        self._token = token
        self._authenticated = False

    def ensure_authenticated(self) -> None:
        """Fail with :class:`PreconditionFailed` when ``gh`` is missing or logged out."""

        if self._authenticated:
            return
        if self._runner is None and shutil.which(self._cli) is None:
            raise PreconditionFailed(
                f"{self._cli} CLI not found; install it to query pull requests and projects"
            )
        result = self._run(("auth", "status"))
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip().splitlines()
            hint = detail[0] if detail else "not authenticated"
            raise PreconditionFailed(
                f"{self._cli} is not authenticated ({hint}); run '{self._cli} auth login' "
                "or export GH_TOKEN"
            )
        self._authenticated = True

    def find_open_pull_request(self, branch: str) -> PullRequest | None:
        """Return the open pull request whose head is ``branch``, if any."""

        self.ensure_authenticated()
        payload = self._run_json(
            (
                "pr",
                "list",
                "--state",
                "open",
                "--head",
                branch,
                "--json",
                _PR_FIELDS,
                "--limit",
                "1",
            )
        )
        if not isinstance(payload, list):
            raise ExecutionError("gh pr list returned a non-list payload")
        if not payload:
            return None
        first = payload[0]
        if not isinstance(first, Mapping):
            raise ExecutionError("gh pr list returned a malformed entry")
        return PullRequest.from_payload(first)

    def get_pull_request(self, number: int) -> PullRequest:
        self.ensure_authenticated()
        payload = self._run_json(("pr", "view", str(number), "--json", _PR_FIELDS))
        if not isinstance(payload, Mapping):
            raise ExecutionError("gh pr view returned a non-object payload")
        return PullRequest.from_payload(payload)

    def project_statuses(
        self,
        project_number: int,
        *,
        owner: str,
        status_field: str = "status",
        id_field: str = "artifact id",
    ) -> dict[str, str]:
        """Map artifact id -> tracked status for every item of a project board.

        The id comes from the ``id_field`` custom field, or else from a leading
        ``[ID]`` in the item title.
        """

        self.ensure_authenticated()
        payload = self._run_json(
            (
                "project",
                "item-list",
                str(project_number),
                "--owner",
                owner,
                "--format",
                "json",
                "--limit",
                str(_PROJECT_ITEM_LIMIT),
            )
        )
        items = payload.get("items") if isinstance(payload, Mapping) else None
        if not isinstance(items, list):
            raise ExecutionError("gh project item-list returned no items array")

        statuses: dict[str, str] = {}
        for raw_item in items:
            if not isinstance(raw_item, Mapping):
                continue
            fields = {str(key).lower(): value for key, value in raw_item.items()}
            artifact_id = _item_artifact_id(fields, id_field.lower())
            status = fields.get(status_field.lower())
            if artifact_id is None or not isinstance(status, str):
                continue
            statuses[artifact_id] = status
        logger.debug("project statuses loaded", extra={"items": len(statuses)})
        return statuses

    def _run_json(self, args: Sequence[str]) -> object:
        result = self._run(args)
        if result.returncode != 0:
            stderr = result.stderr.strip()
            if any(marker in stderr.lower() for marker in _PRECONDITION_MARKERS):
                raise PreconditionFailed(f"{self._cli} {' '.join(args[:2])}: {stderr}")
            raise ExecutionError(
                f"{self._cli} command failed ({result.returncode}): "
                f"{' '.join(result.command)}: {stderr}"
            )
        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError as exc:
            raise ExecutionError(f"{self._cli} returned invalid JSON: {exc}") from exc

    def _run(self, args: Sequence[str]) -> HostingResult:
        command = (self._cli, *args)
        if self._runner is not None:
            return self._runner(command, self.repo_path)
        env: dict[str, str] | None = None
        if self._token:
            env = os.environ.copy()
            env["GH_TOKEN"] = self._token
        completed = subprocess.run(
            command,
            cwd=self.repo_path,
            env=env,
            text=True,
            capture_output=True,
            check=False,
        )
        return HostingResult(
            command=command,
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


def _item_artifact_id(fields: Mapping[str, object], id_field: str) -> str | None:
    explicit = fields.get(id_field)
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()

    title = fields.get("title")
    content = fields.get("content")
    if not isinstance(title, str) and isinstance(content, Mapping):
        title = content.get("title")
    if not isinstance(title, str):
        return None
    match = _TITLE_ID_PATTERN.match(title.strip())
    return match.group(1).strip() if match is not None else None


__all__ = [
    "HostingClient",
    "HostingResult",
    "HostingRunner",
    "PullRequest",
]
