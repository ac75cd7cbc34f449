"""
GitHub backend via the `gh` CLI.

Requires `gh` to be installed and authenticated (`gh auth login` or
GH_TOKEN in the environment). Request bodies are sent as JSON on stdin
so issue bodies of any size and content survive intact.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from typing import TYPE_CHECKING, Any

from beads_bridge.core.backends.base import register_backend
from beads_bridge.core.backends.models import ExternalComment, ExternalIssue, LinkType
from beads_bridge.core.errors import (
    AuthenticationError,
    BackendError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from beads_bridge.core.refs.models import BackendKind

if TYPE_CHECKING:
    from beads_bridge.core.config.models import BridgeConfig

logger = logging.getLogger(__name__)

_ISSUE_ID = re.compile(r"^(?:(?P<repo>[\w.-]+/[\w.-]+)#)?#?(?P<number>\d+)$")

_LINK_VERBS = {
    LinkType.BLOCKS: "Blocks",
    LinkType.PARENT_CHILD: "Parent of",
    LinkType.RELATED: "Related to",
}


@register_backend(BackendKind.GITHUB)
class GitHubBackend:
    """
    Backend for GitHub issues.

    Example:
        >>> backend = GitHubBackend(default_repository="acme/app")
        >>> issue = backend.get_issue("acme/app#5")
        >>> backend.add_comment(issue.id, "Progress update")
    """

    def __init__(
        self,
        gh_command: str = "gh",
        timeout: int = 60,
        default_repository: str | None = None,
    ) -> None:
        """
        Args:
            gh_command: gh executable name or path
            timeout: Seconds before a single gh call is abandoned
            default_repository: owner/repo used for bare issue numbers
        """
        self.gh_command = gh_command
        self.timeout = timeout
        self.default_repository = default_repository

    @classmethod
    def from_config(cls, config: BridgeConfig) -> GitHubBackend:
        return cls(
            gh_command=config.github.gh_command,
            timeout=config.github.timeout_seconds,
            default_repository=config.github.repository,
        )

    @property
    def name(self) -> str:
        return BackendKind.GITHUB.value

    def _split_issue_id(self, issue_id: str) -> tuple[str, int]:
        """Split ``owner/repo#N`` (or a bare number) into repo and number."""
        match = _ISSUE_ID.match(issue_id.strip())
        if not match:
            raise ValidationError(f"Invalid GitHub issue id: '{issue_id}'", issue_id=issue_id)
        repository = match["repo"] or self.default_repository
        if not repository:
            raise ValidationError(
                f"Issue id '{issue_id}' has no repository and no default is configured",
                issue_id=issue_id,
            )
        return repository, int(match["number"])

    @staticmethod
    def _raise_for_stderr(stderr: str, what: str) -> None:
        """Map gh error output to a bridge error."""
        lowered = stderr.lower()
        if "rate limit" in lowered:
            raise RateLimitError(f"GitHub rate limit exceeded while {what}: {stderr}")
        if "404" in stderr or "not found" in lowered:
            raise NotFoundError(f"Not found while {what}: {stderr}")
        if (
            "401" in stderr
            or "403" in stderr
            or "bad credentials" in lowered
            or "gh auth login" in lowered
        ):
            raise AuthenticationError(f"GitHub authentication failed while {what}: {stderr}")
        raise BackendError(f"GitHub request failed while {what}: {stderr or 'unknown error'}")

    def _run_gh(self, args: list[str], what: str, payload: dict[str, Any] | None = None) -> Any:
        """
        Run a gh command and parse its JSON output.

        Args:
            args: Arguments after the gh executable
            what: Description used in error messages
            payload: JSON body sent on stdin (requires ``--input -`` in args)

        Raises:
            BackendError: If the call fails (NotFoundError, AuthenticationError,
                or RateLimitError for those cases)
        """
        cmd = [self.gh_command] + args
        logger.debug("Running gh command: %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                input=json.dumps(payload) if payload is not None else None,
            )
        except subprocess.TimeoutExpired as e:
            raise BackendError(
                f"gh timed out after {self.timeout}s while {what}", code="TIMEOUT"
            ) from e
        except FileNotFoundError as e:
            raise BackendError(
                f"{self.gh_command} not found in PATH. Install: https://cli.github.com/",
                code="NOT_CONFIGURED",
            ) from e

        if result.returncode != 0:
            self._raise_for_stderr(result.stderr.strip() if result.stderr else "", what)

        if not result.stdout.strip():
            return {}
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise BackendError(f"Failed to parse GitHub API response while {what}: {e}") from e

    def get_issue(self, issue_id: str) -> ExternalIssue:
        repository, number = self._split_issue_id(issue_id)
        data = self._run_gh(
            ["api", f"repos/{repository}/issues/{number}"],
            f"fetching {repository}#{number}",
        )
        return ExternalIssue.from_github(data, repository)

    def update_issue(
        self, issue_id: str, body: str | None = None, title: str | None = None
    ) -> ExternalIssue:
        repository, number = self._split_issue_id(issue_id)
        payload: dict[str, Any] = {}
        if body is not None:
            payload["body"] = body
        if title is not None:
            payload["title"] = title
        if not payload:
            return self.get_issue(issue_id)

        data = self._run_gh(
            ["api", "-X", "PATCH", f"repos/{repository}/issues/{number}", "--input", "-"],
            f"updating {repository}#{number}",
            payload,
        )
        return ExternalIssue.from_github(data, repository)

    def add_comment(self, issue_id: str, body: str) -> ExternalComment:
        repository, number = self._split_issue_id(issue_id)
        data = self._run_gh(
            ["api", "-X", "POST", f"repos/{repository}/issues/{number}/comments", "--input", "-"],
            f"commenting on {repository}#{number}",
            {"body": body},
        )
        return ExternalComment(
            id=str(data.get("id", "")),
            url=data.get("html_url") or "",
            body=data.get("body") or body,
        )

    def search_issues(self, query: str, limit: int = 30) -> list[ExternalIssue]:
        """
        Search issues with GitHub search syntax.

        The default repository, when configured, scopes the query unless it
        already names a repo.
        """
        q = query
        if self.default_repository and "repo:" not in query:
            q = f"repo:{self.default_repository} {query}"
        data = self._run_gh(
            ["api", "-X", "GET", "search/issues", "-f", f"q={q}", "-F", f"per_page={limit}"],
            f"searching issues for '{query}'",
        )
        issues = []
        for item in data.get("items", []):
            # repository_url ends with /repos/<owner>/<repo>
            repository = "/".join(item.get("repository_url", "").rstrip("/").split("/")[-2:])
            issues.append(ExternalIssue.from_github(item, repository))
        return issues

    def link_issues(self, parent_id: str, child_id: str, link_type: LinkType) -> None:
        """
        Record a relationship as a comment on the parent.

        GitHub issues have no native typed links, so a cross-reference
        comment is the durable record.
        """
        parent_repo, _ = self._split_issue_id(parent_id)
        child_repo, child_number = self._split_issue_id(child_id)
        child_display = (
            f"#{child_number}" if child_repo == parent_repo else f"{child_repo}#{child_number}"
        )
        self.add_comment(parent_id, f"{_LINK_VERBS[link_type]} {child_display}")
