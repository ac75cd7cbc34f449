"""
Shortcut backend via the Shortcut REST API (v3).

Authenticates with the ``Shortcut-Token`` header. Transient failures are
retried with exponential backoff; 4xx responses map straight to bridge
errors.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx

from beads_bridge.core.backends.base import register_backend
from beads_bridge.core.backends.http import RetryConfig, send_with_retry
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

DEFAULT_BASE_URL = "https://api.app.shortcut.com/api/v3"

# Shortcut story links only know these two verbs
_LINK_VERBS = {
    LinkType.BLOCKS: "blocks",
    LinkType.PARENT_CHILD: "relates to",
    LinkType.RELATED: "relates to",
}


def _story_id(issue_id: str) -> int:
    value = issue_id.strip().lower().removeprefix("sc-")
    if not value.isdigit():
        raise ValidationError(f"Invalid Shortcut story id: '{issue_id}'", issue_id=issue_id)
    return int(value)


@register_backend(BackendKind.SHORTCUT)
class ShortcutBackend:
    """
    Backend for Shortcut stories.

    Example:
        >>> backend = ShortcutBackend(api_token=os.environ["SHORTCUT_API_TOKEN"])
        >>> story = backend.get_issue("12345")
        >>> backend.add_comment(story.id, "Progress update")
    """

    def __init__(
        self,
        api_token: str | None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        retry: RetryConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            api_token: Shortcut API token
            base_url: API base URL
            timeout: Request timeout in seconds
            retry: Retry settings for transient failures
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Sleep function used between retries

        Raises:
            AuthenticationError: If no API token is given
        """
        if not api_token:
            raise AuthenticationError(
                "Shortcut API token not configured. Set SHORTCUT_API_TOKEN or shortcut.api_token"
            )
        self.retry = retry or RetryConfig()
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={
                "Shortcut-Token": api_token,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: BridgeConfig) -> ShortcutBackend:
        return cls(
            api_token=config.shortcut.api_token,
            base_url=config.shortcut.base_url,
            timeout=config.shortcut.timeout_seconds,
            retry=RetryConfig(max_retries=config.shortcut.max_retries),
        )

    @property
    def name(self) -> str:
        return BackendKind.SHORTCUT.value

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        what: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Send a request and map failures to bridge errors.

        Returns:
            Decoded JSON body, or None for empty responses
        """
        try:
            response = send_with_retry(
                self._client,
                method,
                path,
                retry=self.retry,
                sleep=self._sleep,
                json=json,
                params=params,
            )
        except httpx.TimeoutException as e:
            raise BackendError(f"Shortcut timed out while {what}: {e}", code="TIMEOUT") from e
        except httpx.HTTPError as e:
            raise BackendError(
                f"Shortcut request failed while {what}: {e}", code="NETWORK_ERROR"
            ) from e

        status = response.status_code
        if status == 404:
            raise NotFoundError(f"Not found while {what}")
        if status in (401, 403):
            raise AuthenticationError(f"Shortcut rejected credentials while {what} (HTTP {status})")
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Shortcut rate limit exceeded while {what}",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if status >= 400:
            raise BackendError(
                f"Shortcut request failed while {what}: HTTP {status} {response.text[:200]}",
                code=f"HTTP_{status}",
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Failed to parse Shortcut response while {what}: {e}") from e

    def get_issue(self, issue_id: str) -> ExternalIssue:
        story_id = _story_id(issue_id)
        data = self._request("GET", f"/stories/{story_id}", f"fetching story {story_id}")
        return ExternalIssue.from_shortcut(data)

    def update_issue(
        self, issue_id: str, body: str | None = None, title: str | None = None
    ) -> ExternalIssue:
        story_id = _story_id(issue_id)
        payload: dict[str, Any] = {}
        if body is not None:
            payload["description"] = body
        if title is not None:
            payload["name"] = title
        if not payload:
            return self.get_issue(issue_id)
        data = self._request(
            "PUT", f"/stories/{story_id}", f"updating story {story_id}", json=payload
        )
        return ExternalIssue.from_shortcut(data)

    def add_comment(self, issue_id: str, body: str) -> ExternalComment:
        story_id = _story_id(issue_id)
        data = self._request(
            "POST",
            f"/stories/{story_id}/comments",
            f"commenting on story {story_id}",
            json={"text": body},
        )
        return ExternalComment(
            id=str(data.get("id", "")),
            url=data.get("app_url") or "",
            body=data.get("text") or body,
        )

    def search_issues(self, query: str, limit: int = 30) -> list[ExternalIssue]:
        data = self._request(
            "GET",
            "/search/stories",
            f"searching stories for '{query}'",
            params={"query": query, "page_size": limit},
        )
        stories = (data or {}).get("data", [])
        return [ExternalIssue.from_shortcut(story) for story in stories[:limit]]

    def link_issues(self, parent_id: str, child_id: str, link_type: LinkType) -> None:
        """Create a story link with the parent as subject."""
        subject_id = _story_id(parent_id)
        object_id = _story_id(child_id)
        self._request(
            "POST",
            "/story-links",
            f"linking story {subject_id} to {object_id}",
            json={"subject_id": subject_id, "object_id": object_id, "verb": _LINK_VERBS[link_type]},
        )
