"""
Backend protocol and registry.

A Backend is the capability the bridge needs from an external
project-management system. Implementations register themselves by
BackendKind and are built from a BridgeConfig.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from beads_bridge.core.backends.models import ExternalComment, ExternalIssue, LinkType
from beads_bridge.core.errors import BackendError
from beads_bridge.core.refs.models import BackendKind

if TYPE_CHECKING:
    from beads_bridge.core.config.models import BridgeConfig


@runtime_checkable
class Backend(Protocol):
    """
    Protocol for external project-management backends.

    Every method raises NotFoundError, AuthenticationError, RateLimitError,
    or BackendError on failure, never a transport-specific exception.
    """

    @property
    def name(self) -> str:
        """Backend name (e.g. 'github', 'shortcut')."""
        ...

    def get_issue(self, issue_id: str) -> ExternalIssue:
        """
        Fetch an issue.

        Args:
            issue_id: Backend issue id (see ExternalRef.issue_id)
        """
        ...

    def update_issue(
        self, issue_id: str, body: str | None = None, title: str | None = None
    ) -> ExternalIssue:
        """Replace an issue's body and/or title; returns the updated issue."""
        ...

    def add_comment(self, issue_id: str, body: str) -> ExternalComment:
        """Append a comment to an issue."""
        ...

    def search_issues(self, query: str, limit: int = 30) -> list[ExternalIssue]:
        """Search issues using the backend's query syntax."""
        ...

    def link_issues(self, parent_id: str, child_id: str, link_type: LinkType) -> None:
        """Record that parent <link_type> child."""
        ...


# Backend registry
_backends: dict[BackendKind, type] = {}


def register_backend(kind: BackendKind) -> Callable[[type], type]:
    """
    Decorator to register a backend implementation.

    The class must provide ``from_config(config: BridgeConfig)``.

    Usage:
        @register_backend(BackendKind.GITHUB)
        class GitHubBackend:
            ...
    """

    def decorator(backend_class: type) -> type:
        _backends[kind] = backend_class
        return backend_class

    return decorator


def get_backend(kind: BackendKind, config: BridgeConfig) -> Backend:
    """
    Build the registered backend for `kind`.

    Raises:
        BackendError: If no backend is registered for `kind`
    """
    backend_class = _backends.get(kind)
    if backend_class is None:
        available = ", ".join(k.value for k in _backends) or "none"
        raise BackendError(
            f"No backend registered for '{kind.value}'. Available backends: {available}",
            code="NOT_CONFIGURED",
        )
    backend: Backend = backend_class.from_config(config)
    return backend


def list_backends() -> list[BackendKind]:
    """List all registered backend kinds."""
    return list(_backends.keys())
