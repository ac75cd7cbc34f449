"""
External project-management backends.

Importing this package registers the GitHub and Shortcut backends.
"""

from beads_bridge.core.backends.base import Backend, get_backend, list_backends, register_backend
from beads_bridge.core.backends.github import GitHubBackend
from beads_bridge.core.backends.models import ExternalComment, ExternalIssue, LinkType
from beads_bridge.core.backends.shortcut import ShortcutBackend

__all__ = [
    "Backend",
    "ExternalComment",
    "ExternalIssue",
    "GitHubBackend",
    "LinkType",
    "ShortcutBackend",
    "get_backend",
    "list_backends",
    "register_backend",
]
