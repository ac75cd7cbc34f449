"""
Backend-neutral models for external issues and comments.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class LinkType(str, Enum):
    """Relationship created by Backend.link_issues (parent <verb> child)."""

    BLOCKS = "blocks"
    PARENT_CHILD = "parent-child"
    RELATED = "related"


class ExternalIssue(BaseModel):
    """
    An issue or story in an external system.

    ``id`` is the value Backend methods accept: ``owner/repo#N`` for GitHub,
    the numeric story id for Shortcut.
    """

    id: str = Field(..., description="Backend issue id")
    number: int | None = Field(default=None, description="Issue number or story id")
    title: str = Field(default="", description="Issue title / story name")
    body: str = Field(default="", description="Issue body / story description")
    state: str = Field(default="open", description="open or closed")
    url: str = Field(default="", description="Browser URL")
    labels: list[str] = Field(default_factory=list)

    @classmethod
    def from_github(cls, data: dict[str, Any], repository: str) -> ExternalIssue:
        """
        Create from a GitHub REST issue payload.

        Args:
            data: Response of GET /repos/{owner}/{repo}/issues/{n}
            repository: owner/repo the issue lives in
        """
        labels = [
            label.get("name", "") if isinstance(label, dict) else str(label)
            for label in data.get("labels") or []
        ]
        return cls(
            id=f"{repository}#{data['number']}",
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body") or "",
            state=(data.get("state") or "open").lower(),
            url=data.get("html_url") or "",
            labels=labels,
        )

    @classmethod
    def from_shortcut(cls, data: dict[str, Any]) -> ExternalIssue:
        """Create from a Shortcut story payload."""
        labels = [
            label.get("name", "") for label in data.get("labels") or [] if isinstance(label, dict)
        ]
        return cls(
            id=str(data["id"]),
            number=int(data["id"]),
            title=data.get("name") or "",
            body=data.get("description") or "",
            state="closed" if data.get("completed") else "open",
            url=data.get("app_url") or "",
            labels=labels,
        )


class ExternalComment(BaseModel):
    """A comment posted on an external issue."""

    id: str
    url: str = ""
    body: str = ""
