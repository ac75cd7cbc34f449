"""
External reference model.

An ExternalRef names one entity in an external project-management system:
a GitHub issue (``github:acme/app#5``) or a Shortcut story
(``shortcut:12345``). Refs are immutable and hashable so they can key the
per-entity fan-out.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BackendKind(str, Enum):
    """External systems the bridge can sync to."""

    GITHUB = "github"
    SHORTCUT = "shortcut"


class ExternalRef(BaseModel):
    """
    Parsed, canonical reference to an external entity.

    Example:
        >>> ref = ExternalRef(backend=BackendKind.GITHUB, locator="acme/app#5")
        >>> str(ref)
        'github:acme/app#5'
        >>> ref.repository, ref.number
        ('acme/app', 5)
    """

    backend: BackendKind = Field(..., description="External system")
    locator: str = Field(..., description="owner/repo#number for GitHub, story id for Shortcut")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.backend.value}:{self.locator}"

    def __lt__(self, other: ExternalRef) -> bool:
        return str(self) < str(other)

    @property
    def repository(self) -> str:
        """owner/repo for GitHub refs; the literal "shortcut" for Shortcut refs."""
        if self.backend == BackendKind.GITHUB:
            return self.locator.split("#", 1)[0]
        return BackendKind.SHORTCUT.value

    @property
    def owner(self) -> str | None:
        if self.backend != BackendKind.GITHUB:
            return None
        return self.repository.split("/", 1)[0]

    @property
    def repo(self) -> str | None:
        if self.backend != BackendKind.GITHUB:
            return None
        return self.repository.split("/", 1)[1]

    @property
    def number(self) -> int:
        """Issue number (GitHub) or story id (Shortcut)."""
        if self.backend == BackendKind.GITHUB:
            return int(self.locator.rsplit("#", 1)[1])
        return int(self.locator)

    @property
    def issue_id(self) -> str:
        """The id a Backend accepts for this entity."""
        return self.locator

    @property
    def url(self) -> str:
        """Browser URL for the entity."""
        if self.backend == BackendKind.GITHUB:
            return f"https://github.com/{self.repository}/issues/{self.number}"
        return f"https://app.shortcut.com/story/{self.locator}"

    @property
    def display_name(self) -> str:
        """Short human form: acme/app#5 or sc-12345."""
        if self.backend == BackendKind.GITHUB:
            return self.locator
        return f"sc-{self.locator}"
