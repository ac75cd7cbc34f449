"""
Data models for items read from the beads tracker.

Items are read-only views. They are parsed tolerantly from two shapes:

- ``bd show --json`` / ``bd list --json`` output, where each dependency is
  the referenced item itself plus a ``dependency_type`` field;
- raw ``.beads/issues.jsonl`` records, where each dependency is an edge
  ``{"issue_id", "depends_on_id", "type"}``.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class ItemStatus(str, Enum):
    """Lifecycle status of a tracked item."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    CLOSED = "closed"


class DependencyType(str, Enum):
    """Known dependency edge types."""

    PARENT_CHILD = "parent-child"
    BLOCKS = "blocks"
    RELATED = "related"
    DISCOVERED_FROM = "discovered-from"


class Dependency(BaseModel):
    """
    A directed edge from an item to the item it depends on.

    For a ``parent-child`` edge stored on a child, ``id`` is the parent.
    Unknown edge types are kept verbatim in ``type``.
    """

    id: str = Field(..., description="Target item id")
    type: str = Field(default=DependencyType.BLOCKS.value, description="Edge type")

    model_config = ConfigDict(frozen=True)

    @property
    def kind(self) -> DependencyType | None:
        """The edge type as a known enum member, or None for unknown types."""
        try:
            return DependencyType(self.type)
        except ValueError:
            return None

    @property
    def is_parent_child(self) -> bool:
        return self.type == DependencyType.PARENT_CHILD.value

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> Dependency | None:
        """
        Parse a dependency from either bd JSON shape.

        Returns:
            Dependency, or None when the raw entry names no target
        """
        target = raw.get("depends_on_id") or raw.get("id") or raw.get("target_id")
        if not target:
            return None
        dep_type = raw.get("dependency_type") or raw.get("type") or DependencyType.BLOCKS.value
        return cls(id=str(target), type=str(dep_type))


class TrackedItem(BaseModel):
    """
    A work item in the source tracker (task, epic, bug, ...).

    Example:
        >>> item = TrackedItem.from_beads({
        ...     "id": "task-1",
        ...     "title": "Wire up login",
        ...     "dependencies": [{"depends_on_id": "epic-1", "type": "parent-child"}],
        ... })
        >>> item.parent_ids
        ['epic-1']
    """

    id: str = Field(..., description="Item id (e.g. bd-a1b2)")
    title: str = Field(default="", description="Item title")
    description: str = Field(default="", description="Item body")
    status: ItemStatus = Field(default=ItemStatus.OPEN, description="Lifecycle status")
    issue_type: str = Field(default="task", description="task, epic, bug, feature, ...")
    external_ref: str | None = Field(
        default=None, description="Reference to an external entity, e.g. github:acme/app#5"
    )
    dependencies: list[Dependency] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        """Map statuses this bridge doesn't model onto OPEN."""
        if isinstance(v, ItemStatus):
            return v
        if isinstance(v, str) and v not in {s.value for s in ItemStatus}:
            logger.debug("Treating unknown status '%s' as open", v)
            return ItemStatus.OPEN
        return v

    @property
    def parent_ids(self) -> list[str]:
        """Ids of parents reachable over parent-child edges, in edge order."""
        return [dep.id for dep in self.dependencies if dep.is_parent_child]

    @property
    def blocker_ids(self) -> list[str]:
        """Ids of items this item is blocked by."""
        return [dep.id for dep in self.dependencies if dep.type == DependencyType.BLOCKS.value]

    @property
    def is_epic(self) -> bool:
        return self.issue_type == "epic"

    @classmethod
    def from_beads(cls, raw: dict[str, Any]) -> TrackedItem:
        """
        Build a TrackedItem from bd JSON or a JSONL record.

        A top-level ``parent`` field, when present, is folded into the
        dependency list as a leading parent-child edge.
        """
        deps: list[Dependency] = []
        for raw_dep in raw.get("dependencies") or []:
            if isinstance(raw_dep, dict):
                dep = Dependency.from_raw(raw_dep)
                if dep is not None:
                    deps.append(dep)

        parent = raw.get("parent")
        if parent and not any(d.is_parent_child and d.id == parent for d in deps):
            deps.insert(0, Dependency(id=str(parent), type=DependencyType.PARENT_CHILD.value))

        external_ref = raw.get("external_ref")
        if isinstance(external_ref, str):
            external_ref = external_ref.strip() or None

        return cls(
            id=str(raw["id"]),
            title=raw.get("title") or "",
            description=raw.get("description") or "",
            status=raw.get("status") or ItemStatus.OPEN,
            issue_type=raw.get("issue_type") or raw.get("type") or "task",
            external_ref=external_ref,
            dependencies=deps,
            labels=raw.get("labels") or [],
        )
