"""
Result types for record-file change detection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from beads_bridge.core.refs.models import ExternalRef


class ChangeKind(str, Enum):
    """How a record changed between the two diffed states."""

    CREATED = "created"
    UPDATED = "updated"
    REMOVED = "removed"


@dataclass
class RecordChange:
    """Before/after view of one record in the diff."""

    item_id: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None

    @property
    def kind(self) -> ChangeKind:
        if self.before is None:
            return ChangeKind.CREATED
        if self.after is None:
            return ChangeKind.REMOVED
        return ChangeKind.UPDATED

    def changed_fields(self) -> list[str]:
        """Top-level fields whose values differ between before and after."""
        before = self.before or {}
        after = self.after or {}
        keys = set(before) | set(after)
        return sorted(k for k in keys if before.get(k) != after.get(k))


@dataclass
class ChangeSet:
    """
    Everything a sync run learned about what changed.

    ``changed_item_ids`` holds ids of records present in the added side of
    the diff (created or updated). ``affected_external_refs`` and
    ``unresolved_item_ids`` are filled in once the ids are resolved.
    """

    since_ref: str
    until_ref: str | None = None
    changed_item_ids: set[str] = field(default_factory=set)
    records: dict[str, RecordChange] = field(default_factory=dict)
    affected_external_refs: dict[ExternalRef, str] = field(default_factory=dict)
    unresolved_item_ids: set[str] = field(default_factory=set)
    raw_diff: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.changed_item_ids

    @property
    def removed_item_ids(self) -> set[str]:
        return {
            item_id
            for item_id, change in self.records.items()
            if change.kind == ChangeKind.REMOVED
        }
