"""
Result types for sync runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from beads_bridge.core.changes.models import ChangeSet
from beads_bridge.core.refs.models import ExternalRef


@dataclass
class EntitySyncResult:
    """
    Outcome of syncing one external entity.

    Attributes:
        external_ref: Entity that was synced
        representative_item_id: Tracked item that stands for the entity
        mapping_id: Mapping updated with the outcome, if one exists
        success: Whether every step succeeded
        skipped: Nothing was written (dry run)
        description_updated: The diagram section was rewritten
        comments_added: Comments posted (snapshot and narrative)
        error: Failure message naming the entity
        error_code: Machine-readable failure code
        duration_seconds: Wall time of the pipeline
    """

    external_ref: ExternalRef
    representative_item_id: str
    mapping_id: str | None = None
    success: bool = False
    skipped: bool = False
    description_updated: bool = False
    comments_added: int = 0
    error: str | None = None
    error_code: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "external_ref": str(self.external_ref),
            "representative_item_id": self.representative_item_id,
            "mapping_id": self.mapping_id,
            "success": self.success,
            "skipped": self.skipped,
            "description_updated": self.description_updated,
            "comments_added": self.comments_added,
            "error": self.error,
            "error_code": self.error_code,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class SyncReport:
    """Everything one sync run did."""

    change_set: ChangeSet
    results: list[EntitySyncResult] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def synced(self) -> int:
        return sum(1 for r in self.results if r.success and not r.skipped)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "since_ref": self.change_set.since_ref,
            "until_ref": self.change_set.until_ref,
            "changed_item_ids": sorted(self.change_set.changed_item_ids),
            "unresolved_item_ids": sorted(self.change_set.unresolved_item_ids),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "synced": self.synced,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }
