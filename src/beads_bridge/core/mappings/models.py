"""
Data models for the mapping store.

A Mapping records the relationship between one external entity (a GitHub
issue or Shortcut story) and the beads epics that roll up to it, along with
its sync history and any unresolved conflict.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from beads_bridge.core.beads.models import ItemStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MappingStatus(str, Enum):
    """Lifecycle state of a mapping."""

    ACTIVE = "active"
    SYNCING = "syncing"
    CONFLICT = "conflict"
    ARCHIVED = "archived"


class SyncDirection(str, Enum):
    """Which way a sync moved data."""

    BEADS_TO_EXTERNAL = "beads_to_external"
    EXTERNAL_TO_BEADS = "external_to_beads"
    BIDIRECTIONAL = "bidirectional"


class ConflictType(str, Enum):
    """Kind of conflict detected on a mapping."""

    CONCURRENT_UPDATE = "concurrent_update"
    STATE_MISMATCH = "state_mismatch"
    MISSING_RESOURCE = "missing_resource"
    DATA_CORRUPTION = "data_corruption"


class ConflictResolution(str, Enum):
    """How a conflict was resolved."""

    GITHUB_WINS = "github_wins"
    BEADS_WINS = "beads_wins"
    MERGED = "merged"


class EpicLink(BaseModel):
    """A beads epic linked to an external entity, with its progress counters."""

    repository: str = Field(..., description="Name of the beads repository")
    epic_id: str = Field(..., description="Epic id in that repository")
    repository_path: str = Field(default=".", description="Filesystem path of the repository")
    created_at: datetime = Field(default_factory=utc_now)
    last_updated_at: datetime = Field(default_factory=utc_now)
    status: ItemStatus = Field(default=ItemStatus.OPEN)
    completed_issues: int = Field(default=0, ge=0)
    total_issues: int = Field(default=0, ge=0)


class EpicLinkInput(BaseModel):
    """Epic to link when creating a mapping."""

    repository: str
    epic_id: str
    repository_path: str = "."


class SyncChanges(BaseModel):
    """What a single sync changed."""

    external_updates: list[str] = Field(default_factory=list)
    beads_updates: list[str] = Field(default_factory=list)
    diagram_updated: bool = False
    comments_added: int = 0


class SyncHistoryEntry(BaseModel):
    """One sync attempt. Stored newest first."""

    timestamp: datetime = Field(default_factory=utc_now)
    direction: SyncDirection = SyncDirection.BEADS_TO_EXTERNAL
    success: bool = True
    items_synced: int | None = None
    changes: SyncChanges | None = None
    error: str | None = None


class ConflictRecord(BaseModel):
    """An unresolved conflict. Its presence puts the mapping in CONFLICT."""

    detected_at: datetime = Field(default_factory=utc_now)
    type: ConflictType
    description: str
    suggested_resolution: ConflictResolution | None = None


class AggregatedMetrics(BaseModel):
    """Progress totals across all linked epics."""

    total_completed: int = 0
    total_in_progress: int = 0
    total_blocked: int = 0
    total_not_started: int = 0
    percent_complete: float = 0.0
    last_calculated_at: datetime = Field(default_factory=utc_now)

    @property
    def total(self) -> int:
        return (
            self.total_completed
            + self.total_in_progress
            + self.total_blocked
            + self.total_not_started
        )


class Mapping(BaseModel):
    """
    Durable link between one external entity and its beads epics.

    ``external_entity`` is the canonical ref string (``github:acme/app#5``)
    and is unique across the store.
    """

    id: str
    external_entity: str
    external_repository: str
    external_representation: str
    linked_epics: list[EpicLink] = Field(default_factory=list)
    status: MappingStatus = MappingStatus.ACTIVE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_synced_at: datetime | None = None
    last_sync_direction: SyncDirection | None = None
    conflict: ConflictRecord | None = None
    sync_history: list[SyncHistoryEntry] = Field(default_factory=list)
    aggregated_metrics: AggregatedMetrics = Field(default_factory=AggregatedMetrics)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(validate_assignment=True)

    @property
    def has_conflict(self) -> bool:
        return self.conflict is not None

    @property
    def epic_ids(self) -> list[str]:
        return [epic.epic_id for epic in self.linked_epics]


class CreateMappingParams(BaseModel):
    """Input for MappingStore.create."""

    external_entity: str = Field(..., description="External ref in shorthand or URL form")
    linked_epics: list[EpicLinkInput] = Field(default_factory=list)
    external_representation: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MappingUpdate(BaseModel):
    """
    Partial update for MappingStore.update.

    Unset fields are left alone. ``conflict`` distinguishes "not supplied"
    from an explicit ``None``, which clears the conflict.
    """

    status: MappingStatus | None = None
    linked_epics: list[EpicLink] | None = None
    external_representation: str | None = None
    metadata: dict[str, Any] | None = None
    aggregated_metrics: AggregatedMetrics | None = None
    conflict: ConflictRecord | None = None
    sync_history_entry: SyncHistoryEntry | None = None

    @property
    def touches_conflict(self) -> bool:
        return "conflict" in self.model_fields_set


class MappingQuery(BaseModel):
    """Filters for MappingStore.list. All filters are ANDed."""

    external_repository: str | None = None
    external_entity: str | None = None
    status: MappingStatus | None = None
    has_conflicts: bool | None = None
    synced_after: datetime | None = None
    epic_repository: str | None = None
    epic_id: str | None = None
    limit: int | None = Field(default=None, ge=1)

    @field_validator("synced_after")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Naive timestamps are read as UTC, like every stored timestamp."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class MappingStats(BaseModel):
    """Summary of the store contents."""

    total: int = 0
    by_status: dict[MappingStatus, int] = Field(default_factory=dict)
    conflicts: int = 0
    recently_synced: int = 0
    sync_success_rate: float = 100.0
    external_repositories: list[str] = Field(default_factory=list)
    beads_repositories: list[str] = Field(default_factory=list)


class MappingIndexEntry(BaseModel):
    """Index row for one mapping; derived from the mapping file."""

    id: str
    external_entity: str
    external_repository: str
    status: MappingStatus
    has_conflict: bool = False
    last_synced_at: datetime | None = None
    file_path: str

    @classmethod
    def from_mapping(cls, mapping: Mapping, file_path: str) -> MappingIndexEntry:
        return cls(
            id=mapping.id,
            external_entity=mapping.external_entity,
            external_repository=mapping.external_repository,
            status=mapping.status,
            has_conflict=mapping.has_conflict,
            last_synced_at=mapping.last_synced_at,
            file_path=file_path,
        )


class MappingIndex(BaseModel):
    """Contents of index.json."""

    version: int = 1
    last_updated: datetime = Field(default_factory=utc_now)
    mappings: list[MappingIndexEntry] = Field(default_factory=list)
