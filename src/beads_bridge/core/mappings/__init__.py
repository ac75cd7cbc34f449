"""
Mapping store: durable links between external entities and beads epics.
"""

from beads_bridge.core.mappings.models import (
    AggregatedMetrics,
    ConflictRecord,
    ConflictResolution,
    ConflictType,
    CreateMappingParams,
    EpicLink,
    EpicLinkInput,
    Mapping,
    MappingIndex,
    MappingIndexEntry,
    MappingQuery,
    MappingStats,
    MappingStatus,
    MappingUpdate,
    SyncChanges,
    SyncDirection,
    SyncHistoryEntry,
)
from beads_bridge.core.mappings.store import MappingStore, mapping_slug

__all__ = [
    "AggregatedMetrics",
    "ConflictRecord",
    "ConflictResolution",
    "ConflictType",
    "CreateMappingParams",
    "EpicLink",
    "EpicLinkInput",
    "Mapping",
    "MappingIndex",
    "MappingIndexEntry",
    "MappingQuery",
    "MappingStats",
    "MappingStatus",
    "MappingStore",
    "MappingUpdate",
    "SyncChanges",
    "SyncDirection",
    "SyncHistoryEntry",
    "mapping_slug",
]
