"""
Sync orchestration: detection, resolution, and per-entity pipelines.
"""

from beads_bridge.core.sync.models import EntitySyncResult, SyncReport
from beads_bridge.core.sync.narrator import EpicProgress, ProgressNarrator, ProgressSummary
from beads_bridge.core.sync.orchestrator import SyncCallback, SyncOrchestrator

__all__ = [
    "EntitySyncResult",
    "EpicProgress",
    "ProgressNarrator",
    "ProgressSummary",
    "SyncCallback",
    "SyncOrchestrator",
    "SyncReport",
]
