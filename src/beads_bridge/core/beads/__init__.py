"""
Source tracker (beads) access.

Read-only models and the `bd` CLI client.
"""

from beads_bridge.core.beads.client import BeadsClient, SourceClient, depth_for_node_budget
from beads_bridge.core.beads.models import Dependency, DependencyType, ItemStatus, TrackedItem

__all__ = [
    "BeadsClient",
    "Dependency",
    "DependencyType",
    "ItemStatus",
    "SourceClient",
    "TrackedItem",
    "depth_for_node_budget",
]
