"""
Change detection over the beads record file.
"""

from beads_bridge.core.changes.detector import ChangeDetector, parse_record_diff
from beads_bridge.core.changes.models import ChangeKind, ChangeSet, RecordChange

__all__ = [
    "ChangeDetector",
    "ChangeKind",
    "ChangeSet",
    "RecordChange",
    "parse_record_diff",
]
