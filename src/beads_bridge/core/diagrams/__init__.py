"""
Dependency diagrams: generation, the body section format, and placement.
"""

from beads_bridge.core.diagrams.generator import MermaidGenerator
from beads_bridge.core.diagrams.models import (
    Diagram,
    DiagramSnapshot,
    PlacementOptions,
    PlacementResult,
    SectionInfo,
    UpdateTrigger,
)
from beads_bridge.core.diagrams.placer import DiagramPlacer, format_snapshot_comment
from beads_bridge.core.diagrams.sections import (
    END_MARKER,
    SECTION_HEADER,
    START_MARKER,
    find_section,
    format_section,
    parse_section,
    replace_section,
)

__all__ = [
    "END_MARKER",
    "SECTION_HEADER",
    "START_MARKER",
    "Diagram",
    "DiagramPlacer",
    "DiagramSnapshot",
    "MermaidGenerator",
    "PlacementOptions",
    "PlacementResult",
    "SectionInfo",
    "UpdateTrigger",
    "find_section",
    "format_section",
    "format_snapshot_comment",
    "parse_section",
    "replace_section",
]
