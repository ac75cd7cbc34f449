"""
Models for diagram generation and placement.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class UpdateTrigger(str, Enum):
    """Why a diagram was (re)placed."""

    SCOPE_CHANGE = "scope_change"
    WEEKLY = "weekly"
    MANUAL = "manual"
    INITIAL = "initial"


@dataclass
class Diagram:
    """Mermaid source for one epic's dependency tree."""

    root_id: str
    mermaid: str
    node_count: int

    @property
    def markdown(self) -> str:
        return f"```mermaid\n{self.mermaid}\n```"


@dataclass
class SectionInfo:
    """What parse_section found in an entity body."""

    exists: bool
    last_updated: datetime | None = None
    trigger: str | None = None
    content: str | None = None


@dataclass
class DiagramSnapshot:
    """An append-only snapshot comment that was posted."""

    timestamp: datetime
    trigger: UpdateTrigger
    comment_id: str
    comment_url: str
    node_count: int
    truncated: bool = False


@dataclass
class PlacementOptions:
    """What DiagramPlacer.place should do."""

    trigger: UpdateTrigger = UpdateTrigger.MANUAL
    update_description: bool = True
    create_snapshot: bool = True
    message: str | None = None


@dataclass
class PlacementResult:
    """
    Outcome of a placement. Failures are reported here, never raised.

    ``description_unchanged`` is set when the existing section already
    matched and the body was left byte-identical.
    """

    entity_url: str
    description_updated: bool = False
    description_unchanged: bool = False
    snapshot: DiagramSnapshot | None = None
    epic_ids: list[str] = field(default_factory=list)
    node_count: int = 0
    truncated: bool = False
    error: str | None = None
    error_code: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None
