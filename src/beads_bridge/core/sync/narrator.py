"""
Narrative progress comments for external entities.

Summarizes the children of an entity's epics into counts, blockers, and
next steps, and turns that into a markdown comment plus the metrics stored
on the mapping.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from beads_bridge.core.beads.client import SourceClient
from beads_bridge.core.beads.models import ItemStatus, TrackedItem
from beads_bridge.core.mappings.models import AggregatedMetrics, EpicLink, utc_now

logger = logging.getLogger(__name__)


@dataclass
class EpicProgress:
    """Counts for one epic's children."""

    epic_id: str
    completed: int = 0
    in_progress: int = 0
    blocked: int = 0
    open: int = 0

    @property
    def total(self) -> int:
        return self.completed + self.in_progress + self.blocked + self.open

    @property
    def status(self) -> ItemStatus:
        if self.total and self.completed == self.total:
            return ItemStatus.CLOSED
        if self.in_progress:
            return ItemStatus.IN_PROGRESS
        if self.blocked and not self.open:
            return ItemStatus.BLOCKED
        return ItemStatus.OPEN


@dataclass
class ProgressSummary:
    """Progress across all epics of one entity."""

    epics: list[EpicProgress] = field(default_factory=list)
    blockers: list[TrackedItem] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return sum(e.completed for e in self.epics)

    @property
    def in_progress(self) -> int:
        return sum(e.in_progress for e in self.epics)

    @property
    def blocked(self) -> int:
        return sum(e.blocked for e in self.epics)

    @property
    def open(self) -> int:
        return sum(e.open for e in self.epics)

    @property
    def total(self) -> int:
        return sum(e.total for e in self.epics)

    @property
    def percent_complete(self) -> float:
        if not self.total:
            return 0.0
        return round(100.0 * self.completed / self.total, 1)


class ProgressNarrator:
    """
    Builds progress summaries and comments from the source tracker.

    Example:
        >>> narrator = ProgressNarrator(BeadsClient())
        >>> summary = narrator.summarize(["bd-epic"])
        >>> print(narrator.build_comment(summary))
    """

    def __init__(self, source: SourceClient, clock: Callable[[], datetime] = utc_now) -> None:
        self.source = source
        self._clock = clock

    def _is_blocked(self, item: TrackedItem, statuses: dict[str, ItemStatus]) -> bool:
        if item.status == ItemStatus.BLOCKED:
            return True
        if item.status != ItemStatus.OPEN:
            return False
        for blocker_id in item.blocker_ids:
            status = statuses.get(blocker_id)
            if status is None:
                blocker = self.source.show(blocker_id)
                if blocker is None:
                    continue
                status = statuses[blocker_id] = blocker.status
            if status != ItemStatus.CLOSED:
                return True
        return False

    def summarize(self, epic_ids: list[str]) -> ProgressSummary:
        """Count each epic's children by status and collect blockers."""
        summary = ProgressSummary()

        for epic_id in epic_ids:
            children = self.source.list_items(parent=epic_id)
            statuses = {child.id: child.status for child in children}
            progress = EpicProgress(epic_id=epic_id)

            for child in children:
                if child.status == ItemStatus.CLOSED:
                    progress.completed += 1
                elif child.status == ItemStatus.IN_PROGRESS:
                    progress.in_progress += 1
                elif self._is_blocked(child, statuses):
                    progress.blocked += 1
                    summary.blockers.append(child)
                else:
                    progress.open += 1

            logger.debug(
                "Epic %s: %d/%d complete", epic_id, progress.completed, progress.total
            )
            summary.epics.append(progress)

        return summary

    def build_comment(self, summary: ProgressSummary, narrative: str | None = None) -> str:
        """
        Render the narrative progress comment.

        Args:
            summary: Output of summarize()
            narrative: Optional free text appended at the end
        """
        lines = [
            "## Progress Update",
            "",
            f"Completed {summary.completed} task(s), {summary.in_progress} in progress, "
            f"{summary.blocked} blocked, {summary.open} open.",
        ]

        if summary.blockers:
            lines += ["", "**Current Blockers:**"]
            lines += [f"- {item.id}: {item.title}" for item in summary.blockers]

        next_steps = []
        if summary.in_progress:
            next_steps.append(f"- Continue {summary.in_progress} in-progress task(s)")
        if summary.open:
            next_steps.append(f"- Start {summary.open} open task(s)")
        if next_steps:
            lines += ["", "**What's Next:**"] + next_steps

        if narrative:
            lines += ["", narrative.strip()]

        return "\n".join(lines)

    def metrics(self, summary: ProgressSummary) -> AggregatedMetrics:
        """Aggregated metrics to store on the mapping."""
        return AggregatedMetrics(
            total_completed=summary.completed,
            total_in_progress=summary.in_progress,
            total_blocked=summary.blocked,
            total_not_started=summary.open,
            percent_complete=summary.percent_complete,
            last_calculated_at=self._clock(),
        )

    def refresh_epic_links(
        self, epics: list[EpicLink], summary: ProgressSummary
    ) -> list[EpicLink]:
        """Copy of `epics` with counters and status taken from `summary`."""
        by_id = {progress.epic_id: progress for progress in summary.epics}
        now = self._clock()
        refreshed = []
        for epic in epics:
            progress = by_id.get(epic.epic_id)
            if progress is None:
                refreshed.append(epic)
                continue
            refreshed.append(
                epic.model_copy(
                    update={
                        "status": progress.status,
                        "completed_issues": progress.completed,
                        "total_issues": progress.total,
                        "last_updated_at": now,
                    }
                )
            )
        return refreshed
