"""
Tests for ProgressNarrator summaries, comments and metrics.
"""

from datetime import datetime, timezone

import pytest

from beads_bridge.core.beads.models import ItemStatus
from beads_bridge.core.mappings import EpicLink
from beads_bridge.core.sync import EpicProgress, ProgressNarrator, ProgressSummary

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def narrator(fake_source):
    return ProgressNarrator(fake_source, clock=lambda: NOW)


class TestSummarize:
    """Test child counting."""

    def test_counts_by_status(self, narrator):
        summary = narrator.summarize(["epic-1"])

        assert summary.completed == 1
        assert summary.in_progress == 1
        assert summary.blocked == 1
        assert summary.open == 0
        assert summary.total == 3
        assert summary.percent_complete == 33.3
        assert [item.id for item in summary.blockers] == ["task-3"]

    def test_closed_blocker_does_not_block(self, source_factory, item_factory):
        source = source_factory(
            [
                item_factory("epic-1", issue_type="epic"),
                item_factory("a", parent="epic-1", status="closed"),
                item_factory(
                    "b",
                    parent="epic-1",
                    dependencies=[{"depends_on_id": "a", "type": "blocks"}],
                ),
            ]
        )
        summary = ProgressNarrator(source).summarize(["epic-1"])
        assert summary.blocked == 0
        assert summary.open == 1

    def test_blocker_outside_epic_is_looked_up(self, source_factory, item_factory):
        source = source_factory(
            [
                item_factory("epic-1", issue_type="epic"),
                item_factory("elsewhere", status="in_progress"),
                item_factory(
                    "b",
                    parent="epic-1",
                    dependencies=[{"depends_on_id": "elsewhere", "type": "blocks"}],
                ),
            ]
        )
        summary = ProgressNarrator(source).summarize(["epic-1"])
        assert summary.blocked == 1
        assert "elsewhere" in source.show_calls

    def test_explicit_blocked_status(self, source_factory, item_factory):
        source = source_factory([item_factory("x", parent="epic-1", status="blocked")])
        assert ProgressNarrator(source).summarize(["epic-1"]).blocked == 1

    def test_epic_without_children(self, narrator):
        summary = narrator.summarize(["stray-1"])
        assert summary.total == 0
        assert summary.percent_complete == 0.0


class TestBuildComment:
    """Test the rendered comment."""

    def test_comment(self, narrator):
        comment = narrator.build_comment(narrator.summarize(["epic-1"]))

        assert comment.splitlines()[0] == "## Progress Update"
        assert "Completed 1 task(s), 1 in progress, 1 blocked, 0 open." in comment
        assert "**Current Blockers:**\n- task-3: task-3" in comment
        assert "**What's Next:**\n- Continue 1 in-progress task(s)" in comment
        assert "Start" not in comment

    def test_all_done(self, narrator):
        summary = ProgressSummary(epics=[EpicProgress(epic_id="e", completed=4)])
        comment = narrator.build_comment(summary, narrative="  Shipped!  ")

        assert "Blockers" not in comment
        assert "What's Next" not in comment
        assert comment.endswith("\n\nShipped!")


class TestMetrics:
    """Test metrics and epic link refresh."""

    def test_metrics(self, narrator):
        metrics = narrator.metrics(narrator.summarize(["epic-1"]))

        assert metrics.total_completed == 1
        assert metrics.total_in_progress == 1
        assert metrics.total_blocked == 1
        assert metrics.total_not_started == 0
        assert metrics.percent_complete == 33.3
        assert metrics.last_calculated_at == NOW
        assert metrics.total == 3

    def test_refresh_epic_links(self, narrator):
        links = [
            EpicLink(repository="app", epic_id="epic-1"),
            EpicLink(repository="app", epic_id="untouched"),
        ]
        refreshed = narrator.refresh_epic_links(links, narrator.summarize(["epic-1"]))

        assert refreshed[0].completed_issues == 1
        assert refreshed[0].total_issues == 3
        assert refreshed[0].status == ItemStatus.IN_PROGRESS
        assert refreshed[0].last_updated_at == NOW
        assert refreshed[1] is links[1]

    @pytest.mark.parametrize(
        "progress,status",
        [
            (EpicProgress("e", completed=2), ItemStatus.CLOSED),
            (EpicProgress("e", completed=1, in_progress=1), ItemStatus.IN_PROGRESS),
            (EpicProgress("e", blocked=2), ItemStatus.BLOCKED),
            (EpicProgress("e", blocked=1, open=1), ItemStatus.OPEN),
            (EpicProgress("e"), ItemStatus.OPEN),
        ],
    )
    def test_epic_status(self, progress, status):
        assert progress.status == status
