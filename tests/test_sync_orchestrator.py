"""
Tests for the sync orchestrator.

Tests cover:
- Full pipeline: diagram placement, narrative comment, mapping history
- Bounded fan-out across entities
- Conflict, dry-run and failure isolation semantics
- Progress callbacks
"""

import threading
import time
from pathlib import Path

import pytest

from beads_bridge.core.changes import ChangeSet
from beads_bridge.core.diagrams import DiagramPlacer, MermaidGenerator, PlacementResult
from beads_bridge.core.errors import RateLimitError, StoreError
from beads_bridge.core.mappings import (
    ConflictRecord,
    ConflictType,
    CreateMappingParams,
    EpicLinkInput,
    MappingStatus,
    MappingUpdate,
    SyncDirection,
)
from beads_bridge.core.refs import BackendKind, ExternalRefResolver
from beads_bridge.core.sync import ProgressNarrator, SyncOrchestrator


class StaticDetector:
    """Detector reporting a fixed set of changed ids."""

    def __init__(self, project_dir: Path, changed: set[str]):
        self.project_dir = project_dir
        self.records_file = ".beads/issues.jsonl"
        self.changed = changed

    def detect_changes(self, since_ref: str = "HEAD~1", until_ref: str | None = None) -> ChangeSet:
        return ChangeSet(
            since_ref=since_ref, until_ref=until_ref, changed_item_ids=set(self.changed)
        )


class SlowPlacer:
    """Placer that tracks how many placements run at once."""

    def __init__(self, backend, delay: float = 0.05, fail: dict | None = None):
        self.backend = backend
        self.delay = delay
        self.fail = fail or {}
        self.in_flight = 0
        self.peak = 0
        self.placed: list[str] = []
        self._lock = threading.Lock()

    def place(self, ref, options):
        with self._lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            time.sleep(self.delay)
            outcome = self.fail.get(str(ref))
            if isinstance(outcome, Exception):
                raise outcome
            result = PlacementResult(entity_url=ref.url, epic_ids=[f"epic-{ref.number}"])
            if outcome:
                result.error = f"{ref}: {outcome}"
                result.error_code = "BACKEND_ERROR"
            with self._lock:
                self.placed.append(str(ref))
            return result
        finally:
            with self._lock:
                self.in_flight -= 1

    def backend_for(self, ref):
        return self.backend


class RecordingCallback:
    def __init__(self):
        self.started = None
        self.completed = []

    def on_start(self, num_entities, num_workers):
        self.started = (num_entities, num_workers)

    def on_entity_complete(self, result):
        self.completed.append(str(result.external_ref))


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def mapping(store):
    return store.create(
        CreateMappingParams(
            external_entity="github:acme/app#5",
            linked_epics=[EpicLinkInput(repository="app", epic_id="epic-1")],
        )
    )


@pytest.fixture
def make_orchestrator(project_dir, fake_source, fake_backend, store):
    """Orchestrator wired to the real placer over in-memory source and backend."""

    def factory(changed, **kwargs):
        resolver = ExternalRefResolver(fake_source)
        placer = DiagramPlacer(
            {BackendKind.GITHUB: fake_backend},
            resolver,
            MermaidGenerator(fake_source),
            mappings=store,
        )
        kwargs.setdefault("narrator", ProgressNarrator(fake_source))
        return SyncOrchestrator(
            StaticDetector(project_dir, set(changed)), resolver, placer, store, **kwargs
        )

    return factory


@pytest.fixture
def many_entities(project_dir, source_factory, item_factory, backend_factory, store):
    """Ten epics, each carrying its own GitHub ref, and a SlowPlacer factory."""
    items = [
        item_factory(f"epic-{n}", issue_type="epic", external_ref=f"github:acme/app#{n}")
        for n in range(1, 11)
    ]
    source = source_factory(items)
    backend = backend_factory()

    def factory(max_concurrency=3, fail=None, callback=None):
        placer = SlowPlacer(backend, fail=fail)
        orchestrator = SyncOrchestrator(
            StaticDetector(project_dir, {item.id for item in items}),
            ExternalRefResolver(source),
            placer,
            store,
            max_concurrency=max_concurrency,
            callback=callback,
        )
        return orchestrator, placer

    return factory


class TestPipeline:
    """Test the per-entity pipeline end to end."""

    def test_full_sync(self, make_orchestrator, mapping, fake_backend, store):
        report = make_orchestrator({"task-1", "task-2", "stray-1"}).run()

        assert report.success
        assert report.synced == 1
        assert report.change_set.unresolved_item_ids == {"stray-1"}

        [result] = report.results
        assert str(result.external_ref) == "github:acme/app#5"
        assert result.representative_item_id == "epic-1"
        assert result.mapping_id == mapping.id
        assert result.description_updated
        assert result.comments_added == 1

        assert len(fake_backend.updates) == 1
        [(issue_id, comment)] = fake_backend.comments
        assert issue_id == "acme/app#5"
        assert comment.startswith("## Progress Update")

        stored = store.get(mapping.id)
        assert stored.status == MappingStatus.ACTIVE
        assert len(stored.sync_history) == 1
        entry = stored.sync_history[0]
        assert entry.success
        assert entry.direction == SyncDirection.BEADS_TO_EXTERNAL
        assert entry.items_synced == 3
        assert entry.changes.diagram_updated
        assert entry.changes.comments_added == 1
        assert stored.aggregated_metrics.total_completed == 1
        assert stored.linked_epics[0].total_issues == 3

    def test_repeat_sync_leaves_body_alone(self, make_orchestrator, mapping, fake_backend):
        orchestrator = make_orchestrator({"task-1"})
        orchestrator.run()
        body = fake_backend.issues["acme/app#5"].body

        result = orchestrator.run().results[0]

        assert result.success
        assert not result.description_updated
        assert fake_backend.issues["acme/app#5"].body == body
        assert len(fake_backend.updates) == 1

    def test_without_mapping(self, make_orchestrator, fake_backend, store):
        report = make_orchestrator({"task-1"}).run()

        assert report.results[0].success
        assert report.results[0].mapping_id is None
        assert store.list() == []
        assert len(fake_backend.comments) == 1

    def test_snapshot_and_no_narrative(self, make_orchestrator, fake_backend):
        report = make_orchestrator({"task-1"}, create_snapshot=True, post_narrative=False).run()

        assert report.results[0].comments_added == 1
        assert fake_backend.comments[0][1].startswith("## Dependency Diagram Snapshot")

    def test_description_update_disabled(self, make_orchestrator, fake_backend):
        report = make_orchestrator({"task-1"}, update_description=False).run()
        assert report.results[0].success
        assert fake_backend.updates == []

    def test_no_changes(self, make_orchestrator, fake_backend):
        callback = RecordingCallback()
        report = make_orchestrator(set(), callback=callback).run()

        assert report.results == []
        assert report.success
        assert callback.started == (0, 1)
        assert fake_backend.comments == []

    def test_sync_returns_results(self, make_orchestrator):
        results = make_orchestrator({"task-1"}).sync()
        assert [str(r.external_ref) for r in results] == ["github:acme/app#5"]

    def test_detect_only(self, make_orchestrator, fake_backend):
        change_set = make_orchestrator({"task-2", "stray-1"}).detect()

        assert {str(ref): item for ref, item in change_set.affected_external_refs.items()} == {
            "github:acme/app#5": "epic-1"
        }
        assert change_set.unresolved_item_ids == {"stray-1"}
        assert fake_backend.updates == []


class TestSafety:
    """Test conflict, dry-run and setup checks."""

    def test_conflict_skips_entity(self, make_orchestrator, mapping, fake_backend, store):
        store.update(
            mapping.id,
            MappingUpdate(
                conflict=ConflictRecord(
                    type=ConflictType.STATE_MISMATCH, description="closed on GitHub"
                )
            ),
        )

        report = make_orchestrator({"task-1"}).run()

        [result] = report.results
        assert not result.success
        assert result.error_code == "CONFLICT"
        assert "github:acme/app#5" in result.error
        assert fake_backend.updates == []
        assert fake_backend.comments == []
        assert store.get(mapping.id).sync_history == []

    def test_dry_run_writes_nothing(self, make_orchestrator, mapping, fake_backend, store):
        report = make_orchestrator({"task-1"}).run(dry_run=True)

        assert report.skipped == 1
        assert report.synced == 0
        assert report.success
        assert fake_backend.updates == []
        assert fake_backend.comments == []
        assert store.get(mapping.id).status == MappingStatus.ACTIVE
        assert store.get(mapping.id).sync_history == []

    def test_missing_project_dir(self, tmp_path, fake_source, fake_backend, store):
        resolver = ExternalRefResolver(fake_source)
        placer = DiagramPlacer({}, resolver, MermaidGenerator(fake_source))
        orchestrator = SyncOrchestrator(
            StaticDetector(tmp_path / "missing", {"task-1"}), resolver, placer, store
        )
        with pytest.raises(StoreError):
            orchestrator.run()

    def test_invalid_concurrency(self, make_orchestrator):
        with pytest.raises(ValueError):
            make_orchestrator(set(), max_concurrency=0)


class TestFailures:
    """Test that one entity's failure never affects another."""

    def test_placement_error_recorded(self, make_orchestrator, mapping, fake_backend, store):
        fake_backend.issues.clear()

        report = make_orchestrator({"task-1"}).run()

        [result] = report.results
        assert result.error_code == "NOT_FOUND"
        assert report.failed == 1
        stored = store.get(mapping.id)
        assert stored.status == MappingStatus.ACTIVE
        assert stored.sync_history[0].success is False
        assert "github:acme/app#5" in stored.sync_history[0].error

    def test_comment_failure_recorded(
        self, make_orchestrator, mapping, fake_backend, store, monkeypatch
    ):
        def rate_limited(issue_id, body):
            raise RateLimitError("slow down", retry_after=60)

        monkeypatch.setattr(fake_backend, "add_comment", rate_limited)

        [result] = make_orchestrator({"task-1"}).run().results

        assert result.error_code == "RATE_LIMIT"
        assert result.description_updated
        assert store.get(mapping.id).sync_history[0].success is False

    def test_failures_are_isolated(self, many_entities):
        orchestrator, placer = many_entities(
            fail={
                "github:acme/app#3": "HTTP 502",
                "github:acme/app#7": RuntimeError("socket closed"),
            }
        )

        report = orchestrator.run()

        assert len(report.results) == 10
        assert report.failed == 2
        by_ref = {str(r.external_ref): r for r in report.results}
        assert by_ref["github:acme/app#3"].error_code == "BACKEND_ERROR"
        assert by_ref["github:acme/app#7"].error_code == "UNKNOWN_ERROR"
        assert "socket closed" in by_ref["github:acme/app#7"].error
        assert len(placer.placed) == 9


class TestConcurrency:
    """Test the bounded fan-out."""

    def test_never_exceeds_bound(self, many_entities):
        orchestrator, placer = many_entities(max_concurrency=3)

        report = orchestrator.run()

        assert len(report.results) == 10
        assert all(r.success for r in report.results)
        assert 1 < placer.peak <= 3

    def test_serial_when_bound_is_one(self, many_entities):
        orchestrator, placer = many_entities(max_concurrency=1)
        orchestrator.run()
        assert placer.peak == 1

    def test_results_sorted_by_ref(self, many_entities):
        orchestrator, _ = many_entities()
        refs = [str(r.external_ref) for r in orchestrator.run().results]
        assert refs == sorted(refs)

    def test_callback_sees_every_entity(self, many_entities):
        callback = RecordingCallback()
        orchestrator, _ = many_entities(max_concurrency=4, callback=callback)

        orchestrator.run()

        assert callback.started == (10, 4)
        assert sorted(callback.completed) == sorted(f"github:acme/app#{n}" for n in range(1, 11))
