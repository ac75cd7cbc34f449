"""
Sync orchestration.

One run: detect changed items, resolve them to external entities, then
sync each entity in a bounded thread pool. Each entity's pipeline is
sequential (diagram, narrative comment, mapping history). A failure in one
entity is captured in its result and never stops its siblings.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Protocol

from beads_bridge.core.changes.detector import ChangeDetector
from beads_bridge.core.changes.models import ChangeSet
from beads_bridge.core.diagrams.models import PlacementOptions, UpdateTrigger
from beads_bridge.core.diagrams.placer import DiagramPlacer
from beads_bridge.core.errors import BridgeError, StoreError
from beads_bridge.core.mappings.models import (
    Mapping,
    MappingStatus,
    MappingUpdate,
    SyncChanges,
    SyncDirection,
    SyncHistoryEntry,
    utc_now,
)
from beads_bridge.core.mappings.store import MappingStore
from beads_bridge.core.refs.models import ExternalRef
from beads_bridge.core.refs.resolver import ExternalRefResolver
from beads_bridge.core.sync.models import EntitySyncResult, SyncReport
from beads_bridge.core.sync.narrator import ProgressNarrator, ProgressSummary

logger = logging.getLogger(__name__)


class SyncCallback(Protocol):
    """Protocol for sync progress callbacks."""

    def on_start(self, num_entities: int, num_workers: int) -> None:
        """Called once entities are resolved, before any is synced."""
        ...

    def on_entity_complete(self, result: EntitySyncResult) -> None:
        """Called as each entity finishes, in completion order."""
        ...


class _NoOpCallback:
    def on_start(self, num_entities: int, num_workers: int) -> None:
        pass

    def on_entity_complete(self, result: EntitySyncResult) -> None:
        pass


class SyncOrchestrator:
    """
    Runs change detection, resolution, and the per-entity fan-out.

    Example:
        >>> orchestrator = SyncOrchestrator(detector, resolver, placer, mappings,
        ...                                 narrator=narrator, max_concurrency=3)
        >>> report = orchestrator.run(since_ref="HEAD~1")
        >>> print(f"{report.synced} synced, {report.failed} failed")
    """

    def __init__(
        self,
        detector: ChangeDetector,
        resolver: ExternalRefResolver,
        placer: DiagramPlacer,
        mappings: MappingStore,
        narrator: ProgressNarrator | None = None,
        max_concurrency: int = 3,
        post_narrative: bool = True,
        create_snapshot: bool = False,
        update_description: bool = True,
        callback: SyncCallback | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Args:
            detector: Change detector over the record file
            resolver: Item -> external ref resolver
            placer: Diagram placer (also provides backends)
            mappings: Mapping store for history and conflict checks
            narrator: Builds narrative comments and metrics; None disables both
            max_concurrency: Maximum entities in flight at once
            post_narrative: Post a narrative progress comment per entity
            create_snapshot: Post a diagram snapshot comment per entity
            update_description: Rewrite the diagram section in entity bodies
            callback: Progress callback
            clock: Source of "now"; injectable for tests
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.detector = detector
        self.resolver = resolver
        self.placer = placer
        self.mappings = mappings
        self.narrator = narrator
        self.max_concurrency = max_concurrency
        self.post_narrative = post_narrative
        self.create_snapshot = create_snapshot
        self.update_description = update_description
        self.callback: SyncCallback = callback or _NoOpCallback()
        self._clock = clock

    def _check_setup(self) -> None:
        """
        Raises:
            StoreError: If the project or the mapping store is unusable
        """
        project_dir = self.detector.project_dir
        if not project_dir.is_dir():
            raise StoreError(
                f"Project directory not found: {project_dir}", path=str(project_dir)
            )
        records = project_dir / self.detector.records_file
        if not records.exists():
            logger.warning("Record file %s does not exist yet; nothing to sync", records)
        self.mappings.initialize()

    def detect(self, since_ref: str = "HEAD~1", until_ref: str | None = None) -> ChangeSet:
        """Detect changes and resolve them to external entities."""
        change_set = self.detector.detect_changes(since_ref, until_ref)
        if change_set.changed_item_ids:
            resolved, unresolved = self.resolver.resolve_changes(change_set.changed_item_ids)
            change_set.affected_external_refs = resolved
            change_set.unresolved_item_ids = unresolved
            if unresolved:
                logger.info(
                    "%d changed item(s) have no external ref: %s",
                    len(unresolved),
                    ", ".join(sorted(unresolved)),
                )
        return change_set

    def run(
        self,
        since_ref: str = "HEAD~1",
        until_ref: str | None = None,
        dry_run: bool = False,
    ) -> SyncReport:
        """
        Run a full sync.

        Args:
            since_ref: Git ref of the previous sync state
            until_ref: Git ref of the new state; None is the working tree
            dry_run: Resolve entities but write nothing

        Returns:
            SyncReport with one result per affected entity, sorted by ref

        Raises:
            StoreError: If the project or record store is unreadable
        """
        started_at = self._clock()
        self._check_setup()

        change_set = self.detect(since_ref, until_ref)
        report = SyncReport(change_set=change_set, started_at=started_at)

        targets = change_set.affected_external_refs
        self.callback.on_start(len(targets), min(self.max_concurrency, max(len(targets), 1)))

        if targets:
            report.results = self._fan_out(targets, dry_run)

        report.completed_at = self._clock()
        logger.info(
            "Sync complete: %d synced, %d skipped, %d failed",
            report.synced,
            report.skipped,
            report.failed,
        )
        return report

    def sync(
        self, since_ref: str = "HEAD~1", until_ref: str | None = None
    ) -> list[EntitySyncResult]:
        """Run a sync and return just the per-entity results."""
        return self.run(since_ref, until_ref).results

    def _fan_out(self, targets: dict[ExternalRef, str], dry_run: bool) -> list[EntitySyncResult]:
        results: list[EntitySyncResult] = []

        with ThreadPoolExecutor(max_workers=self.max_concurrency) as executor:
            futures: dict[Future[EntitySyncResult], tuple[ExternalRef, str]] = {
                executor.submit(self.sync_entity, ref, item_id, dry_run): (ref, item_id)
                for ref, item_id in targets.items()
            }
            for future in as_completed(futures):
                ref, item_id = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.exception("Sync pipeline crashed for %s", ref)
                    result = EntitySyncResult(
                        external_ref=ref,
                        representative_item_id=item_id,
                        error=f"{ref}: {e}",
                        error_code="UNKNOWN_ERROR",
                    )
                results.append(result)
                self.callback.on_entity_complete(result)

        results.sort(key=lambda r: str(r.external_ref))
        return results

    def sync_entity(
        self, ref: ExternalRef, representative_item_id: str, dry_run: bool = False
    ) -> EntitySyncResult:
        """
        Sync one external entity. Never raises.

        A mapping in conflict is reported as a failure and nothing external
        is touched.
        """
        start = time.monotonic()
        result = EntitySyncResult(external_ref=ref, representative_item_id=representative_item_id)
        mapping: Mapping | None = None

        try:
            mapping = self.mappings.find_by_external_entity(ref)
            if mapping is not None:
                result.mapping_id = mapping.id
                if mapping.status == MappingStatus.CONFLICT:
                    result.error = (
                        f"{ref}: mapping {mapping.id} has an unresolved conflict; "
                        "resolve it with `beads-bridge mapping resolve`"
                    )
                    result.error_code = "CONFLICT"
                    return result

            if dry_run:
                result.success = True
                result.skipped = True
                return result

            if mapping is not None:
                mapping = self.mappings.update(
                    mapping.id, MappingUpdate(status=MappingStatus.SYNCING)
                )

            placement = self.placer.place(
                ref,
                PlacementOptions(
                    trigger=UpdateTrigger.SCOPE_CHANGE,
                    update_description=self.update_description,
                    create_snapshot=self.create_snapshot,
                ),
            )
            result.description_updated = placement.description_updated
            result.comments_added += 1 if placement.snapshot else 0
            if placement.error:
                result.error = placement.error
                result.error_code = placement.error_code
                self._record(mapping, result, None)
                return result

            summary: ProgressSummary | None = None
            epic_ids = placement.epic_ids or (mapping.epic_ids if mapping else [])
            if self.narrator is not None and epic_ids:
                summary = self.narrator.summarize(epic_ids)
                if self.post_narrative:
                    backend = self.placer.backend_for(ref)
                    backend.add_comment(ref.issue_id, self.narrator.build_comment(summary))
                    result.comments_added += 1

            result.success = True
            self._record(mapping, result, summary)

        except BridgeError as e:
            logger.error("Sync failed for %s (item %s): %s", ref, representative_item_id, e)
            result.error = f"{ref}: {e}"
            result.error_code = e.code
            self._record_failure(mapping, result)
        except Exception as e:
            logger.exception("Unexpected error syncing %s", ref)
            result.error = f"{ref}: {e}"
            result.error_code = "UNKNOWN_ERROR"
            self._record_failure(mapping, result)
        finally:
            result.duration_seconds = time.monotonic() - start

        return result

    def _record(
        self,
        mapping: Mapping | None,
        result: EntitySyncResult,
        summary: ProgressSummary | None,
    ) -> None:
        """Write the outcome to the mapping's history and return it to ACTIVE."""
        if mapping is None:
            return

        changes = SyncChanges(
            external_updates=["diagram section updated"] if result.description_updated else [],
            diagram_updated=result.description_updated,
            comments_added=result.comments_added,
        )
        update = MappingUpdate(
            status=MappingStatus.ACTIVE,
            sync_history_entry=SyncHistoryEntry(
                timestamp=self._clock(),
                direction=SyncDirection.BEADS_TO_EXTERNAL,
                success=result.error is None,
                items_synced=summary.total if summary else None,
                changes=changes,
                error=result.error,
            ),
        )
        if summary is not None and self.narrator is not None:
            update.aggregated_metrics = self.narrator.metrics(summary)
            update.linked_epics = self.narrator.refresh_epic_links(mapping.linked_epics, summary)

        self.mappings.update(mapping.id, update)

    def _record_failure(self, mapping: Mapping | None, result: EntitySyncResult) -> None:
        try:
            self._record(mapping, result, None)
        except BridgeError as e:
            logger.error("Could not record sync failure for %s: %s", result.external_ref, e)
