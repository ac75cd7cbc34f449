"""
File-backed mapping store.

Layout under the storage path (``.beads-bridge/`` by default)::

    index.json              derived index of all mappings
    mappings/<slug>.json    one file per mapping
    .gitignore              ignores temp files

The directory is meant to be committed alongside the project. Files are
written atomically via a temp file and rename. The index is derived data:
when it is missing or unreadable it is rebuilt from the mapping files.

A single process is assumed to own the storage path. Threads within that
process are serialized by an in-process lock.
"""

from __future__ import annotations

import hashlib
import logging
import re
import subprocess
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from beads_bridge.core.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from beads_bridge.core.mappings.models import (
    ConflictResolution,
    CreateMappingParams,
    EpicLink,
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
    utc_now,
)
from beads_bridge.core.refs.parser import parse_external_ref

logger = logging.getLogger(__name__)

# Fields resolve_conflict may never overwrite
_PROTECTED_FIELDS = frozenset(
    {"id", "external_entity", "external_repository", "created_at", "sync_history", "conflict"}
)


def mapping_slug(external_entity: str) -> str:
    """
    Deterministic file stem for a canonical external entity.

    Example:
        >>> mapping_slug("github:acme/app#5")[:17]
        'github-acme-app-5'
    """
    readable = re.sub(r"[^A-Za-z0-9]+", "-", external_entity).strip("-").lower()
    digest = hashlib.sha256(external_entity.encode()).hexdigest()[:8]
    return f"{readable}-{digest}"


class MappingStore:
    """
    Durable store of Mapping records.

    Example:
        >>> store = MappingStore(Path(".beads-bridge"))
        >>> store.initialize()
        >>> mapping = store.create(CreateMappingParams(
        ...     external_entity="github:acme/app#5",
        ...     linked_epics=[EpicLinkInput(repository="app", epic_id="bd-epic")],
        ... ))
        >>> store.find_by_external_entity("github:acme/app#5").id == mapping.id
        True
    """

    INDEX_FILE = "index.json"
    MAPPINGS_DIR = "mappings"
    GITIGNORE_CONTENT = "*.tmp\n*.swp\n"

    def __init__(
        self,
        storage_path: Path,
        max_history_entries: int = 50,
        auto_commit: bool = False,
        commit_message_prefix: str = "sync: ",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Args:
            storage_path: Directory holding the index and mapping files
            max_history_entries: Sync history entries kept per mapping
            auto_commit: Commit each write to git
            commit_message_prefix: Prefix for auto-commit messages
            clock: Source of "now"; injectable for tests
        """
        self.storage_path = Path(storage_path)
        self.max_history_entries = max_history_entries
        self.auto_commit = auto_commit
        self.commit_message_prefix = commit_message_prefix
        self._clock = clock
        self._lock = threading.RLock()
        self._index: MappingIndex | None = None

    @property
    def index_path(self) -> Path:
        return self.storage_path / self.INDEX_FILE

    @property
    def mappings_dir(self) -> Path:
        return self.storage_path / self.MAPPINGS_DIR

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def _write_atomic(self, path: Path, content: str) -> None:
        """Write a file atomically via temp file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(content)
            temp_path.replace(path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise StoreError(f"Failed to write {path}: {e}", path=str(path)) from e

    def _read_mapping_file(self, path: Path) -> Mapping:
        try:
            return Mapping.model_validate_json(path.read_text())
        except (OSError, PydanticValidationError, ValueError) as e:
            raise StoreError(f"Corrupt mapping file {path}: {e}", path=str(path)) from e

    def _write_mapping(self, mapping: Mapping) -> str:
        """Persist a mapping; returns its path relative to the storage path."""
        relative = f"{self.MAPPINGS_DIR}/{mapping_slug(mapping.external_entity)}.json"
        self._write_atomic(self.storage_path / relative, mapping.model_dump_json(indent=2))
        return relative

    def _save_index(self) -> None:
        index = self._require_index()
        index.last_updated = self._clock()
        self._write_atomic(self.index_path, index.model_dump_json(indent=2))

    def _require_index(self) -> MappingIndex:
        if self._index is None:
            self.initialize()
        assert self._index is not None
        return self._index

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Create the storage layout and load the index.

        A missing or corrupt index is rebuilt from the mapping files.
        """
        with self._lock:
            try:
                self.mappings_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreError(
                    f"Cannot create mapping storage at {self.storage_path}: {e}"
                ) from e

            gitignore = self.storage_path / ".gitignore"
            if not gitignore.exists():
                gitignore.write_text(self.GITIGNORE_CONTENT)

            if self.index_path.exists():
                try:
                    self._index = MappingIndex.model_validate_json(self.index_path.read_text())
                    return
                except (OSError, PydanticValidationError, ValueError) as e:
                    logger.warning(
                        "Mapping index at %s is unreadable, rebuilding: %s", self.index_path, e
                    )

            self.rebuild_index()

    def rebuild_index(self) -> int:
        """
        Regenerate index.json from the mapping files.

        Unreadable mapping files are skipped with a warning.

        Returns:
            Number of mappings indexed
        """
        with self._lock:
            entries: list[MappingIndexEntry] = []
            if self.mappings_dir.exists():
                for path in sorted(self.mappings_dir.glob("*.json")):
                    try:
                        mapping = self._read_mapping_file(path)
                    except StoreError as e:
                        logger.warning("Skipping mapping file during rebuild: %s", e)
                        continue
                    relative = f"{self.MAPPINGS_DIR}/{path.name}"
                    entries.append(MappingIndexEntry.from_mapping(mapping, relative))

            entries.sort(key=lambda e: e.external_entity)
            self._index = MappingIndex(mappings=entries, last_updated=self._clock())
            self._save_index()
            logger.info("Rebuilt mapping index with %d entries", len(entries))
            return len(entries)

    # ------------------------------------------------------------------
    # Index helpers
    # ------------------------------------------------------------------

    def _entry_by_id(self, mapping_id: str) -> MappingIndexEntry | None:
        for entry in self._require_index().mappings:
            if entry.id == mapping_id:
                return entry
        return None

    def _entry_by_entity(self, external_entity: str) -> MappingIndexEntry | None:
        for entry in self._require_index().mappings:
            if entry.external_entity == external_entity:
                return entry
        return None

    def _upsert_entry(self, mapping: Mapping, file_path: str) -> None:
        index = self._require_index()
        new_entry = MappingIndexEntry.from_mapping(mapping, file_path)
        for i, entry in enumerate(index.mappings):
            if entry.id == mapping.id:
                index.mappings[i] = new_entry
                break
        else:
            index.mappings.append(new_entry)
        self._save_index()

    def _load(self, entry: MappingIndexEntry) -> Mapping | None:
        path = self.storage_path / entry.file_path
        if not path.exists():
            logger.warning("Mapping file %s listed in index is missing", path)
            return None
        return self._read_mapping_file(path)

    def _load_required(self, mapping_id: str) -> Mapping:
        entry = self._entry_by_id(mapping_id)
        mapping = self._load(entry) if entry else None
        if mapping is None:
            raise NotFoundError(f"Mapping not found: {mapping_id}", mapping_id=mapping_id)
        return mapping

    def _save(self, mapping: Mapping, action: str) -> Mapping:
        file_path = self._write_mapping(mapping)
        self._upsert_entry(mapping, file_path)
        self._commit(f"{action} mapping for {mapping.external_entity}")
        return mapping

    @staticmethod
    def _canonical(external_entity: str) -> str:
        return str(parse_external_ref(external_entity))

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, params: CreateMappingParams) -> Mapping:
        """
        Create a mapping for an external entity.

        Raises:
            ValidationError: If the external entity is not a valid ref
            AlreadyExistsError: If the entity already has a mapping
        """
        ref = parse_external_ref(params.external_entity)
        entity = str(ref)

        with self._lock:
            existing = self._entry_by_entity(entity)
            if existing is not None:
                raise AlreadyExistsError(
                    f"Mapping already exists for {entity} (id {existing.id})",
                    external_entity=entity,
                    mapping_id=existing.id,
                )

            now = self._clock()
            mapping = Mapping(
                id=str(uuid.uuid4()),
                external_entity=entity,
                external_repository=ref.repository,
                external_representation=params.external_representation or ref.url,
                linked_epics=[
                    EpicLink(
                        repository=epic.repository,
                        epic_id=epic.epic_id,
                        repository_path=epic.repository_path,
                        created_at=now,
                        last_updated_at=now,
                    )
                    for epic in params.linked_epics
                ],
                status=MappingStatus.ACTIVE,
                created_at=now,
                updated_at=now,
                metadata=dict(params.metadata),
            )
            mapping.aggregated_metrics.last_calculated_at = now
            logger.info("Creating mapping %s for %s", mapping.id, entity)
            return self._save(mapping, "create")

    def get(self, mapping_id: str) -> Mapping | None:
        """Get a mapping by id, or None."""
        with self._lock:
            entry = self._entry_by_id(mapping_id)
            return self._load(entry) if entry else None

    def find_by_external_entity(self, external_entity: Any) -> Mapping | None:
        """
        Get the mapping for an external entity, or None.

        Args:
            external_entity: ExternalRef or ref string (any accepted form)
        """
        entity = self._canonical(str(external_entity))
        with self._lock:
            entry = self._entry_by_entity(entity)
            return self._load(entry) if entry else None

    def find_by_epic(self, repository: str, epic_id: str) -> Mapping | None:
        """Get the first mapping linking the given epic, or None."""
        for mapping in self.list(MappingQuery(epic_repository=repository, epic_id=epic_id)):
            return mapping
        return None

    def update(self, mapping_id: str, update: MappingUpdate) -> Mapping:
        """
        Apply a partial update.

        Setting ``conflict`` forces CONFLICT status; passing ``conflict=None``
        clears it and returns the mapping to ACTIVE unless a status is given.
        A history entry is prepended and the history truncated to the cap.

        Raises:
            NotFoundError: If the mapping doesn't exist
            ConflictError: If the mapping is in conflict and the update
                neither sets nor clears the conflict
            ValidationError: If CONFLICT status is requested without a conflict record
        """
        with self._lock:
            mapping = self._load_required(mapping_id)

            if mapping.status == MappingStatus.CONFLICT and not update.touches_conflict:
                raise ConflictError(
                    f"Mapping {mapping_id} for {mapping.external_entity} has an unresolved "
                    "conflict; resolve it before updating",
                    mapping_id=mapping_id,
                )
            if update.status == MappingStatus.CONFLICT and update.conflict is None:
                raise ValidationError(
                    f"Mapping {mapping_id}: CONFLICT status needs a conflict record",
                    mapping_id=mapping_id,
                )

            data = mapping.model_dump()

            if update.status is not None:
                data["status"] = update.status
            if update.linked_epics is not None:
                data["linked_epics"] = [epic.model_dump() for epic in update.linked_epics]
            if update.external_representation is not None:
                data["external_representation"] = update.external_representation
            if update.metadata is not None:
                data["metadata"] = {**mapping.metadata, **update.metadata}
            if update.aggregated_metrics is not None:
                data["aggregated_metrics"] = update.aggregated_metrics.model_dump()

            if update.touches_conflict:
                if update.conflict is not None:
                    data["conflict"] = update.conflict.model_dump()
                    data["status"] = MappingStatus.CONFLICT
                else:
                    data["conflict"] = None
                    if update.status is None and mapping.status == MappingStatus.CONFLICT:
                        data["status"] = MappingStatus.ACTIVE

            if update.sync_history_entry is not None:
                entry = update.sync_history_entry
                history = [entry.model_dump()] + data["sync_history"]
                data["sync_history"] = history[: self.max_history_entries]
                data["last_synced_at"] = entry.timestamp
                data["last_sync_direction"] = entry.direction

            data["updated_at"] = self._clock()
            updated = Mapping.model_validate(data)
            return self._save(updated, "update")

    def delete(self, mapping_id: str) -> None:
        """
        Delete a mapping and its index entry.

        Raises:
            NotFoundError: If the mapping doesn't exist
        """
        with self._lock:
            entry = self._entry_by_id(mapping_id)
            if entry is None:
                raise NotFoundError(f"Mapping not found: {mapping_id}", mapping_id=mapping_id)

            path = self.storage_path / entry.file_path
            if path.exists():
                path.unlink()

            index = self._require_index()
            index.mappings = [e for e in index.mappings if e.id != mapping_id]
            self._save_index()
            logger.info("Deleted mapping %s for %s", mapping_id, entry.external_entity)
            self._commit(f"delete mapping for {entry.external_entity}")

    def list(self, query: MappingQuery | None = None) -> list[Mapping]:
        """
        List mappings matching a query, in index order.

        Index-level filters are applied before any mapping file is read.
        """
        query = query or MappingQuery()

        with self._lock:
            entries = list(self._require_index().mappings)

            if query.external_repository:
                entries = [e for e in entries if e.external_repository == query.external_repository]
            if query.external_entity:
                entity = self._canonical(query.external_entity)
                entries = [e for e in entries if e.external_entity == entity]
            if query.status:
                entries = [e for e in entries if e.status == query.status]
            if query.has_conflicts is not None:
                entries = [e for e in entries if e.has_conflict == query.has_conflicts]
            if query.synced_after:
                entries = [
                    e
                    for e in entries
                    if e.last_synced_at is not None and e.last_synced_at > query.synced_after
                ]

            results: list[Mapping] = []
            for entry in entries:
                mapping = self._load(entry)
                if mapping is None:
                    continue
                if query.epic_repository or query.epic_id:
                    if not any(
                        (not query.epic_repository or epic.repository == query.epic_repository)
                        and (not query.epic_id or epic.epic_id == query.epic_id)
                        for epic in mapping.linked_epics
                    ):
                        continue
                results.append(mapping)
                if query.limit and len(results) >= query.limit:
                    break

            return results

    # ------------------------------------------------------------------
    # Conflicts and stats
    # ------------------------------------------------------------------

    def resolve_conflict(
        self,
        mapping_id: str,
        resolution: ConflictResolution,
        resolved_fields: dict[str, Any] | None = None,
    ) -> Mapping:
        """
        Resolve a mapping's conflict.

        Applies ``resolved_fields``, clears the conflict, sets ACTIVE, and
        records exactly one bidirectional history entry.

        Raises:
            NotFoundError: If the mapping doesn't exist
            ConflictError: If the mapping is not in CONFLICT status
            ValidationError: If resolved_fields touches protected fields
        """
        with self._lock:
            mapping = self._load_required(mapping_id)
            if mapping.status != MappingStatus.CONFLICT:
                raise ConflictError(
                    f"Mapping {mapping_id} is {mapping.status.value}, not in conflict",
                    mapping_id=mapping_id,
                )

            data = mapping.model_dump()
            for key, value in (resolved_fields or {}).items():
                if key in _PROTECTED_FIELDS or key not in Mapping.model_fields:
                    raise ValidationError(
                        f"Field '{key}' cannot be set when resolving a conflict",
                        mapping_id=mapping_id,
                    )
                data[key] = value

            now = self._clock()
            entry = SyncHistoryEntry(
                timestamp=now,
                direction=SyncDirection.BIDIRECTIONAL,
                success=True,
                changes=SyncChanges(external_updates=[f"Conflict resolved: {resolution.value}"]),
            )
            data["conflict"] = None
            data["status"] = MappingStatus.ACTIVE
            data["sync_history"] = ([entry.model_dump()] + data["sync_history"])[
                : self.max_history_entries
            ]
            data["last_synced_at"] = now
            data["last_sync_direction"] = SyncDirection.BIDIRECTIONAL
            data["updated_at"] = now

            try:
                resolved = Mapping.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid resolved fields for mapping {mapping_id}: {e}",
                    mapping_id=mapping_id,
                ) from e

            logger.info("Resolved conflict on %s (%s)", mapping.external_entity, resolution.value)
            return self._save(resolved, "resolve conflict on")

    def get_stats(self) -> MappingStats:
        """Counts, recent activity, and sync success rate across the store."""
        mappings = self.list()
        now = self._clock()
        day_ago = now - timedelta(hours=24)

        by_status: dict[MappingStatus, int] = {}
        total_entries = 0
        successful = 0
        external_repos: set[str] = set()
        beads_repos: set[str] = set()
        recently_synced = 0

        for mapping in mappings:
            by_status[mapping.status] = by_status.get(mapping.status, 0) + 1
            if mapping.last_synced_at is not None and mapping.last_synced_at >= day_ago:
                recently_synced += 1
            total_entries += len(mapping.sync_history)
            successful += sum(1 for entry in mapping.sync_history if entry.success)
            external_repos.add(mapping.external_repository)
            beads_repos.update(epic.repository for epic in mapping.linked_epics)

        return MappingStats(
            total=len(mappings),
            by_status=by_status,
            conflicts=sum(1 for m in mappings if m.has_conflict),
            recently_synced=recently_synced,
            sync_success_rate=100.0 * successful / total_entries if total_entries else 100.0,
            external_repositories=sorted(external_repos),
            beads_repositories=sorted(beads_repos),
        )

    # ------------------------------------------------------------------
    # Git
    # ------------------------------------------------------------------

    def _commit(self, action: str) -> None:
        """Commit the storage directory when auto-commit is on. Never raises."""
        if not self.auto_commit:
            return

        message = f"{self.commit_message_prefix}{action}"
        for args in (["add", "--", "."], ["commit", "-m", message, "--", "."]):
            cmd = ["git"] + args
            try:
                result = subprocess.run(
                    cmd,
                    cwd=self.storage_path,
                    capture_output=True,
                    text=True,
                    timeout=30,
                )
            except (subprocess.TimeoutExpired, OSError) as e:
                logger.warning("Auto-commit failed running %s: %s", " ".join(cmd), e)
                return
            if result.returncode != 0:
                output = (result.stderr or result.stdout or "").strip()
                logger.warning("Auto-commit step '%s' failed: %s", " ".join(cmd), output)
                return

        logger.debug("Committed mapping change: %s", message)

