"""
Resolution of tracked items to the external entity they roll up to.

An item either carries an external reference itself or inherits one from
the nearest ancestor over ``parent-child`` edges. The walk is iterative
with an explicit visited set, so cyclic or self-referencing parent chains
terminate and each item is fetched at most once per walk.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from beads_bridge.core.beads.client import SourceClient
from beads_bridge.core.beads.models import TrackedItem
from beads_bridge.core.errors import BridgeError, ValidationError
from beads_bridge.core.refs.models import ExternalRef
from beads_bridge.core.refs.parser import parse_external_ref

logger = logging.getLogger(__name__)


class ExternalRefResolver:
    """
    Walks the source tracker's dependency graph to find external refs.

    Example:
        >>> resolver = ExternalRefResolver(BeadsClient())
        >>> ref = resolver.resolve("task-1")
        >>> str(ref) if ref else None
        'github:acme/app#5'
    """

    def __init__(self, source: SourceClient) -> None:
        self.source = source

    def resolve(self, item_id: str) -> ExternalRef | None:
        """
        Find the external ref an item belongs to.

        The item's own ref wins; otherwise parents are searched depth-first
        in edge order and the first ancestor carrying a ref wins.

        Args:
            item_id: Item to resolve

        Returns:
            ExternalRef, or None if no reachable item carries one

        Raises:
            ValidationError: If the first ref found is malformed
        """
        visited: set[str] = set()
        stack = [item_id]

        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)

            item = self.source.show(current)
            if item is None:
                logger.debug("Item %s not found while resolving %s", current, item_id)
                continue

            if item.external_ref:
                return parse_external_ref(item.external_ref)

            # Reversed so the first parent is popped first
            for parent_id in reversed(item.parent_ids):
                if parent_id not in visited:
                    stack.append(parent_id)

        return None

    def _items_by_ref(self) -> dict[ExternalRef, list[TrackedItem]]:
        """Group every listed item that carries a parseable ref by that ref."""
        grouped: dict[ExternalRef, list[TrackedItem]] = {}
        for item in self.source.list_items():
            if not item.external_ref:
                continue
            try:
                ref = parse_external_ref(item.external_ref)
            except ValidationError:
                logger.warning(
                    "Skipping %s: unparseable external_ref '%s'", item.id, item.external_ref
                )
                continue
            grouped.setdefault(ref, []).append(item)
        return grouped

    @staticmethod
    def _coerce(ref: ExternalRef | str) -> ExternalRef:
        return ref if isinstance(ref, ExternalRef) else parse_external_ref(ref)

    def find_entity_by_external_ref(self, ref: ExternalRef | str) -> str | None:
        """
        Reverse lookup: the first item whose own ref equals `ref`.

        Refs are compared in canonical form, so a URL-form ref on an item
        matches a shorthand query.
        """
        matches = self._items_by_ref().get(self._coerce(ref), [])
        return matches[0].id if matches else None

    def find_epics(self, ref: ExternalRef | str) -> list[str]:
        """
        Ids of the epics linked to `ref`.

        Falls back to any linked item when no epic carries the ref.
        """
        matches = self._items_by_ref().get(self._coerce(ref), [])
        epics = [item.id for item in matches if item.is_epic]
        return epics or [item.id for item in matches]

    def resolve_changes(
        self, item_ids: Iterable[str]
    ) -> tuple[dict[ExternalRef, str], set[str]]:
        """
        Group changed items by the external entity they roll up to.

        Each entity gets one representative item id: the item that carries
        the ref, or the first changed item (in sorted order) that resolved
        to it when the carrier cannot be listed.

        Args:
            item_ids: Changed item ids

        Returns:
            (ref -> representative item id, ids that resolved to nothing)
        """
        resolved: dict[ExternalRef, str] = {}
        unresolved: set[str] = set()

        for item_id in sorted(set(item_ids)):
            try:
                ref = self.resolve(item_id)
            except BridgeError as e:
                logger.warning("Could not resolve %s: %s", item_id, e)
                unresolved.add(item_id)
                continue
            if ref is None:
                unresolved.add(item_id)
                continue
            resolved.setdefault(ref, item_id)

        if resolved:
            try:
                carriers = self._items_by_ref()
            except BridgeError as e:
                logger.warning("Could not list items for reverse lookup: %s", e)
                carriers = {}
            for ref in resolved:
                if carriers.get(ref):
                    resolved[ref] = carriers[ref][0].id

        return resolved, unresolved
