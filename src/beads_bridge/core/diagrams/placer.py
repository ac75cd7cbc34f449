"""
Idempotent placement of dependency diagrams into external entities.

The diagram section in the entity body is replaced in place, or appended
once. When the freshly rendered section matches the existing one apart
from its timestamp, the body is left untouched. Snapshot comments are
always new comments.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from beads_bridge.core.backends.base import Backend
from beads_bridge.core.diagrams.generator import MermaidGenerator
from beads_bridge.core.diagrams.models import (
    DiagramSnapshot,
    PlacementOptions,
    PlacementResult,
    UpdateTrigger,
)
from beads_bridge.core.diagrams.sections import (
    extract_section,
    format_section,
    format_timestamp,
    replace_section,
    sections_equivalent,
)
from beads_bridge.core.errors import BackendError, BridgeError, NotFoundError
from beads_bridge.core.mappings.models import utc_now
from beads_bridge.core.mappings.store import MappingStore
from beads_bridge.core.refs.models import BackendKind, ExternalRef
from beads_bridge.core.refs.resolver import ExternalRefResolver

logger = logging.getLogger(__name__)

SNAPSHOT_HEADER = "## Dependency Diagram Snapshot"


def format_snapshot_comment(
    diagram_markdown: str,
    trigger: UpdateTrigger,
    timestamp: datetime,
    node_count: int,
    truncated: bool,
    max_nodes: int,
    message: str | None = None,
) -> str:
    """Body of a snapshot comment."""
    parts = [SNAPSHOT_HEADER, ""]
    if message:
        parts += [message, ""]
    parts += [
        f"**Trigger:** {trigger.value}",
        f"**Timestamp:** {format_timestamp(timestamp)}",
        f"**Nodes:** {node_count}",
        "",
    ]
    if truncated:
        parts += [
            f"> Diagram truncated: {node_count} nodes exceeds the limit of {max_nodes}.",
            "",
        ]
    parts.append(diagram_markdown)
    return "\n".join(parts)


class DiagramPlacer:
    """
    Renders diagrams for an external entity's epics and places them.

    Example:
        >>> placer = DiagramPlacer(backends, resolver, generator, mappings=store)
        >>> result = placer.place(parse_external_ref("github:acme/app#5"),
        ...                       PlacementOptions(trigger=UpdateTrigger.MANUAL))
        >>> result.description_updated or result.description_unchanged
        True
    """

    def __init__(
        self,
        backends: dict[BackendKind, Backend],
        resolver: ExternalRefResolver,
        generator: MermaidGenerator,
        mappings: MappingStore | None = None,
        max_nodes: int = 50,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Args:
            backends: Configured backend per external system
            resolver: Used to find epics when no mapping links them
            generator: Mermaid diagram generator
            mappings: Mapping store consulted first for linked epics
            max_nodes: Node budget before a diagram is reported truncated
            clock: Source of "now"; injectable for tests
        """
        self.backends = backends
        self.resolver = resolver
        self.generator = generator
        self.mappings = mappings
        self.max_nodes = max_nodes
        self._clock = clock

    def backend_for(self, ref: ExternalRef) -> Backend:
        """The configured backend for a ref's external system."""
        backend = self.backends.get(ref.backend)
        if backend is None:
            raise BackendError(
                f"No {ref.backend.value} backend configured for {ref}", code="NOT_CONFIGURED"
            )
        return backend

    def _epic_ids(self, ref: ExternalRef) -> list[str]:
        """Epics from the mapping when it lists any, else from the tracker."""
        if self.mappings is not None:
            mapping = self.mappings.find_by_external_entity(ref)
            if mapping is not None and mapping.epic_ids:
                return mapping.epic_ids
        return self.resolver.find_epics(ref)

    def render(self, epic_ids: list[str]) -> tuple[str, int]:
        """
        Render one diagram per epic.

        A single epic yields its diagram alone. Several epics are kept as
        separate diagrams under ``### <epic id>`` headings.

        Returns:
            (markdown, total node count)
        """
        diagrams = [self.generator.generate(epic_id, self.max_nodes) for epic_id in epic_ids]
        total_nodes = sum(d.node_count for d in diagrams)
        if len(diagrams) == 1:
            return diagrams[0].markdown, total_nodes
        markdown = "\n\n".join(f"### {d.root_id}\n\n{d.markdown}" for d in diagrams)
        return markdown, total_nodes

    def place(self, ref: ExternalRef, options: PlacementOptions | None = None) -> PlacementResult:
        """
        Place the diagram for `ref` according to `options`.

        Never raises for lookup or backend failures; they are reported in
        ``error`` and ``error_code`` with the entity named in the message.
        """
        options = options or PlacementOptions()
        result = PlacementResult(entity_url=ref.url)

        try:
            backend = self.backend_for(ref)

            epic_ids = self._epic_ids(ref)
            if not epic_ids:
                raise NotFoundError(f"No epics linked to {ref}", external_ref=str(ref))
            result.epic_ids = epic_ids

            diagram_markdown, node_count = self.render(epic_ids)
            result.node_count = node_count
            result.truncated = node_count > self.max_nodes

            now = self._clock()
            issue = backend.get_issue(ref.issue_id)
            result.entity_url = issue.url or ref.url

            if options.update_description:
                section = format_section(diagram_markdown, now, options.trigger)
                existing = extract_section(issue.body)
                if (
                    existing is not None
                    and sections_equivalent(existing, section)
                    and replace_section(issue.body, existing) == issue.body
                ):
                    logger.debug("Diagram for %s is unchanged; leaving body alone", ref)
                    result.description_unchanged = True
                else:
                    backend.update_issue(ref.issue_id, body=replace_section(issue.body, section))
                    result.description_updated = True
                    logger.info("Updated diagram section on %s", ref)

            if options.create_snapshot:
                comment = backend.add_comment(
                    ref.issue_id,
                    format_snapshot_comment(
                        diagram_markdown,
                        options.trigger,
                        now,
                        node_count,
                        result.truncated,
                        self.max_nodes,
                        options.message,
                    ),
                )
                result.snapshot = DiagramSnapshot(
                    timestamp=now,
                    trigger=options.trigger,
                    comment_id=comment.id,
                    comment_url=comment.url,
                    node_count=node_count,
                    truncated=result.truncated,
                )
                logger.info("Posted diagram snapshot on %s", ref)

        except BridgeError as e:
            logger.warning("Diagram placement failed for %s: %s", ref, e)
            result.error = f"{ref}: {e}"
            result.error_code = e.code
        except Exception as e:
            logger.exception("Unexpected error placing diagram for %s", ref)
            result.error = f"{ref}: {e}"
            result.error_code = "UNKNOWN_ERROR"

        return result
