"""
Mermaid diagram generation from the beads dependency tree.

bd renders the tree; this module adds status styling and a theme
directive so the diagram reads well when embedded in GitHub or Shortcut.
"""

from __future__ import annotations

import logging
import re

from beads_bridge.core.beads.client import SourceClient, depth_for_node_budget
from beads_bridge.core.diagrams.models import Diagram
from beads_bridge.core.errors import NotFoundError

logger = logging.getLogger(__name__)

# Glyph bd puts at the start of a node label -> node style
STATUS_STYLES = {
    "☑": "fill:#d4edda,stroke:#c3e6cb,color:#155724",  # closed
    "◧": "fill:#cce5ff,stroke:#b8daff,color:#004085",  # in_progress
    "☐": "fill:#f8f9fa,stroke:#dee2e6,color:#495057",  # open
    "⊗": "fill:#f8d7da,stroke:#f5c6cb,color:#721c24",  # blocked
}

INIT_DIRECTIVE = (
    "%%{init: {'theme': 'base', 'themeVariables': {"
    "'primaryColor': '#f8f9fa', 'primaryBorderColor': '#dee2e6', "
    "'lineColor': '#6c757d', 'fontSize': '14px'}}}%%"
)

_NODE_LINE = re.compile(r'^\s*(?P<id>[A-Za-z0-9_.:-]+)\s*[\[\(\{]+"?(?P<label>[^"\]\)\}]*)')
_FENCE = re.compile(r"^```(?:mermaid)?\s*$")


class MermaidGenerator:
    """
    Produces styled Mermaid diagrams for an epic.

    Example:
        >>> generator = MermaidGenerator(BeadsClient())
        >>> diagram = generator.generate("bd-epic", max_nodes=50)
        >>> print(diagram.markdown)
    """

    def __init__(self, source: SourceClient) -> None:
        self.source = source

    def generate(self, root_id: str, max_nodes: int = 50) -> Diagram:
        """
        Render the dependency tree rooted at `root_id`.

        Args:
            root_id: Epic (or other root item) id
            max_nodes: Node budget; below the default this limits tree depth

        Raises:
            NotFoundError: If bd returns no diagram for the root
        """
        raw = self.source.dep_tree_mermaid(root_id, max_depth=depth_for_node_budget(max_nodes))
        lines = [line.rstrip() for line in raw.splitlines() if not _FENCE.match(line.strip())]
        if not any(line.strip() for line in lines):
            raise NotFoundError(f"No dependency diagram for {root_id}", item_id=root_id)

        node_ids: list[str] = []
        styles: list[str] = []
        for line in lines:
            match = _NODE_LINE.match(line)
            if not match or "-->" in line or match["id"] in ("flowchart", "graph"):
                continue
            node_id = match["id"]
            if node_id in node_ids:
                continue
            node_ids.append(node_id)
            label = match["label"].strip()
            if label and label[0] in STATUS_STYLES:
                styles.append(f"    style {node_id} {STATUS_STYLES[label[0]]}")

        mermaid = "\n".join([INIT_DIRECTIVE] + lines + styles)
        logger.debug("Generated diagram for %s with %d node(s)", root_id, len(node_ids))
        return Diagram(root_id=root_id, mermaid=mermaid, node_count=len(node_ids))

    @staticmethod
    def render(mermaid: str) -> str:
        """Wrap Mermaid source in a markdown code fence."""
        return f"```mermaid\n{mermaid}\n```"
