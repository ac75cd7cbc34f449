"""
Read-only access to the beads tracker through the `bd` CLI.

`SourceClient` is the capability the rest of the bridge depends on;
`BeadsClient` implements it by shelling out to `bd ... --json`.
"""

from __future__ import annotations

import json
import logging
import math
import shutil
import subprocess
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from beads_bridge.core.beads.models import ItemStatus, TrackedItem
from beads_bridge.core.errors import SubprocessError

logger = logging.getLogger(__name__)

# bd prints one of these on stderr when an id does not exist
_NOT_FOUND_MARKERS = ("not found", "no issue", "no such issue")


@runtime_checkable
class SourceClient(Protocol):
    """
    Read-only view of the source-of-truth tracker.

    Implementations must not mutate tracker state.
    """

    def show(self, item_id: str) -> TrackedItem | None:
        """
        Get a single item.

        Returns:
            The item, or None if it does not exist
        """
        ...

    def list_items(
        self,
        status: ItemStatus | None = None,
        issue_type: str | None = None,
        parent: str | None = None,
    ) -> list[TrackedItem]:
        """List items, optionally filtered by status, type, or parent."""
        ...

    def dep_tree(self, root_id: str, reverse: bool = True) -> list[dict[str, Any]]:
        """Dependency tree rooted at root_id as raw node dicts."""
        ...

    def dep_tree_mermaid(self, root_id: str, max_depth: int | None = None) -> str:
        """Dependency tree rooted at root_id rendered as Mermaid source."""
        ...


class BeadsClient:
    """
    SourceClient backed by the beads CLI (`bd`).

    Example:
        >>> client = BeadsClient(project_dir=Path("."))
        >>> item = client.show("bd-a1b2")
        >>> children = client.list_items(parent="bd-epic")
    """

    def __init__(
        self,
        project_dir: Path | None = None,
        bd_command: str = "bd",
        timeout: int = 30,
    ) -> None:
        """
        Args:
            project_dir: Directory containing .beads/ (defaults to cwd)
            bd_command: bd executable name or path
            timeout: Seconds before a single bd call is abandoned
        """
        self.project_dir = project_dir or Path.cwd()
        self.bd_command = bd_command
        self.timeout = timeout

    def is_available(self) -> bool:
        """Check if the bd CLI is available in PATH."""
        return shutil.which(self.bd_command) is not None

    def _run_bd(self, args: list[str]) -> str:
        """
        Run a bd command and return its stdout.

        Raises:
            SubprocessError: On non-zero exit, timeout, or missing binary
        """
        cmd = [self.bd_command] + args
        logger.debug("Running bd command: %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                cwd=self.project_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise SubprocessError(
                f"bd command timed out after {self.timeout}s: {' '.join(cmd)}",
                command=cmd,
                code="TIMEOUT",
            ) from e
        except FileNotFoundError as e:
            raise SubprocessError(
                f"{self.bd_command} not found in PATH",
                command=cmd,
            ) from e

        if result.returncode != 0:
            stderr = result.stderr.strip() if result.stderr else ""
            raise SubprocessError(
                f"bd command failed: {' '.join(cmd)}\nError: {stderr}",
                command=cmd,
                stderr=stderr,
                returncode=result.returncode,
            )

        return result.stdout or ""

    def _run_bd_json(self, args: list[str]) -> Any:
        """Run a bd command with --json and parse the output."""
        output = self._run_bd(args + ["--json"])
        if not output.strip():
            return []
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise SubprocessError(
                f"Failed to parse bd output as JSON: {e}\nOutput: {output[:200]}",
                command=[self.bd_command] + args,
            ) from e

    def show(self, item_id: str) -> TrackedItem | None:
        """
        Get a single item by id.

        Returns:
            TrackedItem, or None if bd reports the id does not exist

        Raises:
            SubprocessError: For any other bd failure
        """
        try:
            data = self._run_bd_json(["show", item_id])
        except SubprocessError as e:
            if any(marker in e.stderr.lower() for marker in _NOT_FOUND_MARKERS):
                return None
            raise

        # bd show returns a one-element list
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict) or "id" not in data:
            return None
        return TrackedItem.from_beads(data)

    def list_items(
        self,
        status: ItemStatus | None = None,
        issue_type: str | None = None,
        parent: str | None = None,
    ) -> list[TrackedItem]:
        """
        List items, optionally filtered.

        Args:
            status: Only items with this status
            issue_type: Only items of this type (e.g. "epic")
            parent: Only children of this item

        Returns:
            Items as reported by `bd list`
        """
        args = ["list"]
        if status:
            args.extend(["--status", status.value])
        if issue_type:
            args.extend(["--type", issue_type])
        if parent:
            args.extend(["--parent", parent])

        data = self._run_bd_json(args)
        if isinstance(data, dict):
            data = [data]
        return [
            TrackedItem.from_beads(raw) for raw in data if isinstance(raw, dict) and "id" in raw
        ]

    def dep_tree(self, root_id: str, reverse: bool = True) -> list[dict[str, Any]]:
        """
        Get the dependency tree of an item.

        Args:
            root_id: Root item id
            reverse: Walk towards dependents (children of an epic)

        Returns:
            Raw tree nodes as returned by `bd dep tree --json`
        """
        args = ["dep", "tree", root_id]
        if reverse:
            args.append("--reverse")
        data = self._run_bd_json(args)
        if isinstance(data, dict):
            return [data]
        return [node for node in data if isinstance(node, dict)]

    def dep_tree_mermaid(self, root_id: str, max_depth: int | None = None) -> str:
        """
        Render the dependency tree of an item as Mermaid flowchart source.

        Args:
            root_id: Root item id
            max_depth: Optional depth limit passed through to bd
        """
        args = [
            "dep",
            "tree",
            root_id,
            "--format",
            "mermaid",
            "--direction=up",
            "--show-all-paths",
        ]
        if max_depth is not None:
            args.extend(["--max-depth", str(max_depth)])
        return self._run_bd(args).strip()


def depth_for_node_budget(max_nodes: int, full_budget: int = 50) -> int | None:
    """
    Translate a node budget into a bd tree depth.

    Assumes a branching factor of about three. The full budget means
    "no limit".
    """
    if max_nodes >= full_budget:
        return None
    return max(1, math.ceil(math.log(max(max_nodes, 1), 3)))
