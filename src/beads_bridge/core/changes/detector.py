"""
Git-based change detection over the beads JSONL record file.

The record file holds one JSON object per line. A git diff of that file
between two states shows updated records as a removed old line plus an
added new line, so the ids of all parseable added lines are the items that
changed. Detection never writes to the repository.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path

from beads_bridge.core.changes.models import ChangeSet, RecordChange

logger = logging.getLogger(__name__)


def _parse_record_line(payload: str) -> dict | None:
    payload = payload.strip()
    if not payload:
        return None
    try:
        record = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("Skipping unparseable diff line: %.80s", payload)
        return None
    if not isinstance(record, dict) or not isinstance(record.get("id"), str):
        logger.debug("Skipping diff line without a record id: %.80s", payload)
        return None
    return record


def parse_record_diff(diff_text: str) -> dict[str, RecordChange]:
    """
    Parse a unified diff of a JSONL record file.

    Lines starting with ``+`` (but not the ``+++`` header) are added
    records; lines starting with ``-`` (but not ``---``) are removed
    records. Everything else is context. Lines that are not a JSON object
    with a string ``id`` are skipped.

    Args:
        diff_text: Output of ``git diff -- <records file>``

    Returns:
        Record changes keyed by item id

    Example:
        >>> changes = parse_record_diff('+{"id": "bd-1", "status": "closed"}\\n')
        >>> changes["bd-1"].kind.value
        'created'
    """
    changes: dict[str, RecordChange] = {}

    for line in diff_text.splitlines():
        if line.startswith("+") and not line.startswith("+++"):
            record = _parse_record_line(line[1:])
            if record is not None:
                change = changes.setdefault(record["id"], RecordChange(item_id=record["id"]))
                change.after = record
        elif line.startswith("-") and not line.startswith("---"):
            record = _parse_record_line(line[1:])
            if record is not None:
                change = changes.setdefault(record["id"], RecordChange(item_id=record["id"]))
                change.before = record

    return changes


class ChangeDetector:
    """
    Detects which tracked items changed between two git states.

    Example:
        >>> detector = ChangeDetector(project_dir=Path("."))
        >>> change_set = detector.detect_changes("HEAD~1")
        >>> sorted(change_set.changed_item_ids)
        ['bd-a1b2', 'bd-c3d4']
    """

    DEFAULT_RECORDS_FILE = ".beads/issues.jsonl"

    def __init__(
        self,
        project_dir: Path | None = None,
        records_file: str = DEFAULT_RECORDS_FILE,
        timeout: int = 30,
    ) -> None:
        """
        Args:
            project_dir: Root of the git repository (defaults to cwd)
            records_file: Record file path relative to project_dir
            timeout: Seconds before the git call is abandoned
        """
        self.project_dir = (project_dir or Path.cwd()).resolve()
        self.records_file = records_file
        self.timeout = timeout

    def _git_diff(self, since_ref: str, until_ref: str | None) -> str | None:
        """Run git diff; return its stdout, or None on any failure."""
        cmd = ["git", "diff", "--no-color", "--no-ext-diff", since_ref]
        if until_ref:
            cmd.append(until_ref)
        cmd.extend(["--", self.records_file])

        logger.debug("Running git command: %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                cwd=self.project_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("git diff timed out after %ss; treating as no changes", self.timeout)
            return None
        except (FileNotFoundError, NotADirectoryError) as e:
            logger.warning("Could not run git diff: %s; treating as no changes", e)
            return None

        if result.returncode != 0:
            stderr = result.stderr.strip() if result.stderr else ""
            logger.warning(
                "git diff %s%s failed; treating as no changes: %s",
                since_ref,
                f"..{until_ref}" if until_ref else "",
                stderr,
            )
            return None

        return result.stdout or ""

    def detect_changes(self, since_ref: str = "HEAD~1", until_ref: str | None = None) -> ChangeSet:
        """
        Diff the record file and report changed item ids.

        Args:
            since_ref: Git ref of the previous sync state
            until_ref: Git ref of the new state; None means the working tree

        Returns:
            ChangeSet; empty if git is unavailable, the refs are invalid,
            or the repository has no history
        """
        change_set = ChangeSet(since_ref=since_ref, until_ref=until_ref)

        diff_text = self._git_diff(since_ref, until_ref)
        if not diff_text:
            return change_set

        records = parse_record_diff(diff_text)
        change_set.raw_diff = diff_text
        change_set.records = records
        change_set.changed_item_ids = {
            item_id for item_id, change in records.items() if change.after is not None
        }

        logger.info(
            "Detected %d changed item(s) in %s since %s",
            len(change_set.changed_item_ids),
            self.records_file,
            since_ref,
        )
        return change_set
