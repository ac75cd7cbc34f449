"""
The automation-owned diagram section of an external entity body.

A section looks like::

    <!-- BEADS-DIAGRAM-START -->

    ## Dependency Diagram

    ```mermaid
    ...
    ```

    *Last updated: 2026-10-17T12:00:00Z (scope_change)*

    <!-- BEADS-DIAGRAM-END -->

Everything between (and including) the markers belongs to the bridge and
is replaced wholesale. Text outside the markers is never touched.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from beads_bridge.core.diagrams.models import SectionInfo, UpdateTrigger

START_MARKER = "<!-- BEADS-DIAGRAM-START -->"
END_MARKER = "<!-- BEADS-DIAGRAM-END -->"
SECTION_HEADER = "## Dependency Diagram"
LAST_UPDATED_PREFIX = "*Last updated:"

_LAST_UPDATED = re.compile(r"\*Last updated:\s*([^\s]+)\s*\(([^)]+)\)\*")


def format_timestamp(timestamp: datetime) -> str:
    """ISO-8601 in UTC with a Z suffix, to the second."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_timestamp(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_section(
    diagram_markdown: str, timestamp: datetime, trigger: UpdateTrigger | str
) -> str:
    """
    Build the full marker-delimited section.

    Args:
        diagram_markdown: Rendered diagram (fenced mermaid, possibly several)
        timestamp: Time of the update
        trigger: Why the update happened
    """
    trigger_value = trigger.value if isinstance(trigger, UpdateTrigger) else trigger
    return "\n".join(
        [
            START_MARKER,
            "",
            SECTION_HEADER,
            "",
            diagram_markdown,
            "",
            f"{LAST_UPDATED_PREFIX} {format_timestamp(timestamp)} ({trigger_value})*",
            "",
            END_MARKER,
        ]
    )


def _section_spans(body: str) -> list[tuple[int, int]]:
    """
    Offsets of every complete section, in order.

    Each end marker closes the nearest start marker before it. A start marker
    with no end marker after it does not form a section.
    """
    spans: list[tuple[int, int]] = []
    cursor = 0
    while True:
        start = body.find(START_MARKER, cursor)
        if start == -1:
            return spans
        end = body.find(END_MARKER, start + len(START_MARKER))
        if end == -1:
            return spans
        start = body.rfind(START_MARKER, start, end)
        cursor = end + len(END_MARKER)
        spans.append((start, cursor))


def find_section(body: str) -> tuple[int, int] | None:
    """
    Locate the first complete section in a body.

    Returns:
        (start, end) offsets with end just past the end marker, or None when
        there is no start/end marker pair
    """
    spans = _section_spans(body)
    return spans[0] if spans else None


def extract_section(body: str) -> str | None:
    """The section text including markers, or None if absent."""
    bounds = find_section(body)
    if bounds is None:
        return None
    return body[bounds[0] : bounds[1]]


def parse_section(body: str) -> SectionInfo:
    """Read the section's metadata from a body."""
    section = extract_section(body)
    if section is None:
        return SectionInfo(exists=False)

    info = SectionInfo(exists=True, content=section)
    if match := _LAST_UPDATED.search(section):
        info.last_updated = _parse_timestamp(match.group(1))
        info.trigger = match.group(2)
    return info


def _cut(body: str, start: int, end: int) -> str:
    before = body[:start].rstrip("\n")
    after = body[end:].lstrip("\n")
    if before and after:
        return f"{before}\n\n{after}"
    return before or after


def replace_section(body: str, section: str) -> str:
    """
    Put `section` into `body`.

    The first existing section is replaced in place and any further ones are
    removed, so a body never holds more than one. Without a complete section
    the new one is appended, separated by a blank line when the body has
    content; a stray start marker stays as ordinary text.
    """
    spans = _section_spans(body)
    if not spans:
        if body.strip():
            return f"{body}\n\n{section}"
        return section

    for start, end in reversed(spans[1:]):
        body = _cut(body, start, end)
    start, end = spans[0]
    return body[:start] + section + body[end:]


def sections_equivalent(a: str, b: str) -> bool:
    """True if two sections differ at most in their last-updated line."""

    def strip(section: str) -> list[str]:
        return [
            line for line in section.splitlines() if not line.startswith(LAST_UPDATED_PREFIX)
        ]

    return strip(a) == strip(b)
