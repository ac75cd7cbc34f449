"""
Tests for the marker-delimited diagram section in entity bodies.
"""

from datetime import datetime, timezone

import pytest

from beads_bridge.core.diagrams import (
    END_MARKER,
    SECTION_HEADER,
    START_MARKER,
    UpdateTrigger,
    find_section,
    format_section,
    parse_section,
    replace_section,
)
from beads_bridge.core.diagrams.sections import format_timestamp, sections_equivalent

WHEN = datetime(2026, 10, 17, 12, 30, 45, 123456, tzinfo=timezone.utc)
DIAGRAM = "```mermaid\nflowchart TD\n    a --> b\n```"


@pytest.fixture
def section():
    return format_section(DIAGRAM, WHEN, UpdateTrigger.SCOPE_CHANGE)


class TestFormatSection:
    """Test section rendering."""

    def test_layout(self, section):
        lines = section.splitlines()
        assert lines[0] == START_MARKER
        assert lines[2] == SECTION_HEADER
        assert lines[-1] == END_MARKER
        assert "*Last updated: 2026-10-17T12:30:45Z (scope_change)*" in lines
        assert DIAGRAM in section

    def test_accepts_plain_string_trigger(self):
        assert "(weekly)*" in format_section(DIAGRAM, WHEN, "weekly")

    def test_naive_timestamp_treated_as_utc(self):
        assert format_timestamp(datetime(2026, 1, 2, 3, 4, 5)) == "2026-01-02T03:04:05Z"


class TestParseSection:
    """Test reading section metadata back."""

    def test_round_trip(self, section):
        info = parse_section(f"Intro text.\n\n{section}\n\nOutro.")

        assert info.exists
        assert info.last_updated == WHEN.replace(microsecond=0)
        assert info.trigger == "scope_change"
        assert info.content == section

    def test_absent(self):
        info = parse_section("Just a description.")
        assert not info.exists
        assert info.last_updated is None

    def test_section_without_timestamp(self):
        info = parse_section(f"{START_MARKER}\nhand edited\n{END_MARKER}")
        assert info.exists
        assert info.last_updated is None
        assert info.trigger is None

    def test_start_marker_alone_is_no_section(self):
        info = parse_section(f"text\n{START_MARKER}\n## Dependency Diagram\n")
        assert info.exists is False
        assert info.content is None


class TestReplaceSection:
    """Test inserting and replacing the section."""

    def test_append_to_body(self, section):
        body = replace_section("Original description.", section)
        assert body == f"Original description.\n\n{section}"

    def test_empty_body(self, section):
        assert replace_section("", section) == section
        assert replace_section("  \n", section) == section

    def test_replace_preserves_surrounding_text(self, section):
        old = format_section("```mermaid\nold\n```", WHEN, UpdateTrigger.MANUAL)
        body = f"Before.\n\n{old}\n\nAfter."

        updated = replace_section(body, section)

        assert updated == f"Before.\n\n{section}\n\nAfter."

    def test_replace_is_stable(self, section):
        once = replace_section("Intro.", section)
        twice = replace_section(once, section)
        assert once == twice
        assert twice.count(START_MARKER) == 1

    def test_start_marker_alone_appends(self, section):
        body = f"Intro.\n{START_MARKER}\nleft open"
        result = replace_section(body, section)
        assert result == f"{body}\n\n{section}"
        assert result.count(END_MARKER) == 1

    def test_stray_marker_before_section_kept(self, section):
        body = f"Intro {START_MARKER} stray\n\n{section}\nOutro"
        updated = format_section("new", WHEN, UpdateTrigger.MANUAL)
        assert replace_section(body, updated) == f"Intro {START_MARKER} stray\n\n{updated}\nOutro"

    def test_extra_sections_removed(self, section):
        body = f"Intro\n\n{section}\n\nMiddle\n\n{section}\n\nOutro"
        updated = format_section("new", WHEN, UpdateTrigger.MANUAL)
        assert replace_section(body, updated) == f"Intro\n\n{updated}\n\nMiddle\n\nOutro"


class TestFindSection:
    """Test section bounds and equivalence."""

    def test_bounds(self, section):
        body = f"abc{section}xyz"
        start, end = find_section(body)
        assert body[start:end] == section

    def test_none_without_marker(self):
        assert find_section("nothing here") is None

    def test_equivalent_ignores_timestamp(self):
        a = format_section(DIAGRAM, WHEN, UpdateTrigger.SCOPE_CHANGE)
        b = format_section(DIAGRAM, datetime(2027, 1, 1, tzinfo=timezone.utc), "manual")
        assert sections_equivalent(a, b)

    def test_different_diagram_not_equivalent(self):
        a = format_section(DIAGRAM, WHEN, UpdateTrigger.MANUAL)
        b = format_section("```mermaid\nflowchart TD\n```", WHEN, UpdateTrigger.MANUAL)
        assert not sections_equivalent(a, b)
