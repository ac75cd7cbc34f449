"""
Tests for the diagram CLI command.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from beads_bridge.cli.diagram import app
from beads_bridge.cli.errors import ExitCode
from beads_bridge.core.config import BridgeConfig
from beads_bridge.core.diagrams import DiagramSnapshot, PlacementResult, UpdateTrigger

runner = CliRunner()

URL = "https://github.com/acme/app/issues/5"


@pytest.fixture
def bridge():
    mock = MagicMock()
    mock.config = BridgeConfig()
    with patch("beads_bridge.cli.diagram.open_bridge", return_value=mock):
        yield mock


def test_place(bridge):
    bridge.placer.place.return_value = PlacementResult(
        entity_url=URL, description_updated=True, epic_ids=["epic-1"], node_count=3
    )

    result = runner.invoke(app, ["place", "github:acme/app#5"])

    assert result.exit_code == 0
    assert "1 epic(s), 3 nodes" in result.output
    assert "Description updated" in result.output

    ref, options = bridge.placer.place.call_args.args
    assert str(ref) == "github:acme/app#5"
    assert options.trigger == UpdateTrigger.MANUAL
    assert options.update_description is True
    assert options.create_snapshot is True
    bridge.close.assert_called_once()


def test_place_from_url_with_snapshot(bridge):
    bridge.placer.place.return_value = PlacementResult(
        entity_url=URL,
        description_unchanged=True,
        epic_ids=["epic-1"],
        snapshot=DiagramSnapshot(
            timestamp=datetime(2026, 10, 17, tzinfo=timezone.utc),
            trigger=UpdateTrigger.SCOPE_CHANGE,
            comment_id="42",
            comment_url=f"{URL}#c42",
            node_count=3,
        ),
    )

    result = runner.invoke(
        app, ["place", URL, "--snapshot", "--no-description", "-m", "Sprint 4", "-t", "scope_change"]
    )

    assert result.exit_code == 0
    assert "already up to date" in result.output
    assert "#c42" in result.output
    _, options = bridge.placer.place.call_args.args
    assert options.update_description is False
    assert options.create_snapshot is True
    assert options.message == "Sprint 4"
    assert options.trigger == UpdateTrigger.SCOPE_CHANGE


def test_truncated_warning(bridge):
    bridge.placer.place.return_value = PlacementResult(
        entity_url=URL, epic_ids=["epic-1"], node_count=50, truncated=True
    )

    result = runner.invoke(app, ["place", "github:acme/app#5"])

    assert "50 node limit" in result.output


def test_invalid_ref(bridge):
    result = runner.invoke(app, ["place", "jira:ABC-1"])

    assert result.exit_code == ExitCode.USER_ERROR
    assert "Invalid external reference" in result.output
    bridge.placer.place.assert_not_called()


@pytest.mark.parametrize(
    "error_code,exit_code",
    [("NOT_FOUND", ExitCode.USER_ERROR), ("AUTH_ERROR", ExitCode.GENERAL_ERROR)],
)
def test_failure_exit_codes(bridge, error_code, exit_code):
    bridge.placer.place.return_value = PlacementResult(
        entity_url=URL, error="github:acme/app#5: not found", error_code=error_code
    )

    result = runner.invoke(app, ["place", "github:acme/app#5"])

    assert result.exit_code == exit_code
    assert "not found" in result.output
