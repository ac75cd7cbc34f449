"""
Tests for the sync, changes and resolve CLI commands.

The Bridge is replaced with a mock; orchestration itself is covered in
test_sync_orchestrator.py.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from beads_bridge.cli import app as main_app
from beads_bridge.cli.errors import ExitCode
from beads_bridge.cli.sync import app
from beads_bridge.core.changes import ChangeSet, RecordChange
from beads_bridge.core.config import BridgeConfig
from beads_bridge.core.errors import AuthenticationError, SubprocessError
from beads_bridge.core.refs import parse_external_ref
from beads_bridge.core.sync import EntitySyncResult, SyncReport

runner = CliRunner()

REF = parse_external_ref("github:acme/app#5")


@pytest.fixture
def bridge():
    mock = MagicMock()
    mock.config = BridgeConfig()
    return mock


@pytest.fixture
def change_set():
    return ChangeSet(
        since_ref="HEAD~1",
        changed_item_ids={"task-1", "stray-1"},
        records={
            "task-1": RecordChange(
                item_id="task-1",
                before={"id": "task-1", "status": "open"},
                after={"id": "task-1", "status": "closed"},
            ),
            "stray-1": RecordChange(item_id="stray-1", after={"id": "stray-1"}),
        },
        affected_external_refs={REF: "epic-1"},
        unresolved_item_ids={"stray-1"},
    )


def report_with(change_set, *results):
    return SyncReport(change_set=change_set, results=list(results))


class TestSyncCommand:
    """Test `beads-bridge sync`."""

    def test_success(self, bridge, change_set):
        bridge.orchestrator.return_value.run.return_value = report_with(
            change_set,
            EntitySyncResult(
                external_ref=REF,
                representative_item_id="epic-1",
                success=True,
                description_updated=True,
                comments_added=1,
            ),
        )

        with patch("beads_bridge.cli.sync.open_bridge", return_value=bridge):
            result = runner.invoke(app, [])

        assert result.exit_code == 0
        assert "1 synced, 0 skipped, 0 failed" in result.output
        assert "stray-1" in result.output
        bridge.close.assert_called_once()

    def test_options_reach_orchestrator(self, bridge, change_set):
        bridge.orchestrator.return_value.run.return_value = report_with(change_set)

        with patch("beads_bridge.cli.sync.open_bridge", return_value=bridge):
            result = runner.invoke(
                app,
                ["--since", "v1.0", "--until", "v1.1", "-j", "5", "--no-narrative", "--snapshot"],
            )

        assert result.exit_code == 0
        kwargs = bridge.orchestrator.call_args.kwargs
        assert kwargs["max_concurrency"] == 5
        assert kwargs["post_narrative"] is False
        assert kwargs["create_snapshot"] is True
        bridge.orchestrator.return_value.run.assert_called_once_with(
            since_ref="v1.0", until_ref="v1.1", dry_run=False
        )

    def test_defaults_from_config(self, bridge, change_set):
        bridge.config = BridgeConfig.model_validate({"sync": {"since_ref": "main"}})
        bridge.orchestrator.return_value.run.return_value = report_with(change_set)

        with patch("beads_bridge.cli.sync.open_bridge", return_value=bridge):
            runner.invoke(app, ["--dry-run"])

        kwargs = bridge.orchestrator.call_args.kwargs
        assert kwargs["max_concurrency"] is None
        assert kwargs["post_narrative"] is None
        bridge.orchestrator.return_value.run.assert_called_once_with(
            since_ref="main", until_ref=None, dry_run=True
        )

    def test_no_changes(self, bridge):
        bridge.orchestrator.return_value.run.return_value = report_with(
            ChangeSet(since_ref="HEAD~1")
        )

        with patch("beads_bridge.cli.sync.open_bridge", return_value=bridge):
            result = runner.invoke(app, [])

        assert result.exit_code == 0
        assert "No changes since HEAD~1" in result.output

    def test_partial_failure_exits_one(self, bridge, change_set):
        other = parse_external_ref("github:acme/app#6")
        bridge.orchestrator.return_value.run.return_value = report_with(
            change_set,
            EntitySyncResult(external_ref=REF, representative_item_id="epic-1", success=True),
            EntitySyncResult(
                external_ref=other,
                representative_item_id="epic-2",
                error="github:acme/app#6: HTTP 502",
                error_code="BACKEND_ERROR",
            ),
        )

        with patch("beads_bridge.cli.sync.open_bridge", return_value=bridge):
            result = runner.invoke(app, [])

        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert "1 synced, 0 skipped, 1 failed" in result.output

    def test_json_output(self, bridge, change_set):
        bridge.orchestrator.return_value.run.return_value = report_with(
            change_set,
            EntitySyncResult(external_ref=REF, representative_item_id="epic-1", success=True),
        )

        with patch("beads_bridge.cli.sync.open_bridge", return_value=bridge):
            result = runner.invoke(app, ["--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["synced"] == 1
        assert data["changed_item_ids"] == ["stray-1", "task-1"]
        assert bridge.orchestrator.call_args.kwargs["callback"] is None

    def test_bridge_error(self, bridge):
        bridge.orchestrator.return_value.run.side_effect = SubprocessError(
            "git diff failed", stderr="fatal: bad revision 'nope'", returncode=128
        )

        with patch("beads_bridge.cli.sync.open_bridge", return_value=bridge):
            result = runner.invoke(app, ["--since", "nope"])

        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert "git diff failed" in result.output
        bridge.close.assert_called_once()

    def test_invalid_concurrency(self):
        result = runner.invoke(app, ["-j", "0"])
        assert result.exit_code != 0


class TestChangesCommand:
    """Test `beads-bridge changes`."""

    def test_table(self, bridge, change_set):
        bridge.orchestrator.return_value.detect.return_value = change_set

        with patch("beads_bridge.cli.changes.open_bridge", return_value=bridge):
            result = runner.invoke(main_app, ["changes"])

        assert result.exit_code == 0
        assert "task-1" in result.output
        assert "2 changed, 1 entity affected" in result.output

    def test_json(self, bridge, change_set):
        bridge.orchestrator.return_value.detect.return_value = change_set

        with patch("beads_bridge.cli.changes.open_bridge", return_value=bridge):
            result = runner.invoke(main_app, ["changes", "--since", "main", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {
            "since_ref": "HEAD~1",
            "until_ref": None,
            "changed_item_ids": ["stray-1", "task-1"],
            "removed_item_ids": [],
            "affected_external_refs": {"github:acme/app#5": "epic-1"},
            "unresolved_item_ids": ["stray-1"],
        }
        bridge.orchestrator.return_value.detect.assert_called_once_with(
            since_ref="main", until_ref=None
        )

    def test_empty(self, bridge):
        bridge.orchestrator.return_value.detect.return_value = ChangeSet(since_ref="HEAD~1")

        with patch("beads_bridge.cli.changes.open_bridge", return_value=bridge):
            result = runner.invoke(main_app, ["changes"])

        assert "No changes since HEAD~1" in result.output


class TestResolveCommand:
    """Test `beads-bridge resolve`."""

    def test_resolved(self, bridge):
        bridge.resolver.resolve.return_value = REF

        with patch("beads_bridge.cli.changes.open_bridge", return_value=bridge):
            result = runner.invoke(main_app, ["resolve", "task-1"])

        assert result.exit_code == 0
        assert "github:acme/app#5" in result.output
        assert "https://github.com/acme/app/issues/5" in result.output

    def test_unresolved_exits_one(self, bridge):
        bridge.resolver.resolve.return_value = None

        with patch("beads_bridge.cli.changes.open_bridge", return_value=bridge):
            result = runner.invoke(main_app, ["resolve", "stray-1"])

        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert "no external ref" in result.output

    def test_auth_error_is_user_error(self, bridge):
        bridge.resolver.resolve.side_effect = AuthenticationError("GitHub authentication failed")

        with patch("beads_bridge.cli.changes.open_bridge", return_value=bridge):
            result = runner.invoke(main_app, ["resolve", "task-1"])

        assert result.exit_code == ExitCode.USER_ERROR


class TestMainApp:
    """Test the top-level app."""

    def test_version(self, clean_env, tmp_path, monkeypatch):
        from beads_bridge import __version__

        monkeypatch.chdir(tmp_path)
        result = runner.invoke(main_app, ["version"])

        assert result.exit_code == 0
        assert f"beads-bridge version {__version__}" in result.output

    def test_invalid_config_is_user_error(self, clean_env, tmp_path, monkeypatch):
        (tmp_path / ".beads-bridge").mkdir()
        (tmp_path / ".beads-bridge" / "config.json").write_text(
            json.dumps({"sync": {"max_concurrency": 0}})
        )
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(main_app, ["sync"])

        assert result.exit_code == ExitCode.USER_ERROR
        assert "Invalid beads-bridge configuration" in result.output
