"""
Pytest configuration and shared fixtures.

Provides an in-memory beads source, an in-memory backend, isolated config
environments, real git repositories for change detection, and a mapping
store in a temp directory.
"""

import json
import os
import subprocess
import threading
from pathlib import Path
from typing import Any

import pytest

from beads_bridge.core.backends.models import ExternalComment, ExternalIssue, LinkType
from beads_bridge.core.beads.models import ItemStatus, TrackedItem
from beads_bridge.core.errors import NotFoundError
from beads_bridge.core.mappings import MappingStore

# ==============================================================================
# Fakes
# ==============================================================================


class FakeSource:
    """SourceClient over a fixed set of items."""

    def __init__(self, items: list[TrackedItem], mermaid: dict[str, str] | None = None):
        self.items = {item.id: item for item in items}
        self.mermaid = mermaid or {}
        self.show_calls: list[str] = []

    def show(self, item_id: str) -> TrackedItem | None:
        self.show_calls.append(item_id)
        return self.items.get(item_id)

    def list_items(
        self,
        status: ItemStatus | None = None,
        issue_type: str | None = None,
        parent: str | None = None,
    ) -> list[TrackedItem]:
        result = list(self.items.values())
        if status:
            result = [i for i in result if i.status == status]
        if issue_type:
            result = [i for i in result if i.issue_type == issue_type]
        if parent:
            result = [i for i in result if parent in i.parent_ids]
        return result

    def dep_tree(self, root_id: str, reverse: bool = True) -> list[dict[str, Any]]:
        return [{"id": root_id}]

    def dep_tree_mermaid(self, root_id: str, max_depth: int | None = None) -> str:
        return self.mermaid.get(root_id, "")


class FakeBackend:
    """Backend keeping issues in memory and recording every write."""

    def __init__(self, name: str = "github", issues: dict[str, ExternalIssue] | None = None):
        self._name = name
        self.issues = issues or {}
        self.updates: list[tuple[str, str | None]] = []
        self.comments: list[tuple[str, str]] = []
        self.links: list[tuple[str, str, LinkType]] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def get_issue(self, issue_id: str) -> ExternalIssue:
        issue = self.issues.get(issue_id)
        if issue is None:
            raise NotFoundError(f"Issue not found: {issue_id}")
        return issue

    def update_issue(
        self, issue_id: str, body: str | None = None, title: str | None = None
    ) -> ExternalIssue:
        issue = self.get_issue(issue_id)
        with self._lock:
            self.updates.append((issue_id, body))
            changes: dict[str, Any] = {}
            if body is not None:
                changes["body"] = body
            if title is not None:
                changes["title"] = title
            self.issues[issue_id] = issue.model_copy(update=changes)
        return self.issues[issue_id]

    def add_comment(self, issue_id: str, body: str) -> ExternalComment:
        self.get_issue(issue_id)
        with self._lock:
            self.comments.append((issue_id, body))
            comment_id = str(len(self.comments))
        return ExternalComment(
            id=comment_id, url=f"https://example.test/{issue_id}#c{comment_id}", body=body
        )

    def search_issues(self, query: str, limit: int = 30) -> list[ExternalIssue]:
        return [i for i in self.issues.values() if query in i.title][:limit]

    def link_issues(self, parent_id: str, child_id: str, link_type: LinkType) -> None:
        self.links.append((parent_id, child_id, link_type))


def make_item(item_id: str, **kwargs: Any) -> TrackedItem:
    """Build a TrackedItem from bd-style fields; `parent` becomes a parent-child edge."""
    return TrackedItem.from_beads({"id": item_id, "title": kwargs.pop("title", item_id), **kwargs})


SAMPLE_MERMAID = "\n".join(
    [
        "flowchart TD",
        '    epic-1["◧ epic-1: Login epic"]',
        '    task-1["☑ task-1: Wire up form"]',
        '    task-2["☐ task-2: Add tests"]',
        "    task-1 --> epic-1",
        "    task-2 --> epic-1",
    ]
)


# ==============================================================================
# Source / Backend Fixtures
# ==============================================================================


@pytest.fixture
def item_factory():
    """Factory for TrackedItems: item_factory("task-1", parent="epic-1")."""
    return make_item


@pytest.fixture
def source_factory():
    """Factory for FakeSource: source_factory(items, mermaid={...})."""
    return FakeSource


@pytest.fixture
def backend_factory():
    """Factory for FakeBackend: backend_factory("github", {id: issue})."""
    return FakeBackend


@pytest.fixture
def sample_mermaid():
    return SAMPLE_MERMAID


@pytest.fixture
def sample_items():
    """An epic carrying a GitHub ref with three children and a stray task."""
    return [
        make_item("epic-1", issue_type="epic", external_ref="github:acme/app#5"),
        make_item("task-1", parent="epic-1", status="closed"),
        make_item("task-2", parent="epic-1", status="in_progress"),
        make_item(
            "task-3",
            parent="epic-1",
            dependencies=[{"depends_on_id": "task-2", "type": "blocks"}],
        ),
        make_item("stray-1"),
    ]


@pytest.fixture
def fake_source(sample_items):
    """FakeSource over sample_items with a diagram for epic-1."""
    return FakeSource(sample_items, mermaid={"epic-1": SAMPLE_MERMAID})


@pytest.fixture
def github_issue():
    return ExternalIssue(
        id="acme/app#5",
        number=5,
        title="Login",
        body="Original description.",
        url="https://github.com/acme/app/issues/5",
    )


@pytest.fixture
def fake_backend(github_issue):
    """FakeBackend holding acme/app#5."""
    return FakeBackend("github", {github_issue.id: github_issue})


# ==============================================================================
# Environment Fixtures
# ==============================================================================


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """
    Provide a clean environment without beads-bridge env vars.

    Also points XDG_CONFIG_HOME at an empty temp directory so a developer's
    own config never leaks into tests.
    """
    for key in list(os.environ.keys()):
        if key.startswith("BEADS_BRIDGE_") or key == "SHORTCUT_API_TOKEN":
            monkeypatch.delenv(key, raising=False)
    config_home = tmp_path / "xdg-config"
    config_home.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    return monkeypatch


@pytest.fixture
def user_config_dir(clean_env):
    """Provide the XDG_CONFIG_HOME/beads-bridge directory."""
    config_dir = Path(os.environ["XDG_CONFIG_HOME"]) / "beads-bridge"
    config_dir.mkdir(parents=True)
    return config_dir


# ==============================================================================
# Git Fixtures
# ==============================================================================


def _git(repo: Path, *args: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["git", *args], cwd=repo, capture_output=True, text=True, check=True
    )


class GitRepo:
    """A throwaway git repository with a beads record file."""

    RECORDS = ".beads/issues.jsonl"

    def __init__(self, path: Path):
        self.path = path

    @property
    def records_path(self) -> Path:
        return self.path / self.RECORDS

    def write_records(self, records: list[dict[str, Any]]) -> None:
        self.records_path.parent.mkdir(parents=True, exist_ok=True)
        self.records_path.write_text("".join(json.dumps(r) + "\n" for r in records))

    def commit(self, message: str) -> None:
        _git(self.path, "add", "-A")
        _git(self.path, "commit", "-q", "-m", message)


@pytest.fixture
def git_repo(tmp_path):
    """Initialized git repository with a committer identity and no commits."""
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "config", "user.email", "test@example.com")
    _git(repo, "config", "user.name", "Test")
    _git(repo, "config", "commit.gpgsign", "false")
    return GitRepo(repo)


# ==============================================================================
# Store Fixtures
# ==============================================================================


@pytest.fixture
def store(tmp_path):
    """Initialized MappingStore in a temp directory."""
    mapping_store = MappingStore(tmp_path / ".beads-bridge")
    mapping_store.initialize()
    return mapping_store
