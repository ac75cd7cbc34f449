"""
Configuration data models for beads-bridge.

These models define the structure of .beads-bridge/config.json and
~/.config/beads-bridge/config.json files, with validation via Pydantic.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GitHubConfig(BaseModel):
    """GitHub backend settings. Authentication is delegated to the `gh` CLI."""
    repository: Optional[str] = Field(
        default=None,
        description="Default repository in owner/repo form"
    )
    project_id: Optional[str] = Field(
        default=None,
        description="GitHub Projects v2 id, when the repository uses one"
    )
    gh_command: str = Field(
        default="gh",
        description="GitHub CLI executable"
    )
    timeout_seconds: int = Field(
        default=60,
        ge=1,
        description="Timeout for a single gh invocation"
    )


class ShortcutConfig(BaseModel):
    """Shortcut backend settings."""
    workspace: Optional[str] = Field(
        default=None,
        description="Shortcut workspace slug (used to build story URLs)"
    )
    api_token: Optional[str] = Field(
        default=None,
        description="Shortcut API token (prefer SHORTCUT_API_TOKEN in the environment)"
    )
    base_url: str = Field(
        default="https://api.app.shortcut.com/api/v3",
        description="Shortcut REST API base URL"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP request timeout"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries for transient HTTP failures"
    )


class BeadsConfig(BaseModel):
    """
    Source tracker settings.

    The records file is the JSONL export that git diffs are taken over.
    """
    records_file: str = Field(
        default=".beads/issues.jsonl",
        description="Path to the JSONL record file, relative to the project root"
    )
    bd_command: str = Field(
        default="bd",
        description="beads CLI executable"
    )
    timeout_seconds: int = Field(
        default=30,
        ge=1,
        description="Timeout for a single bd or git invocation"
    )


class MappingsConfig(BaseModel):
    """Mapping store settings."""
    storage_path: str = Field(
        default=".beads-bridge",
        description="Directory holding index.json and mappings/"
    )
    max_history_entries: int = Field(
        default=50,
        ge=1,
        description="Sync history entries kept per mapping (newest first)"
    )
    auto_commit: bool = Field(
        default=False,
        description="Commit mapping changes to git after each write"
    )
    commit_message_prefix: str = Field(
        default="sync: ",
        description="Prefix for auto-commit messages"
    )


class SyncConfig(BaseModel):
    """Orchestrator settings."""
    since_ref: str = Field(
        default="HEAD~1",
        description="Git ref the record file is diffed against"
    )
    until_ref: Optional[str] = Field(
        default=None,
        description="Upper git ref; None compares against the working tree"
    )
    max_concurrency: int = Field(
        default=3,
        ge=1,
        description="Maximum entities synced in parallel"
    )
    post_narrative: bool = Field(
        default=True,
        description="Post a narrative progress comment per synced entity"
    )
    create_snapshot: bool = Field(
        default=False,
        description="Post a diagram snapshot comment on every sync"
    )


class DiagramsConfig(BaseModel):
    """Diagram rendering and placement settings."""
    enabled: bool = Field(
        default=True,
        description="Place diagrams during sync"
    )
    max_nodes: int = Field(
        default=50,
        ge=1,
        description="Node budget before a diagram is reported as truncated"
    )
    update_description: bool = Field(
        default=True,
        description="Rewrite the diagram section in the entity body"
    )
    create_snapshots: bool = Field(
        default=True,
        description="Allow snapshot comments for manual placements"
    )


class LoggingConfig(BaseModel):
    """Logging settings."""
    level: str = Field(
        default="info",
        description="Log level (debug, info, warning, error)"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and validate the level name."""
        normalized = v.lower()
        if normalized not in ("debug", "info", "warning", "error"):
            raise ValueError(f"Invalid log level '{v}'")
        return normalized


class BridgeConfig(BaseModel):
    """
    Top-level beads-bridge configuration.

    Loaded from defaults, user config, project config, and env vars, then
    handed explicitly to whatever needs it. There is no global instance.

    Example:
        >>> config = BridgeConfig(sync=SyncConfig(max_concurrency=5))
        >>> config.sync.max_concurrency
        5
        >>> config.mappings.storage_path
        '.beads-bridge'
    """
    github: GitHubConfig = Field(
        default_factory=GitHubConfig,
        description="GitHub backend"
    )
    shortcut: ShortcutConfig = Field(
        default_factory=ShortcutConfig,
        description="Shortcut backend"
    )
    beads: BeadsConfig = Field(
        default_factory=BeadsConfig,
        description="Source tracker"
    )
    mappings: MappingsConfig = Field(
        default_factory=MappingsConfig,
        description="Mapping store"
    )
    sync: SyncConfig = Field(
        default_factory=SyncConfig,
        description="Sync orchestration"
    )
    diagrams: DiagramsConfig = Field(
        default_factory=DiagramsConfig,
        description="Diagram placement"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging"
    )

    model_config = ConfigDict(
        extra="allow",
        validate_assignment=True,
    )
