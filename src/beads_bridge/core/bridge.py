"""
Service layer for beads-bridge.

Bridge wires the core components together from configuration so that
every interface (CLI, scripts, tests) calls one object instead of
assembling clients, stores and backends itself.

- No Rich, no sys.exit, no print statements; presentation is the caller's job.
- Created via from_config(), which accepts a loaded BridgeConfig.
"""

from __future__ import annotations

import logging
from pathlib import Path

from beads_bridge.core.backends import Backend, GitHubBackend, ShortcutBackend
from beads_bridge.core.beads import BeadsClient
from beads_bridge.core.changes import ChangeDetector
from beads_bridge.core.config import BridgeConfig, load_config
from beads_bridge.core.diagrams import DiagramPlacer, MermaidGenerator
from beads_bridge.core.mappings import MappingStore
from beads_bridge.core.refs import BackendKind, ExternalRefResolver
from beads_bridge.core.sync import ProgressNarrator, SyncCallback, SyncOrchestrator

logger = logging.getLogger(__name__)


class Bridge:
    """
    All configured components for one project.

    Example:
        >>> bridge = Bridge.from_config(load_config(), Path.cwd())
        >>> report = bridge.orchestrator().run(since_ref="HEAD~1")
    """

    def __init__(
        self,
        config: BridgeConfig,
        project_dir: Path,
        source: BeadsClient,
        detector: ChangeDetector,
        resolver: ExternalRefResolver,
        mappings: MappingStore,
        generator: MermaidGenerator,
        backends: dict[BackendKind, Backend],
        placer: DiagramPlacer,
        narrator: ProgressNarrator,
    ) -> None:
        self.config = config
        self.project_dir = project_dir
        self.source = source
        self.detector = detector
        self.resolver = resolver
        self.mappings = mappings
        self.generator = generator
        self.backends = backends
        self.placer = placer
        self.narrator = narrator

    @classmethod
    def from_config(
        cls, config: BridgeConfig | None = None, project_dir: Path | None = None
    ) -> Bridge:
        """
        Build a bridge from configuration.

        The GitHub backend is always available. The Shortcut backend is only
        created when an API token is configured.

        Args:
            config: Loaded configuration (loaded from project_dir if None)
            project_dir: Project root (defaults to cwd)
        """
        project_dir = (project_dir or Path.cwd()).resolve()
        if config is None:
            config = load_config(project_dir)

        source = BeadsClient(
            project_dir=project_dir,
            bd_command=config.beads.bd_command,
            timeout=config.beads.timeout_seconds,
        )
        detector = ChangeDetector(
            project_dir=project_dir,
            records_file=config.beads.records_file,
            timeout=config.beads.timeout_seconds,
        )
        resolver = ExternalRefResolver(source)

        storage_path = Path(config.mappings.storage_path)
        if not storage_path.is_absolute():
            storage_path = project_dir / storage_path
        mappings = MappingStore(
            storage_path,
            max_history_entries=config.mappings.max_history_entries,
            auto_commit=config.mappings.auto_commit,
            commit_message_prefix=config.mappings.commit_message_prefix,
        )

        backends: dict[BackendKind, Backend] = {
            BackendKind.GITHUB: GitHubBackend.from_config(config),
        }
        if config.shortcut.api_token:
            backends[BackendKind.SHORTCUT] = ShortcutBackend.from_config(config)
        else:
            logger.debug("No Shortcut token configured; Shortcut backend disabled")

        generator = MermaidGenerator(source)
        placer = DiagramPlacer(
            backends,
            resolver,
            generator,
            mappings=mappings,
            max_nodes=config.diagrams.max_nodes,
        )
        narrator = ProgressNarrator(source)

        return cls(
            config=config,
            project_dir=project_dir,
            source=source,
            detector=detector,
            resolver=resolver,
            mappings=mappings,
            generator=generator,
            backends=backends,
            placer=placer,
            narrator=narrator,
        )

    def orchestrator(
        self,
        *,
        max_concurrency: int | None = None,
        post_narrative: bool | None = None,
        create_snapshot: bool | None = None,
        callback: SyncCallback | None = None,
    ) -> SyncOrchestrator:
        """A sync orchestrator; unset arguments fall back to configuration."""
        sync = self.config.sync
        diagrams = self.config.diagrams
        return SyncOrchestrator(
            self.detector,
            self.resolver,
            self.placer,
            self.mappings,
            narrator=self.narrator,
            max_concurrency=max_concurrency or sync.max_concurrency,
            post_narrative=sync.post_narrative if post_narrative is None else post_narrative,
            create_snapshot=sync.create_snapshot if create_snapshot is None else create_snapshot,
            update_description=diagrams.enabled and diagrams.update_description,
            callback=callback,
        )

    def close(self) -> None:
        """Release backend connections."""
        for backend in self.backends.values():
            close = getattr(backend, "close", None)
            if close is not None:
                close()
