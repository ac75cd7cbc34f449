"""
beads-bridge CLI - Main application entry point.

Builds the Typer app and registers every command group.
"""

import typer
from rich.console import Console

from beads_bridge import __version__
from beads_bridge.cli import changes, diagram, mapping, sync
from beads_bridge.cli.common import configure_logging
from beads_bridge.core.config.env import load_layered_env

PANEL_SYNC = "Sync"
PANEL_INSPECT = "Inspect"
PANEL_MANAGE = "Manage"

app = typer.Typer(
    name="beads-bridge",
    help="Sync beads dependency graphs to GitHub issues and Shortcut stories",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Log at DEBUG level to stderr",
    ),
) -> None:
    """
    beads-bridge - keep external trackers in step with beads.

    Changes to beads items are detected from git history, resolved to the
    GitHub issue or Shortcut story they belong to, and each of those gets a
    current Mermaid dependency diagram and a progress narrative.

    Quick Start:
        1. beads-bridge mapping create github:acme/app#5 --epic bd-a1b2
        2. beads-bridge sync --dry-run
        3. beads-bridge sync

    Documentation:
        beads-bridge --help            # This message
        beads-bridge <command> --help  # Help for specific command
    """
    # tokens from .env files must be visible before any command builds a Bridge
    load_layered_env()
    configure_logging(debug)

    ctx.obj = {"debug": debug}


# =============================================================================
# Sync
# =============================================================================

app.add_typer(sync.app, name="sync", rich_help_panel=PANEL_SYNC)
app.add_typer(diagram.app, name="diagram", rich_help_panel=PANEL_SYNC)


# =============================================================================
# Inspect
# =============================================================================

app.command(name="changes", rich_help_panel=PANEL_INSPECT)(changes.changes)
app.command(name="resolve", rich_help_panel=PANEL_INSPECT)(changes.resolve)


# =============================================================================
# Manage
# =============================================================================

app.add_typer(mapping.app, name="mapping", rich_help_panel=PANEL_MANAGE)


@app.command(rich_help_panel=PANEL_MANAGE)
def version() -> None:
    """Show beads-bridge version and exit."""
    console.print(f"beads-bridge version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]
