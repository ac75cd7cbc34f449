"""
beads-bridge CLI - Diagram commands.

Place the dependency diagram for an external entity on demand, outside of
a change-driven sync.
"""

import typer
from rich.console import Console

from beads_bridge.cli.common import open_bridge
from beads_bridge.cli.errors import ExitCode, print_error, print_invalid_ref_error
from beads_bridge.core.diagrams import PlacementOptions, UpdateTrigger
from beads_bridge.core.errors import ValidationError
from beads_bridge.core.refs import parse_external_ref

console = Console()
app = typer.Typer(
    name="diagram",
    help="Place dependency diagrams on external issues and stories",
    no_args_is_help=True,
)


@app.callback()
def main() -> None:
    pass


@app.command()
def place(
    ctx: typer.Context,
    ref: str = typer.Argument(
        ..., help="External entity: github:owner/repo#N, shortcut:ID, or a URL"
    ),
    trigger: UpdateTrigger = typer.Option(
        UpdateTrigger.MANUAL,
        "--trigger",
        "-t",
        help="Why the diagram is being placed",
    ),
    snapshot: bool | None = typer.Option(
        None,
        "--snapshot/--no-snapshot",
        help="Also post the diagram as a snapshot comment",
    ),
    no_description: bool = typer.Option(
        False,
        "--no-description",
        help="Leave the entity body alone",
    ),
    message: str | None = typer.Option(
        None,
        "--message",
        "-m",
        help="Text placed above the diagram in the snapshot comment",
    ),
) -> None:
    """
    Render the dependency diagram for an entity's epics and place it.

    The diagram section in the body is replaced in place (or appended once),
    and left untouched when nothing but its timestamp would change.

    Examples:
        beads-bridge diagram place github:acme/app#5
        beads-bridge diagram place shortcut:12345 --snapshot -m "Sprint 4 scope"
        beads-bridge diagram place https://github.com/acme/app/issues/5 --no-description
    """
    try:
        external_ref = parse_external_ref(ref)
    except ValidationError:
        print_invalid_ref_error(ref)
        raise typer.Exit(ExitCode.USER_ERROR)

    bridge = open_bridge(ctx)
    try:
        options = PlacementOptions(
            trigger=trigger,
            update_description=not no_description and bridge.config.diagrams.update_description,
            create_snapshot=(
                bridge.config.diagrams.create_snapshots if snapshot is None else snapshot
            ),
            message=message,
        )
        result = bridge.placer.place(external_ref, options)
    finally:
        bridge.close()

    if not result.success:
        print_error(result.error or f"Diagram placement failed for {external_ref}")
        code = ExitCode.USER_ERROR if result.error_code == "NOT_FOUND" else ExitCode.GENERAL_ERROR
        raise typer.Exit(code)

    console.print(
        f"[green]✓[/green] Diagram for {external_ref} "
        f"({len(result.epic_ids)} epic(s), {result.node_count} nodes)"
    )
    if result.description_updated:
        console.print("  Description updated")
    elif result.description_unchanged:
        console.print("  [dim]Description already up to date[/dim]")
    if result.truncated:
        limit = bridge.config.diagrams.max_nodes
        console.print(f"  [yellow]Diagram exceeds the {limit} node limit[/yellow]")
    if result.snapshot:
        console.print(f"  Snapshot: {result.snapshot.comment_url or result.snapshot.comment_id}")
    console.print(f"  [dim]{result.entity_url}[/dim]")
