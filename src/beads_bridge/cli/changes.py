"""
beads-bridge CLI - Change inspection commands.

Read-only views of what a sync would act on: the changed items since a
git ref, and the external entity a single item resolves to.
"""

import typer
from rich.console import Console
from rich.table import Table

from beads_bridge.cli.common import echo_json, open_bridge
from beads_bridge.cli.errors import ExitCode, report_bridge_error
from beads_bridge.core.changes import ChangeKind
from beads_bridge.core.errors import BridgeError

console = Console()

_KIND_STYLES = {
    ChangeKind.CREATED: "[green]created[/green]",
    ChangeKind.UPDATED: "[yellow]updated[/yellow]",
    ChangeKind.REMOVED: "[red]removed[/red]",
}


def changes(
    ctx: typer.Context,
    since: str | None = typer.Option(
        None,
        "--since",
        "-s",
        help="Git ref to diff against (default: HEAD~1)",
    ),
    until: str | None = typer.Option(
        None,
        "--until",
        "-u",
        help="Upper git ref (default: working tree)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """
    Show changed items and the external entities they resolve to.

    Examples:
        beads-bridge changes
        beads-bridge changes --since main --json
    """
    bridge = open_bridge(ctx)
    try:
        change_set = bridge.orchestrator().detect(
            since_ref=since or bridge.config.sync.since_ref,
            until_ref=until or bridge.config.sync.until_ref,
        )
    except BridgeError as e:
        raise typer.Exit(report_bridge_error(e))
    finally:
        bridge.close()

    refs_by_item: dict[str, str] = {}
    for ref, item_id in change_set.affected_external_refs.items():
        refs_by_item[item_id] = str(ref)

    if json_output:
        echo_json(
            {
                "since_ref": change_set.since_ref,
                "until_ref": change_set.until_ref,
                "changed_item_ids": sorted(change_set.changed_item_ids),
                "removed_item_ids": sorted(change_set.removed_item_ids),
                "affected_external_refs": {
                    str(ref): item_id
                    for ref, item_id in sorted(change_set.affected_external_refs.items())
                },
                "unresolved_item_ids": sorted(change_set.unresolved_item_ids),
            }
        )
        return

    if not change_set.records:
        console.print(f"[blue]No changes since {change_set.since_ref}[/blue]")
        return

    table = Table(title=f"Changes since {change_set.since_ref}")
    table.add_column("Item", style="cyan")
    table.add_column("Change")
    table.add_column("Fields")
    table.add_column("Entity")

    for item_id in sorted(change_set.records):
        record = change_set.records[item_id]
        fields = ", ".join(record.changed_fields()) if record.kind == ChangeKind.UPDATED else ""
        entity = refs_by_item.get(item_id, "")
        if not entity and item_id in change_set.unresolved_item_ids:
            entity = "[dim]none[/dim]"
        table.add_row(item_id, _KIND_STYLES[record.kind], fields, entity)

    console.print(table)
    console.print(
        f"{len(change_set.changed_item_ids)} changed, "
        f"{len(change_set.affected_external_refs)} entit"
        f"{'y' if len(change_set.affected_external_refs) == 1 else 'ies'} affected"
    )


def resolve(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="beads item id to resolve"),
) -> None:
    """
    Show which external entity an item belongs to.

    Walks the item's own external_ref, then its parent chain.

    Examples:
        beads-bridge resolve bd-a1b2
    """
    bridge = open_bridge(ctx)
    try:
        ref = bridge.resolver.resolve(item_id)
    except BridgeError as e:
        raise typer.Exit(report_bridge_error(e))
    finally:
        bridge.close()

    if ref is None:
        console.print(f"[yellow]{item_id} has no external ref on itself or any parent[/yellow]")
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    console.print(f"{item_id} → [cyan]{ref}[/cyan]")
    console.print(f"[dim]{ref.url}[/dim]")
