"""
beads-bridge CLI - Mapping commands.

Create, inspect and maintain the durable links between external entities
and beads epics.
"""

import typer
from rich.console import Console
from rich.table import Table

from beads_bridge.cli.common import echo_json, open_bridge
from beads_bridge.cli.errors import (
    ExitCode,
    print_mapping_not_found_error,
    report_bridge_error,
)
from beads_bridge.core.errors import BridgeError
from beads_bridge.core.mappings import (
    ConflictResolution,
    CreateMappingParams,
    EpicLinkInput,
    Mapping,
    MappingQuery,
    MappingStatus,
)

app = typer.Typer(
    name="mapping",
    help="Manage links between external entities and beads epics",
    no_args_is_help=True,
)

console = Console()


def _format_status(status: MappingStatus) -> str:
    """Format mapping status with color."""
    status_colors = {
        MappingStatus.ACTIVE: "[green]active[/green]",
        MappingStatus.SYNCING: "[blue]syncing[/blue]",
        MappingStatus.CONFLICT: "[red]conflict[/red]",
        MappingStatus.ARCHIVED: "[dim]archived[/dim]",
    }
    return status_colors.get(status, status.value)


def _print_mapping(mapping: Mapping) -> None:
    table = Table(title=mapping.external_entity, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("ID", mapping.id)
    table.add_row("Status", _format_status(mapping.status))
    table.add_row("URL", mapping.external_representation)
    table.add_row("Repository", mapping.external_repository)
    table.add_row(
        "Epics",
        ", ".join(f"{e.epic_id} ({e.repository})" for e in mapping.linked_epics) or "-",
    )
    metrics = mapping.aggregated_metrics
    if metrics.total:
        table.add_row(
            "Progress",
            f"{metrics.total_completed}/{metrics.total} complete ({metrics.percent_complete}%)",
        )
    table.add_row("Created", mapping.created_at.strftime("%Y-%m-%d %H:%M:%S UTC"))
    if mapping.last_synced_at:
        table.add_row("Last synced", mapping.last_synced_at.strftime("%Y-%m-%d %H:%M:%S UTC"))
    else:
        table.add_row("Last synced", "[dim]Never[/dim]")
    if mapping.conflict:
        table.add_row(
            "Conflict",
            f"[red]{mapping.conflict.type.value}[/red]: {mapping.conflict.description}",
        )

    console.print(table)

    if mapping.sync_history:
        console.print("\n[bold]Recent syncs[/bold]")
        for entry in mapping.sync_history[:5]:
            mark = "[green]✓[/green]" if entry.success else "[red]✗[/red]"
            when = entry.timestamp.strftime("%Y-%m-%d %H:%M")
            detail = f" {entry.error}" if entry.error else ""
            console.print(f"  {mark} {when} {entry.direction.value}{detail}")


@app.command()
def create(
    ctx: typer.Context,
    ref: str = typer.Argument(
        ..., help="External entity: github:owner/repo#N, shortcut:ID, or a URL"
    ),
    epics: list[str] = typer.Option(
        ...,
        "--epic",
        "-e",
        help="beads epic id to link (repeatable)",
    ),
    repository: str | None = typer.Option(
        None,
        "--repository",
        "-r",
        help="beads repository name for the epics (default: project directory name)",
    ),
) -> None:
    """
    Link an external entity to one or more beads epics.

    Examples:
        beads-bridge mapping create github:acme/app#5 --epic bd-a1b2
        beads-bridge mapping create shortcut:12345 -e bd-a1b2 -e bd-c3d4 -r backend
    """
    bridge = open_bridge(ctx)
    repo_name = repository or bridge.project_dir.name
    try:
        mapping = bridge.mappings.create(
            CreateMappingParams(
                external_entity=ref,
                linked_epics=[
                    EpicLinkInput(repository=repo_name, epic_id=epic_id) for epic_id in epics
                ],
            )
        )
    except BridgeError as e:
        raise typer.Exit(report_bridge_error(e))
    finally:
        bridge.close()

    console.print(f"[green]✓[/green] Created mapping {mapping.id}")
    console.print(f"  {mapping.external_entity} → {', '.join(mapping.epic_ids)}")


@app.command(name="list")
def list_mappings(
    ctx: typer.Context,
    status: MappingStatus | None = typer.Option(
        None,
        "--status",
        "-s",
        help="Only mappings in this status",
    ),
    conflicts: bool = typer.Option(
        False,
        "--conflicts",
        help="Only mappings with an unresolved conflict",
    ),
    repository: str | None = typer.Option(
        None,
        "--repository",
        "-r",
        help="Only mappings for this external repository (owner/repo or 'shortcut')",
    ),
    limit: int | None = typer.Option(
        None,
        "--limit",
        "-n",
        min=1,
        help="Maximum number of mappings",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """
    List mappings.

    Examples:
        beads-bridge mapping list
        beads-bridge mapping list --conflicts
        beads-bridge mapping list -r acme/app --json
    """
    query = MappingQuery(
        status=status,
        has_conflicts=True if conflicts else None,
        external_repository=repository,
        limit=limit,
    )
    bridge = open_bridge(ctx)
    try:
        mappings = bridge.mappings.list(query)
    except BridgeError as e:
        raise typer.Exit(report_bridge_error(e))
    finally:
        bridge.close()

    if json_output:
        echo_json([m.model_dump(mode="json") for m in mappings])
        return

    if not mappings:
        console.print("[dim]No mappings found[/dim]")
        return

    table = Table(title=f"Mappings ({len(mappings)})")
    table.add_column("ID", style="dim")
    table.add_column("Entity", style="cyan")
    table.add_column("Status")
    table.add_column("Epics")
    table.add_column("Progress", justify="right")
    table.add_column("Last synced")

    for mapping in mappings:
        metrics = mapping.aggregated_metrics
        table.add_row(
            mapping.id[:8],
            mapping.external_entity,
            _format_status(mapping.status),
            ", ".join(mapping.epic_ids),
            f"{metrics.percent_complete}%" if metrics.total else "-",
            (
                mapping.last_synced_at.strftime("%Y-%m-%d %H:%M")
                if mapping.last_synced_at
                else "[dim]never[/dim]"
            ),
        )

    console.print(table)


@app.command()
def show(
    ctx: typer.Context,
    mapping_id: str = typer.Argument(..., help="Mapping id"),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """
    Show one mapping with its recent sync history.

    Examples:
        beads-bridge mapping show 3f2a9c1e-...
    """
    bridge = open_bridge(ctx)
    try:
        mapping = bridge.mappings.get(mapping_id)
    except BridgeError as e:
        raise typer.Exit(report_bridge_error(e))
    finally:
        bridge.close()

    if mapping is None:
        print_mapping_not_found_error(mapping_id)
        raise typer.Exit(ExitCode.USER_ERROR)

    if json_output:
        echo_json(mapping.model_dump(mode="json"))
        return

    _print_mapping(mapping)


@app.command()
def delete(
    ctx: typer.Context,
    mapping_id: str = typer.Argument(..., help="Mapping id"),
) -> None:
    """
    Delete a mapping. The external entity and the epics are not touched.

    Examples:
        beads-bridge mapping delete 3f2a9c1e-...
    """
    bridge = open_bridge(ctx)
    try:
        bridge.mappings.delete(mapping_id)
    except BridgeError as e:
        raise typer.Exit(report_bridge_error(e))
    finally:
        bridge.close()

    console.print(f"[green]✓[/green] Deleted mapping {mapping_id}")


@app.command()
def resolve(
    ctx: typer.Context,
    mapping_id: str = typer.Argument(..., help="Mapping id"),
    strategy: ConflictResolution = typer.Option(
        ...,
        "--strategy",
        help="How the conflict was resolved",
    ),
) -> None:
    """
    Mark a mapping's conflict as resolved and return it to active.

    Examples:
        beads-bridge mapping resolve 3f2a9c1e-... --strategy beads_wins
    """
    bridge = open_bridge(ctx)
    try:
        mapping = bridge.mappings.resolve_conflict(mapping_id, strategy)
    except BridgeError as e:
        raise typer.Exit(report_bridge_error(e))
    finally:
        bridge.close()

    console.print(
        f"[green]✓[/green] Resolved conflict on {mapping.external_entity} ({strategy.value})"
    )


@app.command()
def stats(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """
    Show mapping store statistics.

    Examples:
        beads-bridge mapping stats
    """
    bridge = open_bridge(ctx)
    try:
        store_stats = bridge.mappings.get_stats()
    except BridgeError as e:
        raise typer.Exit(report_bridge_error(e))
    finally:
        bridge.close()

    if json_output:
        echo_json(store_stats.model_dump(mode="json"))
        return

    table = Table(title="Mapping Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total mappings", str(store_stats.total))
    for status, count in sorted(store_stats.by_status.items(), key=lambda kv: kv[0].value):
        table.add_row(f"  {status.value}", str(count))
    table.add_row("Conflicts", str(store_stats.conflicts))
    table.add_row("Synced in last 24h", str(store_stats.recently_synced))
    table.add_row("Sync success rate", f"{store_stats.sync_success_rate:.1f}%")
    table.add_row("External repositories", ", ".join(store_stats.external_repositories) or "-")
    table.add_row("beads repositories", ", ".join(store_stats.beads_repositories) or "-")

    console.print(table)


@app.command(name="rebuild-index")
def rebuild_index(ctx: typer.Context) -> None:
    """
    Regenerate the mapping index from the mapping files.

    Examples:
        beads-bridge mapping rebuild-index
    """
    bridge = open_bridge(ctx)
    try:
        count = bridge.mappings.rebuild_index()
    except BridgeError as e:
        raise typer.Exit(report_bridge_error(e))
    finally:
        bridge.close()

    console.print(f"[green]✓[/green] Indexed {count} mapping(s)")
