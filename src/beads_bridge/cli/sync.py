"""
beads-bridge CLI - Sync command.

Detects changed beads items since a git ref and pushes diagrams and
progress narratives to the GitHub issues and Shortcut stories they belong to.
"""

import typer
from rich.console import Console
from rich.table import Table

from beads_bridge.cli.common import echo_json, open_bridge
from beads_bridge.cli.errors import ExitCode, report_bridge_error
from beads_bridge.core.errors import BridgeError
from beads_bridge.core.sync import EntitySyncResult, SyncReport

console = Console()
app = typer.Typer(
    name="sync",
    help="Sync changed beads items to external issues and stories",
    no_args_is_help=False,
)


class _ConsoleCallback:
    """Prints one line per finished entity."""

    def on_start(self, num_entities: int, num_workers: int) -> None:
        if num_entities:
            console.print(
                f"[blue]Syncing {num_entities} entit{'y' if num_entities == 1 else 'ies'} "
                f"with {num_workers} worker(s)...[/blue]"
            )

    def on_entity_complete(self, result: EntitySyncResult) -> None:
        if result.skipped:
            console.print(f"[dim]○ {result.external_ref} (dry run)[/dim]")
        elif result.success:
            console.print(f"[green]✓[/green] {result.external_ref}")
        else:
            console.print(f"[red]✗[/red] {result.error}")


def _print_report(report: SyncReport) -> None:
    change_set = report.change_set
    if change_set.is_empty:
        console.print(f"[blue]No changes since {change_set.since_ref}[/blue]")
        return

    if change_set.unresolved_item_ids:
        console.print(
            f"[dim]{len(change_set.unresolved_item_ids)} changed item(s) without an "
            f"external ref: {', '.join(sorted(change_set.unresolved_item_ids))}[/dim]"
        )

    if not report.results:
        console.print("[blue]No external entities affected[/blue]")
        return

    table = Table(title="Sync Results")
    table.add_column("Entity", style="cyan")
    table.add_column("Item")
    table.add_column("Result")
    table.add_column("Diagram")
    table.add_column("Comments", justify="right")

    for result in report.results:
        if result.skipped:
            outcome = "[dim]skipped[/dim]"
        elif result.success:
            outcome = "[green]synced[/green]"
        else:
            outcome = f"[red]failed[/red] [dim]{result.error_code or ''}[/dim]"
        table.add_row(
            str(result.external_ref),
            result.representative_item_id,
            outcome,
            "updated" if result.description_updated else "-",
            str(result.comments_added),
        )

    console.print(table)
    console.print(
        f"{report.synced} synced, {report.skipped} skipped, {report.failed} failed"
    )


@app.callback(invoke_without_command=True)
def sync(
    ctx: typer.Context,
    since: str | None = typer.Option(
        None,
        "--since",
        "-s",
        help="Git ref of the last synced state (default: HEAD~1)",
    ),
    until: str | None = typer.Option(
        None,
        "--until",
        "-u",
        help="Git ref of the new state (default: working tree)",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        "-j",
        min=1,
        help="Maximum entities synced in parallel",
    ),
    snapshot: bool | None = typer.Option(
        None,
        "--snapshot/--no-snapshot",
        help="Post a diagram snapshot comment per entity",
    ),
    narrative: bool | None = typer.Option(
        None,
        "--narrative/--no-narrative",
        help="Post a narrative progress comment per entity",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show affected entities without writing anything",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """
    Sync changed beads items to their external entities.

    Changed items are found by diffing the beads record file between two git
    refs. Each item is resolved to the GitHub issue or Shortcut story it
    belongs to, and every affected entity gets an updated dependency diagram
    and a progress comment. One failing entity never stops the others.

    Examples:
        beads-bridge sync                       # Changes since HEAD~1
        beads-bridge sync --since v1.2.0        # Changes since a tag
        beads-bridge sync --dry-run             # Show what would sync
        beads-bridge sync -j 5 --no-narrative   # 5 workers, diagrams only
    """
    if ctx.invoked_subcommand is not None:
        return

    bridge = open_bridge(ctx)
    try:
        orchestrator = bridge.orchestrator(
            max_concurrency=concurrency,
            post_narrative=narrative,
            create_snapshot=snapshot,
            callback=None if json_output else _ConsoleCallback(),
        )
        report = orchestrator.run(
            since_ref=since or bridge.config.sync.since_ref,
            until_ref=until or bridge.config.sync.until_ref,
            dry_run=dry_run,
        )
    except BridgeError as e:
        raise typer.Exit(report_bridge_error(e))
    finally:
        bridge.close()

    if json_output:
        echo_json(report.to_dict())
    else:
        _print_report(report)

    if not report.success:
        raise typer.Exit(ExitCode.GENERAL_ERROR)
