"""Prune command - remove leftover registry entries."""

import typer

from ..identity import get_identity
from ..pruner import Pruner, PruneResult
from ..system import SystemScanner
from .common import console, get_registry, get_settings, get_store, success


def prune(
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would be removed"),
    stale_days: int | None = typer.Option(
        None, "--stale", help="Also remove entries of any user claimed more than N days ago"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Remove registry entries that no longer back an assignment.

    Removes your own entries other than your assigned port. Entries whose
    port is listening are always kept.

    Examples:
        rslauncher prune --dry-run
        rslauncher prune
        rslauncher prune --stale 30
    """
    identity = get_identity()
    settings = get_settings(identity)
    pruner = Pruner(get_registry(settings), SystemScanner(probe_timeout=settings.probe_timeout))
    assigned = get_store(settings).read()

    def run_prune(dry: bool) -> PruneResult:
        result = pruner.prune(identity, assigned, dry_run=dry)
        if stale_days is not None:
            stale_result = pruner.prune_stale(days=stale_days, dry_run=dry)
            seen = {r.port for r in result.removed}
            result.removed.extend(r for r in stale_result.removed if r.port not in seen)
            result.errors.extend(stale_result.errors)
        return result

    result = run_prune(True)  # Always dry run first

    if not result.removed:
        console.print("[green]No leftover reservations found[/green]")
        return

    console.print(f"[yellow]Would remove {len(result.removed)} reservation(s):[/yellow]")
    for r in result.removed:
        console.print(f"  - {r.port} ({r.user or 'unknown'})")

    if dry_run:
        console.print("\n[dim]Run without --dry-run to remove.[/dim]")
        return

    if not force:
        confirm = typer.confirm("Proceed with deletion?")
        if not confirm:
            console.print("[yellow]Cancelled[/yellow]")
            return

    result = run_prune(False)
    success(f"Removed {len(result.removed)} reservation(s)")
    for message in result.errors:
        console.print(f"[yellow]Skipped {message}[/yellow]")
