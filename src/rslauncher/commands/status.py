"""Status command - show port assignment and registry entries."""

import typer
from rich.table import Table

from ..identity import get_identity
from ..system import SystemScanner
from .common import console, get_registry, get_settings, get_store


def status(
    live: bool = typer.Option(False, "--live", help="Check if ports are actually listening"),
) -> None:
    """Show this user's assigned port and the shared registry.

    Examples:
        rslauncher status
        rslauncher status --live
    """
    identity = get_identity()
    settings = get_settings(identity)
    assigned = get_store(settings).read()

    if assigned is None:
        console.print(f"[yellow]No port assigned to {identity.name}[/yellow]")
    else:
        console.print(f"[bold]Assigned port:[/bold] {assigned}")
    console.print(f"  [dim]Range:[/dim]    {settings.port_min}-{settings.port_max}")
    console.print(f"  [dim]Registry:[/dim] {settings.registry_dir}")

    reservations = get_registry(settings).list_reservations()
    if not reservations:
        console.print("[yellow]No reservations found[/yellow]")
        return

    listening_ports: set[int] = set()
    if live:
        listening_ports = SystemScanner().get_listening_ports()

    table = Table(title="Port Reservations")
    table.add_column("Port", style="yellow")
    table.add_column("User", style="green")
    table.add_column("Host", style="blue")
    table.add_column("Claimed", style="dim")
    if live:
        table.add_column("Status", style="magenta")

    for r in reservations:
        row = [
            str(r.port),
            r.user or "-",
            r.host or "-",
            r.time.isoformat() if r.time else "-",
        ]
        if live:
            row.append("● LISTEN" if r.port in listening_ports else "○ free")
        table.add_row(*row)

    console.print(table)
