"""Release command - drop this user's registry entry."""

import typer

from ..identity import get_identity
from .common import console, get_registry, get_settings, get_store, success


def release() -> None:
    """Release the registry entry for the current user's assigned port.

    The assignment itself is kept; the next start claims the port again
    if it is still free.

    Examples:
        rslauncher release
    """
    identity = get_identity()
    settings = get_settings(identity)
    registry = get_registry(settings)

    port = get_store(settings).read()
    if port is None:
        console.print(f"[yellow]No port assigned to {identity.name}[/yellow]")
        return

    reservation = registry.get(port)
    if reservation is None:
        console.print(f"[yellow]No reservation found for port {port}[/yellow]")
        return
    if reservation.user and reservation.user != identity.name:
        console.print(
            f"[red]Error:[/red] Port {port} is reserved by {reservation.user}, not {identity.name}"
        )
        raise typer.Exit(1)

    if registry.release(port):
        success(f"Released port {port}")
    else:
        console.print(f"[red]Error:[/red] Could not remove {reservation.path}")
        raise typer.Exit(1)
