"""Port command - allocate and show this user's port."""

import typer

from ..allocator import PortAllocationError
from ..identity import get_identity
from ..registry import RegistryError
from .common import console, error, get_allocator, get_settings


def port(
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Output only the port number"),
    override: int | None = typer.Option(
        None, "-p", "--port", help="Explicit port, bypasses allocation"
    ),
) -> None:
    """Get (allocating if needed) the stable port for the current user.

    Examples:
        rslauncher port
        RS_PORT=$(rslauncher port -q)
    """
    identity = get_identity()
    settings = get_settings(identity, port=override)
    allocator = get_allocator(settings, identity)

    try:
        allocated = allocator.allocate(settings.port)
    except (PortAllocationError, RegistryError) as e:
        error(str(e))
        raise typer.Exit(1)

    if quiet:
        print(allocated)
    else:
        console.print(f"[green]{identity.name}[/green]: {allocated}")
