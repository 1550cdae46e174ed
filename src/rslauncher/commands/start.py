"""Start command - launch RStudio Server in the container."""

import typer

from ..allocator import PortAllocationError
from ..identity import get_identity
from ..launcher import (
    LauncherError,
    banner_lines,
    build_binds,
    build_server_command,
    check_runtime,
    exec_command,
    open_browser,
    prepare_state_dirs,
)
from ..registry import RegistryError
from .common import console, error, get_allocator, get_settings


def start(
    mode: str | None = typer.Option(None, "--mode", help="Auth mode: single or pam"),
    override: int | None = typer.Option(
        None, "-p", "--port", help="Explicit port, bypasses allocation"
    ),
    browser: bool = typer.Option(True, "--browser/--no-browser", help="Open a browser"),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Print the server command instead of running it"
    ),
) -> None:
    """Start RStudio Server on this user's stable port.

    Examples:
        rslauncher start
        rslauncher start --mode pam
        rslauncher start --dry-run
    """
    identity = get_identity()
    settings = get_settings(identity, mode=mode, port=override)

    try:
        prepare_state_dirs(settings)
        port = get_allocator(settings, identity).allocate(settings.port)
        if not dry_run:
            check_runtime(settings)
    except (PortAllocationError, RegistryError, LauncherError) as e:
        error(str(e))
        raise typer.Exit(1)

    for line in banner_lines(settings, port):
        console.print(line, highlight=False)

    cmd = build_server_command(settings, port, build_binds(settings))
    if dry_run:
        print(" ".join(cmd))
        return

    if browser:
        open_browser(f"http://localhost:{port}", settings.browser_cmd)
    exec_command(cmd)
