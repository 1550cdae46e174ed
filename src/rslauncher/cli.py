"""Typer CLI for rslauncher - Main entry point."""

import typer

from . import __version__
from .commands import config, port, prune, release, run, start, status

app = typer.Typer(
    name="rslauncher",
    help="Containerized RStudio Server launcher for shared hosts",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"rslauncher version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Containerized RStudio Server launcher for shared hosts."""
    pass

# Register all commands
app.command()(start)
app.command()(port)
app.command()(run)
app.command()(status)
app.command()(release)
app.command()(prune)
app.command()(config)


def main() -> None:
    """Main entry point."""
    app()
