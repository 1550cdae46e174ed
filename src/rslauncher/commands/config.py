"""Config command - show effective configuration."""

import dataclasses

from rich.table import Table

from ..config import get_config_path
from ..identity import get_identity
from .common import console, get_settings


def config() -> None:
    """Show the effective launcher configuration.

    Values come from defaults, the config file and environment variables.

    Examples:
        rslauncher config
    """
    identity = get_identity()
    settings = get_settings(identity)

    path = get_config_path()
    console.print(f"[bold]Config file:[/bold] {path if path else '(none)'}")

    table = Table(title="Effective Settings")
    table.add_column("Setting", style="green")
    table.add_column("Value", style="yellow")

    for field in dataclasses.fields(settings):
        value = getattr(settings, field.name)
        table.add_row(field.name, "-" if value is None else str(value))
    table.add_row("port_file", str(settings.port_file))

    console.print(table)
