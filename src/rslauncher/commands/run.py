"""Run command - run R inside the same container and binds as the server."""

from pathlib import Path

import typer

from ..identity import get_identity
from ..launcher import (
    LauncherError,
    build_binds,
    build_run_command,
    exec_command,
    prepare_state_dirs,
    resolve_script,
)
from .common import error, get_settings


def run(
    target: list[str] | None = typer.Argument(
        None, help="R script followed by its arguments (or a command with --command)"
    ),
    expr: str | None = typer.Option(None, "-e", "--expr", help="R expression to evaluate"),
    command: bool = typer.Option(
        False, "--command", help="Run TARGET as an arbitrary command in the container"
    ),
) -> None:
    """Run an R script, an expression or a command inside the container.

    Examples:
        rslauncher run analysis.R -- input.csv
        rslauncher run --expr 'print(sessionInfo())'
        rslauncher run --command -- Rscript -e 'print("hi")'
    """
    identity = get_identity()
    settings = get_settings(identity)
    target = target or []

    if expr is not None and command:
        error("--expr cannot be combined with --command")
        raise typer.Exit(1)
    if expr is None and not target:
        error("Specify a script, --expr or --command")
        raise typer.Exit(1)

    try:
        if not settings.sif.is_file():
            raise LauncherError(f"SIF not found: {settings.sif}")
        prepare_state_dirs(settings)
        binds = build_binds(settings)

        if expr is not None:
            cmd = build_run_command(settings, binds, expr=expr, args=target)
        elif command:
            cmd = build_run_command(settings, binds, command=target)
        else:
            script_in, extra = resolve_script(settings, Path(target[0]))
            cmd = build_run_command(settings, binds + extra, script=script_in, args=target[1:])
    except LauncherError as e:
        error(str(e))
        raise typer.Exit(1)

    exec_command(cmd)
