"""Container launch helpers: state directories, bind mounts and commands."""

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .config import Settings
from .console import debug, warning

APPTAINER = "apptainer"

# Paths inside the container image
RS_BIN = "/usr/lib/rstudio-server/bin/rserver"
PAM_HELPER = "/usr/lib/rstudio-server/bin/pam-helper"
R_BIN = "Rscript"
SCRIPT_MOUNT = "/tmp/rscript_mount"

STATE_SUBDIRS = ("run", "var-lib", "tmp", "conf")


class LauncherError(Exception):
    """Raised when the container runtime or image is unusable."""

    pass


@dataclass(frozen=True)
class Bind:
    """A host path bind-mounted into the container."""

    source: Path
    target: str
    read_only: bool = False

    def to_arg(self) -> str:
        spec = f"{self.source}:{self.target}"
        return f"{spec}:ro" if self.read_only else spec


def home_in_container(settings: Settings) -> str:
    return f"/home/{settings.user}"


def prepare_state_dirs(settings: Settings) -> None:
    """Create the launcher state layout and per-user shared directories.

    The rserver state lives under ``settings.state_dir``; a missing
    ``conf/database.conf`` is written with the sqlite provider.

    Raises:
        LauncherError: If the state directory cannot be created
    """
    try:
        for name in STATE_SUBDIRS:
            (settings.state_dir / name).mkdir(parents=True, exist_ok=True)
        settings.user_ws.mkdir(parents=True, exist_ok=True)

        database_conf = settings.state_dir / "conf" / "database.conf"
        if not database_conf.exists():
            database_conf.write_text("provider=sqlite\n")
            database_conf.chmod(0o600)
    except OSError as e:
        raise LauncherError(f"Cannot prepare state directory {settings.state_dir}: {e}")

    # Shared volumes may be absent on some hosts; their binds are skipped then
    for directory in (
        settings.workspace_dir,
        settings.exports_dir,
        settings.local_share_dir / "rstudio",
    ):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            warning(f"Cannot create {directory}: {e}")


def build_binds(settings: Settings) -> list[Bind]:
    """Compose the bind mounts shared by the server and the R runner.

    Optional binds are included only when their host directory exists.

    Returns:
        Ordered list of binds
    """
    home = home_in_container(settings)
    state = settings.state_dir

    binds = [
        Bind(state / "run", "/run"),
        Bind(state / "var-lib", "/var/lib/rstudio-server"),
        Bind(state / "tmp", "/tmp"),
        Bind(state / "conf" / "database.conf", "/etc/rstudio/database.conf"),
    ]

    optional = [
        Bind(settings.user_ws, home),
        # Keeps RStudio session state off $HOME
        Bind(settings.local_share_dir, f"{home}/.local/share"),
        Bind(settings.workspace_dir, f"{home}/Workspace"),
        Bind(settings.exports_dir, f"{home}/Exports"),
        Bind(settings.project_dir, f"/media/{settings.project_dir.name}"),
        Bind(settings.shared_ro, f"{home}/shared_project", read_only=True),
    ]
    binds.extend(bind for bind in optional if bind.source.is_dir())

    binds.append(Bind(Path("/etc/passwd"), "/etc/passwd", read_only=True))
    binds.append(Bind(Path("/etc/group"), "/etc/group", read_only=True))
    return binds


def _exec_prefix(settings: Settings, binds: list[Bind]) -> list[str]:
    cmd = [APPTAINER, "exec", "--no-mount", "cwd", "--pwd", home_in_container(settings)]
    for bind in binds:
        cmd.extend(["--bind", bind.to_arg()])
    cmd.append(str(settings.sif))
    return cmd


def build_server_command(settings: Settings, port: int, binds: list[Bind]) -> list[str]:
    """Build the ``apptainer exec ... rserver`` command line.

    Args:
        settings: Effective settings (mode selects PAM or no-auth)
        port: Port rserver listens on
        binds: Bind mounts

    Returns:
        argv list
    """
    cmd = _exec_prefix(settings, binds)
    cmd.extend([RS_BIN, "--www-address=0.0.0.0", "--www-port", str(port)])
    if settings.mode == "pam":
        cmd.extend(["--auth-none=0", f"--auth-pam-helper-path={PAM_HELPER}"])
    else:
        cmd.append("--auth-none=1")
    cmd.extend([f"--server-user={settings.user}", "--server-daemonize=0"])
    return cmd


def resolve_script(settings: Settings, script: Path) -> tuple[str, list[Bind]]:
    """Make an R script reachable inside the container.

    Scripts the image can already see are used as-is; otherwise the script's
    directory is bound read-only under SCRIPT_MOUNT.

    Returns:
        (path inside container, extra binds)

    Raises:
        LauncherError: If the script does not exist
    """
    script = script.expanduser().resolve()
    if not script.is_file():
        raise LauncherError(f"Script not found: {script}")

    if _visible_in_container(settings, script):
        return str(script), []
    return (
        f"{SCRIPT_MOUNT}/{script.name}",
        [Bind(script.parent, SCRIPT_MOUNT, read_only=True)],
    )


def _visible_in_container(settings: Settings, path: Path) -> bool:
    try:
        result = subprocess.run(
            [APPTAINER, "exec", str(settings.sif), "test", "-e", str(path)],
            capture_output=True,
            timeout=60,
        )
    except (subprocess.SubprocessError, FileNotFoundError):
        return False
    return result.returncode == 0


def build_run_command(
    settings: Settings,
    binds: list[Bind],
    script: str | None = None,
    args: list[str] | None = None,
    expr: str | None = None,
    command: list[str] | None = None,
) -> list[str]:
    """Build a command running R (or anything else) inside the container.

    Exactly one of ``script``, ``expr`` or ``command`` must be given.

    Args:
        settings: Effective settings
        binds: Bind mounts (including any from resolve_script)
        script: Script path inside the container, run with Rscript
        args: Extra arguments for the script or expression
        expr: R expression passed to ``Rscript -e``
        command: Arbitrary argv run in the container

    Returns:
        argv list
    """
    given = [value for value in (script, expr, command) if value]
    if len(given) != 1:
        raise ValueError("Exactly one of script, expr or command is required")

    cmd = _exec_prefix(settings, binds)
    if command:
        cmd.extend(command)
    elif expr:
        cmd.extend([R_BIN, "-e", expr])
    else:
        cmd.extend([R_BIN, script])
    if not command:
        cmd.extend(args or [])
    return cmd


def check_runtime(settings: Settings) -> None:
    """Verify the container runtime, the image and the server binary.

    Raises:
        LauncherError: If anything required is missing
    """
    if shutil.which(APPTAINER) is None:
        raise LauncherError(f"'{APPTAINER}' not found on PATH")
    if not settings.sif.is_file():
        raise LauncherError(f"SIF not found: {settings.sif}")

    try:
        result = subprocess.run(
            [APPTAINER, "exec", str(settings.sif), "test", "-x", RS_BIN],
            capture_output=True,
            timeout=60,
        )
    except subprocess.SubprocessError as e:
        raise LauncherError(f"Cannot inspect {settings.sif}: {e}")
    if result.returncode != 0:
        raise LauncherError(
            f"{RS_BIN} not found inside SIF. Was RStudio Server installed?"
        )


def banner_lines(settings: Settings, port: int) -> list[str]:
    """Lines of the startup banner."""
    lines = [
        "RStudio Server launcher",
        f"  SIF:        {settings.sif}",
        f"  MODE:       {settings.mode}",
        f"  PORT:       {port}",
        f"  WORKSPACE:  {settings.user_ws}",
    ]
    if settings.shared_ro.is_dir():
        lines.append(f"  SHARED_RO:  {settings.shared_ro} (mounted read-only)")
    return lines


def open_browser(url: str, browser_cmd: str) -> bool:
    """Open ``url`` shortly after launch, detached from this process.

    Falls back to ``xdg-open`` when the configured browser is missing.

    Returns:
        True if a browser was started
    """
    browser = shutil.which(browser_cmd) or shutil.which("xdg-open")
    if browser is None:
        debug(f"No browser found ({browser_cmd}, xdg-open)")
        return False

    # The delay gives rserver time to bind before the page loads
    subprocess.Popen(
        ["sh", "-c", 'sleep 1; exec "$0" "$1"', browser, url],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    return True


def exec_command(cmd: list[str]) -> None:
    """Replace the current process with ``cmd``."""
    debug(f"exec: {' '.join(cmd)}")
    os.execvp(cmd[0], cmd)
