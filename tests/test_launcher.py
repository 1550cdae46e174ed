"""Tests for launcher module."""

import stat
from dataclasses import replace
from pathlib import Path

import pytest

from rslauncher import launcher
from rslauncher.launcher import (
    PAM_HELPER,
    RS_BIN,
    SCRIPT_MOUNT,
    Bind,
    LauncherError,
    banner_lines,
    build_binds,
    build_run_command,
    build_server_command,
    check_runtime,
    prepare_state_dirs,
    resolve_script,
)


def _bind_args(cmd):
    return [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "--bind"]


def test_prepare_state_dirs(settings):
    """Test that the state layout and database.conf are created."""
    prepare_state_dirs(settings)

    for name in ("run", "var-lib", "tmp", "conf"):
        assert (settings.state_dir / name).is_dir()
    assert settings.user_ws.is_dir()
    assert settings.workspace_dir.is_dir()
    assert settings.exports_dir.is_dir()
    assert (settings.local_share_dir / "rstudio").is_dir()

    database_conf = settings.state_dir / "conf" / "database.conf"
    assert database_conf.read_text() == "provider=sqlite\n"
    assert stat.S_IMODE(database_conf.stat().st_mode) == 0o600


def test_prepare_state_dirs_keeps_database_conf(settings):
    """Test that an existing database.conf is not overwritten."""
    (settings.state_dir / "conf").mkdir(parents=True)
    database_conf = settings.state_dir / "conf" / "database.conf"
    database_conf.write_text("provider=postgresql\n")

    prepare_state_dirs(settings)

    assert database_conf.read_text() == "provider=postgresql\n"


def test_bind_to_arg():
    """Test bind argument formatting."""
    assert Bind(Path("/a"), "/b").to_arg() == "/a:/b"
    assert Bind(Path("/a"), "/b", read_only=True).to_arg() == "/a:/b:ro"


def test_build_binds(settings):
    """Test the bind list once the directories exist."""
    prepare_state_dirs(settings)
    settings.project_dir.mkdir()

    binds = {bind.target: bind for bind in build_binds(settings)}

    assert binds["/run"].source == settings.state_dir / "run"
    assert binds["/var/lib/rstudio-server"].source == settings.state_dir / "var-lib"
    assert binds["/tmp"].source == settings.state_dir / "tmp"
    assert binds["/etc/rstudio/database.conf"].source == (
        settings.state_dir / "conf" / "database.conf"
    )
    assert binds["/home/alice"].source == settings.user_ws
    assert binds["/home/alice/.local/share"].source == settings.local_share_dir
    assert binds["/home/alice/Workspace"].source == settings.workspace_dir
    assert binds["/home/alice/Exports"].source == settings.exports_dir
    assert binds["/media/project_2013220"].source == settings.project_dir
    assert binds["/etc/passwd"].read_only
    assert binds["/etc/group"].read_only
    # shared_ro does not exist
    assert "/home/alice/shared_project" not in binds


def test_build_binds_shared_read_only(settings):
    """Test that the shared project is mounted read-only when present."""
    settings.shared_ro.mkdir()

    binds = {bind.target: bind for bind in build_binds(settings)}

    assert binds["/home/alice/shared_project"].read_only


def test_server_command_single_mode(settings):
    """Test the no-auth server command."""
    binds = build_binds(settings)

    cmd = build_server_command(settings, 8805, binds)

    assert cmd[:6] == ["apptainer", "exec", "--no-mount", "cwd", "--pwd", "/home/alice"]
    assert len(_bind_args(cmd)) == len(binds)
    sif_index = cmd.index(str(settings.sif))
    assert cmd[sif_index + 1] == RS_BIN
    assert cmd[sif_index + 2:] == [
        "--www-address=0.0.0.0",
        "--www-port",
        "8805",
        "--auth-none=1",
        "--server-user=alice",
        "--server-daemonize=0",
    ]


def test_server_command_pam_mode(settings):
    """Test the PAM server command."""
    settings = replace(settings, mode="pam")

    cmd = build_server_command(settings, 8805, [])

    assert "--auth-none=0" in cmd
    assert f"--auth-pam-helper-path={PAM_HELPER}" in cmd
    assert "--auth-none=1" not in cmd


def test_run_command_expr(settings):
    """Test evaluating an R expression."""
    cmd = build_run_command(settings, [], expr="print(1)")

    assert cmd[-3:] == ["Rscript", "-e", "print(1)"]


def test_run_command_script(settings):
    """Test running a script with arguments."""
    cmd = build_run_command(settings, [], script="/tmp/rscript_mount/a.R", args=["x", "y"])

    assert cmd[-4:] == ["Rscript", "/tmp/rscript_mount/a.R", "x", "y"]


def test_run_command_arbitrary(settings):
    """Test running an arbitrary command."""
    cmd = build_run_command(settings, [], command=["R", "--version"])

    assert cmd[-3:] == [str(settings.sif), "R", "--version"]


def test_run_command_requires_one_target(settings):
    """Test that exactly one of script, expr or command is accepted."""
    with pytest.raises(ValueError):
        build_run_command(settings, [])
    with pytest.raises(ValueError):
        build_run_command(settings, [], script="a.R", expr="1")


def test_resolve_script_binds_directory(settings, temp_dir, monkeypatch):
    """Test that a script invisible to the container gets its directory bound."""
    script = temp_dir / "scripts" / "analysis.R"
    script.parent.mkdir()
    script.write_text("print(1)\n")
    monkeypatch.setattr(launcher, "_visible_in_container", lambda settings, path: False)

    path_in, extra = resolve_script(settings, script)

    assert path_in == f"{SCRIPT_MOUNT}/analysis.R"
    assert extra == [Bind(script.parent.resolve(), SCRIPT_MOUNT, read_only=True)]


def test_resolve_script_visible(settings, temp_dir, monkeypatch):
    """Test that a script the container already sees is used as-is."""
    script = temp_dir / "analysis.R"
    script.write_text("print(1)\n")
    monkeypatch.setattr(launcher, "_visible_in_container", lambda settings, path: True)

    path_in, extra = resolve_script(settings, script)

    assert path_in == str(script.resolve())
    assert extra == []


def test_resolve_script_missing(settings, temp_dir):
    """Test that a missing script is an error."""
    with pytest.raises(LauncherError, match="Script not found"):
        resolve_script(settings, temp_dir / "missing.R")


def test_check_runtime_without_apptainer(settings, monkeypatch):
    """Test that a missing container runtime is an error."""
    monkeypatch.setattr(launcher.shutil, "which", lambda name: None)

    with pytest.raises(LauncherError, match="apptainer"):
        check_runtime(settings)


def test_check_runtime_without_image(settings, monkeypatch):
    """Test that a missing image is an error."""
    monkeypatch.setattr(launcher.shutil, "which", lambda name: "/usr/bin/" + name)

    with pytest.raises(LauncherError, match="SIF not found"):
        check_runtime(settings)


def test_banner_lines(settings):
    """Test the startup banner content."""
    lines = banner_lines(settings, 8805)

    assert lines[0] == "RStudio Server launcher"
    assert "  PORT:       8805" in lines
    assert not any("SHARED_RO" in line for line in lines)


def test_open_browser_without_browser(monkeypatch):
    """Test that no browser is started when none is installed."""
    monkeypatch.setattr(launcher.shutil, "which", lambda name: None)

    assert launcher.open_browser("http://localhost:8800", "firefox") is False
