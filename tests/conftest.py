"""Test fixtures and configuration."""

import tempfile
from pathlib import Path

import pytest

from rslauncher.assignment import AssignmentStore
from rslauncher.config import ENV_VARS, Settings
from rslauncher.identity import Identity
from rslauncher.registry import ReservationRegistry


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep the caller's environment and config files out of settings resolution."""
    for env_var in ENV_VARS:
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.delenv("RSLAUNCHER_CONFIG", raising=False)
    monkeypatch.delenv("RSLAUNCHER_DEBUG", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_CONFIG_DIRS", str(tmp_path / "xdg-site"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))


@pytest.fixture
def temp_dir():
    """Temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_identity():
    """Factory for test identities."""

    def _make(name: str = "alice", uid: int = 1000) -> Identity:
        return Identity(name=name, uid=uid, hostname="testhost")

    return _make


@pytest.fixture
def registry(temp_dir):
    """Reservation registry in a temporary directory."""
    return ReservationRegistry(temp_dir / "registry")


@pytest.fixture
def make_store(temp_dir):
    """Factory for per-identity assignment stores."""

    def _make(name: str = "alice") -> AssignmentStore:
        return AssignmentStore(temp_dir / "home" / name / "conf" / "port")

    return _make


@pytest.fixture
def settings(temp_dir):
    """Settings pointing every path into the temporary directory."""
    return Settings(
        user="alice",
        registry_dir=temp_dir / "registry",
        state_dir=temp_dir / "state",
        sif=temp_dir / "rstudio_server.sif",
        user_ws=temp_dir / "ws" / "alice",
        shared_ro=temp_dir / "shared_ro",
        project_dir=temp_dir / "project_2013220",
        workspaces_root=temp_dir / "Workspaces" / "users",
        exports_root=temp_dir / "Exports" / "users",
    )
