"""Configuration management for rslauncher.

Settings are resolved in layers: built-in defaults, then the YAML config
file, then environment variables. CLI options are applied last by the
commands themselves via ``dataclasses.replace``.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import platformdirs
import yaml

APP_NAME = "rslauncher"

MODES = ("single", "pam")
CONFLICT_POLICIES = ("reallocate", "strict")


class ConfigError(Exception):
    """Raised when the configuration is invalid."""

    pass


def get_state_dir() -> Path:
    """Get the per-user rserver state directory.

    This is ``~/.local/share/rstudio-server`` on Linux, which is where
    existing launcher installs keep their state.

    Returns:
        Path to state directory
    """
    return Path(platformdirs.user_data_dir("rstudio-server", "rstudio-server"))


def get_config_path() -> Path | None:
    """Locate the config file to load.

    Order: ``$RSLAUNCHER_CONFIG``, the user config dir, the site config dir.

    Returns:
        Path to config file, or None if there is none
    """
    explicit = os.getenv("RSLAUNCHER_CONFIG")
    if explicit:
        return Path(explicit)

    candidates = [
        Path(platformdirs.user_config_dir(APP_NAME, APP_NAME)) / "config.yml",
        Path(platformdirs.site_config_dir(APP_NAME, APP_NAME)) / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


@dataclass
class Settings:
    """Effective launcher settings."""

    user: str
    port_min: int = 8800
    port_max: int = 8899
    registry_dir: Path = Path("/tmp/rstudio-port-registry")
    state_dir: Path = field(default_factory=get_state_dir)
    conflict_policy: str = "reallocate"
    grace_seconds: float = 1.0
    probe_timeout: float = 0.5
    port: int | None = None  # explicit override, bypasses allocation
    sif: Path = Path("/media/volume/OMA_container/OMA-server/rstudio_server.sif")
    mode: str = "single"
    user_ws: Path | None = None  # defaults to /home/<user>
    shared_ro: Path = Path("/media/volume/project_2013220")
    project_dir: Path = Path("/media/volume/project_2013220")
    workspaces_root: Path = Path("/media/volume/Workspaces/users")
    exports_root: Path = Path("/media/volume/Exports/users")
    browser_cmd: str = "firefox"

    def __post_init__(self) -> None:
        if self.user_ws is None:
            self.user_ws = Path("/home") / self.user

    @property
    def port_file(self) -> Path:
        """Path of the persisted port assignment."""
        return self.state_dir / "conf" / "port"

    @property
    def workspace_dir(self) -> Path:
        """Per-user directory under the shared Workspaces volume."""
        return self.workspaces_root / self.user

    @property
    def exports_dir(self) -> Path:
        """Per-user directory under the shared Exports volume."""
        return self.exports_root / self.user

    @property
    def local_share_dir(self) -> Path:
        """Host directory mounted as ``~/.local/share`` inside the container."""
        return self.workspace_dir / ".local_share" / "share"

    def validate(self) -> None:
        """Check value ranges and enumerations.

        Raises:
            ConfigError: If any setting is out of range
        """
        if not (1 <= self.port_min <= self.port_max <= 65535):
            raise ConfigError(
                f"Invalid port range {self.port_min}-{self.port_max} "
                "(need 1 <= min <= max <= 65535)"
            )
        if self.port is not None and not (1 <= self.port <= 65535):
            raise ConfigError(f"Invalid port override: {self.port}")
        if self.mode not in MODES:
            raise ConfigError(f"Invalid mode '{self.mode}' (expected one of {', '.join(MODES)})")
        if self.conflict_policy not in CONFLICT_POLICIES:
            raise ConfigError(
                f"Invalid conflict policy '{self.conflict_policy}' "
                f"(expected one of {', '.join(CONFLICT_POLICIES)})"
            )
        if self.grace_seconds < 0:
            raise ConfigError("grace_seconds must not be negative")


# Environment variable -> setting name
ENV_VARS = {
    "RSLAUNCHER_PORT_MIN": "port_min",
    "RSLAUNCHER_PORT_MAX": "port_max",
    "RSLAUNCHER_REGISTRY_DIR": "registry_dir",
    "RSLAUNCHER_STATE_DIR": "state_dir",
    "RSLAUNCHER_CONFLICT_POLICY": "conflict_policy",
    "RSLAUNCHER_GRACE_SECONDS": "grace_seconds",
    "RSLAUNCHER_PROJECT_DIR": "project_dir",
    "RSLAUNCHER_WORKSPACES_ROOT": "workspaces_root",
    "RSLAUNCHER_EXPORTS_ROOT": "exports_root",
    "PORT": "port",
    "SIF": "sif",
    "MODE": "mode",
    "USER_WS": "user_ws",
    "SHARED_RO": "shared_ro",
    "BROWSER_CMD": "browser_cmd",
}

_INT_FIELDS = {"port_min", "port_max", "port"}
_FLOAT_FIELDS = {"grace_seconds", "probe_timeout"}
_PATH_FIELDS = {
    "registry_dir",
    "state_dir",
    "sif",
    "user_ws",
    "shared_ro",
    "project_dir",
    "workspaces_root",
    "exports_root",
}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw config/env value to the type of setting ``name``."""
    if value is None or value == "":
        return None
    try:
        if name in _INT_FIELDS:
            return int(value)
        if name in _FLOAT_FIELDS:
            return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {name}: {value!r}")
    if name in _PATH_FIELDS:
        return Path(str(value)).expanduser()
    return str(value)


def load_config_file(path: Path) -> dict[str, Any]:
    """Load settings overrides from a YAML file.

    Args:
        path: Path to config file

    Returns:
        Dict of setting name -> coerced value

    Raises:
        ConfigError: If the file cannot be parsed or has unknown keys
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(Settings)} - {"user"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config key(s) in {path}: {', '.join(unknown)}")

    values = {}
    for key, raw in data.items():
        value = _coerce(key, raw)
        if value is not None:
            values[key] = value
    return values


def load_env() -> dict[str, Any]:
    """Collect settings overrides from environment variables."""
    values = {}
    for env_var, name in ENV_VARS.items():
        value = _coerce(name, os.getenv(env_var))
        if value is not None:
            values[name] = value
    return values


def load_settings(user: str, config_path: Path | None = None) -> Settings:
    """Resolve effective settings for ``user``.

    Args:
        user: Identity name the settings are for
        config_path: Config file to use. Defaults to get_config_path().

    Returns:
        Validated Settings

    Raises:
        ConfigError: If the configuration is invalid
    """
    path = config_path or get_config_path()
    values: dict[str, Any] = {}
    if path is not None:
        values.update(load_config_file(path))
    values.update(load_env())

    settings = Settings(user=user, **values)
    settings.validate()
    return settings
