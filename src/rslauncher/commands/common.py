"""Common utilities for CLI commands."""

import dataclasses
from typing import Any

import typer

from ..allocator import PortAllocator
from ..assignment import AssignmentStore
from ..config import ConfigError, Settings, load_settings
from ..console import console, debug, error, error_console, info, success, warning
from ..identity import Identity
from ..registry import ReservationRegistry
from ..system import SystemScanner

# Re-export console utilities
__all__ = [
    "console",
    "error_console",
    "debug",
    "info",
    "success",
    "warning",
    "error",
    "get_settings",
    "get_registry",
    "get_store",
    "get_allocator",
]


def get_settings(identity: Identity, **overrides: Any) -> Settings:
    """Load settings, applying CLI overrides that were given.

    Exits with status 1 on configuration errors.
    """
    try:
        settings = load_settings(identity.name)
        given = {key: value for key, value in overrides.items() if value is not None}
        if given:
            settings = dataclasses.replace(settings, **given)
            settings.validate()
    except ConfigError as e:
        error(str(e))
        raise typer.Exit(1)
    debug(f"Settings: {settings}")
    return settings


def get_registry(settings: Settings) -> ReservationRegistry:
    """Get registry instance."""
    return ReservationRegistry(settings.registry_dir)


def get_store(settings: Settings) -> AssignmentStore:
    """Get the identity's assignment store."""
    return AssignmentStore(settings.port_file)


def get_allocator(settings: Settings, identity: Identity) -> PortAllocator:
    """Get an allocator wired to the configured registry and range."""
    return PortAllocator(
        identity=identity,
        registry=get_registry(settings),
        store=get_store(settings),
        port_min=settings.port_min,
        port_max=settings.port_max,
        conflict_policy=settings.conflict_policy,
        grace_seconds=settings.grace_seconds,
        system=SystemScanner(probe_timeout=settings.probe_timeout),
    )
