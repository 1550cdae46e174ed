"""rslauncher - RStudio Server launcher with stable per-user ports."""

__version__ = "0.1.0"

from .allocator import (
    CapacityExhaustedError,
    PortAllocationError,
    PortAllocator,
    PortConflictError,
    StalePortError,
)
from .assignment import AssignmentStore
from .config import ConfigError, Settings, load_settings
from .identity import Identity, get_identity
from .pruner import Pruner, PruneResult
from .registry import RegistryError, Reservation, ReservationRegistry
from .system import SystemScanner

__all__ = [
    "__version__",
    "PortAllocator",
    "PortAllocationError",
    "CapacityExhaustedError",
    "PortConflictError",
    "StalePortError",
    "AssignmentStore",
    "ConfigError",
    "Settings",
    "load_settings",
    "Identity",
    "get_identity",
    "PruneResult",
    "Pruner",
    "RegistryError",
    "Reservation",
    "ReservationRegistry",
    "SystemScanner",
]
