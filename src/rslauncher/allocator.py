"""Port allocation logic for rslauncher."""

import time
from collections.abc import Callable

from .assignment import AssignmentStore
from .console import debug, info, warning
from .identity import Identity
from .registry import Reservation, ReservationRegistry
from .system import SystemScanner

# Command-line patterns of an identity's own server processes
SERVER_PROCESS_PATTERNS = ("rserver", "rsession")

REALLOCATE = "reallocate"
STRICT = "strict"


class PortAllocationError(Exception):
    """Raised when no port can be allocated."""

    pass


class CapacityExhaustedError(PortAllocationError):
    """Raised when every port in the range is taken."""

    def __init__(self, port_min: int, port_max: int) -> None:
        super().__init__(f"No free ports available in range {port_min}-{port_max}")
        self.port_min = port_min
        self.port_max = port_max


class PortConflictError(PortAllocationError):
    """Raised under the strict policy when the assigned port belongs to someone else."""

    def __init__(self, port: int, pid: int | None, owner: str | None) -> None:
        super().__init__(
            f"Assigned port {port} is in use by another user "
            f"(pid={pid or 'unknown'}, owner={owner or 'unknown'}); "
            "manual intervention required"
        )
        self.port = port
        self.pid = pid
        self.owner = owner


class StalePortError(PortAllocationError):
    """Raised when stopping our own stale server does not free the port."""

    def __init__(self, port: int) -> None:
        super().__init__(f"Port {port} still in use after stopping processes")
        self.port = port


class PortAllocator:
    """Allocate a stable, host-wide unique port for one identity."""

    def __init__(
        self,
        identity: Identity,
        registry: ReservationRegistry,
        store: AssignmentStore,
        port_min: int = 8800,
        port_max: int = 8899,
        conflict_policy: str = REALLOCATE,
        grace_seconds: float = 1.0,
        system: SystemScanner | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize allocator.

        Args:
            identity: Identity the port is allocated for
            registry: Shared reservation registry
            store: The identity's persisted assignment
            port_min: First port of the range (inclusive)
            port_max: Last port of the range (inclusive)
            conflict_policy: "reallocate" or "strict", applied when the
                assigned port is taken by another user
            grace_seconds: Wait after stopping stale processes before re-probing
            system: System scanner (defaults to a new SystemScanner)
            sleep: Sleep function, replaceable in tests
        """
        self.identity = identity
        self.registry = registry
        self.store = store
        self.port_min = port_min
        self.port_max = port_max
        self.conflict_policy = conflict_policy
        self.grace_seconds = grace_seconds
        self.system = system or SystemScanner()
        self._sleep = sleep

    def allocate(self, override: int | None = None) -> int:
        """Return the port this identity's server should listen on.

        Strategy:
        1. Explicit override → return it, no registry or persistence
        2. Persisted port free and not reclaimed → return it
        3. Persisted port held by our own stale server → stop it, return it
        4. Persisted port taken by someone else → conflict policy
        5. Otherwise → claim the first free port in range and persist it

        Args:
            override: Explicit port that bypasses allocation

        Returns:
            The allocated port number

        Raises:
            PortAllocationError: If no port can be allocated
            RegistryError: If the registry directory is unusable
        """
        if override is not None:
            debug(f"Using explicit port {override}")
            return override

        self.registry.ensure()

        port = self.store.read()
        if port is None:
            return self._allocate_new()

        if not self.port_min <= port <= self.port_max:
            warning(
                f"Assigned port {port} is outside range "
                f"{self.port_min}-{self.port_max}. Re-allocating..."
            )
            self._release_own(port)
            return self._allocate_new()

        reservation = self.registry.get(port)
        if reservation is not None and not self._is_ours(reservation):
            return self._resolve_conflict(port, pid=None, owner=reservation.user)

        if not self.system.is_port_listening(port):
            return self._keep(port)

        pid = self.system.listener_pid(port)
        owner = self.system.pid_owner(pid) if pid is not None else None

        if owner is not None and owner == self.identity.name:
            return self._reclaim_from_self(port, pid)

        return self._resolve_conflict(port, pid=pid, owner=owner)

    def _reclaim_from_self(self, port: int, pid: int | None) -> int:
        """Stop our own stale server holding ``port`` and keep the port."""
        info(f"Port {port} is in use by your existing process (pid={pid}). Stopping old session...")
        self.system.terminate_user_processes(self.identity.name, SERVER_PROCESS_PATTERNS)
        self._sleep(self.grace_seconds)

        if self.system.is_port_listening(port):
            raise StalePortError(port)

        return self._keep(port)

    def _resolve_conflict(self, port: int, pid: int | None, owner: str | None) -> int:
        """Apply the conflict policy to an assigned port someone else holds."""
        if self.conflict_policy == STRICT:
            raise PortConflictError(port, pid, owner)

        warning(
            f"Assigned port {port} is in use (pid={pid or 'unknown'}, "
            f"owner={owner or 'unknown'}). Re-allocating..."
        )
        self._release_own(port)
        return self._allocate_new()

    def _keep(self, port: int) -> int:
        """Return the persisted ``port`` once its registry entry is ours.

        Another identity may claim the port between our lookup and our
        claim; the conflict policy applies then.
        """
        if self.registry.claim(port, self.identity):
            return port

        reservation = self.registry.get(port)
        if reservation is None:
            # Released since our claim attempt
            if self.registry.claim(port, self.identity):
                return port
            reservation = self.registry.get(port)

        if reservation is not None and self._is_ours(reservation):
            return port
        return self._resolve_conflict(
            port, pid=None, owner=reservation.user if reservation else None
        )

    def _is_ours(self, reservation: Reservation) -> bool:
        """Whether an entry belongs to this identity.

        Entries without owner metadata (possibly mid-claim) are ours only if
        our uid created the directory.
        """
        if reservation.user:
            return reservation.user == self.identity.name
        try:
            return reservation.path.stat().st_uid == self.identity.uid
        except OSError:
            return False

    def _release_own(self, port: int) -> None:
        """Release the entry for ``port`` if it belongs to this identity."""
        reservation = self.registry.get(port)
        if reservation is None:
            return
        if not self._is_ours(reservation):
            debug(f"Leaving reservation for port {port} owned by {reservation.user or 'unknown'}")
            return
        self.registry.release(port)

    def _allocate_new(self) -> int:
        """Claim the first free port in range and persist it.

        Raises:
            CapacityExhaustedError: If the whole range is taken
            PortAllocationError: If the assignment cannot be saved
        """
        for port in range(self.port_min, self.port_max + 1):
            if self.system.is_port_listening(port):
                continue
            if not self.registry.claim(port, self.identity):
                # Claimed by someone else, possibly a concurrent caller
                continue
            try:
                self.store.write(port)
            except OSError as e:
                self.registry.release(port)
                raise PortAllocationError(
                    f"Cannot save port assignment {self.store.path}: {e}"
                )
            debug(f"Allocated port {port} for {self.identity.name}")
            return port

        raise CapacityExhaustedError(self.port_min, self.port_max)
