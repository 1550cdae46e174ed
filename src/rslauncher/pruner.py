"""Cleanup logic for leftover registry entries."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from .identity import Identity
from .registry import Reservation, ReservationRegistry
from .system import SystemScanner


@dataclass
class PruneResult:
    """Result of a prune operation."""

    removed: list[Reservation]  # Entries removed
    kept: list[Reservation]  # Entries kept
    errors: list[str]  # Errors encountered


class Pruner:
    """Explicitly reclaim registry entries that are no longer needed.

    Entries are never removed while something listens on their port.
    """

    def __init__(self, registry: ReservationRegistry, system: SystemScanner | None = None) -> None:
        """Initialize pruner.

        Args:
            registry: Reservation registry to prune
            system: System scanner used for liveness checks
        """
        self.registry = registry
        self.system = system or SystemScanner()

    def prune(
        self, identity: Identity, assigned_port: int | None, dry_run: bool = False
    ) -> PruneResult:
        """Remove the identity's own entries other than its current assignment.

        These are left behind when the allocator moved the identity to a
        new port but could not release the old entry.

        Args:
            identity: Identity whose entries are pruned
            assigned_port: The identity's persisted port, always kept
            dry_run: If True, don't delete, just report what would be deleted

        Returns:
            PruneResult with details of operation
        """
        result = PruneResult(removed=[], kept=[], errors=[])

        for reservation in self.registry.list_reservations():
            if reservation.user != identity.name:
                continue
            if reservation.port == assigned_port or self.system.is_port_listening(reservation.port):
                result.kept.append(reservation)
                continue
            self._remove(reservation, dry_run, result)

        return result

    def prune_stale(self, days: int = 30, dry_run: bool = False) -> PruneResult:
        """Remove entries of any user claimed more than N days ago.

        Removal of other users' entries may be refused by the sticky bit on
        the registry directory; such refusals end up in ``errors``.

        Args:
            days: Age in days
            dry_run: If True, don't delete, just report what would be deleted

        Returns:
            PruneResult with details of operation
        """
        result = PruneResult(removed=[], kept=[], errors=[])
        cutoff = datetime.now().astimezone() - timedelta(days=days)

        for reservation in self.registry.list_reservations():
            try:
                is_stale = reservation.claimed_at < cutoff
            except OSError as e:
                result.errors.append(f"{reservation.port}: {e}")
                continue
            if not is_stale or self.system.is_port_listening(reservation.port):
                result.kept.append(reservation)
                continue
            self._remove(reservation, dry_run, result)

        return result

    def _remove(self, reservation: Reservation, dry_run: bool, result: PruneResult) -> None:
        if dry_run or self.registry.release(reservation.port):
            result.removed.append(reservation)
        else:
            result.errors.append(f"{reservation.port}: could not remove {reservation.path}")
