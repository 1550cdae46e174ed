"""Shared port reservation registry for rslauncher.

The registry is a world-writable directory with one subdirectory per
claimed port. ``os.mkdir`` either creates the entry or fails with
``FileExistsError``, so concurrent claims on the same port always resolve
to exactly one winner. Entries are never cleaned up automatically.
"""

import os
import shutil
import stat
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .console import debug
from .identity import Identity

OWNER_FILE = "owner"


class RegistryError(Exception):
    """Raised when the registry directory is unusable."""

    pass


@dataclass
class Reservation:
    """A registry entry claiming a port."""

    port: int
    path: Path
    user: str | None = None
    uid: int | None = None
    host: str | None = None
    time: datetime | None = None

    @property
    def claimed_at(self) -> datetime:
        """Claim timestamp, falling back to the entry's mtime."""
        if self.time is not None:
            return self.time
        return datetime.fromtimestamp(self.path.stat().st_mtime).astimezone()


class ReservationRegistry:
    """Filesystem-backed registry of claimed ports."""

    def __init__(self, root: Path) -> None:
        """Initialize registry.

        Args:
            root: Shared registry directory (e.g. /tmp/rstudio-port-registry)
        """
        self.root = root

    def ensure(self) -> None:
        """Create the registry directory and check that it is writable.

        Raises:
            RegistryError: If the directory cannot be created or written
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            debug(f"mkdir {self.root} failed: {e}")

        # Only the directory owner may chmod; others rely on existing mode
        try:
            self.root.chmod(0o1777)
        except OSError:
            pass

        if not self.root.is_dir() or not os.access(self.root, os.W_OK | os.X_OK):
            raise RegistryError(
                f"Port registry directory is not writable: {self.root} "
                "(it must exist with permissions 1777)"
            )

    def entry_path(self, port: int) -> Path:
        return self.root / str(port)

    def exists(self, port: int) -> bool:
        return self.entry_path(port).is_dir()

    def claim(self, port: int, identity: Identity) -> bool:
        """Atomically claim a port.

        Args:
            port: Port to claim
            identity: Claiming identity, recorded in the owner file

        Returns:
            True if this call created the entry, False if it already existed

        Raises:
            RegistryError: On any other filesystem error
        """
        path = self.entry_path(port)
        try:
            os.mkdir(path)
        except FileExistsError:
            return False
        except OSError as e:
            raise RegistryError(f"Cannot create reservation {path}: {e}")

        self._write_owner(path, identity)
        debug(f"Claimed port {port} in {self.root}")
        return True

    def _write_owner(self, path: Path, identity: Identity) -> None:
        """Record claim metadata. The claim itself stands even if this fails."""
        now = datetime.now().astimezone().isoformat(timespec="seconds")
        content = (
            f"user={identity.name}\n"
            f"uid={identity.uid}\n"
            f"host={identity.hostname}\n"
            f"time={now}\n"
        )
        try:
            (path / OWNER_FILE).write_text(content)
        except OSError as e:
            debug(f"Could not write owner metadata in {path}: {e}")

    def release(self, port: int) -> bool:
        """Remove the entry for a port (best effort).

        Args:
            port: Port to release

        Returns:
            True if the entry was removed, False if absent or removal refused
        """
        path = self.entry_path(port)
        if not path.is_dir():
            return False
        try:
            shutil.rmtree(path)
        except OSError as e:
            debug(f"Could not release reservation {path}: {e}")
            return False
        debug(f"Released port {port} from {self.root}")
        return True

    def get(self, port: int) -> Reservation | None:
        """Get the reservation for a port.

        Args:
            port: Port number

        Returns:
            Reservation, or None if the port is not claimed
        """
        path = self.entry_path(port)
        if not path.is_dir():
            return None
        return _read_reservation(port, path)

    def list_reservations(self) -> list[Reservation]:
        """Get all reservations sorted by port.

        Returns:
            List of Reservation objects
        """
        if not self.root.is_dir():
            return []
        reservations = []
        for path in self.root.iterdir():
            if not path.name.isdigit():
                continue
            try:
                if not stat.S_ISDIR(path.stat().st_mode):
                    continue
            except OSError:
                continue
            reservations.append(_read_reservation(int(path.name), path))
        reservations.sort(key=lambda r: r.port)
        return reservations


def _read_reservation(port: int, path: Path) -> Reservation:
    """Parse the ``key=value`` owner file of an entry.

    Missing or unreadable metadata yields a Reservation with unknown owner.
    """
    reservation = Reservation(port=port, path=path)
    try:
        lines = (path / OWNER_FILE).read_text().splitlines()
    except OSError:
        return reservation

    for line in lines:
        key, sep, value = line.partition("=")
        if not sep:
            continue
        value = value.strip()
        if key == "user":
            reservation.user = value or None
        elif key == "uid" and value.isdigit():
            reservation.uid = int(value)
        elif key == "host":
            reservation.host = value or None
        elif key == "time":
            try:
                # Naive timestamps are taken as local time
                reservation.time = datetime.fromisoformat(value).astimezone()
            except ValueError:
                pass
    return reservation
