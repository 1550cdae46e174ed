"""Per-identity persisted port assignment."""

import os
from pathlib import Path

from .console import warning


class AssignmentStore:
    """The identity's remembered port, kept in a private file."""

    def __init__(self, path: Path) -> None:
        """Initialize store.

        Args:
            path: Assignment file (e.g. ~/.local/share/rstudio-server/conf/port)
        """
        self.path = path

    def read(self) -> int | None:
        """Read the persisted port.

        Returns:
            The port, or None if there is no usable record
        """
        try:
            content = self.path.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            warning(f"Cannot read port assignment {self.path}: {e}")
            return None

        try:
            return int(content)
        except ValueError:
            warning(f"Ignoring invalid port assignment in {self.path}: {content!r}")
            return None

    def write(self, port: int) -> None:
        """Persist the port, readable and writable by the owner only.

        Args:
            port: Port to remember
        """
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        tmp = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(f"{port}\n")
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)
