"""Identity detection for rslauncher."""

import getpass
import os
import socket
from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """The user account a server instance and port are allocated for."""

    name: str  # Account name
    uid: int  # Numeric user id
    hostname: str


def get_identity() -> Identity:
    """Detect the identity of the invoking user.

    The account name comes from ``$USER`` when set, falling back to the
    login name reported by the OS.

    Returns:
        Identity of the current process owner
    """
    name = os.getenv("USER") or getpass.getuser()
    try:
        hostname = socket.gethostname()
    except OSError:
        hostname = ""
    return Identity(name=name, uid=os.getuid(), hostname=hostname)
