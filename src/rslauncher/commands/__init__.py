"""Command modules for rslauncher CLI."""

from .config import config
from .port import port
from .prune import prune
from .release import release
from .run import run
from .start import start
from .status import status

__all__ = [
    "config",
    "port",
    "prune",
    "release",
    "run",
    "start",
    "status",
]
