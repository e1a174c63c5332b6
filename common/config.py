"""Defaults shared by the server and client entry points."""

from typing import Optional

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 5555

MAX_PORT = 65535


def parse_port(value) -> Optional[int]:
    """Return value as a port number, or None if it is not a usable port."""
    try:
        port = int(value)
    except (TypeError, ValueError):
        return None
    if not 0 <= port <= MAX_PORT:
        return None
    return port
