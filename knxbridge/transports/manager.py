import logging
from typing import Optional, Tuple
from urllib.parse import urlparse

from .base import BusSession
from .mock import MockBusSession
from .replay import ReplayBusSession

logger = logging.getLogger("knxbridge.transports.manager")

DEFAULT_BUS_PORT = 4390


def create_bus_session_from_uri(uri: str) -> BusSession:
    """Build a bus session for ``mock://`` or ``replay://<path>[?interval=s]``."""
    if uri.startswith("mock://"):
        return MockBusSession()
    if uri.startswith("replay://"):
        parsed = urlparse(uri)
        # replay://captures/a.txt puts "captures" in netloc
        path = (parsed.netloc + parsed.path) or ""
        if not path:
            raise ValueError("replay:// URI needs a capture file path")
        interval = 0.0
        for item in parsed.query.split("&"):
            key, _, value = item.partition("=")
            if key == "interval" and value:
                interval = float(value)
        logger.debug("create_bus_session_from_uri: replay path=%s interval=%s", path, interval)
        return ReplayBusSession(path, interval=interval)
    raise ValueError(f"Unsupported bus URI scheme: {uri}")


def parse_bus_target(text: Optional[str], default_port: int = DEFAULT_BUS_PORT) -> Optional[Tuple[str, int]]:
    """Split ``hostname[:port]``; returns None when no target is given."""
    if not text:
        return None
    host, sep, port_text = text.rpartition(":")
    if not sep:
        return text, default_port
    if not host:
        raise ValueError(f"Missing host name in '{text}'")
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Invalid port '{port_text}' in '{text}'")
    if not 0 < port < 65536:
        raise ValueError(f"Port {port} out of range")
    return host, port
