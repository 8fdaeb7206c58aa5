from .base import (
    BusErrorKind,
    BusSession,
    BusSessionError,
    MessagingTransport,
    TransportConnectError,
)
from .manager import create_bus_session_from_uri, parse_bus_target
from .mock import MockBusSession, MockMessagingTransport
from .replay import ReplayBusSession

__all__ = [
    "BusErrorKind",
    "BusSession",
    "BusSessionError",
    "MessagingTransport",
    "TransportConnectError",
    "MockBusSession",
    "MockMessagingTransport",
    "ReplayBusSession",
    "create_bus_session_from_uri",
    "parse_bus_target",
]
