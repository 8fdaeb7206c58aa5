from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Awaitable, Callable, Optional

MessageHandler = Callable[[str, bytes], Awaitable[object]]
ConnectionLostHandler = Callable[[Optional[str]], None]


class BusErrorKind(Enum):
    COMMUNICATION = "communication"
    NO_CONNECTION = "no-connection"
    WRONG_USAGE = "wrong-usage"
    NO_MEMORY = "no-memory"
    INTERNAL = "internal"
    SERVER_ABORTED = "server-aborted"
    TIMEOUT = "timeout"


class BusSessionError(Exception):
    """Typed error reported by a bus multiplexer session."""

    def __init__(self, kind: BusErrorKind, message: str = ""):
        self.kind = kind
        super().__init__(message or kind.value)

    @property
    def fatal(self) -> bool:
        return self.kind not in (BusErrorKind.INTERNAL, BusErrorKind.TIMEOUT)


class TransportConnectError(Exception):
    """Raised when the messaging transport cannot (re)connect."""

    def __init__(self, rc: int, message: str = ""):
        self.rc = rc
        super().__init__(message or f"connect failed with return code {rc}")


class BusSession(ABC):
    """Session with the bus multiplexer."""

    @abstractmethod
    async def open(self):
        pass

    @abstractmethod
    async def close(self):
        pass

    @abstractmethod
    async def authenticate(self, user: str, password: str):
        pass

    @abstractmethod
    async def monitor(self) -> bytes:
        """Return the next raw frame or raise BusSessionError (TIMEOUT when idle)."""

    @abstractmethod
    async def write(self, address: int, length: int, data: bytes):
        pass

    @property
    def host(self) -> str:
        return ""

    async def __aenter__(self) -> "BusSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class MessagingTransport(ABC):
    """Publish/subscribe transport towards the MQTT broker."""

    @abstractmethod
    async def connect(self):
        pass

    @abstractmethod
    async def disconnect(self):
        pass

    @abstractmethod
    async def subscribe(self, pattern: str, qos: int = 0) -> int:
        pass

    @abstractmethod
    async def publish(self, topic: str, payload: str, qos: int = 0) -> int:
        """Publish a message and return the transport return code (0 on success)."""

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def set_message_handler(self, handler: Optional[MessageHandler]):
        pass

    def set_connection_lost_handler(self, handler: Optional[ConnectionLostHandler]):
        pass
