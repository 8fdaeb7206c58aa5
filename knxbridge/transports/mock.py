import asyncio
import logging
from typing import List, Optional, Tuple, Union

from .base import (
    BusErrorKind,
    BusSession,
    BusSessionError,
    MessageHandler,
    MessagingTransport,
    TransportConnectError,
)

logger = logging.getLogger("knxbridge.transports.mock")


class MockBusSession(BusSession):
    """In-memory bus session fed from a queue of frames or errors."""

    def __init__(self, poll_timeout: float = 0.05, host: str = "mock"):
        self.poll_timeout = poll_timeout
        self._host = host
        self.connected = False
        self.rx_queue: asyncio.Queue = asyncio.Queue()
        self.writes: List[Tuple[int, int, bytes]] = []
        self.credentials: Optional[Tuple[str, str]] = None
        self.fail_open = False
        self.reject_auth = False
        self.write_error: Optional[BusSessionError] = None
        self.open_count = 0
        self.close_count = 0

    @property
    def host(self) -> str:
        return self._host

    def feed(self, item: Union[bytes, BusSessionError]):
        self.rx_queue.put_nowait(item)

    async def open(self):
        if self.fail_open:
            raise BusSessionError(BusErrorKind.NO_CONNECTION, "mock session refused")
        self.open_count += 1
        self.connected = True
        logger.debug("MockBusSession: opened")

    async def close(self):
        self.close_count += 1
        self.connected = False
        logger.debug("MockBusSession: closed")

    async def authenticate(self, user: str, password: str):
        if self.reject_auth:
            raise BusSessionError(BusErrorKind.WRONG_USAGE, "authentication rejected")
        self.credentials = (user, password)

    async def monitor(self) -> bytes:
        if not self.connected:
            raise BusSessionError(BusErrorKind.NO_CONNECTION, "not connected")
        try:
            item = await asyncio.wait_for(self.rx_queue.get(), timeout=self.poll_timeout)
        except asyncio.TimeoutError:
            raise BusSessionError(BusErrorKind.TIMEOUT, "no value received")
        if isinstance(item, BusSessionError):
            raise item
        return item

    async def write(self, address: int, length: int, data: bytes):
        if not self.connected:
            raise BusSessionError(BusErrorKind.NO_CONNECTION, "not connected")
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((address, length, bytes(data)))
        logger.debug("MockBusSession: write %04x (%d bytes) %s", address, length, bytes(data).hex(" "))


class MockMessagingTransport(MessagingTransport):
    """Messaging transport that records publishes and replays scripted results.

    ``publish_results`` is consumed one entry per publish call; once empty
    every publish succeeds. ``connected_after_failure`` is the connection
    state reported after a failed publish.
    """

    def __init__(self):
        self.connected = False
        self.published: List[Tuple[str, str, int]] = []
        self.attempts: List[Tuple[str, str, int]] = []
        self.subscriptions: List[Tuple[str, int]] = []
        self.publish_results: List[int] = []
        self.connected_after_failure = True
        self.fail_connect_rc = 0
        self.connect_count = 0
        self.disconnect_count = 0
        self._handler: Optional[MessageHandler] = None
        self._lost_handler = None

    async def connect(self):
        if self.fail_connect_rc:
            raise TransportConnectError(self.fail_connect_rc)
        self.connect_count += 1
        self.connected = True

    async def disconnect(self):
        self.disconnect_count += 1
        self.connected = False

    async def subscribe(self, pattern: str, qos: int = 0) -> int:
        self.subscriptions.append((pattern, qos))
        return 0

    async def publish(self, topic: str, payload: str, qos: int = 0) -> int:
        self.attempts.append((topic, payload, qos))
        rc = self.publish_results.pop(0) if self.publish_results else 0
        if rc:
            self.connected = self.connected_after_failure
            return rc
        self.published.append((topic, payload, qos))
        return 0

    def is_connected(self) -> bool:
        return self.connected

    def set_message_handler(self, handler: Optional[MessageHandler]):
        self._handler = handler

    def set_connection_lost_handler(self, handler):
        self._lost_handler = handler

    def drop_connection(self, cause: str = "mock connection lost"):
        self.connected = False
        if self._lost_handler:
            self._lost_handler(cause)

    async def deliver(self, topic: str, payload: Union[bytes, str]):
        """Inject an inbound message as the broker would."""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        if self._handler is None:
            raise RuntimeError("No message handler registered")
        return await self._handler(topic, payload)
