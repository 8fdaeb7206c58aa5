import asyncio
import logging
import threading
from typing import Optional
from urllib.parse import urlparse

import paho.mqtt.client as mqtt

from .base import ConnectionLostHandler, MessageHandler, MessagingTransport, TransportConnectError

logger = logging.getLogger("knxbridge.transports.mqtt")

_PLAIN_SCHEMES = {"tcp", "mqtt", ""}
_TLS_SCHEMES = {"ssl", "mqtts", "tls"}


def parse_broker_uri(address: str):
    """Split a broker URI such as ``tcp://host:1883`` into (host, port, tls)."""
    if "://" not in address:
        address = "tcp://" + address
    parsed = urlparse(address)
    scheme = parsed.scheme.lower()
    if scheme in _TLS_SCHEMES:
        tls = True
    elif scheme in _PLAIN_SCHEMES:
        tls = False
    else:
        raise ValueError(f"Unsupported broker URI scheme: {parsed.scheme}")
    host = parsed.hostname
    if not host:
        raise ValueError(f"Broker URI has no host: {address}")
    port = parsed.port or (8883 if tls else 1883)
    return host, port, tls


def _rc_value(code) -> int:
    return int(getattr(code, "value", code))


class PahoMqttTransport(MessagingTransport):
    """MQTT transport backed by paho-mqtt.

    The paho network loop runs in its own thread. Inbound messages are handed
    to the asyncio loop that called :meth:`connect`; blocking paho calls run in
    the loop's default executor.
    """

    def __init__(
        self,
        address: str,
        client_id: str = "",
        username: str = "",
        password: str = "",
        keepalive: int = 3000,
        timeout: float = 10.0,
    ):
        self.host, self.port, self.tls = parse_broker_uri(address)
        self.keepalive = keepalive
        self.timeout = timeout
        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=True,
        )
        if username:
            self._client.username_pw_set(username, password or None)
        self._client.reconnect_delay_set(min_delay=1, max_delay=max(1, int(timeout)))
        if self.tls:
            self._client.tls_set()
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.on_publish = self._on_publish

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handler: Optional[MessageHandler] = None
        self._lost_handler: Optional[ConnectionLostHandler] = None
        self._connack = threading.Event()
        self._connack_rc = 0
        self._network_started = False
        self._closing = False

    # --- MessagingTransport ---

    async def connect(self):
        self._loop = asyncio.get_running_loop()
        self._closing = False
        if self._network_started:
            await self._await_reconnect()
            return

        self._connack.clear()
        try:
            rc = await self._loop.run_in_executor(
                None, self._client.connect, self.host, self.port, self.keepalive
            )
        except OSError as exc:
            raise TransportConnectError(-1, f"cannot reach {self.host}:{self.port}: {exc}")
        if _rc_value(rc) != 0:
            raise TransportConnectError(_rc_value(rc))

        self._client.loop_start()
        self._network_started = True
        await self._await_connack()
        logger.info("Connected to MQTT broker %s:%d", self.host, self.port)

    async def _await_reconnect(self):
        # Only the network thread started by loop_start() reconnects the client.
        if self._client.is_connected():
            return
        self._connack.clear()
        if self._client.is_connected():
            return
        await self._await_connack()
        logger.info("Reconnected to MQTT broker %s:%d", self.host, self.port)

    async def _await_connack(self):
        acked = await self._loop.run_in_executor(None, self._connack.wait, self.timeout)
        if not acked:
            raise TransportConnectError(-1, f"no CONNACK from {self.host}:{self.port}")
        if self._connack_rc != 0:
            raise TransportConnectError(self._connack_rc)

    async def disconnect(self):
        self._closing = True
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._client.disconnect)
        if self._network_started:
            await loop.run_in_executor(None, self._client.loop_stop)
            self._network_started = False

    async def subscribe(self, pattern: str, qos: int = 0) -> int:
        result, _mid = self._client.subscribe(pattern, qos)
        return _rc_value(result)

    async def publish(self, topic: str, payload: str, qos: int = 0) -> int:
        try:
            info = self._client.publish(topic, payload, qos=qos, retain=False)
        except ValueError as exc:
            logger.error("Rejected publish to %s: %s", topic, exc)
            return _rc_value(mqtt.MQTT_ERR_INVAL)
        return _rc_value(info.rc)

    def is_connected(self) -> bool:
        return self._client.is_connected()

    def set_message_handler(self, handler: Optional[MessageHandler]):
        self._handler = handler

    def set_connection_lost_handler(self, handler: Optional[ConnectionLostHandler]):
        self._lost_handler = handler

    # --- paho callbacks (network thread) ---

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        self._connack_rc = _rc_value(reason_code)
        self._connack.set()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        if self._closing:
            return
        cause = str(reason_code)
        logger.debug("Disconnected from %s:%d (%s)", self.host, self.port, cause)
        if self._lost_handler:
            self._lost_handler(cause)

    def _on_publish(self, client, userdata, mid, reason_code, properties):
        logger.debug("Message with token value %d delivery confirmed", mid)

    def _on_message(self, client, userdata, message):
        if self._handler is None or self._loop is None:
            logger.warning("Dropping message on %s: no handler registered", message.topic)
            return
        fut = asyncio.run_coroutine_threadsafe(
            self._handler(message.topic, bytes(message.payload)), self._loop
        )
        fut.add_done_callback(self._report_handler_failure)

    @staticmethod
    def _report_handler_failure(fut):
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("Inbound message handler failed: %s", exc, exc_info=exc)
