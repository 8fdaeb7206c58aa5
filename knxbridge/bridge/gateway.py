"""Bridge orchestrator - moves bus telegrams to MQTT and MQTT commands to the bus.

The Gateway owns one long-lived bus monitor session and one messaging
transport. Each monitor cycle polls the bus, decodes the frame, looks the
destination group address up in the device registry and publishes the
primary value. Inbound commands are handled independently: each one opens
its own short-lived bus session for the write.
"""
from __future__ import annotations

import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from knxbridge.core.config import BridgeConfig
from knxbridge.core.data_types import parse_action
from knxbridge.core.exit_codes import BridgeFault, ExitCode
from knxbridge.core.registry import DeviceRegistry
from knxbridge.transports.base import (
    BusErrorKind,
    BusSession,
    BusSessionError,
    MessagingTransport,
    TransportConnectError,
)
from knxbridge.utils.address import resolve_address
from knxbridge.utils.decoding import decode_candidates
from knxbridge.utils.encoding import encode_value
from knxbridge.utils.errors import CodecError

from .frame import FrameError, decode_frame, format_monitor_line
from .messages import COMMAND_SUBSCRIPTION, OutboundMessage, ParseError, build_event, parse_command

logger = logging.getLogger("knxbridge.bridge.gateway")
trace_logger = logging.getLogger("knxbridge.bridge.trace")

BusSessionFactory = Callable[[], BusSession]

FATAL_BUS_ERRORS = {
    BusErrorKind.COMMUNICATION: ExitCode.BUS_COMMUNICATION,
    BusErrorKind.NO_CONNECTION: ExitCode.BUS_NO_CONNECTION,
    BusErrorKind.WRONG_USAGE: ExitCode.BUS_WRONG_USAGE,
    BusErrorKind.NO_MEMORY: ExitCode.BUS_NO_MEMORY,
    BusErrorKind.SERVER_ABORTED: ExitCode.BUS_SERVER_ABORTED,
}


class CycleOutcome(Enum):
    PUBLISHED = "published"
    DELIVERY_FAILED = "delivery-failed"
    TIMEOUT = "timeout"
    IGNORED = "ignored"
    DECODE_ERROR = "decode-error"
    UNMATCHED = "unmatched"
    NO_VALUE = "no-value"


class InboundOutcome(Enum):
    WRITTEN = "written"
    MALFORMED = "malformed"
    UNKNOWN_DEVICE = "unknown-device"
    UNKNOWN_ACTION = "unknown-action"
    ENCODE_ERROR = "encode-error"
    WRITE_FAILED = "write-failed"


def exit_code_for(error: BusSessionError) -> ExitCode:
    return FATAL_BUS_ERRORS.get(error.kind, ExitCode.BUS_FATAL)


@dataclass
class BridgeSession:
    """Everything one bridge run shares between the poll loop and the command handler."""

    config: BridgeConfig
    registry: DeviceRegistry
    monitor: BusSession
    messaging: MessagingTransport
    bus_factory: BusSessionFactory
    user: Optional[str] = None
    password: Optional[str] = None
    publish_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)


class Gateway:
    """KNX monitor to MQTT gateway.

    Example:
        session = BridgeSession(config, config.build_registry(), monitor, transport, factory)
        gateway = Gateway(session)
        await gateway.start()
        try:
            await gateway.run()
        finally:
            await gateway.stop()
    """

    def __init__(
        self,
        session: BridgeSession,
        *,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
        publish_backoff: float = 1.0,
    ):
        self.session = session
        self.clock = clock
        self.publish_backoff = publish_backoff
        self._running = False
        self._stopped = False
        self._max_frames: Optional[int] = None
        self._stats = {
            "frames": 0,
            "published": 0,
            "delivery_failures": 0,
            "decode_errors": 0,
            "unmatched": 0,
            "commands_written": 0,
            "commands_dropped": 0,
        }

    # --- Lifecycle ---

    async def start(self) -> None:
        """Connect the messaging transport, subscribe and open the bus monitor."""
        session = self.session
        messaging = session.messaging
        try:
            await messaging.connect()
        except TransportConnectError as exc:
            raise BridgeFault(
                ExitCode.TRANSPORT_CONNECT,
                f"Failed to connect to MQTT, return code {exc.rc}",
            )
        messaging.set_message_handler(self.handle_message)
        messaging.set_connection_lost_handler(self._on_connection_lost)
        await messaging.subscribe(COMMAND_SUBSCRIPTION, session.config.qos)

        try:
            await session.monitor.open()
        except BusSessionError as exc:
            raise BridgeFault(ExitCode.BUS_CONNECT, f"Connect to bus multiplexer failed: {exc}")

        if session.user:
            try:
                await session.monitor.authenticate(session.user, session.password or "")
            except BusSessionError as exc:
                raise BridgeFault(ExitCode.AUTHENTICATION, f"Authentication failure: {exc}")

        self._running = True
        logger.info("Connection to bus multiplexer %s established", session.monitor.host)

    async def stop(self) -> None:
        """Release the monitor session and the messaging transport (once)."""
        if self._stopped:
            return
        self._stopped = True
        self._running = False
        self.session.stop_event.set()
        logger.info("Stopping bridge...")
        try:
            await self.session.monitor.close()
        except BusSessionError as exc:
            logger.warning("Error closing bus monitor: %s", exc)
        messaging = self.session.messaging
        messaging.set_message_handler(None)
        messaging.set_connection_lost_handler(None)
        # serialize with any publish/reconnect still in flight
        async with self.session.publish_lock:
            await messaging.disconnect()
        logger.info("Bridge stopped")

    def request_stop(self) -> None:
        self.session.stop_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self, max_frames: Optional[int] = None) -> None:
        """Poll until a stop is requested or ``max_frames`` frames were received."""
        stop_event = self.session.stop_event
        self._max_frames = max_frames
        while not stop_event.is_set():
            if max_frames is not None and self._stats["frames"] >= max_frames:
                break
            await self.poll_once()

    # --- Outbound: bus -> MQTT ---

    async def poll_once(self) -> CycleOutcome:
        try:
            raw = await self.session.monitor.monitor()
        except BusSessionError as exc:
            if exc.kind is BusErrorKind.TIMEOUT:
                logger.debug("No value received")
                return CycleOutcome.TIMEOUT
            if exc.kind is BusErrorKind.INTERNAL:
                logger.warning("Bad status returned: %s", exc)
                return CycleOutcome.IGNORED
            logger.error("Bus monitor failed: %s", exc)
            raise BridgeFault(exit_code_for(exc), str(exc))

        self._stats["frames"] += 1
        received_at = self.clock()

        try:
            frame = decode_frame(raw)
            decoded = decode_candidates(frame.length, frame.payload) if frame.has_value else None
        except (FrameError, CodecError) as exc:
            self._stats["decode_errors"] += 1
            logger.warning("Dropping frame %s: %s", bytes(raw).hex(), exc)
            return CycleOutcome.DECODE_ERROR

        sequence = self._stats["frames"] if self._max_frames is not None else None
        trace_logger.info("EIB: %s", format_monitor_line(frame, decoded, received_at, sequence))

        if decoded is None:
            logger.debug("Frame to %s carries no value", frame.destination_text)
            return CycleOutcome.NO_VALUE
        if decoded.message_value is None:
            self._stats["decode_errors"] += 1
            logger.warning("Dropping frame to %s: no decodable value (%s)", frame.group_text, decoded.summary)
            return CycleOutcome.DECODE_ERROR

        record = self.session.registry.get_by_group_address(frame.group_text)
        if record is None:
            self._stats["unmatched"] += 1
            trace_logger.info("No device registered for %s", frame.group_text)
            return CycleOutcome.UNMATCHED

        message = build_event(record, decoded.message_value, received_at)
        logger.info("Published topic: %s", message.topic)
        logger.info("Published payload: %s", message.payload)
        if await self.publish(message):
            return CycleOutcome.PUBLISHED
        return CycleOutcome.DELIVERY_FAILED

    async def publish(self, message: OutboundMessage) -> bool:
        """Publish with one bounded retry; never raises."""
        session = self.session
        messaging = session.messaging
        qos = session.config.qos
        async with session.publish_lock:
            rc = await messaging.publish(message.topic, message.payload, qos)
            if rc == 0:
                self._stats["published"] += 1
                return True

            logger.warning("Published to MQTT, return code %d", rc)
            await asyncio.sleep(self.publish_backoff)
            if not messaging.is_connected():
                logger.info("Reconnecting MQTT Client")
                try:
                    await messaging.connect()
                    await messaging.subscribe(COMMAND_SUBSCRIPTION, qos)
                except TransportConnectError as exc:
                    self._stats["delivery_failures"] += 1
                    logger.error("Failed to connect to MQTT, return code %d; dropping %s", exc.rc, message.topic)
                    return False

            rc = await messaging.publish(message.topic, message.payload, qos)
            logger.info("Retry published to MQTT and return code %d", rc)
            if rc == 0:
                self._stats["published"] += 1
                return True
            self._stats["delivery_failures"] += 1
            logger.error("Delivery failed for %s", message.topic)
            return False

    def _on_connection_lost(self, cause: Optional[str]) -> None:
        logger.warning("Connection lost, cause: %s", cause)

    # --- Inbound: MQTT -> bus ---

    async def handle_message(self, topic: str, payload: Union[bytes, str]) -> InboundOutcome:
        logger.info("Received topic: %s", topic)
        logger.info("Received message: %s", payload)
        try:
            command = parse_command(payload)
        except ParseError as exc:
            return self._drop(InboundOutcome.MALFORMED, "Malformed command on %s: %s", topic, exc)

        record = self.session.registry.get_by_name(command.name)
        if record is None:
            return self._drop(InboundOutcome.UNKNOWN_DEVICE, "No device named %s", command.name)

        try:
            eis = parse_action(command.action)
        except ValueError:
            return self._drop(InboundOutcome.UNKNOWN_ACTION, "Unknown action %s for %s", command.action, command.name)

        try:
            address = resolve_address(record.group_address)
            data = encode_value(eis, command.value)
        except CodecError as exc:
            return self._drop(InboundOutcome.ENCODE_ERROR, "Error in value conversion for %s: %s", command.name, exc)
        except ValueError as exc:
            return self._drop(InboundOutcome.ENCODE_ERROR, "Bad address for %s: %s", command.name, exc)

        try:
            async with self.session.bus_factory() as bus:
                await bus.write(address, len(data), data)
        except BusSessionError as exc:
            return self._drop(InboundOutcome.WRITE_FAILED, "Unable to send command: %s", exc)

        self._stats["commands_written"] += 1
        logger.info(
            "Wrote %s (EIS %d) to %s: %s",
            command.value, int(eis), record.group_address, data.hex(" "),
        )
        return InboundOutcome.WRITTEN

    def _drop(self, outcome: InboundOutcome, msg: str, *args) -> InboundOutcome:
        self._stats["commands_dropped"] += 1
        logger.warning(msg, *args)
        return outcome

    # --- Stats ---

    def get_stats(self) -> dict:
        return {"running": self._running, **self._stats}

    def reset_stats(self) -> None:
        for key in self._stats:
            self._stats[key] = 0
