"""KNX to MQTT bridge.

The Gateway watches the bus monitor feed, publishes values of registered
devices as MQTT events and writes MQTT commands back to the bus.
"""

from .frame import CemiFrame, FrameError, TruncatedFrameError, decode_frame, format_monitor_line
from .gateway import BridgeSession, CycleOutcome, Gateway, InboundOutcome
from .messages import COMMAND_SUBSCRIPTION, Command, OutboundMessage, ParseError, build_event, parse_command

__all__ = [
    "BridgeSession",
    "CemiFrame",
    "Command",
    "COMMAND_SUBSCRIPTION",
    "CycleOutcome",
    "FrameError",
    "Gateway",
    "InboundOutcome",
    "OutboundMessage",
    "ParseError",
    "TruncatedFrameError",
    "build_event",
    "decode_frame",
    "format_monitor_line",
    "parse_command",
]
