"""MQTT message building and command parsing.

Outbound events use the topic layout
``iot-2/type/<event>/id/<name>/evt/<measurement>/fmt/json`` and a fixed JSON
payload. Inbound commands arrive on :data:`COMMAND_SUBSCRIPTION` and carry
four double-quoted fields after a colon-terminated prefix, for example
``x:"Temperature":"Boiler":"FLOAT":"21.5"``.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Union

from knxbridge.core.registry import DeviceRecord

COMMAND_SUBSCRIPTION = "iot-2/type/HomeGateway/id/HomePi3/cmd/+/fmt/+"


class ParseError(ValueError):
    """Raised when an inbound message body cannot be parsed."""


class MalformedMessageError(ParseError):
    pass


@dataclass(frozen=True)
class OutboundMessage:
    topic: str
    payload: str


@dataclass(frozen=True)
class Command:
    """Fields of an inbound command message."""

    category: str
    name: str
    action: str
    value: str


def build_topic(record: DeviceRecord) -> str:
    return f"iot-2/type/{record.event}/id/{record.name}/evt/{record.measurement}/fmt/json"


def build_payload(value: str, when: datetime.datetime) -> str:
    # Exact wire format; consumers match on it, so no json.dumps spacing.
    return (
        '{"d":{"value":"' + value
        + '","date":"' + when.strftime("%Y/%m/%d")
        + '","time":"' + when.strftime("%H:%M:%S")
        + '"}}'
    )


def build_event(record: DeviceRecord, value: str, when: datetime.datetime) -> OutboundMessage:
    return OutboundMessage(topic=build_topic(record), payload=build_payload(value, when))


def parse_command(payload: Union[bytes, str]) -> Command:
    """Split a command body into category, device name, action and value.

    Raises:
        MalformedMessageError: If the prefix or any quoted field is missing
    """
    if isinstance(payload, (bytes, bytearray)):
        text = bytes(payload).decode("utf-8", errors="replace")
    else:
        text = payload

    prefix, sep, rest = text.partition(":")
    if not sep:
        raise MalformedMessageError("Missing ':' before the command fields")

    # after the prefix the body alternates separator, "field", separator ...
    pieces = rest.split('"')
    fields = pieces[1::2]
    if len(pieces) < 9 or len(fields) < 4:
        raise MalformedMessageError(f"Expected four quoted fields, found {len(fields)}")
    category, name, action, value = fields[:4]
    if not name or not action:
        raise MalformedMessageError("Device name and action must not be empty")
    return Command(category=category, name=name, action=action, value=value)
