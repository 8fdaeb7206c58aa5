"""cEMI frame decoding for the bus monitor feed.

Handles the fixed 11-octet header delivered by the bus multiplexer (message
code, reserved, control, network, source, destination, length, TPCI, APCI)
followed by up to 16 value octets.
"""
from __future__ import annotations

import datetime
import struct
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Union

from knxbridge.utils.address import format_group, format_physical
from knxbridge.utils.decoding import DecodeResult

HEADER_FORMAT = ">BBBBHHBBB"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 11
MAX_DATA = 16

CTRL_NOREPEAT = 0x20
CTRL_NONACK = 0x10
CTRL_PRIORITY_MASK = 0x0C
NETWORK_DAF_GROUP = 0x80
NETWORK_HOPCOUNT = 0x70
APCI_WRITE = 0x80
APCI_RESPONSE = 0x40
APCI_VALUE_MASK = 0x3F


class FrameError(ValueError):
    """Raised when a raw buffer cannot be decoded as a cEMI frame."""


class TruncatedFrameError(FrameError):
    pass


class MessageCode(IntEnum):
    """cEMI message codes rendered in the monitor trace."""

    L_DATA_REQ = 0x11
    L_DATA_CON = 0x2E
    L_DATA_IND = 0x29
    L_BUSMON_IND = 0x2B

    @property
    def tag(self) -> str:
        return _CODE_TAGS[self]


_CODE_TAGS = {
    MessageCode.L_DATA_REQ: "REQ",
    MessageCode.L_DATA_CON: "CON",
    MessageCode.L_DATA_IND: "IND",
    MessageCode.L_BUSMON_IND: "MON",
}


class Priority(Enum):
    SYSTEM = 0
    HIGH = 1
    ALARM = 2
    LOW = 3

    @property
    def tag(self) -> str:
        return {"SYSTEM": "sys", "HIGH": "hgh", "ALARM": "alm", "LOW": "low"}[self.name]


class ApciAction(Enum):
    READ = "R"
    RESPONSE = "A"
    WRITE = "W"


@dataclass(frozen=True)
class CemiFrame:
    """A decoded bus frame; addresses are in host byte order."""

    code: Union[MessageCode, int]
    ctrl: int
    network: int
    source: int
    destination: int
    length: int
    tpci: int
    apci: int
    data: bytes
    raw: bytes = b""

    @property
    def code_tag(self) -> str:
        if isinstance(self.code, MessageCode):
            return self.code.tag
        return f"{self.code:02x}"

    @property
    def priority(self) -> Priority:
        return Priority((self.ctrl & CTRL_PRIORITY_MASK) >> 2)

    @property
    def repeated(self) -> bool:
        return not self.ctrl & CTRL_NOREPEAT

    @property
    def ack_requested(self) -> bool:
        return not self.ctrl & CTRL_NONACK

    @property
    def group_destination(self) -> bool:
        return bool(self.network & NETWORK_DAF_GROUP)

    @property
    def hop_count(self) -> int:
        return (self.network & NETWORK_HOPCOUNT) >> 4

    @property
    def action(self) -> ApciAction:
        if self.apci & APCI_WRITE:
            return ApciAction.WRITE
        if self.apci & APCI_RESPONSE:
            return ApciAction.RESPONSE
        return ApciAction.READ

    @property
    def has_value(self) -> bool:
        return self.action is not ApciAction.READ

    @property
    def payload(self) -> bytes:
        """Value octets for the EIS codec.

        Short telegrams pack their value into the low APCI bits.
        """
        if self.length == 1:
            return bytes([self.apci & APCI_VALUE_MASK])
        return self.data

    @property
    def source_text(self) -> str:
        return format_physical(self.source)

    @property
    def destination_text(self) -> str:
        if self.group_destination:
            return format_group(self.destination)
        return format_physical(self.destination)

    @property
    def group_text(self) -> str:
        return format_group(self.destination)


def decode_frame(raw: bytes) -> CemiFrame:
    """Split a raw monitor buffer into header fields and value octets.

    Raises:
        TruncatedFrameError: If the buffer is shorter than the fixed header
    """
    raw = bytes(raw)
    if len(raw) < HEADER_SIZE:
        raise TruncatedFrameError(
            f"Frame of {len(raw)} bytes is shorter than the {HEADER_SIZE}-byte header"
        )
    code, _reserved, ctrl, network, source, destination, length, tpci, apci = struct.unpack(
        HEADER_FORMAT, raw[:HEADER_SIZE]
    )
    data_len = min(max(length - 1, 0), MAX_DATA)
    data = raw[HEADER_SIZE:HEADER_SIZE + data_len]
    try:
        code = MessageCode(code)
    except ValueError:
        pass
    return CemiFrame(
        code=code,
        ctrl=ctrl,
        network=network,
        source=source,
        destination=destination,
        length=length,
        tpci=tpci,
        apci=apci,
        data=data,
        raw=raw,
    )


def format_monitor_line(
    frame: CemiFrame,
    decoded: Optional[DecodeResult],
    received_at: datetime.datetime,
    sequence: Optional[int] = None,
) -> str:
    """Render one bus monitor trace line.

    Example:
        ``2024/05/17 10:11:12:345 -    1.1.5  IND low rk W    0/0/5 : 42.00 | 5146 (14 1a - eis types: 5, 10)``
    """
    parts = []
    if sequence is not None:
        parts.append(f"{sequence}: ")
    parts.append(
        received_at.strftime("%Y/%m/%d %H:%M:%S")
        + f":{received_at.microsecond // 1000:03d} - "
    )
    parts.append(f"{frame.source_text:>8}  {frame.code_tag} {frame.priority.tag}")
    parts.append(" r" if frame.repeated else "  ")
    parts.append("k " if frame.ack_requested else "  ")
    parts.append(f"{frame.action.value} ")
    parts.append(f"{frame.destination_text:>8}")
    if frame.has_value and decoded is not None:
        octets = bytes([frame.apci]) if frame.length == 1 else frame.data
        parts.append(
            f" : {decoded.summary} ({octets.hex(' ')} - eis types: {decoded.eis_types})"
        )
    return "".join(parts)
