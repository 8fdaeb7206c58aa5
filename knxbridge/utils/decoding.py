"""EIS decoding helpers for KNX group telegrams.

A telegram carries no type information, so the value octets are decoded
under every point type that shares the telegram's APDU length. The result
keeps all candidates for the monitor trace and marks the one used to build
outbound messages.
"""

import datetime
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from knxbridge.core.data_types import EIS_PROPERTIES, EisType, candidates_for_length
from knxbridge.utils.errors import (
    CodecError,
    InvalidDateError,
    MalformedValueError,
    UnknownLengthError,
    UnsupportedTypeError,
)
from knxbridge.utils.knxfloat import decode_knx_float16, from_bytes_to_float32

# A cEMI frame holds the APCI octet plus at most 16 value octets.
MAX_APDU_LENGTH = 17

_ONE_OCTET_MASKS = {
    EisType.SWITCHING: 0x01,
    EisType.DIMMING: 0x0F,
    EisType.DRIVE: 0x01,
    EisType.PRIORITY: 0x03,
}


class LengthClass(Enum):
    """Length classes of the decode table, keyed by APDU length."""

    ONE_OCTET = 1
    TWO_OCTET = 2
    THREE_OCTET = 3
    FOUR_OCTET = 4
    FIVE_OCTET = 5
    VARIABLE = 0

    @classmethod
    def for_length(cls, length: int) -> "LengthClass":
        if length < 0 or length > MAX_APDU_LENGTH:
            raise UnknownLengthError(f"APDU length {length} is not decodable")
        try:
            return cls(length)
        except ValueError:
            return cls.VARIABLE


@dataclass
class Candidate:
    """One interpretation of the value octets."""

    eis: EisType
    value: Any
    text: str

    @property
    def ok(self) -> bool:
        return self.value is not None


@dataclass
class DecodeResult:
    """All interpretations of a telegram value plus the authoritative one."""

    length_class: LengthClass
    candidates: List[Candidate]
    payload: bytes
    primary: Optional[Candidate] = None
    message_value: Optional[str] = None
    omitted: List[EisType] = field(default_factory=list)

    @property
    def eis_types(self) -> str:
        return ", ".join(str(int(c.eis)) for c in self.candidates)

    @property
    def summary(self) -> str:
        return " | ".join(c.text for c in self.candidates)


def format_seconds(seconds: int) -> str:
    hour = seconds // 3600
    seconds %= 3600
    minute = seconds // 60
    seconds %= 60
    return f"{hour:02d}:{minute:02d}:{seconds:02d}"


def format_date(value: datetime.date) -> str:
    return f"{value.year:04d}/{value.month:02d}/{value.day:02d}"


def _expect_width(eis: EisType, payload: bytes) -> None:
    width = EIS_PROPERTIES[eis].value_width
    if width is not None and len(payload) != width:
        raise CodecError(f"EIS {int(eis)} expects {width} octet(s), got {len(payload)}")


def is_printable(code: int) -> bool:
    return 0x20 <= code < 0x7F


def decode_value(eis: EisType, payload: bytes) -> Any:
    """Decode value octets under a single point type.

    Args:
        eis: Point type to apply
        payload: Value octets; for 1-octet APDUs this is the 6 low APCI bits

    Returns:
        int, float, str or datetime.date depending on the point type

    Raises:
        CodecError: If the octets do not fit the point type
    """
    eis = EisType(eis)
    _expect_width(eis, payload)

    if eis in _ONE_OCTET_MASKS:
        return payload[0] & _ONE_OCTET_MASKS[eis]
    if eis == EisType.PERCENT:
        return payload[0] * 100 // 255
    if eis == EisType.COUNTER8:
        return struct.unpack(">b", payload)[0]
    if eis == EisType.CHAR:
        if not is_printable(payload[0]):
            raise MalformedValueError(f"0x{payload[0]:02X} is not a printable character")
        return chr(payload[0])
    if eis == EisType.FLOAT16:
        return decode_knx_float16(payload)
    if eis == EisType.COUNTER16:
        return struct.unpack(">h", payload)[0]
    if eis == EisType.TIME:
        hour = payload[0] & 0x1F
        minute = payload[1] & 0x3F
        second = payload[2] & 0x3F
        return hour * 3600 + minute * 60 + second
    if eis == EisType.DATE:
        day = payload[0] & 0x1F
        month = payload[1] & 0x0F
        year = payload[2] & 0x7F
        year += 2000 if year < 90 else 1900
        try:
            return datetime.date(year, month, day)
        except ValueError as exc:
            raise InvalidDateError(f"Invalid date {year:04d}/{month:02d}/{day:02d}: {exc}")
    if eis == EisType.COUNTER32:
        return struct.unpack(">i", payload)[0]
    if eis == EisType.FLOAT32:
        return from_bytes_to_float32(payload)
    if eis == EisType.STRING:
        return payload.decode("ascii", errors="replace").rstrip("\x00")
    raise UnsupportedTypeError(f"EIS {int(eis)} ({EIS_PROPERTIES[eis].label}) cannot be decoded")


def _candidate_text(eis: EisType, value: Any) -> str:
    if eis == EisType.SWITCHING:
        return "on" if value else "off"
    if eis == EisType.PERCENT:
        return f"{value}%"
    if eis in (EisType.FLOAT16, EisType.FLOAT32):
        return f"{value:.2f}"
    if eis == EisType.TIME:
        return format_seconds(value)
    if eis == EisType.DATE:
        return format_date(value)
    return str(value)


def _message_value(eis: EisType, value: Any) -> str:
    if eis == EisType.SWITCHING:
        return "1" if value else "0"
    return _candidate_text(eis, value)


def decode_candidates(length: int, payload: bytes) -> DecodeResult:
    """Decode value octets under every point type of the APDU length class.

    The candidate set depends only on ``length``. The first candidate that
    decodes successfully is the primary one used for outbound messages.

    Raises:
        UnknownLengthError: If ``length`` cannot occur in a cEMI frame
    """
    length_class = LengthClass.for_length(length)
    result = DecodeResult(length_class=length_class, candidates=[], payload=bytes(payload))

    for eis in candidates_for_length(length):
        try:
            value = decode_value(eis, payload)
        except InvalidDateError:
            result.candidates.append(Candidate(eis, None, "inval date"))
            continue
        except UnsupportedTypeError:
            result.candidates.append(Candidate(eis, None, f"{int(eis)}: <->"))
            continue
        except MalformedValueError:
            # unprintable characters are left out of the candidate list
            result.omitted.append(eis)
            continue
        except CodecError as exc:
            result.candidates.append(Candidate(eis, None, f"{int(eis)}: {exc}"))
            continue
        candidate = Candidate(eis, value, _candidate_text(eis, value))
        result.candidates.append(candidate)
        if result.primary is None:
            result.primary = candidate
            result.message_value = _message_value(eis, value)

    return result
