"""EIS value encoding for KNX group writes.

Centralizes the logic for turning command text into the value octets of a
group write. The octets are the inverse of
:func:`knxbridge.utils.decoding.decode_value`.
"""

import datetime
import re
import struct

from knxbridge.core.data_types import EIS_PROPERTIES, EisType
from knxbridge.utils.errors import MalformedValueError, UnsupportedTypeError
from knxbridge.utils.knxfloat import encode_knx_float16, float32_to_bytes

MAX_STRING_LENGTH = 14

_INT_RANGES = {
    EisType.DIMMING: (0, 15),
    EisType.DRIVE: (0, 1),
    EisType.PRIORITY: (0, 3),
    EisType.PERCENT: (0, 100),
    EisType.COUNTER8: (-0x80, 0x7F),
    EisType.COUNTER16: (-0x8000, 0x7FFF),
    EisType.COUNTER32: (-0x80000000, 0x7FFFFFFF),
}

_BOOLEAN_WORDS = {"on": 1, "true": 1, "off": 0, "false": 0}

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{1,2}):(\d{1,2})$")
_DATE_RE = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")


def parse_int(value_text: str) -> int:
    """Parse decimal or 0xHEX text, allowing a leading minus sign."""
    text = value_text.strip()
    try:
        if text.lower().lstrip("-").startswith("0x"):
            return int(text, 16)
        return int(text, 10)
    except ValueError:
        raise MalformedValueError(f"'{value_text}' is not an integer")


def parse_float(value_text: str) -> float:
    try:
        return float(value_text.strip())
    except ValueError:
        raise MalformedValueError(f"'{value_text}' is not a number")


def encode_integer(eis: EisType, value: int) -> bytes:
    """Encode an integer point type after checking its range.

    Raises:
        MalformedValueError: If the value is out of range for the point type
    """
    low, high = _INT_RANGES[eis]
    if value < low or value > high:
        raise MalformedValueError(
            f"Value {value} out of range for EIS {int(eis)} ({low} to {high})"
        )
    if eis == EisType.PERCENT:
        # smallest raw octet that decodes back to the same percentage
        return bytes([-(-value * 255 // 100)])
    if eis == EisType.COUNTER8:
        return struct.pack(">b", value)
    if eis == EisType.COUNTER16:
        return struct.pack(">h", value)
    if eis == EisType.COUNTER32:
        return struct.pack(">i", value)
    return bytes([value])


def encode_time(value_text: str) -> bytes:
    """Encode ``HH:MM:SS`` or seconds since midnight (EIS 3, day left unset)."""
    match = _TIME_RE.match(value_text.strip())
    if match:
        hour, minute, second = (int(g) for g in match.groups())
    else:
        seconds = parse_int(value_text)
        if seconds < 0:
            raise MalformedValueError(f"Negative time {seconds}")
        hour, rest = divmod(seconds, 3600)
        minute, second = divmod(rest, 60)
    if hour > 23 or minute > 59 or second > 59:
        raise MalformedValueError(f"Invalid time of day '{value_text}'")
    return bytes([hour, minute, second])


def encode_date(value_text: str) -> bytes:
    """Encode ``YYYY/MM/DD`` (or ``YYYY-MM-DD``) for years 1990 to 2089 (EIS 4)."""
    match = _DATE_RE.match(value_text.strip())
    if not match:
        raise MalformedValueError(f"'{value_text}' is not a YYYY/MM/DD date")
    year, month, day = (int(g) for g in match.groups())
    try:
        datetime.date(year, month, day)
    except ValueError as exc:
        raise MalformedValueError(f"Invalid date '{value_text}': {exc}")
    if not 1990 <= year <= 2089:
        raise MalformedValueError(f"Year {year} outside 1990..2089")
    return bytes([day, month, year % 100])


def encode_value(eis: EisType, value_text: str) -> bytes:
    """Encode command text into EIS value octets.

    This is the main entry point for encoding inbound commands.

    Args:
        eis: Target point type
        value_text: Textual value as received in the command

    Returns:
        The value octets for the bus write

    Raises:
        UnsupportedTypeError: If the point type cannot be encoded
        MalformedValueError: If the text does not convert to the point type
    """
    eis = EisType(eis)
    if not EIS_PROPERTIES[eis].encodable:
        raise UnsupportedTypeError(f"EIS {int(eis)} ({EIS_PROPERTIES[eis].label}) cannot be encoded")
    if value_text is None:
        raise MalformedValueError("Missing value")

    if eis == EisType.SWITCHING and value_text.strip().lower() in _BOOLEAN_WORDS:
        return bytes([_BOOLEAN_WORDS[value_text.strip().lower()]])
    if eis == EisType.SWITCHING:
        # any non-zero integer switches on
        return b"\x01" if parse_int(value_text) else b"\x00"
    if eis in _INT_RANGES:
        return encode_integer(eis, parse_int(value_text))
    if eis == EisType.FLOAT32:
        try:
            return float32_to_bytes(parse_float(value_text))
        except ValueError as exc:
            raise MalformedValueError(str(exc))
    if eis == EisType.FLOAT16:
        try:
            return encode_knx_float16(parse_float(value_text))
        except ValueError as exc:
            raise MalformedValueError(str(exc))
    if eis == EisType.TIME:
        return encode_time(value_text)
    if eis == EisType.DATE:
        return encode_date(value_text)
    if eis == EisType.CHAR:
        if not value_text:
            raise MalformedValueError("Empty character value")
        code = ord(value_text[0])
        if code > 0x7F:
            raise MalformedValueError(f"'{value_text[0]}' is not an ASCII character")
        return bytes([code])
    if eis == EisType.STRING:
        try:
            data = value_text.encode("ascii")
        except UnicodeEncodeError:
            raise MalformedValueError(f"'{value_text}' is not ASCII text")
        if len(data) > MAX_STRING_LENGTH:
            raise MalformedValueError(
                f"String of {len(data)} characters exceeds {MAX_STRING_LENGTH}"
            )
        return data
    raise UnsupportedTypeError(f"EIS {int(eis)} cannot be encoded")
