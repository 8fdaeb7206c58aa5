import math
import struct


def from_bytes_to_float32(b: bytes) -> float:
    """Interpret 4 bytes as a big-endian IEEE-754 float32 (EIS 9)."""
    if len(b) != 4:
        raise ValueError("float32 requires exactly 4 bytes")
    return struct.unpack(">f", b)[0]


def float32_to_bytes(value: float) -> bytes:
    """Pack a float as big-endian IEEE-754 float32.

    Raises:
        ValueError: If the value does not fit a float32
    """
    try:
        return struct.pack(">f", value)
    except (struct.error, OverflowError) as e:
        raise ValueError(f"Cannot encode {value} as float32: {e}")


def decode_knx_float16(b: bytes) -> float:
    """Interpret 2 bytes as a KNX 2-octet float (EIS 5 / DPT 9).

    Layout is ``MEEEEMMM MMMMMMMM``: a 12-bit two's complement mantissa
    (sign in bit 15) and a 4-bit exponent, value = 0.01 * M * 2^E.
    """
    if len(b) != 2:
        raise ValueError("KNX float16 requires exactly 2 bytes")
    raw = int.from_bytes(b, byteorder="big", signed=False)
    exponent = (raw >> 11) & 0x0F
    mantissa = raw & 0x07FF
    if raw & 0x8000:
        mantissa -= 0x800
    return (mantissa << exponent) / 100


def encode_knx_float16(value: float) -> bytes:
    """Encode a float as a KNX 2-octet float using the smallest exponent.

    Raises:
        ValueError: If the value is NaN, infinite or outside -671088.64..670760.96
    """
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"Cannot encode {value} as KNX float16")
    scaled = value * 100
    for exponent in range(16):
        mantissa = int(round(scaled / (1 << exponent)))
        if -2048 <= mantissa <= 2047:
            break
    else:
        raise ValueError(f"Value {value} out of KNX float16 range")

    raw = (exponent << 11) | (mantissa & 0x07FF)
    if mantissa < 0:
        raw |= 0x8000
    return raw.to_bytes(2, byteorder="big")
