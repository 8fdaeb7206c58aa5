from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional, Tuple


class EisType(IntEnum):
    """EIB interworking standard (EIS) information point types."""

    SWITCHING = 1
    DIMMING = 2
    TIME = 3
    DATE = 4
    FLOAT16 = 5
    PERCENT = 6
    DRIVE = 7
    PRIORITY = 8
    FLOAT32 = 9
    COUNTER16 = 10
    COUNTER32 = 11
    ACCESS = 12
    CHAR = 13
    COUNTER8 = 14
    STRING = 15


@dataclass(frozen=True)
class EisProperties:
    label: str
    apdu_length: Optional[int]
    value_width: Optional[int]
    encodable: bool


EIS_PROPERTIES: Dict[EisType, EisProperties] = {
    EisType.SWITCHING: EisProperties("Switching", 1, 1, True),
    EisType.DIMMING: EisProperties("Dimming step", 1, 1, True),
    EisType.TIME: EisProperties("Time of day", 4, 3, True),
    EisType.DATE: EisProperties("Date", 4, 3, True),
    EisType.FLOAT16: EisProperties("2-octet float", 3, 2, True),
    EisType.PERCENT: EisProperties("Scaling (percent)", 2, 1, True),
    EisType.DRIVE: EisProperties("Drive control", 1, 1, True),
    EisType.PRIORITY: EisProperties("Priority", 1, 1, True),
    EisType.FLOAT32: EisProperties("IEEE float", 5, 4, True),
    EisType.COUNTER16: EisProperties("16-bit counter", 3, 2, True),
    EisType.COUNTER32: EisProperties("32-bit counter", 5, 4, True),
    EisType.ACCESS: EisProperties("Access control", 5, 4, False),
    EisType.CHAR: EisProperties("ASCII character", 2, 1, True),
    EisType.COUNTER8: EisProperties("8-bit counter", 2, 1, True),
    EisType.STRING: EisProperties("ASCII string", None, None, True),
}


# APDU length -> candidate point types, in the order they are reported.
LENGTH_CLASSES: Dict[int, Tuple[EisType, ...]] = {
    1: (EisType.SWITCHING, EisType.DIMMING, EisType.DRIVE, EisType.PRIORITY),
    2: (EisType.PERCENT, EisType.COUNTER8, EisType.CHAR),
    3: (EisType.FLOAT16, EisType.COUNTER16),
    4: (EisType.TIME, EisType.DATE),
    5: (EisType.COUNTER32, EisType.FLOAT32, EisType.ACCESS),
}

VARIABLE_LENGTH_CLASS: Tuple[EisType, ...] = (EisType.STRING,)


# Action keywords accepted in inbound commands.
ACTION_KEYWORDS: Dict[str, EisType] = {
    "BYTE": EisType.SWITCHING,
    "INT": EisType.COUNTER16,
    "INT32": EisType.COUNTER32,
    "FLOAT": EisType.FLOAT32,
    "CHAR": EisType.CHAR,
    "STRING": EisType.STRING,
}


def parse_action(keyword: Optional[str]) -> EisType:
    if not keyword:
        raise ValueError("Empty action keyword")
    eis = ACTION_KEYWORDS.get(keyword.strip())
    if eis is None:
        raise ValueError(f"Unknown action keyword '{keyword}'")
    return eis


def parse_eis(value: str) -> EisType:
    """Accept either an action keyword, a member name or the EIS number."""
    text = value.strip()
    if text.upper() in ACTION_KEYWORDS:
        return ACTION_KEYWORDS[text.upper()]
    if text.upper() in EisType.__members__:
        return EisType[text.upper()]
    try:
        return EisType(int(text, 0))
    except ValueError:
        raise ValueError(f"Unknown point type '{value}'")


def candidates_for_length(length: int) -> Tuple[EisType, ...]:
    return LENGTH_CLASSES.get(length, VARIABLE_LENGTH_CLASS)
