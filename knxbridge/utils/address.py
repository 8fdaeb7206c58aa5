"""KNX address parsing and formatting helpers.

Physical (individual) addresses identify a device as ``area.line.device``;
group addresses identify a logical function as ``top/sub/group`` (3-level
notation). Both are 16-bit values in host order; frames are normalised from
network byte order by the frame decoder before they reach these helpers.
"""


def format_physical(addr: int) -> str:
    """Format a 16-bit physical address as ``area.line.device``.

    Examples:
        >>> format_physical(0x1101)
        '1.1.1'
    """
    addr &= 0xFFFF
    area = (addr & 0xF000) >> 12
    line = (addr & 0x0F00) >> 8
    device = addr & 0x00FF
    return f"{area}.{line}.{device}"


def format_group(addr: int) -> str:
    """Format a 16-bit group address as ``top/sub/group``.

    Bit 15 is not part of the 3-level notation and is ignored.

    Examples:
        >>> format_group(0x0005)
        '0/0/5'
        >>> format_group(0x0A03)
        '1/2/3'
    """
    addr &= 0xFFFF
    top = (addr & 0x7800) >> 11
    sub = (addr & 0x0700) >> 8
    group = addr & 0x00FF
    return f"{top}/{sub}/{group}"


def _split_fields(s: str, sep: str, limits: tuple) -> list:
    if not s:
        raise ValueError("Address cannot be empty")
    parts = s.strip().split(sep)
    if len(parts) != len(limits):
        raise ValueError(f"Invalid address format: {s}")
    values = []
    for part, limit in zip(parts, limits):
        try:
            value = int(part, 10)
        except ValueError:
            raise ValueError(f"Invalid address format: {s}")
        if value < 0 or value > limit:
            raise ValueError(f"Address field {value} out of range 0..{limit} in {s}")
        values.append(value)
    return values


def parse_group_address(s: str) -> int:
    """Parse ``top/sub/group`` into its 16-bit value.

    Raises:
        ValueError: If the text is malformed or a field is out of range
    """
    top, sub, group = _split_fields(s, "/", (15, 7, 255))
    return (top << 11) | (sub << 8) | group


def parse_physical_address(s: str) -> int:
    """Parse ``area.line.device`` into its 16-bit value.

    Raises:
        ValueError: If the text is malformed or a field is out of range
    """
    area, line, device = _split_fields(s, ".", (15, 15, 255))
    return (area << 12) | (line << 8) | device


def resolve_address(s: str) -> int:
    """Map a textual group or physical address to its numeric value."""
    if s and "/" in s:
        return parse_group_address(s)
    return parse_physical_address(s)
