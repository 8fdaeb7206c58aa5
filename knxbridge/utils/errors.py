"""Exceptions raised by the EIS codec."""


class CodecError(Exception):
    """Raised when a value cannot be decoded from or encoded to EIS octets."""
    pass


class UnknownLengthError(CodecError):
    """APDU length that no length class covers."""
    pass


class InvalidDateError(CodecError):
    """EIS 4 octets that do not form a valid calendar date."""
    pass


class UnsupportedTypeError(CodecError):
    """Point type the codec cannot handle in the requested direction."""
    pass


class MalformedValueError(CodecError):
    """Command text that cannot be converted to the requested point type."""
    pass
