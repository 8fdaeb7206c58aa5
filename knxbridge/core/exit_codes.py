"""Process exit statuses and their descriptions.

Provides a canonical mapping of exit codes to human-readable descriptions
so the CLI, the gateway and the documentation share the same table.
"""
from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    OK = 0
    CONFIG_OPEN = 1
    USAGE = 2
    TRANSPORT_CONNECT = 3
    BUS_CONNECT = 4
    PASSWORD_READ = 5
    AUTHENTICATION = 6
    ALLOCATION = 7
    BUS_FATAL = 8
    CODEC_CONVERSION = 9
    BUS_COMMUNICATION = 10
    BUS_NO_CONNECTION = 11
    BUS_WRONG_USAGE = 12
    BUS_NO_MEMORY = 13
    BUS_SERVER_ABORTED = 14


EXIT_CODE_DESCRIPTIONS = {
    ExitCode.OK: "Clean shutdown",
    ExitCode.CONFIG_OPEN: "Configuration file could not be opened",
    ExitCode.USAGE: "Invalid command line usage",
    ExitCode.TRANSPORT_CONNECT: "Connection to the MQTT broker failed",
    ExitCode.BUS_CONNECT: "Connection to the bus multiplexer failed",
    ExitCode.PASSWORD_READ: "Password could not be read",
    ExitCode.AUTHENTICATION: "Bus multiplexer authentication failed",
    ExitCode.ALLOCATION: "Out of memory",
    ExitCode.BUS_FATAL: "Unrecoverable bus session error",
    ExitCode.CODEC_CONVERSION: "Value conversion failed",
    ExitCode.BUS_COMMUNICATION: "Bus monitor communication error",
    ExitCode.BUS_NO_CONNECTION: "Bus monitor lost its connection",
    ExitCode.BUS_WRONG_USAGE: "Bus monitor rejected the request",
    ExitCode.BUS_NO_MEMORY: "Bus monitor ran out of memory",
    ExitCode.BUS_SERVER_ABORTED: "Bus multiplexer closed the session",
}


class BridgeFault(Exception):
    """Unrecoverable fault that terminates the bridge with a specific status."""

    def __init__(self, exit_code: ExitCode, message: str = ""):
        self.exit_code = ExitCode(exit_code)
        super().__init__(message or describe_exit_code(exit_code) or str(exit_code))


def describe_exit_code(code: Optional[int]) -> Optional[str]:
    """Return a human-readable description for an exit code.

    If `code` is None or unknown, returns None.
    """
    if code is None:
        return None
    try:
        return EXIT_CODE_DESCRIPTIONS.get(ExitCode(int(code)))
    except ValueError:
        return None
