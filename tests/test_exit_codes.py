from knxbridge.core.exit_codes import (
    EXIT_CODE_DESCRIPTIONS,
    BridgeFault,
    ExitCode,
    describe_exit_code,
)


def test_codes_are_distinct_and_documented():
    values = [int(code) for code in ExitCode]
    assert len(values) == len(set(values))
    assert set(EXIT_CODE_DESCRIPTIONS) == set(ExitCode)


def test_describe_exit_code():
    assert describe_exit_code(0) == "Clean shutdown"
    assert describe_exit_code(ExitCode.AUTHENTICATION) == "Bus multiplexer authentication failed"
    assert describe_exit_code(None) is None
    assert describe_exit_code(99) is None


def test_bridge_fault_message_defaults_to_description():
    fault = BridgeFault(ExitCode.BUS_CONNECT)
    assert fault.exit_code is ExitCode.BUS_CONNECT
    assert str(fault) == "Connection to the bus multiplexer failed"
    assert str(BridgeFault(3, "broker refused")) == "broker refused"
