import datetime

import pytest

from knxbridge.bridge.messages import (
    COMMAND_SUBSCRIPTION,
    MalformedMessageError,
    build_event,
    build_payload,
    build_topic,
    parse_command,
)
from knxbridge.core.registry import DeviceRecord

BOILER = DeviceRecord(group_address="0/0/5", name="Boiler", event="Temperature", measurement="Measurement")


class TestBuilder:
    def test_topic(self):
        assert build_topic(BOILER) == "iot-2/type/Temperature/id/Boiler/evt/Measurement/fmt/json"

    def test_payload_exact_wire_format(self):
        when = datetime.datetime(2024, 5, 17, 9, 3, 7)
        assert build_payload("42.00", when) == (
            '{"d":{"value":"42.00","date":"2024/05/17","time":"09:03:07"}}'
        )

    def test_event(self):
        msg = build_event(BOILER, "1", datetime.datetime(2024, 1, 2, 3, 4, 5))
        assert msg.topic.startswith("iot-2/type/Temperature/")
        assert '"value":"1"' in msg.payload


class TestParser:
    def test_four_fields(self):
        cmd = parse_command('x:"Temperature":"Boiler":"FLOAT":"21.5"')
        assert (cmd.category, cmd.name, cmd.action, cmd.value) == ("Temperature", "Boiler", "FLOAT", "21.5")

    def test_bytes_payload(self):
        cmd = parse_command(b'{"d":"Light":"Kitchen":"BYTE":"1"}')
        assert cmd.name == "Kitchen"
        assert cmd.value == "1"

    def test_empty_value_allowed(self):
        assert parse_command('x:"Info":"Display":"STRING":""').value == ""

    def test_missing_prefix(self):
        with pytest.raises(MalformedMessageError):
            parse_command('"Temperature":"Boiler":"FLOAT":"21.5"')

    def test_missing_field(self):
        with pytest.raises(MalformedMessageError):
            parse_command('x:"Temperature":"Boiler":"FLOAT"')

    def test_unterminated_quote(self):
        with pytest.raises(MalformedMessageError):
            parse_command('x:"Temperature":"Boiler":"FLOAT":"21.5')

    def test_empty_name(self):
        with pytest.raises(MalformedMessageError):
            parse_command('x:"Temperature":"":"FLOAT":"21.5"')


def test_subscription_pattern():
    assert COMMAND_SUBSCRIPTION == "iot-2/type/HomeGateway/id/HomePi3/cmd/+/fmt/+"
