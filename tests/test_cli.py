from __future__ import annotations

import textwrap

import pytest
import yaml
from typer.testing import CliRunner

import bridge as cli
import knxbridge
from knxbridge.core.exit_codes import ExitCode
from knxbridge.transports.mock import MockMessagingTransport

runner = CliRunner()

CONFIG = textwrap.dedent(
    """\
    ADDRESS=tcp://broker.local:1883
    CLIENTID=HomePi3
    QOS=0
    DEVICE=0/0/5 Boiler Temperature Measurement
    DEVICE=0/0/5 Boiler2 Temperature Flow
    DEVICE=0/1/2 Kitchen Light State
    """
)

CAPTURE = textwrap.dedent(
    """\
    29 00 bc e0 11 05 00 05 03 00 80 14 1a
    29 00 bc e0 11 05 01 02 01 00 81
    """
)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "bluehome.conf"
    path.write_text(CONFIG)
    return path


@pytest.fixture
def capture_file(tmp_path):
    path = tmp_path / "capture.txt"
    path.write_text(CAPTURE)
    return path


@pytest.fixture
def transports(monkeypatch):
    created = []

    def fake_transport(*args, **kwargs):
        transport = MockMessagingTransport()
        created.append(transport)
        return transport

    monkeypatch.setattr("knxbridge.transports.mqtt.PahoMqttTransport", fake_transport)
    return created


def test_decode_frame():
    result = runner.invoke(cli.app, ["decode", "29 00 bc e0 11 05 00 05 03 00 80 14 1a"])
    assert result.exit_code == 0
    assert "42.00" in result.output
    assert "5146" in result.output
    assert "Published value" in result.output


def test_decode_read_request():
    result = runner.invoke(cli.app, ["decode", "2900bce01105000501 0000"])
    assert result.exit_code == 0
    assert "no value" in result.output


def test_decode_bad_input():
    result = runner.invoke(cli.app, ["decode", "29 00 bc"])
    assert result.exit_code == ExitCode.USAGE
    result = runner.invoke(cli.app, ["decode", "not hex"])
    assert result.exit_code == ExitCode.USAGE


def test_encode():
    result = runner.invoke(cli.app, ["encode", "FLOAT", "21.5"])
    assert result.exit_code == 0
    assert "41 ac 00 00" in result.output


def test_encode_conversion_failure():
    result = runner.invoke(cli.app, ["encode", "INT", "warm"])
    assert result.exit_code == ExitCode.CODEC_CONVERSION


def test_encode_unknown_action():
    result = runner.invoke(cli.app, ["encode", "DOUBLE", "1"])
    assert result.exit_code == ExitCode.USAGE


def test_devices(config_file):
    result = runner.invoke(cli.app, ["devices", "-f", str(config_file)])
    assert result.exit_code == 0
    assert "Boiler2" in result.output
    assert "shadowed" in result.output


def test_devices_missing_config(tmp_path):
    result = runner.invoke(cli.app, ["devices", "-f", str(tmp_path / "absent.conf")])
    assert result.exit_code == ExitCode.CONFIG_OPEN


@pytest.mark.parametrize(
    "content",
    [
        "mqtt:\n  address: tcp://broker.local\n  qos: high\n",
        "mqtt: [unclosed\n",
    ],
)
def test_devices_invalid_yaml_config(tmp_path, content):
    path = tmp_path / "bridge.yaml"
    path.write_text(content)
    result = runner.invoke(cli.app, ["devices", "-f", str(path)])
    assert result.exit_code == ExitCode.CONFIG_OPEN
    assert not isinstance(result.exception, (ValueError, yaml.YAMLError))


def test_start_missing_config(tmp_path):
    result = runner.invoke(cli.app, ["start", "-f", str(tmp_path / "absent.conf")])
    assert result.exit_code == ExitCode.CONFIG_OPEN


def test_start_bad_target(config_file):
    result = runner.invoke(cli.app, ["start", "knxhost:abc", "-f", str(config_file)])
    assert result.exit_code == ExitCode.USAGE


def test_start_unknown_bus(config_file):
    result = runner.invoke(cli.app, ["start", "-f", str(config_file), "--bus", "eibnet://knxhost"])
    assert result.exit_code == ExitCode.USAGE


def test_start_counted_replay(config_file, capture_file, transports):
    result = runner.invoke(
        cli.app,
        ["start", "-f", str(config_file), "--bus", f"replay://{capture_file}", "-c", "2", "--backoff", "0"],
    )
    assert result.exit_code == 0, result.output
    published = transports[0].published
    assert [topic for topic, _, _ in published] == [
        "iot-2/type/Temperature/id/Boiler2/evt/Flow/fmt/json",
        "iot-2/type/Light/id/Kitchen/evt/State/fmt/json",
    ]
    assert transports[0].disconnect_count == 1


def test_start_capture_end_exits_with_bus_status(config_file, capture_file, transports):
    result = runner.invoke(
        cli.app,
        ["start", "-q", "-f", str(config_file), "--bus", f"replay://{capture_file}"],
    )
    assert result.exit_code == ExitCode.BUS_SERVER_ABORTED
    assert len(transports[0].published) == 2


def test_start_broker_refused(config_file, transports, monkeypatch):
    def refusing(*args, **kwargs):
        transport = MockMessagingTransport()
        transport.fail_connect_rc = 5
        return transport

    monkeypatch.setattr("knxbridge.transports.mqtt.PahoMqttTransport", refusing)
    result = runner.invoke(cli.app, ["start", "-f", str(config_file), "-c", "1"])
    assert result.exit_code == ExitCode.TRANSPORT_CONNECT


def test_start_prompts_for_password(config_file, capture_file, transports):
    result = runner.invoke(
        cli.app,
        ["start", "knxhost", "-u", "admin", "-f", str(config_file), "--bus", f"replay://{capture_file}", "-c", "1"],
        input="secret\n",
    )
    assert result.exit_code == 0, result.output
    assert "knxhost:4390" in result.output


def test_package_version_shown_in_start_table(config_file, capture_file, transports):
    result = runner.invoke(
        cli.app,
        ["start", "-f", str(config_file), "--bus", f"replay://{capture_file}", "-c", "1"],
    )
    assert result.exit_code == 0, result.output
    assert f"KNX Bridge {knxbridge.__version__}" in result.output
