import asyncio
import threading
from types import SimpleNamespace

import pytest

from knxbridge.transports.base import BusErrorKind, BusSessionError, TransportConnectError
from knxbridge.transports.manager import create_bus_session_from_uri, parse_bus_target
from knxbridge.transports.mock import MockBusSession, MockMessagingTransport
from knxbridge.transports.mqtt import PahoMqttTransport, parse_broker_uri
from knxbridge.transports.replay import ReplayBusSession, read_capture

CAPTURE = """\
# evening capture
29 00 bc e0 11 05 00 05 03 00 80 14 1a
2900bce011050005030080141a  # same frame again

29 00 bc e0 11 05 00 05 01 00 81
"""


class TestMockBusSession:
    @pytest.mark.asyncio
    async def test_monitor_times_out_when_idle(self):
        session = MockBusSession(poll_timeout=0.01)
        await session.open()
        with pytest.raises(BusSessionError) as excinfo:
            await session.monitor()
        assert excinfo.value.kind is BusErrorKind.TIMEOUT
        assert not excinfo.value.fatal

    @pytest.mark.asyncio
    async def test_context_manager_always_closes(self):
        session = MockBusSession()
        session.write_error = BusSessionError(BusErrorKind.COMMUNICATION)
        with pytest.raises(BusSessionError):
            async with session as bus:
                await bus.write(5, 1, b"\x01")
        assert session.open_count == 1
        assert session.close_count == 1
        assert not session.connected

    @pytest.mark.asyncio
    async def test_monitor_requires_open(self):
        session = MockBusSession()
        with pytest.raises(BusSessionError) as excinfo:
            await session.monitor()
        assert excinfo.value.fatal


class TestMockMessaging:
    @pytest.mark.asyncio
    async def test_scripted_results(self):
        transport = MockMessagingTransport()
        await transport.connect()
        transport.publish_results = [-3]
        transport.connected_after_failure = False
        assert await transport.publish("t", "p", 0) == -3
        assert not transport.is_connected()
        assert await transport.publish("t", "p", 0) == 0
        assert transport.published == [("t", "p", 0)]

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        transport = MockMessagingTransport()
        transport.fail_connect_rc = 4
        with pytest.raises(TransportConnectError) as excinfo:
            await transport.connect()
        assert excinfo.value.rc == 4

    def test_connection_lost_handler(self):
        causes = []
        transport = MockMessagingTransport()
        transport.set_connection_lost_handler(causes.append)
        transport.drop_connection("keepalive timeout")
        assert causes == ["keepalive timeout"]


class TestReplay:
    def test_read_capture(self, tmp_path):
        path = tmp_path / "capture.txt"
        path.write_text(CAPTURE)
        frames = read_capture(path)
        assert len(frames) == 3
        assert frames[0][-2:] == b"\x14\x1a"
        assert frames[2][-1] == 0x81

    def test_read_capture_bad_hex(self, tmp_path):
        path = tmp_path / "capture.txt"
        path.write_text("29 zz\n")
        with pytest.raises(ValueError):
            read_capture(path)

    @pytest.mark.asyncio
    async def test_plays_back_then_aborts(self, tmp_path):
        path = tmp_path / "capture.txt"
        path.write_text(CAPTURE)
        session = ReplayBusSession(path)
        await session.open()
        for _ in range(3):
            await session.monitor()
        with pytest.raises(BusSessionError) as excinfo:
            await session.monitor()
        assert excinfo.value.kind is BusErrorKind.SERVER_ABORTED

    @pytest.mark.asyncio
    async def test_missing_capture(self, tmp_path):
        session = ReplayBusSession(tmp_path / "absent.txt")
        with pytest.raises(BusSessionError) as excinfo:
            await session.open()
        assert excinfo.value.kind is BusErrorKind.NO_CONNECTION


class TestManager:
    def test_mock(self):
        assert isinstance(create_bus_session_from_uri("mock://"), MockBusSession)

    def test_replay_relative_path(self):
        session = create_bus_session_from_uri("replay://captures/a.txt?interval=0.5")
        assert isinstance(session, ReplayBusSession)
        assert str(session.path) == "captures/a.txt"
        assert session.interval == 0.5

    def test_replay_absolute_path(self):
        session = create_bus_session_from_uri("replay:///tmp/a.txt")
        assert str(session.path) == "/tmp/a.txt"

    def test_unsupported(self):
        with pytest.raises(ValueError):
            create_bus_session_from_uri("eibnet://knxhost")
        with pytest.raises(ValueError):
            create_bus_session_from_uri("replay://")

    def test_parse_bus_target(self):
        assert parse_bus_target(None) is None
        assert parse_bus_target("knxhost") == ("knxhost", 4390)
        assert parse_bus_target("knxhost:5000") == ("knxhost", 5000)
        with pytest.raises(ValueError):
            parse_bus_target("knxhost:abc")
        with pytest.raises(ValueError):
            parse_bus_target(":4390")


class TestMqtt:
    def test_parse_broker_uri(self):
        assert parse_broker_uri("tcp://broker.local:1884") == ("broker.local", 1884, False)
        assert parse_broker_uri("mqtt://broker.local") == ("broker.local", 1883, False)
        assert parse_broker_uri("ssl://broker.local") == ("broker.local", 8883, True)
        assert parse_broker_uri("broker.local") == ("broker.local", 1883, False)
        with pytest.raises(ValueError):
            parse_broker_uri("ws://broker.local")

    def test_not_connected_before_connect(self):
        transport = PahoMqttTransport("tcp://localhost:1883", client_id="test", username="user", password="pw")
        assert not transport.is_connected()

    @pytest.mark.asyncio
    async def test_messages_are_handed_to_the_loop(self):
        transport = PahoMqttTransport("tcp://localhost:1883", client_id="test")
        received = asyncio.Queue()
        loop_thread = []

        async def handler(topic, payload):
            loop_thread.append(threading.get_ident())
            await received.put((topic, payload))

        transport.set_message_handler(handler)
        transport._loop = asyncio.get_running_loop()
        message = SimpleNamespace(topic="iot-2/cmd", payload=b'x:"a":"b":"BYTE":"1"')

        # deliver from a foreign thread, as paho's network loop does
        worker = threading.Thread(target=transport._on_message, args=(None, None, message))
        worker.start()
        topic, payload = await asyncio.wait_for(received.get(), timeout=1.0)
        worker.join()

        assert topic == "iot-2/cmd"
        assert payload == b'x:"a":"b":"BYTE":"1"'
        assert loop_thread == [threading.get_ident()]

    @pytest.mark.asyncio
    async def test_wildcard_topic_returns_error_code(self):
        transport = PahoMqttTransport("tcp://localhost:1883", client_id="test")
        rc = await transport.publish("iot-2/type/Temperature/id/Boiler+1/evt/Flow/fmt/json", "{}")
        assert rc != 0

    @pytest.mark.asyncio
    async def test_reconnect_waits_for_network_thread(self, monkeypatch):
        transport = PahoMqttTransport("tcp://localhost:1883", client_id="test", timeout=1.0)
        transport._network_started = True
        calls = []
        monkeypatch.setattr(transport._client, "reconnect", lambda: calls.append("reconnect"))
        monkeypatch.setattr(transport._client, "connect", lambda *a, **kw: calls.append("connect"))

        # paho's network thread completes the reconnect and reports the CONNACK
        timer = threading.Timer(0.05, transport._on_connect, args=(None, None, None, 0, None))
        timer.start()
        await transport.connect()
        timer.join()

        assert calls == []

    @pytest.mark.asyncio
    async def test_reconnect_gives_up_without_connack(self, monkeypatch):
        transport = PahoMqttTransport("tcp://localhost:1883", client_id="test", timeout=0.05)
        transport._network_started = True
        monkeypatch.setattr(transport._client, "reconnect", lambda: pytest.fail("reconnect called"))
        with pytest.raises(TransportConnectError):
            await transport.connect()
