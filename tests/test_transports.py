import asyncio
import queue
import socket
from types import SimpleNamespace

import pytest
import serial
from fakes import ScriptedSession
from websockets.asyncio.server import serve

from cubesat_telemetry.config import (
    BLE_UART_RX_CHAR,
    BLE_UART_SERVICE,
    BleConfig,
    SerialConfig,
    SocketConfig,
)
from cubesat_telemetry.errors import TransportClosed, TransportConnectError
from cubesat_telemetry.transports import (
    BleSession,
    SerialSession,
    SessionState,
    SocketSession,
    discover_devices,
    open_session,
)
from cubesat_telemetry.transports import ble_link


async def read_until(session, newlines, timeout=2.0):
    text = ""
    while text.count("\n") < newlines:
        text += await asyncio.wait_for(session.read(), timeout)
    return text


# Session lifecycle -------------------------------------------------------


def test_read_before_connect_raises_closed():
    async def scenario():
        with pytest.raises(TransportClosed):
            await ScriptedSession().read()

    asyncio.run(scenario())


def test_state_moves_from_connected_to_streaming_on_first_chunk():
    async def scenario():
        session = ScriptedSession()
        assert session.state is SessionState.DISCONNECTED
        await session.connect()
        assert session.state is SessionState.CONNECTED
        session.push("T=1\n")
        assert await session.read() == "T=1\n"
        assert session.state is SessionState.STREAMING
        assert session.is_active
        await session.close()
        assert session.state is SessionState.DISCONNECTED

    asyncio.run(scenario())


def test_close_unblocks_a_pending_read_and_is_idempotent():
    async def scenario():
        session = ScriptedSession()
        await session.connect()
        reader = asyncio.create_task(session.read())
        await asyncio.sleep(0)
        await session.close()
        with pytest.raises(TransportClosed):
            await reader
        await session.close()
        return session

    session = asyncio.run(scenario())
    assert session.released == 1


def test_no_chunks_after_local_close():
    async def scenario():
        session = ScriptedSession()
        await session.connect()
        session.push("T=1\n")
        await asyncio.sleep(0)
        await session.close()
        session.push("T=2\n")
        await asyncio.sleep(0)
        with pytest.raises(TransportClosed):
            await session.read()
        with pytest.raises(TransportClosed):
            await session.read()

    asyncio.run(scenario())


def test_remote_end_drains_queued_chunks_first():
    async def scenario():
        session = ScriptedSession()
        await session.connect()
        session.push("A=1\n")
        session.finish("peer closed")
        chunks = [chunk async for chunk in session.chunks()]
        return session, chunks

    session, chunks = asyncio.run(scenario())
    assert chunks == ["A=1\n"]
    assert session.state is SessionState.DISCONNECTED
    assert session.close_reason == "peer closed"


def test_open_failure_is_reported_as_connect_error_and_cleaned_up():
    async def scenario():
        session = ScriptedSession(fail_with=OSError("no such device"))
        with pytest.raises(TransportConnectError, match="no such device"):
            await session.connect()
        return session

    session = asyncio.run(scenario())
    assert session.released == 1
    assert session.state is SessionState.DISCONNECTED


def test_session_cannot_be_connected_twice():
    async def scenario():
        session = ScriptedSession()
        await session.connect()
        with pytest.raises(TransportConnectError):
            await session.connect()
        await session.close()

    asyncio.run(scenario())


def test_open_session_picks_the_transport():
    assert isinstance(open_session(SerialConfig(port="/dev/ttyUSB0")), SerialSession)
    assert isinstance(open_session(BleConfig()), BleSession)
    assert isinstance(open_session(SocketConfig()), SocketSession)
    with pytest.raises(TypeError):
        open_session("serial")


# Serial -------------------------------------------------------------------


class FakeSerial:
    def __init__(self, port, baudrate, timeout, exclusive):
        self.port = port
        self.baudrate = baudrate
        self.exclusive = exclusive
        self.closed = False
        self.failed = False
        self._data = queue.Queue()

    @property
    def in_waiting(self):
        return 0

    def feed(self, data):
        self._data.put(data)

    def read(self, size=1):
        if self.failed:
            raise serial.SerialException("device disconnected")
        try:
            return self._data.get(timeout=0.01)
        except queue.Empty:
            return b""

    def close(self):
        self.closed = True


def make_serial_session():
    ports = []

    def factory(**kwargs):
        port = FakeSerial(**kwargs)
        ports.append(port)
        return port

    session = SerialSession(SerialConfig(port="/dev/fake", baudrate=9600), serial_factory=factory)
    return session, ports


def test_serial_decodes_utf8_split_across_reads():
    async def scenario():
        session, ports = make_serial_session()
        await session.connect()
        port = ports[0]
        port.feed(b"T=2")
        port.feed(b"3.5\n\xc2")
        port.feed(b"\xb0\n")
        text = await read_until(session, 2)
        await session.close()
        return text, port

    text, port = asyncio.run(scenario())
    assert text == "T=23.5\n°\n"
    assert port.baudrate == 9600
    assert port.exclusive is True
    assert port.closed


def test_serial_io_error_ends_the_session():
    async def scenario():
        session, ports = make_serial_session()
        await session.connect()
        ports[0].failed = True
        with pytest.raises(TransportClosed, match="serial I/O error"):
            await asyncio.wait_for(session.read(), 2.0)
        await session.close()

    asyncio.run(scenario())


def test_serial_open_failure_is_a_connect_error():
    def factory(**kwargs):
        raise serial.SerialException("could not open port /dev/fake")

    async def scenario():
        session = SerialSession(SerialConfig(port="/dev/fake"), serial_factory=factory)
        with pytest.raises(TransportConnectError, match="could not open port"):
            await session.connect()

    asyncio.run(scenario())


def test_serial_config_rejects_unsupported_baud():
    with pytest.raises(ValueError):
        SerialConfig(port="/dev/ttyUSB0", baudrate=12345)


# BLE ----------------------------------------------------------------------


def advert(address, name, rssi, uuids=()):
    dev = SimpleNamespace(address=address, name=name)
    adv = SimpleNamespace(local_name=name, rssi=rssi, service_uuids=list(uuids))
    return address, (dev, adv)


def test_discovery_filters_by_name_prefix_or_service(monkeypatch):
    results = dict(
        [
            advert("AA", "CUBESAT-01", -70),
            advert("BB", "Headphones", -40),
            advert("CC", None, -50, uuids=[BLE_UART_SERVICE.upper()]),
            advert("DD", "ESP32_dev", -80),
        ]
    )

    async def fake_discover(timeout, return_adv):
        assert return_adv is True
        return results

    monkeypatch.setattr(ble_link.BleakScanner, "discover", fake_discover)
    devices = asyncio.run(discover_devices(BleConfig(scan_timeout=1.0)))

    assert [d.address for d in devices] == ["CC", "AA", "DD"]


class FakeCharacteristic:
    def __init__(self, uuid, properties):
        self.uuid = uuid
        self.properties = properties


class FakeService:
    def __init__(self, uuid, characteristics):
        self.uuid = uuid
        self._chars = {c.uuid: c for c in characteristics}

    def get_characteristic(self, uuid):
        return self._chars.get(uuid)


class FakeServices:
    def __init__(self, services):
        self._services = {s.uuid: s for s in services}

    def get_service(self, uuid):
        return self._services.get(uuid)

    def __iter__(self):
        return iter(self._services.values())


class FakeBleakClient:
    instances = []
    services_to_offer = None

    def __init__(self, address, disconnected_callback=None):
        self.address = address
        self.disconnected_callback = disconnected_callback
        self.is_connected = False
        self.notify_callback = None
        self.services = FakeBleakClient.services_to_offer
        FakeBleakClient.instances.append(self)

    async def connect(self):
        self.is_connected = True

    async def start_notify(self, char, callback):
        self.notify_callback = callback

    async def stop_notify(self, char):
        self.notify_callback = None

    async def disconnect(self):
        self.is_connected = False


@pytest.fixture
def fake_bleak(monkeypatch):
    FakeBleakClient.instances = []
    FakeBleakClient.services_to_offer = FakeServices(
        [
            FakeService(
                BLE_UART_SERVICE,
                [FakeCharacteristic(BLE_UART_RX_CHAR, ["read", "notify"])],
            )
        ]
    )
    monkeypatch.setattr(ble_link, "BleakClient", FakeBleakClient)
    return FakeBleakClient


def test_ble_notifications_become_chunks_until_disconnect(fake_bleak):
    async def scenario():
        session = BleSession(BleConfig(address="AA:BB"))
        await session.connect()
        client = fake_bleak.instances[0]
        client.notify_callback(None, bytearray(b"T=21.0,"))
        client.notify_callback(None, bytearray(b"H=40\n"))
        text = await read_until(session, 1)
        client.disconnected_callback(client)
        with pytest.raises(TransportClosed, match="disconnected"):
            await asyncio.wait_for(session.read(), 2.0)
        await session.close()
        return text, client

    text, client = asyncio.run(scenario())
    assert text == "T=21.0,H=40\n"
    assert client.address == "AA:BB"


def test_ble_missing_characteristic_is_a_connect_error(fake_bleak):
    fake_bleak.services_to_offer = FakeServices([FakeService(BLE_UART_SERVICE, [])])

    async def scenario():
        session = BleSession(BleConfig(address="AA:BB"))
        with pytest.raises(TransportConnectError, match="not found"):
            await session.connect()

    asyncio.run(scenario())
    assert fake_bleak.instances[0].is_connected is False


def test_ble_without_matching_device_is_a_connect_error(monkeypatch, fake_bleak):
    async def fake_discover(timeout, return_adv):
        return {}

    monkeypatch.setattr(ble_link.BleakScanner, "discover", fake_discover)

    async def scenario():
        with pytest.raises(TransportConnectError, match="No BLE device found"):
            await BleSession(BleConfig(scan_timeout=0.1)).connect()

    asyncio.run(scenario())
    assert fake_bleak.instances == []


# WebSocket ------------------------------------------------------------------


def test_socket_messages_are_chunks_until_server_closes():
    async def handler(ws):
        await ws.send("T=23.5,H=5")
        await ws.send("0.0\n")
        await ws.close()

    async def scenario():
        async with serve(handler, "127.0.0.1", 0) as server:
            port = next(iter(server.sockets)).getsockname()[1]
            session = SocketSession(SocketConfig(host="127.0.0.1", port=port))
            await session.connect()
            chunks = [chunk async for chunk in session.chunks()]
            await session.close()
            return session, chunks

    session, chunks = asyncio.run(scenario())
    assert chunks == ["T=23.5,H=5", "0.0\n"]
    assert session.state is SessionState.DISCONNECTED


def test_socket_connection_refused_is_a_connect_error():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]

    async def scenario():
        session = SocketSession(SocketConfig(host="127.0.0.1", port=port))
        with pytest.raises(TransportConnectError):
            await session.connect()

    asyncio.run(scenario())


def test_socket_handshake_timeout_is_a_connect_error():
    async def silent(reader, writer):
        try:
            await asyncio.wait_for(reader.read(), 2.0)
        except asyncio.TimeoutError:
            pass
        finally:
            writer.close()

    async def scenario():
        server = await asyncio.start_server(silent, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            session = SocketSession(
                SocketConfig(host="127.0.0.1", port=port, connect_timeout=0.2)
            )
            with pytest.raises(TransportConnectError, match="timeout"):
                await session.connect()
        finally:
            server.close()
            await server.wait_closed()

    asyncio.run(scenario())


def test_socket_url():
    assert SocketConfig().url == "ws://192.168.4.1:81/ws"
    assert SocketConfig(host="10.0.0.5", port=8080, path="data").url == "ws://10.0.0.5:8080/data"
