import itertools
import logging

import pytest

from asyncwebkit.handlers import Connection, Request
from asyncwebkit.wsclient import (
    MAX_QUEUED_MESSAGES,
    PING_PAYLOAD,
    ClientStatus,
    EventType,
    WebSocketClient,
)
from asyncwebkit.wsmessages import FrameType, MessageBuffer


class FakeServer:
    def __init__(self):
        self._ids = itertools.count(1)
        self.clients = []
        self.events = []
        self.cleaned = 0

    def next_id(self):
        return next(self._ids)

    def add_client(self, client):
        self.clients.append(client)

    def handle_disconnect(self, client):
        self.clients.remove(client)

    def handle_event(self, client, type, arg, data):
        self.events.append((client, type, arg, bytes(data)))

    def clean_buffers(self):
        self.cleaned += 1


class Clock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now


def make_client(**connection_args):
    server = FakeServer()
    clock = Clock()
    connection = Connection(**connection_args)
    client = WebSocketClient(Request(client=connection), server, clock)
    return client, server, connection, clock


def frame(opcode, payload, final=True, key=b"\x01\x02\x03\x04"):
    head = bytearray([(0x80 if final else 0) | opcode])
    if len(payload) < 126:
        head.append(0x80 | len(payload))
    else:
        head.append(0x80 | 126)
        head += len(payload).to_bytes(2, "big")
    head += key
    return bytes(head) + bytes(b ^ key[i % 4] for i, b in enumerate(payload))


def test_connect_registers_and_reports():
    client, server, _, _ = make_client()
    assert client.id == 1
    assert client.status is ClientStatus.CONNECTED
    assert server.clients == [client]
    assert server.events == [(client, EventType.CONNECT, None, b"")]


def test_text_and_binary_wire_bytes():
    client, _, connection, _ = make_client()
    client.text("hi")
    assert bytes(connection.transmitted) == b"\x81\x02hi"
    client.on_ack(4)
    client.binary(b"abc")
    assert bytes(connection.transmitted) == b"\x81\x02hi\x82\x03abc"


def test_second_message_waits_for_ack():
    client, _, connection, _ = make_client()
    client.text("hi")
    client.text("yo")
    assert bytes(connection.transmitted) == b"\x81\x02hi"
    client.on_ack(4)
    assert bytes(connection.transmitted) == b"\x81\x02hi\x81\x02yo"


def test_receive_masked_text_frame():
    client, server, _, _ = make_client()
    client.on_data(frame(FrameType.TEXT, b"hello"))
    _, kind, info, data = server.events[-1]
    assert kind is EventType.DATA
    assert data == b"hello"
    assert info.opcode == FrameType.TEXT
    assert info.final is True
    assert info.length == 5


def test_receive_frame_split_over_chunks():
    client, server, _, _ = make_client()
    payload = b"hello world"
    raw = frame(FrameType.TEXT, payload)
    client.on_data(raw[:10])
    client.on_data(raw[10:])
    data_events = [e for e in server.events if e[1] is EventType.DATA]
    assert len(data_events) == 2
    first_info = data_events[0][2]
    assert first_info.index == 0
    assert first_info.message_opcode == FrameType.TEXT
    assert first_info.num == 0
    assert data_events[1][2].index == 4
    assert data_events[0][3] + data_events[1][3] == payload


def test_receive_extended_length_frame():
    client, server, _, _ = make_client()
    payload = bytes(range(200))
    client.on_data(frame(FrameType.BINARY, payload))
    assert server.events[-1][3] == payload
    assert server.events[-1][2].length == len(payload)


def test_ping_is_answered_with_pong():
    client, _, connection, _ = make_client()
    client.on_data(frame(FrameType.PING, b"ab"))
    assert bytes(connection.transmitted) == b"\x8a\x02ab"


def test_pong_with_own_payload_is_silent():
    client, server, _, _ = make_client()
    client.on_data(frame(FrameType.PONG, PING_PAYLOAD))
    assert [e[1] for e in server.events] == [EventType.CONNECT]
    client.on_data(frame(FrameType.PONG, b"other"))
    assert server.events[-1][1:] == (EventType.PONG, None, b"other")


def test_peer_close_is_echoed_and_completes_on_ack():
    client, server, connection, _ = make_client()
    client.on_data(frame(FrameType.DISCONNECT, b"\x03\xe8"))
    assert client.status is ClientStatus.DISCONNECTING
    assert bytes(connection.transmitted) == b"\x88\x02\x03\xe8"
    client.on_ack(4)
    assert client.status is ClientStatus.DISCONNECTED
    assert connection.connected() is False
    assert connection.closed_forcibly is True
    assert server.clients == []
    assert server.events[-1][1] is EventType.DISCONNECT


def test_peer_close_with_error_code_reports_error():
    client, server, _, _ = make_client()
    client.on_data(frame(FrameType.DISCONNECT, b"\x03\xea" + b"bad"))
    errors = [e for e in server.events if e[1] is EventType.ERROR]
    assert errors == [(client, EventType.ERROR, 1002, b"bad")]


def test_close_sends_code_and_reason():
    client, _, connection, _ = make_client()
    client.close(1000, "bye")
    assert bytes(connection.transmitted) == b"\x88\x05\x03\xe8bye"
    assert client.status is ClientStatus.CONNECTED


def test_queue_full_drops_messages(caplog):
    client, _, _, _ = make_client()
    assert client.queue_is_full() is False
    for _ in range(MAX_QUEUED_MESSAGES):
        client.text("x")
    assert client.queue_is_full() is True
    assert client.can_send() is False
    with caplog.at_level(logging.ERROR):
        client.text("dropped")
    assert "Too many messages queued" in caplog.text


def test_messages_dropped_when_not_connected():
    client, _, connection, _ = make_client()
    client.on_data(frame(FrameType.DISCONNECT, b""))
    sent = bytes(connection.transmitted)
    client.text("late")
    assert bytes(connection.transmitted) == sent
    assert client.queue_is_full() is True


def test_keep_alive_ping():
    client, _, connection, clock = make_client()
    client.keep_alive_period = 2
    assert client.keep_alive_period == 2
    clock.now = 1999
    client.on_poll()
    assert bytes(connection.transmitted) == b""
    clock.now = 2000
    client.on_poll()
    assert bytes(connection.transmitted) == bytes([0x89, len(PING_PAYLOAD)]) + PING_PAYLOAD


def test_printf_formats_and_returns_length():
    client, _, connection, _ = make_client()
    assert client.printf("n=%d", 5) == 3
    assert bytes(connection.transmitted) == b"\x81\x03n=5"


def test_remote_address_and_disconnect():
    client, server, connection, _ = make_client(remote_ip="192.0.2.1", remote_port=8080)
    assert client.remote_ip() == "192.0.2.1"
    assert client.remote_port() == 8080
    client.on_timeout()
    assert connection.closed_forcibly is True
    assert client.remote_ip() == "0.0.0.0"
    assert client.remote_port() == 0
    assert server.clients == []


def test_shared_buffer_released_after_send():
    client, server, connection, _ = make_client()
    buffer = MessageBuffer(b"shared")
    client.text(buffer)
    assert buffer.count == 1
    assert bytes(connection.transmitted) == b"\x81\x06shared"
    client.on_ack(8)
    assert buffer.count == 0
    assert buffer.can_delete() is True
    assert server.cleaned == 1


def test_disconnect_releases_queued_buffers():
    client, _, _, _ = make_client()
    buffer = MessageBuffer(b"data")
    client.binary(buffer)
    client.on_disconnect()
    assert buffer.count == 0
    assert client.client is None


def test_ping_not_sent_when_disconnecting():
    client, _, connection, _ = make_client()
    client.on_data(frame(FrameType.DISCONNECT, b""))
    sent = bytes(connection.transmitted)
    client.ping(b"x")
    assert bytes(connection.transmitted) == sent


@pytest.mark.parametrize("seconds", [0, 1, 30])
def test_keep_alive_round_trip(seconds):
    client, _, _, _ = make_client()
    client.keep_alive_period = seconds
    assert client.keep_alive_period == seconds