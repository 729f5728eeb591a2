"""A WebSocket connection: incoming frame parsing and outgoing queues."""

from __future__ import annotations

import dataclasses
import enum
import logging
import time
from collections import deque
from typing import Callable, Protocol

from .handlers import Connection, Request
from .wsmessages import (
    BasicMessage,
    ControlFrame,
    FrameType,
    MessageBuffer,
    MultiMessage,
    WebSocketMessage,
    send_frame_window,
)

logger = logging.getLogger(__name__)

MAX_QUEUED_MESSAGES = 32
PING_PAYLOAD = b"asyncwebkit-keepalive"
_MAX_CLOSE_REASON = 123


class ClientStatus(enum.Enum):
    """Lifecycle of a WebSocket client."""

    DISCONNECTED = 0
    CONNECTED = 1
    DISCONNECTING = 2


class EventType(enum.Enum):
    """Events reported to the server's event handler."""

    CONNECT = 0
    DISCONNECT = 1
    PONG = 2
    ERROR = 3
    DATA = 4


@dataclasses.dataclass
class FrameInfo:
    """State of the frame currently being received.

    ``message_opcode`` and ``num`` describe the message a fragment belongs to;
    ``opcode`` is the frame's own opcode, which may be a continuation.
    """

    message_opcode: int = 0
    num: int = 0
    final: bool = False
    masked: bool = False
    opcode: int = 0
    length: int = 0
    mask: bytes = b"\x00\x00\x00\x00"
    index: int = 0


class ClientServer(Protocol):
    """What a client needs from the WebSocket server that owns it."""

    def next_id(self) -> int: ...

    def add_client(self, client: WebSocketClient) -> None: ...

    def handle_disconnect(self, client: WebSocketClient) -> None: ...

    def handle_event(self, client: WebSocketClient, type: EventType, arg: object, data: bytes) -> None: ...

    def clean_buffers(self) -> None: ...


def _default_clock() -> int:
    return int(time.monotonic() * 1000)


def _discard(message: WebSocketMessage) -> None:
    if isinstance(message, MultiMessage):
        message.detach()


class WebSocketClient:
    """One upgraded connection served by a WebSocket server."""

    def __init__(self, request: Request, server: ClientServer, clock: Callable[[], int] | None = None):
        self.client: Connection | None = request.client
        self.server = server
        self.id = server.next_id()
        self.status = ClientStatus.CONNECTED
        self.temp_object: object = None
        self.last_error: int | None = None
        self._clock = clock or _default_clock
        self._control_queue: deque[ControlFrame] = deque()
        self._message_queue: deque[WebSocketMessage] = deque()
        self._receiving = False
        self._info = FrameInfo()
        self._last_message_time = self._clock()
        self._keep_alive_ms = 0
        self.client.on_close = lambda _connection: self.on_disconnect()
        server.add_client(self)
        server.handle_event(self, EventType.CONNECT, None, b"")

    @property
    def frame_info(self) -> FrameInfo:
        """A copy of the state of the frame being received."""
        return dataclasses.replace(self._info)

    @property
    def keep_alive_period(self) -> int:
        """Automatic ping period in seconds; zero disables it."""
        return (self._keep_alive_ms // 1000) & 0xFFFF

    @keep_alive_period.setter
    def keep_alive_period(self, seconds: int) -> None:
        self._keep_alive_ms = (seconds & 0xFFFF) * 1000

    # queues

    def _run_queue(self) -> None:
        while self._message_queue and self._message_queue[0].finished:
            _discard(self._message_queue.popleft())
        if self.client is None:
            return
        head_between = not self._message_queue or self._message_queue[0].between_frames()
        if (
            self._control_queue
            and head_between
            and send_frame_window(self.client) > self._control_queue[0].length - 1
        ):
            self._control_queue[0].send(self.client)
        elif (
            self._message_queue
            and self._message_queue[0].between_frames()
            and send_frame_window(self.client)
        ):
            self._message_queue[0].send(self.client)

    def _queue_message(self, message: WebSocketMessage | None) -> None:
        if message is None:
            return
        if self.status is not ClientStatus.CONNECTED:
            _discard(message)
            return
        if len(self._message_queue) >= MAX_QUEUED_MESSAGES:
            logger.error("Too many messages queued")
            _discard(message)
        else:
            self._message_queue.append(message)
        if self.client is not None and self.client.can_send():
            self._run_queue()

    def _queue_control(self, frame: ControlFrame) -> None:
        self._control_queue.append(frame)
        if self.client is not None and self.client.can_send():
            self._run_queue()

    def _clear_queues(self) -> None:
        while self._message_queue:
            _discard(self._message_queue.popleft())
        self._control_queue.clear()

    # public API

    def close(self, code: int = 0, message: str | bytes | None = None) -> None:
        """Queue a close frame carrying ``code`` and an optional reason."""
        if self.status is not ClientStatus.CONNECTED:
            return
        if code:
            payload = (code & 0xFFFF).to_bytes(2, "big")
            if message is not None:
                reason = message.encode("utf-8") if isinstance(message, str) else bytes(message)
                payload += reason[:_MAX_CLOSE_REASON]
            self._queue_control(ControlFrame(FrameType.DISCONNECT, payload))
            return
        self._queue_control(ControlFrame(FrameType.DISCONNECT))

    def ping(self, data: bytes | None = None) -> None:
        if self.status is ClientStatus.CONNECTED:
            self._queue_control(ControlFrame(FrameType.PING, data))

    def message(self, message: WebSocketMessage | None) -> None:
        self._queue_message(message)

    def queue_is_full(self) -> bool:
        return len(self._message_queue) >= MAX_QUEUED_MESSAGES or self.status is not ClientStatus.CONNECTED

    def can_send(self) -> bool:
        return len(self._message_queue) < MAX_QUEUED_MESSAGES

    def printf(self, format: str, *args: object) -> int:
        """Send ``format % args`` as text; return its length in bytes."""
        text = (format % args if args else format).encode("utf-8")
        self.text(text)
        return len(text)

    def text(self, message: str | bytes | MessageBuffer) -> None:
        if isinstance(message, MessageBuffer):
            self._queue_message(MultiMessage(message))
        else:
            self._queue_message(BasicMessage(message))

    def binary(self, message: str | bytes | MessageBuffer) -> None:
        if isinstance(message, MessageBuffer):
            self._queue_message(MultiMessage(message, FrameType.BINARY))
        else:
            self._queue_message(BasicMessage(message, FrameType.BINARY))

    def remote_ip(self) -> str:
        return "0.0.0.0" if self.client is None else self.client.remote_ip

    def remote_port(self) -> int:
        return 0 if self.client is None else self.client.remote_port

    # connection callbacks

    def on_ack(self, length: int, time: int = 0) -> None:
        self._last_message_time = self._clock()
        if self._control_queue:
            head = self._control_queue[0]
            if head.finished:
                length -= head.length
                if self.status is ClientStatus.DISCONNECTING and head.opcode == FrameType.DISCONNECT:
                    self._control_queue.popleft()
                    self.status = ClientStatus.DISCONNECTED
                    if self.client is not None:
                        self.client.close(True)
                    return
                self._control_queue.popleft()
        if length > 0 and self._message_queue:
            self._message_queue[0].ack(length, time)
        self.server.clean_buffers()
        self._run_queue()

    def on_error(self, error: int) -> None:
        """Remember the last connection error; the connection stays as it is."""
        self.last_error = error

    def on_poll(self) -> None:
        if self.client is None:
            return
        if self.client.can_send() and (self._control_queue or self._message_queue):
            self._run_queue()
        elif (
            self._keep_alive_ms > 0
            and not self._control_queue
            and not self._message_queue
            and self._clock() - self._last_message_time >= self._keep_alive_ms
        ):
            self.ping(PING_PAYLOAD)

    def on_timeout(self, time: int = 0) -> None:
        if self.client is not None:
            self.client.close(True)

    def on_disconnect(self) -> None:
        self.client = None
        self.server.handle_disconnect(self)
        self._clear_queues()
        self.server.handle_event(self, EventType.DISCONNECT, None, b"")

    def _parse_header(self, data: bytes, pos: int) -> int | None:
        """Read a frame header at ``pos``; return the payload start or None."""
        if len(data) - pos < 2:
            return None
        first, second = data[pos], data[pos + 1]
        length = second & 0x7F
        masked = bool(second & 0x80)
        start = pos + 2
        extra = 2 if length == 126 else 8 if length == 127 else 0
        if len(data) - start < extra + (4 if masked else 0):
            return None
        if extra:
            length = int.from_bytes(data[start:start + extra], "big")
            start += extra
        info = self._info
        info.index = 0
        info.final = bool(first & 0x80)
        info.opcode = first & 0x0F
        info.masked = masked
        info.length = length
        if masked:
            info.mask = bytes(data[start:start + 4])
            start += 4
        return start

    def on_data(self, data: bytes) -> None:
        """Parse incoming bytes into frames and report them."""
        self._last_message_time = self._clock()
        data = bytes(data)
        pos = 0
        while pos < len(data):
            if not self._receiving:
                start = self._parse_header(data, pos)
                if start is None:
                    break
                pos = start
            info = self._info
            count = min(info.length - info.index, len(data) - pos)
            chunk = data[pos:pos + count]
            if info.masked:
                chunk = bytes(byte ^ info.mask[(info.index + i) % 4] for i, byte in enumerate(chunk))

            if count + info.index < info.length:
                self._receiving = True
                if info.index == 0:
                    if info.opcode:
                        info.message_opcode = info.opcode
                        info.num = 0
                    else:
                        info.num += 1
                self.server.handle_event(self, EventType.DATA, self.frame_info, chunk)
                info.index += count
            elif count + info.index == info.length:
                self._receiving = False
                self._complete_frame(chunk)
            else:
                break
            pos += count

    def _complete_frame(self, chunk: bytes) -> None:
        opcode = self._info.opcode
        if opcode == FrameType.DISCONNECT:
            if len(chunk) >= 2:
                reason_code = int.from_bytes(chunk[:2], "big")
                reason = chunk[2:].split(b"\x00", 1)[0]
                if reason_code > 1001:
                    self.server.handle_event(self, EventType.ERROR, reason_code, reason)
            if self.status is ClientStatus.DISCONNECTING:
                self.status = ClientStatus.DISCONNECTED
                if self.client is not None:
                    self.client.close(True)
            else:
                self.status = ClientStatus.DISCONNECTING
                self._queue_control(ControlFrame(FrameType.DISCONNECT, chunk))
        elif opcode == FrameType.PING:
            self._queue_control(ControlFrame(FrameType.PONG, chunk))
        elif opcode == FrameType.PONG:
            if chunk != PING_PAYLOAD:
                self.server.handle_event(self, EventType.PONG, None, chunk)
        elif opcode < 8:
            self.server.handle_event(self, EventType.DATA, self.frame_info, chunk)