"""WebSocket frames, shared message buffers and outgoing message queues."""

from __future__ import annotations

import enum
import random

from .handlers import Connection

_MAX_CONTROL_PAYLOAD = 125
_MAX_SHORT_LENGTH = 125
_MAX_EXTENDED_LENGTH = 0xFFFF


class FrameType(enum.IntEnum):
    """WebSocket frame opcodes."""

    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    DISCONNECT = 0x8
    PING = 0x9
    PONG = 0xA


class MessageStatus(enum.Enum):
    """Progress of an outgoing data message."""

    SENDING = enum.auto()
    SENT = enum.auto()
    ERROR = enum.auto()


def send_frame_window(client: Connection) -> int:
    """Return how many payload bytes a frame could carry right now."""
    if not client.can_send():
        return 0
    space = client.space()
    if space < 9:
        return 0
    return space - 8


def _frame_header(final: bool, opcode: int, length: int, key: bytes) -> bytes:
    first = (opcode & 0x0F) | (0x80 if final else 0)
    if length <= _MAX_SHORT_LENGTH:
        header = bytearray((first, length))
    else:
        header = bytearray((first, 126)) + length.to_bytes(2, "big")
    if key:
        header[1] |= 0x80
        header += key
    return bytes(header)


def send_frame(client: Connection, final: bool, opcode: int, mask: bool, data: bytes) -> int:
    """Write one frame to ``client``, shortening the payload to fit.

    Return the number of payload bytes written, or 0 on failure.
    """
    if not client.can_send():
        return 0
    space = client.space()
    if space < 2:
        return 0
    length = len(data)
    key = bytes(random.randrange(0xFF) for _ in range(4)) if length and mask else b""
    head_length = 2 + len(key) + (2 if length > _MAX_SHORT_LENGTH else 0)
    if space < head_length:
        return 0
    length = min(length, space - head_length, _MAX_EXTENDED_LENGTH)
    if not length:
        key = b""
    header = _frame_header(final, opcode, length, key)
    if client.add(header) != len(header):
        return 0
    if length:
        payload = bytes(data[:length])
        if key:
            payload = bytes(byte ^ key[i % 4] for i, byte in enumerate(payload))
        if client.add(payload) != length:
            return 0
    if not client.send():
        return 0
    return length


class MessageBuffer:
    """Payload shared by several queued messages, counted by its users."""

    def __init__(self, data: bytes | int = 0):
        self.data = bytearray(data)
        self.locked = False
        self.count = 0

    def __len__(self) -> int:
        return len(self.data)

    @property
    def length(self) -> int:
        return len(self.data)

    def reserve(self, size: int) -> bool:
        """Replace the contents with ``size`` zero bytes."""
        self.data = bytearray(size)
        return True

    def lock(self) -> None:
        self.locked = True

    def unlock(self) -> None:
        self.locked = False

    def acquire(self) -> None:
        """Register one more user of the buffer."""
        self.count += 1

    def release(self) -> None:
        """Drop one user of the buffer; never goes below zero."""
        if self.count > 0:
            self.count -= 1

    def can_delete(self) -> bool:
        return not self.count and not self.locked


class ControlFrame:
    """A single close, ping or pong frame with at most 125 payload bytes."""

    def __init__(self, opcode: int, data: bytes | None = None, mask: bool = False):
        self.opcode = opcode
        self.data = bytes(data or b"")[:_MAX_CONTROL_PAYLOAD]
        self.mask = bool(self.data) and mask
        self.finished = False

    @property
    def length(self) -> int:
        """Size of the frame on the wire without a mask key."""
        return len(self.data) + 2

    def send(self, client: Connection) -> int:
        self.finished = True
        return send_frame(client, True, self.opcode & 0x0F, self.mask, self.data)


class WebSocketMessage:
    """Base of outgoing data messages.

    A bare message has no payload and is in the error state, so it counts as
    finished and never sends anything.
    """

    def __init__(self, opcode: int = FrameType.TEXT, mask: bool = False):
        self.opcode = opcode
        self.mask = mask
        self.status = MessageStatus.ERROR
        self._data = b""
        self.bytes_sent = 0
        self.ack_expected = 0
        self.bytes_acked = 0

    @property
    def length(self) -> int:
        return len(self._data)

    @property
    def finished(self) -> bool:
        return self.status is not MessageStatus.SENDING

    def ack(self, length: int, time: int = 0) -> None:
        """Count ``length`` bytes acknowledged by the peer."""
        self.bytes_acked += length

    def send(self, client: Connection) -> int:
        """Send the next fragment while the message is still sending."""
        if self.status is not MessageStatus.SENDING:
            return 0
        return self._send_fragment(client)

    def between_frames(self) -> bool:
        return False

    def _send_fragment(self, client: Connection) -> int:
        to_send = min(self.length - self.bytes_sent, send_frame_window(client))
        start = self.bytes_sent
        self.bytes_sent += to_send
        self.ack_expected += to_send + (2 if to_send < 126 else 4) + (4 if self.mask else 0)
        final = self.bytes_sent == self.length
        opcode = self.opcode if to_send and self.bytes_sent == to_send else FrameType.CONTINUATION
        written = send_frame(client, final, opcode, self.mask, self._data[start:start + to_send])
        self.status = MessageStatus.SENDING
        if to_send and written != to_send:
            self.bytes_sent -= to_send - written
            self.ack_expected -= to_send - written
        return written


class BasicMessage(WebSocketMessage):
    """A message holding its own copy of the payload."""

    def __init__(self, data: bytes | str = b"", opcode: int = FrameType.TEXT, mask: bool = False):
        super().__init__(opcode & 0x07, mask)
        self._data = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        self.status = MessageStatus.SENDING

    def ack(self, length: int, time: int = 0) -> None:
        super().ack(length, time)
        if self.bytes_sent == self.length and self.bytes_acked == self.ack_expected:
            self.status = MessageStatus.SENT

    def send(self, client: Connection) -> int:
        if self.status is not MessageStatus.SENDING:
            return 0
        if self.bytes_acked < self.ack_expected:
            return 0
        if self.bytes_sent == self.length:
            if self.bytes_acked == self.ack_expected:
                self.status = MessageStatus.SENT
            return 0
        if self.bytes_sent > self.length:
            self.status = MessageStatus.ERROR
            return 0
        return self._send_fragment(client)

    def between_frames(self) -> bool:
        return self.bytes_acked == self.ack_expected


class MultiMessage(WebSocketMessage):
    """A message sending the contents of a shared :class:`MessageBuffer`."""

    def __init__(self, buffer: MessageBuffer | None, opcode: int = FrameType.TEXT, mask: bool = False):
        super().__init__(opcode & 0x07, mask)
        self.buffer = buffer
        if buffer is not None:
            self._data = bytes(buffer.data)
            buffer.acquire()
            self.status = MessageStatus.SENDING
        else:
            self.status = MessageStatus.ERROR

    def ack(self, length: int, time: int = 0) -> None:
        super().ack(length, time)
        if self.bytes_sent >= self.length and self.bytes_acked >= self.ack_expected:
            self.status = MessageStatus.SENT

    def send(self, client: Connection) -> int:
        if self.status is not MessageStatus.SENDING:
            return 0
        if self.bytes_acked < self.ack_expected:
            return 0
        if self.bytes_sent == self.length:
            self.status = MessageStatus.SENT
            return 0
        if self.bytes_sent > self.length:
            self.status = MessageStatus.ERROR
            return 0
        return self._send_fragment(client)

    def between_frames(self) -> bool:
        return self.bytes_acked == self.ack_expected

    def detach(self) -> None:
        """Stop using the shared buffer."""
        if self.buffer is not None:
            self.buffer.release()
            self.buffer = None