"""The WebSocket endpoint: upgrade handshake, client registry and broadcasting."""

from __future__ import annotations

import base64
import hashlib
import re
from http import HTTPStatus
from typing import Callable

from .handlers import HttpMethod, Request, Response, WebHandler
from .linkedlist import LinkedList
from .wsclient import ClientStatus, EventType, WebSocketClient
from .wsmessages import FrameType, MessageBuffer, WebSocketMessage

WS_STR_CONNECTION = "Connection"
WS_STR_UPGRADE = "Upgrade"
WS_STR_ORIGIN = "Origin"
WS_STR_VERSION = "Sec-WebSocket-Version"
WS_STR_KEY = "Sec-WebSocket-Key"
WS_STR_PROTOCOL = "Sec-WebSocket-Protocol"
WS_STR_ACCEPT = "Sec-WebSocket-Accept"
WS_STR_UUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
WS_VERSION = 13

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

EventHandler = Callable[["WebSocket", WebSocketClient, EventType, object, bytes], None]


def accept_key(key: str) -> str:
    """Return the Sec-WebSocket-Accept value answering ``key``."""
    digest = hashlib.sha1((key + WS_STR_UUID).encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def _to_int(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _is_websocket_upgrade(request: Request) -> bool:
    upgrade = request.get_header(WS_STR_UPGRADE)
    return upgrade is not None and upgrade.strip().lower() == "websocket"


def _assemble_head(response: Response, version: int) -> bytes:
    try:
        phrase = HTTPStatus(response.code).phrase
    except ValueError:
        phrase = ""
    lines = [f"HTTP/1.{version} {response.code} {phrase}".rstrip()]
    if response.content_type:
        lines.append(f"Content-Type: {response.content_type}")
    if response.send_content_length:
        lines.append(f"Content-Length: {len(response.content)}")
    lines.extend(f"{name}: {value}" for name, value in response.headers)
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


class WebSocket(WebHandler):
    """Handler that upgrades requests on ``url`` and manages the resulting clients."""

    def __init__(self, url: str):
        super().__init__()
        self.url = url
        self.clients: LinkedList[WebSocketClient] = LinkedList()
        self.buffers: LinkedList[MessageBuffer] = LinkedList()
        self._next_id = 1
        self._event_handler: EventHandler | None = None
        self._enabled = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self, enabled: bool) -> None:
        self._enabled = enabled

    def available_for_write_all(self) -> bool:
        """True when no client's queue is full."""
        return not any(client.queue_is_full() for client in self.clients)

    def available_for_write(self, id: int) -> bool:
        return not any(client.queue_is_full() and client.id == id for client in self.clients)

    def count(self) -> int:
        """Number of connected clients."""
        return self.clients.count_if(lambda client: client.status is ClientStatus.CONNECTED)

    def client(self, id: int) -> WebSocketClient | None:
        """Return the connected client with ``id``, if any."""
        return next(
            (c for c in self.clients if c.id == id and c.status is ClientStatus.CONNECTED),
            None,
        )

    def has_client(self, id: int) -> bool:
        return self.client(id) is not None

    def _connected(self) -> list[WebSocketClient]:
        return [c for c in self.clients if c.status is ClientStatus.CONNECTED]

    def close(self, id: int, code: int = 0, message: str | bytes | None = None) -> None:
        client = self.client(id)
        if client is not None:
            client.close(code, message)

    def close_all(self, code: int = 0, message: str | bytes | None = None) -> None:
        for client in self._connected():
            client.close(code, message)

    def ping(self, id: int, data: bytes | None = None) -> None:
        client = self.client(id)
        if client is not None:
            client.ping(data)

    def ping_all(self, data: bytes | None = None) -> None:
        for client in self._connected():
            client.ping(data)

    def text(self, id: int, message: str | bytes | MessageBuffer) -> None:
        client = self.client(id)
        if client is not None:
            client.text(message)

    def _broadcast(self, message: str | bytes | MessageBuffer, binary: bool) -> None:
        buffer = message if isinstance(message, MessageBuffer) else self.make_buffer(message)
        buffer.lock()
        for client in self._connected():
            if binary:
                client.binary(buffer)
            else:
                client.text(buffer)
        buffer.unlock()
        self.clean_buffers()

    def text_all(self, message: str | bytes | MessageBuffer) -> None:
        """Send text to every connected client through one shared buffer."""
        self._broadcast(message, binary=False)

    def binary(self, id: int, message: str | bytes | MessageBuffer) -> None:
        client = self.client(id)
        if client is not None:
            client.binary(message)

    def binary_all(self, message: str | bytes | MessageBuffer) -> None:
        """Send binary data to every connected client through one shared buffer."""
        self._broadcast(message, binary=True)

    def message(self, id: int, message: WebSocketMessage) -> None:
        client = self.client(id)
        if client is not None:
            client.message(message)

    def message_all(self, message: WebSocketMessage) -> None:
        for client in self._connected():
            client.message(message)
        self.clean_buffers()

    def printf(self, id: int, format: str, *args: object) -> int:
        """Send formatted text to one client; return its length, or 0 if absent."""
        client = self.client(id)
        if client is None:
            return 0
        return client.printf(format, *args)

    def printf_all(self, format: str, *args: object) -> int:
        """Send formatted text to every connected client; return its length."""
        payload = (format % args if args else format).encode("utf-8")
        self.text_all(self.make_buffer(payload))
        return len(payload)

    def on_event(self, handler: EventHandler | None) -> None:
        self._event_handler = handler

    def next_id(self) -> int:
        """Hand out the next client id."""
        value = self._next_id
        self._next_id += 1
        return value

    def add_client(self, client: WebSocketClient) -> None:
        self.clients.add(client)

    def handle_disconnect(self, client: WebSocketClient) -> None:
        self.clients.remove_first(lambda c: c.id == client.id)

    def handle_event(self, client: WebSocketClient, type: EventType, arg: object, data: bytes) -> None:
        if self._event_handler is not None:
            self._event_handler(self, client, type, arg, data)

    def can_handle(self, request: Request) -> bool:
        if not self._enabled:
            return False
        if request.method != HttpMethod.GET or request.url != self.url or not _is_websocket_upgrade(request):
            return False
        for name in (WS_STR_CONNECTION, WS_STR_UPGRADE, WS_STR_ORIGIN, WS_STR_VERSION, WS_STR_KEY, WS_STR_PROTOCOL):
            request.add_interesting_header(name)
        return True

    def handle_request(self, request: Request) -> None:
        version = request.get_header(WS_STR_VERSION)
        key = request.get_header(WS_STR_KEY)
        if version is None or key is None:
            request.send(400)
            return
        if self.username and self.password and not request.authenticate(self.username, self.password):
            request.request_authentication()
            return
        if _to_int(version) != WS_VERSION:
            response = Response(400)
            response.add_header(WS_STR_VERSION, str(WS_VERSION))
            request.send(response)
            return
        response = WebSocketResponse(key, self)
        protocol = request.get_header(WS_STR_PROTOCOL)
        if protocol is not None:
            response.add_header(WS_STR_PROTOCOL, protocol)
        request.send(response)

    def make_buffer(self, data: bytes | str | int = 0) -> MessageBuffer:
        """Create a tracked shared buffer from bytes, text or a size."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        buffer = MessageBuffer(data)
        self.buffers.add(buffer)
        return buffer

    def clean_buffers(self) -> None:
        """Forget buffers that are unlocked and no longer used by any message."""
        for buffer in self.buffers:
            if buffer.can_delete():
                self.buffers.remove(buffer)


class WebSocketResponse(Response):
    """The 101 response that completes the handshake and hands the connection over."""

    def __init__(self, key: str, server: WebSocket):
        super().__init__(101)
        self.server = server
        self.send_content_length = False
        self.awaiting_ack = False
        self.add_header(WS_STR_CONNECTION, WS_STR_UPGRADE)
        self.add_header(WS_STR_UPGRADE, "websocket")
        self.add_header(WS_STR_ACCEPT, accept_key(key))

    def respond(self, request: Request) -> None:
        """Write the response head to the request's connection."""
        request.client.add(_assemble_head(self, request.version))
        request.client.send()
        self.awaiting_ack = True

    def ack(self, request: Request, length: int, time: int = 0) -> int:
        """Once the head is acknowledged, turn the connection into a client."""
        if length:
            WebSocketClient(request, self.server)
        return 0


__all__ = ["FrameType", "WebSocket", "WebSocketResponse", "accept_key"]