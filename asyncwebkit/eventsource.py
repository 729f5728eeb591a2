"""Server-sent events: message framing, per-client queues and the handler."""

from __future__ import annotations

import re
from collections import deque
from http import HTTPStatus
from typing import Callable

from .handlers import Connection, HttpMethod, Request, Response, WebHandler
from .linkedlist import LinkedList

LAST_EVENT_ID = "Last-Event-ID"
EVENT_STREAM_MIMETYPE = "text/event-stream"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _to_bytes(message: bytes | str) -> bytes:
    return message.encode("utf-8") if isinstance(message, str) else bytes(message)


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) % 2**32 if match else 0


def _next_break(message: str, start: int) -> tuple[int, int] | None:
    """Return (line end, next line start) for the next line break, if any.

    A CR directly followed by LF, or LF directly followed by CR, is one break.
    """
    newline = message.find("\n", start)
    carriage = message.find("\r", start)
    if newline < 0 and carriage < 0:
        return None
    if newline >= 0 and carriage >= 0:
        first, second = min(newline, carriage), max(newline, carriage)
        return first, (second + 1 if second == first + 1 else first + 1)
    end = newline if newline >= 0 else carriage
    return end, end + 1


def generate_event_message(
    message: str | None, event: str | None = None, id: int = 0, reconnect: int = 0
) -> str:
    """Frame an event in the text/event-stream format.

    Zero ``id`` and ``reconnect`` are left out; each line of ``message``
    becomes a ``data:`` field and the event ends with a blank line.
    """
    parts: list[str] = []
    if reconnect:
        parts.append(f"retry: {reconnect}\r\n")
    if id:
        parts.append(f"id: {id}\r\n")
    if event is not None:
        parts.append(f"event: {event}\r\n")
    if message is not None:
        position = 0
        while True:
            found = _next_break(message, position)
            if found is None:
                parts.append(f"data: {message[position:]}\r\n\r\n")
                break
            line_end, next_line = found
            parts.append(f"data: {message[position:line_end]}\r\n")
            position = next_line
            if position == len(message):
                parts.append("\r\n")
                break
    return "".join(parts)


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


class EventSourceMessage:
    """One framed event waiting to be sent and acknowledged."""

    def __init__(self, data: bytes | str):
        self.data = _to_bytes(data)
        self._sent = 0
        self._acked = 0

    @property
    def finished(self) -> bool:
        """True once every byte has been acknowledged."""
        return self._acked == len(self.data)

    @property
    def sent(self) -> bool:
        """True once every byte has been handed to the connection."""
        return self._sent == len(self.data)

    def ack(self, length: int, time: int = 0) -> int:
        """Acknowledge ``length`` bytes; return the bytes left over for later messages."""
        total = len(self.data)
        if self._acked + length > total:
            extra = self._acked + length - total
            self._acked = total
            return extra
        self._acked += length
        return 0

    def send(self, client: Connection) -> int:
        """Hand the unsent bytes to ``client`` if they all fit; return how many went."""
        remaining = self.data[self._sent:]
        if client.space() < len(remaining):
            return 0
        count = client.add(remaining)
        if client.can_send():
            client.send()
        self._sent += count
        return count


class EventSourceClient:
    """A connection subscribed to an event source."""

    def __init__(self, request: Request, server: EventSource):
        self.client: Connection | None = request.client
        self.server = server
        value = request.get_header(LAST_EVENT_ID)
        self.last_id = _atoi(value) if value is not None else 0
        self._queue: deque[EventSourceMessage] = deque()
        self.client.on_close = lambda _connection: self.on_disconnect()
        server.add_client(self)

    @property
    def queue_length(self) -> int:
        """Number of messages not yet fully acknowledged."""
        return len(self._queue)

    def connected(self) -> bool:
        return self.client is not None and self.client.connected()

    def _queue_message(self, message: EventSourceMessage) -> None:
        if not self.connected():
            return
        self._queue.append(message)
        self._run_queue()

    def _run_queue(self) -> None:
        while self._queue and self._queue[0].finished:
            self._queue.popleft()
        if self.client is None:
            return
        for message in list(self._queue):
            if not message.sent:
                message.send(self.client)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    def write(self, message: bytes | str) -> None:
        """Queue raw bytes for this client."""
        self._queue_message(EventSourceMessage(message))

    def send(self, message: str | None, event: str | None = None, id: int = 0, reconnect: int = 0) -> None:
        """Queue a framed event for this client."""
        self._queue_message(EventSourceMessage(generate_event_message(message, event, id, reconnect)))

    def on_ack(self, length: int, time: int = 0) -> None:
        while length and self._queue:
            head = self._queue[0]
            length = head.ack(length, time)
            if head.finished:
                self._queue.popleft()
        self._run_queue()

    def on_poll(self) -> None:
        if self._queue:
            self._run_queue()

    def on_timeout(self, time: int = 0) -> None:
        if self.client is not None:
            self.client.close(True)

    def on_disconnect(self) -> None:
        self.client = None
        self.server.handle_disconnect(self)


ConnectCallback = Callable[[EventSourceClient], None]


class EventSource(WebHandler):
    """Handler that serves an event stream on ``url`` and broadcasts events."""

    def __init__(self, url: str):
        super().__init__()
        self.url = url
        self.clients: LinkedList[EventSourceClient] = LinkedList()
        self._semaphore = False
        self._connect_callback: ConnectCallback | None = None

    def close(self) -> None:
        """Close every client connection."""
        for client in self.clients:
            if client.connected():
                self._semaphore = True
            client.close()

    def on_connect(self, callback: ConnectCallback | None) -> None:
        if self.clients.is_empty():
            self._semaphore = False
        self._connect_callback = callback

    def send(self, message: str | None, event: str | None = None, id: int = 0, reconnect: int = 0) -> None:
        """Broadcast an event to every connected client."""
        if self.clients.is_empty():
            self._semaphore = False
            return
        framed = generate_event_message(message, event, id, reconnect)
        for client in self.clients:
            if client.connected() and not self._semaphore:
                client.write(framed)

    def count(self) -> int:
        """Number of connected clients."""
        return self.clients.count_if(lambda client: client.connected())

    def add_client(self, client: EventSourceClient) -> None:
        if not self._semaphore:
            self.clients.add(client)
            if self._connect_callback is not None:
                self._connect_callback(client)

    def handle_disconnect(self, client: EventSourceClient) -> None:
        self._semaphore = True
        self.clients.remove(client)
        self._semaphore = False

    def can_handle(self, request: Request) -> bool:
        if request.method != HttpMethod.GET or request.url != self.url:
            return False
        request.add_interesting_header(LAST_EVENT_ID)
        return True

    def handle_request(self, request: Request) -> None:
        if self._semaphore:
            return
        if self.username and self.password and not request.authenticate(self.username, self.password):
            request.request_authentication()
            return
        request.send(EventSourceResponse(self))


class EventSourceResponse(Response):
    """The response that opens an event stream and then hands the connection over."""

    def __init__(self, server: EventSource):
        super().__init__(200, EVENT_STREAM_MIMETYPE)
        self.server = server
        self.send_content_length = False
        self.awaiting_ack = False
        self.add_header("Cache-Control", "no-cache")
        self.add_header("Connection", "keep-alive")

    def respond(self, request: Request) -> None:
        """Write the response head to the request's connection."""
        request.client.add(_assemble_head(self, request.version))
        request.client.send()
        self.awaiting_ack = True

    def ack(self, request: Request, length: int, time: int = 0) -> int:
        """Once the head is acknowledged, subscribe the connection as a client."""
        if length:
            EventSourceClient(request, self.server)
        return 0