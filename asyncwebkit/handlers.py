"""Requests, responses, connections and callback-driven request handlers."""

from __future__ import annotations

import enum
from typing import Callable

from .auth import check_basic_authentication, check_digest_authentication


class HttpMethod(enum.IntFlag):
    """HTTP request methods, combinable into a set of accepted methods."""

    GET = 0b0000001
    POST = 0b0000010
    DELETE = 0b0000100
    PUT = 0b0001000
    PATCH = 0b0010000
    HEAD = 0b0100000
    OPTIONS = 0b1000000
    ANY = 0b1111111


class Connection:
    """An in-memory connection with a bounded outgoing buffer."""

    def __init__(self, capacity: int = 5744, remote_ip: str = "0.0.0.0", remote_port: int = 0):
        self.capacity = capacity
        self.remote_ip = remote_ip
        self.remote_port = remote_port
        self.pending = bytearray()
        self.transmitted = bytearray()
        self.closed_forcibly = False
        self.on_close: Callable[[Connection], None] | None = None
        self._open = True

    def space(self) -> int:
        """Number of bytes that can still be queued."""
        if not self._open:
            return 0
        return self.capacity - len(self.pending)

    def add(self, data: bytes) -> int:
        """Queue as much of ``data`` as fits; return the number of bytes queued."""
        count = min(len(data), self.space())
        self.pending += data[:count]
        return count

    def can_send(self) -> bool:
        return self._open

    def send(self) -> bool:
        """Flush queued bytes to the wire."""
        if not self._open:
            return False
        self.transmitted += self.pending
        self.pending.clear()
        return True

    def close(self, now: bool = False) -> None:
        if not self._open:
            return
        self._open = False
        self.closed_forcibly = now
        if self.on_close is not None:
            self.on_close(self)

    def connected(self) -> bool:
        return self._open


class Response:
    """An HTTP response with a status code, content type, body and headers."""

    def __init__(self, code: int = 200, content_type: str = "", content: bytes = b""):
        self.code = code
        self.content_type = content_type
        self.content = content
        self.headers: list[tuple[str, str]] = []
        self.send_content_length = True

    def add_header(self, name: str, value: str) -> None:
        self.headers.append((name, value))


class Request:
    """An incoming HTTP request bound to a connection."""

    def __init__(
        self,
        method: HttpMethod = HttpMethod.GET,
        url: str = "/",
        headers: dict[str, str] | None = None,
        content_type: str = "",
        client: Connection | None = None,
        version: int = 1,
    ):
        self.method = method
        self.url = url
        self.headers = dict(headers or {})
        self.content_type = content_type
        self.client = client if client is not None else Connection()
        self.version = version
        self.interesting_headers: list[str] = []
        self.responses: list[Response] = []

    @property
    def response(self) -> Response | None:
        """The last response sent, if any."""
        return self.responses[-1] if self.responses else None

    def has_header(self, name: str) -> bool:
        return self.get_header(name) is not None

    def get_header(self, name: str) -> str | None:
        """Return a header value, matching the name case-insensitively."""
        wanted = name.lower()
        return next((value for key, value in self.headers.items() if key.lower() == wanted), None)

    def add_interesting_header(self, name: str) -> None:
        if all(existing.lower() != name.lower() for existing in self.interesting_headers):
            self.interesting_headers.append(name)

    def send(self, response: Response | int) -> Response:
        """Send a response, or a bare response with the given status code."""
        if isinstance(response, int):
            response = Response(response)
        self.responses.append(response)
        return response

    def authenticate(self, username: str, password: str) -> bool:
        """Check the request's Authorization header against the credentials."""
        value = self.get_header("Authorization")
        if value is None:
            return False
        scheme, _, credentials = value.strip().partition(" ")
        scheme = scheme.lower()
        if scheme == "basic":
            return check_basic_authentication(credentials.strip(), username, password)
        if scheme == "digest":
            return check_digest_authentication(
                credentials, self.method.name, username, password, None, False, None, None, None
            )
        return False

    def request_authentication(self) -> Response:
        """Answer with 401 and a Basic authentication challenge."""
        response = Response(401)
        response.add_header("WWW-Authenticate", 'Basic realm="Login Required"')
        return self.send(response)


class WebHandler:
    """Base for objects that decide whether to serve a request and serve it."""

    def __init__(self) -> None:
        self.username = ""
        self.password = ""

    def can_handle(self, request: Request) -> bool:
        return False

    def handle_request(self, request: Request) -> None:
        pass

    def handle_upload(self, request: Request, filename: str, index: int, data: bytes, final: bool) -> None:
        pass

    def handle_body(self, request: Request, data: bytes, index: int, total: int) -> None:
        pass

    def is_request_handler_trivial(self) -> bool:
        return True


RequestCallback = Callable[[Request], None]
UploadCallback = Callable[[Request, str, int, bytes, bool], None]
BodyCallback = Callable[[Request, bytes, int, int], None]


class CallbackWebHandler(WebHandler):
    """Serves requests matching a URI and method set through user callbacks.

    A URI ending in ``*`` matches any URL with that prefix; otherwise the URL
    must equal the URI or lie below it.
    """

    def __init__(self, uri: str = "", method: HttpMethod = HttpMethod.ANY):
        super().__init__()
        self.uri = uri
        self.method = method
        self._on_request: RequestCallback | None = None
        self._on_upload: UploadCallback | None = None
        self._on_body: BodyCallback | None = None

    def on_request(self, fn: RequestCallback | None) -> None:
        self._on_request = fn

    def on_upload(self, fn: UploadCallback | None) -> None:
        self._on_upload = fn

    def on_body(self, fn: BodyCallback | None) -> None:
        self._on_body = fn

    def can_handle(self, request: Request) -> bool:
        if self._on_request is None:
            return False
        if not (self.method & request.method):
            return False
        if self.uri.endswith("*"):
            if not request.url.startswith(self.uri[:-1]):
                return False
        elif self.uri and self.uri != request.url and not request.url.startswith(self.uri + "/"):
            return False
        request.add_interesting_header("ANY")
        return True

    def handle_request(self, request: Request) -> None:
        if self._on_request is not None:
            self._on_request(request)
        else:
            request.send(500)

    def handle_upload(self, request: Request, filename: str, index: int, data: bytes, final: bool) -> None:
        if self._on_upload is not None:
            self._on_upload(request, filename, index, data, final)

    def handle_body(self, request: Request, data: bytes, index: int, total: int) -> None:
        if self._on_body is not None:
            self._on_body(request, data, index, total)

    def is_request_handler_trivial(self) -> bool:
        return self._on_request is None