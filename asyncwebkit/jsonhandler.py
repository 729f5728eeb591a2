"""JSON responses and handlers that collect JSON request bodies."""

from __future__ import annotations

from typing import Callable

from .handlers import HttpMethod, Request, Response, WebHandler

JSON_MIMETYPE = "application/json"


def copy_chunk(source: bytes, skip: int, length: int) -> bytes:
    """Return up to ``length`` bytes of ``source`` after skipping ``skip`` bytes."""
    return bytes(source[skip:skip + length])


class JsonResponse(Response):
    """A response whose body is the JSON text held in ``root``."""

    def __init__(self, root: str = ""):
        super().__init__(200, JSON_MIMETYPE)
        self.root = root
        self.content_length = 0
        self.is_valid = False

    def _encoded(self) -> bytes:
        return self.root.encode("utf-8")

    def set_length(self) -> int:
        """Fix the content length from the current body; a non-empty body becomes valid."""
        self.content_length = len(self._encoded())
        if self.content_length:
            self.is_valid = True
        return self.content_length

    def size(self) -> int:
        return len(self._encoded())

    def fill_buffer(self, sent_length: int, max_len: int) -> bytes:
        """Return the next piece of the body after ``sent_length`` bytes."""
        return copy_chunk(self._encoded(), sent_length, max_len)


class _JsonBodyHandler(WebHandler):
    """Accepts JSON requests on a URI and collects their bodies."""

    def __init__(self, uri: str, callback, max_content_length: int):
        super().__init__()
        self.uri = uri
        self.method = HttpMethod.POST | HttpMethod.PUT | HttpMethod.PATCH
        self.max_content_length = max_content_length
        self.content_length = 0
        self.body: bytearray | None = None
        self._callback = callback

    def _accepts(self, request: Request) -> bool:
        if self._callback is None:
            return False
        if not (self.method & request.method):
            return False
        if self.uri and self.uri != request.url and not request.url.startswith(self.uri + "/"):
            return False
        if request.content_type.lower() != JSON_MIMETYPE:
            return False
        request.add_interesting_header("ANY")
        return True

    def _collect(self, data: bytes, index: int, total: int) -> None:
        if self._callback is None:
            return
        self.content_length = total
        if total > 0 and self.body is None and total < self.max_content_length:
            self.body = bytearray(total)
        if self.body is not None:
            end = min(index + len(data), len(self.body))
            if end > index:
                self.body[index:end] = data[:end - index]


JsonCallback = Callable[[Request, object], None]
RawJsonCallback = Callable[[Request, str], None]


class CallbackJsonWebHandler(_JsonBodyHandler):
    """Collects JSON bodies of up to 8096 bytes for a request callback."""

    def __init__(self, uri: str, on_request: JsonCallback | None = None):
        super().__init__(uri, on_request, 8096)

    def on_request(self, fn: JsonCallback | None) -> None:
        self._callback = fn

    def can_handle(self, request: Request) -> bool:
        return self._accepts(request)

    def handle_upload(self, request: Request, filename: str, index: int, data: bytes, final: bool) -> None:
        """Uploads carry no JSON body; leave them to the generic handler behaviour."""
        return super().handle_upload(request, filename, index, data, final)

    def handle_body(self, request: Request, data: bytes, index: int, total: int) -> None:
        self._collect(data, index, total)

    def is_request_handler_trivial(self) -> bool:
        return self._callback is None


class RawJsonWebHandler(_JsonBodyHandler):
    """Collects JSON bodies of up to 16384 bytes and passes the raw text on."""

    def __init__(self, uri: str, on_request: RawJsonCallback | None = None):
        super().__init__(uri, on_request, 16384)

    def on_request(self, fn: RawJsonCallback | None) -> None:
        self._callback = fn

    def can_handle(self, request: Request) -> bool:
        return self._accepts(request)

    def handle_request(self, request: Request) -> None:
        if self._callback is None:
            request.send(500)
            return
        if self.body:
            text = bytes(self.body).decode("utf-8", errors="replace")
            self.body = None
            self._callback(request, text)
        else:
            request.send(413 if self.content_length > self.max_content_length else 400)

    def handle_upload(self, request: Request, filename: str, index: int, data: bytes, final: bool) -> None:
        """Uploads carry no JSON body; leave them to the generic handler behaviour."""
        return super().handle_upload(request, filename, index, data, final)

    def handle_body(self, request: Request, data: bytes, index: int, total: int) -> None:
        self._collect(data, index, total)

    def is_request_handler_trivial(self) -> bool:
        return self._callback is None