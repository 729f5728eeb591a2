import base64

import pytest

from asyncwebkit.handlers import (
    CallbackWebHandler,
    Connection,
    HttpMethod,
    Request,
    Response,
    WebHandler,
)


def _handler(uri="", method=HttpMethod.ANY):
    handler = CallbackWebHandler(uri, method)
    handler.on_request(lambda request: request.send(200))
    return handler


@pytest.mark.parametrize("url,expected", [
    ("/api", True),
    ("/api/items", True),
    ("/apiv2", False),
    ("/other", False),
])
def test_uri_matching(url, expected):
    assert _handler("/api").can_handle(Request(url=url)) is expected


@pytest.mark.parametrize("url,expected", [
    ("/files", True),
    ("/files/a.txt", True),
    ("/filesystem", True),
    ("/fil", False),
])
def test_wildcard_uri(url, expected):
    assert _handler("/files*").can_handle(Request(url=url)) is expected


def test_empty_uri_matches_everything():
    assert _handler("").can_handle(Request(url="/anything/at/all")) is True


def test_method_mismatch():
    handler = _handler("/api", HttpMethod.POST | HttpMethod.PUT)
    assert handler.can_handle(Request(HttpMethod.GET, "/api")) is False
    assert handler.can_handle(Request(HttpMethod.PUT, "/api")) is True


def test_can_handle_registers_interesting_header():
    request = Request(url="/api")
    assert _handler("/api").can_handle(request)
    assert request.interesting_headers == ["ANY"]


def test_without_request_callback():
    handler = CallbackWebHandler("/api")
    assert handler.can_handle(Request(url="/api")) is False
    assert handler.is_request_handler_trivial() is True
    request = Request(url="/api")
    handler.handle_request(request)
    assert request.response.code == 500


def test_handle_request_calls_callback():
    seen = []
    handler = CallbackWebHandler("/api")
    handler.on_request(seen.append)
    request = Request(url="/api")
    handler.handle_request(request)
    assert seen == [request]
    assert handler.is_request_handler_trivial() is False


def test_upload_and_body_forwarding():
    uploads, bodies = [], []
    handler = CallbackWebHandler()
    handler.on_upload(lambda *args: uploads.append(args))
    handler.on_body(lambda *args: bodies.append(args))
    request = Request()
    handler.handle_upload(request, "a.txt", 0, b"data", True)
    handler.handle_body(request, b"body", 4, 8)
    assert uploads == [(request, "a.txt", 0, b"data", True)]
    assert bodies == [(request, b"body", 4, 8)]


def test_base_handler_declines():
    handler = WebHandler()
    assert handler.can_handle(Request()) is False
    assert handler.is_request_handler_trivial() is True


def test_connection_buffer_bounds():
    connection = Connection(capacity=4)
    assert connection.add(b"abcdef") == 4
    assert connection.space() == 0
    assert connection.send() is True
    assert bytes(connection.transmitted) == b"abcd"
    assert connection.space() == 4


def test_connection_close():
    closed = []
    connection = Connection()
    connection.on_close = closed.append
    connection.close(True)
    assert connection.connected() is False
    assert connection.closed_forcibly is True
    assert connection.space() == 0
    assert connection.send() is False
    assert closed == [connection]


def test_headers_case_insensitive():
    request = Request(headers={"Content-Length": "10"})
    assert request.get_header("content-length") == "10"
    assert request.has_header("CONTENT-LENGTH") is True
    assert request.has_header("Host") is False


def test_interesting_headers_unique():
    request = Request()
    request.add_interesting_header("Origin")
    request.add_interesting_header("origin")
    assert request.interesting_headers == ["Origin"]


def test_send_code_and_response():
    request = Request()
    request.send(404)
    response = Response(201, "text/plain", b"ok")
    request.send(response)
    assert [r.code for r in request.responses] == [404, 201]
    assert request.response is response


def test_authenticate_basic():
    password = "password"
    encoded = base64.b64encode(f"user:{password}".encode()).decode()
    request = Request(headers={"Authorization": "Basic " + encoded})
    assert request.authenticate("user", password) is True
    assert request.authenticate("other", password) is False


def test_authenticate_without_header():
    password = "password"
    assert Request().authenticate("user", password) is False


def test_request_authentication():
    request = Request()
    request.request_authentication()
    assert request.response.code == 401
    assert [name for name, _ in request.response.headers] == ["WWW-Authenticate"]