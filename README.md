# asyncwebkit

This package provides building blocks for small, callback-driven HTTP servers:

- request handlers
- HTTP Basic and Digest authentication helpers
- a Server-Sent Events source
- a WebSocket endpoint that parses frames, sends fragmented messages and
  handles ping, pong and close

Everything works on in-memory objects. A `Connection` holds the outgoing
bytes. Your code calls the handler and client callbacks (`on_data`, `on_ack`,
`on_poll` and the rest) when events happen on the transport.

## Installation

```
pip install asyncwebkit
```

To run the tests:

```
pip install "asyncwebkit[test]"
pytest
```

## Modules

### `asyncwebkit.auth`

- `check_basic_authentication(hash, username, password)` returns True when
  `hash` is base64 of `"username:password"`.
- `generate_digest_hash(username, password, realm)` returns
  `"username:realm:"` followed by the MD5 hex digest of
  `"username:realm:password"`.
- `request_digest_authentication(realm)` builds the parameters of a Digest
  challenge with a random nonce and opaque. The realm defaults to `asyncesp`
  when it is None.
- `check_digest_authentication(header, method, username, password, realm,
  password_is_hash, nonce, opaque, uri)` verifies a Digest response. The
  arguments `realm`, `nonce`, `opaque` and `uri` are checked only when they
  are not None.

### `asyncwebkit.handlers`

- `HttpMethod` is a flag enum of the request methods, so that methods can be
  combined into a set.
- `Connection` is an in-memory connection with a bounded outgoing buffer. Its
  methods are `space`, `add`, `can_send`, `send`, `close` and `connected`.
  Bytes that `add` queues are kept in `pending`. `send` moves them to
  `transmitted`.
- `Request` holds a method, URL, headers, content type and connection. It
  offers `has_header`, `get_header`, `add_interesting_header`, `send`,
  `authenticate` and `request_authentication`. Header names are matched
  without regard to case. Responses that have been sent are kept in
  `responses`, and the last one is in `response`.
- `Response` holds a status code, a content type, a body and a list of
  headers.
- `WebHandler` is the base handler interface.
- `CallbackWebHandler` routes on a URI and a set of methods to callbacks
  registered with `on_request`, `on_upload` and `on_body`. A URI that ends in
  `*` matches any URL with that prefix. Any other URI matches itself and the
  URLs below it.

### `asyncwebkit.jsonhandler`

- `JsonResponse` is an `application/json` response whose body is its `root`
  text. It can be read out in pieces with `fill_buffer`.
- `CallbackJsonWebHandler` collects JSON request bodies smaller than 8096
  bytes.
- `RawJsonWebHandler` collects JSON request bodies smaller than 16384 bytes
  and passes the raw text to its callback. When there is no body it answers
  413 if the body was too large and 400 otherwise.
- `copy_chunk(source, skip, length)` returns a slice of `source`.

### `asyncwebkit.linkedlist`

- `LinkedList` is an ordered collection. It calls a callback whenever an item
  is removed.
- `StringArray` is a `LinkedList` of strings with
  `contains_ignore_case`.

### `asyncwebkit.eventsource`

- `generate_event_message(message, event, id, reconnect)` formats an event in
  the `text/event-stream` format.
- `EventSource` is the handler for an event-stream URL. It broadcasts events
  to its `EventSourceClient`s.
- `EventSourceResponse` opens the stream. When its head is acknowledged it
  subscribes the connection as a client.

### `asyncwebkit.wsmessages`

- `send_frame` and `send_frame_window` write frames to a connection.
- `FrameType` lists the frame opcodes and `MessageStatus` lists the states of
  an outgoing message.
- `MessageBuffer` is a payload shared by several messages. It tracks how many
  messages use it.
- `ControlFrame` is a close, ping or pong frame.
- The outgoing message types are `WebSocketMessage`, `BasicMessage` and
  `MultiMessage`.

### `asyncwebkit.wsclient`

- `WebSocketClient` is one upgraded connection. It parses incoming frames in
  `on_data`, queues outgoing text, binary and control frames, and sends a
  keep-alive ping when `keep_alive_period` (in seconds) is set.
- `ClientStatus`, `EventType` and `FrameInfo` describe the client state, the
  events it reports and the frame being received.
- At most `MAX_QUEUED_MESSAGES` (32) data messages can be queued per client.

### `asyncwebkit.wsserver`

- `WebSocket` is the endpoint handler. It performs the upgrade handshake,
  keeps a registry of clients, and sends to one client or to all of them with:
  - `text` and `text_all`
  - `binary` and `binary_all`
  - `ping` and `ping_all`
  - `close` and `close_all`
  - `printf` and `printf_all`

  Events are passed to the handler set with `on_event`.
- `WebSocketResponse` is the `101` response. When its head is acknowledged it
  turns the connection into a `WebSocketClient`.
- `accept_key(key)` computes the `Sec-WebSocket-Accept` value.

## Examples

Format a Server-Sent Events message:

```python
from asyncwebkit.eventsource import generate_event_message

generate_event_message("hello\nworld", "greeting", 1, 0)
# 'id: 1\r\nevent: greeting\r\ndata: hello\r\ndata: world\r\n\r\n'
```

Compute the WebSocket handshake accept value:

```python
from asyncwebkit.wsserver import accept_key

accept_key("dGhlIHNhbXBsZSBub25jZQ==")
# 's3pPLMBiTxaQ9kYGzzhZRbK+xOo='
```

Check HTTP Basic credentials:

```python
from asyncwebkit.auth import check_basic_authentication

password = "password"
check_basic_authentication("dXNlcjpwYXNzd29yZA==", "user", password)  # True
```

Upgrade a request and broadcast to the connected clients:

```python
from asyncwebkit.handlers import HttpMethod, Request
from asyncwebkit.wsserver import WebSocket

ws = WebSocket("/ws")
ws.on_event(lambda server, client, event_type, arg, data: print(client.id, event_type, data))

request = Request(
    HttpMethod.GET,
    "/ws",
    headers={
        "Upgrade": "websocket",
        "Sec-WebSocket-Version": "13",
        "Sec-WebSocket-Key": "dGhlIHNhbXBsZSBub25jZQ==",
    },
)
if ws.can_handle(request):
    ws.handle_request(request)
    response = request.response       # the WebSocketResponse
    response.respond(request)         # writes the 101 head to the connection
    response.ack(request, 1)          # the head was acknowledged: a client is created

ws.count()          # 1
ws.text_all("hi")   # a text frame now sits in request.client.transmitted
```

Serve Server-Sent Events in the same way:

```python
from asyncwebkit.eventsource import EventSource
from asyncwebkit.handlers import HttpMethod, Request

events = EventSource("/events")
request = Request(HttpMethod.GET, "/events")
if events.can_handle(request):
    events.handle_request(request)
    request.response.respond(request)
    request.response.ack(request, 1)

events.send("hello")   # b"data: hello\r\n\r\n" is written to the connection
```

## What the package does not do

- It opens no sockets and runs no event loop. The program that uses it reads
  and writes the network and calls the callbacks.
- It has no server object that dispatches requests among several handlers and
  no HTTP request parser. `Request` objects are built by the caller.
- It serves no static files and has no file, stream or chunked response
  types. The only response types are `Response`, `JsonResponse`,
  `EventSourceResponse` and `WebSocketResponse`.
- It has no command-line program.