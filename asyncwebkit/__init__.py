"""Building blocks for callback-driven HTTP servers: handlers, auth, SSE and WebSockets."""

__version__ = "0.1.0"

__all__ = [
    "auth",
    "handlers",
    "jsonhandler",
    "linkedlist",
    "eventsource",
    "wsmessages",
    "wsclient",
    "wsserver",
]