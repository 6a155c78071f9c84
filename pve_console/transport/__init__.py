"""Transport layer for console sessions.

Components:
- stream: TCP/TLS connection setup
- ws_client: WebSocket protocol driver over an open stream
"""

from .stream import create_ssl_context, open_stream
from .ws_client import (
    ConsoleWsClient,
    ConsoleWsMessage,
    ConsoleWsMessageType,
    StreamWriterLike,
)

__all__ = [
    "ConsoleWsClient",
    "ConsoleWsMessage",
    "ConsoleWsMessageType",
    "StreamWriterLike",
    "create_ssl_context",
    "open_stream",
]
