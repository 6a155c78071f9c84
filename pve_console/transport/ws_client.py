"""WebSocket client wrapper for console proxy streams.

The wrapper drives the sans-I/O :class:`websockets.client.ClientProtocol`:
inbound bytes are fed in with :meth:`ConsoleWsClient.receive` and every frame
the protocol produces is written to the stream writer straight away.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from websockets.client import ClientProtocol
from websockets.frames import CloseCode, Frame, Opcode
from websockets.http11 import Response
from websockets.protocol import State
from websockets.typing import Subprotocol
from websockets.uri import parse_uri

from ..errors import ConsoleHandshakeError

_LOGGER = logging.getLogger(__name__)


class StreamWriterLike(Protocol):
    """The only capability the WebSocket client needs from a transport."""

    def write(self, data: bytes) -> Any: ...


class ConsoleWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    BINARY = "binary"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class ConsoleWsMessage:
    """Normalized WebSocket message payload."""

    type: ConsoleWsMessageType
    data: bytes | None = None


class ConsoleWsClient:
    """Wrapper around the websockets sans-I/O client protocol."""

    def __init__(
        self,
        url: str,
        writer: StreamWriterLike,
        *,
        headers: Mapping[str, str] | None = None,
        subprotocols: Iterable[str] = ("binary",),
        max_size: int | None = None,
    ) -> None:
        self._url = url
        self._writer = writer
        self._headers = dict(headers or {})
        self._protocol = ClientProtocol(
            parse_uri(url),
            subprotocols=[Subprotocol(name) for name in subprotocols],
            max_size=max_size,
        )
        self._closed_reported = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_open(self) -> bool:
        return self._protocol.state is State.OPEN

    @property
    def is_closed(self) -> bool:
        return self._protocol.state is State.CLOSED

    def start(self) -> None:
        """Send the HTTP upgrade request with the configured extra headers."""
        request = self._protocol.connect()
        for name, value in self._headers.items():
            request.headers[name] = value
        self._protocol.send_request(request)
        self._flush()

    def send_text(self, payload: bytes) -> bool:
        """Send one text frame.

        Returns:
            True if the frame was written, False if the connection is not open
        """
        if not self.is_open:
            _LOGGER.debug("Dropping %d byte frame: WebSocket not open", len(payload))
            return False
        self._protocol.send_text(payload)
        self._flush()
        return True

    def close(self) -> None:
        """Start the closing handshake if the connection is still open."""
        if self.is_open:
            self._protocol.send_close(CloseCode.NORMAL_CLOSURE)
            self._flush()

    def receive(self, data: bytes) -> list[ConsoleWsMessage]:
        """Feed inbound bytes and return the messages they completed.

        Raises:
            ConsoleHandshakeError: If the server rejected the upgrade request
        """
        self._protocol.receive_data(data)
        messages = self._collect_messages()
        self._flush()
        return messages

    def receive_eof(self) -> list[ConsoleWsMessage]:
        """Signal that the peer closed the stream."""
        self._protocol.receive_eof()
        return self._collect_messages()

    def _flush(self) -> None:
        for chunk in self._protocol.data_to_send():
            # An empty chunk asks for half-close; the session closes the
            # whole stream instead.
            if chunk:
                self._writer.write(chunk)

    def _collect_messages(self) -> list[ConsoleWsMessage]:
        events = self._protocol.events_received()
        if self._protocol.handshake_exc is not None:
            raise ConsoleHandshakeError(
                f"WebSocket handshake failed: {self._protocol.handshake_exc}"
            ) from self._protocol.handshake_exc

        messages: list[ConsoleWsMessage] = []
        for event in events:
            if isinstance(event, Response):
                _LOGGER.debug("WebSocket upgrade accepted (%d)", event.status_code)
                continue
            normalized = self._normalize_frame(event)
            if normalized is None:
                continue
            if normalized.type is ConsoleWsMessageType.CLOSED:
                self._closed_reported = True
            messages.append(normalized)

        if self._closed_reported:
            return messages
        parser_exc = self._protocol.parser_exc
        if parser_exc is not None and not isinstance(parser_exc, EOFError):
            _LOGGER.debug("WebSocket protocol error: %s", parser_exc)
            self._closed_reported = True
            messages.append(ConsoleWsMessage(ConsoleWsMessageType.ERROR))
        elif parser_exc is not None or self.is_closed:
            self._closed_reported = True
            messages.append(ConsoleWsMessage(ConsoleWsMessageType.CLOSED))
        return messages

    @staticmethod
    def _normalize_frame(frame: Frame) -> ConsoleWsMessage | None:
        """Normalize protocol frames into ConsoleWsMessage."""
        if frame.opcode in (Opcode.TEXT, Opcode.CONT):
            return ConsoleWsMessage(ConsoleWsMessageType.TEXT, bytes(frame.data))
        if frame.opcode is Opcode.BINARY:
            return ConsoleWsMessage(ConsoleWsMessageType.BINARY, bytes(frame.data))
        if frame.opcode is Opcode.CLOSE:
            return ConsoleWsMessage(ConsoleWsMessageType.CLOSED)
        # Ping and pong are answered by the protocol itself.
        return None
