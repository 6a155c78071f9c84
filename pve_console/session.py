"""Interactive console session over a Proxmox console proxy.

This module bridges the local terminal and a remote xtermjs console:
- Stream setup and WebSocket handshake
- Ticket authentication against the console proxy
- Raw terminal I/O relay with keepalive pings
- Terminal resize propagation (SIGWINCH)

One session per process. Everything runs on the event loop of the caller;
the only suspension point of the steady-state loop is its readiness wait.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from urllib.parse import urlsplit

from websockets.uri import parse_uri

from .errors import (
    ConsoleAuthenticationTimeout,
    ConsoleClientError,
    ConsoleConnectionError,
    ConsoleHandshakeError,
    ConsoleHandshakeTimeout,
    ConsoleTimeout,
)
from .protocol import (
    build_referer,
    encode_auth,
    encode_input,
    encode_ping,
    encode_resize,
    is_auth_ok,
    is_disconnect_key,
)
from .state import KEEPALIVE_INTERVAL, SessionState
from .terminal import LocalTerminal
from .transport import (
    ConsoleWsClient,
    ConsoleWsMessage,
    ConsoleWsMessageType,
    open_stream,
)

_LOGGER = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
CONNECT_TIMEOUT = 15.0
HANDSHAKE_TIMEOUT = 10.0
STREAM_CLOSE_TIMEOUT = 2.0

# Sent once the loop starts so the remote shell prints its prompt.
WAKE_INPUT = b"\n"


@dataclass(frozen=True)
class SessionConfig:
    """Connection parameters issued by the management API for one session."""

    url: str
    cookie: str
    user: str
    ticket: str
    verify_ssl: bool = True


class ConsoleSession:
    """Interactive terminal session bound to one console proxy ticket.

    Usage:
        config = SessionConfig(url=ws_url, cookie=cookie, user="root@pam", ticket=ticket)
        await ConsoleSession(config).run()
    """

    def __init__(
        self,
        config: SessionConfig,
        *,
        terminal: LocalTerminal | None = None,
        connect_timeout: float = CONNECT_TIMEOUT,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize session.

        Args:
            config: Proxy URL, cookie, user and ticket for this session
            terminal: Local terminal to bridge (default: process stdin/stdout)
            connect_timeout: TCP/TLS connection timeout (seconds)
            handshake_timeout: Idle bound for each handshake read (seconds)
            keepalive_interval: Ping interval of the I/O loop (seconds)
            clock: Monotonic time source
        """
        self.config = config
        self.host = urlsplit(config.url).hostname or config.url
        self.state = SessionState(keepalive_interval=keepalive_interval)

        self._terminal = terminal if terminal is not None else LocalTerminal()
        self._connect_timeout = connect_timeout
        self._handshake_timeout = handshake_timeout
        self._min_wait = min(1.0, keepalive_interval)
        self._clock = clock
        self._handshake_state = "idle"

    @property
    def handshake_state(self) -> str:
        return self._handshake_state

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Connect, authenticate and relay the terminal until the session ends.

        Returns normally when the user disconnects or the remote side closes.
        Returns or raises only after the terminal has been restored and the
        stream closed.

        Raises:
            ConsoleConnectionError: Stream could not be opened
            ConsoleTimeout: Connect, handshake or authentication timed out
            ConsoleHandshakeError: WebSocket upgrade or authentication failed
        """
        reader, writer = await open_stream(
            self.config.url,
            verify_ssl=self.config.verify_ssl,
            timeout=self._connect_timeout,
        )
        _LOGGER.info("[%s] Connected to console proxy", self.host)

        ws: ConsoleWsClient | None = None
        try:
            ws = self.create_ws_client(writer)
            pending = await self.handshake(ws, reader)
            with self._terminal.raw_mode():
                await self.run_io_loop(ws, reader, pending)
        finally:
            if ws is not None:
                ws.close()
            writer.close()
            try:
                await asyncio.wait_for(
                    writer.wait_closed(), timeout=STREAM_CLOSE_TIMEOUT
                )
            except TimeoutError:
                _LOGGER.warning("[%s] Stream close timed out", self.host)
            except OSError as err:
                _LOGGER.debug("[%s] Error while closing stream: %s", self.host, err)

        _LOGGER.info(
            "[%s] Console session ended: %s", self.host, self.state.stop_reason
        )

    def create_ws_client(self, writer: asyncio.StreamWriter) -> ConsoleWsClient:
        """Create the WebSocket driver with the headers the proxy requires."""
        uri = parse_uri(self.config.url)
        return ConsoleWsClient(
            self.config.url,
            writer,
            headers={
                "Cookie": self.config.cookie,
                "Referer": build_referer(uri.host, uri.port),
            },
        )

    async def handshake(
        self, ws: ConsoleWsClient, reader: asyncio.StreamReader
    ) -> list[ConsoleWsMessage]:
        """Open the WebSocket and authenticate with the console ticket.

        Authentication succeeds only on an exact ``OK`` message; any other
        text is ignored while waiting, since the proxy may print other lines
        first. There is no explicit rejection message to detect.

        Returns:
            Messages that arrived after ``OK`` in the same read

        Raises:
            ConsoleHandshakeTimeout: No WebSocket open within the bound
            ConsoleAuthenticationTimeout: No ``OK`` within the bound
            ConsoleHandshakeError: Upgrade rejected or connection closed
        """
        try:
            self._set_handshake_state("ws-connecting")
            ws.start()

            backlog: list[ConsoleWsMessage] = []
            while not ws.is_open:
                data = await self._read_handshake(
                    reader, ConsoleHandshakeTimeout, "WebSocket handshake timed out"
                )
                backlog = self._feed_handshake(ws, data)
            self._set_handshake_state("ws-open")

            self._set_handshake_state("authenticating")
            ws.send_text(encode_auth(self.config.user, self.config.ticket))
            _LOGGER.debug("[%s] Auth sent", self.host)

            while True:
                pending = self._after_auth_ok(backlog)
                if pending is not None:
                    break
                data = await self._read_handshake(
                    reader, ConsoleAuthenticationTimeout, "Authentication timed out"
                )
                backlog = self._feed_handshake(ws, data)
        except ConsoleClientError:
            self._set_handshake_state("failed")
            raise

        self._set_handshake_state("authenticated")
        _LOGGER.info("[%s] Authenticated as %s", self.host, self.config.user)
        return pending

    async def run_io_loop(
        self,
        ws: ConsoleWsClient,
        reader: asyncio.StreamReader,
        pending: Iterable[ConsoleWsMessage] = (),
    ) -> None:
        """Relay local input and remote output until the session stops.

        Expects the terminal to be in raw mode already. Read errors and
        end-of-stream on either side stop the loop; they are not raised.
        """
        loop = asyncio.get_running_loop()
        state = self.state
        state.start(self._clock())

        for message in pending:
            self._handle_message(message)

        self.send_resize(ws)
        ws.send_text(encode_input(WAKE_INPUT))
        resize_handler = self._install_resize_handler(loop, ws)

        local_ready: asyncio.Future[None] | None = None
        remote_read: asyncio.Future[bytes] | None = None
        try:
            while state.running:
                if local_ready is None:
                    local_ready = self._wait_local_readable(loop)
                if remote_read is None:
                    remote_read = asyncio.ensure_future(reader.read(READ_CHUNK_SIZE))

                timeout = max(state.seconds_until_ping(self._clock()), self._min_wait)
                done, _ = await asyncio.wait(
                    {local_ready, remote_read},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if not done:
                    self._send_ping(ws)
                    continue

                if local_ready in done:
                    local_ready = None
                    self._handle_local_input(ws)

                if remote_read in done and state.running:
                    completed, remote_read = remote_read, None
                    self._handle_remote_read(ws, completed)

                if state.running and state.ping_due(self._clock()):
                    self._send_ping(ws)
        finally:
            if local_ready is not None:
                local_ready.cancel()
            loop.remove_reader(self._terminal.input_fd)
            if remote_read is not None:
                remote_read.cancel()
            if resize_handler:
                loop.remove_signal_handler(signal.SIGWINCH)
            state.stop("loop exited")

    def send_resize(self, ws: ConsoleWsClient) -> None:
        """Send the current terminal dimensions to the remote side."""
        cols, rows = self._terminal.size()
        if ws.send_text(encode_resize(cols, rows)):
            _LOGGER.debug("[%s] Resize %dx%d sent", self.host, cols, rows)

    # -------------------------------------------------------------------------
    # Internal: Handshake
    # -------------------------------------------------------------------------

    def _set_handshake_state(self, state: str) -> None:
        if self._handshake_state != state:
            _LOGGER.debug(
                "[%s] State: %s → %s", self.host, self._handshake_state, state
            )
            self._handshake_state = state

    async def _read_handshake(
        self,
        reader: asyncio.StreamReader,
        timeout_error: type[ConsoleTimeout],
        message: str,
    ) -> bytes:
        try:
            return await asyncio.wait_for(
                reader.read(READ_CHUNK_SIZE), timeout=self._handshake_timeout
            )
        except TimeoutError as err:
            raise timeout_error(message) from err
        except OSError as err:
            raise ConsoleConnectionError(
                f"Connection lost during handshake: {err}"
            ) from err

    @staticmethod
    def _feed_handshake(ws: ConsoleWsClient, data: bytes) -> list[ConsoleWsMessage]:
        if data:
            return ws.receive(data)
        ws.receive_eof()
        raise ConsoleHandshakeError("Console proxy closed the connection during handshake")

    @staticmethod
    def _after_auth_ok(
        messages: list[ConsoleWsMessage],
    ) -> list[ConsoleWsMessage] | None:
        """Return the messages following ``OK``, or None if it has not arrived."""
        for index, message in enumerate(messages):
            if message.type in (ConsoleWsMessageType.CLOSED, ConsoleWsMessageType.ERROR):
                raise ConsoleHandshakeError(
                    "Console proxy closed the connection during authentication"
                )
            if message.type is ConsoleWsMessageType.TEXT and is_auth_ok(message.data):
                return messages[index + 1 :]
        return None

    # -------------------------------------------------------------------------
    # Internal: I/O loop
    # -------------------------------------------------------------------------

    def _wait_local_readable(
        self, loop: asyncio.AbstractEventLoop
    ) -> asyncio.Future[None]:
        fd = self._terminal.input_fd
        future: asyncio.Future[None] = loop.create_future()

        def _readable() -> None:
            loop.remove_reader(fd)
            if not future.done():
                future.set_result(None)

        loop.add_reader(fd, _readable)
        return future

    def _handle_local_input(self, ws: ConsoleWsClient) -> None:
        try:
            data = self._terminal.read(READ_CHUNK_SIZE)
        except OSError as err:
            _LOGGER.debug("[%s] Local input error: %s", self.host, err)
            self.state.stop("local input error")
            return

        if not data:
            self.state.stop("local input closed")
            return
        if is_disconnect_key(data):
            self.state.stop("disconnect key")
            return

        ws.send_text(encode_input(data))

    def _handle_remote_read(
        self, ws: ConsoleWsClient, completed: asyncio.Future[bytes]
    ) -> None:
        try:
            data = completed.result()
        except OSError as err:
            _LOGGER.debug("[%s] Remote read error: %s", self.host, err)
            self.state.stop("connection lost")
            return

        if not data:
            ws.receive_eof()
            self.state.stop("connection closed")
            return

        for message in ws.receive(data):
            self._handle_message(message)

    def _handle_message(self, message: ConsoleWsMessage) -> None:
        if message.type in (ConsoleWsMessageType.TEXT, ConsoleWsMessageType.BINARY):
            if message.data:
                self._terminal.write(message.data)
        elif message.type is ConsoleWsMessageType.CLOSED:
            self.state.stop("closed by remote")
        elif message.type is ConsoleWsMessageType.ERROR:
            self.state.stop("protocol error")

    def _send_ping(self, ws: ConsoleWsClient) -> None:
        ws.send_text(encode_ping())
        self.state.mark_ping(self._clock())
        _LOGGER.debug("[%s] Ping sent", self.host)

    def _install_resize_handler(
        self, loop: asyncio.AbstractEventLoop, ws: ConsoleWsClient
    ) -> bool:
        try:
            loop.add_signal_handler(signal.SIGWINCH, self.send_resize, ws)
        except (NotImplementedError, RuntimeError, ValueError) as err:
            _LOGGER.debug("[%s] Resize propagation unavailable: %s", self.host, err)
            return False
        return True
