"""Pytest configuration and fixtures for pve_console tests."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from pve_console.transport import ConsoleWsMessage, ConsoleWsMessageType


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


def create_mock_response(
    status: int = 200,
    json_data: dict[str, Any] | None = None,
    text_data: str | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Data to return from json() call
        text_data: Data to return from text() call

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status

    if json_data is not None:
        response.json.return_value = json_data
    if text_data is not None:
        response.text.return_value = text_data

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response


class FakeTerminal:
    """Pipe-backed terminal that records output and raw-mode transitions."""

    def __init__(self, size: tuple[int, int] = (80, 24)) -> None:
        self._read_fd, self._write_fd = os.pipe()
        self.output = bytearray()
        self.cols_rows = size
        self.raw_entered = 0
        self.restored = 0
        self.read_error: Exception | None = None

    @property
    def input_fd(self) -> int:
        return self._read_fd

    def type_keys(self, data: bytes) -> None:
        os.write(self._write_fd, data)

    def close_input(self) -> None:
        os.close(self._write_fd)
        self._write_fd = -1

    def is_tty(self) -> bool:
        return True

    def read(self, size: int) -> bytes:
        if self.read_error is not None:
            raise self.read_error
        return os.read(self._read_fd, size)

    def write(self, data: bytes) -> None:
        self.output += data

    def size(self) -> tuple[int, int]:
        return self.cols_rows

    @contextmanager
    def raw_mode(self) -> Iterator[None]:
        self.raw_entered += 1
        try:
            yield
        finally:
            self.restored += 1

    def close(self) -> None:
        for fd in (self._read_fd, self._write_fd):
            if fd >= 0:
                try:
                    os.close(fd)
                except OSError:
                    pass


class FakeWsClient:
    """Scripted stand-in for ConsoleWsClient.

    Inbound bytes are split on ``;``: ``OPEN`` completes the upgrade,
    ``CLOSE`` yields a close message, anything else is a text message.
    """

    def __init__(self) -> None:
        self.sent: list[bytes] = []
        self.is_open = False
        self.started = False
        self.closed = False
        self.eof = False

    def start(self) -> None:
        self.started = True

    def send_text(self, payload: bytes) -> bool:
        if not self.is_open:
            return False
        self.sent.append(payload)
        return True

    def close(self) -> None:
        self.closed = True

    def receive(self, data: bytes) -> list[ConsoleWsMessage]:
        messages: list[ConsoleWsMessage] = []
        for token in data.split(b";"):
            if not token:
                continue
            if token == b"OPEN":
                self.is_open = True
            elif token == b"CLOSE":
                messages.append(ConsoleWsMessage(ConsoleWsMessageType.CLOSED))
            else:
                messages.append(ConsoleWsMessage(ConsoleWsMessageType.TEXT, token))
        return messages

    def receive_eof(self) -> list[ConsoleWsMessage]:
        self.eof = True
        return []


@pytest.fixture
def terminal() -> Iterator[FakeTerminal]:
    """Create a pipe-backed fake terminal."""
    fake = FakeTerminal()
    yield fake
    fake.close()


@pytest.fixture
def fake_ws() -> FakeWsClient:
    """Create a scripted WebSocket client."""
    return FakeWsClient()


@pytest.fixture
async def stream_reader() -> asyncio.StreamReader:
    """Create a StreamReader fed by the test, bound to the running loop."""
    return asyncio.StreamReader()


@pytest.fixture
def stream_writer() -> MagicMock:
    """Create a mock StreamWriter."""
    writer = MagicMock()
    writer.wait_closed = AsyncMock()
    return writer
