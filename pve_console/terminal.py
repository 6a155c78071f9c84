"""Local terminal access for console sessions."""

from __future__ import annotations

import logging
import os
import sys
import termios
import tty
from collections.abc import Iterator
from contextlib import contextmanager
from typing import BinaryIO

_LOGGER = logging.getLogger(__name__)

DEFAULT_SIZE: tuple[int, int] = (80, 24)


class LocalTerminal:
    """Raw byte access to the controlling terminal.

    Input is read straight from the file descriptor so nothing is buffered
    behind the event loop's back. Output is written unmodified.
    """

    def __init__(
        self,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
    ) -> None:
        self._stdin = stdin if stdin is not None else sys.stdin.buffer
        self._stdout = stdout if stdout is not None else sys.stdout.buffer

    @property
    def input_fd(self) -> int:
        return self._stdin.fileno()

    def is_tty(self) -> bool:
        return os.isatty(self.input_fd)

    def read(self, size: int) -> bytes:
        return os.read(self.input_fd, size)

    def write(self, data: bytes) -> None:
        self._stdout.write(data)
        self._stdout.flush()

    def size(self) -> tuple[int, int]:
        """Return the current ``(cols, rows)``, or 80x24 when unknown."""
        try:
            size = os.get_terminal_size(self._stdout.fileno())
        except (OSError, ValueError):
            return DEFAULT_SIZE
        return size.columns or DEFAULT_SIZE[0], size.lines or DEFAULT_SIZE[1]

    @contextmanager
    def raw_mode(self) -> Iterator[None]:
        """Switch the terminal to raw mode for the duration of the block.

        Echo, line buffering and signal characters (Ctrl+C, Ctrl+Z) are
        disabled so every keystroke reaches the remote side. The saved
        attributes are restored exactly once, however the block exits.
        """
        fd = self.input_fd
        saved = termios.tcgetattr(fd)
        tty.setraw(fd)
        _LOGGER.debug("Terminal fd %d switched to raw mode", fd)
        try:
            yield
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
            _LOGGER.debug("Terminal fd %d restored", fd)
