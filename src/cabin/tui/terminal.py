"""Raw-mode terminal I/O for the chat screen.

``Terminal`` is what the UI and the app need from a terminal.
``ProcessTerminal`` is the real one: it switches the controlling tty to
raw mode, hands every chunk read from stdin to a callback as bytes, and
reports window-size changes (SIGWINCH).
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import termios
import tty
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

_READ_SIZE = 4096
_FALLBACK_SIZE = os.terminal_size((80, 24))

InputHandler = Callable[[bytes], None]
ResizeHandler = Callable[[], None]


class Terminal(Protocol):
    """What the chat screen needs from a terminal.

    ``on_input`` receives raw stdin chunks; an empty chunk means end of input.
    """

    def start(self, on_input: InputHandler, on_resize: ResizeHandler) -> None: ...

    def stop(self) -> None: ...

    def write(self, data: str) -> None: ...

    @property
    def columns(self) -> int: ...

    @property
    def rows(self) -> int: ...


def _stdout_size() -> os.terminal_size:
    try:
        return os.get_terminal_size(sys.stdout.fileno())
    except (ValueError, OSError):
        return _FALLBACK_SIZE


class ProcessTerminal:
    """The controlling terminal, driven from the running event loop.

    ``start`` must be called from inside the loop: stdin is polled with
    ``loop.add_reader`` and SIGWINCH arrives through
    ``loop.add_signal_handler``.
    """

    def __init__(self) -> None:
        self._on_input: InputHandler | None = None
        self._on_resize: ResizeHandler | None = None
        self._saved_mode: list | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._fd = -1

    @property
    def columns(self) -> int:
        return _stdout_size().columns

    @property
    def rows(self) -> int:
        return _stdout_size().lines

    def start(self, on_input: InputHandler, on_resize: ResizeHandler) -> None:
        self._on_input = on_input
        self._on_resize = on_resize
        self._fd = sys.stdin.fileno()

        self._saved_mode = termios.tcgetattr(self._fd)
        tty.setraw(self._fd)

        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(self._fd, self._read_stdin)
        self._loop.add_signal_handler(signal.SIGWINCH, self._window_changed)
        logger.debug("terminal started in raw mode (%dx%d)", self.columns, self.rows)

    def stop(self) -> None:
        """Stop polling stdin and put the tty back the way it was."""
        loop, self._loop = self._loop, None
        if loop is not None and not loop.is_closed():
            loop.remove_reader(self._fd)
            loop.remove_signal_handler(signal.SIGWINCH)

        if self._saved_mode is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_mode)
            self._saved_mode = None

        self._on_input = None
        self._on_resize = None

    def write(self, data: str) -> None:
        if not data:
            return
        try:
            sys.stdout.write(data)
            sys.stdout.flush()
        except OSError:
            logger.debug("terminal write failed", exc_info=True)

    def _read_stdin(self) -> None:
        try:
            chunk = os.read(self._fd, _READ_SIZE)
        except OSError:
            logger.debug("stdin read failed", exc_info=True)
            return
        if not chunk and self._loop is not None:
            # End of input: stop polling so the closed fd does not spin
            self._loop.remove_reader(self._fd)
        if self._on_input is not None:
            self._on_input(chunk)

    def _window_changed(self) -> None:
        if self._on_resize is not None:
            self._on_resize()
