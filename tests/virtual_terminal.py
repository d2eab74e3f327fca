"""In-memory stand-in for ``cabin.tui.terminal.ProcessTerminal``.

Satisfies the ``Terminal`` protocol without touching a real tty: output
is recorded for assertions, keyboard bytes and resizes are injected by
the test.
"""

from __future__ import annotations

import re
from typing import Callable

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")


class VirtualTerminal:
    """Records writes and lets tests drive input.

    Parameters
    ----------
    rows:
        Terminal height.
    columns:
        Terminal width.
    """

    def __init__(self, rows: int = 24, columns: int = 80) -> None:
        self._rows = rows
        self._columns = columns
        self._writes: list[str] = []
        self._on_input: Callable[[bytes], None] | None = None
        self._on_resize: Callable[[], None] | None = None

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def columns(self) -> int:
        return self._columns

    @property
    def started(self) -> bool:
        return self._on_input is not None

    def start(
        self,
        on_input: Callable[[bytes], None],
        on_resize: Callable[[], None],
    ) -> None:
        self._on_input = on_input
        self._on_resize = on_resize

    def stop(self) -> None:
        self._on_input = None
        self._on_resize = None

    def write(self, data: str) -> None:
        self._writes.append(data)

    # -- helpers for tests --------------------------------------------------

    @property
    def output(self) -> str:
        """Everything written so far, escape sequences included."""
        return "".join(self._writes)

    @property
    def plain_output(self) -> str:
        """Everything written so far with escape sequences removed."""
        return _ANSI_RE.sub("", self.output)

    def clear_buffer(self) -> None:
        self._writes.clear()

    def simulate_input(self, data: bytes) -> None:
        """Deliver *data* as if typed; ``b""`` simulates end of input."""
        if self._on_input is None:
            raise RuntimeError("terminal not started")
        self._on_input(data)

    def simulate_resize(self, rows: int | None = None, columns: int | None = None) -> None:
        if rows is not None:
            self._rows = rows
        if columns is not None:
            self._columns = columns
        if self._on_resize is not None:
            self._on_resize()
