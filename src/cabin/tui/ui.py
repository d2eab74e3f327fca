"""The UI controller: windows, the input line and the renderer together.

Everything that changes what is on screen goes through a :class:`UI`.  The
controller itself is plain synchronous code and assumes one caller at a
time; the application wraps every read-modify-render step in a single
``asyncio.Lock`` and never awaits while holding it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cabin.tui.diff import TermSize
from cabin.tui.input import Input
from cabin.tui.render import Renderer
from cabin.tui.window import DEFAULT_LIMIT, LineEntry, Window, WindowStore

if TYPE_CHECKING:
    from cabin.tui.terminal import Terminal

logger = logging.getLogger(__name__)


class UI:
    def __init__(
        self,
        size: TermSize,
        terminal: Terminal | None = None,
        *,
        window_limit: int = DEFAULT_LIMIT,
    ) -> None:
        self.size = size
        self.terminal = terminal
        self.window_limit = window_limit
        self.store = WindowStore()
        self.input = Input()
        self.renderer = Renderer(size)

    # -- writing lines ------------------------------------------------------

    def write_status(self, text: str) -> None:
        self.store.status.write(text)

    def write(self, index: int, text: str) -> None:
        window = self.store.get(index)
        if window is None:
            logger.warning("dropping line for missing window %d", index)
            return
        window.write(text)

    def insert_line(
        self,
        index: int,
        timestamp: int,
        author: bytes | None,
        nickname: str | None,
        text: str,
    ) -> LineEntry | None:
        window = self.store.get(index)
        if window is None:
            logger.warning("dropping line for missing window %d", index)
            return None
        return window.insert_line(timestamp, author, nickname, text)

    # -- windows ------------------------------------------------------------

    def add_window(self, address: bytes, channel: str) -> int:
        return self.store.add_window(address, channel, limit=self.window_limit)

    def find_window(self, address: bytes, channel: str) -> int | None:
        return self.store.find_window(address, channel)

    def remove_window(self, index: int) -> Window | None:
        return self.store.remove_window(index)

    def get_window(self, index: int) -> Window | None:
        return self.store.get(index)

    def get_active_window(self) -> Window:
        return self.store.active_window

    def get_active_index(self) -> int:
        return self.store.active_index

    def set_active_index(self, index: int) -> int:
        return self.store.set_active(index)

    def cycle_window(self, step: int) -> int:
        return self.store.cycle(step)

    # -- active cabal -------------------------------------------------------

    def set_active_address(self, address: bytes | None) -> None:
        self.store.active_address = address

    def get_active_address(self) -> bytes | None:
        return self.store.active_address

    # -- screen -------------------------------------------------------------

    def resize(self, size: TermSize) -> None:
        """Adopt a new terminal size.  The screen is redrawn on the next update."""
        self.size = size
        self.renderer.resize(size)

    def get_size(self) -> TermSize:
        return self.size

    def update(self) -> None:
        """Render the active window and flush the difference to the terminal."""
        output = self.renderer.render(
            self.store.active_window,
            self.input,
            self.store.active_address,
        )
        if self.terminal is not None:
            self.terminal.write(output)

    def finish(self) -> None:
        if self.terminal is not None:
            self.terminal.write(self.renderer.finish())
