"""Windows and the ordered store that holds them.

A window is one (cabal address, channel) conversation.  Window 0 is the
status window; it always exists and is never removed.

Lines inside a window are ordered by a per-window insertion counter, never
by timestamp: two background writers delivering posts with equal or
reversed timestamps still display first-come, first-shown.  The counter
only ever increases.

Nothing here is thread- or task-safe on its own; callers hold the UI lock.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field

from cabin.timefmt import now_ms

logger = logging.getLogger(__name__)

STATUS_CHANNEL = "!status"

DEFAULT_LIMIT = 50


@dataclass(frozen=True, order=True)
class LineEntry:
    """One displayed line.  Sorts on ``index`` alone."""

    index: int
    timestamp: int = field(compare=False)
    author: bytes | None = field(default=None, compare=False)
    nickname: str | None = field(default=None, compare=False)
    text: str = field(default="", compare=False)


@dataclass(eq=False)
class Window:
    address: bytes
    channel: str
    topic: str = ""
    limit: int = DEFAULT_LIMIT
    lines: list[LineEntry] = field(default_factory=list)
    _line_index: int = field(default=0, repr=False)

    @property
    def is_status(self) -> bool:
        return not self.address and self.channel == STATUS_CHANNEL

    @property
    def line_index(self) -> int:
        """The index the next inserted line will receive."""
        return self._line_index

    def insert_line(
        self,
        timestamp: int,
        author: bytes | None,
        nickname: str | None,
        text: str,
    ) -> LineEntry:
        entry = LineEntry(self._line_index, timestamp, author, nickname, text)
        self._line_index += 1
        bisect.insort(self.lines, entry)
        return entry

    def write(self, text: str) -> LineEntry:
        """Insert an unattributed line stamped with the current time."""
        return self.insert_line(now_ms(), None, None, text)


class WindowStore:
    """Ordered windows plus the active-window index.

    Display order (and Ctrl-N/Ctrl-P cycling order) is insertion order.
    ``active_index`` always satisfies ``0 <= active_index < len(self)``.
    """

    def __init__(self) -> None:
        self.windows: list[Window] = [Window(b"", STATUS_CHANNEL)]
        self.active_index: int = 0
        self.active_address: bytes | None = None

    def __len__(self) -> int:
        return len(self.windows)

    def __iter__(self):
        return iter(self.windows)

    def __getitem__(self, index: int) -> Window:
        return self.windows[index]

    @property
    def status(self) -> Window:
        return self.windows[0]

    @property
    def active_window(self) -> Window:
        return self.windows[self.active_index]

    def get(self, index: int) -> Window | None:
        if 0 <= index < len(self.windows):
            return self.windows[index]
        return None

    def add_window(self, address: bytes, channel: str, *, limit: int = DEFAULT_LIMIT) -> int:
        self.windows.append(Window(address, channel, limit=limit))
        logger.debug("added window %d for %s/%s", len(self.windows) - 1, address.hex(), channel)
        return len(self.windows) - 1

    def find_window(self, address: bytes, channel: str) -> int | None:
        for i, window in enumerate(self.windows):
            if window.address == address and window.channel == channel:
                return i
        return None

    def index_of(self, window: Window) -> int | None:
        """Position of this exact window object, or ``None`` once removed."""
        for i, candidate in enumerate(self.windows):
            if candidate is window:
                return i
        return None

    def remove_window(self, index: int) -> Window | None:
        """Remove the window at *index*.

        The status window and out-of-range indexes are left alone and
        ``None`` is returned.  Removing a window before the active one
        shifts the active index down by one; removing the active window
        itself selects the window before it.
        """
        if index <= 0 or index >= len(self.windows):
            logger.debug("refusing to remove window %d of %d", index, len(self.windows))
            return None
        window = self.windows.pop(index)
        if index <= self.active_index:
            self.active_index = max(0, self.active_index - 1)
        self.active_index = min(self.active_index, len(self.windows) - 1)
        logger.debug("removed window %d (%s)", index, window.channel)
        return window

    def set_active(self, index: int) -> int:
        self.active_index = max(0, min(index, len(self.windows) - 1))
        return self.active_index

    def cycle(self, step: int) -> int:
        """Move the active index by *step*, wrapping around."""
        return self.set_active((self.active_index + step) % len(self.windows))
