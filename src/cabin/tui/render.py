"""Frame construction for the active window.

A frame is exactly ``size.rows`` lines::

    header       channel name plus cabal address (status) or topic
    messages     the newest ``rows - 2`` lines of the window, padded
    input        the line being typed, cursor cell in reverse video

Turning one frame into the next is left to :class:`~cabin.tui.diff.ScreenDiff`.
"""

from __future__ import annotations

from cabin.addr import to_hex
from cabin.timefmt import format_timestamp
from cabin.tui.diff import ScreenDiff, TermSize
from cabin.tui.input import Input
from cabin.tui.utils import (
    INVERSE,
    INVERSE_OFF,
    RESET,
    author_colour,
    sanitize,
    truncate_to_width,
    visible_width,
)
from cabin.tui.window import LineEntry, Window

__all__ = ["Renderer", "TermSize", "format_line", "format_header", "format_input"]

_HIDE_CURSOR = "\x1b[?25l"
_SHOW_CURSOR = "\x1b[?25h"
_CLEAR_SCREEN = "\x1b[2J"
_HOME = "\x1b[H"

INPUT_PROMPT = "> "


def format_header(window: Window, active_address: bytes | None) -> str:
    if window.is_status:
        detail = to_hex(active_address) if active_address else "(no cabal)"
        return f"{window.channel} {detail}"
    if window.topic:
        return f"#{window.channel} {sanitize(window.topic)}"
    return f"#{window.channel}"


def format_line(entry: LineEntry) -> str:
    stamp = f"[{format_timestamp(entry.timestamp)}]"
    text = sanitize(entry.text)
    if entry.author is None:
        return f"{stamp} {text}"
    name = sanitize(entry.nickname) if entry.nickname else entry.author.hex()[:8]
    return f"{stamp} <{author_colour(entry.author)}{name}{RESET}> {text}"


def format_input(buffer: Input, width: int) -> str:
    """Render the input line, scrolled so the cursor cell stays on screen."""
    value = sanitize(buffer.value)
    cursor = min(buffer.cursor, len(value))
    under = value[cursor] if cursor < len(value) else " "
    after = value[cursor + 1 :]

    # Columns left for the text before the cursor, counted in cells
    room = width - len(INPUT_PROMPT) - max(1, visible_width(under))
    if room < 0:
        return truncate_to_width(INPUT_PROMPT, width)
    start = cursor
    used = 0
    while start > 0:
        cell = visible_width(value[start - 1])
        if used + cell > room:
            break
        used += cell
        start -= 1

    head = INPUT_PROMPT + value[start:cursor] + INVERSE + under + INVERSE_OFF
    return head + truncate_to_width(after, width - visible_width(head))


class Renderer:
    """Builds frames and hands them to the diff.

    The first call to :meth:`render` additionally clears the screen and
    hides the hardware cursor; the cursor cell is drawn in the input line
    instead.
    """

    def __init__(self, size: TermSize) -> None:
        self._diff = ScreenDiff(size)
        self._started = False

    @property
    def size(self) -> TermSize:
        return self._diff.size

    @property
    def full_redraws(self) -> int:
        return self._diff.full_redraws

    def resize(self, size: TermSize) -> None:
        self._diff.resize(size)

    def frame(
        self,
        window: Window,
        buffer: Input,
        active_address: bytes | None = None,
    ) -> list[str]:
        rows = self.size.rows
        width = self.size.columns
        if rows <= 0 or width <= 0:
            return []

        input_line = format_input(buffer, width)
        if rows == 1:
            return [input_line]

        body_rows = rows - 2
        entries = window.lines[-body_rows:] if body_rows > 0 else []
        body = [truncate_to_width(format_line(entry), width) for entry in entries]
        body.extend([""] * (body_rows - len(body)))

        header = truncate_to_width(format_header(window, active_address), width)
        return [header, *body, input_line]

    def render(
        self,
        window: Window,
        buffer: Input,
        active_address: bytes | None = None,
    ) -> str:
        """Return the terminal output that brings the screen up to date."""
        output = self._diff.update(self.frame(window, buffer, active_address))
        if not self._started:
            self._started = True
            return _CLEAR_SCREEN + _HIDE_CURSOR + output
        return output

    def finish(self) -> str:
        """Output that hands a clean screen back to the shell."""
        return RESET + _CLEAR_SCREEN + _HOME + _SHOW_CURSOR
