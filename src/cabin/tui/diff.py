"""Line-level differential screen updates.

``ScreenDiff`` remembers the last frame it emitted and, given the next
frame, returns only the escape sequences needed to repaint the rows that
changed.  Rows are addressed absolutely, so the result does not depend on
where the terminal cursor was left.
"""

from __future__ import annotations

from dataclasses import dataclass

_CLEAR_SCREEN = "\x1b[2J"
_CLEAR_TO_EOL = "\x1b[K"
_RESET = "\x1b[0m"


@dataclass(frozen=True)
class TermSize:
    columns: int
    rows: int


def _move_to(row: int) -> str:
    return f"\x1b[{row + 1};1H"


class ScreenDiff:
    def __init__(self, size: TermSize) -> None:
        self._size = size
        self._previous: list[str] = []
        self._needs_clear = False
        self._full_redraw_count = 0

    @property
    def size(self) -> TermSize:
        return self._size

    @property
    def full_redraws(self) -> int:
        """Number of updates that repainted every row."""
        return self._full_redraw_count

    def resize(self, size: TermSize) -> None:
        """Adopt a new size; the next update repaints from a cleared screen."""
        self._size = size
        self._previous = []
        self._needs_clear = True

    def update(self, lines: list[str]) -> str:
        """Return the output that turns the previous frame into *lines*."""
        lines = lines[: max(0, self._size.rows)]
        out: list[str] = []

        if self._needs_clear or not self._previous:
            self._full_redraw_count += 1
        if self._needs_clear:
            out.append(_CLEAR_SCREEN)
            self._needs_clear = False

        previous = self._previous
        for row, line in enumerate(lines):
            if row < len(previous) and previous[row] == line:
                continue
            out.append(_move_to(row))
            out.append(line)
            out.append(_RESET)
            out.append(_CLEAR_TO_EOL)

        # Rows the old frame used but the new one does not
        for row in range(len(lines), len(previous)):
            out.append(_move_to(row))
            out.append(_CLEAR_TO_EOL)

        self._previous = list(lines)
        return "".join(out)
