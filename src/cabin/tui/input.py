"""Byte-at-a-time keyboard decoder and the in-progress input line.

Raw terminal bytes are fed one at a time.  Printable characters are merged
straight into the line buffer; everything else surfaces as an event.
Escape sequences are recognised by a small table-driven state machine so
that a partial ``ESC [ 3`` never leaks ``[`` or ``3`` into the buffer, and
any byte that does not continue a known prefix drops back to ``IDLE`` and
is processed again as an ordinary byte.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Union

ESC = 0x1B

NavigationKind = Literal["up", "down", "left", "right", "home", "end"]
OtherKind = Literal["delete", "backspace", "interrupt", "next_window", "prev_window"]


@dataclass(frozen=True)
class LineSubmitted:
    text: str


@dataclass(frozen=True)
class NavigationKey:
    kind: NavigationKind


@dataclass(frozen=True)
class OtherKey:
    kind: OtherKind


InputEvent = Union[LineSubmitted, NavigationKey, OtherKey]


class SeqState(Enum):
    IDLE = "idle"
    SAW_ESCAPE = "saw_escape"
    SAW_BRACKET = "saw_bracket"
    SAW_BRACKET_DIGIT = "saw_bracket_digit"


# (state, byte) -> (next state, event or None)
_TRANSITIONS: dict[tuple[SeqState, int], tuple[SeqState, InputEvent | None]] = {
    (SeqState.IDLE, ESC): (SeqState.SAW_ESCAPE, None),
    (SeqState.SAW_ESCAPE, 0x5B): (SeqState.SAW_BRACKET, None),  # [
    (SeqState.SAW_BRACKET, 0x41): (SeqState.IDLE, NavigationKey("up")),  # A
    (SeqState.SAW_BRACKET, 0x42): (SeqState.IDLE, NavigationKey("down")),  # B
    (SeqState.SAW_BRACKET, 0x43): (SeqState.IDLE, NavigationKey("right")),  # C
    (SeqState.SAW_BRACKET, 0x44): (SeqState.IDLE, NavigationKey("left")),  # D
    (SeqState.SAW_BRACKET, 0x48): (SeqState.IDLE, NavigationKey("home")),  # H
    (SeqState.SAW_BRACKET, 0x46): (SeqState.IDLE, NavigationKey("end")),  # F
    (SeqState.SAW_BRACKET, 0x33): (SeqState.SAW_BRACKET_DIGIT, None),  # 3
    (SeqState.SAW_BRACKET_DIGIT, 0x7E): (SeqState.IDLE, OtherKey("delete")),  # ~
}

# Control bytes recognised outside escape sequences.
_CONTROL: dict[int, InputEvent] = {
    0x01: NavigationKey("home"),  # ctrl+a
    0x03: OtherKey("interrupt"),  # ctrl+c
    0x05: NavigationKey("end"),  # ctrl+e
    0x08: OtherKey("backspace"),  # ctrl+h
    0x0E: OtherKey("next_window"),  # ctrl+n
    0x10: OtherKey("prev_window"),  # ctrl+p
    0x7F: OtherKey("backspace"),
}

_SUBMIT = (0x0D, 0x0A)


@dataclass
class Input:
    """The line being typed plus the decoder state that feeds it.

    ``cursor`` counts characters and always satisfies
    ``0 <= cursor <= len(value)``.
    """

    value: str = ""
    cursor: int = 0
    history: list[str] = field(default_factory=list)
    _state: SeqState = field(default=SeqState.IDLE, repr=False)
    _history_pos: int | None = field(default=None, repr=False)
    _utf8: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace"),
        repr=False,
    )

    @property
    def state(self) -> SeqState:
        return self._state

    # -- decoding -------------------------------------------------------

    def feed(self, byte: int) -> list[InputEvent]:
        """Consume one byte and return the events it completes."""
        transition = _TRANSITIONS.get((self._state, byte))
        if transition is None and self._state is not SeqState.IDLE:
            self._state = SeqState.IDLE
            transition = _TRANSITIONS.get((self._state, byte))
        if transition is not None:
            self._state, event = transition
            if event is None:
                return []
            self._apply(event)
            return [event]
        return self._feed_plain(byte)

    def feed_bytes(self, data: bytes) -> list[InputEvent]:
        events: list[InputEvent] = []
        for byte in data:
            events.extend(self.feed(byte))
        return events

    def _feed_plain(self, byte: int) -> list[InputEvent]:
        if byte in _SUBMIT:
            return [self._submit()]
        event = _CONTROL.get(byte)
        if event is not None:
            self._apply(event)
            return [event]
        if byte < 0x20:
            return []
        text = self._utf8.decode(bytes([byte]))
        if text:
            self.insert_at_cursor(text)
        return []

    def _submit(self) -> LineSubmitted:
        line = self.value + self._utf8.decode(b"", final=True)
        self._utf8.reset()
        if line:
            self.history.append(line)
        self._history_pos = None
        self.value = ""
        self.cursor = 0
        return LineSubmitted(line)

    def _apply(self, event: InputEvent) -> None:
        if isinstance(event, NavigationKey):
            if event.kind == "left":
                self.set_cursor(self.cursor - 1)
            elif event.kind == "right":
                self.set_cursor(self.cursor + 1)
            elif event.kind == "home":
                self.cursor = 0
            elif event.kind == "end":
                self.cursor = len(self.value)
            elif event.kind == "up":
                self._recall(-1)
            elif event.kind == "down":
                self._recall(1)
        elif isinstance(event, OtherKey):
            if event.kind == "backspace":
                self.remove_left(1)
            elif event.kind == "delete":
                self.remove_right(1)

    def _recall(self, step: int) -> None:
        if not self.history:
            return
        if self._history_pos is None:
            if step > 0:
                return
            pos = len(self.history) - 1
        else:
            pos = self._history_pos + step
        if pos < 0:
            pos = 0
        if pos >= len(self.history):
            self._history_pos = None
            self.set_value("")
            return
        self._history_pos = pos
        self.value = self.history[pos]
        self.cursor = len(self.value)

    # -- editing --------------------------------------------------------

    def insert_at_cursor(self, text: str) -> None:
        c = min(self.cursor, len(self.value))
        self.value = self.value[:c] + text + self.value[c:]
        self.cursor = c + len(text)

    def remove_left(self, n: int) -> None:
        c = min(self.cursor, len(self.value))
        start = max(0, c - max(0, n))
        self.value = self.value[:start] + self.value[c:]
        self.cursor = start

    def remove_right(self, n: int) -> None:
        c = min(self.cursor, len(self.value))
        self.value = self.value[:c] + self.value[c + max(0, n) :]
        self.cursor = c

    def set_value(self, text: str) -> None:
        self.value = text
        self.cursor = min(self.cursor, len(text))

    def set_cursor(self, cursor: int) -> None:
        self.cursor = max(0, min(cursor, len(self.value)))
