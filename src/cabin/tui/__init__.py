"""cabin.tui: windows, input decoding and differential rendering."""

from cabin.tui.diff import ScreenDiff, TermSize
from cabin.tui.input import (
    Input,
    InputEvent,
    LineSubmitted,
    NavigationKey,
    OtherKey,
    SeqState,
)
from cabin.tui.render import Renderer
from cabin.tui.terminal import ProcessTerminal, Terminal
from cabin.tui.ui import UI
from cabin.tui.window import STATUS_CHANNEL, LineEntry, Window, WindowStore

__all__ = [
    # Input
    "Input",
    "InputEvent",
    "LineSubmitted",
    "NavigationKey",
    "OtherKey",
    "SeqState",
    # Windows
    "STATUS_CHANNEL",
    "LineEntry",
    "Window",
    "WindowStore",
    # Rendering
    "Renderer",
    "ScreenDiff",
    "TermSize",
    # Terminal
    "ProcessTerminal",
    "Terminal",
    # Controller
    "UI",
]
