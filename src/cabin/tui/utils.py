"""Terminal text utilities: display width, truncation, sanitising, colours.

Frame lines carry SGR colour codes, so every measurement here skips ANSI
escape sequences and counts grapheme clusters by their terminal width.
"""

from __future__ import annotations

import re
import unicodedata

import grapheme
import wcwidth as _wcwidth

# ---------------------------------------------------------------------------
# ANSI patterns
# ---------------------------------------------------------------------------

_STRIP_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")

# C0 controls, DEL and C1 controls: never allowed through to the screen
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")

RESET = "\x1b[0m"
INVERSE = "\x1b[7m"
INVERSE_OFF = "\x1b[27m"

# Indexed by (sum of public key bytes) % 12
_AUTHOR_COLOURS = (
    "\x1b[37m",  # white
    "\x1b[31m",  # red
    "\x1b[32m",  # green
    "\x1b[33m",  # yellow
    "\x1b[34m",  # blue
    "\x1b[35m",  # magenta
    "\x1b[36m",  # cyan
    "\x1b[91m",  # bright red
    "\x1b[92m",  # bright green
    "\x1b[93m",  # bright yellow
    "\x1b[94m",  # bright blue
    "\x1b[95m",  # bright magenta
)

# ---------------------------------------------------------------------------
# Width cache (capped at 512 entries)
# ---------------------------------------------------------------------------

_width_cache: dict[str, int] = {}
_WIDTH_CACHE_MAX = 512


def _cache_width(key: str, value: int) -> int:
    if len(_width_cache) >= _WIDTH_CACHE_MAX:
        _width_cache.clear()
    _width_cache[key] = value
    return value


def _grapheme_width(g: str) -> int:
    """Return the terminal display width of a single grapheme cluster."""
    if not g:
        return 0

    if len(g) == 1:
        cp = ord(g)
        if cp < 0x20 or (0x7F <= cp <= 0x9F):
            return 0
        return max(_wcwidth.wcwidth(g), 0)

    for ch in g:
        cp = ord(ch)
        if cp in (0xFE0F, 0x200D):  # VS16, ZWJ
            return 2
        if 0x1F1E6 <= cp <= 0x1F1FF or 0x1F3FB <= cp <= 0x1F3FF:
            return 2

    first = g[0]
    if ord(first) >= 0x1F000:
        return 2
    if unicodedata.category(first).startswith("M") or unicodedata.category(first) == "Cf":
        return 0
    return max(_wcwidth.wcwidth(first), 0)


def visible_width(text: str) -> int:
    """Calculate the visible terminal width of *text*, ignoring ANSI codes."""
    if not text:
        return 0

    stripped = _STRIP_RE.sub("", text)
    if not stripped:
        return 0

    if all(0x20 <= ord(ch) <= 0x7E for ch in stripped):
        return len(stripped)

    cached = _width_cache.get(stripped)
    if cached is not None:
        return cached

    total = sum(_grapheme_width(g) for g in grapheme.graphemes(stripped))
    return _cache_width(stripped, total)


def truncate_to_width(text: str, max_width: int, ellipsis: str = "") -> str:
    """Cut *text* so it occupies at most *max_width* columns.

    ANSI codes are kept; when the text is cut, *ellipsis* is appended and
    counts towards the width.
    """
    if max_width <= 0:
        return ""

    if visible_width(text) <= max_width:
        return text

    target = max_width - visible_width(ellipsis)
    if target <= 0:
        return _take_columns(ellipsis, max_width)
    return _take_columns(text, target) + ellipsis


def _take_columns(text: str, max_cols: int) -> str:
    """Return a prefix of *text* that fits within *max_cols* visible columns."""
    result: list[str] = []
    cols = 0
    pos = 0

    for match in _STRIP_RE.finditer(text):
        plain = text[pos : match.start()]
        taken, cols, full = _take_plain(plain, max_cols, cols)
        result.append(taken)
        if not full:
            return "".join(result) + RESET
        result.append(match.group(0))
        pos = match.end()

    taken, cols, _ = _take_plain(text[pos:], max_cols, cols)
    result.append(taken)
    return "".join(result)


def _take_plain(text: str, max_cols: int, cols: int) -> tuple[str, int, bool]:
    out: list[str] = []
    for g in grapheme.graphemes(text):
        w = _grapheme_width(g)
        if cols + w > max_cols:
            return "".join(out), cols, False
        out.append(g)
        cols += w
    return "".join(out), cols, True


def sanitize(text: str) -> str:
    """Replace control characters so stored text cannot drive the terminal."""
    return _CONTROL_RE.sub(" ", text)


def author_colour(public_key: bytes) -> str:
    """Pick an SGR colour from the sum of the bytes of *public_key*."""
    return _AUTHOR_COLOURS[sum(public_key) % len(_AUTHOR_COLOURS)]
