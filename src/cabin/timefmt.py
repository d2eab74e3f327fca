"""Time-related helpers.

Timestamps are milliseconds since the Unix epoch throughout.
"""

from __future__ import annotations

import time
from datetime import datetime

_DAY_MS = 86_400_000


def now_ms() -> int:
    """Return the current system time in milliseconds."""
    return time.time_ns() // 1_000_000


def days_ago(days: int) -> int:
    """Return the timestamp *days* days before now.

    Used as the start of the time range requested when joining a channel.
    """
    return max(0, now_ms() - days * _DAY_MS)


def format_timestamp(timestamp: int) -> str:
    """Format *timestamp* as local ``HH:MM``, or ``XX:XX`` if unrepresentable."""
    try:
        return datetime.fromtimestamp(timestamp / 1000).strftime("%H:%M")
    except (OverflowError, OSError, ValueError):
        return "XX:XX"
