"""Tests for timestamp helpers."""

from __future__ import annotations

import time
from datetime import datetime

from cabin.timefmt import days_ago, format_timestamp, now_ms


class TestTime:
    def test_now_ms_tracks_wall_clock(self) -> None:
        assert abs(now_ms() - time.time() * 1000) < 1000

    def test_days_ago(self) -> None:
        two_weeks = 14 * 86_400_000
        assert abs(now_ms() - two_weeks - days_ago(14)) < 1000

    def test_days_ago_never_negative(self) -> None:
        assert days_ago(10**9) == 0

    def test_format_is_local_hours_and_minutes(self) -> None:
        ts = int(datetime(2024, 5, 6, 7, 8).timestamp() * 1000)
        assert format_timestamp(ts) == "07:08"

    def test_unrepresentable(self) -> None:
        assert format_timestamp(10**20) == "XX:XX"
