"""Tests for windows and the window store."""

from __future__ import annotations

import asyncio

import pytest

from cabin.tui.window import STATUS_CHANNEL, LineEntry, Window, WindowStore


def store_with(n: int) -> WindowStore:
    store = WindowStore()
    for i in range(n):
        store.add_window(b"\xab", f"c{i}")
    return store


class TestWindowLines:
    def test_lines_follow_insertion_order_not_timestamp(self) -> None:
        window = Window(b"\xab", "test")
        window.insert_line(300, None, None, "first")
        window.insert_line(100, None, None, "second")
        window.insert_line(100, None, None, "third")
        assert [line.text for line in window.lines] == ["first", "second", "third"]
        assert [line.index for line in window.lines] == [0, 1, 2]

    def test_line_index_only_increases(self) -> None:
        window = Window(b"\xab", "test")
        for _ in range(3):
            window.write("x")
        assert window.line_index == 3
        window.lines.clear()
        assert window.write("y").index == 3

    def test_entries_compare_on_index_only(self) -> None:
        a = LineEntry(1, 999, b"\x01", "z", "zzz")
        b = LineEntry(2, 0, None, None, "a")
        assert a < b

    @pytest.mark.asyncio
    async def test_two_writers_keep_fifo_order(self) -> None:
        window = Window(b"\xab", "test")

        async def writer(name: str, timestamps: list[int]) -> None:
            for n, ts in enumerate(timestamps):
                window.insert_line(ts, None, None, f"{name}{n}")
                await asyncio.sleep(0)

        await asyncio.gather(writer("a", [5, 5, 5]), writer("b", [9, 1, 0]))
        assert [line.text for line in window.lines] == ["a0", "b0", "a1", "b1", "a2", "b2"]
        indexes = [line.index for line in window.lines]
        assert indexes == sorted(indexes)

    def test_status_window(self) -> None:
        assert Window(b"", STATUS_CHANNEL).is_status
        assert not Window(b"\xab", STATUS_CHANNEL).is_status


class TestWindowStore:
    def test_starts_with_status_window(self) -> None:
        store = WindowStore()
        assert len(store) == 1
        assert store.status.is_status
        assert store.active_index == 0
        assert store.active_address is None

    def test_add_returns_new_index(self) -> None:
        store = WindowStore()
        assert store.add_window(b"\xab", "a") == 1
        assert store.add_window(b"\xab", "b") == 2

    def test_find_window(self) -> None:
        store = store_with(2)
        assert store.find_window(b"\xab", "c1") == 2
        assert store.find_window(b"\xcd", "c1") is None

    def test_removing_before_active_shifts_it_down(self) -> None:
        store = store_with(3)
        store.set_active(3)
        store.remove_window(1)
        assert store.active_index == 2
        assert store.active_window.channel == "c2"

    def test_removing_after_active_leaves_it(self) -> None:
        store = store_with(3)
        store.set_active(1)
        store.remove_window(3)
        assert store.active_index == 1

    def test_removing_active_selects_previous(self) -> None:
        store = store_with(2)
        store.set_active(2)
        removed = store.remove_window(2)
        assert removed is not None and removed.channel == "c1"
        assert store.active_index == 1

    def test_status_window_cannot_be_removed(self) -> None:
        store = WindowStore()
        assert store.remove_window(0) is None
        assert len(store) == 1
        assert store.active_index == 0

    def test_out_of_range_removal_is_ignored(self) -> None:
        store = store_with(1)
        assert store.remove_window(5) is None
        assert store.remove_window(-1) is None
        assert len(store) == 2

    def test_set_active_clamps(self) -> None:
        store = store_with(2)
        assert store.set_active(10) == 2
        assert store.set_active(-3) == 0

    def test_cycle_wraps(self) -> None:
        store = store_with(2)
        assert store.cycle(1) == 1
        assert store.cycle(1) == 2
        assert store.cycle(1) == 0
        assert store.cycle(-1) == 2

    def test_index_of_tracks_identity(self) -> None:
        store = store_with(2)
        window = store[2]
        store.remove_window(1)
        assert store.index_of(window) == 1
        store.remove_window(1)
        assert store.index_of(window) is None
        assert store.get(1) is None
