"""Tests for cancellation tokens and the subscription registry."""

from __future__ import annotations

from cabin.subscriptions import CancelToken, SubscriptionRegistry

KEY = (b"\xab", "test")


class TestCancelToken:
    def test_cancel_sets_event(self) -> None:
        token = CancelToken()
        assert not token.cancelled
        token.cancel()
        assert token.cancelled
        assert token.event.is_set()


class TestRegistry:
    def test_register_replaces_and_cancels_previous(self) -> None:
        registry = SubscriptionRegistry()
        first = registry.register(KEY)
        second = registry.register(KEY)
        assert first.cancelled
        assert not second.cancelled
        assert registry.get(KEY) is second
        assert len(registry) == 1

    def test_cancel_removes_entry(self) -> None:
        registry = SubscriptionRegistry()
        token = registry.register(KEY)
        assert registry.cancel(KEY)
        assert token.cancelled
        assert KEY not in registry
        assert not registry.cancel(KEY)

    def test_same_channel_on_two_cabals(self) -> None:
        registry = SubscriptionRegistry()
        registry.register((b"\x01", "test"))
        other = registry.register((b"\x02", "test"))
        registry.cancel((b"\x01", "test"))
        assert not other.cancelled

    def test_discard_ignores_newer_token(self) -> None:
        registry = SubscriptionRegistry()
        old = registry.register(KEY)
        registry.pop(KEY)
        new = registry.register(KEY)
        registry.discard(KEY, old)
        assert registry.get(KEY) is new
        registry.discard(KEY, new)
        assert KEY not in registry

    def test_cancel_all(self) -> None:
        registry = SubscriptionRegistry()
        tokens = [registry.register((b"\x01", c)) for c in "abc"]
        registry.cancel_all()
        assert all(t.cancelled for t in tokens)
        assert len(registry) == 0
