"""Cancellation tokens for live channel subscriptions.

Each joined channel has one background task streaming its posts into a
window.  The task holds a :class:`CancelToken` and checks it before every
write; leaving the channel cancels the token so the task stops on its own
and releases the engine stream on the way out.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)

SubscriptionKey = tuple[bytes, str]


class CancelToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def event(self) -> asyncio.Event:
        """The underlying event, for engines that accept an ``abort_event``."""
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()


class SubscriptionRegistry:
    """Maps ``(address, channel)`` to the token of its live subscription."""

    def __init__(self) -> None:
        self._tokens: dict[SubscriptionKey, CancelToken] = {}

    def __contains__(self, key: SubscriptionKey) -> bool:
        return key in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def get(self, key: SubscriptionKey) -> CancelToken | None:
        return self._tokens.get(key)

    def register(self, key: SubscriptionKey) -> CancelToken:
        """Create the token for *key*, cancelling any token it replaces."""
        previous = self._tokens.get(key)
        if previous is not None:
            logger.warning("replacing live subscription for %s/%s", key[0].hex(), key[1])
            previous.cancel()
        token = CancelToken()
        self._tokens[key] = token
        return token

    def pop(self, key: SubscriptionKey) -> CancelToken | None:
        return self._tokens.pop(key, None)

    def cancel(self, key: SubscriptionKey) -> bool:
        token = self.pop(key)
        if token is None:
            return False
        token.cancel()
        logger.debug("cancelled subscription for %s/%s", key[0].hex(), key[1])
        return True

    def discard(self, key: SubscriptionKey, token: CancelToken) -> None:
        """Forget *key* only while it still maps to *token*."""
        if self._tokens.get(key) is token:
            del self._tokens[key]

    def cancel_all(self) -> None:
        for token in self._tokens.values():
            token.cancel()
        self._tokens.clear()
