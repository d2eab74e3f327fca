"""The capability surface the client needs from a protocol engine."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from cabin.engine.types import ChannelOptions, Post


class Cable(Protocol):
    """One engine instance, bound to a single cabal address.

    ``post_*`` raise :class:`~cabin.engine.types.InvalidPostError` when the
    post is rejected.  Streams returned by :meth:`open_channel` run until
    *abort_event* is set or :meth:`close_channel` is called for their
    channel; they cannot be resumed afterwards.
    """

    address: bytes

    def get_keypair(self) -> tuple[bytes, bytes]: ...

    async def post_text(self, channel: str, text: str) -> Post: ...

    async def post_topic(self, channel: str, topic: str) -> Post: ...

    async def post_join(self, channel: str) -> Post: ...

    async def post_leave(self, channel: str) -> Post: ...

    async def post_info_name(self, name: str) -> Post: ...

    async def post_delete(self, hashes: Sequence[str]) -> Post: ...

    def get_posts(self, options: ChannelOptions) -> AsyncIterator[Post]: ...

    def open_channel(
        self,
        options: ChannelOptions,
        *,
        abort_event: asyncio.Event | None = None,
    ) -> AsyncIterator[Post]: ...

    def close_channel(self, channel: str) -> None: ...

    async def is_channel_member(self, channel: str, public_key: bytes) -> bool: ...

    async def get_channel_members(self, channel: str) -> list[bytes]: ...

    async def get_channels(self) -> list[str]: ...

    async def get_peer_name_and_hash(self, public_key: bytes) -> tuple[str, str] | None: ...

    async def listen(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None: ...
