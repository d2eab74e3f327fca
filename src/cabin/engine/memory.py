"""In-process protocol engine.

``MemoryCable`` keeps every post in memory, answers the queries the
client makes, and replicates posts with any peer stream handed to
:meth:`MemoryCable.listen` as newline-delimited JSON.  Identity is a pair
of random byte strings; nothing is signed.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import AsyncIterator, Sequence

import pydantic

from cabin.engine.types import (
    MAX_CHANNEL_BYTES,
    MAX_NAME_BYTES,
    MAX_TEXT_BYTES,
    MAX_TOPIC_BYTES,
    ChannelOptions,
    InvalidPostError,
    Post,
)
from cabin.timefmt import now_ms

logger = logging.getLogger(__name__)


def _check_length(label: str, value: str, low: int, high: int) -> None:
    size = len(value.encode("utf-8"))
    if size < low or size > high:
        raise InvalidPostError(f"{label} must be {low}-{high} bytes (got {size})")


def _check_channel(channel: str) -> None:
    _check_length("channel name", channel, 1, MAX_CHANNEL_BYTES)


class MemoryCable:
    def __init__(self, address: bytes, *, public_key: bytes | None = None) -> None:
        self.address = address
        self._public_key = public_key if public_key is not None else secrets.token_bytes(32)
        self._secret_key = secrets.token_bytes(64)
        self._posts: dict[str, Post] = {}
        self._deleted: set[str] = set()
        self._subscribers: dict[str, list[asyncio.Queue[Post | None]]] = {}
        self._peers: set[asyncio.StreamWriter] = set()

    def get_keypair(self) -> tuple[bytes, bytes]:
        return self._public_key, self._secret_key

    # -- publishing ---------------------------------------------------------

    async def post_text(self, channel: str, text: str) -> Post:
        _check_channel(channel)
        _check_length("text", text, 0, MAX_TEXT_BYTES)
        return await self._publish(type="text", channel=channel, text=text)

    async def post_topic(self, channel: str, topic: str) -> Post:
        _check_channel(channel)
        _check_length("topic", topic, 0, MAX_TOPIC_BYTES)
        return await self._publish(type="topic", channel=channel, topic=topic)

    async def post_join(self, channel: str) -> Post:
        _check_channel(channel)
        return await self._publish(type="join", channel=channel)

    async def post_leave(self, channel: str) -> Post:
        _check_channel(channel)
        return await self._publish(type="leave", channel=channel)

    async def post_info_name(self, name: str) -> Post:
        _check_length("name", name, 1, MAX_NAME_BYTES)
        return await self._publish(type="info", name=name)

    async def post_delete(self, hashes: Sequence[str]) -> Post:
        if not hashes:
            raise InvalidPostError("nothing to delete")
        own = self._public_key.hex()
        for h in hashes:
            post = self._posts.get(h)
            if post is None or post.public_key != own:
                raise InvalidPostError(f"cannot delete post {h[:8]}")
        return await self._publish(type="delete", hashes=tuple(hashes))

    async def _publish(self, **fields: object) -> Post:
        post = Post(public_key=self._public_key.hex(), timestamp=now_ms(), **fields).sealed()
        self._store(post)
        await self._broadcast(post)
        return post

    def _store(self, post: Post) -> bool:
        if post.hash in self._posts:
            return False
        self._posts[post.hash] = post
        if post.type == "delete":
            self._deleted.update(post.hashes)
        if post.channel is not None:
            for queue in self._subscribers.get(post.channel, []):
                queue.put_nowait(post)
        return True

    async def _broadcast(self, post: Post, exclude: asyncio.StreamWriter | None = None) -> None:
        line = post.model_dump_json(by_alias=True).encode("utf-8") + b"\n"
        for writer in list(self._peers):
            if writer is exclude:
                continue
            try:
                writer.write(line)
                await writer.drain()
            except (ConnectionError, OSError):
                logger.debug("dropping peer after failed write", exc_info=True)
                self._peers.discard(writer)

    # -- reading ------------------------------------------------------------

    def _select(self, options: ChannelOptions) -> list[Post]:
        end = options.time_end or None
        matching = [
            post
            for post in self._posts.values()
            if post.channel == options.channel
            and post.hash not in self._deleted
            and post.timestamp >= options.time_start
            and (end is None or post.timestamp <= end)
        ]
        matching.sort(key=lambda p: p.timestamp)
        if options.limit > 0:
            matching = matching[-options.limit :]
        return matching

    async def get_posts(self, options: ChannelOptions) -> AsyncIterator[Post]:
        for post in self._select(options):
            yield post

    async def open_channel(
        self,
        options: ChannelOptions,
        *,
        abort_event: asyncio.Event | None = None,
    ) -> AsyncIterator[Post]:
        queue: asyncio.Queue[Post | None] = asyncio.Queue()
        subscribers = self._subscribers.setdefault(options.channel, [])
        # Subscribe before taking the snapshot so nothing falls between them
        subscribers.append(queue)
        try:
            for post in self._select(options):
                yield post
            if options.time_end:
                return
            while True:
                post = await _next_live(queue, abort_event)
                if post is None:
                    return
                if post.hash not in self._deleted:
                    yield post
        finally:
            subscribers.remove(queue)
            if not subscribers:
                self._subscribers.pop(options.channel, None)

    def close_channel(self, channel: str) -> None:
        for queue in self._subscribers.get(channel, []):
            queue.put_nowait(None)

    # -- queries ------------------------------------------------------------

    def _membership(self, channel: str) -> dict[str, bool]:
        latest: dict[str, Post] = {}
        for post in self._posts.values():
            if post.channel != channel or post.type not in ("join", "leave"):
                continue
            current = latest.get(post.public_key)
            if current is None or post.timestamp >= current.timestamp:
                latest[post.public_key] = post
        return {key: post.type == "join" for key, post in latest.items()}

    async def is_channel_member(self, channel: str, public_key: bytes) -> bool:
        return self._membership(channel).get(public_key.hex(), False)

    async def get_channel_members(self, channel: str) -> list[bytes]:
        return [bytes.fromhex(key) for key, joined in self._membership(channel).items() if joined]

    async def get_channels(self) -> list[str]:
        return sorted({post.channel for post in self._posts.values() if post.channel is not None})

    async def get_peer_name_and_hash(self, public_key: bytes) -> tuple[str, str] | None:
        key = public_key.hex()
        latest: Post | None = None
        for post in self._posts.values():
            if post.type == "info" and post.public_key == key and post.name:
                if latest is None or post.timestamp >= latest.timestamp:
                    latest = post
        if latest is None or latest.name is None:
            return None
        return latest.name, latest.hash

    # -- replication --------------------------------------------------------

    async def listen(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Exchange posts with a peer until its stream closes."""
        peer = writer.get_extra_info("peername")
        logger.info("replicating %s with %s", self.address.hex(), peer)
        self._peers.add(writer)
        try:
            for post in list(self._posts.values()):
                writer.write(post.model_dump_json(by_alias=True).encode("utf-8") + b"\n")
            await writer.drain()

            while True:
                line = await reader.readline()
                if not line:
                    break
                try:
                    post = Post.model_validate_json(line)
                except pydantic.ValidationError:
                    logger.warning("dropping malformed post from %s", peer)
                    continue
                if post.hash != post.compute_hash():
                    logger.warning("dropping post with bad hash from %s", peer)
                    continue
                if self._store(post):
                    await self._broadcast(post, exclude=writer)
        finally:
            self._peers.discard(writer)
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                logger.debug("error closing stream to %s", peer, exc_info=True)
            logger.info("stopped replicating with %s", peer)


async def _next_live(
    queue: asyncio.Queue[Post | None],
    abort_event: asyncio.Event | None,
) -> Post | None:
    """Wait for the next queued post, or ``None`` once aborted or closed."""
    if abort_event is None:
        return await queue.get()
    if abort_event.is_set():
        return None

    get_task = asyncio.ensure_future(queue.get())
    abort_task = asyncio.ensure_future(abort_event.wait())
    try:
        done, _ = await asyncio.wait(
            {get_task, abort_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        for task in (get_task, abort_task):
            if not task.done():
                task.cancel()

    if abort_event.is_set() or get_task not in done:
        return None
    return get_task.result()
