"""Tests for the in-process protocol engine."""

from __future__ import annotations

import asyncio

import pytest

from cabin.engine import ChannelOptions, InvalidPostError, MemoryCable, Post


async def collect(stream) -> list[Post]:
    return [post async for post in stream]


class TestPosting:
    @pytest.mark.asyncio
    async def test_post_text_is_sealed(self) -> None:
        cable = MemoryCable(b"\xab")
        post = await cable.post_text("test", "hello")
        assert post.type == "text"
        assert post.hash == post.compute_hash()
        assert post.author == cable.get_keypair()[0]

    @pytest.mark.asyncio
    async def test_channel_name_limits(self) -> None:
        cable = MemoryCable(b"\xab")
        with pytest.raises(InvalidPostError):
            await cable.post_text("", "x")
        with pytest.raises(InvalidPostError):
            await cable.post_join("c" * 65)

    @pytest.mark.asyncio
    async def test_text_and_topic_limits(self) -> None:
        cable = MemoryCable(b"\xab")
        with pytest.raises(InvalidPostError):
            await cable.post_text("test", "x" * 4097)
        with pytest.raises(InvalidPostError):
            await cable.post_topic("test", "x" * 513)
        with pytest.raises(InvalidPostError):
            await cable.post_info_name("")

    @pytest.mark.asyncio
    async def test_delete_hides_post(self) -> None:
        cable = MemoryCable(b"\xab")
        keep = await cable.post_text("test", "keep")
        gone = await cable.post_text("test", "gone")
        await cable.post_delete([gone.hash])
        posts = await collect(cable.get_posts(ChannelOptions(channel="test")))
        assert [p.hash for p in posts] == [keep.hash]

    @pytest.mark.asyncio
    async def test_cannot_delete_unknown_post(self) -> None:
        cable = MemoryCable(b"\xab")
        with pytest.raises(InvalidPostError):
            await cable.post_delete(["00" * 32])
        with pytest.raises(InvalidPostError):
            await cable.post_delete([])


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_posts_respects_range_and_limit(self) -> None:
        cable = MemoryCable(b"\xab")
        for i in range(5):
            await cable.post_text("test", f"m{i}")
        posts = await collect(cable.get_posts(ChannelOptions(channel="test", limit=2)))
        assert [p.text for p in posts] == ["m3", "m4"]
        future = ChannelOptions(channel="test", time_start=posts[-1].timestamp + 10_000)
        assert await collect(cable.get_posts(future)) == []

    @pytest.mark.asyncio
    async def test_membership_follows_latest_join_or_leave(self) -> None:
        cable = MemoryCable(b"\xab")
        key = cable.get_keypair()[0]
        assert not await cable.is_channel_member("test", key)
        await cable.post_join("test")
        assert await cable.is_channel_member("test", key)
        assert await cable.get_channel_members("test") == [key]
        await cable.post_leave("test")
        assert not await cable.is_channel_member("test", key)
        assert await cable.get_channel_members("test") == []

    @pytest.mark.asyncio
    async def test_channels_and_names(self) -> None:
        cable = MemoryCable(b"\xab")
        key = cable.get_keypair()[0]
        await cable.post_join("b")
        await cable.post_join("a")
        assert await cable.get_channels() == ["a", "b"]
        assert await cable.get_peer_name_and_hash(key) is None
        info = await cable.post_info_name("alice")
        assert await cable.get_peer_name_and_hash(key) == ("alice", info.hash)


class TestOpenChannel:
    @pytest.mark.asyncio
    async def test_bounded_range_ends_after_history(self) -> None:
        cable = MemoryCable(b"\xab")
        await cable.post_text("test", "old")
        posts = await collect(
            cable.open_channel(ChannelOptions(channel="test", time_end=2**62))
        )
        assert [p.text for p in posts] == ["old"]

    @pytest.mark.asyncio
    async def test_live_stream_delivers_new_posts(self) -> None:
        cable = MemoryCable(b"\xab")
        await cable.post_text("test", "old")
        stream = cable.open_channel(ChannelOptions(channel="test", limit=0))
        assert (await anext(stream)).text == "old"
        await cable.post_text("other", "elsewhere")
        await cable.post_text("test", "new")
        assert (await anext(stream)).text == "new"
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_abort_event_ends_stream(self) -> None:
        cable = MemoryCable(b"\xab")
        abort = asyncio.Event()
        stream = cable.open_channel(ChannelOptions(channel="test"), abort_event=abort)
        pending = asyncio.ensure_future(collect(stream))
        await asyncio.sleep(0.01)
        abort.set()
        assert await asyncio.wait_for(pending, 1) == []

    @pytest.mark.asyncio
    async def test_close_channel_ends_stream(self) -> None:
        cable = MemoryCable(b"\xab")
        stream = cable.open_channel(ChannelOptions(channel="test"))
        pending = asyncio.ensure_future(collect(stream))
        await asyncio.sleep(0.01)
        cable.close_channel("test")
        assert await asyncio.wait_for(pending, 1) == []


class TestReplication:
    @pytest.mark.asyncio
    async def test_peers_exchange_posts(self) -> None:
        server_cable = MemoryCable(b"\xab")
        client_cable = MemoryCable(b"\xab")
        await server_cable.post_text("test", "from server")

        server = await asyncio.start_server(server_cable.listen, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        client_task = asyncio.ensure_future(client_cable.listen(reader, writer))

        async def texts(cable: MemoryCable) -> list[str]:
            posts = await collect(cable.get_posts(ChannelOptions(channel="test", limit=0)))
            return [p.text for p in posts]

        await client_cable.post_text("test", "from client")
        for _ in range(100):
            if len(await texts(server_cable)) == 2 and len(await texts(client_cable)) == 2:
                break
            await asyncio.sleep(0.01)
        assert sorted(await texts(server_cable)) == ["from client", "from server"]
        assert sorted(await texts(client_cable)) == ["from client", "from server"]

        writer.close()
        await asyncio.wait_for(client_task, 1)
        server.close()
        await server.wait_closed()

    @pytest.mark.asyncio
    async def test_malformed_and_forged_lines_are_dropped(self) -> None:
        cable = MemoryCable(b"\xab")
        server = await asyncio.start_server(cable.listen, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        reader, writer = await asyncio.open_connection("127.0.0.1", port)

        forged = Post(type="text", public_key="00", timestamp=1, channel="test", text="x")
        writer.write(b"not json\n")
        writer.write(forged.model_copy(update={"hash": "ff"}).model_dump_json(by_alias=True).encode() + b"\n")
        writer.write(forged.sealed().model_dump_json(by_alias=True).encode() + b"\n")
        await writer.drain()

        for _ in range(100):
            if await cable.get_channels():
                break
            await asyncio.sleep(0.01)
        posts = await collect(cable.get_posts(ChannelOptions(channel="test")))
        assert [p.hash for p in posts] == [forged.sealed().hash]

        writer.close()
        server.close()
        await server.wait_closed()
