"""The orchestration layer: cabals, connections, channel subscriptions.

:class:`App` is the only thing that starts background work and the only
caller into the UI from that work.  Every read-modify-render step on the
UI happens inside ``async with app.ui_lock`` and nothing awaits the engine
or the network while holding it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Coroutine, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from cabin.addr import from_hex, parse_host_port, to_hex
from cabin.config import Settings
from cabin.engine import Cable, ChannelOptions, EngineError, MemoryCable, Post
from cabin.subscriptions import CancelToken, SubscriptionRegistry
from cabin.timefmt import days_ago, now_ms
from cabin.tui import UI, LineSubmitted, OtherKey, TermSize, Terminal, Window

logger = logging.getLogger(__name__)

CableFactory = Callable[[bytes], Cable]

HELP_LINES = (
    "available commands:",
    "  /help                       show this list",
    "  /quit, /exit                leave cabin",
    "  /win, /w INDEX              switch to window INDEX",
    "  /join, /j CHANNEL           join CHANNEL on the active cabal",
    "  /leave [CHANNEL]            leave CHANNEL (default: this window)",
    "  /cabal add|set ADDR         add a cabal, or make it active",
    "  /cabal list                 list cabals",
    "  /connect HOST:PORT          replicate with a peer",
    "  /listen [HOST:]PORT         accept peers",
    "  /connections                list connections",
    "  /channels                   list known channels",
    "  /members [CHANNEL]          list channel members",
    "  /nick NAME                  set your name",
    "  /topic [TEXT]               show or set the channel topic",
    "  /whoami                     show your public key",
)


class UsageError(Exception):
    """A command was used wrongly; the message goes to the status window."""


@dataclass(frozen=True)
class Connection:
    kind: Literal["connected", "listening"]
    address: str

    def describe(self) -> str:
        verb = "connected to" if self.kind == "connected" else "listening on"
        return f"{verb} {self.address}"


class App:
    def __init__(
        self,
        terminal: Terminal,
        *,
        settings: Settings | None = None,
        cable_factory: CableFactory = MemoryCable,
        size: TermSize | None = None,
    ) -> None:
        self.terminal = terminal
        self.settings = settings or Settings()
        self.cable_factory = cable_factory
        self.ui = UI(
            size or TermSize(terminal.columns, terminal.rows),
            terminal,
            window_limit=self.settings.window_limit,
        )
        self.ui_lock = asyncio.Lock()
        self.cables: dict[bytes, Cable] = {}
        self.connections: list[Connection] = []
        self.subscriptions = SubscriptionRegistry()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._exit = asyncio.Event()

        self._commands: dict[str, Callable[[str], Awaitable[None]]] = {
            "help": self._cmd_help,
            "quit": self._cmd_quit,
            "exit": self._cmd_quit,
            "win": self._cmd_win,
            "w": self._cmd_win,
            "join": self._cmd_join,
            "j": self._cmd_join,
            "leave": self._cmd_leave,
            "cabal": self._cmd_cabal,
            "connect": self._cmd_connect,
            "listen": self._cmd_listen,
            "connections": self._cmd_connections,
            "channels": self._cmd_channels,
            "members": self._cmd_members,
            "nick": self._cmd_nick,
            "topic": self._cmd_topic,
            "whoami": self._cmd_whoami,
        }

    # -- lifecycle ----------------------------------------------------------

    @property
    def exit_requested(self) -> bool:
        return self._exit.is_set()

    def exit(self) -> None:
        self._exit.set()

    async def run(self, startup: Iterable[str] = ()) -> None:
        """Drive the foreground loop until ``/quit``, Ctrl-C or end of input."""
        chunks: asyncio.Queue[bytes] = asyncio.Queue()
        self.terminal.start(chunks.put_nowait, self._on_resize)
        try:
            async with self.ui_lock:
                self.ui.update()
            for line in startup:
                await self.handle(line)
                if self.exit_requested:
                    return
            while not self.exit_requested:
                data = await chunks.get()
                if not data:
                    logger.info("end of input")
                    break
                await self.feed(data)
        finally:
            await self.shutdown()
            self.ui.finish()
            self.terminal.stop()

    async def shutdown(self) -> None:
        """Cancel every background task and wait for them to finish."""
        self.subscriptions.cancel_all()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("stopped %d background tasks", len(tasks))

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _on_resize(self) -> None:
        self._spawn(self._resize(), name="resize")

    async def _resize(self) -> None:
        async with self.ui_lock:
            self.ui.resize(TermSize(self.terminal.columns, self.terminal.rows))
            self.ui.update()

    # -- input --------------------------------------------------------------

    async def feed(self, data: bytes) -> None:
        """Decode a chunk of keyboard input and act on what it completes."""
        async with self.ui_lock:
            events = self.ui.input.feed_bytes(data)
            self.ui.update()

        for event in events:
            if isinstance(event, LineSubmitted):
                await self.handle(event.text)
            elif isinstance(event, OtherKey):
                if event.kind == "interrupt":
                    self.exit()
                elif event.kind in ("next_window", "prev_window"):
                    async with self.ui_lock:
                        self.ui.cycle_window(1 if event.kind == "next_window" else -1)
                        self.ui.update()
            if self.exit_requested:
                return

    async def status(self, text: str) -> None:
        async with self.ui_lock:
            self.ui.write_status(text)
            self.ui.update()

    async def handle(self, line: str) -> None:
        """Run one submitted line: a slash command or a post."""
        if not line.strip():
            return
        await self.status(f"> {line}")
        try:
            if line.startswith("/"):
                await self.dispatch(line)
            else:
                await self.post(line)
        except UsageError as e:
            await self.status(str(e))
        except EngineError as e:
            logger.info("engine rejected %r: %s", line, e)
            await self.status(f"error: {e}")
        except Exception as e:
            logger.exception("command failed: %s", line)
            await self.status(f"error: {e}")

    async def dispatch(self, line: str) -> None:
        name, _, rest = line[1:].strip().partition(" ")
        handler = self._commands.get(name)
        if handler is None:
            raise UsageError(f"no such command: /{name}")
        await handler(rest.strip())

    async def post(self, line: str) -> None:
        async with self.ui_lock:
            window = self.ui.get_active_window()
        cable = self.cables.get(window.address)
        if window.is_status or cable is None:
            raise UsageError("can't post text in status channel. see /help for command list")
        await cable.post_text(window.channel, line.rstrip())

    # -- helpers ------------------------------------------------------------

    def _active_cable(self) -> Cable:
        address = self.ui.get_active_address()
        cable = self.cables.get(address) if address is not None else None
        if cable is None:
            raise UsageError("no active cabal. add one with /cabal add ADDR")
        return cable

    async def _active_channel(self) -> Window:
        async with self.ui_lock:
            window = self.ui.get_active_window()
        if window.is_status:
            raise UsageError("not in a channel. join one with /join CHANNEL")
        return window

    @staticmethod
    async def _resolve_names(cable: Cable, public_keys: Iterable[bytes]) -> dict[bytes, str]:
        names: dict[bytes, str] = {}
        for key in set(public_keys):
            found = await cable.get_peer_name_and_hash(key)
            if found is not None:
                names[key] = found[0]
        return names

    @staticmethod
    def _show_post(window: Window, post: Post, names: dict[bytes, str]) -> None:
        if post.type == "text":
            text = post.text or ""
        elif post.type == "topic":
            window.topic = post.topic or ""
            text = f"* changed the topic to: {window.topic}"
        elif post.type == "join":
            text = f"* joined #{post.channel}"
        elif post.type == "leave":
            text = f"* left #{post.channel}"
        else:
            return
        window.insert_line(post.timestamp, post.author, names.get(post.author), text)

    # -- channels -----------------------------------------------------------

    async def join(self, cable: Cable, channel: str) -> int:
        """Open a window for *channel*, paint its history and stream the rest."""
        address = cable.address
        public_key, _ = cable.get_keypair()
        if not await cable.is_channel_member(channel, public_key):
            await cable.post_join(channel)

        history = ChannelOptions(
            channel=channel,
            time_start=days_ago(self.settings.history_days),
            time_end=now_ms(),
            limit=0,
        )
        stored = [post async for post in cable.get_posts(history)]
        # The live stream replays the whole range; everything already stored
        # at drain time is skipped there, shown or not.
        seen = {post.hash for post in stored}

        names = await self._resolve_names(cable, (post.author for post in stored))

        async with self.ui_lock:
            index = self.ui.add_window(address, channel)
            window = self.ui.store[index]
            posts = stored[-window.limit :] if window.limit > 0 else stored
            for post in posts:
                self._show_post(window, post, names)
            self.ui.set_active_index(index)
            self.ui.update()

        live = ChannelOptions(channel=channel, time_start=history.time_start, time_end=0, limit=0)
        token = self.subscriptions.register((address, channel))
        self._spawn(
            self._stream_channel(cable, window, live, token, seen),
            name=f"channel {to_hex(address)}/{channel}",
        )
        logger.info("joined %s/%s with %d stored posts", to_hex(address), channel, len(posts))
        return index

    async def _stream_channel(
        self,
        cable: Cable,
        window: Window,
        options: ChannelOptions,
        token: CancelToken,
        seen: set[str],
    ) -> None:
        key = (cable.address, options.channel)
        try:
            stream = cable.open_channel(options, abort_event=token.event)
            async with contextlib.aclosing(stream):
                async for post in stream:
                    if token.cancelled:
                        break
                    if post.hash in seen:
                        seen.discard(post.hash)
                        continue
                    names = await self._resolve_names(cable, (post.author,))
                    async with self.ui_lock:
                        if token.cancelled or self.ui.store.index_of(window) is None:
                            break
                        self._show_post(window, post, names)
                        self.ui.update()
        except Exception as e:
            logger.exception("channel stream for #%s failed", options.channel)
            await self.status(f"error: #{options.channel} stopped updating: {e}")
        finally:
            self.subscriptions.discard(key, token)
            logger.debug("stopped streaming %s/%s", to_hex(key[0]), key[1])

    async def leave(self, address: bytes, channel: str) -> None:
        cable = self.cables.get(address)
        async with self.ui_lock:
            index = self.ui.find_window(address, channel)
            if index is None:
                raise UsageError(f"not in #{channel}")
            # Stop the live stream before its window goes away
            self.subscriptions.cancel((address, channel))
            if cable is not None:
                cable.close_channel(channel)
            self.ui.remove_window(index)
            self.ui.update()
        logger.info("left %s/%s", to_hex(address), channel)
        if cable is not None:
            await cable.post_leave(channel)

    # -- networking ---------------------------------------------------------

    async def _connect(self, cable: Cable, host: str, port: int) -> None:
        label = f"{host}:{port}"
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as e:
            logger.warning("connect to %s failed: %s", label, e)
            await self.status(f"failed to connect to {label}: {e}")
            return

        entry = Connection("connected", label)
        self.connections.append(entry)
        await self.status(f"connected to {label}")
        try:
            await cable.listen(reader, writer)
        except (ConnectionError, OSError) as e:
            logger.warning("connection to %s failed: %s", label, e)
            await self.status(f"connection to {label} failed: {e}")
        else:
            await self.status(f"disconnected from {label}")
        finally:
            self.connections.remove(entry)

    async def _listen(self, cable: Cable, host: str, port: int) -> None:
        async def on_peer(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            peer = writer.get_extra_info("peername")
            try:
                await cable.listen(reader, writer)
            except Exception as e:
                logger.warning("peer %s failed: %s", peer, e)
                await self.status(f"peer {peer} failed: {e}")

        try:
            server = await asyncio.start_server(on_peer, host, port)
        except OSError as e:
            logger.warning("listen on %s:%d failed: %s", host, port, e)
            await self.status(f"failed to listen on {host}:{port}: {e}")
            return

        bound_port = server.sockets[0].getsockname()[1] if server.sockets else port
        entry = Connection("listening", f"{host}:{bound_port}")
        self.connections.append(entry)
        await self.status(entry.describe())
        try:
            async with server:
                await server.serve_forever()
        finally:
            self.connections.remove(entry)

    # -- commands -----------------------------------------------------------

    async def _cmd_help(self, rest: str) -> None:
        async with self.ui_lock:
            for text in HELP_LINES:
                self.ui.write_status(text)
            self.ui.update()

    async def _cmd_quit(self, rest: str) -> None:
        self.exit()

    async def _cmd_win(self, rest: str) -> None:
        if not rest.isdigit():
            raise UsageError("usage: /win INDEX")
        async with self.ui_lock:
            if self.ui.get_window(int(rest)) is None:
                raise UsageError(f"no such window: {rest}")
            self.ui.set_active_index(int(rest))
            self.ui.update()

    async def _cmd_join(self, rest: str) -> None:
        args = rest.split()
        if not args:
            raise UsageError("usage: /join CHANNEL")
        channel = args[0].lstrip("#")
        cable = self._active_cable()
        async with self.ui_lock:
            existing = self.ui.find_window(cable.address, channel)
            if existing is not None:
                self.ui.set_active_index(existing)
                self.ui.update()
                return
        await self.join(cable, channel)

    async def _cmd_leave(self, rest: str) -> None:
        args = rest.split()
        async with self.ui_lock:
            window = self.ui.get_active_window()
            active_address = self.ui.get_active_address()
        if args:
            channel = args[0].lstrip("#")
            address = active_address if window.is_status else window.address
        elif window.is_status:
            raise UsageError("usage: /leave CHANNEL")
        else:
            channel, address = window.channel, window.address
        if address is None:
            raise UsageError("no active cabal. add one with /cabal add ADDR")
        await self.leave(address, channel)

    async def _cmd_cabal(self, rest: str) -> None:
        args = rest.split()
        action = args[0] if args else ""
        if action == "list":
            await self._list_cabals()
            return
        if action not in ("add", "set") or len(args) < 2:
            raise UsageError("usage: /cabal add|set ADDR, /cabal list")
        address = from_hex(args[1])
        if address is None:
            raise UsageError(f"invalid cabal address: {args[1]}")

        if action == "set":
            if address not in self.cables:
                raise UsageError(f"no such cabal: {to_hex(address)}. add it with /cabal add ADDR")
            async with self.ui_lock:
                self.ui.set_active_address(address)
                self.ui.write_status(f"active cabal: {to_hex(address)}")
                self.ui.update()
            return

        if address in self.cables:
            raise UsageError(f"cabal {to_hex(address)} already added")
        cable = self.cable_factory(address)
        self.cables[address] = cable
        logger.info("added cabal %s", to_hex(address))
        async with self.ui_lock:
            self.ui.write_status(f"added cabal {to_hex(address)}")
            if self.ui.get_active_address() is None:
                self.ui.set_active_address(address)
                self.ui.write_status(f"active cabal: {to_hex(address)}")
            self.ui.update()
        if self.settings.nick:
            await cable.post_info_name(self.settings.nick)

    async def _list_cabals(self) -> None:
        async with self.ui_lock:
            active = self.ui.get_active_address()
            if not self.cables:
                self.ui.write_status("no cabals. add one with /cabal add ADDR")
            for address in self.cables:
                marker = "*" if address == active else " "
                self.ui.write_status(f"{marker} {to_hex(address)}")
            self.ui.update()

    async def _cmd_connect(self, rest: str) -> None:
        target = parse_host_port(rest) if rest else None
        if target is None:
            raise UsageError("usage: /connect HOST:PORT")
        cable = self._active_cable()
        self._spawn(self._connect(cable, *target), name=f"connect {rest}")

    async def _cmd_listen(self, rest: str) -> None:
        target = parse_host_port(rest, default_host="0.0.0.0") if rest else None
        if target is None:
            raise UsageError("usage: /listen [HOST:]PORT")
        cable = self._active_cable()
        self._spawn(self._listen(cable, *target), name=f"listen {rest}")

    async def _cmd_connections(self, rest: str) -> None:
        await self._write_all(
            [entry.describe() for entry in self.connections] or ["no connections"]
        )

    async def _cmd_channels(self, rest: str) -> None:
        channels = await self._active_cable().get_channels()
        await self._write_all([f"#{c}" for c in channels] or ["no channels"])

    async def _cmd_members(self, rest: str) -> None:
        cable = self._active_cable()
        if rest:
            channel = rest.split()[0].lstrip("#")
        else:
            channel = (await self._active_channel()).channel
        members = await cable.get_channel_members(channel)
        names = await self._resolve_names(cable, members)
        lines = [names.get(key, key.hex()[:8]) for key in members]
        await self._write_all([f"members of #{channel}: {len(lines)}", *lines])

    async def _cmd_nick(self, rest: str) -> None:
        if not rest:
            raise UsageError("usage: /nick NAME")
        await self._active_cable().post_info_name(rest)
        await self.status(f"nick set to {rest}")

    async def _cmd_topic(self, rest: str) -> None:
        window = await self._active_channel()
        if not rest:
            await self.status(f"topic: {window.topic}" if window.topic else "no topic set")
            return
        cable = self.cables.get(window.address)
        if cable is None:
            raise UsageError("no active cabal. add one with /cabal add ADDR")
        await cable.post_topic(window.channel, rest)

    async def _cmd_whoami(self, rest: str) -> None:
        cable = self._active_cable()
        public_key, _ = cable.get_keypair()
        found = await cable.get_peer_name_and_hash(public_key)
        if found is None:
            await self.status(f"you are {public_key.hex()}")
        else:
            await self.status(f"you are {found[0]} ({public_key.hex()})")

    async def _write_all(self, lines: Sequence[str]) -> None:
        async with self.ui_lock:
            for text in lines:
                self.ui.write_status(text)
            self.ui.update()
