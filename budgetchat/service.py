from __future__ import annotations

import asyncio
import logging
import signal

from . import __version__
from .bus import Bus
from .config import ChatRuntimeConfig
from .rooms import Registry
from .session import ChatSession
from .stats import StatsManager
from .util import fmt_peer


class TcpService:
    """
    Shared lifecycle for the line-oriented TCP listeners.

    One task per accepted connection. A failure inside a connection task is
    logged and never reaches the listener or other connections.
    """

    name = "service"

    def __init__(self, config: ChatRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger(f"budgetchat.{self.name}")
        self.stats = StatsManager()

        self._server: asyncio.AbstractServer | None = None
        self._tasks: set[asyncio.Task] = set()
        self._shutdown: asyncio.Event | None = None

    @property
    def listen_address(self) -> tuple[str, int]:
        raise NotImplementedError

    @property
    def bound_port(self) -> int:
        if self._server is None or not self._server.sockets:
            raise RuntimeError(f"{self.name} is not listening")
        return int(self._server.sockets[0].getsockname()[1])

    async def start(self) -> None:
        if self._server is not None:
            return
        host, port = self.listen_address
        self._shutdown = asyncio.Event()
        self._server = await asyncio.start_server(
            self._on_connection,
            host,
            port,
            limit=int(self.config.max_line_bytes),
        )
        self.stats.set_start_time()
        addrs = ", ".join(fmt_peer(s.getsockname()) for s in self._server.sockets)
        self.log.info("budgetchat %s %s listening on %s", __version__, self.name, addrs)

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._shutdown is not None
        await self._shutdown.wait()

    async def run_forever(self) -> None:
        """Serve until SIGINT or SIGTERM."""
        await self.start()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: asyncio.ensure_future(self.stop()))
            except (NotImplementedError, RuntimeError):
                # Not available on this platform / loop.
                pass
        try:
            await self.serve_forever()
        finally:
            await self.stop()

    async def stop(self) -> None:
        server, self._server = self._server, None
        if server is None:
            return

        self.log.info("Stopping %s", self.name)
        server.close()
        self._before_drain()

        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await server.wait_closed()

        self.log.info(self.format_stats())
        if self._shutdown is not None:
            self._shutdown.set()

    def _before_drain(self) -> None:
        pass

    def format_stats(self) -> str:
        return self.stats.format_stats()

    async def _on_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        peer = fmt_peer(writer.get_extra_info("peername"))
        self.stats.inc("connections")
        self.log.info("Connection accepted peer=%s", peer)
        try:
            await self.handle(reader, writer)
        except asyncio.CancelledError:
            raise
        except Exception:
            self.log.exception("Unhandled error peer=%s", peer)
            writer.close()
        finally:
            if task is not None:
                self._tasks.discard(task)
            self.log.info("Connection closed peer=%s", peer)

    async def handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        raise NotImplementedError


class ChatService(TcpService):
    """The chat room: one registry and one bus shared by every session."""

    name = "chat"

    def __init__(self, config: ChatRuntimeConfig) -> None:
        super().__init__(config)
        self.registry = Registry()
        self.bus = Bus(capacity=int(config.bus_capacity))

    @property
    def listen_address(self) -> tuple[str, int]:
        return self.config.host, int(self.config.port)

    async def handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        session = ChatSession(
            reader,
            writer,
            registry=self.registry,
            bus=self.bus,
            config=self.config,
            stats=self.stats,
        )
        await session.run()

    def _before_drain(self) -> None:
        # Joined sessions end once their consumer sees the close.
        self.bus.close()

    def format_stats(self) -> str:
        return self.stats.format_stats(
            members=self.registry.get_stats()["members"],
            subscribers=self.bus.subscriber_count,
        )
