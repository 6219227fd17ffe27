"""Line relay between a client and an upstream chat server.

Each accepted connection gets its own upstream connection and two pumps,
one per direction. Every forwarded line has its address-shaped tokens
replaced. The pair ends as soon as either pump ends.
"""

from __future__ import annotations

import asyncio
import logging

from .codec import TRANSPORT_ERRORS, read_line, write_line
from .config import ChatRuntimeConfig
from .rewrite import rewrite_tokens
from .service import TcpService
from .stats import StatsManager
from .util import fmt_peer, run_until_first_completes


class UpstreamUnavailable(Exception):
    pass


class RelaySession:
    """One downstream client spliced to one upstream connection."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        config: ChatRuntimeConfig,
        stats: StatsManager | None = None,
    ) -> None:
        self.downstream_reader = reader
        self.downstream_writer = writer
        self.config = config
        self.stats = stats if stats is not None else StatsManager()
        self.log = logging.getLogger("budgetchat.relay")
        self.peer = fmt_peer(writer.get_extra_info("peername"))

        self.upstream_reader: asyncio.StreamReader | None = None
        self.upstream_writer: asyncio.StreamWriter | None = None

    @property
    def upstream(self) -> str:
        return f"{self.config.upstream_host}:{self.config.upstream_port}"

    async def connect_upstream(self) -> None:
        dial = asyncio.open_connection(
            self.config.upstream_host,
            int(self.config.upstream_port),
            limit=int(self.config.max_line_bytes),
        )
        timeout = float(self.config.upstream_connect_timeout_s)
        try:
            if timeout > 0:
                reader, writer = await asyncio.wait_for(dial, timeout)
            else:
                reader, writer = await dial
        except (OSError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailable(f"cannot reach {self.upstream}: {e}") from e

        self.upstream_reader, self.upstream_writer = reader, writer

    async def run(self) -> None:
        self.stats.inc("relay_sessions")
        try:
            try:
                await self.connect_upstream()
            except UpstreamUnavailable as e:
                self.stats.inc("upstream_failures")
                self.log.warning("Upstream dial failed peer=%s err=%s", self.peer, e)
                return

            assert self.upstream_reader is not None
            assert self.upstream_writer is not None
            self.log.info("Relaying peer=%s upstream=%s", self.peer, self.upstream)

            try:
                await run_until_first_completes(
                    self._pump(
                        self.downstream_reader, self.upstream_writer, "client->upstream"
                    ),
                    self._pump(
                        self.upstream_reader, self.downstream_writer, "upstream->client"
                    ),
                )
            except TRANSPORT_ERRORS as e:
                self.log.warning("Relay ended peer=%s err=%s", self.peer, e)
        finally:
            await self._close()

    async def _pump(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        direction: str,
    ) -> None:
        replacement = str(self.config.replacement_address)
        while True:
            line = await read_line(reader)
            if line is None:
                self.log.debug("EOF %s peer=%s", direction, self.peer)
                return

            out, replaced = rewrite_tokens(line, replacement)
            if replaced:
                self.stats.inc("addresses_rewritten", replaced)
                self.log.info(
                    "Rewrote %d address(es) %s peer=%s", replaced, direction, self.peer
                )
            self.log.debug("%s peer=%s line=%r", direction, self.peer, out)

            await write_line(writer, out)
            self.stats.inc("lines_relayed")

    async def _close(self) -> None:
        writers = [self.downstream_writer]
        if self.upstream_writer is not None:
            writers.append(self.upstream_writer)
        for w in writers:
            w.close()
        for w in writers:
            try:
                await w.wait_closed()
            except TRANSPORT_ERRORS:
                pass


class RelayService(TcpService):
    """Accepts clients and relays each one to the upstream chat server."""

    name = "relay"

    @property
    def listen_address(self) -> tuple[str, int]:
        return self.config.relay_host, int(self.config.relay_port)

    async def handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        session = RelaySession(reader, writer, config=self.config, stats=self.stats)
        await session.run()
