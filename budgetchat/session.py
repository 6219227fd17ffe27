from __future__ import annotations

import asyncio
import enum
import itertools
import logging
from typing import TYPE_CHECKING

from .bus import Bus, BusClosed, Lagged
from .codec import TRANSPORT_ERRORS, read_line, write_line
from .config import ChatRuntimeConfig
from .constants import (
    CHAT_FMT,
    ENTERED_FMT,
    ERR_NAME,
    LEFT_FMT,
    ROOM_CONTAINS_FMT,
    WELCOME_PROMPT,
)
from .rooms import Registry
from .stats import StatsManager
from .util import fmt_peer, run_until_first_completes, valid_name

if TYPE_CHECKING:
    from .bus import Consumer

_session_ids = itertools.count(1)


class SessionState(enum.Enum):
    IDENTIFYING = "identifying"
    JOINED = "joined"


class ChatSession:
    """
    Server side of one chat connection.

    The session starts out identifying: it prompts for a name and reads one
    line. A valid name joins the room; anything else gets the error line and
    the connection is closed. Once joined, lines from the peer are published
    to the bus and lines from the bus are written to the peer, except the
    session's own.

    The bus consumer is created with the session so that nothing published
    after the join is missed.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        registry: Registry,
        bus: Bus,
        config: ChatRuntimeConfig | None = None,
        stats: StatsManager | None = None,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.registry = registry
        self.bus = bus
        self.config = config if config is not None else ChatRuntimeConfig()
        self.stats = stats if stats is not None else StatsManager()
        self.log = logging.getLogger("budgetchat.session")

        self.id = next(_session_ids)
        self.identity = ""
        self.state = SessionState.IDENTIFYING
        self.peer = fmt_peer(writer.get_extra_info("peername"))
        self.consumer: Consumer = bus.subscribe()

    @property
    def joined(self) -> bool:
        return self.state is SessionState.JOINED

    async def run(self) -> None:
        try:
            await write_line(self.writer, WELCOME_PROMPT)
            if await self._identify():
                await run_until_first_completes(
                    self._pump_inbound(), self._pump_outbound()
                )
        except TRANSPORT_ERRORS as e:
            self.log.warning(
                "Connection error peer=%s name=%r err=%s", self.peer, self.identity, e
            )
        except BusClosed:
            self.log.debug("Bus closed peer=%s name=%r", self.peer, self.identity)
        finally:
            self._leave()
            self.consumer.close()
            await self._close_writer()

    async def _identify(self) -> bool:
        line = await read_line(self.reader)
        if line is None:
            self.log.debug("EOF before name peer=%s", self.peer)
            return False

        if not valid_name(line, max_chars=self.config.name_max_chars):
            await self._reject(line, "invalid")
            return False

        # Lines published while identifying are not for us.
        self.consumer.discard_pending()

        roster = self.registry.join(line, unique=self.config.reject_duplicate_names)
        if roster is None:
            await self._reject(line, "duplicate")
            return False

        self.identity = line
        self.state = SessionState.JOINED
        self.bus.publish(ENTERED_FMT.format(name=line), origin=self.id)
        self.stats.inc("joins")
        self.log.info(
            "Joined peer=%s name=%r session=%d members=%d",
            self.peer,
            line,
            self.id,
            len(roster) + 1,
        )

        await write_line(self.writer, ROOM_CONTAINS_FMT.format(names=", ".join(roster)))
        return True

    async def _reject(self, name: str, reason: str) -> None:
        self.stats.inc("names_rejected")
        self.log.info("Rejected name peer=%s name=%r reason=%s", self.peer, name, reason)
        await write_line(self.writer, ERR_NAME)

    async def _pump_inbound(self) -> None:
        while True:
            line = await read_line(self.reader)
            if line is None:
                self.log.debug("EOF peer=%s name=%r", self.peer, self.identity)
                return

            self.bus.publish(
                CHAT_FMT.format(name=self.identity, text=line), origin=self.id
            )
            self.stats.inc("msgs_published")

    async def _pump_outbound(self) -> None:
        while True:
            try:
                item = await self.consumer.recv()
            except Lagged as e:
                self.stats.inc("lagged")
                self.log.warning(
                    "Consumer lagged peer=%s name=%r missed=%d",
                    self.peer,
                    self.identity,
                    e.missed,
                )
                continue
            except BusClosed:
                self.log.debug("Bus closed peer=%s name=%r", self.peer, self.identity)
                return

            if item.origin == self.id:
                continue

            await write_line(self.writer, item.text)
            self.stats.inc("lines_delivered")

    def _leave(self) -> None:
        if not self.joined:
            return

        try:
            self.bus.publish(LEFT_FMT.format(name=self.identity), origin=self.id)
        except BusClosed:
            pass
        self.registry.remove(self.identity)
        self.stats.inc("parts")
        self.log.info("Left peer=%s name=%r session=%d", self.peer, self.identity, self.id)

    async def _close_writer(self) -> None:
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except TRANSPORT_ERRORS:
            pass
