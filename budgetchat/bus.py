"""In-process broadcast bus for chat lines.

Every published line is copied to each consumer subscribed at the time of
publication. Publishing never waits: a consumer whose backlog is full loses
its oldest lines and is told so by a `Lagged` error on its next `recv()`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass

from .constants import BUS_CAPACITY

logger = logging.getLogger("budgetchat.bus")

NO_ORIGIN = 0


@dataclass(frozen=True)
class Broadcast:
    """A published line plus the id of the session that published it."""

    text: str
    origin: int = NO_ORIGIN


class BusClosed(Exception):
    pass


class Lagged(Exception):
    def __init__(self, missed: int) -> None:
        super().__init__(f"consumer lagged, {missed} line(s) dropped")
        self.missed = missed


class Consumer:
    """One subscriber's view of the bus."""

    def __init__(self, bus: Bus, capacity: int) -> None:
        self._bus = bus
        self._capacity = capacity
        self._items: deque[Broadcast] = deque()
        self._missed = 0
        self._closed = False
        self._wakeup = asyncio.Event()

    def _push(self, item: Broadcast) -> None:
        # Called with the bus lock held.
        if len(self._items) >= self._capacity:
            self._items.popleft()
            self._missed += 1
        self._items.append(item)
        self._wakeup.set()

    def _shutdown(self) -> None:
        self._closed = True
        self._wakeup.set()

    async def recv(self) -> Broadcast:
        """
        Wait for the next line.

        Raises `Lagged` once after lines were dropped, then resumes with the
        oldest line still held. Raises `BusClosed` once the bus is closed and
        everything queued before the close has been read.
        """
        while True:
            with self._bus._lock:
                if self._missed:
                    missed, self._missed = self._missed, 0
                    raise Lagged(missed)
                if self._items:
                    return self._items.popleft()
                if self._closed:
                    raise BusClosed()
                self._wakeup.clear()
            await self._wakeup.wait()

    def discard_pending(self) -> int:
        """Drop everything queued so far, including any lag notice."""
        with self._bus._lock:
            dropped = len(self._items)
            self._items.clear()
            self._missed = 0
        return dropped

    def close(self) -> None:
        self._bus.unsubscribe(self)


class Bus:
    """Fan-out of chat lines to all subscribed consumers."""

    def __init__(self, capacity: int = BUS_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("bus capacity must be at least 1")
        self.capacity = int(capacity)
        # Publication order is decided under this lock, so every consumer
        # sees the same order.
        self._lock = threading.Lock()
        self._consumers: set[Consumer] = set()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._consumers)

    def subscribe(self) -> Consumer:
        consumer = Consumer(self, self.capacity)
        with self._lock:
            if self._closed:
                consumer._shutdown()
            else:
                self._consumers.add(consumer)
        return consumer

    def unsubscribe(self, consumer: Consumer) -> None:
        with self._lock:
            self._consumers.discard(consumer)
            consumer._shutdown()

    def publish(self, text: str, *, origin: int = NO_ORIGIN) -> int:
        """Publish a line; returns the number of consumers it reached."""
        item = Broadcast(text=text, origin=origin)
        with self._lock:
            if self._closed:
                raise BusClosed()
            for consumer in self._consumers:
                consumer._push(item)
            n = len(self._consumers)
        logger.debug("Published origin=%s receivers=%d text=%r", origin, n, text)
        return n

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            consumers = list(self._consumers)
            self._consumers.clear()
            for consumer in consumers:
                consumer._shutdown()
        logger.debug("Bus closed consumers=%d", len(consumers))
