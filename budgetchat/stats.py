"""Statistics tracking and reporting for the chat room and relay."""

from __future__ import annotations

import threading
import time

COUNTERS = (
    "connections",
    "joins",
    "parts",
    "names_rejected",
    "msgs_published",
    "lines_delivered",
    "lagged",
    "relay_sessions",
    "lines_relayed",
    "addresses_rewritten",
    "upstream_failures",
)


class StatsManager:
    """
    Lifetime counters for one service.

    Tracks:
    - Accepted connections
    - Joins, parts and rejected names
    - Lines published to and delivered from the bus
    - Consumer lag events
    - Relay sessions, relayed lines and rewritten addresses
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None
        self._counters: dict[str, int] = {k: 0 for k in COUNTERS}

    def set_start_time(self) -> None:
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def uptime_s(self) -> float:
        if self.started_monotonic is None:
            return 0.0
        return time.monotonic() - self.started_monotonic

    def format_stats(
        self, *, members: int | None = None, subscribers: int | None = None
    ) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        c = self.snapshot()

        lines: list[str] = []
        lines.append(f"budgetchat {__version__} stats")
        lines.append(f"uptime_s={self.uptime_s():.1f}")
        if members is not None:
            lines.append(f"members={members}")
        if subscribers is not None:
            lines.append(f"subscribers={subscribers}")
        lines.append(
            "chat: connections={} joins={} parts={} names_rejected={}".format(
                c.get("connections", 0),
                c.get("joins", 0),
                c.get("parts", 0),
                c.get("names_rejected", 0),
            )
        )
        lines.append(
            "bus: published={} delivered={} lagged={}".format(
                c.get("msgs_published", 0),
                c.get("lines_delivered", 0),
                c.get("lagged", 0),
            )
        )
        lines.append(
            "relay: sessions={} lines={} rewritten={} upstream_failures={}".format(
                c.get("relay_sessions", 0),
                c.get("lines_relayed", 0),
                c.get("addresses_rewritten", 0),
                c.get("upstream_failures", 0),
            )
        )
        return "\n".join(lines)
