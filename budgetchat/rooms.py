"""Participant registry for the chat room.

Tracks the display names of joined sessions in join order. All access is
serialized on one lock; callers never hold it across an await.
"""

from __future__ import annotations

import logging
import threading
from typing import Any


class Registry:
    """Shared set of joined display names, in join order."""

    def __init__(self) -> None:
        self.log = logging.getLogger("budgetchat.rooms")
        # name -> number of sessions holding it (more than one only when
        # duplicate names are allowed); dict keeps join order
        self._members: dict[str, int] = {}
        self._lock = threading.Lock()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._members

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)

    def snapshot(self) -> list[str]:
        """Point-in-time copy of the member list."""
        with self._lock:
            return list(self._members)

    def add(self, name: str) -> None:
        with self._lock:
            self._members[name] = self._members.get(name, 0) + 1
        self.log.debug("Member added name=%r", name)

    def remove(self, name: str) -> None:
        """Release one hold on `name`; absent names are ignored."""
        with self._lock:
            count = self._members.get(name)
            if count is None:
                return
            if count > 1:
                self._members[name] = count - 1
            else:
                del self._members[name]
        self.log.debug("Member removed name=%r", name)

    def join(self, name: str, *, unique: bool = True) -> list[str] | None:
        """
        Snapshot the members and then add `name`, as one step.

        Returns the members present before `name` was added, so a newcomer
        never sees itself in its own roster. Returns None without adding
        anything if `unique` is set and `name` is already a member.
        """
        with self._lock:
            if unique and name in self._members:
                return None
            before = list(self._members)
            self._members[name] = self._members.get(name, 0) + 1
        self.log.debug("Member joined name=%r members=%d", name, len(before) + 1)
        return before

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {"members": len(self._members)}
