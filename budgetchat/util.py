from __future__ import annotations

import asyncio
import os
from typing import Any, Awaitable

from .constants import NAME_MAX_CHARS


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def is_ascii_alnum(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def valid_name(value, *, max_chars: int = NAME_MAX_CHARS) -> bool:
    """Return True if `value` is an acceptable display name.

    No trimming or case folding: " alice" is rejected, "Alice" and "alice"
    are different names.
    """
    if not isinstance(value, str):
        return False

    if not value:
        return False

    if max_chars > 0 and len(value) > int(max_chars):
        return False

    return all(is_ascii_alnum(ch) for ch in value)


def fmt_peer(peername: Any) -> str:
    if isinstance(peername, (tuple, list)) and len(peername) >= 2:
        return f"{peername[0]}:{peername[1]}"
    if peername:
        return str(peername)
    return "-"


async def run_until_first_completes(*aws: Awaitable[Any]) -> None:
    """Run awaitables concurrently until one of them finishes.

    The others are cancelled and awaited before returning. If the first to
    finish raised, its exception is re-raised here.
    """
    tasks = [asyncio.ensure_future(a) for a in aws]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    for t in tasks:
        if t in done and not t.cancelled():
            exc = t.exception()
            if exc is not None:
                raise exc
