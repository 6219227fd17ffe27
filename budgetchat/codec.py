from __future__ import annotations

import asyncio

from .constants import LINE_ENCODING, LINE_ERRORS, LINE_TERMINATOR

_TERMINATOR = LINE_TERMINATOR.encode("ascii")


def decode(b: bytes) -> str:
    return b.decode(LINE_ENCODING, LINE_ERRORS)


def encode_line(text: str) -> bytes:
    if not text.endswith(LINE_TERMINATOR):
        text += LINE_TERMINATOR
    return text.encode(LINE_ENCODING, LINE_ERRORS)


async def read_line(reader: asyncio.StreamReader) -> str | None:
    """Read one line without its terminator, or None at end of stream.

    An unterminated fragment left at end of stream is dropped.
    """
    try:
        raw = await reader.readuntil(_TERMINATOR)
    except asyncio.IncompleteReadError:
        return None
    return decode(raw[: -len(_TERMINATOR)])


async def write_line(writer: asyncio.StreamWriter, text: str) -> None:
    writer.write(encode_line(text))
    await writer.drain()


# Failures that end a connection the same way end-of-stream does.
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    asyncio.LimitOverrunError,
)
