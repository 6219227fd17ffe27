import asyncio

import pytest

from budgetchat.codec import encode_line, read_line


def test_encode_line_adds_one_terminator() -> None:
    assert encode_line("hello") == b"hello\n"
    assert encode_line("hello\n") == b"hello\n"
    assert encode_line("") == b"\n"


@pytest.mark.asyncio
async def test_read_line_strips_only_the_newline() -> None:
    reader = asyncio.StreamReader()
    reader.feed_data(b"alice\r\n  spaced  \n\n")
    reader.feed_eof()

    assert await read_line(reader) == "alice\r"
    assert await read_line(reader) == "  spaced  "
    assert await read_line(reader) == ""
    assert await read_line(reader) is None


@pytest.mark.asyncio
async def test_read_line_drops_unterminated_tail() -> None:
    reader = asyncio.StreamReader()
    reader.feed_data(b"complete\npartial")
    reader.feed_eof()

    assert await read_line(reader) == "complete"
    assert await read_line(reader) is None


@pytest.mark.asyncio
async def test_arbitrary_bytes_round_trip() -> None:
    raw = b"\xff\xfe caf\xc3\xa9\n"
    reader = asyncio.StreamReader()
    reader.feed_data(raw)
    reader.feed_eof()

    assert encode_line(await read_line(reader)) == raw


@pytest.mark.asyncio
async def test_overlong_line_is_an_error() -> None:
    reader = asyncio.StreamReader(limit=8)
    reader.feed_data(b"0123456789abcdef\n")
    reader.feed_eof()

    with pytest.raises((asyncio.LimitOverrunError, ValueError)):
        await read_line(reader)
