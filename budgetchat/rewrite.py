"""Address substitution for lines passing through the relay."""

from __future__ import annotations

from .constants import ADDRESS_MAX_CHARS, ADDRESS_MIN_CHARS, ADDRESS_PREFIX
from .util import is_ascii_alnum

TOKEN_SEPARATOR = " "


def is_address(token: str) -> bool:
    if not token.startswith(ADDRESS_PREFIX):
        return False
    if not ADDRESS_MIN_CHARS <= len(token) <= ADDRESS_MAX_CHARS:
        return False
    return all(is_ascii_alnum(ch) for ch in token)


def rewrite_tokens(line: str, replacement: str) -> tuple[str, int]:
    """Replace every address-shaped token in `line` with `replacement`.

    Tokens are split on single spaces, so consecutive spaces yield empty
    tokens and the line is rebuilt with its original spacing. Returns the
    rewritten line and the number of tokens replaced.
    """
    tokens = line.split(TOKEN_SEPARATOR)
    replaced = 0
    for i, token in enumerate(tokens):
        if is_address(token):
            tokens[i] = replacement
            replaced += 1
    if not replaced:
        return line, 0
    return TOKEN_SEPARATOR.join(tokens), replaced


def rewrite_line(line: str, replacement: str) -> str:
    return rewrite_tokens(line, replacement)[0]
