"""Fence selection for text payloads."""

from __future__ import annotations

from mdbundle.config import FENCE_CHAR, MIN_FENCE_LENGTH

_FENCE_BYTE = FENCE_CHAR.encode("ascii")
_FENCE_ORD = ord(FENCE_CHAR)


def leading_run(line: bytes) -> int:
    """Count the fence characters at the start of a line, ignoring indentation.

    Args:
        line (bytes): one line of payload, without its line terminator

    Returns:
        int: the length of the leading run of fence characters (0 if none)
    """
    stripped = line.lstrip()
    run = 0
    for byte in stripped:
        if byte != _FENCE_ORD:
            break
        run += 1
    return run


def longest_leading_run(payload: bytes | str) -> int:
    """Return the longest line-leading fence run found in `payload`.

    Runs that start mid-line cannot close a block fence and are not counted.
    """
    data = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
    if _FENCE_BYTE not in data:
        return 0
    return max((leading_run(line) for line in data.splitlines()), default=0)


def fence_for(payload: bytes | str) -> str:
    """Compute a fence that cannot collide with any fence-like line of the payload.

    Args:
        payload (bytes | str): the text that will be wrapped

    Returns:
        str: `FENCE_CHAR` repeated `max(3, longest_leading_run + 1)` times
    """
    return FENCE_CHAR * max(MIN_FENCE_LENGTH, longest_leading_run(payload) + 1)
