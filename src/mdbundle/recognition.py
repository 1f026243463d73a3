from __future__ import annotations

from typing import TYPE_CHECKING

from mdbundle.config import MAGIC_BYTES, MAGIC_BYTES_CRLF
from mdbundle.logging import logger

if TYPE_CHECKING:
    from pathlib import Path


def marker_length(data: bytes | bytearray | memoryview) -> int:
    """Measure the marker line at the start of a buffer.

    Both the LF and the CRLF form of the marker line are recognized.

    Args:
        data (bytes | bytearray | memoryview): the leading bytes of a candidate document

    Returns:
        int: the length of the marker line including its line break, 0 if absent
    """
    head = bytes(data[: len(MAGIC_BYTES_CRLF)])
    for marker in (MAGIC_BYTES, MAGIC_BYTES_CRLF):
        if head.startswith(marker):
            return len(marker)
    return 0


def has_marker(data: bytes | bytearray | memoryview) -> bool:
    """Check whether a buffer starts with the container marker line."""
    return marker_length(data) > 0


def is_container(path: Path) -> bool:
    """Check if a file is a document previously written by mdbundle.

    Only the length of the CRLF marker line is read, whatever the size of the file.

    Args:
        path (Path): the candidate file

    Returns:
        bool: True if the file starts with the marker; False for shorter files,
            unreadable files and any mismatch
    """
    try:
        with path.open("rb") as f:
            head = f.read(len(MAGIC_BYTES_CRLF))
    except OSError as e:
        logger.debug("marker check failed", path=str(path), error=str(e))
        return False
    return has_marker(head)
