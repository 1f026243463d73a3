from __future__ import annotations

from pathlib import PurePosixPath, PureWindowsPath
from typing import TYPE_CHECKING

from mdbundle.config import (
    BINARY_SIGNATURES,
    COMPOUND_EXT2DIALECT,
    EXT2DIALECT,
    NAME2DIALECT,
    SAMPLE_SIZE,
    TEXT_BOMS,
    ContentKind,
)

if TYPE_CHECKING:
    from pathlib import Path


def classify(buffer: bytes | bytearray | memoryview) -> ContentKind:
    """Decide whether a buffer holds text or binary content.

    Only the first `SAMPLE_SIZE` bytes are inspected, so the cost does not grow
    with the size of the file. The heuristic, in order:

    - an empty buffer is text;
    - a UTF-8/UTF-16/UTF-32 byte-order mark means text (UTF-16/32 legitimately
      contain NUL bytes);
    - a NUL byte anywhere in the sample means binary;
    - a well known binary file signature means binary;
    - anything else is text.

    Args:
        buffer (bytes | bytearray | memoryview): the file contents, or a prefix of them

    Returns:
        ContentKind: ContentKind.BINARY or ContentKind.TEXT
    """
    sample = bytes(buffer[:SAMPLE_SIZE])
    if not sample:
        return ContentKind.TEXT
    if sample.startswith(TEXT_BOMS):
        return ContentKind.TEXT
    if b"\x00" in sample:
        return ContentKind.BINARY
    if sample.startswith(BINARY_SIGNATURES):
        return ContentKind.BINARY
    return ContentKind.TEXT


def tag_for(path: str | Path) -> str:
    """Heuristically determine a file's dialect tag for syntax highlighting.

    - Special file names (Dockerfile, Makefile, .env, ...) are matched first.
    - Then the extension, case-insensitively.
    - Returns "" when no hint is available.

    Args:
        path (str | Path): the file path (absolute or relative) to analyze

    Returns:
        str: a dialect tag such as "python" or "rust", or "" if unknown
    """
    raw = str(path)
    # Accept both separators so relative paths from any host map the same way.
    name = PureWindowsPath(raw).name if "\\" in raw else PurePosixPath(raw).name
    name = name.lower()
    if name in NAME2DIALECT:
        return NAME2DIALECT[name]
    for compound, dialect in COMPOUND_EXT2DIALECT.items():
        if name.endswith(compound) and name != compound:
            return dialect
    suffix = PurePosixPath(name).suffix
    return EXT2DIALECT.get(suffix, "")
