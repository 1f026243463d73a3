"""Bidirectional codec between a file tree and a single Markdown document."""

__version__ = "0.1.0"

from mdbundle.classifier import classify, tag_for  # noqa: E402
from mdbundle.config import ContentKind, FileRecord, SourceRef  # noqa: E402
from mdbundle.decoder import decode, parse_document, restore  # noqa: E402
from mdbundle.encoder import encode, encode_files  # noqa: E402
from mdbundle.fence import fence_for  # noqa: E402
from mdbundle.recognition import is_container  # noqa: E402

__all__ = [
    "ContentKind",
    "FileRecord",
    "SourceRef",
    "__version__",
    "classify",
    "decode",
    "encode",
    "encode_files",
    "fence_for",
    "is_container",
    "parse_document",
    "restore",
    "tag_for",
]
