"""Document -> tree decoding.

Parsing works on bytes and splits on ``\\n`` only, so payloads come back
byte-for-byte, carriage returns included. A trailing ``\\r`` is tolerated on
structural lines (headings, placeholder, fences) so that documents whose line
endings were converted by an editor can still be read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from pydantic import ValidationError

from mdbundle.config import (
    BINARY_PLACEHOLDER,
    FENCE_CHAR,
    HEADING_PREFIX,
    MIN_FENCE_LENGTH,
    ContentKind,
    FileRecord,
)
from mdbundle.exceptions import (
    ContainerIOError,
    ContentEncodingError,
    MalformedSectionError,
    NotAContainerError,
    Phase,
    RecordError,
)
from mdbundle.logging import logger
from mdbundle.recognition import marker_length

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

_HEADING = HEADING_PREFIX.encode("utf-8")
_PLACEHOLDER = BINARY_PLACEHOLDER.encode("utf-8")
_FENCE_ORD = ord(FENCE_CHAR)
_FIELD_NAMES = {"relative_path": "path"}


@dataclass
class RestoreReport:
    """Outcome of materializing records under a target root.

    Attributes:
        written: Files created or overwritten, in document order.
        skipped: Relative paths of binary records that produced no file.
        failures: Per-record failures (only populated in best-effort mode).
    """

    written: list[Path] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: list[RecordError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _structural(line: bytes) -> bytes:
    return line[:-1] if line.endswith(b"\r") else line


def _opening_run(line: bytes) -> int:
    run = 0
    for byte in line:
        if byte != _FENCE_ORD:
            break
        run += 1
    return run


class _SectionParser:
    """Line cursor over the body of a document (everything after the marker)."""

    def __init__(self, body: bytes, *, first_line: int, strict: bool) -> None:
        self.lines = body.split(b"\n")
        self.first_line = first_line
        self.strict = strict
        self.pos = 0

    def lineno(self, index: int | None = None) -> int:
        return self.first_line + (self.pos if index is None else index)

    def at_end(self) -> bool:
        return self.pos >= len(self.lines)

    def current(self) -> bytes:
        return _structural(self.lines[self.pos])

    def skip_blank(self) -> None:
        while not self.at_end() and not self.current().strip():
            self.pos += 1

    def heading_path(self) -> str | None:
        """Return the path of the heading under the cursor, or None for a stray line."""
        line = self.current()
        if not line.startswith(_HEADING):
            if self.strict:
                raise MalformedSectionError(
                    path=None,
                    line=self.lineno(),
                    reason=f"expected a '{HEADING_PREFIX}<path>' heading",
                )
            logger.warning("skipping stray line", line=self.lineno())
            return None
        raw = line[len(_HEADING) :]
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ContentEncodingError(path=f"<heading at line {self.lineno()}>", reason=str(e)) from e

    def section(self, path: str) -> FileRecord:
        heading_line = self.lineno()
        self.pos += 1
        self.skip_blank()
        if self.at_end():
            raise MalformedSectionError(path=path, line=heading_line, reason="heading has no content")

        body = self.current()
        if body == _PLACEHOLDER:
            self.pos += 1
            return self.record(path, heading_line, kind=ContentKind.BINARY)

        run = _opening_run(body)
        if run < MIN_FENCE_LENGTH:
            raise MalformedSectionError(
                path=path,
                line=self.lineno(),
                reason="expected an opening fence or the binary placeholder",
            )
        fence = body[:run]
        dialect = body[run:].decode("utf-8", errors="replace").strip()
        self.pos += 1
        start = self.pos
        while not self.at_end() and self.current() != fence:
            self.pos += 1
        if self.at_end():
            raise MalformedSectionError(
                path=path,
                line=heading_line,
                reason=f"fence {fence.decode('ascii')} is never closed",
            )
        payload = b"\n".join(self.lines[start : self.pos])
        self.pos += 1
        return self.record(path, heading_line, kind=ContentKind.TEXT, content=payload, dialect=dialect)

    @staticmethod
    def record(
        path: str,
        line: int,
        *,
        kind: ContentKind,
        content: bytes | None = None,
        dialect: str = "",
    ) -> FileRecord:
        try:
            return FileRecord(relative_path=path, kind=kind, content=content, dialect=dialect)
        except ValidationError as e:
            fields = {_FIELD_NAMES.get(str(err["loc"][0]), str(err["loc"][0])) for err in e.errors() if err["loc"]}
            reason = "; ".join(err["msg"] for err in e.errors())
            label = ", ".join(sorted(fields)) or "section"
            raise MalformedSectionError(path=path, line=line, reason=f"invalid {label}: {reason}") from e

    def parse(self) -> list[FileRecord]:
        records: list[FileRecord] = []
        while True:
            self.skip_blank()
            if self.at_end():
                return records
            path = self.heading_path()
            if path is None:
                self.pos += 1
                continue
            records.append(self.section(path))


def parse_document(data: bytes, *, strict: bool = True, source: str = "<stream>") -> list[FileRecord]:
    """Parse a document back into file records, in document order.

    Args:
        data (bytes): the whole document
        strict (bool): require the marker line and reject any stray line between
            sections. When False, a document without marker is parsed from its first
            byte and stray lines are skipped; a document without headings yields [].
        source (str): name used in error messages

    Raises:
        NotAContainerError: in strict mode, if `data` does not start with the marker.
        MalformedSectionError: for a heading without content, an unterminated fence,
            an unexpected line, or an invalid path or dialect.
        ContentEncodingError: if a heading path is not valid UTF-8.

    Returns:
        list[FileRecord]: the records, duplicates included
    """
    if skip := marker_length(data):
        body, first_line = data[skip:], 2
    elif strict:
        raise NotAContainerError(path=source)
    else:
        body, first_line = data, 1
    return _SectionParser(body, first_line=first_line, strict=strict).parse()


def decode(source: BinaryIO, *, strict: bool = True) -> list[FileRecord]:
    """Read a document from a binary stream and parse it.

    The stream is only read, so the same source may be decoded several times.

    Raises:
        ContainerIOError: if the stream cannot be read.
    """
    name = str(getattr(source, "name", "<stream>"))
    try:
        data = source.read()
    except OSError as e:
        raise ContainerIOError(path=name, phase=Phase.READ, reason=str(e)) from e
    return parse_document(data, strict=strict, source=name)


def dedupe_records(records: Iterable[FileRecord]) -> list[FileRecord]:
    """Resolve duplicate relative paths: the last section wins.

    The surviving record takes the position of the last occurrence.
    """
    latest: dict[str, FileRecord] = {}
    for record in records:
        if record.relative_path in latest:
            logger.warning("duplicate path, last section wins", path=record.relative_path)
            del latest[record.relative_path]
        latest[record.relative_path] = record
    return list(latest.values())


def _target_for(root: Path, resolved_root: Path, record: FileRecord) -> Path:
    target = root.joinpath(*record.relative_path.split("/"))
    if not target.resolve().is_relative_to(resolved_root):
        msg = f"{record.relative_path} resolves outside of {root}"
        raise ValueError(msg)
    return target


def materialize(
    records: Sequence[FileRecord],
    target_root: Path,
    *,
    fail_fast: bool = False,
    binary_placeholders: bool = False,
) -> RestoreReport:
    """Write records as files under `target_root`, creating directories as needed.

    Binary records have no payload: they are skipped unless `binary_placeholders`
    is set, in which case an empty file is created. Duplicate paths are resolved
    with `dedupe_records` before anything is written.

    Args:
        records (Sequence[FileRecord]): records from `parse_document`
        target_root (Path): directory to restore into (created if missing)
        fail_fast (bool): raise the first per-record error instead of collecting it
        binary_placeholders (bool): create empty files for binary records

    Raises:
        ContainerIOError: if `target_root` cannot be created.
        RecordError: on the first per-record failure when `fail_fast` is set.

    Returns:
        RestoreReport: files written, binary paths skipped, per-record failures
    """
    root = Path(target_root)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ContainerIOError(path=str(root), phase=Phase.WRITE, reason=str(e)) from e
    resolved_root = root.resolve()

    report = RestoreReport()
    for record in dedupe_records(records):
        if record.is_binary and not binary_placeholders:
            report.skipped.append(record.relative_path)
            continue
        try:
            target = _target_for(root, resolved_root, record)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(record.content or b"")
        except (OSError, ValueError) as e:
            err = RecordError(path=record.relative_path, phase=Phase.WRITE, reason=str(e))
            if fail_fast:
                raise err from e
            logger.warning("could not restore file", path=record.relative_path, error=str(e))
            report.failures.append(err)
            continue
        report.written.append(target)
        logger.debug("file restored", path=record.relative_path)
    return report


def restore(
    input_path: Path,
    target_root: Path,
    *,
    strict: bool = True,
    fail_fast: bool = False,
    binary_placeholders: bool = False,
) -> RestoreReport:
    """Restore every file of a document under `target_root`.

    Parsing completes before the first file is written: a malformed document or a
    missing marker (in strict mode) leaves the target untouched.

    Raises:
        ContainerIOError: if the document cannot be opened or read.
        NotAContainerError: see `parse_document`.
        MalformedSectionError: see `parse_document`.

    Returns:
        RestoreReport: see `materialize`
    """
    try:
        with Path(input_path).open("rb") as f:
            records = decode(f, strict=strict)
    except OSError as e:
        raise ContainerIOError(path=str(input_path), phase=Phase.READ, reason=str(e)) from e
    report = materialize(
        records,
        target_root,
        fail_fast=fail_fast,
        binary_placeholders=binary_placeholders,
    )
    logger.info(
        "document restored",
        source=str(input_path),
        written=len(report.written),
        skipped=len(report.skipped),
        failures=len(report.failures),
    )
    return report
