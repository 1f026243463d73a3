"""Tree -> document encoding.

The writer emits the marker line once, then one section per record, strictly in
input order. Each section is rendered in memory and handed to the sink with a
single ``write`` call, so a failing record never leaves half a section behind
and sections are never interleaved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, Self

from mdbundle.classifier import classify, tag_for
from mdbundle.config import (
    BINARY_PLACEHOLDER,
    HEADING_PREFIX,
    MAGIC_BYTES,
    ContentKind,
    FileRecord,
    SourceRef,
)
from mdbundle.exceptions import ContainerIOError, MdBundleError, Phase, RecordError
from mdbundle.fence import fence_for
from mdbundle.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType


class ByteSink(Protocol):
    """The only capability the encoder needs from its output."""

    def write(self, data: bytes, /) -> object: ...

    def flush(self) -> object: ...


@dataclass
class EncodeReport:
    """Outcome of a multi-file encode pass: paths written in order, per-record failures."""

    written: list[str] = field(default_factory=list)
    failures: list[RecordError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def read_source(ref: SourceRef) -> bytes:
    """Read a source file in full.

    Raises:
        ContainerIOError: if the file cannot be read.
    """
    try:
        return ref.path.read_bytes()
    except OSError as e:
        raise ContainerIOError(path=ref.rel, phase=Phase.READ, reason=str(e)) from e


def build_record(rel: str, data: bytes, dialect: str = "") -> FileRecord:
    """Classify `data` and wrap it in a FileRecord.

    Binary content is reduced to its path: no byte of it ends up in the document.
    """
    if classify(data) is ContentKind.BINARY:
        return FileRecord.binary_file(rel)
    return FileRecord.text_file(rel, data, dialect=dialect)


def render_section(record: FileRecord) -> bytes:
    """Render one section of the container format.

    Args:
        record (FileRecord): the record to render

    Returns:
        bytes: heading, blank line, then either the binary placeholder or the fenced
            payload, followed by a blank separator line
    """
    heading = f"{HEADING_PREFIX}{record.relative_path}\n\n".encode()
    if record.is_binary:
        return heading + f"{BINARY_PLACEHOLDER}\n\n".encode()
    payload = record.content or b""
    fence = fence_for(payload)
    opening = f"{fence}{record.dialect}\n".encode()
    closing = f"\n{fence}\n\n".encode()
    return b"".join((heading, opening, payload, closing))


class ContainerWriter:
    """Stream file records into a single document.

    The writer owns `sink` for the duration of the pass. Nothing is rolled back on
    error: whatever was written before a failure stays in the sink.

    Usage:
        with ContainerWriter(sink) as writer:
            for ref in refs:
                writer.write_source(ref)
    """

    def __init__(self, sink: ByteSink) -> None:
        self._sink = sink
        self._marker_written = False
        self.sections = 0

    @property
    def sink_name(self) -> str:
        return str(getattr(self._sink, "name", "<sink>"))

    def _write(self, data: bytes) -> None:
        try:
            self._sink.write(data)
        except (OSError, ValueError) as e:
            raise ContainerIOError(path=self.sink_name, phase=Phase.WRITE, reason=str(e)) from e

    def write_marker(self) -> None:
        """Write the marker line; only the first call has an effect."""
        if self._marker_written:
            return
        self._write(MAGIC_BYTES)
        self._marker_written = True

    def write_record(self, record: FileRecord) -> None:
        """Write one section for `record`.

        Raises:
            ContainerIOError: if the sink rejects the write.
        """
        self._emit(record, render_section(record))

    def _emit(self, record: FileRecord, section: bytes) -> None:
        self.write_marker()
        self._write(section)
        self.sections += 1
        logger.debug("section written", path=record.relative_path, kind=str(record.kind))

    def write_source(self, ref: SourceRef) -> FileRecord:
        """Read, classify and write a single source file.

        This is the per-record operation used to implement both fail-fast and
        best-effort passes: a failure before the write phase is reported as a
        RecordError and leaves the sink untouched.

        Args:
            ref (SourceRef): the file to encode

        Raises:
            RecordError: if reading, classifying or fencing the file fails.
            ContainerIOError: if writing to the sink fails (stream-level, always fatal).

        Returns:
            FileRecord: the record that was written
        """
        phase = Phase.READ
        try:
            data = read_source(ref)
            phase = Phase.CLASSIFY
            record = build_record(ref.rel, data, dialect=tag_for(ref.path))
            phase = Phase.FENCE
            section = render_section(record)
        except ContainerIOError as e:
            raise RecordError(path=ref.rel, phase=e.phase, reason=e.reason) from e
        except (MdBundleError, ValueError) as e:
            raise RecordError(path=ref.rel, phase=phase, reason=str(e)) from e

        self._emit(record, section)
        return record

    def flush(self) -> None:
        try:
            self._sink.flush()
        except (OSError, ValueError) as e:
            raise ContainerIOError(path=self.sink_name, phase=Phase.WRITE, reason=str(e)) from e

    def finish(self) -> None:
        """Finalize the document: an empty pass still yields a valid (marker-only) document."""
        self.write_marker()
        self.flush()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.finish()
            return
        # The exception already in flight is the one to report.
        try:
            self.flush()
        except ContainerIOError as flush_error:
            logger.warning("flush after error failed", path=self.sink_name, error=str(flush_error))


def encode(records: Iterable[FileRecord], sink: ByteSink) -> int:
    """Encode records into `sink`, stopping at the first error.

    Args:
        records (Iterable[FileRecord]): the records, in the order they must appear
        sink (ByteSink): the output stream

    Returns:
        int: the number of sections written
    """
    writer = ContainerWriter(sink)
    for record in records:
        writer.write_record(record)
    writer.finish()
    return writer.sections


def encode_files(
    refs: Iterable[SourceRef],
    sink: ByteSink,
    *,
    fail_fast: bool = False,
) -> EncodeReport:
    """Encode files from disk into `sink`.

    Best effort by default: a file that cannot be read or classified is logged,
    recorded in the report and skipped. With `fail_fast`, the first such error is
    raised. Sink failures always abort the pass.

    Args:
        refs (Iterable[SourceRef]): the files to encode, in output order
        sink (ByteSink): the output stream
        fail_fast (bool): raise on the first per-record error instead of collecting it

    Raises:
        RecordError: on the first per-record failure when `fail_fast` is set.
        ContainerIOError: when the sink cannot be written.

    Returns:
        EncodeReport: paths written and per-record failures
    """
    report = EncodeReport()
    writer = ContainerWriter(sink)
    for ref in refs:
        try:
            record = writer.write_source(ref)
        except RecordError as e:
            if fail_fast:
                writer.flush()
                raise
            logger.warning("skipping file", path=e.path, phase=str(e.phase), error=e.reason)
            report.failures.append(e)
            continue
        report.written.append(record.relative_path)
    writer.finish()
    logger.info("document encoded", sections=writer.sections, failures=len(report.failures))
    return report
