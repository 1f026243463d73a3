from __future__ import annotations

import io
from pathlib import Path

import pytest

from mdbundle.config import BINARY_PLACEHOLDER, MAGIC_BYTES, FileRecord, SourceRef
from mdbundle.encoder import (
    ContainerWriter,
    build_record,
    encode,
    encode_files,
    render_section,
)
from mdbundle.exceptions import ContainerIOError, Phase, RecordError


class BrokenSink:
    name = "broken.md"

    def write(self, data: bytes) -> int:
        raise OSError("disk full")

    def flush(self) -> None:
        return None


def _write(root: Path, rel: str, data: bytes) -> SourceRef:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return SourceRef(path=path, rel=rel)


@pytest.mark.unit
def test_render_text_section() -> None:
    record = FileRecord.text_file("src/lib.rs", "fn main() {}\n", dialect="rust")

    assert render_section(record) == b"## src/lib.rs\n\n```rust\nfn main() {}\n\n```\n\n"


@pytest.mark.unit
def test_render_binary_section() -> None:
    record = FileRecord.binary_file("img/logo.png")

    assert render_section(record) == f"## img/logo.png\n\n{BINARY_PLACEHOLDER}\n\n".encode()


@pytest.mark.unit
def test_render_section_lengthens_fence_for_nested_fences() -> None:
    record = FileRecord.text_file("README.md", "```sh\nls\n```", dialect="markdown")

    assert render_section(record) == b"## README.md\n\n````markdown\n```sh\nls\n```\n````\n\n"


@pytest.mark.unit
def test_build_record_drops_binary_payload() -> None:
    record = build_record("a.bin", b"\x00\x01\x02")

    assert record.is_binary
    assert record.content is None


@pytest.mark.unit
def test_encode_empty_input_yields_marker_only() -> None:
    sink = io.BytesIO()

    assert encode([], sink) == 0
    assert sink.getvalue() == MAGIC_BYTES


@pytest.mark.unit
def test_encode_preserves_input_order() -> None:
    sink = io.BytesIO()
    records = [FileRecord.text_file(name, name) for name in ("b.txt", "a.txt", "c/z.txt")]

    assert encode(records, sink) == len(records)

    headings = [line for line in sink.getvalue().split(b"\n") if line.startswith(b"## ")]
    assert headings == [b"## b.txt", b"## a.txt", b"## c/z.txt"]


@pytest.mark.unit
def test_writer_marker_written_once() -> None:
    sink = io.BytesIO()
    with ContainerWriter(sink) as writer:
        writer.write_marker()
        writer.write_record(FileRecord.text_file("x.txt", "x"))
        writer.write_marker()

    assert sink.getvalue().count(MAGIC_BYTES) == 1
    assert writer.sections == 1


@pytest.mark.unit
def test_writer_sink_failure_is_container_io_error() -> None:
    writer = ContainerWriter(BrokenSink())

    with pytest.raises(ContainerIOError) as exc_info:
        writer.write_marker()

    assert exc_info.value.phase is Phase.WRITE
    assert exc_info.value.path == "broken.md"
    assert "disk full" in str(exc_info.value)


@pytest.mark.unit
def test_encode_files_reads_classifies_and_tags(tmp_path: Path) -> None:
    refs = [
        _write(tmp_path, "main.py", b"print('hi')\n"),
        _write(tmp_path, "logo.png", b"\x89PNG\r\n\x1a\n\x00\x00"),
    ]
    sink = io.BytesIO()

    report = encode_files(refs, sink)

    assert report.ok
    assert report.written == ["main.py", "logo.png"]
    doc = sink.getvalue()
    assert b"```python\nprint('hi')\n\n```" in doc
    assert f"## logo.png\n\n{BINARY_PLACEHOLDER}".encode() in doc
    assert b"\x89PNG" not in doc


@pytest.mark.unit
def test_encode_files_best_effort_skips_unreadable(tmp_path: Path) -> None:
    good = _write(tmp_path, "good.txt", b"ok\n")
    missing = SourceRef(path=tmp_path / "gone.txt", rel="gone.txt")
    sink = io.BytesIO()

    report = encode_files([missing, good], sink)

    assert not report.ok
    assert report.written == ["good.txt"]
    assert [(f.path, f.phase) for f in report.failures] == [("gone.txt", Phase.READ)]
    assert b"gone.txt" not in sink.getvalue()


@pytest.mark.unit
def test_encode_files_fail_fast_raises_first_error(tmp_path: Path) -> None:
    good = _write(tmp_path, "good.txt", b"ok\n")
    missing = SourceRef(path=tmp_path / "gone.txt", rel="gone.txt")
    sink = io.BytesIO()

    with pytest.raises(RecordError) as exc_info:
        encode_files([good, missing, good], sink, fail_fast=True)

    assert exc_info.value.path == "gone.txt"
    assert exc_info.value.phase is Phase.READ
    assert sink.getvalue().count(b"## good.txt") == 1


@pytest.mark.unit
def test_encode_files_sink_failure_is_fatal(tmp_path: Path) -> None:
    good = _write(tmp_path, "good.txt", b"ok\n")

    with pytest.raises(ContainerIOError):
        encode_files([good], BrokenSink())


class UnflushableSink:
    name = "unflushable.md"

    def __init__(self) -> None:
        self.data = bytearray()

    def write(self, data: bytes) -> int:
        self.data.extend(data)
        return len(data)

    def flush(self) -> None:
        raise OSError("device gone")


@pytest.mark.unit
def test_writer_error_path_keeps_original_exception() -> None:
    sink = UnflushableSink()

    with pytest.raises(RuntimeError, match="first failure"), ContainerWriter(sink) as writer:
        writer.write_record(FileRecord.text_file("a.txt", "a"))
        raise RuntimeError("first failure")

    assert b"## a.txt" in sink.data
