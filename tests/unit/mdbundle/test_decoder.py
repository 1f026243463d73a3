from __future__ import annotations

import io
from pathlib import Path

import pytest

from mdbundle.config import MAGIC_BYTES, ContentKind, FileRecord
from mdbundle.decoder import decode, dedupe_records, materialize, parse_document, restore
from mdbundle.encoder import encode
from mdbundle.exceptions import (
    ContainerIOError,
    MalformedSectionError,
    NotAContainerError,
    Phase,
    RecordError,
)


def _doc(body: bytes) -> bytes:
    return MAGIC_BYTES + body


@pytest.mark.unit
def test_parse_marker_only_document() -> None:
    assert parse_document(MAGIC_BYTES) == []


@pytest.mark.unit
def test_parse_text_and_binary_sections() -> None:
    data = _doc(b"## src/a.py\n\n```python\nx = 1\n```\n\n## logo.png\n\n(binary file omitted)\n\n")

    records = parse_document(data)

    assert records == [
        FileRecord.text_file("src/a.py", "x = 1", dialect="python"),
        FileRecord.binary_file("logo.png"),
    ]


@pytest.mark.unit
def test_parse_keeps_fence_like_payload_lines() -> None:
    data = _doc(b"## README.md\n\n````markdown\n```sh\nls\n```\n````\n")

    (record,) = parse_document(data)

    assert record.content == b"```sh\nls\n```"
    assert record.dialect == "markdown"


@pytest.mark.unit
def test_parse_tolerates_crlf_structural_lines() -> None:
    data = _doc(b"## a.txt\r\n\r\n```text\r\nline\r\n```\r\n")

    (record,) = parse_document(data)

    assert record.relative_path == "a.txt"
    assert record.content == b"line\r"


@pytest.mark.unit
def test_strict_parse_requires_marker() -> None:
    with pytest.raises(NotAContainerError):
        parse_document(b"## a.txt\n\n```\nx\n```\n", source="plain.md")


@pytest.mark.unit
def test_lenient_parse_without_marker() -> None:
    records = parse_document(b"# Title\n\n## a.txt\n\n```\nx\n```\n", strict=False)

    assert records == [FileRecord.text_file("a.txt", "x")]


@pytest.mark.unit
def test_lenient_parse_of_markdown_without_sections() -> None:
    assert parse_document(b"just some notes\n", strict=False) == []


@pytest.mark.unit
def test_strict_parse_rejects_stray_line() -> None:
    with pytest.raises(MalformedSectionError) as exc_info:
        parse_document(_doc(b"stray\n"))

    assert exc_info.value.line == 2


@pytest.mark.unit
def test_unterminated_fence_is_malformed() -> None:
    with pytest.raises(MalformedSectionError) as exc_info:
        parse_document(_doc(b"## a.txt\n\n```\nnever closed\n"))

    assert exc_info.value.path == "a.txt"
    assert exc_info.value.line == 2
    assert "never closed" in exc_info.value.reason


@pytest.mark.unit
def test_heading_without_content_is_malformed() -> None:
    with pytest.raises(MalformedSectionError):
        parse_document(_doc(b"## a.txt\n\n"))


@pytest.mark.unit
def test_unexpected_section_body_is_malformed() -> None:
    with pytest.raises(MalformedSectionError) as exc_info:
        parse_document(_doc(b"## a.txt\n\nno fence here\n"))

    assert exc_info.value.line == 4


@pytest.mark.unit
@pytest.mark.parametrize("path", ["../escape.txt", "/etc/passwd", "a/./b", "C:/x.txt"])
def test_unsafe_paths_are_malformed(path: str) -> None:
    data = _doc(f"## {path}\n\n```\nx\n```\n".encode())

    with pytest.raises(MalformedSectionError) as exc_info:
        parse_document(data)

    assert "invalid path" in exc_info.value.reason


@pytest.mark.unit
def test_decode_reads_stream_and_can_be_repeated() -> None:
    sink = io.BytesIO()
    encode([FileRecord.text_file("a.txt", "hello\n")], sink)
    data = sink.getvalue()

    first = decode(io.BytesIO(data))
    second = decode(io.BytesIO(data))

    assert first == second == [FileRecord.text_file("a.txt", "hello\n")]


@pytest.mark.unit
def test_dedupe_records_last_wins() -> None:
    records = [
        FileRecord.text_file("a.txt", "first"),
        FileRecord.text_file("b.txt", "b"),
        FileRecord.text_file("a.txt", "second"),
    ]

    assert dedupe_records(records) == [records[1], records[2]]


@pytest.mark.unit
def test_materialize_skips_binary_by_default(tmp_path: Path) -> None:
    records = [FileRecord.text_file("dir/a.txt", "a"), FileRecord.binary_file("img.png")]

    report = materialize(records, tmp_path / "out")

    assert report.written == [tmp_path / "out" / "dir" / "a.txt"]
    assert report.skipped == ["img.png"]
    assert (tmp_path / "out" / "dir" / "a.txt").read_bytes() == b"a"
    assert not (tmp_path / "out" / "img.png").exists()


@pytest.mark.unit
def test_materialize_binary_placeholders(tmp_path: Path) -> None:
    report = materialize([FileRecord.binary_file("img.png")], tmp_path, binary_placeholders=True)

    assert report.written == [tmp_path / "img.png"]
    assert (tmp_path / "img.png").read_bytes() == b""


@pytest.mark.unit
def test_materialize_refuses_symlink_escape(tmp_path: Path) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    root = tmp_path / "root"
    root.mkdir()
    (root / "link").symlink_to(outside, target_is_directory=True)
    records = [FileRecord.text_file("link/evil.txt", "x")]

    report = materialize(records, root)

    assert [(f.path, f.phase) for f in report.failures] == [("link/evil.txt", Phase.WRITE)]
    assert not (outside / "evil.txt").exists()

    with pytest.raises(RecordError):
        materialize(records, root, fail_fast=True)


@pytest.mark.unit
def test_restore_missing_input_is_container_io_error(tmp_path: Path) -> None:
    with pytest.raises(ContainerIOError) as exc_info:
        restore(tmp_path / "missing.md", tmp_path / "out")

    assert exc_info.value.phase is Phase.READ


@pytest.mark.unit
def test_restore_leaves_target_untouched_on_parse_error(tmp_path: Path) -> None:
    doc = tmp_path / "doc.md"
    doc.write_bytes(_doc(b"## a.txt\n\n```\nx\n```\n\n## b.txt\n\n```\nunterminated\n"))
    target = tmp_path / "out"

    with pytest.raises(MalformedSectionError):
        restore(doc, target)

    assert not target.exists()


@pytest.mark.unit
def test_record_kind_after_parse() -> None:
    (record,) = parse_document(_doc(b"## x.bin\n\n(binary file omitted)\n"))

    assert record.kind is ContentKind.BINARY


@pytest.mark.unit
def test_parse_rejects_fence_characters_in_dialect() -> None:
    with pytest.raises(MalformedSectionError) as exc_info:
        parse_document(_doc(b"## a.txt\n\n```py`x\npayload\n```\n"))

    assert "invalid dialect" in exc_info.value.reason


@pytest.mark.unit
def test_parse_document_converted_to_crlf() -> None:
    sink = io.BytesIO()
    encode([FileRecord.text_file("a.txt", "one\ntwo", dialect="text")], sink)
    converted = sink.getvalue().replace(b"\n", b"\r\n")

    (record,) = parse_document(converted)

    assert record.relative_path == "a.txt"
    assert record.dialect == "text"
    assert record.content == b"one\r\ntwo\r"
