"""mdbook-style output: a SUMMARY.md plus one chapter file per folder.

Root files go to ``introduction.md``; every folder with files (directly or
below) gets ``<folder path>.md``. Chapters reuse the container section format,
with the bare file name as heading.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from mdbundle.classifier import tag_for
from mdbundle.encoder import build_record, read_source, render_section
from mdbundle.exceptions import ContainerIOError, Phase
from mdbundle.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mdbundle.config import SourceRef

INTRODUCTION = "introduction.md"
SUMMARY = "SUMMARY.md"
# Stems of the fixed book files; a top-level folder may not take them over.
_RESERVED_STEMS = frozenset({"introduction", "summary"})


@dataclass
class Chapter:
    """A folder of the project: its own files and its subfolders."""

    files: list[SourceRef] = field(default_factory=list)
    children: dict[str, Chapter] = field(default_factory=dict)

    def insert(self, ref: SourceRef) -> None:
        node = self
        *dirs, _ = ref.rel.split("/")
        for name in dirs:
            node = node.children.setdefault(name, Chapter())
        node.files.append(ref)

    def has_content(self) -> bool:
        stack = [self]
        while stack:
            node = stack.pop()
            if node.files:
                return True
            stack.extend(node.children.values())
        return False

    def walk(self) -> list[tuple[str, int, Chapter]]:
        """List (chapter path, depth, chapter) for every subfolder with content, in summary order."""
        out: list[tuple[str, int, Chapter]] = []
        stack = [(name, 0, child) for name, child in sorted(self.children.items(), reverse=True)]
        while stack:
            path, depth, node = stack.pop()
            if not node.has_content():
                continue
            out.append((path, depth, node))
            stack.extend(
                (f"{path}/{name}", depth + 1, child) for name, child in sorted(node.children.items(), reverse=True)
            )
        return out


def chapter_file(path: str) -> str:
    """Relative file name of the chapter for folder `path`.

    A top-level folder whose name clashes (case-insensitively) with SUMMARY.md or
    introduction.md gets a `_chapter` suffix.
    """
    if "/" not in path and path.lower() in _RESERVED_STEMS:
        return f"{path}_chapter.md"
    return f"{path}.md"


def build_tree(refs: Iterable[SourceRef]) -> Chapter:
    root = Chapter()
    for ref in refs:
        root.insert(ref)
    return root


def render_summary(root: Chapter) -> str:
    """Render SUMMARY.md for a chapter tree.

    Args:
        root (Chapter): the project root chapter

    Returns:
        str: the summary, with one indented link per folder
    """
    lines = ["# Summary", ""]
    if root.files:
        lines.append(f"- [Introduction](./{INTRODUCTION})")
    for path, depth, _ in root.walk():
        name = path.rsplit("/", 1)[-1]
        lines.append(f"{'  ' * depth}- [{name}](./{chapter_file(path)})")
    return "\n".join(lines) + "\n"


def render_chapter(title: str, files: Iterable[SourceRef]) -> bytes:
    """Render one chapter: a title, then one section per file.

    Raises:
        ContainerIOError: if a file cannot be read.
    """
    parts = [f"# {title}\n\n".encode()]
    for ref in files:
        name = ref.rel.rsplit("/", 1)[-1]
        data = read_source(ref)
        parts.append(render_section(build_record(name, data, dialect=tag_for(ref.path))))
    return b"".join(parts)


def _write(path: Path, data: bytes) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as e:
        raise ContainerIOError(path=str(path), phase=Phase.WRITE, reason=str(e)) from e
    logger.info("book file written", path=str(path))


def generate_book(refs: Iterable[SourceRef], output_dir: Path) -> list[Path]:
    """Write an mdbook `src/` layout for the given files.

    Args:
        refs (Iterable[SourceRef]): the files, as returned by `collect_files`
        output_dir (Path): directory receiving SUMMARY.md and the chapters

    Raises:
        ContainerIOError: if a source cannot be read or an output cannot be written.

    Returns:
        list[Path]: every file written, SUMMARY.md first
    """
    root = build_tree(refs)
    written: list[Path] = []

    summary_path = output_dir / SUMMARY
    _write(summary_path, render_summary(root).encode())
    written.append(summary_path)

    if root.files:
        intro_path = output_dir / INTRODUCTION
        _write(intro_path, render_chapter("Introduction", root.files))
        written.append(intro_path)

    for path, _, chapter in root.walk():
        chapter_path = output_dir.joinpath(*chapter_file(path).split("/"))
        _write(chapter_path, render_chapter(path.rsplit("/", 1)[-1], chapter.files))
        written.append(chapter_path)
    return written
