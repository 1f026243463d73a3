from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

import pathspec

from mdbundle.config import DEFAULT_EXCLUDES, DEFAULT_IGNORE_FILES, LOCK_FILES, SourceRef
from mdbundle.exceptions import ContainerIOError, Phase
from mdbundle.logging import logger
from mdbundle.recognition import is_container

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular.

    Args:
        path (Path): path to test.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    try:
        st = path.stat()
        return stat.S_ISREG(st.st_mode)
    except OSError:
        return False


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def is_lock_file(name: str) -> bool:
    """Check if a file name belongs to a dependency lock file.

    Args:
        name (str): the bare file name (no directory)

    Returns:
        bool: True for well known lock files (package-lock.json, Cargo.lock, ...)
            and for any `*.lock` file
    """
    low = name.lower()
    return low in LOCK_FILES or low.endswith(".lock")


def parse_extensions(value: str | Iterable[str] | None) -> set[str]:
    """Normalize an extension allow-list.

    Accepts a comma separated string ("rs, .TS,js") or an iterable of entries.
    Entries are lower-cased, stripped of a leading dot; blanks are dropped.

    Args:
        value (str | Iterable[str] | None): the raw allow-list

    Returns:
        set[str]: normalized extensions, e.g. {"rs", "ts", "js"}
    """
    if not value:
        return set()
    items = value.split(",") if isinstance(value, str) else value
    out: set[str] = set()
    for item in items:
        ext = item.strip().lower().lstrip(".")
        if ext:
            out.add(ext)
    return out


def has_allowed_extension(path: Path, extensions: Collection[str]) -> bool:
    """Check a path against an extension allow-list (empty list allows everything)."""
    if not extensions:
        return True
    return path.suffix.lower().lstrip(".") in extensions


def load_ignore_spec(root: Path, ignore_file: Path | None = None) -> pathspec.PathSpec | None:
    """Load gitignore-style patterns for a walk.

    The explicit `ignore_file` wins; otherwise the first of `.mdbundle.ignore` and
    `.gitignore` found at the root is used.

    Args:
        root (Path): the project root
        ignore_file (Path | None): an explicit ignore file

    Raises:
        OSError: if an explicit ignore file cannot be read.

    Returns:
        pathspec.PathSpec | None: the compiled patterns, or None when there is no ignore file
    """
    candidate: Path | None = ignore_file
    if candidate is None:
        candidate = next((root / name for name in DEFAULT_IGNORE_FILES if (root / name).is_file()), None)
    if candidate is None:
        return None
    lines = candidate.read_text(encoding="utf-8", errors="replace").splitlines()
    logger.debug("loaded ignore file", path=str(candidate), patterns=len(lines))
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


def in_specific_paths(path: Path, specific_paths: Collection[Path]) -> bool:
    """Check if a file is one of, or lies under one of, the selected paths.

    Args:
        path (Path): an absolute, resolved file path
        specific_paths (Collection[Path]): absolute, resolved files or directories

    Returns:
        bool: True if `specific_paths` is empty or `path` is selected by one of them
    """
    if not specific_paths:
        return True
    return any(path.is_relative_to(p) for p in specific_paths)


def collect_files(
    root: Path,
    *,
    ignore_file: Path | None = None,
    specific_paths: Collection[Path] = (),
    extensions: Collection[str] = (),
    exclude: Collection[Path] = (),
) -> list[SourceRef]:
    """Enumerate the files to encode under `root`.

    The walk uses an explicit stack (no recursion), lists each directory sorted by
    name, emits a directory's files before descending into its subdirectories, and
    does not follow directory symlinks. Skipped:

    - hidden files and directories (dot-prefixed names);
    - directories listed in `DEFAULT_EXCLUDES`;
    - entries matched by the ignore file (see `load_ignore_spec`);
    - dependency lock files;
    - non-regular files;
    - files outside the `extensions` allow-list, or outside `specific_paths`;
    - anything at or under a path in `exclude` (the output document or book directory);
    - documents previously produced by mdbundle.

    A root that cannot be listed is fatal; an unlistable subdirectory is logged
    and skipped.

    Args:
        root (Path): the project root
        ignore_file (Path | None): explicit gitignore-style file
        specific_paths (Collection[Path]): restrict the result to these files/directories
        extensions (Collection[str]): normalized extension allow-list (see `parse_extensions`)
        exclude (Collection[Path]): paths never to include

    Raises:
        ContainerIOError: if `root` does not exist or cannot be listed.
        OSError: if an explicit ignore file cannot be read.

    Returns:
        list[SourceRef]: the selected files, in walk order
    """
    root = root.resolve()
    spec = load_ignore_spec(root, ignore_file)
    excluded = {p.resolve() for p in exclude}
    selected = [p.resolve() for p in specific_paths]

    results: list[SourceRef] = []
    stack: list[Path] = [root]
    while stack:
        directory = stack.pop()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            if directory == root:
                raise ContainerIOError(path=str(root), phase=Phase.READ, reason=str(e)) from e
            logger.warning("cannot list directory", path=str(directory), error=str(e))
            continue

        subdirs: list[Path] = []
        for entry in entries:
            if is_hidden(entry.name):
                continue
            path = Path(entry.path)
            rel = relpath(path, root)
            if entry.is_dir(follow_symlinks=False):
                if entry.name in DEFAULT_EXCLUDES or (spec is not None and spec.match_file(rel + "/")):
                    continue
                subdirs.append(path)
                continue
            if spec is not None and spec.match_file(rel):
                continue
            if is_lock_file(entry.name) or not has_allowed_extension(path, extensions):
                continue
            if not is_regular_file(path):
                continue
            resolved = path.resolve()
            if any(resolved.is_relative_to(p) for p in excluded) or not in_specific_paths(resolved, selected):
                continue
            if is_container(path):
                logger.info("skipping previous output", path=rel)
                continue
            results.append(SourceRef(path=path, rel=rel))
        stack.extend(reversed(subdirs))

    logger.info("files collected", root=str(root), count=len(results))
    return results
