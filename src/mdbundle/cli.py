"""
mdbundle: pack a project tree into one Markdown document, and back.

Overview
--------
Encoding walks a project root (or a fresh shallow clone of a git remote) and
writes a single Markdown document: a marker line, then one `## <path>` section
per file with its content in a fenced block. Binary files are listed by path
only. Decoding (`--restore`) reads such a document and recreates the files.

Documents produced by mdbundle carry a marker line, so a later run over the same
tree recognizes and skips them.

Usage
-----
Run `mdbundle --help` for full options. Common examples:
    - Bundle the current directory:
        mdbundle
    - Only Rust and TypeScript sources, into a chosen file:
        mdbundle -e rs,ts -o project.md
    - Bundle a remote repository branch:
        mdbundle --git https://github.com/user/repo -b develop
    - Restore a document into a directory:
        mdbundle --restore project.md --restore-path ./restored
    - mdbook chapters instead of one document:
        mdbundle --book ./book/src
"""

from __future__ import annotations

import argparse
import os
import sys
import tempfile
import time
from contextlib import ExitStack
from pathlib import Path
from typing import TYPE_CHECKING

from mdbundle import __version__
from mdbundle.book import generate_book
from mdbundle.decoder import restore
from mdbundle.encoder import encode_files
from mdbundle.exceptions import ContainerIOError, MdBundleError, Phase
from mdbundle.file_manipulation import collect_files, parse_extensions
from mdbundle.git import clone_repository, repo_name_from_url
from mdbundle.logging import setup_logging
from mdbundle.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mdbundle.config import SourceRef

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2

logger = setup_logging()


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    p = argparse.ArgumentParser(
        prog="mdbundle",
        description="Bundle a project into a single Markdown document, or restore one.",
    )
    p.add_argument("paths", nargs="*", type=Path, help="Specific files or directories to include.")
    p.add_argument("-o", "--output", type=Path, default=None, help="Output .md file.")
    p.add_argument("--root", type=Path, default=Path.cwd(), help="Project root (default: cwd).")
    p.add_argument("--ignore-file", type=Path, default=None, help="Gitignore-style file.")
    p.add_argument("-e", "--ext", type=str, default="", help="Comma list of extensions, e.g. rs,ts.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v, -vv).")
    p.add_argument("--fail-fast", action="store_true", help="Stop on the first file error.")
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    p.add_argument("--restore", type=Path, default=None, metavar="MARKDOWN", help="Restore files from a document.")
    p.add_argument("--restore-path", type=Path, default=None, metavar="DIR", help="Restore target (default: cwd).")
    p.add_argument("--lenient", action="store_true", help="Accept documents without the marker line.")
    p.add_argument(
        "--binary-placeholders",
        action="store_true",
        help="Create empty files for binary sections on restore.",
    )

    p.add_argument("--git", type=str, default="", metavar="URL", help="Clone and bundle a git repository.")
    p.add_argument("-b", "--branch", type=str, default="", help="Branch to clone.")
    p.add_argument("--book", type=Path, default=None, metavar="DIR", help="Write mdbook chapters to DIR.")

    args = p.parse_args(argv)
    values = {k: v for k, v in vars(args).items() if v is not None}
    return Settings(**values)


def default_output(folder_name: str, directory: Path) -> Path:
    """Name of the document written when `--output` is not given."""
    return directory / f"{folder_name}_content_{int(time.time())}.md"


def write_document(refs: Sequence[SourceRef], out_path: Path, *, fail_fast: bool) -> int:
    """Encode `refs` into `out_path` through a temporary sibling file.

    The document only appears under its final name once fully written.

    Args:
        refs (Sequence[SourceRef]): files to encode, in order
        out_path (Path): the document to create or replace
        fail_fast (bool): abort on the first file error

    Raises:
        ContainerIOError: if the output cannot be created or written.
        RecordError: on the first file error when `fail_fast` is set.

    Returns:
        int: the number of files that could not be encoded
    """
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{out_path.name}.", suffix=".tmp", dir=out_path.parent)
    except OSError as e:
        raise ContainerIOError(path=str(out_path), phase=Phase.WRITE, reason=str(e)) from e
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as sink:
            report = encode_files(refs, sink, fail_fast=fail_fast)
        os.replace(tmp_path, out_path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise ContainerIOError(path=str(out_path), phase=Phase.WRITE, reason=str(e)) from e
    except MdBundleError:
        tmp_path.unlink(missing_ok=True)
        raise
    return len(report.failures)


def run_restore(settings: Settings) -> int:
    target = settings.restore_path or Path.cwd()
    report = restore(
        settings.restore,
        target,
        strict=not settings.lenient,
        fail_fast=settings.fail_fast,
        binary_placeholders=settings.binary_placeholders,
    )
    print(
        f"Restored {len(report.written)} files into {target} "
        f"skipped={len(report.skipped)} failures={len(report.failures)}",
    )
    return EXIT_OK if report.ok else EXIT_PARTIAL


def run_encode(settings: Settings) -> int:
    with ExitStack() as stack:
        if settings.git:
            repo = stack.enter_context(clone_repository(settings.git, settings.branch or None))
            root = repo.path
            folder_name = repo_name_from_url(settings.git) or "repo"
            output_dir = Path.cwd()
        else:
            root = settings.root.resolve()
            folder_name = root.name or "root"
            output_dir = root

        out_path = (settings.output or default_output(folder_name, output_dir)).resolve()
        exclude = [out_path]
        if settings.book is not None:
            exclude.append(settings.book)

        try:
            refs = collect_files(
                root,
                ignore_file=settings.ignore_file,
                specific_paths=[p if p.is_absolute() else root / p for p in settings.paths],
                extensions=parse_extensions(settings.ext),
                exclude=exclude,
            )
        except OSError as e:
            raise ContainerIOError(
                path=str(settings.ignore_file or root),
                phase=Phase.READ,
                reason=str(e),
            ) from e

        if settings.book is not None:
            written = generate_book(refs, settings.book)
            print(f"Wrote {settings.book} book_files={len(written)} files={len(refs)}")
            return EXIT_OK

        failures = write_document(refs, out_path, fail_fast=settings.fail_fast)
        print(f"Wrote {out_path} files={len(refs) - failures} failures={failures}")
        return EXIT_OK if failures == 0 else EXIT_PARTIAL


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    setup_logging(settings.log_file or None, settings.verbose, force=True)

    try:
        if settings.restore is not None:
            return run_restore(settings)
        return run_encode(settings)
    except MdBundleError as e:
        default_phase = Phase.PARSE if settings.restore is not None else Phase.READ
        logger.error(
            "fatal error",
            error=str(e),
            error_type=type(e).__name__,
            path=getattr(e, "path", None),
            phase=str(getattr(e, "phase", default_phase)),
        )
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FATAL


if __name__ == "__main__":
    raise SystemExit(main())
