from pathlib import Path

import pytest

from mdbundle.config import MAGIC_BYTES
from mdbundle.exceptions import ContainerIOError, Phase
from mdbundle.file_manipulation import (
    collect_files,
    has_allowed_extension,
    in_specific_paths,
    is_lock_file,
    load_ignore_spec,
    parse_extensions,
    relpath,
)


def _touch(root: Path, rel: str, data: bytes = b"x\n") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def _rels(root: Path, **kwargs: object) -> list[str]:
    return [ref.rel for ref in collect_files(root, **kwargs)]


@pytest.mark.unit
def test_relpath_uses_forward_slashes(tmp_path: Path) -> None:
    assert relpath(tmp_path / "a" / "b.txt", tmp_path) == "a/b.txt"
    assert relpath(Path("/elsewhere/c.txt"), tmp_path) == str(Path("/elsewhere/c.txt"))


@pytest.mark.unit
@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("package-lock.json", True),
        ("Cargo.lock", True),
        ("custom.lock", True),
        ("lockfile.py", False),
        ("main.rs", False),
    ],
)
def test_is_lock_file(name: str, expected: bool) -> None:  # noqa: FBT001
    assert is_lock_file(name) is expected


@pytest.mark.unit
def test_parse_extensions_normalizes() -> None:
    assert parse_extensions(" rs, .TS,,js ") == {"rs", "ts", "js"}
    assert parse_extensions(["PY", ".md"]) == {"py", "md"}
    assert parse_extensions(None) == set()
    assert parse_extensions("") == set()


@pytest.mark.unit
def test_has_allowed_extension() -> None:
    assert has_allowed_extension(Path("a.RS"), {"rs"})
    assert not has_allowed_extension(Path("a.py"), {"rs"})
    assert has_allowed_extension(Path("Makefile"), set())


@pytest.mark.unit
def test_in_specific_paths(tmp_path: Path) -> None:
    file_path = tmp_path / "src" / "a.py"

    assert in_specific_paths(file_path, [])
    assert in_specific_paths(file_path, [tmp_path / "src"])
    assert in_specific_paths(file_path, [file_path])
    assert not in_specific_paths(file_path, [tmp_path / "tests"])


@pytest.mark.unit
def test_load_ignore_spec_prefers_explicit_then_mdbundle_then_gitignore(tmp_path: Path) -> None:
    assert load_ignore_spec(tmp_path) is None

    _touch(tmp_path, ".gitignore", b"*.log\n")
    spec = load_ignore_spec(tmp_path)
    assert spec is not None
    assert spec.match_file("debug.log")

    _touch(tmp_path, ".mdbundle.ignore", b"*.tmp\n")
    spec = load_ignore_spec(tmp_path)
    assert spec is not None
    assert spec.match_file("x.tmp")
    assert not spec.match_file("debug.log")

    explicit = _touch(tmp_path, "custom.ignore", b"secret/\n")
    spec = load_ignore_spec(tmp_path, explicit)
    assert spec is not None
    assert spec.match_file("secret/")


@pytest.mark.unit
def test_collect_files_walk_order(tmp_path: Path) -> None:
    _touch(tmp_path, "b.txt")
    _touch(tmp_path, "a.txt")
    _touch(tmp_path, "src/z.py")
    _touch(tmp_path, "src/inner/y.py")
    _touch(tmp_path, "docs/x.md")

    assert _rels(tmp_path) == ["a.txt", "b.txt", "docs/x.md", "src/z.py", "src/inner/y.py"]


@pytest.mark.unit
def test_collect_files_skips_hidden_locks_and_default_excludes(tmp_path: Path) -> None:
    _touch(tmp_path, "keep.py")
    _touch(tmp_path, ".env")
    _touch(tmp_path, ".git/config")
    _touch(tmp_path, "Cargo.lock")
    _touch(tmp_path, "node_modules/pkg/index.js")
    _touch(tmp_path, "__pycache__/keep.cpython-312.pyc")

    assert _rels(tmp_path) == ["keep.py"]


@pytest.mark.unit
def test_collect_files_honors_gitignore(tmp_path: Path) -> None:
    _touch(tmp_path, ".gitignore", b"*.log\ngenerated/\n")
    _touch(tmp_path, "app.py")
    _touch(tmp_path, "debug.log")
    _touch(tmp_path, "generated/out.py")

    assert _rels(tmp_path) == ["app.py"]


@pytest.mark.unit
def test_collect_files_extension_and_specific_paths(tmp_path: Path) -> None:
    _touch(tmp_path, "src/main.rs")
    _touch(tmp_path, "src/util.ts")
    _touch(tmp_path, "src/readme.md")
    _touch(tmp_path, "other/lib.rs")

    assert _rels(tmp_path, extensions={"rs", "ts"}) == ["other/lib.rs", "src/main.rs", "src/util.ts"]
    assert _rels(tmp_path, specific_paths=[tmp_path / "src"], extensions={"rs"}) == ["src/main.rs"]


@pytest.mark.unit
def test_collect_files_skips_excluded_and_previous_outputs(tmp_path: Path) -> None:
    _touch(tmp_path, "app.py")
    output = _touch(tmp_path, "out.md", b"# not a container yet\n")
    _touch(tmp_path, "old_bundle.md", MAGIC_BYTES + b"## app.py\n")
    _touch(tmp_path, "book/SUMMARY.md")

    assert _rels(tmp_path, exclude=[output, tmp_path / "book"]) == ["app.py"]


@pytest.mark.unit
def test_collect_files_missing_root_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(ContainerIOError) as exc_info:
        collect_files(tmp_path / "missing")

    assert exc_info.value.phase is Phase.READ
    assert exc_info.value.path == str((tmp_path / "missing").resolve())


@pytest.mark.unit
def test_collect_files_root_that_is_a_file_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(ContainerIOError):
        collect_files(_touch(tmp_path, "plain.txt"))
