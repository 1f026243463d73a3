from __future__ import annotations

import re
from enum import StrEnum, auto
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mdbundle.exceptions import ContentEncodingError

_ = Path()

# Container format. The marker line is a versioned contract: documents written
# with it must stay recognizable by every later release.
MAGIC_MARKER = "<!-- mdbundle:container v1 -->"
MAGIC_BYTES = (MAGIC_MARKER + "\n").encode("utf-8")
# The same line after an editor converted the document to CRLF line endings.
MAGIC_BYTES_CRLF = (MAGIC_MARKER + "\r\n").encode("utf-8")
HEADING_PREFIX = "## "
BINARY_PLACEHOLDER = "(binary file omitted)"
FENCE_CHAR = "`"
MIN_FENCE_LENGTH = 3
SAMPLE_SIZE = 8192

DEFAULT_IGNORE_FILES = (".mdbundle.ignore", ".gitignore")

# Directory names pruned from every walk (hidden directories are pruned anyway).
DEFAULT_EXCLUDES = frozenset(
    {
        "__pycache__",
        "node_modules",
        "venv",
        "dist",
        "build",
    },
)

LOCK_FILES = frozenset(
    {
        "package-lock.json",
        "npm-shrinkwrap.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
        "cargo.lock",
        "gemfile.lock",
        "poetry.lock",
        "pipfile.lock",
        "pdm.lock",
        "uv.lock",
        "composer.lock",
        "go.sum",
        "flake.lock",
        "mix.lock",
        "pubspec.lock",
        "podfile.lock",
        "packages.lock.json",
    },
)

BINARY_SIGNATURES: tuple[bytes, ...] = (
    b"\x89PNG\r\n\x1a\n",
    b"\xff\xd8\xff",
    b"GIF87a",
    b"GIF89a",
    b"%PDF-",
    b"PK\x03\x04",
    b"PK\x05\x06",
    b"\x1f\x8b",
    b"\x7fELF",
    b"\xfe\xed\xfa\xce",
    b"\xfe\xed\xfa\xcf",
    b"\xcf\xfa\xed\xfe",
    b"\xce\xfa\xed\xfe",
    b"\x00asm",
    b"7z\xbc\xaf\x27\x1c",
    b"BZh",
    b"\xfd7zXZ\x00",
    b"SQLite format 3\x00",
)

TEXT_BOMS: tuple[bytes, ...] = (
    b"\xef\xbb\xbf",
    b"\xff\xfe\x00\x00",
    b"\x00\x00\xfe\xff",
    b"\xff\xfe",
    b"\xfe\xff",
)

NAME2DIALECT: dict[str, str] = {
    "dockerfile": "dockerfile",
    "makefile": "makefile",
    "gnumakefile": "makefile",
    "cmakelists.txt": "cmake",
    "rakefile": "ruby",
    "gemfile": "ruby",
    "vagrantfile": "ruby",
    "justfile": "just",
    ".gitignore": "gitignore",
    ".gitattributes": "gitignore",
    ".gitmodules": "gitignore",
    ".env": "dotenv",
    ".env.local": "dotenv",
    ".env.example": "dotenv",
    ".editorconfig": "editorconfig",
    "procfile": "procfile",
}

EXT2DIALECT: dict[str, str] = {
    # Rust
    ".rs": "rust",
    # JavaScript / TypeScript
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "jsx",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    # Web
    ".html": "html",
    ".htm": "html",
    ".css": "css",
    ".scss": "scss",
    ".sass": "sass",
    ".less": "less",
    ".vue": "vue",
    ".svelte": "svelte",
    ".astro": "astro",
    # Python
    ".py": "python",
    ".pyi": "python",
    ".pyw": "python",
    ".pyx": "cython",
    ".pxd": "cython",
    # Ruby
    ".rb": "ruby",
    ".erb": "erb",
    ".rake": "ruby",
    ".gemspec": "ruby",
    # Go
    ".go": "go",
    ".mod": "gomod",
    ".sum": "gosum",
    # JVM
    ".java": "java",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".scala": "scala",
    ".sc": "scala",
    ".groovy": "groovy",
    ".gvy": "groovy",
    ".gy": "groovy",
    ".gsh": "groovy",
    ".gradle": "gradle",
    ".clj": "clojure",
    ".cljs": "clojure",
    ".cljc": "clojure",
    ".edn": "clojure",
    # C / C++
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".c++": "cpp",
    ".hpp": "cpp",
    ".hh": "cpp",
    ".hxx": "cpp",
    ".h++": "cpp",
    # .NET
    ".cs": "csharp",
    ".fs": "fsharp",
    ".fsi": "fsharp",
    ".fsx": "fsharp",
    ".vb": "vb",
    ".csproj": "xml",
    ".fsproj": "xml",
    ".vbproj": "xml",
    ".sln": "xml",
    # Systems
    ".zig": "zig",
    ".nim": "nim",
    ".v": "v",
    ".odin": "odin",
    ".d": "d",
    # Functional
    ".hs": "haskell",
    ".lhs": "haskell",
    ".ml": "ocaml",
    ".mli": "ocaml",
    ".ex": "elixir",
    ".exs": "elixir",
    ".erl": "erlang",
    ".hrl": "erlang",
    ".elm": "elm",
    ".purs": "purescript",
    ".rkt": "racket",
    ".scm": "scheme",
    ".ss": "scheme",
    ".lisp": "lisp",
    ".lsp": "lisp",
    ".cl": "lisp",
    # Shell
    ".sh": "bash",
    ".bash": "bash",
    ".zsh": "zsh",
    ".fish": "fish",
    ".ps1": "powershell",
    ".psm1": "powershell",
    ".psd1": "powershell",
    ".bat": "batch",
    ".cmd": "batch",
    # Config / data
    ".json": "json",
    ".jsonc": "jsonc",
    ".json5": "json5",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".xml": "xml",
    ".xsd": "xml",
    ".xsl": "xml",
    ".xslt": "xml",
    ".ini": "ini",
    ".cfg": "ini",
    ".conf": "conf",
    ".properties": "properties",
    # Markup / documentation
    ".md": "markdown",
    ".markdown": "markdown",
    ".mdx": "mdx",
    ".rst": "rst",
    ".tex": "latex",
    ".latex": "latex",
    ".adoc": "asciidoc",
    ".asciidoc": "asciidoc",
    ".org": "org",
    ".txt": "text",
    # Database
    ".sql": "sql",
    ".psql": "sql",
    ".mysql": "sql",
    ".pgsql": "sql",
    ".plsql": "plsql",
    ".prisma": "prisma",
    # Infrastructure
    ".tf": "hcl",
    ".tfvars": "hcl",
    ".hcl": "hcl",
    ".nix": "nix",
    ".dhall": "dhall",
    # PHP
    ".php": "php",
    ".phtml": "php",
    # Apple
    ".swift": "swift",
    ".m": "objectivec",
    ".mm": "objectivec",
    # Perl / Lua / R / Julia
    ".pl": "perl",
    ".pm": "perl",
    ".pod": "perl",
    ".perl": "perl",
    ".lua": "lua",
    ".luau": "luau",
    ".r": "r",
    ".rmd": "r",
    ".jl": "julia",
    ".mat": "matlab",
    # Assembly
    ".asm": "asm",
    ".s": "asm",
    ".nasm": "nasm",
    # Protocol / schema
    ".proto": "protobuf",
    ".graphql": "graphql",
    ".gql": "graphql",
    ".thrift": "thrift",
    ".avsc": "json",
    # Templates
    ".ejs": "ejs",
    ".hbs": "handlebars",
    ".handlebars": "handlebars",
    ".mustache": "mustache",
    ".jinja": "jinja",
    ".jinja2": "jinja",
    ".j2": "jinja",
    ".liquid": "liquid",
    ".pug": "pug",
    ".jade": "pug",
    ".slim": "slim",
    ".haml": "haml",
    # Misc
    ".diff": "diff",
    ".patch": "diff",
    ".log": "log",
    ".csv": "csv",
    ".tsv": "tsv",
    ".lock": "lock",
    ".svg": "svg",
    ".wasm": "wasm",
    ".wat": "wasm",
    ".glsl": "glsl",
    ".vert": "glsl",
    ".frag": "glsl",
    ".hlsl": "hlsl",
    ".cu": "cuda",
    ".cuh": "cuda",
    ".sol": "solidity",
    ".cairo": "cairo",
    ".move": "move",
}

# Double-extension names that a plain suffix lookup would get wrong.
COMPOUND_EXT2DIALECT: dict[str, str] = {
    ".blade.php": "blade",
}

_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:")


class ContentKind(StrEnum):
    """Whether a record carries a text payload or stands for an omitted binary file."""

    TEXT = auto()
    BINARY = auto()


class SourceRef(BaseModel):
    """A file selected for encoding.

    Attributes:
        path: Absolute path to the file on disk.
        rel: Path relative to the chosen project root, with POSIX separators.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    rel: str = Field(..., description="File path relative to the project root")


class FileRecord(BaseModel):
    """One file of a container: a relative path plus its payload (or the lack of one).

    Attributes:
        relative_path: Forward-slash relative path, unique within a document.
        kind: TEXT records carry `content`; BINARY records carry nothing.
        content: Raw payload bytes, written verbatim between the fences.
        dialect: Syntax hint written after the opening fence (cosmetic only).
    """

    model_config = ConfigDict(frozen=True)

    relative_path: str = Field(..., description="Forward-slash relative path")
    kind: ContentKind = Field(default=ContentKind.TEXT, description="Text or binary")
    content: bytes | None = Field(default=None, description="Raw payload for text records")
    dialect: str = Field(default="", description="Syntax highlighting hint")

    @field_validator("relative_path")
    @classmethod
    def _normalize_relative_path(cls, value: str) -> str:
        rel = value.replace("\\", "/")
        while rel.startswith("./"):
            rel = rel[2:]
        if not rel:
            msg = "relative path must not be empty"
            raise ValueError(msg)
        if "\n" in rel or "\r" in rel:
            msg = "relative path must not contain line breaks"
            raise ValueError(msg)
        if rel.startswith("/") or _DRIVE_PATTERN.match(rel):
            msg = f"relative path must not be absolute: {rel!r}"
            raise ValueError(msg)
        parts = rel.split("/")
        if any(part in {"", ".", ".."} for part in parts):
            msg = f"relative path has an empty, '.' or '..' segment: {rel!r}"
            raise ValueError(msg)
        return rel

    @field_validator("dialect")
    @classmethod
    def _check_dialect(cls, value: str) -> str:
        dialect = value.strip()
        if "\n" in dialect or "\r" in dialect:
            msg = "dialect must not contain line breaks"
            raise ValueError(msg)
        if FENCE_CHAR in dialect:
            msg = f"dialect must not contain {FENCE_CHAR!r}"
            raise ValueError(msg)
        return dialect

    @model_validator(mode="before")
    @classmethod
    def _default_text_payload(cls, data: Any) -> Any:  # noqa: ANN401
        if isinstance(data, dict) and data.get("kind", ContentKind.TEXT) == ContentKind.TEXT and data.get("content") is None:
            return {**data, "content": b""}
        return data

    @model_validator(mode="after")
    def _check_payload(self) -> Self:
        if self.kind is ContentKind.BINARY and self.content is not None:
            msg = "binary records carry no payload"
            raise ValueError(msg)
        return self

    @classmethod
    def text_file(cls, relative_path: str, content: str | bytes, dialect: str = "") -> FileRecord:
        """Build a TEXT record, encoding `content` as UTF-8 when given as `str`."""
        payload = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        return cls(relative_path=relative_path, kind=ContentKind.TEXT, content=payload, dialect=dialect)

    @classmethod
    def binary_file(cls, relative_path: str) -> FileRecord:
        """Build a BINARY record (path only)."""
        return cls(relative_path=relative_path, kind=ContentKind.BINARY)

    @property
    def is_binary(self) -> bool:
        return self.kind is ContentKind.BINARY

    @property
    def text(self) -> str:
        """Payload decoded as UTF-8.

        Raises:
            ContentEncodingError: if the record is binary or the payload is not valid UTF-8.
        """
        if self.content is None:
            raise ContentEncodingError(path=self.relative_path, reason="binary record has no text")
        try:
            return self.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ContentEncodingError(path=self.relative_path, reason=str(e)) from e
