from dataclasses import dataclass
from enum import StrEnum, auto


class Phase(StrEnum):
    """Processing phase in which a per-record error occurred."""

    READ = auto()
    CLASSIFY = auto()
    FENCE = auto()
    WRITE = auto()
    PARSE = auto()


@dataclass(frozen=True)
class MdBundleError(Exception):
    """Base exception for errors in the mdbundle package."""


@dataclass(frozen=True)
class GitCommandError(MdBundleError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        return f"`{self.command}` exited with {self.returncode}: {detail}"


@dataclass(frozen=True)
class ContainerIOError(MdBundleError):
    """Raised when reading or writing a file or stream fails."""

    path: str
    phase: Phase
    reason: str

    def __str__(self) -> str:
        return f"{self.phase} failed for {self.path}: {self.reason}"


@dataclass(frozen=True)
class NotAContainerError(MdBundleError):
    """Raised when a document does not start with the container marker."""

    path: str = "<stream>"
    message: str = "The input does not start with the mdbundle marker."

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass(frozen=True)
class MalformedSectionError(MdBundleError):
    """Raised when a section cannot be parsed back into a file record."""

    path: str | None
    line: int
    reason: str

    def __str__(self) -> str:
        where = self.path if self.path is not None else "<unknown>"
        return f"parse failed for {where} at line {self.line}: {self.reason}"


@dataclass(frozen=True)
class ContentEncodingError(MdBundleError):
    """Raised when bytes that must be text are not valid UTF-8."""

    path: str
    reason: str

    def __str__(self) -> str:
        return f"{self.path} is not valid UTF-8 text: {self.reason}"


@dataclass(frozen=True)
class RecordError(MdBundleError):
    """Raised (or collected) when a single record fails; the pass may continue."""

    path: str
    phase: Phase
    reason: str

    def __str__(self) -> str:
        return f"{self.phase} failed for {self.path}: {self.reason}"
