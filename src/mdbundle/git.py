"""Remote repository source: shallow clones through the `git` executable."""

from __future__ import annotations

import subprocess  # noqa: S404
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Self

from mdbundle.exceptions import GitCommandError
from mdbundle.logging import logger

if TYPE_CHECKING:
    from types import TracebackType


def repo_name_from_url(url: str) -> str | None:
    """Extract the repository name from a git URL.

    Handles HTTPS (`https://host/user/repo.git`) and SCP-like SSH
    (`git@host:user/repo.git`) URLs; a trailing `.git` is removed.

    Args:
        url (str): the remote URL

    Returns:
        str | None: the repository name, or None if the URL has no usable name
    """
    url = url.strip().rstrip("/")
    if "://" in url:
        tail = url.rsplit("/", 1)[-1]
    elif ":" in url:
        tail = url.rsplit(":", 1)[-1].rsplit("/", 1)[-1]
    else:
        return None
    name = tail.removesuffix(".git")
    return name or None


class ClonedRepo:
    """A shallow clone living in a temporary directory.

    The directory is deleted when the context exits.

    Usage:
        with clone_repository("https://github.com/user/repo") as repo:
            refs = collect_files(repo.path)
    """

    def __init__(self, url: str, branch: str | None = None) -> None:
        self.url = url
        self.branch = branch
        self._tmp = tempfile.TemporaryDirectory(prefix="mdbundle-")
        self.path = Path(self._tmp.name) / (repo_name_from_url(url) or "repo")

    def clone(self) -> Self:
        """Run `git clone --depth 1` into the temporary directory.

        Raises:
            GitCommandError: if git is missing or the clone fails.

        Returns:
            Self: this instance, with `path` pointing at the clone
        """
        cmd = ["git", "clone", "--depth", "1"]
        if self.branch:
            cmd.extend(["--branch", self.branch])
        cmd.extend([self.url, str(self.path)])
        logger.info("cloning repository", url=self.url, branch=self.branch or "")
        try:
            out = subprocess.run(  # noqa: S603
                cmd,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as e:
            self.cleanup()
            raise GitCommandError(command=" ".join(cmd), returncode=-1, stdout="", stderr=str(e)) from e
        if out.returncode != 0:
            self.cleanup()
            raise GitCommandError(
                command=" ".join(cmd),
                returncode=out.returncode,
                stdout=out.stdout,
                stderr=out.stderr,
            )
        logger.info("clone complete", path=str(self.path))
        return self

    def cleanup(self) -> None:
        self._tmp.cleanup()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()


def clone_repository(url: str, branch: str | None = None) -> ClonedRepo:
    """Clone `url` (optionally at `branch`) into a temporary directory.

    Args:
        url (str): HTTPS or SSH remote URL
        branch (str | None): branch or tag to check out; the remote default otherwise

    Raises:
        GitCommandError: if the clone fails.

    Returns:
        ClonedRepo: a context manager owning the clone
    """
    return ClonedRepo(url, branch).clone()
