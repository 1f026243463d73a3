from __future__ import annotations

import os
from pathlib import Path

from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_FILE = find_dotenv(usecwd=True)


def env_default(key: str, default: str = "") -> str:
    """Look `key` up in the process environment, then in the discovered `.env` file.

    Args:
        key (str): variable name, e.g. "MDBUNDLE_LOG_FILE"
        default (str): value when the variable is set nowhere

    Returns:
        str: the value found, or `default`
    """
    if key in os.environ:
        return os.environ[key]
    if ENV_FILE:
        value = dotenv_values(ENV_FILE).get(key)
        if value is not None:
            return value
    return default


class Settings(BaseModel):
    """Configuration settings for the mdbundle command line."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    root: Path = Field(default_factory=Path.cwd, description="Project root.")
    output: Path | None = Field(default=None, description="Output .md file.")
    paths: list[Path] = Field(default_factory=list, description="Specific files or directories to include.")
    ignore_file: Path | None = Field(
        default_factory=lambda: Path(v) if (v := env_default("MDBUNDLE_IGNORE_FILE")) else None,
        description="Gitignore-style file.",
    )
    ext: str = Field(default="", description="Comma list of extensions to include.")
    verbose: int = Field(default=0, ge=0, description="Verbosity level.")
    fail_fast: bool = Field(default=False, description="Stop on first error.")
    log_file: str = Field(
        default_factory=lambda: env_default("MDBUNDLE_LOG_FILE"),
        description="Log file path.",
    )

    restore: Path | None = Field(default=None, description="Document to restore files from.")
    restore_path: Path | None = Field(default=None, description="Target directory for restoration.")
    lenient: bool = Field(default=False, description="Accept documents without marker.")
    binary_placeholders: bool = Field(
        default=False,
        description="Create empty files for binary sections on restore.",
    )

    git: str = Field(default="", description="Git URL to clone and bundle.")
    branch: str = Field(default="", description="Git branch to check out.")

    book: Path | None = Field(default=None, description="Write mdbook output to this directory.")
