from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

# (filename, level) of the active configuration, None until first setup.
_ACTIVE: tuple[str, int] | None = None

_VERBOSITY_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)

_PROCESSORS: list[structlog.types.Processor] = [
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.add_log_level,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.JSONRenderer(),
]


def level_for(verbosity: int) -> int:
    """Translate a `-v` count into a stdlib logging level.

    Args:
        verbosity: Number of `-v` flags given on the command line.

    Returns:
        WARNING for 0, INFO for 1, DEBUG for 2 and above.
    """
    return _VERBOSITY_LEVELS[min(max(verbosity, 0), len(_VERBOSITY_LEVELS) - 1)]


def _handler_for(filename: str | Path | None) -> logging.Handler:
    if filename:
        return logging.FileHandler(str(filename), encoding="utf-8")
    return logging.StreamHandler(sys.stderr)


def setup_logging(
    filename: str | Path | None = None,
    verbosity: int = 0,
    *,
    force: bool = False,
) -> structlog.BoundLogger:
    """Set up JSON structured logging for mdbundle.

    The first call configures stdlib logging and structlog. Later calls return a
    logger without touching the configuration, unless `force` is set (the CLI
    does this once the user's options are known).

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        verbosity: Number of `-v` flags; selects the minimum level.
        force: Replace an existing configuration.

    Returns:
        A structlog logger bound to the "mdbundle" name.
    """
    global _ACTIVE  # noqa: PLW0603
    if _ACTIVE is None or force:
        level = level_for(verbosity)
        logging.basicConfig(
            level=level,
            handlers=[_handler_for(filename)],
            format="%(message)s",
            force=force,
        )
        # Loggers are resolved on every call so a forced reconfiguration
        # reaches the module-level loggers created at import time.
        structlog.configure(
            processors=_PROCESSORS,
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )
        _ACTIVE = (str(filename or ""), level)

    return structlog.get_logger("mdbundle")


logger = setup_logging()
