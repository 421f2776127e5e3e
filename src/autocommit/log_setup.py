"""Logging setup for autocommit."""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Chatty libraries kept quiet unless running verbose
_QUIET_LOGGERS = ("httpx", "httpcore", "git")


def resolve_level(is_verbose: bool = False, env_level: str | None = None) -> int:
    """Pick the log level: --verbose wins, then LOG_LEVEL, then WARNING."""
    if is_verbose:
        return logging.DEBUG
    if env_level:
        return _LEVELS.get(env_level.strip().lower(), logging.WARNING)
    return logging.WARNING


def setup_logging(is_verbose: bool = False, console: Console | None = None) -> None:
    """Route all log records through a single RichHandler on stderr."""
    log_level = resolve_level(is_verbose, os.environ.get("LOG_LEVEL"))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicate logs if called multiple times
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        level=log_level,
        rich_tracebacks=True,
        show_time=is_verbose,
        show_path=is_verbose,
    )
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(log_level if is_verbose else max(log_level, logging.WARNING))
