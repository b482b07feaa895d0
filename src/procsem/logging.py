"""Logging configuration and wait notifications for procsem."""

import logging
import sys
from enum import IntEnum
from typing import Any, TextIO

from rich.console import Console
from rich.logging import RichHandler

LoggerLike = logging.Logger | logging.LoggerAdapter


class LogLevel(IntEnum):
    """Log level enumeration."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


def log_event(logger: LoggerLike, message: str, **fields: Any) -> None:
    """Log a templated notification at INFO level.

    The ``{name}`` placeholders in ``message`` are substituted from ``fields``,
    and the raw fields are attached to the record through ``extra`` so that
    structured handlers can read them (``record.resource``, ...).

    Args:
        logger: Logger or adapter receiving the notification
        message: Template such as "Waiting to acquire lock on {resource}…"
        **fields: Substitution values
    """
    logger.info(message.format(**fields), extra=fields)


def format_elapsed(seconds: float) -> str:
    """Render an elapsed time rounded to two decimals (e.g. "2.30")."""
    return f"{round(seconds, 2):.2f}"


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    stream: TextIO = sys.stderr,
) -> Console:
    """Configure logging for the procsem CLI.

    Wait notifications are emitted at INFO, so they are visible by default
    and hidden by ``--quiet``. Cleanup details are logged at DEBUG.

    Args:
        verbosity: Number of -v flags (0=normal, 1+=debug)
        quiet: Only show warnings and errors (takes precedence over verbosity)
        no_color: Disable colored output
        stream: Output stream for logs

    Returns:
        Console the log handler writes to
    """
    if quiet:
        level = LogLevel.QUIET
    elif verbosity >= 1:
        level = LogLevel.VERBOSE
    else:
        level = LogLevel.NORMAL

    console = Console(
        file=stream,
        force_terminal=False if no_color else None,
        no_color=no_color,
    )

    handler = RichHandler(
        console=console,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
    )

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    return console
