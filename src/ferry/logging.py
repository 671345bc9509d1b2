"""Logging configuration for ferry CLI."""

import logging
from enum import IntEnum

from rich.console import Console
from rich.logging import RichHandler

EVENTS_LOGGER = "ferry.events"


class LogLevel(IntEnum):
    """Log level enumeration."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    debug: bool = False,
) -> Console:
    """Configure logging based on CLI options.

    Args:
        verbosity: Number of -v flags (1 enables DEBUG, 2 adds times and paths)
        quiet: Suppress non-error output (takes precedence over debug/verbosity)
        no_color: Disable colored output
        debug: Enable debug logging (equivalent to -vv, ignored if quiet is set)

    Returns:
        Configured Rich console for output

    Note:
        Flag precedence: quiet > debug > verbosity.
        Stage transition events are logged on the ``ferry.events`` logger at
        INFO, so ``-q`` hides them while failures still reach stderr.
    """
    if quiet:
        level = LogLevel.QUIET
    elif debug or verbosity >= 1:
        level = LogLevel.VERBOSE
    else:
        level = LogLevel.NORMAL

    console = Console(
        stderr=True,
        force_terminal=not no_color,
        no_color=no_color,
    )

    handler = RichHandler(
        console=console,
        show_time=debug or verbosity >= 2,
        show_path=debug or verbosity >= 2,
    )

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    return console


def log_event(event: str, **fields: object) -> None:
    """Emit a structured event on the events logger.

    The fields are attached to the record as ``ferry_event`` so handlers
    that ship records elsewhere can read them without parsing the message.
    """
    rendered = " ".join(f"{key}={value}" for key, value in fields.items())
    logging.getLogger(EVENTS_LOGGER).info(
        f"{event} {rendered}".strip(),
        extra={"ferry_event": {"event": event, **fields}},
    )
