"""Logging configuration for minivcs."""

import logging
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "minivcs"


def get_log_level(level: Union[str, int, None]) -> int:
    """Translate a level name (``"info"``, ``"DEBUG"``...) into a logging level."""
    if level is None:
        return logging.WARNING
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.WARNING)


def setup_logging(
    level: Union[str, int, None] = "WARNING",
    console: Optional[Console] = None,
) -> logging.Logger:
    """Attach a rich handler to the package logger.

    Safe to call more than once; the previous handler is replaced so repeated
    CLI invocations in one process (tests) do not duplicate output.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(get_log_level(level))

    for handler in list(logger.handlers):
        if getattr(handler, "_minivcs_handler", False):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler._minivcs_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = False
    return logger
