"""
Central logging setup.

Modules only do ``logger = logging.getLogger(__name__)``; the CLI calls
:func:`setup_logging` once so every record under ``timetabler`` goes through a
single rich handler (stderr, so it never mixes with command output).
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


ROOT_LOGGER = "timetabler"


def setup_logging(level: int = logging.WARNING) -> logging.Logger:
    """
    Configure and return the package logger.

    Calling it again only changes the level, handlers are never duplicated.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            log_time_format="%H:%M:%S",
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger below the package logger.

    Usage:
        logger = get_logger(__name__)
    """
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
