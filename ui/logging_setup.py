"""Verbosity-driven logging configuration, rendered through rich."""
from __future__ import annotations

import logging

from rich.logging import RichHandler

from .dashboard import err_console

LOGGER_NAME = "probe"

_LEVELS = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
}


def verbosity_to_level(verbosity: int) -> int:
    return _LEVELS.get(verbosity, logging.DEBUG)


def configure_logging(verbosity: int = 0) -> logging.Logger:
    """Install a stderr ``RichHandler`` and return the probe logger."""
    handler = RichHandler(
        console=err_console,
        show_time=False,
        show_path=verbosity >= 3,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    # paramiko's own transport logging only at the noisiest level.
    logging.getLogger("paramiko").setLevel(logging.DEBUG if verbosity >= 4 else logging.WARNING)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(verbosity_to_level(verbosity))
    return logger
