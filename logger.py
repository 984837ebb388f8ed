"""
Logging setup shared by the API modules.

Call setup_logger() once at startup; every other module just does
``logging.getLogger(__name__)``.
"""

import logging
import sys
from logging import Logger, StreamHandler
from typing import Final

LOG_FORMAT: Final[str] = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logger(name: str = __name__, level: str = "INFO") -> Logger:
    """
    Configure root logging to stdout and return a named logger.

    ``level`` is a level name such as "DEBUG" or "warning"; unknown names
    fall back to INFO.
    """
    log_levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    log_level = log_levels.get(level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=[StreamHandler(sys.stdout)],
        force=True,
    )

    return logging.getLogger(name)
