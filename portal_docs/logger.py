"""
Logging configuration for the portal document engine.

The package logger ("portal_docs") is configured once at import time from
the environment:

  PORTAL_DOCS_LOG_LEVEL   level name or number (default WARNING, so an
                          embedding application is not flooded)
  PORTAL_DOCS_LOG_FILE    optional file receiving the same records

Records go to stderr; the CLI scripts keep stdout for their JSON output.
"""

import logging
import os
import sys
from typing import Optional, Union

PACKAGE_LOGGER = "portal_docs"
LEVEL_ENV = "PORTAL_DOCS_LOG_LEVEL"
FILE_ENV = "PORTAL_DOCS_LOG_FILE"
DEFAULT_LEVEL = logging.WARNING

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_level(value: Union[str, int, None], default: int = DEFAULT_LEVEL) -> int:
    """Turn "debug", "INFO", "10" or 10 into a logging level; unknown values give default."""
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    value = value.strip()
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else default


def setup_logger(
    name: str = PACKAGE_LOGGER,
    level: Optional[int] = None,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up and return a logger instance.

    Args:
        name: Logger name
        level: Logging level (default: PORTAL_DOCS_LOG_LEVEL, else WARNING)
        log_file: Optional file path for logging (default: PORTAL_DOCS_LOG_FILE)

    Returns:
        Configured logger instance
    """
    if level is None:
        level = parse_level(os.getenv(LEVEL_ENV))
    log_file = log_file or os.getenv(FILE_ENV) or None

    logger = logging.getLogger(name)

    # Called again by the CLI scripts and DocumentEngine(log_level=...):
    # only the level changes, handlers are never duplicated
    if logger.handlers:
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


logger = setup_logger()


def get_module_logger(module_name: str) -> logging.Logger:
    """
    Child logger for one component, e.g. get_module_logger("cache") →
    "portal_docs.cache". Handlers and level come from the package logger.
    """
    return logging.getLogger(f"{PACKAGE_LOGGER}.{module_name}")
