"""
Logging Utilities

This module sets up logging for the project. Every module obtains its
logger through ``setup_logger(__name__)`` so that formatting stays
consistent across filters, neighbour search and the filter chain.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "registration_filters"


def setup_logger(name: str,
                 level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (default: logging.INFO)
        log_file: Optional log file path. If provided, logs will be written to this file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers
    if logger.handlers:
        return logger

    # Set the logging level
    logger.setLevel(level)

    # Create formatters: simpler for console, detailed for file
    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(processName)s[%(process)d] | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler (if log_file is provided)
    if log_file:
        # Create parent directories if they don't exist
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


def set_package_log_level(level: str | int, log_file: Optional[str] = None) -> None:
    """
    Apply a log level (and optional log file) to every logger of the package.

    Module loggers are created eagerly at import time with their own
    handlers, so the level has to be pushed down to each of them as well
    as to their handlers.

    Args:
        level: Level name ("DEBUG", "INFO", ...) or numeric level
        log_file: Optional file that receives the output of all package loggers
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    file_handler = None
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(processName)s[%(process)d] | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        file_handler.setLevel(level)

    for name, obj in list(logging.root.manager.loggerDict.items()):
        if not isinstance(obj, logging.Logger):
            continue
        if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
            continue
        obj.setLevel(level)
        for handler in obj.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(level)
        if file_handler is not None:
            obj.addHandler(file_handler)
