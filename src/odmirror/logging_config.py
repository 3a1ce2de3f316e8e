#!/usr/bin/env python3
"""Logging configuration for ODMirror.

Upload workers log concurrently, so every file record and every DEBUG
console record names the thread it came from.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

LEVEL_ENV_VAR = 'ODMIRROR_LOG_LEVEL'

THREAD_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] - %(message)s'
BRIEF_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# HTTP libraries log every connection at DEBUG
QUIET_LOGGERS = ('urllib3', 'requests')


def resolve_level(level: Optional[str] = None) -> int:
    """Map a level name to its numeric value.

    Args:
        level: Level name; falls back to ODMIRROR_LOG_LEVEL, then INFO

    Returns:
        Numeric level (unknown names give INFO)
    """
    name = (level or os.environ.get(LEVEL_ENV_VAR) or 'INFO').upper()
    return getattr(logging, name, logging.INFO)


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if level == logging.DEBUG:
        handler.setFormatter(logging.Formatter(THREAD_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    else:
        handler.setFormatter(logging.Formatter(BRIEF_FORMAT, datefmt='%H:%M:%S'))
    return handler


def _file_handler(log_file: Path) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(THREAD_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def setup_logging(level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """Install console and optional file logging for a run.

    Replaces any handlers already on the root logger. The file always
    receives DEBUG records regardless of the console level.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of the log file
    """
    console_level = resolve_level(level)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    root.addHandler(_console_handler(console_level))
    if log_file:
        root.addHandler(_file_handler(log_file))
    root.setLevel(logging.DEBUG if log_file else console_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"ODMirror logging initialized at {logging.getLevelName(console_level)} level")
    if log_file:
        logger.info(f"Logging to file: {log_file}")
