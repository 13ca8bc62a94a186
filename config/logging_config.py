"""
Centralized logging configuration.

Handlers live on the 'policy_jobs' root logger only; every module logger
returned by get_logger() is a child that propagates to it. Poll ticks are
logged at DEBUG and reach the rotating file, not the console.
"""
import logging
import logging.handlers
from pathlib import Path
from typing import Optional, Union

from .constants import (
    LOG_ROOT, LOG_LEVEL, LOG_CONSOLE_LEVEL, LOG_FORMAT, LOG_FILE,
    LOG_MAX_SIZE_MB, LOG_BACKUP_COUNT
)


def _configure_root(root: logging.Logger, log_file: Union[str, Path]):
    root.setLevel(getattr(logging, LOG_LEVEL))
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(getattr(logging, LOG_CONSOLE_LEVEL))
    console.setFormatter(formatter)
    root.addHandler(console)

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=LOG_MAX_SIZE_MB * 1024 * 1024,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)


def setup_logger(name: Optional[str] = None, log_file: Union[str, Path] = LOG_FILE) -> logging.Logger:
    """
    Get a logger under the 'policy_jobs' hierarchy, configuring the root once.

    Usage:
        from config.logging_config import get_logger
        logger = get_logger(__name__)
        logger.info("Batch started")

    Args:
        name: Module name. Names outside the hierarchy are nested under it.
        log_file: Rotating log file, used only on first configuration.
    """
    root = logging.getLogger(LOG_ROOT)
    if not root.handlers:
        _configure_root(root, log_file)

    if not name or name == LOG_ROOT:
        return root
    if not name.startswith(LOG_ROOT + "."):
        name = f"{LOG_ROOT}.{name}"
    return logging.getLogger(name)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Alias for setup_logger."""
    return setup_logger(name)


def set_console_level(level: Union[int, str]):
    """Change console verbosity (the file handler always records DEBUG)."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    for handler in logging.getLogger(LOG_ROOT).handlers:
        if not isinstance(handler, logging.handlers.RotatingFileHandler):
            handler.setLevel(level)


# Root logger for quick imports
# Usage: from config.logging_config import logger
logger = setup_logger()
