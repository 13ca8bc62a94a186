"""
Configuration package: constants, logging and environment settings.

    from config import settings, get_logger
"""
from .constants import *
from .logging_config import setup_logger, get_logger, set_console_level, logger
from .settings import Settings, settings

__all__ = [
    # Logging
    'setup_logger',
    'get_logger',
    'set_console_level',
    'logger',
    # Settings
    'Settings',
    'settings',
    # Constants (all exported via *)
]
