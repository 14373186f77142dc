"""
Utility functions and helpers.
"""

from .config_loader import get_default_config, load_config, save_config
from .logging_config import set_logger_level, setup_logging

__all__ = [
    "get_default_config",
    "load_config",
    "save_config",
    "set_logger_level",
    "setup_logging",
]
