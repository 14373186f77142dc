# tradesim/utils/logging_config.py
"""
Root logger setup for the command line and tooling layer.

The simulation core only ever calls ``logging.getLogger(__name__)``; handlers
and levels are installed here from the ``logging`` section of ``AppConfig``.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import List, Optional

from ..models.config import LoggingConfig


def _build_handlers(config: LoggingConfig) -> List[logging.Handler]:
    formatter = logging.Formatter(config.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    handlers: List[logging.Handler] = [console_handler]

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            config.file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    return handlers


def setup_logging(config: Optional[LoggingConfig] = None, level: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger from a ``LoggingConfig``.

    Args:
        config: Logging section of the application config (defaults if omitted)
        level: Overrides ``config.level``, e.g. DEBUG from a ``--verbose`` flag

    Returns:
        Configured root logger
    """
    config = config or LoggingConfig()
    numeric_level = getattr(logging, (level or config.level).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    # Handlers stay at NOTSET so per-logger overrides below the root level still emit
    for handler in _build_handlers(config):
        root_logger.addHandler(handler)

    for name, logger_level in config.loggers.items():
        set_logger_level(name, logger_level)

    return root_logger


def set_logger_level(name: str, level: str) -> None:
    """Set the level of one named logger, e.g. ``tradesim.core.risk_manager``."""
    logging.getLogger(name).setLevel(getattr(logging, level.upper(), logging.INFO))
