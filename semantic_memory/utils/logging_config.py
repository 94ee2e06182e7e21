"""
Centralized logging configuration for the semantic memory package.
"""

import logging
import sys
from typing import Optional

from .config import AppConfig

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _resolve_level(config: Optional[AppConfig]) -> int:
    """
    Map the configured level name to a logging constant.

    Raises:
        ValueError: If LOG_LEVEL is not a standard logging level name
    """
    if config is None:
        from .config import config as default_config
        config = default_config

    level = logging.getLevelName(config.log_level.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f'Invalid LOG_LEVEL: {config.log_level!r}')
    return level


def setup_logging(config: Optional[AppConfig] = None) -> None:
    """
    Setup centralized logging configuration.

    Args:
        config: AppConfig instance, uses default if None
    """
    logging.basicConfig(level=_resolve_level(config), format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)])


def get_logger(name: str, config: Optional[AppConfig] = None) -> logging.Logger:
    """
    Get a logger with proper configuration.

    Args:
        name: Logger name (usually __name__)
        config: AppConfig instance, uses default if None

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(config))
    return logger
