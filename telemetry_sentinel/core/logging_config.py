"""
Logging configuration for production use.

Attaches console and rotating file handlers to the package logger. Modules log
through ``logging.getLogger(__name__)`` and propagate up to it, so detectors
never configure handlers themselves.
"""

import logging
import logging.handlers
from typing import List, Optional

from .config import config

PACKAGE_LOGGER = "telemetry_sentinel"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def _build_handlers(logger_name: str, log_to_file: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_to_file:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                config.logs_dir / f"{logger_name}.log",
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUPS,
            )
        )
    return handlers


def setup_logging(
    logger_name: str = PACKAGE_LOGGER,
    level: Optional[str] = None,
    log_to_file: bool = True,
) -> logging.Logger:
    """
    Configure the package logger once and return it.

    Args:
        logger_name: Logger to configure (the package logger by default)
        level: Overrides config.log_level
        log_to_file: Also write to <logs_dir>/<logger_name>.log

    Returns:
        The configured logger. Repeated calls leave existing handlers alone.
    """
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger

    effective_level = (level or config.log_level).upper()
    logger.setLevel(effective_level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in _build_handlers(logger_name, log_to_file):
        handler.setLevel(effective_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.debug(f"Logging configured at {effective_level}")
    return logger
