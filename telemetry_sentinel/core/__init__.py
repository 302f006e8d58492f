"""
Core module: Configuration, logging, and exception handling.
"""

from .config import Config, config
from .exceptions import (
    AnomalyDetectionError,
    ConfigurationError,
    DataValidationError,
    InsufficientDataError,
)

__all__ = [
    "Config",
    "config",
    "AnomalyDetectionError",
    "InsufficientDataError",
    "DataValidationError",
    "ConfigurationError",
]
