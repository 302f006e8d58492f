"""
Custom exceptions for Telemetry Sentinel.

Insufficient or degenerate data is normally a silent skip inside the
detectors. These exceptions cover the cases that are genuine caller errors.
"""


class AnomalyDetectionError(Exception):
    """Base exception for anomaly detection failures."""
    pass


class InsufficientDataError(AnomalyDetectionError, ValueError):
    """Raised when a statistics primitive is called with too few values."""
    pass


class DataValidationError(AnomalyDetectionError):
    """Raised when input samples fail validation."""
    pass


class ConfigurationError(AnomalyDetectionError):
    """Raised when configuration or detection options are invalid."""
    pass
