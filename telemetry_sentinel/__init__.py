"""
Telemetry Sentinel: hybrid statistical anomaly detection for telemetry.
"""

__version__ = "0.1.0"
