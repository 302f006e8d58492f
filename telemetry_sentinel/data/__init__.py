"""
Data module: telemetry samples, normalization, bucketing and sources.

Pipeline:

    Backend query (TelemetrySource)
        ↓
    Samples (telemetry_sentinel/data/schema.py)
        ↓
    Normalization (telemetry_sentinel/data/normalizers.py)
        ↓
    Bucketing / grouping (telemetry_sentinel/data/aggregation.py)
        ↓
    Ready for anomaly detection
"""

from telemetry_sentinel.data.schema import (
    CounterSample,
    DurationSample,
    ExemplarDirection,
    TelemetryRecord,
    TimeRange,
    WindowStatistics,
)
from telemetry_sentinel.data.normalizers import (
    NormalizationError,
    normalize_counter_samples,
    normalize_duration_samples,
    normalize_timestamp,
    normalize_values,
)
from telemetry_sentinel.data.aggregation import (
    AggregationError,
    align_timestamp_to_window,
    bucket_counter_records,
    group_by_operation,
)
from telemetry_sentinel.data.sources import InMemoryTelemetrySource, TelemetrySource

__all__ = [
    # Schema
    "TimeRange",
    "CounterSample",
    "DurationSample",
    "TelemetryRecord",
    "WindowStatistics",
    "ExemplarDirection",

    # Normalization
    "normalize_timestamp",
    "normalize_values",
    "normalize_counter_samples",
    "normalize_duration_samples",
    "NormalizationError",

    # Aggregation
    "align_timestamp_to_window",
    "bucket_counter_records",
    "group_by_operation",
    "AggregationError",

    # Sources
    "TelemetrySource",
    "InMemoryTelemetrySource",
]
