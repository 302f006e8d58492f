"""
Canonical in-memory telemetry schema for the detection pipeline.

This module defines the samples a TelemetrySource hands to the detectors once
a query has been materialized, plus the window summary a source can return
instead of raw samples.

Design rationale:
- Minimal fields (only what's needed for anomaly detection)
- All timestamps timezone-aware UTC
- Numeric fields stay Optional so malformed values can be filtered by
  normalizers instead of failing at construction time
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TimeRange(BaseModel):
    """
    Closed time range [start, end].

    Both bounds are inclusive, matching how range queries are issued to the
    telemetry backend (gte/lte).
    """

    model_config = ConfigDict(frozen=True)

    start: datetime = Field(..., description="Inclusive start (UTC)")
    end: datetime = Field(..., description="Inclusive end (UTC)")

    @field_validator("start", "end")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        # naive bounds are read as UTC, like sample timestamps
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _check_order(self) -> "TimeRange":
        if self.start >= self.end:
            raise ValueError("Time range start must be before end")
        return self

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.start).total_seconds()

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


class ExemplarDirection(str, Enum):
    """Which tail of the distribution exemplar records come from."""

    HIGH = "high"
    LOW = "low"


class CounterSample(BaseModel):
    """
    One bucket of a counter metric.

    Attributes:
        timestamp: UTC bucket time
        value: Bucket value (None when the bucket had no data)
    """

    timestamp: datetime = Field(..., description="UTC bucket timestamp")
    value: Optional[float] = Field(default=None, description="Counter value")


class DurationSample(BaseModel):
    """
    A single timed operation (typically a span).

    Attributes:
        subject_id: Identifier of the measured unit (span id when available)
        duration: Duration in the source's unit (ms or ns; never mixed)
        timestamp: UTC start of the operation
        service: Emitting service name
        operation: Operation (span) name
        trace_id: Owning trace, if known
        span_id: Span identifier, if known
    """

    subject_id: str = Field(..., description="Identifier of the measured unit")
    duration: Optional[float] = Field(default=None, description="Observed duration")
    timestamp: datetime = Field(..., description="UTC timestamp")
    service: str = Field(default="unknown", description="Service name")
    operation: str = Field(default="unknown", description="Operation name")
    trace_id: Optional[str] = Field(default=None, description="Trace identifier")
    span_id: Optional[str] = Field(default=None, description="Span identifier")


class TelemetryRecord(BaseModel):
    """
    A generic telemetry document (log line, metric point, span) with numeric
    and string attributes addressable by field name.
    """

    timestamp: datetime = Field(..., description="UTC timestamp")
    service: Optional[str] = Field(default=None, description="Service name")
    attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Flattened fields, e.g. {'http.duration_ms': 12.5}"
    )

    def numeric(self, field: str) -> Optional[float]:
        """Return the field as float, or None if missing or non-numeric."""
        value = self.attributes.get(field)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)


class WindowStatistics(BaseModel):
    """
    Summary of a numeric distribution over one window.

    Attributes:
        count: Number of samples
        mean: Arithmetic mean
        std_dev: Population standard deviation
        min/max: Extremes
        percentiles: Percentile rank -> value, e.g. {95.0: 812.0}
    """

    model_config = ConfigDict(frozen=True)

    count: int = Field(..., ge=0)
    mean: float
    std_dev: float = Field(..., ge=0.0)
    min: float
    max: float
    percentiles: Dict[float, float] = Field(default_factory=dict)

    def percentile(self, rank: float) -> Optional[float]:
        """Return the stored value for a percentile rank, if present."""
        return self.percentiles.get(float(rank))
