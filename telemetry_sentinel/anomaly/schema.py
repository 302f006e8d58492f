"""
Schema definitions for anomaly detection.

All anomaly outputs are deterministic and explainable. Each anomaly references
its observed value, the reference it was compared against and the threshold it
crossed. Which optional fields are populated is fixed by the detection method.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from telemetry_sentinel.core.config import config
from telemetry_sentinel.data.schema import TimeRange, WindowStatistics


class DetectionMethod(str, Enum):
    """Tag identifying which criterion produced an anomaly."""

    RESET = "reset"
    RATE_Z_SCORE = "rate-z-score"
    RESET_INTERVAL = "reset-interval"
    PLATEAU = "plateau"
    RATE_PERCENTILE = "rate-percentile"
    STATISTICAL_Z_SCORE = "statistical-z-score"
    STATISTICAL_PERCENTILE = "statistical-percentile"
    ABSOLUTE_THRESHOLD = "absolute-threshold"
    DURATION_Z_SCORE = "duration-z-score"
    DURATION_PERCENTILE = "duration-percentile"
    DURATION_IQR = "duration-iqr"
    GAUGE_Z_SCORE = "gauge-z-score"
    GAUGE_PERCENTILE = "gauge-percentile"
    GAUGE_IQR = "gauge-iqr"
    GAUGE_CHANGE = "gauge-change"


class MethodFamily(str, Enum):
    """Detector families a caller can select."""

    COUNTER = "counter"
    STATISTICAL = "statistical"
    DURATION = "duration"
    GAUGE = "gauge"


Z_SCORE_METHODS = frozenset({
    DetectionMethod.RATE_Z_SCORE,
    DetectionMethod.RESET_INTERVAL,
    DetectionMethod.STATISTICAL_Z_SCORE,
    DetectionMethod.DURATION_Z_SCORE,
    DetectionMethod.GAUGE_Z_SCORE,
})

# Methods that only compare a position against a cutoff: no expected value.
POSITIONAL_METHODS = frozenset({
    DetectionMethod.ABSOLUTE_THRESHOLD,
    DetectionMethod.DURATION_PERCENTILE,
    DetectionMethod.RATE_PERCENTILE,
    DetectionMethod.GAUGE_PERCENTILE,
})

RESET_DEVIATION = -1.0


class Anomaly(BaseModel):
    """
    A single anomalous observation flagged by one criterion.

    Fields:
    - timestamp: when the observation occurred
    - subject: field name, metric name or "service/operation"
    - value: observed value (rate/sec, metric value or duration)
    - expected_value: baseline/mean used for comparison
    - deviation: value - expected_value, or -1 for a counter reset
    - z_score: only for z-score based methods
    - threshold: the cutoff the value crossed
    - detection_method: criterion tag
    - score: non-negative ranking severity, higher is worse
    - service/operation/trace_id/span_id: optional context
    - message: human-readable explanation
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    subject: str
    value: float
    expected_value: Optional[float] = None
    deviation: Optional[float] = None
    z_score: Optional[float] = None
    threshold: Optional[float] = None
    detection_method: DetectionMethod
    score: float = Field(ge=0.0)
    service: Optional[str] = None
    operation: Optional[str] = None
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    message: str = ""

    @model_validator(mode="after")
    def _check_method_fields(self) -> "Anomaly":
        method = self.detection_method
        if method in Z_SCORE_METHODS:
            if self.z_score is None or self.expected_value is None:
                raise ValueError(f"{method.value} anomalies require z_score and expected_value")
        elif self.z_score is not None:
            raise ValueError(f"{method.value} anomalies must not carry a z_score")

        if method in POSITIONAL_METHODS and self.expected_value is not None:
            raise ValueError(f"{method.value} anomalies must not carry an expected_value")

        if method == DetectionMethod.RESET and self.deviation != RESET_DEVIATION:
            raise ValueError("reset anomalies must carry deviation=-1")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly dict without unset optional fields."""
        return self.model_dump(mode="json", exclude_none=True)


class CounterReset(BaseModel):
    """A detected drop in a counter series."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=1)
    timestamp: datetime
    from_value: float
    to_value: float


class CounterAnalysis(BaseModel):
    """
    Result of analyzing one counter series.

    Fields:
    - metric: analyzed metric name
    - anomalies: anomalies in detection order (rates, intervals, resets)
    - resets: detected resets
    - rate_statistics: rate distribution summary (None if not computable)
    - value_count/value_min/value_max: raw series summary
    """

    metric: str
    anomalies: List[Anomaly] = Field(default_factory=list)
    resets: List[CounterReset] = Field(default_factory=list)
    rate_statistics: Optional[WindowStatistics] = None
    value_count: int = 0
    value_min: Optional[float] = None
    value_max: Optional[float] = None


class GaugeAnalysis(BaseModel):
    """Result of analyzing one gauge series."""

    metric: str
    anomalies: List[Anomaly] = Field(default_factory=list)
    value_statistics: Optional[WindowStatistics] = None
    value_count: int = 0


def _detection_default(name: str) -> Any:
    return getattr(config.detection, name)


class DetectionOptions(BaseModel):
    """
    Options shared by the combined entry point and the individual detectors.

    Defaults come from config.detection.
    """

    methods: FrozenSet[MethodFamily] = Field(
        default_factory=lambda: frozenset(MethodFamily)
    )
    z_score_threshold: float = Field(
        default_factory=lambda: _detection_default("z_score_threshold"), gt=0.0
    )
    percentile_threshold: float = Field(
        default_factory=lambda: _detection_default("percentile_threshold"), gt=0.0, le=100.0
    )
    iqr_multiplier: float = Field(
        default_factory=lambda: _detection_default("iqr_multiplier"), gt=0.0
    )
    absolute_threshold: Optional[float] = Field(
        default_factory=lambda: _detection_default("absolute_threshold")
    )
    max_results: Optional[int] = Field(
        default_factory=lambda: _detection_default("max_results"), ge=1
    )
    group_by_operation: bool = Field(
        default_factory=lambda: _detection_default("group_by_operation")
    )


class DetectionRequest(BaseModel):
    """
    Everything the engine needs to fetch samples and run detectors.

    Fields:
    - time_range: analysis window
    - options: thresholds and method selection
    - counter_metrics / monotonic_metrics: counter series to analyze
    - gauge_metrics: metrics that move freely up and down
    - counter_group_by: optional grouping key passed to the source
      (applies to counter and gauge series)
    - fields: numeric fields for baseline comparison (caller-enumerated)
    - baseline_range: explicit baseline window; derived from lookback if None
    - lookback: baseline length such as "7d" (config default if None)
    - duration_filters: passed to the source when fetching durations
    - services: services in scope; more than one enables by_service output
    """

    time_range: TimeRange
    options: DetectionOptions = Field(default_factory=DetectionOptions)
    counter_metrics: List[str] = Field(default_factory=list)
    monotonic_metrics: List[str] = Field(default_factory=list)
    gauge_metrics: List[str] = Field(default_factory=list)
    counter_group_by: Optional[str] = None
    fields: List[str] = Field(default_factory=list)
    baseline_range: Optional[TimeRange] = None
    lookback: Optional[str] = None
    duration_filters: Dict[str, Any] = Field(default_factory=dict)
    services: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_metric_modes(self) -> "DetectionRequest":
        # statistics are keyed by metric name, so each metric gets one mode
        modes = {
            "counter_metrics": set(self.counter_metrics),
            "monotonic_metrics": set(self.monotonic_metrics),
            "gauge_metrics": set(self.gauge_metrics),
        }
        names = list(modes)
        for i, first in enumerate(names):
            for second in names[i + 1:]:
                overlap = modes[first] & modes[second]
                if overlap:
                    raise ValueError(
                        f"Metrics listed in both {first} and {second}: {sorted(overlap)}"
                    )
        return self


class DetectionResult(BaseModel):
    """
    Merged output of one detection call.

    Fields:
    - anomalies: ranked (score desc, timestamp asc), truncated to max_results
    - by_method: anomalies per detection method (ranked, untruncated)
    - by_operation: per operation, when grouping by operation
    - by_service: per service, when more than one service is in scope
    - total_anomalies: count before truncation
    - statistics: per-subject distribution summaries used by the detectors
    """

    anomalies: List[Anomaly] = Field(default_factory=list)
    by_method: Dict[DetectionMethod, List[Anomaly]] = Field(default_factory=dict)
    by_operation: Optional[Dict[str, List[Anomaly]]] = None
    by_service: Optional[Dict[str, List[Anomaly]]] = None
    total_anomalies: int = 0
    statistics: Dict[str, WindowStatistics] = Field(default_factory=dict)
