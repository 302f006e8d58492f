"""
Telemetry sources: the boundary between detection and the query backend.

Detectors never query a backend themselves. They receive samples or window
statistics from a TelemetrySource. Backend adapters (search clusters, TSDBs)
implement this interface outside this package; InMemoryTelemetrySource serves
data that is already loaded, e.g. from a pandas DataFrame.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from telemetry_sentinel.anomaly.stats import DEFAULT_PERCENTILES, window_statistics
from telemetry_sentinel.core.exceptions import DataValidationError
from telemetry_sentinel.data.aggregation import bucket_counter_records
from telemetry_sentinel.data.normalizers import (
    normalize_name,
    normalize_timestamp,
    normalize_values,
)
from telemetry_sentinel.data.schema import (
    CounterSample,
    DurationSample,
    ExemplarDirection,
    TelemetryRecord,
    TimeRange,
    WindowStatistics,
)

logger = logging.getLogger(__name__)

SUPPORTED_DURATION_FILTERS = {"service", "services", "operation"}


class TelemetrySource(ABC):
    """
    Read-only access to materialized telemetry.

    Implementations may block on I/O; errors are raised to the caller as-is.
    Retry and backoff belong to the implementation, not to the detectors.
    """

    @abstractmethod
    def fetch_counter_series(
        self,
        metric: str,
        time_range: TimeRange,
        group_by: Optional[str] = None,
    ) -> List[CounterSample]:
        """
        Return one value per time bucket, ordered by time.

        Args:
            metric: Counter metric field name
            time_range: Window to read
            group_by: Optional service the series is scoped to
        """
        ...

    @abstractmethod
    def fetch_field_window_statistics(
        self,
        field: str,
        time_range: TimeRange,
        percentiles: Sequence[float] = (),
    ) -> Optional[WindowStatistics]:
        """
        Summarize a numeric field over a window, or None if it has no values.

        Args:
            field: Numeric field name
            time_range: Window to summarize
            percentiles: Ranks the caller needs in WindowStatistics.percentiles,
                on top of whatever the source computes by default
        """
        ...

    @abstractmethod
    def fetch_exemplars(
        self,
        field: str,
        time_range: TimeRange,
        direction: ExemplarDirection,
        limit: int,
    ) -> List[TelemetryRecord]:
        """Return up to limit records with the most extreme values of field."""
        ...

    @abstractmethod
    def fetch_duration_samples(
        self,
        time_range: TimeRange,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[DurationSample]:
        """Return duration samples in the window matching filters."""
        ...


class InMemoryTelemetrySource(TelemetrySource):
    """
    TelemetrySource over records and duration samples held in memory.

    Counter series are built by averaging the metric per bucket, like a
    date histogram with an avg sub-aggregation.
    """

    def __init__(
        self,
        records: Iterable[TelemetryRecord] = (),
        durations: Iterable[DurationSample] = (),
        bucket_seconds: int = 60,
        percentiles: Sequence[float] = DEFAULT_PERCENTILES,
    ):
        self.records = sorted(records, key=lambda r: r.timestamp)
        self.durations = list(durations)
        self.bucket_seconds = bucket_seconds
        self.percentiles = tuple(float(p) for p in percentiles)

    @classmethod
    def from_dataframe(
        cls,
        frame: pd.DataFrame,
        timestamp_column: str = "timestamp",
        service_column: Optional[str] = "service",
        duration_column: Optional[str] = None,
        operation_column: str = "operation",
        trace_id_column: str = "trace_id",
        span_id_column: str = "span_id",
        **kwargs: Any,
    ) -> "InMemoryTelemetrySource":
        """
        Build a source from a flat DataFrame (one row per document).

        Every column except timestamp and service becomes a record attribute.
        When duration_column is given, each row also yields a DurationSample.
        A DatetimeIndex is used as the timestamp when the column is absent.
        """
        if timestamp_column not in frame.columns:
            if not isinstance(frame.index, pd.DatetimeIndex):
                raise DataValidationError(f"DataFrame has no {timestamp_column!r} column")
            frame = frame.reset_index().rename(columns={frame.index.name or "index": timestamp_column})

        records: List[TelemetryRecord] = []
        durations: List[DurationSample] = []

        for position, row in enumerate(frame.to_dict(orient="records")):
            clean = {k: (None if _is_missing(v) else v) for k, v in row.items()}
            timestamp = normalize_timestamp(_to_python(clean.pop(timestamp_column)))
            service = clean.pop(service_column, None) if service_column else None
            service = normalize_name(service) if service is not None else None

            records.append(
                TelemetryRecord(
                    timestamp=timestamp,
                    service=service,
                    attributes={k: _to_python(v) for k, v in clean.items()},
                )
            )

            if duration_column is not None:
                span_id = clean.get(span_id_column)
                durations.append(
                    DurationSample(
                        subject_id=str(span_id) if span_id is not None else f"row-{position}",
                        duration=_to_python(clean.get(duration_column)),
                        timestamp=timestamp,
                        service=service or "unknown",
                        operation=normalize_name(clean.get(operation_column)),
                        trace_id=_optional_str(clean.get(trace_id_column)),
                        span_id=_optional_str(span_id),
                    )
                )

        logger.debug(f"Loaded {len(records)} records from DataFrame")
        return cls(records=records, durations=durations, **kwargs)

    def fetch_counter_series(
        self,
        metric: str,
        time_range: TimeRange,
        group_by: Optional[str] = None,
    ) -> List[CounterSample]:
        records = self._records_in(time_range)
        if group_by is not None:
            records = [r for r in records if r.service == group_by]
        return bucket_counter_records(records, metric, self.bucket_seconds)

    def fetch_field_window_statistics(
        self,
        field: str,
        time_range: TimeRange,
        percentiles: Sequence[float] = (),
    ) -> Optional[WindowStatistics]:
        values, _ = normalize_values(
            r.attributes.get(field) for r in self._records_in(time_range)
        )
        if not values:
            return None
        ranks = tuple(dict.fromkeys(self.percentiles + tuple(float(p) for p in percentiles)))
        return window_statistics(values, ranks)

    def fetch_exemplars(
        self,
        field: str,
        time_range: TimeRange,
        direction: ExemplarDirection,
        limit: int,
    ) -> List[TelemetryRecord]:
        candidates = [
            r for r in self._records_in(time_range) if r.numeric(field) is not None
        ]
        candidates.sort(
            key=lambda r: r.numeric(field),
            reverse=direction == ExemplarDirection.HIGH,
        )
        return candidates[:limit]

    def fetch_duration_samples(
        self,
        time_range: TimeRange,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[DurationSample]:
        filters = filters or {}
        unknown = set(filters) - SUPPORTED_DURATION_FILTERS
        if unknown:
            raise DataValidationError(f"Unsupported duration filters: {sorted(unknown)}")

        services = set(filters.get("services") or [])
        if filters.get("service"):
            services.add(filters["service"])
        operation = filters.get("operation")

        return [
            s for s in self.durations
            if time_range.contains(s.timestamp)
            and (not services or s.service in services)
            and (operation is None or s.operation == operation)
        ]

    def _records_in(self, time_range: TimeRange) -> List[TelemetryRecord]:
        return [r for r in self.records if time_range.contains(r.timestamp)]


def _is_missing(value: Any) -> bool:
    if isinstance(value, (list, dict, tuple)):
        return False
    return bool(pd.isna(value))


def _to_python(value: Any) -> Any:
    """Unwrap pandas/numpy scalars (Timestamp, int64, float64)."""
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if hasattr(value, "item"):
        return value.item()
    return value


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
