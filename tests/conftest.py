"""
Pytest configuration and shared fixtures.

Provides sample counter series, duration samples and telemetry records for
unit and integration tests.
"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import List

import pandas as pd

from telemetry_sentinel.data.schema import (
    CounterSample,
    DurationSample,
    TelemetryRecord,
    TimeRange,
)
from telemetry_sentinel.data.sources import InMemoryTelemetrySource

T0 = datetime(2025, 2, 7, 10, 0, tzinfo=timezone.utc)


def make_series(values, start: datetime = T0, step_seconds: int = 60) -> List[CounterSample]:
    """Build a counter series with one sample per step."""
    return [
        CounterSample(timestamp=start + timedelta(seconds=i * step_seconds), value=v)
        for i, v in enumerate(values)
    ]


def make_durations(
    durations,
    service: str = "shop",
    operation: str = "checkout",
    start: datetime = T0,
) -> List[DurationSample]:
    """Build one duration sample per value, one second apart."""
    return [
        DurationSample(
            subject_id=f"{operation}-{i}",
            duration=d,
            timestamp=start + timedelta(seconds=i),
            service=service,
            operation=operation,
            trace_id=f"trace-{operation}-{i}",
            span_id=f"span-{operation}-{i}",
        )
        for i, d in enumerate(durations)
    ]


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def series_factory():
    return make_series


@pytest.fixture
def durations_factory():
    return make_durations


@pytest.fixture
def analysis_range() -> TimeRange:
    """One hour analysis window starting at T0."""
    return TimeRange(start=T0, end=T0 + timedelta(hours=1))


@pytest.fixture
def resetting_series() -> List[CounterSample]:
    """
    Counter that restarts once: 121 -> 50 at index 3.

    Rates (per minute) across the valid steps: 10, 11, 10, 15.
    """
    return make_series([100, 110, 121, 50, 60, 75])


@pytest.fixture
def checkout_durations() -> List[DurationSample]:
    """
    40 checkout spans: 39 between 10 and 13 ms plus one 1000 ms outlier.

    Sorted layout: ten 10s, ten 11s, ten 12s, nine 13s, then 1000.
    """
    values = [10 + (i % 4) for i in range(39)] + [1000]
    return make_durations(values, start=T0 + timedelta(minutes=20))


@pytest.fixture
def login_durations() -> List[DurationSample]:
    """A perfectly flat group: no criterion can fire."""
    return make_durations([20] * 10, operation="login", start=T0 + timedelta(minutes=30))


@pytest.fixture
def telemetry_records() -> List[TelemetryRecord]:
    """
    Records for counter and baseline analysis.

    - requests_total: the resetting series, one record per minute from T0
    - latency_ms: 50 baseline records (90/110 alternating) in the day before
      T0 and 10 analysis records of 140 after T0
    """
    records = [
        TelemetryRecord(
            timestamp=T0 + timedelta(minutes=i),
            service="api",
            attributes={"requests_total": v},
        )
        for i, v in enumerate([100, 110, 121, 50, 60, 75])
    ]
    records.extend(
        TelemetryRecord(
            timestamp=T0 - timedelta(hours=12) + timedelta(minutes=i),
            service="api",
            attributes={"latency_ms": 90.0 if i % 2 == 0 else 110.0},
        )
        for i in range(50)
    )
    records.extend(
        TelemetryRecord(
            timestamp=T0 + timedelta(minutes=10 + i),
            service="api",
            attributes={"latency_ms": 140.0, "request_id": f"req-{i:06d}"},
        )
        for i in range(10)
    )
    return records


@pytest.fixture
def memory_source(telemetry_records, checkout_durations, login_durations) -> InMemoryTelemetrySource:
    return InMemoryTelemetrySource(
        records=telemetry_records,
        durations=checkout_durations + login_durations,
    )


@pytest.fixture
def sample_span_dataframe() -> pd.DataFrame:
    """
    Fixture providing span data as a pandas DataFrame.

    Returns:
        pd.DataFrame: one row per span with a parsed datetime index
    """
    rows = []
    for i in range(40):
        rows.append({
            "timestamp": (T0 + timedelta(seconds=i)).isoformat(),
            "service": "shop",
            "operation": "checkout",
            "duration_ms": 1000.0 if i == 39 else float(10 + i % 4),
            "trace_id": f"trace-{i}",
            "span_id": f"span-{i}",
        })
    df = pd.DataFrame(rows)
    df["timestamp"] = pd.to_datetime(df["timestamp"])
    df.set_index("timestamp", inplace=True)
    return df


def pytest_configure(config):
    """
    Pytest hook for custom configuration.

    Registers custom markers used throughout tests.
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (deferred CI)"
    )
