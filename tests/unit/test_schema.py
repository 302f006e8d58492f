"""
Unit tests for telemetry and anomaly schemas.

Tests the Pydantic models and the per-method field rules.
"""

import pytest
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from telemetry_sentinel.anomaly.schema import (
    Anomaly,
    DetectionMethod,
    DetectionOptions,
    DetectionRequest,
    MethodFamily,
)
from telemetry_sentinel.data.schema import TelemetryRecord, TimeRange, WindowStatistics

T0 = datetime(2025, 2, 7, 10, 0, tzinfo=timezone.utc)


class TestTimeRange:
    """Test TimeRange model."""

    def test_valid_range(self):
        window = TimeRange(start=T0, end=T0 + timedelta(hours=1))
        assert window.duration_seconds == 3600

    def test_bounds_are_inclusive(self):
        window = TimeRange(start=T0, end=T0 + timedelta(hours=1))
        assert window.contains(T0)
        assert window.contains(T0 + timedelta(hours=1))
        assert not window.contains(T0 - timedelta(seconds=1))

    def test_start_must_precede_end(self):
        with pytest.raises(ValidationError):
            TimeRange(start=T0, end=T0)

    def test_naive_bounds_read_as_utc(self):
        window = TimeRange(start=datetime(2025, 2, 7, 10), end=datetime(2025, 2, 7, 11))

        assert window.start == T0
        assert window.start.tzinfo == timezone.utc
        assert window.contains(T0 + timedelta(minutes=30))

    def test_offset_bounds_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        window = TimeRange(
            start=datetime(2025, 2, 7, 12, tzinfo=plus_two),
            end=datetime(2025, 2, 7, 13, tzinfo=plus_two),
        )
        assert window.start == T0
        assert window.start.utcoffset() == timedelta(0)

    def test_hashable(self):
        a = TimeRange(start=T0, end=T0 + timedelta(hours=1))
        b = TimeRange(start=T0, end=T0 + timedelta(hours=1))
        assert {a: 1}[b] == 1


class TestTelemetryRecord:
    """Test numeric attribute access."""

    def test_numeric(self):
        record = TelemetryRecord(
            timestamp=T0,
            attributes={"latency_ms": 12, "flag": True, "name": "x"},
        )
        assert record.numeric("latency_ms") == 12.0
        assert record.numeric("flag") is None
        assert record.numeric("name") is None
        assert record.numeric("missing") is None


def test_window_statistics_percentile_lookup():
    summary = WindowStatistics(count=3, mean=2, std_dev=1, min=1, max=3, percentiles={95: 3})
    assert summary.percentile(95) == 3
    assert summary.percentile(95.0) == 3
    assert summary.percentile(50) is None


class TestAnomalyFieldRules:
    """Test which fields each detection method may carry."""

    def test_zscore_method_requires_zscore(self):
        with pytest.raises(ValidationError):
            Anomaly(
                timestamp=T0, subject="x", value=1.0, expected_value=0.5,
                detection_method=DetectionMethod.DURATION_Z_SCORE, score=1.0,
            )

    def test_zscore_method_requires_expected_value(self):
        with pytest.raises(ValidationError):
            Anomaly(
                timestamp=T0, subject="x", value=1.0, z_score=4.0,
                detection_method=DetectionMethod.RATE_Z_SCORE, score=4.0,
            )

    def test_threshold_method_rejects_zscore(self):
        with pytest.raises(ValidationError):
            Anomaly(
                timestamp=T0, subject="x", value=1.0, threshold=0.5, z_score=4.0,
                detection_method=DetectionMethod.DURATION_IQR, score=1.0,
            )

    def test_positional_method_rejects_expected_value(self):
        with pytest.raises(ValidationError):
            Anomaly(
                timestamp=T0, subject="x", value=1.0, threshold=0.5, expected_value=0.7,
                detection_method=DetectionMethod.DURATION_PERCENTILE, score=1.0,
            )

    def test_gauge_method_rules(self):
        with pytest.raises(ValidationError):
            Anomaly(
                timestamp=T0, subject="g", value=50.0, threshold=11.0, expected_value=12.0,
                detection_method=DetectionMethod.GAUGE_PERCENTILE, score=1.0,
            )
        with pytest.raises(ValidationError):
            Anomaly(
                timestamp=T0, subject="g", value=50.0, expected_value=12.0,
                detection_method=DetectionMethod.GAUGE_Z_SCORE, score=4.0,
            )
        change = Anomaly(
            timestamp=T0, subject="g", value=50.0, expected_value=10.0, deviation=40.0,
            threshold=0.5, detection_method=DetectionMethod.GAUGE_CHANGE, score=7.0,
        )
        assert change.z_score is None

    def test_reset_requires_marker_deviation(self):
        with pytest.raises(ValidationError):
            Anomaly(
                timestamp=T0, subject="c", value=5.0, expected_value=100.0, deviation=-95.0,
                detection_method=DetectionMethod.RESET, score=1.0,
            )

    def test_score_is_non_negative(self):
        with pytest.raises(ValidationError):
            Anomaly(
                timestamp=T0, subject="x", value=1.0, threshold=0.5,
                detection_method=DetectionMethod.ABSOLUTE_THRESHOLD, score=-1.0,
            )

    def test_frozen(self):
        anomaly = Anomaly(
            timestamp=T0, subject="x", value=1.0, threshold=0.5,
            detection_method=DetectionMethod.ABSOLUTE_THRESHOLD, score=1.0,
        )
        with pytest.raises(ValidationError):
            anomaly.score = 2.0

    def test_to_dict_drops_unset_fields(self):
        anomaly = Anomaly(
            timestamp=T0, subject="x", value=1.0, threshold=0.5,
            detection_method=DetectionMethod.ABSOLUTE_THRESHOLD, score=1.0,
        )
        data = anomaly.to_dict()

        assert data["detection_method"] == "absolute-threshold"
        assert data["timestamp"].startswith("2025-02-07T10:00:00")
        assert "z_score" not in data
        assert "trace_id" not in data


class TestDetectionOptions:
    """Test option defaults and validation."""

    def test_defaults(self):
        options = DetectionOptions()

        assert options.methods == frozenset(MethodFamily)
        assert options.z_score_threshold == 3.0
        assert options.percentile_threshold == 95.0
        assert options.iqr_multiplier == 1.5
        assert options.absolute_threshold is None
        assert options.max_results is None
        assert options.group_by_operation is True

    def test_method_names_are_parsed(self):
        options = DetectionOptions(methods=["counter", "duration"])
        assert options.methods == {MethodFamily.COUNTER, MethodFamily.DURATION}

    def test_unknown_method_rejected(self):
        with pytest.raises(ValidationError):
            DetectionOptions(methods=["magic"])

    @pytest.mark.parametrize(
        "overrides",
        [
            {"z_score_threshold": 0},
            {"percentile_threshold": 101},
            {"iqr_multiplier": -1},
            {"max_results": 0},
        ],
    )
    def test_invalid_thresholds(self, overrides):
        with pytest.raises(ValidationError):
            DetectionOptions(**overrides)


@pytest.mark.parametrize(
    "modes",
    [
        {"counter_metrics": ["requests_total"], "monotonic_metrics": ["requests_total"]},
        {"counter_metrics": ["requests_total"], "gauge_metrics": ["requests_total"]},
        {"monotonic_metrics": ["bytes_sent", "x"], "gauge_metrics": ["x"]},
    ],
)
def test_metric_listed_in_two_modes_is_rejected(modes):
    with pytest.raises(ValidationError, match="listed in both"):
        DetectionRequest(time_range=TimeRange(start=T0, end=T0 + timedelta(hours=1)), **modes)


def test_detection_request_defaults():
    request = DetectionRequest(time_range=TimeRange(start=T0, end=T0 + timedelta(hours=1)))

    assert request.counter_metrics == []
    assert request.gauge_metrics == []
    assert request.fields == []
    assert request.baseline_range is None
    assert request.services == []
    assert request.options.methods == frozenset(MethodFamily)
