"""
Unit tests for counter series analysis.
"""

from datetime import timedelta
from math import isclose, sqrt

from telemetry_sentinel.anomaly.counters import CounterSeriesAnalyzer
from telemetry_sentinel.anomaly.schema import DetectionMethod
from telemetry_sentinel.data.schema import CounterSample


class TestResets:
    """Test reset detection and reset anomalies."""

    def test_single_reset(self, resetting_series, t0):
        analysis = CounterSeriesAnalyzer().analyze("requests_total", resetting_series)

        assert len(analysis.resets) == 1
        reset = analysis.resets[0]
        assert reset.index == 3
        assert reset.from_value == 121
        assert reset.to_value == 50
        assert reset.timestamp == t0 + timedelta(minutes=3)

    def test_reset_anomaly_fields(self, resetting_series, t0):
        analysis = CounterSeriesAnalyzer().analyze("requests_total", resetting_series)

        assert len(analysis.anomalies) == 1
        anomaly = analysis.anomalies[0]
        assert anomaly.detection_method == DetectionMethod.RESET
        assert anomaly.value == 50
        assert anomaly.expected_value == 121
        assert anomaly.deviation == -1
        assert isclose(anomaly.threshold, 60.5)
        assert anomaly.score == 1.0
        assert anomaly.z_score is None
        assert anomaly.timestamp == t0 + timedelta(minutes=3)

    def test_rates_skip_the_reset(self, resetting_series):
        analysis = CounterSeriesAnalyzer().analyze("requests_total", resetting_series)

        # Rates for indices 1, 2, 4, 5 (per minute: 10, 11, 10, 15)
        assert analysis.rate_statistics.count == 4
        assert isclose(analysis.rate_statistics.mean, 46 / 240)
        assert isclose(analysis.rate_statistics.max, 15 / 60)

    def test_rate_series_timestamps(self, resetting_series, t0):
        analyzer = CounterSeriesAnalyzer()
        rates = analyzer.rate_series(resetting_series, {3})

        assert [ts for ts, _ in rates] == [
            t0 + timedelta(minutes=m) for m in (1, 2, 4, 5)
        ]

    def test_no_reset_for_small_drops(self, series_factory):
        series = series_factory([100, 110, 120, 70, 80, 90])
        analysis = CounterSeriesAnalyzer().analyze("c", series)
        assert analysis.resets == []

    def test_drop_to_exactly_half_is_not_a_reset(self, series_factory):
        series = series_factory([100, 110, 120, 60, 70, 80])
        assert CounterSeriesAnalyzer().detect_resets(series) == []

    def test_drop_just_below_half_is_a_reset(self, series_factory):
        series = series_factory([100, 110, 120, 59.99, 70, 80])
        resets = CounterSeriesAnalyzer().detect_resets(series)

        assert [r.index for r in resets] == [3]
        assert resets[0].to_value == 59.99

    def test_value_summary(self, resetting_series):
        analysis = CounterSeriesAnalyzer().analyze("requests_total", resetting_series)
        assert analysis.value_count == 6
        assert analysis.value_min == 50
        assert analysis.value_max == 121


class TestRateAnomalies:
    """Test rate z-score detection."""

    def test_rate_spike_is_flagged(self, series_factory, t0):
        # Steady +10/min with one +200/min step at index 15
        values = [100 + 10 * i + (190 if i >= 15 else 0) for i in range(21)]
        analysis = CounterSeriesAnalyzer().analyze("bytes_total", series_factory(values))

        rate_anomalies = [
            a for a in analysis.anomalies if a.detection_method == DetectionMethod.RATE_Z_SCORE
        ]
        assert len(rate_anomalies) == 1
        anomaly = rate_anomalies[0]
        assert anomaly.timestamp == t0 + timedelta(minutes=15)
        assert isclose(anomaly.value, 200 / 60)
        # One outlier among n points has z = sqrt(n - 1)
        assert isclose(anomaly.z_score, sqrt(19))
        assert isclose(anomaly.score, sqrt(19))
        assert anomaly.threshold == 3.0
        assert isclose(anomaly.expected_value, analysis.rate_statistics.mean)

    def test_flat_rates_skip_scoring(self, series_factory):
        analysis = CounterSeriesAnalyzer().analyze("c", series_factory([60 * i for i in range(1, 11)]))

        assert analysis.rate_statistics.std_dev == 0
        assert analysis.anomalies == []

    def test_service_context(self, resetting_series):
        analysis = CounterSeriesAnalyzer().analyze("c", resetting_series, service="api")
        assert all(a.service == "api" for a in analysis.anomalies)


class TestResetIntervals:
    """Test scoring of the spacing between resets."""

    @staticmethod
    def _sawtooth(series_factory, reset_minutes):
        values = []
        for minute in range(100):
            if minute in reset_minutes:
                values.append(5)
            elif not values:
                values.append(100)
            else:
                values.append(values[-1] + 60)
        return series_factory(values)

    def test_unusual_interval_is_flagged(self, series_factory, t0):
        series = self._sawtooth(series_factory, {10, 20, 30, 40, 90})
        analysis = CounterSeriesAnalyzer(z_score_threshold=1.5).analyze("c", series)

        assert len(analysis.resets) == 5
        intervals = [
            a for a in analysis.anomalies if a.detection_method == DetectionMethod.RESET_INTERVAL
        ]
        # Intervals 600, 600, 600, 3000 s: the last one has z = sqrt(3)
        assert len(intervals) == 1
        anomaly = intervals[0]
        assert anomaly.value == 3000
        assert anomaly.expected_value == 1200
        assert anomaly.timestamp == t0 + timedelta(minutes=90)
        assert isclose(anomaly.z_score, sqrt(3))

    def test_too_few_intervals(self, series_factory):
        # Three resets give only two intervals
        series = self._sawtooth(series_factory, {10, 20, 90})
        analysis = CounterSeriesAnalyzer(z_score_threshold=0.5).analyze("c", series)

        assert len(analysis.resets) == 3
        assert not any(
            a.detection_method == DetectionMethod.RESET_INTERVAL for a in analysis.anomalies
        )

    def test_regular_intervals_are_not_flagged(self, series_factory):
        series = self._sawtooth(series_factory, {10, 20, 30, 40, 50})
        analysis = CounterSeriesAnalyzer(z_score_threshold=0.5).analyze("c", series)

        assert len(analysis.resets) == 5
        assert all(a.detection_method == DetectionMethod.RESET for a in analysis.anomalies)


class TestMonotonic:
    """Test analysis of counters that never reset."""

    def test_plateau(self, series_factory, t0):
        series = series_factory([100, 110, 120, 120, 130, 140])
        analysis = CounterSeriesAnalyzer().analyze("c", series, monotonic=True)

        assert len(analysis.anomalies) == 1
        anomaly = analysis.anomalies[0]
        assert anomaly.detection_method == DetectionMethod.PLATEAU
        assert anomaly.timestamp == t0 + timedelta(minutes=3)
        assert anomaly.value == 120
        # Expected: value + mean rate (8/min) over the elapsed minute
        assert isclose(anomaly.expected_value, 128)
        assert anomaly.score == 1.0
        assert analysis.resets == []

    def test_rate_above_percentile(self, series_factory, t0):
        values = [100 + 10 * i + (190 if i >= 15 else 0) for i in range(21)]
        analysis = CounterSeriesAnalyzer(percentile_threshold=90).analyze(
            "c", series_factory(values), monotonic=True
        )

        flagged = [
            a for a in analysis.anomalies if a.detection_method == DetectionMethod.RATE_PERCENTILE
        ]
        assert len(flagged) == 1
        assert flagged[0].timestamp == t0 + timedelta(minutes=15)
        assert flagged[0].expected_value is None
        assert isclose(flagged[0].threshold, 10 / 60)

    def test_drop_is_not_a_reset(self, series_factory):
        analysis = CounterSeriesAnalyzer().analyze(
            "c", series_factory([100, 110, 40, 50, 60, 70]), monotonic=True
        )
        assert analysis.resets == []
        assert all(a.detection_method != DetectionMethod.RESET for a in analysis.anomalies)


class TestInsufficientData:
    """Test that short or invalid series are skipped, not raised."""

    def test_fewer_than_min_samples(self, series_factory):
        analysis = CounterSeriesAnalyzer().analyze("c", series_factory([1, 2, 3, 0]))

        assert analysis.anomalies == []
        assert analysis.resets == []
        assert analysis.rate_statistics is None
        assert analysis.value_count == 4

    def test_invalid_values_are_dropped(self, series_factory, t0):
        series = series_factory([100, 110, 121, 50, 60, 75])
        series.append(CounterSample(timestamp=t0 + timedelta(minutes=6), value=None))
        series.append(CounterSample(timestamp=t0 + timedelta(minutes=7), value=float("nan")))

        analysis = CounterSeriesAnalyzer().analyze("c", series)
        assert analysis.value_count == 6
        assert len(analysis.resets) == 1

    def test_unordered_input_is_sorted(self, resetting_series):
        analysis = CounterSeriesAnalyzer().analyze("c", list(reversed(resetting_series)))
        assert len(analysis.resets) == 1
        assert analysis.resets[0].index == 3

    def test_empty_series(self):
        analysis = CounterSeriesAnalyzer().analyze("c", [])
        assert analysis.value_count == 0
        assert analysis.value_min is None
