"""
Counter series analysis.

Counters only grow, except when the emitting process restarts. A sample that
falls below half of its predecessor is treated as a reset: it is reported, and
the rate across it is not computed. Rates are then checked with z-scores, and
the spacing between resets is checked when there are enough of them.

Monotonic counters (declared by the caller) never reset; for those the
analyzer looks for plateaus and for rates above a percentile instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from telemetry_sentinel.core.config import config
from telemetry_sentinel.data.normalizers import normalize_counter_samples
from telemetry_sentinel.data.schema import CounterSample

from .detectors import PercentileDetector, RateOfChangeDetector, ZScoreDetector
from .schema import RESET_DEVIATION, Anomaly, CounterAnalysis, CounterReset, DetectionMethod
from .scoring import INFORMATIONAL_SCORE, excess_score, plateau_score, zscore_score
from .stats import window_statistics

logger = logging.getLogger(__name__)

RatePoint = Tuple[datetime, float]


@dataclass
class CounterSeriesAnalyzer:
    """
    Reset-aware rate analysis for one counter series at a time.

    Notes:
    - Fewer than min_samples valid points yields an empty analysis.
    - A flat rate series (std == 0) skips rate scoring; resets are still reported.
    """

    z_score_threshold: float = field(default_factory=lambda: config.detection.z_score_threshold)
    percentile_threshold: float = field(
        default_factory=lambda: config.detection.percentile_threshold
    )
    min_samples: int = field(default_factory=lambda: config.counters.min_samples)
    reset_drop_ratio: float = field(default_factory=lambda: config.counters.reset_drop_ratio)
    min_reset_intervals: int = field(
        default_factory=lambda: config.counters.min_reset_intervals
    )
    monotonic_min_rates: int = field(
        default_factory=lambda: config.counters.monotonic_min_rates
    )

    def __post_init__(self) -> None:
        self._z_detector = ZScoreDetector(threshold=self.z_score_threshold)
        self._rate_detector = RateOfChangeDetector()
        self._percentile_detector = PercentileDetector(rank=self.percentile_threshold)

    def analyze(
        self,
        metric: str,
        samples: Iterable[CounterSample],
        monotonic: bool = False,
        service: Optional[str] = None,
    ) -> CounterAnalysis:
        series, skipped = normalize_counter_samples(samples)
        if skipped:
            logger.info(f"{metric}: ignored {skipped} buckets without a valid value")

        analysis = CounterAnalysis(metric=metric, value_count=len(series))
        if series:
            values = [s.value for s in series]
            analysis.value_min = min(values)
            analysis.value_max = max(values)

        if len(series) < self.min_samples:
            logger.info(
                f"{metric}: not enough data points for counter analysis "
                f"({len(series)} < {self.min_samples})"
            )
            return analysis

        if monotonic:
            return self._analyze_monotonic(metric, series, analysis, service)
        return self._analyze_resetting(metric, series, analysis, service)

    def detect_resets(self, series: Sequence[CounterSample]) -> List[CounterReset]:
        resets: List[CounterReset] = []
        for i in range(1, len(series)):
            previous, current = series[i - 1].value, series[i].value
            if current < previous * self.reset_drop_ratio:
                resets.append(
                    CounterReset(
                        index=i,
                        timestamp=series[i].timestamp,
                        from_value=previous,
                        to_value=current,
                    )
                )
        return resets

    def rate_series(
        self,
        series: Sequence[CounterSample],
        skip_indices: Optional[Set[int]] = None,
    ) -> List[RatePoint]:
        """Per-second rates keyed by the later sample's timestamp."""
        skip_indices = skip_indices or set()
        rates: List[RatePoint] = []
        for i in range(1, len(series)):
            if i in skip_indices:
                continue
            elapsed = (series[i].timestamp - series[i - 1].timestamp).total_seconds()
            rate = self._rate_detector.compute(series[i].value, series[i - 1].value, elapsed)
            if rate is not None:
                rates.append((series[i].timestamp, rate))
        return rates

    def _analyze_resetting(
        self,
        metric: str,
        series: List[CounterSample],
        analysis: CounterAnalysis,
        service: Optional[str],
    ) -> CounterAnalysis:
        resets = self.detect_resets(series)
        rates = self.rate_series(series, {r.index for r in resets})

        analysis.resets = resets
        if rates:
            analysis.rate_statistics = window_statistics(rate for _, rate in rates)
            analysis.anomalies.extend(self._rate_zscore_anomalies(metric, rates, analysis, service))

        analysis.anomalies.extend(self._reset_interval_anomalies(metric, resets, service))

        for reset in resets:
            analysis.anomalies.append(
                Anomaly(
                    timestamp=reset.timestamp,
                    subject=metric,
                    value=reset.to_value,
                    expected_value=reset.from_value,
                    deviation=RESET_DEVIATION,
                    threshold=reset.from_value * self.reset_drop_ratio,
                    detection_method=DetectionMethod.RESET,
                    score=INFORMATIONAL_SCORE,
                    service=service,
                    message=f"Counter reset from {reset.from_value:.2f} to {reset.to_value:.2f}",
                )
            )

        logger.debug(
            f"{metric}: {len(resets)} resets, {len(rates)} rates, "
            f"{len(analysis.anomalies)} anomalies"
        )
        return analysis

    def _analyze_monotonic(
        self,
        metric: str,
        series: List[CounterSample],
        analysis: CounterAnalysis,
        service: Optional[str],
    ) -> CounterAnalysis:
        rates = self.rate_series(series)
        if len(rates) < self.monotonic_min_rates:
            logger.info(f"{metric}: not enough rate points for monotonic counter analysis")
            return analysis

        rate_stats = window_statistics(rate for _, rate in rates)
        analysis.rate_statistics = rate_stats

        by_timestamp = {s.timestamp: s for s in series}
        previous_by_timestamp = {series[i].timestamp: series[i - 1] for i in range(1, len(series))}

        for ts, rate in rates:
            current = by_timestamp[ts].value
            if rate == 0 and current > 1:
                previous = previous_by_timestamp[ts]
                elapsed = (ts - previous.timestamp).total_seconds()
                expected = current + rate_stats.mean * elapsed
                analysis.anomalies.append(
                    Anomaly(
                        timestamp=ts,
                        subject=metric,
                        value=current,
                        expected_value=expected,
                        deviation=current - expected,
                        threshold=0.0,
                        detection_method=DetectionMethod.PLATEAU,
                        score=plateau_score(rate, rate_stats.mean),
                        service=service,
                        message=f"Counter has plateaued (stopped increasing) at value {current:.2f}",
                    )
                )

        analysis.anomalies.extend(self._rate_zscore_anomalies(metric, rates, analysis, service))

        cutoff = self._percentile_detector.cutoff(sorted(rate for _, rate in rates))
        for ts, rate in rates:
            if self._percentile_detector.fires(rate, cutoff):
                analysis.anomalies.append(
                    Anomaly(
                        timestamp=ts,
                        subject=metric,
                        value=rate,
                        threshold=cutoff,
                        detection_method=DetectionMethod.RATE_PERCENTILE,
                        score=excess_score(rate, cutoff),
                        service=service,
                        message=(
                            f"Rate of change ({rate:.2f}/s) exceeds "
                            f"{self.percentile_threshold:g}th percentile ({cutoff:.2f}/s)"
                        ),
                    )
                )

        return analysis

    def _rate_zscore_anomalies(
        self,
        metric: str,
        rates: List[RatePoint],
        analysis: CounterAnalysis,
        service: Optional[str],
    ) -> List[Anomaly]:
        rate_stats = analysis.rate_statistics
        if rate_stats is None or rate_stats.std_dev == 0:
            logger.debug(f"{metric}: flat rate series, skipping rate z-scores")
            return []

        anomalies: List[Anomaly] = []
        for ts, rate in rates:
            zscore = self._z_detector.compute(rate, rate_stats.mean, rate_stats.std_dev)
            if not self._z_detector.fires(zscore):
                continue
            anomalies.append(
                Anomaly(
                    timestamp=ts,
                    subject=metric,
                    value=rate,
                    expected_value=rate_stats.mean,
                    deviation=rate - rate_stats.mean,
                    z_score=zscore,
                    threshold=self.z_score_threshold,
                    detection_method=DetectionMethod.RATE_Z_SCORE,
                    score=zscore_score(zscore),
                    service=service,
                    message=(
                        f"Rate of change ({rate:.2f}/s) has z-score of {zscore:.2f}, "
                        f"exceeding threshold of {self.z_score_threshold:g}"
                    ),
                )
            )
        return anomalies

    def _reset_interval_anomalies(
        self,
        metric: str,
        resets: List[CounterReset],
        service: Optional[str],
    ) -> List[Anomaly]:
        if len(resets) < 2:
            return []

        intervals = [
            (resets[i].timestamp, (resets[i].timestamp - resets[i - 1].timestamp).total_seconds())
            for i in range(1, len(resets))
        ]
        if len(intervals) < self.min_reset_intervals:
            return []

        interval_stats = window_statistics(seconds for _, seconds in intervals)
        if interval_stats.std_dev == 0:
            return []

        anomalies: List[Anomaly] = []
        for ts, seconds in intervals:
            zscore = self._z_detector.compute(seconds, interval_stats.mean, interval_stats.std_dev)
            if not self._z_detector.fires(zscore):
                continue
            anomalies.append(
                Anomaly(
                    timestamp=ts,
                    subject=metric,
                    value=seconds,
                    expected_value=interval_stats.mean,
                    deviation=seconds - interval_stats.mean,
                    z_score=zscore,
                    threshold=self.z_score_threshold,
                    detection_method=DetectionMethod.RESET_INTERVAL,
                    score=zscore_score(zscore),
                    service=service,
                    message=(
                        f"Unusual time between counter resets: {seconds / 60:.2f} minutes "
                        f"(z-score: {zscore:.2f})"
                    ),
                )
            )
        return anomalies
