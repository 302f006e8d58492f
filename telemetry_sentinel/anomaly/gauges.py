"""
Gauge series analysis.

Gauges (queue depth, memory in use, active connections) move freely up and
down, so drops are not resets. Each bucket value is checked against the
series' own distribution with z-score, upper percentile and IQR fences, and
against its predecessor for sudden relative jumps or drops.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from telemetry_sentinel.core.config import config
from telemetry_sentinel.data.normalizers import normalize_counter_samples
from telemetry_sentinel.data.schema import CounterSample, WindowStatistics

from .detectors import IQRDetector, PercentileDetector, ZScoreDetector
from .schema import Anomaly, DetectionMethod, GaugeAnalysis
from .scoring import excess_score, zscore_score
from .stats import window_statistics

logger = logging.getLogger(__name__)


@dataclass
class GaugeSeriesAnalyzer:
    """
    Per-bucket outlier and change detection for one gauge series at a time.

    Notes:
    - Fewer than min_samples valid buckets yields an empty analysis.
    - A flat series skips z-scores; percentile and IQR still apply.
    - Changes from a zero bucket are not scored.
    """

    z_score_threshold: float = field(default_factory=lambda: config.detection.z_score_threshold)
    percentile_threshold: float = field(
        default_factory=lambda: config.detection.percentile_threshold
    )
    iqr_multiplier: float = field(default_factory=lambda: config.detection.iqr_multiplier)
    change_threshold: float = field(default_factory=lambda: config.gauges.change_threshold)
    min_samples: int = field(default_factory=lambda: config.gauges.min_samples)

    def __post_init__(self) -> None:
        self._z_detector = ZScoreDetector(threshold=self.z_score_threshold)
        self._percentile = PercentileDetector(rank=self.percentile_threshold)
        self._iqr = IQRDetector(multiplier=self.iqr_multiplier)

    def analyze(
        self,
        metric: str,
        samples: Iterable[CounterSample],
        service: Optional[str] = None,
    ) -> GaugeAnalysis:
        series, skipped = normalize_counter_samples(samples)
        if skipped:
            logger.info(f"{metric}: ignored {skipped} buckets without a valid value")

        analysis = GaugeAnalysis(metric=metric, value_count=len(series))
        if len(series) < self.min_samples:
            logger.info(
                f"{metric}: not enough data points for gauge analysis "
                f"({len(series)} < {self.min_samples})"
            )
            return analysis

        values = [s.value for s in series]
        summary = window_statistics(values)
        analysis.value_statistics = summary

        analysis.anomalies.extend(self._distribution_anomalies(metric, series, summary, service))
        analysis.anomalies.extend(self._change_anomalies(metric, series, service))

        logger.debug(f"{metric}: {len(series)} buckets, {len(analysis.anomalies)} anomalies")
        return analysis

    def change_ratio(self, current: float, previous: float) -> Optional[float]:
        """Relative change from previous to current, or None from a zero bucket."""
        if previous == 0:
            return None
        return abs((current - previous) / previous)

    def _distribution_anomalies(
        self,
        metric: str,
        series: Sequence[CounterSample],
        summary: WindowStatistics,
        service: Optional[str],
    ) -> List[Anomaly]:
        sorted_values = sorted(s.value for s in series)
        cutoff = self._percentile.cutoff(sorted_values)
        bounds = self._iqr.bounds(sorted_values)

        found: List[Anomaly] = []
        for sample in series:
            value = sample.value
            context = {
                "timestamp": sample.timestamp,
                "subject": metric,
                "value": value,
                "service": service,
            }

            zscore = self._z_detector.compute(value, summary.mean, summary.std_dev)
            if self._z_detector.fires(zscore):
                found.append(
                    Anomaly(
                        **context,
                        expected_value=summary.mean,
                        deviation=value - summary.mean,
                        z_score=zscore,
                        threshold=self.z_score_threshold,
                        detection_method=DetectionMethod.GAUGE_Z_SCORE,
                        score=zscore_score(zscore),
                        message=(
                            f"Z-score of {zscore:.2f} exceeds threshold of "
                            f"{self.z_score_threshold:g}"
                        ),
                    )
                )

            if self._percentile.fires(value, cutoff):
                found.append(
                    Anomaly(
                        **context,
                        threshold=cutoff,
                        detection_method=DetectionMethod.GAUGE_PERCENTILE,
                        score=excess_score(value, cutoff),
                        message=(
                            f"Value {value:.2f} exceeds {self.percentile_threshold:g}th "
                            f"percentile ({cutoff:.2f})"
                        ),
                    )
                )

            crossed = self._iqr.crossed_bound(value, bounds)
            if crossed is not None:
                found.append(
                    Anomaly(
                        **context,
                        expected_value=summary.mean,
                        deviation=value - summary.mean,
                        threshold=crossed,
                        detection_method=DetectionMethod.GAUGE_IQR,
                        score=excess_score(value, crossed),
                        message=(
                            f"Value {value:.2f} is outside IQR bounds "
                            f"[{bounds[0]:.2f}, {bounds[1]:.2f}]"
                        ),
                    )
                )
        return found

    def _change_anomalies(
        self,
        metric: str,
        series: Sequence[CounterSample],
        service: Optional[str],
    ) -> List[Anomaly]:
        found: List[Anomaly] = []
        for i in range(1, len(series)):
            previous, current = series[i - 1].value, series[i].value
            ratio = self.change_ratio(current, previous)
            if ratio is None or ratio <= self.change_threshold:
                continue
            found.append(
                Anomaly(
                    timestamp=series[i].timestamp,
                    subject=metric,
                    value=current,
                    expected_value=previous,
                    deviation=current - previous,
                    threshold=self.change_threshold,
                    detection_method=DetectionMethod.GAUGE_CHANGE,
                    score=excess_score(ratio, self.change_threshold),
                    service=service,
                    message=(
                        f"Change rate of {ratio * 100:.2f}% exceeds threshold of "
                        f"{self.change_threshold * 100:.2f}%"
                    ),
                )
            )
        return found
