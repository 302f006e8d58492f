"""
Baseline-vs-analysis comparison for numeric fields.

Compares the distribution of a field in an earlier baseline window with the
same field in the analysis window. A field is flagged when the analysis mean
sits more than z standard deviations from the baseline mean, or above the
baseline's upper percentile. Flagged fields are explained with a few exemplar
records from the tail the shift points to.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, List, Optional

from telemetry_sentinel.core.config import config
from telemetry_sentinel.core.exceptions import ConfigurationError
from telemetry_sentinel.data.schema import (
    ExemplarDirection,
    TelemetryRecord,
    TimeRange,
    WindowStatistics,
)

from .detectors import ZScoreDetector
from .schema import Anomaly, DetectionMethod
from .scoring import excess_score, zscore_score

if TYPE_CHECKING:
    from telemetry_sentinel.data.sources import TelemetrySource

logger = logging.getLogger(__name__)

_LOOKBACK_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$")
_LOOKBACK_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def parse_lookback(lookback: str) -> timedelta:
    """
    Parse a lookback such as '7d', '12h', '30m', '90s' or '2w'.

    Raises:
        ConfigurationError: If the string is not <positive int><unit>
    """
    match = _LOOKBACK_PATTERN.match(lookback or "")
    if match is None or int(match.group(1)) == 0:
        raise ConfigurationError(f"Invalid lookback window: {lookback!r}")
    amount, unit = int(match.group(1)), match.group(2)
    return timedelta(**{_LOOKBACK_UNITS[unit]: amount})


def baseline_window(analysis_start: datetime, lookback: Optional[str] = None) -> TimeRange:
    """Baseline range ending where the analysis window starts."""
    delta = parse_lookback(lookback or config.baselines.default_lookback)
    return TimeRange(start=analysis_start - delta, end=analysis_start)


def dominant_service(records: Iterable[TelemetryRecord]) -> Optional[str]:
    """Plurality vote over exemplar services; ties go to the first seen."""
    counts = Counter(r.service for r in records if r.service)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


@dataclass
class DistributionBaselineComparator:
    """
    Per-field distribution shift detector.

    Notes:
    - Fields below the sample floors, or with a flat baseline, are skipped
      silently.
    - Each field is independent; compare() may run concurrently per field.
    - Fetch failures from the source propagate to the caller.
    """

    source: "TelemetrySource"
    z_score_threshold: float = field(default_factory=lambda: config.detection.z_score_threshold)
    percentile_threshold: float = field(
        default_factory=lambda: config.detection.percentile_threshold
    )
    min_baseline_count: int = field(default_factory=lambda: config.baselines.min_baseline_count)
    min_analysis_count: int = field(default_factory=lambda: config.baselines.min_analysis_count)
    exemplar_limit: int = field(default_factory=lambda: config.baselines.exemplar_limit)

    def __post_init__(self) -> None:
        self._z_detector = ZScoreDetector(threshold=self.z_score_threshold)

    def compare(
        self,
        field_name: str,
        baseline_range: TimeRange,
        analysis_range: TimeRange,
    ) -> Optional[Anomaly]:
        baseline = self.source.fetch_field_window_statistics(
            field_name, baseline_range, percentiles=(self.percentile_threshold,)
        )
        analysis = self.source.fetch_field_window_statistics(field_name, analysis_range)
        if not self.is_comparable(field_name, baseline, analysis):
            return None

        zscore = self._z_detector.compute(analysis.mean, baseline.mean, baseline.std_dev)
        z_fired = self._z_detector.fires(zscore)
        cutoff = baseline.percentile(self.percentile_threshold)
        if cutoff is None:
            logger.warning(
                f"{field_name}: source returned no p{self.percentile_threshold:g} for the "
                f"baseline window; percentile check skipped"
            )
        percentile_fired = cutoff is not None and analysis.mean > cutoff

        if not (z_fired or percentile_fired):
            return None

        # A percentile-only shift is always an upper-tail shift.
        direction = (
            ExemplarDirection.LOW if z_fired and zscore < 0 else ExemplarDirection.HIGH
        )
        exemplars = self.source.fetch_exemplars(
            field_name, analysis_range, direction, self.exemplar_limit
        )
        service = dominant_service(exemplars)

        deviation = analysis.mean - baseline.mean
        if z_fired:
            return Anomaly(
                timestamp=analysis_range.start,
                subject=field_name,
                value=analysis.mean,
                expected_value=baseline.mean,
                deviation=deviation,
                z_score=zscore,
                threshold=self.z_score_threshold,
                detection_method=DetectionMethod.STATISTICAL_Z_SCORE,
                score=zscore_score(zscore),
                service=service,
                message=(
                    f"Mean of {field_name} shifted from {baseline.mean:.2f} to "
                    f"{analysis.mean:.2f} (z-score {zscore:.2f}, threshold "
                    f"{self.z_score_threshold:g}); {len(exemplars)} exemplars"
                ),
            )

        return Anomaly(
            timestamp=analysis_range.start,
            subject=field_name,
            value=analysis.mean,
            expected_value=baseline.mean,
            deviation=deviation,
            threshold=cutoff,
            detection_method=DetectionMethod.STATISTICAL_PERCENTILE,
            score=excess_score(analysis.mean, cutoff),
            service=service,
            message=(
                f"Mean of {field_name} ({analysis.mean:.2f}) exceeds the baseline "
                f"{self.percentile_threshold:g}th percentile ({cutoff:.2f}); "
                f"{len(exemplars)} exemplars"
            ),
        )

    def compare_fields(
        self,
        field_names: Iterable[str],
        baseline_range: TimeRange,
        analysis_range: TimeRange,
    ) -> List[Anomaly]:
        anomalies: List[Anomaly] = []
        for field_name in field_names:
            anomaly = self.compare(field_name, baseline_range, analysis_range)
            if anomaly is not None:
                anomalies.append(anomaly)
        return anomalies

    def is_comparable(
        self,
        field_name: str,
        baseline: Optional[WindowStatistics],
        analysis: Optional[WindowStatistics],
    ) -> bool:
        if baseline is None or analysis is None:
            logger.debug(f"{field_name}: no statistics for one of the windows")
            return False
        if baseline.count < self.min_baseline_count or analysis.count < self.min_analysis_count:
            logger.debug(
                f"{field_name}: insufficient data (baseline={baseline.count}, "
                f"analysis={analysis.count})"
            )
            return False
        if baseline.std_dev == 0:
            logger.debug(f"{field_name}: flat baseline distribution")
            return False
        return True
