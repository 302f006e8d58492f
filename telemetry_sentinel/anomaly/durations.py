"""
Duration outlier detection for spans and operations.

Each sample in a group is checked against four independent criteria:
absolute threshold, z-score, upper percentile and IQR fences. Every criterion
that fires produces its own anomaly, so one slow span can appear up to four
times with different detection methods.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from telemetry_sentinel.core.config import config
from telemetry_sentinel.data.aggregation import group_by_operation as partition_by_operation
from telemetry_sentinel.data.normalizers import normalize_duration_samples
from telemetry_sentinel.data.schema import DurationSample, WindowStatistics

from .detectors import (
    AbsoluteThresholdDetector,
    IQRDetector,
    PercentileDetector,
    ZScoreDetector,
)
from .schema import Anomaly, DetectionMethod
from .scoring import excess_score, zscore_score
from .stats import window_statistics

logger = logging.getLogger(__name__)

ALL_OPERATIONS = "*"


def duration_subject(sample: DurationSample) -> str:
    return f"{sample.service}/{sample.operation}"


@dataclass
class DurationOutlierDetector:
    """
    Multi-criterion outlier detector over one homogeneous group of durations.
    """

    absolute_threshold: Optional[float] = field(
        default_factory=lambda: config.detection.absolute_threshold
    )
    z_score_threshold: float = field(default_factory=lambda: config.detection.z_score_threshold)
    percentile_threshold: float = field(
        default_factory=lambda: config.detection.percentile_threshold
    )
    iqr_multiplier: float = field(default_factory=lambda: config.detection.iqr_multiplier)

    def __post_init__(self) -> None:
        self._absolute = AbsoluteThresholdDetector(threshold=self.absolute_threshold)
        self._z_detector = ZScoreDetector(threshold=self.z_score_threshold)
        self._percentile = PercentileDetector(rank=self.percentile_threshold)
        self._iqr = IQRDetector(multiplier=self.iqr_multiplier)

    def detect(self, samples: Iterable[DurationSample]) -> List[Anomaly]:
        """Analyze one group. Invalid durations are dropped first."""
        group, skipped = normalize_duration_samples(samples)
        if skipped:
            logger.info(f"Ignored {skipped} samples with invalid durations")
        if not group:
            return []

        durations = [s.duration for s in group]
        sorted_durations = sorted(durations)
        summary = window_statistics(sorted_durations)
        cutoff = self._percentile.cutoff(sorted_durations)
        bounds = self._iqr.bounds(sorted_durations)

        anomalies: List[Anomaly] = []
        for sample in group:
            anomalies.extend(self._check_sample(sample, summary, cutoff, bounds))
        return anomalies

    def detect_grouped(
        self,
        samples: Iterable[DurationSample],
        group_by_operation: bool = True,
    ) -> Dict[str, List[Anomaly]]:
        """
        Analyze samples per operation (default) or as a single group.

        Returns:
            Dict mapping operation -> anomalies, or {"*": anomalies} when not
            grouping. Groups without anomalies are omitted.
        """
        # names are trimmed before partitioning so "checkout " joins "checkout"
        valid, skipped = normalize_duration_samples(samples)
        if skipped:
            logger.info(f"Ignored {skipped} samples with invalid durations")
        if group_by_operation:
            groups = partition_by_operation(valid)
        else:
            groups = {ALL_OPERATIONS: valid}

        results: Dict[str, List[Anomaly]] = {}
        for operation, group in groups.items():
            anomalies = self.detect(group)
            if anomalies:
                results[operation] = anomalies
        return results

    def _check_sample(
        self,
        sample: DurationSample,
        summary: WindowStatistics,
        cutoff: float,
        bounds: tuple,
    ) -> List[Anomaly]:
        duration = sample.duration
        context = {
            "timestamp": sample.timestamp,
            "subject": duration_subject(sample),
            "value": duration,
            "service": sample.service,
            "operation": sample.operation,
            "trace_id": sample.trace_id,
            "span_id": sample.span_id,
        }
        found: List[Anomaly] = []

        if self._absolute.fires(duration):
            found.append(
                Anomaly(
                    **context,
                    threshold=self.absolute_threshold,
                    detection_method=DetectionMethod.ABSOLUTE_THRESHOLD,
                    score=excess_score(duration, self.absolute_threshold),
                    message=f"Duration {duration:g} exceeds absolute threshold {self.absolute_threshold:g}",
                )
            )

        zscore = self._z_detector.compute(duration, summary.mean, summary.std_dev)
        if self._z_detector.fires(zscore):
            found.append(
                Anomaly(
                    **context,
                    expected_value=summary.mean,
                    deviation=duration - summary.mean,
                    z_score=zscore,
                    threshold=self.z_score_threshold,
                    detection_method=DetectionMethod.DURATION_Z_SCORE,
                    score=zscore_score(zscore),
                    message=(
                        f"Duration {duration:g} has z-score of {zscore:.2f}, "
                        f"exceeding threshold of {self.z_score_threshold:g}"
                    ),
                )
            )

        if self._percentile.fires(duration, cutoff):
            found.append(
                Anomaly(
                    **context,
                    threshold=cutoff,
                    detection_method=DetectionMethod.DURATION_PERCENTILE,
                    score=excess_score(duration, cutoff),
                    message=(
                        f"Duration {duration:g} exceeds {self.percentile_threshold:g}th "
                        f"percentile ({cutoff:g})"
                    ),
                )
            )

        crossed = self._iqr.crossed_bound(duration, bounds)
        if crossed is not None:
            found.append(
                Anomaly(
                    **context,
                    expected_value=summary.mean,
                    deviation=duration - summary.mean,
                    threshold=crossed,
                    detection_method=DetectionMethod.DURATION_IQR,
                    score=excess_score(duration, crossed),
                    message=(
                        f"Duration {duration:g} is outside IQR bounds "
                        f"[{bounds[0]:g}, {bounds[1]:g}]"
                    ),
                )
            )

        return found
