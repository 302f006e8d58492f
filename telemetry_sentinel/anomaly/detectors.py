"""
Single-criterion detectors.

Implements explainable building blocks shared by the analyzers:
- Z-score detection
- Percentile cutoff
- IQR (Tukey fence) bounds
- Absolute threshold
- Per-second rate of change
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from . import stats


@dataclass
class ZScoreDetector:
    """
    Z-score detector.

    A degenerate baseline (std == 0) suppresses detection entirely.
    """

    threshold: float

    def compute(self, observed: float, mean: float, std: float) -> Optional[float]:
        if std == 0:
            return None
        return stats.z_score(observed, mean, std)

    def fires(self, zscore: Optional[float]) -> bool:
        return zscore is not None and abs(zscore) > self.threshold


@dataclass
class PercentileDetector:
    """Flags values strictly above the given percentile rank."""

    rank: float

    def cutoff(self, sorted_values: Sequence[float]) -> float:
        return stats.percentile(sorted_values, self.rank)

    def fires(self, observed: float, cutoff: float) -> bool:
        return observed > cutoff


@dataclass
class IQRDetector:
    """Flags values outside the Tukey fences."""

    multiplier: float

    def bounds(self, sorted_values: Sequence[float]) -> Tuple[float, float]:
        return stats.iqr_bounds(sorted_values, self.multiplier)

    def crossed_bound(self, observed: float, bounds: Tuple[float, float]) -> Optional[float]:
        """Return the bound the value lies beyond, or None if inside."""
        lower, upper = bounds
        if observed > upper:
            return upper
        if observed < lower:
            return lower
        return None


@dataclass
class AbsoluteThresholdDetector:
    """Flags values above a fixed cutoff. Disabled when threshold is None."""

    threshold: Optional[float] = None

    def fires(self, observed: float) -> bool:
        return self.threshold is not None and observed > self.threshold


@dataclass
class RateOfChangeDetector:
    """
    Per-second rate of change between consecutive samples.

    Returns None when the samples are not strictly ordered in time.
    """

    def compute(self, observed: float, previous: float, elapsed_seconds: float) -> Optional[float]:
        if elapsed_seconds <= 0:
            return None
        return (observed - previous) / elapsed_seconds
