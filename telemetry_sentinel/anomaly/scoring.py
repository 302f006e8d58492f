"""
Scoring for anomalies.

Every anomaly gets one non-negative score so heterogeneous methods can be
ranked together. Z-score methods score |z|; threshold methods score the
fractional excess over the bound they crossed.
"""

from __future__ import annotations

from typing import Optional

# Resets and plateaus are reported unconditionally; they rank as a 1-sigma event.
INFORMATIONAL_SCORE = 1.0


def zscore_score(zscore: float) -> float:
    return abs(zscore)


def excess_score(value: float, bound: float) -> float:
    """
    Fractional distance of value beyond bound, e.g. 0.5 for 150 vs 100.

    Falls back to the absolute distance when the bound is zero.
    """
    distance = abs(value - bound)
    if bound == 0:
        return distance
    return distance / abs(bound)


def plateau_score(rate: float, mean_rate: Optional[float]) -> float:
    """
    Score for a counter that stopped increasing.

    At least INFORMATIONAL_SCORE; grows with how far the mean rate sits above
    the stalled rate.
    """
    if mean_rate is None or mean_rate <= 0:
        return INFORMATIONAL_SCORE
    return max(INFORMATIONAL_SCORE, abs(mean_rate - rate) / mean_rate)
