"""
Statistics primitives shared by every detector.

All functions are deterministic and side-effect free. Callers enforce their
own minimum sample counts; these primitives only refuse empty input.
"""

from __future__ import annotations

from math import ceil, sqrt
from typing import Iterable, Optional, Sequence, Tuple

from telemetry_sentinel.core.exceptions import InsufficientDataError
from telemetry_sentinel.data.schema import WindowStatistics

DEFAULT_PERCENTILES: Tuple[float, ...] = (25.0, 50.0, 75.0, 90.0, 95.0, 99.0)


def _require(values: Sequence[float], name: str) -> None:
    if len(values) == 0:
        raise InsufficientDataError(f"{name} requires at least one value")


def mean(values: Sequence[float]) -> float:
    _require(values, "mean")
    return sum(values) / len(values)


def std_dev(values: Sequence[float], mu: Optional[float] = None) -> float:
    """Population standard deviation."""
    _require(values, "std_dev")
    if mu is None:
        mu = mean(values)
    return sqrt(sum((v - mu) ** 2 for v in values) / len(values))


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Nearest-rank percentile of an ascending sequence.

    index = ceil(p/100 * n) - 1, clamped to [0, n-1].
    """
    _require(sorted_values, "percentile")
    n = len(sorted_values)
    index = ceil(p / 100.0 * n) - 1
    index = min(max(index, 0), n - 1)
    return sorted_values[index]


def iqr_bounds(sorted_values: Sequence[float], multiplier: float) -> Tuple[float, float]:
    """Tukey fences: (q1 - m*iqr, q3 + m*iqr)."""
    q1 = percentile(sorted_values, 25)
    q3 = percentile(sorted_values, 75)
    iqr = q3 - q1
    return q1 - multiplier * iqr, q3 + multiplier * iqr


def z_score(value: float, mu: float, sigma: float) -> float:
    # 0 is a safety fallback; callers skip degenerate distributions themselves.
    if sigma == 0:
        return 0.0
    return (value - mu) / sigma


def window_statistics(
    values: Iterable[float],
    percentiles: Iterable[float] = DEFAULT_PERCENTILES,
) -> WindowStatistics:
    """
    Summarize a distribution in one pass over a sorted copy.

    Raises:
        InsufficientDataError: If values is empty
    """
    sorted_values = sorted(values)
    _require(sorted_values, "window_statistics")

    mu = mean(sorted_values)
    return WindowStatistics(
        count=len(sorted_values),
        mean=mu,
        std_dev=std_dev(sorted_values, mu),
        min=sorted_values[0],
        max=sorted_values[-1],
        percentiles={float(p): percentile(sorted_values, p) for p in percentiles},
    )
