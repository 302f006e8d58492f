"""
Time-bucketing and grouping of materialized telemetry samples.

Groups duration samples by operation and folds raw records into
fixed-interval buckets (e.g., 1-minute averages) so a counter metric becomes an
ordered series.

Design:
- Buckets aligned to epoch boundaries (00:00, 00:01, 00:02, ...)
- Empty buckets are not created
- Grouping preserves the input order of samples within each group
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List

from telemetry_sentinel.data.schema import (
    CounterSample,
    DurationSample,
    TelemetryRecord,
)

logger = logging.getLogger(__name__)


class AggregationError(Exception):
    """Raised when aggregation parameters are invalid."""
    pass


def align_timestamp_to_window(
    ts: datetime,
    window_size_seconds: int
) -> datetime:
    """
    Align timestamp to start of window boundary.

    Example with 1-minute window (60s):
    - 10:32:45 -> 10:32:00 (aligned down)
    - 10:32:00 -> 10:32:00 (already aligned)

    Args:
        ts: Timestamp to align (naive values are treated as UTC)
        window_size_seconds: Window size in seconds

    Returns:
        Aligned timestamp at window start (UTC)
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    epoch_seconds = int(ts.timestamp())
    aligned_epoch = (epoch_seconds // window_size_seconds) * window_size_seconds
    return datetime.fromtimestamp(aligned_epoch, tz=timezone.utc)


def bucket_counter_records(
    records: Iterable[TelemetryRecord],
    field: str,
    interval_seconds: int = 60,
) -> List[CounterSample]:
    """
    Fold records into one averaged CounterSample per time bucket.

    Records without a numeric value for ``field`` are ignored.

    Raises:
        AggregationError: If interval_seconds is not positive
    """
    if interval_seconds <= 0:
        raise AggregationError("Bucket interval must be positive")

    sums: Dict[datetime, float] = defaultdict(float)
    counts: Dict[datetime, int] = defaultdict(int)

    for record in records:
        value = record.numeric(field)
        if value is None:
            continue
        bucket = align_timestamp_to_window(record.timestamp, interval_seconds)
        sums[bucket] += value
        counts[bucket] += 1

    return [
        CounterSample(timestamp=bucket, value=sums[bucket] / counts[bucket])
        for bucket in sorted(sums)
    ]


def group_by_operation(
    samples: Iterable[DurationSample],
) -> Dict[str, List[DurationSample]]:
    """
    Partition duration samples by operation name.

    Returns:
        Dict mapping operation -> samples, keys in first-seen order
    """
    groups: Dict[str, List[DurationSample]] = {}
    for sample in samples:
        groups.setdefault(sample.operation, []).append(sample)
    return groups


def summarize_groups(groups: Dict[str, List[DurationSample]]) -> str:
    """
    Create a human-readable summary of grouped samples.

    Example output:
        Grouped 150 samples into 2 groups
          - checkout: 100 sample(s)
          - login: 50 sample(s)
    """
    if not groups:
        return "No groups"

    total = sum(len(items) for items in groups.values())
    lines = [f"Grouped {total} samples into {len(groups)} groups"]
    for key in sorted(groups):
        lines.append(f"  - {key}: {len(groups[key])} sample(s)")
    return "\n".join(lines)
