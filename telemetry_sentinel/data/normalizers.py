"""
Sample normalization: drop invalid numbers, standardize timestamps and names.

Statistics must never see NaN, infinities, missing values or negative
durations. Every detector input passes through this module first.

Design:
- Timestamp normalization to UTC datetime
- Numeric validation (finite, non-boolean)
- Service / operation names trimmed, defaulting to "unknown"
- Invalid samples are skipped and counted, never raised
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

from telemetry_sentinel.data.schema import CounterSample, DurationSample

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


class NormalizationError(Exception):
    """Raised when a single value cannot be normalized."""
    pass


def normalize_timestamp(ts_any: Any) -> datetime:
    """
    Normalize a timestamp to a timezone-aware UTC datetime.

    Supports:
    - datetime objects (naive values are assumed UTC)
    - ISO 8601: 2025-02-07T10:30:45Z, 2025-02-07T10:30:45.123+00:00
    - Date-time: 2025-02-07 10:30:45
    - Epoch seconds: 1707315045
    - Epoch millis: 1707315045000

    Raises:
        NormalizationError: If the format is not recognized
    """
    if ts_any is None or ts_any == "":
        raise NormalizationError("Empty timestamp")

    if isinstance(ts_any, datetime):
        if ts_any.tzinfo is None:
            return ts_any.replace(tzinfo=timezone.utc)
        return ts_any.astimezone(timezone.utc)

    ts_str = str(ts_any).strip()

    try:
        ts_float = float(ts_str)
        # Timestamps before year 3000 are seconds
        if ts_float < 32503680000:
            return datetime.fromtimestamp(ts_float, tz=timezone.utc)
        return datetime.fromtimestamp(ts_float / 1000, tz=timezone.utc)
    except ValueError:
        pass

    if ts_str.endswith("Z"):
        ts_str = ts_str[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(ts_str)
    except ValueError as e:
        raise NormalizationError(f"Could not parse timestamp: {ts_any}") from e

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_value(value: Any) -> Optional[float]:
    """
    Convert a raw numeric value to a finite float.

    Returns None for missing, boolean, non-numeric, NaN or infinite input.
    """
    if value is None or isinstance(value, bool):
        return None

    try:
        number = float(value)
    except (ValueError, TypeError):
        return None

    if not math.isfinite(number):
        return None
    return number


def normalize_duration(duration_any: Any) -> Optional[float]:
    """
    Normalize a duration.

    Negative values are invalid. Zero is kept: an operation can legitimately
    complete within the clock resolution.
    """
    duration = normalize_value(duration_any)
    if duration is None or duration < 0:
        return None
    return duration


def normalize_name(name_any: Any, max_length: int = 256) -> str:
    """Trim a service or operation name, defaulting to 'unknown'."""
    if name_any is None:
        return UNKNOWN
    name = str(name_any).strip()
    if len(name) > max_length:
        logger.warning(f"Name truncated: {name[:50]}...")
        name = name[:max_length]
    return name or UNKNOWN


def normalize_values(values: Iterable[Any]) -> Tuple[List[float], int]:
    """
    Filter a raw value sequence down to finite floats.

    Returns:
        Tuple of (clean_values, skipped_count)
    """
    clean: List[float] = []
    skipped = 0
    for value in values:
        number = normalize_value(value)
        if number is None:
            skipped += 1
            continue
        clean.append(number)
    return clean, skipped


def normalize_counter_samples(
    samples: Iterable[CounterSample],
) -> Tuple[List[CounterSample], int]:
    """
    Drop counter buckets without a finite value and order the rest by time.

    Returns:
        Tuple of (ordered_samples, skipped_count)
    """
    clean: List[CounterSample] = []
    skipped = 0

    for sample in samples:
        value = normalize_value(sample.value)
        if value is None:
            skipped += 1
            continue
        clean.append(
            CounterSample(timestamp=normalize_timestamp(sample.timestamp), value=value)
        )

    if skipped:
        logger.debug(f"Skipped {skipped} counter samples with invalid values")

    clean.sort(key=lambda s: s.timestamp)
    return clean, skipped


def normalize_duration_samples(
    samples: Iterable[DurationSample],
) -> Tuple[List[DurationSample], int]:
    """
    Drop duration samples with missing, non-finite or negative durations.

    Returns:
        Tuple of (valid_samples, skipped_count)
    """
    clean: List[DurationSample] = []
    skipped = 0

    for sample in samples:
        duration = normalize_duration(sample.duration)
        if duration is None:
            skipped += 1
            continue
        clean.append(
            sample.model_copy(
                update={
                    "duration": duration,
                    "timestamp": normalize_timestamp(sample.timestamp),
                    "service": normalize_name(sample.service),
                    "operation": normalize_name(sample.operation),
                }
            )
        )

    if skipped:
        logger.debug(f"Skipped {skipped} duration samples with invalid durations")

    return clean, skipped
