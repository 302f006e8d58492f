"""
Merging and ranking of anomalies from heterogeneous detectors.

Ranking uses only the score (descending), with the timestamp (ascending) as a
deterministic tie-breaker. Grouping never removes anomalies from the ranked
list; only max_results truncation does.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .schema import Anomaly, DetectionMethod, DetectionResult

UNKNOWN_SERVICE = "unknown"


def rank_key(anomaly: Anomaly) -> Tuple[float, datetime]:
    return (-anomaly.score, anomaly.timestamp)


def rank(anomalies: Iterable[Anomaly]) -> List[Anomaly]:
    return sorted(anomalies, key=rank_key)


def group_anomalies(
    anomalies: Iterable[Anomaly],
    key: Callable[[Anomaly], Optional[str]],
) -> Dict[str, List[Anomaly]]:
    """Group ranked anomalies, skipping those whose key is None."""
    groups: Dict[str, List[Anomaly]] = {}
    for anomaly in anomalies:
        group = key(anomaly)
        if group is None:
            continue
        groups.setdefault(group, []).append(anomaly)
    return groups


@dataclass
class AnomalyAggregator:
    """
    Pure merge step over any subset of detector outputs.
    """

    max_results: Optional[int] = None

    def merge(self, *anomaly_lists: Iterable[Anomaly]) -> List[Anomaly]:
        """Concatenate, rank and truncate."""
        ranked = rank(a for anomalies in anomaly_lists for a in anomalies)
        return self._truncate(ranked)

    def aggregate(
        self,
        anomaly_lists: Iterable[Iterable[Anomaly]],
        group_by_operation: bool = False,
        group_by_service: bool = False,
    ) -> DetectionResult:
        ranked = rank(a for anomalies in anomaly_lists for a in anomalies)

        by_method: Dict[DetectionMethod, List[Anomaly]] = {}
        for anomaly in ranked:
            by_method.setdefault(anomaly.detection_method, []).append(anomaly)

        result = DetectionResult(
            anomalies=self._truncate(ranked),
            by_method=by_method,
            total_anomalies=len(ranked),
        )
        if group_by_operation:
            result.by_operation = group_anomalies(ranked, lambda a: a.operation)
        if group_by_service:
            result.by_service = group_anomalies(ranked, lambda a: a.service or UNKNOWN_SERVICE)
        return result

    def _truncate(self, ranked: List[Anomaly]) -> List[Anomaly]:
        if self.max_results is None:
            return ranked
        return ranked[: self.max_results]
