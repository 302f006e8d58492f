"""
Combined anomaly detection engine.

Fetches samples through a TelemetrySource, runs the selected detector families
independently (optionally on a thread pool) and merges their outputs into one
ranked result.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Tuple

from telemetry_sentinel.core.config import config
from telemetry_sentinel.core.logging_config import setup_logging
from telemetry_sentinel.data.aggregation import group_by_operation, summarize_groups
from telemetry_sentinel.data.normalizers import normalize_duration_samples
from telemetry_sentinel.data.schema import DurationSample, WindowStatistics

from .aggregator import AnomalyAggregator
from .baselines import DistributionBaselineComparator, baseline_window
from .counters import CounterSeriesAnalyzer
from .durations import ALL_OPERATIONS, DurationOutlierDetector
from .gauges import GaugeSeriesAnalyzer
from .schema import (
    Anomaly,
    DetectionOptions,
    DetectionRequest,
    DetectionResult,
    MethodFamily,
)

if TYPE_CHECKING:
    from telemetry_sentinel.data.sources import TelemetrySource

logger = logging.getLogger(__name__)

TaskOutput = Tuple[List[Anomaly], Dict[str, WindowStatistics]]
Task = Callable[[], TaskOutput]


@dataclass
class AnomalyEngine:
    """
    Hybrid detection engine.

    Notes:
    - Detectors share no mutable state; tasks run in any order.
    - Output order is fixed by the aggregator, not by task completion.
    - Fetch failures raised inside a task propagate out of detect().
    """

    source: "TelemetrySource"
    max_workers: int = field(default_factory=lambda: config.execution.max_workers)

    def __post_init__(self) -> None:
        setup_logging()

    def detect(self, request: DetectionRequest) -> DetectionResult:
        options = request.options
        logger.info(
            f"Detecting anomalies in [{request.time_range.start.isoformat()}, "
            f"{request.time_range.end.isoformat()}] with methods "
            f"{sorted(m.value for m in options.methods)}"
        )

        tasks: List[Task] = []
        if MethodFamily.COUNTER in options.methods:
            tasks.extend(self._counter_tasks(request))
        if MethodFamily.GAUGE in options.methods:
            tasks.extend(self._gauge_tasks(request))
        if MethodFamily.STATISTICAL in options.methods:
            tasks.extend(self._statistical_tasks(request))
        if MethodFamily.DURATION in options.methods:
            tasks.extend(self._duration_tasks(request))

        outputs = self._run(tasks)

        statistics: Dict[str, WindowStatistics] = {}
        for _, task_stats in outputs:
            statistics.update(task_stats)

        aggregator = AnomalyAggregator(max_results=options.max_results)
        result = aggregator.aggregate(
            (anomalies for anomalies, _ in outputs),
            group_by_operation=(
                options.group_by_operation and MethodFamily.DURATION in options.methods
            ),
            group_by_service=len(request.services) > 1,
        )
        result.statistics = statistics

        logger.info(
            f"Detection finished: {result.total_anomalies} anomalies from {len(tasks)} tasks, "
            f"returning {len(result.anomalies)}"
        )
        return result

    def _run(self, tasks: List[Task]) -> List[TaskOutput]:
        if self.max_workers <= 1 or len(tasks) <= 1:
            return [task() for task in tasks]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(task) for task in tasks]
            return [future.result() for future in futures]

    def _counter_tasks(self, request: DetectionRequest) -> List[Task]:
        options = request.options
        analyzer = CounterSeriesAnalyzer(
            z_score_threshold=options.z_score_threshold,
            percentile_threshold=options.percentile_threshold,
        )
        service = request.services[0] if len(request.services) == 1 else None

        def make_task(metric: str, monotonic: bool) -> Task:
            def task() -> TaskOutput:
                series = self.source.fetch_counter_series(
                    metric, request.time_range, request.counter_group_by
                )
                analysis = analyzer.analyze(metric, series, monotonic=monotonic, service=service)
                stats = {}
                if analysis.rate_statistics is not None:
                    stats[metric] = analysis.rate_statistics
                return analysis.anomalies, stats
            return task

        tasks = [make_task(metric, False) for metric in request.counter_metrics]
        tasks.extend(make_task(metric, True) for metric in request.monotonic_metrics)
        return tasks

    def _gauge_tasks(self, request: DetectionRequest) -> List[Task]:
        options = request.options
        analyzer = GaugeSeriesAnalyzer(
            z_score_threshold=options.z_score_threshold,
            percentile_threshold=options.percentile_threshold,
            iqr_multiplier=options.iqr_multiplier,
        )
        service = request.services[0] if len(request.services) == 1 else None

        def make_task(metric: str) -> Task:
            def task() -> TaskOutput:
                series = self.source.fetch_counter_series(
                    metric, request.time_range, request.counter_group_by
                )
                analysis = analyzer.analyze(metric, series, service=service)
                stats = {}
                if analysis.value_statistics is not None:
                    stats[metric] = analysis.value_statistics
                return analysis.anomalies, stats
            return task

        return [make_task(metric) for metric in request.gauge_metrics]

    def _statistical_tasks(self, request: DetectionRequest) -> List[Task]:
        if not request.fields:
            return []

        options = request.options
        comparator = DistributionBaselineComparator(
            source=self.source,
            z_score_threshold=options.z_score_threshold,
            percentile_threshold=options.percentile_threshold,
        )
        baseline_range = request.baseline_range or baseline_window(
            request.time_range.start, request.lookback
        )

        def make_task(field_name: str) -> Task:
            def task() -> TaskOutput:
                anomaly = comparator.compare(field_name, baseline_range, request.time_range)
                return ([anomaly] if anomaly is not None else []), {}
            return task

        return [make_task(field_name) for field_name in request.fields]

    def _duration_tasks(self, request: DetectionRequest) -> List[Task]:
        options = request.options
        filters = dict(request.duration_filters)
        if request.services:
            filters.setdefault("services", list(request.services))

        samples, skipped = normalize_duration_samples(
            self.source.fetch_duration_samples(request.time_range, filters)
        )
        if skipped:
            logger.info(f"Ignored {skipped} samples with invalid durations")
        if not samples:
            logger.info("No duration samples in the analysis window")
            return []

        detector = self._duration_detector(options)
        if options.group_by_operation:
            groups = group_by_operation(samples)
        else:
            groups = {ALL_OPERATIONS: samples}
        logger.debug(summarize_groups(groups))

        def make_task(group: List[DurationSample]) -> Task:
            def task() -> TaskOutput:
                return detector.detect(group), {}
            return task

        return [make_task(group) for group in groups.values()]

    @staticmethod
    def _duration_detector(options: DetectionOptions) -> DurationOutlierDetector:
        return DurationOutlierDetector(
            absolute_threshold=options.absolute_threshold,
            z_score_threshold=options.z_score_threshold,
            percentile_threshold=options.percentile_threshold,
            iqr_multiplier=options.iqr_multiplier,
        )
