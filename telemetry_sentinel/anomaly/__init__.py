"""
Anomaly module: statistical anomaly detection over telemetry.

Implements counter and gauge analysis, baseline comparison, duration outlier
detection, scoring and the combined engine.
"""

from .aggregator import AnomalyAggregator
from .baselines import DistributionBaselineComparator, parse_lookback
from .counters import CounterSeriesAnalyzer
from .detectors import (
	AbsoluteThresholdDetector,
	IQRDetector,
	PercentileDetector,
	RateOfChangeDetector,
	ZScoreDetector,
)
from .durations import DurationOutlierDetector
from .engine import AnomalyEngine
from .gauges import GaugeSeriesAnalyzer
from .schema import (
	Anomaly,
	CounterAnalysis,
	CounterReset,
	DetectionMethod,
	DetectionOptions,
	DetectionRequest,
	DetectionResult,
	GaugeAnalysis,
	MethodFamily,
)

__all__ = [
	"AnomalyEngine",
	"AnomalyAggregator",
	"Anomaly",
	"CounterAnalysis",
	"CounterReset",
	"DetectionMethod",
	"DetectionOptions",
	"DetectionRequest",
	"DetectionResult",
	"GaugeAnalysis",
	"MethodFamily",
	"CounterSeriesAnalyzer",
	"DistributionBaselineComparator",
	"DurationOutlierDetector",
	"GaugeSeriesAnalyzer",
	"parse_lookback",
	"ZScoreDetector",
	"PercentileDetector",
	"IQRDetector",
	"AbsoluteThresholdDetector",
	"RateOfChangeDetector",
]
