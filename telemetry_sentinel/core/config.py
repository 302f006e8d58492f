"""
Application configuration for Telemetry Sentinel.

Provides environment-aware settings with conservative defaults. All detection
thresholds are configurable to avoid hard-coded "magic numbers".
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DetectionDefaults(BaseModel):
	"""
	Default thresholds shared by every detector.

	Rationale:
	- z=3, p95 and 1.5x IQR are the classic heuristic cutoffs. They are not
	  p-value calibrated and should only change with domain input.
	- absolute_threshold has no sensible default across units, so it is off.
	"""

	z_score_threshold: float = Field(3.0, gt=0.0, description="Z-score cutoff")
	percentile_threshold: float = Field(
		95.0, gt=0.0, le=100.0, description="Percentile rank used as an upper cutoff"
	)
	iqr_multiplier: float = Field(1.5, gt=0.0, description="Tukey fence multiplier")
	absolute_threshold: Optional[float] = Field(
		None, description="Absolute cutoff for durations (same unit as the samples)"
	)
	max_results: Optional[int] = Field(None, ge=1, description="Truncate ranked output")
	group_by_operation: bool = Field(
		True, description="Analyze each operation's durations as its own distribution"
	)


class CounterConfig(BaseModel):
	"""
	Counter analysis configuration.

	Notes:
	- reset_drop_ratio: a sample below previous * ratio is treated as a reset.
	- min_samples: raw samples required before any rate analysis.
	- min_reset_intervals: intervals required before reset spacing is scored.
	- monotonic_min_rates: rates required for monotonic counter analysis.
	"""

	min_samples: int = Field(5, ge=2)
	reset_drop_ratio: float = Field(0.5, gt=0.0, lt=1.0)
	min_reset_intervals: int = Field(3, ge=2)
	monotonic_min_rates: int = Field(3, ge=2)


class GaugeConfig(BaseModel):
	"""
	Gauge analysis configuration.

	Notes:
	- min_samples: bucket values required before a gauge is analyzed.
	- change_threshold: relative change from the previous bucket that is
	  flagged, e.g. 0.5 for a 50% jump or drop.
	"""

	min_samples: int = Field(5, ge=2)
	change_threshold: float = Field(0.5, gt=0.0)


class BaselineConfig(BaseModel):
	"""
	Baseline-vs-analysis comparison configuration.

	Notes:
	- min_baseline_count / min_analysis_count: sample floors per window.
	- exemplar_limit: records fetched to explain a flagged field.
	- default_lookback: baseline length when the caller gives no baseline range.
	"""

	min_baseline_count: int = Field(10, ge=2)
	min_analysis_count: int = Field(5, ge=1)
	exemplar_limit: int = Field(5, ge=1)
	default_lookback: str = Field("7d", description="Lookback such as '7d', '12h' or '30m'")


class ExecutionConfig(BaseModel):
	"""
	Execution configuration. max_workers=1 runs every detector inline.
	"""

	max_workers: int = Field(4, ge=1)


class Config(BaseSettings):
	"""
	Global configuration with environment overrides.
	"""

	model_config = SettingsConfigDict(
		env_prefix="SENTINEL_",
		env_file=".env",
		env_nested_delimiter="__",
		extra="ignore",
	)

	log_level: str = Field("INFO", description="Default logging level")
	logs_dir: Path = Field(Path("logs"), description="Directory for log files")
	detection: DetectionDefaults = DetectionDefaults()
	counters: CounterConfig = CounterConfig()
	gauges: GaugeConfig = GaugeConfig()
	baselines: BaselineConfig = BaselineConfig()
	execution: ExecutionConfig = ExecutionConfig()

	def model_post_init(self, __context: object) -> None:
		self.logs_dir.mkdir(parents=True, exist_ok=True)


config = Config()
