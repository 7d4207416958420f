"""
Centralized configuration for all thresholds, windows, and weighting parameters.

Every tunable constant lives here. The defaults are working values validated
against the engine's property tests, not fixed protocol constants; pass a
custom AllostatConfig to any entry point to override them.
"""

from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Input scale
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScaleParams:
    """Closed range shared by every self-reported metric."""

    scale_min: float = 0.0
    scale_max: float = 10.0


# ---------------------------------------------------------------------------
# Adaptive weighting
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WeightParams:
    """Recalculation triggers and the correlation window for factor weights."""

    min_history_days: int = 14
    recompute_interval_days: int = 28
    conflict_trigger_count: int = 3
    max_window_days: int = 90

    # Every factor keeps at least this share of the total weight
    floor: float = 0.05

    # Allowed drift of a weight vector's sum from 1.0
    sum_tolerance: float = 1e-6

    def __post_init__(self):
        if not 0.0 <= self.floor * 4 < 1.0:
            raise ValueError(f"Weight floor must satisfy 0 <= 4*floor < 1, got {self.floor}")
        if self.min_history_days < 2:
            raise ValueError("min_history_days must be at least 2 for a correlation")
        if self.max_window_days < self.min_history_days:
            raise ValueError("max_window_days must be >= min_history_days")


# ---------------------------------------------------------------------------
# Trend smoothing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EMAParams:
    """Spans of the fast and slow exponential moving averages."""

    short_span: int = 7
    long_span: int = 28

    @property
    def short_alpha(self) -> float:
        return 2.0 / (self.short_span + 1)

    @property
    def long_alpha(self) -> float:
        return 2.0 / (self.long_span + 1)


@dataclass(frozen=True)
class TrendParams:
    """Minimum EMA change that counts as movement rather than noise."""

    flat_threshold: float = 0.02


# ---------------------------------------------------------------------------
# Conflict detection
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConflictThresholds:
    """When the model's implied energy disagrees enough with the reported one."""

    # |implied energy - reported energy| on the 0-10 scale
    deviation: float = 2.5

    # Share of the deviation a single factor needs to be named as its cause
    dominance: float = 0.40


@dataclass(frozen=True)
class StrainFlagThresholds:
    """Rule-based acute and chronic strain patterns on raw report values."""

    high_load: float = 7.0
    low_recovery: float = 4.0
    high_stress: float = 7.0
    low_energy: float = 4.0
    low_sleep: float = 4.0

    chronic_days: int = 14
    chronic_stress: float = 6.0
    chronic_sleep: float = 6.0
    chronic_fatigue: float = 5.0
    # Window means past these escalate a chronic flag to high severity
    chronic_stress_severe: float = 8.0
    chronic_sleep_severe: float = 4.0
    chronic_fatigue_severe: float = 3.0

    brain_fog_days: int = 60
    brain_fog_energy: float = 5.0
    brain_fog_stress: float = 7.0

    # Two-factor severity: sum of both strain values
    severity_high: float = 16.0
    severity_medium: float = 13.0


# ---------------------------------------------------------------------------
# sALI interpretation bands
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LevelBands:
    """Upper bounds (inclusive) of each sALI interpretation level."""

    optimal: float = 0.2
    good: float = 0.4
    moderate: float = 0.6
    high: float = 0.8

    def __post_init__(self):
        bounds = (self.optimal, self.good, self.moderate, self.high)
        if list(bounds) != sorted(bounds):
            raise ValueError(f"Level bands must be increasing, got {bounds}")


# ---------------------------------------------------------------------------
# Top-level config aggregate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AllostatConfig:
    """Complete engine configuration. Pass to pipeline to override defaults."""

    scale: ScaleParams = field(default_factory=ScaleParams)
    weights: WeightParams = field(default_factory=WeightParams)
    ema: EMAParams = field(default_factory=EMAParams)
    trend: TrendParams = field(default_factory=TrendParams)
    conflict: ConflictThresholds = field(default_factory=ConflictThresholds)
    strain_flags: StrainFlagThresholds = field(default_factory=StrainFlagThresholds)
    levels: LevelBands = field(default_factory=LevelBands)
