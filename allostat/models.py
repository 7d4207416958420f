"""
Record types flowing through the engine.

Inputs (DailyReport) come from the host application's store; everything else
is derived. All records are immutable: a newer WeightState or ConflictPattern
supersedes an older one, it never edits it.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from allostat.errors import InvariantViolation


FACTOR_NAMES = ("sleep", "load", "recovery", "stress")


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DailyReport:
    """One day's self-report, every metric on the 0-10 scale."""

    date: date
    sleep_recovery: float
    physical_load: float
    recovery_from_load: float
    psychological_stress: float
    energy_level: float


# ---------------------------------------------------------------------------
# Strain factors and weights
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NormalizedFactors:
    """Four strain values on the 0-10 scale, higher = more allostatic strain."""

    sleep: float
    load: float
    recovery: float
    stress: float

    def __iter__(self) -> Iterator[float]:
        return iter((self.sleep, self.load, self.recovery, self.stress))

    def as_dict(self) -> Dict[str, float]:
        return dict(zip(FACTOR_NAMES, self))


@dataclass(frozen=True)
class WeightVector:
    """Per-factor importance. Non-negative and summing to 1.0."""

    sleep: float
    load: float
    recovery: float
    stress: float
    tolerance: float = field(default=1e-6, compare=False, repr=False)

    def __post_init__(self):
        values = tuple(self)
        if any(v < 0 for v in values):
            raise InvariantViolation(f"Negative weight in {values}")
        total = sum(values)
        if abs(total - 1.0) > self.tolerance:
            raise InvariantViolation(f"Weights must sum to 1.0, got {total}")

    def __iter__(self) -> Iterator[float]:
        return iter((self.sleep, self.load, self.recovery, self.stress))

    def as_dict(self) -> Dict[str, float]:
        return dict(zip(FACTOR_NAMES, self))

    @classmethod
    def equal(cls) -> "WeightVector":
        """Transient default used until enough history exists."""
        return cls(0.25, 0.25, 0.25, 0.25)


@dataclass(frozen=True)
class WeightState:
    """A persisted weight snapshot, valid from `calculated_at` until superseded."""

    id: str
    calculated_at: date
    weights: WeightVector
    window_size: int
    source_range: Tuple[date, date]
    correlations: Dict[str, float]
    degenerate_factors: Tuple[str, ...] = ()
    trigger: str = "initial"


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SALIEntry:
    """Daily score with its fast and slow trend lines."""

    id: str
    date: date
    raw_sali: float
    sali_ema7: float
    sali_ema28: float
    weight_state_id: Optional[str]


class ConflictType(str, Enum):
    SLEEP_ENERGY = "sleep-energy-mismatch"
    STRESS_ENERGY = "stress-energy-mismatch"
    LOAD_RECOVERY = "load-recovery-mismatch"
    UNEXPLAINED = "unexplained-deviation"


# Factor named as the cause of a conflict -> conflict type
FACTOR_CONFLICT_TYPES = {
    "sleep": ConflictType.SLEEP_ENERGY,
    "stress": ConflictType.STRESS_ENERGY,
    "load": ConflictType.LOAD_RECOVERY,
    "recovery": ConflictType.LOAD_RECOVERY,
}


@dataclass(frozen=True)
class ConflictPattern:
    """Reported energy disagrees with the energy the weighted model implies."""

    id: str
    date: date
    type: ConflictType
    pattern: str
    magnitude: float
    detected_at: date


@dataclass(frozen=True)
class StrainFlag:
    """Rule-based acute or chronic strain pattern on raw report values."""

    kind: str
    pattern: str
    severity: str
    detected_at: date
    affected_metrics: Tuple[str, ...]
    description: str
    duration_days: Optional[int] = None
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SkippedDay:
    """An input day that produced no score, and why."""

    date: Optional[date]
    reason: str
    detail: str


@dataclass(frozen=True)
class ScoringResult:
    """Everything one pipeline run derives from a report history."""

    entries: List[SALIEntry]
    weight_states: List[WeightState]
    conflicts: List[ConflictPattern]
    skipped: List[SkippedDay]
    strain_flags: List[StrainFlag]
    fingerprint: str

    # Per-factor contribution to the latest day's score
    breakdown: List[Dict[str, object]] = field(default_factory=list)

    @property
    def latest(self) -> Optional[SALIEntry]:
        return self.entries[-1] if self.entries else None
