"""
Pattern detectors: model/energy conflicts and rule-based strain flags.

Each detector is a pure function that inspects already-computed values and
returns structured records. No side effects.
"""

from datetime import date
from typing import List, Optional, Sequence, Tuple

import numpy as np

from allostat.config import AllostatConfig
from allostat.models import (
    FACTOR_CONFLICT_TYPES,
    FACTOR_NAMES,
    ConflictPattern,
    ConflictType,
    DailyReport,
    NormalizedFactors,
    StrainFlag,
    WeightVector,
)


# ---------------------------------------------------------------------------
# Model conflict detection
# ---------------------------------------------------------------------------

def detect(
    day: date,
    factors: NormalizedFactors,
    weights: WeightVector,
    actual_energy: float,
    raw_sali: float,
    cfg: AllostatConfig,
) -> Optional[ConflictPattern]:
    """
    Flag a day whose reported energy disagrees with the model's implied energy.

    implied = 10 - rawSALI * 10. A conflict fires when
    |implied - actual| >= threshold.

    Attribution: reported energy implies a strain level of (10 - actual).
    Each factor contributes w_i * (f_i - (10 - actual)); the contributions
    sum to (actual - implied). The factor pushing hardest in the deviation's
    direction names the conflict if it carries at least `dominance` of it,
    otherwise the deviation is unexplained.
    """
    ct = cfg.conflict
    cap = cfg.scale.scale_max

    implied = cap - raw_sali * cap
    deviation = actual_energy - implied
    magnitude = abs(deviation)
    if magnitude < ct.deviation:
        return None

    expected_strain = cap - actual_energy
    contributions = {
        name: getattr(weights, name) * (getattr(factors, name) - expected_strain)
        for name in FACTOR_NAMES
    }

    direction = 1.0 if deviation > 0 else -1.0
    culprit = max(FACTOR_NAMES, key=lambda name: contributions[name] * direction)
    share = contributions[culprit] * direction / magnitude

    conflict_type = FACTOR_CONFLICT_TYPES[culprit] if share >= ct.dominance else ConflictType.UNEXPLAINED

    side = "above" if direction > 0 else "below"
    detail = ", ".join(f"{name} {contributions[name]:+.2f}" for name in FACTOR_NAMES)
    pattern = (
        f"energy {side} model (reported {actual_energy:g}, implied {implied:.2f}); "
        f"{culprit} carries {share:.0%}; {detail}"
    )

    return ConflictPattern(
        id=f"conflict-{day.isoformat()}",
        date=day,
        type=conflict_type,
        pattern=pattern,
        magnitude=magnitude,
        detected_at=day,
    )


# ---------------------------------------------------------------------------
# Rule-based strain flags (acute + chronic)
# ---------------------------------------------------------------------------

PATTERN_RECOMMENDATIONS = {
    "high_load_low_recovery": (
        "Schedule a rest day or active recovery session",
        "Aim for 7-9 hours of sleep tonight",
        "Reduce workout intensity tomorrow",
        "Focus on nutrition and hydration",
    ),
    "poor_sleep_high_stress": (
        "Practice a relaxation technique before bed",
        "Limit screen time in the hour before sleep",
        "Try meditation or breathing exercises",
        "Journal to process stress",
    ),
    "overwork": (
        "Review the schedule for non-essential tasks",
        "Delegate or postpone lower-priority items",
        "Schedule breaks throughout the day",
        "Discuss workload with a supervisor",
    ),
    "fatigue_with_load": (
        "Reduce physical demands today",
        "Take short breaks to prevent further depletion",
        "Prioritize sleep and recovery tonight",
        "Re-evaluate energy management",
    ),
    "prolonged_stress": (
        "Consult a healthcare provider or therapist",
        "Use a stress management technique daily",
        "Identify and address chronic stressors",
        "Consider lifestyle changes that reduce ongoing stress",
    ),
    "chronic_sleep_deficit": (
        "Keep a consistent sleep schedule",
        "Build a relaxing bedtime routine",
        "Check the sleep environment (temperature, light, noise)",
        "See a sleep specialist if problems persist",
    ),
    "prolonged_fatigue": (
        "Consult a healthcare provider to rule out medical causes",
        "Review nutrition for a balanced diet",
        "Increase physical activity gradually",
        "Address any underlying sleep or stress issues",
    ),
    "brain_fog": (
        "Consult a healthcare provider, this is a serious pattern",
        "A comprehensive health evaluation is recommended",
        "Review medication side effects",
        "Consider cognitive behavioral therapy",
    ),
}

DEFAULT_RECOMMENDATIONS = ("Monitor the situation and track trends",)


def recommendations_for(pattern: str) -> Tuple[str, ...]:
    """Actionable next steps for a strain-flag pattern."""
    return PATTERN_RECOMMENDATIONS.get(pattern, DEFAULT_RECOMMENDATIONS)

def _severity(first: float, second: float, cfg: AllostatConfig) -> str:
    combined = first + second
    t = cfg.strain_flags
    if combined >= t.severity_high:
        return "high"
    if combined >= t.severity_medium:
        return "medium"
    return "low"


def detect_acute_flags(latest: DailyReport, cfg: AllostatConfig) -> List[StrainFlag]:
    """Two-factor strain combinations on the most recent day."""
    t = cfg.strain_flags
    cap = cfg.scale.scale_max
    flags: List[StrainFlag] = []

    def flag(pattern, first, second, metrics, description):
        flags.append(StrainFlag(
            kind="acute",
            pattern=pattern,
            severity=_severity(first, second, cfg),
            detected_at=latest.date,
            affected_metrics=metrics,
            description=description,
            recommendations=recommendations_for(pattern),
        ))

    if latest.physical_load > t.high_load and latest.recovery_from_load < t.low_recovery:
        flag("high_load_low_recovery", latest.physical_load, cap - latest.recovery_from_load,
             ("physical_load", "recovery_from_load"),
             "High physical load without adequate recovery")

    if latest.psychological_stress > t.high_stress and latest.sleep_recovery < t.low_sleep:
        flag("poor_sleep_high_stress", latest.psychological_stress, cap - latest.sleep_recovery,
             ("psychological_stress", "sleep_recovery"),
             "High stress combined with poor sleep")

    if latest.physical_load > t.high_load and latest.psychological_stress > t.high_stress:
        flag("overwork", latest.physical_load, latest.psychological_stress,
             ("physical_load", "psychological_stress"),
             "High physical and psychological demands at the same time")

    if latest.energy_level < t.low_energy and latest.physical_load > t.high_load:
        flag("fatigue_with_load", cap - latest.energy_level, latest.physical_load,
             ("energy_level", "physical_load"),
             "Continuing high physical load despite low energy")

    return flags


def detect_chronic_flags(reports: Sequence[DailyReport], cfg: AllostatConfig) -> List[StrainFlag]:
    """Sustained patterns over trailing windows of the report history."""
    t = cfg.strain_flags
    flags: List[StrainFlag] = []
    if len(reports) < t.chronic_days:
        return flags

    latest = reports[-1].date

    def flag(pattern, severe, metrics, description, days):
        flags.append(StrainFlag(
            kind="chronic",
            pattern=pattern,
            severity="high" if severe else "medium",
            detected_at=latest,
            affected_metrics=metrics,
            description=description,
            duration_days=days,
            recommendations=recommendations_for(pattern),
        ))

    recent = reports[-t.chronic_days:]
    stress = float(np.mean([r.psychological_stress for r in recent]))
    sleep = float(np.mean([r.sleep_recovery for r in recent]))
    energy = float(np.mean([r.energy_level for r in recent]))

    if stress > t.chronic_stress:
        flag("prolonged_stress", stress > t.chronic_stress_severe,
             ("psychological_stress",), "Sustained elevated stress", t.chronic_days)

    if sleep < t.chronic_sleep:
        flag("chronic_sleep_deficit", sleep < t.chronic_sleep_severe,
             ("sleep_recovery",), "Sustained poor sleep quality", t.chronic_days)

    if energy < t.chronic_fatigue:
        flag("prolonged_fatigue", energy < t.chronic_fatigue_severe,
             ("energy_level",), "Sustained low energy", t.chronic_days)

    if len(reports) >= t.brain_fog_days:
        long_window = reports[-t.brain_fog_days:]
        fog_energy = float(np.mean([r.energy_level for r in long_window]))
        fog_stress = float(np.mean([r.psychological_stress for r in long_window]))
        if fog_energy < t.brain_fog_energy and fog_stress > t.brain_fog_stress:
            flag("brain_fog", True, ("energy_level", "psychological_stress"),
                 "Persistent low energy with high stress", t.brain_fog_days)

    return flags


def detect_strain_flags(reports: Sequence[DailyReport], cfg: AllostatConfig) -> List[StrainFlag]:
    """All acute and chronic strain flags as of the last report."""
    if not reports:
        return []
    return detect_acute_flags(reports[-1], cfg) + detect_chronic_flags(reports, cfg)
