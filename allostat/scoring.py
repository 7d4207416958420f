"""
sALI scoring: combines strain factors and weights into one [0, 1] daily score.

    rawSALI = sum(w_i * f_i / 10) / sum(w_i)

Weights already sum to 1 within tolerance; dividing by their actual sum keeps
the extremes exact (all-10 factors -> 1.0, all-0 -> 0.0) regardless of
rounding in the weight fit.
"""

from typing import Dict, List

from allostat.config import AllostatConfig
from allostat.errors import InvariantViolation
from allostat.models import FACTOR_NAMES, NormalizedFactors, WeightVector


LEVEL_DESCRIPTIONS = {
    "optimal": "Well-balanced system with minimal strain. Recovery and adaptation are keeping up.",
    "good": "Low allostatic load. Demands are being handled with adequate recovery.",
    "moderate": "Moderate strain. Some areas need attention before load accumulates.",
    "high": "High allostatic load. The system is under significant strain; prioritise recovery.",
    "critical": "Critical strain. Immediate attention to recovery and stress reduction recommended.",
}


def score(factors: NormalizedFactors, weights: WeightVector, cfg: AllostatConfig) -> float:
    """Weighted average strain for one day, scaled into [0, 1]."""
    cap = cfg.scale.scale_max
    pairs = list(zip(weights, factors))

    numerator = sum(w * (f / cap) for w, f in pairs)
    denominator = sum(w for w, _ in pairs)
    raw = numerator / denominator

    if not 0.0 <= raw <= 1.0:
        raise InvariantViolation(f"rawSALI {raw} outside [0, 1] for {factors} / {weights}")
    return raw


# ---------------------------------------------------------------------------
# Interpretation
# ---------------------------------------------------------------------------

def sali_level(value: float, cfg: AllostatConfig) -> str:
    """Map a sALI value onto a named interpretation band."""
    b = cfg.levels
    if value <= b.optimal:
        return "optimal"
    if value <= b.good:
        return "good"
    if value <= b.moderate:
        return "moderate"
    if value <= b.high:
        return "high"
    return "critical"


def describe_level(level: str) -> str:
    return LEVEL_DESCRIPTIONS[level]


def contributor_breakdown(
    factors: NormalizedFactors,
    weights: WeightVector,
    cfg: AllostatConfig,
) -> List[Dict[str, object]]:
    """
    Each factor's contribution to the day's rawSALI, largest first.

    `share` is the contribution as a fraction of rawSALI (0 when rawSALI is 0).
    """
    cap = cfg.scale.scale_max
    raw = score(factors, weights, cfg)

    rows = []
    for name in FACTOR_NAMES:
        weight = getattr(weights, name)
        strain = getattr(factors, name)
        contribution = weight * strain / cap
        rows.append({
            "factor": name,
            "strain": strain,
            "weight": round(weight, 4),
            "contribution": round(contribution, 4),
            "share": round(contribution / raw, 4) if raw > 0 else 0.0,
        })

    rows.sort(key=lambda r: (-r["contribution"], FACTOR_NAMES.index(r["factor"])))
    return rows
