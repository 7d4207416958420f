"""
Adaptive factor weighting.

Weights express how strongly each strain factor tracks the energy anchor over
a rolling window: a factor whose strain moves with low energy gets more
weight. Recalculation is periodic, not per entry, and every result is a new
immutable WeightState.

    r_i = |pearson(strain_i, 10 - energy)|        over the last min(90, n) days
    p_i = r_i / sum(r)                            (equal split if all r_i == 0)
    w_i = floor + (1 - 4 * floor) * p_i

The floor keeps every factor in the model when it transiently decorrelates,
and the affine form guarantees sum(w) == 1 with w_i >= floor.
"""

import logging
from datetime import date
from typing import Dict, List, NamedTuple, Optional, Sequence

import numpy as np

from allostat.config import AllostatConfig
from allostat.errors import DegenerateCorrelation, InsufficientHistory
from allostat.models import FACTOR_NAMES, NormalizedFactors, WeightState, WeightVector

logger = logging.getLogger(__name__)


class HistoryDay(NamedTuple):
    date: date
    factors: NormalizedFactors
    energy: float


# ---------------------------------------------------------------------------
# Correlation primitive
# ---------------------------------------------------------------------------

def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson product-moment correlation of two equal-length series.

    Raises DegenerateCorrelation when either series is constant (or shorter
    than two points), since r is undefined there.
    """
    xa = np.asarray(x, dtype=np.float64)
    ya = np.asarray(y, dtype=np.float64)
    if xa.shape != ya.shape:
        raise ValueError(f"Series lengths differ: {len(xa)} vs {len(ya)}")

    n = len(xa)
    if n < 2:
        raise DegenerateCorrelation(f"Correlation needs at least 2 points, got {n}")

    x_c = xa - xa.mean()
    y_c = ya - ya.mean()
    sxx = np.dot(x_c, x_c)
    syy = np.dot(y_c, y_c)

    # Guard against rounding residue on constant non-binary fractions
    eps = 1e-12 * n
    if sxx <= eps or syy <= eps:
        raise DegenerateCorrelation("Zero-variance series")

    r = np.dot(x_c, y_c) / np.sqrt(sxx * syy)
    return float(np.clip(r, -1.0, 1.0))


# ---------------------------------------------------------------------------
# Weight computation
# ---------------------------------------------------------------------------

def weights_from_correlations(
    correlations: Dict[str, float],
    cfg: AllostatConfig,
) -> WeightVector:
    """Turn per-factor |r| into a floored weight vector summing to 1."""
    floor = cfg.weights.floor
    magnitudes = np.array([abs(correlations[name]) for name in FACTOR_NAMES], dtype=np.float64)
    total = magnitudes.sum()

    if total == 0.0:
        shares = np.full(len(FACTOR_NAMES), 1.0 / len(FACTOR_NAMES))
    else:
        shares = magnitudes / total

    weights = floor + (1.0 - len(FACTOR_NAMES) * floor) * shares
    return WeightVector(*(float(w) for w in weights), tolerance=cfg.weights.sum_tolerance)


def compute_weight_state(
    history: Sequence[HistoryDay],
    trigger: str,
    cfg: AllostatConfig,
) -> WeightState:
    """
    Fit weights on the trailing window of `history`, dated at its last day.

    Raises InsufficientHistory when the window is shorter than the minimum.
    """
    wp = cfg.weights
    if len(history) < wp.min_history_days:
        raise InsufficientHistory(len(history), wp.min_history_days)

    window = list(history[-wp.max_window_days:])
    cap = cfg.scale.scale_max
    inverse_energy = [cap - day.energy for day in window]

    correlations: Dict[str, float] = {}
    degenerate: List[str] = []
    for name in FACTOR_NAMES:
        series = [getattr(day.factors, name) for day in window]
        try:
            correlations[name] = abs(pearson(series, inverse_energy))
        except DegenerateCorrelation as exc:
            logger.warning("Degenerate %s correlation over %d days: %s", name, len(window), exc)
            correlations[name] = 0.0
            degenerate.append(name)

    calculated_at = window[-1].date
    state = WeightState(
        id=f"ws-{calculated_at.isoformat()}",
        calculated_at=calculated_at,
        weights=weights_from_correlations(correlations, cfg),
        window_size=len(window),
        source_range=(window[0].date, window[-1].date),
        correlations={k: round(v, 6) for k, v in correlations.items()},
        degenerate_factors=tuple(degenerate),
        trigger=trigger,
    )
    logger.debug("Weights recomputed (%s) on %s: %s", trigger, calculated_at, state.weights.as_dict())
    return state


# ---------------------------------------------------------------------------
# Recalculation policy
# ---------------------------------------------------------------------------

def recompute_trigger(
    today: date,
    last_state: Optional[WeightState],
    conflicts_since: int,
    cfg: AllostatConfig,
) -> Optional[str]:
    """
    Name the rule that calls for new weights today, or None.

    Decision order, first match wins:
        initial   — no weights have been fitted yet
        cadence   — the last fit is at least `recompute_interval_days` old
        conflicts — the model has mismatched energy repeatedly since the last fit
    """
    wp = cfg.weights
    if last_state is None:
        return "initial"
    if (today - last_state.calculated_at).days >= wp.recompute_interval_days:
        return "cadence"
    if conflicts_since >= wp.conflict_trigger_count:
        return "conflicts"
    return None


def maybe_recompute(
    history: Sequence[HistoryDay],
    last_state: Optional[WeightState],
    conflicts_since: int,
    cfg: AllostatConfig,
) -> Optional[WeightState]:
    """New WeightState if a trigger fires and history suffices, else None."""
    if not history:
        return None

    trigger = recompute_trigger(history[-1].date, last_state, conflicts_since, cfg)
    if trigger is None:
        return None

    try:
        return compute_weight_state(history, trigger, cfg)
    except InsufficientHistory as exc:
        logger.debug("Keeping current weights: %s", exc)
        return None


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

def weight_changes(
    current: WeightState,
    previous: WeightState,
) -> Dict[str, Dict[str, float]]:
    """Per-factor absolute and percent change between two weight states."""
    changes: Dict[str, Dict[str, float]] = {}
    for name in FACTOR_NAMES:
        now = getattr(current.weights, name)
        before = getattr(previous.weights, name)
        delta = now - before
        changes[name] = {
            "change": round(delta, 6),
            "percent_change": round(delta / before * 100, 3) if before > 0 else 0.0,
        }
    return changes
