"""
Trend smoothing: fast and slow exponential moving averages of rawSALI.

    alpha = 2 / (span + 1)
    ema_0 = raw_0
    ema_t = alpha * raw_t + (1 - alpha) * ema_(t-1)

Both series are always rebuilt from the start of the raw series. An EMA
cannot be "un-applied", so any change to an earlier raw value invalidates
every later point; there is no incremental state to fall out of sync.
"""

from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from allostat.config import AllostatConfig
from allostat.errors import InvariantViolation


def ema_series(values: Sequence[float], span: int) -> np.ndarray:
    """Span-based EMA seeded with the first value (no warm-up bias)."""
    if len(values) == 0:
        return np.array([], dtype=np.float64)
    series = pd.Series(values, dtype=np.float64)
    return series.ewm(span=span, adjust=False).mean().to_numpy()


def smooth(series: Sequence[float], cfg: AllostatConfig) -> List[Tuple[float, float]]:
    """(ema7, ema28) for every point of the raw sALI series, in order."""
    if len(series) == 0:
        return []

    fast = ema_series(series, cfg.ema.short_span)
    slow = ema_series(series, cfg.ema.long_span)

    # A convex combination of values in [0, 1] stays in [0, 1]; clip rounding residue only
    for ema in (fast, slow):
        if ema.min() < -1e-12 or ema.max() > 1.0 + 1e-12:
            raise InvariantViolation(f"EMA left [0, 1]: min={ema.min()}, max={ema.max()}")
    fast = np.clip(fast, 0.0, 1.0)
    slow = np.clip(slow, 0.0, 1.0)

    return [(float(f), float(s)) for f, s in zip(fast, slow)]


# ---------------------------------------------------------------------------
# Trend signals
# ---------------------------------------------------------------------------

def detect_crossovers(fast: Sequence[float], slow: Sequence[float]) -> List[Dict[str, object]]:
    """
    Indices where the fast EMA crosses the slow one.

    Higher sALI means more strain, so the fast line crossing above the slow
    line is a worsening signal and crossing below is an improving one.
    """
    if len(fast) != len(slow):
        raise ValueError("EMA series lengths differ")

    crossings: List[Dict[str, object]] = []
    for i in range(1, len(fast)):
        prev_gap = fast[i - 1] - slow[i - 1]
        gap = fast[i] - slow[i]
        if prev_gap <= 0 < gap:
            crossings.append({"index": i, "type": "worsening"})
        elif prev_gap >= 0 > gap:
            crossings.append({"index": i, "type": "improving"})
    return crossings


def classify_trend(current: float, previous: float, cfg: AllostatConfig) -> str:
    """Direction of a single EMA step: 'up', 'down' or 'flat'."""
    change = current - previous
    if abs(change) < cfg.trend.flat_threshold:
        return "flat"
    return "up" if change > 0 else "down"
