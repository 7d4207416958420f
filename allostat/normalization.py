"""
Metric normalization: maps a daily report onto four strain-scale factors.

Inputs already share the 0-10 scale, so this is only a polarity adjustment.
Fields where a high value means *less* strain (sleep recovery, recovery from
load) are inverted; load and stress are used as-is.
"""

import math
import numbers
from typing import List

from allostat.config import AllostatConfig
from allostat.errors import InvariantViolation, OutOfRangeInput
from allostat.models import DailyReport, NormalizedFactors


REPORT_FIELDS = (
    "sleep_recovery",
    "physical_load",
    "recovery_from_load",
    "psychological_stress",
    "energy_level",
)


def validate_report(report: DailyReport, cfg: AllostatConfig) -> None:
    """Raise OutOfRangeInput listing every field outside the configured scale."""
    lo, hi = cfg.scale.scale_min, cfg.scale.scale_max
    problems: List[str] = []

    for name in REPORT_FIELDS:
        value = getattr(report, name)
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            problems.append(f"{name}={value!r} is not numeric")
        elif math.isnan(value) or not lo <= value <= hi:
            problems.append(f"{name}={value} outside [{lo:g}, {hi:g}]")

    if problems:
        raise OutOfRangeInput(f"{report.date}: " + "; ".join(problems))


def normalize(report: DailyReport, cfg: AllostatConfig) -> NormalizedFactors:
    """Strain-scale factors for one report. Pure."""
    validate_report(report, cfg)
    cap = cfg.scale.scale_max

    factors = NormalizedFactors(
        sleep=cap - report.sleep_recovery,
        load=float(report.physical_load),
        recovery=cap - report.recovery_from_load,
        stress=float(report.psychological_stress),
    )

    for value in factors:
        if not cfg.scale.scale_min <= value <= cap:
            raise InvariantViolation(f"Normalized factor out of range: {factors}")
    return factors
