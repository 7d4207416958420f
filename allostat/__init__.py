"""
ALLOSTAT — Adaptive Allostatic Load Engine

Reduces daily self-reports (sleep recovery, physical load, recovery from
load, psychological stress, energy) to a bounded Allostatic Load Index
(sALI) using per-factor weights learned against the person's own energy.

Architecture:
    config         — All thresholds, windows, and weighting parameters
    models         — Immutable records (reports, factors, weights, entries, conflicts)
    normalization  — Report → strain-scale factors
    weights        — Adaptive weights from rolling energy correlation
    scoring        — Weighted sALI score and its interpretation
    smoothing      — Fast/slow EMA trend lines
    detectors      — Model/energy conflicts and rule-based strain flags
    pipeline       — Orchestration: validate → normalize → weigh → score → detect → smooth

The core is stateless and performs no I/O; results are derived views that
can be discarded and recomputed whenever the report history changes.

Public API:
    analyze(filepath)        → CLI mode
    analyze_data(records)    → UI / backend mode
    score_reports(reports)   → typed records
    generate_report(result)  → formatted report
"""

from allostat.pipeline import (
    analyze,
    analyze_data,
    generate_report,
    is_stale,
    score_reports,
)

__version__ = "1.0.0"

__all__ = ["analyze", "analyze_data", "generate_report", "is_stale", "score_reports"]
