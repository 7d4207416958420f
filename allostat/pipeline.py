"""
Pipeline orchestration: validate → normalize → weigh → score → detect → smooth → report.

This is the only module with I/O (file loading, report formatting).
All analytical logic is delegated to normalization, weights, scoring,
smoothing and detectors.

Ordering contract:
    score_reports() and analyze_data() consume reports in the order given and
    never re-sort. Of consecutive reports for one date the last is kept. A
    report that breaks the chronological run of its neighbours is skipped and
    reported; the days around it still score. Only the CLI loader (load_data)
    sorts, acting as the caller on the user's behalf.

Caching contract:
    A ScoringResult is a derived view of its input reports. Compare
    is_stale(result, reports) before reusing one; when anything upstream
    changes, rerun score_reports() over the full history.
"""

import bisect
import dataclasses
import hashlib
import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

import pandas as pd

from allostat.config import AllostatConfig
from allostat.detectors import detect, detect_strain_flags
from allostat.errors import OutOfRangeInput
from allostat.models import (
    DailyReport,
    SALIEntry,
    ScoringResult,
    SkippedDay,
    WeightState,
    WeightVector,
)
from allostat.normalization import REPORT_FIELDS, normalize
from allostat.scoring import contributor_breakdown, describe_level, sali_level, score
from allostat.smoothing import classify_trend, detect_crossovers, smooth
from allostat.weights import HistoryDay, maybe_recompute, weight_changes

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Record loading
# ---------------------------------------------------------------------------

REQUIRED_COLUMNS = {"date", *REPORT_FIELDS}

# Field names used by the mobile client's local store
COLUMN_ALIASES = {
    "sleepRecovery": "sleep_recovery",
    "physicalLoad": "physical_load",
    "recoveryFromLoad": "recovery_from_load",
    "psychologicalStress": "psychological_stress",
    "energyLevel": "energy_level",
}


def _prepare_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Rename client aliases, check columns, coerce types. Does not sort."""
    df = df.rename(columns=COLUMN_ALIASES)

    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")

    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    for col in REPORT_FIELDS:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def load_data(filepath: Union[str, Path]) -> pd.DataFrame:
    """Load daily reports from a JSON file, sorted by date."""
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    with open(path, "r") as f:
        data = json.load(f)

    if not data:
        raise ValueError("Data file is empty")

    df = _prepare_frame(pd.DataFrame(data))
    df.sort_values("date", inplace=True, kind="mergesort")
    df.reset_index(drop=True, inplace=True)
    return df


def frame_to_reports(df: pd.DataFrame) -> Tuple[List[DailyReport], List[SkippedDay]]:
    """Convert prepared rows into DailyReports; rows without a usable date are skipped."""
    reports: List[DailyReport] = []
    skipped: List[SkippedDay] = []

    for row in df.to_dict("records"):
        if pd.isna(row["date"]):
            skipped.append(SkippedDay(None, "invalid_date", f"Unparseable date in row {row}"))
            continue
        reports.append(DailyReport(
            date=row["date"].date(),
            **{name: float(row[name]) for name in REPORT_FIELDS},
        ))

    return reports, skipped


# ---------------------------------------------------------------------------
# Cache identity
# ---------------------------------------------------------------------------

def input_fingerprint(reports: Sequence[DailyReport]) -> str:
    """Stable hash of the report sequence a result was derived from."""
    canonical = [
        [str(r.date)] + [repr(getattr(r, name)) for name in REPORT_FIELDS]
        for r in reports
    ]
    payload = json.dumps(canonical, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def is_stale(result: ScoringResult, reports: Sequence[DailyReport]) -> bool:
    """True when `result` no longer matches `reports` and must be recomputed."""
    return result.fingerprint != input_fingerprint(reports)


# ---------------------------------------------------------------------------
# Core scoring (PURE FUNCTION — NO FILE I/O)
# ---------------------------------------------------------------------------

def _coerce_date(report: DailyReport) -> DailyReport:
    day = report.date
    if isinstance(day, datetime):
        return dataclasses.replace(report, date=day.date())
    if not isinstance(day, date):
        raise OutOfRangeInput(f"Invalid date {day!r}", reason="invalid_date")
    return report


def _longest_chronological_run(days: Sequence[date]) -> Set[int]:
    """Positions of the longest strictly increasing subsequence of `days`."""
    tails: List[date] = []
    tail_pos: List[int] = []
    parent: List[Optional[int]] = [None] * len(days)

    for i, day in enumerate(days):
        slot = bisect.bisect_left(tails, day)
        if slot == len(tails):
            tails.append(day)
            tail_pos.append(i)
        else:
            tails[slot] = day
            tail_pos[slot] = i
        parent[i] = tail_pos[slot - 1] if slot > 0 else None

    keep: Set[int] = set()
    pos = tail_pos[-1] if tail_pos else None
    while pos is not None:
        keep.add(pos)
        pos = parent[pos]
    return keep


def _order_reports(
    reports: Sequence[DailyReport],
) -> Tuple[List[Optional[DailyReport]], Dict[int, SkippedDay]]:
    """
    Decide which reports get scored, without re-sorting them.

    Consecutive reports for the same date: the last one replaces the others.
    Of what remains, the longest strictly chronological subsequence is kept,
    so a single misdated report drops only itself and not the days after it.

    Returns the date-coerced reports by input position and the rejected
    positions with their skip records.
    """
    plan: List[Optional[DailyReport]] = []
    rejected: Dict[int, SkippedDay] = {}

    for i, report in enumerate(reports):
        try:
            plan.append(_coerce_date(report))
        except OutOfRangeInput as exc:
            plan.append(None)
            rejected[i] = SkippedDay(None, exc.reason, str(exc))

    dated = [i for i, r in enumerate(plan) if r is not None]
    for prev, nxt in zip(dated, dated[1:]):
        if plan[prev].date == plan[nxt].date:
            rejected[prev] = SkippedDay(
                plan[prev].date, "duplicate_date",
                f"{plan[prev].date}: replaced by a later report for the same date",
            )

    candidates = [i for i in dated if i not in rejected]
    keep = _longest_chronological_run([plan[i].date for i in candidates])
    for pos, i in enumerate(candidates):
        if pos not in keep:
            rejected[i] = SkippedDay(
                plan[i].date, "out_of_order",
                f"{plan[i].date}: out of chronological order with the surrounding reports",
            )

    return plan, rejected


def score_reports(
    reports: Sequence[DailyReport],
    cfg: AllostatConfig | None = None,
) -> ScoringResult:
    """
    Score a chronologically ordered report history from scratch.

    Stateless.
    Per-day failures are collected in `skipped`; the rest of the range is
    still scored.
    """
    if cfg is None:
        cfg = AllostatConfig()

    history: List[HistoryDay] = []
    accepted: List[DailyReport] = []
    states: List[WeightState] = []
    conflicts = []
    skipped: List[SkippedDay] = []
    rows: List[Tuple[date, float, Optional[str]]] = []

    active: Optional[WeightState] = None
    conflicts_since = 0
    last_factors = None

    plan, rejected = _order_reports(reports)

    for i, report in enumerate(plan):
        if i in rejected:
            logger.warning("Skipping report: %s", rejected[i].detail)
            skipped.append(rejected[i])
            continue
        try:
            factors = normalize(report, cfg)
        except OutOfRangeInput as exc:
            logger.warning("Skipping report: %s", exc)
            skipped.append(SkippedDay(report.date, exc.reason, str(exc)))
            continue

        accepted.append(report)
        history.append(HistoryDay(report.date, factors, float(report.energy_level)))

        # Stage 1: weights (history up to and including today only)
        new_state = maybe_recompute(history, active, conflicts_since, cfg)
        if new_state is not None:
            states.append(new_state)
            active = new_state
            conflicts_since = 0

        weights = active.weights if active is not None else WeightVector.equal()

        # Stage 2: score
        raw = score(factors, weights, cfg)

        # Stage 3: conflict
        conflict = detect(report.date, factors, weights, report.energy_level, raw, cfg)
        if conflict is not None:
            conflicts.append(conflict)
            if active is not None:
                conflicts_since += 1

        rows.append((report.date, raw, active.id if active is not None else None))
        last_factors = (factors, weights)

    # Stage 4: smoothing over the full raw series
    emas = smooth([raw for _, raw, _ in rows], cfg)
    entries = [
        SALIEntry(
            id=f"sali-{day.isoformat()}",
            date=day,
            raw_sali=raw,
            sali_ema7=fast,
            sali_ema28=slow,
            weight_state_id=state_id,
        )
        for (day, raw, state_id), (fast, slow) in zip(rows, emas)
    ]

    breakdown = contributor_breakdown(*last_factors, cfg) if last_factors else []

    logger.info(
        "Scored %d days (%d skipped), %d weight states, %d conflicts",
        len(entries), len(skipped), len(states), len(conflicts),
    )

    return ScoringResult(
        entries=entries,
        weight_states=states,
        conflicts=conflicts,
        skipped=skipped,
        strain_flags=detect_strain_flags(accepted, cfg),
        fingerprint=input_fingerprint(reports),
        breakdown=breakdown,
    )


# ---------------------------------------------------------------------------
# Consumer views
# ---------------------------------------------------------------------------

def calculation_status(n_days: int, cfg: AllostatConfig | None = None) -> Dict:
    """How close a history is to personalized weights."""
    if cfg is None:
        cfg = AllostatConfig()
    required = cfg.weights.min_history_days
    needed = max(0, required - n_days)

    if needed == 0:
        message = "Personalized weights active"
    elif needed == 1:
        message = "1 more day needed for personalized weights"
    else:
        message = f"{needed} more days needed for personalized weights"

    return {
        "personalized": needed == 0,
        "days_needed": needed,
        "progress_pct": round(min(100.0, n_days / required * 100), 1),
        "message": message,
    }


def entries_frame(result: ScoringResult) -> pd.DataFrame:
    """The sALI series as a date-indexed DataFrame, for chart consumers."""
    columns = ["raw_sali", "sali_ema7", "sali_ema28", "weight_state_id"]
    if not result.entries:
        return pd.DataFrame(columns=columns, index=pd.DatetimeIndex([], name="date"))

    df = pd.DataFrame([dataclasses.asdict(e) for e in result.entries])
    df["date"] = pd.to_datetime(df["date"])
    return df.set_index("date")[columns]


def _summary(result: ScoringResult, cfg: AllostatConfig) -> Dict:
    entries = result.entries
    status = calculation_status(len(entries), cfg)
    if not entries:
        return {"status": status}

    latest = result.latest
    previous = entries[-2] if len(entries) > 1 else latest
    level = sali_level(latest.raw_sali, cfg)
    active = result.weight_states[-1].weights if result.weight_states else WeightVector.equal()

    summary = {
        "status": status,
        "date": latest.date.isoformat(),
        "sali": round(latest.raw_sali, 4),
        "level": level,
        "description": describe_level(level),
        "ema7": round(latest.sali_ema7, 4),
        "ema28": round(latest.sali_ema28, 4),
        "trend_short": classify_trend(latest.sali_ema7, previous.sali_ema7, cfg),
        "trend_long": classify_trend(latest.sali_ema28, previous.sali_ema28, cfg),
        "crossovers": [
            {"date": entries[c["index"]].date.isoformat(), "type": c["type"]}
            for c in detect_crossovers(
                [e.sali_ema7 for e in entries], [e.sali_ema28 for e in entries]
            )
        ],
        "weights": {k: round(v, 4) for k, v in active.as_dict().items()},
        "breakdown": result.breakdown,
    }
    if len(result.weight_states) > 1:
        summary["weight_shift"] = weight_changes(result.weight_states[-1], result.weight_states[-2])
    return summary


def result_to_dict(result: ScoringResult, cfg: AllostatConfig | None = None) -> Dict:
    """JSON-ready view of a ScoringResult. Identical input gives identical output."""
    if cfg is None:
        cfg = AllostatConfig()

    return {
        "entries": [
            {
                "id": e.id,
                "date": e.date.isoformat(),
                "raw_sali": round(e.raw_sali, 6),
                "sali_ema7": round(e.sali_ema7, 6),
                "sali_ema28": round(e.sali_ema28, 6),
                "weight_state_id": e.weight_state_id,
            }
            for e in result.entries
        ],
        "weight_states": [
            {
                "id": s.id,
                "calculated_at": s.calculated_at.isoformat(),
                "weights": {k: round(v, 6) for k, v in s.weights.as_dict().items()},
                "window_size": s.window_size,
                "source_range": [s.source_range[0].isoformat(), s.source_range[1].isoformat()],
                "correlations": s.correlations,
                "degenerate_factors": list(s.degenerate_factors),
                "trigger": s.trigger,
            }
            for s in result.weight_states
        ],
        "conflicts": [
            {
                "id": c.id,
                "date": c.date.isoformat(),
                "type": c.type.value,
                "pattern": c.pattern,
                "magnitude": round(c.magnitude, 4),
                "detected_at": c.detected_at.isoformat(),
            }
            for c in result.conflicts
        ],
        "skipped": [
            {
                "date": s.date.isoformat() if s.date else None,
                "reason": s.reason,
                "detail": s.detail,
            }
            for s in result.skipped
        ],
        "strain_flags": [
            {
                "kind": f.kind,
                "pattern": f.pattern,
                "severity": f.severity,
                "detected_at": f.detected_at.isoformat(),
                "affected_metrics": list(f.affected_metrics),
                "description": f.description,
                "duration_days": f.duration_days,
                "recommendations": list(f.recommendations),
            }
            for f in result.strain_flags
        ],
        "summary": _summary(result, cfg),
        "fingerprint": result.fingerprint,
    }


# ---------------------------------------------------------------------------
# Public Entry Points
# ---------------------------------------------------------------------------

def _analyze_df(df: pd.DataFrame, cfg: AllostatConfig) -> Dict:
    reports, unparsed = frame_to_reports(df)
    result = score_reports(reports, cfg)
    if unparsed:
        result = dataclasses.replace(result, skipped=unparsed + result.skipped)
    return result_to_dict(result, cfg)


def analyze(
    filepath: Union[str, Path],
    cfg: AllostatConfig | None = None,
) -> Dict:
    """
    CLI-compatible entry point.
    Reads a JSON file, sorts it by date, and runs the pipeline.
    """
    if cfg is None:
        cfg = AllostatConfig()

    df = load_data(filepath)
    return _analyze_df(df, cfg)


def analyze_data(
    data: list[dict],
    cfg: AllostatConfig | None = None,
) -> Dict:
    """
    Backend / UI integration entry point.

    Accepts list-of-dict records already sorted by date. Does not re-sort.
    An empty list yields empty outputs.
    """
    if cfg is None:
        cfg = AllostatConfig()

    if not data:
        return result_to_dict(score_reports([], cfg), cfg)

    df = _prepare_frame(pd.DataFrame(data))
    return _analyze_df(df, cfg)


# ---------------------------------------------------------------------------
# Report generation
# ---------------------------------------------------------------------------

def generate_report(result: Dict) -> str:
    """Format the analysis result as a human-readable text report."""
    summary = result["summary"]
    status = summary["status"]

    lines = [
        "ALLOSTATIC LOAD REPORT",
        "=" * 58,
        "",
    ]

    if "sali" not in summary:
        lines.append("  No scored days.")
    else:
        lines += [
            f"  Date                : {summary['date']}",
            f"  sALI                : {summary['sali']} ({summary['level']})",
            f"  EMA (7d)            : {summary['ema7']} [{summary['trend_short']}]",
            f"  EMA (28d)           : {summary['ema28']} [{summary['trend_long']}]",
            f"  Weights             : {status['message']}",
        ]
        for name, weight in summary["weights"].items():
            lines.append(f"    {name.title():15s} : {weight:.3f}")
        lines += ["", f"  {summary['description']}"]

        lines += ["", "  Top Contributors:"]
        for row in summary["breakdown"]:
            lines.append(
                f"    {row['factor'].title():15s} : strain {row['strain']:4.1f}"
                f"  contribution {row['contribution']:.3f} ({row['share']:.0%})"
            )

        if summary["crossovers"]:
            last = summary["crossovers"][-1]
            lines += ["", f"  Last EMA crossover  : {last['date']} ({last['type']})"]

    if result["conflicts"]:
        lines += ["", f"  Conflicts Detected ({len(result['conflicts'])}):"]
        for c in result["conflicts"][-5:]:
            lines.append(f"    - {c['date']}  {c['type']:24s} magnitude {c['magnitude']:.2f}")

    if result["strain_flags"]:
        lines += ["", "  Strain Flags:"]
        for f in result["strain_flags"]:
            lines.append(f"    - [{f['severity']}] {f['pattern']}: {f['description']}")
            for rec in f["recommendations"][:2]:
                lines.append(f"        > {rec}")

    if result["skipped"]:
        lines += ["", f"  Skipped Days ({len(result['skipped'])}):"]
        for s in result["skipped"]:
            lines.append(f"    - {s['date'] or '?'}  {s['reason']}")

    lines.append("")
    lines.append("=" * 58)
    return "\n".join(lines)
