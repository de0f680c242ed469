"""Descriptive statistics over a student's graded activity history."""

from __future__ import annotations

import statistics
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from bloom_levels import BLOOM_LEVELS
from engines.records import ActivityCatalog, ActivityRecord
from pattern_settings import DEFAULT_THRESHOLDS, PatternThresholds

PEAK_BUCKETS = ("morning", "afternoon", "evening")


class InsufficientDataError(ValueError):
    """Raised when there are no records to aggregate."""


@dataclass(frozen=True)
class PatternSummary:
    """Performance and engagement patterns computed from one record set."""

    data_points: int
    average_score: float
    consistency_score: float
    improvement_trend: str
    score_delta: float
    peak_performance_time: str
    difficulty_adaptation: str
    attention_span: str
    time_ratio: Optional[float]
    procrastination_tendency: str
    help_seeking_behavior: str
    motivation_triggers: List[str] = field(default_factory=list)

    def performance_patterns(self) -> Dict[str, object]:
        return {
            "consistency_score": self.consistency_score,
            "improvement_trend": self.improvement_trend,
            "peak_performance_time": self.peak_performance_time,
            "difficulty_adaptation": self.difficulty_adaptation,
            "average_score": self.average_score,
            "score_delta": self.score_delta,
        }

    def engagement_patterns(self) -> Dict[str, object]:
        return {
            "attention_span": self.attention_span,
            "motivation_triggers": list(self.motivation_triggers),
            "procrastination_tendency": self.procrastination_tendency,
            "help_seeking_behavior": self.help_seeking_behavior,
        }


def sort_records(records: Sequence[ActivityRecord]) -> List[ActivityRecord]:
    """Chronological order with a stable tie-break independent of input order."""
    return sorted(
        records,
        key=lambda r: (r.completed_at, r.activity_id, r.score, r.max_score, r.time_spent_minutes),
    )


def aggregate(
    records: Sequence[ActivityRecord],
    catalog: Optional[ActivityCatalog] = None,
    thresholds: Optional[PatternThresholds] = None,
) -> PatternSummary:
    """Reduce ``records`` to a fixed-shape pattern summary.

    The result depends only on the multiset of records: they are sorted
    internally, so the order in which the store returned them is irrelevant.
    """
    if not records:
        raise InsufficientDataError("no activity records to aggregate")

    cfg = thresholds or DEFAULT_THRESHOLDS
    meta = catalog or {}
    ordered = sort_records(records)
    percentages = [r.percentage for r in ordered]

    trend, delta = improvement_trend(percentages, cfg)
    consistency = consistency_score(percentages, cfg)
    peak = peak_performance_time(ordered, cfg)
    ratios = time_ratios(ordered, meta, cfg)
    mean_ratio = statistics.fmean(ratios) if ratios else None
    adaptation = difficulty_adaptation(ordered)

    summary = PatternSummary(
        data_points=len(ordered),
        average_score=round(statistics.fmean(percentages), 1),
        consistency_score=consistency,
        improvement_trend=trend,
        score_delta=round(delta, 1),
        peak_performance_time=peak,
        difficulty_adaptation=adaptation,
        attention_span=attention_span(mean_ratio, cfg),
        time_ratio=round(mean_ratio, 3) if mean_ratio is not None else None,
        procrastination_tendency=procrastination_tendency(ordered, meta),
        help_seeking_behavior=help_seeking_behavior(ordered, meta, cfg),
    )
    return _with_triggers(summary, ordered, cfg)


# ---------------------------------------------------------------------------
def consistency_score(percentages: Sequence[float], cfg: PatternThresholds = DEFAULT_THRESHOLDS) -> float:
    """100 minus the scaled coefficient of variation, clamped to [0, 100]."""
    if len(percentages) < 2:
        return 0.0
    mean = statistics.fmean(percentages)
    if mean <= 0:
        return 100.0
    cv = statistics.pstdev(percentages) / mean
    return round(max(0.0, min(100.0, 100.0 - cv * cfg.consistency_cv_scale)), 1)


def improvement_trend(
    percentages: Sequence[float],
    cfg: PatternThresholds = DEFAULT_THRESHOLDS,
) -> tuple[str, float]:
    """Compare the most recent third of scores with the earliest third."""
    if len(percentages) < 2:
        return "plateauing", 0.0
    third = max(1, len(percentages) // 3)
    delta = statistics.fmean(percentages[-third:]) - statistics.fmean(percentages[:third])
    if delta > cfg.trend_accelerating_delta:
        return "accelerating", delta
    if delta < cfg.trend_declining_delta:
        return "declining", delta
    if delta <= cfg.trend_steady_upper:
        return "steady", delta
    return "plateauing", delta


def time_bucket(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    return "evening"


def peak_performance_time(
    records: Sequence[ActivityRecord],
    cfg: PatternThresholds = DEFAULT_THRESHOLDS,
) -> str:
    buckets: Dict[str, List[float]] = {name: [] for name in PEAK_BUCKETS}
    for record in records:
        buckets[time_bucket(record.completed_at.hour)].append(record.percentage)

    best: Optional[str] = None
    best_mean = -1.0
    for name in PEAK_BUCKETS:
        scores = buckets[name]
        if len(scores) < cfg.peak_min_records:
            continue
        mean = statistics.fmean(scores)
        if mean > best_mean:
            best, best_mean = name, mean
    return best or "variable"


def expected_minutes(record: ActivityRecord, catalog: ActivityCatalog, cfg: PatternThresholds) -> float:
    meta = catalog.get(record.activity_id)
    if meta is not None and meta.expected_minutes and meta.expected_minutes > 0:
        return float(meta.expected_minutes)
    return cfg.default_expected_minutes


def time_ratios(
    records: Sequence[ActivityRecord],
    catalog: ActivityCatalog,
    cfg: PatternThresholds = DEFAULT_THRESHOLDS,
) -> List[float]:
    return [
        max(0.0, r.time_spent_minutes) / expected_minutes(r, catalog, cfg)
        for r in records
    ]


def attention_span(mean_ratio: Optional[float], cfg: PatternThresholds = DEFAULT_THRESHOLDS) -> str:
    if mean_ratio is None:
        return "medium"
    if mean_ratio < cfg.attention_short_ratio:
        return "short"
    if mean_ratio > cfg.attention_long_ratio:
        return "long"
    return "medium"


def split_by_order(records: Sequence[ActivityRecord]) -> tuple[List[float], List[float]]:
    """Split percentages into (lower-order, higher-order) Bloom groups."""
    lower: List[float] = []
    higher: List[float] = []
    for record in records:
        if BLOOM_LEVELS.normalize(record.blooms_level) is None:
            continue
        if BLOOM_LEVELS.is_higher_order(record.blooms_level):
            higher.append(record.percentage)
        else:
            lower.append(record.percentage)
    return lower, higher


def difficulty_adaptation(records: Sequence[ActivityRecord]) -> str:
    lower, higher = split_by_order(records)
    if not lower or not higher:
        return "moderate"
    drop = statistics.fmean(lower) - statistics.fmean(higher)
    if drop <= 10:
        return "quick"
    if drop <= 25:
        return "moderate"
    return "slow"


def procrastination_tendency(records: Sequence[ActivityRecord], catalog: ActivityCatalog) -> str:
    late = 0
    with_due = 0
    for record in records:
        meta = catalog.get(record.activity_id)
        if meta is None or meta.due_at is None:
            continue
        with_due += 1
        if record.completed_at > meta.due_at - timedelta(hours=24):
            late += 1
    if not with_due:
        return "moderate"
    share = late / with_due
    if share > 0.5:
        return "high"
    if share > 0.25:
        return "moderate"
    return "low"


def help_seeking_behavior(
    records: Sequence[ActivityRecord],
    catalog: ActivityCatalog,
    cfg: PatternThresholds = DEFAULT_THRESHOLDS,
) -> str:
    struggling = [r for r in records if r.percentage < cfg.low_score_percent]
    if not struggling:
        return "reactive"
    ratio = statistics.fmean(time_ratios(struggling, catalog, cfg))
    if ratio < cfg.attention_short_ratio:
        return "reluctant"
    if ratio > cfg.attention_long_ratio:
        return "proactive"
    return "reactive"


def _with_triggers(
    summary: PatternSummary,
    records: Sequence[ActivityRecord],
    cfg: PatternThresholds,
) -> PatternSummary:
    triggers: List[str] = []
    _, higher = split_by_order(records)
    # unrounded on both sides
    if higher and statistics.fmean(higher) >= statistics.fmean(r.percentage for r in records):
        triggers.append("challenging problems")
    if summary.improvement_trend == "accelerating":
        triggers.append("visible progress")
    if summary.peak_performance_time != "variable":
        triggers.append(f"{summary.peak_performance_time} study sessions")
    if summary.data_points >= cfg.min_records and summary.consistency_score >= cfg.consistency_strength:
        triggers.append("clear routines")
    return replace(summary, motivation_triggers=triggers)
