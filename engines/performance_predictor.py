"""Predict a student's percentage score on a prospective activity."""

from __future__ import annotations

import statistics
from typing import Dict, List, Optional, Sequence

from bloom_levels import BLOOM_LEVELS
from engines.pattern_aggregator import consistency_score, improvement_trend, sort_records
from engines.records import ActivityCatalog, ActivityRecord
from pattern_settings import DEFAULT_THRESHOLDS, PatternThresholds
from schemas import PerformancePrediction

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 10
# matched records needed before the volume term of the confidence saturates
FULL_CONFIDENCE_MATCHES = 10


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def validate_difficulty(difficulty: float) -> float:
    try:
        value = float(difficulty)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"difficulty must be a number, got {difficulty!r}") from exc
    if not MIN_DIFFICULTY <= value <= MAX_DIFFICULTY:
        raise ValueError(f"difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}")
    return value


def _bloom_adjustment(records: Sequence[ActivityRecord], level_id: str, overall: float) -> float:
    by_level: Dict[str, List[float]] = {}
    for record in records:
        normalized = BLOOM_LEVELS.normalize(record.blooms_level)
        if normalized is not None:
            by_level.setdefault(normalized, []).append(record.percentage)

    if level_id in by_level:
        return statistics.fmean(by_level[level_id]) - overall
    if not by_level:
        return 0.0

    target = BLOOM_LEVELS.index(level_id)
    highest = max(BLOOM_LEVELS.index(level) for level in by_level)
    # unpractised level below the student's range is treated as familiar
    return -BLOOM_LEVELS.weight_between(highest, target)


def predict(
    records: Sequence[ActivityRecord],
    catalog: Optional[ActivityCatalog],
    activity_type: str,
    blooms_level: str,
    difficulty: float,
    thresholds: Optional[PatternThresholds] = None,
) -> PerformancePrediction:
    cfg = thresholds or DEFAULT_THRESHOLDS
    level = validate_difficulty(difficulty)
    level_id = BLOOM_LEVELS.normalize(blooms_level)
    if level_id is None:
        raise ValueError(f"Unknown Bloom level: {blooms_level}")

    meta = catalog or {}
    wanted_type = (activity_type or "").strip().lower()
    ordered = sort_records(records)
    matched = [
        r for r in ordered
        if (meta[r.activity_id].activity_type.strip().lower() if r.activity_id in meta else "general")
        == wanted_type
    ]

    difficulty_adj = (5.5 - level) * cfg.difficulty_step_points
    if not ordered:
        predicted = _clamp(cfg.neutral_predicted_score + difficulty_adj, 0.0, 100.0)
        return PerformancePrediction(
            predicted_score=round(predicted, 1),
            confidence=0.1,
            basis={"base": cfg.neutral_predicted_score, "bloom": 0.0, "difficulty": difficulty_adj, "trend": 0.0},
        )

    percentages = [r.percentage for r in ordered]
    overall = statistics.fmean(percentages)
    base = statistics.fmean(r.percentage for r in matched) if matched else overall
    bloom_adj = _bloom_adjustment(ordered, level_id, overall)

    trend, _ = improvement_trend(percentages, cfg)
    trend_adj = 0.0
    if trend == "accelerating":
        trend_adj = cfg.trend_adjustment_points
    elif trend == "declining":
        trend_adj = -cfg.trend_adjustment_points

    predicted = _clamp(base + bloom_adj + difficulty_adj + trend_adj, 0.0, 100.0)
    consistency = consistency_score(percentages, cfg)
    confidence = _clamp(
        0.1 + 0.6 * min(1.0, len(matched) / FULL_CONFIDENCE_MATCHES) + 0.3 * consistency / 100.0,
        0.0,
        1.0,
    )
    return PerformancePrediction(
        predicted_score=round(predicted, 1),
        confidence=round(confidence, 2),
        basis={
            "base": round(base, 1),
            "bloom": round(bloom_adj, 1),
            "difficulty": round(difficulty_adj, 1),
            "trend": trend_adj,
            "matchedRecords": len(matched),
        },
    )
