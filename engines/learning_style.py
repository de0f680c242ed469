"""Infer learning style and cognitive preferences from activity types."""

from __future__ import annotations

import statistics
from typing import Dict, List, Optional, Sequence

from engines.pattern_aggregator import sort_records, split_by_order, time_ratios
from engines.records import ActivityCatalog, ActivityRecord
from pattern_settings import DEFAULT_THRESHOLDS, PatternThresholds

MODALITIES = ("visual", "auditory", "kinesthetic", "reading_writing")

ACTIVITY_MODALITY = {
    "video": "visual",
    "diagram": "visual",
    "infographic": "visual",
    "mind_map": "visual",
    "drag_and_drop": "kinesthetic",
    "simulation": "kinesthetic",
    "lab": "kinesthetic",
    "project": "kinesthetic",
    "group_project": "kinesthetic",
    "hands_on": "kinesthetic",
    "audio": "auditory",
    "podcast": "auditory",
    "discussion": "auditory",
    "class_discussion": "auditory",
    "presentation": "auditory",
    "reading": "reading_writing",
    "essay": "reading_writing",
    "quiz": "reading_writing",
    "multiple_choice": "reading_writing",
    "fill_in_the_blanks": "reading_writing",
    "short_answer": "reading_writing",
    "assessment": "reading_writing",
}

GROUP_ACTIVITIES = {"group_project", "discussion", "peer_review"}
CLASS_ACTIVITIES = {"class_discussion", "presentation"}

# records needed before style confidence can reach 1.0
FULL_CONFIDENCE_RECORDS = 20


def _activity_type(record: ActivityRecord, catalog: ActivityCatalog) -> str:
    meta = catalog.get(record.activity_id)
    if meta is None:
        return "general"
    return (meta.activity_type or "general").strip().lower()


def modality_for(activity_type: str) -> Optional[str]:
    return ACTIVITY_MODALITY.get(activity_type.strip().lower())


def infer_learning_style(
    records: Sequence[ActivityRecord],
    catalog: ActivityCatalog,
) -> Dict[str, object]:
    """Rank modalities by mean percentage; confidence grows with coverage and volume."""
    by_modality: Dict[str, List[float]] = {}
    for record in records:
        modality = modality_for(_activity_type(record, catalog))
        if modality is None:
            continue
        by_modality.setdefault(modality, []).append(record.percentage)

    if not by_modality:
        return {"primary": "visual", "secondary": None, "confidence": 0.0}

    ranked = sorted(
        by_modality.items(),
        key=lambda item: (-statistics.fmean(item[1]), -len(item[1]), MODALITIES.index(item[0])),
    )
    covered = sum(len(scores) for scores in by_modality.values())
    coverage = covered / len(records)
    volume = min(1.0, len(records) / FULL_CONFIDENCE_RECORDS)
    confidence = max(0.0, min(1.0, coverage * volume))
    return {
        "primary": ranked[0][0],
        "secondary": ranked[1][0] if len(ranked) > 1 else None,
        "confidence": round(confidence, 2),
    }


def infer_cognitive_preferences(
    records: Sequence[ActivityRecord],
    catalog: ActivityCatalog,
    thresholds: Optional[PatternThresholds] = None,
) -> Dict[str, str]:
    cfg = thresholds or DEFAULT_THRESHOLDS
    ratios = time_ratios(records, catalog, cfg)
    return {
        "processing_speed": _processing_speed(ratios),
        "complexity_preference": _complexity_preference(records),
        "feedback_sensitivity": _feedback_sensitivity(records),
        "collaboration_preference": _collaboration_preference(records, catalog),
    }


def _processing_speed(ratios: Sequence[float]) -> str:
    if not ratios:
        return "moderate"
    mean_ratio = statistics.fmean(ratios)
    if mean_ratio < 0.8:
        return "fast"
    if mean_ratio <= 1.2:
        return "moderate"
    return "deliberate"


def _complexity_preference(records: Sequence[ActivityRecord]) -> str:
    lower, higher = split_by_order(records)
    if not lower or not higher:
        return "moderate"
    gap = statistics.fmean(higher) - statistics.fmean(lower)
    if gap >= 0:
        return "complex"
    if gap >= -15:
        return "moderate"
    return "simple"


def _feedback_sensitivity(records: Sequence[ActivityRecord]) -> str:
    """Large swings between consecutive results read as high sensitivity."""
    ordered = sort_records(records)
    if len(ordered) < 2:
        return "moderate"
    swings = [
        abs(current.percentage - previous.percentage)
        for previous, current in zip(ordered, ordered[1:])
    ]
    mean_swing = statistics.fmean(swings)
    if mean_swing > 20:
        return "high"
    if mean_swing > 10:
        return "moderate"
    return "low"


def _collaboration_preference(records: Sequence[ActivityRecord], catalog: ActivityCatalog) -> str:
    group: List[float] = []
    whole_class: List[float] = []
    solo: List[float] = []
    for record in records:
        kind = _activity_type(record, catalog)
        if kind in GROUP_ACTIVITIES:
            group.append(record.percentage)
        elif kind in CLASS_ACTIVITIES:
            whole_class.append(record.percentage)
        else:
            solo.append(record.percentage)

    solo_mean = statistics.fmean(solo) if solo else None
    if whole_class and (solo_mean is None or statistics.fmean(whole_class) >= solo_mean + 5):
        if not group or statistics.fmean(whole_class) >= statistics.fmean(group):
            return "large_group"
    if group and (solo_mean is None or statistics.fmean(group) >= solo_mean + 5):
        return "small_group"
    return "individual"
