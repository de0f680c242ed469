"""Assemble a ``LearningProfile`` from records.

Every profile starts from ``NEUTRAL_PROFILE`` and only the sections the
records can support are overridden, so an empty window yields the neutral
profile with a single "insufficient data" risk.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Optional, Sequence

from engines.learning_style import infer_cognitive_preferences, infer_learning_style
from engines.pattern_aggregator import InsufficientDataError, aggregate
from engines.records import ActivityCatalog, ActivityRecord
from engines.risk_rules import derive_recommendations, derive_risks, derive_strengths
from pattern_settings import DEFAULT_THRESHOLDS, PatternThresholds
from schemas import LearningProfile

logger = logging.getLogger(__name__)

NEUTRAL_PROFILE: Dict[str, Any] = {
    "learning_style": {"primary": "visual", "secondary": None, "confidence": 0.0},
    "cognitive_preferences": {
        "processing_speed": "moderate",
        "complexity_preference": "moderate",
        "feedback_sensitivity": "moderate",
        "collaboration_preference": "individual",
    },
    "performance_patterns": {
        "consistency_score": 0.0,
        "improvement_trend": "plateauing",
        "peak_performance_time": "variable",
        "difficulty_adaptation": "moderate",
        "average_score": 0.0,
        "score_delta": 0.0,
    },
    "engagement_patterns": {
        "attention_span": "medium",
        "motivation_triggers": [],
        "procrastination_tendency": "moderate",
        "help_seeking_behavior": "reactive",
    },
    "risk_factors": [],
    "strengths": [],
    "adaptive_recommendations": [],
    "data_points": 0,
}


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def computed_overrides(
    records: Sequence[ActivityRecord],
    catalog: ActivityCatalog,
    thresholds: PatternThresholds,
) -> Dict[str, Any]:
    try:
        summary = aggregate(records, catalog, thresholds)
    except InsufficientDataError:
        return {}
    return {
        "learning_style": infer_learning_style(records, catalog),
        "cognitive_preferences": infer_cognitive_preferences(records, catalog, thresholds),
        "performance_patterns": summary.performance_patterns(),
        "engagement_patterns": summary.engagement_patterns(),
        "data_points": summary.data_points,
    }


def build_profile(
    records: Sequence[ActivityRecord],
    catalog: Optional[ActivityCatalog] = None,
    thresholds: Optional[PatternThresholds] = None,
) -> LearningProfile:
    cfg = thresholds or DEFAULT_THRESHOLDS
    overrides = computed_overrides(records, catalog or {}, cfg)
    if not overrides:
        logger.debug("No records in window; returning neutral profile")

    profile = LearningProfile.model_validate(_merge(NEUTRAL_PROFILE, overrides))
    risks = derive_risks(profile, cfg)
    return profile.model_copy(
        update={
            "risk_factors": risks,
            "strengths": derive_strengths(profile, cfg),
            "adaptive_recommendations": derive_recommendations(profile, cfg, risks=risks),
        }
    )
