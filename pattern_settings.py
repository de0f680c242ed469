"""Tunable thresholds for the learning-pattern heuristics.

Every cutoff the aggregator and the rule tables use lives here so that a
deployment can override it with an ``LP_<FIELD>`` environment variable,
e.g. ``LP_TREND_ACCELERATING_DELTA=12``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

ENV_PREFIX = "LP_"


@dataclass(frozen=True)
class PatternThresholds:
    # aggregation
    min_records: int = 2
    consistency_cv_scale: float = 100.0
    trend_accelerating_delta: float = 10.0
    trend_declining_delta: float = -10.0
    trend_steady_upper: float = 5.0
    peak_min_records: int = 3
    attention_short_ratio: float = 0.6
    attention_long_ratio: float = 1.2
    default_expected_minutes: float = 30.0
    low_score_percent: float = 60.0

    # rule tables
    consistency_risk: float = 40.0
    consistency_engagement_risk: float = 60.0
    consistency_strength: float = 80.0
    declining_escalation_delta: float = -20.0
    high_achiever_score: float = 85.0
    max_recommendations: int = 3
    max_content_items: int = 4

    # early warnings
    attendance_warning_rate: float = 0.8
    attendance_critical_rate: float = 0.6
    completion_warning_rate: float = 0.7
    completion_critical_rate: float = 0.4
    inactivity_days: int = 14

    # prediction and path planning
    neutral_predicted_score: float = 70.0
    difficulty_step_points: float = 3.0
    trend_adjustment_points: float = 5.0
    daily_study_minutes: float = 45.0

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "PatternThresholds":
        """Build thresholds from ``LP_*`` variables, ignoring unparsable values."""

        env = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        defaults = cls()
        for item in fields(cls):
            raw = env.get(ENV_PREFIX + item.name.upper())
            if raw is None or not raw.strip():
                continue
            parsed = _coerce(raw, type(getattr(defaults, item.name)))
            if parsed is not None:
                overrides[item.name] = parsed
        return replace(defaults, **overrides)

    def invalid_env_values(self, environ: Optional[Dict[str, str]] = None) -> list[str]:
        """Return the names of ``LP_*`` variables that do not parse."""

        env = os.environ if environ is None else environ
        invalid = []
        for item in fields(self):
            name = ENV_PREFIX + item.name.upper()
            raw = env.get(name)
            if raw is None or not raw.strip():
                continue
            if _coerce(raw, type(getattr(self, item.name))) is None:
                invalid.append(name)
        return invalid


def _coerce(raw: str, kind: type) -> Optional[float | int]:
    try:
        if kind is int:
            return int(raw.strip())
        return float(raw.strip())
    except ValueError:
        return None


DEFAULT_THRESHOLDS = PatternThresholds()
