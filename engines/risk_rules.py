"""Ordered rule tables turning a learning profile into risks, strengths and recommendations.

Each table is evaluated top to bottom; table order doubles as the tie-break
between rules of equal severity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pattern_settings import DEFAULT_THRESHOLDS, PatternThresholds
from schemas import SEVERITY_RANK, LearningProfile, RiskFactor

Predicate = Callable[[LearningProfile, PatternThresholds], bool]

_ESCALATION = {"low": "medium", "medium": "high", "high": "high"}

INSUFFICIENT_DATA = "insufficient data"


@dataclass(frozen=True)
class RiskRule:
    factor: str
    severity: str
    predicate: Predicate
    description: str
    interventions: Tuple[str, ...] = ()
    escalate: Optional[Predicate] = None

    def evaluate(self, profile: LearningProfile, cfg: PatternThresholds) -> Optional[RiskFactor]:
        if not self.predicate(profile, cfg):
            return None
        severity = self.severity
        if self.escalate is not None and self.escalate(profile, cfg):
            severity = _ESCALATION[severity]
        return RiskFactor(
            factor=self.factor,
            severity=severity,
            description=self.description,
            interventions=list(self.interventions),
        )


@dataclass(frozen=True)
class StrengthRule:
    label: str
    predicate: Predicate


def _enough(profile: LearningProfile, cfg: PatternThresholds) -> bool:
    return profile.data_points >= cfg.min_records


RISK_RULES: Tuple[RiskRule, ...] = (
    RiskRule(
        factor=INSUFFICIENT_DATA,
        severity="low",
        predicate=lambda p, cfg: p.data_points < cfg.min_records,
        description="Not enough graded work in this period to identify reliable patterns.",
        interventions=("Encourage completion of upcoming activities",),
    ),
    RiskRule(
        factor="inconsistent performance",
        severity="high",
        predicate=lambda p, cfg: _enough(p, cfg)
        and p.performance_patterns.consistency_score < cfg.consistency_risk,
        description="Scores vary widely from one activity to the next.",
        interventions=(
            "Establish a regular study routine",
            "Review fundamentals before new material",
        ),
    ),
    RiskRule(
        factor="declining trend",
        severity="medium",
        predicate=lambda p, cfg: _enough(p, cfg)
        and p.performance_patterns.improvement_trend == "declining",
        description="Recent results are noticeably lower than earlier ones.",
        interventions=("Schedule a one-on-one check-in", "Revisit recently introduced topics"),
        escalate=lambda p, cfg: p.performance_patterns.score_delta < cfg.declining_escalation_delta,
    ),
    RiskRule(
        factor="low engagement",
        severity="medium",
        predicate=lambda p, cfg: _enough(p, cfg)
        and p.engagement_patterns.attention_span == "short"
        and p.performance_patterns.consistency_score < cfg.consistency_engagement_risk,
        description="Activities are finished well under their expected time with uneven results.",
        interventions=("Break work into shorter focused tasks", "Add interactive activities"),
    ),
    RiskRule(
        factor="procrastination",
        severity="low",
        predicate=lambda p, cfg: _enough(p, cfg)
        and p.engagement_patterns.procrastination_tendency == "high",
        description="Most work is submitted close to or after its due date.",
        interventions=("Set intermediate milestones before due dates",),
    ),
)

STRENGTH_RULES: Tuple[StrengthRule, ...] = (
    StrengthRule(
        "consistent performer",
        lambda p, cfg: _enough(p, cfg)
        and p.performance_patterns.consistency_score >= cfg.consistency_strength,
    ),
    StrengthRule(
        "rapid improvement",
        lambda p, cfg: _enough(p, cfg) and p.performance_patterns.improvement_trend == "accelerating",
    ),
    StrengthRule(
        "high achiever",
        lambda p, cfg: _enough(p, cfg) and p.performance_patterns.average_score >= cfg.high_achiever_score,
    ),
    StrengthRule(
        "sustained focus",
        lambda p, cfg: _enough(p, cfg) and p.engagement_patterns.attention_span == "long",
    ),
    StrengthRule(
        "handles increasing difficulty",
        lambda p, cfg: _enough(p, cfg) and p.performance_patterns.difficulty_adaptation == "quick",
    ),
)

RECOMMENDATIONS: Dict[str, Tuple[str, ...]] = {
    INSUFFICIENT_DATA: (
        "Assign a short diagnostic activity to establish a baseline",
    ),
    "inconsistent performance": (
        "Provide structured practice with immediate feedback",
        "Use spaced review of core concepts",
    ),
    "declining trend": (
        "Revisit prerequisite material for recent topics",
        "Schedule a check-in to identify obstacles",
    ),
    "low engagement": (
        "Offer shorter, interactive activities",
        "Connect tasks to the student's interests",
    ),
    "procrastination": (
        "Break assignments into milestones with earlier checkpoints",
    ),
}

BASELINE_RECOMMENDATIONS: Tuple[str, ...] = (
    "Introduce higher-order challenges (Analyze, Evaluate, Create)",
    "Offer enrichment or peer-mentoring opportunities",
)


def derive_risks(
    profile: LearningProfile,
    thresholds: Optional[PatternThresholds] = None,
) -> List[RiskFactor]:
    cfg = thresholds or DEFAULT_THRESHOLDS
    risks = [risk for rule in RISK_RULES if (risk := rule.evaluate(profile, cfg)) is not None]
    return order_by_severity(risks)


def order_by_severity(risks: Sequence[RiskFactor]) -> List[RiskFactor]:
    """Stable sort: severity first, original (rule-table) order second."""
    return sorted(risks, key=lambda risk: SEVERITY_RANK.get(risk.severity, len(SEVERITY_RANK)))


def derive_strengths(
    profile: LearningProfile,
    thresholds: Optional[PatternThresholds] = None,
) -> List[str]:
    cfg = thresholds or DEFAULT_THRESHOLDS
    return [rule.label for rule in STRENGTH_RULES if rule.predicate(profile, cfg)]


def derive_recommendations(
    profile: LearningProfile,
    thresholds: Optional[PatternThresholds] = None,
    *,
    risks: Optional[Sequence[RiskFactor]] = None,
) -> List[str]:
    """Look up recommendations for the active risks, most severe first, capped for display."""
    cfg = thresholds or DEFAULT_THRESHOLDS
    active = order_by_severity(risks if risks is not None else derive_risks(profile, cfg))

    picked: List[str] = []
    for risk in active:
        for text in RECOMMENDATIONS.get(risk.factor, ()):
            if text not in picked:
                picked.append(text)
    if not active:
        picked.extend(BASELINE_RECOMMENDATIONS)
    return picked[: cfg.max_recommendations]
