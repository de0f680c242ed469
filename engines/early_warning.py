"""Early-warning detection: profile risks plus class-scoped attendance and activity rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from engines.records import ActivityRecord, AttendanceSummary
from engines.risk_rules import INSUFFICIENT_DATA, order_by_severity
from pattern_settings import DEFAULT_THRESHOLDS, PatternThresholds
from schemas import LearningProfile, RiskFactor


@dataclass(frozen=True)
class ClassContext:
    """What the record store knows about a student inside one class."""

    class_id: str
    attendance: AttendanceSummary
    assigned_activities: int
    completed_activities: int
    last_activity_at: Optional[datetime]
    now: datetime

    @property
    def attendance_rate(self) -> Optional[float]:
        return self.attendance.rate

    @property
    def completion_rate(self) -> Optional[float]:
        if self.assigned_activities <= 0:
            return None
        return min(1.0, self.completed_activities / self.assigned_activities)

    @property
    def days_inactive(self) -> Optional[float]:
        if self.last_activity_at is None:
            return None
        return (self.now - self.last_activity_at).total_seconds() / 86400.0


def build_context(
    class_id: str,
    records: Sequence[ActivityRecord],
    attendance: AttendanceSummary,
    assigned_activities: int,
    completed_activities: int,
    now: datetime,
) -> ClassContext:
    """``completed_activities`` must count only graded work among the ``assigned_activities``."""
    last = max((r.completed_at for r in records), default=None)
    return ClassContext(
        class_id=class_id,
        attendance=attendance,
        assigned_activities=assigned_activities,
        completed_activities=min(completed_activities, assigned_activities),
        last_activity_at=last,
        now=now,
    )


def _poor_attendance(ctx: ClassContext, cfg: PatternThresholds) -> Optional[RiskFactor]:
    rate = ctx.attendance_rate
    if rate is None or rate >= cfg.attendance_warning_rate:
        return None
    return RiskFactor(
        factor="poor attendance",
        severity="high" if rate < cfg.attendance_critical_rate else "medium",
        description=f"Attended {rate:.0%} of recorded sessions.",
        interventions=["Contact guardian about attendance", "Share missed session materials"],
    )


def _missing_work(ctx: ClassContext, cfg: PatternThresholds) -> Optional[RiskFactor]:
    rate = ctx.completion_rate
    if rate is None or rate >= cfg.completion_warning_rate:
        return None
    return RiskFactor(
        factor="missing work",
        severity="high" if rate < cfg.completion_critical_rate else "medium",
        description=(
            f"Completed {ctx.completed_activities} of {ctx.assigned_activities} assigned activities."
        ),
        interventions=["Agree on a catch-up plan", "Prioritise outstanding core activities"],
    )


def _inactivity(ctx: ClassContext, cfg: PatternThresholds) -> Optional[RiskFactor]:
    days = ctx.days_inactive
    if ctx.assigned_activities <= 0:
        return None
    if days is not None and days < cfg.inactivity_days:
        return None
    if days is None:
        description = "No graded activity recorded in this class."
    else:
        description = f"No graded activity in the last {int(days)} days."
    return RiskFactor(
        factor="inactivity",
        severity="medium",
        description=description,
        interventions=["Reach out to re-engage the student"],
    )


CLASS_RULES: Tuple[Callable[[ClassContext, PatternThresholds], Optional[RiskFactor]], ...] = (
    _poor_attendance,
    _missing_work,
    _inactivity,
)


def detect(
    profile: LearningProfile,
    context: Optional[ClassContext] = None,
    thresholds: Optional[PatternThresholds] = None,
) -> List[RiskFactor]:
    cfg = thresholds or DEFAULT_THRESHOLDS
    warnings = list(profile.risk_factors)
    if context is None:
        return order_by_severity(warnings)

    if context.last_activity_at is not None or context.attendance.total > 0:
        warnings = [w for w in warnings if w.factor != INSUFFICIENT_DATA]
    for rule in CLASS_RULES:
        warning = rule(context, cfg)
        if warning is not None:
            warnings.append(warning)
    return order_by_severity(warnings)
