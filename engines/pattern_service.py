"""Boundary operations for learning-pattern analytics.

The engines in this package are pure; this module is where the record store
is read. Store calls block, so they run in worker threads via
``asyncio.to_thread``. Class and teacher reports fan out one analysis per
student (or class) and join them with ``asyncio.gather``; a member whose
analysis fails on a store problem is reported with an error marker instead
of aborting the whole report.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
from datetime import datetime, timezone
from types import ModuleType
from typing import Any, Dict, List, Optional, Sequence

import db
from engines import adaptive_content, early_warning, path_optimizer, performance_predictor
from engines.pattern_aggregator import InsufficientDataError, aggregate
from engines.profile_builder import build_profile
from engines.records import Timeframe, resolve_timeframe
from pattern_settings import PatternThresholds
from schemas import (
    ClassAverages,
    ClassInsight,
    ClassLearningPatterns,
    ContentRecommendation,
    LearningGoals,
    LearningProfile,
    OptimizedLearningPath,
    PathStep,
    PerformancePrediction,
    RiskFactor,
    StudentPatternEntry,
    TeacherInsights,
    TeacherInsightsSummary,
)

logger = logging.getLogger(__name__)
analytics_logger = logging.getLogger("lp.analytics")

# failures reported per member instead of failing the whole report
RECOVERABLE_ERRORS = (db.UpstreamFailure, db.NotFoundError)


def _error_marker(exc: BaseException) -> str:
    if isinstance(exc, db.NotFoundError):
        return f"not found: {exc}"
    return f"unavailable: {exc}"


class LearningPatternService:
    def __init__(self, store: ModuleType | Any = db, thresholds: Optional[PatternThresholds] = None):
        self.store = store
        self.thresholds = thresholds or PatternThresholds.from_env()

    # ------------------------------------------------------------------
    async def _load(self, student_id: str, window: Optional[Timeframe] = None, class_id: Optional[str] = None):
        records = await asyncio.to_thread(self.store.load_student_records, student_id, window, class_id)
        catalog = await asyncio.to_thread(
            self.store.load_activity_catalog, [r.activity_id for r in records]
        )
        return records, catalog

    async def analyze_student_patterns(
        self,
        student_id: str,
        timeframe: "Timeframe | str | None" = None,
    ) -> LearningProfile:
        window = resolve_timeframe(timeframe)
        records, catalog = await self._load(student_id, window)
        profile = build_profile(records, catalog, self.thresholds)
        analytics_logger.info(
            "Analyzed learning patterns",
            extra={
                "student_id": student_id,
                "data_points": profile.data_points,
                "risk_count": len(profile.risk_factors),
            },
        )
        return profile

    async def predict_performance(
        self,
        student_id: str,
        activity_type: str,
        blooms_level: str,
        difficulty: float,
    ) -> PerformancePrediction:
        performance_predictor.validate_difficulty(difficulty)
        records, catalog = await self._load(student_id)
        return performance_predictor.predict(
            records, catalog, activity_type, blooms_level, difficulty, self.thresholds
        )

    async def detect_early_warnings(
        self,
        student_id: str,
        class_id: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> List[RiskFactor]:
        moment = now or datetime.now(timezone.utc)
        profile = await self.analyze_student_patterns(student_id)
        if class_id is None:
            return early_warning.detect(profile, None, self.thresholds)

        if await asyncio.to_thread(self.store.get_class, class_id) is None:
            raise db.NotFoundError(f"Unknown class: {class_id}")
        so_far = Timeframe(end=moment)
        class_records, attendance, assigned, completed = await asyncio.gather(
            asyncio.to_thread(self.store.load_student_records, student_id, so_far, class_id),
            asyncio.to_thread(self.store.load_attendance, student_id, class_id, so_far),
            asyncio.to_thread(self.store.count_class_activities, class_id, so_far),
            asyncio.to_thread(self.store.count_completed_class_activities, student_id, class_id, so_far),
        )
        context = early_warning.build_context(
            class_id, class_records, attendance, assigned, completed, moment
        )
        warnings = early_warning.detect(profile, context, self.thresholds)
        if warnings:
            analytics_logger.info(
                "Early warnings raised",
                extra={"student_id": student_id, "class_id": class_id, "count": len(warnings)},
            )
        return warnings

    async def generate_adaptive_content(
        self,
        student_id: str,
        subject: Optional[str],
        current_topic: str,
    ) -> List[ContentRecommendation]:
        records, catalog = await self._load(student_id)
        scoped = adaptive_content.narrow_to_subject(records, subject)
        profile = build_profile(scoped, catalog, self.thresholds)
        return adaptive_content.recommend(profile, scoped, subject, current_topic, self.thresholds)

    async def optimize_learning_path(
        self,
        student_id: str,
        current_path: Sequence[PathStep],
        goals: LearningGoals,
    ) -> OptimizedLearningPath:
        records, catalog = await self._load(student_id)
        try:
            time_ratio = aggregate(records, catalog, self.thresholds).time_ratio
        except InsufficientDataError:
            time_ratio = None
        return path_optimizer.optimize(
            current_path, goals, records, catalog, time_ratio, self.thresholds
        )

    # ------------------------------------------------------------------
    async def get_class_learning_patterns(
        self,
        class_id: str,
        timeframe: "Timeframe | str | None" = None,
    ) -> ClassLearningPatterns:
        window = resolve_timeframe(timeframe)
        students = await asyncio.to_thread(self.store.list_class_students, class_id)
        outcomes = await asyncio.gather(
            *(self.analyze_student_patterns(s["student_id"], window) for s in students),
            return_exceptions=True,
        )

        entries: List[StudentPatternEntry] = []
        profiles: List[LearningProfile] = []
        for student, outcome in zip(students, outcomes):
            if isinstance(outcome, RECOVERABLE_ERRORS):
                logger.debug(
                    "Skipping student %s in class %s: %s", student["student_id"], class_id, outcome
                )
                entries.append(
                    StudentPatternEntry(
                        student_id=student["student_id"],
                        student_name=student.get("name"),
                        error=_error_marker(outcome),
                    )
                )
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            profiles.append(outcome)
            entries.append(
                StudentPatternEntry(
                    student_id=student["student_id"],
                    student_name=student.get("name"),
                    patterns=outcome,
                )
            )

        return ClassLearningPatterns(
            class_id=class_id,
            student_count=len(students),
            student_patterns=entries,
            class_averages=class_averages(profiles),
        )

    async def get_teacher_insights(
        self,
        teacher_id: str,
        class_ids: Optional[Sequence[str]] = None,
        timeframe: str = "month",
    ) -> TeacherInsights:
        window = resolve_timeframe(timeframe)
        if class_ids:
            targets = list(dict.fromkeys(class_ids))
        else:
            targets = await asyncio.to_thread(self.store.list_teacher_classes, teacher_id)
            if not targets:
                raise db.NotFoundError(f"No classes found for teacher: {teacher_id}")

        outcomes = await asyncio.gather(
            *(self.get_class_learning_patterns(class_id, window) for class_id in targets),
            return_exceptions=True,
        )

        insights: List[ClassInsight] = []
        for class_id, outcome in zip(targets, outcomes):
            if isinstance(outcome, RECOVERABLE_ERRORS):
                logger.debug("Skipping class %s for teacher %s: %s", class_id, teacher_id, outcome)
                insights.append(
                    ClassInsight(
                        class_id=class_id,
                        student_count=0,
                        student_patterns=[],
                        class_averages=class_averages([]),
                        error=_error_marker(outcome),
                    )
                )
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            insights.append(ClassInsight(**outcome.model_dump()))

        return TeacherInsights(
            teacher_id=teacher_id,
            timeframe=timeframe.strip().lower(),
            class_insights=insights,
            summary=teacher_summary(insights),
        )


def class_averages(profiles: Sequence[LearningProfile]) -> ClassAverages:
    """Means over the successfully analysed profiles only."""
    if not profiles:
        return ClassAverages(consistency_score=0.0, risk_factor_count=0.0, average_score=0.0, analyzed_count=0)
    return ClassAverages(
        consistency_score=round(statistics.fmean(p.performance_patterns.consistency_score for p in profiles), 1),
        risk_factor_count=round(statistics.fmean(len(p.risk_factors) for p in profiles), 2),
        average_score=round(statistics.fmean(p.performance_patterns.average_score for p in profiles), 1),
        analyzed_count=len(profiles),
    )


def teacher_summary(insights: Sequence[ClassInsight]) -> TeacherInsightsSummary:
    analyzed = [i for i in insights if i.error is None and i.class_averages.analyzed_count]
    weights: Dict[str, int] = {i.class_id: i.class_averages.analyzed_count for i in analyzed}
    total_weight = sum(weights.values())
    if total_weight:
        consistency = sum(i.class_averages.consistency_score * weights[i.class_id] for i in analyzed) / total_weight
    else:
        consistency = 0.0
    total_risks = sum(i.class_averages.risk_factor_count * weights[i.class_id] for i in analyzed)
    return TeacherInsightsSummary(
        total_students=sum(i.student_count for i in insights),
        average_consistency=round(consistency, 1),
        total_risk_factors=round(total_risks, 1),
    )
