"""Reorder and tune a proposed learning path for one student."""

from __future__ import annotations

from typing import List, Optional, Sequence

from bloom_levels import BLOOM_LEVELS
from engines.performance_predictor import predict
from engines.records import ActivityCatalog, ActivityRecord
from pattern_settings import DEFAULT_THRESHOLDS, PatternThresholds
from schemas import LearningGoals, OptimizedLearningPath, OptimizedPathStep, PathStep

EASIER_BELOW = 60.0
HARDER_ABOVE = 85.0


def _is_focus(step: PathStep, focus: Sequence[str]) -> bool:
    return step.activity_type.strip().lower() in focus or step.activity_id.strip().lower() in focus


def optimize(
    steps: Sequence[PathStep],
    goals: LearningGoals,
    records: Sequence[ActivityRecord],
    catalog: Optional[ActivityCatalog] = None,
    time_ratio: Optional[float] = None,
    thresholds: Optional[PatternThresholds] = None,
) -> OptimizedLearningPath:
    """Defer steps beyond the goal, order the rest and size them to the student.

    Kept steps are ordered focus areas first, then by Bloom level and
    difficulty. Each step's difficulty moves one point towards the
    student's predicted comfort zone and its time is scaled by how long the
    student usually takes relative to the expected duration.
    """
    cfg = thresholds or DEFAULT_THRESHOLDS
    target_index = BLOOM_LEVELS.index(goals.target_blooms_level)
    focus = [area.strip().lower() for area in goals.focus_areas if area.strip()]
    ratio = time_ratio if time_ratio and time_ratio > 0 else 1.0

    kept: List[tuple] = []
    deferred: List[OptimizedPathStep] = []
    adjustments: List[str] = []

    for position, step in enumerate(steps):
        level_index = BLOOM_LEVELS.index(step.blooms_level)
        level_id = BLOOM_LEVELS.sequence()[level_index]
        prediction = predict(
            records, catalog, step.activity_type, level_id, step.difficulty, cfg
        )
        if level_index > target_index:
            deferred.append(
                OptimizedPathStep(
                    activity_id=step.activity_id,
                    activity_type=step.activity_type,
                    blooms_level=level_id,
                    difficulty=step.difficulty,
                    estimated_time=step.estimated_time,
                    predicted_score=prediction.predicted_score,
                    deferred=True,
                )
            )
            adjustments.append(f"Deferred {step.activity_id}: above target level {goals.target_blooms_level}")
            continue

        difficulty = step.difficulty
        if prediction.predicted_score < EASIER_BELOW and difficulty > 1:
            difficulty = max(1.0, difficulty - 1)
            adjustments.append(f"Lowered difficulty of {step.activity_id} to {difficulty:g}")
        elif prediction.predicted_score > HARDER_ABOVE and difficulty < 10:
            difficulty = min(10.0, difficulty + 1)
            adjustments.append(f"Raised difficulty of {step.activity_id} to {difficulty:g}")

        optimized = OptimizedPathStep(
            activity_id=step.activity_id,
            activity_type=step.activity_type,
            blooms_level=level_id,
            difficulty=difficulty,
            estimated_time=round(step.estimated_time * ratio, 1),
            predicted_score=prediction.predicted_score,
        )
        sort_key = (0 if _is_focus(step, focus) else 1, level_index, step.difficulty, position)
        kept.append((sort_key, optimized))

    before = [step.activity_id for _, step in kept]
    kept.sort(key=lambda pair: pair[0])
    ordered = [step for _, step in kept]
    if [step.activity_id for step in ordered] != before:
        adjustments.append("Reordered steps by focus area and Bloom level")
    if ratio != 1.0:
        adjustments.append(f"Scaled time estimates by {ratio:.2f}")

    total = round(sum(step.estimated_time for step in ordered), 1)
    available = float(goals.timeframe) * cfg.daily_study_minutes
    return OptimizedLearningPath(
        optimized_path=ordered,
        deferred_steps=deferred,
        estimated_total_minutes=total,
        available_minutes=available,
        feasible=total <= available,
        adjustments=adjustments,
    )
