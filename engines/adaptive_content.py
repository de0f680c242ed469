"""Recommend next content items from a learning profile and the student's Bloom mastery."""

from __future__ import annotations

import statistics
from typing import Dict, List, Optional, Sequence

from bloom_levels import BLOOM_LEVELS
from engines.records import ActivityRecord
from pattern_settings import DEFAULT_THRESHOLDS, PatternThresholds
from schemas import ContentRecommendation, LearningProfile

CONTENT_BY_MODALITY = {
    "visual": "video",
    "auditory": "discussion",
    "kinesthetic": "simulation",
    "reading_writing": "reading",
}


def narrow_to_subject(records: Sequence[ActivityRecord], subject: Optional[str]) -> List[ActivityRecord]:
    """Keep the subject's records when there are any, otherwise fall back to everything."""
    if not subject:
        return list(records)
    wanted = subject.strip().lower()
    matching = [r for r in records if r.subject_id.strip().lower() == wanted]
    return matching or list(records)


def level_means(records: Sequence[ActivityRecord]) -> Dict[str, float]:
    grouped: Dict[str, List[float]] = {}
    for record in records:
        level_id = BLOOM_LEVELS.normalize(record.blooms_level)
        if level_id is not None:
            grouped.setdefault(level_id, []).append(record.percentage)
    return {level_id: statistics.fmean(scores) for level_id, scores in grouped.items()}


def target_level(records: Sequence[ActivityRecord]) -> str:
    """First level the student has not yet mastered; the top level once all are."""
    means = level_means(records)
    for level in BLOOM_LEVELS:
        mean = means.get(level.id)
        if mean is None or mean < level.mastery_score * 100.0:
            return level.id
    return BLOOM_LEVELS.sequence()[-1]


def _difficulty(level_index: int, average: float, shift: int = 0) -> int:
    value = 3 + level_index + shift
    if average and average < 60:
        value -= 1
    elif average >= 85:
        value += 1
    return max(1, min(10, value))


def recommend(
    profile: LearningProfile,
    records: Sequence[ActivityRecord],
    subject: Optional[str],
    current_topic: str,
    thresholds: Optional[PatternThresholds] = None,
) -> List[ContentRecommendation]:
    cfg = thresholds or DEFAULT_THRESHOLDS
    scoped = narrow_to_subject(records, subject)
    labels = BLOOM_LEVELS.label_map()
    sequence = BLOOM_LEVELS.sequence()

    target = target_level(scoped)
    index = sequence.index(target)
    performance = profile.performance_patterns
    average = performance.average_score
    style = profile.learning_style
    topic = current_topic.strip() or "current topic"

    items: List[ContentRecommendation] = [
        ContentRecommendation(
            content_type=CONTENT_BY_MODALITY[style.primary],
            title=f"{labels[target]} practice: {topic}",
            blooms_level=target,
            difficulty=_difficulty(index, average),
            rationale=f"{labels[target]} is the first level not yet mastered; matches a {style.primary} preference.",
        )
    ]

    if (
        performance.consistency_score < cfg.consistency_engagement_risk
        or performance.improvement_trend == "declining"
    ):
        previous = sequence[max(0, index - 1)]
        items.append(
            ContentRecommendation(
                content_type="review",
                title=f"Reinforce {labels[previous].lower()} skills: {topic}",
                blooms_level=previous,
                difficulty=_difficulty(sequence.index(previous), average, shift=-2),
                rationale="Recent results are uneven or falling; consolidate the previous level.",
            )
        )

    if style.secondary is not None:
        items.append(
            ContentRecommendation(
                content_type=CONTENT_BY_MODALITY[style.secondary],
                title=f"{topic} from another angle",
                blooms_level=target,
                difficulty=_difficulty(index, average),
                rationale=f"Alternative {style.secondary} format for the same level.",
            )
        )

    if performance.improvement_trend == "accelerating":
        extension = sequence[min(len(sequence) - 1, index + 1)]
        items.append(
            ContentRecommendation(
                content_type="challenge",
                title=f"{labels[extension]} challenge: {topic}",
                blooms_level=extension,
                difficulty=_difficulty(sequence.index(extension), average, shift=2),
                rationale="Scores are rising quickly; stretch towards the next level.",
            )
        )

    return items[: cfg.max_content_items]
