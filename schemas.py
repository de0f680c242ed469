"""Pydantic schemas for learning-pattern requests and responses."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

__all__ = [
    "LearningStyle",
    "CognitivePreferences",
    "PerformancePatterns",
    "EngagementPatterns",
    "RiskFactor",
    "LearningProfile",
    "PerformancePrediction",
    "ContentRecommendation",
    "PathStep",
    "LearningGoals",
    "OptimizeLearningPathRequest",
    "OptimizedPathStep",
    "OptimizedLearningPath",
    "ClassAverages",
    "StudentPatternEntry",
    "ClassLearningPatterns",
    "ClassInsight",
    "TeacherInsightsSummary",
    "TeacherInsights",
]

Modality = Literal["visual", "auditory", "kinesthetic", "reading_writing"]
Severity = Literal["low", "medium", "high"]
Trend = Literal["accelerating", "steady", "plateauing", "declining"]
PeakTime = Literal["morning", "afternoon", "evening", "variable"]

SEVERITY_RANK = {"high": 0, "medium": 1, "low": 2}


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys, accepting either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LearningStyle(CamelModel):
    primary: Modality
    secondary: Optional[Modality] = None
    confidence: float = Field(ge=0.0, le=1.0)


class CognitivePreferences(CamelModel):
    processing_speed: Literal["fast", "moderate", "deliberate"]
    complexity_preference: Literal["simple", "moderate", "complex"]
    feedback_sensitivity: Literal["high", "moderate", "low"]
    collaboration_preference: Literal["individual", "small_group", "large_group"]


class PerformancePatterns(CamelModel):
    consistency_score: float = Field(ge=0.0, le=100.0)
    improvement_trend: Trend
    peak_performance_time: PeakTime
    difficulty_adaptation: Literal["quick", "moderate", "slow"]
    average_score: float = Field(
        default=0.0,
        ge=0.0,
        le=100.0,
        description="Mean percentage score across the analysed records.",
    )
    score_delta: float = Field(
        default=0.0,
        description="Recent-third minus earliest-third mean, in percentage points.",
    )


class EngagementPatterns(CamelModel):
    attention_span: Literal["short", "medium", "long"]
    motivation_triggers: List[str] = Field(default_factory=list)
    procrastination_tendency: Literal["low", "moderate", "high"]
    help_seeking_behavior: Literal["proactive", "reactive", "reluctant"]


class RiskFactor(CamelModel):
    factor: str
    severity: Severity
    description: str
    interventions: List[str] = Field(default_factory=list)


class LearningProfile(CamelModel):
    learning_style: LearningStyle
    cognitive_preferences: CognitivePreferences
    performance_patterns: PerformancePatterns
    engagement_patterns: EngagementPatterns
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    adaptive_recommendations: List[str] = Field(default_factory=list)
    data_points: int = Field(
        default=0,
        ge=0,
        description="Number of graded records inside the requested window.",
    )


class PerformancePrediction(CamelModel):
    predicted_score: float = Field(ge=0.0, le=100.0)
    confidence: float = Field(ge=0.0, le=1.0)
    basis: dict = Field(
        default_factory=dict,
        description="Adjustments that produced the prediction, in percentage points.",
    )


class ContentRecommendation(CamelModel):
    content_type: str
    title: str
    blooms_level: str
    difficulty: int = Field(ge=1, le=10)
    rationale: str


class PathStep(CamelModel):
    activity_id: str
    activity_type: str
    blooms_level: str
    difficulty: float = Field(ge=1, le=10)
    estimated_time: float = Field(ge=0, description="Estimated minutes for the step.")


class LearningGoals(CamelModel):
    target_blooms_level: str
    timeframe: int = Field(gt=0, description="Days available to complete the path.")
    focus_areas: List[str] = Field(default_factory=list)


class OptimizeLearningPathRequest(CamelModel):
    current_path: List[PathStep]
    goals: LearningGoals


class OptimizedPathStep(PathStep):
    predicted_score: float = Field(ge=0.0, le=100.0)
    deferred: bool = False


class OptimizedLearningPath(CamelModel):
    optimized_path: List[OptimizedPathStep]
    deferred_steps: List[OptimizedPathStep] = Field(default_factory=list)
    estimated_total_minutes: float
    available_minutes: float
    feasible: bool
    adjustments: List[str] = Field(default_factory=list)


class ClassAverages(CamelModel):
    consistency_score: float
    risk_factor_count: float
    average_score: float
    analyzed_count: int


class StudentPatternEntry(CamelModel):
    student_id: str
    student_name: Optional[str] = None
    patterns: Optional[LearningProfile] = None
    error: Optional[str] = Field(
        default=None,
        description="Present when the student's analysis failed; patterns is then null.",
    )

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "StudentPatternEntry":
        if (self.patterns is None) == (self.error is None):
            raise ValueError("a student entry carries either patterns or an error")
        return self


class ClassLearningPatterns(CamelModel):
    class_id: str
    student_count: int
    student_patterns: List[StudentPatternEntry]
    class_averages: ClassAverages


class ClassInsight(ClassLearningPatterns):
    error: Optional[str] = None


class TeacherInsightsSummary(CamelModel):
    total_students: int
    average_consistency: float
    total_risk_factors: float


class TeacherInsights(CamelModel):
    teacher_id: str
    timeframe: Literal["week", "month", "term"]
    class_insights: List[ClassInsight]
    summary: TeacherInsightsSummary

