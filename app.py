# app.py - Learning Pattern Analytics v1.0.0
# - Read-only analytics over graded activity history
# - Student, class and teacher reports; no writes back to the store

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Awaitable, List, Optional, TypeVar

from fastapi import FastAPI, HTTPException, Query

import db
from engines.pattern_service import LearningPatternService
from engines.records import Timeframe
from schemas import (
    ClassLearningPatterns,
    ContentRecommendation,
    LearningProfile,
    OptimizedLearningPath,
    OptimizeLearningPathRequest,
    PerformancePrediction,
    RiskFactor,
    TeacherInsights,
)

logger = logging.getLogger(__name__)

_ANALYTICS_LOGGER = logging.getLogger("lp.analytics")
if not _ANALYTICS_LOGGER.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    _ANALYTICS_LOGGER.addHandler(_handler)
_ANALYTICS_LOGGER.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
_ANALYTICS_LOGGER.propagate = False

T = TypeVar("T")

SERVICE = LearningPatternService()


@asynccontextmanager
async def _lifespan(_: FastAPI):
    global SERVICE
    try:
        # Validate environment variables first
        from env_validation import validate_environment
        thresholds = validate_environment()

        db.init()
        SERVICE = LearningPatternService(db, thresholds)
        logger.info("Learning pattern service ready (db: %s)", db.DB_PATH)
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise
    finally:
        db._pool.close_all()


app = FastAPI(title="Learning Pattern Analytics", version="1.0.0", lifespan=_lifespan)


async def _guard(operation: str, awaitable: Awaitable[T]) -> T:
    """Await a service call and translate store and input errors into HTTP errors."""
    try:
        return await awaitable
    except db.NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except db.UpstreamFailure as exc:
        logger.exception("Record store unavailable during %s", operation)
        raise HTTPException(status_code=503, detail="Record store unavailable") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _window(start: Optional[datetime], end: Optional[datetime]) -> Optional[Timeframe]:
    if start is None and end is None:
        return None
    try:
        return Timeframe(start=start, end=end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _split_ids(values: Optional[List[str]]) -> Optional[List[str]]:
    if not values:
        return None
    ids = [part.strip() for value in values for part in value.split(",") if part.strip()]
    return ids or None


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get(
    "/students/{student_id}/learning-patterns",
    response_model=LearningProfile,
)
async def student_learning_patterns(
    student_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
):
    window = _window(start, end)
    return await _guard(
        "analyze_student_patterns",
        SERVICE.analyze_student_patterns(student_id, window),
    )


@app.get(
    "/students/{student_id}/performance-prediction",
    response_model=PerformancePrediction,
)
async def performance_prediction(
    student_id: str,
    activity_type: str,
    blooms_level: str,
    difficulty: float = Query(..., ge=1, le=10),
):
    return await _guard(
        "predict_performance",
        SERVICE.predict_performance(student_id, activity_type, blooms_level, difficulty),
    )


@app.get("/students/{student_id}/early-warnings", response_model=List[RiskFactor])
async def early_warnings(student_id: str, class_id: Optional[str] = None):
    return await _guard(
        "detect_early_warnings",
        SERVICE.detect_early_warnings(student_id, class_id),
    )


@app.get(
    "/students/{student_id}/adaptive-content",
    response_model=List[ContentRecommendation],
)
async def adaptive_content(student_id: str, current_topic: str, subject: Optional[str] = None):
    return await _guard(
        "generate_adaptive_content",
        SERVICE.generate_adaptive_content(student_id, subject, current_topic),
    )


@app.post(
    "/students/{student_id}/learning-path/optimize",
    response_model=OptimizedLearningPath,
)
async def optimize_learning_path(student_id: str, request: OptimizeLearningPathRequest):
    return await _guard(
        "optimize_learning_path",
        SERVICE.optimize_learning_path(student_id, request.current_path, request.goals),
    )


@app.get("/classes/{class_id}/learning-patterns", response_model=ClassLearningPatterns)
async def class_learning_patterns(
    class_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
):
    window = _window(start, end)
    return await _guard(
        "get_class_learning_patterns",
        SERVICE.get_class_learning_patterns(class_id, window),
    )


@app.get("/teachers/{teacher_id}/learning-insights", response_model=TeacherInsights)
async def teacher_learning_insights(
    teacher_id: str,
    class_ids: Optional[List[str]] = Query(None),
    timeframe: str = "month",
):
    return await _guard(
        "get_teacher_insights",
        SERVICE.get_teacher_insights(teacher_id, _split_ids(class_ids), timeframe),
    )
