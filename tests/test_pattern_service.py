import asyncio
from datetime import datetime, timedelta, timezone

import pytest

import db
from engines.pattern_service import LearningPatternService, class_averages
from engines.records import Timeframe
from schemas import LearningGoals, PathStep

NOW = datetime.now(timezone.utc).replace(microsecond=0)


class FlakyStore:
    """Delegates to ``db`` but fails for selected students or classes."""

    def __init__(self, failing_students=(), failing_classes=(), error=None):
        self.failing_students = set(failing_students)
        self.failing_classes = set(failing_classes)
        self.error = error or db.UpstreamFailure("replica offline")

    def __getattr__(self, name):
        return getattr(db, name)

    def load_student_records(self, student_id, window=None, class_id=None):
        if student_id in self.failing_students:
            raise self.error
        return db.load_student_records(student_id, window, class_id)

    def list_class_students(self, class_id):
        if class_id in self.failing_classes:
            raise self.error
        return db.list_class_students(class_id)


def _seed(scores_by_student, class_id="c1", teacher_id="t1"):
    db.upsert_class(class_id, class_id.upper(), teacher_id=teacher_id, subject_id="math")
    for student_id, scores in scores_by_student.items():
        db.upsert_student(student_id, student_id.title())
        db.enroll_student(class_id, student_id)
        for idx, score in enumerate(scores):
            activity_id = f"{class_id}-a{idx}"
            db.upsert_activity(activity_id, "math", "APPLY", class_id=class_id, activity_type="quiz",
                               expected_minutes=30, due_at=NOW + timedelta(days=5))
            completed = NOW - timedelta(days=len(scores) - idx) + timedelta(hours=1)
            db.record_grade(student_id, activity_id, score, 100, completed, time_spent_minutes=30)


def test_analyze_student_patterns_builds_profile(temp_db):
    _seed({"s1": [50, 60, 70, 80, 90]})
    profile = asyncio.run(LearningPatternService().analyze_student_patterns("s1"))

    assert profile.data_points == 5
    assert profile.performance_patterns.improvement_trend == "accelerating"
    assert "rapid improvement" in profile.strengths
    assert profile.learning_style.primary == "reading_writing"


def test_analyze_respects_timeframe_presets_and_windows(temp_db):
    _seed({"s1": [70] * 10})
    service = LearningPatternService()

    week = asyncio.run(service.analyze_student_patterns("s1", "week"))
    assert week.data_points == 7

    empty = asyncio.run(service.analyze_student_patterns("s1", Timeframe(end=NOW - timedelta(days=30))))
    assert empty.data_points == 0
    assert [r.factor for r in empty.risk_factors] == ["insufficient data"]

    with pytest.raises(ValueError):
        asyncio.run(service.analyze_student_patterns("s1", "decade"))


def test_unknown_student_raises_not_found(temp_db):
    with pytest.raises(db.NotFoundError):
        asyncio.run(LearningPatternService().analyze_student_patterns("ghost"))


def test_class_report_marks_failed_student_and_averages_successes(temp_db):
    _seed({"s1": [75, 75, 75, 75], "s2": [40, 90, 30, 95]})
    service = LearningPatternService(store=FlakyStore(failing_students={"s2"}))

    report = asyncio.run(service.get_class_learning_patterns("c1"))

    assert report.student_count == 2
    by_id = {entry.student_id: entry for entry in report.student_patterns}
    assert by_id["s1"].patterns is not None and by_id["s1"].error is None
    assert by_id["s2"].patterns is None and "unavailable" in by_id["s2"].error
    assert report.class_averages.analyzed_count == 1
    assert report.class_averages.average_score == 75.0
    assert report.class_averages.consistency_score == 100.0
    assert report.class_averages.risk_factor_count == 0


def test_class_report_propagates_unexpected_errors(temp_db):
    _seed({"s1": [75, 75]})
    service = LearningPatternService(store=FlakyStore(failing_students={"s1"}, error=KeyError("bug")))
    with pytest.raises(KeyError):
        asyncio.run(service.get_class_learning_patterns("c1"))


def test_unknown_class_raises_not_found(temp_db):
    with pytest.raises(db.NotFoundError):
        asyncio.run(LearningPatternService().get_class_learning_patterns("c-missing"))


def test_teacher_insights_join_classes_best_effort(temp_db):
    _seed({"s1": [75, 75, 75], "s2": [80, 82, 84]}, class_id="c1")
    _seed({"s3": [60, 62]}, class_id="c2")
    _seed({"s4": [90, 91]}, class_id="c3")
    service = LearningPatternService(store=FlakyStore(failing_classes={"c3"}))

    insights = asyncio.run(service.get_teacher_insights("t1", timeframe="Month"))

    assert insights.timeframe == "month"
    assert [c.class_id for c in insights.class_insights] == ["c1", "c2", "c3"]
    assert insights.class_insights[2].error is not None
    assert insights.summary.total_students == 3
    assert insights.summary.total_risk_factors == 0
    assert 0 < insights.summary.average_consistency <= 100

    only_c2 = asyncio.run(service.get_teacher_insights("t1", class_ids=["c2", "c2"]))
    assert [c.class_id for c in only_c2.class_insights] == ["c2"]


def test_teacher_without_classes_is_not_found(temp_db):
    with pytest.raises(db.NotFoundError):
        asyncio.run(LearningPatternService().get_teacher_insights("t-none"))


def test_early_warnings_with_class_context(temp_db):
    _seed({"s1": [75, 75, 75]})
    for idx in range(5):
        db.upsert_activity(f"extra-{idx}", "math", "APPLY", class_id="c1", due_at=NOW - timedelta(days=1))
    for day in range(5):
        db.record_attendance("s1", "c1", NOW - timedelta(days=day + 1), "absent" if day < 3 else "present")

    warnings = asyncio.run(LearningPatternService().detect_early_warnings("s1", "c1", now=NOW))

    assert [(w.factor, w.severity) for w in warnings] == [
        ("poor attendance", "high"),
        ("missing work", "high"),
    ]
    assert "Completed 0 of 5" in warnings[1].description
    with pytest.raises(db.NotFoundError):
        asyncio.run(LearningPatternService().detect_early_warnings("s1", "c-missing"))


def test_early_hand_ins_do_not_offset_past_due_work(temp_db):
    db.upsert_student("s1", "S1")
    for class_id in ("c1", "c2"):
        db.upsert_class(class_id, class_id.upper(), teacher_id="t1", subject_id="math")
        db.enroll_student(class_id, "s1")
    for idx in range(5):
        db.upsert_activity(f"soon-{idx}", "math", "APPLY", class_id="c1", activity_type="quiz",
                           expected_minutes=30, due_at=NOW + timedelta(days=7))
        db.record_grade("s1", f"soon-{idx}", 80, 100, NOW - timedelta(days=3, hours=idx), time_spent_minutes=30)
        db.upsert_activity(f"late-{idx}", "math", "APPLY", class_id="c1", due_at=NOW - timedelta(days=1))
    db.upsert_activity("c2-late", "math", "APPLY", class_id="c2", activity_type="quiz",
                       expected_minutes=30, due_at=NOW - timedelta(days=1))
    db.record_grade("s1", "c2-late", 80, 100, NOW - timedelta(days=3), time_spent_minutes=30)
    service = LearningPatternService()

    c1 = asyncio.run(service.detect_early_warnings("s1", "c1", now=NOW))
    assert [(w.factor, w.severity) for w in c1] == [("missing work", "high")]
    assert "Completed 0 of 5" in c1[0].description

    assert asyncio.run(service.detect_early_warnings("s1", "c2", now=NOW)) == []
    so_far = Timeframe(end=NOW)
    assert db.count_completed_class_activities("s1", "c1", so_far) == 0
    assert db.count_completed_class_activities("s1", "c1") == 5
    assert db.count_completed_class_activities("s1", "c2", so_far) == 1


def test_class_report_marks_student_with_corrupt_timestamp(temp_db):
    _seed({"s1": [75, 75, 75], "s2": [70, 70, 70]})
    db._exec(
        "INSERT INTO activity_grades(student_id, activity_id, score, max_score, completed_at) VALUES (?,?,?,?,?)",
        ("s2", "c1-a0", 70, 100, "not-a-date"),
    )

    report = asyncio.run(LearningPatternService().get_class_learning_patterns("c1"))

    by_id = {entry.student_id: entry for entry in report.student_patterns}
    assert by_id["s1"].patterns is not None
    assert by_id["s2"].patterns is None
    assert by_id["s2"].error.startswith("unavailable: corrupt completed_at")
    assert report.class_averages.analyzed_count == 1


def test_prediction_rejects_bad_difficulty_before_reading(broken_store):
    with pytest.raises(ValueError):
        asyncio.run(LearningPatternService().predict_performance("s1", "quiz", "APPLY", 11))
    with pytest.raises(db.UpstreamFailure):
        asyncio.run(LearningPatternService().predict_performance("s1", "quiz", "APPLY", 5))


def test_adaptive_content_and_path_through_service(temp_db):
    _seed({"s1": [85, 88, 90]})
    service = LearningPatternService()

    items = asyncio.run(service.generate_adaptive_content("s1", "math", "linear equations"))
    assert items and items[0].blooms_level == "REMEMBER"

    path = asyncio.run(
        service.optimize_learning_path(
            "s1",
            [PathStep(activity_id="p1", activity_type="quiz", blooms_level="APPLY", difficulty=5, estimated_time=30)],
            LearningGoals(target_blooms_level="ANALYZE", timeframe=2),
        )
    )
    assert path.feasible is True
    assert path.optimized_path[0].activity_id == "p1"


def test_class_averages_of_nothing():
    averages = class_averages([])
    assert averages.analyzed_count == 0
    assert averages.average_score == 0.0
