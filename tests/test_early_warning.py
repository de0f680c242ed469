from datetime import datetime, timedelta, timezone

from engines.early_warning import ClassContext, build_context, detect
from engines.profile_builder import build_profile
from engines.records import ActivityRecord, AttendanceSummary

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _records(scores, *, start_days_ago=10):
    return [
        ActivityRecord("s1", f"a{idx}", "math", "APPLY", score, 100, 30, NOW - timedelta(days=start_days_ago - idx))
        for idx, score in enumerate(scores)
    ]


def _context(records, *, present=10, absent=0, assigned=None, completed=None):
    return build_context(
        "c1",
        records,
        AttendanceSummary(present=present, absent=absent),
        len(records) if assigned is None else assigned,
        len({r.activity_id for r in records}) if completed is None else completed,
        NOW,
    )


def test_without_class_context_only_profile_risks_are_returned():
    profile = build_profile(_records([75, 75, 75]))
    assert detect(profile) == []
    assert [w.factor for w in detect(build_profile([]))] == ["insufficient data"]


def test_attendance_thresholds():
    records = _records([75, 75, 75])
    profile = build_profile(records)

    medium = detect(profile, _context(records, present=7, absent=3))
    assert [(w.factor, w.severity) for w in medium] == [("poor attendance", "medium")]

    high = detect(profile, _context(records, present=5, absent=5))
    assert [(w.factor, w.severity) for w in high] == [("poor attendance", "high")]

    assert detect(profile, _context(records, present=8, absent=2)) == []


def test_missing_work_thresholds():
    records = _records([75, 75, 75])
    profile = build_profile(records)

    medium = detect(profile, _context(records, assigned=5))
    assert [(w.factor, w.severity) for w in medium] == [("missing work", "medium")]

    high = detect(profile, _context(records, assigned=10))
    assert [(w.factor, w.severity) for w in high] == [("missing work", "high")]


def test_inactivity_after_two_weeks():
    records = _records([75, 75], start_days_ago=30)
    warnings = detect(build_profile(records), _context(records))
    assert [(w.factor, w.severity) for w in warnings] == [("inactivity", "medium")]


def test_class_evidence_replaces_insufficient_data():
    records = _records([70], start_days_ago=1)
    profile = build_profile(records)
    assert [r.factor for r in profile.risk_factors] == ["insufficient data"]
    assert detect(profile, _context(records)) == []


def test_student_without_any_class_activity_is_flagged():
    ctx = ClassContext("c1", AttendanceSummary(), assigned_activities=4, completed_activities=0,
                       last_activity_at=None, now=NOW)
    factors = [(w.factor, w.severity) for w in detect(build_profile([]), ctx)]
    assert factors == [("missing work", "high"), ("inactivity", "medium"), ("insufficient data", "low")]


def test_warnings_are_sorted_by_severity():
    records = _records([95, 10, 90, 15, 95, 10], start_days_ago=40)
    profile = build_profile(records)
    warnings = detect(profile, _context(records, present=4, absent=6, assigned=20))
    severities = [w.severity for w in warnings]
    assert severities == sorted(severities, key={"high": 0, "medium": 1, "low": 2}.get)
    assert {"inconsistent performance", "poor attendance", "missing work", "inactivity"} <= {
        w.factor for w in warnings
    }
