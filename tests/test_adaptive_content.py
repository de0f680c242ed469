import copy
from datetime import datetime, timedelta, timezone

from engines.adaptive_content import narrow_to_subject, recommend, target_level
from engines.profile_builder import NEUTRAL_PROFILE
from engines.records import ActivityRecord
from pattern_settings import PatternThresholds
from schemas import LearningProfile

BASE = datetime(2024, 4, 1, 10, 0, tzinfo=timezone.utc)


def _record(level, score, *, subject="math", day=0):
    return ActivityRecord("s1", f"{subject}-{level}-{day}", subject, level, score, 100, 30, BASE + timedelta(days=day))


def _profile(**performance) -> LearningProfile:
    data = copy.deepcopy(NEUTRAL_PROFILE)
    data["data_points"] = 6
    data["learning_style"] = {"primary": "kinesthetic", "secondary": "visual", "confidence": 0.6}
    data["performance_patterns"].update({"consistency_score": 80.0, "improvement_trend": "steady", "average_score": 75.0})
    data["performance_patterns"].update(performance)
    return LearningProfile.model_validate(data)


def test_target_level_is_first_unmastered_level():
    records = [_record("REMEMBER", 90), _record("UNDERSTAND", 80), _record("APPLY", 50), _record("ANALYZE", 95)]
    assert target_level(records) == "APPLY"
    assert target_level([]) == "REMEMBER"
    # an unpractised level counts as not yet mastered
    assert target_level([_record("REMEMBER", 85), _record("APPLY", 90)]) == "UNDERSTAND"


def test_target_level_caps_at_highest_level():
    records = [_record(level, 99, day=idx) for idx, level in enumerate(
        ["REMEMBER", "UNDERSTAND", "APPLY", "ANALYZE", "EVALUATE", "CREATE"]
    )]
    assert target_level(records) == "CREATE"


def test_records_are_narrowed_to_subject_when_present():
    records = [_record("APPLY", 60, subject="math"), _record("APPLY", 90, subject="biology")]
    assert [r.subject_id for r in narrow_to_subject(records, "Biology")] == ["biology"]
    assert len(narrow_to_subject(records, "chemistry")) == 2
    assert len(narrow_to_subject(records, None)) == 2


def test_core_item_targets_first_unmastered_level_in_primary_style():
    records = [_record("REMEMBER", 90), _record("UNDERSTAND", 60, day=1)]
    items = recommend(_profile(), records, "math", "fractions")

    assert items[0].blooms_level == "UNDERSTAND"
    assert items[0].content_type == "simulation"
    assert "fractions" in items[0].title
    assert [item.content_type for item in items] == ["simulation", "video"]
    assert all(1 <= item.difficulty <= 10 for item in items)


def test_struggling_and_accelerating_profiles_get_extra_items():
    records = [_record("REMEMBER", 90), _record("UNDERSTAND", 60, day=1)]

    declining = recommend(_profile(improvement_trend="declining"), records, "math", "fractions")
    assert [item.content_type for item in declining] == ["simulation", "review", "video"]
    assert declining[1].blooms_level == "REMEMBER"

    accelerating = recommend(_profile(improvement_trend="accelerating"), records, "math", "fractions")
    assert accelerating[-1].content_type == "challenge"
    assert accelerating[-1].blooms_level == "APPLY"


def test_item_count_is_capped():
    records = [_record("REMEMBER", 90)]
    profile = _profile(improvement_trend="accelerating", consistency_score=30.0)
    assert len(recommend(profile, records, "math", "fractions")) == 4
    capped = recommend(profile, records, "math", "fractions", PatternThresholds(max_content_items=2))
    assert len(capped) == 2
