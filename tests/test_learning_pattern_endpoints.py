import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import app
import db

NOW = datetime.now(timezone.utc).replace(microsecond=0)


async def _call_app(method: str, path: str, *, payload: Optional[dict] = None, query: Optional[dict] = None):
    body = b""
    headers = [(b"host", b"testserver")]
    if payload is not None:
        body = json.dumps(payload).encode("utf-8")
        headers.extend(
            [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode()),
            ]
        )
    query_string = urlencode(query or {}, doseq=True).encode()
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method.upper(),
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "scheme": "http",
        "query_string": query_string,
        "headers": headers,
        "client": ("testclient", 12345),
        "server": ("testserver", 80),
        "state": {},
    }

    messages = []

    async def receive():
        nonlocal body
        if body:
            chunk, body = body, b""
            return {"type": "http.request", "body": chunk, "more_body": False}
        return {"type": "http.disconnect"}

    async def send(message):
        messages.append(message)

    await app.app(scope, receive, send)
    status = 500
    body_bytes = b""
    for message in messages:
        if message["type"] == "http.response.start":
            status = message["status"]
        elif message["type"] == "http.response.body":
            body_bytes += message.get("body", b"")
    data = json.loads(body_bytes.decode("utf-8") or "{}")
    return status, data


def _post(path: str, payload: dict) -> tuple[int, dict]:
    return asyncio.run(_call_app("POST", path, payload=payload))


def _get(path: str, query: Optional[dict] = None) -> tuple[int, dict]:
    return asyncio.run(_call_app("GET", path, query=query))


def _seed():
    db.upsert_class("c1", "Algebra", teacher_id="t1", subject_id="math")
    for student_id, scores in {"s1": [60, 70, 80, 90], "s2": [75, 75, 75]}.items():
        db.upsert_student(student_id, student_id.upper())
        db.enroll_student("c1", student_id)
        for idx, score in enumerate(scores):
            db.upsert_activity(f"a{idx}", "math", "UNDERSTAND", class_id="c1", activity_type="video",
                               expected_minutes=30)
            db.record_grade(student_id, f"a{idx}", score, 100, NOW - timedelta(days=5 - idx),
                            time_spent_minutes=28)


def test_health():
    status, data = _get("/health")
    assert status == 200
    assert data == {"status": "ok"}


def test_learning_patterns_are_camel_case(temp_db):
    _seed()
    status, data = _get("/students/s1/learning-patterns")

    assert status == 200
    assert set(data) >= {
        "learningStyle",
        "cognitivePreferences",
        "performancePatterns",
        "engagementPatterns",
        "riskFactors",
        "strengths",
        "adaptiveRecommendations",
    }
    assert data["performancePatterns"]["improvementTrend"] == "accelerating"
    assert data["learningStyle"]["primary"] == "visual"
    assert data["dataPoints"] == 4


def test_learning_patterns_window_validation(temp_db):
    _seed()
    status, data = _get(
        "/students/s1/learning-patterns",
        {"start": NOW.isoformat(), "end": (NOW - timedelta(days=1)).isoformat()},
    )
    assert status == 400

    status, data = _get(
        "/students/s1/learning-patterns",
        {"start": (NOW - timedelta(days=30)).isoformat(), "end": (NOW - timedelta(days=20)).isoformat()},
    )
    assert status == 200
    assert [r["factor"] for r in data["riskFactors"]] == ["insufficient data"]


def test_unknown_student_is_404(temp_db):
    status, data = _get("/students/ghost/learning-patterns")
    assert status == 404
    assert "ghost" in data["detail"]


def test_store_failure_is_503(broken_store):
    status, data = _get("/students/s1/learning-patterns")
    assert status == 503
    assert data["detail"] == "Record store unavailable"


def test_performance_prediction_endpoint(temp_db):
    _seed()
    status, data = _get(
        "/students/s2/performance-prediction",
        {"activity_type": "video", "blooms_level": "understand", "difficulty": 5.5},
    )
    assert status == 200
    assert data["predictedScore"] == 75.0
    assert 0 <= data["confidence"] <= 1

    status, _ = _get(
        "/students/s2/performance-prediction",
        {"activity_type": "video", "blooms_level": "understand", "difficulty": 12},
    )
    assert status == 422

    status, data = _get(
        "/students/s2/performance-prediction",
        {"activity_type": "video", "blooms_level": "K4", "difficulty": 5},
    )
    assert status == 400


def test_early_warnings_endpoint(temp_db):
    _seed()
    status, data = _get("/students/s2/early-warnings", {"class_id": "c1"})
    assert status == 200
    assert data == []

    status, _ = _get("/students/s2/early-warnings", {"class_id": "nope"})
    assert status == 404


def test_adaptive_content_endpoint(temp_db):
    _seed()
    status, data = _get("/students/s1/adaptive-content", {"subject": "math", "current_topic": "ratios"})
    assert status == 200
    assert 1 <= len(data) <= 4
    assert {"contentType", "title", "bloomsLevel", "difficulty", "rationale"} <= set(data[0])


def test_optimize_learning_path_endpoint(temp_db):
    _seed()
    payload = {
        "currentPath": [
            {"activityId": "p1", "activityType": "video", "bloomsLevel": "APPLY", "difficulty": 5, "estimatedTime": 30},
            {"activityId": "p2", "activityType": "project", "bloomsLevel": "CREATE", "difficulty": 7, "estimatedTime": 90},
        ],
        "goals": {"targetBloomsLevel": "ANALYZE", "timeframe": 2, "focusAreas": []},
    }
    status, data = _post("/students/s1/learning-path/optimize", payload)

    assert status == 200
    assert [step["activityId"] for step in data["optimizedPath"]] == ["p1"]
    assert [step["activityId"] for step in data["deferredSteps"]] == ["p2"]
    assert data["availableMinutes"] == 90

    status, _ = _post("/students/s1/learning-path/optimize", {"currentPath": [], "goals": {}})
    assert status == 422


def test_class_learning_patterns_endpoint(temp_db):
    _seed()
    status, data = _get("/classes/c1/learning-patterns")

    assert status == 200
    assert data["classId"] == "c1"
    assert data["studentCount"] == 2
    assert data["classAverages"]["analyzedCount"] == 2
    assert {entry["studentId"] for entry in data["studentPatterns"]} == {"s1", "s2"}

    status, _ = _get("/classes/unknown/learning-patterns")
    assert status == 404


def test_teacher_insights_endpoint(temp_db):
    _seed()
    status, data = _get("/teachers/t1/learning-insights", {"timeframe": "term"})
    assert status == 200
    assert data["timeframe"] == "term"
    assert data["summary"]["totalStudents"] == 2

    status, data = _get("/teachers/t1/learning-insights", {"class_ids": "c1,c1", "timeframe": "week"})
    assert status == 200
    assert [c["classId"] for c in data["classInsights"]] == ["c1"]

    status, _ = _get("/teachers/t1/learning-insights", {"timeframe": "century"})
    assert status == 400
