import random
import sys
from datetime import datetime, timedelta, timezone

import requests

import db

BASE_URL = "http://127.0.0.1:8000"

TEACHER_ID = "t-rivera"

CLASSES = {
    "algebra-1": {"name": "Algebra I", "subject": "mathematics"},
    "biology-1": {"name": "Biology I", "subject": "biology"},
}

ACTIVITY_TEMPLATES = [
    ("quiz", "REMEMBER", 15),
    ("video", "UNDERSTAND", 20),
    ("simulation", "APPLY", 40),
    ("essay", "ANALYZE", 45),
    ("discussion", "EVALUATE", 30),
    ("project", "CREATE", 60),
]

# student -> (baseline %, drift per activity, attendance rate, study hour)
STUDENTS = {
    "alice": (82, 1.5, 0.95, 9),
    "peter": (70, -3.0, 0.7, 20),
    "marco": (55, 4.0, 0.9, 14),
    "lena": (90, 0.0, 1.0, 10),
    "sam": (60, -1.0, 0.5, 22),
}


def seed(days: int = 60, seed_value: int = 7) -> None:
    rng = random.Random(seed_value)
    now = datetime.now(timezone.utc).replace(microsecond=0)
    db.init()

    for class_id, meta in CLASSES.items():
        db.upsert_class(class_id, meta["name"], TEACHER_ID, meta["subject"])
        for idx, (activity_type, level, minutes) in enumerate(ACTIVITY_TEMPLATES * 2):
            due = now - timedelta(days=days - idx * (days // 12))
            db.upsert_activity(
                f"{class_id}-a{idx + 1}",
                meta["subject"],
                level,
                class_id=class_id,
                activity_type=activity_type,
                title=f"{meta['name']} {activity_type} {idx + 1}",
                expected_minutes=minutes,
                due_at=due,
                difficulty=min(10, 2 + idx // 2),
                created_at=due - timedelta(days=7),
            )

    for student_id, (baseline, drift, attendance_rate, hour) in STUDENTS.items():
        db.upsert_student(student_id, student_id.title())
        for class_id, meta in CLASSES.items():
            db.enroll_student(class_id, student_id)
            for idx, (_, _, minutes) in enumerate(ACTIVITY_TEMPLATES * 2):
                if rng.random() < 0.15:
                    continue
                due = now - timedelta(days=days - idx * (days // 12))
                completed = (due - timedelta(days=rng.randint(0, 3))).replace(hour=hour)
                score = max(0.0, min(100.0, baseline + drift * idx + rng.uniform(-8, 8)))
                db.record_grade(
                    student_id,
                    f"{class_id}-a{idx + 1}",
                    round(score, 1),
                    100,
                    completed,
                    time_spent_minutes=round(minutes * rng.uniform(0.5, 1.4), 1),
                )
            for day in range(0, days, 3):
                status = "present" if rng.random() < attendance_rate else "absent"
                db.record_attendance(student_id, class_id, now - timedelta(days=day), status)

    print(f"Seeded {len(STUDENTS)} students across {len(CLASSES)} classes into {db.DB_PATH}")


def test_connection():
    try:
        r = requests.get(f"{BASE_URL}/health", timeout=5)
        print(f"Server status: {r.status_code}")
        return r.status_code == 200
    except requests.RequestException as e:
        print(f"Server connection error: {e}")
        return False


def smoke_check():
    if not test_connection():
        return False

    ok = True
    for student_id in STUDENTS:
        r = requests.get(f"{BASE_URL}/students/{student_id}/learning-patterns", timeout=10)
        if r.ok:
            profile = r.json()
            trend = profile["performancePatterns"]["improvementTrend"]
            print(f"{student_id}: trend={trend} risks={[f['factor'] for f in profile['riskFactors']]}")
        else:
            print(f"{student_id}: error {r.status_code}")
            ok = False

        r = requests.get(
            f"{BASE_URL}/students/{student_id}/early-warnings",
            params={"class_id": "algebra-1"},
            timeout=10,
        )
        if r.ok:
            print(f" → {len(r.json())} early warnings in algebra-1")
        else:
            ok = False

    r = requests.get(
        f"{BASE_URL}/teachers/{TEACHER_ID}/learning-insights",
        params={"timeframe": "term"},
        timeout=30,
    )
    if r.ok:
        summary = r.json()["summary"]
        print(f"Teacher summary: {summary}")
    else:
        print(f"Failed to get teacher insights: {r.status_code}")
        ok = False
    return ok


if __name__ == "__main__":
    seed()
    if "--check" in sys.argv[1:]:
        sys.exit(0 if smoke_check() else 1)
