import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from bloom_levels import BLOOM_LEVELS
from db_pool import SQLiteConnectionPool
from engines.records import ActivityMeta, ActivityRecord, AttendanceSummary, Timeframe, as_utc

DB_PATH = os.getenv("DB_PATH", "data.db")

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)

_TS_FORMAT = "%Y-%m-%d %H:%M:%S"
_BOUND_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
_ATTENDANCE_STATUSES = {"present", "late", "absent"}


class NotFoundError(LookupError):
    """Raised when a student, class or teacher id is unknown to the store."""


class UpstreamFailure(RuntimeError):
    """Raised when the record store cannot be read."""


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    try:
        with _pool.get_connection() as con:
            cur = con.execute(sql, params)
            con.commit()
            return cur
    except sqlite3.Error as exc:
        raise UpstreamFailure(f"record store write failed: {exc}") from exc


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    try:
        with _pool.get_connection() as con:
            cur = con.execute(sql, params)
            return cur.fetchall()
    except sqlite3.Error as exc:
        raise UpstreamFailure(f"record store read failed: {exc}") from exc


def init():
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            PRAGMA foreign_keys = ON;
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS students (
              student_id  TEXT PRIMARY KEY,
              name        TEXT,
              created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS classes (
              class_id    TEXT PRIMARY KEY,
              name        TEXT,
              teacher_id  TEXT,
              subject_id  TEXT,
              created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_classes_teacher ON classes(teacher_id);

            CREATE TABLE IF NOT EXISTS enrollments (
              class_id    TEXT NOT NULL,
              student_id  TEXT NOT NULL,
              status      TEXT NOT NULL DEFAULT 'active',
              enrolled_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
              PRIMARY KEY (class_id, student_id),
              FOREIGN KEY(class_id) REFERENCES classes(class_id) ON DELETE CASCADE,
              FOREIGN KEY(student_id) REFERENCES students(student_id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS activities (
              activity_id      TEXT PRIMARY KEY,
              class_id         TEXT,
              subject_id       TEXT NOT NULL,
              activity_type    TEXT NOT NULL DEFAULT 'general',
              title            TEXT,
              blooms_level     TEXT NOT NULL,
              expected_minutes REAL,
              due_at           TEXT,
              difficulty       REAL,
              created_at       TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
              FOREIGN KEY(class_id) REFERENCES classes(class_id) ON DELETE SET NULL
            );

            CREATE INDEX IF NOT EXISTS idx_activities_class ON activities(class_id);

            CREATE TABLE IF NOT EXISTS activity_grades (
              id                 INTEGER PRIMARY KEY AUTOINCREMENT,
              student_id         TEXT NOT NULL,
              activity_id        TEXT NOT NULL,
              score              REAL NOT NULL,
              max_score          REAL NOT NULL,
              time_spent_minutes REAL NOT NULL DEFAULT 0,
              completed_at       TEXT NOT NULL,
              FOREIGN KEY(student_id) REFERENCES students(student_id) ON DELETE CASCADE,
              FOREIGN KEY(activity_id) REFERENCES activities(activity_id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_grades_student ON activity_grades(student_id, completed_at);
            CREATE INDEX IF NOT EXISTS idx_grades_activity ON activity_grades(activity_id);

            CREATE TABLE IF NOT EXISTS attendance (
              id           INTEGER PRIMARY KEY AUTOINCREMENT,
              student_id   TEXT NOT NULL,
              class_id     TEXT NOT NULL,
              session_date TEXT NOT NULL,
              status       TEXT NOT NULL CHECK(status IN ('present','late','absent')),
              UNIQUE(student_id, class_id, session_date),
              FOREIGN KEY(student_id) REFERENCES students(student_id) ON DELETE CASCADE,
              FOREIGN KEY(class_id) REFERENCES classes(class_id) ON DELETE CASCADE
            );
            """
        )
        con.commit()


# -------------- timestamp helpers --------------
def _format_ts(moment: datetime) -> str:
    return as_utc(moment).strftime(_TS_FORMAT)


def _parse_ts(value: Optional[str], label: str = "timestamp") -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise UpstreamFailure(f"corrupt {label}: {value!r}") from exc


def _window_clause(column: str, window: Optional[Timeframe]) -> tuple[str, list[Any]]:
    """SQL fragment restricting ``column`` to the inclusive window.

    Both sides go through ``julianday`` so ``T``-separated or offset values
    compare as instants and sub-second bounds are kept.
    """
    if window is None:
        return "", []
    parts: list[str] = []
    params: list[Any] = []
    if window.start is not None:
        parts.append(f"julianday({column}) >= julianday(?)")
        params.append(as_utc(window.start).strftime(_BOUND_FORMAT))
    if window.end is not None:
        parts.append(f"julianday({column}) <= julianday(?)")
        params.append(as_utc(window.end).strftime(_BOUND_FORMAT))
    if not parts:
        return "", []
    return " AND " + " AND ".join(parts), params


# -------------- lookups --------------
def get_student(student_id: str) -> Optional[sqlite3.Row]:
    rows = _query("SELECT student_id, name FROM students WHERE student_id = ?", (student_id,))
    return rows[0] if rows else None


def get_class(class_id: str) -> Optional[sqlite3.Row]:
    rows = _query(
        "SELECT class_id, name, teacher_id, subject_id FROM classes WHERE class_id = ?",
        (class_id,),
    )
    return rows[0] if rows else None


def _require_student(student_id: str) -> sqlite3.Row:
    row = get_student(student_id)
    if row is None:
        raise NotFoundError(f"Unknown student: {student_id}")
    return row


def _require_class(class_id: str) -> sqlite3.Row:
    row = get_class(class_id)
    if row is None:
        raise NotFoundError(f"Unknown class: {class_id}")
    return row


_RECORD_COLUMNS = """
    g.student_id, g.activity_id, a.subject_id, a.blooms_level,
    g.score, g.max_score, g.time_spent_minutes, g.completed_at
"""


def _to_record(row: sqlite3.Row) -> ActivityRecord:
    return ActivityRecord(
        student_id=row["student_id"],
        activity_id=row["activity_id"],
        subject_id=row["subject_id"],
        blooms_level=BLOOM_LEVELS.normalize(row["blooms_level"]) or row["blooms_level"],
        score=float(row["score"]),
        max_score=float(row["max_score"]),
        time_spent_minutes=float(row["time_spent_minutes"] or 0.0),
        completed_at=_parse_ts(
            row["completed_at"],
            f"completed_at for grade of {row['student_id']} on {row['activity_id']}",
        ),
    )


def load_student_records(
    student_id: str,
    window: Optional[Timeframe] = None,
    class_id: Optional[str] = None,
) -> list[ActivityRecord]:
    """Graded records for one student, optionally limited to a class's activities."""
    _require_student(student_id)
    where, params = _window_clause("g.completed_at", window)
    sql = f"""
        SELECT {_RECORD_COLUMNS}
        FROM activity_grades AS g
        JOIN activities AS a ON a.activity_id = g.activity_id
        WHERE g.student_id = ?{where}
    """
    args: list[Any] = [student_id, *params]
    if class_id is not None:
        sql += " AND a.class_id = ?"
        args.append(class_id)
    sql += " ORDER BY julianday(g.completed_at) ASC, g.id ASC"
    return [_to_record(row) for row in _query(sql, args)]


def load_class_records(class_id: str, window: Optional[Timeframe] = None) -> list[ActivityRecord]:
    _require_class(class_id)
    where, params = _window_clause("g.completed_at", window)
    rows = _query(
        f"""
        SELECT {_RECORD_COLUMNS}
        FROM activity_grades AS g
        JOIN activities AS a ON a.activity_id = g.activity_id
        WHERE a.class_id = ?{where}
        ORDER BY julianday(g.completed_at) ASC, g.id ASC
        """,
        [class_id, *params],
    )
    return [_to_record(row) for row in rows]


def load_records(subject_id: str, window: Optional[Timeframe] = None) -> list[ActivityRecord]:
    """Records for a student id or a class id; unknown ids raise ``NotFoundError``."""
    if get_student(subject_id) is not None:
        return load_student_records(subject_id, window)
    if get_class(subject_id) is not None:
        return load_class_records(subject_id, window)
    raise NotFoundError(f"Unknown student or class: {subject_id}")


def load_activity_catalog(activity_ids: Iterable[str]) -> Dict[str, ActivityMeta]:
    ids = sorted({str(activity_id) for activity_id in activity_ids})
    if not ids:
        return {}
    placeholders = ",".join("?" for _ in ids)
    rows = _query(
        f"""
        SELECT activity_id, activity_type, expected_minutes, due_at
        FROM activities
        WHERE activity_id IN ({placeholders})
        """,
        ids,
    )
    return {
        row["activity_id"]: ActivityMeta(
            activity_id=row["activity_id"],
            activity_type=row["activity_type"] or "general",
            expected_minutes=float(row["expected_minutes"]) if row["expected_minutes"] is not None else None,
            due_at=_parse_ts(row["due_at"], f"due_at for activity {row['activity_id']}"),
        )
        for row in rows
    }


def list_class_students(class_id: str) -> list[Dict[str, Any]]:
    """Actively enrolled students of ``class_id`` ordered by id."""
    _require_class(class_id)
    rows = _query(
        """
        SELECT s.student_id, s.name
        FROM enrollments AS e
        JOIN students AS s ON s.student_id = e.student_id
        WHERE e.class_id = ? AND e.status = 'active'
        ORDER BY s.student_id ASC
        """,
        (class_id,),
    )
    return [{"student_id": row["student_id"], "name": row["name"]} for row in rows]


def list_teacher_classes(teacher_id: str) -> list[str]:
    rows = _query(
        "SELECT class_id FROM classes WHERE teacher_id = ? ORDER BY class_id ASC",
        (teacher_id,),
    )
    return [row["class_id"] for row in rows]


def count_class_activities(class_id: str, window: Optional[Timeframe] = None) -> int:
    """Activities assigned to the class; undated activities count from their creation."""
    where, params = _window_clause("COALESCE(due_at, created_at)", window)
    rows = _query(
        f"SELECT COUNT(*) AS n FROM activities WHERE class_id = ?{where}",
        [class_id, *params],
    )
    return int(rows[0]["n"]) if rows else 0


def count_completed_class_activities(
    student_id: str,
    class_id: str,
    window: Optional[Timeframe] = None,
) -> int:
    """Distinct class activities the student has a grade for, among those due in ``window``.

    Same due-date window as ``count_class_activities``; early hand-ins for
    activities not yet due are not counted.
    """
    where, params = _window_clause("COALESCE(a.due_at, a.created_at)", window)
    rows = _query(
        f"""
        SELECT COUNT(DISTINCT g.activity_id) AS n
        FROM activity_grades AS g
        JOIN activities AS a ON a.activity_id = g.activity_id
        WHERE g.student_id = ? AND a.class_id = ?{where}
        """,
        [student_id, class_id, *params],
    )
    return int(rows[0]["n"]) if rows else 0


def load_attendance(
    student_id: str,
    class_id: str,
    window: Optional[Timeframe] = None,
) -> AttendanceSummary:
    where, params = _window_clause("session_date", window)
    rows = _query(
        f"""
        SELECT status, COUNT(*) AS n
        FROM attendance
        WHERE student_id = ? AND class_id = ?{where}
        GROUP BY status
        """,
        [student_id, class_id, *params],
    )
    counts = {row["status"]: int(row["n"]) for row in rows}
    return AttendanceSummary(
        present=counts.get("present", 0),
        late=counts.get("late", 0),
        absent=counts.get("absent", 0),
    )


# -------------- write helpers (seeding and tests) --------------
def upsert_student(student_id: str, name: Optional[str] = None) -> None:
    _exec(
        """
        INSERT INTO students(student_id, name) VALUES (?, ?)
        ON CONFLICT(student_id) DO UPDATE SET name=excluded.name
        """,
        (student_id, name),
    )


def upsert_class(
    class_id: str,
    name: Optional[str] = None,
    teacher_id: Optional[str] = None,
    subject_id: Optional[str] = None,
) -> None:
    _exec(
        """
        INSERT INTO classes(class_id, name, teacher_id, subject_id) VALUES (?,?,?,?)
        ON CONFLICT(class_id) DO UPDATE SET
          name=excluded.name,
          teacher_id=excluded.teacher_id,
          subject_id=excluded.subject_id
        """,
        (class_id, name, teacher_id, subject_id),
    )


def enroll_student(class_id: str, student_id: str, status: str = "active") -> None:
    _exec(
        """
        INSERT INTO enrollments(class_id, student_id, status) VALUES (?,?,?)
        ON CONFLICT(class_id, student_id) DO UPDATE SET status=excluded.status
        """,
        (class_id, student_id, status),
    )


def upsert_activity(
    activity_id: str,
    subject_id: str,
    blooms_level: str,
    class_id: Optional[str] = None,
    activity_type: str = "general",
    title: Optional[str] = None,
    expected_minutes: Optional[float] = None,
    due_at: Optional[datetime] = None,
    difficulty: Optional[float] = None,
    created_at: Optional[datetime] = None,
) -> None:
    level = BLOOM_LEVELS.normalize(blooms_level)
    if level is None:
        raise ValueError(f"Unknown Bloom level: {blooms_level}")
    _exec(
        """
        INSERT INTO activities(
          activity_id, class_id, subject_id, activity_type, title, blooms_level,
          expected_minutes, due_at, difficulty, created_at
        )
        VALUES (?,?,?,?,?,?,?,?,?,COALESCE(?, CURRENT_TIMESTAMP))
        ON CONFLICT(activity_id) DO UPDATE SET
          class_id=excluded.class_id,
          subject_id=excluded.subject_id,
          activity_type=excluded.activity_type,
          title=excluded.title,
          blooms_level=excluded.blooms_level,
          expected_minutes=excluded.expected_minutes,
          due_at=excluded.due_at,
          difficulty=excluded.difficulty
        """,
        (
            activity_id,
            class_id,
            subject_id,
            activity_type,
            title,
            level,
            expected_minutes,
            _format_ts(due_at) if due_at else None,
            difficulty,
            _format_ts(created_at) if created_at else None,
        ),
    )


def record_grade(
    student_id: str,
    activity_id: str,
    score: float,
    max_score: float,
    completed_at: datetime,
    time_spent_minutes: float = 0.0,
) -> int:
    cur = _exec(
        """
        INSERT INTO activity_grades(student_id, activity_id, score, max_score, time_spent_minutes, completed_at)
        VALUES (?,?,?,?,?,?)
        """,
        (student_id, activity_id, float(score), float(max_score), float(time_spent_minutes), _format_ts(completed_at)),
    )
    return int(cur.lastrowid)


def record_attendance(student_id: str, class_id: str, session_date: datetime, status: str) -> None:
    normalized = status.strip().lower()
    if normalized not in _ATTENDANCE_STATUSES:
        raise ValueError(f"Unknown attendance status: {status}")
    _exec(
        """
        INSERT INTO attendance(student_id, class_id, session_date, status) VALUES (?,?,?,?)
        ON CONFLICT(student_id, class_id, session_date) DO UPDATE SET status=excluded.status
        """,
        (student_id, class_id, _format_ts(session_date), normalized),
    )
