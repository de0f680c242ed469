"""Immutable domain records consumed by the pattern engines."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

TIMEFRAME_PRESETS = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "term": timedelta(days=90),
}


@dataclass(frozen=True)
class ActivityRecord:
    """A single graded activity or assessment submission for one student."""

    student_id: str
    activity_id: str
    subject_id: str
    blooms_level: str
    score: float
    max_score: float
    time_spent_minutes: float
    completed_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "completed_at", as_utc(self.completed_at))

    @property
    def percentage(self) -> float:
        if self.max_score <= 0:
            return 0.0
        return max(0.0, min(100.0, self.score / self.max_score * 100.0))


@dataclass(frozen=True)
class ActivityMeta:
    """Per-activity configuration stored next to the activity itself."""

    activity_id: str
    activity_type: str = "general"
    expected_minutes: Optional[float] = None
    due_at: Optional[datetime] = None

    def __post_init__(self):
        if self.due_at is not None:
            object.__setattr__(self, "due_at", as_utc(self.due_at))


ActivityCatalog = Mapping[str, ActivityMeta]


@dataclass(frozen=True)
class AttendanceSummary:
    present: int = 0
    late: int = 0
    absent: int = 0

    @property
    def total(self) -> int:
        return self.present + self.late + self.absent

    @property
    def rate(self) -> Optional[float]:
        if not self.total:
            return None
        return (self.present + self.late) / self.total


@dataclass(frozen=True)
class Timeframe:
    """Inclusive time window; either bound may be open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self):
        if self.start is not None:
            object.__setattr__(self, "start", as_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", as_utc(self.end))
        if self.start and self.end and self.start > self.end:
            raise ValueError("timeframe start must not be after its end")

    def contains(self, moment: datetime) -> bool:
        moment = as_utc(moment)
        if self.start and moment < self.start:
            return False
        if self.end and moment > self.end:
            return False
        return True


def as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def resolve_timeframe(
    value: "Timeframe | str | None",
    *,
    now: Optional[datetime] = None,
) -> Optional[Timeframe]:
    """Turn a preset name (``week``/``month``/``term``) or explicit window into a ``Timeframe``."""

    if value is None:
        return None
    if isinstance(value, Timeframe):
        return value
    key = str(value).strip().lower()
    if key not in TIMEFRAME_PRESETS:
        raise ValueError(f"Unknown timeframe preset: {value}")
    end = as_utc(now) if now else datetime.now(timezone.utc)
    return Timeframe(start=end - TIMEFRAME_PRESETS[key], end=end)
