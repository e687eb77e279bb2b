# services/violations/models.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Tuple

from pydantic import BaseModel, Field

WEEKLY_REPORT = "weekly"
MAX_WEEK_INDEX = 52


def week_window(semester_start: str, week_index: int) -> Tuple[str, str]:
    """Inclusive ISO date bounds of a semester week: start + (n-1)*7 .. +6 days."""
    if not 1 <= week_index <= MAX_WEEK_INDEX:
        raise ValueError(f"week_index must be between 1 and {MAX_WEEK_INDEX}")
    start = date.fromisoformat(semester_start[:10]) + timedelta(days=(week_index - 1) * 7)
    return start.isoformat(), (start + timedelta(days=6)).isoformat()


def report_period_for(week_index: int) -> str:
    return f"week_{week_index}"


def week_index_of(report_period: str) -> Optional[int]:
    prefix, _, number = report_period.partition("_")
    if prefix != "week" or not number.isdigit():
        return None
    return int(number)


@dataclass(frozen=True)
class Violation:
    id: int
    student_id: str
    class_id: str
    semester_id: str
    violation_type: str
    points: int
    violation_date: str
    description: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class WeeklyReport:
    id: int
    semester_id: str
    class_key: str
    week_index: int
    period_start: str
    period_end: str
    violation_count: int
    total_points: int
    alert_sent_at: Optional[str]
    synced_at: Optional[str]

    @property
    def class_id(self) -> Optional[str]:
        return self.class_key or None

    @property
    def sync_watermark(self) -> Optional[str]:
        return self.synced_at or self.alert_sent_at


class ViolationCreate(BaseModel):
    student_id: str = Field(min_length=1)
    class_id: str = Field(min_length=1)
    semester_id: str = Field(min_length=1)
    violation_type: str = Field(min_length=1, max_length=100)
    points: int = Field(default=0, ge=0)
    violation_date: date
    description: Optional[str] = Field(default=None, max_length=1000)


class ViolationUpdate(BaseModel):
    violation_type: Optional[str] = Field(default=None, min_length=1, max_length=100)
    points: Optional[int] = Field(default=None, ge=0)
    violation_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=1000)
