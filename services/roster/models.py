# services/roster/models.py
"""Value objects returned by the roster repository."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Profile:
    id: str
    full_name: str
    role: str
    email: Optional[str] = None
    student_code: Optional[str] = None


@dataclass(frozen=True)
class Subject:
    id: str
    code: str
    name: str


@dataclass(frozen=True)
class ClassInfo:
    id: str
    name: str
    academic_year_id: str
    homeroom_teacher_id: Optional[str] = None


@dataclass(frozen=True)
class Placement:
    """A student's class for the current academic year and who runs it."""
    student_id: str
    class_id: str
    class_name: str
    homeroom_teacher_id: Optional[str]
    homeroom_teacher_name: Optional[str] = None
    homeroom_teacher_email: Optional[str] = None


@dataclass(frozen=True)
class Guardian:
    id: str
    full_name: str
    email: Optional[str]
    student_id: str


@dataclass(frozen=True)
class Semester:
    id: str
    academic_year_id: str
    name: str
    start_date: str
