# tests/roster_seed.py
"""Idempotent roster writes used to seed test databases; the workflows only read the roster."""
from __future__ import annotations
from typing import Optional

from sqlalchemy import text as sa_text
from sqlalchemy.engine import Engine

from services.grading.models import PeriodType


class RosterAdmin:
    def __init__(self, engine: Engine):
        self.engine = engine

    def add_academic_year(self, year_id: str, name: str, is_current: bool = False) -> None:
        with self.engine.begin() as conn:
            if is_current:
                conn.execute(sa_text("UPDATE academic_years SET is_current = 0 WHERE id != :id"), {"id": year_id})
            conn.execute(sa_text("""
                INSERT INTO academic_years (id, name, is_current) VALUES (:id, :n, :cur)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name, is_current = excluded.is_current
            """), {"id": year_id, "n": name, "cur": 1 if is_current else 0})

    def add_semester(self, semester_id: str, academic_year_id: str, name: str, start_date: str,
                     end_date: Optional[str] = None) -> None:
        with self.engine.begin() as conn:
            conn.execute(sa_text("""
                INSERT INTO semesters (id, academic_year_id, name, start_date, end_date)
                VALUES (:id, :ay, :n, :s, :e)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name,
                    start_date = excluded.start_date, end_date = excluded.end_date
            """), {"id": semester_id, "ay": academic_year_id, "n": name, "s": start_date, "e": end_date})

    def add_period(self, period_id: str, name: str, period_type: PeriodType | str,
                   academic_year_id: str, semester_id: Optional[str] = None) -> None:
        period_type = PeriodType(period_type)
        with self.engine.begin() as conn:
            conn.execute(sa_text("""
                INSERT INTO grade_periods (id, name, period_type, academic_year_id, semester_id)
                VALUES (:id, :n, :pt, :ay, :sem)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name, period_type = excluded.period_type
            """), {"id": period_id, "n": name, "pt": period_type.value, "ay": academic_year_id, "sem": semester_id})

    def add_profile(self, profile_id: str, full_name: str, role: str,
                    email: Optional[str] = None, student_code: Optional[str] = None) -> None:
        with self.engine.begin() as conn:
            conn.execute(sa_text("""
                INSERT INTO profiles (id, full_name, role, email, student_code)
                VALUES (:id, :n, :r, :e, :sc)
                ON CONFLICT(id) DO UPDATE SET full_name = excluded.full_name,
                    email = excluded.email, student_code = excluded.student_code
            """), {"id": profile_id, "n": full_name, "r": role,
                   "e": email.lower() if email else None, "sc": student_code})

    def add_class(self, class_id: str, name: str, academic_year_id: str,
                  homeroom_teacher_id: Optional[str] = None) -> None:
        with self.engine.begin() as conn:
            conn.execute(sa_text("""
                INSERT INTO classes (id, name, academic_year_id, homeroom_teacher_id)
                VALUES (:id, :n, :ay, :ht)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name,
                    homeroom_teacher_id = excluded.homeroom_teacher_id
            """), {"id": class_id, "n": name, "ay": academic_year_id, "ht": homeroom_teacher_id})

    def add_subject(self, subject_id: str, code: str, name: str, class_id: Optional[str] = None) -> None:
        with self.engine.begin() as conn:
            conn.execute(sa_text("""
                INSERT INTO subjects (id, code, name) VALUES (:id, :c, :n)
                ON CONFLICT(id) DO UPDATE SET code = excluded.code, name = excluded.name
            """), {"id": subject_id, "c": code, "n": name})
            if class_id:
                conn.execute(sa_text("""
                    INSERT INTO class_subjects (class_id, subject_id) VALUES (:cid, :sid)
                    ON CONFLICT DO NOTHING
                """), {"cid": class_id, "sid": subject_id})

    def enroll(self, student_id: str, class_id: str, active: bool = True) -> None:
        with self.engine.begin() as conn:
            conn.execute(sa_text("""
                INSERT INTO student_class_assignments (student_id, class_id, is_active)
                VALUES (:sid, :cid, :a)
                ON CONFLICT(student_id, class_id) DO UPDATE SET is_active = excluded.is_active
            """), {"sid": student_id, "cid": class_id, "a": 1 if active else 0})

    def link_guardian(self, parent_id: str, student_id: str, relationship: Optional[str] = None) -> None:
        with self.engine.begin() as conn:
            conn.execute(sa_text("""
                INSERT INTO parent_student_relationships (parent_id, student_id, relationship)
                VALUES (:pid, :sid, :rel)
                ON CONFLICT DO NOTHING
            """), {"pid": parent_id, "sid": student_id, "rel": relationship})
