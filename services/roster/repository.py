# services/roster/repository.py
"""
Typed read layer over the roster tables.

Every method takes an open Connection so callers decide the transaction
boundary; every method returns plain value objects, never raw join rows.
"""
from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.engine import Connection

from core.db import fetch_rows as _rows
from core.errors import NotFound
from services.grading.models import GradePeriod, PeriodType
from services.roster.models import ClassInfo, Guardian, Placement, Profile, Semester, Subject


class RosterRepository:

    # ==================== PERIODS ====================

    def get_period(self, conn: Connection, period_id: str) -> GradePeriod:
        rows = _rows(conn, """
            SELECT id, name, period_type, academic_year_id, semester_id, status
            FROM grade_periods WHERE id = :id
        """, {"id": period_id})
        if not rows:
            raise NotFound(f"Grade period {period_id} not found")
        r = rows[0]
        return GradePeriod(
            id=r["id"],
            name=r["name"],
            period_type=PeriodType(r["period_type"]),
            academic_year_id=r["academic_year_id"],
            semester_id=r["semester_id"],
            status=r["status"],
        )

    def component_period_ids(self, conn: Connection, period: GradePeriod) -> List[str]:
        """
        Periods whose components feed `period`'s summary grade.

        A component period feeds only itself. A semester summary period
        gathers every non-summary period of its semester; the yearly summary
        gathers every non-summary period of the academic year.
        """
        if not period.is_summary:
            return [period.id]

        sql = """
            SELECT id FROM grade_periods
            WHERE academic_year_id = :ay
              AND period_type NOT LIKE '%summary'
        """
        params = {"ay": period.academic_year_id}
        if not period.period_type.is_yearly:
            sql += " AND semester_id = :sem"
            params["sem"] = period.semester_id
        ids = [r["id"] for r in _rows(conn, sql + " ORDER BY id", params)]
        return ids + [period.id]

    def get_semester(self, conn: Connection, semester_id: str) -> Semester:
        rows = _rows(conn, """
            SELECT id, academic_year_id, name, start_date FROM semesters WHERE id = :id
        """, {"id": semester_id})
        if not rows:
            raise NotFound(f"Semester {semester_id} not found")
        return Semester(**rows[0])

    def current_academic_year_id(self, conn: Connection) -> Optional[str]:
        rows = _rows(conn, "SELECT id FROM academic_years WHERE is_current = 1 ORDER BY id DESC LIMIT 1")
        return rows[0]["id"] if rows else None

    # ==================== CLASSES & SUBJECTS ====================

    def get_class(self, conn: Connection, class_id: str) -> ClassInfo:
        rows = _rows(conn, """
            SELECT id, name, academic_year_id, homeroom_teacher_id FROM classes WHERE id = :id
        """, {"id": class_id})
        if not rows:
            raise NotFound(f"Class {class_id} not found")
        return ClassInfo(**rows[0])

    def class_student_ids(self, conn: Connection, class_id: str) -> List[str]:
        return [r["student_id"] for r in _rows(conn, """
            SELECT student_id FROM student_class_assignments
            WHERE class_id = :cid AND is_active = 1
            ORDER BY student_id
        """, {"cid": class_id})]

    def class_subjects(self, conn: Connection, class_id: str, period_ids: Sequence[str] = ()) -> List[Subject]:
        """
        Subjects taught in the class. Classes without an explicit subject
        list fall back to every subject that has grade rows in `period_ids`.
        """
        subjects = _rows(conn, """
            SELECT s.id, s.code, s.name
            FROM class_subjects cs JOIN subjects s ON s.id = cs.subject_id
            WHERE cs.class_id = :cid
            ORDER BY s.code
        """, {"cid": class_id})
        if not subjects and period_ids:
            subjects = _rows(conn, """
                SELECT DISTINCT s.id, s.code, s.name
                FROM student_detailed_grades g JOIN subjects s ON s.id = g.subject_id
                WHERE g.class_id = :cid AND g.period_id IN :pids
                ORDER BY s.code
            """, {"cid": class_id, "pids": list(period_ids)}, expanding=("pids",))
        return [Subject(**r) for r in subjects]

    def get_subject(self, conn: Connection, subject_id: str) -> Optional[Subject]:
        rows = _rows(conn, "SELECT id, code, name FROM subjects WHERE id = :id", {"id": subject_id})
        return Subject(**rows[0]) if rows else None

    # ==================== PEOPLE ====================

    def get_profile(self, conn: Connection, profile_id: str) -> Optional[Profile]:
        found = self.get_profiles(conn, [profile_id])
        return found.get(profile_id)

    def get_profiles(self, conn: Connection, profile_ids: Iterable[str]) -> Dict[str, Profile]:
        ids = sorted({pid for pid in profile_ids if pid})
        if not ids:
            return {}
        rows = _rows(conn, """
            SELECT id, full_name, role, email, student_code FROM profiles WHERE id IN :ids
        """, {"ids": ids}, expanding=("ids",))
        return {r["id"]: Profile(**r) for r in rows}

    def current_placements(self, conn: Connection, student_ids: Iterable[str]) -> Dict[str, Placement]:
        """
        Current-year class placement per student. Assignments to classes of
        other academic years are ignored; students without one are absent
        from the result.
        """
        ids = sorted(set(student_ids))
        current_year = self.current_academic_year_id(conn)
        if not ids or current_year is None:
            return {}
        rows = _rows(conn, """
            SELECT sca.student_id, c.id AS class_id, c.name AS class_name,
                   c.homeroom_teacher_id, t.full_name AS teacher_name, t.email AS teacher_email
            FROM student_class_assignments sca
            JOIN classes c ON c.id = sca.class_id
            LEFT JOIN profiles t ON t.id = c.homeroom_teacher_id
            WHERE sca.student_id IN :ids
              AND sca.is_active = 1
              AND c.academic_year_id = :ay
            ORDER BY sca.student_id, sca.id DESC
        """, {"ids": ids, "ay": current_year}, expanding=("ids",))

        placements: Dict[str, Placement] = {}
        for r in rows:
            # most recent active assignment wins
            if r["student_id"] in placements:
                continue
            placements[r["student_id"]] = Placement(
                student_id=r["student_id"],
                class_id=r["class_id"],
                class_name=r["class_name"],
                homeroom_teacher_id=r["homeroom_teacher_id"],
                homeroom_teacher_name=r["teacher_name"],
                homeroom_teacher_email=r["teacher_email"],
            )
        return placements

    def guardians(self, conn: Connection, student_ids: Iterable[str]) -> Dict[str, List[Guardian]]:
        ids = sorted(set(student_ids))
        result: Dict[str, List[Guardian]] = {sid: [] for sid in ids}
        if not ids:
            return result
        rows = _rows(conn, """
            SELECT psr.student_id, p.id, p.full_name, p.email
            FROM parent_student_relationships psr
            JOIN profiles p ON p.id = psr.parent_id
            WHERE psr.student_id IN :ids
            ORDER BY psr.student_id, p.id
        """, {"ids": ids}, expanding=("ids",))
        for r in rows:
            result[r["student_id"]].append(
                Guardian(id=r["id"], full_name=r["full_name"], email=r["email"], student_id=r["student_id"])
            )
        return result
