# services/grading/store.py
"""
GradeRecord store: row-level access to student_detailed_grades.

Every method takes an open Connection; the caller owns the transaction.
Writes are keyed by the five-tuple (period, student, subject, class,
component_type) and rely on the table's UNIQUE constraint for atomic
create-or-replace.
"""
from __future__ import annotations
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import text as sa_text
from sqlalchemy.engine import Connection

from core.db import fetch_rows
from core.errors import LockedComponent, NotFound
from services.grading.models import CellKey, ComponentType, GradeComponent

log = logging.getLogger(__name__)

_COLUMNS = """
    id, period_id, student_id, subject_id, class_id, component_type,
    grade_value, locked, created_by, created_at, updated_by, updated_at
"""


class GradeStore:

    # ==================== READS ====================

    def get_component(self, conn: Connection, cell: CellKey,
                      component_type: ComponentType) -> Optional[GradeComponent]:
        rows = fetch_rows(conn, f"""
            SELECT {_COLUMNS} FROM student_detailed_grades
            WHERE period_id = :p AND student_id = :s AND subject_id = :sub
              AND class_id = :c AND component_type = :ct
        """, {**_cell_params(cell), "ct": ComponentType(component_type).value})
        return GradeComponent.from_row(rows[0]) if rows else None

    def get_component_by_id(self, conn: Connection, grade_id: int) -> GradeComponent:
        rows = fetch_rows(conn, f"SELECT {_COLUMNS} FROM student_detailed_grades WHERE id = :id",
                          {"id": grade_id})
        if not rows:
            raise NotFound(f"Grade component {grade_id} not found")
        return GradeComponent.from_row(rows[0])

    def get_components(self, conn: Connection, cell: CellKey) -> List[GradeComponent]:
        """Every component of one cell, summary cache row included."""
        rows = fetch_rows(conn, f"""
            SELECT {_COLUMNS} FROM student_detailed_grades
            WHERE period_id = :p AND student_id = :s AND subject_id = :sub AND class_id = :c
            ORDER BY component_type
        """, _cell_params(cell))
        return [GradeComponent.from_row(r) for r in rows]

    def get_components_for_periods(
        self,
        conn: Connection,
        period_ids: Sequence[str],
        class_id: str,
        student_id: Optional[str] = None,
        subject_id: Optional[str] = None,
    ) -> List[GradeComponent]:
        """Components gathered across several periods (summary periods read many)."""
        if not period_ids:
            return []
        sql = f"""
            SELECT {_COLUMNS} FROM student_detailed_grades
            WHERE period_id IN :pids AND class_id = :c
        """
        params = {"pids": list(period_ids), "c": class_id}
        if student_id:
            sql += " AND student_id = :s"
            params["s"] = student_id
        if subject_id:
            sql += " AND subject_id = :sub"
            params["sub"] = subject_id
        sql += " ORDER BY student_id, subject_id, period_id, component_type"
        rows = fetch_rows(conn, sql, params, expanding=("pids",))
        return [GradeComponent.from_row(r) for r in rows]

    def last_mutations(self, conn: Connection, period_ids: Sequence[str], class_id: str,
                       student_ids: Iterable[str] = ()) -> Dict[str, str]:
        """
        Per-student watermark: the latest updated_at across the student's
        entered components. Summary cache rows never count as a mutation.
        """
        if not period_ids:
            return {}
        sql = """
            SELECT student_id, MAX(updated_at) AS last_update
            FROM student_detailed_grades
            WHERE period_id IN :pids AND class_id = :c AND component_type != 'summary'
        """
        params: dict = {"pids": list(period_ids), "c": class_id}
        expanding = ["pids"]
        ids = sorted(set(student_ids))
        if ids:
            sql += " AND student_id IN :sids"
            params["sids"] = ids
            expanding.append("sids")
        sql += " GROUP BY student_id"
        return {r["student_id"]: r["last_update"]
                for r in fetch_rows(conn, sql, params, expanding=expanding)}

    # ==================== WRITES ====================

    def upsert_component(self, conn: Connection, component: GradeComponent, actor_id: str,
                         now: str, allow_locked: bool = False) -> GradeComponent:
        """
        Atomic create-or-replace of one component value.

        A locked row is only overwritten when `allow_locked` is set, which the
        audited change path does after it has applied its review policy.
        """
        existing = self.get_component(conn, component.cell, component.component_type)
        if existing is not None and existing.locked and not allow_locked:
            raise LockedComponent(
                f"{component.component_type.value} for student {component.student_id} is locked"
            )

        conn.execute(sa_text("""
            INSERT INTO student_detailed_grades (
                period_id, student_id, subject_id, class_id, component_type,
                grade_value, locked, created_by, created_at, updated_by, updated_at
            ) VALUES (
                :p, :s, :sub, :c, :ct, :v, :locked, :actor, :now, :actor, :now
            )
            ON CONFLICT(period_id, student_id, subject_id, class_id, component_type)
            DO UPDATE SET grade_value = excluded.grade_value,
                          updated_by = excluded.updated_by,
                          updated_at = excluded.updated_at
        """), {
            **_cell_params(component.cell),
            "ct": component.component_type.value,
            "v": component.value,
            "locked": 1 if component.locked else 0,
            "actor": actor_id,
            "now": now,
        })
        return self.get_component(conn, component.cell, component.component_type)

    def set_value(self, conn: Connection, grade_id: int, value: Optional[float],
                  actor_id: str, now: str) -> None:
        """Direct value write by row id; used when a review reverts a change."""
        conn.execute(sa_text("""
            UPDATE student_detailed_grades
            SET grade_value = :v, updated_by = :actor, updated_at = :now
            WHERE id = :id
        """), {"v": value, "actor": actor_id, "now": now, "id": grade_id})

    def write_summary_cache(self, conn: Connection, cell: CellKey, value: float, now: str) -> None:
        """
        Materialize a derived summary. The row is advisory: it carries no
        audit entry and a locked flag of 0, and is rewritten on every compute.
        """
        conn.execute(sa_text("""
            INSERT INTO student_detailed_grades (
                period_id, student_id, subject_id, class_id, component_type,
                grade_value, locked, created_by, created_at, updated_by, updated_at
            ) VALUES (:p, :s, :sub, :c, 'summary', :v, 0, 'system', :now, 'system', :now)
            ON CONFLICT(period_id, student_id, subject_id, class_id, component_type)
            DO UPDATE SET grade_value = excluded.grade_value, updated_at = excluded.updated_at
        """), {**_cell_params(cell), "v": value, "now": now})

    def set_locked(self, conn: Connection, period_id: str, class_id: str,
                   subject_id: Optional[str] = None, locked: bool = True) -> int:
        sql = """
            UPDATE student_detailed_grades SET locked = :locked
            WHERE period_id = :p AND class_id = :c AND component_type != 'summary'
        """
        params = {"locked": 1 if locked else 0, "p": period_id, "c": class_id}
        if subject_id:
            sql += " AND subject_id = :sub"
            params["sub"] = subject_id
        result = conn.execute(sa_text(sql), params)
        return result.rowcount or 0


def _cell_params(cell: CellKey) -> dict:
    return {"p": cell.period_id, "s": cell.student_id, "sub": cell.subject_id, "c": cell.class_id}
