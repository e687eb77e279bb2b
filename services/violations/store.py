# services/violations/store.py
from __future__ import annotations
import json
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import text as sa_text
from sqlalchemy.engine import Connection

from core.db import fetch_rows
from core.errors import NotFound
from services.violations.models import (
    WEEKLY_REPORT,
    Violation,
    ViolationCreate,
    ViolationUpdate,
    WeeklyReport,
    report_period_for,
    week_index_of,
)

_VIOLATION_COLUMNS = """
    id, student_id, class_id, semester_id, violation_type, points, violation_date,
    description, created_by, created_at, updated_at
"""
_REPORT_COLUMNS = """
    id, semester_id, class_key, report_period, period_start, period_end,
    violation_count, total_points, alert_sent_at, synced_at
"""


def _window_condition(class_id: Optional[str]) -> str:
    sql = "semester_id = :sem AND violation_date BETWEEN :start AND :end"
    if class_id:
        sql += " AND class_id = :cid"
    return sql


def _details(violations: List[Violation]) -> str:
    return json.dumps([
        {
            "violation_id": v.id,
            "student_id": v.student_id,
            "class_id": v.class_id,
            "violation_type": v.violation_type,
            "points": v.points,
            "violation_date": v.violation_date,
        }
        for v in violations
    ])


def _report(row: Dict[str, Any]) -> WeeklyReport:
    return WeeklyReport(
        id=row["id"],
        semester_id=row["semester_id"],
        class_key=row["class_key"],
        week_index=week_index_of(row["report_period"]) or 0,
        period_start=row["period_start"],
        period_end=row["period_end"],
        violation_count=row["violation_count"],
        total_points=row["total_points"],
        alert_sent_at=row["alert_sent_at"],
        synced_at=row["synced_at"],
    )


class ViolationStore:

    # ==================== SOURCE ROWS ====================

    def insert(self, conn: Connection, data: ViolationCreate, actor_id: str, now: str) -> Violation:
        result = conn.execute(sa_text("""
            INSERT INTO student_violations (
                student_id, class_id, semester_id, violation_type, points,
                description, violation_date, created_by, created_at, updated_at
            ) VALUES (:sid, :cid, :sem, :vt, :pts, :desc, :vd, :by, :now, :now)
        """), {
            "sid": data.student_id,
            "cid": data.class_id,
            "sem": data.semester_id,
            "vt": data.violation_type,
            "pts": data.points,
            "desc": data.description,
            "vd": data.violation_date.isoformat(),
            "by": actor_id,
            "now": now,
        })
        return self.get(conn, result.lastrowid)

    def update(self, conn: Connection, violation_id: int, changes: ViolationUpdate, now: str) -> Violation:
        current = self.get(conn, violation_id)
        values = changes.model_dump(exclude_none=True)
        if "violation_date" in values:
            values["violation_date"] = values["violation_date"].isoformat()
        if not values:
            return current
        assignments = ", ".join(f"{col} = :{col}" for col in sorted(values))
        conn.execute(
            sa_text(f"UPDATE student_violations SET {assignments}, updated_at = :now WHERE id = :id"),
            {**values, "now": now, "id": violation_id},
        )
        return self.get(conn, violation_id)

    def get(self, conn: Connection, violation_id: int) -> Violation:
        rows = fetch_rows(conn, f"SELECT {_VIOLATION_COLUMNS} FROM student_violations WHERE id = :id",
                          {"id": violation_id})
        if not rows:
            raise NotFound(f"Violation {violation_id} not found")
        return Violation(**rows[0])

    def in_window(self, conn: Connection, semester_id: str, start: str, end: str,
                  class_id: Optional[str] = None) -> List[Violation]:
        rows = fetch_rows(
            conn,
            f"SELECT {_VIOLATION_COLUMNS} FROM student_violations"
            + " WHERE " + _window_condition(class_id)
            + " ORDER BY violation_date, id",
            {"sem": semester_id, "start": start, "end": end, "cid": class_id},
        )
        return [Violation(**r) for r in rows]

    def last_mutation(self, conn: Connection, semester_id: str, start: str, end: str,
                      class_id: Optional[str] = None, snapshot_ids: Sequence[int] = ()) -> Optional[str]:
        """Latest updated_at over the rows dated in the window plus the rows a sent snapshot held.

        A row re-dated out of the window still counts through `snapshot_ids`.
        """
        condition = _window_condition(class_id)
        params: Dict[str, Any] = {"sem": semester_id, "start": start, "end": end, "cid": class_id}
        expanding = ()
        if snapshot_ids:
            condition = f"({condition}) OR id IN :ids"
            params["ids"] = list(snapshot_ids)
            expanding = ("ids",)
        rows = fetch_rows(conn, "SELECT MAX(updated_at) AS last_update FROM student_violations WHERE " + condition,
                          params, expanding=expanding)
        return rows[0]["last_update"] if rows else None

    def snapshot_ids(self, conn: Connection, report_id: int) -> List[int]:
        """Violation ids recorded in a report's last snapshot."""
        rows = fetch_rows(conn, "SELECT violation_details FROM unified_violation_reports WHERE id = :id",
                          {"id": report_id})
        if not rows or not rows[0]["violation_details"]:
            return []
        return [d["violation_id"] for d in json.loads(rows[0]["violation_details"]) if d.get("violation_id")]

    # ==================== WEEKLY REPORTS ====================

    def upsert_report(self, conn: Connection, semester_id: str, week_index: int,
                      class_id: Optional[str], start: str, end: str,
                      violations: List[Violation], actor_id: str, now: str) -> WeeklyReport:
        conn.execute(sa_text("""
            INSERT INTO unified_violation_reports (
                report_type, report_period, semester_id, class_key, period_start, period_end,
                violation_count, total_points, violation_details, alert_sent_at, synced_at,
                created_by, updated_at
            ) VALUES (
                :rt, :rp, :sem, :ck, :start, :end,
                :count, :points, :details, :now, NULL,
                :by, :now
            )
            ON CONFLICT(report_type, report_period, semester_id, class_key) DO UPDATE SET
                period_start = excluded.period_start,
                period_end = excluded.period_end,
                violation_count = excluded.violation_count,
                total_points = excluded.total_points,
                violation_details = excluded.violation_details,
                alert_sent_at = excluded.alert_sent_at,
                synced_at = NULL,
                updated_at = excluded.updated_at
        """), {
            "rt": WEEKLY_REPORT,
            "rp": report_period_for(week_index),
            "sem": semester_id,
            "ck": class_id or "",
            "start": start,
            "end": end,
            "count": len(violations),
            "points": sum(v.points for v in violations),
            "details": _details(violations),
            "by": actor_id,
            "now": now,
        })
        return self.get_report(conn, semester_id, week_index, class_id)

    def refresh_report(self, conn: Connection, report: WeeklyReport,
                       violations: List[Violation], now: str) -> WeeklyReport:
        """Re-aggregate and stamp synced_at; alert_sent_at stays as it was."""
        conn.execute(sa_text("""
            UPDATE unified_violation_reports
            SET violation_count = :count, total_points = :points,
                violation_details = :details, synced_at = :now, updated_at = :now
            WHERE id = :id
        """), {
            "count": len(violations),
            "points": sum(v.points for v in violations),
            "details": _details(violations),
            "now": now,
            "id": report.id,
        })
        return self.get_report(conn, report.semester_id, report.week_index, report.class_id)

    def get_report(self, conn: Connection, semester_id: str, week_index: int,
                   class_id: Optional[str] = None) -> Optional[WeeklyReport]:
        rows = fetch_rows(conn, f"""
            SELECT {_REPORT_COLUMNS} FROM unified_violation_reports
            WHERE report_type = :rt AND report_period = :rp AND semester_id = :sem AND class_key = :ck
        """, {"rt": WEEKLY_REPORT, "rp": report_period_for(week_index),
              "sem": semester_id, "ck": class_id or ""})
        return _report(rows[0]) if rows else None

    def list_reports(self, conn: Connection, semester_id: str,
                     class_id: Optional[str] = None) -> List[WeeklyReport]:
        """Weekly reports of a semester; `class_id=None` selects the school-wide ones."""
        rows = fetch_rows(conn, f"""
            SELECT {_REPORT_COLUMNS} FROM unified_violation_reports
            WHERE report_type = :rt AND semester_id = :sem AND class_key = :ck
        """, {"rt": WEEKLY_REPORT, "sem": semester_id, "ck": class_id or ""})
        return sorted((_report(r) for r in rows), key=lambda r: r.week_index)
