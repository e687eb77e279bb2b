# services/submissions/store.py
from __future__ import annotations
from typing import Dict, Iterable, Optional

from sqlalchemy import bindparam, text as sa_text
from sqlalchemy.engine import Connection

from core.db import fetch_rows
from services.submissions.models import BroadcastRecord, SubmissionRecord

_COLUMNS = """
    id, period_id, student_id, class_id, admin_id, homeroom_teacher_id,
    submission_count, status, submission_reason, submitted_at, synced_at
"""


class SubmissionStore:

    # ==================== ADMIN -> HOMEROOM ====================

    def get_submission(self, conn: Connection, period_id: str, student_id: str) -> Optional[SubmissionRecord]:
        rows = fetch_rows(conn, f"""
            SELECT {_COLUMNS} FROM admin_student_submissions
            WHERE period_id = :pid AND student_id = :sid
        """, {"pid": period_id, "sid": student_id})
        return SubmissionRecord.from_row(rows[0]) if rows else None

    def submissions_for(self, conn: Connection, period_id: str,
                        student_ids: Iterable[str]) -> Dict[str, SubmissionRecord]:
        ids = sorted(set(student_ids))
        if not ids:
            return {}
        rows = fetch_rows(conn, f"""
            SELECT {_COLUMNS} FROM admin_student_submissions
            WHERE period_id = :pid AND student_id IN :sids
        """, {"pid": period_id, "sids": ids}, expanding=("sids",))
        return {r["student_id"]: SubmissionRecord.from_row(r) for r in rows}

    def upsert_submission(self, conn: Connection, record: SubmissionRecord, now: str) -> SubmissionRecord:
        conn.execute(sa_text("""
            INSERT INTO admin_student_submissions (
                period_id, student_id, class_id, admin_id, homeroom_teacher_id,
                submission_count, status, submission_reason, submitted_at, synced_at,
                created_at, updated_at
            ) VALUES (
                :pid, :sid, :cid, :admin, :teacher,
                :count, :status, :reason, :submitted_at, :synced_at,
                :now, :now
            )
            ON CONFLICT(period_id, student_id) DO UPDATE SET
                class_id = excluded.class_id,
                admin_id = excluded.admin_id,
                homeroom_teacher_id = excluded.homeroom_teacher_id,
                submission_count = excluded.submission_count,
                status = excluded.status,
                submission_reason = excluded.submission_reason,
                submitted_at = excluded.submitted_at,
                synced_at = excluded.synced_at,
                updated_at = excluded.updated_at
        """), {
            "pid": record.period_id,
            "sid": record.student_id,
            "cid": record.class_id,
            "admin": record.admin_id,
            "teacher": record.homeroom_teacher_id,
            "count": record.submission_count,
            "status": record.status.value,
            "reason": record.submission_reason,
            "submitted_at": record.submitted_at,
            "synced_at": record.synced_at,
            "now": now,
        })
        return self.get_submission(conn, record.period_id, record.student_id)

    def mark_synced(self, conn: Connection, period_id: str, student_ids: Iterable[str], now: str) -> int:
        """Stamp synced_at only; submitted_at and submission_count stay as they are."""
        ids = sorted(set(student_ids))
        if not ids:
            return 0
        stmt = sa_text("""
            UPDATE admin_student_submissions
            SET synced_at = :now, updated_at = :now
            WHERE period_id = :pid AND student_id IN :sids AND status = 'submitted'
        """).bindparams(bindparam("sids", expanding=True))
        return conn.execute(stmt, {"now": now, "pid": period_id, "sids": ids}).rowcount or 0

    # ==================== HOMEROOM -> PARENTS ====================

    def record_broadcast(self, conn: Connection, period_id: str, class_id: str,
                         sent_by: str, recipient_count: int, now: str) -> BroadcastRecord:
        conn.execute(sa_text("""
            INSERT INTO parent_grade_broadcasts (period_id, class_id, sent_by, send_count, recipient_count, sent_at)
            VALUES (:pid, :cid, :by, 1, :n, :now)
            ON CONFLICT(period_id, class_id) DO UPDATE SET
                sent_by = excluded.sent_by,
                send_count = parent_grade_broadcasts.send_count + 1,
                recipient_count = excluded.recipient_count,
                sent_at = excluded.sent_at
        """), {"pid": period_id, "cid": class_id, "by": sent_by, "n": recipient_count, "now": now})
        return self.get_broadcast(conn, period_id, class_id)

    def get_broadcast(self, conn: Connection, period_id: str, class_id: str) -> Optional[BroadcastRecord]:
        rows = fetch_rows(conn, """
            SELECT period_id, class_id, sent_by, send_count, recipient_count, sent_at
            FROM parent_grade_broadcasts WHERE period_id = :pid AND class_id = :cid
        """, {"pid": period_id, "cid": class_id})
        return BroadcastRecord(**rows[0]) if rows else None
