# services/audit/log.py
"""
Audit Log: append-only ledger of grade value transitions.

Entries are written inside the same transaction as the grade write they
describe. After insert only status / processed_by / processed_at /
review_note may change, and only while the entry is pending.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import text as sa_text
from sqlalchemy.engine import Connection

from core.actor import Actor
from core.db import fetch_rows
from core.errors import InvalidTransition, NotFound
from services.audit.models import AuditEntry, AuditStatus
from services.grading.models import GradeComponent

log = logging.getLogger(__name__)

_COLUMNS = """
    id, grade_id, student_id, period_id, component_type, student_name, subject_name,
    old_value, new_value, changed_by, changed_at, change_reason, status,
    processed_by, processed_at, review_note
"""


def update_status(actor: Actor, existing: GradeComponent) -> AuditStatus:
    """
    Review policy for an update of an existing component.

    Admin writes are approved on the spot. A teacher correcting a value
    they entered themselves is approved unless the component is locked;
    any other teacher write waits for an admin.
    """
    if actor.is_admin:
        return AuditStatus.APPROVED
    if existing.locked:
        return AuditStatus.PENDING
    if existing.created_by == actor.id:
        return AuditStatus.APPROVED
    return AuditStatus.PENDING


class AuditLog:

    # ==================== APPEND ====================

    def record_create(
        self,
        conn: Connection,
        component: GradeComponent,
        actor: Actor,
        now: str,
        reason: Optional[str] = None,
        student_name: Optional[str] = None,
        subject_name: Optional[str] = None,
    ) -> AuditEntry:
        """First entry of a component. Creation approves itself."""
        return self._append(
            conn, component, actor, now,
            old_value=None,
            status=AuditStatus.APPROVED,
            reason=reason,
            student_name=student_name,
            subject_name=subject_name,
            processed_by=actor.id,
        )

    def record_update(
        self,
        conn: Connection,
        component: GradeComponent,
        actor: Actor,
        now: str,
        old_value: Optional[float],
        status: AuditStatus,
        reason: Optional[str] = None,
        student_name: Optional[str] = None,
        subject_name: Optional[str] = None,
    ) -> AuditEntry:
        return self._append(
            conn, component, actor, now,
            old_value=old_value,
            status=status,
            reason=reason,
            student_name=student_name,
            subject_name=subject_name,
            processed_by=actor.id if status == AuditStatus.APPROVED else None,
        )

    def _append(self, conn: Connection, component: GradeComponent, actor: Actor, now: str, *,
                old_value: Optional[float], status: AuditStatus, reason: Optional[str],
                student_name: Optional[str], subject_name: Optional[str],
                processed_by: Optional[str]) -> AuditEntry:
        result = conn.execute(sa_text("""
            INSERT INTO grade_audit_logs (
                grade_id, student_id, period_id, component_type, student_name, subject_name,
                old_value, new_value, changed_by, changed_at, change_reason, status,
                processed_by, processed_at
            ) VALUES (
                :gid, :sid, :pid, :ct, :sname, :subname,
                :old, :new, :by, :at, :reason, :status,
                :pby, :pat
            )
        """), {
            "gid": component.id,
            "sid": component.student_id,
            "pid": component.period_id,
            "ct": component.component_type.value,
            "sname": student_name,
            "subname": subject_name,
            "old": old_value,
            "new": component.value,
            "by": actor.id,
            "at": now,
            "reason": reason,
            "status": status.value,
            "pby": processed_by,
            "pat": now if processed_by else None,
        })
        entry = self.get(conn, result.lastrowid)
        log.info("Audit #%s grade=%s %s -> %s (%s) by %s",
                 entry.id, component.id, old_value, component.value, status.value, actor.id)
        return entry

    # ==================== QUERIES ====================

    def get(self, conn: Connection, entry_id: int) -> AuditEntry:
        rows = fetch_rows(conn, f"SELECT {_COLUMNS} FROM grade_audit_logs WHERE id = :id", {"id": entry_id})
        if not rows:
            raise NotFound(f"Audit entry {entry_id} not found")
        return AuditEntry.from_row(rows[0])

    def history(self, conn: Connection, student_id: str, period_id: Optional[str] = None) -> List[AuditEntry]:
        """Newest first; id breaks ties between entries written in the same instant."""
        sql = f"SELECT {_COLUMNS} FROM grade_audit_logs WHERE student_id = :sid"
        params: Dict[str, Any] = {"sid": student_id}
        if period_id:
            sql += " AND period_id = :pid"
            params["pid"] = period_id
        sql += " ORDER BY changed_at DESC, id DESC"
        return [AuditEntry.from_row(r) for r in fetch_rows(conn, sql, params)]

    def latest_for_grade(self, conn: Connection, grade_id: int) -> Optional[AuditEntry]:
        rows = fetch_rows(conn, f"""
            SELECT {_COLUMNS} FROM grade_audit_logs
            WHERE grade_id = :gid
            ORDER BY changed_at DESC, id DESC
            LIMIT 1
        """, {"gid": grade_id})
        return AuditEntry.from_row(rows[0]) if rows else None

    def pending(self, conn: Connection, period_id: Optional[str] = None) -> List[AuditEntry]:
        sql = f"SELECT {_COLUMNS} FROM grade_audit_logs WHERE status = 'pending'"
        params: Dict[str, Any] = {}
        if period_id:
            sql += " AND period_id = :pid"
            params["pid"] = period_id
        sql += " ORDER BY changed_at, id"
        return [AuditEntry.from_row(r) for r in fetch_rows(conn, sql, params)]

    def latest_by_grade(self, conn: Connection, period_id: str, class_id: str) -> Dict[int, AuditEntry]:
        """Latest entry per grade row of one (period, class)."""
        rows = fetch_rows(conn, f"""
            SELECT {_COLUMNS} FROM grade_audit_logs
            WHERE grade_id IN (
                SELECT id FROM student_detailed_grades WHERE period_id = :pid AND class_id = :cid
            )
            ORDER BY grade_id, changed_at, id
        """, {"pid": period_id, "cid": class_id})
        latest: Dict[int, AuditEntry] = {}
        for r in rows:
            latest[r["grade_id"]] = AuditEntry.from_row(r)
        return latest

    # ==================== REVIEW ====================

    def mark_reviewed(self, conn: Connection, entry_id: int, status: AuditStatus,
                      reviewer_id: str, now: str, note: Optional[str] = None) -> AuditEntry:
        result = conn.execute(sa_text("""
            UPDATE grade_audit_logs
            SET status = :status, processed_by = :by, processed_at = :at, review_note = :note
            WHERE id = :id AND status = 'pending'
        """), {"status": status.value, "by": reviewer_id, "at": now, "note": note, "id": entry_id})
        if result.rowcount != 1:
            current = self.get(conn, entry_id)
            raise InvalidTransition(
                current.status.value, status.value,
                f"Audit entry {entry_id} is already {current.status.value}",
            )
        return self.get(conn, entry_id)
