# services/grading/changes.py
"""
RecordGradeChange: the only write path for entered grade components.

The component upsert and its audit entry are committed together or not
at all. Validation happens before any store access.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from sqlalchemy.engine import Engine

from core.actor import Actor, Role, require_role
from core.clock import Clock, stamp
from services.audit.log import AuditLog, update_status
from services.audit.models import AuditStatus
from services.grading.models import GradeChangeRequest, GradeComponent
from services.grading.store import GradeStore
from services.roster.repository import RosterRepository

log = logging.getLogger(__name__)


class GradeChangeService:
    def __init__(
        self,
        engine: Engine,
        store: Optional[GradeStore] = None,
        audit: Optional[AuditLog] = None,
        roster: Optional[RosterRepository] = None,
        clock: Optional[Clock] = None,
    ):
        self.engine = engine
        self.store = store or GradeStore()
        self.audit = audit or AuditLog()
        self.roster = roster or RosterRepository()
        self.clock = clock

    def record(self, actor: Actor, request: GradeChangeRequest) -> Dict[str, Any]:
        require_role(actor, [Role.ADMIN, Role.TEACHER], "Recording a grade change")

        with self.engine.begin() as conn:
            # raises NotFound for an unknown period before anything is written
            self.roster.get_period(conn, request.period_id)

            student = self.roster.get_profile(conn, request.student_id)
            subject = self.roster.get_subject(conn, request.subject_id)
            names = {
                "student_name": student.full_name if student else None,
                "subject_name": subject.name if subject else None,
            }

            existing = self.store.get_component(conn, request.cell, request.component_type)
            now = stamp(self.clock)
            incoming = GradeComponent(
                period_id=request.period_id,
                student_id=request.student_id,
                subject_id=request.subject_id,
                class_id=request.class_id,
                component_type=request.component_type,
                value=request.value,
            )

            if existing is None:
                saved = self.store.upsert_component(conn, incoming, actor.id, now)
                entry = self.audit.record_create(conn, saved, actor, now, reason=request.reason, **names)
            else:
                status = update_status(actor, existing)
                saved = self.store.upsert_component(conn, incoming, actor.id, now, allow_locked=True)
                entry = self.audit.record_update(
                    conn, saved, actor, now,
                    old_value=existing.value,
                    status=status,
                    reason=request.reason,
                    **names,
                )

        log.info(
            "Grade %s %s student=%s subject=%s period=%s -> %s (%s)",
            "created" if existing is None else "updated",
            request.component_type.value, request.student_id, request.subject_id,
            request.period_id, request.value, entry.status.value,
        )
        return {
            "grade_id": saved.id,
            "value": saved.value,
            "created": existing is None,
            "audit_entry_id": entry.id,
            "review_status": entry.status.value,
            "requires_review": entry.status == AuditStatus.PENDING,
        }

    def lock(self, actor: Actor, period_id: str, class_id: str, subject_id: Optional[str] = None) -> int:
        require_role(actor, [Role.ADMIN], "Locking grades")
        with self.engine.begin() as conn:
            self.roster.get_period(conn, period_id)
            count = self.store.set_locked(conn, period_id, class_id, subject_id)
        log.info("Locked %d component(s) period=%s class=%s subject=%s",
                 count, period_id, class_id, subject_id or "*")
        return count
