# services/discipline/workflow.py
"""
Disciplinary Case State Machine

    draft -> sent_to_homeroom -> acknowledged -> meeting_scheduled -> resolved

Only the immediate next state is accepted. The transition is guarded in
the UPDATE itself (status must still equal the expected current state),
so two concurrent advances cannot both succeed. Deleted cases are
invisible and cannot advance.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import text as sa_text
from sqlalchemy.engine import Connection, Engine

from core.actor import Actor, Role, require_role
from core.clock import Clock, stamp
from core.db import fetch_rows
from core.errors import InvalidTransition, NotFound
from core.notifications import Notification, NotificationDispatcher, TemplateKind
from services.discipline.models import CaseFilters, CaseStatus, DisciplinaryCase, DisciplinaryCaseCreate
from services.roster.repository import RosterRepository

log = logging.getLogger(__name__)

_COLUMNS = """
    id, student_id, class_id, semester_id, week_index, action_type, total_points,
    notes, status, created_by, created_at, updated_by, updated_at
"""


class DisciplinaryCaseWorkflow:
    def __init__(self, engine: Engine, dispatcher: NotificationDispatcher,
                 roster: Optional[RosterRepository] = None, clock: Optional[Clock] = None):
        self.engine = engine
        self.dispatcher = dispatcher
        self.roster = roster or RosterRepository()
        self.clock = clock

    def create(self, actor: Actor, data: DisciplinaryCaseCreate) -> DisciplinaryCase:
        require_role(actor, [Role.ADMIN, Role.TEACHER], "Creating a disciplinary case")
        with self.engine.begin() as conn:
            self.roster.get_class(conn, data.class_id)
            self.roster.get_semester(conn, data.semester_id)
            now = stamp(self.clock)
            result = conn.execute(sa_text("""
                INSERT INTO student_disciplinary_cases (
                    student_id, class_id, semester_id, week_index, action_type,
                    total_points, notes, status, created_by, created_at, updated_by, updated_at
                ) VALUES (
                    :sid, :cid, :sem, :week, :action,
                    :points, :notes, 'draft', :by, :now, :by, :now
                )
            """), {
                "sid": data.student_id,
                "cid": data.class_id,
                "sem": data.semester_id,
                "week": data.week_index,
                "action": data.action_type,
                "points": data.total_points,
                "notes": data.notes,
                "by": actor.id,
                "now": now,
            })
            case = self._get(conn, result.lastrowid)
        log.info("Disciplinary case #%s created for student=%s by %s", case.id, case.student_id, actor.id)
        return case

    def advance(self, actor: Actor, case_id: int, target: CaseStatus) -> DisciplinaryCase:
        require_role(actor, [Role.ADMIN, Role.TEACHER], "Advancing a disciplinary case")
        target = CaseStatus(target)

        with self.engine.begin() as conn:
            current = self._get(conn, case_id)
            if current.status.next != target:
                raise InvalidTransition(
                    current.status.value, target.value,
                    f"Case {case_id} is '{current.status.value}'; "
                    + (f"the only allowed next state is '{current.status.next.value}'"
                       if current.status.next else "it is already resolved"),
                )
            result = conn.execute(sa_text("""
                UPDATE student_disciplinary_cases
                SET status = :target, updated_by = :by, updated_at = :now
                WHERE id = :id AND status = :expected AND is_deleted = 0
            """), {
                "target": target.value,
                "by": actor.id,
                "now": stamp(self.clock),
                "id": case_id,
                "expected": current.status.value,
            })
            if result.rowcount != 1:
                raise InvalidTransition(current.status.value, target.value,
                                        f"Case {case_id} changed while advancing; reload and retry")
            case = self._get(conn, case_id)
            klass = self.roster.get_class(conn, case.class_id) if target == CaseStatus.SENT_TO_HOMEROOM else None
            teacher = (self.roster.get_profile(conn, klass.homeroom_teacher_id)
                       if klass and klass.homeroom_teacher_id else None)
            student = self.roster.get_profile(conn, case.student_id) if klass else None

        log.info("Disciplinary case #%s: %s -> %s by %s", case_id, current.status.value, target.value, actor.id)

        if target == CaseStatus.SENT_TO_HOMEROOM:
            if teacher is None:
                log.warning("Case #%s sent to homeroom but class %s has no homeroom teacher to notify",
                            case_id, case.class_id)
            else:
                self.dispatcher.enqueue(Notification(
                    recipient_email=teacher.email,
                    template_kind=TemplateKind.DISCIPLINARY_CASE_SENT,
                    payload={
                        "case_id": case.id,
                        "student_id": case.student_id,
                        "student_name": student.full_name if student else None,
                        "class_name": klass.name,
                        "week_index": case.week_index,
                        "total_points": case.total_points,
                        "action_type": case.action_type,
                    },
                ))
        return case

    def delete(self, actor: Actor, case_id: int) -> None:
        require_role(actor, [Role.ADMIN], "Deleting a disciplinary case")
        with self.engine.begin() as conn:
            now = stamp(self.clock)
            result = conn.execute(sa_text("""
                UPDATE student_disciplinary_cases
                SET is_deleted = 1, deleted_at = :now, updated_by = :by, updated_at = :now
                WHERE id = :id AND is_deleted = 0
            """), {"now": now, "by": actor.id, "id": case_id})
            if result.rowcount != 1:
                raise NotFound(f"Disciplinary case {case_id} not found")
        log.info("Disciplinary case #%s deleted by %s", case_id, actor.id)

    def get(self, case_id: int) -> DisciplinaryCase:
        with self.engine.connect() as conn:
            return self._get(conn, case_id)

    def list(self, filters: Optional[CaseFilters] = None) -> List[DisciplinaryCase]:
        filters = filters or CaseFilters()
        sql = f"SELECT {_COLUMNS} FROM student_disciplinary_cases WHERE is_deleted = 0"
        params: Dict[str, Any] = {}
        for column, value in filters.model_dump(exclude_none=True).items():
            sql += f" AND {column} = :{column}"
            params[column] = value.value if isinstance(value, CaseStatus) else value
        sql += " ORDER BY created_at DESC, id DESC"
        with self.engine.connect() as conn:
            return [DisciplinaryCase.from_row(r) for r in fetch_rows(conn, sql, params)]

    def _get(self, conn: Connection, case_id: int) -> DisciplinaryCase:
        rows = fetch_rows(conn, f"""
            SELECT {_COLUMNS} FROM student_disciplinary_cases WHERE id = :id AND is_deleted = 0
        """, {"id": case_id})
        if not rows:
            raise NotFound(f"Disciplinary case {case_id} not found")
        return DisciplinaryCase.from_row(rows[0])
