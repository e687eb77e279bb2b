# services/violations/reports.py
"""
Violation source rows and the weekly report distributed from them.

A weekly report is a snapshot: count, points and details of every
violation recorded in one semester week (optionally one class), stamped
with the time it was sent. Later edits to those violations make the
report stale; see services.sync.
"""
from __future__ import annotations
import logging
from typing import Optional

from sqlalchemy.engine import Engine

from core.actor import Actor, Role, require_role
from core.clock import Clock, stamp
from core.errors import ValidationFailed
from services.roster.repository import RosterRepository
from services.violations.models import (
    MAX_WEEK_INDEX,
    Violation,
    ViolationCreate,
    ViolationUpdate,
    WeeklyReport,
    week_window,
)
from services.violations.store import ViolationStore

log = logging.getLogger(__name__)

_STAFF = (Role.ADMIN, Role.TEACHER)


def check_week_index(week_index: int) -> int:
    if not isinstance(week_index, int) or not 1 <= week_index <= MAX_WEEK_INDEX:
        raise ValidationFailed(f"week_index must be an integer between 1 and {MAX_WEEK_INDEX}")
    return week_index


class ViolationService:
    def __init__(self, engine: Engine, store: Optional[ViolationStore] = None,
                 roster: Optional[RosterRepository] = None, clock: Optional[Clock] = None):
        self.engine = engine
        self.store = store or ViolationStore()
        self.roster = roster or RosterRepository()
        self.clock = clock

    def record_violation(self, actor: Actor, data: ViolationCreate) -> Violation:
        require_role(actor, _STAFF, "Recording a violation")
        with self.engine.begin() as conn:
            self.roster.get_semester(conn, data.semester_id)
            violation = self.store.insert(conn, data, actor.id, stamp(self.clock))
        log.info("Violation #%s recorded for student=%s (%s, %d pt)",
                 violation.id, violation.student_id, violation.violation_type, violation.points)
        return violation

    def update_violation(self, actor: Actor, violation_id: int, changes: ViolationUpdate) -> Violation:
        require_role(actor, _STAFF, "Updating a violation")
        with self.engine.begin() as conn:
            violation = self.store.update(conn, violation_id, changes, stamp(self.clock))
        log.info("Violation #%s updated by %s", violation_id, actor.id)
        return violation

    def mark_weekly_report_sent(self, actor: Actor, semester_id: str, week_index: int,
                                class_id: Optional[str] = None) -> WeeklyReport:
        require_role(actor, _STAFF, "Sending a weekly violation report")
        check_week_index(week_index)
        with self.engine.begin() as conn:
            semester = self.roster.get_semester(conn, semester_id)
            if class_id:
                self.roster.get_class(conn, class_id)
            start, end = week_window(semester.start_date, week_index)
            violations = self.store.in_window(conn, semester_id, start, end, class_id)
            report = self.store.upsert_report(
                conn, semester_id, week_index, class_id, start, end,
                violations, actor.id, stamp(self.clock),
            )
        log.info("Weekly report sent: semester=%s week=%d class=%s (%d violation(s), %d pt)",
                 semester_id, week_index, class_id or "*", report.violation_count, report.total_points)
        return report
