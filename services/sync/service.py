# services/sync/service.py
"""
Report Sync / Invalidation

Staleness is computed on read: a distributed report needs a resync when
its source rows carry an updated_at later than the report's watermark
(last resync, else the time it was sent). Write paths know nothing about
reports.

ForceResync recomputes the scope's aggregates and stamps synced_at. It
never touches submitted_at / alert_sent_at and never notifies anyone;
re-notifying is an explicit resubmission.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Connection, Engine

from core.actor import Actor, Role, require_role
from core.clock import Clock, later_of, stamp
from core.errors import ValidationFailed
from services.grading.engine import SummaryGradeService
from services.grading.store import GradeStore
from services.roster.repository import RosterRepository
from services.submissions.models import SubmissionRecord
from services.submissions.store import SubmissionStore
from services.sync.models import GradeReportScope, SyncScope, SyncStatus, ViolationReportScope
from services.violations.models import WeeklyReport
from services.violations.reports import check_week_index
from services.violations.store import ViolationStore

log = logging.getLogger(__name__)


class ReportSyncService:
    def __init__(
        self,
        engine: Engine,
        summaries: SummaryGradeService,
        grades: Optional[GradeStore] = None,
        submissions: Optional[SubmissionStore] = None,
        violations: Optional[ViolationStore] = None,
        roster: Optional[RosterRepository] = None,
        clock: Optional[Clock] = None,
    ):
        self.engine = engine
        self.summaries = summaries
        self.grades = grades or summaries.store
        self.submissions = submissions or SubmissionStore()
        self.violations = violations or ViolationStore()
        self.roster = roster or summaries.roster
        self.clock = clock

    # ==================== CHECK ====================

    def check_sync_status(self, scope: SyncScope) -> SyncStatus:
        with self.engine.connect() as conn:
            if isinstance(scope, GradeReportScope):
                status, _ = self._grade_status(conn, scope)
            elif isinstance(scope, ViolationReportScope):
                status, _ = self._violation_status(conn, scope)
            else:
                raise ValidationFailed(f"Unsupported sync scope: {type(scope).__name__}")
        if status.needs_resync:
            log.info("Stale reports in %s: students=%s weeks=%s",
                     scope, status.affected_students, status.affected_weeks)
        return status

    def _grade_status(self, conn: Connection, scope: GradeReportScope):
        period = self.roster.get_period(conn, scope.period_id)
        self.roster.get_class(conn, scope.class_id)
        student_ids = self.roster.class_student_ids(conn, scope.class_id)
        distributed: Dict[str, SubmissionRecord] = {
            sid: rec
            for sid, rec in self.submissions.submissions_for(conn, period.id, student_ids).items()
            if rec.is_submitted and rec.class_id == scope.class_id
        }
        watermarks = self.grades.last_mutations(
            conn, self.roster.component_period_ids(conn, period), scope.class_id, distributed.keys()
        )

        affected = sorted(
            sid for sid, rec in distributed.items()
            if watermarks.get(sid) and watermarks[sid] > rec.sync_watermark
        )
        status = SyncStatus(
            needs_resync=bool(affected),
            last_sync_time=later_of(*(rec.sync_watermark for rec in distributed.values())),
            affected_students=affected,
            reports_checked=len(distributed),
        )
        return status, (period, distributed)

    def _violation_status(self, conn: Connection, scope: ViolationReportScope):
        self.roster.get_semester(conn, scope.semester_id)
        if scope.week_index is not None:
            check_week_index(scope.week_index)
        reports: List[WeeklyReport] = [
            r for r in self.violations.list_reports(conn, scope.semester_id, scope.class_id)
            if scope.week_index is None or r.week_index == scope.week_index
        ]

        affected = []
        for report in reports:
            last_change = self.violations.last_mutation(
                conn, report.semester_id, report.period_start, report.period_end, report.class_id,
                snapshot_ids=self.violations.snapshot_ids(conn, report.id),
            )
            if last_change and report.sync_watermark and last_change > report.sync_watermark:
                affected.append(report.week_index)

        status = SyncStatus(
            needs_resync=bool(affected),
            last_sync_time=later_of(*(r.sync_watermark for r in reports)),
            affected_weeks=sorted(affected),
            reports_checked=len(reports),
        )
        return status, reports

    # ==================== RESYNC ====================

    def force_resync(self, actor: Actor, scope: SyncScope) -> Dict[str, Any]:
        require_role(actor, [Role.ADMIN, Role.TEACHER], "Resyncing reports")
        if isinstance(scope, GradeReportScope):
            return self._resync_grades(scope)
        if isinstance(scope, ViolationReportScope):
            return self._resync_violations(scope)
        raise ValidationFailed(f"Unsupported sync scope: {type(scope).__name__}")

    def _resync_grades(self, scope: GradeReportScope) -> Dict[str, Any]:
        with self.engine.begin() as conn:
            before, (period, distributed) = self._grade_status(conn, scope)
            cache_rows = self.summaries.refresh_cache(conn, period, scope.class_id)
            now = stamp(self.clock)
            synced = self.submissions.mark_synced(conn, period.id, distributed.keys(), now)

        log.info("Resynced grades period=%s class=%s: %d submission(s), %d cache row(s), stale before: %s",
                 scope.period_id, scope.class_id, synced, cache_rows, before.affected_students)
        return {
            "synced_at": now,
            "submissions_synced": synced,
            "summary_rows_refreshed": cache_rows,
            "was_stale": before.affected_students,
        }

    def _resync_violations(self, scope: ViolationReportScope) -> Dict[str, Any]:
        with self.engine.begin() as conn:
            before, reports = self._violation_status(conn, scope)
            now = stamp(self.clock)
            refreshed = []
            for report in reports:
                rows = self.violations.in_window(
                    conn, report.semester_id, report.period_start, report.period_end, report.class_id
                )
                refreshed.append(self.violations.refresh_report(conn, report, rows, now))

        log.info("Resynced %d weekly report(s) semester=%s class=%s, stale before: %s",
                 len(refreshed), scope.semester_id, scope.class_id or "*", before.affected_weeks)
        return {
            "synced_at": now,
            "reports_synced": len(refreshed),
            "was_stale": before.affected_weeks,
            "reports": [
                {"week_index": r.week_index, "violation_count": r.violation_count, "total_points": r.total_points}
                for r in refreshed
            ],
        }
