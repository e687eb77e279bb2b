# services/api.py
"""
Workflow API: the operations exposed to the host application.

Every method returns an ActionResult. Expected failures (WorkflowError,
input validation) become a failed result carrying a readable message and
an ErrorKind. Anything else (store unavailable, driver errors) is logged
and propagates.
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.engine import Engine

from core.actor import ActorProvider
from core.batching import BatchOutcome
from core.errors import ValidationFailed, WorkflowError
from core.notifications import NotificationDispatcher
from core.response import ActionResult, ErrorKind
from services.audit.models import ReviewRequest
from services.audit.review import AuditReviewService
from services.discipline.models import CaseFilters, CaseStatus, DisciplinaryCaseCreate
from services.discipline.workflow import DisciplinaryCaseWorkflow
from services.grading.changes import GradeChangeService
from services.grading.engine import SummaryGradeService
from services.grading.models import GradeChangeRequest
from services.submissions.models import SubmitClassRequest, SubmitStudentsRequest
from services.submissions.workflow import SubmissionWorkflow
from services.sync.models import GradeReportScope, SyncScope, ViolationReportScope
from services.sync.service import ReportSyncService
from services.violations.models import ViolationCreate, ViolationUpdate
from services.violations.reports import ViolationService

log = logging.getLogger(__name__)


def validation_failed(exc: ValidationError) -> ValidationFailed:
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "input"
        messages.append(f"{field}: {err.get('msg', 'invalid value')}")
    return ValidationFailed("; ".join(messages), messages)


def batch_result(outcome: BatchOutcome, extra: Optional[Dict[str, Any]] = None) -> ActionResult:
    """Per-item summary in every case; success only when every item went through."""
    data = {**outcome.summary(), **(extra or {})}
    if outcome.complete:
        return ActionResult.succeed(data)
    if outcome.unprocessed and not outcome.failed:
        message = f"Deadline reached with {len(outcome.unprocessed)} item(s) unprocessed"
    else:
        message = f"{outcome.error_count} of {outcome.error_count + outcome.success_count} item(s) failed"
    return ActionResult.fail(message, ErrorKind.PARTIAL_FAILURE, data)


class AcademicRecordsAPI:
    def __init__(
        self,
        current_actor: ActorProvider,
        summaries: SummaryGradeService,
        changes: GradeChangeService,
        reviews: AuditReviewService,
        submissions: SubmissionWorkflow,
        violations: ViolationService,
        sync: ReportSyncService,
        cases: DisciplinaryCaseWorkflow,
        engine: Optional[Engine] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.current_actor = current_actor
        self.summaries = summaries
        self.changes = changes
        self.reviews = reviews
        self.submissions = submissions
        self.violations = violations
        self.sync = sync
        self.cases = cases
        self.engine = engine
        self.dispatcher = dispatcher

    def close(self) -> None:
        """Drain queued notifications and release pooled connections."""
        if self.dispatcher is not None:
            self.dispatcher.shutdown()
        if self.engine is not None:
            self.engine.dispose()

    def _call(self, operation: str, fn: Callable[[], ActionResult]) -> ActionResult:
        try:
            return fn()
        except ValidationError as e:
            err = validation_failed(e)
            log.info("%s rejected: %s", operation, err.message)
            return ActionResult.fail(err.message, err.kind, err.details)
        except WorkflowError as e:
            log.info("%s refused (%s): %s", operation, e.kind.value, e.message)
            return ActionResult.fail(e.message, e.kind, e.details)
        except Exception:
            log.exception("%s failed unexpectedly", operation)
            raise

    # ==================== GRADES ====================

    def compute_summary_grade(self, period_id: str, student_id: str, subject_id: str,
                              class_id: str) -> ActionResult:
        def run():
            result = self.summaries.compute(period_id, student_id, subject_id, class_id)
            return ActionResult.succeed(result.to_dict())
        return self._call("ComputeSummaryGrade", run)

    def record_grade_change(self, payload: Dict[str, Any]) -> ActionResult:
        def run():
            request = GradeChangeRequest(**payload)
            return ActionResult.succeed(self.changes.record(self.current_actor(), request))
        return self._call("RecordGradeChange", run)

    def lock_grades(self, period_id: str, class_id: str, subject_id: Optional[str] = None) -> ActionResult:
        def run():
            count = self.changes.lock(self.current_actor(), period_id, class_id, subject_id)
            return ActionResult.succeed({"locked": count})
        return self._call("LockGrades", run)

    # ==================== AUDIT ====================

    def review_audit_entry(self, entry_id: int, decision: str, note: Optional[str] = None) -> ActionResult:
        def run():
            request = ReviewRequest(entry_id=entry_id, decision=decision, note=note)
            return ActionResult.succeed(self.reviews.review(self.current_actor(), request))
        return self._call("ReviewAuditEntry", run)

    def pending_reviews(self, period_id: Optional[str] = None) -> ActionResult:
        def run():
            entries = self.reviews.pending_reviews(self.current_actor(), period_id)
            return ActionResult.succeed({"entries": [e.to_dict() for e in entries]})
        return self._call("PendingReviews", run)

    def history(self, student_id: str, period_id: Optional[str] = None) -> ActionResult:
        def run():
            entries = self.reviews.history(student_id, period_id)
            return ActionResult.succeed({"entries": [e.to_dict() for e in entries]})
        return self._call("History", run)

    def check_grade_consistency(self, period_id: str, class_id: str) -> ActionResult:
        def run():
            report = self.reviews.check_consistency(period_id, class_id)
            if report.needs_attention:
                return ActionResult.fail(
                    f"{len(report.anomalies)} grade(s) disagree with the audit log",
                    ErrorKind.NEEDS_ATTENTION,
                    report.to_dict(),
                )
            return ActionResult.succeed(report.to_dict())
        return self._call("CheckGradeConsistency", run)

    # ==================== SUBMISSIONS ====================

    def check_class_completion(self, period_id: str, class_id: str) -> ActionResult:
        def run():
            return ActionResult.succeed(self.submissions.check_class_completion(period_id, class_id).to_dict())
        return self._call("CheckClassCompletion", run)

    def submit_class_to_homeroom(self, period_id: str, class_id: str, reason: Optional[str] = None,
                                 timeout: Optional[float] = None) -> ActionResult:
        def run():
            request = SubmitClassRequest(period_id=period_id, class_id=class_id, reason=reason)
            outcome = self.submissions.submit_class_to_homeroom(
                self.current_actor(), request.period_id, request.class_id, request.reason, timeout
            )
            return batch_result(outcome)
        return self._call("SubmitClassToHomeroom", run)

    def submit_students_to_homeroom(self, period_id: str, student_ids: List[str],
                                    reason: Optional[str] = None,
                                    timeout: Optional[float] = None) -> ActionResult:
        def run():
            request = SubmitStudentsRequest(period_id=period_id, student_ids=student_ids, reason=reason)
            outcome = self.submissions.submit_students_to_homeroom(
                self.current_actor(), request.period_id, request.student_ids, request.reason, timeout
            )
            return batch_result(outcome)
        return self._call("SubmitStudentsToHomeroom", run)

    def submit_to_parents(self, period_id: str, class_id: str, timeout: Optional[float] = None) -> ActionResult:
        def run():
            sent = self.submissions.submit_to_parents(self.current_actor(), period_id, class_id, timeout)
            return batch_result(sent["outcome"], {
                "sendCount": sent["send_count"],
                "studentsWithoutGuardians": sent["students_without_guardians"],
            })
        return self._call("SubmitToParents", run)

    # ==================== VIOLATIONS ====================

    def record_violation(self, payload: Dict[str, Any]) -> ActionResult:
        def run():
            violation = self.violations.record_violation(self.current_actor(), ViolationCreate(**payload))
            return ActionResult.succeed({"violation_id": violation.id})
        return self._call("RecordViolation", run)

    def update_violation(self, violation_id: int, changes: Dict[str, Any]) -> ActionResult:
        def run():
            violation = self.violations.update_violation(
                self.current_actor(), violation_id, ViolationUpdate(**changes)
            )
            return ActionResult.succeed({"violation_id": violation.id, "updated_at": violation.updated_at})
        return self._call("UpdateViolation", run)

    def mark_weekly_report_sent(self, semester_id: str, week_index: int,
                                class_id: Optional[str] = None) -> ActionResult:
        def run():
            report = self.violations.mark_weekly_report_sent(
                self.current_actor(), semester_id, week_index, class_id
            )
            return ActionResult.succeed({
                "report_id": report.id,
                "week_index": report.week_index,
                "period_start": report.period_start,
                "period_end": report.period_end,
                "violation_count": report.violation_count,
                "total_points": report.total_points,
                "sent_at": report.alert_sent_at,
            })
        return self._call("MarkWeeklyReportSent", run)

    # ==================== SYNC ====================

    def check_sync_status(self, scope: SyncScope) -> ActionResult:
        def run():
            return ActionResult.succeed(self.sync.check_sync_status(scope).to_dict())
        return self._call("CheckSyncStatus", run)

    def force_resync(self, scope: SyncScope) -> ActionResult:
        def run():
            return ActionResult.succeed(self.sync.force_resync(self.current_actor(), scope))
        return self._call("ForceResync", run)

    def grade_report_scope(self, period_id: str, class_id: str) -> GradeReportScope:
        return GradeReportScope(period_id=period_id, class_id=class_id)

    def violation_report_scope(self, semester_id: str, class_id: Optional[str] = None,
                               week_index: Optional[int] = None) -> ViolationReportScope:
        return ViolationReportScope(semester_id=semester_id, class_id=class_id, week_index=week_index)

    # ==================== DISCIPLINARY CASES ====================

    def create_disciplinary_case(self, payload: Dict[str, Any]) -> ActionResult:
        def run():
            case = self.cases.create(self.current_actor(), DisciplinaryCaseCreate(**payload))
            return ActionResult.succeed(case.to_dict())
        return self._call("CreateDisciplinaryCase", run)

    def advance_disciplinary_case(self, case_id: int, target_state: str) -> ActionResult:
        def run():
            try:
                target = CaseStatus(target_state)
            except ValueError:
                raise ValidationFailed(f"Unknown case state: {target_state!r}") from None
            case = self.cases.advance(self.current_actor(), case_id, target)
            return ActionResult.succeed(case.to_dict())
        return self._call("AdvanceDisciplinaryCase", run)

    def delete_disciplinary_case(self, case_id: int) -> ActionResult:
        def run():
            self.cases.delete(self.current_actor(), case_id)
            return ActionResult.succeed({"case_id": case_id, "deleted": True})
        return self._call("DeleteDisciplinaryCase", run)

    def get_disciplinary_case(self, case_id: int) -> ActionResult:
        def run():
            return ActionResult.succeed(self.cases.get(case_id).to_dict())
        return self._call("GetDisciplinaryCase", run)

    def list_disciplinary_cases(self, **filters: Any) -> ActionResult:
        def run():
            cases = self.cases.list(CaseFilters(**filters))
            return ActionResult.succeed({"cases": [c.to_dict() for c in cases]})
        return self._call("ListDisciplinaryCases", run)
