# services/submissions/workflow.py
"""
Submission Workflow

Admin -> Homeroom Teacher (per student):
    not_submitted -> submitted, re-entrant. A resend increments
    submission_count and needs a reason. Guarded by the completeness gate.

Homeroom Teacher -> Parents (per class):
    one-shot broadcast to every guardian of every student, allowed once
    every student of the class has been submitted. Re-invoking re-sends.

Both hops fan out through BatchRunner: one transaction per student, one
failure never touches siblings. Notifications are queued only after the
transactions have committed.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine

from core.actor import Actor, Role, require_role
from core.batching import BatchOutcome, BatchRunner
from core.clock import Clock, stamp
from core.errors import (
    IncompleteGrades,
    NotFound,
    PermissionDenied,
    ResubmissionReasonRequired,
    SubmissionPending,
    ValidationFailed,
)
from core.notifications import Notification, NotificationDispatcher, TemplateKind
from services.grading.engine import SummaryGradeService
from services.roster.models import Guardian
from services.roster.repository import RosterRepository
from services.submissions.completeness import ClassCompletion, CompletenessChecker
from services.submissions.models import SubmissionRecord, SubmissionStatus
from services.submissions.store import SubmissionStore

log = logging.getLogger(__name__)


class SubmissionWorkflow:
    def __init__(
        self,
        engine: Engine,
        summaries: SummaryGradeService,
        dispatcher: NotificationDispatcher,
        runner: Optional[BatchRunner] = None,
        roster: Optional[RosterRepository] = None,
        store: Optional[SubmissionStore] = None,
        clock: Optional[Clock] = None,
    ):
        self.engine = engine
        self.summaries = summaries
        self.dispatcher = dispatcher
        self.runner = runner or BatchRunner()
        self.roster = roster or summaries.roster
        self.store = store or SubmissionStore()
        self.completeness = CompletenessChecker(summaries, self.roster)
        self.clock = clock

    # ==================== READ MODEL ====================

    def check_class_completion(self, period_id: str, class_id: str) -> ClassCompletion:
        with self.engine.connect() as conn:
            period = self.roster.get_period(conn, period_id)
            return self.completeness.class_completion(conn, period, class_id)

    # ==================== ADMIN -> HOMEROOM ====================

    def submit_class_to_homeroom(self, actor: Actor, period_id: str, class_id: str,
                                 reason: Optional[str] = None,
                                 timeout: Optional[float] = None) -> BatchOutcome:
        require_role(actor, [Role.ADMIN], "Submitting grades to homeroom teachers")
        with self.engine.connect() as conn:
            self.roster.get_period(conn, period_id)
            self.roster.get_class(conn, class_id)
            student_ids = self.roster.class_student_ids(conn, class_id)
        if not student_ids:
            raise ValidationFailed(f"Class {class_id} has no enrolled students")
        return self._submit(actor, period_id, student_ids, reason, class_id, timeout)

    def submit_students_to_homeroom(self, actor: Actor, period_id: str, student_ids: List[str],
                                    reason: Optional[str] = None,
                                    timeout: Optional[float] = None) -> BatchOutcome:
        require_role(actor, [Role.ADMIN], "Submitting grades to homeroom teachers")
        with self.engine.connect() as conn:
            self.roster.get_period(conn, period_id)
        return self._submit(actor, period_id, list(dict.fromkeys(student_ids)), reason, None, timeout)

    def _submit(self, actor: Actor, period_id: str, student_ids: List[str], reason: Optional[str],
                class_id: Optional[str], timeout: Optional[float]) -> BatchOutcome:
        log.info("Submitting period=%s to homeroom for %d student(s)", period_id, len(student_ids))
        outcome = self.runner.run(
            student_ids,
            lambda sid: self._submit_one(actor, period_id, sid, reason, class_id),
            timeout=timeout,
        )
        self._notify_homeroom_teachers(period_id, outcome)
        log.info("Homeroom submission period=%s: %d ok, %d failed, %d unprocessed",
                 period_id, outcome.success_count, outcome.error_count, len(outcome.unprocessed))
        return outcome

    def _submit_one(self, actor: Actor, period_id: str, student_id: str,
                    reason: Optional[str], class_id: Optional[str]) -> Dict[str, Any]:
        with self.engine.begin() as conn:
            period = self.roster.get_period(conn, period_id)
            placement = self.roster.current_placements(conn, [student_id]).get(student_id)
            if placement is None or not placement.homeroom_teacher_id:
                raise NotFound(f"No homeroom teacher found for student {student_id} in the current academic year")
            grade_class_id = class_id or placement.class_id

            subjects = self.completeness.subjects_for(conn, period, grade_class_id)
            if not subjects:
                raise ValidationFailed(f"No subjects are configured for class {grade_class_id}")
            missing = self.completeness.missing_subjects(conn, period, grade_class_id, student_id, subjects)
            if missing:
                raise IncompleteGrades([(student_id, code) for code in missing])

            existing = self.store.get_submission(conn, period_id, student_id)
            count = 1
            if existing is not None and existing.is_submitted:
                if not reason:
                    raise ResubmissionReasonRequired(
                        f"Student {student_id} was already submitted {existing.submission_count} time(s); "
                        "a reason is required to submit again"
                    )
                count = existing.submission_count + 1

            now = stamp(self.clock)
            saved = self.store.upsert_submission(conn, SubmissionRecord(
                period_id=period_id,
                student_id=student_id,
                class_id=grade_class_id,
                homeroom_teacher_id=placement.homeroom_teacher_id,
                status=SubmissionStatus.SUBMITTED,
                submission_count=count,
                admin_id=actor.id,
                submission_reason=reason if count > 1 else None,
                submitted_at=now,
                # a fresh submission reflects current data
                synced_at=None,
            ), now)

        return {
            **saved.to_dict(),
            "homeroom_teacher_name": placement.homeroom_teacher_name,
            "homeroom_teacher_email": placement.homeroom_teacher_email,
            "class_name": placement.class_name,
        }

    def _notify_homeroom_teachers(self, period_id: str, outcome: BatchOutcome) -> None:
        by_teacher: Dict[str, Dict[str, Any]] = {}
        for student_id, record in sorted(outcome.succeeded.items()):
            entry = by_teacher.setdefault(record["homeroom_teacher_id"], {
                "email": record["homeroom_teacher_email"],
                "name": record["homeroom_teacher_name"],
                "class_name": record["class_name"],
                "students": [],
            })
            entry["students"].append({
                "student_id": student_id,
                "submission_count": record["submission_count"],
                "reason": record["submission_reason"],
            })

        for teacher_id, info in by_teacher.items():
            self.dispatcher.enqueue(Notification(
                recipient_email=info["email"],
                template_kind=TemplateKind.GRADES_TO_HOMEROOM,
                payload={
                    "period_id": period_id,
                    "teacher_id": teacher_id,
                    "teacher_name": info["name"],
                    "class_name": info["class_name"],
                    "students": info["students"],
                },
            ))

    # ==================== HOMEROOM -> PARENTS ====================

    def submit_to_parents(self, actor: Actor, period_id: str, class_id: str,
                          timeout: Optional[float] = None) -> Dict[str, Any]:
        require_role(actor, [Role.ADMIN, Role.TEACHER], "Sending grades to parents")

        with self.engine.connect() as conn:
            period = self.roster.get_period(conn, period_id)
            klass = self.roster.get_class(conn, class_id)
            if actor.is_teacher and klass.homeroom_teacher_id != actor.id:
                raise PermissionDenied(f"Only the homeroom teacher of {klass.name} can send its grades to parents")

            student_ids = self.roster.class_student_ids(conn, class_id)
            if not student_ids:
                raise ValidationFailed(f"Class {class_id} has no enrolled students")
            submissions = self.store.submissions_for(conn, period_id, student_ids)
            pending = [sid for sid in student_ids
                       if sid not in submissions or not submissions[sid].is_submitted]
            if pending:
                raise SubmissionPending(pending)

            students = self.roster.get_profiles(conn, student_ids)
            guardians = self.roster.guardians(conn, student_ids)
            subjects = {s.id: s for s in self.completeness.subjects_for(conn, period, class_id)}
            summaries = self.summaries.class_summaries(conn, period, class_id)

        grades_by_student: Dict[str, Dict[str, Optional[float]]] = {}
        for (student_id, subject_id), result in summaries.items():
            if subject_id in subjects:
                grades_by_student.setdefault(student_id, {})[subjects[subject_id].code] = result.display_value

        recipients: List[Guardian] = [g for sid in student_ids for g in guardians.get(sid, [])]
        without_guardians = [sid for sid in student_ids if not guardians.get(sid)]

        def send(guardian: Guardian) -> str:
            if not guardian.email:
                raise ValidationFailed(f"Guardian {guardian.id} of student {guardian.student_id} has no email")
            student = students.get(guardian.student_id)
            self.dispatcher.enqueue(Notification(
                recipient_email=guardian.email,
                template_kind=TemplateKind.GRADES_TO_PARENT,
                payload={
                    "period_id": period_id,
                    "period_name": period.name,
                    "class_name": klass.name,
                    "parent_name": guardian.full_name,
                    "student_id": guardian.student_id,
                    "student_name": student.full_name if student else None,
                    "grades": grades_by_student.get(guardian.student_id, {}),
                },
            ))
            return guardian.email

        outcome = self.runner.run(
            recipients, send, key=lambda g: f"{g.student_id}:{g.id}", timeout=timeout
        )

        with self.engine.begin() as conn:
            broadcast = self.store.record_broadcast(
                conn, period_id, class_id, actor.id, outcome.success_count, stamp(self.clock)
            )

        log.info("Parent broadcast period=%s class=%s #%d: %d queued, %d failed",
                 period_id, class_id, broadcast.send_count, outcome.success_count, outcome.error_count)
        return {
            "outcome": outcome,
            "send_count": broadcast.send_count,
            "students_without_guardians": without_guardians,
        }
