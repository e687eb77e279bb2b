# services/audit/review.py
"""
Admin review of pending audit entries, and the ledger/store consistency check.

Approve only stamps the entry. Reject restores the grade to the entry's
old value and appends a self-approved reversal entry, all in one
transaction, so the component and its latest entry keep agreeing.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine

from core.actor import Actor, Role, require_role
from core.clock import Clock, stamp
from core.errors import InvalidTransition
from services.audit.log import AuditLog
from services.audit.models import AuditEntry, AuditStatus, ReviewRequest
from services.grading.models import ComponentType
from services.grading.store import GradeStore

log = logging.getLogger(__name__)


@dataclass
class ConsistencyReport:
    period_id: str
    class_id: str
    checked: int = 0
    anomalies: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def needs_attention(self) -> bool:
        return bool(self.anomalies)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period_id": self.period_id,
            "class_id": self.class_id,
            "checked": self.checked,
            "needs_attention": self.needs_attention,
            "anomalies": list(self.anomalies),
        }


class AuditReviewService:
    def __init__(self, engine: Engine, store: Optional[GradeStore] = None,
                 audit: Optional[AuditLog] = None, clock: Optional[Clock] = None):
        self.engine = engine
        self.store = store or GradeStore()
        self.audit = audit or AuditLog()
        self.clock = clock

    def review(self, actor: Actor, request: ReviewRequest) -> Dict[str, Any]:
        require_role(actor, [Role.ADMIN], "Reviewing grade changes")

        with self.engine.begin() as conn:
            entry = self.audit.get(conn, request.entry_id)
            if entry.status != AuditStatus.PENDING:
                raise InvalidTransition(
                    entry.status.value, request.decision.value,
                    f"Audit entry {entry.id} is already {entry.status.value}",
                )

            if request.decision == AuditStatus.APPROVED:
                reviewed = self.audit.mark_reviewed(conn, entry.id, AuditStatus.APPROVED,
                                                    actor.id, stamp(self.clock), request.note)
                log.info("Audit #%s approved by %s", entry.id, actor.id)
                return {"entry": reviewed.to_dict(), "reversal": None}

            latest = self.audit.latest_for_grade(conn, entry.grade_id)
            if latest is not None and latest.id != entry.id:
                raise InvalidTransition(
                    "superseded", AuditStatus.REJECTED.value,
                    f"Audit entry {entry.id} was superseded by #{latest.id}; review the latest change instead",
                )

            now = stamp(self.clock)
            reviewed = self.audit.mark_reviewed(conn, entry.id, AuditStatus.REJECTED,
                                                actor.id, now, request.note)
            self.store.set_value(conn, entry.grade_id, entry.old_value, actor.id, now)
            reverted = self.store.get_component_by_id(conn, entry.grade_id)
            reversal = self.audit.record_update(
                conn, reverted, actor, stamp(self.clock),
                old_value=entry.new_value,
                status=AuditStatus.APPROVED,
                reason=f"Reverted rejected change #{entry.id}",
                student_name=entry.student_name,
                subject_name=entry.subject_name,
            )

        log.info("Audit #%s rejected by %s; grade %s restored to %s",
                 entry.id, actor.id, entry.grade_id, entry.old_value)
        return {"entry": reviewed.to_dict(), "reversal": reversal.to_dict()}

    def pending_reviews(self, actor: Actor, period_id: Optional[str] = None) -> List[AuditEntry]:
        require_role(actor, [Role.ADMIN], "Listing pending reviews")
        with self.engine.connect() as conn:
            return self.audit.pending(conn, period_id)

    def history(self, student_id: str, period_id: Optional[str] = None) -> List[AuditEntry]:
        with self.engine.connect() as conn:
            return self.audit.history(conn, student_id, period_id)

    def check_consistency(self, period_id: str, class_id: str) -> ConsistencyReport:
        """
        Every entered component must have an audit entry whose new_value
        matches the stored value. Mismatches are reported, never repaired.
        """
        report = ConsistencyReport(period_id=period_id, class_id=class_id)
        with self.engine.connect() as conn:
            latest = self.audit.latest_by_grade(conn, period_id, class_id)
            components = self.store.get_components_for_periods(conn, [period_id], class_id)

        for comp in components:
            if comp.component_type == ComponentType.SUMMARY:
                continue
            report.checked += 1
            entry = latest.get(comp.id)
            if entry is None:
                report.anomalies.append({
                    "grade_id": comp.id,
                    "student_id": comp.student_id,
                    "subject_id": comp.subject_id,
                    "component_type": comp.component_type.value,
                    "problem": "missing_audit_entry",
                    "stored_value": comp.value,
                })
            elif entry.new_value != comp.value:
                report.anomalies.append({
                    "grade_id": comp.id,
                    "student_id": comp.student_id,
                    "subject_id": comp.subject_id,
                    "component_type": comp.component_type.value,
                    "problem": "value_mismatch",
                    "stored_value": comp.value,
                    "audited_value": entry.new_value,
                    "audit_entry_id": entry.id,
                })

        if report.needs_attention:
            log.warning("Grade/audit mismatch in period=%s class=%s: %d anomal(ies)",
                        period_id, class_id, len(report.anomalies))
        return report
