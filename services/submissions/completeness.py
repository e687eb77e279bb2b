# services/submissions/completeness.py
"""
Completeness gate.

A (period, student) may only be submitted when every subject taught in
the student's class has a non-null summary grade for that period.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.engine import Connection

from services.grading.engine import SummaryGradeService
from services.grading.models import GradePeriod
from services.roster.models import Subject
from services.roster.repository import RosterRepository


@dataclass
class ClassCompletion:
    period_id: str
    class_id: str
    student_count: int
    subjects: List[Dict[str, Any]] = field(default_factory=list)
    missing_by_student: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return self.student_count > 0 and not self.missing_by_student

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period_id": self.period_id,
            "class_id": self.class_id,
            "student_count": self.student_count,
            "complete": self.complete,
            "subjects": list(self.subjects),
            "missing_by_student": dict(self.missing_by_student),
        }


class CompletenessChecker:
    def __init__(self, summaries: SummaryGradeService, roster: Optional[RosterRepository] = None):
        self.summaries = summaries
        self.roster = roster or summaries.roster

    def subjects_for(self, conn: Connection, period: GradePeriod, class_id: str) -> List[Subject]:
        period_ids = self.roster.component_period_ids(conn, period)
        return self.roster.class_subjects(conn, class_id, period_ids)

    def missing_subjects(self, conn: Connection, period: GradePeriod, class_id: str,
                         student_id: str, subjects: Optional[Sequence[Subject]] = None) -> List[str]:
        """Subject codes still lacking a summary grade for one student."""
        if subjects is None:
            subjects = self.subjects_for(conn, period, class_id)
        missing = []
        for subject in subjects:
            result = self.summaries.summary_for_cell(conn, period, student_id, subject.id, class_id)
            if not result.available:
                missing.append(subject.code)
        return missing

    def class_completion(self, conn: Connection, period: GradePeriod, class_id: str) -> ClassCompletion:
        self.roster.get_class(conn, class_id)
        students = self.roster.class_student_ids(conn, class_id)
        subjects = self.subjects_for(conn, period, class_id)
        summaries = self.summaries.class_summaries(conn, period, class_id)

        report = ClassCompletion(period_id=period.id, class_id=class_id, student_count=len(students))
        for subject in subjects:
            graded = 0
            for student_id in students:
                result = summaries.get((student_id, subject.id))
                if result is not None and result.available:
                    graded += 1
                else:
                    report.missing_by_student.setdefault(student_id, []).append(subject.code)
            report.subjects.append({
                "subject_id": subject.id,
                "subject_code": subject.code,
                "subject_name": subject.name,
                "graded": graded,
                "total": len(students),
                "complete": graded == len(students),
            })
        return report
