# services/audit/models.py
from __future__ import annotations
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class AuditStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class AuditEntry:
    id: int
    grade_id: int
    student_id: str
    period_id: str
    component_type: str
    old_value: Optional[float]
    new_value: Optional[float]
    changed_by: str
    changed_at: str
    status: AuditStatus
    change_reason: Optional[str] = None
    student_name: Optional[str] = None
    subject_name: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[str] = None
    review_note: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> AuditEntry:
        return cls(
            id=row["id"],
            grade_id=row["grade_id"],
            student_id=row["student_id"],
            period_id=row["period_id"],
            component_type=row["component_type"],
            old_value=row["old_value"],
            new_value=row["new_value"],
            changed_by=row["changed_by"],
            changed_at=row["changed_at"],
            status=AuditStatus(row["status"]),
            change_reason=row.get("change_reason"),
            student_name=row.get("student_name"),
            subject_name=row.get("subject_name"),
            processed_by=row.get("processed_by"),
            processed_at=row.get("processed_at"),
            review_note=row.get("review_note"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class ReviewRequest(BaseModel):
    entry_id: int = Field(gt=0)
    decision: AuditStatus
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator("decision")
    @classmethod
    def final_decision(cls, v: AuditStatus) -> AuditStatus:
        if v == AuditStatus.PENDING:
            raise ValueError("decision must be 'approved' or 'rejected'")
        return v
