# services/submissions/models.py
from __future__ import annotations
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class SubmissionStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"


@dataclass
class SubmissionRecord:
    """Admin -> Homeroom Teacher hop for one (period, student)."""
    period_id: str
    student_id: str
    class_id: str
    homeroom_teacher_id: str
    status: SubmissionStatus = SubmissionStatus.DRAFT
    submission_count: int = 1
    admin_id: Optional[str] = None
    submission_reason: Optional[str] = None
    submitted_at: Optional[str] = None
    synced_at: Optional[str] = None
    id: Optional[int] = None

    @property
    def is_submitted(self) -> bool:
        return self.status == SubmissionStatus.SUBMITTED

    @property
    def sync_watermark(self) -> Optional[str]:
        """What the distributed copy reflects: the last resync, else the submission."""
        return self.synced_at or self.submitted_at

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> SubmissionRecord:
        return cls(
            id=row["id"],
            period_id=row["period_id"],
            student_id=row["student_id"],
            class_id=row["class_id"],
            homeroom_teacher_id=row["homeroom_teacher_id"],
            status=SubmissionStatus(row["status"]),
            submission_count=row["submission_count"],
            admin_id=row.get("admin_id"),
            submission_reason=row.get("submission_reason"),
            submitted_at=row.get("submitted_at"),
            synced_at=row.get("synced_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class BroadcastRecord:
    """Homeroom Teacher -> Parents hop for one (period, class)."""
    period_id: str
    class_id: str
    send_count: int
    recipient_count: int
    sent_by: Optional[str] = None
    sent_at: Optional[str] = None


def _clean_reason(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class SubmitStudentsRequest(BaseModel):
    period_id: str = Field(min_length=1)
    student_ids: List[str] = Field(min_length=1)
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: Optional[str]) -> Optional[str]:
        return _clean_reason(v)


class SubmitClassRequest(BaseModel):
    period_id: str = Field(min_length=1)
    class_id: str = Field(min_length=1)
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: Optional[str]) -> Optional[str]:
        return _clean_reason(v)
