# services/discipline/models.py
from __future__ import annotations
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CaseStatus(str, Enum):
    """Declaration order is the only allowed path; there is no way back."""
    DRAFT = "draft"
    SENT_TO_HOMEROOM = "sent_to_homeroom"
    ACKNOWLEDGED = "acknowledged"
    MEETING_SCHEDULED = "meeting_scheduled"
    RESOLVED = "resolved"

    @property
    def rank(self) -> int:
        return list(CaseStatus).index(self)

    @property
    def next(self) -> Optional[CaseStatus]:
        order = list(CaseStatus)
        return order[self.rank + 1] if self.rank + 1 < len(order) else None


@dataclass(frozen=True)
class DisciplinaryCase:
    id: int
    student_id: str
    class_id: str
    semester_id: str
    week_index: int
    status: CaseStatus
    total_points: int = 0
    action_type: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_by: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> DisciplinaryCase:
        return cls(
            id=row["id"],
            student_id=row["student_id"],
            class_id=row["class_id"],
            semester_id=row["semester_id"],
            week_index=row["week_index"],
            status=CaseStatus(row["status"]),
            total_points=row["total_points"],
            action_type=row.get("action_type"),
            notes=row.get("notes"),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
            updated_by=row.get("updated_by"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class DisciplinaryCaseCreate(BaseModel):
    student_id: str = Field(min_length=1)
    class_id: str = Field(min_length=1)
    semester_id: str = Field(min_length=1)
    week_index: int = Field(ge=1, le=52)
    action_type: Optional[str] = Field(default=None, max_length=100)
    total_points: int = Field(default=0, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)


class CaseFilters(BaseModel):
    student_id: Optional[str] = None
    class_id: Optional[str] = None
    semester_id: Optional[str] = None
    week_index: Optional[int] = Field(default=None, ge=1, le=52)
    status: Optional[CaseStatus] = None
