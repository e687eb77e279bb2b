# services/grading/models.py
"""
Data models for graded components.
Contains enums, dataclasses, and input validation.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# ENUMS
# ============================================================================

class ComponentType(str, Enum):
    """One graded slot of a (period, student, subject, class) tuple."""
    REGULAR_1 = "regular_1"
    REGULAR_2 = "regular_2"
    REGULAR_3 = "regular_3"
    REGULAR_4 = "regular_4"
    MIDTERM = "midterm"
    FINAL = "final"
    SEMESTER_1 = "semester_1"
    SEMESTER_2 = "semester_2"
    YEARLY = "yearly"
    # derived value cached by the computation engine; never entered by hand
    SUMMARY = "summary"

    @property
    def is_regular(self) -> bool:
        return self in REGULAR_COMPONENTS


REGULAR_COMPONENTS = frozenset({
    ComponentType.REGULAR_1, ComponentType.REGULAR_2,
    ComponentType.REGULAR_3, ComponentType.REGULAR_4,
})
EXPLICIT_SUMMARY_COMPONENTS = frozenset({
    ComponentType.SEMESTER_1, ComponentType.SEMESTER_2, ComponentType.YEARLY,
})
ENTERABLE_COMPONENTS = frozenset(ct for ct in ComponentType if ct != ComponentType.SUMMARY)


class PeriodType(str, Enum):
    MIDTERM_1 = "midterm_1"
    FINAL_1 = "final_1"
    SEMESTER_1_SUMMARY = "semester_1_summary"
    MIDTERM_2 = "midterm_2"
    FINAL_2 = "final_2"
    SEMESTER_2_SUMMARY = "semester_2_summary"
    YEARLY_SUMMARY = "yearly_summary"

    @property
    def is_summary(self) -> bool:
        return self.value.endswith("_summary")

    @property
    def is_yearly(self) -> bool:
        return self == PeriodType.YEARLY_SUMMARY

    @property
    def summary_component(self) -> ComponentType:
        """The explicitly entered component that wins over derivation in this period."""
        if self.is_yearly:
            return ComponentType.YEARLY
        if self.value.endswith("_1") or self.value.startswith("semester_1"):
            return ComponentType.SEMESTER_1
        return ComponentType.SEMESTER_2


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass(frozen=True)
class GradePeriod:
    id: str
    name: str
    period_type: PeriodType
    academic_year_id: str
    semester_id: Optional[str] = None
    status: str = "open"

    @property
    def is_summary(self) -> bool:
        return self.period_type.is_summary


@dataclass(frozen=True)
class CellKey:
    """The five-tuple (minus component) that identifies one subject grade sheet cell."""
    period_id: str
    student_id: str
    subject_id: str
    class_id: str


@dataclass
class GradeComponent:
    period_id: str
    student_id: str
    subject_id: str
    class_id: str
    component_type: ComponentType
    value: Optional[float] = None
    locked: bool = False
    id: Optional[int] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_by: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def cell(self) -> CellKey:
        return CellKey(self.period_id, self.student_id, self.subject_id, self.class_id)

    @classmethod
    def from_row(cls, row: dict) -> GradeComponent:
        return cls(
            id=row["id"],
            period_id=row["period_id"],
            student_id=row["student_id"],
            subject_id=row["subject_id"],
            class_id=row["class_id"],
            component_type=ComponentType(row["component_type"]),
            value=None if row["grade_value"] is None else float(row["grade_value"]),
            locked=bool(row["locked"]),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
            updated_by=row.get("updated_by"),
            updated_at=row.get("updated_at"),
        )


# ============================================================================
# VALIDATION
# ============================================================================

def validate_grade_value(value: Any) -> float:
    """
    Casts to float and checks the value is a finite number in [0, 10].

    Raises:
        TypeError: If the input cannot be cast to float.
        ValueError: If the input is non-finite or outside [0, 10].
    """
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise TypeError("Grade value must be a number.") from None

    if not math.isfinite(value):
        raise ValueError("Grade value must be a finite number.")

    if value < 0 or value > 10:
        raise ValueError("Grade value must be between 0 and 10.")

    return value


class GradeChangeRequest(BaseModel):
    """Payload of RecordGradeChange; validated before any store access."""

    period_id: str = Field(min_length=1)
    student_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    class_id: str = Field(min_length=1)
    component_type: ComponentType
    value: float
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("component_type")
    @classmethod
    def enterable_component(cls, v: ComponentType) -> ComponentType:
        if v not in ENTERABLE_COMPONENTS:
            raise ValueError("summary is computed, it cannot be entered")
        return v

    @field_validator("value", mode="before")
    @classmethod
    def value_in_range(cls, v: Any) -> float:
        try:
            return validate_grade_value(v)
        except TypeError as e:
            # pydantic only reports ValueError as a validation error
            raise ValueError(str(e)) from None

    @property
    def cell(self) -> CellKey:
        return CellKey(self.period_id, self.student_id, self.subject_id, self.class_id)
