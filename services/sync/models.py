# services/sync/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass(frozen=True)
class GradeReportScope:
    """Grades distributed to homeroom teachers for one (period, class)."""
    period_id: str
    class_id: str


@dataclass(frozen=True)
class ViolationReportScope:
    """Weekly violation reports of a semester; narrowed by class and/or week."""
    semester_id: str
    class_id: Optional[str] = None
    week_index: Optional[int] = None


SyncScope = Union[GradeReportScope, ViolationReportScope]


@dataclass
class SyncStatus:
    needs_resync: bool
    last_sync_time: Optional[str]
    affected_students: List[str] = field(default_factory=list)
    affected_weeks: List[int] = field(default_factory=list)
    reports_checked: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "needs_resync": self.needs_resync,
            "last_sync_time": self.last_sync_time,
            "affected_students": list(self.affected_students),
            "affected_weeks": list(self.affected_weeks),
            "reports_checked": self.reports_checked,
        }
