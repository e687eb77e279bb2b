# core/errors.py
"""
Error taxonomy for the workflow engine.

Every expected failure is a WorkflowError subclass carrying a human-readable
message plus an ErrorKind the API facade copies into the result envelope.
Store/driver failures are NOT wrapped here: they propagate as-is.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.response import ErrorKind


class WorkflowError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationFailed(WorkflowError):
    kind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, {"errors": errors or [message]})
        self.errors = errors or [message]


class PermissionDenied(WorkflowError):
    kind = ErrorKind.PERMISSION_DENIED


class NotFound(WorkflowError):
    kind = ErrorKind.NOT_FOUND


class LockedComponent(WorkflowError):
    kind = ErrorKind.LOCKED


class InvalidTransition(WorkflowError):
    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot move from '{current}' to '{target}'",
            {"current": current, "target": target},
        )
        self.current = current
        self.target = target


class ResubmissionReasonRequired(WorkflowError):
    kind = ErrorKind.REASON_REQUIRED


class IncompleteGrades(WorkflowError):
    """Completeness gate refusal; lists every missing (student, subject code) pair."""

    kind = ErrorKind.INCOMPLETE_GRADES

    def __init__(self, missing: Iterable[Tuple[str, str]], message: Optional[str] = None):
        pairs = sorted(set(missing))
        subjects = sorted({code for _, code in pairs})
        super().__init__(
            message or f"Missing summary grades for: {', '.join(subjects)}",
            {
                "missing": [{"student_id": s, "subject_code": c} for s, c in pairs],
                "subjects": subjects,
            },
        )
        self.missing = pairs
        self.subjects = subjects


class SubmissionPending(WorkflowError):
    """A later hop was requested before every student finished the earlier one."""

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, student_ids: Iterable[str], message: Optional[str] = None):
        ids = sorted(set(student_ids))
        super().__init__(
            message or f"{len(ids)} student(s) have not been submitted to the homeroom teacher yet",
            {"students": ids},
        )
        self.student_ids = ids
