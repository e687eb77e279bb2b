# core/response.py
"""
Uniform result envelope returned by every exposed workflow operation.

Shape: {success, data, error, error_kind}. `error` is always a human-readable
string; `error_kind` is the structured counterpart for callers that want to
branch on failure type.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    # === Validation Failures ===
    # malformed input or a missing required field
    VALIDATION_FAILED = "VALIDATION_FAILED"
    REASON_REQUIRED = "REASON_REQUIRED"

    # === Lookups / Access ===
    NOT_FOUND = "NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # === State Restrictions ===
    INCOMPLETE_GRADES = "INCOMPLETE_GRADES"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    LOCKED = "LOCKED"

    # some items of a batch failed, the rest were applied
    PARTIAL_FAILURE = "PARTIAL_FAILURE"

    # system keeps running, an explicit reconciliation is required
    NEEDS_ATTENTION = "NEEDS_ATTENTION"

    # === Internal Faults ===
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ActionResult:
    """
    Standard result object for the workflow API.

    Attributes:
        success (bool): Indicates whether the operation succeeded.
        data (dict): Optional payload, varies by operation.
        error (str | None): Human-readable explanation on failure.
        error_kind (ErrorKind | None): Machine-readable failure identifier.
    """

    def __init__(
        self,
        success: bool,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        error_kind: Optional[ErrorKind] = None,
    ):
        self._success = success
        self._data = data or {}
        self._error = error
        self._error_kind = error_kind

    # === properties ===

    @property
    def success(self) -> bool:
        return self._success

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self._error_kind

    # === public classmethods ===

    @classmethod
    def succeed(cls, data: Optional[Dict[str, Any]] = None) -> ActionResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        error: str,
        error_kind: ErrorKind = ErrorKind.INTERNAL_ERROR,
        data: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        return cls(success=False, data=data, error=error, error_kind=error_kind)

    # === persistence and import ===

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> ActionResult:
        kind = payload.get("error_kind")
        return cls(
            success=payload["success"],
            data=payload.get("data") or {},
            error=payload.get("error"),
            error_kind=ErrorKind(kind) if kind else None,
        )

    # === dunder methods ===

    def __repr__(self) -> str:
        return f"ActionResult(success={self.success}, error_kind={self.error_kind}, error={self.error!r})"

    def __str__(self) -> str:
        if self.success:
            return "Success"
        return f"Error: {self.error or ''}"
