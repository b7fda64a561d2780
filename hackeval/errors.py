"""Error taxonomy shared by the registration and evaluation workflows."""

from __future__ import annotations

import enum
from typing import Any, Optional


class ErrorCategory(str, enum.Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"


class ErrorCode(str, enum.Enum):
    """Stable machine-readable failure codes returned to callers."""

    # roster eligibility
    WRONG_ROSTER_SIZE = "WRONG_ROSTER_SIZE"
    LEADER_COUNT_INVALID = "LEADER_COUNT_INVALID"
    LEADER_NOT_IEEE_MEMBER = "LEADER_NOT_IEEE_MEMBER"
    SCHOOL_STUDENT_COUNT_INVALID = "SCHOOL_STUDENT_COUNT_INVALID"
    SCHOOL_STUDENT_MISSING_FIELDS = "SCHOOL_STUDENT_MISSING_FIELDS"
    NO_FEMALE_MEMBER = "NO_FEMALE_MEMBER"

    # request shape
    INVALID_REGISTRATION = "INVALID_REGISTRATION"
    INVALID_ARTIFACT = "INVALID_ARTIFACT"
    INVALID_EVALUATION = "INVALID_EVALUATION"
    INVALID_CRITERION = "INVALID_CRITERION"

    # conflicts
    TEAM_NAME_TAKEN = "TEAM_NAME_TAKEN"
    LEADER_EMAIL_TAKEN = "LEADER_EMAIL_TAKEN"
    EVALUATION_CONFLICT = "EVALUATION_CONFLICT"
    CRITERION_IN_USE = "CRITERION_IN_USE"

    # lookups
    TEAM_NOT_FOUND = "TEAM_NOT_FOUND"
    SUBMISSION_NOT_FOUND = "SUBMISSION_NOT_FOUND"
    EVALUATOR_NOT_FOUND = "EVALUATOR_NOT_FOUND"
    CRITERION_NOT_FOUND = "CRITERION_NOT_FOUND"

    # upstream
    ARTIFACT_UPLOAD_FAILED = "ARTIFACT_UPLOAD_FAILED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    STORE_ERROR = "STORE_ERROR"


class WorkflowError(Exception):
    """Base class for failures surfaced by the workflows.

    Parameters
    ----------
    code : ErrorCode
        Stable identifier of the failure.
    message : str
        Human readable explanation.
    details : Any, optional
        JSON-serializable payload with extra context (offending slot, ids...).
    """

    category: ErrorCategory = ErrorCategory.VALIDATION

    def __init__(self, code: ErrorCode, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__}(code={self.code.value}, "
            f"message={self.message!r})>"
        )

    def to_json(self) -> dict[str, Any]:
        """Return the error payload handed back to API callers."""
        return {
            "success": False,
            "error": self.code.value,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(WorkflowError):
    """Malformed or rule-violating input, detected before any write."""

    category = ErrorCategory.VALIDATION


class ConflictError(WorkflowError):
    """Input collides with existing state (duplicate name, race loser)."""

    category = ErrorCategory.CONFLICT


class NotFoundError(WorkflowError):
    category = ErrorCategory.NOT_FOUND


class UpstreamError(WorkflowError):
    """An external dependency (blob storage, database) failed or timed out."""

    category = ErrorCategory.UPSTREAM
