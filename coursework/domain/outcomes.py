"""
Result and error types shared by the rules and the orchestrator.

Pure rules return a Decision; the orchestrator returns an Outcome that
maps one-to-one onto a request/response contract. A rejection is always
a typed (code, message) pair, never an exception crossing the engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorCategory(Enum):
    """Broad failure classes, used for logging and response mapping."""

    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    INVARIANT = "invariant"
    INFRASTRUCTURE = "infrastructure"


class ErrorCode(Enum):
    """
    Domain error codes.

    Each member carries the wire code, the HTTP-equivalent status and a
    default user-facing message.
    """

    # Input validation
    INVALID_INPUT = ("INVALID_INPUT", 400, ErrorCategory.VALIDATION, "Invalid input")
    INVALID_SCORE = ("INVALID_SCORE", 400, ErrorCategory.VALIDATION, "Score must be between 0 and 100")
    COURSE_PUBLISH_VALIDATION_ERROR = (
        "COURSE_PUBLISH_VALIDATION_ERROR", 400, ErrorCategory.VALIDATION,
        "Title is required to publish a course",
    )
    ASSIGNMENT_PAST_DEADLINE = (
        "ASSIGNMENT_PAST_DEADLINE", 400, ErrorCategory.VALIDATION,
        "Assignment deadline must be in the future",
    )
    METADATA_INACTIVE = (
        "METADATA_INACTIVE", 400, ErrorCategory.VALIDATION,
        "Category or difficulty is not active",
    )

    # Authorization
    INSUFFICIENT_PERMISSIONS = (
        "INSUFFICIENT_PERMISSIONS", 403, ErrorCategory.AUTHORIZATION, "Insufficient permissions",
    )

    # Not found
    COURSE_NOT_FOUND = ("COURSE_NOT_FOUND", 404, ErrorCategory.NOT_FOUND, "Course not found")
    ASSIGNMENT_NOT_FOUND = ("ASSIGNMENT_NOT_FOUND", 404, ErrorCategory.NOT_FOUND, "Assignment not found")
    SUBMISSION_NOT_FOUND = ("SUBMISSION_NOT_FOUND", 404, ErrorCategory.NOT_FOUND, "Submission not found")
    ENROLLMENT_NOT_FOUND = ("ENROLLMENT_NOT_FOUND", 404, ErrorCategory.NOT_FOUND, "Enrollment not found")
    METADATA_NOT_FOUND = ("METADATA_NOT_FOUND", 404, ErrorCategory.NOT_FOUND, "Metadata not found")
    REPORT_NOT_FOUND = ("REPORT_NOT_FOUND", 404, ErrorCategory.NOT_FOUND, "Report not found")

    # Invariant and policy violations
    INVALID_STATUS_TRANSITION = (
        "INVALID_STATUS_TRANSITION", 409, ErrorCategory.INVARIANT, "Invalid status transition",
    )
    INVALID_REPORT_STATUS_TRANSITION = (
        "INVALID_REPORT_STATUS_TRANSITION", 400, ErrorCategory.INVARIANT, "Invalid status transition",
    )
    ASSIGNMENT_WEIGHT_EXCEEDED = (
        "ASSIGNMENT_WEIGHT_EXCEEDED", 409, ErrorCategory.INVARIANT,
        "Total assignment weights in course cannot exceed 100%",
    )
    COURSE_HAS_ACTIVE_ENROLLMENTS = (
        "COURSE_HAS_ACTIVE_ENROLLMENTS", 409, ErrorCategory.INVARIANT,
        "Course with active enrollments cannot be deleted",
    )
    COURSE_TITLE_DUPLICATE = (
        "COURSE_TITLE_DUPLICATE", 409, ErrorCategory.INVARIANT,
        "A course with this title already exists",
    )
    COURSE_NOT_PUBLISHED = (
        "COURSE_NOT_PUBLISHED", 400, ErrorCategory.INVARIANT, "Course is not published",
    )
    DUPLICATE_ENROLLMENT = (
        "DUPLICATE_ENROLLMENT", 409, ErrorCategory.INVARIANT,
        "User is already enrolled in this course",
    )
    ENROLLMENT_ALREADY_CANCELLED = (
        "ENROLLMENT_ALREADY_CANCELLED", 409, ErrorCategory.INVARIANT,
        "Enrollment is already cancelled",
    )
    ASSIGNMENT_CLOSED = ("ASSIGNMENT_CLOSED", 400, ErrorCategory.INVARIANT, "Assignment is closed")
    SUBMISSION_PAST_DUE_DATE = (
        "SUBMISSION_PAST_DUE_DATE", 400, ErrorCategory.INVARIANT, "Submission deadline has passed",
    )
    SUBMISSION_ALREADY_SUBMITTED = (
        "SUBMISSION_ALREADY_SUBMITTED", 409, ErrorCategory.INVARIANT,
        "Submission is awaiting grading",
    )
    SUBMISSION_ALREADY_GRADED = (
        "SUBMISSION_ALREADY_GRADED", 409, ErrorCategory.INVARIANT, "Submission is already graded",
    )
    RESUBMISSION_NOT_ALLOWED = (
        "RESUBMISSION_NOT_ALLOWED", 409, ErrorCategory.INVARIANT,
        "Resubmission is not allowed for this assignment",
    )
    METADATA_IN_USE = (
        "METADATA_IN_USE", 409, ErrorCategory.INVARIANT,
        "Metadata is currently in use and cannot be deactivated",
    )

    # Infrastructure
    INTERNAL_ERROR = ("INTERNAL_ERROR", 500, ErrorCategory.INFRASTRUCTURE, "Internal server error")

    def __init__(self, code: str, status: int, category: ErrorCategory, default_message: str):
        self.code = code
        self.status = status
        self.category = category
        self.default_message = default_message

    @classmethod
    def from_code(cls, code: str) -> Optional["ErrorCode"]:
        """Look up a member by its wire code."""
        for member in cls:
            if member.code == code:
                return member
        return None


@dataclass(frozen=True)
class Rejection:
    """A typed refusal: error code, user-facing message, field details."""
    code: ErrorCode
    message: str
    details: dict = field(default_factory=dict)

    @property
    def status(self) -> int:
        return self.code.status

    def to_dict(self) -> dict:
        data = {"code": self.code.code, "message": self.message}
        if self.details:
            data["details"] = dict(self.details)
        return data


def reject(code: ErrorCode, message: Optional[str] = None, **details: Any) -> Rejection:
    """Build a Rejection, falling back to the code's default message."""
    return Rejection(code=code, message=message or code.default_message, details=details)


@dataclass(frozen=True)
class Decision:
    """
    Result of a pure lifecycle rule.

    Attributes:
        value: Proposed next state of the entity (None when rejected)
        rejection: Why the request was refused (None when accepted)
        warnings: Non-fatal remarks the caller should log
    """
    value: Any = None
    rejection: Optional[Rejection] = None
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @classmethod
    def accept(cls, value: Any, warnings: tuple[str, ...] = ()) -> "Decision":
        return cls(value=value, warnings=warnings)

    @classmethod
    def refuse(cls, code: ErrorCode, message: Optional[str] = None, **details: Any) -> "Decision":
        return cls(rejection=reject(code, message, **details))

    @classmethod
    def from_rejection(cls, rejection: Rejection) -> "Decision":
        return cls(rejection=rejection)

    def __repr__(self) -> str:
        if self.ok:
            return f"Decision(ok, value={type(self.value).__name__})"
        return f"Decision(rejected, code={self.rejection.code.code})"


def _render(value: Any) -> Any:
    return value.to_dict() if hasattr(value, "to_dict") else value


@dataclass(frozen=True)
class Outcome:
    """
    Orchestrator response for one request.

    `to_response()` renders the contract shape: the entity under its
    resource key on success, `code` and `message` on failure.
    """
    status: int
    resource: Optional[str] = None
    value: Any = None
    rejection: Optional[Rejection] = None

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @property
    def code(self) -> Optional[str]:
        return self.rejection.code.code if self.rejection else None

    @classmethod
    def success(cls, resource: str, value: Any, status: int = 200) -> "Outcome":
        return cls(status=status, resource=resource, value=value)

    @classmethod
    def failure(cls, rejection: Rejection) -> "Outcome":
        return cls(status=rejection.status, rejection=rejection)

    def to_response(self) -> dict:
        if not self.ok:
            return {"status": self.status, **self.rejection.to_dict()}
        if isinstance(self.value, list):
            body = [_render(item) for item in self.value]
        else:
            body = _render(self.value)
        return {"status": self.status, self.resource: body}
