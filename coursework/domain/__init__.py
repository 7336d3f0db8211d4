"""Entities, status enums and result types."""

from .models import (
    Assignment,
    AssignmentStatus,
    AssignmentUpdate,
    Course,
    CourseStatus,
    CourseUpdate,
    Enrollment,
    EnrollmentStatus,
    Report,
    ReportStatus,
    Submission,
    SubmissionStatus,
)
from .outcomes import Decision, ErrorCode, Outcome, Rejection

__all__ = [
    "Assignment",
    "AssignmentStatus",
    "AssignmentUpdate",
    "Course",
    "CourseStatus",
    "CourseUpdate",
    "Enrollment",
    "EnrollmentStatus",
    "Report",
    "ReportStatus",
    "Submission",
    "SubmissionStatus",
    "Decision",
    "ErrorCode",
    "Outcome",
    "Rejection",
]
