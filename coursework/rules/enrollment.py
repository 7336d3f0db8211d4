"""
Enrollment rules.

A (learner, course) pair owns at most one enrollment row. Cancelling
flips it to cancelled; enrolling again reactivates the same row.
"""

from dataclasses import replace
from datetime import datetime
from typing import Optional

from ..domain.models import Course, Enrollment, EnrollmentStatus
from ..domain.outcomes import Decision, ErrorCode
from .course import accepts_enrollments


def enroll(
    course: Course,
    existing: Optional[Enrollment],
    learner_id: str,
    now: datetime,
    enrollment_id: str,
) -> Decision:
    """
    Enroll a learner, reactivating a cancelled row when one exists.

    Only published courses accept enrollments; archiving a course closes it.
    """
    if not accepts_enrollments(course):
        return Decision.refuse(ErrorCode.COURSE_NOT_PUBLISHED, status=course.status.value)

    if existing is not None:
        if existing.is_active:
            return Decision.refuse(ErrorCode.DUPLICATE_ENROLLMENT)
        return Decision.accept(replace(
            existing,
            status=EnrollmentStatus.ACTIVE,
            enrolled_at=now,
            cancelled_at=None,
        ))

    return Decision.accept(Enrollment(
        id=enrollment_id,
        learner_id=learner_id,
        course_id=course.id,
        status=EnrollmentStatus.ACTIVE,
        enrolled_at=now,
    ))


def cancel_enrollment(enrollment: Enrollment, learner_id: str, now: datetime) -> Decision:
    """Cancel the learner's own active enrollment."""
    if enrollment.learner_id != learner_id:
        return Decision.refuse(ErrorCode.INSUFFICIENT_PERMISSIONS)
    if enrollment.status == EnrollmentStatus.CANCELLED:
        return Decision.refuse(ErrorCode.ENROLLMENT_ALREADY_CANCELLED)
    return Decision.accept(replace(enrollment, status=EnrollmentStatus.CANCELLED, cancelled_at=now))


def enrollment_delta(before: Optional[Enrollment], after: Enrollment) -> int:
    """Change to the course's active enrollment count caused by a write."""
    was_active = before is not None and before.is_active
    return int(after.is_active) - int(was_active)
