"""Pure lifecycle rules: validation, weight budget and state machines."""

from .assignment import (
    apply_assignment_update,
    close_past_due_assignments,
    create_assignment,
    transition_assignment,
)
from .budget import check_budget, normalize_weight
from .course import apply_course_update, create_course, transition_course
from .enrollment import cancel_enrollment, enroll
from .report import create_report, transition_report
from .submission import can_resubmit, can_submit, grade, submit

__all__ = [
    "apply_assignment_update",
    "close_past_due_assignments",
    "create_assignment",
    "transition_assignment",
    "check_budget",
    "normalize_weight",
    "apply_course_update",
    "create_course",
    "transition_course",
    "cancel_enrollment",
    "enroll",
    "create_report",
    "transition_report",
    "can_resubmit",
    "can_submit",
    "grade",
    "submit",
]
