"""
Submission and grading lifecycle rules.

Per (assignment, learner) pair:

    absent --submit--> submitted --grade--> graded
                                  \\-grade--> resubmission_required --submit--> submitted

Graded is terminal for the learner. A resubmission rewrites the single
existing row; it never creates a second one.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from ..domain.models import (
    Assignment,
    AssignmentStatus,
    Submission,
    SubmissionStatus,
    touch,
)
from ..domain.outcomes import Decision, ErrorCode
from .validation import validate_feedback, validate_score, validate_submission_content

GRADING_STATUSES = (SubmissionStatus.GRADED, SubmissionStatus.RESUBMISSION_REQUIRED)


def can_submit(
    submission: Optional[Submission],
    assignment_status: AssignmentStatus,
    allow_late: bool = False,
) -> bool:
    """
    Whether the learner may submit right now.

    True when nothing has been submitted yet or a resubmission was
    requested. A closed assignment blocks everything except a requested
    resubmission. `allow_late` does not reopen a closed assignment.
    """
    awaiting_resubmission = (
        submission is not None and submission.status == SubmissionStatus.RESUBMISSION_REQUIRED
    )
    if assignment_status == AssignmentStatus.CLOSED and not awaiting_resubmission:
        return False
    return submission is None or awaiting_resubmission


def can_resubmit(submission: Optional[Submission], allow_resubmission: bool) -> bool:
    """Only a submission sent back by the grader can be resubmitted, and only if the assignment allows it."""
    if not allow_resubmission or submission is None:
        return False
    return submission.status == SubmissionStatus.RESUBMISSION_REQUIRED


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def submit(
    assignment: Assignment,
    existing: Optional[Submission],
    learner_id: str,
    now: datetime,
    submission_id: str,
    content: Optional[str] = None,
    link: Optional[str] = None,
) -> Decision:
    """
    Create the learner's submission or rewrite it on resubmission.

    Args:
        assignment: Assignment being submitted to
        existing: The learner's current submission row, if any
        learner_id: Submitting learner
        now: Current time
        submission_id: Identity to use when a new row is created
        content: Text answer
        link: URL answer

    Returns:
        Decision carrying the Submission to persist
    """
    rejection = validate_submission_content(content, link)
    if rejection:
        return Decision.from_rejection(rejection)

    is_late = assignment.is_past_due(now)

    if existing is None:
        if assignment.status == AssignmentStatus.CLOSED:
            return Decision.refuse(ErrorCode.ASSIGNMENT_CLOSED)
        if assignment.status != AssignmentStatus.PUBLISHED:
            return Decision.refuse(ErrorCode.ASSIGNMENT_CLOSED, "Assignment is not available")
        if is_late and not assignment.allow_late:
            return Decision.refuse(ErrorCode.SUBMISSION_PAST_DUE_DATE)
        return Decision.accept(Submission(
            id=submission_id,
            assignment_id=assignment.id,
            course_id=assignment.course_id,
            learner_id=learner_id,
            content=_clean(content),
            link=_clean(link),
            status=SubmissionStatus.SUBMITTED,
            is_late=is_late,
            submitted_at=now,
            updated_at=now,
        ))

    if existing.status == SubmissionStatus.GRADED:
        return Decision.refuse(ErrorCode.SUBMISSION_ALREADY_GRADED)
    if existing.status == SubmissionStatus.SUBMITTED:
        return Decision.refuse(ErrorCode.SUBMISSION_ALREADY_SUBMITTED)
    if not can_resubmit(existing, assignment.allow_resubmission):
        return Decision.refuse(ErrorCode.RESUBMISSION_NOT_ALLOWED)

    return Decision.accept(touch(
        existing,
        now,
        content=_clean(content),
        link=_clean(link),
        status=SubmissionStatus.SUBMITTED,
        is_late=is_late,
        submitted_at=now,
        graded_at=None,
    ))


def parse_grading_status(status: Any) -> Optional[SubmissionStatus]:
    """Map request input to a grading outcome; None means graded."""
    if status is None:
        return SubmissionStatus.GRADED
    try:
        parsed = SubmissionStatus(status)
    except ValueError:
        return None
    return parsed if parsed in GRADING_STATUSES else None


def grade(
    submission: Submission,
    score: Any,
    feedback: Any,
    now: datetime,
    status: Any = None,
) -> Decision:
    """
    Record a grade, overwriting any previous one.

    Args:
        status: "graded" (default) or "resubmission_required"
    """
    rejection = validate_score(score) or validate_feedback(feedback)
    if rejection:
        return Decision.from_rejection(rejection)

    outcome = parse_grading_status(status)
    if outcome is None:
        return Decision.refuse(
            ErrorCode.INVALID_INPUT,
            "Status must be graded or resubmission_required",
            field="status",
            reason="invalid_choice",
        )

    return Decision.accept(touch(
        submission,
        now,
        score=float(score),
        feedback=feedback.strip(),
        status=outcome,
        graded_at=now,
    ))


@dataclass
class SubmissionStats:
    """Submission counters for one assignment."""
    assignment_id: str
    total: int = 0
    submitted: int = 0
    graded: int = 0
    late: int = 0
    resubmission_required: int = 0
    average_score: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "assignment_id": self.assignment_id,
            "total": self.total,
            "submitted": self.submitted,
            "graded": self.graded,
            "late": self.late,
            "resubmission_required": self.resubmission_required,
            "average_score": self.average_score,
        }


def summarize_submissions(assignment_id: str, submissions: Iterable[Submission]) -> SubmissionStats:
    """
    Count submissions by status and average the current grades.

    A resubmitted row keeps its previous score until it is graded again;
    only rows with `graded_at` set contribute to the average.
    """
    stats = SubmissionStats(assignment_id=assignment_id)
    scores = []
    for sub in submissions:
        stats.total += 1
        if sub.status == SubmissionStatus.SUBMITTED:
            stats.submitted += 1
        elif sub.status == SubmissionStatus.GRADED:
            stats.graded += 1
        elif sub.status == SubmissionStatus.RESUBMISSION_REQUIRED:
            stats.resubmission_required += 1
        if sub.is_late:
            stats.late += 1
        if sub.graded_at is not None and sub.score is not None:
            scores.append(sub.score)
    if scores:
        stats.average_score = sum(scores) / len(scores)
    return stats


def course_total(assignments: Iterable[Assignment], submissions: Iterable[Submission]) -> float:
    """
    Weighted course score in percent for one learner.

    Only graded submissions of live assignments count; each contributes
    score * weight / 100.
    """
    weights = {a.id: a.points_weight for a in assignments if not a.is_deleted}
    total = 0.0
    for sub in submissions:
        if sub.is_graded and sub.score is not None and sub.assignment_id in weights:
            total += sub.score * weights[sub.assignment_id] / 100
    return round(total, 2)

