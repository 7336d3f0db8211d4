"""
Assignment lifecycle rules.

States are draft, published and closed. Assignments are created as
drafts; publishing requires a future due date and a weight that fits
the course budget. Closed is terminal.
"""

from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable, Optional

from ..domain.models import Assignment, AssignmentStatus, AssignmentUpdate, touch
from ..domain.outcomes import Decision, ErrorCode, Rejection, reject
from .budget import check_assignment_budget, normalize_weight
from .validation import (
    WEIGHT_UNIT_PERCENT,
    first_rejection,
    parse_due_date,
    validate_description,
    validate_instructions,
    validate_title,
)

ALLOWED_ASSIGNMENT_TRANSITIONS: dict[AssignmentStatus, set[AssignmentStatus]] = {
    AssignmentStatus.DRAFT: {AssignmentStatus.PUBLISHED, AssignmentStatus.CLOSED},
    AssignmentStatus.PUBLISHED: {AssignmentStatus.CLOSED},
    AssignmentStatus.CLOSED: set(),
}

CLOSED_DUE_DATE_WARNING = "due date changed on a closed assignment"


def is_valid_assignment_transition(current: AssignmentStatus, target: AssignmentStatus) -> bool:
    return target in ALLOWED_ASSIGNMENT_TRANSITIONS.get(current, set())


def check_future_due_date(due_date: datetime, now: datetime) -> Optional[Rejection]:
    if due_date <= now:
        return reject(ErrorCode.ASSIGNMENT_PAST_DEADLINE, field="due_date")
    return None


def _validate_flag(value: Any, field: str) -> Optional[Rejection]:
    if not isinstance(value, bool):
        return reject(ErrorCode.INVALID_INPUT, f"{field} must be a boolean", field=field, reason="type")
    return None


def create_assignment(
    assignment_id: str,
    course_id: str,
    title: Any,
    due_date: Any,
    points_weight: Any,
    now: datetime,
    siblings: Iterable[Assignment] = (),
    weight_unit: str = WEIGHT_UNIT_PERCENT,
    description: Optional[str] = None,
    instructions: Optional[str] = None,
    allow_late: bool = False,
    allow_resubmission: bool = False,
    publish: bool = False,
) -> Decision:
    """
    Build a new assignment for a course.

    The assignment starts as a draft; with `publish=True` the publish
    guard runs immediately and the result is returned published.

    Args:
        siblings: Current assignments of the course (deleted ones are ignored)
        weight_unit: Unit `points_weight` is expressed in
    """
    siblings = list(siblings)

    rejection = first_rejection(
        validate_title(title),
        validate_description(description),
        validate_instructions(instructions),
        _validate_flag(allow_late, "allow_late"),
        _validate_flag(allow_resubmission, "allow_resubmission"),
    )
    if rejection:
        return Decision.from_rejection(rejection)

    due, rejection = parse_due_date(due_date)
    if rejection:
        return Decision.from_rejection(rejection)
    rejection = check_future_due_date(due, now)
    if rejection:
        return Decision.from_rejection(rejection)

    weight, rejection = normalize_weight(points_weight, weight_unit)
    if rejection:
        return Decision.from_rejection(rejection)

    budget = check_assignment_budget(siblings, weight)
    if not budget.ok:
        return budget

    assignment = Assignment(
        id=assignment_id,
        course_id=course_id,
        title=title.strip(),
        description=description,
        instructions=instructions,
        due_date=due,
        points_weight=weight,
        status=AssignmentStatus.DRAFT,
        allow_late=allow_late,
        allow_resubmission=allow_resubmission,
        created_at=now,
        updated_at=now,
    )

    if publish:
        return transition_assignment(assignment, AssignmentStatus.PUBLISHED, siblings, now)
    return Decision.accept(assignment)


def transition_assignment(
    assignment: Assignment,
    target: AssignmentStatus,
    siblings: Iterable[Assignment],
    now: datetime,
) -> Decision:
    """
    Compute the next state of `assignment` when moved to `target`.

    Closing an assignment does not touch existing submissions.
    """
    current = assignment.status
    if not is_valid_assignment_transition(current, target):
        return Decision.refuse(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f"Cannot change assignment status from {current.value} to {target.value}",
            current=current.value,
            target=target.value,
        )

    if target == AssignmentStatus.PUBLISHED:
        rejection = check_future_due_date(assignment.due_date, now)
        if rejection:
            return Decision.from_rejection(rejection)
        budget = check_assignment_budget(siblings, assignment.points_weight, exclude_id=assignment.id)
        if not budget.ok:
            return budget
        return Decision.accept(touch(
            assignment,
            now,
            status=AssignmentStatus.PUBLISHED,
            published_at=assignment.published_at or now,
        ))

    return Decision.accept(touch(assignment, now, status=AssignmentStatus.CLOSED, closed_at=now))


def apply_assignment_update(
    assignment: Assignment,
    update: AssignmentUpdate,
    siblings: Iterable[Assignment],
    now: datetime,
    weight_unit: str = WEIGHT_UNIT_PERCENT,
) -> Decision:
    """
    Apply the provided fields of `update` to `assignment`.

    The budget is re-checked only when the weight actually changes.
    Due dates must stay in the future while the assignment is open;
    editing the due date of a closed assignment is accepted with a
    warning.
    """
    changes = update.changes()
    warnings: list[str] = []

    checks = []
    if "title" in changes:
        checks.append(validate_title(changes["title"]))
    if "description" in changes:
        checks.append(validate_description(changes["description"]))
    if "instructions" in changes:
        checks.append(validate_instructions(changes["instructions"]))
    if "allow_late" in changes:
        checks.append(_validate_flag(changes["allow_late"], "allow_late"))
    if "allow_resubmission" in changes:
        checks.append(_validate_flag(changes["allow_resubmission"], "allow_resubmission"))
    rejection = first_rejection(*checks)
    if rejection:
        return Decision.from_rejection(rejection)

    if "title" in changes:
        changes["title"] = changes["title"].strip()

    if "due_date" in changes:
        due, rejection = parse_due_date(changes["due_date"])
        if rejection:
            return Decision.from_rejection(rejection)
        if assignment.status == AssignmentStatus.CLOSED:
            if due != assignment.due_date:
                warnings.append(CLOSED_DUE_DATE_WARNING)
        else:
            rejection = check_future_due_date(due, now)
            if rejection:
                return Decision.from_rejection(rejection)
        changes["due_date"] = due

    if "points_weight" in changes:
        weight, rejection = normalize_weight(changes["points_weight"], weight_unit)
        if rejection:
            return Decision.from_rejection(rejection)
        if weight != assignment.points_weight:
            budget = check_assignment_budget(siblings, weight, exclude_id=assignment.id)
            if not budget.ok:
                return budget
        changes["points_weight"] = weight

    if not changes:
        return Decision.accept(assignment)
    return Decision.accept(touch(assignment, now, **changes), warnings=tuple(warnings))


def soft_delete_assignment(assignment: Assignment, now: datetime) -> Decision:
    """Mark the assignment deleted; it leaves the course budget."""
    return Decision.accept(replace(assignment, deleted_at=now, updated_at=now))


def close_past_due_assignments(assignments: Iterable[Assignment], now: datetime) -> list[Assignment]:
    """
    Closed copies of the published assignments whose due date has passed.

    Drafts, closed and deleted assignments are left alone. Existing
    submissions are not touched.
    """
    return [
        touch(assignment, now, status=AssignmentStatus.CLOSED, closed_at=now)
        for assignment in assignments
        if assignment.status == AssignmentStatus.PUBLISHED
        and not assignment.is_deleted
        and assignment.is_past_due(now)
    ]
