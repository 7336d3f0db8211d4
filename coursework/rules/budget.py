"""
Per-course assignment weight budget.

Weights are whole percentages. Callers may speak either percent
(0-100) or fraction (0.0-1.0); `normalize_weight` converts at the
boundary so every comparison here is exact integer arithmetic.
"""

from typing import Any, Iterable, Optional

from ..domain.models import Assignment
from ..domain.outcomes import Decision, ErrorCode, Rejection, reject
from .validation import WEIGHT_UNIT_FRACTION, WEIGHT_UNIT_PERCENT, validate_weight

BUDGET_CEILING = 100

# tolerance for float input such as 0.3 * 100 == 30.000000000000004
_WHOLE_PERCENT_TOLERANCE = 1e-6


def normalize_weight(value: Any, unit: str = WEIGHT_UNIT_PERCENT) -> tuple[Optional[int], Optional[Rejection]]:
    """
    Convert a boundary weight into an integer percentage.

    Args:
        value: Weight as sent by the caller
        unit: "percent" or "fraction"

    Returns:
        (percent, None) on success, (None, Rejection) otherwise
    """
    rejection = validate_weight(value, unit)
    if rejection:
        return None, rejection

    percent = value * 100 if unit == WEIGHT_UNIT_FRACTION else value
    rounded = round(percent)
    if abs(percent - rounded) > _WHOLE_PERCENT_TOLERANCE:
        return None, reject(
            ErrorCode.INVALID_INPUT,
            "Weight must be a whole percentage",
            field="points_weight",
            reason="precision",
        )
    return int(rounded), None


def live_weights(assignments: Iterable[Assignment], exclude_id: Optional[str] = None) -> list[int]:
    """Weights of non-deleted assignments, leaving out `exclude_id`."""
    return [
        a.points_weight
        for a in assignments
        if not a.is_deleted and a.id != exclude_id
    ]


def check_budget(
    existing_weights: Iterable[int],
    candidate_weight: int,
    ceiling: int = BUDGET_CEILING,
) -> Decision:
    """
    Decide whether adding `candidate_weight` keeps the course within budget.

    The ceiling is inclusive: a total of exactly 100 is accepted.

    Args:
        existing_weights: Weights of the other live assignments in the course
        candidate_weight: Weight being created or the new value of an update
        ceiling: Budget ceiling in percent

    Returns:
        Decision whose value is the resulting total
    """
    total = sum(existing_weights) + candidate_weight
    if total > ceiling:
        return Decision.refuse(
            ErrorCode.ASSIGNMENT_WEIGHT_EXCEEDED,
            total=total,
            ceiling=ceiling,
        )
    return Decision.accept(total)


def check_assignment_budget(
    siblings: Iterable[Assignment],
    candidate_weight: int,
    exclude_id: Optional[str] = None,
) -> Decision:
    """Budget check over assignment rows instead of bare weights."""
    return check_budget(live_weights(siblings, exclude_id=exclude_id), candidate_weight)
