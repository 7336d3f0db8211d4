"""
Structural input checks.

Every validator returns None when the input is acceptable and a
Rejection otherwise. Nothing here raises for bad input or touches I/O.
"""

import math
from datetime import datetime, timezone
from numbers import Real
from typing import Any, Optional
from urllib.parse import urlparse

from ..domain.models import parse_timestamp
from ..domain.outcomes import ErrorCode, Rejection, reject

TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 2000
INSTRUCTIONS_MAX_LENGTH = 5000
FEEDBACK_MAX_LENGTH = 1000
SCORE_MIN = 0
SCORE_MAX = 100

WEIGHT_UNIT_PERCENT = "percent"
WEIGHT_UNIT_FRACTION = "fraction"
WEIGHT_UNIT_MAX = {
    WEIGHT_UNIT_PERCENT: 100,
    WEIGHT_UNIT_FRACTION: 1,
}


def _is_number(value: Any) -> bool:
    # bool is an int subclass; True must not pass as a score of 1
    return isinstance(value, Real) and not isinstance(value, bool)


def validate_title(title: Any, field: str = "title") -> Optional[Rejection]:
    """Title must be a non-blank string of at most 255 characters."""
    label = field.capitalize()
    if not isinstance(title, str) or not title.strip():
        return reject(ErrorCode.INVALID_INPUT, f"{label} is required", field=field, reason="required")
    if len(title) > TITLE_MAX_LENGTH:
        return reject(
            ErrorCode.INVALID_INPUT,
            f"{label} must be {TITLE_MAX_LENGTH} characters or less",
            field=field,
            reason="too_long",
        )
    return None


def validate_description(description: Any, field: str = "description") -> Optional[Rejection]:
    if description is None:
        return None
    if not isinstance(description, str):
        return reject(ErrorCode.INVALID_INPUT, f"{field.capitalize()} must be text", field=field, reason="type")
    if len(description) > DESCRIPTION_MAX_LENGTH:
        return reject(
            ErrorCode.INVALID_INPUT,
            f"{field.capitalize()} must be {DESCRIPTION_MAX_LENGTH} characters or less",
            field=field,
            reason="too_long",
        )
    return None


def validate_instructions(instructions: Any) -> Optional[Rejection]:
    """Assignment instructions are optional text of at most 5000 characters."""
    if instructions is None:
        return None
    if not isinstance(instructions, str):
        return reject(ErrorCode.INVALID_INPUT, "Instructions must be text", field="instructions", reason="type")
    if len(instructions) > INSTRUCTIONS_MAX_LENGTH:
        return reject(
            ErrorCode.INVALID_INPUT,
            f"Instructions must be {INSTRUCTIONS_MAX_LENGTH} characters or less",
            field="instructions",
            reason="too_long",
        )
    return None


def is_reference_id(value: Any) -> bool:
    """True for a positive integer row id."""
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_reference_id(value: Any, field: str) -> Optional[Rejection]:
    """Category and difficulty references are None or a positive integer id."""
    if value is None or is_reference_id(value):
        return None
    return reject(ErrorCode.INVALID_INPUT, f"{field} must be an integer id", field=field, reason="type")


def validate_score(score: Any) -> Optional[Rejection]:
    """Score must be a finite number within [0, 100]."""
    if not _is_number(score) or math.isnan(score) or math.isinf(score):
        return reject(ErrorCode.INVALID_SCORE, field="score", reason="not_a_number")
    if not SCORE_MIN <= score <= SCORE_MAX:
        return reject(ErrorCode.INVALID_SCORE, field="score", reason="out_of_range")
    return None


def validate_feedback(feedback: Any) -> Optional[Rejection]:
    """Feedback is required when grading and holds 1 to 1000 characters."""
    if not isinstance(feedback, str) or not feedback.strip():
        return reject(ErrorCode.INVALID_INPUT, "Feedback is required", field="feedback", reason="required")
    if len(feedback) > FEEDBACK_MAX_LENGTH:
        return reject(
            ErrorCode.INVALID_INPUT,
            f"Feedback must be {FEEDBACK_MAX_LENGTH} characters or less",
            field="feedback",
            reason="too_long",
        )
    return None


def is_valid_url(link: Any) -> bool:
    """True for an absolute http(s) URL with a host."""
    if not isinstance(link, str) or not link.strip():
        return False
    parsed = urlparse(link.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_submission_content(content: Any, link: Any) -> Optional[Rejection]:
    """
    A submission needs non-empty content, a valid link, or both.

    A link that is present but malformed is rejected even when content
    is also present.
    """
    has_content = isinstance(content, str) and bool(content.strip())
    has_link = link is not None and link != ""

    if has_link and not is_valid_url(link):
        return reject(ErrorCode.INVALID_INPUT, "Link must be a valid URL", field="link", reason="invalid_url")
    if not has_content and not has_link:
        return reject(
            ErrorCode.INVALID_INPUT,
            "Either content or link is required",
            field="content",
            reason="required",
        )
    return None


def validate_weight(weight: Any, unit: str = WEIGHT_UNIT_PERCENT) -> Optional[Rejection]:
    """Weight must be a finite, non-negative number no larger than the unit maximum."""
    if unit not in WEIGHT_UNIT_MAX:
        raise ValueError(f"Unknown weight unit: {unit}")
    if not _is_number(weight) or math.isnan(weight) or math.isinf(weight):
        return reject(ErrorCode.INVALID_INPUT, "Weight must be a number", field="points_weight", reason="type")
    unit_max = WEIGHT_UNIT_MAX[unit]
    if weight < 0 or weight > unit_max:
        return reject(
            ErrorCode.INVALID_INPUT,
            f"Weight must be between 0 and {unit_max}",
            field="points_weight",
            reason="out_of_range",
        )
    return None


def parse_due_date(value: Any) -> tuple[Optional[datetime], Optional[Rejection]]:
    """
    Normalize a due date to an aware UTC datetime.

    Returns:
        (datetime, None) on success, (None, Rejection) otherwise
    """
    invalid = reject(ErrorCode.INVALID_INPUT, "Invalid date format", field="due_date", reason="format")
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = parse_timestamp(value.strip())
        except ValueError:
            return None, invalid
    else:
        return None, invalid

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc), None


def first_rejection(*results: Optional[Rejection]) -> Optional[Rejection]:
    """Return the first non-None rejection."""
    for result in results:
        if result is not None:
            return result
    return None
