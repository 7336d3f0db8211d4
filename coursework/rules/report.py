"""
Report moderation rules.

Transitions:
- received -> investigating | resolved
- investigating -> resolved
- resolved -> received | investigating (reopen, clears the resolution)
"""

from datetime import datetime
from typing import Any, Optional

from ..domain.models import Report, ReportStatus, ReportTarget, touch
from ..domain.outcomes import Decision, ErrorCode, Rejection, reject
from .validation import first_rejection, validate_description, validate_title

ALLOWED_REPORT_TRANSITIONS: dict[ReportStatus, set[ReportStatus]] = {
    ReportStatus.RECEIVED: {ReportStatus.INVESTIGATING, ReportStatus.RESOLVED},
    ReportStatus.INVESTIGATING: {ReportStatus.RESOLVED},
    ReportStatus.RESOLVED: {ReportStatus.RECEIVED, ReportStatus.INVESTIGATING},
}


def is_valid_report_transition(current: ReportStatus, target: ReportStatus) -> bool:
    return target in ALLOWED_REPORT_TRANSITIONS.get(current, set())


def _validate_target(target_type: Any, target_id: Any) -> Optional[Rejection]:
    if not isinstance(target_type, str) or target_type not in {t.value for t in ReportTarget}:
        return reject(ErrorCode.INVALID_INPUT, "Unknown report target", field="target_type", reason="invalid_choice")
    if not isinstance(target_id, str) or not target_id.strip():
        return reject(ErrorCode.INVALID_INPUT, "Report target is required", field="target_id", reason="required")
    return None


def create_report(
    report_id: str,
    reporter_id: str,
    target_type: Any,
    target_id: Any,
    reason: Any,
    now: datetime,
    content: Optional[str] = None,
) -> Decision:
    """New reports start as received."""
    rejection = first_rejection(
        _validate_target(target_type, target_id),
        validate_title(reason, field="reason"),
        validate_description(content, field="content"),
    )
    if rejection:
        return Decision.from_rejection(rejection)

    return Decision.accept(Report(
        id=report_id,
        reporter_id=reporter_id,
        target_type=ReportTarget(target_type),
        target_id=target_id.strip(),
        reason=reason.strip(),
        content=content,
        created_at=now,
        updated_at=now,
    ))


def transition_report(report: Report, target: ReportStatus, operator_id: str, now: datetime) -> Decision:
    """
    Move a report to `target`.

    Resolving stamps resolved_at and resolved_by with the operator;
    reopening a resolved report clears both.
    """
    current = report.status
    if not is_valid_report_transition(current, target):
        return Decision.refuse(
            ErrorCode.INVALID_REPORT_STATUS_TRANSITION,
            f"Cannot change report status from {current.value} to {target.value}",
            current=current.value,
            target=target.value,
        )

    if target == ReportStatus.RESOLVED:
        return Decision.accept(touch(report, now, status=target, resolved_at=now, resolved_by=operator_id))
    return Decision.accept(touch(report, now, status=target, resolved_at=None, resolved_by=None))
