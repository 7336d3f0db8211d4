"""
Unit tests for moderation report rules.
"""

import pytest
from dataclasses import replace
from datetime import timedelta

from coursework.domain.models import Report, ReportStatus, ReportTarget
from coursework.domain.outcomes import ErrorCode
from coursework.rules.report import create_report, is_valid_report_transition, transition_report

from conftest import LEARNER, NOW

OPERATOR = "operator-1"
LATER = NOW + timedelta(hours=3)

VALID = {
    (ReportStatus.RECEIVED, ReportStatus.INVESTIGATING),
    (ReportStatus.RECEIVED, ReportStatus.RESOLVED),
    (ReportStatus.INVESTIGATING, ReportStatus.RESOLVED),
    (ReportStatus.RESOLVED, ReportStatus.RECEIVED),
    (ReportStatus.RESOLVED, ReportStatus.INVESTIGATING),
}
ALL_PAIRS = [(current, target) for current in ReportStatus for target in ReportStatus]


@pytest.fixture
def report() -> Report:
    return Report(
        id="report-1",
        reporter_id=LEARNER,
        target_type=ReportTarget.COURSE,
        target_id="course-1",
        reason="Spam",
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.fixture
def resolved_report(report: Report) -> Report:
    return replace(report, status=ReportStatus.RESOLVED, resolved_at=NOW, resolved_by=OPERATOR)


class TestCreateReport:
    def test_starts_received(self):
        decision = create_report("report-1", LEARNER, "assignment", " a-1 ", " Plagiarism ", NOW, content="Copied")
        assert decision.ok
        assert decision.value.status == ReportStatus.RECEIVED
        assert decision.value.target_type == ReportTarget.ASSIGNMENT
        assert decision.value.target_id == "a-1"
        assert decision.value.reason == "Plagiarism"
        assert decision.value.resolved_at is None

    @pytest.mark.parametrize("target_type", ["forum", ["course"], None])
    def test_unknown_target_type(self, target_type):
        decision = create_report("report-1", LEARNER, target_type, "f-1", "Spam", NOW)
        assert decision.rejection.details == {"field": "target_type", "reason": "invalid_choice"}

    @pytest.mark.parametrize("target_id", [None, "", "  ", 7])
    def test_target_id_required(self, target_id):
        decision = create_report("report-1", LEARNER, "user", target_id, "Spam", NOW)
        assert decision.rejection.details == {"field": "target_id", "reason": "required"}

    def test_reason_required(self):
        decision = create_report("report-1", LEARNER, "user", "u-1", "   ", NOW)
        assert decision.rejection.code == ErrorCode.INVALID_INPUT
        assert decision.rejection.details["field"] == "reason"

    def test_content_length_limit(self):
        decision = create_report("report-1", LEARNER, "user", "u-1", "Spam", NOW, content="c" * 2001)
        assert decision.rejection.details["field"] == "content"


class TestTransitionReport:
    @pytest.mark.parametrize("current,target", ALL_PAIRS)
    def test_transition_table(self, report: Report, current, target):
        assert is_valid_report_transition(current, target) == ((current, target) in VALID)

        decision = transition_report(replace(report, status=current), target, OPERATOR, LATER)
        if (current, target) in VALID:
            assert decision.ok
            assert decision.value.status == target
            assert decision.value.updated_at == LATER
        else:
            assert decision.rejection.code == ErrorCode.INVALID_REPORT_STATUS_TRANSITION
            assert decision.rejection.details == {"current": current.value, "target": target.value}

    def test_resolve_stamps_operator(self, report: Report):
        decision = transition_report(report, ReportStatus.RESOLVED, OPERATOR, LATER)
        assert decision.value.resolved_at == LATER
        assert decision.value.resolved_by == OPERATOR
        assert decision.value.is_resolved

    @pytest.mark.parametrize("target", [ReportStatus.RECEIVED, ReportStatus.INVESTIGATING])
    def test_reopen_clears_resolution(self, resolved_report: Report, target):
        decision = transition_report(resolved_report, target, OPERATOR, LATER)
        assert decision.value.status == target
        assert decision.value.resolved_at is None
        assert decision.value.resolved_by is None

    def test_investigating_cannot_return_to_received(self, report: Report):
        investigating = replace(report, status=ReportStatus.INVESTIGATING)
        decision = transition_report(investigating, ReportStatus.RECEIVED, OPERATOR, LATER)
        assert decision.rejection.code == ErrorCode.INVALID_REPORT_STATUS_TRANSITION
        assert decision.rejection.code.status == 400
