"""
Unit tests for submission and grading rules.
"""

import pytest
from dataclasses import replace
from datetime import timedelta

from coursework.domain.models import Assignment, AssignmentStatus, Submission, SubmissionStatus
from coursework.domain.outcomes import ErrorCode
from coursework.rules.submission import (
    can_resubmit,
    can_submit,
    course_total,
    grade,
    summarize_submissions,
    submit,
)

from conftest import LEARNER, NOW


class TestCanSubmit:
    """Tests for can_submit and can_resubmit."""

    def test_first_submission_allowed(self):
        assert can_submit(None, AssignmentStatus.PUBLISHED)

    def test_closed_blocks_first_submission_even_with_allow_late(self):
        assert not can_submit(None, AssignmentStatus.CLOSED, allow_late=True)

    def test_mid_resubmission_passes_closed(self, resubmission_requested: Submission):
        assert can_submit(resubmission_requested, AssignmentStatus.CLOSED)

    @pytest.mark.parametrize("status", list(AssignmentStatus))
    def test_graded_never_submittable(self, sample_submission: Submission, status):
        graded = replace(sample_submission, status=SubmissionStatus.GRADED)
        assert not can_submit(graded, status)

    def test_pending_submission_not_submittable(self, sample_submission: Submission):
        assert not can_submit(sample_submission, AssignmentStatus.PUBLISHED)

    @pytest.mark.parametrize("status", list(SubmissionStatus))
    def test_can_resubmit_false_when_disallowed(self, sample_submission: Submission, status):
        assert not can_resubmit(replace(sample_submission, status=status), allow_resubmission=False)

    def test_can_resubmit_only_when_requested(self, sample_submission: Submission, resubmission_requested: Submission):
        assert can_resubmit(resubmission_requested, allow_resubmission=True)
        assert not can_resubmit(sample_submission, allow_resubmission=True)
        assert not can_resubmit(None, allow_resubmission=True)


class TestSubmit:
    """Tests for submit."""

    def test_first_submission(self, sample_assignment: Assignment):
        """Scenario: content-only submission to a published assignment."""
        decision = submit(sample_assignment, None, LEARNER, NOW, "s-1", content="answer")
        assert decision.ok
        submission = decision.value
        assert submission.status == SubmissionStatus.SUBMITTED
        assert submission.content == "answer"
        assert submission.link is None
        assert submission.is_late is False
        assert submission.submitted_at == NOW

    def test_content_or_link_required(self, sample_assignment: Assignment):
        decision = submit(sample_assignment, None, LEARNER, NOW, "s-1")
        assert decision.rejection.code == ErrorCode.INVALID_INPUT

    def test_draft_assignment_not_available(self, draft_assignment: Assignment):
        decision = submit(draft_assignment, None, LEARNER, NOW, "s-1", content="answer")
        assert decision.rejection.code == ErrorCode.ASSIGNMENT_CLOSED
        assert decision.rejection.message == "Assignment is not available"

    def test_closed_assignment(self, sample_assignment: Assignment):
        closed = replace(sample_assignment, status=AssignmentStatus.CLOSED)
        decision = submit(closed, None, LEARNER, NOW, "s-1", content="answer")
        assert decision.rejection.code == ErrorCode.ASSIGNMENT_CLOSED

    def test_late_rejected_without_allow_late(self, sample_assignment: Assignment):
        after_due = sample_assignment.due_date + timedelta(minutes=5)
        decision = submit(sample_assignment, None, LEARNER, after_due, "s-1", content="answer")
        assert decision.rejection.code == ErrorCode.SUBMISSION_PAST_DUE_DATE

    def test_late_accepted_and_flagged_with_allow_late(self, sample_assignment: Assignment):
        lenient = replace(sample_assignment, allow_late=True)
        after_due = sample_assignment.due_date + timedelta(minutes=5)
        decision = submit(lenient, None, LEARNER, after_due, "s-1", content="answer")
        assert decision.ok
        assert decision.value.is_late is True

    def test_pending_submission_rejected(self, sample_assignment: Assignment, sample_submission: Submission):
        decision = submit(sample_assignment, sample_submission, LEARNER, NOW, "s-2", content="again")
        assert decision.rejection.code == ErrorCode.SUBMISSION_ALREADY_SUBMITTED

    def test_graded_is_terminal(self, sample_assignment: Assignment, sample_submission: Submission):
        graded = replace(sample_submission, status=SubmissionStatus.GRADED, score=90.0)
        decision = submit(sample_assignment, graded, LEARNER, NOW, "s-2", content="again")
        assert decision.rejection.code == ErrorCode.SUBMISSION_ALREADY_GRADED

    def test_resubmission_rewrites_same_row(self, sample_assignment: Assignment, resubmission_requested: Submission):
        decision = submit(
            sample_assignment, resubmission_requested, LEARNER, NOW, "ignored",
            link="https://github.com/learner/fix",
        )
        assert decision.ok
        updated = decision.value
        assert updated.id == resubmission_requested.id
        assert updated.status == SubmissionStatus.SUBMITTED
        assert updated.content is None
        assert updated.link == "https://github.com/learner/fix"
        assert updated.graded_at is None
        assert updated.submitted_at == NOW
        assert updated.score == resubmission_requested.score

    def test_resubmission_not_allowed(self, sample_assignment: Assignment, resubmission_requested: Submission):
        strict = replace(sample_assignment, allow_resubmission=False)
        decision = submit(strict, resubmission_requested, LEARNER, NOW, "s-2", content="again")
        assert decision.rejection.code == ErrorCode.RESUBMISSION_NOT_ALLOWED

    def test_resubmission_allowed_after_close(self, sample_assignment: Assignment, resubmission_requested: Submission):
        closed = replace(sample_assignment, status=AssignmentStatus.CLOSED)
        later = sample_assignment.due_date + timedelta(days=1)
        decision = submit(closed, resubmission_requested, LEARNER, later, "s-2", content="fixed")
        assert decision.ok
        assert decision.value.is_late is True


class TestGrade:
    """Tests for grade."""

    def test_grade_with_resubmission_required(self, sample_submission: Submission):
        """Scenario: score 85, feedback Good, status resubmission_required."""
        decision = grade(sample_submission, 85, "Good", NOW, status="resubmission_required")
        assert decision.ok
        graded = decision.value
        assert graded.status == SubmissionStatus.RESUBMISSION_REQUIRED
        assert graded.score == 85.0
        assert graded.feedback == "Good"
        assert graded.graded_at == NOW

    def test_default_status_is_graded(self, sample_submission: Submission):
        assert grade(sample_submission, 70, "Fine", NOW).value.status == SubmissionStatus.GRADED

    def test_regrade_overwrites(self, sample_submission: Submission):
        first = grade(sample_submission, 60, "Needs work", NOW).value
        later = NOW + timedelta(hours=1)
        second = grade(first, 92, "Much better", later).value
        assert second.score == 92.0
        assert second.feedback == "Much better"
        assert second.graded_at == later

    @pytest.mark.parametrize("score", [-1, 101, "A", None])
    def test_invalid_score(self, sample_submission: Submission, score):
        assert grade(sample_submission, score, "x", NOW).rejection.code == ErrorCode.INVALID_SCORE

    def test_feedback_required(self, sample_submission: Submission):
        assert grade(sample_submission, 80, "", NOW).rejection.code == ErrorCode.INVALID_INPUT

    def test_status_must_be_grading_outcome(self, sample_submission: Submission):
        decision = grade(sample_submission, 80, "ok", NOW, status="submitted")
        assert decision.rejection.details == {"field": "status", "reason": "invalid_choice"}


class TestStatistics:
    def test_summarize_submissions(self, sample_submission: Submission):
        graded = replace(sample_submission, status=SubmissionStatus.GRADED, graded_at=NOW)
        subs = [
            sample_submission,
            replace(graded, id="s-2", learner_id="l-2", score=80.0),
            replace(graded, id="s-3", learner_id="l-3", score=90.0, is_late=True),
            replace(graded, id="s-4", learner_id="l-4",
                    status=SubmissionStatus.RESUBMISSION_REQUIRED, score=40.0),
        ]
        stats = summarize_submissions("assignment-1", subs)
        assert stats.to_dict() == {
            "assignment_id": "assignment-1",
            "total": 4,
            "submitted": 1,
            "graded": 2,
            "late": 1,
            "resubmission_required": 1,
            "average_score": 70.0,
        }

    def test_summarize_empty(self):
        stats = summarize_submissions("assignment-1", [])
        assert stats.total == 0
        assert stats.average_score is None

    def test_resubmitted_score_not_averaged(self, sample_submission: Submission):
        """A row back in submitted keeps its old score but is not graded anymore."""
        current = replace(sample_submission, status=SubmissionStatus.GRADED, score=90.0, graded_at=NOW)
        resubmitted = replace(sample_submission, id="s-2", learner_id="l-2", score=20.0, feedback="Redo")

        stats = summarize_submissions("assignment-1", [current, resubmitted])

        assert stats.submitted == 1
        assert stats.average_score == 90.0

    def test_course_total_weights_graded_work(
        self,
        sample_assignment: Assignment,
        draft_assignment: Assignment,
        sample_submission: Submission,
    ):
        graded = replace(sample_submission, status=SubmissionStatus.GRADED, score=75.0)
        pending = replace(sample_submission, id="s-2", assignment_id=draft_assignment.id, score=None)
        # 75% of a 40-weight assignment
        assert course_total([sample_assignment, draft_assignment], [graded, pending]) == 30.0

    def test_course_total_ignores_deleted_assignments(self, sample_assignment: Assignment, sample_submission: Submission):
        graded = replace(sample_submission, status=SubmissionStatus.GRADED, score=100.0)
        deleted = replace(sample_assignment, deleted_at=NOW)
        assert course_total([deleted], [graded]) == 0.0
