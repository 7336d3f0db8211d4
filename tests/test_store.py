"""
Unit tests for the SQLite store.
"""

import pytest
import sqlite3
from dataclasses import replace
from datetime import timedelta
from pathlib import Path

from coursework.domain.models import (
    Assignment,
    Course,
    Enrollment,
    EnrollmentStatus,
    GradeEvent,
    Metadata,
    MetadataKind,
    Report,
    ReportStatus,
    ReportTarget,
    Submission,
    SubmissionStatus,
)
from coursework.storage.store import LmsStore, StoreError

from conftest import INSTRUCTOR, LEARNER, NOW, OTHER_LEARNER


class TestLmsStore:
    """Tests for schema setup and transactions."""

    def test_initialize_creates_database(self, temp_db_path: Path):
        LmsStore(temp_db_path)
        assert temp_db_path.exists()

    def test_schema_version_recorded(self, store: LmsStore):
        with sqlite3.connect(store.database_path) as conn:
            row = conn.execute("SELECT value FROM _metadata WHERE key = 'schema_version'").fetchone()
        assert row[0] == str(LmsStore.SCHEMA_VERSION)

    def test_reopening_existing_database(self, store: LmsStore, sample_course: Course):
        with store.transaction() as session:
            session.save_course(sample_course)
        reopened = LmsStore(store.database_path)
        with reopened.transaction() as session:
            assert session.get_course(sample_course.id) == sample_course

    def test_exception_rolls_back(self, store: LmsStore, sample_course: Course):
        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.save_course(sample_course)
                raise RuntimeError("abort")
        with store.transaction() as session:
            assert session.get_course(sample_course.id) is None

    def test_sqlite_failure_becomes_store_error(self, store: LmsStore):
        with pytest.raises(StoreError):
            with store.transaction() as session:
                session._conn.execute("SELECT * FROM no_such_table")

    def test_repr(self, store: LmsStore):
        assert repr(store) == f"LmsStore(database_path='{store.database_path}')"


class TestCourses:
    """Tests for course rows."""

    def test_get_missing_returns_none(self, store: LmsStore):
        with store.transaction() as session:
            assert session.get_course("missing") is None

    def test_soft_deleted_course_hidden(self, store: LmsStore, sample_course: Course):
        with store.transaction() as session:
            session.save_course(replace(sample_course, deleted_at=NOW))
        with store.transaction() as session:
            assert session.get_course(sample_course.id) is None
            row = session._conn.execute("SELECT deleted_at FROM courses WHERE id = ?", (sample_course.id,)).fetchone()
            assert row["deleted_at"] is not None

    def test_owner_titles_exclude_deleted_and_self(self, store: LmsStore, sample_course: Course):
        other = replace(sample_course, id="course-2", title="Databases")
        gone = replace(sample_course, id="course-3", title="Old", deleted_at=NOW)
        with store.transaction() as session:
            for course in (sample_course, other, gone):
                session.save_course(course)
        with store.transaction() as session:
            titles = session.list_owner_course_titles(INSTRUCTOR, exclude_id=sample_course.id)
        assert titles == ["Databases"]

    def test_enrollment_count_is_derived(self, store: LmsStore, published_course: Course, sample_enrollment: Enrollment):
        with store.transaction() as session:
            session.save_course(published_course)
            session.save_enrollment(sample_enrollment)
            session.save_enrollment(replace(
                sample_enrollment, id="enrollment-2", learner_id=OTHER_LEARNER, status=EnrollmentStatus.CANCELLED,
            ))
        with store.transaction() as session:
            assert session.get_course(published_course.id).enrollment_count == 1


class TestAssignments:
    def test_list_excludes_deleted(
        self,
        store: LmsStore,
        published_course: Course,
        sample_assignment: Assignment,
        draft_assignment: Assignment,
    ):
        with store.transaction() as session:
            session.save_course(published_course)
            session.save_assignment(sample_assignment)
            session.save_assignment(replace(draft_assignment, deleted_at=NOW))
        with store.transaction() as session:
            assert session.list_assignments(published_course.id) == [sample_assignment]
            assert session.get_assignment(draft_assignment.id) is None

    def test_list_published_across_courses(
        self,
        store: LmsStore,
        published_course: Course,
        sample_assignment: Assignment,
        draft_assignment: Assignment,
    ):
        with store.transaction() as session:
            session.save_course(published_course)
            session.save_assignment(sample_assignment)
            session.save_assignment(draft_assignment)
            session.save_assignment(replace(sample_assignment, id="assignment-3", deleted_at=NOW))
        with store.transaction() as session:
            assert session.list_published_assignments() == [sample_assignment]


class TestSubmissions:
    """Tests for submission upserts and the grade log."""

    @pytest.fixture
    def seeded(self, store: LmsStore, published_course: Course, sample_assignment: Assignment) -> LmsStore:
        with store.transaction() as session:
            session.save_course(published_course)
            session.save_assignment(sample_assignment)
        return store

    def test_one_row_per_pair(self, seeded: LmsStore, sample_submission: Submission):
        """A second writer with a fresh id updates the existing row."""
        with seeded.transaction() as session:
            session.save_submission(sample_submission)
            stored = session.save_submission(replace(sample_submission, id="racing-id", content="second"))
            assert stored.id == sample_submission.id
            assert stored.content == "second"
            assert len(session.list_submissions(sample_submission.assignment_id)) == 1

    def test_grade_events_append(self, seeded: LmsStore, sample_submission: Submission):
        with seeded.transaction() as session:
            session.save_submission(sample_submission)
            for i, score in enumerate((60.0, 85.0)):
                session.append_grade_event(GradeEvent(
                    id=f"event-{i}",
                    submission_id=sample_submission.id,
                    grader_id=INSTRUCTOR,
                    score=score,
                    feedback="f",
                    status=SubmissionStatus.GRADED,
                    graded_at=NOW + timedelta(minutes=i),
                ))
        with seeded.transaction() as session:
            events = session.list_grade_events(sample_submission.id)
        assert [e.score for e in events] == [60.0, 85.0]

    def test_list_learner_submissions(self, seeded: LmsStore, sample_submission: Submission):
        with seeded.transaction() as session:
            session.save_submission(sample_submission)
            assert session.list_learner_submissions(sample_submission.course_id, LEARNER) == [sample_submission]
            assert session.list_learner_submissions(sample_submission.course_id, OTHER_LEARNER) == []


class TestEnrollments:
    def test_one_row_per_pair(self, store: LmsStore, published_course: Course, sample_enrollment: Enrollment):
        with store.transaction() as session:
            session.save_course(published_course)
            session.save_enrollment(sample_enrollment)
            stored = session.save_enrollment(replace(sample_enrollment, id="other-id", status=EnrollmentStatus.CANCELLED))
            assert stored.id == sample_enrollment.id
            assert stored.status == EnrollmentStatus.CANCELLED
            assert not session.is_actively_enrolled(LEARNER, published_course.id)


class TestMetadata:
    def test_save_and_count_usage(self, store: LmsStore, sample_course: Course):
        category = Metadata(id=1, kind=MetadataKind.CATEGORY, name="Programming")
        store.seed_metadata(category)
        with store.transaction() as session:
            session.save_course(replace(sample_course, category_id=1))
        with store.transaction() as session:
            assert session.get_metadata(1) == category
            assert session.get_metadata(None) is None
            assert session.count_courses_using_metadata(category) == 1


class TestReports:
    @pytest.fixture
    def report(self) -> Report:
        return Report(
            id="report-1",
            reporter_id=LEARNER,
            target_type=ReportTarget.SUBMISSION,
            target_id="submission-1",
            reason="Plagiarism",
            content="Copied from a public repo",
            created_at=NOW,
            updated_at=NOW,
        )

    def test_save_and_get(self, store: LmsStore, report: Report):
        with store.transaction() as session:
            session.save_report(report)
        with store.transaction() as session:
            assert session.get_report(report.id) == report
            assert session.get_report("missing") is None

    def test_update_keeps_reporter(self, store: LmsStore, report: Report):
        with store.transaction() as session:
            session.save_report(report)
            session.save_report(replace(
                report,
                reporter_id="someone-else",
                status=ReportStatus.RESOLVED,
                resolved_at=NOW,
                resolved_by="operator-1",
            ))
        with store.transaction() as session:
            stored = session.get_report(report.id)
        assert stored.reporter_id == LEARNER
        assert stored.status == ReportStatus.RESOLVED
        assert stored.resolved_by == "operator-1"

    def test_unknown_status_rejected_by_schema(self, store: LmsStore, report: Report):
        with store.transaction() as session:
            session.save_report(report)
        with pytest.raises(StoreError):
            with store.transaction() as session:
                session._conn.execute("UPDATE reports SET status = 'dismissed' WHERE id = ?", (report.id,))
