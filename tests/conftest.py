"""
Pytest configuration and shared fixtures.

Provides a temporary store, a controllable clock and sample entities
for lifecycle testing.
"""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator
import tempfile

from coursework.domain.models import (
    Assignment,
    AssignmentStatus,
    Course,
    CourseStatus,
    Enrollment,
    Submission,
    SubmissionStatus,
)
from coursework.engine.orchestrator import LifecycleOrchestrator
from coursework.storage.store import LmsStore

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)
INSTRUCTOR = "instructor-1"
OTHER_INSTRUCTOR = "instructor-2"
LEARNER = "learner-1"
OTHER_LEARNER = "learner-2"


class FixedClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ============================================================================
# Domain Model Fixtures
# ============================================================================

@pytest.fixture
def sample_course() -> Course:
    """Create a draft course."""
    return Course(
        id="course-1",
        owner_id=INSTRUCTOR,
        title="Introduction to Computer Science",
        description="Fundamentals of programming.",
        created_at=NOW - timedelta(days=30),
        updated_at=NOW - timedelta(days=30),
    )


@pytest.fixture
def published_course(sample_course: Course) -> Course:
    """Create a published course."""
    return Course(
        id=sample_course.id,
        owner_id=sample_course.owner_id,
        title=sample_course.title,
        status=CourseStatus.PUBLISHED,
        created_at=sample_course.created_at,
        published_at=NOW - timedelta(days=20),
    )


@pytest.fixture
def sample_assignment(published_course: Course) -> Assignment:
    """Create a published assignment due in a week."""
    return Assignment(
        id="assignment-1",
        course_id=published_course.id,
        title="Homework 1: Python Basics",
        due_date=NOW + timedelta(days=7),
        points_weight=40,
        status=AssignmentStatus.PUBLISHED,
        allow_late=False,
        allow_resubmission=True,
        created_at=NOW - timedelta(days=10),
        published_at=NOW - timedelta(days=10),
    )


@pytest.fixture
def draft_assignment(published_course: Course) -> Assignment:
    """Create a draft assignment due in two weeks."""
    return Assignment(
        id="assignment-2",
        course_id=published_course.id,
        title="Homework 2: Loops",
        due_date=NOW + timedelta(days=14),
        points_weight=30,
        created_at=NOW - timedelta(days=5),
    )


@pytest.fixture
def sample_submission(sample_assignment: Assignment) -> Submission:
    """Create a submission awaiting grading."""
    return Submission(
        id="submission-1",
        assignment_id=sample_assignment.id,
        course_id=sample_assignment.course_id,
        learner_id=LEARNER,
        content="print('hello')",
        submitted_at=NOW - timedelta(days=1),
        updated_at=NOW - timedelta(days=1),
    )


@pytest.fixture
def resubmission_requested(sample_submission: Submission) -> Submission:
    """Create a submission sent back by the grader."""
    return Submission(
        id=sample_submission.id,
        assignment_id=sample_submission.assignment_id,
        course_id=sample_submission.course_id,
        learner_id=sample_submission.learner_id,
        content=sample_submission.content,
        status=SubmissionStatus.RESUBMISSION_REQUIRED,
        score=55.0,
        feedback="Add tests",
        submitted_at=sample_submission.submitted_at,
        graded_at=NOW - timedelta(hours=2),
    )


@pytest.fixture
def sample_enrollment(published_course: Course) -> Enrollment:
    """Create an active enrollment."""
    return Enrollment(
        id="enrollment-1",
        learner_id=LEARNER,
        course_id=published_course.id,
        enrolled_at=NOW - timedelta(days=15),
    )


# ============================================================================
# Storage and Engine Fixtures
# ============================================================================

@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = Path(f.name)
    yield path
    # Cleanup, including WAL sidecar files
    for candidate in (path, Path(f"{path}-wal"), Path(f"{path}-shm")):
        if candidate.exists():
            candidate.unlink()


@pytest.fixture
def store(temp_db_path: Path) -> LmsStore:
    """Create a fresh LmsStore with temp database."""
    return LmsStore(temp_db_path)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def orchestrator(store: LmsStore, clock: FixedClock) -> LifecycleOrchestrator:
    """Orchestrator over the temp store and fixed clock."""
    return LifecycleOrchestrator(store, clock=clock)


@pytest.fixture
def course_id(orchestrator: LifecycleOrchestrator) -> str:
    """A published course owned by INSTRUCTOR."""
    created = orchestrator.request_course_create(INSTRUCTOR, "Intro to Databases")
    published = orchestrator.request_course_transition(created.value.id, INSTRUCTOR, "published")
    assert published.ok
    return published.value.id


@pytest.fixture
def assignment_id(orchestrator: LifecycleOrchestrator, course_id: str) -> str:
    """A published assignment (weight 40, resubmission allowed) due in a week."""
    outcome = orchestrator.request_assignment_create(
        course_id,
        INSTRUCTOR,
        title="Schema design",
        due_date=(NOW + timedelta(days=7)).isoformat(),
        points_weight=40,
        allow_resubmission=True,
        publish=True,
    )
    assert outcome.ok
    return outcome.value.id


@pytest.fixture
def enrolled_learner(orchestrator: LifecycleOrchestrator, course_id: str) -> str:
    """LEARNER with an active enrollment in the published course."""
    assert orchestrator.request_enroll(course_id, LEARNER).ok
    return LEARNER


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture
def mock_env(monkeypatch, tmp_path: Path) -> Path:
    """Set a complete configuration environment and isolate from any local .env."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("STORAGE_DATABASE_PATH", str(tmp_path / "coursework.db"))
    monkeypatch.setenv("WEIGHT_UNIT", "percent")
    monkeypatch.setenv("LMS_API_BASE_URL", "https://lms.test/")
    monkeypatch.setenv("LMS_API_TOKEN", "test_token")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    return tmp_path


# ============================================================================
# API Response Fixtures
# ============================================================================

@pytest.fixture
def course_response() -> dict:
    """Sample LMS API course response."""
    return {
        "status": 200,
        "course": {
            "id": "course-1",
            "owner_id": INSTRUCTOR,
            "title": "Introduction to Computer Science",
            "status": "published",
            "enrollment_count": 3,
            "created_at": "2026-02-01T09:00:00Z",
            "published_at": "2026-03-02T12:00:00Z",
        },
    }


@pytest.fixture
def submission_response() -> dict:
    """Sample LMS API submission response."""
    return {
        "status": 200,
        "submission": {
            "id": "submission-1",
            "assignment_id": "assignment-1",
            "course_id": "course-1",
            "learner_id": LEARNER,
            "content": "answer",
            "status": "graded",
            "is_late": False,
            "score": 85,
            "feedback": "Good",
            "submitted_at": "2026-03-01T10:00:00Z",
            "graded_at": "2026-03-02T12:00:00Z",
        },
    }
