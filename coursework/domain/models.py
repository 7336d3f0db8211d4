"""
Coursework data models.

These models represent the entities the lifecycle engine reasons about.
All are immutable; a transition produces a new instance via `replace`.
IDs are opaque UUID strings and timestamps are timezone-aware UTC.
"""

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class CourseStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class AssignmentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    GRADED = "graded"
    RESUBMISSION_REQUIRED = "resubmission_required"


class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class MetadataKind(str, Enum):
    CATEGORY = "category"
    DIFFICULTY = "difficulty"


class ReportStatus(str, Enum):
    RECEIVED = "received"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"


class ReportTarget(str, Enum):
    COURSE = "course"
    ASSIGNMENT = "assignment"
    SUBMISSION = "submission"
    USER = "user"


class _Unset:
    """Marker for "field not provided" in update structs."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string (a trailing Z is accepted) into an aware datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Course:
    """
    Represents a course owned by one instructor.

    Attributes:
        id: Course identifier
        owner_id: Instructor who owns (and alone may mutate) the course
        title: Display title, unique per owner
        description: Free text, may be None
        category_id: Reference to an active category, may be None
        difficulty_id: Reference to an active difficulty, may be None
        status: draft, published or archived
        enrollment_count: Number of active enrollments (derived)
        created_at: Creation time
        updated_at: Last mutation time
        published_at: First time the course became published
        archived_at: Set while the course is archived
        deleted_at: Soft-delete marker
    """
    id: str
    owner_id: str
    title: str
    created_at: datetime
    description: Optional[str] = None
    category_id: Optional[int] = None
    difficulty_id: Optional[int] = None
    status: CourseStatus = CourseStatus.DRAFT
    enrollment_count: int = 0
    updated_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        if self.enrollment_count < 0:
            raise ValueError(f"enrollment_count must be >= 0, got {self.enrollment_count}")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_owned_by(self, actor_id: str) -> bool:
        return self.owner_id == actor_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "category_id": self.category_id,
            "difficulty_id": self.difficulty_id,
            "status": self.status.value,
            "enrollment_count": self.enrollment_count,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "published_at": format_timestamp(self.published_at),
            "archived_at": format_timestamp(self.archived_at),
            "deleted_at": format_timestamp(self.deleted_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Course":
        return cls(
            id=str(data["id"]),
            owner_id=str(data["owner_id"]),
            title=data.get("title", ""),
            description=data.get("description"),
            category_id=data.get("category_id"),
            difficulty_id=data.get("difficulty_id"),
            status=CourseStatus(data.get("status", "draft")),
            enrollment_count=int(data.get("enrollment_count") or 0),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            published_at=parse_timestamp(data.get("published_at")),
            archived_at=parse_timestamp(data.get("archived_at")),
            deleted_at=parse_timestamp(data.get("deleted_at")),
        )


@dataclass(frozen=True)
class Assignment:
    """
    Represents an assignment inside a course.

    `points_weight` is an integer percentage of the course grade; the
    live assignments of one course never sum above 100.
    """
    id: str
    course_id: str
    title: str
    due_date: datetime
    points_weight: int
    created_at: datetime
    description: Optional[str] = None
    instructions: Optional[str] = None
    status: AssignmentStatus = AssignmentStatus.DRAFT
    allow_late: bool = False
    allow_resubmission: bool = False
    updated_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        if not 0 <= self.points_weight <= 100:
            raise ValueError(f"points_weight must be within 0..100, got {self.points_weight}")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_past_due(self, now: datetime) -> bool:
        return now > self.due_date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "course_id": self.course_id,
            "title": self.title,
            "description": self.description,
            "instructions": self.instructions,
            "due_date": format_timestamp(self.due_date),
            "points_weight": self.points_weight,
            "status": self.status.value,
            "allow_late": self.allow_late,
            "allow_resubmission": self.allow_resubmission,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "published_at": format_timestamp(self.published_at),
            "closed_at": format_timestamp(self.closed_at),
            "deleted_at": format_timestamp(self.deleted_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Assignment":
        return cls(
            id=str(data["id"]),
            course_id=str(data["course_id"]),
            title=data.get("title", ""),
            description=data.get("description"),
            instructions=data.get("instructions"),
            due_date=parse_timestamp(data["due_date"]),
            points_weight=int(data.get("points_weight") or 0),
            status=AssignmentStatus(data.get("status", "draft")),
            allow_late=bool(data.get("allow_late", False)),
            allow_resubmission=bool(data.get("allow_resubmission", False)),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            published_at=parse_timestamp(data.get("published_at")),
            closed_at=parse_timestamp(data.get("closed_at")),
            deleted_at=parse_timestamp(data.get("deleted_at")),
        )


@dataclass(frozen=True)
class Submission:
    """
    A learner's work for one assignment.

    There is at most one submission per (assignment, learner) pair; a
    resubmission rewrites this row. The learner owns content and link
    until grading, the instructor owns score, feedback and status.
    """
    id: str
    assignment_id: str
    course_id: str
    learner_id: str
    submitted_at: datetime
    content: Optional[str] = None
    link: Optional[str] = None
    status: SubmissionStatus = SubmissionStatus.SUBMITTED
    is_late: bool = False
    score: Optional[float] = None
    feedback: Optional[str] = None
    graded_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_graded(self) -> bool:
        return self.status == SubmissionStatus.GRADED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "assignment_id": self.assignment_id,
            "course_id": self.course_id,
            "learner_id": self.learner_id,
            "content": self.content,
            "link": self.link,
            "status": self.status.value,
            "is_late": self.is_late,
            "score": self.score,
            "feedback": self.feedback,
            "submitted_at": format_timestamp(self.submitted_at),
            "graded_at": format_timestamp(self.graded_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Submission":
        score = data.get("score")
        return cls(
            id=str(data["id"]),
            assignment_id=str(data["assignment_id"]),
            course_id=str(data["course_id"]),
            learner_id=str(data["learner_id"]),
            content=data.get("content"),
            link=data.get("link"),
            status=SubmissionStatus(data.get("status", "submitted")),
            is_late=bool(data.get("is_late", False)),
            score=float(score) if score is not None else None,
            feedback=data.get("feedback"),
            submitted_at=parse_timestamp(data.get("submitted_at")),
            graded_at=parse_timestamp(data.get("graded_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass(frozen=True)
class Enrollment:
    """A learner's membership in a course; cancelled rows are reactivated in place."""
    id: str
    learner_id: str
    course_id: str
    enrolled_at: datetime
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    cancelled_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "learner_id": self.learner_id,
            "course_id": self.course_id,
            "status": self.status.value,
            "enrolled_at": format_timestamp(self.enrolled_at),
            "cancelled_at": format_timestamp(self.cancelled_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Enrollment":
        return cls(
            id=str(data["id"]),
            learner_id=str(data["learner_id"]),
            course_id=str(data["course_id"]),
            status=EnrollmentStatus(data.get("status", "active")),
            enrolled_at=parse_timestamp(data.get("enrolled_at")),
            cancelled_at=parse_timestamp(data.get("cancelled_at")),
        )


@dataclass(frozen=True)
class Metadata:
    """A category or difficulty level that courses may reference."""
    id: int
    kind: MetadataKind
    name: str
    is_active: bool = True

    def to_dict(self) -> dict:
        return {"id": self.id, "kind": self.kind.value, "name": self.name, "is_active": self.is_active}


@dataclass(frozen=True)
class GradeEvent:
    """One entry of the append-only grading log."""
    id: str
    submission_id: str
    grader_id: str
    score: float
    feedback: str
    status: SubmissionStatus
    graded_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "grader_id": self.grader_id,
            "score": self.score,
            "feedback": self.feedback,
            "status": self.status.value,
            "graded_at": format_timestamp(self.graded_at),
        }


@dataclass(frozen=True)
class Report:
    """
    A user report about a course, assignment, submission or user.

    Operators move reports between received, investigating and
    resolved; resolved_at and resolved_by are set only while resolved.
    """
    id: str
    reporter_id: str
    target_type: ReportTarget
    target_id: str
    reason: str
    created_at: datetime
    content: Optional[str] = None
    status: ReportStatus = ReportStatus.RECEIVED
    updated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == ReportStatus.RESOLVED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reporter_id": self.reporter_id,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "reason": self.reason,
            "content": self.content,
            "status": self.status.value,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "resolved_at": format_timestamp(self.resolved_at),
            "resolved_by": self.resolved_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Report":
        return cls(
            id=str(data["id"]),
            reporter_id=str(data["reporter_id"]),
            target_type=ReportTarget(data["target_type"]),
            target_id=str(data["target_id"]),
            reason=data["reason"],
            content=data.get("content"),
            status=ReportStatus(data.get("status", "received")),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            resolved_at=parse_timestamp(data.get("resolved_at")),
            resolved_by=data.get("resolved_by"),
        )


@dataclass(frozen=True)
class CourseUpdate:
    """Mutable course fields; anything left UNSET is not touched."""
    title: Any = UNSET
    description: Any = UNSET
    category_id: Any = UNSET
    difficulty_id: Any = UNSET

    def changes(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}

    @classmethod
    def from_payload(cls, payload: dict) -> "CourseUpdate":
        return _update_from_payload(cls, payload)


@dataclass(frozen=True)
class AssignmentUpdate:
    """
    Mutable assignment fields; anything left UNSET is not touched.

    `due_date` and `points_weight` hold raw boundary input here (ISO
    string or datetime; number in the configured weight unit) and are
    normalized by the assignment rules.
    """
    title: Any = UNSET
    description: Any = UNSET
    instructions: Any = UNSET
    due_date: Any = UNSET
    points_weight: Any = UNSET
    allow_late: Any = UNSET
    allow_resubmission: Any = UNSET

    def changes(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}

    @classmethod
    def from_payload(cls, payload: dict) -> "AssignmentUpdate":
        return _update_from_payload(cls, payload)


# camelCase request keys accepted at the boundary
_PAYLOAD_ALIASES = {
    "dueDate": "due_date",
    "pointsWeight": "points_weight",
    "allowLate": "allow_late",
    "allowResubmission": "allow_resubmission",
    "categoryId": "category_id",
    "difficultyId": "difficulty_id",
}


def _update_from_payload(cls, payload: dict):
    """
    Build an update struct from a request payload.

    Raises:
        ValueError: If the payload names a field the struct does not have
    """
    allowed = {f.name for f in fields(cls)}
    values = {}
    unknown = []
    for key, value in payload.items():
        name = _PAYLOAD_ALIASES.get(key, key)
        if name not in allowed:
            unknown.append(key)
            continue
        values[name] = value
    if unknown:
        raise ValueError(f"Unknown fields: {', '.join(sorted(unknown))}")
    return cls(**values)


def touch(entity, now: datetime, **changes):
    """Return a copy of `entity` with `changes` applied and `updated_at` set."""
    return replace(entity, updated_at=now, **changes)
