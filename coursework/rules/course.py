"""
Course lifecycle rules.

Transitions:
- draft -> published: requires a non-blank title, stamps published_at once
- published -> archived: stamps archived_at; enrollment is closed
- archived -> draft: explicit reactivation, clears archived_at
- published -> published: no-op
Everything else, archived -> published included, is refused.
"""

from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from ..domain.models import Course, CourseStatus, CourseUpdate, Metadata, MetadataKind, touch
from ..domain.outcomes import Decision, ErrorCode, Rejection, reject
from .validation import first_rejection, validate_description, validate_reference_id, validate_title

ALLOWED_COURSE_TRANSITIONS: dict[CourseStatus, set[CourseStatus]] = {
    CourseStatus.DRAFT: {CourseStatus.PUBLISHED},
    CourseStatus.PUBLISHED: {CourseStatus.ARCHIVED, CourseStatus.PUBLISHED},
    CourseStatus.ARCHIVED: {CourseStatus.DRAFT},
}


def is_valid_course_transition(current: CourseStatus, target: CourseStatus) -> bool:
    return target in ALLOWED_COURSE_TRANSITIONS.get(current, set())


def transition_course(course: Course, target: CourseStatus, now: datetime) -> Decision:
    """
    Compute the next state of `course` when moved to `target`.

    Args:
        course: Current course snapshot
        target: Requested status
        now: Current time

    Returns:
        Decision carrying the updated Course
    """
    current = course.status

    if current == CourseStatus.ARCHIVED and target == CourseStatus.PUBLISHED:
        return Decision.refuse(
            ErrorCode.INVALID_STATUS_TRANSITION,
            "Cannot directly publish an archived course. Change to draft first.",
            current=current.value,
            target=target.value,
        )

    if not is_valid_course_transition(current, target):
        return Decision.refuse(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f"Cannot change course status from {current.value} to {target.value}",
            current=current.value,
            target=target.value,
        )

    if current == target:
        return Decision.accept(course)

    if target == CourseStatus.PUBLISHED:
        if not course.title or not course.title.strip():
            return Decision.refuse(ErrorCode.COURSE_PUBLISH_VALIDATION_ERROR)
        return Decision.accept(touch(
            course,
            now,
            status=CourseStatus.PUBLISHED,
            published_at=course.published_at or now,
        ))

    if target == CourseStatus.ARCHIVED:
        return Decision.accept(touch(course, now, status=CourseStatus.ARCHIVED, archived_at=now))

    # archived -> draft
    return Decision.accept(touch(course, now, status=CourseStatus.DRAFT, archived_at=None))


def accepts_enrollments(course: Course) -> bool:
    return course.status == CourseStatus.PUBLISHED and not course.is_deleted


def check_metadata_reference(
    ref_id: Optional[int],
    metadata: Optional[Metadata],
    kind: MetadataKind,
) -> Optional[Rejection]:
    """A referenced category or difficulty must exist and be active."""
    if ref_id is None:
        return None
    if metadata is None or metadata.kind != kind or not metadata.is_active:
        field = f"{kind.value}_id"
        return reject(
            ErrorCode.METADATA_INACTIVE,
            f"{kind.value.capitalize()} {ref_id} is not active",
            field=field,
        )
    return None


def check_title_unique(title: str, owner_titles: Iterable[str]) -> Optional[Rejection]:
    """Titles are unique among one owner's live courses."""
    normalized = title.strip()
    if any(existing.strip() == normalized for existing in owner_titles):
        return reject(ErrorCode.COURSE_TITLE_DUPLICATE, field="title")
    return None


def create_course(
    course_id: str,
    owner_id: str,
    title: str,
    now: datetime,
    description: Optional[str] = None,
    category_id: Optional[int] = None,
    difficulty_id: Optional[int] = None,
    owner_titles: Iterable[str] = (),
    category: Optional[Metadata] = None,
    difficulty: Optional[Metadata] = None,
) -> Decision:
    """New courses always start as drafts."""
    rejection = first_rejection(
        validate_title(title),
        validate_description(description),
        validate_reference_id(category_id, "category_id"),
        validate_reference_id(difficulty_id, "difficulty_id"),
    )
    if rejection:
        return Decision.from_rejection(rejection)

    rejection = first_rejection(
        check_title_unique(title, owner_titles),
        check_metadata_reference(category_id, category, MetadataKind.CATEGORY),
        check_metadata_reference(difficulty_id, difficulty, MetadataKind.DIFFICULTY),
    )
    if rejection:
        return Decision.from_rejection(rejection)

    return Decision.accept(Course(
        id=course_id,
        owner_id=owner_id,
        title=title.strip(),
        description=description,
        category_id=category_id,
        difficulty_id=difficulty_id,
        status=CourseStatus.DRAFT,
        created_at=now,
        updated_at=now,
    ))


def apply_course_update(
    course: Course,
    update: CourseUpdate,
    now: datetime,
    owner_titles: Iterable[str] = (),
    category: Optional[Metadata] = None,
    difficulty: Optional[Metadata] = None,
) -> Decision:
    """
    Apply the provided fields of `update` to `course`.

    Args:
        owner_titles: Titles of the owner's other live courses
        category: Metadata row for a changed category_id, if any
        difficulty: Metadata row for a changed difficulty_id, if any
    """
    changes = update.changes()
    if not changes:
        return Decision.accept(course)

    checks = []
    if "title" in changes:
        checks.append(validate_title(changes["title"]))
        if isinstance(changes["title"], str):
            changes["title"] = changes["title"].strip()
            checks.append(check_title_unique(changes["title"], owner_titles))
    if "description" in changes:
        checks.append(validate_description(changes["description"]))
    if "category_id" in changes:
        checks.append(validate_reference_id(changes["category_id"], "category_id"))
        checks.append(check_metadata_reference(changes["category_id"], category, MetadataKind.CATEGORY))
    if "difficulty_id" in changes:
        checks.append(validate_reference_id(changes["difficulty_id"], "difficulty_id"))
        checks.append(check_metadata_reference(changes["difficulty_id"], difficulty, MetadataKind.DIFFICULTY))

    rejection = first_rejection(*checks)
    if rejection:
        return Decision.from_rejection(rejection)

    return Decision.accept(touch(course, now, **changes))


def check_course_deletable(course: Course) -> Decision:
    """Only courses without active enrollments can be removed."""
    if course.enrollment_count > 0:
        return Decision.refuse(
            ErrorCode.COURSE_HAS_ACTIVE_ENROLLMENTS,
            enrollment_count=course.enrollment_count,
        )
    return Decision.accept(course)


def soft_delete_course(course: Course, now: datetime) -> Decision:
    decision = check_course_deletable(course)
    if not decision.ok:
        return decision
    return Decision.accept(replace(course, deleted_at=now, updated_at=now))


def deactivate_metadata(metadata: Metadata) -> Metadata:
    """Inactive categories and difficulties can no longer be referenced by course writes."""
    return replace(metadata, is_active=False)
