"""
Lifecycle orchestrator.

Answers "can this actor do this to this entity right now, and what is
the resulting state". Each request runs inside one store transaction:
load the entity and its siblings, authorize the actor, delegate to the
pure rule, persist the accepted state and return an Outcome.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Union

from ..domain.models import (
    Assignment,
    AssignmentStatus,
    AssignmentUpdate,
    Course,
    CourseStatus,
    CourseUpdate,
    GradeEvent,
    Metadata,
    ReportStatus,
    utc_now,
)
from ..domain.outcomes import ErrorCategory, ErrorCode, Outcome, Rejection, reject
from ..rules import assignment as assignment_rules
from ..rules import course as course_rules
from ..rules import enrollment as enrollment_rules
from ..rules import report as report_rules
from ..rules import submission as submission_rules
from ..rules.validation import WEIGHT_UNIT_PERCENT, is_reference_id
from ..storage.store import LmsStore, StoreError, StoreSession

logger = logging.getLogger(__name__)


@dataclass
class RequestStats:
    """Counters for requests handled by one orchestrator."""
    accepted: int = 0
    rejected: int = 0
    errors: int = 0
    rejections_by_code: dict[str, int] = field(default_factory=dict)

    def record(self, outcome: Outcome) -> None:
        if outcome.ok:
            self.accepted += 1
        elif outcome.rejection.code == ErrorCode.INTERNAL_ERROR:
            self.errors += 1
        else:
            self.rejected += 1
            self.rejections_by_code[outcome.code] = self.rejections_by_code.get(outcome.code, 0) + 1

    def __str__(self) -> str:
        return f"{self.accepted} accepted, {self.rejected} rejected, {self.errors} errors"


class LifecycleOrchestrator:
    """
    Single entry point per lifecycle operation.

    Core principles:
    - Rules stay pure; all I/O goes through the injected store
    - Every rejection is a typed (code, message) pair
    - Storage failures become INTERNAL_ERROR without leaking details

    Usage:
        orchestrator = LifecycleOrchestrator(store=LmsStore(path))

        outcome = orchestrator.request_course_transition(course_id, actor_id, "published")
        if outcome.ok:
            print(outcome.value.published_at)
    """

    def __init__(
        self,
        store: LmsStore,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], Any] = uuid.uuid4,
        weight_unit: str = WEIGHT_UNIT_PERCENT,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Persistent store providing transactions
            clock: Returns the current aware UTC time
            id_factory: Produces identities for new rows
            weight_unit: Unit of incoming assignment weights ("percent" or "fraction")
        """
        self.store = store
        self.clock = clock
        self.id_factory = id_factory
        self.weight_unit = weight_unit
        self.stats = RequestStats()

    def _new_id(self) -> str:
        return str(self.id_factory())

    def _run(self, operation: str, work: Callable[[StoreSession, datetime], Outcome]) -> Outcome:
        """Run `work` in one transaction and map failures onto outcomes."""
        now = self.clock()
        try:
            with self.store.transaction() as session:
                outcome = work(session, now)
        except StoreError as e:
            logger.error(f"{operation} failed: {e}", exc_info=True)
            outcome = Outcome.failure(reject(ErrorCode.INTERNAL_ERROR))

        if not outcome.ok and outcome.rejection.code != ErrorCode.INTERNAL_ERROR:
            self._log_rejection(operation, outcome.rejection)
        self.stats.record(outcome)
        return outcome

    @staticmethod
    def _log_rejection(operation: str, rejection: Rejection) -> None:
        if rejection.code.category == ErrorCategory.AUTHORIZATION:
            logger.warning(f"{operation} denied: {rejection.message}")
        else:
            logger.info(f"{operation} rejected with {rejection.code.code}: {rejection.message}")

    @staticmethod
    def _log_warnings(subject: str, warnings: tuple[str, ...]) -> None:
        for warning in warnings:
            logger.warning(f"{subject}: {warning}")

    # ------------------------------------------------------------------
    # Loading and authorization helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _owned_course(
        session: StoreSession,
        course_id: str,
        actor_id: str,
    ) -> tuple[Optional[Course], Optional[Rejection]]:
        course = session.get_course(course_id)
        if course is None:
            return None, reject(ErrorCode.COURSE_NOT_FOUND)
        if not course.is_owned_by(actor_id):
            return None, reject(
                ErrorCode.INSUFFICIENT_PERMISSIONS,
                f"Actor {actor_id} does not own course {course_id}",
            )
        return course, None

    def _owned_assignment(
        self,
        session: StoreSession,
        assignment_id: str,
        actor_id: str,
    ) -> tuple[Optional[Assignment], Optional[Rejection]]:
        assignment = session.get_assignment(assignment_id)
        if assignment is None:
            return None, reject(ErrorCode.ASSIGNMENT_NOT_FOUND)
        _, rejection = self._owned_course(session, assignment.course_id, actor_id)
        if rejection:
            return None, rejection
        return assignment, None

    @staticmethod
    def _lookup_metadata(session: StoreSession, ref_id: Any) -> Optional[Metadata]:
        # malformed ids are rejected by the rules, not by sqlite
        return session.get_metadata(ref_id) if is_reference_id(ref_id) else None

    @staticmethod
    def _parse_status(enum_cls, value: Any):
        try:
            return enum_cls(value), None
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            return None, reject(
                ErrorCode.INVALID_INPUT,
                f"Status must be one of: {allowed}",
                field="status",
                reason="invalid_choice",
            )

    @staticmethod
    def _coerce_update(update_cls, update: Any):
        if isinstance(update, update_cls):
            return update, None
        try:
            return update_cls.from_payload(dict(update)), None
        except (TypeError, ValueError) as e:
            return None, reject(ErrorCode.INVALID_INPUT, str(e), reason="unknown_field")

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    def request_course_create(
        self,
        actor_id: str,
        title: Any,
        description: Optional[str] = None,
        category_id: Optional[int] = None,
        difficulty_id: Optional[int] = None,
    ) -> Outcome:
        """Create a draft course owned by `actor_id`."""
        def work(session: StoreSession, now: datetime) -> Outcome:
            decision = course_rules.create_course(
                course_id=self._new_id(),
                owner_id=actor_id,
                title=title,
                now=now,
                description=description,
                category_id=category_id,
                difficulty_id=difficulty_id,
                owner_titles=session.list_owner_course_titles(actor_id),
                category=self._lookup_metadata(session, category_id),
                difficulty=self._lookup_metadata(session, difficulty_id),
            )
            if not decision.ok:
                return Outcome.failure(decision.rejection)
            session.save_course(decision.value)
            logger.info(f"Created course {decision.value.id} for owner {actor_id}")
            return Outcome.success("course", decision.value, status=201)

        return self._run("course create", work)

    def request_course_update(
        self,
        course_id: str,
        actor_id: str,
        update: Union[CourseUpdate, dict],
    ) -> Outcome:
        def work(session: StoreSession, now: datetime) -> Outcome:
            course_update, rejection = self._coerce_update(CourseUpdate, update)
            if rejection:
                return Outcome.failure(rejection)
            course, rejection = self._owned_course(session, course_id, actor_id)
            if rejection:
                return Outcome.failure(rejection)

            changes = course_update.changes()
            decision = course_rules.apply_course_update(
                course,
                course_update,
                now,
                owner_titles=session.list_owner_course_titles(actor_id, exclude_id=course_id),
                category=self._lookup_metadata(session, changes.get("category_id")),
                difficulty=self._lookup_metadata(session, changes.get("difficulty_id")),
            )
            if not decision.ok:
                return Outcome.failure(decision.rejection)
            session.save_course(decision.value)
            return Outcome.success("course", decision.value)

        return self._run("course update", work)

    def request_course_transition(self, course_id: str, actor_id: str, target_status: Any) -> Outcome:
        """
        Move a course to `target_status`.

        Archiving closes the course to new enrollments; existing ones stay.
        """
        def work(session: StoreSession, now: datetime) -> Outcome:
            target, rejection = self._parse_status(CourseStatus, target_status)
            if rejection:
                return Outcome.failure(rejection)
            course, rejection = self._owned_course(session, course_id, actor_id)
            if rejection:
                return Outcome.failure(rejection)

            decision = course_rules.transition_course(course, target, now)
            if not decision.ok:
                return Outcome.failure(decision.rejection)
            if decision.value is not course:
                session.save_course(decision.value)
                logger.info(f"Course {course_id}: {course.status.value} -> {target.value}")
            return Outcome.success("course", decision.value)

        return self._run("course transition", work)

    def request_course_delete(self, course_id: str, actor_id: str) -> Outcome:
        """Soft-delete a course that has no active enrollments."""
        def work(session: StoreSession, now: datetime) -> Outcome:
            course, rejection = self._owned_course(session, course_id, actor_id)
            if rejection:
                return Outcome.failure(rejection)
            decision = course_rules.soft_delete_course(course, now)
            if not decision.ok:
                return Outcome.failure(decision.rejection)
            session.save_course(decision.value)
            logger.info(f"Deleted course {course_id}")
            return Outcome.success("course", decision.value)

        return self._run("course delete", work)

    def request_metadata_deactivate(self, metadata_id: int) -> Outcome:
        """
        Deactivate a category or difficulty.

        Refused while any live course still references it. The caller is
        responsible for restricting this to operators.
        """
        def work(session: StoreSession, now: datetime) -> Outcome:
            metadata = self._lookup_metadata(session, metadata_id)
            if metadata is None:
                return Outcome.failure(reject(ErrorCode.METADATA_NOT_FOUND))
            if not metadata.is_active:
                return Outcome.success("metadata", metadata)
            in_use = session.count_courses_using_metadata(metadata)
            if in_use:
                return Outcome.failure(reject(ErrorCode.METADATA_IN_USE, course_count=in_use))
            deactivated = course_rules.deactivate_metadata(metadata)
            session.save_metadata(deactivated)
            logger.info(f"Deactivated {metadata.kind.value} {metadata.name!r}")
            return Outcome.success("metadata", deactivated)

        return self._run("metadata deactivate", work)

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def request_assignment_create(
        self,
        course_id: str,
        actor_id: str,
        title: Any,
        due_date: Any,
        points_weight: Any,
        description: Optional[str] = None,
        instructions: Optional[str] = None,
        allow_late: bool = False,
        allow_resubmission: bool = False,
        publish: bool = False,
    ) -> Outcome:
        """
        Create an assignment in a course owned by `actor_id`.

        The weight is checked against the live siblings inside the same
        transaction that inserts the row.
        """
        def work(session: StoreSession, now: datetime) -> Outcome:
            course, rejection = self._owned_course(session, course_id, actor_id)
            if rejection:
                return Outcome.failure(rejection)

            decision = assignment_rules.create_assignment(
                assignment_id=self._new_id(),
                course_id=course.id,
                title=title,
                due_date=due_date,
                points_weight=points_weight,
                now=now,
                siblings=session.list_assignments(course.id),
                weight_unit=self.weight_unit,
                description=description,
                instructions=instructions,
                allow_late=allow_late,
                allow_resubmission=allow_resubmission,
                publish=publish,
            )
            if not decision.ok:
                return Outcome.failure(decision.rejection)
            session.save_assignment(decision.value)
            logger.info(
                f"Created assignment {decision.value.id} in course {course.id} "
                f"(weight {decision.value.points_weight})"
            )
            return Outcome.success("assignment", decision.value, status=201)

        return self._run("assignment create", work)

    def request_assignment_update(
        self,
        assignment_id: str,
        actor_id: str,
        update: Union[AssignmentUpdate, dict],
    ) -> Outcome:
        def work(session: StoreSession, now: datetime) -> Outcome:
            assignment_update, rejection = self._coerce_update(AssignmentUpdate, update)
            if rejection:
                return Outcome.failure(rejection)
            assignment, rejection = self._owned_assignment(session, assignment_id, actor_id)
            if rejection:
                return Outcome.failure(rejection)

            decision = assignment_rules.apply_assignment_update(
                assignment,
                assignment_update,
                session.list_assignments(assignment.course_id),
                now,
                weight_unit=self.weight_unit,
            )
            if not decision.ok:
                return Outcome.failure(decision.rejection)
            self._log_warnings(f"Assignment {assignment_id}", decision.warnings)
            session.save_assignment(decision.value)
            return Outcome.success("assignment", decision.value)

        return self._run("assignment update", work)

    def request_assignment_transition(
        self,
        assignment_id: str,
        actor_id: str,
        target_status: Any,
    ) -> Outcome:
        """Closing never touches existing submissions."""
        def work(session: StoreSession, now: datetime) -> Outcome:
            target, rejection = self._parse_status(AssignmentStatus, target_status)
            if rejection:
                return Outcome.failure(rejection)
            assignment, rejection = self._owned_assignment(session, assignment_id, actor_id)
            if rejection:
                return Outcome.failure(rejection)

            decision = assignment_rules.transition_assignment(
                assignment,
                target,
                session.list_assignments(assignment.course_id),
                now,
            )
            if not decision.ok:
                return Outcome.failure(decision.rejection)
            session.save_assignment(decision.value)
            logger.info(f"Assignment {assignment_id}: {assignment.status.value} -> {target.value}")
            return Outcome.success("assignment", decision.value)

        return self._run("assignment transition", work)

    def request_assignment_delete(self, assignment_id: str, actor_id: str) -> Outcome:
        """Soft-delete an assignment; its weight returns to the course budget."""
        def work(session: StoreSession, now: datetime) -> Outcome:
            assignment, rejection = self._owned_assignment(session, assignment_id, actor_id)
            if rejection:
                return Outcome.failure(rejection)
            decision = assignment_rules.soft_delete_assignment(assignment, now)
            session.save_assignment(decision.value)
            logger.info(f"Deleted assignment {assignment_id}")
            return Outcome.success("assignment", decision.value)

        return self._run("assignment delete", work)

    def request_close_past_due_assignments(self) -> Outcome:
        """
        Close every published assignment whose due date has passed.

        Meant for a scheduled job; the caller restricts who may run it.
        Existing submissions are left as they are.
        """
        def work(session: StoreSession, now: datetime) -> Outcome:
            closed = assignment_rules.close_past_due_assignments(session.list_published_assignments(), now)
            for assignment in closed:
                session.save_assignment(assignment)
                logger.info(f"Closed past-due assignment {assignment.id} in course {assignment.course_id}")
            if closed:
                logger.info(f"Closed {len(closed)} past-due assignment(s)")
            else:
                logger.debug("No past-due assignments to close")
            return Outcome.success("assignments", closed)

        return self._run("close past-due assignments", work)

    # ------------------------------------------------------------------
    # Submissions and grading
    # ------------------------------------------------------------------

    def request_submit(
        self,
        assignment_id: str,
        learner_id: str,
        content: Optional[str] = None,
        link: Optional[str] = None,
    ) -> Outcome:
        """
        Submit (or resubmit) work for an assignment.

        Returns 201 when a submission row is created and 200 when an
        existing row is rewritten by a resubmission.
        """
        def work(session: StoreSession, now: datetime) -> Outcome:
            assignment = session.get_assignment(assignment_id)
            if assignment is None:
                return Outcome.failure(reject(ErrorCode.ASSIGNMENT_NOT_FOUND))
            if session.get_course(assignment.course_id) is None:
                return Outcome.failure(reject(ErrorCode.COURSE_NOT_FOUND))
            if not session.is_actively_enrolled(learner_id, assignment.course_id):
                return Outcome.failure(reject(
                    ErrorCode.INSUFFICIENT_PERMISSIONS,
                    f"Learner {learner_id} is not enrolled in course {assignment.course_id}",
                ))

            existing = session.get_submission_for(assignment_id, learner_id)
            decision = submission_rules.submit(
                assignment,
                existing,
                learner_id,
                now,
                submission_id=self._new_id(),
                content=content,
                link=link,
            )
            if not decision.ok:
                return Outcome.failure(decision.rejection)

            stored = session.save_submission(decision.value)
            if existing is None:
                logger.info(f"Learner {learner_id} submitted assignment {assignment_id}")
                return Outcome.success("submission", stored, status=201)
            logger.info(f"Learner {learner_id} resubmitted assignment {assignment_id}")
            return Outcome.success("submission", stored)

        return self._run("submit", work)

    def request_grade(
        self,
        submission_id: str,
        grader_id: str,
        score: Any,
        feedback: Any,
        status: Any = None,
    ) -> Outcome:
        """
        Grade a submission; only the course owner may grade.

        The row keeps the latest grade and every call is appended to the
        grade log.
        """
        def work(session: StoreSession, now: datetime) -> Outcome:
            submission = session.get_submission(submission_id)
            if submission is None:
                return Outcome.failure(reject(ErrorCode.SUBMISSION_NOT_FOUND))
            _, rejection = self._owned_course(session, submission.course_id, grader_id)
            if rejection:
                return Outcome.failure(rejection)

            decision = submission_rules.grade(submission, score, feedback, now, status=status)
            if not decision.ok:
                return Outcome.failure(decision.rejection)

            graded = decision.value
            stored = session.save_submission(graded)
            session.append_grade_event(GradeEvent(
                id=self._new_id(),
                submission_id=graded.id,
                grader_id=grader_id,
                score=graded.score,
                feedback=graded.feedback,
                status=graded.status,
                graded_at=now,
            ))
            logger.info(f"Submission {submission_id} graded {graded.score} ({graded.status.value})")
            return Outcome.success("submission", stored)

        return self._run("grade", work)

    def request_submission_stats(self, assignment_id: str, actor_id: str) -> Outcome:
        def work(session: StoreSession, now: datetime) -> Outcome:
            assignment, rejection = self._owned_assignment(session, assignment_id, actor_id)
            if rejection:
                return Outcome.failure(rejection)
            stats = submission_rules.summarize_submissions(
                assignment.id,
                session.list_submissions(assignment.id),
            )
            return Outcome.success("stats", stats)

        return self._run("submission stats", work)

    def request_course_total(self, course_id: str, actor_id: str, learner_id: str) -> Outcome:
        """Weighted course score for a learner; visible to the learner and the course owner."""
        def work(session: StoreSession, now: datetime) -> Outcome:
            course = session.get_course(course_id)
            if course is None:
                return Outcome.failure(reject(ErrorCode.COURSE_NOT_FOUND))
            if actor_id != learner_id and not course.is_owned_by(actor_id):
                return Outcome.failure(reject(
                    ErrorCode.INSUFFICIENT_PERMISSIONS,
                    f"Actor {actor_id} cannot view totals of learner {learner_id}",
                ))
            total = submission_rules.course_total(
                session.list_assignments(course_id),
                session.list_learner_submissions(course_id, learner_id),
            )
            return Outcome.success("total", {
                "course_id": course_id,
                "learner_id": learner_id,
                "score": total,
            })

        return self._run("course total", work)

    # ------------------------------------------------------------------
    # Enrollments
    # ------------------------------------------------------------------

    def request_enroll(self, course_id: str, learner_id: str) -> Outcome:
        """
        Enroll a learner in a published course.

        Returns 201 for a new row and 200 when a cancelled row is reactivated.
        """
        def work(session: StoreSession, now: datetime) -> Outcome:
            course = session.get_course(course_id)
            if course is None:
                return Outcome.failure(reject(ErrorCode.COURSE_NOT_FOUND))

            existing = session.get_enrollment_for(learner_id, course_id)
            decision = enrollment_rules.enroll(course, existing, learner_id, now, self._new_id())
            if not decision.ok:
                return Outcome.failure(decision.rejection)

            stored = session.save_enrollment(decision.value)
            delta = enrollment_rules.enrollment_delta(existing, stored)
            logger.info(
                f"Learner {learner_id} enrolled in course {course_id} "
                f"(active enrollments {course.enrollment_count + delta})"
            )
            return Outcome.success("enrollment", stored, status=201 if existing is None else 200)

        return self._run("enroll", work)

    def request_cancel_enrollment(self, enrollment_id: str, learner_id: str) -> Outcome:
        def work(session: StoreSession, now: datetime) -> Outcome:
            enrollment = session.get_enrollment(enrollment_id)
            if enrollment is None:
                return Outcome.failure(reject(ErrorCode.ENROLLMENT_NOT_FOUND))

            decision = enrollment_rules.cancel_enrollment(enrollment, learner_id, now)
            if not decision.ok:
                return Outcome.failure(decision.rejection)

            stored = session.save_enrollment(decision.value)
            logger.info(f"Learner {learner_id} cancelled enrollment {enrollment_id}")
            return Outcome.success("enrollment", stored)

        return self._run("cancel enrollment", work)

    # ------------------------------------------------------------------
    # Moderation reports
    # ------------------------------------------------------------------

    def request_report_create(
        self,
        reporter_id: str,
        target_type: Any,
        target_id: Any,
        reason: Any,
        content: Optional[str] = None,
    ) -> Outcome:
        """File a report; it starts as received."""
        def work(session: StoreSession, now: datetime) -> Outcome:
            decision = report_rules.create_report(
                self._new_id(),
                reporter_id,
                target_type,
                target_id,
                reason,
                now,
                content=content,
            )
            if not decision.ok:
                return Outcome.failure(decision.rejection)
            session.save_report(decision.value)
            logger.info(f"Report {decision.value.id} filed against {target_type} {target_id}")
            return Outcome.success("report", decision.value, status=201)

        return self._run("report create", work)

    def request_report_transition(self, report_id: str, operator_id: str, target_status: Any) -> Outcome:
        """
        Move a report through moderation.

        The caller is responsible for restricting this to operators.
        """
        def work(session: StoreSession, now: datetime) -> Outcome:
            target, rejection = self._parse_status(ReportStatus, target_status)
            if rejection:
                return Outcome.failure(rejection)
            report = session.get_report(report_id)
            if report is None:
                return Outcome.failure(reject(ErrorCode.REPORT_NOT_FOUND))

            decision = report_rules.transition_report(report, target, operator_id, now)
            if not decision.ok:
                return Outcome.failure(decision.rejection)
            session.save_report(decision.value)
            logger.info(f"Report {report_id}: {report.status.value} -> {target.value} by {operator_id}")
            return Outcome.success("report", decision.value)

        return self._run("report transition", work)
