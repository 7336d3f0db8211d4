"""
SQLite-based persistent store for courses, assignments, submissions,
enrollments and moderation reports.

Every unit of work runs inside `transaction()`, which takes the write
lock up front (BEGIN IMMEDIATE) so that a check-then-write sequence is
atomic with respect to other writers. Soft-deleted rows are filtered
by the live_* views; reads never repeat the `deleted_at IS NULL`
predicate themselves.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..domain.models import (
    Assignment,
    Course,
    Enrollment,
    GradeEvent,
    Metadata,
    MetadataKind,
    Report,
    Submission,
    SubmissionStatus,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when store operations fail."""
    pass


class StoreSession:
    """
    Row access bound to one open transaction.

    Obtained from `LmsStore.transaction()`; not meant to outlive it.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def _one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return self._conn.execute(sql, params).fetchone()

    def _all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self._conn.execute(sql, params).fetchall()

    def _upsert(self, table: str, row: dict, conflict: str, immutable: tuple[str, ...]) -> None:
        columns = list(row)
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c not in immutable)
        self._conn.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT({conflict}) DO UPDATE SET {updates}",
            tuple(row.values()),
        )

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    def get_course(self, course_id: str) -> Optional[Course]:
        row = self._one("SELECT * FROM live_courses WHERE id = ?", (course_id,))
        return Course.from_dict(dict(row)) if row else None

    def list_owner_course_titles(self, owner_id: str, exclude_id: Optional[str] = None) -> list[str]:
        rows = self._all(
            "SELECT title FROM live_courses WHERE owner_id = ? AND id != ?",
            (owner_id, exclude_id or ""),
        )
        return [row["title"] for row in rows]

    def save_course(self, course: Course) -> None:
        row = course.to_dict()
        # derived from enrollments by the course views
        row.pop("enrollment_count")
        self._upsert("courses", row, "id", immutable=("id", "owner_id", "created_at"))

    # ------------------------------------------------------------------
    # Metadata (categories and difficulties)
    # ------------------------------------------------------------------

    def get_metadata(self, metadata_id: Optional[int]) -> Optional[Metadata]:
        if metadata_id is None:
            return None
        row = self._one("SELECT * FROM course_metadata WHERE id = ?", (metadata_id,))
        if not row:
            return None
        return Metadata(
            id=row["id"],
            kind=MetadataKind(row["kind"]),
            name=row["name"],
            is_active=bool(row["is_active"]),
        )

    def save_metadata(self, metadata: Metadata) -> None:
        self._upsert(
            "course_metadata",
            {
                "id": metadata.id,
                "kind": metadata.kind.value,
                "name": metadata.name,
                "is_active": 1 if metadata.is_active else 0,
            },
            "id",
            immutable=("id", "kind"),
        )

    def count_courses_using_metadata(self, metadata: Metadata) -> int:
        column = "category_id" if metadata.kind == MetadataKind.CATEGORY else "difficulty_id"
        row = self._one(f"SELECT COUNT(*) FROM live_courses WHERE {column} = ?", (metadata.id,))
        return row[0]

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        row = self._one("SELECT * FROM live_assignments WHERE id = ?", (assignment_id,))
        return Assignment.from_dict(dict(row)) if row else None

    def list_assignments(self, course_id: str) -> list[Assignment]:
        rows = self._all(
            "SELECT * FROM live_assignments WHERE course_id = ? ORDER BY created_at, id",
            (course_id,),
        )
        return [Assignment.from_dict(dict(row)) for row in rows]

    def list_published_assignments(self) -> list[Assignment]:
        rows = self._all(
            "SELECT * FROM live_assignments WHERE status = 'published' ORDER BY due_date, id"
        )
        return [Assignment.from_dict(dict(row)) for row in rows]

    def save_assignment(self, assignment: Assignment) -> None:
        self._upsert(
            "assignments",
            assignment.to_dict(),
            "id",
            immutable=("id", "course_id", "created_at"),
        )

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        row = self._one("SELECT * FROM submissions WHERE id = ?", (submission_id,))
        return Submission.from_dict(dict(row)) if row else None

    def get_submission_for(self, assignment_id: str, learner_id: str) -> Optional[Submission]:
        row = self._one(
            "SELECT * FROM submissions WHERE assignment_id = ? AND learner_id = ?",
            (assignment_id, learner_id),
        )
        return Submission.from_dict(dict(row)) if row else None

    def list_submissions(self, assignment_id: str) -> list[Submission]:
        rows = self._all(
            "SELECT * FROM submissions WHERE assignment_id = ? ORDER BY submitted_at DESC",
            (assignment_id,),
        )
        return [Submission.from_dict(dict(row)) for row in rows]

    def list_learner_submissions(self, course_id: str, learner_id: str) -> list[Submission]:
        rows = self._all(
            "SELECT * FROM submissions WHERE course_id = ? AND learner_id = ?",
            (course_id, learner_id),
        )
        return [Submission.from_dict(dict(row)) for row in rows]

    def save_submission(self, submission: Submission) -> Submission:
        """
        Upsert keyed on (assignment_id, learner_id).

        A second writer for the same pair updates the existing row
        instead of inserting a duplicate; the stored row is returned.
        """
        self._upsert(
            "submissions",
            submission.to_dict(),
            "assignment_id, learner_id",
            immutable=("id", "assignment_id", "course_id", "learner_id"),
        )
        return self.get_submission_for(submission.assignment_id, submission.learner_id)

    def append_grade_event(self, event: GradeEvent) -> None:
        self._conn.execute(
            """
            INSERT INTO grade_events (id, submission_id, grader_id, score, feedback, status, graded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.submission_id,
                event.grader_id,
                event.score,
                event.feedback,
                event.status.value,
                event.graded_at.isoformat(),
            ),
        )

    def list_grade_events(self, submission_id: str) -> list[GradeEvent]:
        rows = self._all(
            "SELECT * FROM grade_events WHERE submission_id = ? ORDER BY seq",
            (submission_id,),
        )
        return [
            GradeEvent(
                id=row["id"],
                submission_id=row["submission_id"],
                grader_id=row["grader_id"],
                score=row["score"],
                feedback=row["feedback"],
                status=SubmissionStatus(row["status"]),
                graded_at=parse_timestamp(row["graded_at"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Enrollments
    # ------------------------------------------------------------------

    def get_enrollment(self, enrollment_id: str) -> Optional[Enrollment]:
        row = self._one("SELECT * FROM enrollments WHERE id = ?", (enrollment_id,))
        return Enrollment.from_dict(dict(row)) if row else None

    def get_enrollment_for(self, learner_id: str, course_id: str) -> Optional[Enrollment]:
        row = self._one(
            "SELECT * FROM enrollments WHERE learner_id = ? AND course_id = ?",
            (learner_id, course_id),
        )
        return Enrollment.from_dict(dict(row)) if row else None

    def is_actively_enrolled(self, learner_id: str, course_id: str) -> bool:
        enrollment = self.get_enrollment_for(learner_id, course_id)
        return enrollment is not None and enrollment.is_active

    def save_enrollment(self, enrollment: Enrollment) -> Enrollment:
        """Upsert keyed on (learner_id, course_id); one row per pair."""
        self._upsert(
            "enrollments",
            enrollment.to_dict(),
            "learner_id, course_id",
            immutable=("id", "learner_id", "course_id"),
        )
        return self.get_enrollment_for(enrollment.learner_id, enrollment.course_id)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def get_report(self, report_id: str) -> Optional[Report]:
        row = self._one("SELECT * FROM reports WHERE id = ?", (report_id,))
        return Report.from_dict(dict(row)) if row else None

    def save_report(self, report: Report) -> None:
        self._upsert(
            "reports",
            report.to_dict(),
            "id",
            immutable=("id", "reporter_id", "target_type", "target_id", "created_at"),
        )


class LmsStore:
    """
    SQLite-based persistent store.

    Features:
    - One write transaction per unit of work (BEGIN IMMEDIATE)
    - Uniqueness enforced by constraints as well as by the rules
    - Live-row views centralize the soft-delete filter
    - Automatic schema creation and versioning

    Usage:
        store = LmsStore(Path("data/coursework.db"))

        with store.transaction() as session:
            course = session.get_course(course_id)
            session.save_course(updated_course)
    """

    SCHEMA_VERSION = 2

    CREATE_TABLES_SQL = [
        """
        CREATE TABLE IF NOT EXISTS course_metadata (
            id INTEGER PRIMARY KEY,
            kind TEXT NOT NULL CHECK (kind IN ('category', 'difficulty')),
            name TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            UNIQUE (kind, name)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS courses (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            category_id INTEGER REFERENCES course_metadata(id),
            difficulty_id INTEGER REFERENCES course_metadata(id),
            status TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'published', 'archived')),
            created_at TEXT NOT NULL,
            updated_at TEXT,
            published_at TEXT,
            archived_at TEXT,
            deleted_at TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS assignments (
            id TEXT PRIMARY KEY,
            course_id TEXT NOT NULL REFERENCES courses(id),
            title TEXT NOT NULL,
            description TEXT,
            instructions TEXT,
            due_date TEXT NOT NULL,
            points_weight INTEGER NOT NULL CHECK (points_weight BETWEEN 0 AND 100),
            status TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'published', 'closed')),
            allow_late INTEGER NOT NULL DEFAULT 0,
            allow_resubmission INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT,
            published_at TEXT,
            closed_at TEXT,
            deleted_at TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS submissions (
            id TEXT PRIMARY KEY,
            assignment_id TEXT NOT NULL REFERENCES assignments(id),
            course_id TEXT NOT NULL REFERENCES courses(id),
            learner_id TEXT NOT NULL,
            content TEXT,
            link TEXT,
            status TEXT NOT NULL DEFAULT 'submitted'
                CHECK (status IN ('submitted', 'graded', 'resubmission_required')),
            is_late INTEGER NOT NULL DEFAULT 0,
            score REAL CHECK (score IS NULL OR score BETWEEN 0 AND 100),
            feedback TEXT,
            submitted_at TEXT NOT NULL,
            graded_at TEXT,
            updated_at TEXT,
            UNIQUE (assignment_id, learner_id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS grade_events (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            submission_id TEXT NOT NULL REFERENCES submissions(id),
            grader_id TEXT NOT NULL,
            score REAL NOT NULL,
            feedback TEXT NOT NULL,
            status TEXT NOT NULL,
            graded_at TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS enrollments (
            id TEXT PRIMARY KEY,
            learner_id TEXT NOT NULL,
            course_id TEXT NOT NULL REFERENCES courses(id),
            status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'cancelled')),
            enrolled_at TEXT NOT NULL,
            cancelled_at TEXT,
            UNIQUE (learner_id, course_id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS reports (
            id TEXT PRIMARY KEY,
            reporter_id TEXT NOT NULL,
            target_type TEXT NOT NULL
                CHECK (target_type IN ('course', 'assignment', 'submission', 'user')),
            target_id TEXT NOT NULL,
            reason TEXT NOT NULL,
            content TEXT,
            status TEXT NOT NULL DEFAULT 'received'
                CHECK (status IN ('received', 'investigating', 'resolved')),
            created_at TEXT NOT NULL,
            updated_at TEXT,
            resolved_at TEXT,
            resolved_by TEXT
        )
        """,
    ]

    CREATE_VIEWS_SQL = [
        """
        CREATE VIEW IF NOT EXISTS course_rows AS
        SELECT c.*,
               (SELECT COUNT(*) FROM enrollments e
                 WHERE e.course_id = c.id AND e.status = 'active') AS enrollment_count
        FROM courses c
        """,
        "CREATE VIEW IF NOT EXISTS live_courses AS SELECT * FROM course_rows WHERE deleted_at IS NULL",
        "CREATE VIEW IF NOT EXISTS live_assignments AS SELECT * FROM assignments WHERE deleted_at IS NULL",
    ]

    CREATE_INDEXES_SQL = [
        "CREATE INDEX IF NOT EXISTS idx_courses_owner ON courses(owner_id)",
        "CREATE INDEX IF NOT EXISTS idx_assignments_course ON assignments(course_id)",
        "CREATE INDEX IF NOT EXISTS idx_submissions_course_learner ON submissions(course_id, learner_id)",
        "CREATE INDEX IF NOT EXISTS idx_enrollments_course ON enrollments(course_id, status)",
        "CREATE INDEX IF NOT EXISTS idx_grade_events_submission ON grade_events(submission_id)",
        "CREATE INDEX IF NOT EXISTS idx_reports_status ON reports(status)",
    ]

    CREATE_METADATA_TABLE_SQL = """
        CREATE TABLE IF NOT EXISTS _metadata (
            key TEXT PRIMARY KEY,
            value TEXT
        )
    """

    def __init__(self, database_path: Path, timeout: float = 30.0):
        """
        Initialize the store.

        Args:
            database_path: Path to SQLite database file
            timeout: Seconds to wait for the write lock before failing
        """
        self.database_path = Path(database_path)
        self.timeout = timeout

        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        self._initialize_database()

        logger.info(f"Store initialized at {self.database_path}")

    def __repr__(self) -> str:
        return f"LmsStore(database_path='{self.database_path}')"

    def _initialize_database(self) -> None:
        """Create tables, views and indexes, and record the schema version."""
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()

                cursor.execute(self.CREATE_METADATA_TABLE_SQL)

                cursor.execute("SELECT value FROM _metadata WHERE key = 'schema_version'")
                row = cursor.fetchone()
                current_version = int(row[0]) if row else 0

                for table_sql in self.CREATE_TABLES_SQL:
                    cursor.execute(table_sql)
                for view_sql in self.CREATE_VIEWS_SQL:
                    cursor.execute(view_sql)
                for index_sql in self.CREATE_INDEXES_SQL:
                    cursor.execute(index_sql)

                if current_version < self.SCHEMA_VERSION:
                    logger.info(f"Upgrading schema from v{current_version} to v{self.SCHEMA_VERSION}")
                    cursor.execute(
                        "INSERT OR REPLACE INTO _metadata (key, value) VALUES (?, ?)",
                        ("schema_version", str(self.SCHEMA_VERSION)),
                    )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to initialize store at {self.database_path}: {e}") from e

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Get a database connection with proper settings.

        The connection runs in autocommit mode; `transaction()` issues
        BEGIN/COMMIT explicitly.
        """
        conn = sqlite3.connect(
            self.database_path,
            timeout=self.timeout,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[StoreSession]:
        """
        Open a write transaction.

        Commits when the block exits normally and rolls back otherwise.
        SQLite failures surface as StoreError; any other exception
        raised inside the block propagates unchanged after rollback.
        """
        try:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield StoreSession(conn)
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
        except sqlite3.Error as e:
            logger.error(f"Store transaction failed: {e}")
            raise StoreError(f"Store transaction failed: {e}") from e

    def seed_metadata(self, *entries: Metadata) -> None:
        """Insert or refresh category and difficulty rows."""
        with self.transaction() as session:
            for entry in entries:
                session.save_metadata(entry)
