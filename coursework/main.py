#!/usr/bin/env python3
"""
Coursework lifecycle engine - command line entry point

Runs lifecycle requests against the local store, or against a remote
LMS API with --remote. Every command prints the response mapping as
JSON on stdout; logs go to stderr.

Usage:
    coursework course-create --actor INSTRUCTOR --title "Intro"
    coursework course-status COURSE_ID published --actor INSTRUCTOR
    coursework assignment-create COURSE_ID --actor INSTRUCTOR --title "HW 1" \\
        --due 2030-01-20T23:59:00Z --weight 40
    coursework enroll COURSE_ID --learner LEARNER
    coursework submit ASSIGNMENT_ID --learner LEARNER --content "answer"
    coursework grade SUBMISSION_ID --actor INSTRUCTOR --score 85 --feedback "Good"
    coursework stats ASSIGNMENT_ID --actor INSTRUCTOR
    coursework close-past-due
    coursework report-create --actor USER --target-type course --target-id COURSE_ID --reason "Spam"
    coursework report-status REPORT_ID resolved --actor OPERATOR

Environment Variables:
    STORAGE_DATABASE_PATH   - SQLite database file (default: data/coursework.db)
    WEIGHT_UNIT             - percent (default) or fraction
    LMS_API_BASE_URL        - Remote LMS URL, required for --remote
    LMS_API_TOKEN           - Remote LMS bearer token
    LOG_LEVEL               - Logging level (default: INFO)
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from config.settings import ConfigurationError, Settings, load_settings
from .client.client import LmsAPIError, LmsClient
from .domain.models import parse_timestamp
from .domain.outcomes import ErrorCategory, Outcome
from .engine.orchestrator import LifecycleOrchestrator
from .storage.store import LmsStore, StoreError

# commands that have no remote endpoint
LOCAL_ONLY_COMMANDS = {"course-create", "stats", "close-past-due", "report-create", "report-status"}


def setup_logging(level: str = "INFO", verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        level: Level name from settings
        verbose: If True, force DEBUG level logging
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
        force=True,
    )

    # Reduce noise from external libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coursework",
        description="Course, assignment, submission and enrollment lifecycle requests",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--env",
        type=Path,
        help="Path to .env file (default: .env in current directory)",
    )
    parser.add_argument(
        "--remote",
        action="store_true",
        help="Send the request to the LMS API instead of the local store",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    course_create = commands.add_parser("course-create", help="Create a draft course")
    course_create.add_argument("--actor", required=True, help="Owning instructor id")
    course_create.add_argument("--title", required=True)
    course_create.add_argument("--description")
    course_create.add_argument("--category-id", type=int)
    course_create.add_argument("--difficulty-id", type=int)

    course_status = commands.add_parser("course-status", help="Change course status")
    course_status.add_argument("course_id")
    course_status.add_argument("status", help="draft, published or archived")
    course_status.add_argument("--actor", help="Owning instructor id (local mode)")

    assignment_create = commands.add_parser("assignment-create", help="Create an assignment")
    assignment_create.add_argument("course_id")
    assignment_create.add_argument("--actor", help="Owning instructor id (local mode)")
    assignment_create.add_argument("--title", required=True)
    assignment_create.add_argument("--due", required=True, help="ISO-8601 due date")
    assignment_create.add_argument("--weight", type=float, required=True, help="Weight in the configured unit")
    assignment_create.add_argument("--description")
    assignment_create.add_argument("--allow-late", action="store_true")
    assignment_create.add_argument("--allow-resubmission", action="store_true")
    assignment_create.add_argument("--publish", action="store_true", help="Publish on create (local mode)")

    assignment_status = commands.add_parser("assignment-status", help="Change assignment status")
    assignment_status.add_argument("assignment_id")
    assignment_status.add_argument("status", help="published or closed")
    assignment_status.add_argument("--actor", help="Owning instructor id (local mode)")

    enroll = commands.add_parser("enroll", help="Enroll a learner in a course")
    enroll.add_argument("course_id")
    enroll.add_argument("--learner", help="Learner id (local mode)")

    submit = commands.add_parser("submit", help="Submit or resubmit work")
    submit.add_argument("assignment_id")
    submit.add_argument("--learner", help="Learner id (local mode)")
    submit.add_argument("--course", help="Course id (remote mode)")
    submit.add_argument("--content")
    submit.add_argument("--link")

    grade = commands.add_parser("grade", help="Grade a submission")
    grade.add_argument("submission_id")
    grade.add_argument("--actor", help="Grading instructor id (local mode)")
    grade.add_argument("--score", type=float, required=True)
    grade.add_argument("--feedback", required=True)
    grade.add_argument("--status", choices=["graded", "resubmission_required"])

    stats = commands.add_parser("stats", help="Submission statistics for an assignment")
    stats.add_argument("assignment_id")
    stats.add_argument("--actor", required=True, help="Owning instructor id")

    commands.add_parser("close-past-due", help="Close published assignments whose due date has passed")

    report_create = commands.add_parser("report-create", help="File a moderation report")
    report_create.add_argument("--actor", required=True, help="Reporting user id")
    report_create.add_argument("--target-type", required=True, help="course, assignment, submission or user")
    report_create.add_argument("--target-id", required=True)
    report_create.add_argument("--reason", required=True)
    report_create.add_argument("--content")

    report_status = commands.add_parser("report-status", help="Change moderation report status")
    report_status.add_argument("report_id")
    report_status.add_argument("status", help="received, investigating or resolved")
    report_status.add_argument("--actor", required=True, help="Operator id")

    return parser


def run_local(args: argparse.Namespace, orchestrator: LifecycleOrchestrator) -> Outcome:
    """Dispatch a parsed command to the orchestrator."""
    if args.command == "course-create":
        return orchestrator.request_course_create(
            args.actor,
            args.title,
            description=args.description,
            category_id=args.category_id,
            difficulty_id=args.difficulty_id,
        )
    if args.command == "course-status":
        return orchestrator.request_course_transition(args.course_id, args.actor, args.status)
    if args.command == "assignment-create":
        return orchestrator.request_assignment_create(
            args.course_id,
            args.actor,
            title=args.title,
            due_date=args.due,
            points_weight=args.weight,
            description=args.description,
            allow_late=args.allow_late,
            allow_resubmission=args.allow_resubmission,
            publish=args.publish,
        )
    if args.command == "assignment-status":
        return orchestrator.request_assignment_transition(args.assignment_id, args.actor, args.status)
    if args.command == "enroll":
        return orchestrator.request_enroll(args.course_id, args.learner)
    if args.command == "submit":
        return orchestrator.request_submit(
            args.assignment_id,
            args.learner,
            content=args.content,
            link=args.link,
        )
    if args.command == "grade":
        return orchestrator.request_grade(
            args.submission_id,
            args.actor,
            args.score,
            args.feedback,
            status=args.status,
        )
    if args.command == "stats":
        return orchestrator.request_submission_stats(args.assignment_id, args.actor)
    if args.command == "close-past-due":
        return orchestrator.request_close_past_due_assignments()
    if args.command == "report-create":
        return orchestrator.request_report_create(
            args.actor,
            args.target_type,
            args.target_id,
            args.reason,
            content=args.content,
        )
    if args.command == "report-status":
        return orchestrator.request_report_transition(args.report_id, args.actor, args.status)
    raise ValueError(f"Unknown command: {args.command}")


def run_remote(args: argparse.Namespace, client: LmsClient) -> dict:
    """Send a parsed command to the LMS API and render the returned entity."""
    if args.command == "course-status":
        return {"course": client.transition_course(args.course_id, args.status).to_dict()}
    if args.command == "assignment-create":
        assignment = client.create_assignment(
            args.course_id,
            title=args.title,
            due_date=parse_timestamp(args.due),
            points_weight=args.weight,
            description=args.description,
            allow_late=args.allow_late,
            allow_resubmission=args.allow_resubmission,
        )
        return {"assignment": assignment.to_dict()}
    if args.command == "assignment-status":
        return {"assignment": client.transition_assignment(args.assignment_id, args.status).to_dict()}
    if args.command == "enroll":
        return {"enrollment": client.enroll(args.course_id).to_dict()}
    if args.command == "submit":
        if not args.course:
            raise ValueError("--course is required for remote submissions")
        submission = client.submit(args.course, args.assignment_id, content=args.content, link=args.link)
        return {"submission": submission.to_dict()}
    if args.command == "grade":
        submission = client.grade(args.submission_id, args.score, args.feedback, status=args.status)
        return {"submission": submission.to_dict()}
    raise ValueError(f"{args.command} is not available with --remote")


def _print_response(response: dict) -> None:
    print(json.dumps(response, indent=2, sort_keys=True))


def _missing_local_identity(args: argparse.Namespace) -> Optional[str]:
    for name in ("actor", "learner"):
        if hasattr(args, name) and not getattr(args, name):
            return f"--{name} is required without --remote"
    return None


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for rejection or error)
    """
    args = build_parser().parse_args(argv)

    try:
        settings: Settings = load_settings(env_file=args.env)
    except ConfigurationError as e:
        setup_logging(verbose=args.verbose)
        logging.getLogger(__name__).error(f"Configuration error: {e}")
        return 1

    setup_logging(settings.log_level, verbose=args.verbose)
    logger = logging.getLogger(__name__)

    if args.remote:
        if args.command in LOCAL_ONLY_COMMANDS:
            logger.error(f"{args.command} is not available with --remote")
            return 1
        if settings.api is None:
            logger.error("LMS_API_BASE_URL must be set to use --remote")
            return 1
        try:
            with LmsClient(settings.api.base_url, settings.api.access_token) as client:
                _print_response(run_remote(args, client))
            return 0
        except LmsAPIError as e:
            if e.error_code is None or e.error_code.category == ErrorCategory.INFRASTRUCTURE:
                logger.error(f"LMS request failed: {e}")
            else:
                logger.info(f"LMS rejected {args.command} with {e.code}")
            _print_response({"status": e.status_code, "code": e.code, "message": str(e)})
            return 1
        except ValueError as e:
            logger.error(str(e))
            return 1

    problem = _missing_local_identity(args)
    if problem:
        logger.error(problem)
        return 1

    try:
        store = LmsStore(settings.storage.database_path)
    except StoreError as e:
        logger.error(f"Storage error: {e}")
        return 1

    orchestrator = LifecycleOrchestrator(store, weight_unit=settings.engine.weight_unit)
    outcome = run_local(args, orchestrator)
    _print_response(outcome.to_response())
    return 0 if outcome.ok else 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
