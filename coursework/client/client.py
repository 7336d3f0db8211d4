"""
HTTP client for a remote LMS request layer.

Speaks the same request/response contracts the orchestrator renders
with `Outcome.to_response()`. Tokens are passed via configuration and
never logged.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..domain.models import Assignment, AssignmentUpdate, Course, Enrollment, Submission, format_timestamp
from ..domain.outcomes import ErrorCode

logger = logging.getLogger(__name__)

# request bodies use the camelCase keys of the HTTP contract
_CAMEL_CASE = {
    "due_date": "dueDate",
    "points_weight": "pointsWeight",
    "allow_late": "allowLate",
    "allow_resubmission": "allowResubmission",
}


class LmsAPIError(Exception):
    """Raised when the LMS API returns an error."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        response: Optional[dict] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.response = response
        # None for codes this engine does not define
        self.error_code = ErrorCode.from_code(code) if code else None


class LmsClient:
    """
    Client for the LMS lifecycle API.

    Handles:
    - Bearer token authentication
    - Retry of idempotent requests on transient failures
    - Mapping of `{"error": {"code", "message"}}` bodies onto LmsAPIError

    Usage:
        with LmsClient(base_url="https://lms.example.com", access_token="...") as client:
            course = client.transition_course(course_id, "published")
            print(course.published_at)
    """

    COURSE_STATUS_ENDPOINT = "/api/courses/{course_id}/status"
    COURSE_ASSIGNMENTS_ENDPOINT = "/api/courses/{course_id}/assignments"
    ASSIGNMENT_ENDPOINT = "/api/assignments/{assignment_id}"
    ASSIGNMENT_STATUS_ENDPOINT = "/api/assignments/{assignment_id}/status"
    SUBMIT_ENDPOINT = "/api/courses/{course_id}/assignments/{assignment_id}/submit"
    GRADE_ENDPOINT = "/api/submissions/{submission_id}/grade"
    ENROLLMENTS_ENDPOINT = "/api/enrollments"
    ENROLLMENT_ENDPOINT = "/api/enrollments/{enrollment_id}"

    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = 30.0,
        max_retries: int = 3,
    ):
        """
        Initialize LMS client.

        Args:
            base_url: LMS instance URL (e.g., https://lms.example.com)
            access_token: Bearer token (never logged)
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts for idempotent requests
        """
        self.base_url = base_url.rstrip("/")
        self._access_token = access_token
        self.timeout = timeout

        self._session = requests.Session()

        # POST and PATCH are not retried; a lost response could apply twice
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "PUT", "DELETE"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

        self._session.headers.update({
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

        logger.info(f"LMS client initialized for {self.base_url}")

    def __repr__(self) -> str:
        """Never expose token in repr."""
        return f"LmsClient(base_url='{self.base_url}')"

    def _make_request(self, method: str, endpoint: str, payload: Optional[dict] = None) -> dict:
        """
        Make an authenticated request.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            payload: JSON body

        Returns:
            Parsed JSON response (empty dict for an empty body)

        Raises:
            LmsAPIError: If the request fails or the API rejects it
        """
        url = urljoin(self.base_url, endpoint)

        try:
            response = self._session.request(method, url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            error_msg = f"LMS request failed: {e}"
            logger.error(error_msg)
            raise LmsAPIError(error_msg) from e

        if response.ok:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise LmsAPIError(
                    f"LMS returned invalid JSON for {method} {endpoint}",
                    status_code=response.status_code,
                ) from e

        code = None
        message = f"LMS API error: HTTP {response.status_code}"
        body = None
        try:
            body = response.json()
            error = body.get("error", body) if isinstance(body, dict) else {}
            if isinstance(error, dict):
                code = error.get("code")
                message = error.get("message") or message
        except ValueError:
            pass

        log = logger.warning if response.status_code < 500 else logger.error
        log(f"{method} {endpoint} failed with {response.status_code} {code or ''}".rstrip())
        raise LmsAPIError(message, status_code=response.status_code, code=code, response=body)

    @staticmethod
    def _unwrap(data: dict, resource: str) -> dict:
        """Accept both `{"course": {...}}` and a bare entity body."""
        inner = data.get(resource)
        return inner if isinstance(inner, dict) else data

    def transition_course(self, course_id: str, target_status: str) -> Course:
        logger.debug(f"Requesting course {course_id} -> {target_status}")
        data = self._make_request(
            "PATCH",
            self.COURSE_STATUS_ENDPOINT.format(course_id=course_id),
            {"status": target_status},
        )
        return Course.from_dict(self._unwrap(data, "course"))

    def create_assignment(
        self,
        course_id: str,
        title: str,
        due_date: datetime,
        points_weight: int,
        description: Optional[str] = None,
        allow_late: bool = False,
        allow_resubmission: bool = False,
    ) -> Assignment:
        payload = {
            "title": title,
            "description": description,
            "dueDate": format_timestamp(due_date),
            "pointsWeight": points_weight,
            "allowLate": allow_late,
            "allowResubmission": allow_resubmission,
        }
        data = self._make_request(
            "POST",
            self.COURSE_ASSIGNMENTS_ENDPOINT.format(course_id=course_id),
            payload,
        )
        return Assignment.from_dict(self._unwrap(data, "assignment"))

    def update_assignment(self, assignment_id: str, update: AssignmentUpdate) -> Assignment:
        """Send only the fields set on `update`."""
        payload: dict[str, Any] = {}
        for name, value in update.changes().items():
            payload[_CAMEL_CASE.get(name, name)] = format_timestamp(value) if isinstance(value, datetime) else value
        data = self._make_request(
            "PUT",
            self.ASSIGNMENT_ENDPOINT.format(assignment_id=assignment_id),
            payload,
        )
        return Assignment.from_dict(self._unwrap(data, "assignment"))

    def transition_assignment(self, assignment_id: str, target_status: str) -> Assignment:
        data = self._make_request(
            "PATCH",
            self.ASSIGNMENT_STATUS_ENDPOINT.format(assignment_id=assignment_id),
            {"status": target_status},
        )
        return Assignment.from_dict(self._unwrap(data, "assignment"))

    def submit(
        self,
        course_id: str,
        assignment_id: str,
        content: Optional[str] = None,
        link: Optional[str] = None,
    ) -> Submission:
        payload = {key: value for key, value in (("content", content), ("link", link)) if value is not None}
        data = self._make_request(
            "POST",
            self.SUBMIT_ENDPOINT.format(course_id=course_id, assignment_id=assignment_id),
            payload,
        )
        return Submission.from_dict(self._unwrap(data, "submission"))

    def grade(
        self,
        submission_id: str,
        score: float,
        feedback: str,
        status: Optional[str] = None,
    ) -> Submission:
        payload: dict[str, Any] = {"score": score, "feedback": feedback}
        if status:
            payload["status"] = status
        data = self._make_request(
            "PATCH",
            self.GRADE_ENDPOINT.format(submission_id=submission_id),
            payload,
        )
        return Submission.from_dict(self._unwrap(data, "submission"))

    def enroll(self, course_id: str) -> Enrollment:
        data = self._make_request("POST", self.ENROLLMENTS_ENDPOINT, {"courseId": course_id})
        return Enrollment.from_dict(self._unwrap(data, "enrollment"))

    def cancel_enrollment(self, enrollment_id: str) -> Optional[Enrollment]:
        """Returns the cancelled enrollment, or None when the API answers with no body."""
        data = self._make_request(
            "DELETE",
            self.ENROLLMENT_ENDPOINT.format(enrollment_id=enrollment_id),
        )
        if not data:
            return None
        return Enrollment.from_dict(self._unwrap(data, "enrollment"))

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()
        logger.debug("LMS client session closed")

    def __enter__(self) -> "LmsClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
