"""
HTTP client for the LMS REST backend.

Each call performs one authenticated request, decodes the JSON body into the
shared Pydantic payload models and hands back the dataclasses from
``orchestrator.models``. Failures are classified into the ``lms_client.errors``
taxonomy so callers never see raw ``httpx`` exceptions.
"""
from __future__ import annotations

import logging
import os
import typing as t
from dataclasses import dataclass

import httpx
from pydantic import BaseModel, ValidationError

from lms_client.errors import AuthRequired, FetchError, FetchTimeout, NotFound
from orchestrator.models import (
    Assignment,
    AssignmentResult,
    AssignmentSubmission,
    Course,
    Lesson,
    Quiz,
    QuizSubmission,
    Role,
)
from services.shared.models import (
    AssignmentDto,
    AssignmentResultDto,
    AssignmentSubmissionDto,
    CourseDto,
    ErrorResponse,
    LessonDto,
    QuizDto,
    QuizSubmissionDto,
)

logger = logging.getLogger(__name__)

# Service URL - configurable via environment variable
LMS_API_BASE_URL = os.getenv("LMS_API_BASE_URL", "http://localhost:8080")

# Timeout for a single request (in seconds)
STANDARD_TIMEOUT = float(os.getenv("LMS_TIMEOUT", "30"))

ModelT = t.TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class AuthContext:
    """Credentials of the current user, handed to the client at construction."""
    token: t.Optional[str]
    username: t.Optional[str] = None
    role: Role = Role.STUDENT

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)


class LMSClient:
    """Async client for the LMS backend.

    Use as an async context manager, or pass an existing ``httpx.AsyncClient``
    whose lifetime the caller manages:

        async with LMSClient(AuthContext(token="...")) as client:
            courses = await client.list_courses_for_current_user()
    """

    def __init__(
        self,
        auth: AuthContext,
        base_url: t.Optional[str] = None,
        timeout: float = STANDARD_TIMEOUT,
        http: t.Optional[httpx.AsyncClient] = None,
        transport: t.Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.auth = auth
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=base_url or LMS_API_BASE_URL,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> LMSClient:
        return self

    async def __aexit__(self, *exc_info: t.Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # -- collection endpoints -------------------------------------------------

    async def list_courses_for_current_user(self) -> list[Course]:
        """Enrolled courses for students, taught courses for teachers."""
        path = "/api/course/my-teaching" if self.auth.role is Role.TEACHER else "/api/course/my"
        dtos = await self._get_list(path, CourseDto)
        return [_to_course(dto) for dto in dtos]

    async def list_assignments_for_course(self, course_id: int) -> list[Assignment]:
        dtos = await self._get_list(f"/api/assignment/course/{course_id}", AssignmentDto)
        return [_to_assignment(dto) for dto in dtos]

    async def list_quizzes_for_course(self, course_id: int) -> list[Quiz]:
        dtos = await self._get_list(f"/api/quiz/course/{course_id}", QuizDto)
        return [_to_quiz(dto) for dto in dtos]

    async def list_lessons_for_course(self, course_id: int) -> list[Lesson]:
        dtos = await self._get_list(f"/api/lessons/course/{course_id}", LessonDto)
        return [_to_lesson(dto) for dto in dtos]

    async def list_submissions_for_assignment(self, assignment_id: int) -> list[AssignmentSubmission]:
        """All student submissions of an assignment (teacher only)."""
        dtos = await self._get_list(
            f"/api/assignment/{assignment_id}/submissions", AssignmentSubmissionDto
        )
        return [_to_submission(dto) for dto in dtos]

    async def list_results_for_assignment(self, assignment_id: int) -> list[AssignmentResult]:
        """All grades issued for an assignment (teacher only)."""
        dtos = await self._get_list(f"/api/assignment/{assignment_id}/results", AssignmentResultDto)
        return [_to_result(dto) for dto in dtos]

    # -- single-record endpoints (404 means "absent") ---------------------------

    async def get_assignment_submission(self, assignment_id: int) -> t.Optional[AssignmentSubmission]:
        dto = await self._get_one(
            f"/api/assignment/my-submission/{assignment_id}", AssignmentSubmissionDto
        )
        return _to_submission(dto) if dto is not None else None

    async def get_assignment_result(self, assignment_id: int) -> t.Optional[AssignmentResult]:
        dto = await self._get_one(f"/api/assignment/my-result/{assignment_id}", AssignmentResultDto)
        return _to_result(dto) if dto is not None else None

    async def get_quiz_submission(self, quiz_id: int) -> t.Optional[QuizSubmission]:
        dto = await self._get_one(f"/api/quiz/{quiz_id}/my-submission", QuizSubmissionDto)
        return _to_quiz_submission(dto) if dto is not None else None

    # -- plumbing -------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        if not self.auth.is_authenticated:
            raise AuthRequired("You must be logged in to query the LMS.")
        return {"Authorization": f"Bearer {self.auth.token}"}

    async def _get_json(self, path: str) -> t.Any:
        """GET ``path`` and return the decoded JSON body (``None`` when empty)."""
        headers = self._headers()
        try:
            response = await self._http.get(path, headers=headers)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise FetchTimeout(f"GET {path} timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.debug("GET %s -> %s", path, status)
            if status == 401:
                raise AuthRequired(_error_message(e.response)) from e
            if status == 404:
                raise NotFound(path) from e
            raise FetchError(_error_message(e.response), status_code=status) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Error calling LMS backend ({path}): {e}") from e

        logger.debug("GET %s -> %s", path, response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {path}", status_code=response.status_code) from e

    async def _get_one(self, path: str, model: type[ModelT]) -> t.Optional[ModelT]:
        data = await self._get_json(path)
        if not data:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise FetchError(f"Malformed {model.__name__} payload from {path}: {e}") from e

    async def _get_list(self, path: str, model: type[ModelT]) -> list[ModelT]:
        data = await self._get_json(path)
        if data is None:
            return []
        if not isinstance(data, list):
            raise FetchError(f"Expected a JSON list from {path}, got {type(data).__name__}")
        try:
            return [model.model_validate(item) for item in data]
        except ValidationError as e:
            raise FetchError(f"Malformed {model.__name__} payload from {path}: {e}") from e


def _error_message(response: httpx.Response) -> str:
    """Prefer the backend's own message over a generic status line."""
    message = f"Request failed with status {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        return message
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        try:
            body = ErrorResponse.model_validate(data)
        except ValidationError:
            return message
        if body.message:
            return body.message
        if isinstance(body.detail, str):
            return body.detail
    return message


def _to_course(dto: CourseDto) -> Course:
    return Course(
        id=dto.id,
        title=dto.title,
        description=dto.description,
        start_date=dto.start_date,
    )


def _to_assignment(dto: AssignmentDto) -> Assignment:
    return Assignment(
        id=dto.id,
        course_id=dto.course_id,
        title=dto.title,
        description=dto.description or "",
        start_date=dto.start_date,
        deadline=dto.deadline,
    )


def _to_quiz(dto: QuizDto) -> Quiz:
    return Quiz(
        id=dto.id,
        course_id=dto.course_id,
        title=dto.title,
        start_date=dto.start_date,
        end_date=dto.end_date,
        question_count=len(dto.quiz_question_dtos),
    )


def _to_lesson(dto: LessonDto) -> Lesson:
    return Lesson(
        id=dto.id,
        course_id=dto.course_id,
        title=dto.title,
        start_date=dto.start_date,
        end_date=dto.end_date,
    )


def _to_submission(dto: AssignmentSubmissionDto) -> AssignmentSubmission:
    return AssignmentSubmission(
        assignment_id=dto.assignment_id,
        student_id=dto.student_id,
        content=dto.content,
    )


def _to_result(dto: AssignmentResultDto) -> AssignmentResult:
    return AssignmentResult(
        assignment_id=dto.assignment_id,
        student_id=dto.student_id,
        grade=dto.grade,
        feedback=dto.feedback,
    )


def _to_quiz_submission(dto: QuizSubmissionDto) -> QuizSubmission:
    return QuizSubmission(
        id=dto.id,
        quiz_id=dto.quiz_id,
        score=dto.score,
        submitted_at=dto.submitted_at,
    )
