"""Fan-out engine for per-user course item statuses.

The LMS only exposes fragmented resources, so every status is rebuilt from a
tree of dependent calls: courses, then the items of each course, then the
existence probes of each item. This module runs that tree concurrently with
``asyncio.TaskGroup`` joins and keeps failures contained to the course listing
they happened in.
"""
import asyncio
import logging
import os
import time
import typing as t
from datetime import datetime, timezone

from lms_client.client import LMSClient
from lms_client.errors import AuthRequired, CourseFetchFailed, ItemFetchFailed, LMSError
from lms_client.probe import probe
from orchestrator.models import (
    Aggregation,
    Assignment,
    AssignmentReview,
    CalendarEvent,
    Course,
    CourseFailure,
    EventKind,
    Lesson,
    Quiz,
    ResolvedAssignment,
    ResolvedQuiz,
    Role,
)
from orchestrator.status import (
    resolve_assignment_status,
    resolve_student_quiz_status,
    resolve_teacher_quiz_status,
)

logger = logging.getLogger(__name__)

# Upper bound on in-flight requests per aggregation; 0 disables the limit
MAX_CONCURRENT = int(os.getenv("LMS_MAX_CONCURRENT", "16"))

T = t.TypeVar("T")


class _Limiter:
    """Bounds the number of client calls in flight during one aggregation."""

    def __init__(self, max_concurrent: t.Optional[int]) -> None:
        self._semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent else None

    async def run(self, call: t.Awaitable[T]) -> T:
        if self._semaphore:
            await self._semaphore.acquire()
        try:
            return await call
        finally:
            if self._semaphore:
                self._semaphore.release()


async def join_all(calls: t.Iterable[t.Awaitable[T]]) -> list[T]:
    """Run ``calls`` concurrently and return their results in order.

    The first failure cancels the remaining calls. It is re-raised as itself
    rather than as an ``ExceptionGroup``, preferring ``AuthRequired`` when
    several calls failed.
    """
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(_as_coroutine(call)) for call in calls]
    except ExceptionGroup as errors:
        error = _first_leaf(errors.subgroup(AuthRequired) or errors)
    else:
        return [task.result() for task in tasks]
    raise error


async def _as_coroutine(call: t.Awaitable[T]) -> T:
    return await call


def _first_leaf(group: BaseExceptionGroup) -> BaseException:
    first = group.exceptions[0]
    if isinstance(first, BaseExceptionGroup):
        return _first_leaf(first)
    return first


class _Unit(t.NamedTuple):
    """One listing call of one course, plus how to resolve each listed item."""
    course: Course
    source: str
    list_items: t.Callable[[int], t.Awaitable[list[t.Any]]]
    resolve_item: t.Callable[[Course, t.Any], t.Awaitable[t.Any]]


async def _collect(unit: _Unit, limiter: _Limiter) -> tuple[list[t.Any], t.Optional[CourseFailure]]:
    """Fetch and resolve the items of one unit; failures stay inside the unit.

    Args:
        unit: The course listing to collect
        limiter: Concurrency limit shared by the whole aggregation

    Returns:
        The resolved items and ``None``, or no items and the recorded failure

    Raises:
        AuthRequired: If any call of the unit was rejected for lack of auth
    """
    course = unit.course
    try:
        raw_items = await limiter.run(unit.list_items(course.id))
    except AuthRequired:
        raise
    except LMSError as e:
        failure = ItemFetchFailed(course, unit.source, e)
        logger.warning("%s", failure)
        return [], CourseFailure(course=course, source=unit.source, error=failure)

    try:
        resolved = await join_all(unit.resolve_item(course, item) for item in raw_items)
    except AuthRequired:
        raise
    except LMSError as e:
        failure = CourseFetchFailed(course, unit.source, e)
        logger.warning("%s", failure)
        return [], CourseFailure(course=course, source=unit.source, error=failure)

    logger.debug("course %s: %d %s", course.id, len(resolved), unit.source)
    return resolved, None


async def _fan_out(units: list[_Unit], limiter: _Limiter) -> Aggregation[t.Any]:
    """Collect every unit concurrently and merge the outcomes."""
    started = time.monotonic()
    outcomes = await join_all(_collect(unit, limiter) for unit in units)

    aggregation: Aggregation[t.Any] = Aggregation()
    for items, failure in outcomes:
        aggregation.items.extend(items)
        if failure is not None:
            aggregation.failures.append(failure)

    logger.info(
        "aggregated %d items from %d listings (%d failed) in %.2fs",
        len(aggregation.items),
        len(units),
        len(aggregation.failures),
        time.monotonic() - started,
    )
    return aggregation


def _now(now: t.Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


async def load_courses(client: LMSClient) -> list[Course]:
    """List the current user's courses; taught ones for teachers, enrolled ones otherwise.

    Raises:
        AuthRequired: If the client has no valid credentials
    """
    courses = await client.list_courses_for_current_user()
    logger.debug("%d courses for %s", len(courses), client.auth.username or "current user")
    return courses


async def aggregate_assignments(
    client: LMSClient,
    courses: t.Iterable[Course],
    now: t.Optional[datetime] = None,
    max_concurrent: t.Optional[int] = MAX_CONCURRENT,
) -> Aggregation[ResolvedAssignment]:
    """Resolve the status of every assignment of ``courses`` for the current student.

    For each assignment the result and submission probes run concurrently and
    both finish before the status is computed. A course whose assignment list
    (or one of whose probes) fails genuinely contributes nothing and is reported
    in ``failures``; other courses are unaffected.

    Args:
        client: LMS client authenticated as the student
        courses: Courses to aggregate
        now: Reference time for deadline checks; defaults to the current time
        max_concurrent: Limit on concurrent requests; ``None`` or 0 for no limit

    Returns:
        The resolved assignments of all healthy courses, in no particular order,
        plus the failed course listings

    Raises:
        AuthRequired: If the backend rejects the credentials on any call
    """
    reference = _now(now)
    limiter = _Limiter(max_concurrent)

    async def resolve(course: Course, assignment: Assignment) -> ResolvedAssignment:
        submission, result = await join_all([
            limiter.run(probe(client.get_assignment_submission(assignment.id))),
            limiter.run(probe(client.get_assignment_result(assignment.id))),
        ])
        status = resolve_assignment_status(assignment.deadline, submission, result, reference)
        return ResolvedAssignment(
            assignment=assignment,
            course_title=course.title,
            status=status,
            grade=result.grade if result else None,
            feedback=result.feedback if result else None,
            submission_content=submission.content if submission else None,
        )

    units = [
        _Unit(course, "assignments", client.list_assignments_for_course, resolve)
        for course in courses
    ]
    return await _fan_out(units, limiter)


async def aggregate_quizzes(
    client: LMSClient,
    courses: t.Iterable[Course],
    role: Role = Role.STUDENT,
    now: t.Optional[datetime] = None,
    max_concurrent: t.Optional[int] = MAX_CONCURRENT,
) -> Aggregation[ResolvedQuiz]:
    """Resolve the status of every quiz of ``courses``.

    Students get one submission probe per quiz. Teachers get no probe at all:
    their quiz status only depends on whether the quiz has ended.
    """
    reference = _now(now)
    limiter = _Limiter(max_concurrent)

    async def resolve_for_student(course: Course, quiz: Quiz) -> ResolvedQuiz:
        submission = await limiter.run(probe(client.get_quiz_submission(quiz.id)))
        return ResolvedQuiz(
            quiz=quiz,
            course_title=course.title,
            status=resolve_student_quiz_status(submission),
            score=submission.score if submission else None,
            submitted_at=submission.submitted_at if submission else None,
        )

    async def resolve_for_teacher(course: Course, quiz: Quiz) -> ResolvedQuiz:
        return ResolvedQuiz(
            quiz=quiz,
            course_title=course.title,
            status=resolve_teacher_quiz_status(quiz.end_date, reference),
        )

    resolve = resolve_for_teacher if role is Role.TEACHER else resolve_for_student
    units = [_Unit(course, "quizzes", client.list_quizzes_for_course, resolve) for course in courses]
    return await _fan_out(units, limiter)


async def aggregate_events(
    client: LMSClient,
    courses: t.Iterable[Course],
    max_concurrent: t.Optional[int] = MAX_CONCURRENT,
) -> Aggregation[CalendarEvent]:
    """Project the lessons and quizzes of ``courses`` into calendar events.

    Lessons and quizzes of a course are listed independently, so a failing
    lesson list still lets that course's quizzes through.
    """

    async def lesson_event(course: Course, lesson: Lesson) -> CalendarEvent:
        return CalendarEvent(
            id=lesson.id,
            kind=EventKind.LESSON,
            title=lesson.title,
            course_title=course.title,
            course_id=course.id,
            start_date=lesson.start_date,
            end_date=lesson.end_date,
        )

    async def quiz_event(course: Course, quiz: Quiz) -> CalendarEvent:
        return CalendarEvent(
            id=quiz.id,
            kind=EventKind.QUIZ,
            title=quiz.title,
            course_title=course.title,
            course_id=course.id,
            start_date=quiz.start_date,
            end_date=quiz.end_date,
        )

    limiter = _Limiter(max_concurrent)
    units: list[_Unit] = []
    for course in courses:
        units.append(_Unit(course, "lessons", client.list_lessons_for_course, lesson_event))
        units.append(_Unit(course, "quizzes", client.list_quizzes_for_course, quiz_event))
    return await _fan_out(units, limiter)


async def aggregate_reviews(
    client: LMSClient,
    courses: t.Iterable[Course],
    max_concurrent: t.Optional[int] = MAX_CONCURRENT,
) -> Aggregation[AssignmentReview]:
    """Collect submissions and results of every assignment the teacher owns.

    An assignment nobody handed in yet simply has empty lists.
    """
    limiter = _Limiter(max_concurrent)

    async def review(course: Course, assignment: Assignment) -> AssignmentReview:
        submissions, results = await join_all([
            limiter.run(client.list_submissions_for_assignment(assignment.id)),
            limiter.run(client.list_results_for_assignment(assignment.id)),
        ])
        return AssignmentReview(
            assignment=assignment,
            course_title=course.title,
            submissions=submissions,
            results=results,
        )

    units = [
        _Unit(course, "assignments", client.list_assignments_for_course, review)
        for course in courses
    ]
    return await _fan_out(units, limiter)


async def resolve_all(
    client: LMSClient,
    courses: t.Iterable[Course],
    now: t.Optional[datetime] = None,
    max_concurrent: t.Optional[int] = MAX_CONCURRENT,
) -> list[ResolvedAssignment]:
    """Resolved assignments of every healthy course; see ``aggregate_assignments``."""
    aggregation = await aggregate_assignments(client, courses, now=now, max_concurrent=max_concurrent)
    return aggregation.items


async def resolve_quizzes(
    client: LMSClient,
    courses: t.Iterable[Course],
    role: Role = Role.STUDENT,
    now: t.Optional[datetime] = None,
    max_concurrent: t.Optional[int] = MAX_CONCURRENT,
) -> list[ResolvedQuiz]:
    aggregation = await aggregate_quizzes(client, courses, role=role, now=now, max_concurrent=max_concurrent)
    return aggregation.items


async def resolve_events(
    client: LMSClient,
    courses: t.Iterable[Course],
    max_concurrent: t.Optional[int] = MAX_CONCURRENT,
) -> list[CalendarEvent]:
    """Calendar events of every healthy course listing; see ``aggregate_events``."""
    aggregation = await aggregate_events(client, courses, max_concurrent=max_concurrent)
    return aggregation.items


async def review_assignments(
    client: LMSClient,
    courses: t.Iterable[Course],
    max_concurrent: t.Optional[int] = MAX_CONCURRENT,
) -> list[AssignmentReview]:
    aggregation = await aggregate_reviews(client, courses, max_concurrent=max_concurrent)
    return aggregation.items
