"""Tests for the orchestrator executor module.

This module tests parallel fan-out, concurrency limiting, probe joining and
per-course failure isolation against an in-memory fake client.
"""
import asyncio
import time
import typing as t
from datetime import datetime, timezone

import pytest

from lms_client.client import AuthContext
from lms_client.errors import (
    AuthRequired,
    CourseFetchFailed,
    FetchError,
    ItemFetchFailed,
    NotFound,
)
from orchestrator.executor import (
    aggregate_assignments,
    aggregate_events,
    aggregate_quizzes,
    aggregate_reviews,
    join_all,
    load_courses,
    resolve_all,
    resolve_events,
    resolve_quizzes,
    review_assignments,
)
from orchestrator.models import (
    Assignment,
    AssignmentResult,
    AssignmentStatus,
    AssignmentSubmission,
    Course,
    EventKind,
    Lesson,
    Quiz,
    QuizStatus,
    QuizSubmission,
    Role,
)

NOW = datetime(2024, 1, 11, tzinfo=timezone.utc)
PAST = datetime(2024, 1, 10, tzinfo=timezone.utc)
FUTURE = datetime(2024, 1, 20, tzinfo=timezone.utc)

ALGEBRA = Course(id=1, title="Algebra I")
HISTORY = Course(id=2, title="World History")


class FakeLMSClient:
    """Mock LMS client for testing.

    Records are looked up in plain dicts; anything missing raises ``NotFound``
    like the real backend. ``failures`` maps a call key such as
    ``("assignments", 1)`` or ``("result", 10)`` to the error it should raise.
    """

    def __init__(self, delay: float = 0.0, role: Role = Role.STUDENT) -> None:
        self.auth = AuthContext(token="fake", username="alice", role=role)
        self.delay = delay
        self.courses: list[Course] = [ALGEBRA, HISTORY]
        self.assignments: dict[int, list[Assignment]] = {}
        self.quizzes: dict[int, list[Quiz]] = {}
        self.lessons: dict[int, list[Lesson]] = {}
        self.submissions: dict[int, AssignmentSubmission] = {}
        self.results: dict[int, AssignmentResult] = {}
        self.quiz_submissions: dict[int, QuizSubmission] = {}
        self.failures: dict[tuple[str, int], Exception] = {}
        self.calls: list[tuple[str, int]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _call(self, kind: str, key: int) -> None:
        self.calls.append((kind, key))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if (kind, key) in self.failures:
                raise self.failures[(kind, key)]
        finally:
            self.in_flight -= 1

    async def list_courses_for_current_user(self) -> list[Course]:
        await self._call("courses", 0)
        return self.courses

    async def list_assignments_for_course(self, course_id: int) -> list[Assignment]:
        await self._call("assignments", course_id)
        return self.assignments.get(course_id, [])

    async def list_quizzes_for_course(self, course_id: int) -> list[Quiz]:
        await self._call("quizzes", course_id)
        return self.quizzes.get(course_id, [])

    async def list_lessons_for_course(self, course_id: int) -> list[Lesson]:
        await self._call("lessons", course_id)
        return self.lessons.get(course_id, [])

    async def get_assignment_submission(self, assignment_id: int) -> AssignmentSubmission:
        await self._call("submission", assignment_id)
        if assignment_id not in self.submissions:
            raise NotFound(f"/api/assignment/my-submission/{assignment_id}")
        return self.submissions[assignment_id]

    async def get_assignment_result(self, assignment_id: int) -> AssignmentResult:
        await self._call("result", assignment_id)
        if assignment_id not in self.results:
            raise NotFound(f"/api/assignment/my-result/{assignment_id}")
        return self.results[assignment_id]

    async def get_quiz_submission(self, quiz_id: int) -> QuizSubmission:
        await self._call("quiz_submission", quiz_id)
        if quiz_id not in self.quiz_submissions:
            raise NotFound(f"/api/quiz/{quiz_id}/my-submission")
        return self.quiz_submissions[quiz_id]

    async def list_submissions_for_assignment(self, assignment_id: int) -> list[AssignmentSubmission]:
        await self._call("submissions", assignment_id)
        return [s for s in self.submissions.values() if s.assignment_id == assignment_id]

    async def list_results_for_assignment(self, assignment_id: int) -> list[AssignmentResult]:
        await self._call("results", assignment_id)
        return [r for r in self.results.values() if r.assignment_id == assignment_id]


def assignment(assignment_id: int, course: Course, deadline: datetime = PAST) -> Assignment:
    return Assignment(id=assignment_id, course_id=course.id, title=f"Homework {assignment_id}", deadline=deadline)


def quiz(quiz_id: int, course: Course, end_date: datetime = PAST) -> Quiz:
    return Quiz(id=quiz_id, course_id=course.id, title=f"Quiz {quiz_id}", start_date=end_date, end_date=end_date)


def seeded_client(**kwargs: t.Any) -> FakeLMSClient:
    """Two courses covering every assignment status."""
    client = FakeLMSClient(**kwargs)
    client.assignments = {
        1: [assignment(10, ALGEBRA), assignment(11, ALGEBRA), assignment(12, ALGEBRA)],
        2: [assignment(13, HISTORY, deadline=FUTURE)],
    }
    client.submissions = {
        10: AssignmentSubmission(assignment_id=10, student_id=1, content="x = 4"),
        11: AssignmentSubmission(assignment_id=11, student_id=1, content="y = 2"),
    }
    client.results = {10: AssignmentResult(assignment_id=10, student_id=1, grade=92, feedback="Nice")}
    return client


@pytest.mark.asyncio
async def test_assignment_statuses_are_resolved_per_item() -> None:
    client = seeded_client()

    items = await resolve_all(client, [ALGEBRA, HISTORY], now=NOW)
    statuses = {item.assignment.id: item.status for item in items}

    assert statuses == {
        10: AssignmentStatus.RETURNED,
        11: AssignmentStatus.SUBMITTED,
        12: AssignmentStatus.PAST_DUE,
        13: AssignmentStatus.UPCOMING,
    }
    returned = next(item for item in items if item.assignment.id == 10)
    assert returned.grade == 92
    assert returned.feedback == "Nice"
    assert returned.submission_content == "x = 4"
    assert returned.course_title == "Algebra I"


@pytest.mark.asyncio
async def test_both_probes_run_for_every_assignment() -> None:
    client = seeded_client()

    await resolve_all(client, [ALGEBRA, HISTORY], now=NOW)

    for assignment_id in (10, 11, 12, 13):
        assert ("submission", assignment_id) in client.calls
        assert ("result", assignment_id) in client.calls


@pytest.mark.asyncio
async def test_parallel_execution_across_courses_and_items() -> None:
    """Listings, items and probes overlap instead of running one after another."""
    client = seeded_client(delay=0.05)

    start_time = time.monotonic()
    items = await resolve_all(client, [ALGEBRA, HISTORY], now=NOW, max_concurrent=None)
    total_time = time.monotonic() - start_time

    assert len(items) == 4
    # Listing (50ms) then probes (50ms) in parallel; serially this is ~450ms
    assert total_time < 0.25, f"Expected parallel execution (~0.1s), but took {total_time:.2f}s"


@pytest.mark.asyncio
async def test_max_concurrent_limiting() -> None:
    """Test that max_concurrent bounds the calls in flight."""
    client = seeded_client(delay=0.02)

    items = await resolve_all(client, [ALGEBRA, HISTORY], now=NOW, max_concurrent=2)

    assert len(items) == 4
    assert client.max_in_flight <= 2, f"Expected max 2 concurrent, but observed {client.max_in_flight}"


@pytest.mark.asyncio
async def test_failing_listing_is_isolated_to_its_course() -> None:
    client = seeded_client()
    client.failures[("assignments", 1)] = FetchError("Internal error", status_code=500)

    aggregation = await aggregate_assignments(client, [ALGEBRA, HISTORY], now=NOW)

    assert [item.assignment.id for item in aggregation.items] == [13]
    assert len(aggregation.failures) == 1
    failure = aggregation.failures[0]
    assert failure.course is ALGEBRA
    assert failure.source == "assignments"
    assert isinstance(failure.error, ItemFetchFailed)
    assert failure.error.cause.status_code == 500


@pytest.mark.asyncio
async def test_resolve_all_returns_only_healthy_courses() -> None:
    client = seeded_client()
    client.failures[("assignments", 2)] = FetchError("boom")

    items = await resolve_all(client, [ALGEBRA, HISTORY], now=NOW)

    assert {item.assignment.course_id for item in items} == {1}


@pytest.mark.asyncio
async def test_probe_error_fails_the_whole_course() -> None:
    """A genuine probe failure must not be mistaken for "not handed in"."""
    client = seeded_client()
    client.failures[("result", 11)] = FetchError("Result service unavailable", status_code=500)

    aggregation = await aggregate_assignments(client, [ALGEBRA, HISTORY], now=NOW)

    assert [item.assignment.id for item in aggregation.items] == [13]
    failure = aggregation.failures[0]
    assert isinstance(failure.error, CourseFetchFailed)
    assert not isinstance(failure.error, ItemFetchFailed)
    assert "Result service unavailable" in str(failure.error)


@pytest.mark.asyncio
async def test_forbidden_listing_is_isolated_to_its_course() -> None:
    client = seeded_client()
    client.failures[("assignments", 1)] = FetchError("Not enrolled", status_code=403)

    aggregation = await aggregate_assignments(client, [ALGEBRA, HISTORY], now=NOW)

    assert [item.assignment.id for item in aggregation.items] == [13]
    assert isinstance(aggregation.failures[0].error, ItemFetchFailed)
    assert aggregation.failures[0].error.cause.status_code == 403


@pytest.mark.asyncio
async def test_auth_required_aborts_the_aggregation() -> None:
    client = seeded_client()
    client.failures[("submission", 13)] = AuthRequired("Token expired")
    client.failures[("assignments", 1)] = FetchError("boom")

    with pytest.raises(AuthRequired, match="Token expired"):
        await aggregate_assignments(client, [ALGEBRA, HISTORY], now=NOW)


@pytest.mark.asyncio
async def test_empty_course_list_gives_empty_result() -> None:
    aggregation = await aggregate_assignments(FakeLMSClient(), [], now=NOW)
    assert aggregation.items == []
    assert aggregation.failures == []


@pytest.mark.asyncio
async def test_student_quizzes_use_the_submission_probe() -> None:
    client = FakeLMSClient()
    client.quizzes = {1: [quiz(20, ALGEBRA)], 2: [quiz(21, HISTORY, end_date=FUTURE)]}
    client.quiz_submissions = {20: QuizSubmission(id=1, quiz_id=20, score=4, submitted_at=PAST)}

    items = await resolve_quizzes(client, [ALGEBRA, HISTORY], now=NOW)
    by_id = {item.quiz.id: item for item in items}

    assert by_id[20].status is QuizStatus.RETURNED
    assert by_id[20].score == 4
    assert by_id[21].status is QuizStatus.UPCOMING


@pytest.mark.asyncio
async def test_unsubmitted_ended_quiz_stays_upcoming_for_students() -> None:
    client = FakeLMSClient()
    client.quizzes = {1: [quiz(20, ALGEBRA, end_date=PAST)]}

    items = await resolve_quizzes(client, [ALGEBRA], now=NOW)

    assert items[0].status is QuizStatus.UPCOMING


@pytest.mark.asyncio
async def test_teacher_quizzes_make_no_probe() -> None:
    client = FakeLMSClient(role=Role.TEACHER)
    client.quizzes = {1: [quiz(20, ALGEBRA, end_date=PAST), quiz(21, ALGEBRA, end_date=FUTURE)]}

    items = await resolve_quizzes(client, [ALGEBRA], role=Role.TEACHER, now=NOW)
    by_id = {item.quiz.id: item.status for item in items}

    assert by_id == {20: QuizStatus.RETURNED, 21: QuizStatus.UPCOMING}
    assert not [call for call in client.calls if call[0] == "quiz_submission"]


@pytest.mark.asyncio
async def test_quiz_probe_failure_is_isolated() -> None:
    client = FakeLMSClient()
    client.quizzes = {1: [quiz(20, ALGEBRA)], 2: [quiz(21, HISTORY)]}
    client.failures[("quiz_submission", 20)] = FetchError("boom", status_code=503)

    aggregation = await aggregate_quizzes(client, [ALGEBRA, HISTORY], now=NOW)

    assert [item.quiz.id for item in aggregation.items] == [21]
    assert aggregation.failures[0].course is ALGEBRA


@pytest.mark.asyncio
async def test_events_merge_lessons_and_quizzes() -> None:
    client = FakeLMSClient()
    client.lessons = {1: [Lesson(id=30, course_id=1, title="Slopes", start_date=PAST, end_date=PAST)]}
    client.quizzes = {2: [quiz(21, HISTORY)]}

    events = await resolve_events(client, [ALGEBRA, HISTORY])

    assert {(event.kind, event.id) for event in events} == {(EventKind.LESSON, 30), (EventKind.QUIZ, 21)}
    lesson = next(event for event in events if event.kind is EventKind.LESSON)
    assert lesson.course_title == "Algebra I"
    assert lesson.course_id == 1


@pytest.mark.asyncio
async def test_failing_lessons_still_let_quizzes_through() -> None:
    client = FakeLMSClient()
    client.lessons = {1: [Lesson(id=30, course_id=1, title="Slopes", start_date=PAST)]}
    client.quizzes = {1: [quiz(20, ALGEBRA)]}
    client.failures[("lessons", 1)] = FetchError("boom")

    aggregation = await aggregate_events(client, [ALGEBRA])

    assert [(event.kind, event.id) for event in aggregation.items] == [(EventKind.QUIZ, 20)]
    assert [(f.course.id, f.source) for f in aggregation.failures] == [(1, "lessons")]


@pytest.mark.asyncio
async def test_reviews_split_graded_and_ungraded_submissions() -> None:
    client = seeded_client(role=Role.TEACHER)

    reviews = await review_assignments(client, [ALGEBRA, HISTORY])
    by_id = {review.assignment.id: review for review in reviews}

    assert [s.assignment_id for s in by_id[10].graded] == [10]
    assert [s.assignment_id for s in by_id[11].ungraded] == [11]
    # Nobody handed in: empty lists, not a failure
    assert by_id[13].submissions == []
    assert by_id[13].results == []


@pytest.mark.asyncio
async def test_review_listing_failure_is_recorded() -> None:
    client = seeded_client(role=Role.TEACHER)
    client.failures[("results", 12)] = FetchError("boom")

    aggregation = await aggregate_reviews(client, [ALGEBRA, HISTORY])

    assert [review.assignment.id for review in aggregation.items] == [13]
    assert aggregation.failures[0].course is ALGEBRA


@pytest.mark.asyncio
async def test_load_courses_propagates_auth_errors() -> None:
    client = FakeLMSClient()
    assert await load_courses(client) == [ALGEBRA, HISTORY]

    client.failures[("courses", 0)] = AuthRequired("Token expired")
    with pytest.raises(AuthRequired):
        await load_courses(client)


async def returns_value(value: int) -> int:
    return value


@pytest.mark.asyncio
async def test_join_all_cancels_siblings_and_raises_the_bare_error() -> None:
    """A failing call stops its siblings and surfaces without an exception group."""
    finished: list[str] = []

    async def slow() -> str:
        await asyncio.sleep(0.2)
        finished.append("slow")
        return "slow"

    async def expired() -> str:
        raise AuthRequired("Token expired")

    async def broken() -> str:
        await asyncio.sleep(0.05)
        raise FetchError("boom")

    with pytest.raises(AuthRequired):
        await join_all([slow(), expired(), broken()])

    assert finished == []
    assert await join_all([returns_value(1), returns_value(2)]) == [1, 2]

