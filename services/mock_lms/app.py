"""
Mock LMS backend for local runs and integration tests.

This serves the same REST endpoints the real LMS exposes, from an in-memory
store, with the real status codes: 401 without a known bearer token, 403 for
teacher endpoints called by someone else, 404 from the "my-*" endpoints when
nothing was handed in or graded yet. Course listings and result probes can be
made to fail on purpose to exercise partial-failure handling.
"""
from __future__ import annotations

import typing as t
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from fastapi import Depends, FastAPI, Header, HTTPException

from services.shared.models import (
    AssignmentDto,
    AssignmentResultDto,
    AssignmentSubmissionDto,
    CourseDto,
    LessonDto,
    QuizDto,
    QuizQuestionRef,
    QuizSubmissionDto,
)


@dataclass
class MockUser:
    """A backend account; ``role`` is ``student`` or ``teacher``."""
    id: int
    username: str
    token: str
    role: str = "student"


@dataclass
class MockStore:
    """Everything the mock backend knows about."""
    users: list[MockUser] = field(default_factory=list)
    courses: list[CourseDto] = field(default_factory=list)
    enrollments: dict[int, set[int]] = field(default_factory=dict)  # student id -> course ids
    teaching: dict[int, set[int]] = field(default_factory=dict)     # teacher id -> course ids
    assignments: list[AssignmentDto] = field(default_factory=list)
    quizzes: list[QuizDto] = field(default_factory=list)
    lessons: list[LessonDto] = field(default_factory=list)
    submissions: list[AssignmentSubmissionDto] = field(default_factory=list)
    results: list[AssignmentResultDto] = field(default_factory=list)
    quiz_submissions: dict[tuple[int, int], QuizSubmissionDto] = field(default_factory=dict)  # (quiz id, student id)
    failing_courses: set[int] = field(default_factory=set)
    failing_results: set[int] = field(default_factory=set)

    def user_for_token(self, token: str) -> t.Optional[MockUser]:
        return next((u for u in self.users if u.token == token), None)

    def assignment(self, assignment_id: int) -> t.Optional[AssignmentDto]:
        return next((a for a in self.assignments if a.id == assignment_id), None)


def create_app(store: t.Optional[MockStore] = None) -> FastAPI:
    """Build a mock LMS app serving ``store`` (demo data when omitted)."""
    store = store if store is not None else demo_store()

    app = FastAPI(
        title="Mock LMS Service",
        description="In-memory stand-in for the LMS REST backend",
        version="1.0.0-mock",
    )
    app.state.store = store

    def current_user(authorization: t.Optional[str] = Header(None)) -> MockUser:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Authentication required")
        user = store.user_for_token(authorization.removeprefix("Bearer "))
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        return user

    def require_teacher_of(user: MockUser, course_id: int) -> None:
        if user.role != "teacher" or course_id not in store.teaching.get(user.id, set()):
            raise HTTPException(status_code=403, detail="Only the course teacher can do that")

    def check_course_listing(course_id: int) -> None:
        if course_id in store.failing_courses:
            raise HTTPException(status_code=500, detail=f"Internal error listing course {course_id}")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for container orchestration."""
        return {"status": "healthy", "service": "mock-lms", "mode": "test"}

    @app.get("/api/course/my", response_model=list[CourseDto])
    async def my_courses(user: MockUser = Depends(current_user)) -> list[CourseDto]:
        course_ids = store.enrollments.get(user.id, set())
        return [c for c in store.courses if c.id in course_ids]

    @app.get("/api/course/my-teaching", response_model=list[CourseDto])
    async def my_teaching(user: MockUser = Depends(current_user)) -> list[CourseDto]:
        if user.role != "teacher":
            raise HTTPException(status_code=403, detail="Teachers only")
        course_ids = store.teaching.get(user.id, set())
        return [c for c in store.courses if c.id in course_ids]

    @app.get("/api/assignment/course/{course_id}", response_model=list[AssignmentDto])
    async def course_assignments(course_id: int, user: MockUser = Depends(current_user)) -> list[AssignmentDto]:
        check_course_listing(course_id)
        return [a for a in store.assignments if a.course_id == course_id]

    @app.get("/api/quiz/course/{course_id}", response_model=list[QuizDto])
    async def course_quizzes(course_id: int, user: MockUser = Depends(current_user)) -> list[QuizDto]:
        check_course_listing(course_id)
        return [q for q in store.quizzes if q.course_id == course_id]

    @app.get("/api/lessons/course/{course_id}", response_model=list[LessonDto])
    async def course_lessons(course_id: int, user: MockUser = Depends(current_user)) -> list[LessonDto]:
        check_course_listing(course_id)
        return [lesson for lesson in store.lessons if lesson.course_id == course_id]

    @app.get("/api/assignment/my-submission/{assignment_id}", response_model=AssignmentSubmissionDto)
    async def my_submission(assignment_id: int, user: MockUser = Depends(current_user)) -> AssignmentSubmissionDto:
        for submission in store.submissions:
            if submission.assignment_id == assignment_id and submission.student_id == user.id:
                return submission
        raise HTTPException(status_code=404, detail="No submission found")

    @app.get("/api/assignment/my-result/{assignment_id}", response_model=AssignmentResultDto)
    async def my_result(assignment_id: int, user: MockUser = Depends(current_user)) -> AssignmentResultDto:
        if assignment_id in store.failing_results:
            raise HTTPException(status_code=500, detail="Result service unavailable")
        for result in store.results:
            if result.assignment_id == assignment_id and result.student_id == user.id:
                return result
        raise HTTPException(status_code=404, detail="No result found")

    @app.get("/api/quiz/{quiz_id}/my-submission", response_model=QuizSubmissionDto)
    async def my_quiz_submission(quiz_id: int, user: MockUser = Depends(current_user)) -> QuizSubmissionDto:
        submission = store.quiz_submissions.get((quiz_id, user.id))
        if submission is None:
            raise HTTPException(status_code=404, detail="Quiz not submitted")
        return submission

    @app.get("/api/assignment/{assignment_id}/submissions", response_model=list[AssignmentSubmissionDto])
    async def assignment_submissions(
        assignment_id: int, user: MockUser = Depends(current_user)
    ) -> list[AssignmentSubmissionDto]:
        assignment = store.assignment(assignment_id)
        if assignment is None:
            raise HTTPException(status_code=404, detail="Assignment not found")
        require_teacher_of(user, assignment.course_id)
        return [s for s in store.submissions if s.assignment_id == assignment_id]

    @app.get("/api/assignment/{assignment_id}/results", response_model=list[AssignmentResultDto])
    async def assignment_results(
        assignment_id: int, user: MockUser = Depends(current_user)
    ) -> list[AssignmentResultDto]:
        assignment = store.assignment(assignment_id)
        if assignment is None:
            raise HTTPException(status_code=404, detail="Assignment not found")
        require_teacher_of(user, assignment.course_id)
        return [r for r in store.results if r.assignment_id == assignment_id]

    return app


def demo_store(now: t.Optional[datetime] = None) -> MockStore:
    """Seed data covering every status: one student, one teacher, two courses."""
    now = now or datetime.now(timezone.utc)
    day = timedelta(days=1)

    student = MockUser(id=1, username="alice", token="student-token", role="student")
    teacher = MockUser(id=2, username="tom", token="teacher-token", role="teacher")

    return MockStore(
        users=[student, teacher],
        courses=[
            CourseDto(id=1, title="Algebra I", description="Linear equations and functions"),
            CourseDto(id=2, title="World History", description="From antiquity to today"),
        ],
        enrollments={student.id: {1, 2}},
        teaching={teacher.id: {1, 2}},
        assignments=[
            AssignmentDto(id=10, course_id=1, title="Homework 1", deadline=now - 7 * day),
            AssignmentDto(id=11, course_id=1, title="Homework 2", deadline=now - 2 * day),
            AssignmentDto(id=12, course_id=1, title="Homework 3", deadline=now - 1 * day),
            AssignmentDto(id=13, course_id=2, title="Essay: Bronze Age", deadline=now + 5 * day),
            AssignmentDto(id=14, course_id=2, title="Map exercise", deadline=now + 9 * day),
        ],
        quizzes=[
            QuizDto(
                id=20, course_id=1, title="Quiz: Fractions",
                start_date=now - 3 * day, end_date=now - 3 * day + timedelta(hours=1),
                quiz_question_dtos=[QuizQuestionRef(id=i) for i in range(1, 6)],
            ),
            QuizDto(
                id=21, course_id=2, title="Quiz: Rome",
                start_date=now + 2 * day, end_date=now + 2 * day + timedelta(hours=1),
                quiz_question_dtos=[QuizQuestionRef(id=i) for i in range(6, 10)],
            ),
        ],
        lessons=[
            LessonDto(id=30, course_id=1, title="Lesson: Slopes", start_date=now + day, end_date=now + day + timedelta(hours=2)),
            LessonDto(id=31, course_id=2, title="Lesson: Sumer", start_date=now - day, end_date=now - day + timedelta(hours=2)),
        ],
        submissions=[
            AssignmentSubmissionDto(assignment_id=10, student_id=student.id, content="x = 4", student_username="alice"),
            AssignmentSubmissionDto(assignment_id=11, student_id=student.id, content="y = 2x + 1", student_username="alice"),
        ],
        results=[
            AssignmentResultDto(assignment_id=10, student_id=student.id, grade=92, feedback="Nice work", student_username="alice"),
        ],
        quiz_submissions={
            (20, student.id): QuizSubmissionDto(id=1, quiz_id=20, score=4, submitted_at=now - 3 * day),
        },
    )


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
