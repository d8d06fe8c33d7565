"""
Data models for aggregating per-user course item statuses.

This module contains the dataclasses the orchestrator works with: the raw
course items as the LMS hands them out, the optional probe records that
signal submission and grading, and the derived records built from them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
import typing as t

T = t.TypeVar("T")


class Role(Enum):
    """Which side of a course the current user is on."""
    STUDENT = "student"
    TEACHER = "teacher"


class AssignmentStatus(Enum):
    """Derived lifecycle state of an assignment for the current student."""
    UPCOMING = "upcoming"
    SUBMITTED = "submitted"
    RETURNED = "returned"
    PAST_DUE = "past_due"


class QuizStatus(Enum):
    """Derived lifecycle state of a quiz."""
    UPCOMING = "upcoming"
    RETURNED = "returned"


class EventKind(Enum):
    """Discriminant of a calendar event."""
    LESSON = "lesson"
    QUIZ = "quiz"


@dataclass
class Course:
    """A course the current user is enrolled in or teaches."""
    id: int
    title: str
    description: str = ""
    start_date: t.Optional[datetime] = None


@dataclass
class Assignment:
    """An assignment as listed for a course."""
    id: int
    course_id: int
    title: str
    description: str = ""
    start_date: t.Optional[datetime] = None
    deadline: t.Optional[datetime] = None


@dataclass
class Quiz:
    """A quiz as listed for a course."""
    id: int
    course_id: int
    title: str
    start_date: t.Optional[datetime] = None
    end_date: t.Optional[datetime] = None
    question_count: int = 0


@dataclass
class Lesson:
    """A scheduled lesson of a course."""
    id: int
    course_id: int
    title: str
    start_date: t.Optional[datetime] = None
    end_date: t.Optional[datetime] = None


@dataclass
class AssignmentSubmission:
    """Proof that a student handed in an assignment."""
    assignment_id: int
    student_id: int
    content: t.Optional[str] = None


@dataclass
class AssignmentResult:
    """Grade and feedback returned for an assignment submission."""
    assignment_id: int
    student_id: int
    grade: t.Optional[float] = None
    feedback: t.Optional[str] = None


@dataclass
class QuizSubmission:
    """A quiz attempt; submitting and scoring happen in one step."""
    id: int
    quiz_id: int
    score: t.Optional[float] = None
    submitted_at: t.Optional[datetime] = None


@dataclass
class ResolvedAssignment:
    """An assignment with its status derived for the current student."""
    assignment: Assignment
    course_title: str
    status: AssignmentStatus
    grade: t.Optional[float] = None
    max_grade: float = 100
    feedback: t.Optional[str] = None
    submission_content: t.Optional[str] = None


@dataclass
class ResolvedQuiz:
    """A quiz with its status derived for the current user."""
    quiz: Quiz
    course_title: str
    status: QuizStatus
    score: t.Optional[float] = None
    submitted_at: t.Optional[datetime] = None


@dataclass
class AssignmentReview:
    """Teacher-side view of one assignment: who handed in, who got graded."""
    assignment: Assignment
    course_title: str
    submissions: list[AssignmentSubmission] = field(default_factory=list)
    results: list[AssignmentResult] = field(default_factory=list)

    @property
    def graded(self) -> list[AssignmentSubmission]:
        graded_students = {result.student_id for result in self.results}
        return [s for s in self.submissions if s.student_id in graded_students]

    @property
    def ungraded(self) -> list[AssignmentSubmission]:
        graded_students = {result.student_id for result in self.results}
        return [s for s in self.submissions if s.student_id not in graded_students]


@dataclass
class CalendarEvent:
    """A lesson or quiz projected onto the calendar."""
    id: int
    kind: EventKind
    title: str
    course_title: str
    course_id: int
    start_date: t.Optional[datetime] = None
    end_date: t.Optional[datetime] = None


@dataclass
class DayCell:
    """One slot of a month grid; padding cells have no date and day 0."""
    date: t.Optional[date]
    day: int = 0
    is_today: bool = False
    events: list[CalendarEvent] = field(default_factory=list)


@dataclass
class CourseFailure:
    """A course listing that could not be aggregated."""
    course: Course
    source: str
    error: Exception


@dataclass
class Aggregation(t.Generic[T]):
    """Items collected by a fan-out plus the course listings that failed."""
    items: list[T] = field(default_factory=list)
    failures: list[CourseFailure] = field(default_factory=list)
