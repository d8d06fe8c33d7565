"""
Shared Pydantic models for the LMS REST payloads.

These mirror the JSON bodies the LMS backend sends (camelCase keys) and are used
both by the HTTP client, to decode responses, and by the mock backend, to
produce them. The client converts them into the dataclasses of
``orchestrator.models`` at the boundary.
"""
from __future__ import annotations

import typing as t
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LMSModel(BaseModel):
    """Base for payloads that travel with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CourseDto(LMSModel):
    """A course as listed by ``/api/course/my`` and ``/api/course/my-teaching``."""
    id: int
    title: str
    description: str = ""
    price: t.Optional[float] = None
    start_date: t.Optional[datetime] = None
    duration: t.Optional[int] = None
    syllabus: t.Optional[str] = None


class AssignmentDto(LMSModel):
    """An assignment row of ``/api/assignment/course/{id}``."""
    id: int
    course_id: int
    title: str
    description: t.Optional[str] = None
    content: t.Optional[str] = None
    start_date: t.Optional[datetime] = None
    deadline: t.Optional[datetime] = None


class QuizQuestionRef(LMSModel):
    """Only the id of a quiz question is needed to count them."""
    id: int


class QuizDto(LMSModel):
    """A quiz row of ``/api/quiz/course/{id}``."""
    id: int
    course_id: int
    title: str
    start_date: t.Optional[datetime] = None
    end_date: t.Optional[datetime] = None
    quiz_question_dtos: list[QuizQuestionRef] = Field(default_factory=list)


class LessonDto(LMSModel):
    """A lesson row of ``/api/lessons/course/{id}``."""
    id: int
    course_id: int
    title: str
    content: t.Optional[str] = None
    start_date: t.Optional[datetime] = None
    end_date: t.Optional[datetime] = None


class AssignmentSubmissionDto(LMSModel):
    """Submission body of ``my-submission`` and the teacher submission list."""
    assignment_id: int
    student_id: int
    content: t.Optional[str] = None
    student_username: t.Optional[str] = None


class AssignmentResultDto(LMSModel):
    """Result body of ``my-result`` and the teacher result list."""
    assignment_id: int
    student_id: int
    grade: t.Optional[float] = None
    feedback: t.Optional[str] = None
    student_username: t.Optional[str] = None


class QuizSubmissionDto(LMSModel):
    """Body of ``/api/quiz/{id}/my-submission``."""
    id: int
    quiz_id: int
    score: t.Optional[float] = None
    submitted_at: t.Optional[datetime] = None


class ErrorResponse(BaseModel):
    """Error body; the backend uses ``message``, FastAPI uses ``detail``."""
    message: t.Optional[str] = None
    detail: t.Optional[t.Any] = None
