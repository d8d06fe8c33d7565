"""Status resolvers for course items.

Pure functions of (item dates, probe results, now). The backend never stores a
status; it is recomputed from the raw signals on every load.
"""
from __future__ import annotations

import typing as t
from datetime import datetime

from orchestrator.models import (
    AssignmentResult,
    AssignmentStatus,
    AssignmentSubmission,
    QuizStatus,
    QuizSubmission,
)


def as_aware(value: datetime) -> datetime:
    """Attach the local timezone to naive timestamps so they compare with aware ones."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def is_past(moment: t.Optional[datetime], now: datetime) -> bool:
    """Whether ``now`` is strictly after ``moment``; a missing moment never passes."""
    if moment is None:
        return False
    return as_aware(now) > as_aware(moment)


def resolve_assignment_status(
    deadline: t.Optional[datetime],
    submission: t.Optional[AssignmentSubmission],
    result: t.Optional[AssignmentResult],
    now: datetime,
) -> AssignmentStatus:
    """Derive the status of an assignment for the current student.

    Rules are checked in priority order:

    1. A result exists: ``RETURNED``. Grading is authoritative, so a later
       resubmission does not move the item back to ``SUBMITTED``.
    2. A submission exists: ``SUBMITTED``, even when it came in late.
    3. The deadline has passed: ``PAST_DUE``.
    4. Otherwise: ``UPCOMING``.
    """
    if result is not None:
        return AssignmentStatus.RETURNED
    if submission is not None:
        return AssignmentStatus.SUBMITTED
    if is_past(deadline, now):
        return AssignmentStatus.PAST_DUE
    return AssignmentStatus.UPCOMING


def resolve_student_quiz_status(submission: t.Optional[QuizSubmission]) -> QuizStatus:
    """A submitted quiz is returned; anything else stays upcoming.

    Students never see a past-due quiz: an unsubmitted quiz whose end date has
    passed is still reported as ``UPCOMING``.
    """
    if submission is not None:
        return QuizStatus.RETURNED
    return QuizStatus.UPCOMING


def resolve_teacher_quiz_status(end_date: t.Optional[datetime], now: datetime) -> QuizStatus:
    """For the course owner a quiz is returned (closed, ready for review) once it ended."""
    if is_past(end_date, now):
        return QuizStatus.RETURNED
    return QuizStatus.UPCOMING
