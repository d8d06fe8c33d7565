"""Error taxonomy for calls against the LMS backend.

``NotFound`` is the only kind the existence probe recovers from; everything
else is a genuine failure and keeps propagating until a course boundary (or,
for ``AuthRequired``, all the way to the caller).
"""
from __future__ import annotations

import typing as t

if t.TYPE_CHECKING:
    from orchestrator.models import Course


class LMSError(Exception):
    """Base class for every failure raised by the LMS client or aggregator."""


class AuthRequired(LMSError):
    """The current user is not (or no longer) authenticated."""


class NotFound(LMSError):
    """The requested resource does not exist (HTTP 404)."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Resource not found: {path}")
        self.path = path


class FetchError(LMSError):
    """Transport, HTTP status or decoding failure on a single call."""

    def __init__(self, message: str, status_code: t.Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FetchTimeout(FetchError):
    """The call did not complete within the client timeout."""


class CourseFetchFailed(LMSError):
    """Part of a course could not be aggregated; wraps the underlying error."""

    def __init__(self, course: Course, source: str, cause: LMSError) -> None:
        super().__init__(f"Failed to fetch {source} for course {course.id} ({course.title}): {cause}")
        self.course = course
        self.source = source
        self.cause = cause


class ItemFetchFailed(CourseFetchFailed):
    """Listing the items of an otherwise healthy course failed."""
