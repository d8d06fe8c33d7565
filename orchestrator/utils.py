"""Formatting helpers shared by the command line views."""
import typing as t
from datetime import datetime

from rich.console import Console

from orchestrator.models import AssignmentStatus, CourseFailure, QuizStatus

console = Console()
err_console = Console(stderr=True)

STATUS_STYLES = {
    AssignmentStatus.UPCOMING: "yellow",
    AssignmentStatus.SUBMITTED: "cyan",
    AssignmentStatus.RETURNED: "green",
    AssignmentStatus.PAST_DUE: "red",
    QuizStatus.UPCOMING: "yellow",
    QuizStatus.RETURNED: "green",
}


def format_datetime_human(value: t.Optional[datetime]) -> str:
    """Render a timestamp as MM/DD HH:MM, or a dash when it is missing."""
    if value is None:
        return "—"
    return value.strftime("%m/%d %H:%M")


def truncate_title(title: str, max_length: int = 45) -> str:
    """Truncate title to max_length characters, adding ellipsis if needed."""
    if len(title) <= max_length:
        return title
    return title[:max_length-3] + "..."


def format_status(status: t.Union[AssignmentStatus, QuizStatus]) -> str:
    """Rich markup for a status badge."""
    style = STATUS_STYLES.get(status, "white")
    label = status.value.replace("_", " ")
    return f"[{style}]{label}[/{style}]"


def format_score(value: t.Optional[float], max_value: t.Optional[float] = None) -> str:
    if value is None:
        return "—"
    text = f"{value:g}"
    if max_value is not None:
        text += f"/{max_value:g}"
    return text


def describe_failures(failures: list[CourseFailure]) -> list[str]:
    """One line per failed course listing, e.g. ``Algebra (quizzes): ...``."""
    return [
        f"{failure.course.title} ({failure.source}): {getattr(failure.error, 'cause', failure.error)}"
        for failure in failures
    ]
