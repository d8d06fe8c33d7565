# -*- coding: utf-8 -*-
import asyncio
import typing as t
from datetime import date

import click
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from lms_client.client import LMS_API_BASE_URL, AuthContext, LMSClient
from lms_client.errors import AuthRequired, LMSError
from orchestrator.calendar_grid import DAY_NAMES, build_month, shift_month, weeks
from orchestrator.executor import (
    aggregate_assignments,
    aggregate_events,
    aggregate_reviews,
    aggregate_quizzes,
    join_all,
    load_courses,
)
from orchestrator.logging_config import configure_logging
from orchestrator.models import (
    Aggregation,
    AssignmentReview,
    AssignmentStatus,
    CalendarEvent,
    DayCell,
    EventKind,
    QuizStatus,
    ResolvedAssignment,
    ResolvedQuiz,
    Role,
)
from orchestrator.utils import (
    console,
    err_console,
    describe_failures,
    format_datetime_human,
    format_score,
    format_status,
    truncate_title,
)

# Max event chips shown in a calendar cell before "+N more"
MAX_INLINE = 2

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


def _open_client(base_url: str, auth: AuthContext) -> LMSClient:
    return LMSClient(auth, base_url=base_url)


def _run(fetch: t.Callable[[LMSClient], t.Awaitable[t.Any]], ctx: click.Context) -> t.Any:
    """Open a client from the group options, run ``fetch`` and map auth errors to exit 1."""
    options = ctx.obj

    async def runner() -> t.Any:
        async with _open_client(options["base_url"], options["auth"]) as client:
            return await fetch(client)

    try:
        return asyncio.run(runner())
    except AuthRequired as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    except LMSError as e:
        err_console.print(f"[red]Error loading courses:[/red] {e}")
        raise SystemExit(1)


def _print_failures(aggregation: Aggregation[t.Any]) -> None:
    if not aggregation.failures:
        return
    body = Text()
    body.append(f"{len(aggregation.failures)} course listing(s) failed to load; results are partial.\n", style="bold")
    for line in describe_failures(aggregation.failures):
        body.append(f"• {line}\n")
    console.print(Panel(body, title="⚠️ Partial results", border_style="yellow"))


def create_assignments_table(items: list[ResolvedAssignment]) -> Table:
    table = Table(title="📝 Assignments", show_header=True, header_style="bold magenta")
    table.add_column("Course", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Deadline", style="yellow")
    table.add_column("Status")
    table.add_column("Grade", justify="right")

    for item in sorted(items, key=lambda i: (i.course_title, i.assignment.title)):
        table.add_row(
            item.course_title,
            truncate_title(item.assignment.title),
            format_datetime_human(item.assignment.deadline),
            format_status(item.status),
            format_score(item.grade, item.max_grade),
        )
    return table


def create_quizzes_table(items: list[ResolvedQuiz]) -> Table:
    table = Table(title="❓ Quizzes", show_header=True, header_style="bold magenta")
    table.add_column("Course", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Window", style="yellow")
    table.add_column("Questions", justify="right")
    table.add_column("Status")
    table.add_column("Score", justify="right")

    for item in sorted(items, key=lambda i: (i.course_title, i.quiz.title)):
        table.add_row(
            item.course_title,
            truncate_title(item.quiz.title),
            f"{format_datetime_human(item.quiz.start_date)} → {format_datetime_human(item.quiz.end_date)}",
            str(item.quiz.question_count),
            format_status(item.status),
            format_score(item.score, item.quiz.question_count or None),
        )
    return table


def _format_cell(cell: DayCell) -> str:
    if cell.date is None:
        return ""
    day = f"[bold reverse] {cell.day} [/bold reverse]" if cell.is_today else f"[bold]{cell.day}[/bold]"
    lines = [day]
    for event in cell.events[:MAX_INLINE]:
        icon = "📖" if event.kind is EventKind.LESSON else "❓"
        lines.append(f"{icon} {truncate_title(event.title, 14)}")
    hidden = len(cell.events) - MAX_INLINE
    if hidden > 0:
        lines.append(f"[dim]+{hidden} more[/dim]")
    return "\n".join(lines)


def create_month_table(year: int, month: int, events: list[CalendarEvent], today: t.Optional[date] = None) -> Table:
    table = Table(title=f"📅 {MONTH_NAMES[month - 1]} {year}", show_header=True, header_style="bold magenta", show_lines=True)
    for name in DAY_NAMES:
        table.add_column(name, width=16, vertical="top")
    for week in weeks(build_month(year, month, events, today=today)):
        table.add_row(*[_format_cell(cell) for cell in week])
    return table


def create_reviews_table(items: list[AssignmentReview]) -> Table:
    table = Table(title="🧑‍🏫 Grading queue", show_header=True, header_style="bold magenta")
    table.add_column("Course", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Deadline", style="yellow")
    table.add_column("Submitted", justify="right")
    table.add_column("Graded", justify="right", style="green")
    table.add_column("To grade", justify="right", style="red")

    for item in sorted(items, key=lambda i: (i.course_title, i.assignment.title)):
        table.add_row(
            item.course_title,
            truncate_title(item.assignment.title),
            format_datetime_human(item.assignment.deadline),
            str(len(item.submissions)),
            str(len(item.graded)),
            str(len(item.ungraded)),
        )
    return table


def _show_reviews(ctx: click.Context) -> None:
    async def fetch(client: LMSClient) -> Aggregation[AssignmentReview]:
        return await aggregate_reviews(client, await load_courses(client))

    with console.status("[bold green]Collecting submissions..."):
        aggregation = _run(fetch, ctx)

    _print_failures(aggregation)
    if not aggregation.items:
        console.print("No assignments found.")
        return
    console.print(create_reviews_table(aggregation.items))


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--base-url", envvar="LMS_API_BASE_URL", default=LMS_API_BASE_URL, show_default=True, help="LMS backend URL.")
@click.option("--token", envvar="LMS_TOKEN", help="Bearer token of the current user.")
@click.option("--username", envvar="LMS_USERNAME", help="Username of the current user.")
@click.option(
    "--role",
    envvar="LMS_ROLE",
    type=click.Choice([r.value for r in Role]),
    default=Role.STUDENT.value,
    show_default=True,
    help="Whether to look at courses as a student or as their teacher.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, base_url: str, token: t.Optional[str], username: t.Optional[str], role: str, verbose: bool) -> None:
    """Show assignment, quiz and calendar status across all of your courses."""
    configure_logging("DEBUG" if verbose else None)
    ctx.obj = {
        "base_url": base_url,
        "auth": AuthContext(token=token, username=username, role=Role(role)),
    }


@main.command()
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([s.value for s in AssignmentStatus]),
    help="Only show assignments in this state.",
)
@click.pass_context
def assignments(ctx: click.Context, status_filter: t.Optional[str]) -> None:
    """List assignments with their submission status (grading queue for teachers)."""
    if ctx.obj["auth"].role is Role.TEACHER:
        _show_reviews(ctx)
        return

    async def fetch(client: LMSClient) -> Aggregation[ResolvedAssignment]:
        return await aggregate_assignments(client, await load_courses(client))

    with console.status("[bold green]Resolving assignment statuses..."):
        aggregation = _run(fetch, ctx)

    items = aggregation.items
    if status_filter:
        items = [i for i in items if i.status is AssignmentStatus(status_filter)]

    _print_failures(aggregation)
    if not items:
        console.print("No assignments found.")
        return
    console.print(create_assignments_table(items))


@main.command()
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([s.value for s in QuizStatus]),
    help="Only show quizzes in this state.",
)
@click.pass_context
def quizzes(ctx: click.Context, status_filter: t.Optional[str]) -> None:
    """List quizzes with their status."""
    role = ctx.obj["auth"].role

    async def fetch(client: LMSClient) -> Aggregation[ResolvedQuiz]:
        return await aggregate_quizzes(client, await load_courses(client), role=role)

    with console.status("[bold green]Resolving quiz statuses..."):
        aggregation = _run(fetch, ctx)

    items = aggregation.items
    if status_filter:
        items = [i for i in items if i.status is QuizStatus(status_filter)]

    _print_failures(aggregation)
    if not items:
        console.print("No quizzes found.")
        return
    console.print(create_quizzes_table(items))


@main.command()
@click.pass_context
def grades(ctx: click.Context) -> None:
    """Show returned assignments and quiz scores, course by course."""
    if ctx.obj["auth"].role is Role.TEACHER:
        console.print("Grade tracking is only available for students.")
        return

    async def fetch(client: LMSClient) -> tuple[Aggregation[ResolvedAssignment], Aggregation[ResolvedQuiz]]:
        courses = await load_courses(client)
        assignment_agg, quiz_agg = await join_all([
            aggregate_assignments(client, courses),
            aggregate_quizzes(client, courses, role=Role.STUDENT),
        ])
        return assignment_agg, quiz_agg

    with console.status("[bold green]Collecting grades..."):
        assignment_agg, quiz_agg = _run(fetch, ctx)

    _print_failures(assignment_agg)
    _print_failures(quiz_agg)

    table = Table(title="📊 Grades", show_header=True, header_style="bold magenta")
    table.add_column("Course", style="cyan")
    table.add_column("", width=3)
    table.add_column("Title", style="white")
    table.add_column("Score", justify="right", style="green")
    table.add_column("Feedback", style="dim")

    rows: list[tuple[str, str, str, str, str]] = []
    for item in assignment_agg.items:
        if item.status is AssignmentStatus.RETURNED:
            rows.append((item.course_title, "📝", item.assignment.title, format_score(item.grade, item.max_grade), item.feedback or ""))
    for quiz in quiz_agg.items:
        if quiz.status is QuizStatus.RETURNED:
            rows.append((quiz.course_title, "❓", quiz.quiz.title, format_score(quiz.score, quiz.quiz.question_count or None), ""))

    if not rows:
        console.print("No graded work yet.")
        return
    for row in sorted(rows, key=lambda r: (r[0], r[2])):
        table.add_row(*row)
    console.print(table)


@main.command()
@click.option("--year", type=int, help="Year to show (defaults to the current year).")
@click.option("--month", type=click.IntRange(1, 12), help="Month to show, 1-12 (defaults to the current month).")
@click.option("--offset", type=int, default=0, help="Months to move from the chosen one, e.g. -1 for the previous month.")
@click.pass_context
def calendar(ctx: click.Context, year: t.Optional[int], month: t.Optional[int], offset: int) -> None:
    """Show lessons and quizzes on a month calendar."""
    today = date.today()
    year, month = shift_month(year or today.year, month or today.month, offset)

    async def fetch(client: LMSClient) -> Aggregation[CalendarEvent]:
        return await aggregate_events(client, await load_courses(client))

    with console.status("[bold green]Loading calendar events..."):
        aggregation = _run(fetch, ctx)

    _print_failures(aggregation)
    console.print(create_month_table(year, month, aggregation.items, today=today))


if __name__ == "__main__":
    main()
