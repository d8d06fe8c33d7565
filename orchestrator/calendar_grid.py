"""Month grid for the calendar view.

The grid is Monday-first and always made of complete weeks, so it can be laid
out as a rectangle of 7 columns.
"""
from __future__ import annotations

import calendar
import typing as t
from datetime import date, datetime, tzinfo

from orchestrator.models import CalendarEvent, DayCell

DAYS_PER_WEEK = 7
DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def monday_index(day: date) -> int:
    """Day of week with Monday = 0 ... Sunday = 6."""
    # date.isoweekday() is Monday = 1 ... Sunday = 7
    return (day.isoweekday() + 6) % DAYS_PER_WEEK


def event_day(event: CalendarEvent, tz: t.Optional[tzinfo] = None) -> t.Optional[date]:
    """Calendar day an event starts on, in ``tz`` (local time when omitted)."""
    start = event.start_date
    if start is None:
        return None
    if start.tzinfo is not None:
        start = start.astimezone(tz)
    return start.date()


def build_month(
    year: int,
    month: int,
    events: t.Iterable[CalendarEvent],
    today: t.Optional[date] = None,
    tz: t.Optional[tzinfo] = None,
) -> list[DayCell]:
    """Build the day cells of one month.

    Args:
        year: Calendar year
        month: Month number, 1 (January) to 12 (December). The JavaScript
            calendar this replaces counted from 0, so February is 2 here, not 1
        events: Events from any number of courses
        today: Date to flag as today; defaults to the current date
        tz: Timezone used to place timezone-aware start times on a day

    Returns:
        Padding cells for the days before the first Monday, one cell per day of
        the month carrying the events that start on it, and trailing padding up
        to a full week. The length is always a multiple of 7.
    """
    if today is None:
        today = datetime.now(tz).date()

    first_of_month = date(year, month, 1)
    days_in_month = calendar.monthrange(year, month)[1]

    buckets: dict[int, list[CalendarEvent]] = {}
    for event in events:
        day = event_day(event, tz)
        if day is None or day.year != year or day.month != month:
            continue
        buckets.setdefault(day.day, []).append(event)

    cells = [DayCell(date=None) for _ in range(monday_index(first_of_month))]
    for day_number in range(1, days_in_month + 1):
        current = date(year, month, day_number)
        cells.append(
            DayCell(
                date=current,
                day=day_number,
                is_today=current == today,
                events=buckets.get(day_number, []),
            )
        )

    remainder = len(cells) % DAYS_PER_WEEK
    if remainder:
        cells.extend(DayCell(date=None) for _ in range(DAYS_PER_WEEK - remainder))
    return cells


def weeks(cells: list[DayCell]) -> list[list[DayCell]]:
    """Split a month grid into rows of seven cells."""
    return [cells[i:i + DAYS_PER_WEEK] for i in range(0, len(cells), DAYS_PER_WEEK)]


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move ``delta`` months forward (or back) with year rollover."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1
