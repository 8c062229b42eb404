"""Month calendar layout for the board's calendar view."""

import calendar as _calendar
from datetime import date
from typing import Iterable

from farmbook.models.board import CalendarDay, CalendarMonth, Task


def tasks_for_day(tasks: Iterable[Task], day: date) -> list[Task]:
    """Tasks due on a given day, in their original order."""
    return [task for task in tasks if task.due_date == day]


def calendar_month(tasks: Iterable[Task], year: int, month: int) -> CalendarMonth:
    """
    Lay out a month with weeks starting on Sunday.

    Every day of the month gets a cell holding the tasks due that day.
    """
    tasks = list(tasks)
    first_weekday, days_in_month = _calendar.monthrange(year, month)
    # monthrange counts Monday as 0; shift so Sunday is column 0
    leading_blanks = (first_weekday + 1) % 7

    days = []
    for day_number in range(1, days_in_month + 1):
        day = date(year, month, day_number)
        days.append(CalendarDay(day=day, tasks=tasks_for_day(tasks, day)))

    return CalendarMonth(
        year=year,
        month=month,
        leading_blanks=leading_blanks,
        days=days,
    )
