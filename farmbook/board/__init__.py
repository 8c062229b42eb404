"""Farm task board: columns, recurrence, calendar and work reports."""

from farmbook.board.calendar import calendar_month, tasks_for_day
from farmbook.board.recurrence import add_months, advance_due_date, next_occurrence
from farmbook.board.service import (
    BoardError,
    BoardService,
    FieldNotFoundError,
    TaskNotFoundError,
)

__all__ = [
    "BoardError",
    "BoardService",
    "FieldNotFoundError",
    "TaskNotFoundError",
    "add_months",
    "advance_due_date",
    "calendar_month",
    "next_occurrence",
    "tasks_for_day",
]
