"""
Recurring Tasks

When a recurring task is completed, a fresh copy is put back in the
"予定" column with its due date moved forward by the recurrence rule.

DESIGN DECISION: The new occurrence is computed from the task's due date,
not from the day it was actually finished. A weekly Monday chore finished
late on Wednesday still comes back the following Monday. Only undated
tasks fall back to the completion day.
"""

import calendar
from datetime import date, timedelta
from typing import Optional

from farmbook.models.base import utc_now
from farmbook.models.board import RecurrenceType, Task, TaskStatus


def add_months(day: date, months: int) -> date:
    """Move a date by whole months, clamping to the last day of the month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def advance_due_date(
    due: date,
    recurrence_type: RecurrenceType,
    interval: int = 1,
) -> Optional[date]:
    """
    Next due date under a recurrence rule.

    Returns None for non-recurring tasks.
    """
    if interval < 1:
        raise ValueError("Recurrence interval must be at least 1")

    if recurrence_type == RecurrenceType.DAILY:
        return due + timedelta(days=interval)
    if recurrence_type == RecurrenceType.WEEKLY:
        return due + timedelta(weeks=interval)
    if recurrence_type == RecurrenceType.MONTHLY:
        return add_months(due, interval)
    return None


def next_occurrence(task: Task, completed_on: date) -> Optional[Task]:
    """
    Build the next occurrence of a completed recurring task.

    Returns None when the task does not recur or the series has ended.
    The returned task is not yet stored.
    """
    if not task.is_recurring:
        return None

    base = task.due_date or completed_on
    next_due = advance_due_date(base, task.recurrence_type, task.recurrence_interval)
    if next_due is None:
        return None
    if task.recurrence_end_date and next_due > task.recurrence_end_date:
        return None

    now = utc_now()
    return Task(
        title=task.title,
        description=task.description,
        status=TaskStatus.TODO,
        priority=task.priority,
        due_date=next_due,
        assignee_id=task.assignee_id,
        tags=list(task.tags),
        field_id=task.field_id,
        recurrence_type=task.recurrence_type,
        recurrence_interval=task.recurrence_interval,
        recurrence_end_date=task.recurrence_end_date,
        parent_task_id=task.parent_task_id or task.id,
        created_by=task.created_by,
        created_at=now,
        updated_at=now,
    )
