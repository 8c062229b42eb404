"""
Work Reports

Summaries over work logs and tasks for the reports page: hours per field,
completed tasks per person, and a daily heatmap of logged hours.

DESIGN DECISION: These are pure functions over already-fetched records.
One family's farm produces a few thousand logs a year at most, so a
single pass in Python is all the "query engine" needed.
"""

import csv
import io
import math
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Optional
from uuid import UUID

from farmbook.models.base import local_date
from farmbook.models.board import FarmField, Profile, Task, TaskStatus, WorkLog
from farmbook.models.reports import AssigneeCount, FieldHours, HeatmapDay


UNTAGGED_FIELD_NAME = "未設定"
UNASSIGNED_NAME = "未割当"
DEFAULT_HEATMAP_DAYS = 120

WORK_LOG_COLUMNS = ["Date", "Field", "Task", "Duration", "Notes"]


def round_hours(hours: float) -> float:
    """Round to one decimal place, the precision shown in reports."""
    return math.floor(hours * 10 + 0.5) / 10


def total_hours(logs: Iterable[WorkLog]) -> float:
    return round_hours(sum(log.duration_hours for log in logs))


def work_hours_by_field(
    logs: Iterable[WorkLog],
    tasks: Iterable[Task],
    fields: Iterable[FarmField],
) -> list[FieldHours]:
    """
    Hours of logged work per field, busiest first.

    A log belongs to the field of its task. Logs on untagged tasks, or on
    tasks whose field no longer exists, are grouped under "未設定".
    Fields with no hours are left out.
    """
    task_fields = {task.id: task.field_id for task in tasks}
    fields_by_id = {field.id: field for field in fields}

    hours: dict[Optional[UUID], float] = defaultdict(float)
    for log in logs:
        field_id = task_fields.get(log.task_id)
        if field_id not in fields_by_id:
            field_id = None
        hours[field_id] += log.duration_hours

    result = []
    for field_id, total in hours.items():
        rounded = round_hours(total)
        if rounded <= 0:
            continue
        field = fields_by_id.get(field_id)
        result.append(FieldHours(
            field_id=field_id,
            name=field.name if field else UNTAGGED_FIELD_NAME,
            color=field.color if field else None,
            hours=rounded,
        ))

    result.sort(key=lambda item: item.hours, reverse=True)
    return result


def _profile_name(profile: Optional[Profile]) -> str:
    if profile is None:
        return UNASSIGNED_NAME
    return profile.display_name or profile.email or UNASSIGNED_NAME


def completed_tasks_by_assignee(
    tasks: Iterable[Task],
    profiles: Iterable[Profile],
) -> list[AssigneeCount]:
    """Number of tasks in the 完了 column per assignee, most first."""
    profiles_by_id = {profile.id: profile for profile in profiles}

    counts: dict[str, int] = {}
    for task in tasks:
        if task.status != TaskStatus.DONE:
            continue
        name = _profile_name(profiles_by_id.get(task.assignee_id))
        counts[name] = counts.get(name, 0) + 1

    result = [AssigneeCount(name=name, count=count) for name, count in counts.items()]
    result.sort(key=lambda item: item.count, reverse=True)
    return result


def daily_work_hours(
    logs: Iterable[WorkLog],
    start: date,
    end: date,
) -> dict[date, float]:
    """Logged hours per day between start and end (inclusive)."""
    totals: dict[date, float] = defaultdict(float)
    for log in logs:
        day = log.work_date
        if day is None or day < start or day > end:
            continue
        totals[day] += log.duration_hours
    return {day: round_hours(hours) for day, hours in sorted(totals.items())}


def heatmap_level(hours: float) -> int:
    """Color step for a heatmap cell: 0 (nothing logged) to 4 (very busy)."""
    if hours <= 0:
        return 0
    if hours < 2:
        return 1
    if hours < 4:
        return 2
    if hours < 6:
        return 3
    return 4


def heatmap(
    logs: Iterable[WorkLog],
    today: date,
    days: int = DEFAULT_HEATMAP_DAYS,
) -> list[HeatmapDay]:
    """One cell per day from `days` days ago up to today, oldest first."""
    start = today - timedelta(days=days)
    totals = daily_work_hours(logs, start, today)

    cells = []
    day = start
    while day <= today:
        hours = totals.get(day, 0.0)
        cells.append(HeatmapDay(day=day, hours=hours, level=heatmap_level(hours)))
        day += timedelta(days=1)
    return cells


def work_log_rows(
    logs: Iterable[WorkLog],
    tasks: Iterable[Task],
    fields: Iterable[FarmField],
) -> list[dict]:
    """Rows for the work log table and export, oldest first."""
    tasks_by_id = {task.id: task for task in tasks}
    fields_by_id = {field.id: field for field in fields}

    def sort_key(log: WorkLog):
        return (log.work_date or local_date(log.created_at), log.created_at)

    rows = []
    for log in sorted(logs, key=sort_key):
        task = tasks_by_id.get(log.task_id)
        field = fields_by_id.get(task.field_id) if task else None
        day = log.work_date or local_date(log.created_at)
        rows.append({
            "Date": day.isoformat(),
            "Field": field.name if field else "-",
            "Task": task.title if task else "-",
            "Duration": f"{round_hours(log.duration_hours)} h",
            "Notes": log.notes or "",
        })
    return rows


def work_log_csv(
    logs: Iterable[WorkLog],
    tasks: Iterable[Task],
    fields: Iterable[FarmField],
) -> str:
    """Work log export as CSV text."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=WORK_LOG_COLUMNS, lineterminator="\n")
    writer.writeheader()
    writer.writerows(work_log_rows(logs, tasks, fields))
    return buffer.getvalue()
