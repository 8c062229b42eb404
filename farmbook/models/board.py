"""
Task Board Models

Records behind the farm task board: tasks arranged in kanban columns,
the fields (plots of land) they are tagged with, work logs recorded
against them, comments, member profiles and browser push subscriptions.

DESIGN DECISION: A task's status IS its column. The four columns are a
fixed, ordered enum rather than user-defined rows, so the board layout
can never drift from the data.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from farmbook.models.base import Record, local_date, utc_now


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TaskStatus(str, Enum):
    """
    Kanban columns, in display order.

    The values are the column identifiers stored on each task.
    """
    TODO = "col-todo"
    IN_PROGRESS = "col-inprogress"
    REVIEW = "col-review"
    DONE = "col-done"

    @property
    def label(self) -> str:
        """Column heading shown on the board."""
        return COLUMN_TITLES[self]


COLUMN_TITLES = {
    TaskStatus.TODO: "予定",
    TaskStatus.IN_PROGRESS: "作業中",
    TaskStatus.REVIEW: "確認待ち",
    TaskStatus.DONE: "完了",
}


class TaskPriority(str, Enum):
    """Task priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecurrenceType(str, Enum):
    """How often a recurring task comes back after it is completed."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


MAX_WORK_LOG_PHOTOS = 5


# =============================================================================
# STORED RECORDS
# =============================================================================

class Task(Record):
    """
    A unit of farm work on the board.

    Recurring tasks carry their rule (type, interval, optional end date).
    When one is completed a fresh copy is created for the next occurrence,
    linked back through parent_task_id.
    """

    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Short task title"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=4000,
    )
    status: TaskStatus = Field(
        default=TaskStatus.TODO,
        description="Kanban column the task sits in"
    )
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[date] = None
    assignee_id: Optional[UUID] = Field(
        default=None,
        description="Profile the task is assigned to"
    )
    tags: list[str] = Field(default_factory=list)
    field_id: Optional[UUID] = Field(
        default=None,
        description="Field (plot) this task is carried out on"
    )

    # Recurrence rule
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    recurrence_interval: int = Field(
        default=1,
        ge=1,
        le=365,
        description="Every N days/weeks/months"
    )
    recurrence_end_date: Optional[date] = None
    parent_task_id: Optional[UUID] = Field(
        default=None,
        description="First task of the recurring series this one was spawned from"
    )

    created_by: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('tags')
    @classmethod
    def clean_tags(cls, v: list[str]) -> list[str]:
        """Drop blank tags and duplicates, keeping first-seen order."""
        seen = []
        for tag in v:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @model_validator(mode='after')
    def validate_recurrence(self) -> 'Task':
        """Validate the recurrence rule."""
        if self.recurrence_end_date and self.due_date:
            if self.recurrence_end_date < self.due_date:
                raise ValueError("Recurrence end date cannot be before due date")
        return self

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_type != RecurrenceType.NONE

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE


class FarmField(Record):
    """A plot of land tasks can be tagged with."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    location: Optional[str] = Field(
        default=None,
        max_length=300,
        description="Free-text location or address"
    )
    color: str = Field(
        default="#10B981",
        pattern=r"^#[0-9A-Fa-f]{6}$",
        description="Hex color used for the field's badge"
    )
    created_at: datetime = Field(default_factory=utc_now)


class WorkLog(Record):
    """
    A record of labor performed against a task.

    Either end of the time range may be missing (a quick note with photos);
    such a log counts as zero hours in reports.
    """

    task_id: UUID
    user_id: Optional[UUID] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    photo_urls: list[str] = Field(
        default_factory=list,
        max_length=MAX_WORK_LOG_PHOTOS,
    )
    notes: Optional[str] = Field(default=None, max_length=4000)
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_time_range(self) -> 'WorkLog':
        """End cannot come before start."""
        if self.started_at and self.ended_at:
            if self.ended_at < self.started_at:
                raise ValueError("Work log cannot end before it starts")
        return self

    @property
    def duration_hours(self) -> float:
        """Hours worked, or 0 when either end of the range is missing."""
        if not self.started_at or not self.ended_at:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds() / 3600

    @property
    def work_date(self) -> Optional[date]:
        moment = self.started_at or self.ended_at
        return local_date(moment) if moment else None


class TaskComment(Record):
    """A comment left on a task."""

    task_id: UUID
    user_id: Optional[UUID] = None
    content: str = Field(..., min_length=1, max_length=2000)
    created_at: datetime = Field(default_factory=utc_now)


class Profile(Record):
    """A family member who can be assigned tasks. id is the user id."""

    display_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = None
    avatar_url: Optional[str] = None


class PushSubscriptionRecord(Record):
    """
    A browser push subscription belonging to a user.

    The endpoint uniquely identifies a subscription; re-subscribing the
    same browser replaces the stored keys.
    """

    user_id: UUID
    endpoint: str = Field(..., min_length=1)
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_subscription(cls, user_id: UUID, subscription: dict) -> "PushSubscriptionRecord":
        """Build from the browser's PushSubscription JSON."""
        keys = subscription.get("keys") or {}
        return cls(
            user_id=user_id,
            endpoint=subscription.get("endpoint", ""),
            p256dh=keys.get("p256dh", ""),
            auth=keys.get("auth", ""),
        )

    def to_subscription_info(self) -> dict:
        """Shape expected by the push delivery library."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }


# =============================================================================
# VIEW MODELS (not stored)
# =============================================================================

class BoardColumn(BaseModel):
    """One kanban column and its tasks."""

    status: TaskStatus
    title: str
    tasks: list[Task] = Field(default_factory=list)


class Board(BaseModel):
    """The whole board, columns in display order."""

    columns: list[BoardColumn] = Field(default_factory=list)

    def column(self, status: TaskStatus) -> BoardColumn:
        for col in self.columns:
            if col.status == status:
                return col
        raise KeyError(status)

    @property
    def total_tasks(self) -> int:
        return sum(len(col.tasks) for col in self.columns)


class CalendarDay(BaseModel):
    """A day cell in the month calendar."""

    day: date
    tasks: list[Task] = Field(default_factory=list)


class CalendarMonth(BaseModel):
    """
    Month grid for the calendar view.

    Weeks start on Sunday; leading_blanks is the number of empty cells
    before the 1st.
    """

    year: int
    month: int = Field(ge=1, le=12)
    leading_blanks: int = Field(ge=0, le=6)
    days: list[CalendarDay] = Field(default_factory=list)

    def weeks(self) -> list[list[Optional[CalendarDay]]]:
        """Rows of seven cells, padded with None at both ends."""
        cells: list[Optional[CalendarDay]] = [None] * self.leading_blanks
        cells.extend(self.days)
        while len(cells) % 7:
            cells.append(None)
        return [cells[i:i + 7] for i in range(0, len(cells), 7)]
