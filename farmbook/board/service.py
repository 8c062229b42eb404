"""
Task Board Service

All board operations: tasks and their columns, comments, fields,
member profiles and work logs.

DESIGN DECISION: Completing a recurring task is the only place the board
creates work on its own. move_task() spawns the next occurrence exactly
when a task ENTERS the 完了 column, so dragging a done task around inside
the column (or re-saving it) never produces duplicates.
"""

from datetime import date, datetime, timedelta
from typing import Any, Optional
from uuid import UUID

import structlog

from farmbook.audit import AuditLogger
from farmbook.board.calendar import calendar_month, tasks_for_day
from farmbook.board.recurrence import next_occurrence
from farmbook.models.audit import AuditEventBuilder
from farmbook.models.base import local_today, utc_now
from farmbook.models.board import (
    MAX_WORK_LOG_PHOTOS,
    Board,
    BoardColumn,
    CalendarMonth,
    FarmField,
    Profile,
    Task,
    TaskComment,
    TaskStatus,
    WorkLog,
)
from farmbook.services.image import CloudinaryPhotoService
from farmbook.services.storage import RecordStorageInterface


logger = structlog.get_logger(__name__)


TASKS = "tasks"
FIELDS = "fields"
WORK_LOGS = "work_logs"
COMMENTS = "task_comments"
PROFILES = "profiles"

WORK_LOG_PHOTO_FOLDER = "work-logs"


class BoardError(Exception):
    """Base exception for board operations."""
    pass


class TaskNotFoundError(BoardError):
    """No task with the given id."""
    pass


class FieldNotFoundError(BoardError):
    """No field with the given id."""
    pass


def board_sort_key(task: Task) -> tuple:
    """Due date first (undated last), then creation time."""
    return (task.due_date is None, task.due_date or date.max, task.created_at)


class BoardService:
    """
    Task board operations over record storage.

    The photo service is only needed for work logs with photos, and the
    notifier only when push notifications are configured.
    """

    def __init__(
        self,
        storage: RecordStorageInterface,
        photo_service: Optional[CloudinaryPhotoService] = None,
        audit_logger: Optional[AuditLogger] = None,
        notifier: Optional[Any] = None,
    ):
        self._storage = storage
        self._photo_service = photo_service
        self._audit_logger = audit_logger or AuditLogger()
        self._notifier = notifier

    # =========================================================================
    # TASKS
    # =========================================================================

    async def list_tasks(self, **filters: Any) -> list[Task]:
        return await self._storage.find(TASKS, **filters)

    async def fetch_board(self) -> Board:
        """All tasks arranged in the four columns."""
        tasks = await self._storage.find(TASKS)
        columns = []
        for status in TaskStatus:
            column_tasks = sorted(
                (task for task in tasks if task.status == status),
                key=board_sort_key,
            )
            columns.append(BoardColumn(status=status, title=status.label, tasks=column_tasks))
        return Board(columns=columns)

    async def get_task(self, task_id: UUID) -> Task:
        """
        Raises:
            TaskNotFoundError: If the task doesn't exist
        """
        task = await self._storage.get(TASKS, task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    async def create_task(
        self,
        title: str,
        created_by: Optional[UUID] = None,
        **fields: Any,
    ) -> Task:
        """Create a task. Extra keyword arguments are Task fields."""
        task = Task(title=title, created_by=created_by, **fields)
        await self._storage.insert(TASKS, task)
        await self._audit_logger.log(AuditEventBuilder.task_created(task.id, task.title, created_by))
        await self._notify_task_change("INSERT", task)
        return task

    async def update_task(self, task_id: UUID, **changes: Any) -> Task:
        """
        Edit a task's fields.

        Status changes made here go through move_task() so recurring
        tasks are handled the same way as on the board.
        """
        new_status = changes.pop("status", None)
        task = await self.get_task(task_id)

        changed = [name for name, value in changes.items() if getattr(task, name) != value]
        if changed:
            task = task.with_changes(**changes, updated_at=utc_now())
            await self._storage.update(TASKS, task)
            await self._audit_logger.log(AuditEventBuilder.task_updated(task.id, changed))

        if new_status is not None and TaskStatus(new_status) != task.status:
            task, _ = await self.move_task(task_id, TaskStatus(new_status))
        elif changed:
            await self._notify_task_change("UPDATE", task)
        return task

    async def move_task(
        self,
        task_id: UUID,
        new_status: TaskStatus,
        today: Optional[date] = None,
    ) -> tuple[Task, Optional[Task]]:
        """
        Move a task to another column.

        Returns:
            (moved_task, spawned_task) - spawned_task is the next
            occurrence when a recurring task was just completed
        """
        new_status = TaskStatus(new_status)
        task = await self.get_task(task_id)
        old_status = task.status
        if old_status == new_status:
            return task, None

        task = task.with_changes(status=new_status, updated_at=utc_now())
        await self._storage.update(TASKS, task)
        await self._audit_logger.log(AuditEventBuilder.task_moved(
            task.id, old_status.value, new_status.value,
        ))
        await self._notify_task_change("UPDATE", task)

        spawned = None
        if new_status == TaskStatus.DONE:
            spawned = await self._spawn_next_occurrence(task, today or local_today())
        return task, spawned

    async def _spawn_next_occurrence(self, task: Task, completed_on: date) -> Optional[Task]:
        spawned = next_occurrence(task, completed_on)
        if spawned is None:
            return None
        await self._storage.insert(TASKS, spawned)
        await self._audit_logger.log(AuditEventBuilder.recurrence_spawned(
            spawned.id, task.id, spawned.due_date.isoformat(),
        ))
        logger.info(
            "recurrence_spawned",
            source_task_id=str(task.id),
            task_id=str(spawned.id),
            due_date=spawned.due_date.isoformat(),
        )
        await self._notify_task_change("INSERT", spawned)
        return spawned

    async def delete_task(self, task_id: UUID) -> bool:
        """Delete a task together with its comments and work logs."""
        task = await self._storage.get(TASKS, task_id)
        if task is None:
            return False

        for comment in await self._storage.find(COMMENTS, task_id=task_id):
            await self._storage.delete(COMMENTS, comment.id)
        for log in await self._storage.find(WORK_LOGS, task_id=task_id):
            await self._storage.delete(WORK_LOGS, log.id)

        deleted = await self._storage.delete(TASKS, task_id)
        await self._audit_logger.log(AuditEventBuilder.task_deleted(task.id, task.title))
        return deleted

    async def tasks_for_day(self, day: date) -> list[Task]:
        tasks = sorted(await self._storage.find(TASKS), key=board_sort_key)
        return tasks_for_day(tasks, day)

    async def calendar_month(self, year: int, month: int) -> CalendarMonth:
        tasks = sorted(await self._storage.find(TASKS), key=board_sort_key)
        return calendar_month(tasks, year, month)

    async def _notify_task_change(self, event_type: str, task: Task) -> None:
        if self._notifier is None or task.assignee_id is None:
            return
        try:
            await self._notifier.notify_task_change(event_type, task)
        except Exception as e:
            # A failed notification never undoes the board change
            logger.warning("task_notification_failed", task_id=str(task.id), error=str(e))

    # =========================================================================
    # COMMENTS
    # =========================================================================

    async def add_comment(
        self,
        task_id: UUID,
        user_id: Optional[UUID],
        content: str,
    ) -> TaskComment:
        await self.get_task(task_id)
        comment = TaskComment(task_id=task_id, user_id=user_id, content=content)
        await self._storage.insert(COMMENTS, comment)
        return comment

    async def list_comments(self, task_id: UUID) -> list[TaskComment]:
        """Comments on a task, oldest first."""
        comments = await self._storage.find(COMMENTS, task_id=task_id)
        return sorted(comments, key=lambda c: c.created_at)

    # =========================================================================
    # FIELDS
    # =========================================================================

    async def list_fields(self) -> list[FarmField]:
        fields = await self._storage.find(FIELDS)
        return sorted(fields, key=lambda f: f.name)

    async def create_field(self, name: str, **attrs: Any) -> FarmField:
        field = FarmField(name=name, **attrs)
        await self._storage.insert(FIELDS, field)
        return field

    async def update_field(self, field_id: UUID, **changes: Any) -> FarmField:
        field = await self._storage.get(FIELDS, field_id)
        if field is None:
            raise FieldNotFoundError(f"Field {field_id} not found")
        field = field.with_changes(**changes)
        return await self._storage.update(FIELDS, field)

    async def delete_field(self, field_id: UUID) -> bool:
        """Delete a field; tasks tagged with it become untagged."""
        for task in await self._storage.find(TASKS, field_id=field_id):
            await self._storage.update(TASKS, task.with_changes(field_id=None, updated_at=utc_now()))
        return await self._storage.delete(FIELDS, field_id)

    # =========================================================================
    # PROFILES
    # =========================================================================

    async def list_profiles(self) -> list[Profile]:
        profiles = await self._storage.find(PROFILES)
        return sorted(profiles, key=lambda p: p.display_name)

    async def save_profile(self, profile: Profile) -> Profile:
        """Insert or replace a member profile."""
        if await self._storage.get(PROFILES, profile.id) is None:
            return await self._storage.insert(PROFILES, profile)
        return await self._storage.update(PROFILES, profile)

    # =========================================================================
    # WORK LOGS
    # =========================================================================

    async def log_work(
        self,
        task_id: UUID,
        user_id: Optional[UUID],
        started_at: Optional[datetime] = None,
        ended_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        photos: Optional[list[bytes]] = None,
        log_id: Optional[UUID] = None,
    ) -> WorkLog:
        """
        Record work on a task, uploading any photos first.

        Raises:
            TaskNotFoundError: If the task doesn't exist
            BoardError: If there are too many photos or no photo service
            PhotoUploadError: If a photo upload fails (nothing is saved)
        """
        await self.get_task(task_id)
        photos = photos or []
        if len(photos) > MAX_WORK_LOG_PHOTOS:
            raise BoardError(f"At most {MAX_WORK_LOG_PHOTOS} photos per work log")
        if photos and self._photo_service is None:
            raise BoardError("Photo uploads are not configured")

        log = WorkLog(
            task_id=task_id,
            user_id=user_id,
            started_at=started_at,
            ended_at=ended_at,
            notes=notes,
        )
        if log_id is not None:
            log = log.with_changes(id=log_id)

        if photos:
            urls = await self._photo_service.upload_many(
                photos,
                folder=WORK_LOG_PHOTO_FOLDER,
                id_prefix=str(log.id),
            )
            log = log.with_changes(photo_urls=urls)

        await self._storage.insert(WORK_LOGS, log)
        await self._audit_logger.log(AuditEventBuilder.work_log_saved(
            log.id, task_id, log.duration_hours, len(log.photo_urls),
        ))
        return log

    async def log_completion(
        self,
        task_id: UUID,
        user_id: Optional[UUID],
        duration: float,
        unit: str = "minutes",
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> WorkLog:
        """
        Record how long a just-completed task took.

        The log ends now and starts `duration` minutes or hours earlier.
        """
        if duration <= 0:
            raise BoardError("Duration must be positive")
        if unit == "hours":
            minutes = duration * 60
        elif unit == "minutes":
            minutes = duration
        else:
            raise BoardError(f"Unknown duration unit: {unit}")

        ended_at = now or utc_now()
        started_at = ended_at - timedelta(minutes=minutes)
        return await self.log_work(
            task_id,
            user_id,
            started_at=started_at,
            ended_at=ended_at,
            notes=notes,
        )

    async def list_work_logs(self, task_id: Optional[UUID] = None) -> list[WorkLog]:
        """Work logs, newest first, optionally for one task."""
        filters = {"task_id": task_id} if task_id is not None else {}
        logs = await self._storage.find(WORK_LOGS, **filters)
        return sorted(logs, key=lambda log: log.created_at, reverse=True)
