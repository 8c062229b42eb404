"""
Offline Work Log Queue

Work logs recorded without a connection are kept in a local SQLite file
and replayed against record storage when the connection comes back.

DESIGN DECISION: Every queued log gets an idempotency key when it is
queued, and that key becomes the WorkLog id on replay. Photos are
uploaded under public ids derived from the same key. If a replay is
interrupted after the insert landed but before the local copy was
deleted, the next replay hits DuplicateError and simply finishes the
cleanup instead of creating a second log.
"""

import base64
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, Union
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel, Field

from farmbook.audit import AuditLogger, create_correlation_id
from farmbook.config import AppSettings, get_settings
from farmbook.models.audit import AuditEventBuilder
from farmbook.models.base import utc_now
from farmbook.models.board import MAX_WORK_LOG_PHOTOS
from farmbook.services.image import decode_data_url
from farmbook.services.storage import DuplicateError


logger = structlog.get_logger(__name__)


class QueuedWorkLog(BaseModel):
    """A work log waiting on this device for a connection."""

    local_id: int
    idempotency_key: UUID
    task_id: UUID
    user_id: Optional[UUID] = None
    content: Optional[str] = None
    images: list[str] = Field(
        default_factory=list,
        description="Photos as base64 data URLs"
    )
    created_at: datetime
    synced: bool = False


class SyncReport(BaseModel):
    """Outcome of one replay run."""

    synced: int = 0
    failed: int = 0
    remaining: int = 0


def to_data_url(image: Union[bytes, str], mime_type: str = "image/jpeg") -> str:
    """Store photos as data URLs so the queue holds plain text."""
    if isinstance(image, str):
        return image
    encoded = base64.b64encode(image).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode with dict-like rows."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class OfflineWorkLogQueue:
    """SQLite-backed FIFO of work logs recorded offline."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        settings: Optional[AppSettings] = None,
    ):
        if db_path is None:
            db_path = (settings or get_settings().app).offline_queue_path
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        # An in-memory database only lives as long as its connection
        self._memory_conn = _connect(db_path) if db_path == ":memory:" else None
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return self._memory_conn or _connect(self.db_path)

    def _init_schema(self):
        """Create the queue table if it doesn't exist."""
        conn = self._conn()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS work_logs (
                    local_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    idempotency_key TEXT NOT NULL UNIQUE,
                    task_id TEXT NOT NULL,
                    user_id TEXT,
                    content TEXT,
                    images TEXT NOT NULL,  -- JSON list of data URLs
                    created_at TEXT NOT NULL,
                    synced INTEGER NOT NULL DEFAULT 0
                )
            """)
        self._close(conn)

    def _close(self, conn: sqlite3.Connection):
        if conn is not self._memory_conn:
            conn.close()

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> QueuedWorkLog:
        return QueuedWorkLog(
            local_id=row["local_id"],
            idempotency_key=UUID(row["idempotency_key"]),
            task_id=UUID(row["task_id"]),
            user_id=UUID(row["user_id"]) if row["user_id"] else None,
            content=row["content"],
            images=json.loads(row["images"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            synced=bool(row["synced"]),
        )

    def enqueue(
        self,
        task_id: UUID,
        user_id: Optional[UUID],
        content: Optional[str],
        images: Optional[list[Union[bytes, str]]] = None,
        created_at: Optional[datetime] = None,
    ) -> QueuedWorkLog:
        """
        Store a work log for later upload.

        Raises:
            ValueError: If more photos are given than a work log can hold
        """
        images = [to_data_url(image) for image in (images or [])]
        if len(images) > MAX_WORK_LOG_PHOTOS:
            raise ValueError(f"At most {MAX_WORK_LOG_PHOTOS} photos per work log")

        key = uuid4()
        created_at = created_at or utc_now()
        conn = self._conn()
        try:
            with conn:
                cursor = conn.execute(
                    """
                    INSERT INTO work_logs
                        (idempotency_key, task_id, user_id, content, images, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(key),
                        str(task_id),
                        str(user_id) if user_id else None,
                        content,
                        json.dumps(images),
                        created_at.isoformat(),
                    ),
                )
                local_id = cursor.lastrowid
        finally:
            self._close(conn)

        logger.info("work_log_queued", local_id=local_id, task_id=str(task_id), images=len(images))
        return QueuedWorkLog(
            local_id=local_id,
            idempotency_key=key,
            task_id=task_id,
            user_id=user_id,
            content=content,
            images=images,
            created_at=created_at,
        )

    def pending(self) -> list[QueuedWorkLog]:
        """Unsynced logs, oldest first."""
        conn = self._conn()
        try:
            rows = conn.execute(
                "SELECT * FROM work_logs WHERE synced = 0 ORDER BY local_id"
            ).fetchall()
        finally:
            self._close(conn)
        return [self._row_to_item(row) for row in rows]

    def pending_count(self) -> int:
        conn = self._conn()
        try:
            row = conn.execute("SELECT COUNT(*) FROM work_logs WHERE synced = 0").fetchone()
        finally:
            self._close(conn)
        return row[0]

    def discard(self, local_id: int) -> bool:
        """Remove a queued log. Returns False if it wasn't there."""
        conn = self._conn()
        try:
            with conn:
                cursor = conn.execute("DELETE FROM work_logs WHERE local_id = ?", (local_id,))
        finally:
            self._close(conn)
        return cursor.rowcount > 0


class OfflineSyncManager:
    """
    Replays the offline queue when the device comes back online.

    The board service does the actual upload and insert, so a replayed
    log goes through exactly the same path as one saved online.
    """

    def __init__(
        self,
        queue: OfflineWorkLogQueue,
        board_service,
        audit_logger: Optional[AuditLogger] = None,
        online: bool = True,
    ):
        self._queue = queue
        self._board = board_service
        self._audit_logger = audit_logger or AuditLogger()
        self._online = online
        self._syncing = False

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def pending_count(self) -> int:
        return self._queue.pending_count()

    async def record(
        self,
        task_id: UUID,
        user_id: Optional[UUID],
        content: Optional[str],
        images: Optional[list[Union[bytes, str]]] = None,
    ) -> QueuedWorkLog:
        """Queue a work log taken while offline."""
        item = self._queue.enqueue(task_id, user_id, content, images)
        await self._audit_logger.log(AuditEventBuilder.work_log_queued(
            item.idempotency_key, task_id, len(item.images),
        ))
        return item

    async def set_online(self, online: bool) -> Optional[SyncReport]:
        """
        Update connectivity. Coming back online starts a sync.

        Returns the sync report when a sync ran.
        """
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("connection_restored", pending=self._queue.pending_count())
            return await self.sync()
        if not online and was_online:
            logger.info("connection_lost")
        return None

    async def sync(self) -> SyncReport:
        """
        Upload every pending log, oldest first.

        A log that fails stays queued for the next run. Nothing happens
        while offline or when a sync is already running.
        """
        if not self._online or self._syncing:
            return SyncReport(remaining=self._queue.pending_count())

        self._syncing = True
        correlation_id = create_correlation_id()
        synced = failed = 0
        try:
            for item in self._queue.pending():
                if await self._replay(item, correlation_id):
                    self._queue.discard(item.local_id)
                    synced += 1
                else:
                    failed += 1
        finally:
            self._syncing = False

        report = SyncReport(
            synced=synced,
            failed=failed,
            remaining=self._queue.pending_count(),
        )
        if synced or failed:
            await self._audit_logger.log(AuditEventBuilder.offline_sync_completed(
                report.synced, report.failed, report.remaining, correlation_id,
            ))
        return report

    async def _replay(self, item: QueuedWorkLog, correlation_id: UUID) -> bool:
        """Upload one queued log. Returns True when it is safely stored."""
        try:
            photos = [decode_data_url(image)[0] for image in item.images]
            await self._board.log_work(
                item.task_id,
                item.user_id,
                started_at=item.created_at,
                ended_at=item.created_at,
                notes=item.content,
                photos=photos,
                log_id=item.idempotency_key,
            )
        except DuplicateError:
            logger.info(
                "offline_log_already_synced",
                local_id=item.local_id,
                log_id=str(item.idempotency_key),
            )
        except Exception as e:
            await self._audit_logger.log(AuditEventBuilder.system_error(
                error_type="offline_log_sync_failed",
                error_message=str(e),
                details={"local_id": item.local_id, "task_id": str(item.task_id)},
                correlation_id=correlation_id,
            ))
            return False

        await self._audit_logger.log(AuditEventBuilder.work_log_synced(
            item.idempotency_key, correlation_id,
        ))
        return True
