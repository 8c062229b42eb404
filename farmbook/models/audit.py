"""
Audit Models for Farmbook

Changes to the board and the books are recorded as audit events so the
family can see who moved a task, which receipt a transaction came from,
and what happened during an offline sync.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from farmbook.models.base import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Task board
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_MOVED = "task_moved"
    TASK_DELETED = "task_deleted"
    RECURRENCE_SPAWNED = "recurrence_spawned"

    # Work logs and offline sync
    WORK_LOG_SAVED = "work_log_saved"
    WORK_LOG_QUEUED = "work_log_queued"
    WORK_LOG_SYNCED = "work_log_synced"
    OFFLINE_SYNC_COMPLETED = "offline_sync_completed"

    # Receipts and ledger
    RECEIPT_ANALYZED = "receipt_analyzed"
    RECEIPT_ANALYSIS_FAILED = "receipt_analysis_failed"
    RECEIPT_VALIDATION_FAILED = "receipt_validation_failed"
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Notifications
    PUSH_SENT = "push_sent"
    PUSH_SUBSCRIPTION_PRUNED = "push_subscription_pruned"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'task', 'transaction', 'work_log')"
    )
    entity_id: Optional[UUID] = None

    # For tracking related events (one receipt upload, one sync run)
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """Convert to a row in AUDIT_COLUMNS order."""
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, ensure_ascii=False, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]

    @classmethod
    def from_sheets_row(cls, row: list) -> "AuditEvent":
        """Inverse of to_sheets_row. Missing trailing cells read as empty."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return cls(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.task_moved(task_id, "col-todo", "col-done")
        event = AuditEventBuilder.transaction_saved(tx_id, "12000", correlation_id)
    """

    @staticmethod
    def task_created(task_id: UUID, title: str, user_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_CREATED,
            entity_type="task",
            entity_id=task_id,
            description=f"Task created: {title}"[:500],
            details={"title": title, "user_id": str(user_id) if user_id else None},
            is_user_action=True,
        )

    @staticmethod
    def task_updated(task_id: UUID, changed_fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_UPDATED,
            entity_type="task",
            entity_id=task_id,
            description=f"Task updated: {', '.join(changed_fields) or 'no changes'}"[:500],
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def task_moved(task_id: UUID, from_status: str, to_status: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_MOVED,
            entity_type="task",
            entity_id=task_id,
            description=f"Task moved from {from_status} to {to_status}",
            details={"from": from_status, "to": to_status},
            is_user_action=True,
        )

    @staticmethod
    def task_deleted(task_id: UUID, title: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="task",
            entity_id=task_id,
            description=f"Task deleted: {title}"[:500],
            is_user_action=True,
        )

    @staticmethod
    def recurrence_spawned(task_id: UUID, source_task_id: UUID, due_date: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRENCE_SPAWNED,
            entity_type="task",
            entity_id=task_id,
            description=f"Next occurrence created, due {due_date}",
            details={"source_task_id": str(source_task_id), "due_date": due_date},
        )

    @staticmethod
    def work_log_saved(log_id: UUID, task_id: UUID, hours: float, photo_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WORK_LOG_SAVED,
            entity_type="work_log",
            entity_id=log_id,
            description=f"Work logged: {hours:.1f}h with {photo_count} photo(s)",
            details={"task_id": str(task_id), "hours": round(hours, 2), "photos": photo_count},
            is_user_action=True,
        )

    @staticmethod
    def work_log_queued(log_id: UUID, task_id: UUID, image_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WORK_LOG_QUEUED,
            entity_type="work_log",
            entity_id=log_id,
            description="Work log stored offline for later sync",
            details={"task_id": str(task_id), "images": image_count},
            is_user_action=True,
        )

    @staticmethod
    def work_log_synced(log_id: UUID, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WORK_LOG_SYNCED,
            entity_type="work_log",
            entity_id=log_id,
            correlation_id=correlation_id,
            description="Offline work log uploaded",
        )

    @staticmethod
    def offline_sync_completed(
        synced: int,
        failed: int,
        remaining: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OFFLINE_SYNC_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="offline_queue",
            correlation_id=correlation_id,
            description=f"Offline sync finished: {synced} synced, {failed} failed",
            details={"synced": synced, "failed": failed, "remaining": remaining},
        )

    @staticmethod
    def receipt_analyzed(
        extraction_id: UUID,
        model_used: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_ANALYZED,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description=f"Receipt read by {model_used or 'unknown model'}",
            details={"model_used": model_used},
        )

    @staticmethod
    def receipt_analysis_failed(
        tried_models: list[str],
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_ANALYSIS_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="extraction",
            correlation_id=correlation_id,
            description="Receipt could not be read by any model",
            error_message=error_message,
            details={"tried_models": tried_models},
        )

    @staticmethod
    def receipt_validation_failed(
        extraction_id: UUID,
        stage: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description=f"{stage.capitalize()} validation failed with {len(issues)} issues",
            details={"stage": stage, "issues": issues},
        )

    @staticmethod
    def transaction_saved(
        transaction_id: UUID,
        amount: str,
        account_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction saved: {account_name} ¥{amount}"[:500],
            details={"amount": amount, "account": account_name},
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(transaction_id: UUID, changed_fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction updated: {', '.join(changed_fields) or 'no changes'}"[:500],
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(transaction_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def push_sent(user_id: UUID, delivered: int, pruned: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PUSH_SENT,
            entity_type="user",
            entity_id=user_id,
            description=f"Push delivered to {delivered} device(s)",
            details={"delivered": delivered, "pruned": pruned},
        )

    @staticmethod
    def push_subscription_pruned(subscription_id: UUID, status_code: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PUSH_SUBSCRIPTION_PRUNED,
            entity_type="push_subscription",
            entity_id=subscription_id,
            description=f"Expired push subscription removed (HTTP {status_code})",
            details={"status_code": status_code},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
