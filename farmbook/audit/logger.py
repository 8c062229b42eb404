"""
Audit Logger

DESIGN DECISION: Every change to the board and the books leaves a trail.
A task that jumped columns, a work log replayed after a day offline, a
receipt total the family corrected by hand: each one is an AuditEvent
that can be looked up again by the record it touched or by the flow
(correlation id) it belonged to.

Local log lines are structlog JSON in production and a readable console
rendering when AppSettings.debug_mode is on. Persisting to audit storage
is best effort: a Sheets outage must never stop a field hand from
saving their work.
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from farmbook.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from farmbook.services.storage import AuditStorageInterface


_configured = False


def configure_logging(debug: bool = False) -> None:
    """
    Configure structlog for the process.

    Safe to call more than once; the last call wins. Components call it
    lazily with the default so that library use without an app still gets
    JSON lines.
    """
    global _configured
    renderer = (
        structlog.dev.ConsoleRenderer()
        if debug
        else structlog.processors.JSONRenderer(ensure_ascii=False)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


class AuditLogger:
    """
    Writes audit events locally and to audit storage, and reads them back.

    Reads are for display only (task and transaction history in the app),
    so they degrade to an empty list the same way writes degrade to a
    local-only log line.
    """

    def __init__(self, storage: Optional[AuditStorageInterface] = None):
        if not _configured:
            configure_logging()
        self._storage = storage
        self._logger = structlog.get_logger("farmbook.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    @property
    def persistent(self) -> bool:
        return self._storage is not None

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the storage write succeeded or no storage is configured.
        """
        level = {
            AuditSeverity.ERROR: "error",
            AuditSeverity.CRITICAL: "critical",
            AuditSeverity.WARNING: "warning",
        }.get(event.severity, "info")
        getattr(self._logger, level)(event.event_type.value, **event.to_log_dict())

        if self._storage is None:
            return True
        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
                event_type=event.event_type.value,
            )
            return False

    async def history(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        """Events for one task, transaction or work log, oldest first."""
        if self._storage is None:
            return []
        try:
            return await self._storage.get_events_by_entity(entity_type, entity_id)
        except Exception as e:
            self._logger.warning(
                "audit_history_unavailable",
                error=str(e),
                entity_type=entity_type,
                entity_id=str(entity_id),
            )
            return []

    async def trace(self, correlation_id: UUID) -> list[AuditEvent]:
        """Everything that happened in one receipt entry or sync run."""
        if self._storage is None:
            return []
        try:
            return await self._storage.get_events_by_correlation_id(correlation_id)
        except Exception as e:
            self._logger.warning(
                "audit_trace_unavailable",
                error=str(e),
                correlation_id=str(correlation_id),
            )
            return []

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step action (receipt upload,
    offline sync run) and pass it through all subsequent operations.
    """
    return uuid4()
