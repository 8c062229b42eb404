"""
In-Memory Storage

Used by the test suite and when the app runs without Google Sheets
credentials. Records are copied on the way in and out so callers
can never mutate stored state by accident.
"""

from typing import Any, Optional
from uuid import UUID

from farmbook.models.audit import AuditEvent
from farmbook.models.base import Record
from farmbook.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RecordStorageInterface,
    matches,
    model_for,
)


class InMemoryRecordStorage(RecordStorageInterface):
    """Dictionary-backed record storage."""

    def __init__(self):
        self._tables: dict[str, dict[UUID, Record]] = {}

    def _table(self, table: str) -> dict[UUID, Record]:
        model_for(table)
        return self._tables.setdefault(table, {})

    async def insert(self, table: str, record: Record) -> Record:
        rows = self._table(table)
        if record.id in rows:
            raise DuplicateError(f"{table} already has a record with id {record.id}")
        rows[record.id] = record.model_copy(deep=True)
        return record

    async def get(self, table: str, record_id: UUID) -> Optional[Record]:
        found = self._table(table).get(record_id)
        return found.model_copy(deep=True) if found else None

    async def update(self, table: str, record: Record) -> Record:
        rows = self._table(table)
        if record.id not in rows:
            raise NotFoundError(f"{table} has no record with id {record.id}")
        rows[record.id] = record.model_copy(deep=True)
        return record

    async def delete(self, table: str, record_id: UUID) -> bool:
        return self._table(table).pop(record_id, None) is not None

    async def find(self, table: str, **filters: Any) -> list[Record]:
        return [
            record.model_copy(deep=True)
            for record in self._table(table).values()
            if matches(record, filters)
        ]


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit log."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        found = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(found, key=lambda e: e.timestamp)

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        found = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(found, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
