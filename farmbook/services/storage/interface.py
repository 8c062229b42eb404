"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the family's data in Google Sheets, where they can read it
2. Use in-memory storage for testing and local runs
3. Swap in a real database later without touching business logic

Every record type lives in its own named table and is addressed by its
UUID. Queries beyond equality filters are done by the callers in Python;
the data volume of one family's farm and household is small.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Type
from uuid import UUID

from farmbook.models.audit import AuditEvent
from farmbook.models.base import Record
from farmbook.models.board import (
    FarmField,
    Profile,
    PushSubscriptionRecord,
    Task,
    TaskComment,
    WorkLog,
)
from farmbook.models.ledger import (
    Account,
    FamilyGroup,
    FamilyGroupMember,
    FamilyMember,
    FixedAsset,
    InventoryItem,
    MonthlyNote,
    Transaction,
    TransactionComment,
    Wallet,
)


TABLES: dict[str, Type[Record]] = {
    # Task board
    "tasks": Task,
    "fields": FarmField,
    "work_logs": WorkLog,
    "task_comments": TaskComment,
    "profiles": Profile,
    "push_subscriptions": PushSubscriptionRecord,
    # Ledger
    "accounts": Account,
    "transactions": Transaction,
    "transaction_comments": TransactionComment,
    "family_groups": FamilyGroup,
    "family_group_members": FamilyGroupMember,
    "family_members": FamilyMember,
    "wallets": Wallet,
    "monthly_notes": MonthlyNote,
    "fixed_assets": FixedAsset,
    "inventory_items": InventoryItem,
}


def model_for(table: str) -> Type[Record]:
    """Look up the record type stored in a table."""
    try:
        return TABLES[table]
    except KeyError:
        raise StorageError(f"Unknown table: {table}")


def matches(record: Record, filters: dict[str, Any]) -> bool:
    """True when every filter equals the record's attribute."""
    return all(getattr(record, name) == value for name, value in filters.items())


class RecordStorageInterface(ABC):
    """
    Abstract interface for record storage.

    Any storage implementation (Google Sheets, in-memory, SQL, ...)
    must implement these methods.
    """

    @abstractmethod
    async def insert(self, table: str, record: Record) -> Record:
        """
        Insert a new record.

        Raises:
            DuplicateError: If a record with the same id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get(self, table: str, record_id: UUID) -> Optional[Record]:
        """Retrieve a record by id, or None if it doesn't exist."""
        pass

    @abstractmethod
    async def update(self, table: str, record: Record) -> Record:
        """
        Replace an existing record (matched by id).

        Raises:
            NotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, table: str, record_id: UUID) -> bool:
        """Delete a record. Returns False if it didn't exist."""
        pass

    @abstractmethod
    async def find(self, table: str, **filters: Any) -> list[Record]:
        """
        List records whose attributes equal all given filters.

        Records come back in insertion order.
        """
        pass

    async def find_one(self, table: str, **filters: Any) -> Optional[Record]:
        """First record matching the filters, if any."""
        found = await self.find(table, **filters)
        return found[0] if found else None


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Returns True if logged successfully."""
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
