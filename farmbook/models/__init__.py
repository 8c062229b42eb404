"""
Data Models Package

This package contains all Pydantic models used in Farmbook.
All data flowing through the system must conform to these schemas.
"""

from farmbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from farmbook.models.base import Record, utc_now
from farmbook.models.board import (
    COLUMN_TITLES,
    MAX_WORK_LOG_PHOTOS,
    Board,
    BoardColumn,
    CalendarDay,
    CalendarMonth,
    FarmField,
    Profile,
    PushSubscriptionRecord,
    RecurrenceType,
    Task,
    TaskComment,
    TaskPriority,
    TaskStatus,
    WorkLog,
)
from farmbook.models.ledger import (
    UNKNOWN_ACCOUNT_NAME,
    Account,
    AccountType,
    FamilyGroup,
    FamilyGroupMember,
    FamilyMember,
    FixedAsset,
    GroupRole,
    InventoryItem,
    MonthlyNote,
    ReceiptCategory,
    ReceiptData,
    Transaction,
    TransactionComment,
    ValidationIssue,
    ValidationResult,
    Wallet,
    WalletType,
)
from farmbook.models.reports import (
    AnnualReport,
    AssigneeCount,
    CategoryAmount,
    DepreciationResult,
    DepreciationScheduleRow,
    FieldHours,
    HeatmapDay,
    InventorySummary,
    MonthlyBucket,
    MonthSummary,
)
from farmbook.models.weather import (
    CurrentWeather,
    WeatherCondition,
    WeatherDay,
    WeatherReport,
)

__all__ = [
    # Base
    "Record",
    "utc_now",
    # Board models
    "COLUMN_TITLES",
    "MAX_WORK_LOG_PHOTOS",
    "Board",
    "BoardColumn",
    "CalendarDay",
    "CalendarMonth",
    "FarmField",
    "Profile",
    "PushSubscriptionRecord",
    "RecurrenceType",
    "Task",
    "TaskComment",
    "TaskPriority",
    "TaskStatus",
    "WorkLog",
    # Ledger models
    "UNKNOWN_ACCOUNT_NAME",
    "Account",
    "AccountType",
    "FamilyGroup",
    "FamilyGroupMember",
    "FamilyMember",
    "FixedAsset",
    "GroupRole",
    "InventoryItem",
    "MonthlyNote",
    "ReceiptCategory",
    "ReceiptData",
    "Transaction",
    "TransactionComment",
    "ValidationIssue",
    "ValidationResult",
    "Wallet",
    "WalletType",
    # Report models
    "AnnualReport",
    "AssigneeCount",
    "CategoryAmount",
    "DepreciationResult",
    "DepreciationScheduleRow",
    "FieldHours",
    "HeatmapDay",
    "InventorySummary",
    "MonthlyBucket",
    "MonthSummary",
    # Weather models
    "CurrentWeather",
    "WeatherCondition",
    "WeatherDay",
    "WeatherReport",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
