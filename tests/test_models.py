"""
Tests for Farmbook models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with fake external services)
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from farmbook.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from farmbook.models.board import (
    CalendarDay,
    CalendarMonth,
    FarmField,
    PushSubscriptionRecord,
    RecurrenceType,
    Task,
    TaskStatus,
    WorkLog,
)
from farmbook.models.ledger import (
    Account,
    FixedAsset,
    InventoryItem,
    MonthlyNote,
    ReceiptCategory,
    ReceiptData,
)


class TestTaskModels:
    """Tests for task board models."""

    def test_task_defaults(self):
        """New tasks start in the todo column."""
        task = Task(title="Weed the east field")
        assert task.status == TaskStatus.TODO
        assert task.recurrence_type == RecurrenceType.NONE
        assert not task.is_recurring
        assert not task.is_done

    def test_title_is_stripped_and_required(self):
        """Whitespace is stripped and a blank title rejected."""
        assert Task(title="  Harvest  ").title == "Harvest"
        with pytest.raises(ValidationError):
            Task(title="   ")

    def test_tags_are_cleaned(self):
        """Blank and repeated tags are dropped."""
        task = Task(title="Spray", tags=["rice", " ", "rice", "east "])
        assert task.tags == ["rice", "east"]

    def test_recurrence_end_before_due_rejected(self):
        """A series cannot end before its first due date."""
        with pytest.raises(ValidationError):
            Task(
                title="Water",
                due_date=date(2024, 5, 10),
                recurrence_type=RecurrenceType.DAILY,
                recurrence_end_date=date(2024, 5, 1),
            )

    def test_recurrence_interval_bounds(self):
        """Interval must be at least 1."""
        with pytest.raises(ValidationError):
            Task(title="Water", recurrence_interval=0)

    def test_status_labels(self):
        """Columns have their display titles."""
        assert [s.label for s in TaskStatus] == ["予定", "作業中", "確認待ち", "完了"]

    def test_with_changes_revalidates(self):
        """Edits go through validation again."""
        task = Task(title="Plant", due_date=date(2024, 5, 10))
        with pytest.raises(ValidationError):
            task.with_changes(recurrence_end_date=date(2024, 5, 1))

    def test_field_color_must_be_hex(self):
        """Field badges need a #RRGGBB color."""
        assert FarmField(name="East", color="#ABCDEF").color == "#ABCDEF"
        with pytest.raises(ValidationError):
            FarmField(name="East", color="green")


class TestWorkLogModel:
    """Tests for WorkLog."""

    def test_duration_hours(self):
        """Duration is computed from the time range."""
        start = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
        log = WorkLog(task_id=uuid4(), started_at=start, ended_at=start + timedelta(minutes=90))
        assert log.duration_hours == 1.5
        assert log.work_date == date(2024, 5, 1)

    def test_missing_end_counts_as_zero(self):
        """A note without a time range counts zero hours."""
        log = WorkLog(task_id=uuid4(), started_at=datetime(2024, 5, 1, 8, tzinfo=timezone.utc))
        assert log.duration_hours == 0.0

    def test_end_before_start_rejected(self):
        """End cannot come before start."""
        start = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
        with pytest.raises(ValidationError):
            WorkLog(task_id=uuid4(), started_at=start, ended_at=start - timedelta(hours=1))

    def test_photo_limit(self):
        """At most five photos per log."""
        with pytest.raises(ValidationError):
            WorkLog(task_id=uuid4(), photo_urls=[f"https://x/{i}.jpg" for i in range(6)])


class TestPushSubscription:
    """Tests for the push subscription record."""

    def test_from_browser_json(self):
        """Keys are pulled out of the browser's subscription JSON."""
        user_id = uuid4()
        record = PushSubscriptionRecord.from_subscription(user_id, {
            "endpoint": "https://push.example/abc",
            "keys": {"p256dh": "key", "auth": "secret"},
        })
        assert record.user_id == user_id
        assert record.to_subscription_info() == {
            "endpoint": "https://push.example/abc",
            "keys": {"p256dh": "key", "auth": "secret"},
        }

    def test_missing_keys_rejected(self):
        """A subscription without keys is useless."""
        with pytest.raises(ValidationError):
            PushSubscriptionRecord.from_subscription(uuid4(), {"endpoint": "https://push.example/abc"})


class TestCalendarMonthModel:
    """Tests for the calendar grid."""

    def test_weeks_are_padded(self):
        """Rows are always seven cells."""
        days = [CalendarDay(day=date(2024, 2, d)) for d in range(1, 30)]
        month = CalendarMonth(year=2024, month=2, leading_blanks=4, days=days)
        weeks = month.weeks()
        assert len(weeks) == 5
        assert all(len(week) == 7 for week in weeks)
        assert weeks[0][:4] == [None] * 4
        assert weeks[0][4].day == date(2024, 2, 1)
        assert weeks[-1][-1] is None


class TestLedgerModels:
    """Tests for ledger models."""

    def test_account_display_name(self):
        """The plain-language name is preferred."""
        assert Account(name="肥料費", name_simple="肥料", account_type_id=2).display_name == "肥料"
        assert Account(name="肥料費", account_type_id=2).display_name == "肥料費"

    def test_business_ratio_bounds(self):
        """Ratios are percentages."""
        with pytest.raises(ValidationError):
            Account(name="車両費", account_type_id=2, business_ratio=120)

    def test_monthly_note_month_normalized(self):
        """Notes are keyed by the first of the month."""
        note = MonthlyNote(month=date(2024, 5, 17), user_id=uuid4())
        assert note.month == date(2024, 5, 1)

    def test_fixed_asset_residual_cannot_exceed_price(self):
        """Residual value is at most the price."""
        with pytest.raises(ValidationError):
            FixedAsset(
                name="Tractor",
                purchase_date=date(2024, 1, 1),
                purchase_price=Decimal("100"),
                useful_life_years=5,
                residual_value=Decimal("200"),
            )

    def test_inventory_total_value(self):
        """Total is quantity times unit price."""
        item = InventoryItem(
            fiscal_year=2024,
            item_name="Rice",
            quantity=Decimal("30"),
            unit="kg",
            unit_price=Decimal("400"),
        )
        assert item.total_value == Decimal("12000")


class TestReceiptData:
    """Tests for receipt proposals."""

    def test_category_coercion(self):
        """Category matching is case-insensitive with a fallback."""
        assert ReceiptData(category="fertilizer").category == ReceiptCategory.FERTILIZER
        assert ReceiptData(category="groceries").category == ReceiptCategory.OTHER
        assert ReceiptData(category=None).category == ReceiptCategory.OTHER

    def test_negative_amount_rejected(self):
        """Amounts are never negative."""
        with pytest.raises(ValidationError):
            ReceiptData(amount=Decimal("-5"))


class TestAuditModels:
    """Tests for audit event builders."""

    def test_task_moved_event(self):
        """Moving a task records both columns."""
        task_id = uuid4()
        event = AuditEventBuilder.task_moved(task_id, "col-todo", "col-done")
        assert event.event_type == AuditEventType.TASK_MOVED
        assert event.entity_id == task_id
        assert event.details["from"] == "col-todo"
        assert event.details["to"] == "col-done"

    def test_receipt_analysis_failure_is_error(self):
        """A failed receipt read is logged as an error."""
        event = AuditEventBuilder.receipt_analysis_failed(["a", "b"], "quota", uuid4())
        assert event.severity == AuditSeverity.ERROR

    def test_log_dict_is_serializable(self):
        """Log dicts hold plain strings for ids."""
        event = AuditEventBuilder.task_created(uuid4(), "Plant", uuid4())
        log = event.to_log_dict()
        assert isinstance(log["event_id"], str)
        assert log["event_type"] == "task_created"


class TestPackage:
    """Tests for package metadata."""

    def test_version_matches_pyproject(self):
        """The import-time version is the released one."""
        import re
        from pathlib import Path

        import farmbook

        pyproject = (Path(__file__).resolve().parent.parent / "pyproject.toml").read_text()
        declared = re.search(r'^version = "([^"]+)"', pyproject, re.MULTILINE).group(1)
        assert farmbook.__version__ == declared
