"""Tests for LedgerService over in-memory storage."""

import asyncio
import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from farmbook.ledger import (
    DEFAULT_ACCOUNTS,
    AlreadyMemberError,
    InvalidInviteCodeError,
    LedgerError,
    LedgerService,
    MissingFieldsError,
    RecordNotFoundError,
    total_wallet_balance,
)
from farmbook.ledger.service import parse_month
from farmbook.models.audit import AuditEventType
from farmbook.models.ledger import AccountType, GroupRole, WalletType


@pytest.fixture
def ledger(storage, audit_logger):
    service = LedgerService(storage, audit_logger=audit_logger)
    asyncio.run(service.seed_default_accounts())
    return service


def account_named(ledger, name):
    return next(a for a in asyncio.run(ledger.list_accounts()) if a.name == name)


class TestAccounts:
    """Tests for the chart of accounts."""

    def test_seeded_once(self, ledger):
        """Seeding a second time does nothing."""
        assert len(asyncio.run(ledger.list_accounts())) == len(DEFAULT_ACCOUNTS)
        assert asyncio.run(ledger.seed_default_accounts()) == []

    def test_filter_by_type(self, ledger):
        """Income accounts only."""
        income = asyncio.run(ledger.list_accounts(AccountType.INCOME))
        assert [a.name for a in income] == ["売上高", "家事消費", "雑収入"]
        assert all(a.business_ratio is None for a in income)

    def test_business_ratio(self, ledger):
        """Ratios are 0-100."""
        account = account_named(ledger, "動力光熱費")
        assert asyncio.run(ledger.set_business_ratio(account.id, 70)).business_ratio == 70
        with pytest.raises(LedgerError):
            asyncio.run(ledger.set_business_ratio(account.id, 101))


class TestTransactions:
    """Tests for saving and editing entries."""

    def test_save_requires_fields(self, ledger):
        """Amount, date and account are required."""
        with pytest.raises(MissingFieldsError):
            asyncio.run(ledger.save_transaction(uuid4(), None, date(2024, 5, 1), uuid4()))
        with pytest.raises(RecordNotFoundError):
            asyncio.run(ledger.save_transaction(uuid4(), Decimal("100"), date(2024, 5, 1), uuid4()))

    def test_save_list_update_delete(self, ledger, audit_storage):
        """The full life of an entry, audited."""
        user_id = uuid4()
        seeds = account_named(ledger, "種苗費")
        fertilizer = account_named(ledger, "肥料費")

        older = asyncio.run(ledger.save_transaction(user_id, Decimal("500"), date(2024, 4, 1), seeds.id))
        newer = asyncio.run(ledger.save_transaction(user_id, Decimal("800"), date(2024, 5, 1), seeds.id))
        assert [t.id for t in asyncio.run(ledger.list_transactions(user_id))] == [newer.id, older.id]

        updated = asyncio.run(ledger.update_transaction(older.id, account_id=fertilizer.id, amount=Decimal("550")))
        assert updated.amount == Decimal("550")

        asyncio.run(ledger.add_transaction_comment(older.id, user_id, "receipt in the drawer"))
        assert asyncio.run(ledger.delete_transaction(older.id)) is True
        assert asyncio.run(ledger.list_transaction_comments(older.id)) == []

        types = [e.event_type for e in audit_storage.events]
        assert types.count(AuditEventType.TRANSACTION_SAVED) == 2
        assert AuditEventType.TRANSACTION_UPDATED in types
        assert AuditEventType.TRANSACTION_DELETED in types

    def test_list_filters(self, ledger):
        """Date range and account filters."""
        user_id = uuid4()
        seeds = account_named(ledger, "種苗費")
        fertilizer = account_named(ledger, "肥料費")
        asyncio.run(ledger.save_transaction(user_id, Decimal("1"), date(2024, 1, 1), seeds.id))
        asyncio.run(ledger.save_transaction(user_id, Decimal("2"), date(2024, 2, 1), fertilizer.id))
        asyncio.run(ledger.save_transaction(user_id, Decimal("3"), date(2024, 3, 1), seeds.id))

        in_range = asyncio.run(ledger.list_transactions(user_id, date_from=date(2024, 2, 1)))
        assert [t.amount for t in in_range] == [Decimal("3"), Decimal("2")]
        by_account = asyncio.run(ledger.list_transactions(user_id, account_id=seeds.id, limit=1))
        assert [t.amount for t in by_account] == [Decimal("3")]

    def test_self_consumption(self, ledger):
        """Produce eaten at home is booked as 家事消費 income."""
        entry = asyncio.run(ledger.record_self_consumption(uuid4(), Decimal("1500"), date(2024, 5, 1), description="トマト"))
        assert entry.account_id == account_named(ledger, "家事消費").id
        assert entry.description == "自家消費: トマト"

    def test_reports_use_scope(self, ledger):
        """Each user sees only their own books without a group."""
        me, other = uuid4(), uuid4()
        sales = account_named(ledger, "売上高")
        asyncio.run(ledger.save_transaction(me, Decimal("10000"), date(2024, 5, 2), sales.id))
        asyncio.run(ledger.save_transaction(other, Decimal("99999"), date(2024, 5, 2), sales.id))

        summary = asyncio.run(ledger.month_summary(me, today=date(2024, 5, 20)))
        assert summary.income == Decimal("10000")
        report = asyncio.run(ledger.annual_report(2024, me))
        assert report.total_income == Decimal("10000")
        assert asyncio.run(ledger.recent_transactions(me))[0]["category"] == "売上"
        assert "売上高,10000" in asyncio.run(ledger.income_statement_csv(2024, me))


class TestFamilyGroups:
    """Tests for sharing books through a family group."""

    def test_create_and_join(self, ledger):
        """The owner creates, a member joins with the code."""
        owner, member = uuid4(), uuid4()
        group = asyncio.run(ledger.create_family_group(owner, "Yamada farm"))
        assert len(group.invite_code) == 6

        joined = asyncio.run(ledger.join_family_group(member, f"  {group.invite_code.lower()} "))
        assert joined.id == group.id
        roles = [m.role for m in asyncio.run(ledger.group_members(group.id))]
        assert roles == [GroupRole.OWNER, GroupRole.MEMBER]

    def test_invalid_code(self, ledger):
        """Unknown codes are refused."""
        with pytest.raises(InvalidInviteCodeError):
            asyncio.run(ledger.join_family_group(uuid4(), "ZZZZZZ"))

    def test_no_double_membership(self, ledger):
        """Joining twice or creating a second group is refused."""
        owner = uuid4()
        group = asyncio.run(ledger.create_family_group(owner, "Yamada farm"))
        with pytest.raises(AlreadyMemberError):
            asyncio.run(ledger.join_family_group(owner, group.invite_code))
        with pytest.raises(AlreadyMemberError):
            asyncio.run(ledger.create_family_group(owner, "Second"))

    def test_group_shares_transactions(self, ledger):
        """Members see each other's entries after joining."""
        owner, member = uuid4(), uuid4()
        group = asyncio.run(ledger.create_family_group(owner, "Yamada farm"))
        asyncio.run(ledger.join_family_group(member, group.invite_code))
        seeds = account_named(ledger, "種苗費")

        entry = asyncio.run(ledger.save_transaction(owner, Decimal("700"), date(2024, 5, 1), seeds.id))
        assert entry.group_id == group.id
        assert [t.id for t in asyncio.run(ledger.list_transactions(member))] == [entry.id]


class TestMembersAndWallets:
    """Tests for household members and their wallets."""

    def test_wallets(self, ledger):
        """Balances add up; deleting a member removes their wallets."""
        user_id = uuid4()
        member = asyncio.run(ledger.add_family_member(user_id, "Taro"))
        cash = asyncio.run(ledger.add_wallet(member.id, "財布", WalletType.CASH, Decimal("3000")))
        asyncio.run(ledger.add_wallet(member.id, "JA bank", WalletType.BANK, Decimal("120000")))
        asyncio.run(ledger.update_wallet_balance(cash.id, Decimal("2500")))

        wallets = asyncio.run(ledger.list_wallets(member.id))
        assert total_wallet_balance(wallets) == Decimal("122500")
        assert [m.name for m in asyncio.run(ledger.list_family_members(user_id))] == ["Taro"]

        asyncio.run(ledger.delete_family_member(member.id))
        assert asyncio.run(ledger.list_wallets(member.id)) == []

    def test_wallet_needs_member(self, ledger):
        """Wallets belong to an existing member."""
        with pytest.raises(RecordNotFoundError):
            asyncio.run(ledger.add_wallet(uuid4(), "財布"))


class TestMonthlyNotes:
    """Tests for month memos."""

    def test_parse_month(self):
        """YYYY-MM only."""
        assert parse_month("2024-05") == date(2024, 5, 1)
        with pytest.raises(LedgerError):
            parse_month("May 2024")

    def test_save_replaces(self, ledger):
        """One note per month."""
        user_id = uuid4()
        assert asyncio.run(ledger.get_monthly_note(user_id, "2024-05")) is None
        asyncio.run(ledger.save_monthly_note(user_id, "2024-05", "rice planting"))
        asyncio.run(ledger.save_monthly_note(user_id, "2024-05", "rice planted", Decimal("50000")))

        note = asyncio.run(ledger.get_monthly_note(user_id, "2024-05"))
        assert note.note == "rice planted"
        assert note.budget == Decimal("50000")
        assert note.month == date(2024, 5, 1)


class TestAssetsAndInventory:
    """Tests for fixed assets and year-end stock."""

    def test_fixed_assets_newest_first(self, ledger):
        """Listing is by purchase date, newest first."""
        user_id = uuid4()
        for name, bought in (("Tractor", date(2019, 4, 1)), ("Tiller", date(2023, 4, 1))):
            asyncio.run(ledger.add_fixed_asset(
                user_id,
                name=name,
                purchase_date=bought,
                purchase_price=Decimal("500000"),
                useful_life_years=7,
            ))
        assert [a.name for a in asyncio.run(ledger.list_fixed_assets(user_id))] == ["Tiller", "Tractor"]

    def test_inventory_summary(self, ledger):
        """Totals per fiscal year feed the tax export."""
        user_id = uuid4()
        asyncio.run(ledger.add_inventory_item(
            user_id, fiscal_year=2024, item_name="Rice", quantity=Decimal("30"), unit_price=Decimal("400"),
        ))
        asyncio.run(ledger.add_inventory_item(
            user_id, fiscal_year=2023, item_name="Rice", quantity=Decimal("10"), unit_price=Decimal("400"),
        ))

        summary = asyncio.run(ledger.inventory_summary(2024, user_id))
        assert summary.item_count == 1
        assert summary.total_value == Decimal("12000")
        assert "期末棚卸高,12000" in asyncio.run(ledger.income_statement_csv(2024, user_id))
