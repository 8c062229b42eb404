"""
Ledger Service

Bookkeeping operations for the family: transactions and their comments,
the chart of accounts, the family group that shares the books, members
and wallets, monthly notes, fixed assets and year-end inventory.

DESIGN DECISION: Records belong to the family group when the user has
one, and to the user alone otherwise. Every list is scoped the same way
(group first, then user), so joining a group later simply widens what
a user sees from then on.
"""

import secrets
import string
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog

from farmbook.audit import AuditLogger
from farmbook.ledger.aggregation import annual_report, month_summary, recent_transactions
from farmbook.ledger.export import income_statement_csv
from farmbook.models.audit import AuditEventBuilder
from farmbook.models.base import utc_now
from farmbook.models.ledger import (
    Account,
    AccountType,
    FamilyGroup,
    FamilyGroupMember,
    FamilyMember,
    FixedAsset,
    GroupRole,
    InventoryItem,
    MonthlyNote,
    Transaction,
    TransactionComment,
    Wallet,
    WalletType,
)
from farmbook.models.reports import AnnualReport, InventorySummary, MonthSummary
from farmbook.services.storage import RecordStorageInterface


logger = structlog.get_logger(__name__)


INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 6
SELF_CONSUMPTION_LABEL = "自家消費"
SELF_CONSUMPTION_ACCOUNT = "家事消費"

# Chart of accounts for the 青色申告決算書 (農業所得用)
DEFAULT_ACCOUNTS = [
    # (code, name, plain name, type)
    ("4101", "種苗費", "種・苗", AccountType.EXPENSE),
    ("4102", "肥料費", "肥料", AccountType.EXPENSE),
    ("4103", "農薬衛生費", "農薬", AccountType.EXPENSE),
    ("4104", "農具費", "道具", AccountType.EXPENSE),
    ("4105", "動力光熱費", "ガソリン・電気", AccountType.EXPENSE),
    ("4106", "修繕費", "修理", AccountType.EXPENSE),
    ("4107", "諸材料費", "資材", AccountType.EXPENSE),
    ("4108", "荷造運賃手数料", "送料・手数料", AccountType.EXPENSE),
    ("4109", "地代・賃借料", "レンタル・土地代", AccountType.EXPENSE),
    ("4110", "雇人費", "人件費", AccountType.EXPENSE),
    ("4111", "租税公課", "税金・手数料", AccountType.EXPENSE),
    ("4112", "農業共済掛金", "保険", AccountType.EXPENSE),
    ("4113", "作業用衣料費", "作業着", AccountType.EXPENSE),
    ("4114", "土地改良費", "土地改良", AccountType.EXPENSE),
    ("4115", "利子割引料", "利息", AccountType.EXPENSE),
    ("4199", "雑費", "その他", AccountType.EXPENSE),
    ("5001", "売上高", "売上", AccountType.INCOME),
    ("5002", "家事消費", "自家消費", AccountType.INCOME),
    ("5003", "雑収入", "その他収入", AccountType.INCOME),
]


# =============================================================================
# EXCEPTIONS
# =============================================================================

class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class MissingFieldsError(LedgerError):
    """A transaction was submitted without amount, date or account."""
    pass


class RecordNotFoundError(LedgerError):
    """The referenced record doesn't exist."""
    pass


class InvalidInviteCodeError(LedgerError):
    """No family group uses the given invite code."""
    pass


class AlreadyMemberError(LedgerError):
    """The user already belongs to the family group."""
    pass


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def parse_month(month: str) -> date:
    """'YYYY-MM' to the first day of that month."""
    try:
        return datetime.strptime(month, "%Y-%m").date()
    except ValueError:
        raise LedgerError(f"Month must look like YYYY-MM, got {month!r}")


def total_wallet_balance(wallets: list[Wallet]) -> Decimal:
    return sum((wallet.balance for wallet in wallets), Decimal("0"))


class LedgerService:
    """
    Bookkeeping operations over record storage.

    IMPORTANT: Nothing here reads receipts. Receipt-sourced entries arrive
    through save_transaction() only after the user confirmed them.
    """

    def __init__(
        self,
        storage: RecordStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()

    async def _get(self, table: str, record_id: UUID, label: str):
        record = await self._storage.get(table, record_id)
        if record is None:
            raise RecordNotFoundError(f"{label} {record_id} not found")
        return record

    async def _scope(self, user_id: Optional[UUID]) -> dict[str, Any]:
        """Storage filters selecting the records a user can see."""
        if user_id is None:
            return {}
        group_id = await self.current_group_id(user_id)
        if group_id is not None:
            return {"group_id": group_id}
        return {"user_id": user_id}

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def save_transaction(
        self,
        user_id: Optional[UUID],
        amount: Optional[Decimal],
        date: Optional[date],
        account_id: Optional[UUID],
        description: Optional[str] = None,
        ocr_text: Optional[str] = None,
        image_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Save a confirmed entry.

        Raises:
            MissingFieldsError: If amount, date or account is missing
            RecordNotFoundError: If the account doesn't exist
        """
        if not amount or not date or not account_id:
            raise MissingFieldsError("Missing required fields")

        account = await self._get("accounts", account_id, "Account")
        group_id = await self.current_group_id(user_id) if user_id else None

        transaction = Transaction(
            amount=Decimal(str(amount)),
            date=date,
            account_id=account_id,
            description=description or None,
            ocr_text=ocr_text or None,
            image_url=image_url or None,
            group_id=group_id,
            user_id=user_id,
        )
        await self._storage.insert("transactions", transaction)
        await self._audit_logger.log(AuditEventBuilder.transaction_saved(
            transaction.id,
            str(transaction.amount),
            account.name,
            correlation_id=correlation_id,
        ))
        return transaction

    async def record_self_consumption(
        self,
        user_id: Optional[UUID],
        amount: Decimal,
        date: date,
        account_id: Optional[UUID] = None,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Record produce the family ate themselves as income.

        Uses the 家事消費 account unless another income account is given.
        """
        if account_id is None:
            account = await self._storage.find_one("accounts", name=SELF_CONSUMPTION_ACCOUNT)
            if account is None:
                raise RecordNotFoundError(f"Account {SELF_CONSUMPTION_ACCOUNT} not found")
            account_id = account.id

        label = f"{SELF_CONSUMPTION_LABEL}: {description}" if description else SELF_CONSUMPTION_LABEL
        return await self.save_transaction(user_id, amount, date, account_id, description=label)

    async def get_transaction(self, transaction_id: UUID) -> Transaction:
        return await self._get("transactions", transaction_id, "Transaction")

    async def update_transaction(self, transaction_id: UUID, **changes: Any) -> Transaction:
        """Edit amount, date, description or account of an entry."""
        transaction = await self.get_transaction(transaction_id)
        changed = [name for name, value in changes.items() if getattr(transaction, name) != value]
        if not changed:
            return transaction

        if "account_id" in changes:
            await self._get("accounts", changes["account_id"], "Account")
        transaction = transaction.with_changes(**changes)
        await self._storage.update("transactions", transaction)
        await self._audit_logger.log(AuditEventBuilder.transaction_updated(transaction.id, changed))
        return transaction

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """Delete an entry together with its comments."""
        for comment in await self._storage.find("transaction_comments", transaction_id=transaction_id):
            await self._storage.delete("transaction_comments", comment.id)
        deleted = await self._storage.delete("transactions", transaction_id)
        if deleted:
            await self._audit_logger.log(AuditEventBuilder.transaction_deleted(transaction_id))
        return deleted

    async def list_transactions(
        self,
        user_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        account_id: Optional[UUID] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """Entries newest first, optionally filtered."""
        filters = await self._scope(user_id)
        if account_id is not None:
            filters["account_id"] = account_id
        transactions = await self._storage.find("transactions", **filters)

        if date_from is not None:
            transactions = [tx for tx in transactions if tx.date >= date_from]
        if date_to is not None:
            transactions = [tx for tx in transactions if tx.date <= date_to]

        transactions.sort(key=lambda tx: (tx.date, tx.created_at), reverse=True)
        return transactions[:limit] if limit else transactions

    async def add_transaction_comment(
        self,
        transaction_id: UUID,
        user_id: Optional[UUID],
        content: str,
    ) -> TransactionComment:
        await self.get_transaction(transaction_id)
        comment = TransactionComment(transaction_id=transaction_id, user_id=user_id, content=content)
        return await self._storage.insert("transaction_comments", comment)

    async def list_transaction_comments(self, transaction_id: UUID) -> list[TransactionComment]:
        comments = await self._storage.find("transaction_comments", transaction_id=transaction_id)
        return sorted(comments, key=lambda c: c.created_at)

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def list_accounts(self, account_type: Optional[AccountType] = None) -> list[Account]:
        """Accounts in display order."""
        filters = {"account_type_id": int(account_type)} if account_type else {}
        accounts = await self._storage.find("accounts", **filters)
        return sorted(accounts, key=lambda a: (a.display_order, a.code or "", a.name))

    async def get_account(self, account_id: UUID) -> Account:
        return await self._get("accounts", account_id, "Account")

    async def create_account(self, name: str, account_type: AccountType, **attrs: Any) -> Account:
        account = Account(name=name, account_type_id=int(account_type), **attrs)
        return await self._storage.insert("accounts", account)

    async def set_business_ratio(self, account_id: UUID, ratio: int) -> Account:
        """
        Set the business share (0-100) of an account.

        Raises:
            LedgerError: If the ratio is out of range
        """
        if not 0 <= ratio <= 100:
            raise LedgerError("Business ratio must be between 0 and 100")
        account = await self.get_account(account_id)
        return await self._storage.update("accounts", account.with_changes(business_ratio=ratio))

    async def seed_default_accounts(self) -> list[Account]:
        """Create the standard chart of accounts if there are no accounts yet."""
        if await self._storage.find("accounts"):
            return []

        created = []
        for order, (code, name, name_simple, account_type) in enumerate(DEFAULT_ACCOUNTS, start=1):
            account = Account(
                code=code,
                name=name,
                name_simple=name_simple,
                account_type_id=int(account_type),
                is_default=True,
                business_ratio=100 if account_type == AccountType.EXPENSE else None,
                display_order=order,
            )
            created.append(await self._storage.insert("accounts", account))
        logger.info("default_accounts_seeded", count=len(created))
        return created

    # =========================================================================
    # FAMILY GROUP
    # =========================================================================

    async def current_membership(self, user_id: UUID) -> Optional[FamilyGroupMember]:
        return await self._storage.find_one("family_group_members", user_id=user_id)

    async def current_group_id(self, user_id: UUID) -> Optional[UUID]:
        membership = await self.current_membership(user_id)
        return membership.group_id if membership else None

    async def current_group(self, user_id: UUID) -> Optional[FamilyGroup]:
        group_id = await self.current_group_id(user_id)
        if group_id is None:
            return None
        return await self._storage.get("family_groups", group_id)

    async def group_members(self, group_id: UUID) -> list[FamilyGroupMember]:
        members = await self._storage.find("family_group_members", group_id=group_id)
        return sorted(members, key=lambda m: m.joined_at)

    async def create_family_group(self, user_id: UUID, name: str) -> FamilyGroup:
        """
        Start a family group with the user as owner.

        Raises:
            AlreadyMemberError: If the user already belongs to a group
        """
        if await self.current_membership(user_id) is not None:
            raise AlreadyMemberError("既に参加しています")

        code = generate_invite_code()
        while await self._storage.find_one("family_groups", invite_code=code) is not None:
            code = generate_invite_code()

        group = FamilyGroup(name=name, owner_id=user_id, invite_code=code)
        await self._storage.insert("family_groups", group)
        await self._storage.insert("family_group_members", FamilyGroupMember(
            group_id=group.id,
            user_id=user_id,
            role=GroupRole.OWNER,
        ))
        logger.info("family_group_created", group_id=str(group.id))
        return group

    async def join_family_group(self, user_id: UUID, invite_code: str) -> FamilyGroup:
        """
        Join a family group by invite code.

        Raises:
            InvalidInviteCodeError: If no group has that code
            AlreadyMemberError: If the user is already in the group
        """
        code = (invite_code or "").strip().upper()
        group = await self._storage.find_one("family_groups", invite_code=code)
        if group is None:
            raise InvalidInviteCodeError("招待コードが無効です")

        existing = await self._storage.find_one(
            "family_group_members",
            group_id=group.id,
            user_id=user_id,
        )
        if existing is not None:
            raise AlreadyMemberError("既に参加しています")

        await self._storage.insert("family_group_members", FamilyGroupMember(
            group_id=group.id,
            user_id=user_id,
            role=GroupRole.MEMBER,
        ))
        logger.info("family_group_joined", group_id=str(group.id), user_id=str(user_id))
        return group

    # =========================================================================
    # MEMBERS AND WALLETS
    # =========================================================================

    async def add_family_member(self, user_id: UUID, name: str) -> FamilyMember:
        member = FamilyMember(
            name=name,
            group_id=await self.current_group_id(user_id),
            user_id=user_id,
        )
        return await self._storage.insert("family_members", member)

    async def list_family_members(self, user_id: UUID) -> list[FamilyMember]:
        members = await self._storage.find("family_members", **await self._scope(user_id))
        return sorted(members, key=lambda m: m.created_at)

    async def delete_family_member(self, member_id: UUID) -> bool:
        """Delete a member and their wallets."""
        for wallet in await self._storage.find("wallets", member_id=member_id):
            await self._storage.delete("wallets", wallet.id)
        return await self._storage.delete("family_members", member_id)

    async def add_wallet(
        self,
        member_id: UUID,
        name: str,
        wallet_type: WalletType = WalletType.CASH,
        balance: Decimal = Decimal("0"),
    ) -> Wallet:
        await self._get("family_members", member_id, "Family member")
        wallet = Wallet(member_id=member_id, name=name, wallet_type=wallet_type, balance=balance)
        return await self._storage.insert("wallets", wallet)

    async def update_wallet_balance(self, wallet_id: UUID, balance: Decimal) -> Wallet:
        wallet = await self._get("wallets", wallet_id, "Wallet")
        return await self._storage.update("wallets", wallet.with_changes(balance=balance))

    async def delete_wallet(self, wallet_id: UUID) -> bool:
        return await self._storage.delete("wallets", wallet_id)

    async def list_wallets(self, member_id: Optional[UUID] = None) -> list[Wallet]:
        filters = {"member_id": member_id} if member_id is not None else {}
        return await self._storage.find("wallets", **filters)

    # =========================================================================
    # MONTHLY NOTES
    # =========================================================================

    async def get_monthly_note(self, user_id: UUID, month: str) -> Optional[MonthlyNote]:
        """The memo for a 'YYYY-MM' month, if one was written."""
        return await self._storage.find_one(
            "monthly_notes",
            user_id=user_id,
            month=parse_month(month),
            group_id=await self.current_group_id(user_id),
        )

    async def save_monthly_note(
        self,
        user_id: UUID,
        month: str,
        note: str,
        budget: Optional[Decimal] = None,
    ) -> MonthlyNote:
        """Create or replace the memo for a month."""
        existing = await self.get_monthly_note(user_id, month)
        if existing is not None:
            updated = existing.with_changes(note=note, budget=budget, updated_at=utc_now())
            return await self._storage.update("monthly_notes", updated)

        created = MonthlyNote(
            month=parse_month(month),
            note=note,
            budget=budget,
            user_id=user_id,
            group_id=await self.current_group_id(user_id),
        )
        return await self._storage.insert("monthly_notes", created)

    # =========================================================================
    # FIXED ASSETS
    # =========================================================================

    async def add_fixed_asset(self, user_id: Optional[UUID], **fields: Any) -> FixedAsset:
        group_id = await self.current_group_id(user_id) if user_id else None
        asset = FixedAsset(user_id=user_id, group_id=group_id, **fields)
        return await self._storage.insert("fixed_assets", asset)

    async def update_fixed_asset(self, asset_id: UUID, **changes: Any) -> FixedAsset:
        asset = await self._get("fixed_assets", asset_id, "Fixed asset")
        return await self._storage.update("fixed_assets", asset.with_changes(**changes))

    async def delete_fixed_asset(self, asset_id: UUID) -> bool:
        return await self._storage.delete("fixed_assets", asset_id)

    async def list_fixed_assets(self, user_id: Optional[UUID] = None) -> list[FixedAsset]:
        assets = await self._storage.find("fixed_assets", **await self._scope(user_id))
        return sorted(assets, key=lambda a: a.purchase_date, reverse=True)

    # =========================================================================
    # INVENTORY
    # =========================================================================

    async def add_inventory_item(self, user_id: Optional[UUID], **fields: Any) -> InventoryItem:
        group_id = await self.current_group_id(user_id) if user_id else None
        item = InventoryItem(user_id=user_id, group_id=group_id, **fields)
        return await self._storage.insert("inventory_items", item)

    async def update_inventory_item(self, item_id: UUID, **changes: Any) -> InventoryItem:
        item = await self._get("inventory_items", item_id, "Inventory item")
        return await self._storage.update("inventory_items", item.with_changes(**changes))

    async def delete_inventory_item(self, item_id: UUID) -> bool:
        return await self._storage.delete("inventory_items", item_id)

    async def list_inventory_items(
        self,
        fiscal_year: int,
        user_id: Optional[UUID] = None,
    ) -> list[InventoryItem]:
        filters = await self._scope(user_id)
        return await self._storage.find("inventory_items", fiscal_year=fiscal_year, **filters)

    async def inventory_summary(
        self,
        fiscal_year: int,
        user_id: Optional[UUID] = None,
    ) -> InventorySummary:
        items = await self.list_inventory_items(fiscal_year, user_id)
        return InventorySummary(
            fiscal_year=fiscal_year,
            item_count=len(items),
            total_value=sum((item.total_value for item in items), Decimal("0")),
        )

    # =========================================================================
    # REPORTS
    # =========================================================================

    async def annual_report(self, year: int, user_id: Optional[UUID] = None) -> AnnualReport:
        transactions = await self.list_transactions(
            user_id,
            date_from=date(year, 1, 1),
            date_to=date(year, 12, 31),
        )
        return annual_report(transactions, await self.list_accounts(), year)

    async def month_summary(
        self,
        user_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> MonthSummary:
        transactions = await self.list_transactions(user_id)
        return month_summary(transactions, await self.list_accounts(), today)

    async def recent_transactions(self, user_id: Optional[UUID] = None) -> list[dict]:
        transactions = await self.list_transactions(user_id)
        return recent_transactions(transactions, await self.list_accounts())

    async def income_statement_csv(self, year: int, user_id: Optional[UUID] = None) -> str:
        transactions = await self.list_transactions(
            user_id,
            date_from=date(year, 1, 1),
            date_to=date(year, 12, 31),
        )
        inventory = await self.inventory_summary(year, user_id)
        return income_statement_csv(
            year,
            transactions,
            await self.list_accounts(),
            inventory_total=inventory.total_value,
        )
