"""
Ledger Aggregation

Monthly and yearly totals for the ledger home screen and the annual
report charts.

DESIGN DECISION: Expenses are split into business and household parts
by the account's business_ratio. The business part is rounded to whole
yen (half up) and the household part is whatever is left, so the two
always add back up to the amount actually paid.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional
from uuid import UUID

from farmbook.models.base import local_today
from farmbook.models.ledger import Account, AccountType, Transaction, UNKNOWN_ACCOUNT_NAME
from farmbook.models.reports import AnnualReport, CategoryAmount, MonthlyBucket, MonthSummary


RECENT_TRANSACTION_COUNT = 5
UNCATEGORIZED_NAME = "未分類"


def _accounts_by_id(accounts: Iterable[Account]) -> dict[UUID, Account]:
    return {account.id: account for account in accounts}


def effective_business_ratio(account: Optional[Account]) -> int:
    """
    Business share of an expense account in percent.

    Accounts without a ratio count fully as business when they are
    business expense accounts and fully as household otherwise.
    """
    if account is not None and account.business_ratio is not None:
        return account.business_ratio
    if account is not None and account.account_type_id == AccountType.EXPENSE:
        return 100
    return 0


def split_expense(amount: Decimal, ratio: int) -> tuple[Decimal, Decimal]:
    """Split an expense into (business, household) parts."""
    business = (amount * ratio / Decimal(100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return business, amount - business


def _sorted_categories(totals: dict[str, Decimal]) -> list[CategoryAmount]:
    categories = [CategoryAmount(name=name, amount=amount) for name, amount in totals.items()]
    categories.sort(key=lambda c: c.amount, reverse=True)
    return categories


def annual_report(
    transactions: Iterable[Transaction],
    accounts: Iterable[Account],
    year: int,
) -> AnnualReport:
    """Twelve monthly buckets and business/household category totals."""
    accounts_by_id = _accounts_by_id(accounts)
    months = [MonthlyBucket(month=m) for m in range(1, 13)]
    business_categories: dict[str, Decimal] = {}
    household_categories: dict[str, Decimal] = {}

    for tx in transactions:
        if tx.date.year != year:
            continue
        bucket = months[tx.date.month - 1]
        account = accounts_by_id.get(tx.account_id)
        name = account.name if account else UNKNOWN_ACCOUNT_NAME

        if account is not None and account.account_type_id == AccountType.INCOME:
            bucket.income += tx.amount
            bucket.business_income += tx.amount
            continue

        bucket.expense += tx.amount
        business, household = split_expense(tx.amount, effective_business_ratio(account))
        bucket.business_expense += business
        bucket.household_expense += household

        if business > 0:
            business_categories[name] = business_categories.get(name, Decimal("0")) + business
        if household > 0:
            household_categories[name] = household_categories.get(name, Decimal("0")) + household

    return AnnualReport(
        year=year,
        months=months,
        business_categories=_sorted_categories(business_categories),
        household_categories=_sorted_categories(household_categories),
    )


def month_summary(
    transactions: Iterable[Transaction],
    accounts: Iterable[Account],
    today: Optional[date] = None,
) -> MonthSummary:
    """
    Running totals from the first of the current month.

    Transactions whose account no longer exists are left out.
    """
    today = today or local_today()
    month_start = today.replace(day=1)
    accounts_by_id = _accounts_by_id(accounts)
    summary = MonthSummary(month_start=month_start)

    for tx in transactions:
        if tx.date < month_start:
            continue
        account = accounts_by_id.get(tx.account_id)
        if account is None:
            continue

        if account.account_type_id == AccountType.INCOME:
            summary.income += tx.amount
            summary.balance += tx.amount
            continue

        if account.account_type_id == AccountType.EXPENSE:
            summary.business_expense += tx.amount
        elif account.account_type_id == AccountType.HOUSEHOLD:
            summary.household_expense += tx.amount
        elif account.business_ratio == 0:
            summary.household_expense += tx.amount
        else:
            summary.business_expense += tx.amount
        summary.expense += tx.amount
        summary.balance -= tx.amount

    return summary


def recent_transactions(
    transactions: Iterable[Transaction],
    accounts: Iterable[Account],
    limit: int = RECENT_TRANSACTION_COUNT,
) -> list[dict]:
    """Newest entries for the home screen with a display category."""
    accounts_by_id = _accounts_by_id(accounts)
    newest = sorted(transactions, key=lambda tx: (tx.date, tx.created_at), reverse=True)[:limit]

    rows = []
    for tx in newest:
        account = accounts_by_id.get(tx.account_id)
        rows.append({
            "id": tx.id,
            "date": tx.date,
            "category": account.display_name if account else UNCATEGORIZED_NAME,
            "amount": tx.amount,
            "description": tx.description,
        })
    return rows
