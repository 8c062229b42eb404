"""
Tax Return Export

Builds the income statement section of the 青色申告決算書 (farm income)
as a CSV the family opens in a spreadsheet or hands to their tax adviser.

Household accounts never appear here. Opening inventory is always 0;
carrying the previous year's closing stock forward is done by hand.
"""

from decimal import Decimal
from typing import Iterable

from farmbook.models.ledger import Account, AccountType, Transaction, UNKNOWN_ACCOUNT_NAME


BOM = "\ufeff"


def format_amount(amount: Decimal) -> str:
    """Whole amounts without decimals, others without trailing zeros."""
    if amount == amount.to_integral_value():
        return str(int(amount))
    return format(amount.normalize(), "f")


def income_statement_csv(
    year: int,
    transactions: Iterable[Transaction],
    accounts: Iterable[Account],
    inventory_total: Decimal = Decimal("0"),
) -> str:
    """CSV text (with BOM) of income and business expenses for a year."""
    accounts_by_id = {account.id: account for account in accounts}
    income: dict[str, Decimal] = {}
    expenses: dict[str, Decimal] = {}
    total_sales = Decimal("0")

    for tx in transactions:
        if tx.date.year != year:
            continue
        account = accounts_by_id.get(tx.account_id)
        if account is None:
            continue
        name = account.name or UNKNOWN_ACCOUNT_NAME

        if account.account_type_id == AccountType.INCOME:
            income[name] = income.get(name, Decimal("0")) + tx.amount
            total_sales += tx.amount
        elif account.account_type_id == AccountType.EXPENSE:
            expenses[name] = expenses.get(name, Decimal("0")) + tx.amount

    lines = [f"{BOM}青色申告決算書（農業所得用） - {year}年", ""]

    lines.append("【収入金額】")
    lines.extend(f"{name},{format_amount(amount)}" for name, amount in income.items())
    lines.append(f"計,{format_amount(total_sales)}")
    lines.append("")

    lines.append("【経費】")
    lines.extend(f"{name},{format_amount(amount)}" for name, amount in expenses.items())
    lines.append("")

    lines.append("【棚卸高】")
    lines.append("期首棚卸高,0")
    lines.append(f"期末棚卸高,{format_amount(Decimal(inventory_total))}")

    return "\n".join(lines) + "\n"
