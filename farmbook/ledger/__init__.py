"""Family and farm bookkeeping: transactions, reports, assets, inventory."""

from farmbook.ledger.aggregation import (
    annual_report,
    effective_business_ratio,
    month_summary,
    recent_transactions,
    split_expense,
)
from farmbook.ledger.depreciation import calculate_depreciation, depreciation_schedule
from farmbook.ledger.export import income_statement_csv
from farmbook.ledger.service import (
    DEFAULT_ACCOUNTS,
    AlreadyMemberError,
    InvalidInviteCodeError,
    LedgerError,
    LedgerService,
    MissingFieldsError,
    RecordNotFoundError,
    total_wallet_balance,
)

__all__ = [
    "DEFAULT_ACCOUNTS",
    "AlreadyMemberError",
    "InvalidInviteCodeError",
    "LedgerError",
    "LedgerService",
    "MissingFieldsError",
    "RecordNotFoundError",
    "annual_report",
    "calculate_depreciation",
    "depreciation_schedule",
    "effective_business_ratio",
    "income_statement_csv",
    "month_summary",
    "recent_transactions",
    "split_expense",
    "total_wallet_balance",
]
