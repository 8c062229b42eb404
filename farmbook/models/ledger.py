"""
Bookkeeping Models

Records behind the farm/household ledger: the chart of accounts,
transactions, the family group that shares the books, wallets,
monthly notes, fixed assets and year-end inventory.

DESIGN DECISION: Money is Decimal everywhere. Splitting an expense
between business and household use rounds to whole currency units,
so the two parts always add back up to the original amount.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from farmbook.models.base import Record, utc_now


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(int, Enum):
    """
    Kind of account.

    Business expenses may be partly household use (see business_ratio);
    household expenses never appear on the tax return.
    """
    INCOME = 1
    EXPENSE = 2
    HOUSEHOLD = 3


class WalletType(str, Enum):
    CASH = "cash"
    BANK = "bank"


class GroupRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"


class ReceiptCategory(str, Enum):
    """Coarse category the receipt reader proposes."""
    SEED = "Seed"
    FERTILIZER = "Fertilizer"
    EQUIPMENT = "Equipment"
    OTHER = "Other"


UNKNOWN_ACCOUNT_NAME = "不明"

Money = Annotated[Decimal, Field(decimal_places=2)]


# =============================================================================
# CHART OF ACCOUNTS AND TRANSACTIONS
# =============================================================================

class Account(Record):
    """
    A chart-of-accounts entry.

    business_ratio is the percentage of spending on this account that
    counts as farm business; the rest is household use.
    """

    code: Optional[str] = Field(default=None, max_length=20)
    name: str = Field(..., min_length=1, max_length=100)
    name_simple: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Plain-language name shown in pickers"
    )
    account_type_id: int = Field(
        ...,
        ge=1,
        description="1 income, 2 business expense, 3 household expense"
    )
    is_default: bool = False
    business_ratio: Optional[int] = Field(
        default=100,
        ge=0,
        le=100,
        description="Percent of spending attributable to the business"
    )
    display_order: int = 0

    @property
    def display_name(self) -> str:
        return self.name_simple or self.name


class Transaction(Record):
    """
    A single income or expense entry.

    Receipt-sourced transactions keep the photo URL and the raw text
    the receipt reader saw.
    """

    amount: Annotated[Decimal, Field(gt=0, decimal_places=2)]
    date: date
    account_id: UUID
    description: Optional[str] = Field(default=None, max_length=500)
    image_url: Optional[str] = None
    ocr_text: Optional[str] = None
    group_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utc_now)


class TransactionComment(Record):
    """A comment left on a transaction."""

    transaction_id: UUID
    user_id: Optional[UUID] = None
    content: str = Field(..., min_length=1, max_length=2000)
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# FAMILY, WALLETS, NOTES
# =============================================================================

class FamilyGroup(Record):
    """A family sharing one set of books, joined by invite code."""

    name: str = Field(..., min_length=1, max_length=100)
    owner_id: UUID
    invite_code: str = Field(
        ...,
        pattern=r"^[A-Z0-9]{6}$",
        description="Six-character code other members join with"
    )
    created_at: datetime = Field(default_factory=utc_now)


class FamilyGroupMember(Record):
    """Membership of a login user in a family group."""

    group_id: UUID
    user_id: UUID
    role: GroupRole = GroupRole.MEMBER
    joined_at: datetime = Field(default_factory=utc_now)


class FamilyMember(Record):
    """A named household member wallets belong to (need not have a login)."""

    name: str = Field(..., min_length=1, max_length=100)
    group_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utc_now)


class Wallet(Record):
    """Cash or a bank account held by a family member."""

    member_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    wallet_type: WalletType = WalletType.CASH
    balance: Money = Decimal("0")


class MonthlyNote(Record):
    """
    Free-text memo and optional budget for one month.

    month is always stored as the first day of the month.
    """

    month: date
    budget: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    note: str = Field(default="", max_length=4000)
    user_id: UUID
    group_id: Optional[UUID] = None
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('month')
    @classmethod
    def normalize_month(cls, v: date) -> date:
        return v.replace(day=1)


# =============================================================================
# ASSETS AND INVENTORY
# =============================================================================

class FixedAsset(Record):
    """Equipment depreciated straight-line over its useful life."""

    name: str = Field(..., min_length=1, max_length=200)
    purchase_date: date
    purchase_price: Annotated[Decimal, Field(ge=0, decimal_places=2)]
    useful_life_years: int = Field(..., ge=1, le=100)
    residual_value: Annotated[Decimal, Field(ge=0, decimal_places=2)] = Decimal("0")
    memo: Optional[str] = Field(default=None, max_length=1000)
    group_id: Optional[UUID] = None
    user_id: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_residual(self) -> 'FixedAsset':
        if self.residual_value > self.purchase_price:
            raise ValueError("Residual value cannot exceed purchase price")
        return self


class InventoryItem(Record):
    """Stock on hand at the end of a fiscal year."""

    fiscal_year: int = Field(..., ge=2000, le=2100)
    item_name: str = Field(..., min_length=1, max_length=200)
    quantity: Annotated[Decimal, Field(ge=0)]
    unit: str = Field(default="", max_length=20)
    unit_price: Annotated[Decimal, Field(ge=0, decimal_places=2)]
    category: Optional[str] = Field(default=None, max_length=50)
    memo: Optional[str] = Field(default=None, max_length=1000)
    group_id: Optional[UUID] = None
    user_id: Optional[UUID] = None

    @property
    def total_value(self) -> Decimal:
        return self.quantity * self.unit_price


# =============================================================================
# RECEIPT READING AND VALIDATION
# =============================================================================

class ReceiptData(BaseModel):
    """
    What the receipt reader thinks it saw.

    CRITICAL: This is PROPOSED data. It becomes a Transaction only
    after the user confirms (and possibly edits) it.
    """

    extraction_id: UUID = Field(default_factory=uuid4)
    extracted_at: datetime = Field(default_factory=utc_now)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    receipt_date: Optional[date] = Field(
        default=None,
        description="Date printed on the receipt"
    )
    category: ReceiptCategory = ReceiptCategory.OTHER
    description: Optional[str] = None
    ocr_text: Optional[str] = None
    model_used: Optional[str] = Field(
        default=None,
        description="Which model in the fallback chain produced this"
    )

    @field_validator('category', mode='before')
    @classmethod
    def coerce_category(cls, v):
        """Unknown categories from the model fall back to Other."""
        if isinstance(v, ReceiptCategory):
            return v
        for cat in ReceiptCategory:
            if isinstance(v, str) and v.strip().lower() == cat.value.lower():
                return cat
        return ReceiptCategory.OTHER


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(..., description="Field with the issue")
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(..., description="Human-readable description of the issue")
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage receipt validation.

    Stage 1: Schema validation (required fields present)
    Stage 2: Semantic validation (plausibility checks)
    """

    extraction_id: UUID
    validated_at: datetime = Field(default_factory=utc_now)
    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    can_proceed_with_review: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
