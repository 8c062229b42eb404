"""
Report Models

Shapes returned by the aggregation code for charts and summaries.
None of these are stored; they are recomputed from records on demand.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


# =============================================================================
# LEDGER REPORTS
# =============================================================================

class MonthlyBucket(BaseModel):
    """Income statement figures for one calendar month."""

    month: int = Field(ge=1, le=12)
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    business_income: Decimal = Decimal("0")
    business_expense: Decimal = Decimal("0")
    household_expense: Decimal = Decimal("0")

    @property
    def label(self) -> str:
        return f"{self.month}月"

    @property
    def business_profit(self) -> Decimal:
        return self.business_income - self.business_expense


class CategoryAmount(BaseModel):
    """Total for one account name."""

    name: str
    amount: Decimal


class AnnualReport(BaseModel):
    """Twelve monthly buckets plus business/household breakdowns."""

    year: int
    months: list[MonthlyBucket]
    business_categories: list[CategoryAmount] = Field(default_factory=list)
    household_categories: list[CategoryAmount] = Field(default_factory=list)

    @property
    def total_income(self) -> Decimal:
        return sum((m.income for m in self.months), Decimal("0"))

    @property
    def total_business_expense(self) -> Decimal:
        return sum((m.business_expense for m in self.months), Decimal("0"))

    @property
    def total_household_expense(self) -> Decimal:
        return sum((m.household_expense for m in self.months), Decimal("0"))


class MonthSummary(BaseModel):
    """Running totals for the current month on the ledger home screen."""

    month_start: date
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    business_expense: Decimal = Decimal("0")
    household_expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")


class DepreciationResult(BaseModel):
    """Straight-line depreciation state of an asset on a given day."""

    asset_id: Optional[UUID] = None
    as_of: date
    years_used: int
    annual_depreciation: Decimal
    accumulated_depreciation: Decimal
    book_value: Decimal
    years_remaining: int
    is_complete: bool


class DepreciationScheduleRow(BaseModel):
    """One year of a depreciation schedule."""

    year_index: int = Field(ge=1)
    depreciation: Decimal
    accumulated: Decimal
    book_value: Decimal


class InventorySummary(BaseModel):
    fiscal_year: int
    item_count: int = 0
    total_value: Decimal = Decimal("0")


# =============================================================================
# WORK REPORTS
# =============================================================================

class FieldHours(BaseModel):
    """Hours of logged work on one field."""

    field_id: Optional[UUID] = None
    name: str
    color: Optional[str] = None
    hours: float


class AssigneeCount(BaseModel):
    """Completed tasks per person."""

    name: str
    count: int


class HeatmapDay(BaseModel):
    """One cell of the work heatmap."""

    day: date
    hours: float
    level: int = Field(ge=0, le=4)
