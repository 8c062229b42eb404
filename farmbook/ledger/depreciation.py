"""
Fixed Asset Depreciation (定額法)

Straight-line depreciation: the depreciable amount (price minus residual
value) is spread evenly over the useful life, one whole-yen slice per
full year of use.

DESIGN DECISION: A year of use is 365.25 days and only FULL years count.
An asset bought in March shows no depreciation until the following March.
"""

import math
from datetime import date
from decimal import Decimal
from typing import Optional

from farmbook.models.base import local_today
from farmbook.models.ledger import FixedAsset
from farmbook.models.reports import DepreciationResult, DepreciationScheduleRow


DAYS_PER_YEAR = 365.25


def years_used(purchase_date: date, as_of: date) -> int:
    """Full years between purchase and as_of. Never negative."""
    days = (as_of - purchase_date).days
    return max(0, math.floor(days / DAYS_PER_YEAR))


def annual_depreciation(asset: FixedAsset) -> Decimal:
    """Depreciation per full year, rounded down to whole yen."""
    depreciable = asset.purchase_price - asset.residual_value
    return Decimal(math.floor(depreciable / asset.useful_life_years))


def calculate_depreciation(
    asset: FixedAsset,
    as_of: Optional[date] = None,
) -> DepreciationResult:
    """Depreciation state of an asset on a given day (default today)."""
    as_of = as_of or local_today()
    used = years_used(asset.purchase_date, as_of)
    annual = annual_depreciation(asset)

    max_depreciation = asset.purchase_price - asset.residual_value
    accumulated = min(used * annual, max_depreciation)
    remaining = max(0, asset.useful_life_years - used)

    return DepreciationResult(
        asset_id=asset.id,
        as_of=as_of,
        years_used=used,
        annual_depreciation=annual,
        accumulated_depreciation=accumulated,
        book_value=asset.purchase_price - accumulated,
        years_remaining=remaining,
        is_complete=remaining == 0,
    )


def depreciation_schedule(asset: FixedAsset) -> list[DepreciationScheduleRow]:
    """
    Year-by-year schedule over the useful life.

    Rounding down leaves a few yen undepreciated after the regular
    slices; the final year takes them so the book value ends exactly
    at the residual value.
    """
    annual = annual_depreciation(asset)
    max_depreciation = asset.purchase_price - asset.residual_value

    rows = []
    accumulated = Decimal("0")
    for year_index in range(1, asset.useful_life_years + 1):
        if year_index == asset.useful_life_years:
            amount = max_depreciation - accumulated
        else:
            amount = min(annual, max_depreciation - accumulated)
        accumulated += amount
        rows.append(DepreciationScheduleRow(
            year_index=year_index,
            depreciation=amount,
            accumulated=accumulated,
            book_value=asset.purchase_price - accumulated,
        ))
    return rows
