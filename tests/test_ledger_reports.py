"""Tests for ledger math: depreciation, aggregation and tax export."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from farmbook.ledger import (
    annual_report,
    calculate_depreciation,
    depreciation_schedule,
    effective_business_ratio,
    income_statement_csv,
    month_summary,
    recent_transactions,
    split_expense,
)
from farmbook.ledger.depreciation import years_used
from farmbook.ledger.export import BOM, format_amount
from farmbook.models.ledger import Account, FixedAsset, Transaction


def make_accounts():
    return {
        "sales": Account(name="販売金額", account_type_id=1, business_ratio=None),
        "fertilizer": Account(name="肥料費", account_type_id=2, business_ratio=100),
        "power": Account(name="動力光熱費", name_simple="電気・ガス", account_type_id=2, business_ratio=60),
        "food": Account(name="食費", account_type_id=3, business_ratio=None),
    }


def tx(account, amount, day):
    return Transaction(amount=Decimal(amount), date=day, account_id=account.id)


class TestDepreciation:
    """Tests for straight-line depreciation."""

    def make_asset(self, price="1000000", life=5, residual="0"):
        return FixedAsset(
            name="Tractor",
            purchase_date=date(2020, 4, 1),
            purchase_price=Decimal(price),
            useful_life_years=life,
            residual_value=Decimal(residual),
        )

    def test_years_used_counts_full_years(self):
        """Partial years don't count; dates before purchase give zero."""
        assert years_used(date(2020, 4, 1), date(2021, 3, 31)) == 0
        assert years_used(date(2020, 4, 1), date(2022, 6, 1)) == 2
        assert years_used(date(2020, 4, 1), date(2019, 1, 1)) == 0

    def test_mid_life(self):
        """Two full years into a five year life."""
        result = calculate_depreciation(self.make_asset(), as_of=date(2022, 6, 1))
        assert result.annual_depreciation == Decimal("200000")
        assert result.accumulated_depreciation == Decimal("400000")
        assert result.book_value == Decimal("600000")
        assert result.years_remaining == 3
        assert not result.is_complete

    def test_fully_depreciated(self):
        """Accumulated never passes the depreciable amount."""
        result = calculate_depreciation(self.make_asset(residual="1"), as_of=date(2030, 1, 1))
        assert result.accumulated_depreciation == Decimal("999999")
        assert result.book_value == Decimal("1")
        assert result.is_complete

    def test_annual_rounds_down(self):
        """Whole yen per year."""
        result = calculate_depreciation(self.make_asset(price="100000", life=3), as_of=date(2020, 4, 1))
        assert result.annual_depreciation == Decimal("33333")
        assert result.years_used == 0

    def test_schedule_ends_at_residual(self):
        """The final year absorbs the rounding remainder."""
        rows = depreciation_schedule(self.make_asset(price="100000", life=3))
        assert [r.depreciation for r in rows] == [Decimal("33333"), Decimal("33333"), Decimal("33334")]
        assert rows[-1].book_value == Decimal("0")
        assert rows[-1].year_index == 3


class TestAggregation:
    """Tests for monthly and yearly totals."""

    def test_effective_ratio(self):
        """Missing ratios depend on the account type."""
        accounts = make_accounts()
        assert effective_business_ratio(accounts["power"]) == 60
        assert effective_business_ratio(accounts["food"]) == 0
        assert effective_business_ratio(Account(name="x", account_type_id=2, business_ratio=None)) == 100
        assert effective_business_ratio(None) == 0

    def test_split_rounds_half_up(self):
        """Business part rounds half up; household gets the rest."""
        assert split_expense(Decimal("1001"), 50) == (Decimal("501"), Decimal("500"))
        assert split_expense(Decimal("1000"), 100) == (Decimal("1000"), Decimal("0"))

    def test_annual_report(self):
        """Income and split expenses land in their months."""
        a = make_accounts()
        transactions = [
            tx(a["sales"], "50000", date(2024, 1, 15)),
            tx(a["fertilizer"], "8000", date(2024, 1, 20)),
            tx(a["power"], "10000", date(2024, 2, 5)),
            tx(a["food"], "3000", date(2024, 2, 6)),
            tx(a["sales"], "99999", date(2023, 12, 31)),
        ]
        report = annual_report(transactions, a.values(), 2024)

        jan, feb = report.months[0], report.months[1]
        assert jan.income == Decimal("50000")
        assert jan.business_expense == Decimal("8000")
        assert jan.business_profit == Decimal("42000")
        assert feb.business_expense == Decimal("6000")
        assert feb.household_expense == Decimal("7000")
        assert report.total_income == Decimal("50000")
        assert [(c.name, c.amount) for c in report.business_categories] == [
            ("肥料費", Decimal("8000")),
            ("動力光熱費", Decimal("6000")),
        ]
        assert [(c.name, c.amount) for c in report.household_categories] == [
            ("動力光熱費", Decimal("4000")),
            ("食費", Decimal("3000")),
        ]

    def test_annual_report_unknown_account(self):
        """Entries on deleted accounts count as household spending."""
        report = annual_report(
            [Transaction(amount=Decimal("500"), date=date(2024, 3, 1), account_id=uuid4())],
            [],
            2024,
        )
        assert report.months[2].household_expense == Decimal("500")
        assert report.household_categories[0].name == "不明"

    def test_month_summary(self):
        """Totals run from the first of the month."""
        a = make_accounts()
        transactions = [
            tx(a["sales"], "20000", date(2024, 5, 2)),
            tx(a["fertilizer"], "5000", date(2024, 5, 3)),
            tx(a["food"], "2000", date(2024, 5, 4)),
            tx(a["food"], "9999", date(2024, 4, 30)),
            Transaction(amount=Decimal("100"), date=date(2024, 5, 5), account_id=uuid4()),
        ]
        summary = month_summary(transactions, a.values(), today=date(2024, 5, 20))
        assert summary.month_start == date(2024, 5, 1)
        assert summary.income == Decimal("20000")
        assert summary.expense == Decimal("7000")
        assert summary.business_expense == Decimal("5000")
        assert summary.household_expense == Decimal("2000")
        assert summary.balance == Decimal("13000")

    def test_recent_transactions(self):
        """Newest five with display categories."""
        a = make_accounts()
        transactions = [tx(a["power"], "100", date(2024, 5, d)) for d in range(1, 8)]
        transactions.append(Transaction(amount=Decimal("1"), date=date(2024, 5, 9), account_id=uuid4()))
        rows = recent_transactions(transactions, a.values())
        assert len(rows) == 5
        assert rows[0]["category"] == "未分類"
        assert rows[1]["category"] == "電気・ガス"
        assert rows[1]["date"] == date(2024, 5, 7)


class TestIncomeStatementExport:
    """Tests for the tax return CSV."""

    def test_format_amount(self):
        """Whole yen without decimals."""
        assert format_amount(Decimal("1200.00")) == "1200"
        assert format_amount(Decimal("12.50")) == "12.5"

    def test_csv_layout(self):
        """Income, business expenses and inventory sections."""
        a = make_accounts()
        transactions = [
            tx(a["sales"], "50000", date(2024, 1, 15)),
            tx(a["sales"], "30000", date(2024, 6, 1)),
            tx(a["fertilizer"], "8000", date(2024, 1, 20)),
            tx(a["food"], "3000", date(2024, 2, 6)),
            tx(a["fertilizer"], "7777", date(2023, 2, 6)),
        ]
        text = income_statement_csv(2024, transactions, a.values(), inventory_total=Decimal("12000"))

        assert text.startswith(BOM)
        assert text.endswith("\n")
        lines = text[len(BOM):].split("\n")
        assert lines[0] == "青色申告決算書（農業所得用） - 2024年"
        assert "販売金額,80000" in lines
        assert "計,80000" in lines
        assert "肥料費,8000" in lines
        assert "期首棚卸高,0" in lines
        assert "期末棚卸高,12000" in lines
        assert not any(line.startswith("食費") for line in lines)
