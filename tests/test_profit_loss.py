# tests/test_profit_loss.py
"""
Tests for the profit & loss statement.
"""

import pytest
from datetime import date
from decimal import Decimal

from reports.profit_loss import compute_net_profit, generate_profit_loss, previous_period


START = date(2025, 4, 1)
END = date(2025, 6, 30)


class TestPreviousPeriod:

    def test_quarter(self):
        assert previous_period(date(2025, 7, 1), date(2025, 9, 30)) == (date(2025, 3, 31), date(2025, 6, 30))

    def test_single_day(self):
        assert previous_period(date(2025, 1, 1), date(2025, 1, 1)) == (date(2024, 12, 31), date(2024, 12, 31))


@pytest.mark.django_db
class TestProfitLoss:

    def test_sections_and_totals(self, company, trading_vouchers):
        report = generate_profit_loss(company, start=START, end=END)

        assert report["income"]["total"] == Decimal("1000.00")
        assert report["direct_expenses"]["total"] == Decimal("400.00")
        assert report["indirect_expenses"]["total"] == Decimal("300.00")
        assert [i["ledger_name"] for i in report["income"]["items"]] == ["Sales - Goods"]
        assert [i["ledger_name"] for i in report["direct_expenses"]["items"]] == ["Purchase Accounts"]
        assert [i["ledger_name"] for i in report["indirect_expenses"]["items"]] == ["Rent"]

    def test_gross_and_net_profit(self, company, trading_vouchers):
        """Gross profit is income less direct costs; net also deducts indirect costs."""
        report = generate_profit_loss(company, start=START, end=END)

        assert report["gross_profit"] == {"amount": Decimal("600.00"), "percentage": Decimal("60.00")}
        assert report["net_profit"] == {"amount": Decimal("300.00"), "percentage": Decimal("30.00")}
        assert report["summary"]["total_expenses"] == Decimal("700.00")
        assert report["summary"]["is_balanced"] is True

    def test_section_titles(self, company, trading_vouchers):
        report = generate_profit_loss(company, start=START, end=END)

        assert report["direct_expenses"]["title"] == "Cost of Goods Sold / Direct Expenses"
        assert report["indirect_expenses"]["title"] == "Operating / Indirect Expenses"

    def test_default_period_is_fiscal_year_to_date(self, company, trading_vouchers):
        report = generate_profit_loss(company, end=END)

        assert report["start"] == START
        assert report["net_profit"]["amount"] == Decimal("300.00")

    def test_period_window(self, company, trading_vouchers):
        """Only entries inside [start, end] count."""
        report = generate_profit_loss(company, start=date(2025, 5, 1), end=date(2025, 5, 31))

        assert report["income"]["total"] == Decimal("0.00")
        assert report["net_profit"]["amount"] == Decimal("-700.00")

    def test_no_activity_has_zero_margins(self, company, fiscal_year):
        report = generate_profit_loss(company, start=START, end=END)

        assert report["summary"]["gross_margin"] == Decimal("0")
        assert report["summary"]["net_margin"] == Decimal("0")
        assert report["income"]["items"] == []

    def test_compare_previous_period(self, company, trading_vouchers):
        report = generate_profit_loss(company, start=date(2025, 7, 1), end=date(2025, 9, 30), compare=True)

        assert report["previous"]["start"] == date(2025, 3, 31)
        assert report["previous"]["end"] == date(2025, 6, 30)
        assert report["previous"]["net_profit"] == Decimal("300.00")
        assert report["net_profit"]["amount"] == Decimal("0.00")
        assert report["net_profit"]["previous_amount"] == Decimal("300.00")
        sales_item = report["income"]["items"][0]
        assert (sales_item["amount"], sales_item["previous_amount"]) == (Decimal("0.00"), Decimal("1000.00"))
        assert report["income"]["previous_total"] == Decimal("1000.00")

    def test_inverted_period_rejected(self, company):
        with pytest.raises(ValueError):
            generate_profit_loss(company, start=END, end=START)

    def test_compute_net_profit_matches_report(self, company, trading_vouchers):
        assert compute_net_profit(company, START, END) == Decimal("300.00")

    def test_report_is_idempotent(self, company, trading_vouchers):
        first = generate_profit_loss(company, start=START, end=END, compare=True)
        second = generate_profit_loss(company, start=START, end=END, compare=True)

        assert first == second
