# tests/test_balance_sheet.py
"""
Tests for the balance sheet.
"""

import pytest
from datetime import date
from decimal import Decimal

from accounting.commands import post_voucher
from accounting.models import Voucher
from reports.balance_sheet import generate_balance_sheet, one_year_before


AS_OF = date(2025, 6, 30)


class TestOneYearBefore:

    def test_plain_date(self):
        assert one_year_before(date(2025, 6, 30)) == date(2024, 6, 30)

    def test_leap_day(self):
        assert one_year_before(date(2024, 2, 29)) == date(2023, 2, 28)


@pytest.mark.django_db
class TestBalanceSheet:

    def test_accounting_equation_holds(self, company, trading_vouchers):
        """Assets equal liabilities plus equity plus profit carried."""
        report = generate_balance_sheet(company, as_of=AS_OF)
        summary = report["summary"]

        assert summary["total_assets"] == Decimal("10300.00")
        assert summary["total_liabilities"] == Decimal("0.00")
        assert summary["total_equity"] == Decimal("10000.00")
        assert summary["total_liabilities_and_equity"] == Decimal("10300.00")
        assert summary["difference"] == Decimal("0.00")
        assert summary["is_balanced"] is True

    def test_profit_split(self, company, trading_vouchers):
        equity = generate_balance_sheet(company, as_of=AS_OF)["equity"]

        assert equity["retained_earnings"] == Decimal("0.00")
        assert equity["current_year_profit"] == Decimal("300.00")
        assert equity["total_with_profit"] == Decimal("10300.00")

    def test_assets_follow_group_tree(self, company, trading_vouchers):
        """Groups nest as in the chart; zero ledgers and empty groups are left out."""
        assets = generate_balance_sheet(company, as_of=AS_OF)["assets"]

        assert [g["group_name"] for g in assets["groups"]] == ["Assets"]
        current = assets["groups"][0]["children"]
        assert [g["group_name"] for g in current] == ["Current Assets"]
        cash_and_bank = current[0]["children"][0]
        assert cash_and_bank["group_name"] == "Cash & Bank"
        assert cash_and_bank["total"] == Decimal("10300.00")
        assert {l["ledger_name"]: l["balance"] for l in cash_and_bank["ledgers"]} == {
            "Cash in Hand": Decimal("700.00"),
            "HDFC Bank": Decimal("9600.00"),
        }
        assert report_group_names(assets) == {"Assets", "Current Assets", "Cash & Bank"}

    def test_liabilities_empty(self, company, trading_vouchers):
        liabilities = generate_balance_sheet(company, as_of=AS_OF)["liabilities"]

        assert liabilities["groups"] == []
        assert liabilities["total"] == Decimal("0.00")

    def test_prior_year_profit_is_retained(self, company, trading_vouchers, post_approved, cash, sales, entry):
        """Income before the fiscal-year start becomes retained earnings."""
        post_approved(
            Voucher.VoucherType.SALES, date(2025, 3, 15),
            [entry(cash, debit="100"), entry(sales, credit="100")],
        )

        report = generate_balance_sheet(company, as_of=AS_OF)

        assert report["equity"]["retained_earnings"] == Decimal("100.00")
        assert report["equity"]["current_year_profit"] == Decimal("300.00")
        assert report["summary"]["total_assets"] == Decimal("10400.00")
        assert report["summary"]["is_balanced"] is True

    def test_compare_with_previous_year(self, company, trading_vouchers):
        report = generate_balance_sheet(company, as_of=date(2026, 6, 30), compare=True)
        equity = report["equity"]

        assert report["period_start"] == date(2026, 4, 1)
        assert equity["retained_earnings"] == Decimal("300.00")
        assert equity["current_year_profit"] == Decimal("0.00")
        assert equity["previous_retained_earnings"] == Decimal("0.00")
        assert equity["previous_current_year_profit"] == Decimal("300.00")

        previous = report["summary"]["previous"]
        assert previous["as_of"] == date(2025, 6, 30)
        assert previous["total_assets"] == Decimal("10300.00")
        assert previous["is_balanced"] is True

    def test_compare_adds_previous_figures_to_nodes(self, company, trading_vouchers):
        report = generate_balance_sheet(company, as_of=date(2026, 6, 30), compare=True)

        root = report["assets"]["groups"][0]
        assert root["previous_total"] == Decimal("10300.00")
        assert "previous_balance" in root["children"][0]["children"][0]["ledgers"][0]

    def test_unapproved_vouchers_on_request(self, actor, company, trading_vouchers, cash, sales, entry):
        post_voucher(actor, Voucher.VoucherType.SALES, date(2025, 6, 10),
                     [entry(cash, debit="50"), entry(sales, credit="50")])

        default = generate_balance_sheet(company, as_of=AS_OF)
        with_pending = generate_balance_sheet(company, as_of=AS_OF, include_unapproved=True)

        assert default["summary"]["total_assets"] == Decimal("10300.00")
        assert with_pending["summary"]["total_assets"] == Decimal("10350.00")
        assert with_pending["equity"]["current_year_profit"] == Decimal("350.00")
        assert with_pending["summary"]["is_balanced"] is True

    def test_report_is_idempotent(self, company, trading_vouchers):
        assert generate_balance_sheet(company, as_of=AS_OF) == generate_balance_sheet(company, as_of=AS_OF)


def report_group_names(section):
    names = set()
    stack = list(section["groups"])
    while stack:
        node = stack.pop()
        names.add(node["group_name"])
        stack.extend(node["children"])
    return names
