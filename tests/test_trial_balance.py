# tests/test_trial_balance.py
"""
Tests for the trial balance.
"""

import logging

import pytest
from datetime import date
from decimal import Decimal

from prometheus_client import REGISTRY

from accounting.commands import deactivate_ledger, post_voucher, update_ledger
from accounting.models import Ledger, Voucher
from reports.trial_balance import generate_trial_balance


AS_OF = date(2025, 6, 30)


def _by_name(report):
    return {row["ledger_name"]: row for row in report["ledgers"]}


@pytest.mark.django_db
class TestTrialBalance:

    def test_closing_totals_balance(self, company, trading_vouchers):
        """Balanced vouchers give equal closing debit and credit totals."""
        report = generate_trial_balance(company, as_of=AS_OF)

        assert report["summary"]["total_debit"] == Decimal("11000.00")
        assert report["summary"]["total_credit"] == Decimal("11000.00")
        assert report["summary"]["is_balanced"] is True
        assert report["summary"]["difference"] == Decimal("0.00")

    def test_rows_in_nature_group_name_order(self, company, trading_vouchers):
        """Zero ledgers are hidden and rows are ordered by nature, group, name."""
        report = generate_trial_balance(company, as_of=AS_OF)

        assert [row["ledger_name"] for row in report["ledgers"]] == [
            "Cash in Hand",
            "HDFC Bank",
            "Owner's Capital",
            "Sales - Goods",
            "Purchase Accounts",
            "Rent",
        ]
        assert report["summary"]["ledger_count"] == 6

    def test_closing_is_netted_to_one_side(self, company, trading_vouchers):
        rows = _by_name(generate_trial_balance(company, as_of=AS_OF))

        bank = rows["HDFC Bank"]
        assert (bank["period_debit"], bank["period_credit"]) == (Decimal("10000.00"), Decimal("400.00"))
        assert (bank["closing_debit"], bank["closing_credit"]) == (Decimal("9600.00"), Decimal("0.00"))
        assert rows["Sales - Goods"]["closing_credit"] == Decimal("1000.00")

    def test_show_zero_balances(self, company, trading_vouchers):
        report = generate_trial_balance(company, as_of=AS_OF, show_zero_balances=True)

        assert report["summary"]["ledger_count"] == Ledger.objects.filter(company=company, is_active=True).count()

    def test_entries_before_fiscal_year_are_opening(self, company, post_approved, cash, sales, trading_vouchers, entry):
        """Activity before the fiscal-year start moves into the opening columns."""
        post_approved(
            Voucher.VoucherType.SALES, date(2025, 3, 15),
            [entry(cash, debit="100"), entry(sales, credit="100")],
        )

        rows = _by_name(generate_trial_balance(company, as_of=AS_OF))

        assert rows["Cash in Hand"]["opening_debit"] == Decimal("100.00")
        assert rows["Cash in Hand"]["period_debit"] == Decimal("1000.00")
        assert rows["Cash in Hand"]["closing_debit"] == Decimal("800.00")
        assert rows["Sales - Goods"]["opening_credit"] == Decimal("100.00")

    def test_opening_balances_included(self, company, groups, make_ledger, fiscal_year):
        """Ledger opening balances appear as opening and closing figures."""
        make_ledger(groups["Fixed Assets"], "Machinery", opening_balance="5000")
        make_ledger(groups["Loans (Liability)"], "Term Loan", opening_balance="5000", side=Ledger.Side.CREDIT)

        report = generate_trial_balance(company, as_of=AS_OF)
        rows = _by_name(report)

        assert rows["Machinery"]["opening_debit"] == Decimal("5000.00")
        assert rows["Term Loan"]["closing_credit"] == Decimal("5000.00")
        assert report["summary"]["is_balanced"] is True

    def test_unbalanced_openings_are_reported(self, company, groups, make_ledger, fiscal_year, caplog, monkeypatch):
        """An imbalance is returned, logged and counted, never raised."""
        monkeypatch.setattr(logging.getLogger("reports"), "propagate", True)
        before = REGISTRY.get_sample_value("ledger_report_imbalance_total", {"report": "trial_balance"}) or 0
        make_ledger(groups["Fixed Assets"], "Machinery", opening_balance="500")

        with caplog.at_level(logging.WARNING, logger="reports"):
            report = generate_trial_balance(company, as_of=AS_OF)

        assert report["summary"]["is_balanced"] is False
        assert report["summary"]["difference"] == Decimal("500.00")
        assert "trial_balance is out of balance by 500.00" in caplog.text
        after = REGISTRY.get_sample_value("ledger_report_imbalance_total", {"report": "trial_balance"})
        assert after == before + 1

    def test_unapproved_vouchers_on_request(self, actor, company, trading_vouchers, cash, sales, entry):
        post_voucher(actor, Voucher.VoucherType.SALES, date(2025, 6, 10),
                     [entry(cash, debit="50"), entry(sales, credit="50")])

        default = _by_name(generate_trial_balance(company, as_of=AS_OF))
        with_pending = _by_name(generate_trial_balance(company, as_of=AS_OF, include_unapproved=True))

        assert default["Cash in Hand"]["closing_debit"] == Decimal("700.00")
        assert with_pending["Cash in Hand"]["closing_debit"] == Decimal("750.00")

    def test_inactive_ledgers_excluded(self, actor, chart, company, trading_vouchers):
        result = deactivate_ledger(actor, chart["Electricity"].pk)
        assert result.success, result.error

        report = generate_trial_balance(company, as_of=AS_OF, show_zero_balances=True)

        assert "Electricity" not in _by_name(report)
        assert report["summary"]["is_balanced"] is True

    def test_ledger_with_balance_stays_in_report(self, actor, company, trading_vouchers, cash):
        """A ledger carrying a balance cannot be deactivated out of the trial balance."""
        result = deactivate_ledger(actor, cash.pk)

        assert not result.success
        assert "balance of 700.00" in result.error
        report = generate_trial_balance(company, as_of=AS_OF)
        assert report["summary"]["total_debit"] == Decimal("11000.00")
        assert report["summary"]["total_credit"] == Decimal("11000.00")
        assert report["summary"]["is_balanced"] is True
        assert _by_name(report)["Cash in Hand"]["closing_debit"] == Decimal("700.00")

    def test_update_cannot_deactivate_ledger_with_balance(self, actor, company, trading_vouchers, rent):
        result = update_ledger(actor, rent.pk, is_active=False)

        assert not result.success
        assert "Transfer the balance first" in result.error
        assert "Rent" in _by_name(generate_trial_balance(company, as_of=AS_OF))

    def test_ledger_with_pending_voucher_cannot_be_deactivated(self, actor, chart, cash, entry):
        electricity = chart["Electricity"]
        post_voucher(actor, Voucher.VoucherType.PAYMENT, date(2025, 6, 2),
                     [entry(electricity, debit="80"), entry(cash, credit="80")])

        result = deactivate_ledger(actor, electricity.pk)

        assert not result.success
        assert "draft or pending" in result.error

    def test_groups_block_totals(self, company, trading_vouchers):
        report = generate_trial_balance(company, as_of=AS_OF)

        natures = [block["nature"] for block in report["groups"]]
        assert natures == ["ASSETS", "EQUITY", "INCOME", "EXPENSES"]
        assets = report["groups"][0]
        assert assets["totals"]["closing_debit"] == Decimal("10300.00")
        assert [g["group_name"] for g in report["groups"][3]["groups"]] == ["Direct Expenses", "Indirect Expenses"]

    def test_as_of_excludes_later_vouchers(self, company, trading_vouchers):
        report = generate_trial_balance(company, as_of=date(2025, 4, 30))

        assert report["summary"]["total_debit"] == Decimal("11000.00")
        assert "Rent" not in _by_name(report)

    def test_report_is_idempotent(self, company, trading_vouchers):
        """Running the report twice yields identical output."""
        assert generate_trial_balance(company, as_of=AS_OF) == generate_trial_balance(company, as_of=AS_OF)

    def test_other_company_is_empty(self, second_company, trading_vouchers):
        report = generate_trial_balance(second_company, as_of=AS_OF)

        assert report["ledgers"] == []
        assert report["summary"]["is_balanced"] is True
