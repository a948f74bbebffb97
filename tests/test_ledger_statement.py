# tests/test_ledger_statement.py
"""
Tests for the ledger statement.
"""

import pytest
from datetime import date
from decimal import Decimal

from accounting.models import Ledger
from reports.ledger_statement import generate_ledger_statement


START = date(2025, 4, 1)
END = date(2025, 6, 30)


@pytest.mark.django_db
class TestLedgerStatement:

    def test_rows_with_running_balance(self, company, trading_vouchers, cash):
        report = generate_ledger_statement(company, cash.pk, start=START, end=END)
        rows = report["rows"]

        assert rows[0]["narration"] == "Opening Balance"
        assert rows[0]["date"] == START
        assert rows[0]["balance"] == Decimal("0.00")
        assert [(r["debit"], r["credit"], r["balance"]) for r in rows[1:]] == [
            (Decimal("1000.00"), Decimal("0.00"), Decimal("1000.00")),
            (Decimal("0.00"), Decimal("300.00"), Decimal("700.00")),
        ]
        assert report["closing_balance"] == Decimal("700.00")
        assert report["totals"] == {"debit": Decimal("1000.00"), "credit": Decimal("300.00")}
        assert report["summary"]["entry_count"] == 2
        assert report["summary"]["is_balanced"] is True

    def test_rows_carry_voucher_details(self, company, trading_vouchers, cash):
        rows = generate_ledger_statement(company, cash.pk, start=START, end=END)["rows"]
        sale = trading_vouchers[1]

        assert rows[1]["voucher_id"] == sale.pk
        assert rows[1]["voucher_number"] == sale.voucher_number
        assert rows[1]["narration"] == "Cash sale"

    def test_credit_natured_ledger(self, company, trading_vouchers, sales):
        """Running balances are debit-positive; the closing balance follows the nature."""
        report = generate_ledger_statement(company, sales.pk, start=START, end=END)

        assert report["rows"][-1]["balance"] == Decimal("-1000.00")
        assert report["closing_balance"] == Decimal("1000.00")

    def test_earlier_entries_brought_forward(self, company, trading_vouchers, cash):
        report = generate_ledger_statement(company, cash.pk, start=date(2025, 5, 1), end=END)

        assert report["opening_balance"] == Decimal("1000.00")
        assert report["rows"][0]["debit"] == Decimal("1000.00")
        assert len(report["rows"]) == 2

    def test_default_start_is_fiscal_year_start(self, company, trading_vouchers, cash):
        assert generate_ledger_statement(company, cash.pk, end=END)["start"] == START

    def test_unknown_ledger(self, company, chart):
        with pytest.raises(Ledger.DoesNotExist):
            generate_ledger_statement(company, 999999, start=START, end=END)

    def test_ledger_of_other_company(self, second_company, cash):
        with pytest.raises(Ledger.DoesNotExist):
            generate_ledger_statement(second_company, cash.pk, start=START, end=END)

    def test_inverted_period_rejected(self, company, cash):
        with pytest.raises(ValueError):
            generate_ledger_statement(company, cash.pk, start=END, end=START)
