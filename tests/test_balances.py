# tests/test_balances.py
"""
Tests for the balance engine: sign conventions, additivity, fiscal-year
anchoring and the shared report filter.
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from accounting.balances import (
    ReportFilter,
    compute_balance,
    compute_figures,
    compute_movement,
    fiscal_year_start,
    normalize_for_nature,
    split_debit_credit,
)
from accounting.commands import post_voucher, save_voucher_draft
from accounting.models import FiscalYear, Ledger, Nature, Voucher


def _row(d, debit="0", credit="0"):
    return SimpleNamespace(entry_date=d, debit_amount=Decimal(debit), credit_amount=Decimal(credit))


def _ledger(nature, opening="0", side=Ledger.Side.DEBIT):
    return SimpleNamespace(
        nature=nature,
        opening_balance=Decimal(opening),
        opening_balance_side=side,
    )


class TestSignConventions:

    def test_debit_natures_keep_sign(self):
        """ASSETS and EXPENSES report debit-positive figures as is."""
        assert normalize_for_nature(Nature.ASSETS, Decimal("10")) == Decimal("10")
        assert normalize_for_nature(Nature.EXPENSES, Decimal("-5")) == Decimal("-5")

    def test_credit_natures_flip_sign(self):
        """LIABILITIES, INCOME and EQUITY are negated."""
        for nature in (Nature.LIABILITIES, Nature.INCOME, Nature.EQUITY):
            assert normalize_for_nature(nature, Decimal("-10")) == Decimal("10")

    def test_split_debit_credit(self):
        assert split_debit_credit(Decimal("12.5")) == (Decimal("12.50"), Decimal("0.00"))
        assert split_debit_credit(Decimal("-3")) == (Decimal("0.00"), Decimal("3.00"))

    def test_income_balance_from_credits(self):
        """Sales credited 1000 show as +1000 income."""
        ledger = _ledger(Nature.INCOME)
        entries = [_row(date(2025, 4, 10), credit="1000")]

        assert compute_balance(ledger, entries) == Decimal("1000.00")

    def test_credit_opening_on_liability(self):
        """A CREDIT opening balance on a liability is a positive liability."""
        ledger = _ledger(Nature.LIABILITIES, opening="250", side=Ledger.Side.CREDIT)

        assert compute_balance(ledger, []) == Decimal("250.00")

    def test_as_of_excludes_later_entries(self):
        ledger = _ledger(Nature.ASSETS, opening="100")
        entries = [_row(date(2025, 4, 1), debit="50"), _row(date(2025, 5, 1), credit="30")]

        assert compute_balance(ledger, entries, as_of=date(2025, 4, 30)) == Decimal("150.00")
        assert compute_balance(ledger, entries, as_of=date(2025, 5, 1)) == Decimal("120.00")


class TestAdditivity:

    @pytest.mark.parametrize("nature", [Nature.ASSETS, Nature.LIABILITIES, Nature.INCOME])
    def test_balance_splits_at_any_date(self, nature):
        """balance(t2) == balance(t1) + movement(t1, t2) for any split point."""
        ledger = _ledger(nature, opening="75", side=Ledger.Side.CREDIT)
        entries = [
            _row(date(2025, 4, 1), debit="10"),
            _row(date(2025, 4, 15), credit="40"),
            _row(date(2025, 5, 2), debit="5.55"),
            _row(date(2025, 6, 30), credit="0.45"),
        ]
        t2 = date(2025, 6, 30)

        for t1 in (date(2025, 3, 31), date(2025, 4, 1), date(2025, 4, 20), date(2025, 6, 29)):
            assert compute_balance(ledger, entries, t2) == (
                compute_balance(ledger, entries, t1) + compute_movement(ledger, entries, t1, t2)
            )

    def test_figures_close_to_balance(self):
        """Opening plus period figures equal the balance at as_of."""
        ledger = _ledger(Nature.ASSETS, opening="100")
        entries = [
            _row(date(2025, 3, 1), debit="20"),
            _row(date(2025, 4, 2), debit="30"),
            _row(date(2025, 4, 3), credit="5"),
            _row(date(2025, 7, 1), debit="999"),
        ]

        figures = compute_figures(ledger, entries, date(2025, 4, 1), date(2025, 6, 30))

        assert figures.opening == Decimal("120")
        assert (figures.period_debit, figures.period_credit) == (Decimal("30"), Decimal("5"))
        assert figures.balance == compute_balance(ledger, entries, date(2025, 6, 30))


@pytest.mark.django_db
class TestFiscalYearStart:

    def test_containing_fiscal_year_wins(self, company, fiscal_year):
        assert fiscal_year_start(company, date(2025, 12, 1)) == date(2025, 4, 1)

    def test_falls_back_to_start_month(self, company, fiscal_year):
        """Without a covering FiscalYear the company's start month is used."""
        assert fiscal_year_start(company, date(2027, 2, 10)) == date(2026, 4, 1)
        assert fiscal_year_start(company, date(2027, 5, 10)) == date(2027, 4, 1)

    def test_explicit_fiscal_year(self, company, fiscal_year):
        assert fiscal_year_start(company, date(2030, 1, 1), fiscal_year.pk) == date(2025, 4, 1)

    def test_explicit_fiscal_year_of_other_company(self, company, second_company, fiscal_year):
        """A fiscal year of another tenant is never used."""
        with pytest.raises(FiscalYear.DoesNotExist):
            fiscal_year_start(second_company, date(2025, 6, 1), fiscal_year)


@pytest.mark.django_db
class TestReportFilter:

    def test_only_approved_by_default(self, actor, trading_vouchers, cash, sales, entry):
        """Pending and draft vouchers are excluded unless asked for."""
        post_voucher(actor, Voucher.VoucherType.SALES, date(2025, 6, 1),
                     [entry(cash, debit="70"), entry(sales, credit="70")])
        save_voucher_draft(actor, Voucher.VoucherType.SALES, date(2025, 6, 2), [entry(cash, debit="5")])

        approved_only = ReportFilter(company=actor.company).entries()
        everything = ReportFilter(company=actor.company, include_unapproved=True).entries()

        assert approved_only.count() == 8
        assert everything.count() == 11

    def test_window_and_ledgers(self, actor, trading_vouchers, cash):
        base = ReportFilter(company=actor.company)

        april = base.window(date(2025, 4, 1), date(2025, 4, 30)).for_ledgers([cash.pk])

        assert [e.debit_amount for e in april.entries()] == [Decimal("1000.00")]

    def test_entries_are_ordered_by_date(self, actor, trading_vouchers):
        dates = [e.entry_date for e in ReportFilter(company=actor.company).entries()]

        assert dates == sorted(dates)

    def test_inverted_window_rejected(self, company):
        with pytest.raises(ValueError):
            ReportFilter(company=company, start=date(2025, 5, 1), end=date(2025, 4, 1))

    def test_other_company_sees_nothing(self, second_company, trading_vouchers):
        assert ReportFilter(company=second_company).entries().count() == 0
