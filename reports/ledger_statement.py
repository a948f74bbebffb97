# reports/ledger_statement.py
"""
Ledger statement: every entry for one ledger in a window, with the
balance brought forward and a running balance.
"""

import logging
from datetime import date
from typing import Optional

from accounting.balances import (
    ReportFilter,
    compute_balance,
    fiscal_year_start,
    normalize_for_nature,
    signed_opening,
    split_debit_credit,
    sum_entries,
)
from accounting.models import Ledger
from ops.metrics import track_report
from reports.base import check_balanced, money, today

logger = logging.getLogger(__name__)


def generate_ledger_statement(
    company,
    ledger_id: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
    include_unapproved: bool = False,
) -> dict:
    """
    Build the statement of one ledger for [start, end].

    Running balances are debit-positive; closing_balance is normalised
    for the ledger's nature.

    Raises:
        Ledger.DoesNotExist: Unknown ledger for this company
    """
    ledger = Ledger.objects.select_related("group").get(pk=ledger_id, company=company)
    end = end or today()
    start = start or fiscal_year_start(company, end)
    if start > end:
        raise ValueError(f"Start date {start} is after end date {end}.")

    with track_report("ledger_statement"):
        report_filter = ReportFilter(
            company=company, end=end, include_unapproved=include_unapproved,
        ).for_ledgers([ledger.pk])
        entries = list(report_filter.entries())

        brought_forward = [e for e in entries if e.entry_date < start]
        period = [e for e in entries if e.entry_date >= start]

        debit, credit = sum_entries(brought_forward)
        running = signed_opening(ledger) + debit - credit
        opening_debit, opening_credit = split_debit_credit(running)

        rows = [{
            "date": start,
            "voucher_id": None,
            "voucher_number": "",
            "voucher_type": "",
            "narration": "Opening Balance",
            "debit": opening_debit,
            "credit": opening_credit,
            "balance": money(running),
        }]
        for entry in period:
            running += entry.debit_amount - entry.credit_amount
            voucher = entry.voucher
            rows.append({
                "date": entry.entry_date,
                "voucher_id": voucher.pk,
                "voucher_number": voucher.voucher_number,
                "voucher_type": voucher.voucher_type,
                "narration": entry.narration or voucher.narration,
                "debit": money(entry.debit_amount),
                "credit": money(entry.credit_amount),
                "balance": money(running),
            })

        period_debit, period_credit = sum_entries(period)
        closing_balance = money(normalize_for_nature(ledger.nature, running))
        difference = money(closing_balance - compute_balance(ledger, entries, end))
        is_balanced = check_balanced(
            "ledger_statement", difference, logger, company_id=company.pk, ledger_id=ledger.pk,
        )

    logger.debug("Ledger statement for %s %s..%s: %d entries", ledger.pk, start, end, len(period))
    return {
        "ledger_id": ledger.pk,
        "ledger_name": ledger.name,
        "code": ledger.code,
        "nature": ledger.nature,
        "start": start,
        "end": end,
        "include_unapproved": include_unapproved,
        "rows": rows,
        "totals": {
            "debit": money(period_debit),
            "credit": money(period_credit),
        },
        "opening_balance": money(rows[0]["balance"]),
        "closing_balance": closing_balance,
        "summary": {
            "entry_count": len(period),
            "is_balanced": is_balanced,
            "difference": difference,
        },
    }
