# reports/trial_balance.py
"""
Trial Balance.

For each active ledger: opening (opening balance plus entries before the
fiscal-year start) netted to one side, gross period debit and credit,
and closing netted to one side. The report is returned even when it
does not balance.
"""

import logging
from datetime import date
from typing import Optional

from accounting.balances import (
    ReportFilter,
    compute_figures,
    fiscal_year_start,
    group_by_ledger,
    split_debit_credit,
)
from accounting.models import Ledger
from ops.metrics import track_report
from reports.base import NATURE_ORDER, ZERO, check_balanced, money, today

logger = logging.getLogger(__name__)

AMOUNT_KEYS = (
    "opening_debit",
    "opening_credit",
    "period_debit",
    "period_credit",
    "closing_debit",
    "closing_credit",
)


def _empty_totals() -> dict:
    return {key: ZERO for key in AMOUNT_KEYS}


def _add_totals(totals: dict, row: dict) -> None:
    for key in AMOUNT_KEYS:
        totals[key] += row[key]


def generate_trial_balance(
    company,
    as_of: Optional[date] = None,
    fiscal_year=None,
    show_zero_balances: bool = False,
    include_unapproved: bool = False,
) -> dict:
    """
    Build the trial balance as of a date.

    Args:
        company: The company
        as_of: Report date (defaults to today)
        fiscal_year: FiscalYear or id anchoring opening vs period figures
        show_zero_balances: Keep ledgers whose figures are all zero
        include_unapproved: Also count DRAFT and PENDING vouchers

    Returns:
        {"ledgers", "groups", "totals", "summary", ...}
    """
    as_of = as_of or today()

    with track_report("trial_balance"):
        period_start = fiscal_year_start(company, as_of, fiscal_year)
        report_filter = ReportFilter(company=company, end=as_of, include_unapproved=include_unapproved)
        entries_by_ledger = group_by_ledger(report_filter.entries())

        ledgers = (
            Ledger.objects.filter(company=company, is_active=True)
            .select_related("group")
        )

        rows = []
        for ledger in ledgers:
            figures = compute_figures(ledger, entries_by_ledger.get(ledger.pk, []), period_start, as_of)
            opening_debit, opening_credit = split_debit_credit(figures.opening)
            closing_debit, closing_credit = split_debit_credit(figures.closing)
            row = {
                "ledger_id": ledger.pk,
                "ledger_name": ledger.name,
                "code": ledger.code,
                "group_id": ledger.group_id,
                "group_name": ledger.group.name,
                "nature": ledger.group.nature,
                "opening_debit": opening_debit,
                "opening_credit": opening_credit,
                "period_debit": money(figures.period_debit),
                "period_credit": money(figures.period_credit),
                "closing_debit": closing_debit,
                "closing_credit": closing_credit,
            }
            if not show_zero_balances and not any(row[key] for key in AMOUNT_KEYS):
                continue
            rows.append(row)

        rows.sort(key=lambda r: (NATURE_ORDER.get(r["nature"], 99), r["group_name"], r["ledger_name"], r["ledger_id"]))

        groups = []
        totals = _empty_totals()
        for row in rows:
            if not groups or groups[-1]["nature"] != row["nature"]:
                groups.append({"nature": row["nature"], "groups": [], "totals": _empty_totals()})
            nature_block = groups[-1]
            if not nature_block["groups"] or nature_block["groups"][-1]["group_id"] != row["group_id"]:
                nature_block["groups"].append({
                    "group_id": row["group_id"],
                    "group_name": row["group_name"],
                    "ledgers": [],
                    "totals": _empty_totals(),
                })
            group_block = nature_block["groups"][-1]
            group_block["ledgers"].append(row)
            _add_totals(group_block["totals"], row)
            _add_totals(nature_block["totals"], row)
            _add_totals(totals, row)

        difference = money(totals["closing_debit"] - totals["closing_credit"])
        is_balanced = check_balanced(
            "trial_balance", difference, logger, company_id=company.pk, as_of=as_of,
        )

    logger.debug("Trial balance for company %s as of %s: %d ledgers", company.pk, as_of, len(rows))
    return {
        "as_of": as_of,
        "period_start": period_start,
        "include_unapproved": include_unapproved,
        "ledgers": rows,
        "groups": groups,
        "totals": totals,
        "summary": {
            "ledger_count": len(rows),
            "total_debit": totals["closing_debit"],
            "total_credit": totals["closing_credit"],
            "is_balanced": is_balanced,
            "difference": difference,
        },
    }
