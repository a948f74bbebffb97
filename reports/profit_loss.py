# reports/profit_loss.py
"""
Profit & Loss.

Income = credit - debit and expense = debit - credit over the period.
Expense groups flagged affects_gross_profit (directly or through an
ancestor) are direct costs; the rest are indirect.

    gross_profit = total_income - total_direct_expenses
    net_profit   = gross_profit - total_indirect_expenses
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from accounting.balances import ReportFilter, fiscal_year_start, group_by_ledger, sum_entries
from accounting.chart import effective_affects_gross_profit
from accounting.models import Ledger, LedgerGroup, Nature
from ops.metrics import track_report
from reports.base import ZERO, check_balanced, money, percentage, today

logger = logging.getLogger(__name__)

INCOME = "income"
DIRECT_EXPENSES = "direct_expenses"
INDIRECT_EXPENSES = "indirect_expenses"

SECTION_TITLES = {
    INCOME: "Income",
    DIRECT_EXPENSES: "Cost of Goods Sold / Direct Expenses",
    INDIRECT_EXPENSES: "Operating / Indirect Expenses",
}


def _period_amounts(company, start: date, end: date, include_unapproved: bool) -> tuple[dict, Decimal]:
    """
    Per-ledger P&L amounts for [start, end], plus the raw credit-minus-debit
    total over every income and expense entry (the cross-check for net profit).
    """
    ledgers = {
        ledger.pk: ledger
        for ledger in Ledger.objects.filter(
            company=company,
            group__nature__in=[Nature.INCOME, Nature.EXPENSES],
        ).select_related("group")
    }
    report_filter = ReportFilter(
        company=company, start=start, end=end, include_unapproved=include_unapproved,
    ).for_ledgers(ledgers.keys())

    amounts = {}
    raw_debit = ZERO
    raw_credit = ZERO
    for ledger_id, entries in group_by_ledger(report_filter.entries()).items():
        debit, credit = sum_entries(entries)
        raw_debit += debit
        raw_credit += credit
        ledger = ledgers[ledger_id]
        if ledger.group.nature == Nature.INCOME:
            amounts[ledger_id] = money(credit - debit)
        else:
            amounts[ledger_id] = money(debit - credit)
    return {"ledgers": ledgers, "amounts": amounts}, money(raw_credit - raw_debit)


def _summarize(sections: dict) -> dict:
    total_income = sections[INCOME]["total"]
    total_direct = sections[DIRECT_EXPENSES]["total"]
    total_indirect = sections[INDIRECT_EXPENSES]["total"]
    gross_profit = money(total_income - total_direct)
    net_profit = money(gross_profit - total_indirect)
    return {
        "total_income": total_income,
        "total_direct_expenses": total_direct,
        "total_indirect_expenses": total_indirect,
        "total_expenses": money(total_direct + total_indirect),
        "gross_profit": gross_profit,
        "net_profit": net_profit,
        "gross_margin": percentage(gross_profit, total_income),
        "net_margin": percentage(net_profit, total_income),
    }


def _section_key(ledger, groups_by_id) -> str:
    if ledger.group.nature == Nature.INCOME:
        return INCOME
    if effective_affects_gross_profit(groups_by_id, ledger.group_id):
        return DIRECT_EXPENSES
    return INDIRECT_EXPENSES


def _build_sections(current: dict, previous: Optional[dict], groups_by_id: dict) -> dict:
    sections = {
        key: {"title": SECTION_TITLES[key], "items": [], "total": ZERO}
        for key in (INCOME, DIRECT_EXPENSES, INDIRECT_EXPENSES)
    }
    if previous is not None:
        for section in sections.values():
            section["previous_total"] = ZERO

    ledger_ids = set(current["amounts"])
    if previous is not None:
        ledger_ids |= set(previous["amounts"])

    for ledger_id in ledger_ids:
        ledger = current["ledgers"].get(ledger_id) or previous["ledgers"][ledger_id]
        amount = current["amounts"].get(ledger_id, ZERO)
        previous_amount = previous["amounts"].get(ledger_id, ZERO) if previous is not None else ZERO
        if not amount and not previous_amount:
            continue

        section = sections[_section_key(ledger, groups_by_id)]
        item = {
            "ledger_id": ledger.pk,
            "ledger_name": ledger.name,
            "code": ledger.code,
            "group_id": ledger.group_id,
            "group_name": ledger.group.name,
            "amount": amount,
        }
        section["total"] += amount
        if previous is not None:
            item["previous_amount"] = previous_amount
            section["previous_total"] += previous_amount
        section["items"].append(item)

    for section in sections.values():
        section["items"].sort(key=lambda i: (i["group_name"], i["ledger_name"], i["ledger_id"]))
        section["total"] = money(section["total"])
        if "previous_total" in section:
            section["previous_total"] = money(section["previous_total"])
    return sections


def previous_period(start: date, end: date) -> tuple[date, date]:
    """The period of equal length ending the day before start."""
    previous_end = start - timedelta(days=1)
    return previous_end - (end - start), previous_end


def compute_net_profit(company, start: date, end: date, include_unapproved: bool = False) -> Decimal:
    """Net profit for [start, end] with the same rules as the full report."""
    figures, _ = _period_amounts(company, start, end, include_unapproved)
    total = ZERO
    for ledger_id, amount in figures["amounts"].items():
        if figures["ledgers"][ledger_id].group.nature == Nature.INCOME:
            total += amount
        else:
            total -= amount
    return money(total)


def generate_profit_loss(
    company,
    start: Optional[date] = None,
    end: Optional[date] = None,
    compare: bool = False,
    include_unapproved: bool = False,
) -> dict:
    """
    Build the profit & loss statement.

    Args:
        company: The company
        start: Period start (defaults to the fiscal-year start for end)
        end: Period end (defaults to today)
        compare: Add the preceding period of equal length
        include_unapproved: Also count DRAFT and PENDING vouchers

    Returns:
        {"income", "direct_expenses", "indirect_expenses", "gross_profit",
         "net_profit", "summary", ...}
    """
    end = end or today()
    start = start or fiscal_year_start(company, end)
    if start > end:
        raise ValueError(f"Start date {start} is after end date {end}.")

    with track_report("profit_loss"):
        groups_by_id = {g.pk: g for g in LedgerGroup.objects.filter(company=company)}
        current, raw_net = _period_amounts(company, start, end, include_unapproved)

        previous = None
        previous_range = None
        if compare:
            previous_range = previous_period(start, end)
            previous, _ = _period_amounts(company, *previous_range, include_unapproved)

        sections = _build_sections(current, previous, groups_by_id)
        summary = _summarize(sections)

        difference = money(summary["net_profit"] - raw_net)
        summary["is_balanced"] = check_balanced(
            "profit_loss", difference, logger, company_id=company.pk, start=start, end=end,
        )
        summary["difference"] = difference

    report = {
        "start": start,
        "end": end,
        "include_unapproved": include_unapproved,
        INCOME: sections[INCOME],
        DIRECT_EXPENSES: sections[DIRECT_EXPENSES],
        INDIRECT_EXPENSES: sections[INDIRECT_EXPENSES],
        "gross_profit": {"amount": summary["gross_profit"], "percentage": summary["gross_margin"]},
        "net_profit": {"amount": summary["net_profit"], "percentage": summary["net_margin"]},
        "summary": summary,
    }

    if previous is not None:
        previous_sections = {
            key: {"total": sections[key]["previous_total"]}
            for key in (INCOME, DIRECT_EXPENSES, INDIRECT_EXPENSES)
        }
        report["previous"] = {
            "start": previous_range[0],
            "end": previous_range[1],
            **_summarize(previous_sections),
        }
        report["gross_profit"]["previous_amount"] = report["previous"]["gross_profit"]
        report["net_profit"]["previous_amount"] = report["previous"]["net_profit"]

    logger.debug("Profit & loss for company %s %s..%s: net %s", company.pk, start, end, summary["net_profit"])
    return report
