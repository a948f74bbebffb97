# reports/balance_sheet.py
"""
Balance Sheet.

Assets, liabilities and equity balances are rolled up the group tree.
Income and expense activity is carried into equity as two figures:

- retained_earnings: everything up to the day before the fiscal-year
  start, opening balances of income and expense ledgers included
- current_year_profit: net profit from the fiscal-year start to as_of

so that assets == liabilities + equity + retained + current profit holds
whenever the posted vouchers and opening balances balance.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from accounting.balances import ReportFilter, compute_balance, fiscal_year_start, group_by_ledger
from accounting.chart import GroupNode, get_group_tree
from accounting.models import Ledger, Nature
from ops.metrics import track_report
from reports.base import ZERO, check_balanced, money, today
from reports.profit_loss import compute_net_profit

logger = logging.getLogger(__name__)

SECTIONS = (
    ("assets", Nature.ASSETS),
    ("liabilities", Nature.LIABILITIES),
    ("equity", Nature.EQUITY),
)


def one_year_before(value: date) -> date:
    try:
        return value.replace(year=value.year - 1)
    except ValueError:
        # Feb 29
        return value.replace(year=value.year - 1, day=28)


def _balances_as_of(ledgers, entries_by_ledger: dict, as_of: date) -> dict[int, Decimal]:
    return {
        ledger.pk: compute_balance(ledger, entries_by_ledger.get(ledger.pk, []), as_of)
        for ledger in ledgers
    }


def _profit_carried(ledgers, entries_by_ledger: dict, as_of: date) -> Decimal:
    """Cumulative income minus expenses up to and including as_of."""
    total = ZERO
    for ledger in ledgers:
        balance = compute_balance(ledger, entries_by_ledger.get(ledger.pk, []), as_of)
        if ledger.group.nature == Nature.INCOME:
            total += balance
        elif ledger.group.nature == Nature.EXPENSES:
            total -= balance
    return money(total)


def _render_node(node: GroupNode, balances: dict, previous: Optional[dict]) -> Optional[dict]:
    """Group node with its non-zero ledgers and children, or None if empty."""
    ledgers = []
    total = ZERO
    previous_total = ZERO
    for ledger in node.ledgers:
        balance = balances.get(ledger.pk, ZERO)
        previous_balance = previous.get(ledger.pk, ZERO) if previous is not None else ZERO
        if not balance and not previous_balance:
            continue
        item = {
            "ledger_id": ledger.pk,
            "ledger_name": ledger.name,
            "code": ledger.code,
            "balance": balance,
        }
        if previous is not None:
            item["previous_balance"] = previous_balance
        ledgers.append(item)
        total += balance
        previous_total += previous_balance

    children = []
    for child in node.children:
        rendered = _render_node(child, balances, previous)
        if rendered is None:
            continue
        children.append(rendered)
        total += rendered["total"]
        if previous is not None:
            previous_total += rendered["previous_total"]

    if not ledgers and not children:
        return None

    result = {
        "group_id": node.id,
        "group_name": node.name,
        "total": money(total),
        "ledgers": ledgers,
        "children": children,
    }
    if previous is not None:
        result["previous_total"] = money(previous_total)
    return result


def _section(roots: list[GroupNode], balances: dict, previous: Optional[dict]) -> dict:
    groups = []
    for root in roots:
        rendered = _render_node(root, balances, previous)
        if rendered is not None:
            groups.append(rendered)
    section = {
        "groups": groups,
        "total": money(sum((g["total"] for g in groups), ZERO)),
    }
    if previous is not None:
        section["previous_total"] = money(sum((g["previous_total"] for g in groups), ZERO))
    return section


def _summary(assets: Decimal, liabilities: Decimal, equity: Decimal, equity_with_profit: Decimal) -> dict:
    liabilities_and_equity = money(liabilities + equity_with_profit)
    return {
        "total_assets": assets,
        "total_liabilities": liabilities,
        "total_equity": equity,
        "total_liabilities_and_equity": liabilities_and_equity,
        "difference": money(assets - liabilities_and_equity),
    }


def generate_balance_sheet(
    company,
    as_of: Optional[date] = None,
    fiscal_year=None,
    compare: bool = False,
    include_unapproved: bool = False,
) -> dict:
    """
    Build the balance sheet as of a date.

    Args:
        company: The company
        as_of: Report date (defaults to today)
        fiscal_year: FiscalYear or id whose start splits retained earnings
            from current-year profit
        compare: Add figures as of one year earlier
        include_unapproved: Also count DRAFT and PENDING vouchers

    Returns:
        {"assets", "liabilities", "equity", "summary", ...}
    """
    as_of = as_of or today()

    with track_report("balance_sheet"):
        period_start = fiscal_year_start(company, as_of, fiscal_year)

        ledgers = list(Ledger.objects.filter(company=company).select_related("group"))
        report_filter = ReportFilter(company=company, end=as_of, include_unapproved=include_unapproved)
        entries_by_ledger = group_by_ledger(report_filter.entries())
        pl_ledgers = [l for l in ledgers if l.group.nature in (Nature.INCOME, Nature.EXPENSES)]

        balances = _balances_as_of(ledgers, entries_by_ledger, as_of)
        retained = _profit_carried(pl_ledgers, entries_by_ledger, period_start - timedelta(days=1))
        current_profit = compute_net_profit(company, period_start, as_of, include_unapproved)

        previous_balances = None
        previous_as_of = None
        if compare:
            previous_as_of = one_year_before(as_of)
            previous_start = fiscal_year_start(company, previous_as_of)
            previous_balances = _balances_as_of(ledgers, entries_by_ledger, previous_as_of)
            previous_retained = _profit_carried(
                pl_ledgers, entries_by_ledger, previous_start - timedelta(days=1),
            )
            previous_profit = compute_net_profit(
                company, previous_start, previous_as_of, include_unapproved,
            )

        sections = {}
        for key, nature in SECTIONS:
            roots = get_group_tree(company, nature=nature, include_inactive=True)
            sections[key] = _section(roots, balances, previous_balances)

        equity = sections["equity"]
        equity["retained_earnings"] = retained
        equity["current_year_profit"] = current_profit
        equity["total_with_profit"] = money(equity["total"] + retained + current_profit)

        summary = _summary(
            sections["assets"]["total"],
            sections["liabilities"]["total"],
            equity["total"],
            equity["total_with_profit"],
        )
        summary["is_balanced"] = check_balanced(
            "balance_sheet", summary["difference"], logger, company_id=company.pk, as_of=as_of,
        )

        if compare:
            equity["previous_retained_earnings"] = previous_retained
            equity["previous_current_year_profit"] = previous_profit
            equity["previous_total_with_profit"] = money(
                equity["previous_total"] + previous_retained + previous_profit
            )
            previous_summary = _summary(
                sections["assets"]["previous_total"],
                sections["liabilities"]["previous_total"],
                equity["previous_total"],
                equity["previous_total_with_profit"],
            )
            previous_summary["as_of"] = previous_as_of
            previous_summary["is_balanced"] = check_balanced(
                "balance_sheet", previous_summary["difference"], logger,
                company_id=company.pk, as_of=previous_as_of,
            )
            summary["previous"] = previous_summary

    logger.debug(
        "Balance sheet for company %s as of %s: assets %s",
        company.pk, as_of, summary["total_assets"],
    )
    return {
        "as_of": as_of,
        "period_start": period_start,
        "include_unapproved": include_unapproved,
        "assets": sections["assets"],
        "liabilities": sections["liabilities"],
        "equity": equity,
        "summary": summary,
    }
