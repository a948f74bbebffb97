# reports/cash_flow.py
"""
Cash Flow (direct method).

Operating lines come from completed receipts and payments, paid payslips
and reimbursed expense claims in the window. Opening and actual closing
cash come from the cash and bank ledgers, and the two are reconciled
without ever suppressing a difference.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from django.db.models import Sum

from accounting.balances import ReportFilter, fiscal_year_start, group_by_ledger, signed_opening, sum_entries
from accounting.chart import is_cash_or_bank_group
from accounting.models import Ledger, LedgerGroup
from documents.models import ExpenseClaim, Party, Payment, Payslip, Receipt
from ops.metrics import track_report
from reports.base import ZERO, check_balanced, money, today

logger = logging.getLogger(__name__)

INFLOW = "inflow"
OUTFLOW = "outflow"

TRADE_CUSTOMER_TYPES = (Party.PartyType.CUSTOMER, Party.PartyType.BOTH)
TRADE_VENDOR_TYPES = (Party.PartyType.VENDOR, Party.PartyType.BOTH)


def cash_ledgers(company) -> list[Ledger]:
    """Ledgers whose group, or an ancestor group, holds cash or bank balances."""
    groups_by_id = {g.pk: g for g in LedgerGroup.objects.filter(company=company)}
    return [
        ledger
        for ledger in Ledger.objects.filter(company=company).select_related("group").order_by("name", "id")
        if is_cash_or_bank_group(groups_by_id, ledger.group_id)
    ]


def _total(queryset, field: str) -> Decimal:
    return money(queryset.aggregate(total=Sum(field))["total"] or ZERO)


def _cash_documents(model, company, start: date, end: date):
    return model.objects.filter(
        company=company,
        status=model.Status.COMPLETED,
        date__gte=start,
        date__lte=end,
    )


def _operating_lines(company, start: date, end: date) -> list[dict]:
    receipts = _cash_documents(Receipt, company, start, end)
    payments = _cash_documents(Payment, company, start, end)

    from_customers = receipts.filter(party__party_type__in=TRADE_CUSTOMER_TYPES)
    other_receipts = receipts.exclude(pk__in=from_customers.values("pk"))
    to_suppliers = payments.filter(party__party_type__in=TRADE_VENDOR_TYPES)
    other_payments = payments.exclude(pk__in=to_suppliers.values("pk"))

    salaries = Payslip.objects.filter(
        company=company,
        status=Payslip.Status.PAID,
        paid_at__gte=start,
        paid_at__lte=end,
    )
    reimbursements = ExpenseClaim.objects.filter(
        company=company,
        status=ExpenseClaim.Status.REIMBURSED,
        reimbursed_at__gte=start,
        reimbursed_at__lte=end,
    )

    candidates = [
        ("Cash received from customers", INFLOW, _total(from_customers, "amount")),
        ("Other cash receipts", INFLOW, _total(other_receipts, "amount")),
        ("Cash paid to suppliers", OUTFLOW, _total(to_suppliers, "amount")),
        ("Salaries and wages paid", OUTFLOW, _total(salaries, "net_salary")),
        ("Employee expense reimbursements", OUTFLOW, _total(reimbursements, "amount")),
        ("Other operating payments", OUTFLOW, _total(other_payments, "amount")),
    ]

    lines = []
    for description, direction, amount in candidates:
        if not amount:
            continue
        lines.append({
            "description": description,
            "type": direction,
            "amount": amount if direction == INFLOW else -amount,
        })
    return lines


def _section(title: str, lines: list[dict]) -> dict:
    return {
        "title": title,
        "items": lines,
        "total": money(sum((line["amount"] for line in lines), ZERO)),
    }


def _cash_position(company, start: date, end: date, include_unapproved: bool) -> tuple[Decimal, Decimal, list]:
    """(opening, actual closing, cash ledger ids) from the cash and bank ledgers."""
    ledgers = cash_ledgers(company)
    ledger_ids = [ledger.pk for ledger in ledgers]
    report_filter = ReportFilter(
        company=company, end=end, include_unapproved=include_unapproved,
    ).for_ledgers(ledger_ids)
    entries_by_ledger = group_by_ledger(report_filter.entries())

    opening = ZERO
    movement = ZERO
    for ledger in ledgers:
        opening += signed_opening(ledger)
        entries = entries_by_ledger.get(ledger.pk, [])
        before = [e for e in entries if e.entry_date < start]
        during = [e for e in entries if e.entry_date >= start]
        debit, credit = sum_entries(before)
        opening += debit - credit
        debit, credit = sum_entries(during)
        movement += debit - credit
    return money(opening), money(opening + movement), ledger_ids


def generate_cash_flow(
    company,
    start: Optional[date] = None,
    end: Optional[date] = None,
    include_unapproved: bool = False,
) -> dict:
    """
    Build the cash flow statement for [start, end].

    Args:
        company: The company
        start: Period start (defaults to the start of the fiscal year
            containing end)
        end: Period end (defaults to today)
        include_unapproved: Also count DRAFT and PENDING vouchers for
            the cash position

    Returns:
        {"operating", "investing", "financing", "net_cash_flow",
         "opening_balance", "closing_balance", "reconciliation", "summary", ...}
    """
    end = end or today()
    start = start or fiscal_year_start(company, end)
    if start > end:
        raise ValueError(f"Start date {start} is after end date {end}.")

    with track_report("cash_flow"):
        opening, actual_closing, ledger_ids = _cash_position(company, start, end, include_unapproved)

        operating = _section("Operating Activities", _operating_lines(company, start, end))
        investing = _section("Investing Activities", [])
        financing = _section("Financing Activities", [])

        net_cash_flow = money(operating["total"] + investing["total"] + financing["total"])
        closing = money(opening + net_cash_flow)
        difference = money(closing - actual_closing)
        is_reconciled = check_balanced(
            "cash_flow", difference, logger, company_id=company.pk, start=start, end=end,
        )

        all_lines = operating["items"] + investing["items"] + financing["items"]
        total_inflow = money(sum((l["amount"] for l in all_lines if l["type"] == INFLOW), ZERO))
        total_outflow = money(-sum((l["amount"] for l in all_lines if l["type"] == OUTFLOW), ZERO))

    logger.debug("Cash flow for company %s %s..%s: net %s", company.pk, start, end, net_cash_flow)
    return {
        "start": start,
        "end": end,
        "include_unapproved": include_unapproved,
        "cash_ledger_ids": ledger_ids,
        "opening_balance": opening,
        "operating": operating,
        "investing": investing,
        "financing": financing,
        "net_cash_flow": net_cash_flow,
        "closing_balance": closing,
        "reconciliation": {
            "calculated": closing,
            "actual": actual_closing,
            "difference": difference,
            "is_reconciled": is_reconciled,
        },
        "summary": {
            "total_inflow": total_inflow,
            "total_outflow": total_outflow,
            "net_change": net_cash_flow,
            "opening_balance": opening,
            # as held in the cash and bank ledgers
            "closing_balance": actual_closing,
        },
    }
