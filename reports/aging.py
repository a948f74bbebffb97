# reports/aging.py
"""
Receivables and payables aging.

Open invoices (receivables) or bills (payables) are bucketed by days past
due as of the report date. Bucket amounts partition the outstanding total
exactly.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from documents.models import Bill, Invoice
from ops.metrics import track_report
from reports.base import ZERO, check_balanced, money, percentage, today

logger = logging.getLogger(__name__)

RECEIVABLES = "receivables"
PAYABLES = "payables"

DOCUMENT_MODELS = {
    RECEIVABLES: Invoice,
    PAYABLES: Bill,
}

# (label, party key, lower bound, upper bound) in days overdue
BUCKETS = [
    ("Current", "current", 0, 0),
    ("1-30 Days", "days_1_to_30", 1, 30),
    ("31-60 Days", "days_31_to_60", 31, 60),
    ("61-90 Days", "days_61_to_90", 61, 90),
    ("Over 90 Days", "over_90", 91, None),
]


def bucket_for(days_overdue: int) -> tuple[str, str]:
    """(label, party key) of the bucket holding days_overdue."""
    for label, key, low, high in BUCKETS:
        if days_overdue >= low and (high is None or days_overdue <= high):
            return label, key
    raise ValueError(f"Negative days overdue: {days_overdue}")


def _empty_party(party) -> dict:
    row = {"party_id": party.pk, "party_name": party.name}
    for _, key, _, _ in BUCKETS:
        row[key] = ZERO
    row["total"] = ZERO
    return row


def generate_aging(
    company,
    as_of: Optional[date] = None,
    report_type: str = RECEIVABLES,
    party_id: Optional[int] = None,
) -> dict:
    """
    Build an aging report.

    Args:
        company: The company
        as_of: Report date (defaults to today)
        report_type: "receivables" (invoices) or "payables" (bills)
        party_id: Only this customer or vendor

    Returns:
        {"buckets", "parties", "details", "summary", "is_balanced", "difference", ...}

    Raises:
        ValueError: Unknown report_type
    """
    if report_type not in DOCUMENT_MODELS:
        raise ValueError(f"Unknown aging report type: {report_type!r}. Use 'receivables' or 'payables'.")
    as_of = as_of or today()
    model = DOCUMENT_MODELS[report_type]

    with track_report("aging"):
        documents = (
            model.objects.filter(company=company, status__in=model.OPEN_STATUSES)
            .select_related("party")
            .order_by("due_date", "id")
        )
        if party_id is not None:
            documents = documents.filter(party_id=party_id)

        buckets = {label: {"label": label, "amount": ZERO, "count": 0} for label, _, _, _ in BUCKETS}
        parties = {}
        details = []
        total_outstanding = ZERO
        days_total = 0
        overdue_count = 0

        for document in documents:
            amount_due = money(document.amount_due)
            if amount_due <= 0:
                continue

            days_overdue = max(0, (as_of - document.due_date).days)
            label, key = bucket_for(days_overdue)

            buckets[label]["amount"] += amount_due
            buckets[label]["count"] += 1
            total_outstanding += amount_due
            if days_overdue > 0:
                overdue_count += 1
            days_total += days_overdue

            party = parties.get(document.party_id)
            if party is None:
                party = parties[document.party_id] = _empty_party(document.party)
            party[key] += amount_due
            party["total"] += amount_due

            details.append({
                "document_id": document.pk,
                "number": document.number,
                "party_id": document.party_id,
                "party_name": document.party.name,
                "date": document.date,
                "due_date": document.due_date,
                "total_amount": money(document.total_amount),
                "amount_paid": money(document.amount_paid),
                "amount_due": amount_due,
                "days_overdue": days_overdue,
                "bucket": label,
            })

        bucket_list = []
        for label, _, _, _ in BUCKETS:
            bucket = buckets[label]
            bucket["amount"] = money(bucket["amount"])
            bucket["percentage"] = percentage(bucket["amount"], total_outstanding)
            bucket_list.append(bucket)

        bucket_sum = sum((b["amount"] for b in bucket_list), ZERO)
        difference = money(bucket_sum - total_outstanding)
        is_balanced = check_balanced(
            "aging", difference, logger, company_id=company.pk, as_of=as_of, report_type=report_type,
        )

        party_rows = sorted(parties.values(), key=lambda p: (-p["total"], p["party_name"], p["party_id"]))
        details.sort(key=lambda d: (-d["days_overdue"], d["due_date"], d["number"]))

        total_current = buckets["Current"]["amount"]
        # Averaged over every open document, current ones included
        average_days = (
            (Decimal(days_total) / len(details)).quantize(Decimal("0.01"))
            if details else ZERO
        )

    logger.debug(
        "%s aging for company %s as of %s: %d documents",
        report_type, company.pk, as_of, len(details),
    )
    return {
        "as_of": as_of,
        "report_type": report_type,
        "party_id": party_id,
        "buckets": bucket_list,
        "parties": party_rows,
        "details": details,
        "summary": {
            "total_outstanding": money(total_outstanding),
            "total_current": total_current,
            "total_overdue": money(total_outstanding - total_current),
            "total_count": len(details),
            "overdue_count": overdue_count,
            "average_days_overdue": average_days,
        },
        "is_balanced": is_balanced,
        "difference": difference,
    }
