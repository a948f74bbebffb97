# reports/base.py
"""
Helpers shared by the report generators.

Amounts leave reports as Decimal quantized to 0.01. Consistency checks
never raise: a failed check is returned in the report, logged as a
WARNING and counted in ledger_report_imbalance_total.
"""

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from django.utils import timezone

from accounting.balances import TWO_PLACES, ZERO, quantize
from accounting.models import Nature
from accounting.policies import balance_tolerance
from ops.metrics import record_report_imbalance

NATURE_ORDER = {
    Nature.ASSETS: 0,
    Nature.LIABILITIES: 1,
    Nature.EQUITY: 2,
    Nature.INCOME: 3,
    Nature.EXPENSES: 4,
}

__all__ = [
    "NATURE_ORDER",
    "TWO_PLACES",
    "ZERO",
    "check_balanced",
    "money",
    "percentage",
    "today",
]


def money(value) -> Decimal:
    return quantize(value if value is not None else ZERO)


def today() -> date:
    return timezone.localdate()


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100 rounded to 2 places; 0 when whole is 0."""
    if not whole:
        return ZERO
    return (Decimal(part) / Decimal(whole) * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def check_balanced(report: str, difference: Decimal, logger: logging.Logger, **context) -> bool:
    """
    True if |difference| is within tolerance. Otherwise log a WARNING
    and bump the imbalance counter for this report.
    """
    balanced = abs(difference) < balance_tolerance()
    if not balanced:
        record_report_imbalance(report)
        logger.warning(
            "%s is out of balance by %s",
            report,
            difference,
            extra={"report": report, "difference": str(difference), **{k: str(v) for k, v in context.items()}},
        )
    return balanced
