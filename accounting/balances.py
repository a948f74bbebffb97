# accounting/balances.py
"""
Balance engine.

Every report computes ledger figures through this module. Sign handling
lives here and nowhere else:

- Accumulation is debit-positive: debits add, credits subtract, and an
  opening balance enters as +amount (DEBIT side) or -amount (CREDIT side).
- normalize_for_nature() turns a debit-positive figure into the figure a
  report prints: ASSETS and EXPENSES as is, LIABILITIES, INCOME and
  EQUITY negated.

Entries are VoucherEntry rows (or any object with debit_amount,
credit_amount and either an entry_date attribute or a voucher with a
date). ReportFilter.entries() annotates entry_date so no extra voucher
lookup happens per row.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from django.db.models import F, Q

from accounting.models import DEBIT_NATURES, FiscalYear, Ledger, Voucher, VoucherEntry

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
TWO_PLACES = Decimal("0.01")


def quantize(value) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES)


def entry_date(entry) -> date:
    value = getattr(entry, "entry_date", None)
    if value is None:
        value = entry.voucher.date
    return value


def signed_opening(ledger: Ledger) -> Decimal:
    """Opening balance as a debit-positive figure."""
    amount = ledger.opening_balance or ZERO
    if ledger.opening_balance_side == Ledger.Side.CREDIT:
        return -amount
    return amount


def normalize_for_nature(nature: str, debit_positive: Decimal) -> Decimal:
    if nature in DEBIT_NATURES:
        return debit_positive
    return -debit_positive


def split_debit_credit(debit_positive: Decimal) -> tuple[Decimal, Decimal]:
    """Net a debit-positive figure onto one side: (debit, credit)."""
    if debit_positive >= 0:
        return quantize(debit_positive), ZERO
    return ZERO, quantize(-debit_positive)


def sum_entries(entries: Iterable) -> tuple[Decimal, Decimal]:
    """(Σdebit, Σcredit) over entries."""
    debit = ZERO
    credit = ZERO
    for entry in entries:
        debit += entry.debit_amount
        credit += entry.credit_amount
    return debit, credit


def _in_window(entries: Iterable, after: Optional[date], as_of: Optional[date]) -> list:
    selected = []
    for entry in entries:
        d = entry_date(entry)
        if after is not None and d <= after:
            continue
        if as_of is not None and d > as_of:
            continue
        selected.append(entry)
    return selected


def compute_balance(ledger: Ledger, entries: Iterable, as_of: Optional[date] = None) -> Decimal:
    """
    Nature-normalised balance of ledger from its opening balance and the
    supplied entries. Entries dated after as_of are skipped.
    """
    debit, credit = sum_entries(_in_window(entries, None, as_of))
    return quantize(normalize_for_nature(ledger.nature, signed_opening(ledger) + debit - credit))


def compute_movement(
    ledger: Ledger,
    entries: Iterable,
    after: Optional[date] = None,
    as_of: Optional[date] = None,
) -> Decimal:
    """
    Nature-normalised movement of the entries dated in (after, as_of],
    without the opening balance.

    compute_balance(l, E, t2) == compute_balance(l, E, t1) + compute_movement(l, E, t1, t2)
    """
    debit, credit = sum_entries(_in_window(entries, after, as_of))
    return quantize(normalize_for_nature(ledger.nature, debit - credit))


@dataclass
class LedgerFigures:
    """
    Debit-positive figures for one ledger over a period.

    opening includes the ledger's opening balance and every entry dated
    before the period start.
    """
    ledger: Ledger
    opening: Decimal = ZERO
    period_debit: Decimal = ZERO
    period_credit: Decimal = ZERO

    @property
    def closing(self) -> Decimal:
        return self.opening + self.period_debit - self.period_credit

    @property
    def period_net(self) -> Decimal:
        return self.period_debit - self.period_credit

    @property
    def balance(self) -> Decimal:
        """Closing figure normalised for the ledger's nature."""
        return quantize(normalize_for_nature(self.ledger.nature, self.closing))

    def is_zero(self) -> bool:
        return not (self.opening or self.period_debit or self.period_credit)


def compute_figures(ledger: Ledger, entries: Iterable, period_start: date, as_of: date) -> LedgerFigures:
    """Fold a ledger's entries into opening and period figures."""
    figures = LedgerFigures(ledger=ledger, opening=signed_opening(ledger))
    for entry in entries:
        d = entry_date(entry)
        if d > as_of:
            continue
        if d < period_start:
            figures.opening += entry.debit_amount - entry.credit_amount
        else:
            figures.period_debit += entry.debit_amount
            figures.period_credit += entry.credit_amount
    return figures


def group_by_ledger(entries: Iterable) -> dict[int, list]:
    grouped = defaultdict(list)
    for entry in entries:
        grouped[entry.ledger_id].append(entry)
    return grouped


def resolve_fiscal_year(company, fiscal_year) -> Optional[FiscalYear]:
    """
    Accept a FiscalYear, its id, or None.

    Raises:
        FiscalYear.DoesNotExist: If the fiscal year belongs to another company
    """
    if fiscal_year is None:
        return None
    if isinstance(fiscal_year, FiscalYear):
        if fiscal_year.company_id != company.pk:
            raise FiscalYear.DoesNotExist("Fiscal year does not belong to this company.")
        return fiscal_year
    return FiscalYear.objects.get(pk=fiscal_year, company=company)


def fiscal_year_start(company, as_of: date, fiscal_year=None) -> date:
    """
    Start of the fiscal year that anchors opening vs period figures.

    Resolution order:
    1. The explicit fiscal_year (must belong to company)
    2. The FiscalYear containing as_of
    3. company.fiscal_year_start_month on or before as_of
    """
    explicit = resolve_fiscal_year(company, fiscal_year)
    if explicit is not None:
        return explicit.start_date

    containing = (
        FiscalYear.objects.filter(company=company, start_date__lte=as_of, end_date__gte=as_of)
        .order_by("-start_date")
        .first()
    )
    if containing is not None:
        return containing.start_date

    month = company.fiscal_year_start_month or 4
    year = as_of.year if as_of.month >= month else as_of.year - 1
    return date(year, month, 1)


@dataclass(frozen=True)
class ReportFilter:
    """
    Query filter shared by every report.

    By default only APPROVED, posted vouchers count. include_unapproved
    adds DRAFT and PENDING; CANCELLED and REJECTED never count.
    """
    company: object
    start: Optional[date] = None
    end: Optional[date] = None
    include_unapproved: bool = False
    ledger_ids: Optional[tuple] = field(default=None)

    def __post_init__(self):
        if self.company is None:
            raise ValueError("ReportFilter requires a company.")
        if self.start and self.end and self.start > self.end:
            raise ValueError(f"Start date {self.start} is after end date {self.end}.")

    def status_q(self) -> Q:
        approved = Q(voucher__status=Voucher.Status.APPROVED, voucher__is_posted=True)
        if self.include_unapproved:
            return approved | Q(voucher__status__in=[Voucher.Status.DRAFT, Voucher.Status.PENDING])
        return approved

    def entries(self):
        """VoucherEntry queryset in deterministic date/voucher/sequence order."""
        qs = VoucherEntry.objects.filter(company=self.company).filter(self.status_q())
        if self.start is not None:
            qs = qs.filter(voucher__date__gte=self.start)
        if self.end is not None:
            qs = qs.filter(voucher__date__lte=self.end)
        if self.ledger_ids is not None:
            qs = qs.filter(ledger_id__in=self.ledger_ids)
        return (
            qs.select_related("voucher")
            .annotate(entry_date=F("voucher__date"))
            .order_by("voucher__date", "voucher_id", "sequence", "id")
        )

    def window(self, start: Optional[date], end: Optional[date]) -> "ReportFilter":
        return replace(self, start=start, end=end)

    def for_ledgers(self, ledger_ids) -> "ReportFilter":
        return replace(self, ledger_ids=tuple(ledger_ids))
