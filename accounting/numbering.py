# accounting/numbering.py
"""
Numbering service.

Document numbers are issued from per-company CompanySequence rows. The
row is locked with select_for_update for the rest of the caller's
transaction, so two concurrent vouchers of the same type can never read
the same value. Numbers are never derived from the last issued number.

Format: {prefix}{year}/{n:05d}, e.g. PAY/2025/00001
"""

import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from accounting.models import CompanySequence
from ops.write_barrier import command_writes_allowed

logger = logging.getLogger(__name__)


def default_prefix(document_type: str) -> str:
    """First three letters of the type plus a slash: PAYMENT -> PAY/."""
    return f"{document_type[:3].upper()}/"


def next_sequence_value(company, name: str) -> int:
    """
    Allocate the next sequence value for a company/name pair.
    Uses select_for_update to avoid concurrent duplicates.
    """
    with transaction.atomic(), command_writes_allowed():
        try:
            seq = CompanySequence.objects.select_for_update().get(
                company=company,
                name=name,
            )
        except CompanySequence.DoesNotExist:
            try:
                # Savepoint so a lost create race leaves the outer transaction usable
                with transaction.atomic():
                    seq = CompanySequence.objects.create(
                        company=company,
                        name=name,
                        next_value=1,
                    )
            except IntegrityError:
                seq = CompanySequence.objects.select_for_update().get(
                    company=company,
                    name=name,
                )

        value = seq.next_value
        seq.next_value = value + 1
        seq.save(update_fields=["next_value", "updated_at"])
        return value


def next_number(
    company,
    document_type: str,
    prefix: Optional[str] = None,
    year: Optional[int] = None,
) -> str:
    """
    Issue the next document number for document_type.

    Args:
        company: The owning company
        document_type: Sequence name, usually a Voucher.VoucherType value
        prefix: Overrides the default three-letter prefix
        year: Year printed in the number (defaults to the current year)

    Returns:
        The formatted number, e.g. "PAY/2025/00001"
    """
    if prefix is None:
        prefix = default_prefix(document_type)
    if year is None:
        year = timezone.localdate().year

    value = next_sequence_value(company, f"{document_type}")
    number = f"{prefix}{year}/{value:05d}"
    logger.debug("Issued %s for company %s", number, company.pk)
    return number
