# events/models.py
"""
Event store models.

BusinessEvent is the append-only audit trail of every ledger command:
one row per group/ledger change, fiscal-year change and voucher status
transition. Rows are never updated or deleted.

Two orderings are kept:
- sequence: 1, 2, 3... within one aggregate (a voucher's history)
- company_sequence: 1, 2, 3... across everything one company did
"""

import uuid

from django.conf import settings
from django.db import IntegrityError, models, transaction
from django.db.models import F
from django.utils import timezone

from accounts.models import Company


class CompanyEventCounter(models.Model):
    """Last company_sequence handed out for a company."""

    company = models.OneToOneField(
        Company,
        on_delete=models.CASCADE,
        related_name="event_counter",
    )
    last_sequence = models.BigIntegerField(default=0)

    class Meta:
        verbose_name = "Company Event Counter"

    def __str__(self):
        return f"{self.company_id}: {self.last_sequence}"

    @classmethod
    def allocate(cls, company) -> int:
        """
        Reserve the next company_sequence. Must run inside the
        transaction that inserts the event so a rollback frees the number.
        """
        try:
            counter, _ = cls.objects.select_for_update().get_or_create(company=company)
        except IntegrityError:
            counter = cls.objects.select_for_update().get(company=company)
        counter.last_sequence = F("last_sequence") + 1
        counter.save(update_fields=["last_sequence"])
        counter.refresh_from_db(fields=["last_sequence"])
        return counter.last_sequence


class BusinessEventQuerySet(models.QuerySet):
    def for_aggregate(self, aggregate_type: str, aggregate_id) -> "BusinessEventQuerySet":
        """History of one voucher, ledger or group, oldest first."""
        return self.filter(
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
        ).order_by("sequence")

    def after(self, company_sequence: int) -> "BusinessEventQuerySet":
        """Events recorded after a company_sequence cursor."""
        return self.filter(company_sequence__gt=company_sequence).order_by("company_sequence")

    def of_type(self, *event_types: str) -> "BusinessEventQuerySet":
        return self.filter(event_type__in=event_types)

    def update(self, **kwargs):
        raise ValueError("Events are immutable and cannot be modified.")

    def delete(self):
        raise ValueError("Events are immutable and cannot be deleted.")


class BusinessEvent(models.Model):
    """
    Immutable record of one ledger state change.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="events",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Registered event type, e.g. 'voucher.approved'",
    )

    aggregate_type = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Voucher, Ledger, LedgerGroup, FiscalYear or Company",
    )

    aggregate_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="public_id (or pk for fiscal years) of the aggregate",
    )

    idempotency_key = models.CharField(
        max_length=255,
        db_index=True,
        editable=False,
        help_text="Unique per company; a repeated key returns the stored event",
    )

    sequence = models.PositiveIntegerField(default=0, editable=False)
    company_sequence = models.BigIntegerField(db_index=True, editable=False)

    data = models.JSONField(
        default=dict,
        help_text="Payload matching the dataclass registered for event_type",
    )

    payload_hash = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="SHA-256 of the canonical JSON payload",
    )

    metadata = models.JSONField(default=dict, blank=True)

    caused_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="caused_events",
        help_text="Null for system events such as chart seeding",
    )

    recorded_at = models.DateTimeField(auto_now_add=True, db_index=True)
    occurred_at = models.DateTimeField(db_index=True, default=timezone.now)

    objects = BusinessEventQuerySet.as_manager()

    class Meta:
        ordering = ["company_id", "company_sequence"]
        indexes = [
            models.Index(fields=["company", "aggregate_type", "aggregate_id", "sequence"]),
            models.Index(fields=["company", "event_type", "occurred_at"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "aggregate_type", "aggregate_id", "sequence"],
                name="uniq_event_company_aggregate_sequence",
            ),
            models.UniqueConstraint(
                fields=["company", "idempotency_key"],
                name="uniq_event_company_idempotency_key",
            ),
            models.UniqueConstraint(
                fields=["company", "company_sequence"],
                name="uniq_event_company_sequence",
            ),
        ]

    def __str__(self):
        return f"#{self.company_sequence} {self.event_type} {self.aggregate_type}:{self.aggregate_id}"

    def _next_aggregate_sequence(self) -> int:
        last = (
            BusinessEvent.objects.filter(
                company=self.company,
                aggregate_type=self.aggregate_type,
                aggregate_id=self.aggregate_id,
            )
            .order_by("-sequence")
            .values_list("sequence", flat=True)
            .first()
        )
        return (last or 0) + 1

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Events are immutable and cannot be modified.")
        if not (self.idempotency_key or "").strip():
            raise ValueError("idempotency_key is required")

        with transaction.atomic():
            self.company_sequence = CompanyEventCounter.allocate(self.company)
            if not self.sequence:
                self.sequence = self._next_aggregate_sequence()
            super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Events are immutable and cannot be deleted.")
