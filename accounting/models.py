# accounting/models.py
"""
Ledger models.

These are WRITE MODELS owned by the command layer.
=================================================
All mutations MUST go through accounting/commands.py (or the numbering
service), which runs inside command_writes_allowed(). Saving, deleting or
bulk-creating from anywhere else raises RuntimeError.

Models:
- CompanySequence: Per-company named counters for document numbers
- LedgerGroup: Node in the chart-of-accounts tree, carries the nature
- Ledger: Leaf account with an opening balance
- FiscalYear: Period anchor for opening vs period figures
- Voucher: Balanced multi-line transaction header
- VoucherEntry: Debit/credit line of a voucher
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q, Sum

from accounts.models import Company
from ops.write_barrier import assert_write_allowed


class CommandOwnedQuerySet(models.QuerySet):
    """
    QuerySet that routes bulk writes through the write barrier.

    create() calls save() and is guarded there; bulk paths skip save(),
    so they are guarded here.
    """

    def bulk_create(self, objs, *args, **kwargs):
        assert_write_allowed(self.model.__name__, "bulk_create")
        return super().bulk_create(objs, *args, **kwargs)

    def update(self, **kwargs):
        assert_write_allowed(self.model.__name__, "update")
        return super().update(**kwargs)

    def delete(self):
        assert_write_allowed(self.model.__name__, "delete")
        return super().delete()


class CommandOwnedModel(models.Model):
    objects = CommandOwnedQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        assert_write_allowed(self.__class__.__name__, "save")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        assert_write_allowed(self.__class__.__name__, "delete")
        return super().delete(*args, **kwargs)


class Nature(models.TextChoices):
    ASSETS = "ASSETS", "Assets"
    LIABILITIES = "LIABILITIES", "Liabilities"
    INCOME = "INCOME", "Income"
    EXPENSES = "EXPENSES", "Expenses"
    EQUITY = "EQUITY", "Equity"


# Natures whose natural balance is a debit; the rest are credit-natured.
DEBIT_NATURES = frozenset({Nature.ASSETS, Nature.EXPENSES})

BALANCE_SHEET_NATURES = (Nature.ASSETS, Nature.LIABILITIES, Nature.EQUITY)
PROFIT_AND_LOSS_NATURES = (Nature.INCOME, Nature.EXPENSES)


class CompanySequence(CommandOwnedModel):
    """
    Per-company counters for sequential identifiers.

    Used by accounting.numbering to allocate unique numbers
    under concurrency.
    """

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="sequences",
    )
    name = models.CharField(max_length=100)
    next_value = models.BigIntegerField(default=1)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"],
                name="uniq_company_sequence_name",
            ),
        ]
        indexes = [
            models.Index(fields=["company", "name"]),
        ]

    def __str__(self):
        return f"{self.company_id}:{self.name}={self.next_value}"


class LedgerGroup(CommandOwnedModel):
    """
    Chart-of-accounts group.

    Groups form a forest per company. Every group carries a nature, and a
    child's nature always equals its parent's, so a ledger's nature can be
    read from its own group.
    """

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="ledger_groups",
    )

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
    )

    name = models.CharField(max_length=255)

    nature = models.CharField(max_length=20, choices=Nature.choices)

    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="children",
    )

    sequence = models.PositiveIntegerField(default=0)

    affects_gross_profit = models.BooleanField(
        default=False,
        help_text="EXPENSES only: True = direct cost / COGS, False = operating cost",
    )

    is_system = models.BooleanField(
        default=False,
        help_text="System groups are installed with the default chart and cannot be deleted",
    )

    is_cash_or_bank = models.BooleanField(
        default=False,
        help_text="Ledgers under this group are cash or bank accounts for the cash flow report",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"],
                name="uniq_ledger_group_name_per_company",
            ),
        ]
        ordering = ["sequence", "name"]
        indexes = [
            models.Index(fields=["company", "nature"]),
            models.Index(fields=["company", "parent"]),
        ]

    def __str__(self):
        return f"{self.name} ({self.nature})"

    def clean(self):
        if not self.parent_id:
            return

        parent = self.parent
        if parent.company_id != self.company_id:
            raise ValidationError("Parent group must belong to the same company.")

        if parent.nature != self.nature:
            raise ValidationError(
                f"Group nature {self.nature} must match parent nature {parent.nature}."
            )

        if self.pk and self.pk in {g.pk for g in [parent, *parent.get_ancestors()]}:
            raise ValidationError("A group cannot be its own ancestor.")

    def save(self, *args, **kwargs):
        assert_write_allowed(self.__class__.__name__, "save")
        self.full_clean()
        models.Model.save(self, *args, **kwargs)

    def get_ancestors(self) -> list["LedgerGroup"]:
        """Returns list of ancestor groups from root to immediate parent."""
        ancestors = []
        seen = {self.pk}
        current = self.parent
        while current and current.pk not in seen:
            ancestors.insert(0, current)
            seen.add(current.pk)
            current = current.parent
        return ancestors


class Ledger(CommandOwnedModel):
    """
    Leaf account. Vouchers post only to ledgers.

    The opening balance is stored unsigned with an explicit side; the
    balance engine turns it into a debit-positive figure.
    """

    class Side(models.TextChoices):
        DEBIT = "DEBIT", "Debit"
        CREDIT = "CREDIT", "Credit"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="ledgers",
    )

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
    )

    group = models.ForeignKey(
        LedgerGroup,
        on_delete=models.PROTECT,
        related_name="ledgers",
    )

    name = models.CharField(max_length=255)
    code = models.CharField(max_length=20, blank=True, default="")

    opening_balance = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    opening_balance_side = models.CharField(
        max_length=6,
        choices=Side.choices,
        default=Side.DEBIT,
    )

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"],
                name="uniq_ledger_name_per_company",
            ),
            models.CheckConstraint(
                condition=Q(opening_balance__gte=0),
                name="chk_ledger_opening_non_negative",
            ),
        ]
        ordering = ["name"]
        indexes = [
            models.Index(fields=["company", "group"]),
            models.Index(fields=["company", "is_active"]),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}" if self.code else self.name

    @property
    def nature(self) -> str:
        return self.group.nature

    def clean(self):
        if self.group_id and self.group.company_id != self.company_id:
            raise ValidationError("Ledger group must belong to the same company.")
        if self.opening_balance is not None and self.opening_balance < 0:
            raise ValidationError("Opening balance cannot be negative. Use the opening balance side instead.")

    def save(self, *args, **kwargs):
        assert_write_allowed(self.__class__.__name__, "save")
        self.full_clean()
        models.Model.save(self, *args, **kwargs)


class FiscalYear(CommandOwnedModel):
    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="fiscal_years",
    )
    name = models.CharField(max_length=50)
    start_date = models.DateField()
    end_date = models.DateField()
    is_closed = models.BooleanField(default=False)
    closed_at = models.DateTimeField(null=True, blank=True)
    closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="closed_fiscal_years",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"],
                name="uniq_fiscal_year_name_per_company",
            ),
            models.CheckConstraint(
                condition=Q(start_date__lt=models.F("end_date")),
                name="chk_fiscal_year_start_before_end",
            ),
        ]
        ordering = ["-start_date"]

    def __str__(self):
        return f"{self.name} ({self.start_date} - {self.end_date})"

    def contains(self, target_date) -> bool:
        return self.start_date <= target_date <= self.end_date


class Voucher(CommandOwnedModel):
    """
    Voucher header.

    Workflow: DRAFT -> PENDING -> APPROVED | REJECTED
    - DRAFT: Being prepared, may be unbalanced
    - PENDING: Complete and balanced, awaiting approval
    - APPROVED: Posted; entries count in every report. Terminal.
    - REJECTED: Sent back by the approver
    - CANCELLED: Withdrawn before approval
    """

    class VoucherType(models.TextChoices):
        PAYMENT = "PAYMENT", "Payment"
        RECEIPT = "RECEIPT", "Receipt"
        CONTRA = "CONTRA", "Contra"
        JOURNAL = "JOURNAL", "Journal"
        SALES = "SALES", "Sales"
        PURCHASE = "PURCHASE", "Purchase"
        DEBIT_NOTE = "DEBIT_NOTE", "Debit Note"
        CREDIT_NOTE = "CREDIT_NOTE", "Credit Note"

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        PENDING = "PENDING", "Pending Approval"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"
        CANCELLED = "CANCELLED", "Cancelled"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="vouchers",
    )

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
    )

    voucher_type = models.CharField(max_length=20, choices=VoucherType.choices)

    fiscal_year = models.ForeignKey(
        FiscalYear,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="vouchers",
    )

    voucher_number = models.CharField(max_length=50)

    date = models.DateField()
    narration = models.TextField(blank=True, default="")
    reference_no = models.CharField(max_length=100, blank=True, default="")

    # Cached from entries when the voucher is written
    total_debit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_credit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.DRAFT,
    )
    is_posted = models.BooleanField(default=False)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="created_vouchers",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="approved_vouchers",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.CharField(max_length=255, blank=True, default="")
    cancelled_at = models.DateTimeField(null=True, blank=True)

    reverses = models.OneToOneField(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="reversed_by",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "voucher_type", "voucher_number"],
                name="uniq_voucher_number_per_company_type",
            ),
        ]
        indexes = [
            models.Index(fields=["company", "date", "id"]),
            models.Index(fields=["company", "status"]),
        ]
        ordering = ["-date", "-id"]

    def __str__(self):
        return f"{self.voucher_number} ({self.date}) {self.status}"

    @property
    def difference(self) -> Decimal:
        return self.total_debit - self.total_credit

    def entry_totals(self) -> tuple[Decimal, Decimal]:
        """(debit, credit) summed from the stored entries."""
        totals = self.entries.aggregate(
            debit=Sum("debit_amount"),
            credit=Sum("credit_amount"),
        )
        return (
            (totals["debit"] or Decimal("0")).quantize(Decimal("0.01")),
            (totals["credit"] or Decimal("0")).quantize(Decimal("0.01")),
        )


class VoucherEntry(CommandOwnedModel):
    """
    One line of a voucher. Exactly one of debit/credit is non-zero by
    convention; the command layer rejects lines with both zero.
    """

    voucher = models.ForeignKey(
        Voucher,
        on_delete=models.CASCADE,
        related_name="entries",
    )

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="voucher_entries",
    )

    ledger = models.ForeignKey(
        Ledger,
        on_delete=models.PROTECT,
        related_name="entries",
    )

    debit_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    narration = models.CharField(max_length=255, blank=True, default="")
    cost_center = models.CharField(max_length=100, blank=True, default="")
    project = models.CharField(max_length=100, blank=True, default="")

    sequence = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ["voucher", "sequence"]
        constraints = [
            models.CheckConstraint(
                condition=Q(debit_amount__gte=0) & Q(credit_amount__gte=0),
                name="chk_voucher_entry_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["company", "ledger"]),
            models.Index(fields=["company", "voucher"]),
        ]

    def __str__(self):
        return f"{self.voucher_id} L{self.sequence}"

    def save(self, *args, **kwargs):
        assert_write_allowed(self.__class__.__name__, "save")
        if self.voucher_id and self.company_id and self.voucher.company_id != self.company_id:
            raise ValidationError("VoucherEntry company must match voucher company.")
        if self.ledger_id and self.company_id and self.ledger.company_id != self.company_id:
            raise ValidationError("VoucherEntry company must match ledger company.")
        models.Model.save(self, *args, **kwargs)

    @property
    def amount(self) -> Decimal:
        return self.debit_amount if self.debit_amount > 0 else self.credit_amount

    @property
    def is_debit(self) -> bool:
        return self.debit_amount > 0
