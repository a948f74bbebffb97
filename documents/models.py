# documents/models.py
"""
Trade and payroll documents.

Storage only: the aging report reads open invoices and bills, and the
cash flow report reads completed receipts and payments, paid payslips
and reimbursed expense claims.
"""

import uuid
from decimal import Decimal

from django.db import models
from django.db.models import Q

from accounts.models import Company


class Party(models.Model):
    class PartyType(models.TextChoices):
        CUSTOMER = "CUSTOMER", "Customer"
        VENDOR = "VENDOR", "Vendor"
        BOTH = "BOTH", "Customer & Vendor"
        EMPLOYEE = "EMPLOYEE", "Employee"

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="parties")
    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    name = models.CharField(max_length=255)
    party_type = models.CharField(max_length=10, choices=PartyType.choices)
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=30, blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "Parties"
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(fields=["company", "name"], name="uniq_party_name_per_company"),
        ]

    def __str__(self):
        return self.name

    @property
    def is_customer(self) -> bool:
        return self.party_type in (self.PartyType.CUSTOMER, self.PartyType.BOTH)

    @property
    def is_vendor(self) -> bool:
        return self.party_type in (self.PartyType.VENDOR, self.PartyType.BOTH)


class OutstandingDocument(models.Model):
    """
    Common shape of invoices and bills: a total, an amount paid and a due
    date that drives aging.
    """

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="+")
    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    party = models.ForeignKey(Party, on_delete=models.PROTECT, related_name="+")
    date = models.DateField()
    due_date = models.DateField()
    total_amount = models.DecimalField(max_digits=18, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    OPEN_STATUSES: tuple = ()

    class Meta:
        abstract = True

    @property
    def amount_due(self) -> Decimal:
        return self.total_amount - self.amount_paid

    @property
    def number(self) -> str:
        raise NotImplementedError


class Invoice(OutstandingDocument):
    """Receivable."""

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        SENT = "SENT", "Sent"
        PARTIAL = "PARTIAL", "Partially Paid"
        OVERDUE = "OVERDUE", "Overdue"
        PAID = "PAID", "Paid"
        CANCELLED = "CANCELLED", "Cancelled"

    OPEN_STATUSES = (Status.SENT, Status.PARTIAL, Status.OVERDUE)

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="invoices")
    party = models.ForeignKey(Party, on_delete=models.PROTECT, related_name="invoices")
    invoice_number = models.CharField(max_length=50)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.DRAFT)

    class Meta:
        ordering = ["due_date", "invoice_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "invoice_number"],
                name="uniq_invoice_number_per_company",
            ),
            models.CheckConstraint(
                condition=Q(total_amount__gte=0) & Q(amount_paid__gte=0),
                name="chk_invoice_amounts_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["company", "status", "due_date"]),
        ]

    def __str__(self):
        return self.invoice_number

    @property
    def number(self) -> str:
        return self.invoice_number


class Bill(OutstandingDocument):
    """Payable."""

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        PENDING_APPROVAL = "PENDING_APPROVAL", "Pending Approval"
        APPROVED = "APPROVED", "Approved"
        PARTIAL = "PARTIAL", "Partially Paid"
        OVERDUE = "OVERDUE", "Overdue"
        PAID = "PAID", "Paid"
        CANCELLED = "CANCELLED", "Cancelled"

    OPEN_STATUSES = (Status.PENDING_APPROVAL, Status.APPROVED, Status.PARTIAL, Status.OVERDUE)

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="bills")
    party = models.ForeignKey(Party, on_delete=models.PROTECT, related_name="bills")
    bill_number = models.CharField(max_length=50)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)

    class Meta:
        ordering = ["due_date", "bill_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "bill_number"],
                name="uniq_bill_number_per_company",
            ),
            models.CheckConstraint(
                condition=Q(total_amount__gte=0) & Q(amount_paid__gte=0),
                name="chk_bill_amounts_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["company", "status", "due_date"]),
        ]

    def __str__(self):
        return self.bill_number

    @property
    def number(self) -> str:
        return self.bill_number


class CashDocument(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="+")
    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    party = models.ForeignKey(Party, null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    date = models.DateField()
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    reference = models.CharField(max_length=100, blank=True, default="")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.COMPLETED)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True


class Receipt(CashDocument):
    """Money received, usually against invoices."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="receipts")
    party = models.ForeignKey(Party, null=True, blank=True, on_delete=models.PROTECT, related_name="receipts")

    class Meta:
        ordering = ["date", "id"]
        indexes = [models.Index(fields=["company", "status", "date"])]

    def __str__(self):
        return f"Receipt {self.reference or self.pk} {self.amount}"


class Payment(CashDocument):
    """Money paid, usually against bills."""

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="payments")
    party = models.ForeignKey(Party, null=True, blank=True, on_delete=models.PROTECT, related_name="payments")

    class Meta:
        ordering = ["date", "id"]
        indexes = [models.Index(fields=["company", "status", "date"])]

    def __str__(self):
        return f"Payment {self.reference or self.pk} {self.amount}"


class Payslip(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        APPROVED = "APPROVED", "Approved"
        PAID = "PAID", "Paid"

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="payslips")
    employee = models.ForeignKey(Party, null=True, blank=True, on_delete=models.PROTECT, related_name="payslips")
    employee_name = models.CharField(max_length=255)
    period_start = models.DateField()
    period_end = models.DateField()
    gross_salary = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    net_salary = models.DecimalField(max_digits=18, decimal_places=2)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.DRAFT)
    paid_at = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ["period_start", "employee_name"]
        indexes = [models.Index(fields=["company", "status", "paid_at"])]

    def __str__(self):
        return f"{self.employee_name} {self.period_start:%Y-%m}"


class ExpenseClaim(models.Model):
    class Status(models.TextChoices):
        SUBMITTED = "SUBMITTED", "Submitted"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"
        REIMBURSED = "REIMBURSED", "Reimbursed"

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="expense_claims")
    employee = models.ForeignKey(Party, null=True, blank=True, on_delete=models.PROTECT, related_name="expense_claims")
    description = models.CharField(max_length=255, blank=True, default="")
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.SUBMITTED)
    reimbursed_at = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        indexes = [models.Index(fields=["company", "status", "reimbursed_at"])]

    def __str__(self):
        return f"Claim {self.pk} {self.amount}"
