# tests/conftest.py
"""
Pytest fixtures for ledger tests.

The default chart is seeded as of 2025-06-01, which creates fiscal year
"FY 2025-26" (2025-04-01 to 2026-03-31) for an April-start company.
Voucher fixtures go through accounting.commands so numbering, events
and totals are exercised exactly as in production.
"""

import pytest
from django.conf import settings
from decimal import Decimal
from datetime import date

from django.contrib.auth import get_user_model

from accounts.models import Company
from accounts.authz import ActorContext
from accounting.chart import seed_chart
from accounting.commands import approve_voucher, create_ledger, post_voucher
from accounting.models import FiscalYear, Ledger, LedgerGroup, Voucher
from documents.models import Bill, ExpenseClaim, Invoice, Party, Payment, Payslip, Receipt


User = get_user_model()

SEED_DATE = date(2025, 6, 1)


@pytest.fixture(autouse=True, scope="session")
def _testing_settings():
    """Ensure test-only settings are enabled for the write barrier and event validation."""
    settings.TESTING = True
    settings.DISABLE_EVENT_VALIDATION = True


# =============================================================================
# Company & User Fixtures
# =============================================================================

@pytest.fixture
def company(db):
    """Create a test company with an April fiscal year."""
    return Company.objects.create(
        name="Test Company",
        slug="test-company",
        default_currency="INR",
        fiscal_year_start_month=4,
        is_active=True,
    )


@pytest.fixture
def second_company(db):
    """Create a second test company for multi-tenant tests."""
    return Company.objects.create(
        name="Second Company",
        slug="second-company",
        default_currency="USD",
        fiscal_year_start_month=1,
        is_active=True,
    )


@pytest.fixture
def user(db):
    return User.objects.create_user(
        email="owner@test.com",
        password="testpass123",
        name="Test Owner",
    )


@pytest.fixture
def actor(user, company):
    """ActorContext for the owner acting in the test company."""
    return ActorContext(user=user, company=company)


@pytest.fixture
def second_actor(user, second_company):
    return ActorContext(user=user, company=second_company)


# =============================================================================
# Chart Fixtures
# =============================================================================

@pytest.fixture
def chart(company, user):
    """
    Default chart plus a bank, capital, receivable and payable ledger.

    Returns a dict of name -> Ledger.
    """
    seed_chart(company, user=user, today=SEED_DATE)

    extras = [
        ("HDFC Bank", "Cash & Bank"),
        ("Owner's Capital", "Capital Account"),
        ("Debtors Control", "Sundry Debtors"),
        ("Creditors Control", "Sundry Creditors"),
        ("Furniture", "Fixed Assets"),
    ]
    for name, group_name in extras:
        group = LedgerGroup.objects.get(company=company, name=group_name)
        Ledger.objects.create(company=company, group=group, name=name)

    return {ledger.name: ledger for ledger in Ledger.objects.filter(company=company)}


@pytest.fixture
def groups(chart, company):
    """Dict of name -> LedgerGroup for the seeded chart."""
    return {group.name: group for group in LedgerGroup.objects.filter(company=company)}


@pytest.fixture
def fiscal_year(chart, company):
    return FiscalYear.objects.get(company=company, name="FY 2025-26")


@pytest.fixture
def cash(chart):
    return chart["Cash in Hand"]


@pytest.fixture
def bank(chart):
    return chart["HDFC Bank"]


@pytest.fixture
def sales(chart):
    return chart["Sales - Goods"]


@pytest.fixture
def rent(chart):
    return chart["Rent"]


@pytest.fixture
def purchases(chart):
    return chart["Purchase Accounts"]


@pytest.fixture
def capital(chart):
    return chart["Owner's Capital"]


@pytest.fixture
def make_ledger(actor):
    """Create a ledger through the command layer."""
    def _make(group, name, opening_balance="0", side=Ledger.Side.DEBIT, code=""):
        result = create_ledger(
            actor,
            group_id=group.pk,
            name=name,
            code=code,
            opening_balance=opening_balance,
            opening_balance_side=side,
        )
        assert result.success, result.error
        return result.data
    return _make


# =============================================================================
# Voucher Fixtures
# =============================================================================

def _entry(ledger, debit="0", credit="0", narration=""):
    """Raw entry dict as accepted by post_voucher."""
    return {
        "ledger_id": ledger.pk,
        "debit": str(debit),
        "credit": str(credit),
        "narration": narration,
    }


@pytest.fixture
def entry():
    return _entry


@pytest.fixture
def post_approved(actor, fiscal_year):
    """Post and approve a voucher; returns the APPROVED Voucher."""
    def _post(voucher_type, voucher_date, entries, narration=""):
        result = post_voucher(actor, voucher_type, voucher_date, entries, narration=narration)
        assert result.success, result.error
        approved = approve_voucher(actor, result.data.pk)
        assert approved.success, approved.error
        return approved.data
    return _post


@pytest.fixture
def trading_vouchers(post_approved, cash, bank, sales, rent, purchases, capital):
    """
    A small, balanced quarter of trading:

    - 2025-04-01 capital 10000 into bank
    - 2025-04-10 cash sale 1000
    - 2025-05-05 purchases 400 paid from bank
    - 2025-05-31 rent 300 paid in cash
    """
    return [
        post_approved(
            Voucher.VoucherType.RECEIPT, date(2025, 4, 1),
            [_entry(bank, debit="10000"), _entry(capital, credit="10000")],
            narration="Capital introduced",
        ),
        post_approved(
            Voucher.VoucherType.SALES, date(2025, 4, 10),
            [_entry(cash, debit="1000"), _entry(sales, credit="1000")],
            narration="Cash sale",
        ),
        post_approved(
            Voucher.VoucherType.PURCHASE, date(2025, 5, 5),
            [_entry(purchases, debit="400"), _entry(bank, credit="400")],
            narration="Stock purchase",
        ),
        post_approved(
            Voucher.VoucherType.PAYMENT, date(2025, 5, 31),
            [_entry(rent, debit="300"), _entry(cash, credit="300")],
            narration="May rent",
        ),
    ]


# =============================================================================
# Document Fixtures
# =============================================================================

@pytest.fixture
def customer(company):
    return Party.objects.create(company=company, name="Acme Retail", party_type=Party.PartyType.CUSTOMER)


@pytest.fixture
def second_customer(company):
    return Party.objects.create(company=company, name="Beta Stores", party_type=Party.PartyType.CUSTOMER)


@pytest.fixture
def vendor(company):
    return Party.objects.create(company=company, name="Zenith Supplies", party_type=Party.PartyType.VENDOR)


@pytest.fixture
def employee(company):
    return Party.objects.create(company=company, name="Ravi Kumar", party_type=Party.PartyType.EMPLOYEE)


@pytest.fixture
def invoices(company, customer, second_customer):
    """
    Open invoices as of 2025-06-30:

    - INV-1 due 2025-06-30, 500 due (current)
    - INV-2 due 2025-05-16, 1000 total, 250 paid, 750 due (45 days)
    - INV-3 due 2025-02-01, 200 due (149 days)
    - INV-4 paid, and INV-5 cancelled, are never aged
    """
    return [
        Invoice.objects.create(
            company=company, party=customer, invoice_number="INV-1",
            date=date(2025, 6, 1), due_date=date(2025, 6, 30),
            total_amount=Decimal("500.00"), status=Invoice.Status.SENT,
        ),
        Invoice.objects.create(
            company=company, party=customer, invoice_number="INV-2",
            date=date(2025, 4, 16), due_date=date(2025, 5, 16),
            total_amount=Decimal("1000.00"), amount_paid=Decimal("250.00"),
            status=Invoice.Status.PARTIAL,
        ),
        Invoice.objects.create(
            company=company, party=second_customer, invoice_number="INV-3",
            date=date(2025, 1, 2), due_date=date(2025, 2, 1),
            total_amount=Decimal("200.00"), status=Invoice.Status.OVERDUE,
        ),
        Invoice.objects.create(
            company=company, party=second_customer, invoice_number="INV-4",
            date=date(2025, 3, 1), due_date=date(2025, 3, 31),
            total_amount=Decimal("300.00"), amount_paid=Decimal("300.00"),
            status=Invoice.Status.PAID,
        ),
        Invoice.objects.create(
            company=company, party=customer, invoice_number="INV-5",
            date=date(2025, 3, 1), due_date=date(2025, 3, 31),
            total_amount=Decimal("900.00"), status=Invoice.Status.CANCELLED,
        ),
    ]


@pytest.fixture
def bills(company, vendor):
    return [
        Bill.objects.create(
            company=company, party=vendor, bill_number="BILL-1",
            date=date(2025, 5, 1), due_date=date(2025, 5, 31),
            total_amount=Decimal("400.00"), status=Bill.Status.APPROVED,
        ),
        Bill.objects.create(
            company=company, party=vendor, bill_number="BILL-2",
            date=date(2025, 6, 1), due_date=date(2025, 7, 1),
            total_amount=Decimal("120.00"), status=Bill.Status.DRAFT,
        ),
    ]


@pytest.fixture
def cash_documents(company, customer, vendor, employee):
    """
    Cash movements in June 2025:

    - receipt 700 from a customer, receipt 50 with no party
    - payment 200 to a vendor, payment 30 with no party
    - payslip paid 2025-06-30, net 500
    - expense claim reimbursed 2025-06-20, 80
    - a cancelled receipt and a payslip paid in July are ignored
    """
    Receipt.objects.create(company=company, party=customer, date=date(2025, 6, 5), amount=Decimal("700.00"))
    Receipt.objects.create(company=company, party=None, date=date(2025, 6, 6), amount=Decimal("50.00"))
    Receipt.objects.create(
        company=company, party=customer, date=date(2025, 6, 7), amount=Decimal("999.00"),
        status=Receipt.Status.CANCELLED,
    )
    Payment.objects.create(company=company, party=vendor, date=date(2025, 6, 10), amount=Decimal("200.00"))
    Payment.objects.create(company=company, party=None, date=date(2025, 6, 11), amount=Decimal("30.00"))
    Payslip.objects.create(
        company=company, employee=employee, employee_name=employee.name,
        period_start=date(2025, 6, 1), period_end=date(2025, 6, 30),
        gross_salary=Decimal("600.00"), net_salary=Decimal("500.00"),
        status=Payslip.Status.PAID, paid_at=date(2025, 6, 30),
    )
    Payslip.objects.create(
        company=company, employee=employee, employee_name=employee.name,
        period_start=date(2025, 7, 1), period_end=date(2025, 7, 31),
        gross_salary=Decimal("600.00"), net_salary=Decimal("500.00"),
        status=Payslip.Status.PAID, paid_at=date(2025, 7, 31),
    )
    ExpenseClaim.objects.create(
        company=company, employee=employee, description="Taxi",
        amount=Decimal("80.00"), status=ExpenseClaim.Status.REIMBURSED,
        reimbursed_at=date(2025, 6, 20),
    )
