# accounting/policies.py
"""
Business policy functions for ledger operations.

Policies answer: "Is this action allowed given the current state?"
They do NOT perform the action; that's the command's job.

Workflow Rules vs Model Invariants
==================================
Workflow rules (status transitions, what may be deleted, where a voucher
may post) are enforced HERE. Model clean()/save() only enforces rules
that hold at every stage: nature agreement, acyclic groups, company
agreement between rows.

Usage:
    from accounting.policies import can_approve_voucher

    allowed, reason = can_approve_voucher(actor, voucher)
    if not allowed:
        return CommandResult.fail(reason)

Policies return (bool, str) tuples and have no side effects.
"""

from decimal import Decimal

from django.conf import settings


def balance_tolerance() -> Decimal:
    return Decimal(str(getattr(settings, "LEDGER_BALANCE_TOLERANCE", "0.01")))


# =============================================================================
# Tenant Boundary Policies
# =============================================================================

def check_tenant_boundary(actor, entity) -> bool:
    """
    Verify entity belongs to actor's company.
    This is the fundamental multi-tenant check.
    """
    entity_company_id = getattr(entity, "company_id", None)
    if entity_company_id is None:
        company = getattr(entity, "company", None)
        entity_company_id = getattr(company, "id", None) if company else None
    return entity_company_id == actor.company.id


# =============================================================================
# Chart of Accounts Policies
# =============================================================================

def can_set_group_parent(group, parent, nature: str) -> tuple[bool, str]:
    """
    Check that parent may hold a group of the given nature.

    Rules:
    - Parent must belong to the same company
    - Parent nature must equal the group's nature
    - Parent must not be the group itself or one of its descendants
    """
    if parent is None:
        return True, ""

    if group is not None and parent.company_id != group.company_id:
        return False, "Parent group must belong to the same company."

    if parent.nature != nature:
        return False, f"Group nature {nature} must match parent nature {parent.nature}."

    if group is not None and group.pk:
        if parent.pk == group.pk or group.pk in {g.pk for g in parent.get_ancestors()}:
            return False, "A group cannot be moved under itself or one of its descendants."

    return True, ""


def can_change_group_nature(group, nature: str) -> tuple[bool, str]:
    """
    Rules:
    - A group with ledgers or child groups keeps its nature; descendants
      would otherwise disagree with it
    """
    if nature == group.nature:
        return True, ""

    if group.children.exists():
        return False, "Cannot change the nature of a group that has child groups."

    if group.ledgers.exists():
        return False, "Cannot change the nature of a group that has ledgers."

    return True, ""


def can_delete_group(actor, group) -> tuple[bool, str]:
    """
    Rules:
    - Must belong to actor's company
    - System groups are protected
    - Group must be empty (no child groups, no ledgers)
    """
    if not check_tenant_boundary(actor, group):
        return False, "Cross-company action denied."

    if group.is_system:
        return False, "Cannot delete a system group."

    if group.children.exists():
        return False, "Cannot delete a group that has child groups."

    if group.ledgers.exists():
        return False, "Cannot delete a group that has ledgers."

    return True, ""


def can_delete_ledger(actor, ledger) -> tuple[bool, str]:
    """
    Rules:
    - Must belong to actor's company
    - Ledger must have no voucher entries (deactivate it instead)
    """
    if not check_tenant_boundary(actor, ledger):
        return False, "Cross-company action denied."

    if ledger.entries.exists():
        return False, "Cannot delete a ledger that has voucher entries. Deactivate it instead."

    return True, ""


def can_deactivate_ledger(actor, ledger) -> tuple[bool, str]:
    """
    Rules:
    - Must belong to actor's company
    - No DRAFT or PENDING voucher may still post to the ledger
    - Balance (opening plus approved entries) must be zero, since the
      trial balance lists active ledgers only
    """
    if not check_tenant_boundary(actor, ledger):
        return False, "Cross-company action denied."

    from accounting.balances import ReportFilter, compute_balance
    from accounting.models import Voucher

    if ledger.entries.filter(voucher__status__in=[Voucher.Status.DRAFT, Voucher.Status.PENDING]).exists():
        return False, f"Cannot deactivate ledger {ledger.name}: draft or pending vouchers still post to it."

    entries = ReportFilter(company=ledger.company).for_ledgers([ledger.pk]).entries()
    balance = compute_balance(ledger, entries)
    if balance:
        return False, (
            f"Cannot deactivate ledger {ledger.name} with a balance of {balance}. "
            f"Transfer the balance first."
        )

    return True, ""


def can_post_to_ledger(ledger) -> tuple[bool, str]:
    """Vouchers only post to active ledgers."""
    if not ledger.is_active:
        return False, f"Cannot post to inactive ledger: {ledger.name}"
    return True, ""


def can_post_to_fiscal_year(fiscal_year) -> tuple[bool, str]:
    if fiscal_year is not None and fiscal_year.is_closed:
        return False, f"Fiscal year {fiscal_year.name} is closed."
    return True, ""


def can_close_fiscal_year(actor, fiscal_year) -> tuple[bool, str]:
    """
    Rules:
    - Must belong to actor's company
    - Must not be closed already
    - No DRAFT or PENDING vouchers may remain in the year
    """
    if not check_tenant_boundary(actor, fiscal_year):
        return False, "Cross-company action denied."

    if fiscal_year.is_closed:
        return False, f"Fiscal year {fiscal_year.name} is already closed."

    from accounting.models import Voucher

    open_vouchers = Voucher.objects.filter(
        company=fiscal_year.company,
        date__gte=fiscal_year.start_date,
        date__lte=fiscal_year.end_date,
        status__in=[Voucher.Status.DRAFT, Voucher.Status.PENDING],
    ).count()
    if open_vouchers:
        return False, (
            f"Cannot close fiscal year {fiscal_year.name}: "
            f"{open_vouchers} draft or pending voucher(s) remain."
        )

    return True, ""


# =============================================================================
# Voucher Status Transition Policies (Workflow Rules)
# =============================================================================

def _allowed_transitions():
    from accounting.models import Voucher

    status = Voucher.Status
    return {
        (status.DRAFT, status.PENDING),
        (status.PENDING, status.APPROVED),
        (status.PENDING, status.REJECTED),
        (status.DRAFT, status.CANCELLED),
        (status.PENDING, status.CANCELLED),
        (status.REJECTED, status.CANCELLED),
    }


def validate_status_transition(old_status, new_status) -> tuple[bool, str]:
    """
    Validate a voucher status transition.

    Allowed transitions:
    - DRAFT -> PENDING (submit)
    - PENDING -> APPROVED | REJECTED
    - DRAFT | PENDING | REJECTED -> CANCELLED

    APPROVED is terminal.
    """
    if (old_status, new_status) in _allowed_transitions():
        return True, ""

    return False, f"Invalid status transition: {old_status} -> {new_status}"


def check_voucher_balance(entry_count: int, total_debit: Decimal, total_credit: Decimal) -> tuple[bool, str]:
    """
    A voucher may enter PENDING or APPROVED only with at least two entries
    and |debit - credit| below the balance tolerance.
    """
    if entry_count < 2:
        return False, "Voucher must have at least 2 entries."

    if abs(total_debit - total_credit) >= balance_tolerance():
        return False, f"Voucher is not balanced. Debit={total_debit} Credit={total_credit}"

    return True, ""


def can_submit_voucher(actor, voucher) -> tuple[bool, str]:
    if not check_tenant_boundary(actor, voucher):
        return False, "Cross-company action denied."

    from accounting.models import Voucher

    allowed, reason = validate_status_transition(voucher.status, Voucher.Status.PENDING)
    if not allowed:
        return False, reason

    total_debit, total_credit = voucher.entry_totals()
    return check_voucher_balance(voucher.entries.count(), total_debit, total_credit)


def can_approve_voucher(actor, voucher) -> tuple[bool, str]:
    """
    Rules:
    - Must belong to actor's company
    - Only PENDING vouchers can be approved
    - Fiscal year must be open
    - Stored entries must still balance
    """
    if not check_tenant_boundary(actor, voucher):
        return False, "Cross-company action denied."

    from accounting.models import Voucher

    allowed, reason = validate_status_transition(voucher.status, Voucher.Status.APPROVED)
    if not allowed:
        return False, reason

    allowed, reason = can_post_to_fiscal_year(voucher.fiscal_year)
    if not allowed:
        return False, reason

    total_debit, total_credit = voucher.entry_totals()
    return check_voucher_balance(voucher.entries.count(), total_debit, total_credit)


def can_reject_voucher(actor, voucher) -> tuple[bool, str]:
    if not check_tenant_boundary(actor, voucher):
        return False, "Cross-company action denied."

    from accounting.models import Voucher

    return validate_status_transition(voucher.status, Voucher.Status.REJECTED)


def can_cancel_voucher(actor, voucher) -> tuple[bool, str]:
    if not check_tenant_boundary(actor, voucher):
        return False, "Cross-company action denied."

    from accounting.models import Voucher

    return validate_status_transition(voucher.status, Voucher.Status.CANCELLED)


def can_delete_voucher(actor, voucher) -> tuple[bool, str]:
    """
    Rules:
    - Must belong to actor's company
    - APPROVED vouchers are never deleted; they are neutralised by a
      counter-voucher
    """
    if not check_tenant_boundary(actor, voucher):
        return False, "Cross-company action denied."

    from accounting.models import Voucher

    if voucher.status == Voucher.Status.APPROVED:
        return False, "Cannot delete an approved voucher. Reverse it with a counter-voucher instead."

    return True, ""


def can_reverse_voucher(actor, voucher) -> tuple[bool, str]:
    """
    Rules:
    - Must belong to actor's company
    - Only APPROVED vouchers can be reversed
    - A voucher is reversed at most once, and a counter-voucher is not
      itself reversed
    """
    if not check_tenant_boundary(actor, voucher):
        return False, "Cross-company action denied."

    from accounting.models import Voucher

    if voucher.status != Voucher.Status.APPROVED:
        return False, "Only APPROVED vouchers can be reversed."

    if voucher.reverses_id:
        return False, "A counter-voucher cannot be reversed."

    if Voucher.objects.filter(reverses=voucher).exists():
        return False, "This voucher was already reversed."

    return True, ""

