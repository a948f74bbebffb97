# accounting/commands.py
"""
Command layer for ledger operations.

Commands are the single point where ledger state changes. Callers pass an
ActorContext (user + company); commands enforce rules, write the models
and emit audit events.

Pattern:
1. Validate input (serializers) and business policies (can_*)
2. Perform the operation inside command_writes_allowed()
3. Emit event (emit_event)
4. Return CommandResult

Every command runs in one transaction: a failed event emission rolls the
model writes back.
"""

import logging
from datetime import date as date_type
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.utils import timezone

from accounts.authz import ActorContext
from accounting.models import (
    FiscalYear,
    Ledger,
    LedgerGroup,
    Nature,
    Voucher,
    VoucherEntry,
)
from accounting.numbering import next_number
from accounting.policies import (
    can_approve_voucher,
    can_cancel_voucher,
    can_change_group_nature,
    can_close_fiscal_year,
    can_deactivate_ledger,
    can_delete_group,
    can_delete_ledger,
    can_delete_voucher,
    can_post_to_fiscal_year,
    can_reject_voucher,
    can_reverse_voucher,
    can_set_group_parent,
    can_submit_voucher,
)
from accounting.serializers import VoucherInputSerializer, first_error
from events.emitter import emit_event
from events.serialization import hashed_idempotency_key
from events.types import (
    EventTypes,
    FiscalYearClosedData,
    FiscalYearCreatedData,
    LedgerCreatedData,
    LedgerDeactivatedData,
    LedgerDeletedData,
    LedgerGroupCreatedData,
    LedgerGroupDeletedData,
    LedgerGroupUpdatedData,
    LedgerUpdatedData,
    VoucherApprovedData,
    VoucherCancelledData,
    VoucherCreatedData,
    VoucherDeletedData,
    VoucherEntryData,
    VoucherRejectedData,
    VoucherReversedData,
    VoucherSubmittedData,
)
from ops.metrics import record_voucher_transition
from ops.write_barrier import command_writes_allowed

logger = logging.getLogger(__name__)

MONEY_Q = Decimal("0.01")


class CommandResult:
    """
    Wrapper for command results with success/failure info.

    Usage:
        result = post_voucher(actor, "PAYMENT", date, entries)
        if result.success:
            voucher = result.data
            event = result.event
        else:
            error_message = result.error
    """

    def __init__(self, success: bool, data=None, error: str = None, event=None):
        self.success = success
        self.data = data
        self.error = error
        self.event = event  # The emitted event, if any

    def __repr__(self):
        if self.success:
            return f"CommandResult(ok, data={self.data!r})"
        return f"CommandResult(fail, error={self.error!r})"

    @classmethod
    def ok(cls, data=None, event=None):
        return cls(success=True, data=data, event=event)

    @classmethod
    def fail(cls, error: str):
        return cls(success=False, error=error)


def _as_date(value):
    if isinstance(value, str):
        return date_type.fromisoformat(value)
    return value


def _as_money(value) -> Decimal:
    return Decimal(str(value if value not in (None, "") else "0")).quantize(MONEY_Q)


def _user_id(actor: ActorContext):
    return actor.user_id


# =============================================================================
# Ledger Group Commands
# =============================================================================

GROUP_UPDATABLE_FIELDS = {"name", "nature", "parent_id", "sequence", "affects_gross_profit", "is_cash_or_bank"}


@transaction.atomic
def create_ledger_group(
    actor: ActorContext,
    name: str,
    nature: str,
    parent_id: int = None,
    sequence: int = 0,
    affects_gross_profit: bool = False,
    is_cash_or_bank: bool = False,
) -> CommandResult:
    """
    Create a group in the chart of accounts.

    Args:
        actor: The actor context (user + company)
        name: Group name (unique per company)
        nature: One of Nature choices; must equal the parent's nature
        parent_id: Optional parent group ID
        sequence: Display order among siblings
        affects_gross_profit: EXPENSES only, marks direct costs
        is_cash_or_bank: Ledgers below count as cash for the cash flow report

    Returns:
        CommandResult with the created LedgerGroup or error
    """
    name = (name or "").strip()
    if not name:
        return CommandResult.fail("Group name is required.")

    if nature not in Nature.values:
        return CommandResult.fail(f"Invalid nature: {nature}.")

    if affects_gross_profit and nature != Nature.EXPENSES:
        return CommandResult.fail("Only EXPENSES groups can affect gross profit.")

    if LedgerGroup.objects.filter(company=actor.company, name=name).exists():
        return CommandResult.fail(f"Ledger group '{name}' already exists.")

    parent = None
    if parent_id:
        try:
            parent = LedgerGroup.objects.get(pk=parent_id, company=actor.company)
        except LedgerGroup.DoesNotExist:
            return CommandResult.fail("Parent group not found.")

    allowed, reason = can_set_group_parent(None, parent, nature)
    if not allowed:
        return CommandResult.fail(reason)

    with command_writes_allowed():
        group = LedgerGroup.objects.create(
            company=actor.company,
            name=name,
            nature=nature,
            parent=parent,
            sequence=sequence,
            affects_gross_profit=affects_gross_profit,
            is_cash_or_bank=is_cash_or_bank,
        )

    event = emit_event(
        actor=actor,
        event_type=EventTypes.LEDGER_GROUP_CREATED,
        aggregate_type="LedgerGroup",
        aggregate_id=str(group.public_id),
        idempotency_key=f"ledger_group.created:{group.public_id}",
        data=LedgerGroupCreatedData(
            group_public_id=str(group.public_id),
            name=name,
            nature=nature,
            parent_public_id=str(parent.public_id) if parent else None,
            sequence=sequence,
            affects_gross_profit=affects_gross_profit,
            is_cash_or_bank=is_cash_or_bank,
        ),
    )

    logger.info("Created ledger group %s (%s) for company %s", name, nature, actor.company.pk)
    return CommandResult.ok(group, event=event)


@transaction.atomic
def update_ledger_group(actor: ActorContext, group_id: int, **changes) -> CommandResult:
    """
    Update a ledger group.

    Re-parenting is rejected if it would create a cycle or put the group
    under a parent of another nature. A nature change is rejected while
    the group has children or ledgers.

    Args:
        actor: The actor context
        group_id: ID of the group
        **changes: Any of name, nature, parent_id, sequence,
            affects_gross_profit, is_cash_or_bank

    Returns:
        CommandResult with the updated LedgerGroup or error
    """
    unknown = set(changes) - GROUP_UPDATABLE_FIELDS
    if unknown:
        return CommandResult.fail(f"Unknown field(s): {', '.join(sorted(unknown))}.")

    try:
        group = LedgerGroup.objects.select_for_update().get(pk=group_id, company=actor.company)
    except LedgerGroup.DoesNotExist:
        return CommandResult.fail("Ledger group not found.")

    event_changes = {}

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            return CommandResult.fail("Group name is required.")
        if name != group.name:
            if LedgerGroup.objects.filter(company=actor.company, name=name).exclude(pk=group.pk).exists():
                return CommandResult.fail(f"Ledger group '{name}' already exists.")
            group.name = name
            event_changes["name"] = name

    nature = changes.get("nature", group.nature)
    if nature not in Nature.values:
        return CommandResult.fail(f"Invalid nature: {nature}.")
    allowed, reason = can_change_group_nature(group, nature)
    if not allowed:
        return CommandResult.fail(reason)

    parent = group.parent
    if "parent_id" in changes:
        parent = None
        if changes["parent_id"]:
            try:
                parent = LedgerGroup.objects.get(pk=changes["parent_id"], company=actor.company)
            except LedgerGroup.DoesNotExist:
                return CommandResult.fail("Parent group not found.")

    allowed, reason = can_set_group_parent(group, parent, nature)
    if not allowed:
        return CommandResult.fail(reason)

    if nature != group.nature:
        group.nature = nature
        event_changes["nature"] = nature
    if (parent.pk if parent else None) != group.parent_id:
        group.parent = parent
        event_changes["parent_public_id"] = str(parent.public_id) if parent else None

    for flag in ("sequence", "affects_gross_profit", "is_cash_or_bank"):
        if flag in changes and changes[flag] != getattr(group, flag):
            setattr(group, flag, changes[flag])
            event_changes[flag] = changes[flag]

    if group.affects_gross_profit and group.nature != Nature.EXPENSES:
        return CommandResult.fail("Only EXPENSES groups can affect gross profit.")

    if not event_changes:
        return CommandResult.ok(group)

    with command_writes_allowed():
        group.save()

    event = emit_event(
        actor=actor,
        event_type=EventTypes.LEDGER_GROUP_UPDATED,
        aggregate_type="LedgerGroup",
        aggregate_id=str(group.public_id),
        idempotency_key=hashed_idempotency_key(
            f"ledger_group.updated:{group.public_id}",
            {"changes": event_changes, "updated_at": group.updated_at.isoformat()},
        ),
        data=LedgerGroupUpdatedData(
            group_public_id=str(group.public_id),
            changes=event_changes,
        ),
    )

    logger.info("Updated ledger group %s: %s", group.pk, sorted(event_changes))
    return CommandResult.ok(group, event=event)


@transaction.atomic
def delete_ledger_group(actor: ActorContext, group_id: int) -> CommandResult:
    """Delete an empty, non-system ledger group."""
    try:
        group = LedgerGroup.objects.select_for_update().get(pk=group_id, company=actor.company)
    except LedgerGroup.DoesNotExist:
        return CommandResult.fail("Ledger group not found.")

    allowed, reason = can_delete_group(actor, group)
    if not allowed:
        return CommandResult.fail(reason)

    event = emit_event(
        actor=actor,
        event_type=EventTypes.LEDGER_GROUP_DELETED,
        aggregate_type="LedgerGroup",
        aggregate_id=str(group.public_id),
        idempotency_key=f"ledger_group.deleted:{group.public_id}",
        data=LedgerGroupDeletedData(group_public_id=str(group.public_id), name=group.name),
    )

    with command_writes_allowed():
        group.delete()

    logger.info("Deleted ledger group %s for company %s", group_id, actor.company.pk)
    return CommandResult.ok({"deleted": True}, event=event)


# =============================================================================
# Ledger Commands
# =============================================================================

LEDGER_UPDATABLE_FIELDS = {"name", "code", "group_id", "opening_balance", "opening_balance_side", "is_active"}


@transaction.atomic
def create_ledger(
    actor: ActorContext,
    group_id: int,
    name: str,
    code: str = "",
    opening_balance=0,
    opening_balance_side: str = Ledger.Side.DEBIT,
) -> CommandResult:
    """
    Create a ledger under a group.

    Args:
        actor: The actor context
        group_id: Owning group; the ledger takes its nature
        name: Ledger name (unique per company)
        code: Optional short code
        opening_balance: Unsigned amount (>= 0)
        opening_balance_side: DEBIT or CREDIT

    Returns:
        CommandResult with the created Ledger or error
    """
    name = (name or "").strip()
    if not name:
        return CommandResult.fail("Ledger name is required.")

    try:
        opening = _as_money(opening_balance)
    except InvalidOperation:
        return CommandResult.fail(f"Invalid opening balance: {opening_balance}.")
    if opening < 0:
        return CommandResult.fail("Opening balance cannot be negative. Use the opening balance side instead.")

    if opening_balance_side not in Ledger.Side.values:
        return CommandResult.fail(f"Invalid opening balance side: {opening_balance_side}.")

    try:
        group = LedgerGroup.objects.get(pk=group_id, company=actor.company)
    except LedgerGroup.DoesNotExist:
        return CommandResult.fail("Ledger group not found.")

    if Ledger.objects.filter(company=actor.company, name=name).exists():
        return CommandResult.fail(f"Ledger '{name}' already exists.")

    with command_writes_allowed():
        ledger = Ledger.objects.create(
            company=actor.company,
            group=group,
            name=name,
            code=code or "",
            opening_balance=opening,
            opening_balance_side=opening_balance_side,
        )

    event = emit_event(
        actor=actor,
        event_type=EventTypes.LEDGER_CREATED,
        aggregate_type="Ledger",
        aggregate_id=str(ledger.public_id),
        idempotency_key=f"ledger.created:{ledger.public_id}",
        data=LedgerCreatedData(
            ledger_public_id=str(ledger.public_id),
            group_public_id=str(group.public_id),
            name=name,
            code=ledger.code,
            opening_balance=str(opening),
            opening_balance_side=opening_balance_side,
        ),
    )

    logger.info("Created ledger %s under %s for company %s", name, group.name, actor.company.pk)
    return CommandResult.ok(ledger, event=event)


@transaction.atomic
def update_ledger(actor: ActorContext, ledger_id: int, **changes) -> CommandResult:
    """
    Update a ledger.

    Args:
        actor: The actor context
        ledger_id: ID of the ledger
        **changes: Any of name, code, group_id, opening_balance,
            opening_balance_side, is_active

    Returns:
        CommandResult with the updated Ledger or error
    """
    unknown = set(changes) - LEDGER_UPDATABLE_FIELDS
    if unknown:
        return CommandResult.fail(f"Unknown field(s): {', '.join(sorted(unknown))}.")

    try:
        ledger = Ledger.objects.select_for_update().get(pk=ledger_id, company=actor.company)
    except Ledger.DoesNotExist:
        return CommandResult.fail("Ledger not found.")

    event_changes = {}

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            return CommandResult.fail("Ledger name is required.")
        if name != ledger.name:
            if Ledger.objects.filter(company=actor.company, name=name).exclude(pk=ledger.pk).exists():
                return CommandResult.fail(f"Ledger '{name}' already exists.")
            ledger.name = name
            event_changes["name"] = name

    if "code" in changes and (changes["code"] or "") != ledger.code:
        ledger.code = changes["code"] or ""
        event_changes["code"] = ledger.code

    if "group_id" in changes and changes["group_id"] != ledger.group_id:
        try:
            group = LedgerGroup.objects.get(pk=changes["group_id"], company=actor.company)
        except LedgerGroup.DoesNotExist:
            return CommandResult.fail("Ledger group not found.")
        ledger.group = group
        event_changes["group_public_id"] = str(group.public_id)

    if "opening_balance" in changes:
        try:
            opening = _as_money(changes["opening_balance"])
        except InvalidOperation:
            return CommandResult.fail(f"Invalid opening balance: {changes['opening_balance']}.")
        if opening < 0:
            return CommandResult.fail("Opening balance cannot be negative. Use the opening balance side instead.")
        if opening != ledger.opening_balance:
            ledger.opening_balance = opening
            event_changes["opening_balance"] = str(opening)

    if "opening_balance_side" in changes and changes["opening_balance_side"] != ledger.opening_balance_side:
        if changes["opening_balance_side"] not in Ledger.Side.values:
            return CommandResult.fail(f"Invalid opening balance side: {changes['opening_balance_side']}.")
        ledger.opening_balance_side = changes["opening_balance_side"]
        event_changes["opening_balance_side"] = ledger.opening_balance_side

    if "is_active" in changes and bool(changes["is_active"]) != ledger.is_active:
        ledger.is_active = bool(changes["is_active"])
        event_changes["is_active"] = ledger.is_active

    if not event_changes:
        return CommandResult.ok(ledger)

    if not ledger.is_active:
        allowed, reason = can_deactivate_ledger(actor, ledger)
        if not allowed:
            return CommandResult.fail(reason)

    with command_writes_allowed():
        ledger.save()

    event = emit_event(
        actor=actor,
        event_type=EventTypes.LEDGER_UPDATED,
        aggregate_type="Ledger",
        aggregate_id=str(ledger.public_id),
        idempotency_key=hashed_idempotency_key(
            f"ledger.updated:{ledger.public_id}",
            {"changes": event_changes, "updated_at": ledger.updated_at.isoformat()},
        ),
        data=LedgerUpdatedData(ledger_public_id=str(ledger.public_id), changes=event_changes),
    )

    logger.info("Updated ledger %s: %s", ledger.pk, sorted(event_changes))
    return CommandResult.ok(ledger, event=event)


@transaction.atomic
def deactivate_ledger(actor: ActorContext, ledger_id: int) -> CommandResult:
    """
    Stop a ledger from receiving new entries. History is kept.

    Only a ledger with a zero balance and no unapproved vouchers can be
    deactivated.
    """
    try:
        ledger = Ledger.objects.select_for_update().get(pk=ledger_id, company=actor.company)
    except Ledger.DoesNotExist:
        return CommandResult.fail("Ledger not found.")

    if not ledger.is_active:
        return CommandResult.ok(ledger)

    allowed, reason = can_deactivate_ledger(actor, ledger)
    if not allowed:
        return CommandResult.fail(reason)

    with command_writes_allowed():
        ledger.is_active = False
        ledger.save(update_fields=["is_active", "updated_at"])

    event = emit_event(
        actor=actor,
        event_type=EventTypes.LEDGER_DEACTIVATED,
        aggregate_type="Ledger",
        aggregate_id=str(ledger.public_id),
        idempotency_key=hashed_idempotency_key(
            f"ledger.deactivated:{ledger.public_id}",
            {"updated_at": ledger.updated_at.isoformat()},
        ),
        data=LedgerDeactivatedData(ledger_public_id=str(ledger.public_id), name=ledger.name),
    )

    logger.info("Deactivated ledger %s", ledger.pk)
    return CommandResult.ok(ledger, event=event)


@transaction.atomic
def delete_ledger(actor: ActorContext, ledger_id: int) -> CommandResult:
    """Delete a ledger that has never been posted to."""
    try:
        ledger = Ledger.objects.select_for_update().get(pk=ledger_id, company=actor.company)
    except Ledger.DoesNotExist:
        return CommandResult.fail("Ledger not found.")

    allowed, reason = can_delete_ledger(actor, ledger)
    if not allowed:
        return CommandResult.fail(reason)

    event = emit_event(
        actor=actor,
        event_type=EventTypes.LEDGER_DELETED,
        aggregate_type="Ledger",
        aggregate_id=str(ledger.public_id),
        idempotency_key=f"ledger.deleted:{ledger.public_id}",
        data=LedgerDeletedData(ledger_public_id=str(ledger.public_id), name=ledger.name),
    )

    with command_writes_allowed():
        ledger.delete()

    logger.info("Deleted ledger %s for company %s", ledger_id, actor.company.pk)
    return CommandResult.ok({"deleted": True}, event=event)


# =============================================================================
# Fiscal Year Commands
# =============================================================================

@transaction.atomic
def create_fiscal_year(actor: ActorContext, name: str, start_date, end_date) -> CommandResult:
    """
    Create a fiscal year. Fiscal years of one company never overlap.

    Returns:
        CommandResult with the created FiscalYear or error
    """
    name = (name or "").strip()
    if not name:
        return CommandResult.fail("Fiscal year name is required.")

    start_date = _as_date(start_date)
    end_date = _as_date(end_date)
    if start_date >= end_date:
        return CommandResult.fail("Fiscal year start date must be before its end date.")

    if FiscalYear.objects.filter(company=actor.company, name=name).exists():
        return CommandResult.fail(f"Fiscal year '{name}' already exists.")

    overlapping = FiscalYear.objects.filter(
        company=actor.company,
        start_date__lte=end_date,
        end_date__gte=start_date,
    ).first()
    if overlapping:
        return CommandResult.fail(f"Fiscal year overlaps {overlapping.name}.")

    with command_writes_allowed():
        fiscal_year = FiscalYear.objects.create(
            company=actor.company,
            name=name,
            start_date=start_date,
            end_date=end_date,
        )

    event = emit_event(
        actor=actor,
        event_type=EventTypes.FISCAL_YEAR_CREATED,
        aggregate_type="FiscalYear",
        aggregate_id=str(fiscal_year.pk),
        idempotency_key=f"fiscal_year.created:{actor.company.public_id}:{fiscal_year.pk}",
        data=FiscalYearCreatedData(
            fiscal_year_id=fiscal_year.pk,
            name=name,
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
        ),
    )

    logger.info("Created fiscal year %s (%s - %s)", name, start_date, end_date)
    return CommandResult.ok(fiscal_year, event=event)


@transaction.atomic
def close_fiscal_year(actor: ActorContext, fiscal_year_id: int) -> CommandResult:
    """
    Close a fiscal year. Vouchers can no longer be posted or approved in it.
    """
    try:
        fiscal_year = FiscalYear.objects.select_for_update().get(pk=fiscal_year_id, company=actor.company)
    except FiscalYear.DoesNotExist:
        return CommandResult.fail("Fiscal year not found.")

    allowed, reason = can_close_fiscal_year(actor, fiscal_year)
    if not allowed:
        return CommandResult.fail(reason)

    closed_at = timezone.now()
    with command_writes_allowed():
        fiscal_year.is_closed = True
        fiscal_year.closed_at = closed_at
        fiscal_year.closed_by = actor.user
        fiscal_year.save(update_fields=["is_closed", "closed_at", "closed_by"])

    event = emit_event(
        actor=actor,
        event_type=EventTypes.FISCAL_YEAR_CLOSED,
        aggregate_type="FiscalYear",
        aggregate_id=str(fiscal_year.pk),
        idempotency_key=f"fiscal_year.closed:{actor.company.public_id}:{fiscal_year.pk}",
        data=FiscalYearClosedData(
            fiscal_year_id=fiscal_year.pk,
            name=fiscal_year.name,
            closed_at=closed_at.isoformat(),
            closed_by_id=_user_id(actor),
        ),
    )

    logger.info("Closed fiscal year %s for company %s", fiscal_year.name, actor.company.pk)
    return CommandResult.ok(fiscal_year, event=event)


# =============================================================================
# Voucher Commands
# =============================================================================

def _resolve_voucher_fiscal_year(company, voucher_date, fiscal_year_id):
    """
    Returns (fiscal_year | None, error | None).

    An explicit fiscal year must contain the voucher date; otherwise the
    fiscal year containing the date is used, if any.
    """
    if fiscal_year_id:
        try:
            fiscal_year = FiscalYear.objects.get(pk=fiscal_year_id, company=company)
        except FiscalYear.DoesNotExist:
            return None, "Fiscal year not found."
        if not fiscal_year.contains(voucher_date):
            return None, f"Voucher date {voucher_date} is outside fiscal year {fiscal_year.name}."
    else:
        fiscal_year = FiscalYear.objects.filter(
            company=company,
            start_date__lte=voucher_date,
            end_date__gte=voucher_date,
        ).first()

    allowed, reason = can_post_to_fiscal_year(fiscal_year)
    if not allowed:
        return None, reason
    return fiscal_year, None


def _entry_event_data(entries) -> list[dict]:
    return [
        VoucherEntryData(
            ledger_public_id=str(entry.ledger.public_id),
            ledger_name=entry.ledger.name,
            debit=str(entry.debit_amount),
            credit=str(entry.credit_amount),
            narration=entry.narration,
            sequence=entry.sequence,
        ).to_dict()
        for entry in entries
    ]


def _create_voucher(
    actor: ActorContext,
    *,
    voucher_type,
    date,
    entries,
    narration,
    reference_no,
    fiscal_year_id,
    status,
) -> CommandResult:
    require_balanced = status != Voucher.Status.DRAFT
    serializer = VoucherInputSerializer(
        data={
            "voucher_type": voucher_type,
            "date": date,
            "narration": narration,
            "reference_no": reference_no,
            "fiscal_year_id": fiscal_year_id,
            "entries": list(entries or []),
        },
        context={"company": actor.company, "require_balanced": require_balanced},
    )
    if not serializer.is_valid():
        return CommandResult.fail(first_error(serializer.errors))
    data = serializer.validated_data

    fiscal_year, error = _resolve_voucher_fiscal_year(actor.company, data["date"], data["fiscal_year_id"])
    if error:
        return CommandResult.fail(error)

    voucher_number = next_number(actor.company, data["voucher_type"], year=data["date"].year)

    with command_writes_allowed():
        voucher = Voucher.objects.create(
            company=actor.company,
            voucher_type=data["voucher_type"],
            fiscal_year=fiscal_year,
            voucher_number=voucher_number,
            date=data["date"],
            narration=data["narration"],
            reference_no=data["reference_no"],
            total_debit=data["total_debit"],
            total_credit=data["total_credit"],
            status=status,
            created_by=actor.user,
        )
        created_entries = [
            VoucherEntry.objects.create(
                voucher=voucher,
                company=actor.company,
                ledger=entry["ledger"],
                debit_amount=entry["debit"],
                credit_amount=entry["credit"],
                narration=entry["narration"],
                cost_center=entry["cost_center"],
                project=entry["project"],
                sequence=i,
            )
            for i, entry in enumerate(data["entries"], start=1)
        ]

    event = emit_event(
        actor=actor,
        event_type=EventTypes.VOUCHER_CREATED,
        aggregate_type="Voucher",
        aggregate_id=str(voucher.public_id),
        idempotency_key=f"voucher.created:{voucher.public_id}",
        data=VoucherCreatedData(
            voucher_public_id=str(voucher.public_id),
            voucher_type=voucher.voucher_type,
            voucher_number=voucher_number,
            date=voucher.date.isoformat(),
            status=status,
            total_debit=str(voucher.total_debit),
            total_credit=str(voucher.total_credit),
            entries=_entry_event_data(created_entries),
            narration=voucher.narration,
            reference_no=voucher.reference_no,
            created_by_id=_user_id(actor),
        ),
    )

    record_voucher_transition(voucher.voucher_type, status)
    logger.info(
        "Created voucher %s (%s) for company %s: Dr=%s Cr=%s",
        voucher_number, status, actor.company.pk, voucher.total_debit, voucher.total_credit,
    )
    return CommandResult.ok(voucher, event=event)


@transaction.atomic
def post_voucher(
    actor: ActorContext,
    voucher_type: str,
    date,
    entries: list,
    narration: str = "",
    reference_no: str = "",
    fiscal_year_id: int = None,
) -> CommandResult:
    """
    Record a balanced voucher, ready for approval.

    Validation happens before any write: at least two entries, no
    negative or all-zero lines, active ledgers of this company, and
    |Σdebit - Σcredit| below the balance tolerance. The number is issued
    and the header and all entries are written in one transaction.

    Args:
        actor: The actor context
        voucher_type: One of Voucher.VoucherType
        date: Voucher date (date or ISO string)
        entries: [{"ledger_id", "debit", "credit", "narration"?,
            "cost_center"?, "project"?}, ...]
        narration: Header narration
        reference_no: External reference (cheque no, bill no)
        fiscal_year_id: Explicit fiscal year; defaults to the year
            containing date

    Returns:
        CommandResult with the PENDING Voucher or error
    """
    return _create_voucher(
        actor,
        voucher_type=voucher_type,
        date=date,
        entries=entries,
        narration=narration,
        reference_no=reference_no,
        fiscal_year_id=fiscal_year_id,
        status=Voucher.Status.PENDING,
    )


@transaction.atomic
def save_voucher_draft(
    actor: ActorContext,
    voucher_type: str,
    date,
    entries: list,
    narration: str = "",
    reference_no: str = "",
    fiscal_year_id: int = None,
) -> CommandResult:
    """
    Save a DRAFT voucher. Drafts may be unbalanced but need one entry.
    The voucher number is issued on save.
    """
    return _create_voucher(
        actor,
        voucher_type=voucher_type,
        date=date,
        entries=entries,
        narration=narration,
        reference_no=reference_no,
        fiscal_year_id=fiscal_year_id,
        status=Voucher.Status.DRAFT,
    )


def _lock_voucher(actor: ActorContext, voucher_id: int):
    try:
        return Voucher.objects.select_for_update().get(pk=voucher_id, company=actor.company)
    except Voucher.DoesNotExist:
        return None


@transaction.atomic
def submit_voucher(actor: ActorContext, voucher_id: int) -> CommandResult:
    """
    Move a DRAFT voucher to PENDING after re-checking its stored entries.
    """
    voucher = _lock_voucher(actor, voucher_id)
    if voucher is None:
        return CommandResult.fail("Voucher not found.")

    allowed, reason = can_submit_voucher(actor, voucher)
    if not allowed:
        return CommandResult.fail(reason)

    allowed, reason = can_post_to_fiscal_year(voucher.fiscal_year)
    if not allowed:
        return CommandResult.fail(reason)

    total_debit, total_credit = voucher.entry_totals()
    with command_writes_allowed():
        voucher.status = Voucher.Status.PENDING
        voucher.total_debit = total_debit
        voucher.total_credit = total_credit
        voucher.save(update_fields=["status", "total_debit", "total_credit", "updated_at"])

    event = emit_event(
        actor=actor,
        event_type=EventTypes.VOUCHER_SUBMITTED,
        aggregate_type="Voucher",
        aggregate_id=str(voucher.public_id),
        idempotency_key=f"voucher.submitted:{voucher.public_id}",
        data=VoucherSubmittedData(
            voucher_public_id=str(voucher.public_id),
            voucher_number=voucher.voucher_number,
            total_debit=str(total_debit),
            total_credit=str(total_credit),
        ),
    )

    record_voucher_transition(voucher.voucher_type, Voucher.Status.PENDING)
    logger.info("Submitted voucher %s", voucher.voucher_number)
    return CommandResult.ok(voucher, event=event)


@transaction.atomic
def approve_voucher(actor: ActorContext, voucher_id: int) -> CommandResult:
    """
    Approve a PENDING voucher. Its entries count in reports from now on.

    Args:
        actor: The actor context (recorded as approver)
        voucher_id: ID of the voucher

    Returns:
        CommandResult with the APPROVED Voucher or error
    """
    voucher = _lock_voucher(actor, voucher_id)
    if voucher is None:
        return CommandResult.fail("Voucher not found.")

    allowed, reason = can_approve_voucher(actor, voucher)
    if not allowed:
        return CommandResult.fail(reason)

    approved_at = timezone.now()
    with command_writes_allowed():
        voucher.status = Voucher.Status.APPROVED
        voucher.is_posted = True
        voucher.approved_by = actor.user
        voucher.approved_at = approved_at
        voucher.save(update_fields=["status", "is_posted", "approved_by", "approved_at", "updated_at"])

    event = emit_event(
        actor=actor,
        event_type=EventTypes.VOUCHER_APPROVED,
        aggregate_type="Voucher",
        aggregate_id=str(voucher.public_id),
        idempotency_key=f"voucher.approved:{voucher.public_id}",
        data=VoucherApprovedData(
            voucher_public_id=str(voucher.public_id),
            voucher_number=voucher.voucher_number,
            voucher_type=voucher.voucher_type,
            approved_at=approved_at.isoformat(),
            approved_by_id=_user_id(actor),
            approved_by_email=actor.user_email,
        ),
    )

    record_voucher_transition(voucher.voucher_type, Voucher.Status.APPROVED)
    logger.info("Approved voucher %s", voucher.voucher_number)
    return CommandResult.ok(voucher, event=event)


@transaction.atomic
def reject_voucher(actor: ActorContext, voucher_id: int, reason: str = "") -> CommandResult:
    """Send a PENDING voucher back as REJECTED."""
    voucher = _lock_voucher(actor, voucher_id)
    if voucher is None:
        return CommandResult.fail("Voucher not found.")

    allowed, policy_reason = can_reject_voucher(actor, voucher)
    if not allowed:
        return CommandResult.fail(policy_reason)

    with command_writes_allowed():
        voucher.status = Voucher.Status.REJECTED
        voucher.rejection_reason = (reason or "")[:255]
        voucher.save(update_fields=["status", "rejection_reason", "updated_at"])

    event = emit_event(
        actor=actor,
        event_type=EventTypes.VOUCHER_REJECTED,
        aggregate_type="Voucher",
        aggregate_id=str(voucher.public_id),
        idempotency_key=f"voucher.rejected:{voucher.public_id}",
        data=VoucherRejectedData(
            voucher_public_id=str(voucher.public_id),
            voucher_number=voucher.voucher_number,
            reason=voucher.rejection_reason,
        ),
    )

    record_voucher_transition(voucher.voucher_type, Voucher.Status.REJECTED)
    logger.info("Rejected voucher %s", voucher.voucher_number)
    return CommandResult.ok(voucher, event=event)


@transaction.atomic
def cancel_voucher(actor: ActorContext, voucher_id: int) -> CommandResult:
    """
    Cancel a DRAFT, PENDING or REJECTED voucher. APPROVED vouchers are
    neutralised with reverse_voucher() instead.
    """
    voucher = _lock_voucher(actor, voucher_id)
    if voucher is None:
        return CommandResult.fail("Voucher not found.")

    allowed, reason = can_cancel_voucher(actor, voucher)
    if not allowed:
        return CommandResult.fail(reason)

    previous_status = voucher.status
    cancelled_at = timezone.now()
    with command_writes_allowed():
        voucher.status = Voucher.Status.CANCELLED
        voucher.cancelled_at = cancelled_at
        voucher.save(update_fields=["status", "cancelled_at", "updated_at"])

    event = emit_event(
        actor=actor,
        event_type=EventTypes.VOUCHER_CANCELLED,
        aggregate_type="Voucher",
        aggregate_id=str(voucher.public_id),
        idempotency_key=f"voucher.cancelled:{voucher.public_id}",
        data=VoucherCancelledData(
            voucher_public_id=str(voucher.public_id),
            voucher_number=voucher.voucher_number,
            previous_status=str(previous_status),
            cancelled_at=cancelled_at.isoformat(),
        ),
    )

    record_voucher_transition(voucher.voucher_type, Voucher.Status.CANCELLED)
    logger.info("Cancelled voucher %s (was %s)", voucher.voucher_number, previous_status)
    return CommandResult.ok(voucher, event=event)


@transaction.atomic
def delete_voucher(actor: ActorContext, voucher_id: int) -> CommandResult:
    """Delete a voucher that was never approved, with its entries."""
    voucher = _lock_voucher(actor, voucher_id)
    if voucher is None:
        return CommandResult.fail("Voucher not found.")

    allowed, reason = can_delete_voucher(actor, voucher)
    if not allowed:
        return CommandResult.fail(reason)

    event = emit_event(
        actor=actor,
        event_type=EventTypes.VOUCHER_DELETED,
        aggregate_type="Voucher",
        aggregate_id=str(voucher.public_id),
        idempotency_key=f"voucher.deleted:{voucher.public_id}",
        data=VoucherDeletedData(
            voucher_public_id=str(voucher.public_id),
            voucher_number=voucher.voucher_number,
            status=voucher.status,
        ),
    )

    with command_writes_allowed():
        voucher.delete()

    logger.info("Deleted voucher %s for company %s", voucher.voucher_number, actor.company.pk)
    return CommandResult.ok({"deleted": True}, event=event)


@transaction.atomic
def reverse_voucher(actor: ActorContext, voucher_id: int, date=None) -> CommandResult:
    """
    Neutralise an APPROVED voucher with a counter-voucher.

    The counter-voucher has the same type, a fresh number, every entry
    with debit and credit swapped, and is APPROVED and posted at once. It
    links back to the original through `reverses`.

    Args:
        actor: The actor context
        voucher_id: ID of the voucher to reverse
        date: Counter-voucher date (defaults to today)

    Returns:
        CommandResult with {"original": voucher, "reversal": counter} or error
    """
    original = _lock_voucher(actor, voucher_id)
    if original is None:
        return CommandResult.fail("Voucher not found.")

    allowed, reason = can_reverse_voucher(actor, original)
    if not allowed:
        return CommandResult.fail(reason)

    reversal_date = _as_date(date) if date else timezone.localdate()
    fiscal_year, error = _resolve_voucher_fiscal_year(actor.company, reversal_date, None)
    if error:
        return CommandResult.fail(error)

    original_entries = list(original.entries.select_related("ledger").order_by("sequence", "id"))
    reversal_number = next_number(actor.company, original.voucher_type, year=reversal_date.year)
    reversed_at = timezone.now()

    with command_writes_allowed():
        reversal = Voucher.objects.create(
            company=actor.company,
            voucher_type=original.voucher_type,
            fiscal_year=fiscal_year,
            voucher_number=reversal_number,
            date=reversal_date,
            narration=f"Reversal of {original.voucher_number}: {original.narration}".strip(),
            reference_no=original.voucher_number,
            total_debit=original.total_credit,
            total_credit=original.total_debit,
            status=Voucher.Status.APPROVED,
            is_posted=True,
            created_by=actor.user,
            approved_by=actor.user,
            approved_at=reversed_at,
            reverses=original,
        )
        reversal_entries = [
            VoucherEntry.objects.create(
                voucher=reversal,
                company=actor.company,
                ledger=entry.ledger,
                debit_amount=entry.credit_amount,
                credit_amount=entry.debit_amount,
                narration=entry.narration,
                cost_center=entry.cost_center,
                project=entry.project,
                sequence=entry.sequence,
            )
            for entry in original_entries
        ]

    emit_event(
        actor=actor,
        event_type=EventTypes.VOUCHER_CREATED,
        aggregate_type="Voucher",
        aggregate_id=str(reversal.public_id),
        idempotency_key=f"voucher.created:{reversal.public_id}",
        data=VoucherCreatedData(
            voucher_public_id=str(reversal.public_id),
            voucher_type=reversal.voucher_type,
            voucher_number=reversal_number,
            date=reversal_date.isoformat(),
            status=Voucher.Status.APPROVED,
            total_debit=str(reversal.total_debit),
            total_credit=str(reversal.total_credit),
            entries=_entry_event_data(reversal_entries),
            narration=reversal.narration,
            reference_no=reversal.reference_no,
            created_by_id=_user_id(actor),
        ),
    )

    event_reversed = emit_event(
        actor=actor,
        event_type=EventTypes.VOUCHER_REVERSED,
        aggregate_type="Voucher",
        aggregate_id=str(original.public_id),
        idempotency_key=f"voucher.reversed:{original.public_id}",
        data=VoucherReversedData(
            original_voucher_public_id=str(original.public_id),
            reversal_voucher_public_id=str(reversal.public_id),
            reversal_voucher_number=reversal_number,
            date=reversal_date.isoformat(),
            reversed_at=reversed_at.isoformat(),
            entries=_entry_event_data(reversal_entries),
        ),
    )

    record_voucher_transition(reversal.voucher_type, Voucher.Status.APPROVED)
    logger.info("Reversed voucher %s with %s", original.voucher_number, reversal_number)
    return CommandResult.ok({"original": original, "reversal": reversal}, event=event_reversed)
