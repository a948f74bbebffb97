# events/types.py
"""
Event type definitions.

This module defines THE CANONICAL SCHEMA for all audit event payloads.
These dataclasses are the CONTRACT, not a "helper". All event emission
MUST use these types, and validation is enforced at emission time.

Naming Convention: {aggregate}.{action}
Examples:
- ledger.created
- voucher.approved
- fiscal_year.closed

IMPORTANT: Events are a STABLE API
============================================
- Adding optional fields with defaults is safe
- Removing, renaming or retyping fields breaks stored history
"""

from dataclasses import dataclass, asdict, field, fields as dataclass_fields, MISSING
from typing import Optional, List, Dict, Any, get_type_hints, get_origin, get_args, Union
from decimal import Decimal, InvalidOperation
from datetime import date, datetime


# =============================================================================
# Event Validation
# =============================================================================

class InvalidEventPayload(Exception):
    """
    Raised when an event payload fails validation.

    This exception is raised at event emission time when the provided
    data does not match the expected schema for the event type.
    """
    def __init__(self, event_type: str, errors: List[str]):
        self.event_type = event_type
        self.errors = errors
        error_list = "\n  - ".join(errors)
        super().__init__(
            f"Invalid payload for event '{event_type}':\n  - {error_list}"
        )


def _is_optional_type(type_hint) -> bool:
    """Check if a type hint is Optional[X] (i.e., Union[X, None])."""
    origin = get_origin(type_hint)
    if origin is Union:
        return type(None) in get_args(type_hint)
    return False


def _get_inner_type(type_hint):
    """Get the inner type from Optional[X]."""
    origin = get_origin(type_hint)
    if origin is Union:
        non_none_args = [a for a in get_args(type_hint) if a is not type(None)]
        if len(non_none_args) == 1:
            return non_none_args[0]
    return type_hint


def _check_type(field_name: str, value: Any, check_type, errors: List[str]) -> None:
    origin = get_origin(check_type)

    if origin is list or check_type is list:
        if not isinstance(value, list):
            errors.append(f"Field '{field_name}' must be a list, got {type(value).__name__}")
            return
        inner = get_args(check_type)
        if inner and inner[0] in (dict, Dict) or (inner and get_origin(inner[0]) is dict):
            for idx, item in enumerate(value):
                if not isinstance(item, dict):
                    errors.append(
                        f"Field '{field_name}[{idx}]' must be a dict, got {type(item).__name__}"
                    )
    elif origin is dict or check_type is dict:
        if not isinstance(value, dict):
            errors.append(f"Field '{field_name}' must be a dict, got {type(value).__name__}")
            return
        for key in value.keys():
            if not isinstance(key, str):
                errors.append(f"Field '{field_name}' has non-string key: {key!r}")
    elif check_type is str:
        if not isinstance(value, str):
            errors.append(f"Field '{field_name}' must be a string, got {type(value).__name__}")
    elif check_type is int:
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"Field '{field_name}' must be an int, got {type(value).__name__}")
    elif check_type is bool:
        if not isinstance(value, bool):
            errors.append(f"Field '{field_name}' must be a bool, got {type(value).__name__}")


def validate_event_payload(event_type: str, data: Dict[str, Any]) -> None:
    """
    Validate that a data dict matches the expected schema for an event type.

    It validates:
    1. Required fields are present (fields without defaults)
    2. No unexpected fields are provided (strict schema)
    3. Field types are correct (basic type checking)
    4. Enum, decimal, and date fields hold legal values

    Raises:
        InvalidEventPayload: If validation fails
        ValueError: If event_type has no registered schema
    """
    data_class = EVENT_DATA_CLASSES.get(event_type)
    if data_class is None:
        raise ValueError(
            f"No schema registered for event type '{event_type}'. "
            f"Add a dataclass to EVENT_DATA_CLASSES."
        )

    errors = []
    dc_fields = {f.name: f for f in dataclass_fields(data_class)}
    type_hints = get_type_hints(data_class)

    for field_name, field_info in dc_fields.items():
        required = field_info.default is MISSING and field_info.default_factory is MISSING
        if required and field_name not in data:
            errors.append(f"Missing required field: '{field_name}'")

    unexpected = set(data.keys()) - set(dc_fields.keys())
    if unexpected:
        errors.append(
            f"Unexpected fields: {sorted(unexpected)}. "
            f"Expected: {sorted(dc_fields.keys())}"
        )

    for field_name, value in data.items():
        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue
        if value is None:
            if not _is_optional_type(type_hint):
                errors.append(f"Field '{field_name}' cannot be None (type: {type_hint})")
            continue
        check_type = _get_inner_type(type_hint) if _is_optional_type(type_hint) else type_hint
        _check_type(field_name, value, check_type, errors)

    # Domain-specific validation for common semantics
    from accounting.models import Ledger, Nature, Voucher

    enum_fields = {
        "nature": set(Nature.values),
        "voucher_type": set(Voucher.VoucherType.values),
        "status": set(Voucher.Status.values),
        "opening_balance_side": set(Ledger.Side.values),
    }
    decimal_fields = {"debit", "credit", "total_debit", "total_credit", "opening_balance"}
    date_fields = {"date", "start_date", "end_date"}
    datetime_fields = {"approved_at", "cancelled_at", "closed_at", "reversed_at"}

    def _validate_scalar(name: str, value: Any) -> None:
        if value is None or isinstance(value, (dict, list)):
            return
        if name in enum_fields and value not in enum_fields[name]:
            errors.append(f"Field '{name}' must be one of {sorted(enum_fields[name])}, got {value!r}")
        if name in decimal_fields:
            if isinstance(value, bool) or not isinstance(value, (int, Decimal, str)):
                errors.append(f"Field '{name}' must be a decimal string, got {type(value).__name__}")
            else:
                try:
                    Decimal(str(value))
                except InvalidOperation:
                    errors.append(f"Field '{name}' must be a decimal string, got {value!r}")
        if name in date_fields:
            try:
                date.fromisoformat(value)
            except (TypeError, ValueError):
                errors.append(f"Field '{name}' must be an ISO date string, got {value!r}")
        if name in datetime_fields:
            try:
                datetime.fromisoformat(value)
            except (TypeError, ValueError):
                errors.append(f"Field '{name}' must be an ISO datetime string, got {value!r}")

    def _walk(name: str, value: Any) -> None:
        _validate_scalar(name, value)
        if isinstance(value, dict):
            for k, v in value.items():
                _walk(k, v)
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, (dict, list)):
                    _walk(name, item)

    for field_name, value in data.items():
        _walk(field_name, value)

    if errors:
        raise InvalidEventPayload(event_type, errors)


# =============================================================================
# Base Event Classes
# =============================================================================

class BaseEventData:
    """Base class for all event data."""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON storage."""
        result = {}
        for key, value in asdict(self).items():
            if isinstance(value, Decimal):
                result[key] = str(value)
            elif isinstance(value, (date, datetime)):
                result[key] = value.isoformat()
            else:
                result[key] = value
        return result


# =============================================================================
# Chart of Accounts Events
# =============================================================================

@dataclass
class LedgerGroupCreatedData(BaseEventData):
    group_public_id: str
    name: str
    nature: str
    parent_public_id: Optional[str] = None
    sequence: int = 0
    affects_gross_profit: bool = False
    is_cash_or_bank: bool = False


@dataclass
class LedgerGroupUpdatedData(BaseEventData):
    """Data for ledger_group.updated. changes maps field name to new value."""
    group_public_id: str
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LedgerGroupDeletedData(BaseEventData):
    group_public_id: str
    name: str


@dataclass
class LedgerCreatedData(BaseEventData):
    ledger_public_id: str
    group_public_id: str
    name: str
    code: str = ""
    opening_balance: str = "0.00"
    opening_balance_side: str = "DEBIT"


@dataclass
class LedgerUpdatedData(BaseEventData):
    ledger_public_id: str
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LedgerDeactivatedData(BaseEventData):
    ledger_public_id: str
    name: str


@dataclass
class LedgerDeletedData(BaseEventData):
    ledger_public_id: str
    name: str


@dataclass
class FiscalYearCreatedData(BaseEventData):
    fiscal_year_id: int
    name: str
    start_date: str
    end_date: str


@dataclass
class FiscalYearClosedData(BaseEventData):
    fiscal_year_id: int
    name: str
    closed_at: str
    closed_by_id: Optional[int] = None


@dataclass
class ChartSeededData(BaseEventData):
    """Data for chart.seeded: counts of rows installed by the default chart."""
    groups_created: int
    ledgers_created: int
    fiscal_year: Optional[str] = None


# =============================================================================
# Voucher Events
# =============================================================================

@dataclass
class VoucherEntryData(BaseEventData):
    """One entry inside voucher.created / voucher.reversed payloads."""
    ledger_public_id: str
    ledger_name: str
    debit: str
    credit: str
    narration: str = ""
    sequence: int = 1


@dataclass
class VoucherCreatedData(BaseEventData):
    """
    Data for voucher.created.

    Emitted for balanced vouchers entering PENDING and for drafts. The
    status field tells them apart.
    """
    voucher_public_id: str
    voucher_type: str
    voucher_number: str
    date: str
    status: str
    total_debit: str
    total_credit: str
    entries: List[Dict[str, Any]] = field(default_factory=list)
    narration: str = ""
    reference_no: str = ""
    created_by_id: Optional[int] = None


@dataclass
class VoucherSubmittedData(BaseEventData):
    voucher_public_id: str
    voucher_number: str
    total_debit: str
    total_credit: str


@dataclass
class VoucherApprovedData(BaseEventData):
    voucher_public_id: str
    voucher_number: str
    voucher_type: str
    approved_at: str
    approved_by_id: Optional[int] = None
    approved_by_email: str = ""


@dataclass
class VoucherRejectedData(BaseEventData):
    voucher_public_id: str
    voucher_number: str
    reason: str = ""


@dataclass
class VoucherCancelledData(BaseEventData):
    voucher_public_id: str
    voucher_number: str
    previous_status: str
    cancelled_at: str


@dataclass
class VoucherDeletedData(BaseEventData):
    voucher_public_id: str
    voucher_number: str
    status: str


@dataclass
class VoucherReversedData(BaseEventData):
    original_voucher_public_id: str
    reversal_voucher_public_id: str
    reversal_voucher_number: str
    date: str
    reversed_at: str
    entries: List[Dict[str, Any]] = field(default_factory=list)


# =============================================================================
# Event Type Registry
# =============================================================================

class EventTypes:
    """
    Registry of all event types.

    Naming convention: {aggregate}.{past_tense_verb}
    """

    LEDGER_GROUP_CREATED = "ledger_group.created"
    LEDGER_GROUP_UPDATED = "ledger_group.updated"
    LEDGER_GROUP_DELETED = "ledger_group.deleted"

    LEDGER_CREATED = "ledger.created"
    LEDGER_UPDATED = "ledger.updated"
    LEDGER_DEACTIVATED = "ledger.deactivated"
    LEDGER_DELETED = "ledger.deleted"

    FISCAL_YEAR_CREATED = "fiscal_year.created"
    FISCAL_YEAR_CLOSED = "fiscal_year.closed"

    CHART_SEEDED = "chart.seeded"

    VOUCHER_CREATED = "voucher.created"
    VOUCHER_SUBMITTED = "voucher.submitted"
    VOUCHER_APPROVED = "voucher.approved"
    VOUCHER_REJECTED = "voucher.rejected"
    VOUCHER_CANCELLED = "voucher.cancelled"
    VOUCHER_DELETED = "voucher.deleted"
    VOUCHER_REVERSED = "voucher.reversed"


EVENT_DATA_CLASSES = {
    EventTypes.LEDGER_GROUP_CREATED: LedgerGroupCreatedData,
    EventTypes.LEDGER_GROUP_UPDATED: LedgerGroupUpdatedData,
    EventTypes.LEDGER_GROUP_DELETED: LedgerGroupDeletedData,

    EventTypes.LEDGER_CREATED: LedgerCreatedData,
    EventTypes.LEDGER_UPDATED: LedgerUpdatedData,
    EventTypes.LEDGER_DEACTIVATED: LedgerDeactivatedData,
    EventTypes.LEDGER_DELETED: LedgerDeletedData,

    EventTypes.FISCAL_YEAR_CREATED: FiscalYearCreatedData,
    EventTypes.FISCAL_YEAR_CLOSED: FiscalYearClosedData,

    EventTypes.CHART_SEEDED: ChartSeededData,

    EventTypes.VOUCHER_CREATED: VoucherCreatedData,
    EventTypes.VOUCHER_SUBMITTED: VoucherSubmittedData,
    EventTypes.VOUCHER_APPROVED: VoucherApprovedData,
    EventTypes.VOUCHER_REJECTED: VoucherRejectedData,
    EventTypes.VOUCHER_CANCELLED: VoucherCancelledData,
    EventTypes.VOUCHER_DELETED: VoucherDeletedData,
    EventTypes.VOUCHER_REVERSED: VoucherReversedData,
}
