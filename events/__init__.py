# events/__init__.py
"""
Events app - Append-only audit trail.

This app provides:
- BusinessEvent: Immutable event records
- emit_event: Validated, idempotent event emission
- Event type definitions with payload schemas

Usage:
    from events.emitter import emit_event
    from events.types import EventTypes, VoucherApprovedData

    emit_event(
        actor=actor,
        event_type=EventTypes.VOUCHER_APPROVED,
        aggregate_type="Voucher",
        aggregate_id=voucher.public_id,
        data=VoucherApprovedData(...),
        idempotency_key=f"voucher.approved:{voucher.public_id}",
    )
"""
