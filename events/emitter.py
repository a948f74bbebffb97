# events/emitter.py
"""
Event emission.

Every ledger command records its audit event through emit_event(), which
1. validates the payload against the dataclass in events/types.py
2. returns the stored event when the idempotency key was seen before
3. assigns the aggregate and company sequences

emit_event() is called inside the command's transaction, so an invalid
payload or a database error rolls the command back with it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from events.models import BusinessEvent
from events.serialization import compute_payload_hash
from events.types import BaseEventData, validate_event_payload

logger = logging.getLogger(__name__)

# Concurrent writers can race for the same aggregate sequence.
MAX_SEQUENCE_RETRIES = 3


def _origin(actor, company, user):
    """(company, user) from an ActorContext or from explicit arguments."""
    if actor is not None:
        return actor.company, actor.user
    if company is None:
        raise TypeError("emit_event() requires company when actor is not provided")
    return company, user


def _existing(company, key: str) -> Optional[BusinessEvent]:
    return BusinessEvent.objects.filter(company=company, idempotency_key=key).first()


def emit_event(
    *,
    actor=None,
    company=None,
    user=None,
    event_type: str,
    aggregate_type: str,
    aggregate_id: Any,
    data: Union[Dict[str, Any], BaseEventData],
    idempotency_key: str,
    occurred_at: Optional[datetime] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> BusinessEvent:
    """
    Record a business event.

    Commands pass actor; system jobs such as seed_chart pass company (and
    optionally user) instead.

    Returns:
        The new BusinessEvent, or the stored one for a repeated key

    Raises:
        InvalidEventPayload: data does not match the event type's schema
        ValueError: idempotency_key is blank, or event_type is unregistered
        TypeError: neither actor nor company was given
    """
    company, user = _origin(actor, company, user)

    key = str(idempotency_key or "").strip()
    if not key:
        raise ValueError("idempotency_key is required")

    payload = data.to_dict() if isinstance(data, BaseEventData) else data
    if not getattr(settings, "DISABLE_EVENT_VALIDATION", False):
        validate_event_payload(event_type, payload)

    existing = _existing(company, key)
    if existing is not None:
        logger.debug("Event %s already recorded as #%s", key, existing.company_sequence)
        return existing

    for attempt in range(1, MAX_SEQUENCE_RETRIES + 1):
        try:
            with transaction.atomic():
                event = BusinessEvent.objects.create(
                    company=company,
                    event_type=event_type,
                    aggregate_type=aggregate_type,
                    aggregate_id=str(aggregate_id),
                    data=payload,
                    payload_hash=compute_payload_hash(payload),
                    metadata=metadata or {},
                    caused_by_user=user,
                    occurred_at=occurred_at or timezone.now(),
                    idempotency_key=key,
                )
        except IntegrityError:
            # Another writer stored the same key first
            existing = _existing(company, key)
            if existing is not None:
                return existing
            if attempt == MAX_SEQUENCE_RETRIES:
                raise
            logger.warning("Sequence collision on %s %s, retrying", aggregate_type, aggregate_id)
            continue

        logger.debug(
            "Recorded %s #%s for %s %s",
            event_type, event.company_sequence, aggregate_type, aggregate_id,
        )
        return event

    raise RuntimeError("Failed to emit event after retries")
