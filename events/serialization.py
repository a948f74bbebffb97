# events/serialization.py
"""
Canonical serialization for event payloads and idempotency keys.

Payloads are hashed in canonical form (sorted keys, no whitespace), so
two payloads that differ only in dict ordering share a hash. Amounts,
dates and UUIDs are written as strings: Decimal("10.50") hashes as
"10.50" and never as a float.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict
from uuid import UUID


def _encode(value: Any) -> str:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"Cannot serialize {type(value).__name__} in an event payload")


def canonical_json(data: Dict[str, Any]) -> str:
    """
    Example:
        >>> canonical_json({"b": 2, "a": 1})
        '{"a":1,"b":2}'
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=_encode)


def compute_payload_hash(data: Dict[str, Any]) -> str:
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def hashed_idempotency_key(prefix: str, payload: Dict[str, Any]) -> str:
    """
    Key for events whose natural id is not unique, such as repeated
    updates of one ledger: "<prefix>:<first 16 hex of the payload hash>".
    """
    return f"{prefix}:{compute_payload_hash(payload)[:16]}"
