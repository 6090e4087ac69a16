"""
Deterministic hashing utilities.

All hashing in the inspection kernel must be deterministic and
reproducible.  This module provides the canonical hashing functions used
by the approval ledger.
"""

import hashlib
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def normalize_timestamp(value: datetime) -> str:
    """
    Canonical text form of a timestamp: naive UTC, ISO 8601.

    Some backends (SQLite) hand timezone-aware values back as naive UTC,
    so both forms must hash identically.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat()


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return normalize_timestamp(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    - Keys are sorted alphabetically
    - No whitespace
    - Consistent handling of Decimal, datetime, UUID and enums
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """SHA-256 hex digest (64 characters) of the canonical JSON payload."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def ledger_payload(
    *,
    inspection_id: Any,
    actor_id: Any,
    actor_role: str,
    action: str,
    previous_status: str,
    new_status: str,
    comment: str,
    decided_at: datetime,
) -> dict:
    """The decision fields covered by an approval ledger entry's payload hash."""
    return {
        "inspection_id": str(inspection_id),
        "actor_id": str(actor_id),
        "actor_role": actor_role,
        "action": action,
        "previous_status": previous_status,
        "new_status": new_status,
        "comment": comment,
        "decided_at": normalize_timestamp(decided_at),
    }


def hash_ledger_entry(
    inspection_id: Any,
    seq: int,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute the chained hash of an approval ledger entry.

    The hash covers the entry's position and payload plus the previous
    entry's hash, so altering, removing or reordering any entry breaks
    every later link.
    """
    components = [
        str(inspection_id),
        str(seq),
        payload_hash,
        prev_hash or "GENESIS",
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
