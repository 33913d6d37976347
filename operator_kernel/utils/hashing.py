"""
Deterministic hashing utilities.

All hashing in the operator kernel must be deterministic and reproducible.
This module provides the canonical hashing functions for the history chain.
"""

import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, there is no whitespace, and dates / UUIDs / enums are
    rendered as strings, so equal payloads always produce equal text.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
        ensure_ascii=False,
    )


def hash_payload(payload: dict | list) -> str:
    """
    Compute SHA-256 hash of a payload.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def history_payload(
    entity_id: UUID,
    action: str,
    changes: list[dict],
    user_id: UUID,
    timestamp: datetime,
) -> dict:
    """The hashed content of one history entry."""
    return {
        "entity_id": str(entity_id),
        "action": action,
        "changes": changes,
        "user_id": str(user_id),
        "timestamp": timestamp.isoformat(),
    }


def hash_history_entry(
    entity_id: UUID,
    seq: int,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute the chain hash of a history entry.

    The hash includes the entity, its sequence number, the action, the
    payload hash and the previous entry's hash, creating a tamper-evident
    chain per operator cost.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    components = [
        str(entity_id),
        str(seq),
        action,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
