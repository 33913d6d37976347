"""Shared utilities for the operator kernel."""

from operator_kernel.utils.hashing import (
    canonicalize_json,
    hash_history_entry,
    hash_payload,
    history_payload,
)

__all__ = [
    "canonicalize_json",
    "hash_history_entry",
    "hash_payload",
    "history_payload",
]
