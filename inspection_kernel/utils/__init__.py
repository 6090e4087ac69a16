"""Utility modules for the inspection kernel."""

from inspection_kernel.utils.hashing import (
    canonicalize_json,
    hash_ledger_entry,
    hash_payload,
)
from inspection_kernel.utils.ids import as_uuid

__all__ = [
    "as_uuid",
    "canonicalize_json",
    "hash_ledger_entry",
    "hash_payload",
]
