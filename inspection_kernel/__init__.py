"""
Inspection Kernel - audit-safe quality inspection lifecycle.

A role-gated approval engine with:
- A fixed approval chain (team leader -> HOF auditor -> quality head)
- Optimistic concurrency on every status write
- Write-once inspection results and append-only evidence
- A hash-chained, append-only approval ledger
- Permanent immutability of approved and rejected records
"""

__version__ = "0.1.0"
