"""
Kernel Invariants Contract.

These invariants are structural law.  No configuration file, registration
policy or deployment toggle may override them.

This module exists solely to declare them explicitly.  Enforcement is
distributed across ApprovalEngine, InspectionStore, RoleRegistry, the ORM
immutability listeners and the model constraints.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    ROLE_GATED_TRANSITIONS = "role_gated_transitions"
    """A status changes only through a (status, role, action) row of the
    transition table.  Enforced by ApprovalEngine.decide and the lifecycle
    edge check in db/immutability.py."""

    ATOMIC_DECISION = "atomic_decision"
    """A status change and its ledger entry commit together or not at all.
    Enforced by the savepoint in ApprovalEngine.decide."""

    LOCKED_WHEN_DECIDED = "locked_when_decided"
    """Approved and rejected inspections, their results and their evidence
    never change again.  Enforced by InspectionStore and the ORM listeners."""

    WRITE_ONCE_RESULTS = "write_once_results"
    """Inspection results are created with the inspection and never updated
    or deleted."""

    APPEND_ONLY_LEDGER = "append_only_ledger"
    """Approval history rows are never updated or deleted; AuditLedger has
    no such operation.  Enforced by listeners on the model."""

    STALE_DECISION_CONFLICT = "stale_decision_conflict"
    """Two decisions from the same source status cannot both succeed.
    Enforced by the version counter on Inspection and the per-stage unique
    constraint on approval_history."""

    REFERENCED_CATALOG_RETAINED = "referenced_catalog_retained"
    """Products with inspections and specifications with results are never
    hard-deleted.  Enforced by CatalogService and before_flush."""

    SINGLE_BOOTSTRAP = "single_bootstrap"
    """At most one quality-head bootstrap ever succeeds.  Enforced by the
    unique registry flag."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "inspection_config",
)
