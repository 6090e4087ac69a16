"""
Pure domain layer.

Value objects and rules with NO dependencies on the ORM, the database,
wall-clock time or other I/O: the role vocabulary, the inspection
lifecycle table, the specification variants and result evaluation.
"""

from inspection_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inspection_kernel.domain.lifecycle import (
    INITIAL_STATUS,
    LOCKED_STATUSES,
    TRANSITION_TABLE,
    InspectionStatus,
    ReviewAction,
    can_transition,
    next_status,
    reviewer_role_for,
    stage_for,
)
from inspection_kernel.domain.roles import APPROVAL_CHAIN, Role
from inspection_kernel.domain.specifications import (
    ComplianceCriteria,
    DimensionalCriteria,
    FunctionalCriteria,
    ResultInput,
    SpecificationType,
    VisualCriteria,
    evaluate_result,
)

__all__ = [
    "APPROVAL_CHAIN",
    "Clock",
    "ComplianceCriteria",
    "DeterministicClock",
    "DimensionalCriteria",
    "FunctionalCriteria",
    "INITIAL_STATUS",
    "InspectionStatus",
    "LOCKED_STATUSES",
    "ResultInput",
    "ReviewAction",
    "Role",
    "SpecificationType",
    "SystemClock",
    "TRANSITION_TABLE",
    "VisualCriteria",
    "can_transition",
    "evaluate_result",
    "next_status",
    "reviewer_role_for",
    "stage_for",
]
