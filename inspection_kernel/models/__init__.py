"""ORM models for the inspection kernel."""

from inspection_kernel.models.approval_history import ApprovalHistoryEntryModel
from inspection_kernel.models.inspection import (
    Inspection,
    InspectionEvidence,
    InspectionResult,
)
from inspection_kernel.models.product import Product
from inspection_kernel.models.role_assignment import (
    QUALITY_HEAD_INITIALIZED,
    RegistryFlag,
    RoleAssignment,
)
from inspection_kernel.models.sequence_counter import SequenceCounter
from inspection_kernel.models.specification import Specification

__all__ = [
    "ApprovalHistoryEntryModel",
    "Inspection",
    "InspectionEvidence",
    "InspectionResult",
    "Product",
    "QUALITY_HEAD_INITIALIZED",
    "RegistryFlag",
    "RoleAssignment",
    "SequenceCounter",
    "Specification",
]
