"""Kernel services: the imperative shell over the pure domain."""

from inspection_kernel.services.approval_engine import ApprovalEngine
from inspection_kernel.services.audit_ledger import AuditLedger
from inspection_kernel.services.base import BaseService
from inspection_kernel.services.catalog_service import CatalogService
from inspection_kernel.services.inspection_service import InspectionService
from inspection_kernel.services.inspection_store import InspectionStore
from inspection_kernel.services.role_registry import RegistrationCodeStatus, RoleRegistry
from inspection_kernel.services.sequence_service import SequenceService

__all__ = [
    "ApprovalEngine",
    "AuditLedger",
    "BaseService",
    "CatalogService",
    "InspectionService",
    "InspectionStore",
    "RegistrationCodeStatus",
    "RoleRegistry",
    "SequenceService",
]
