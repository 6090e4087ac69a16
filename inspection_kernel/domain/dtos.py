"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable read projections handed across the kernel boundary: products,
    specifications, inspections with their results, evidence and approval
    history, and role assignments.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ORM models convert themselves with
    ``to_dto()``; callers never receive live ORM objects from the
    collaborator-facing surface, so nothing they hold can be flushed back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from inspection_kernel.domain.lifecycle import InspectionStatus, reviewer_role_for
from inspection_kernel.domain.roles import Role
from inspection_kernel.domain.specifications import (
    SpecificationCriteria,
    SpecificationType,
)


@dataclass(frozen=True)
class RoleAssignmentRecord:
    identity_id: UUID
    role: Role | None
    assigned_by_id: UUID | None
    assigned_at: datetime | None


@dataclass(frozen=True)
class ProductRecord:
    id: UUID
    part_number: str
    name: str
    description: str | None
    is_active: bool
    created_by_id: UUID


@dataclass(frozen=True)
class SpecificationRecord:
    id: UUID
    product_id: UUID
    parameter_name: str
    spec_type: SpecificationType
    criteria: SpecificationCriteria

    @property
    def standard_text(self) -> str:
        return self.criteria.standard_text

    @property
    def requirement_text(self) -> str | None:
        return self.criteria.requirement_text


@dataclass(frozen=True)
class ResultRecord:
    id: UUID
    specification_id: UUID
    parameter_name: str
    spec_type: SpecificationType
    actual_value: str
    is_pass: bool
    remarks: str | None
    standard_text: str | None = None
    requirement_text: str | None = None


@dataclass(frozen=True)
class EvidenceInput:
    """An evidence reference supplied by a caller; storage is external."""

    uri: str
    description: str | None = None


@dataclass(frozen=True)
class EvidenceRecord:
    id: UUID
    uri: str
    description: str | None
    added_by_id: UUID
    added_at: datetime


@dataclass(frozen=True)
class ApprovalHistoryRecord:
    """One ledger row.  ``actor_role`` is the role held at decision time."""

    id: UUID
    inspection_id: UUID
    seq: int
    actor_id: UUID
    actor_role: Role
    action: str
    previous_status: InspectionStatus
    new_status: InspectionStatus
    comment: str
    decided_at: datetime
    entry_hash: str


@dataclass(frozen=True)
class InspectionRecord:
    id: UUID
    inspection_number: str
    product_id: UUID
    created_by_id: UUID
    status: InspectionStatus
    batch_number: str | None
    remarks: str | None
    version: int
    created_at: datetime
    updated_at: datetime

    @property
    def is_locked(self) -> bool:
        return self.status.is_locked

    @property
    def awaiting_role(self) -> Role | None:
        return reviewer_role_for(self.status)


@dataclass(frozen=True)
class InspectionDetail:
    """Inspection together with results, evidence and approval history."""

    inspection: InspectionRecord
    product: ProductRecord | None
    results: tuple[ResultRecord, ...] = field(default_factory=tuple)
    evidence: tuple[EvidenceRecord, ...] = field(default_factory=tuple)
    history: tuple[ApprovalHistoryRecord, ...] = field(default_factory=tuple)

    @property
    def id(self) -> UUID:
        return self.inspection.id

    @property
    def status(self) -> InspectionStatus:
        return self.inspection.status

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.results if r.is_pass)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.is_pass)
