"""
inspection_kernel.services.inspection_service -- collaborator-facing facade.

Responsibility:
    Creates every kernel service exactly once, wires them over one Session
    and one Clock, and exposes the operations outer collaborators (a web
    UI, report export, scripts) call.  Everything returned is a frozen DTO.

Architecture position:
    Kernel > Services -- top of the kernel.  Outer layers construct this
    with policies built by ``inspection_config.bridges``; the kernel itself
    never reads configuration.

Invariants enforced:
    - Single-instance lifecycle: one RoleRegistry, CatalogService,
      InspectionStore, AuditLedger and ApprovalEngine per facade.
    - Transaction boundaries belong to the caller (no commit/rollback).
    - The ORM immutability listeners are registered before any write.

Usage:
    with session_scope() as session:
        service = InspectionService(session)
        detail = service.create_inspection(product_id, auditor_id, results)
        service.decide(detail.id, team_leader_id, "approve", "ok")
"""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy.orm import Session

from inspection_kernel.db.immutability import register_immutability_listeners
from inspection_kernel.domain.clock import Clock, SystemClock
from inspection_kernel.domain.dtos import (
    ApprovalHistoryRecord,
    EvidenceInput,
    EvidenceRecord,
    InspectionDetail,
    InspectionRecord,
    ProductRecord,
    RoleAssignmentRecord,
    SpecificationRecord,
)
from inspection_kernel.domain.lifecycle import InspectionStatus, ReviewAction
from inspection_kernel.domain.policies import RegistrationPolicy, SubmissionPolicy
from inspection_kernel.domain.roles import Role
from inspection_kernel.domain.specifications import ResultInput, SpecificationCriteria
from inspection_kernel.selectors.inspection_selector import InspectionFilter, InspectionSelector
from inspection_kernel.services.approval_engine import ApprovalEngine
from inspection_kernel.services.audit_ledger import AuditLedger
from inspection_kernel.services.catalog_service import CatalogService
from inspection_kernel.services.inspection_store import InspectionStore
from inspection_kernel.services.role_registry import RoleRegistry


class InspectionService:
    """
    Facade over the inspection kernel.

    Contract:
        One method per collaborator-facing operation.  Reads return
        DTOs; writes flush but never commit.

    Non-goals:
        - Does NOT authenticate identities.
        - Does NOT own the Session lifecycle.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        registration_policy: RegistrationPolicy | None = None,
        submission_policy: SubmissionPolicy | None = None,
    ):
        register_immutability_listeners()
        self.session = session
        self.clock = clock or SystemClock()

        self.roles = RoleRegistry(session, self.clock, policy=registration_policy)
        self.catalog = CatalogService(session, self.clock, roles=self.roles)
        self.store = InspectionStore(
            session, self.clock, roles=self.roles, policy=submission_policy
        )
        self.ledger = AuditLedger(session, self.clock)
        self.engine = ApprovalEngine(
            session, self.clock, roles=self.roles, store=self.store, ledger=self.ledger
        )
        self.selector = InspectionSelector(session)

    # ------------------------------------------------------------------
    # Roles and registration
    # ------------------------------------------------------------------

    def role_of(self, identity_id: Any) -> Role | None:
        return self.roles.role_of(identity_id)

    def assign_role(
        self, acting_id: Any, target_id: Any, new_role: Role | str | None
    ) -> RoleAssignmentRecord:
        return self.roles.assign_role(acting_id, target_id, new_role)

    def list_role_assignments(self) -> list[RoleAssignmentRecord]:
        return self.roles.list_assignments()

    def register_identity(
        self, identity_id: Any, registration_code: str | None = None
    ) -> RoleAssignmentRecord:
        return self.roles.register_identity(identity_id, registration_code)

    def bootstrap_quality_head(
        self, identity_id: Any, registration_code: str
    ) -> RoleAssignmentRecord:
        return self.roles.bootstrap_quality_head(identity_id, registration_code)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def create_product(
        self, actor_id: Any, part_number: str, name: str, description: str | None = None
    ) -> ProductRecord:
        return self.catalog.create_product(actor_id, part_number, name, description)

    def update_product(self, product_id: Any, actor_id: Any, **fields: Any) -> ProductRecord:
        return self.catalog.update_product(product_id, actor_id, **fields)

    def deactivate_product(self, product_id: Any, actor_id: Any) -> ProductRecord:
        return self.catalog.deactivate_product(product_id, actor_id)

    def reactivate_product(self, product_id: Any, actor_id: Any) -> ProductRecord:
        return self.catalog.reactivate_product(product_id, actor_id)

    def delete_product(self, product_id: Any, actor_id: Any) -> None:
        self.catalog.delete_product(product_id, actor_id)

    def list_products(self, active_only: bool = False) -> list[ProductRecord]:
        return self.catalog.list_products(active_only=active_only)

    def add_specification(
        self,
        product_id: Any,
        actor_id: Any,
        parameter_name: str,
        criteria: SpecificationCriteria | dict,
        spec_type: str | None = None,
        sort_order: int | None = None,
    ) -> SpecificationRecord:
        return self.catalog.add_specification(
            product_id, actor_id, parameter_name, criteria,
            spec_type=spec_type, sort_order=sort_order,
        )

    def update_specification(
        self, specification_id: Any, actor_id: Any, **fields: Any
    ) -> SpecificationRecord:
        return self.catalog.update_specification(specification_id, actor_id, **fields)

    def delete_specification(self, specification_id: Any, actor_id: Any) -> None:
        self.catalog.delete_specification(specification_id, actor_id)

    def specifications_for(self, product_id: Any) -> list[SpecificationRecord]:
        return self.catalog.specifications_for(product_id)

    # ------------------------------------------------------------------
    # Inspections
    # ------------------------------------------------------------------

    def create_inspection(
        self,
        product_id: Any,
        actor_id: Any,
        results: Iterable[ResultInput],
        batch_number: str | None = None,
        remarks: str | None = None,
        evidence: Iterable[EvidenceInput] = (),
    ) -> InspectionDetail:
        inspection = self.store.create(
            product_id,
            actor_id,
            results,
            batch_number=batch_number,
            remarks=remarks,
            evidence=evidence,
        )
        return self.selector.get_inspection(inspection.id)

    def update_inspection(
        self, inspection_id: Any, actor_id: Any, **fields: Any
    ) -> InspectionRecord:
        return self.store.update(inspection_id, actor_id, **fields).to_dto()

    def update_result(
        self, inspection_id: Any, result_id: Any, actor_id: Any, **fields: Any
    ) -> None:
        self.store.update_result(inspection_id, result_id, actor_id, **fields)

    def add_evidence(
        self,
        inspection_id: Any,
        actor_id: Any,
        uri: str,
        description: str | None = None,
    ) -> EvidenceRecord:
        return self.store.add_evidence(inspection_id, actor_id, uri, description)

    def decide(
        self,
        inspection_id: Any,
        actor_id: Any,
        action: ReviewAction | str,
        comment: str,
    ) -> InspectionRecord:
        return self.engine.decide(inspection_id, actor_id, action, comment)

    def get_inspection(self, inspection_id: Any) -> InspectionDetail:
        return self.selector.get_inspection(inspection_id)

    def list_inspections(
        self, criteria: InspectionFilter | None = None, **filters: Any
    ) -> list[InspectionRecord]:
        return self.selector.list_inspections(criteria or InspectionFilter(**filters))

    def awaiting(self, actor_id: Any) -> list[InspectionRecord]:
        """Inspections waiting on the actor's current role."""
        role = self.roles.role_of(actor_id)
        if role is None:
            return []
        return self.selector.list_inspections(InspectionFilter(awaiting_role=role))

    def status_counts(self) -> dict[InspectionStatus, int]:
        return self.selector.status_counts()

    def history(self, inspection_id: Any) -> list[ApprovalHistoryRecord]:
        return self.ledger.entries_for(inspection_id)

    def verify_history(self, inspection_id: Any) -> bool:
        return self.ledger.verify_chain(inspection_id)
