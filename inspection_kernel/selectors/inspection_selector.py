"""
Module: inspection_kernel.selectors.inspection_selector
Responsibility: Read-only query access to inspections for list and detail
    views: one inspection with its results, evidence and approval history,
    filtered listings, and per-status counts for dashboards.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Read-only; repeated reads never change state.
    - Results are ordered by their submission position, history by seq.
    - Listings are newest first, ties broken by inspection number.

Failure modes:
    - get_inspection raises InspectionNotFoundError for an unknown id;
      list queries return empty results rather than raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select

from inspection_kernel.domain.dtos import InspectionDetail, InspectionRecord
from inspection_kernel.domain.lifecycle import InspectionStatus, parse_status, stage_for
from inspection_kernel.domain.roles import Role, parse_role
from inspection_kernel.exceptions import InspectionNotFoundError
from inspection_kernel.models.approval_history import ApprovalHistoryEntryModel
from inspection_kernel.models.inspection import Inspection, InspectionEvidence, InspectionResult
from inspection_kernel.models.product import Product
from inspection_kernel.models.specification import Specification
from inspection_kernel.selectors.base import BaseSelector
from inspection_kernel.utils.ids import as_uuid


@dataclass(frozen=True)
class InspectionFilter:
    """Criteria for list_inspections; every field is optional."""

    status: InspectionStatus | str | None = None
    product_id: UUID | str | None = None
    created_by: UUID | str | None = None
    batch_number: str | None = None
    search: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    awaiting_role: Role | str | None = None
    limit: int | None = None
    offset: int = 0


class InspectionSelector(BaseSelector[Inspection]):
    """Selector for inspection detail and listing queries."""

    def get_inspection(self, inspection_id: Any) -> InspectionDetail:
        """Inspection with product, results, evidence and history."""
        inspection = self.session.execute(
            select(Inspection)
            .where(Inspection.id == as_uuid(inspection_id, "inspection_id"))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if inspection is None:
            raise InspectionNotFoundError(str(inspection_id))

        product = self.session.get(Product, inspection.product_id)

        rows = self.session.execute(
            select(InspectionResult, Specification)
            .join(Specification, Specification.id == InspectionResult.specification_id)
            .where(InspectionResult.inspection_id == inspection.id)
            .order_by(InspectionResult.position, InspectionResult.id)
        ).all()
        results = []
        for result, spec in rows:
            criteria = spec.typed_criteria
            results.append(result.to_dto(criteria.standard_text, criteria.requirement_text))

        evidence = self.session.execute(
            select(InspectionEvidence)
            .where(InspectionEvidence.inspection_id == inspection.id)
            .order_by(InspectionEvidence.added_at, InspectionEvidence.id)
        ).scalars().all()

        history = self.session.execute(
            select(ApprovalHistoryEntryModel)
            .where(ApprovalHistoryEntryModel.inspection_id == inspection.id)
            .order_by(ApprovalHistoryEntryModel.seq)
        ).scalars().all()

        return InspectionDetail(
            inspection=inspection.to_dto(),
            product=product.to_dto() if product else None,
            results=tuple(results),
            evidence=tuple(e.to_dto() for e in evidence),
            history=tuple(h.to_dto() for h in history),
        )

    def _filtered(self, criteria: InspectionFilter):
        stmt = select(Inspection)
        if criteria.status is not None:
            stmt = stmt.where(Inspection.status == parse_status(criteria.status).value)
        if criteria.awaiting_role is not None:
            stage = stage_for(parse_role(criteria.awaiting_role))
            if stage is None:
                # Auditors never review; nothing is awaiting them
                stmt = stmt.where(Inspection.id.is_(None))
            else:
                stmt = stmt.where(Inspection.status == stage.value)
        if criteria.product_id is not None:
            stmt = stmt.where(Inspection.product_id == as_uuid(criteria.product_id, "product_id"))
        if criteria.created_by is not None:
            stmt = stmt.where(
                Inspection.created_by_id == as_uuid(criteria.created_by, "created_by")
            )
        if criteria.batch_number:
            stmt = stmt.where(Inspection.batch_number == criteria.batch_number.strip())
        if criteria.search:
            pattern = f"%{criteria.search.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Inspection.inspection_number).like(pattern),
                    func.lower(func.coalesce(Inspection.batch_number, "")).like(pattern),
                )
            )
        if criteria.created_from is not None:
            stmt = stmt.where(Inspection.created_at >= criteria.created_from)
        if criteria.created_to is not None:
            stmt = stmt.where(Inspection.created_at <= criteria.created_to)
        return stmt

    def list_inspections(self, criteria: InspectionFilter | None = None) -> list[InspectionRecord]:
        criteria = criteria or InspectionFilter()
        stmt = self._filtered(criteria).order_by(
            Inspection.created_at.desc(), Inspection.inspection_number.desc()
        )
        if criteria.offset:
            stmt = stmt.offset(criteria.offset)
        if criteria.limit is not None:
            stmt = stmt.limit(criteria.limit)
        return [row.to_dto() for row in self.session.execute(stmt).scalars().all()]

    def count_inspections(self, criteria: InspectionFilter | None = None) -> int:
        criteria = criteria or InspectionFilter()
        subquery = self._filtered(criteria).subquery()
        return self.session.execute(select(func.count()).select_from(subquery)).scalar_one()

    def status_counts(self) -> dict[InspectionStatus, int]:
        """Number of inspections per status; every status is present."""
        counts = {status: 0 for status in InspectionStatus}
        rows = self.session.execute(
            select(Inspection.status, func.count()).group_by(Inspection.status)
        ).all()
        for status, count in rows:
            counts[InspectionStatus(status)] = count
        return counts
