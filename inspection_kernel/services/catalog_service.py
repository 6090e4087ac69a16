"""
CatalogService -- products and their specifications.

Responsibility:
    Management of inspectable products and the typed specifications
    attached to them.  The catalog is consulted at inspection-authoring time
    to materialize the set of results to be recorded.

Architecture position:
    Kernel > Services -- imperative shell.  Authorizes through RoleRegistry.

Invariants enforced:
    - Only a quality head mutates the catalog.
    - part_number is unique.
    - A product with inspections is never hard-deleted; deactivate instead.
      Deactivation hides it from NEW inspections only.
    - A specification referenced by any result is never deleted and its
      structural fields (name, type, criteria) never change.

Failure modes:
    - ForbiddenError, ProductNotFoundError, SpecificationNotFoundError.
    - DuplicatePartNumberError on a taken part number.
    - ProductInUseError / SpecificationInUseError on referenced deletes.
    - ValidationError on malformed names or criteria.

Audit relevance:
    Each mutation is logged (``product_created``, ``product_deactivated``,
    ``specification_deleted``, ...) with the acting identity.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inspection_kernel.domain.clock import Clock
from inspection_kernel.domain.dtos import ProductRecord, SpecificationRecord
from inspection_kernel.domain.roles import Role
from inspection_kernel.domain.specifications import (
    SpecificationCriteria,
    criteria_from_dict,
)
from inspection_kernel.exceptions import (
    DuplicatePartNumberError,
    ProductInUseError,
    ProductNotFoundError,
    SpecificationInUseError,
    SpecificationNotFoundError,
    ValidationError,
)
from inspection_kernel.logging_config import get_logger
from inspection_kernel.models.inspection import Inspection, InspectionResult
from inspection_kernel.models.product import Product
from inspection_kernel.models.specification import Specification
from inspection_kernel.services.base import BaseService
from inspection_kernel.services.role_registry import RoleRegistry
from inspection_kernel.utils.ids import as_uuid

logger = get_logger("services.catalog")

_MANAGERS = frozenset({Role.QUALITY_HEAD})


def _required_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(
            f"{field} is required", [{"field": field, "message": "must not be empty"}]
        )
    return text


def _coerce_criteria(criteria: SpecificationCriteria | dict, spec_type: str | None) -> SpecificationCriteria:
    if isinstance(criteria, dict):
        if spec_type is None:
            raise ValidationError(
                "spec_type is required with dict criteria",
                [{"field": "spec_type", "message": "required"}],
            )
        try:
            return criteria_from_dict(spec_type, criteria)
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"Invalid specification criteria: {exc}",
                [{"field": "criteria", "message": str(exc)}],
            ) from None
    if not hasattr(criteria, "spec_type"):
        raise ValidationError(
            "criteria must be a specification criteria variant",
            [{"field": "criteria", "message": "unsupported type"}],
        )
    return criteria


class CatalogService(BaseService):
    """
    Product and specification management.

    Contract:
        Every mutator takes the acting identity as ``actor_id`` and requires
        it to hold quality_head.  Reads are unrestricted.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        roles: RoleRegistry | None = None,
    ):
        super().__init__(session, clock)
        self.roles = roles or RoleRegistry(session, self.clock)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_product(self, product_id: Any) -> Product:
        product = self.session.get(Product, as_uuid(product_id, "product_id"))
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    def _get_specification(self, specification_id: Any) -> Specification:
        spec = self.session.get(Specification, as_uuid(specification_id, "specification_id"))
        if spec is None:
            raise SpecificationNotFoundError(str(specification_id))
        return spec

    def _result_count(self, specification_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(InspectionResult)
            .where(InspectionResult.specification_id == specification_id)
        ).scalar_one()

    def _inspection_count(self, product_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(Inspection)
            .where(Inspection.product_id == product_id)
        ).scalar_one()

    def get_product(self, product_id: Any) -> ProductRecord:
        return self._get_product(product_id).to_dto()

    def list_products(self, active_only: bool = False) -> list[ProductRecord]:
        """Products ordered by part number; ``active_only`` for new-inspection pickers."""
        stmt = select(Product)
        if active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        stmt = stmt.order_by(Product.part_number)
        return [p.to_dto() for p in self.session.execute(stmt).scalars().all()]

    def specifications_for(self, product_id: Any) -> list[SpecificationRecord]:
        product = self._get_product(product_id)
        rows = self.session.execute(
            select(Specification)
            .where(Specification.product_id == product.id)
            .order_by(Specification.sort_order, Specification.created_at, Specification.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def create_product(
        self,
        actor_id: Any,
        part_number: str,
        name: str,
        description: str | None = None,
    ) -> ProductRecord:
        actor_id = as_uuid(actor_id, "actor_id")
        self.roles.require_role(actor_id, "create_product", _MANAGERS)
        part_number = _required_text(part_number, "part_number")
        name = _required_text(name, "name")

        existing = self.session.execute(
            select(Product.id).where(Product.part_number == part_number)
        ).first()
        if existing is not None:
            raise DuplicatePartNumberError(part_number)

        product = Product(
            part_number=part_number,
            name=name,
            description=(description or "").strip() or None,
            is_active=True,
            created_by_id=actor_id,
            created_at=self.clock.now(),
        )
        try:
            with self.session.begin_nested():
                self.session.add(product)
                self.session.flush()
        except IntegrityError:
            raise DuplicatePartNumberError(part_number) from None

        logger.info(
            "product_created",
            extra={
                "product_id": str(product.id),
                "part_number": part_number,
                "actor_id": str(actor_id),
            },
        )
        return product.to_dto()

    def update_product(
        self,
        product_id: Any,
        actor_id: Any,
        name: str | None = None,
        description: str | None = None,
    ) -> ProductRecord:
        """Rename or re-describe a product.  part_number never changes."""
        actor_id = as_uuid(actor_id, "actor_id")
        self.roles.require_role(actor_id, "update_product", _MANAGERS)
        product = self._get_product(product_id)

        if name is not None:
            product.name = _required_text(name, "name")
        if description is not None:
            product.description = description.strip() or None
        product.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "product_updated",
            extra={"product_id": str(product.id), "actor_id": str(actor_id)},
        )
        return product.to_dto()

    def deactivate_product(self, product_id: Any, actor_id: Any) -> ProductRecord:
        """
        Hide a product from new inspections.

        Existing inspections, results and history are untouched.
        """
        actor_id = as_uuid(actor_id, "actor_id")
        self.roles.require_role(actor_id, "deactivate_product", _MANAGERS)
        product = self._get_product(product_id)
        product.is_active = False
        product.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "product_deactivated",
            extra={"product_id": str(product.id), "actor_id": str(actor_id)},
        )
        return product.to_dto()

    def reactivate_product(self, product_id: Any, actor_id: Any) -> ProductRecord:
        actor_id = as_uuid(actor_id, "actor_id")
        self.roles.require_role(actor_id, "reactivate_product", _MANAGERS)
        product = self._get_product(product_id)
        product.is_active = True
        product.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "product_reactivated",
            extra={"product_id": str(product.id), "actor_id": str(actor_id)},
        )
        return product.to_dto()

    def delete_product(self, product_id: Any, actor_id: Any) -> None:
        """
        Hard-delete a product that no inspection references.

        Its specifications go with it; none of them can be referenced
        because results only exist under inspections.

        Raises:
            ProductInUseError: the product has inspections.
        """
        actor_id = as_uuid(actor_id, "actor_id")
        self.roles.require_role(actor_id, "delete_product", _MANAGERS)
        product = self._get_product(product_id)

        if self._inspection_count(product.id):
            logger.warning(
                "product_delete_blocked",
                extra={"product_id": str(product.id), "actor_id": str(actor_id)},
            )
            raise ProductInUseError(str(product.id))

        specs = self.session.execute(
            select(Specification).where(Specification.product_id == product.id)
        ).scalars().all()
        for spec in specs:
            self.session.delete(spec)
        self.session.flush()
        self.session.delete(product)
        self.session.flush()

        logger.info(
            "product_deleted",
            extra={
                "product_id": str(product.id),
                "part_number": product.part_number,
                "specifications_removed": len(specs),
                "actor_id": str(actor_id),
            },
        )

    # ------------------------------------------------------------------
    # Specifications
    # ------------------------------------------------------------------

    def add_specification(
        self,
        product_id: Any,
        actor_id: Any,
        parameter_name: str,
        criteria: SpecificationCriteria | dict,
        spec_type: str | None = None,
        sort_order: int | None = None,
    ) -> SpecificationRecord:
        actor_id = as_uuid(actor_id, "actor_id")
        self.roles.require_role(actor_id, "add_specification", _MANAGERS)
        product = self._get_product(product_id)
        parameter_name = _required_text(parameter_name, "parameter_name")
        typed = _coerce_criteria(criteria, spec_type)

        if sort_order is None:
            sort_order = self.session.execute(
                select(func.count())
                .select_from(Specification)
                .where(Specification.product_id == product.id)
            ).scalar_one()

        spec = Specification(
            product_id=product.id,
            parameter_name=parameter_name,
            sort_order=sort_order,
            created_by_id=actor_id,
            created_at=self.clock.now(),
        )
        spec.set_criteria(typed)
        self.session.add(spec)
        self.session.flush()

        logger.info(
            "specification_added",
            extra={
                "specification_id": str(spec.id),
                "product_id": str(product.id),
                "spec_type": spec.spec_type,
                "actor_id": str(actor_id),
            },
        )
        return spec.to_dto()

    def update_specification(
        self,
        specification_id: Any,
        actor_id: Any,
        parameter_name: str | None = None,
        criteria: SpecificationCriteria | dict | None = None,
        spec_type: str | None = None,
        sort_order: int | None = None,
    ) -> SpecificationRecord:
        """
        Edit a specification.

        Name, type and criteria are editable only while no result references
        the specification.  sort_order is always editable.

        Raises:
            SpecificationInUseError: structural edit of a referenced spec.
        """
        actor_id = as_uuid(actor_id, "actor_id")
        self.roles.require_role(actor_id, "update_specification", _MANAGERS)
        spec = self._get_specification(specification_id)

        structural = parameter_name is not None or criteria is not None
        if structural and self._result_count(spec.id):
            logger.warning(
                "specification_update_blocked",
                extra={"specification_id": str(spec.id), "actor_id": str(actor_id)},
            )
            raise SpecificationInUseError(str(spec.id))

        if parameter_name is not None:
            spec.parameter_name = _required_text(parameter_name, "parameter_name")
        if criteria is not None:
            spec.set_criteria(_coerce_criteria(criteria, spec_type))
        if sort_order is not None:
            spec.sort_order = sort_order
        spec.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "specification_updated",
            extra={"specification_id": str(spec.id), "actor_id": str(actor_id)},
        )
        return spec.to_dto()

    def delete_specification(self, specification_id: Any, actor_id: Any) -> None:
        """
        Delete an unreferenced specification.

        Raises:
            SpecificationInUseError: any inspection result references it.
        """
        actor_id = as_uuid(actor_id, "actor_id")
        self.roles.require_role(actor_id, "delete_specification", _MANAGERS)
        spec = self._get_specification(specification_id)

        references = self._result_count(spec.id)
        if references:
            logger.warning(
                "specification_delete_blocked",
                extra={
                    "specification_id": str(spec.id),
                    "result_count": references,
                    "actor_id": str(actor_id),
                },
            )
            raise SpecificationInUseError(str(spec.id))

        self.session.delete(spec)
        self.session.flush()

        logger.info(
            "specification_deleted",
            extra={
                "specification_id": str(spec.id),
                "product_id": str(spec.product_id),
                "actor_id": str(actor_id),
            },
        )
