"""
Module: inspection_kernel.models.specification
Responsibility: ORM persistence for product specifications.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Exactly one product per specification (NOT NULL foreign key).
    - ``criteria`` is the JSON form of one of the four tagged variants in
      domain/specifications.py, discriminated by ``spec_type``.
    - Once any inspection result references the specification it can be
      neither deleted nor structurally changed (db/immutability.py).

Failure modes:
    - ValueError from to_dto() if stored criteria do not match spec_type,
      which only happens if the row was written around the service layer.
"""

from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from inspection_kernel.db.base import TrackedBase, UUIDString
from inspection_kernel.domain.dtos import SpecificationRecord
from inspection_kernel.domain.specifications import (
    SpecificationCriteria,
    SpecificationType,
    criteria_from_dict,
    criteria_to_dict,
)


class Specification(TrackedBase):
    """A typed quality rule belonging to one product."""

    __tablename__ = "specifications"

    __table_args__ = (
        Index("idx_specification_product", "product_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    parameter_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    spec_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    criteria: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
    )

    # Display order within the product; ties broken by creation time
    sort_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    def __repr__(self) -> str:
        return f"<Specification {self.parameter_name} ({self.spec_type})>"

    @property
    def typed_criteria(self) -> SpecificationCriteria:
        return criteria_from_dict(self.spec_type, self.criteria)

    def set_criteria(self, criteria: SpecificationCriteria) -> None:
        self.spec_type = criteria.spec_type.value
        self.criteria = criteria_to_dict(criteria)

    def to_dto(self) -> SpecificationRecord:
        return SpecificationRecord(
            id=self.id,
            product_id=self.product_id,
            parameter_name=self.parameter_name,
            spec_type=SpecificationType(self.spec_type),
            criteria=self.typed_criteria,
        )
