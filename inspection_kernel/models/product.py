"""
Module: inspection_kernel.models.product
Responsibility: ORM persistence for inspectable products.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - part_number is globally unique.
    - A product referenced by any inspection is never hard-deleted, only
      deactivated (is_active=False).  Enforced by CatalogService and by the
      before_flush listener in db/immutability.py.

Audit relevance:
    created_by_id is kept for attribution only; any quality head may
    manage any product.
"""

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inspection_kernel.db.base import TrackedBase
from inspection_kernel.domain.dtos import ProductRecord


class Product(TrackedBase):
    """An inspectable subject keyed by part number."""

    __tablename__ = "products"

    part_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Inactive products are hidden from new inspections only
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Product {self.part_number}: {self.name}>"

    def to_dto(self) -> ProductRecord:
        return ProductRecord(
            id=self.id,
            part_number=self.part_number,
            name=self.name,
            description=self.description,
            is_active=self.is_active,
            created_by_id=self.created_by_id,
        )
