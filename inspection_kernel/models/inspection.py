"""
Module: inspection_kernel.models.inspection
Responsibility: ORM persistence for inspections, their recorded results and
    their evidence references.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Optimistic concurrency: ``version`` is the mapper's version_id_col.
      Every ORM UPDATE is issued as ``... WHERE id = :id AND version = :seen``
      and bumps the counter; a concurrent writer that lost the race gets
      StaleDataError (translated to ConflictError by the services).
    - status holds a lifecycle value; changes must follow the lifecycle edge
      set and stop at approved/rejected (db/immutability.py).
    - InspectionResult is write-once: one row per (inspection, specification),
      created with the inspection, never updated or deleted.
    - InspectionEvidence is append-only, and closed once the parent is locked.

Failure modes:
    - StaleDataError on a lost version check.
    - IntegrityError on duplicate inspection_number or duplicate
      (inspection_id, specification_id) result.
    - ImmutabilityViolationError from the ORM listeners.

Audit relevance:
    The result rows of a rejected inspection are the permanent evidence of
    what was reviewed.  Correction happens by authoring a NEW inspection;
    the rejected row and its results are never edited or resubmitted.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inspection_kernel.db.base import Base, TrackedBase, UUIDString
from inspection_kernel.domain.dtos import EvidenceRecord, InspectionRecord, ResultRecord
from inspection_kernel.domain.lifecycle import InspectionStatus
from inspection_kernel.domain.specifications import SpecificationType


class Inspection(TrackedBase):
    """
    One execution of all specifications of a product.

    Contract:
        ``created_by_id`` is the authoring auditor.  Mutation rights pass to
        the reviewer of the current stage after creation.
    """

    __tablename__ = "inspections"

    __table_args__ = (
        Index("idx_inspection_status", "status"),
        Index("idx_inspection_product", "product_id"),
        Index("idx_inspection_created_by", "created_by_id"),
        Index("idx_inspection_created_at", "created_at"),
    )

    inspection_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=InspectionStatus.PENDING_TEAM_LEADER.value,
    )

    batch_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    remarks: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    results: Mapped[list["InspectionResult"]] = relationship(
        back_populates="inspection",
        order_by="InspectionResult.position",
    )

    evidence: Mapped[list["InspectionEvidence"]] = relationship(
        back_populates="inspection",
        order_by="InspectionEvidence.added_at",
    )

    def __repr__(self) -> str:
        return f"<Inspection {self.inspection_number} [{self.status}]>"

    @property
    def status_enum(self) -> InspectionStatus:
        return InspectionStatus(self.status)

    @property
    def is_locked(self) -> bool:
        return self.status_enum.is_locked

    def to_dto(self) -> InspectionRecord:
        return InspectionRecord(
            id=self.id,
            inspection_number=self.inspection_number,
            product_id=self.product_id,
            created_by_id=self.created_by_id,
            status=self.status_enum,
            batch_number=self.batch_number,
            remarks=self.remarks,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class InspectionResult(Base):
    """
    Recorded outcome of one specification within one inspection.

    parameter_name and spec_type are snapshotted from the specification at
    submission so the row reads the same regardless of later catalog edits.
    """

    __tablename__ = "inspection_results"

    __table_args__ = (
        UniqueConstraint(
            "inspection_id", "specification_id", name="uq_result_inspection_spec"
        ),
        Index("idx_result_specification", "specification_id"),
    )

    inspection_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inspections.id"),
        nullable=False,
    )

    specification_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("specifications.id"),
        nullable=False,
    )

    parameter_name: Mapped[str] = mapped_column(String(255), nullable=False)

    spec_type: Mapped[str] = mapped_column(String(20), nullable=False)

    actual_value: Mapped[str] = mapped_column(Text, nullable=False)

    is_pass: Mapped[bool] = mapped_column(Boolean, nullable=False)

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    inspection: Mapped[Inspection] = relationship(back_populates="results")

    def __repr__(self) -> str:
        outcome = "pass" if self.is_pass else "fail"
        return f"<InspectionResult {self.parameter_name}={self.actual_value} {outcome}>"

    def to_dto(
        self,
        standard_text: str | None = None,
        requirement_text: str | None = None,
    ) -> ResultRecord:
        return ResultRecord(
            id=self.id,
            specification_id=self.specification_id,
            parameter_name=self.parameter_name,
            spec_type=SpecificationType(self.spec_type),
            actual_value=self.actual_value,
            is_pass=self.is_pass,
            remarks=self.remarks,
            standard_text=standard_text,
            requirement_text=requirement_text,
        )


class InspectionEvidence(Base):
    """A reference (URI) to an image or attachment; storage is external."""

    __tablename__ = "inspection_evidence"

    __table_args__ = (
        Index("idx_evidence_inspection", "inspection_id"),
    )

    inspection_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inspections.id"),
        nullable=False,
    )

    uri: Mapped[str] = mapped_column(Text, nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    added_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    inspection: Mapped[Inspection] = relationship(back_populates="evidence")

    def to_dto(self) -> EvidenceRecord:
        return EvidenceRecord(
            id=self.id,
            uri=self.uri,
            description=self.description,
            added_by_id=self.added_by_id,
            added_at=self.added_at,
        )
