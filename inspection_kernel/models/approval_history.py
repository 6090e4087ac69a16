"""
Module: inspection_kernel.models.approval_history
Responsibility: ORM persistence for the approval ledger, the append-only
    record of every approve/reject decision.
Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions only.

Invariants enforced:
    - Append-only: UPDATE and DELETE are blocked by the listeners at the
      bottom of this module, which are always active.
    - (inspection_id, seq) is UNIQUE: per-inspection ordering.
    - (inspection_id, previous_status) is UNIQUE: each review stage is
      decided at most once per inspection, so a second decision from the
      same source status cannot be appended even if the version check were
      bypassed.
    - actor_role is the role held AT DECISION TIME.  It is a snapshot, not
      a foreign key, so later reassignment never rewrites history.
    - Hash chain: entry_hash = H(inspection_id | seq | payload_hash |
      prev_hash), chained per inspection (utils/hashing.py).

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError on duplicate (inspection_id, seq) or duplicate stage.

Audit relevance:
    This table is the sole source of truth for WHY an inspection's status
    is what it is.  Reporting consumes it directly.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from inspection_kernel.db.base import Base, UUIDString
from inspection_kernel.domain.dtos import ApprovalHistoryRecord
from inspection_kernel.domain.lifecycle import InspectionStatus
from inspection_kernel.domain.roles import Role
from inspection_kernel.exceptions import ImmutabilityViolationError
from inspection_kernel.logging_config import get_logger

logger = get_logger("models.approval_history")


class ApprovalHistoryEntryModel(Base):
    """
    One immutable approval ledger row.

    Contract:
        Written only by AuditLedger.append(), inside the same unit of work
        as the status change it records.

    Guarantees:
        - seq starts at 1 per inspection and increases by one.
        - prev_hash is None only for the first entry of an inspection.

    Non-goals:
        - Does NOT validate hash correctness at INSERT time; that is
          AuditLedger.verify_chain().
    """

    __tablename__ = "approval_history"

    __table_args__ = (
        UniqueConstraint("inspection_id", "seq", name="uq_history_inspection_seq"),
        UniqueConstraint(
            "inspection_id", "previous_status", name="uq_history_inspection_stage"
        ),
        Index("idx_history_decided_at", "decided_at"),
        Index("idx_history_actor", "actor_id"),
    )

    inspection_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inspections.id"),
        nullable=False,
    )

    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_role: Mapped[str] = mapped_column(String(30), nullable=False)

    # "approved" | "rejected"
    action: Mapped[str] = mapped_column(String(20), nullable=False)

    previous_status: Mapped[str] = mapped_column(String(30), nullable=False)

    new_status: Mapped[str] = mapped_column(String(30), nullable=False)

    comment: Mapped[str] = mapped_column(Text, nullable=False)

    decided_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ApprovalHistoryEntry {self.inspection_id}#{self.seq} "
            f"{self.actor_role} {self.action}>"
        )

    def to_dto(self) -> ApprovalHistoryRecord:
        return ApprovalHistoryRecord(
            id=self.id,
            inspection_id=self.inspection_id,
            seq=self.seq,
            actor_id=self.actor_id,
            actor_role=Role(self.actor_role),
            action=self.action,
            previous_status=InspectionStatus(self.previous_status),
            new_status=InspectionStatus(self.new_status),
            comment=self.comment,
            decided_at=self.decided_at,
            entry_hash=self.entry_hash,
        )


@event.listens_for(ApprovalHistoryEntryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to approval ledger rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "ApprovalHistoryEntry",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="ApprovalHistoryEntry",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot modify",
    )


@event.listens_for(ApprovalHistoryEntryModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of approval ledger rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "ApprovalHistoryEntry",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="ApprovalHistoryEntry",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot delete",
    )
