"""
Module: inspection_kernel.models.role_assignment
Responsibility: ORM persistence for the role registry: one row per identity
    holding its single current role, and the one-time registry flags.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.  MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - identity_id is UNIQUE: an identity holds at most one role at a time.
      Assignment overwrites the row in place; there is no multi-role state.
    - RegistryFlag.name is UNIQUE: the quality-head bootstrap inserts the
      ``quality_head_initialized`` flag, so two concurrent bootstraps cannot
      both commit.  The loser hits IntegrityError.

Failure modes:
    - IntegrityError on a second row for the same identity or flag.

Audit relevance:
    assigned_by_id and assigned_at record who last changed an identity's
    role.  The ledger snapshots the role at decision time, so later
    reassignment never alters history.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from inspection_kernel.db.base import Base, UUIDString
from inspection_kernel.domain.dtos import RoleAssignmentRecord
from inspection_kernel.domain.roles import parse_role

QUALITY_HEAD_INITIALIZED = "quality_head_initialized"


class RoleAssignment(Base):
    """
    Current role of one identity.

    Contract:
        ``role`` is one of the Role values, or NULL for an identity that has
        registered but holds no privileges.
    """

    __tablename__ = "role_assignments"

    identity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
        unique=True,
    )

    role: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
    )

    assigned_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    assigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<RoleAssignment {self.identity_id}: {self.role}>"

    def to_dto(self) -> RoleAssignmentRecord:
        return RoleAssignmentRecord(
            identity_id=self.identity_id,
            role=parse_role(self.role),
            assigned_by_id=self.assigned_by_id,
            assigned_at=self.assigned_at,
        )


class RegistryFlag(Base):
    """Process-wide one-shot flag, written at most once per name."""

    __tablename__ = "registry_flags"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    set_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    set_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
