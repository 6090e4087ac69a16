"""
RoleRegistry -- identity-to-role mapping and the one-time bootstrap.

Responsibility:
    Resolves the single current role of an identity, performs role
    assignment on behalf of a quality head, and runs the registration flow
    including the one-time creation of the first quality head.

Architecture position:
    Kernel > Services -- imperative shell.  Consulted by every other write
    service to authorize an actor before mutating anything.

Invariants enforced:
    - One role per identity: assignment overwrites the single row in place.
    - Only a quality head assigns roles; never to itself; never to or from
      quality_head.  Elevation to quality_head happens only via bootstrap.
    - Single bootstrap: the first quality head is created by inserting a
      unique registry flag inside a SAVEPOINT.  Check and write are one
      statement, so two concurrent bootstraps cannot both succeed; the
      loser gets AlreadyInitializedError.

Failure modes:
    - ForbiddenError: acting identity is not a quality head.
    - InvalidOperationError: self-modification, touching a quality head,
      granting quality_head, or registering an identity twice.
    - SystemNotInitializedError: plain registration before bootstrap.
    - InvalidRegistrationCodeError: unknown registration code.
    - AlreadyInitializedError: bootstrap after a quality head exists.

Audit relevance:
    Every assignment is logged as ``role_assigned`` with previous and new
    role.  The approval ledger snapshots the role at decision time, so
    reassignment never rewrites history.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from inspection_kernel.db.engine import is_write_contention
from inspection_kernel.domain.clock import Clock
from inspection_kernel.domain.dtos import RoleAssignmentRecord
from inspection_kernel.domain.policies import RegistrationPolicy
from inspection_kernel.domain.roles import ASSIGNABLE_ROLES, Role, parse_role
from inspection_kernel.exceptions import (
    AlreadyInitializedError,
    ForbiddenError,
    InvalidOperationError,
    InvalidRegistrationCodeError,
    SystemNotInitializedError,
    ValidationError,
)
from inspection_kernel.logging_config import get_logger
from inspection_kernel.models.role_assignment import (
    QUALITY_HEAD_INITIALIZED,
    RegistryFlag,
    RoleAssignment,
)
from inspection_kernel.services.base import BaseService
from inspection_kernel.utils.ids import as_uuid

logger = get_logger("services.role_registry")


class RegistrationCodeStatus(str, Enum):
    """Outcome of checking a registration code against registry state."""

    VALID_BOOTSTRAP = "valid_bootstrap"
    INVALID_BOOTSTRAP_EXISTS = "invalid_bootstrap_exists"
    SYSTEM_NOT_INITIALIZED = "system_not_initialized"
    VALID_REGULAR = "valid_regular"
    INVALID_CODE = "invalid_code"


class RoleRegistry(BaseService):
    """
    Maps identities to exactly one role.

    Contract:
        ``role_of(identity)`` returns the current Role or None.
        ``assign_role(acting, target, role)`` overwrites target's role.

    Non-goals:
        - Does NOT authenticate identities; they arrive already verified.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: RegistrationPolicy | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy or RegistrationPolicy()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _assignment(self, identity_id: UUID) -> RoleAssignment | None:
        return self.session.execute(
            select(RoleAssignment).where(RoleAssignment.identity_id == identity_id)
        ).scalar_one_or_none()

    def role_of(self, identity_id: Any) -> Role | None:
        """Current role of ``identity_id``; None when unregistered or role-less."""
        assignment = self._assignment(as_uuid(identity_id, "identity_id"))
        return parse_role(assignment.role) if assignment else None

    def has_quality_head(self) -> bool:
        flag = self.session.execute(
            select(RegistryFlag.id).where(RegistryFlag.name == QUALITY_HEAD_INITIALIZED)
        ).first()
        if flag is not None:
            return True
        heads = self.session.execute(
            select(func.count())
            .select_from(RoleAssignment)
            .where(RoleAssignment.role == Role.QUALITY_HEAD.value)
        ).scalar_one()
        return heads > 0

    def list_assignments(self) -> list[RoleAssignmentRecord]:
        rows = self.session.execute(
            select(RoleAssignment).order_by(RoleAssignment.assigned_at, RoleAssignment.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def require_role(
        self,
        actor_id: Any,
        operation: str,
        allowed: Iterable[Role],
    ) -> Role:
        """
        Resolve the actor's role and check it is one of ``allowed``.

        Raises:
            ForbiddenError: actor holds no role or a role outside ``allowed``.
        """
        allowed = frozenset(allowed)
        role = self.role_of(actor_id)
        if role not in allowed:
            reason = (
                "actor has no role"
                if role is None
                else f"role {role.value} is not permitted"
            )
            logger.warning(
                "authorization_denied",
                extra={
                    "actor_id": str(actor_id),
                    "operation": operation,
                    "actor_role": role.value if role else None,
                    "allowed_roles": sorted(r.value for r in allowed),
                },
            )
            raise ForbiddenError(str(actor_id), operation, reason)
        return role

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def _write_role(
        self,
        identity_id: UUID,
        role: Role | None,
        assigned_by_id: UUID | None,
    ) -> RoleAssignment:
        """Upsert the single assignment row for ``identity_id``."""
        now = self.clock.now()
        assignment = self._assignment(identity_id)
        if assignment is None:
            try:
                with self.session.begin_nested():
                    assignment = RoleAssignment(
                        identity_id=identity_id,
                        role=role.value if role else None,
                        assigned_by_id=assigned_by_id,
                        assigned_at=now,
                    )
                    self.session.add(assignment)
                    self.session.flush()
                return assignment
            except IntegrityError:
                # Concurrent first write for the same identity
                assignment = self._assignment(identity_id)
                if assignment is None:
                    raise

        assignment.role = role.value if role else None
        assignment.assigned_by_id = assigned_by_id
        assignment.assigned_at = now
        self.session.flush()
        return assignment

    def assign_role(
        self,
        acting_id: Any,
        target_id: Any,
        new_role: Role | str | None,
    ) -> RoleAssignmentRecord:
        """
        Overwrite ``target_id``'s role on behalf of a quality head.

        Raises:
            ForbiddenError: acting identity is not a quality head.
            InvalidOperationError: self-modification, target is a quality
                head, or new_role is quality_head.
            ValidationError: new_role is not a known role.
        """
        acting_id = as_uuid(acting_id, "acting_id")
        target_id = as_uuid(target_id, "target_id")

        self.require_role(acting_id, "assign_role", {Role.QUALITY_HEAD})

        if acting_id == target_id:
            raise InvalidOperationError(
                "assign_role", "a quality head cannot modify its own role"
            )

        try:
            role = parse_role(new_role)
        except ValueError as exc:
            raise ValidationError(
                str(exc), [{"field": "role", "message": "unknown role"}]
            ) from None

        if role is not None and role not in ASSIGNABLE_ROLES:
            raise InvalidOperationError(
                "assign_role",
                "quality_head is granted only through the bootstrap registration",
            )

        previous = self.role_of(target_id)
        if previous is Role.QUALITY_HEAD:
            raise InvalidOperationError(
                "assign_role", "the role of a quality head cannot be changed"
            )

        assignment = self._write_role(target_id, role, assigned_by_id=acting_id)

        logger.info(
            "role_assigned",
            extra={
                "acting_id": str(acting_id),
                "target_id": str(target_id),
                "previous_role": previous.value if previous else None,
                "new_role": role.value if role else None,
            },
        )
        return assignment.to_dto()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def validate_registration_code(self, registration_code: str | None) -> RegistrationCodeStatus:
        """Classify a registration code against the current registry state."""
        code = (registration_code or "").strip()
        has_head = self.has_quality_head()

        if code == self.policy.bootstrap_code:
            if has_head:
                return RegistrationCodeStatus.INVALID_BOOTSTRAP_EXISTS
            return RegistrationCodeStatus.VALID_BOOTSTRAP
        if not code:
            if not has_head:
                return RegistrationCodeStatus.SYSTEM_NOT_INITIALIZED
            return RegistrationCodeStatus.VALID_REGULAR
        return RegistrationCodeStatus.INVALID_CODE

    def bootstrap_quality_head(
        self, identity_id: Any, registration_code: str
    ) -> RoleAssignmentRecord:
        """
        Create the very first quality head.

        The unique RegistryFlag insert is the atomic check-and-set: a second
        bootstrap (sequential or concurrent) fails on the constraint.
        On SQLite a bootstrap whose snapshot predates the winner's commit
        fails to write instead; the transaction is rolled back and the flag
        re-read before AlreadyInitializedError is raised.

        Raises:
            InvalidRegistrationCodeError: code is not the bootstrap code.
            AlreadyInitializedError: a quality head already exists.
        """
        identity_id = as_uuid(identity_id, "identity_id")
        if (registration_code or "").strip() != self.policy.bootstrap_code:
            raise InvalidRegistrationCodeError()

        if self.has_quality_head():
            logger.warning(
                "bootstrap_rejected",
                extra={"identity_id": str(identity_id), "reason": "already_initialized"},
            )
            raise AlreadyInitializedError()

        try:
            with self.session.begin_nested():
                self.session.add(
                    RegistryFlag(
                        name=QUALITY_HEAD_INITIALIZED,
                        set_by_id=identity_id,
                        set_at=self.clock.now(),
                    )
                )
                self.session.flush()
        except (IntegrityError, OperationalError) as exc:
            if isinstance(exc, OperationalError):
                if not is_write_contention(exc):
                    raise
                self.session.rollback()
                if not self.has_quality_head():
                    raise
            logger.warning(
                "bootstrap_rejected",
                extra={"identity_id": str(identity_id), "reason": "concurrent_bootstrap"},
            )
            raise AlreadyInitializedError() from None

        assignment = self._write_role(identity_id, Role.QUALITY_HEAD, assigned_by_id=identity_id)
        logger.info(
            "quality_head_bootstrapped",
            extra={"identity_id": str(identity_id)},
        )
        return assignment.to_dto()

    def register_identity(
        self, identity_id: Any, registration_code: str | None = None
    ) -> RoleAssignmentRecord:
        """
        Register a newly authenticated identity.

        - bootstrap code, no head yet  -> quality_head
        - bootstrap code, head exists  -> AlreadyInitializedError
        - empty code, no head yet      -> SystemNotInitializedError
        - empty code, head exists      -> policy default role (may be none)
        - anything else                -> InvalidRegistrationCodeError
        """
        identity_id = as_uuid(identity_id, "identity_id")
        status = self.validate_registration_code(registration_code)

        if status is RegistrationCodeStatus.VALID_BOOTSTRAP:
            return self.bootstrap_quality_head(identity_id, registration_code or "")
        if status is RegistrationCodeStatus.INVALID_BOOTSTRAP_EXISTS:
            raise AlreadyInitializedError()
        if status is RegistrationCodeStatus.SYSTEM_NOT_INITIALIZED:
            raise SystemNotInitializedError()
        if status is RegistrationCodeStatus.INVALID_CODE:
            raise InvalidRegistrationCodeError()

        if self._assignment(identity_id) is not None:
            raise InvalidOperationError(
                "register_identity", f"identity {identity_id} is already registered"
            )

        assignment = self._write_role(
            identity_id, self.policy.default_role, assigned_by_id=None
        )
        logger.info(
            "identity_registered",
            extra={
                "identity_id": str(identity_id),
                "role": self.policy.default_role.value if self.policy.default_role else None,
            },
        )
        return assignment.to_dto()
