"""
ApprovalEngine -- the only mutator of inspection status.

Responsibility:
    Authorizes a candidate transition (inspection, actor, action, comment)
    against the transition table and applies it: the status write and the
    ledger append happen in ONE unit of work or not at all.

Architecture position:
    Kernel > Services -- imperative shell.  Reads roles from RoleRegistry,
    loads the record through InspectionStore, appends through AuditLedger.

Invariants enforced:
    - Role-gated transitions: (current, actor_role, action) must be a row of
      the transition table.  This single check enforces both the right role
      for the stage and no skipping of stages.
    - Every decision carries a non-blank comment.
    - Atomic decision: status write + ledger append inside one SAVEPOINT.
    - Stale decisions lose: the version column makes the UPDATE a
      compare-and-swap; the per-stage unique key on the ledger backs it.  The
      loser gets ConflictError and appends nothing.
    - The ledger stores the actor's role as held at decision time.

Failure modes:
    - InspectionNotFoundError.
    - ForbiddenError: the actor's role does not act at the current stage.
    - InvalidTransitionError: unknown action, or the record is already
      approved/rejected and the actor never decided it.
    - ConflictError: the actor's stage was already decided (by this or a
      concurrent call).  Retryable by re-reading.
    - ValidationError: blank comment.

Audit relevance:
    ``inspection_decided`` is logged with the previous and new status.
    Denied attempts are logged as ``decision_denied``.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from inspection_kernel.db.engine import is_write_contention
from inspection_kernel.domain.clock import Clock
from inspection_kernel.domain.dtos import InspectionRecord
from inspection_kernel.domain.lifecycle import (
    ReviewAction,
    next_status,
    parse_action,
    stage_for,
)
from inspection_kernel.domain.roles import Role
from inspection_kernel.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    ValidationError,
)
from inspection_kernel.logging_config import LogContext, get_logger
from inspection_kernel.models.approval_history import ApprovalHistoryEntryModel
from inspection_kernel.models.inspection import Inspection
from inspection_kernel.services.audit_ledger import AuditLedger
from inspection_kernel.services.base import BaseService
from inspection_kernel.services.inspection_store import InspectionStore
from inspection_kernel.services.role_registry import RoleRegistry
from inspection_kernel.utils.ids import as_uuid

logger = get_logger("services.approval_engine")


class ApprovalEngine(BaseService):
    """
    Role-gated state machine over inspection status.

    Contract:
        ``decide(inspection_id, actor_id, action, comment)`` returns the
        updated InspectionRecord or raises a typed error with nothing
        written.

    Non-goals:
        - Does NOT notify anyone; callers observe the returned record.
        - Does NOT retry on ConflictError.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        roles: RoleRegistry | None = None,
        store: InspectionStore | None = None,
        ledger: AuditLedger | None = None,
    ):
        super().__init__(session, clock)
        self.roles = roles or RoleRegistry(session, self.clock)
        self.store = store or InspectionStore(session, self.clock, roles=self.roles)
        self.ledger = ledger or AuditLedger(session, self.clock)

    def _stage_already_decided(self, inspection: Inspection, role: Role | None) -> bool:
        """True when the stage ``role`` reviews has a ledger entry for this record."""
        stage = stage_for(role)
        if stage is None:
            return False
        decided = self.session.execute(
            select(func.count())
            .select_from(ApprovalHistoryEntryModel)
            .where(
                ApprovalHistoryEntryModel.inspection_id == inspection.id,
                ApprovalHistoryEntryModel.previous_status == stage.value,
            )
        ).scalar_one()
        return decided > 0

    def _deny(
        self,
        inspection: Inspection,
        actor_id,
        role: Role | None,
        action: ReviewAction,
    ) -> None:
        current = inspection.status_enum
        logger.warning(
            "decision_denied",
            extra={
                "inspection_id": str(inspection.id),
                "actor_id": str(actor_id),
                "actor_role": role.value if role else None,
                "status": current.value,
                "action": action.value,
            },
        )
        if self._stage_already_decided(inspection, role):
            raise ConflictError(str(inspection.id), stage_for(role).value, current.value)
        if current.is_locked:
            raise InvalidTransitionError(
                str(inspection.id), current.value, action.value, "inspection is closed"
            )
        raise ForbiddenError(
            str(actor_id),
            f"{action.value} an inspection in {current.value}",
            "no transition is defined for role "
            f"{role.value if role else 'none'} at this stage",
        )

    def decide(
        self,
        inspection_id: Any,
        actor_id: Any,
        action: ReviewAction | str,
        comment: str,
    ) -> InspectionRecord:
        """
        Apply one approve/reject decision.

        Preconditions:
            - (current status, actor's role, action) is a transition.
            - ``comment`` is not blank.

        Postconditions:
            - Status advanced and exactly one ledger entry appended, in the
              same savepoint.  On any failure neither is visible.
            - On SQLite, losing the write to a concurrent commit rolls back
              the session's transaction before ConflictError is raised;
              its snapshot can no longer write.
        """
        actor_id = as_uuid(actor_id, "actor_id")
        with LogContext.bind(inspection_id=str(inspection_id), actor_id=str(actor_id)):
            inspection = self.store.get(inspection_id, for_update=True)
            current = inspection.status_enum

            review_action = parse_action(action)
            if review_action is None:
                raise InvalidTransitionError(
                    str(inspection.id), current.value, str(action), "unknown action"
                )

            role = self.roles.role_of(actor_id)
            target = next_status(current, role, review_action) if role else None
            if target is None:
                self._deny(inspection, actor_id, role, review_action)

            comment = (comment or "").strip()
            if not comment:
                raise ValidationError(
                    "A comment is required for every decision",
                    [{"field": "comment", "message": "must not be blank"}],
                )

            inspection_pk = inspection.id
            observed_version = inspection.version
            decided_at = self.clock.now()
            try:
                with self.session.begin_nested():
                    inspection.status = target.value
                    inspection.updated_by_id = actor_id
                    inspection.updated_at = decided_at
                    self.session.flush()
                    entry = self.ledger.append(
                        inspection_id=inspection.id,
                        actor_id=actor_id,
                        actor_role=role,
                        action=review_action.ledger_action,
                        previous_status=current,
                        new_status=target,
                        comment=comment,
                        decided_at=decided_at,
                    )
            except (StaleDataError, IntegrityError, OperationalError) as exc:
                if isinstance(exc, OperationalError):
                    if not is_write_contention(exc):
                        raise
                    # the snapshot predates a concurrent commit and can never write
                    self.session.rollback()
                latest = self.session.execute(
                    select(Inspection.status).where(Inspection.id == inspection_pk)
                ).scalar_one_or_none()
                logger.warning(
                    "decision_conflict",
                    extra={
                        "inspection_id": str(inspection_pk),
                        "expected_status": current.value,
                        "actual_status": latest,
                        "observed_version": observed_version,
                        "error": type(exc).__name__,
                    },
                )
                raise ConflictError(str(inspection_pk), current.value, latest) from None

            logger.info(
                "inspection_decided",
                extra={
                    "inspection_id": str(inspection.id),
                    "inspection_number": inspection.inspection_number,
                    "actor_id": str(actor_id),
                    "actor_role": role.value,
                    "action": review_action.ledger_action,
                    "previous_status": current.value,
                    "new_status": target.value,
                    "ledger_seq": entry.seq,
                },
            )
            return inspection.to_dto()
