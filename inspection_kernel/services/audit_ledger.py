"""
AuditLedger -- the append-only approval history.

Responsibility:
    Appends one hash-chained entry per approve/reject decision and reads
    the entries of an inspection back in order.  Verifies the chain on
    demand.

Architecture position:
    Kernel > Services -- imperative shell.  Written ONLY by ApprovalEngine,
    inside the same unit of work as the status change being recorded.

Invariants enforced:
    - The contract has no update or delete operation.  ORM listeners on the
      model block both for any code path that tries anyway.
    - Per-inspection ordering: seq = previous seq + 1, starting at 1.
    - Chain: entry_hash = H(inspection_id | seq | payload_hash | prev_hash).
      Altering any stored decision field changes its payload hash and
      breaks every later link.

Failure modes:
    - IntegrityError on a concurrent append from the same stage; the caller
      translates it to ConflictError.
    - LedgerChainBrokenError from verify_chain() on tampering.

Audit relevance:
    entries_for() is the source of truth for why a status is what it is,
    consumed by detail views and report export.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from inspection_kernel.domain.clock import Clock
from inspection_kernel.domain.dtos import ApprovalHistoryRecord
from inspection_kernel.domain.lifecycle import InspectionStatus
from inspection_kernel.domain.roles import Role
from inspection_kernel.exceptions import LedgerChainBrokenError
from inspection_kernel.logging_config import get_logger
from inspection_kernel.models.approval_history import ApprovalHistoryEntryModel
from inspection_kernel.services.base import BaseService
from inspection_kernel.utils.hashing import hash_ledger_entry, hash_payload, ledger_payload
from inspection_kernel.utils.ids import as_uuid

logger = get_logger("services.audit_ledger")


class AuditLedger(BaseService):
    """
    Append-only approval ledger.

    Contract:
        ``append`` and ``entries_for`` / ``verify_chain``.  Nothing else.

    Non-goals:
        - Does NOT authorize the decision being recorded; the caller has.
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def _rows_for(self, inspection_id: Any) -> list[ApprovalHistoryEntryModel]:
        return list(
            self.session.execute(
                select(ApprovalHistoryEntryModel)
                .where(ApprovalHistoryEntryModel.inspection_id == as_uuid(inspection_id))
                .order_by(ApprovalHistoryEntryModel.seq)
            ).scalars().all()
        )

    def _last_entry(self, inspection_id) -> ApprovalHistoryEntryModel | None:
        return self.session.execute(
            select(ApprovalHistoryEntryModel)
            .where(ApprovalHistoryEntryModel.inspection_id == inspection_id)
            .order_by(ApprovalHistoryEntryModel.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def append(
        self,
        *,
        inspection_id: Any,
        actor_id: Any,
        actor_role: Role,
        action: str,
        previous_status: InspectionStatus,
        new_status: InspectionStatus,
        comment: str,
        decided_at: datetime | None = None,
    ) -> ApprovalHistoryRecord:
        """
        Append one decision to the inspection's chain and flush.

        Postconditions:
            - Exactly one new row, with seq = last seq + 1 and prev_hash
              equal to the last row's entry_hash (None for the first).
        """
        inspection_id = as_uuid(inspection_id, "inspection_id")
        actor_id = as_uuid(actor_id, "actor_id")
        decided_at = decided_at or self.clock.now()

        last = self._last_entry(inspection_id)
        seq = last.seq + 1 if last else 1
        prev_hash = last.entry_hash if last else None

        payload_hash = hash_payload(
            ledger_payload(
                inspection_id=inspection_id,
                actor_id=actor_id,
                actor_role=actor_role.value,
                action=action,
                previous_status=previous_status.value,
                new_status=new_status.value,
                comment=comment,
                decided_at=decided_at,
            )
        )
        entry_hash = hash_ledger_entry(inspection_id, seq, payload_hash, prev_hash)

        entry = ApprovalHistoryEntryModel(
            inspection_id=inspection_id,
            seq=seq,
            actor_id=actor_id,
            actor_role=actor_role.value,
            action=action,
            previous_status=previous_status.value,
            new_status=new_status.value,
            comment=comment,
            decided_at=decided_at,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            entry_hash=entry_hash,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_appended",
            extra={
                "inspection_id": str(inspection_id),
                "seq": seq,
                "actor_role": actor_role.value,
                "action": action,
            },
        )
        return entry.to_dto()

    def entries_for(self, inspection_id: Any) -> list[ApprovalHistoryRecord]:
        """All decisions on the inspection, oldest first."""
        return [row.to_dto() for row in self._rows_for(inspection_id)]

    def count_for(self, inspection_id: Any) -> int:
        return len(self._rows_for(inspection_id))

    def verify_chain(self, inspection_id: Any) -> bool:
        """
        Recompute every hash of the inspection's chain.

        Returns True when intact.

        Raises:
            LedgerChainBrokenError: at the first entry whose payload hash,
                entry hash, sequence or back-link does not match.
        """
        rows = self._rows_for(inspection_id)
        prev: ApprovalHistoryEntryModel | None = None

        for expected_seq, row in enumerate(rows, start=1):
            expected_prev = prev.entry_hash if prev else None
            if row.seq != expected_seq or row.prev_hash != expected_prev:
                self._broken(row, expected_prev or "GENESIS", row.prev_hash or "GENESIS")

            expected_payload = hash_payload(
                ledger_payload(
                    inspection_id=row.inspection_id,
                    actor_id=row.actor_id,
                    actor_role=row.actor_role,
                    action=row.action,
                    previous_status=row.previous_status,
                    new_status=row.new_status,
                    comment=row.comment,
                    decided_at=row.decided_at,
                )
            )
            if row.payload_hash != expected_payload:
                self._broken(row, expected_payload, row.payload_hash)

            expected_hash = hash_ledger_entry(
                row.inspection_id, row.seq, row.payload_hash, row.prev_hash
            )
            if row.entry_hash != expected_hash:
                self._broken(row, expected_hash, row.entry_hash)

            prev = row

        return True

    def _broken(self, row: ApprovalHistoryEntryModel, expected: str, actual: str) -> None:
        logger.critical(
            "ledger_chain_broken",
            extra={
                "inspection_id": str(row.inspection_id),
                "entry_id": str(row.id),
                "seq": row.seq,
            },
        )
        raise LedgerChainBrokenError(str(row.id), expected, actual)
