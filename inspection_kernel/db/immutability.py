"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Inspection records must be audit-proof.  Once a record is approved or
rejected, nothing about it may change, and the results a reviewer saw must
stay exactly as submitted.  The services check these rules first and raise
typed domain errors; the listeners in this module are the backstop that
catches any code path that goes around the services (a script, a careless
``session.merge``, a future feature).

    session.flush()
         |
         v
    [before_flush]  --> referenced Product/Specification deletes --> ReferentialIntegrityError
         |
         v
    [before_insert/before_update/before_delete]
         |          --> _check_*() --> ImmutabilityViolationError
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                | Rule
----------------------|---------------------------------------------------------
Inspection            | No field changes once approved/rejected; status moves
                      | only along lifecycle edges; number/product/creator
                      | never change; never deleted
InspectionResult      | Write-once: never updated, never deleted
InspectionEvidence    | Append-only; no new rows once parent is locked
Specification         | Structural fields frozen once referenced by a result;
                      | delete blocked while referenced
Product               | Delete blocked while referenced by an inspection
ApprovalHistoryEntry  | Always immutable (listeners live on the model itself)

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at / updated_by_id / version are bookkeeping, not content, and
   are ignored by the field-change checks.

2. "Was locked" is read from attribute history (the persisted value), not
   from the in-memory value, so the approval workflow itself can move a
   pending record to approved/rejected while every later write is blocked.

3. Product and Specification delete checks run in Session.before_flush
   because mapper-level delete events fire after the flush plan is fixed.

===============================================================================
USAGE
===============================================================================

    from inspection_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from inspection_kernel.domain.lifecycle import LOCKED_STATUSES, InspectionStatus, is_valid_edge
from inspection_kernel.exceptions import (
    ImmutabilityViolationError,
    ProductInUseError,
    SpecificationInUseError,
)
from inspection_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_BOOKKEEPING_FIELDS = frozenset({"updated_at", "updated_by_id", "version"})

_INSPECTION_STRUCTURAL_FIELDS = ("inspection_number", "product_id", "created_by_id")

_SPECIFICATION_STRUCTURAL_FIELDS = ("product_id", "parameter_name", "spec_type", "criteria")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
            **extra,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _persisted_status(target) -> InspectionStatus:
    history = get_history(target, "status")
    if history.deleted:
        return InspectionStatus(history.deleted[0])
    return InspectionStatus(target.status)


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        column.key
        for column in insp.mapper.column_attrs
        if column.key not in _BOOKKEEPING_FIELDS
        and insp.attrs[column.key].history.has_changes()
    ]


# ---------------------------------------------------------------------------
# Session-level: referenced deletes
# ---------------------------------------------------------------------------


def _check_referenced_deletes_before_flush(session, flush_context, instances):
    """Block hard deletes of products and specifications that are in use."""
    from inspection_kernel.models.inspection import Inspection, InspectionResult
    from inspection_kernel.models.product import Product
    from inspection_kernel.models.specification import Specification

    for obj in list(session.deleted):
        if isinstance(obj, Specification):
            with session.no_autoflush:
                in_use = session.execute(
                    select(func.count())
                    .select_from(InspectionResult)
                    .where(InspectionResult.specification_id == obj.id)
                ).scalar_one()
            if in_use:
                logger.error(
                    "immutability_violation_blocked",
                    extra={
                        "entity_type": "Specification",
                        "entity_id": str(obj.id),
                        "operation": "DELETE",
                        "reason": "specification_referenced_by_results",
                    },
                )
                raise SpecificationInUseError(str(obj.id))

        elif isinstance(obj, Product):
            with session.no_autoflush:
                in_use = session.execute(
                    select(func.count())
                    .select_from(Inspection)
                    .where(Inspection.product_id == obj.id)
                ).scalar_one()
            if in_use:
                logger.error(
                    "immutability_violation_blocked",
                    extra={
                        "entity_type": "Product",
                        "entity_id": str(obj.id),
                        "operation": "DELETE",
                        "reason": "product_referenced_by_inspections",
                    },
                )
                raise ProductInUseError(str(obj.id))


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


def _check_inspection_update(mapper, connection, target):
    """
    Enforce the lifecycle on every UPDATE of an inspection.

    1. Persisted status approved/rejected: block any content change.
    2. Status changing: the (old, new) pair must be a lifecycle edge.
    3. Number, product and creator never change.
    """
    old_status = _persisted_status(target)

    if old_status in LOCKED_STATUSES:
        changed = _changed_fields(target)
        if changed:
            raise _blocked(
                "Inspection",
                target.id,
                "UPDATE",
                f"Inspection is {old_status.value}; cannot modify '{changed[0]}'",
                field=changed[0],
            )
        return

    status_history = get_history(target, "status")
    if status_history.added:
        new_status = InspectionStatus(status_history.added[0])
        if new_status != old_status and not is_valid_edge(old_status, new_status):
            raise _blocked(
                "Inspection",
                target.id,
                "UPDATE",
                f"Status change {old_status.value} -> {new_status.value} "
                "is not a lifecycle transition",
                field="status",
            )

    for field_name in _INSPECTION_STRUCTURAL_FIELDS:
        if get_history(target, field_name).deleted:
            raise _blocked(
                "Inspection",
                target.id,
                "UPDATE",
                f"Field '{field_name}' is fixed at creation",
                field=field_name,
            )


def _check_inspection_delete(mapper, connection, target):
    raise _blocked(
        "Inspection", target.id, "DELETE", "Inspections are never deleted"
    )


# ---------------------------------------------------------------------------
# InspectionResult (write-once)
# ---------------------------------------------------------------------------


def _check_result_update(mapper, connection, target):
    raise _blocked(
        "InspectionResult",
        target.id,
        "UPDATE",
        "Inspection results are write-once",
    )


def _check_result_delete(mapper, connection, target):
    raise _blocked(
        "InspectionResult",
        target.id,
        "DELETE",
        "Inspection results cannot be deleted",
    )


# ---------------------------------------------------------------------------
# InspectionEvidence (append-only)
# ---------------------------------------------------------------------------


def _check_evidence_insert(mapper, connection, target):
    """No new evidence once the parent inspection is approved or rejected."""
    from inspection_kernel.models.inspection import Inspection

    table = Inspection.__table__
    status = connection.execute(
        select(table.c.status).where(table.c.id == str(target.inspection_id))
    ).scalar_one_or_none()
    if status is not None and InspectionStatus(status) in LOCKED_STATUSES:
        raise _blocked(
            "InspectionEvidence",
            target.id,
            "INSERT",
            f"Inspection {target.inspection_id} is {status}; evidence is closed",
        )


def _check_evidence_update(mapper, connection, target):
    raise _blocked(
        "InspectionEvidence",
        target.id,
        "UPDATE",
        "Evidence is append-only",
    )


def _check_evidence_delete(mapper, connection, target):
    raise _blocked(
        "InspectionEvidence",
        target.id,
        "DELETE",
        "Evidence is append-only",
    )


# ---------------------------------------------------------------------------
# Specification
# ---------------------------------------------------------------------------


def _check_specification_update(mapper, connection, target):
    """Freeze structural fields once any result references the specification."""
    from inspection_kernel.models.inspection import InspectionResult

    changed = [
        name for name in _SPECIFICATION_STRUCTURAL_FIELDS
        if get_history(target, name).has_changes()
    ]
    if not changed:
        return

    table = InspectionResult.__table__
    in_use = connection.execute(
        select(func.count())
        .select_from(table)
        .where(table.c.specification_id == str(target.id))
    ).scalar_one()
    if in_use:
        raise _blocked(
            "Specification",
            target.id,
            "UPDATE",
            f"Specification is referenced by {in_use} result(s); "
            f"cannot modify '{changed[0]}'",
            field=changed[0],
        )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def _listener_table():
    from inspection_kernel.models.inspection import (
        Inspection,
        InspectionEvidence,
        InspectionResult,
    )
    from inspection_kernel.models.specification import Specification

    return (
        (Inspection, "before_update", _check_inspection_update),
        (Inspection, "before_delete", _check_inspection_delete),
        (InspectionResult, "before_update", _check_result_update),
        (InspectionResult, "before_delete", _check_result_delete),
        (InspectionEvidence, "before_insert", _check_evidence_insert),
        (InspectionEvidence, "before_update", _check_evidence_update),
        (InspectionEvidence, "before_delete", _check_evidence_delete),
        (Specification, "before_update", _check_specification_update),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after models are imported and before any database writes.
    Calling twice is harmless.
    """
    if not event.contains(Session, "before_flush", _check_referenced_deletes_before_flush):
        event.listen(Session, "before_flush", _check_referenced_deletes_before_flush)

    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately violate the rules to
    verify detection (for example, ledger tamper checks).
    """
    _safe_remove_listener(Session, "before_flush", _check_referenced_deletes_before_flush)

    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
