"""
Typed Exception Hierarchy for the Inspection Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure in the approval engine is returned to the caller as a typed
exception.  Callers (UI actions, report jobs) branch on the exception TYPE
and read its structured attributes; they never parse message strings.

    try:
        service.decide(inspection_id, actor_id, "approve", "ok")
    except ConflictError as e:
        # Another reviewer got there first -- re-read and re-evaluate
        refresh(e.inspection_id)
    except ForbiddenError as e:
        api_response(code=e.code, reason=e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InspectionKernelError:

    InspectionKernelError (base)
    |
    +-- ForbiddenError
    |   +-- InspectionLockedError
    |
    +-- InvalidTransitionError
    |   +-- ConflictError
    |
    +-- ValidationError
    |   +-- InvalidRegistrationCodeError
    |   +-- ProductInactiveError
    |   +-- DuplicatePartNumberError
    |
    +-- ReferentialIntegrityError
    |   +-- SpecificationInUseError
    |   +-- ProductInUseError
    |
    +-- AlreadyInitializedError
    |
    +-- InvalidOperationError
    |   +-- SystemNotInitializedError
    |
    +-- NotFoundError
    |   +-- InspectionNotFoundError
    |   +-- ProductNotFoundError
    |   +-- SpecificationNotFoundError
    |
    +-- ImmutabilityViolationError
    |
    +-- LedgerChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | Retryable | When Raised
----------------------------|-----------|----------------------------------------
FORBIDDEN                   | no        | Wrong role or ownership for operation
INSPECTION_LOCKED           | no        | Mutating an approved/rejected record
INVALID_TRANSITION          | no        | Unknown action / status has no edges
CONFLICT                    | yes       | Stale decision or lost version check
VALIDATION_ERROR            | no        | Missing comment, remark or value
INVALID_REGISTRATION_CODE   | no        | Unknown registration code
PRODUCT_INACTIVE            | no        | New inspection for deactivated product
DUPLICATE_PART_NUMBER       | no        | Part number already catalogued
REFERENTIAL_INTEGRITY       | no        | Delete of a referenced record
SPECIFICATION_IN_USE        | no        | Spec referenced by recorded results
PRODUCT_IN_USE              | no        | Product referenced by inspections
ALREADY_INITIALIZED         | no        | Second quality-head bootstrap
INVALID_OPERATION           | no        | Self-modification, head demotion, ...
SYSTEM_NOT_INITIALIZED      | no        | Plain registration before bootstrap
NOT_FOUND                   | no        | Unknown id
IMMUTABILITY_VIOLATION      | no        | ORM backstop blocked a write
LEDGER_CHAIN_BROKEN         | no        | Approval ledger hash mismatch

===============================================================================
DESIGN DECISIONS
===============================================================================

1. ConflictError IS-A InvalidTransitionError.
   A stale decision is a (status, role, action) triple that is no longer in
   the transition table for the record's real status.  Callers that only
   care about "was the transition refused" catch InvalidTransitionError;
   callers that retry catch ConflictError first.

2. InspectionLockedError IS-A ForbiddenError.
   Editing a frozen record is an authorization failure from the caller's
   point of view: nobody holds mutation rights on it any more.

3. Every class carries ``retryable``.  Only ConflictError is retryable.
"""

from __future__ import annotations

from typing import Any


class InspectionKernelError(Exception):
    """
    Base exception for all inspection kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INSPECTION_KERNEL_ERROR"
    retryable: bool = False


# Authorization exceptions


class ForbiddenError(InspectionKernelError):
    """Actor lacks the role or ownership required for the operation."""

    code: str = "FORBIDDEN"

    def __init__(self, actor_id: str, operation: str, reason: str):
        self.actor_id = actor_id
        self.operation = operation
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not {operation}: {reason}")


class InspectionLockedError(ForbiddenError):
    """Inspection is approved or rejected and can no longer be mutated."""

    code: str = "INSPECTION_LOCKED"

    def __init__(self, actor_id: str, operation: str, inspection_id: str, status: str):
        self.inspection_id = inspection_id
        self.status = status
        super().__init__(
            actor_id,
            operation,
            f"inspection {inspection_id} is {status} and permanently read-only",
        )


# Lifecycle exceptions


class InvalidTransitionError(InspectionKernelError):
    """Requested status/action pair is not in the transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        inspection_id: str,
        current_status: str,
        action: str,
        reason: str = "",
    ):
        self.inspection_id = inspection_id
        self.current_status = current_status
        self.action = action
        self.reason = reason
        message = f"Cannot {action} inspection {inspection_id} in status {current_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConflictError(InvalidTransitionError):
    """
    The decision is stale.

    Either the stage the actor reviews has already been decided, or a
    concurrent decision advanced the record between read and write.
    Callers may re-read the inspection and re-evaluate.
    """

    code: str = "CONFLICT"
    retryable: bool = True

    def __init__(
        self,
        inspection_id: str,
        expected_status: str,
        actual_status: str | None,
        action: str = "decide",
    ):
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(
            inspection_id,
            expected_status,
            action,
            reason=(
                "record was already advanced by another decision "
                f"(now {actual_status or 'unknown'})"
            ),
        )


# Validation exceptions


class ValidationError(InspectionKernelError):
    """
    Input failed validation.

    ``field_errors`` is a list of ``{"field": ..., "message": ...}`` dicts,
    one per problem, so callers can highlight every offending input at once.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field_errors: list[dict[str, Any]] | None = None):
        self.field_errors = field_errors or []
        super().__init__(message)


class InvalidRegistrationCodeError(ValidationError):
    """Registration code is neither empty nor the bootstrap code."""

    code: str = "INVALID_REGISTRATION_CODE"

    def __init__(self):
        super().__init__(
            "Invalid registration code",
            [{"field": "registration_code", "message": "unknown code"}],
        )


class ProductInactiveError(ValidationError):
    """Product has been deactivated and cannot receive new inspections."""

    code: str = "PRODUCT_INACTIVE"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(
            f"Product {product_id} is inactive",
            [{"field": "product_id", "message": "product is inactive"}],
        )


class DuplicatePartNumberError(ValidationError):
    """Another product already uses this part number."""

    code: str = "DUPLICATE_PART_NUMBER"

    def __init__(self, part_number: str):
        self.part_number = part_number
        super().__init__(
            f"Part number already exists: {part_number}",
            [{"field": "part_number", "message": "must be unique"}],
        )


# Referential integrity exceptions


class ReferentialIntegrityError(InspectionKernelError):
    """Record is referenced by audit-relevant data and cannot be removed."""

    code: str = "REFERENTIAL_INTEGRITY"

    def __init__(self, entity_type: str, entity_id: str, referenced_by: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.referenced_by = referenced_by
        super().__init__(
            f"{entity_type} {entity_id} is referenced by {referenced_by}"
        )


class SpecificationInUseError(ReferentialIntegrityError):
    """Specification is referenced by recorded inspection results."""

    code: str = "SPECIFICATION_IN_USE"

    def __init__(self, specification_id: str):
        super().__init__("Specification", specification_id, "inspection results")


class ProductInUseError(ReferentialIntegrityError):
    """Product has inspection history; deactivate it instead."""

    code: str = "PRODUCT_IN_USE"

    def __init__(self, product_id: str):
        super().__init__("Product", product_id, "inspections")


# Registry exceptions


class AlreadyInitializedError(InspectionKernelError):
    """A quality head has already been bootstrapped."""

    code: str = "ALREADY_INITIALIZED"

    def __init__(self):
        super().__init__("A quality head already exists; bootstrap is closed")


class InvalidOperationError(InspectionKernelError):
    """Operation is structurally disallowed regardless of the actor's role."""

    code: str = "INVALID_OPERATION"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Invalid operation {operation}: {reason}")


class SystemNotInitializedError(InvalidOperationError):
    """Plain registration attempted before any quality head exists."""

    code: str = "SYSTEM_NOT_INITIALIZED"

    def __init__(self):
        super().__init__(
            "register_identity",
            "no quality head exists yet; register with the bootstrap code first",
        )


# Lookup exceptions


class NotFoundError(InspectionKernelError):
    """Referenced record does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class InspectionNotFoundError(NotFoundError):
    code: str = "INSPECTION_NOT_FOUND"

    def __init__(self, inspection_id: str):
        super().__init__("Inspection", inspection_id)


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        super().__init__("Product", product_id)


class SpecificationNotFoundError(NotFoundError):
    code: str = "SPECIFICATION_NOT_FOUND"

    def __init__(self, specification_id: str):
        super().__init__("Specification", specification_id)


# Persistence-layer exceptions


class ImmutabilityViolationError(InspectionKernelError):
    """
    Attempted to modify or delete an immutable record.

    Raised by the ORM listeners in ``db/immutability.py``.  Services check
    the same rules first; seeing this error means a code path bypassed them.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class LedgerChainBrokenError(InspectionKernelError):
    """Approval ledger hash chain validation failed."""

    code: str = "LEDGER_CHAIN_BROKEN"

    def __init__(self, entry_id: str, expected_hash: str, actual_hash: str):
        self.entry_id = entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Approval ledger broken at {entry_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )
