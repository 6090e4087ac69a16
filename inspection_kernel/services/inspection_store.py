"""
InspectionStore -- authoring and guarded mutation of inspection records.

Responsibility:
    Creates inspections (one write-once result per specification of the
    product), applies the few field edits the lifecycle permits, and
    appends evidence.  Every mutator re-reads the record's status
    immediately before writing so a concurrent approval cannot slip in
    between the caller's read and this write.

Architecture position:
    Kernel > Services -- imperative shell.  Uses RoleRegistry for
    authorization and SequenceService for numbering.  ApprovalEngine is
    the only other writer of Inspection rows and owns the status field.

Invariants enforced:
    - Only auditors author.  The product must be active.
    - Results match the product's specifications exactly: one per
      specification, none missing, none unknown, none duplicated.
    - Initial status is always pending_team_leader, whatever the
      computed pass/fail; the workflow never auto-decides.
    - Approved and rejected records are read-only for everyone
      (InspectionLockedError).  A rejected record is never edited or
      resubmitted; correction means authoring a NEW inspection.
    - Results are write-once: update_result always refuses.
    - Pending records may be edited (batch number, remarks) only by the
      reviewer role of the current stage.

Failure modes:
    - ForbiddenError / InspectionLockedError on authorization.
    - ProductInactiveError, ValidationError on authoring input.
    - ConflictError when the optimistic version check loses.
    - InspectionNotFoundError, ProductNotFoundError.

Audit relevance:
    ``inspection_created`` and ``inspection_updated`` are logged with the
    acting identity.  The ORM listeners back every rule above.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from inspection_kernel.domain.clock import Clock
from inspection_kernel.domain.dtos import EvidenceInput, EvidenceRecord
from inspection_kernel.domain.lifecycle import INITIAL_STATUS, PENDING_STATUSES, reviewer_role_for
from inspection_kernel.domain.policies import SubmissionPolicy
from inspection_kernel.domain.roles import Role
from inspection_kernel.domain.specifications import (
    ResultInput,
    ResultInputError,
    evaluate_result,
    requires_evidence,
)
from inspection_kernel.exceptions import (
    ConflictError,
    ForbiddenError,
    InspectionLockedError,
    InspectionNotFoundError,
    ProductInactiveError,
    ProductNotFoundError,
    ValidationError,
)
from inspection_kernel.logging_config import get_logger
from inspection_kernel.models.inspection import Inspection, InspectionEvidence, InspectionResult
from inspection_kernel.models.product import Product
from inspection_kernel.models.specification import Specification
from inspection_kernel.services.base import BaseService
from inspection_kernel.services.role_registry import RoleRegistry
from inspection_kernel.services.sequence_service import SequenceService
from inspection_kernel.utils.ids import as_uuid

logger = get_logger("services.inspection_store")

_UNSET: Any = object()

EDITABLE_FIELDS = ("batch_number", "remarks")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


class InspectionStore(BaseService):
    """
    Persistence contract for inspections with mutability re-checks.

    Contract:
        ``create`` authors a new record.  ``update``, ``update_result`` and
        ``add_evidence`` re-check mutability against freshly read state.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        roles: RoleRegistry | None = None,
        policy: SubmissionPolicy | None = None,
    ):
        super().__init__(session, clock)
        self.roles = roles or RoleRegistry(session, self.clock)
        self.policy = policy or SubmissionPolicy()
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, inspection_id: Any, *, for_update: bool = False) -> Inspection:
        """
        Load an inspection, always refreshing from the database.

        ``for_update`` takes a row lock where the backend supports it.
        """
        stmt = (
            select(Inspection)
            .where(Inspection.id == as_uuid(inspection_id, "inspection_id"))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        inspection = self.session.execute(stmt).scalar_one_or_none()
        if inspection is None:
            raise InspectionNotFoundError(str(inspection_id))
        return inspection

    def _ensure_not_locked(self, inspection: Inspection, actor_id, operation: str) -> None:
        if inspection.is_locked:
            logger.warning(
                "locked_inspection_mutation_refused",
                extra={
                    "inspection_id": str(inspection.id),
                    "status": inspection.status,
                    "operation": operation,
                    "actor_id": str(actor_id),
                },
            )
            raise InspectionLockedError(
                str(actor_id), operation, str(inspection.id), inspection.status
            )

    # ------------------------------------------------------------------
    # Authoring
    # ------------------------------------------------------------------

    def _next_number(self) -> str:
        return self._sequences.next_inspection_number(
            self.policy.number_prefix, self.clock.utc_day()
        )

    def _evaluate_inputs(
        self,
        specs: Sequence[Specification],
        result_inputs: Iterable[ResultInput],
    ) -> list[tuple[Specification, Any]]:
        """Match inputs to specifications and evaluate each; collect every problem."""
        errors: list[dict[str, Any]] = []
        by_spec: dict[Any, ResultInput] = {}
        known = {spec.id for spec in specs}

        for index, item in enumerate(result_inputs):
            try:
                spec_id = as_uuid(item.specification_id, "specification_id")
            except ValueError as exc:
                errors.append({"field": f"results[{index}].specification_id", "message": str(exc)})
                continue
            if spec_id not in known:
                errors.append({
                    "field": f"results[{index}].specification_id",
                    "message": f"specification {spec_id} does not belong to this product",
                })
            elif spec_id in by_spec:
                errors.append({
                    "field": f"results[{index}].specification_id",
                    "message": f"duplicate result for specification {spec_id}",
                })
            else:
                by_spec[spec_id] = item

        evaluated = []
        for spec in specs:
            item = by_spec.get(spec.id)
            if item is None:
                errors.append({
                    "field": f"results[{spec.id}]",
                    "message": f"missing result for '{spec.parameter_name}'",
                })
                continue
            try:
                evaluated.append((spec, evaluate_result(spec.typed_criteria, item)))
            except ResultInputError as exc:
                errors.append({
                    "field": f"results[{spec.id}].{exc.field}",
                    "message": f"{spec.parameter_name}: {exc}",
                })

        if errors:
            raise ValidationError("Inspection results are invalid", errors)
        return evaluated

    def create(
        self,
        product_id: Any,
        actor_id: Any,
        result_inputs: Iterable[ResultInput],
        batch_number: str | None = None,
        remarks: str | None = None,
        evidence: Iterable[EvidenceInput] = (),
    ) -> Inspection:
        """
        Author a new inspection in pending_team_leader.

        Raises:
            ForbiddenError: actor is not an auditor.
            ProductNotFoundError / ProductInactiveError.
            ValidationError: results do not match the specifications, a
                dimensional value is missing or non-numeric, required
                remarks are blank, or required evidence is absent.
        """
        actor_id = as_uuid(actor_id, "actor_id")
        self.roles.require_role(actor_id, "create_inspection", {Role.AUDITOR})

        product = self.session.get(Product, as_uuid(product_id, "product_id"))
        if product is None:
            raise ProductNotFoundError(str(product_id))
        if not product.is_active:
            raise ProductInactiveError(str(product.id))

        specs = self.session.execute(
            select(Specification)
            .where(Specification.product_id == product.id)
            .order_by(Specification.sort_order, Specification.created_at, Specification.id)
        ).scalars().all()
        if not specs:
            raise ValidationError(
                f"Product {product.part_number} has no specifications to inspect",
                [{"field": "product_id", "message": "no specifications defined"}],
            )

        evaluated = self._evaluate_inputs(specs, result_inputs)

        evidence = list(evidence)
        for index, item in enumerate(evidence):
            if not (item.uri or "").strip():
                raise ValidationError(
                    "Evidence URI is required",
                    [{"field": f"evidence[{index}].uri", "message": "must not be empty"}],
                )
        if self.policy.enforce_evidence_flags and not evidence:
            demanding = [s.parameter_name for s in specs if requires_evidence(s.typed_criteria)]
            if demanding:
                raise ValidationError(
                    "Evidence is required by: " + ", ".join(demanding),
                    [{"field": "evidence", "message": "at least one item required"}],
                )

        now = self.clock.now()
        inspection = Inspection(
            inspection_number=self._next_number(),
            product_id=product.id,
            status=INITIAL_STATUS.value,
            batch_number=_clean(batch_number),
            remarks=_clean(remarks),
            created_by_id=actor_id,
            created_at=now,
            updated_at=now,
        )
        self.session.add(inspection)
        self.session.flush()

        for position, (spec, outcome) in enumerate(evaluated):
            self.session.add(
                InspectionResult(
                    inspection_id=inspection.id,
                    specification_id=spec.id,
                    parameter_name=spec.parameter_name,
                    spec_type=spec.spec_type,
                    actual_value=outcome.actual_value,
                    is_pass=outcome.is_pass,
                    remarks=outcome.remarks,
                    position=position,
                )
            )
        for item in evidence:
            self.session.add(
                InspectionEvidence(
                    inspection_id=inspection.id,
                    uri=item.uri.strip(),
                    description=_clean(item.description),
                    added_by_id=actor_id,
                    added_at=now,
                )
            )
        self.session.flush()

        logger.info(
            "inspection_created",
            extra={
                "inspection_id": str(inspection.id),
                "inspection_number": inspection.inspection_number,
                "product_id": str(product.id),
                "actor_id": str(actor_id),
                "result_count": len(evaluated),
                "failed_count": sum(1 for _, o in evaluated if not o.is_pass),
                "evidence_count": len(evidence),
            },
        )
        return inspection

    # ------------------------------------------------------------------
    # Guarded mutation
    # ------------------------------------------------------------------

    def update(
        self,
        inspection_id: Any,
        actor_id: Any,
        *,
        batch_number: str | None = _UNSET,
        remarks: str | None = _UNSET,
        expected_version: int | None = None,
    ) -> Inspection:
        """
        Edit batch number or remarks of a pending inspection.

        Mutability is re-checked on a freshly read (and, where supported,
        row-locked) copy immediately before the write; the version counter
        catches any writer that still slips in.

        Raises:
            InspectionLockedError: the record is approved or rejected.
            ForbiddenError: actor is not the reviewer of the current stage.
            ConflictError: ``expected_version`` is stale or the write lost
                the version check.
        """
        actor_id = as_uuid(actor_id, "actor_id")
        inspection = self.get(inspection_id, for_update=True)
        self._ensure_not_locked(inspection, actor_id, "update_inspection")

        stage_role = reviewer_role_for(inspection.status_enum)
        actor_role = self.roles.role_of(actor_id)
        if actor_role is None or actor_role != stage_role:
            raise ForbiddenError(
                str(actor_id),
                "update_inspection",
                f"only the {stage_role.value if stage_role else 'assigned'} reviewer "
                f"may edit an inspection in {inspection.status}",
            )

        if expected_version is not None and expected_version != inspection.version:
            raise ConflictError(str(inspection.id), inspection.status, inspection.status, "update")

        changes = {}
        if batch_number is not _UNSET:
            changes["batch_number"] = _clean(batch_number)
        if remarks is not _UNSET:
            changes["remarks"] = _clean(remarks)
        if not changes:
            return inspection

        observed_status = inspection.status
        try:
            with self.session.begin_nested():
                for name, value in changes.items():
                    setattr(inspection, name, value)
                inspection.updated_by_id = actor_id
                inspection.updated_at = self.clock.now()
                self.session.flush()
        except StaleDataError:
            current = self.session.execute(
                select(Inspection.status).where(Inspection.id == inspection.id)
            ).scalar_one_or_none()
            raise ConflictError(
                str(inspection.id), observed_status, current, "update"
            ) from None
        changed = sorted(changes)

        logger.info(
            "inspection_updated",
            extra={
                "inspection_id": str(inspection.id),
                "actor_id": str(actor_id),
                "fields": changed,
                "version": inspection.version,
            },
        )
        return inspection

    def update_result(
        self,
        inspection_id: Any,
        result_id: Any,
        actor_id: Any,
        **fields: Any,
    ) -> None:
        """
        Results are write-once; this always refuses.

        Raises:
            InspectionLockedError: the record is approved or rejected.
            ForbiddenError: the record is pending (results still write-once).
        """
        inspection = self.get(inspection_id)
        self._ensure_not_locked(inspection, actor_id, "update_result")
        logger.warning(
            "result_mutation_refused",
            extra={
                "inspection_id": str(inspection.id),
                "result_id": str(result_id),
                "actor_id": str(actor_id),
                "fields": sorted(fields),
            },
        )
        raise ForbiddenError(
            str(actor_id),
            "update_result",
            "inspection results are write-once; author a new inspection to correct them",
        )

    def add_evidence(
        self,
        inspection_id: Any,
        actor_id: Any,
        uri: str,
        description: str | None = None,
    ) -> EvidenceRecord:
        """
        Append an evidence reference to a pending inspection.

        Allowed for the creator and for the reviewer of the current stage.
        """
        actor_id = as_uuid(actor_id, "actor_id")
        inspection = self.get(inspection_id, for_update=True)
        self._ensure_not_locked(inspection, actor_id, "add_evidence")

        if inspection.status_enum not in PENDING_STATUSES:
            raise InspectionLockedError(
                str(actor_id), "add_evidence", str(inspection.id), inspection.status
            )
        is_creator = inspection.created_by_id == actor_id
        is_reviewer = self.roles.role_of(actor_id) == reviewer_role_for(inspection.status_enum)
        if not (is_creator or is_reviewer):
            raise ForbiddenError(
                str(actor_id),
                "add_evidence",
                "only the creator or the current reviewer may attach evidence",
            )

        if not (uri or "").strip():
            raise ValidationError(
                "Evidence URI is required", [{"field": "uri", "message": "must not be empty"}]
            )

        evidence = InspectionEvidence(
            inspection_id=inspection.id,
            uri=uri.strip(),
            description=_clean(description),
            added_by_id=actor_id,
            added_at=self.clock.now(),
        )
        self.session.add(evidence)
        self.session.flush()

        logger.info(
            "evidence_added",
            extra={
                "inspection_id": str(inspection.id),
                "evidence_id": str(evidence.id),
                "actor_id": str(actor_id),
            },
        )
        return evidence.to_dto()
