"""
Inspection authoring and guarded mutation.

Creation snapshots one write-once result per specification; after creation
only the reviewer of the current stage may touch the record, and approved
or rejected records are read-only for everyone.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from inspection_kernel.domain.dtos import EvidenceInput
from inspection_kernel.domain.lifecycle import InspectionStatus
from inspection_kernel.domain.policies import SubmissionPolicy
from inspection_kernel.domain.roles import Role
from inspection_kernel.domain.specifications import (
    ComplianceCriteria,
    FunctionalCriteria,
    ResultInput,
)
from inspection_kernel.exceptions import (
    ForbiddenError,
    InspectionLockedError,
    InspectionNotFoundError,
    ProductInactiveError,
    ValidationError,
)
from inspection_kernel.services.inspection_store import InspectionStore


class TestCreate:

    def test_initial_status_is_always_pending_team_leader(self, create_inspection):
        # A failing measurement still goes to review; nothing auto-decides
        detail = create_inspection(length="12.0")
        assert detail.status is InspectionStatus.PENDING_TEAM_LEADER
        assert (detail.passed_count, detail.failed_count) == (1, 1)
        assert detail.history == ()

    def test_results_snapshot_every_specification(self, service, product, create_inspection):
        detail = create_inspection()
        specs = service.specifications_for(product.id)
        assert [r.specification_id for r in detail.results] == [s.id for s in specs]
        length = detail.results[0]
        assert length.is_pass
        assert length.actual_value == "10.5"
        assert length.requirement_text == "10.0 - 11.0"
        assert detail.results[1].actual_value == "Pass"

    def test_number_format_and_sequence(self, create_inspection):
        first = create_inspection()
        second = create_inspection()
        assert first.inspection.inspection_number == "INS-20240101-0001"
        assert second.inspection.inspection_number == "INS-20240101-0002"

    def test_number_sequence_restarts_per_day(self, create_inspection, deterministic_clock):
        create_inspection()
        deterministic_clock.set_time(datetime(2024, 1, 2, 8, 0, tzinfo=timezone.utc))
        assert create_inspection().inspection.inspection_number == "INS-20240102-0001"

    def test_custom_prefix(self, session, deterministic_clock, service, product, auditor):
        store = InspectionStore(
            session, deterministic_clock, policy=SubmissionPolicy(number_prefix="QC")
        )
        inputs = [
            ResultInput(s.id, actual_value="10.4" if s.parameter_name == "Length" else None, passed=True)
            for s in service.specifications_for(product.id)
        ]
        inspection = store.create(product.id, auditor, inputs)
        assert inspection.inspection_number.startswith("QC-20240101-")

    def test_batch_and_remarks_trimmed(self, create_inspection):
        detail = create_inspection(batch_number="  B-9 ", remarks="   ")
        assert detail.inspection.batch_number == "B-9"
        assert detail.inspection.remarks is None

    @pytest.mark.parametrize("role", [Role.TEAM_LEADER, Role.HOF_AUDITOR, Role.QUALITY_HEAD])
    def test_only_auditor_authors(self, create_inspection, identities, role):
        with pytest.raises(ForbiddenError):
            create_inspection(actor_id=identities[role])

    def test_role_less_identity_cannot_author(self, create_inspection, make_identity):
        with pytest.raises(ForbiddenError):
            create_inspection(actor_id=make_identity(None))

    def test_inactive_product_refused(self, service, quality_head, product, create_inspection):
        service.deactivate_product(product.id, quality_head)
        with pytest.raises(ProductInactiveError):
            create_inspection()

    def test_missing_result(self, service, product, auditor):
        first_spec = service.specifications_for(product.id)[0]
        with pytest.raises(ValidationError) as exc_info:
            service.create_inspection(
                product.id, auditor, [ResultInput(first_spec.id, actual_value="10.5")]
            )
        assert any("missing" in e["message"] for e in exc_info.value.field_errors)

    def test_unknown_and_duplicate_results(self, service, product, auditor):
        specs = service.specifications_for(product.id)
        inputs = [
            ResultInput(specs[0].id, actual_value="10.5"),
            ResultInput(specs[0].id, actual_value="10.6"),
            ResultInput(specs[1].id, passed=True),
            ResultInput(uuid4(), passed=True),
        ]
        with pytest.raises(ValidationError) as exc_info:
            service.create_inspection(product.id, auditor, inputs)
        messages = " ".join(e["message"] for e in exc_info.value.field_errors)
        assert "duplicate" in messages
        assert "does not belong" in messages

    def test_non_numeric_dimension(self, create_inspection):
        with pytest.raises(ValidationError) as exc_info:
            create_inspection(length="ten")
        assert exc_info.value.field_errors[0]["field"].endswith(".actual_value")

    def test_remarks_required(self, service, quality_head, product, auditor):
        service.add_specification(
            product.id,
            quality_head,
            "Spin test",
            FunctionalCriteria(test_description="Spin at 3000 rpm", remarks_required=True),
        )
        inputs = []
        for spec in service.specifications_for(product.id):
            if spec.parameter_name == "Length":
                inputs.append(ResultInput(spec.id, actual_value="10.5"))
            else:
                inputs.append(ResultInput(spec.id, passed=True))
        with pytest.raises(ValidationError):
            service.create_inspection(product.id, auditor, inputs)

    def test_nothing_written_on_validation_failure(self, service, create_inspection):
        with pytest.raises(ValidationError):
            create_inspection(length="")
        assert service.list_inspections() == []

    def test_evidence_at_creation(self, create_inspection, auditor):
        detail = create_inspection(evidence=[EvidenceInput("s3://bucket/photo-1.jpg", "front")])
        assert len(detail.evidence) == 1
        assert detail.evidence[0].added_by_id == auditor

    def test_evidence_flags_enforced(self, session, deterministic_clock, service, quality_head, product, auditor):
        service.add_specification(
            product.id,
            quality_head,
            "Certificate",
            ComplianceCriteria(check_method="Mill certificate", evidence_required=True),
        )
        store = InspectionStore(
            session, deterministic_clock, policy=SubmissionPolicy(enforce_evidence_flags=True)
        )
        inputs = [
            ResultInput(s.id, actual_value="10.5") if s.parameter_name == "Length"
            else ResultInput(s.id, passed=True)
            for s in service.specifications_for(product.id)
        ]
        with pytest.raises(ValidationError):
            store.create(product.id, auditor, inputs)
        created = store.create(
            product.id, auditor, inputs, evidence=[EvidenceInput("file:///cert.pdf")]
        )
        assert created.status == InspectionStatus.PENDING_TEAM_LEADER.value

    def test_logs_creation(self, create_inspection, captured_logs):
        detail = create_inspection()
        created = [r for r in captured_logs() if r["message"] == "inspection_created"]
        assert created[0]["inspection_id"] == str(detail.id)
        assert created[0]["result_count"] == 2


class TestUpdate:

    def test_current_reviewer_edits_batch(self, service, create_inspection, team_leader):
        detail = create_inspection()
        record = service.update_inspection(detail.id, team_leader, batch_number="B-002")
        assert record.batch_number == "B-002"
        assert record.version == detail.inspection.version + 1

    def test_creator_cannot_edit_after_submission(self, service, create_inspection, auditor):
        detail = create_inspection()
        with pytest.raises(ForbiddenError):
            service.update_inspection(detail.id, auditor, remarks="changed my mind")

    def test_other_stage_reviewer_cannot_edit(self, service, create_inspection, hof_auditor):
        detail = create_inspection()
        with pytest.raises(ForbiddenError):
            service.update_inspection(detail.id, hof_auditor, remarks="early")

    def test_rights_move_with_stage(self, service, create_inspection, advance, team_leader, hof_auditor):
        detail = create_inspection()
        advance(detail.id, InspectionStatus.PENDING_HOF_AUDITOR)
        with pytest.raises(ForbiddenError):
            service.update_inspection(detail.id, team_leader, remarks="late")
        assert service.update_inspection(detail.id, hof_auditor, remarks="noted").remarks == "noted"

    @pytest.mark.parametrize("final", [InspectionStatus.APPROVED, InspectionStatus.REJECTED])
    def test_locked_for_everyone(self, service, create_inspection, advance, identities, final):
        detail = create_inspection()
        advance(detail.id, final)
        for identity in identities.values():
            with pytest.raises(InspectionLockedError):
                service.update_inspection(detail.id, identity, remarks="edit")

    def test_stale_expected_version(self, service, create_inspection, team_leader):
        from inspection_kernel.exceptions import ConflictError

        detail = create_inspection()
        service.update_inspection(detail.id, team_leader, remarks="first")
        with pytest.raises(ConflictError):
            service.update_inspection(
                detail.id, team_leader, remarks="second",
                expected_version=detail.inspection.version,
            )

    def test_unknown_inspection(self, service, team_leader):
        with pytest.raises(InspectionNotFoundError):
            service.update_inspection(uuid4(), team_leader, remarks="x")


class TestResultsAreWriteOnce:

    def test_pending_result_edit_forbidden(self, service, create_inspection, auditor):
        detail = create_inspection()
        with pytest.raises(ForbiddenError) as exc_info:
            service.update_result(detail.id, detail.results[0].id, auditor, actual_value="10.9")
        assert not isinstance(exc_info.value, InspectionLockedError)

    def test_rejected_result_edit_locked(self, service, create_inspection, advance, auditor):
        detail = create_inspection()
        advance(detail.id, InspectionStatus.REJECTED)
        with pytest.raises(InspectionLockedError):
            service.update_result(detail.id, detail.results[0].id, auditor, actual_value="10.9")
        assert service.get_inspection(detail.id).results == detail.results


class TestEvidence:

    def test_creator_adds_evidence(self, service, create_inspection, auditor):
        detail = create_inspection()
        record = service.add_evidence(detail.id, auditor, "s3://bucket/a.jpg", "side view")
        assert record.uri == "s3://bucket/a.jpg"
        assert len(service.get_inspection(detail.id).evidence) == 1

    def test_current_reviewer_adds_evidence(self, service, create_inspection, team_leader):
        detail = create_inspection()
        service.add_evidence(detail.id, team_leader, "s3://bucket/b.jpg")

    def test_unrelated_identity_refused(self, service, create_inspection, make_identity):
        detail = create_inspection()
        with pytest.raises(ForbiddenError):
            service.add_evidence(detail.id, make_identity(Role.AUDITOR), "s3://bucket/c.jpg")

    def test_blank_uri(self, service, create_inspection, auditor):
        detail = create_inspection()
        with pytest.raises(ValidationError):
            service.add_evidence(detail.id, auditor, "  ")

    def test_closed_after_approval(self, service, create_inspection, advance, auditor):
        detail = create_inspection()
        advance(detail.id, InspectionStatus.APPROVED)
        with pytest.raises(InspectionLockedError):
            service.add_evidence(detail.id, auditor, "s3://bucket/late.jpg")
