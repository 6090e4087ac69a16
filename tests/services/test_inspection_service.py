"""End-to-end flows through the InspectionService facade."""

import pytest

from inspection_kernel.domain.dtos import InspectionDetail, InspectionRecord
from inspection_kernel.domain.lifecycle import InspectionStatus
from inspection_kernel.domain.roles import Role
from inspection_kernel.exceptions import InspectionLockedError

S = InspectionStatus


def test_create_returns_detail_with_results(service, create_inspection, product):
    detail = create_inspection(length="10.7")

    assert isinstance(detail, InspectionDetail)
    assert detail.product.id == product.id
    assert [r.parameter_name for r in detail.results] == ["Length", "Surface finish"]
    assert (detail.passed_count, detail.failed_count) == (2, 0)
    assert detail.history == ()


def test_out_of_tolerance_is_recorded_as_failed(create_inspection):
    detail = create_inspection(length="11.2")
    length = detail.results[0]
    assert not length.is_pass
    assert length.actual_value == "11.2"
    assert length.standard_text is not None


def test_awaiting_follows_the_current_stage(service, create_inspection, team_leader, hof_auditor, auditor):
    detail = create_inspection()

    assert [r.id for r in service.awaiting(team_leader)] == [detail.id]
    assert service.awaiting(hof_auditor) == []
    assert service.awaiting(auditor) == []

    service.decide(detail.id, team_leader, "approve", "ok")

    assert service.awaiting(team_leader) == []
    assert [r.id for r in service.awaiting(hof_auditor)] == [detail.id]


def test_history_is_embedded_in_detail(service, create_inspection, advance):
    detail = create_inspection()
    advance(detail.id, S.APPROVED)

    fetched = service.get_inspection(detail.id)
    assert fetched.status is S.APPROVED
    assert [h.seq for h in fetched.history] == [1, 2, 3]
    assert fetched.history == tuple(service.history(detail.id))
    assert service.verify_history(detail.id)


def test_approved_record_cannot_be_edited(service, create_inspection, advance, quality_head):
    detail = create_inspection()
    advance(detail.id, S.APPROVED)

    with pytest.raises(InspectionLockedError):
        service.update_inspection(detail.id, quality_head, remarks="late change")
    with pytest.raises(InspectionLockedError):
        service.add_evidence(detail.id, quality_head, "s3://bucket/late.jpg")


def test_reviewer_edit_returns_record(service, create_inspection, team_leader):
    detail = create_inspection()
    record = service.update_inspection(detail.id, team_leader, remarks="re-measured")

    assert isinstance(record, InspectionRecord)
    assert record.remarks == "re-measured"
    assert service.get_inspection(detail.id).status is S.PENDING_TEAM_LEADER


def test_list_with_keyword_filters(service, create_inspection, advance):
    first = create_inspection(batch_number="B-001")
    second = create_inspection(batch_number="B-002")
    advance(first.id, S.REJECTED)

    rejected = service.list_inspections(status="rejected")
    assert [r.id for r in rejected] == [first.id]
    pending = service.list_inspections(status=S.PENDING_TEAM_LEADER)
    assert [r.id for r in pending] == [second.id]


def test_status_counts(service, create_inspection, advance):
    a = create_inspection()
    b = create_inspection()
    create_inspection()
    advance(a.id, S.APPROVED)
    advance(b.id, S.PENDING_HOF_AUDITOR)

    counts = service.status_counts()
    assert counts[S.PENDING_TEAM_LEADER] == 1
    assert counts[S.PENDING_HOF_AUDITOR] == 1
    assert counts[S.APPROVED] == 1
    assert counts[S.REJECTED] == 0


def test_role_assignments_listed(service, identities):
    roles = {a.identity_id: a.role for a in service.list_role_assignments()}
    for role, identity in identities.items():
        assert roles[identity] is role


def test_role_of_reflects_reassignment(service, quality_head, team_leader):
    service.assign_role(quality_head, team_leader, Role.HOF_AUDITOR)
    assert service.role_of(team_leader) is Role.HOF_AUDITOR
