"""
Pure tests of the inspection lifecycle table.

No database: the transition table, edge set and stage mapping are
exercised directly.
"""

import pytest

from inspection_kernel.domain.lifecycle import (
    INITIAL_STATUS,
    LOCKED_STATUSES,
    STATUS_EDGES,
    TRANSITION_TABLE,
    InspectionStatus,
    ReviewAction,
    can_transition,
    is_valid_edge,
    next_status,
    parse_action,
    parse_status,
    reviewer_role_for,
    stage_for,
)
from inspection_kernel.domain.roles import APPROVAL_CHAIN, Role

S = InspectionStatus


class TestTransitionTable:

    def test_exactly_six_transitions(self):
        assert len(TRANSITION_TABLE) == 6

    @pytest.mark.parametrize(
        "current, role, action, expected",
        [
            (S.PENDING_TEAM_LEADER, Role.TEAM_LEADER, ReviewAction.APPROVE, S.PENDING_HOF_AUDITOR),
            (S.PENDING_TEAM_LEADER, Role.TEAM_LEADER, ReviewAction.REJECT, S.REJECTED),
            (S.PENDING_HOF_AUDITOR, Role.HOF_AUDITOR, ReviewAction.APPROVE, S.PENDING_QUALITY_HEAD),
            (S.PENDING_HOF_AUDITOR, Role.HOF_AUDITOR, ReviewAction.REJECT, S.REJECTED),
            (S.PENDING_QUALITY_HEAD, Role.QUALITY_HEAD, ReviewAction.APPROVE, S.APPROVED),
            (S.PENDING_QUALITY_HEAD, Role.QUALITY_HEAD, ReviewAction.REJECT, S.REJECTED),
        ],
    )
    def test_defined_transitions(self, current, role, action, expected):
        assert can_transition(role, current, action)
        assert next_status(current, role, action) == expected

    def test_auditor_never_reviews(self):
        for status in S:
            for action in ReviewAction:
                assert not can_transition(Role.AUDITOR, status, action)

    def test_no_role_never_transitions(self):
        assert not can_transition(None, S.PENDING_TEAM_LEADER, ReviewAction.APPROVE)

    def test_stage_skipping_not_allowed(self):
        assert next_status(S.PENDING_TEAM_LEADER, Role.QUALITY_HEAD, ReviewAction.APPROVE) is None
        assert next_status(S.PENDING_TEAM_LEADER, Role.HOF_AUDITOR, ReviewAction.APPROVE) is None

    def test_locked_statuses_have_no_outgoing_edges(self):
        for old, _new in STATUS_EDGES:
            assert old not in LOCKED_STATUSES


class TestStages:

    def test_initial_status(self):
        assert INITIAL_STATUS is S.PENDING_TEAM_LEADER

    def test_reviewer_for_each_pending_stage(self):
        assert reviewer_role_for(S.PENDING_TEAM_LEADER) is Role.TEAM_LEADER
        assert reviewer_role_for(S.PENDING_HOF_AUDITOR) is Role.HOF_AUDITOR
        assert reviewer_role_for(S.PENDING_QUALITY_HEAD) is Role.QUALITY_HEAD
        assert reviewer_role_for(S.APPROVED) is None
        assert reviewer_role_for(S.REJECTED) is None

    def test_stage_for_roundtrips_approval_chain(self):
        for role in APPROVAL_CHAIN:
            assert reviewer_role_for(stage_for(role)) is role
        assert stage_for(Role.AUDITOR) is None
        assert stage_for(None) is None

    def test_locked(self):
        assert S.APPROVED.is_locked
        assert S.REJECTED.is_locked
        assert not S.PENDING_QUALITY_HEAD.is_locked

    def test_edges(self):
        assert is_valid_edge(S.PENDING_TEAM_LEADER, S.PENDING_HOF_AUDITOR)
        assert not is_valid_edge(S.PENDING_TEAM_LEADER, S.APPROVED)
        assert not is_valid_edge(S.REJECTED, S.PENDING_TEAM_LEADER)

    def test_labels(self):
        assert S.PENDING_HOF_AUDITOR.label == "Pending HOF Auditor"


class TestParsing:

    def test_parse_action_normalizes(self):
        assert parse_action(" Approve ") is ReviewAction.APPROVE
        assert parse_action("REJECT") is ReviewAction.REJECT

    def test_parse_action_unknown(self):
        assert parse_action("escalate") is None

    def test_ledger_action_past_tense(self):
        assert ReviewAction.APPROVE.ledger_action == "approved"
        assert ReviewAction.REJECT.ledger_action == "rejected"

    def test_parse_status(self):
        assert parse_status("approved") is S.APPROVED
        with pytest.raises(ValueError):
            parse_status("draft")
