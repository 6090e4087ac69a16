"""
Inspection lifecycle (``inspection_kernel.domain.lifecycle``).

Responsibility
--------------
The inspection status state machine as pure data: the status set, the
review actions, and the single transition table keyed by
``(current_status, actor_role, action)``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Imported by
the approval engine, the record store and the ORM immutability
listeners, which all consult the same table.

Invariants enforced
-------------------
* A triple absent from ``TRANSITION_TABLE`` is not a transition.  The
  one lookup enforces both "right role for this stage" and "no skipping
  stages".
* ``approved`` and ``rejected`` have no outgoing edges and are LOCKED:
  nothing about the record may change once it reaches either.
* Only ``auditor`` authors; authors never review.
"""

from __future__ import annotations

from enum import Enum

from inspection_kernel.domain.roles import Role


class InspectionStatus(str, Enum):
    """Inspection lifecycle states."""

    PENDING_TEAM_LEADER = "pending_team_leader"
    PENDING_HOF_AUDITOR = "pending_hof_auditor"
    PENDING_QUALITY_HEAD = "pending_quality_head"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_locked(self) -> bool:
        return self in LOCKED_STATUSES

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


class ReviewAction(str, Enum):
    """What a reviewer may do at a stage."""

    APPROVE = "approve"
    REJECT = "reject"

    @property
    def ledger_action(self) -> str:
        """Past-tense form recorded on the approval ledger."""
        return "approved" if self is ReviewAction.APPROVE else "rejected"


INITIAL_STATUS = InspectionStatus.PENDING_TEAM_LEADER

LOCKED_STATUSES: frozenset[InspectionStatus] = frozenset({
    InspectionStatus.APPROVED,
    InspectionStatus.REJECTED,
})

PENDING_STATUSES: frozenset[InspectionStatus] = frozenset({
    InspectionStatus.PENDING_TEAM_LEADER,
    InspectionStatus.PENDING_HOF_AUDITOR,
    InspectionStatus.PENDING_QUALITY_HEAD,
})

_STATUS_LABELS = {
    InspectionStatus.PENDING_TEAM_LEADER: "Pending Team Leader",
    InspectionStatus.PENDING_HOF_AUDITOR: "Pending HOF Auditor",
    InspectionStatus.PENDING_QUALITY_HEAD: "Pending Quality Head",
    InspectionStatus.APPROVED: "Approved",
    InspectionStatus.REJECTED: "Rejected",
}

TRANSITION_TABLE: dict[
    tuple[InspectionStatus, Role, ReviewAction], InspectionStatus
] = {
    (InspectionStatus.PENDING_TEAM_LEADER, Role.TEAM_LEADER, ReviewAction.APPROVE):
        InspectionStatus.PENDING_HOF_AUDITOR,
    (InspectionStatus.PENDING_TEAM_LEADER, Role.TEAM_LEADER, ReviewAction.REJECT):
        InspectionStatus.REJECTED,
    (InspectionStatus.PENDING_HOF_AUDITOR, Role.HOF_AUDITOR, ReviewAction.APPROVE):
        InspectionStatus.PENDING_QUALITY_HEAD,
    (InspectionStatus.PENDING_HOF_AUDITOR, Role.HOF_AUDITOR, ReviewAction.REJECT):
        InspectionStatus.REJECTED,
    (InspectionStatus.PENDING_QUALITY_HEAD, Role.QUALITY_HEAD, ReviewAction.APPROVE):
        InspectionStatus.APPROVED,
    (InspectionStatus.PENDING_QUALITY_HEAD, Role.QUALITY_HEAD, ReviewAction.REJECT):
        InspectionStatus.REJECTED,
}

# Edge set derived from the table; the ORM listeners check status writes against it
STATUS_EDGES: frozenset[tuple[InspectionStatus, InspectionStatus]] = frozenset(
    (current, new) for (current, _role, _action), new in TRANSITION_TABLE.items()
)

_REVIEWER_BY_STATUS: dict[InspectionStatus, Role] = {
    current: role for (current, role, _action) in TRANSITION_TABLE
}

_STAGE_BY_ROLE: dict[Role, InspectionStatus] = {
    role: current for current, role in _REVIEWER_BY_STATUS.items()
}


def can_transition(
    role: Role | None,
    current: InspectionStatus,
    action: ReviewAction,
) -> bool:
    """True iff ``(current, role, action)`` is a row of the transition table."""
    if role is None:
        return False
    return (current, role, action) in TRANSITION_TABLE


def next_status(
    current: InspectionStatus,
    role: Role,
    action: ReviewAction,
) -> InspectionStatus | None:
    """Resulting status, or None when the triple is not a transition."""
    return TRANSITION_TABLE.get((current, role, action))


def reviewer_role_for(status: InspectionStatus) -> Role | None:
    """The role that holds mutation rights at ``status`` (None when locked)."""
    return _REVIEWER_BY_STATUS.get(status)


def stage_for(role: Role | None) -> InspectionStatus | None:
    """The pending status a reviewer role decides (None for non-reviewers)."""
    if role is None:
        return None
    return _STAGE_BY_ROLE.get(role)


def is_valid_edge(old: InspectionStatus, new: InspectionStatus) -> bool:
    return (old, new) in STATUS_EDGES


def parse_status(value: InspectionStatus | str) -> InspectionStatus:
    if isinstance(value, InspectionStatus):
        return value
    return InspectionStatus(value)


def parse_action(value: ReviewAction | str) -> ReviewAction | None:
    """Coerce a caller-supplied action; None when it is not a known action."""
    if isinstance(value, ReviewAction):
        return value
    try:
        return ReviewAction(str(value).strip().lower())
    except ValueError:
        return None
