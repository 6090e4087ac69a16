"""
Role vocabulary (``inspection_kernel.domain.roles``).

Pure value definitions.  ZERO I/O.  The approval chain is fixed:
auditor authors, then team_leader, hof_auditor and quality_head review
in that order.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """The closed set of roles an identity may hold (at most one at a time)."""

    AUDITOR = "auditor"
    TEAM_LEADER = "team_leader"
    HOF_AUDITOR = "hof_auditor"
    QUALITY_HEAD = "quality_head"

    @property
    def label(self) -> str:
        return _ROLE_LABELS[self]


_ROLE_LABELS = {
    Role.AUDITOR: "Auditor",
    Role.TEAM_LEADER: "Team Leader",
    Role.HOF_AUDITOR: "HOF Auditor",
    Role.QUALITY_HEAD: "Quality Head",
}

# Reviewer roles in chain order
APPROVAL_CHAIN: tuple[Role, ...] = (
    Role.TEAM_LEADER,
    Role.HOF_AUDITOR,
    Role.QUALITY_HEAD,
)

# Roles assignable through the general-purpose path (never quality_head)
ASSIGNABLE_ROLES: frozenset[Role] = frozenset({
    Role.AUDITOR,
    Role.TEAM_LEADER,
    Role.HOF_AUDITOR,
})


def parse_role(value: Role | str | None) -> Role | None:
    """Coerce a stored or user-supplied role value; None means no role."""
    if value is None or isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        raise ValueError(f"Unknown role: {value!r}") from None
