"""
Deployment policy value objects (``inspection_kernel.domain.policies``).

Built by ``inspection_config.bridges`` from the compiled configuration and
injected into the services.  The kernel never reads configuration itself.
"""

from __future__ import annotations

from dataclasses import dataclass

from inspection_kernel.domain.roles import ASSIGNABLE_ROLES, Role

DEFAULT_BOOTSTRAP_CODE = "QA-BOOTSTRAP-2024"


@dataclass(frozen=True)
class RegistrationPolicy:
    """How new identities enter the role registry.

    ``default_role`` is what a plain registration (empty code) receives once
    a quality head exists.  None means the identity starts with no role and
    can act only after a quality head assigns one.
    """

    bootstrap_code: str = DEFAULT_BOOTSTRAP_CODE
    default_role: Role | None = Role.AUDITOR

    def __post_init__(self) -> None:
        if not self.bootstrap_code or not self.bootstrap_code.strip():
            raise ValueError("bootstrap_code must be non-empty")
        if self.default_role is not None and self.default_role not in ASSIGNABLE_ROLES:
            raise ValueError(
                f"default_role {self.default_role.value} cannot be granted by registration"
            )


@dataclass(frozen=True)
class SubmissionPolicy:
    """Rules for authoring new inspections."""

    number_prefix: str = "INS"
    enforce_evidence_flags: bool = False

    def __post_init__(self) -> None:
        if not self.number_prefix or not self.number_prefix.strip():
            raise ValueError("number_prefix must be non-empty")
