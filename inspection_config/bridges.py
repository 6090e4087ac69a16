"""
Config -> kernel bridges.

Convert a ``KernelConfig`` into the value objects the kernel services take.
These live here because ``inspection_kernel`` must never import
``inspection_config``.

Usage:
    config = get_active_config()
    service = InspectionService(
        session,
        registration_policy=registration_policy_from_config(config),
        submission_policy=submission_policy_from_config(config),
    )
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from inspection_config.schema import KernelConfig
from inspection_kernel.db.engine import init_engine_from_url
from inspection_kernel.domain.policies import RegistrationPolicy, SubmissionPolicy
from inspection_kernel.domain.roles import parse_role


def registration_policy_from_config(config: KernelConfig) -> RegistrationPolicy:
    return RegistrationPolicy(
        bootstrap_code=config.registration.bootstrap_code,
        default_role=parse_role(config.registration.default_role),
    )


def submission_policy_from_config(config: KernelConfig) -> SubmissionPolicy:
    return SubmissionPolicy(
        number_prefix=config.inspections.number_prefix,
        enforce_evidence_flags=config.inspections.enforce_evidence_flags,
    )


def engine_from_config(config: KernelConfig) -> Engine:
    """Initialize the kernel's global engine from the database section."""
    return init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
    )
