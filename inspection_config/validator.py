"""
Configuration validator (``inspection_config.validator``).

Checks a parsed ``KernelConfig`` before it is handed to the runtime.
Every problem is collected; nothing short-circuits, so one run shows the
operator the whole list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from inspection_config.schema import KernelConfig

# Roles a plain registration may grant.  quality_head is bootstrap-only.
REGISTRABLE_ROLES = ("auditor", "team_leader", "hof_auditor")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_configuration(config: KernelConfig) -> ConfigValidationResult:
    result = ConfigValidationResult()

    if not isinstance(config.config_id, str) or not config.config_id.strip():
        result.add_error("config_id must be a non-empty string")
    if not _is_int(config.version) or config.version < 1:
        result.add_error("version must be a positive integer")

    db = config.database
    if not isinstance(db.url, str) or not db.url.strip():
        result.add_error("database.url is required")
    elif "://" not in db.url:
        result.add_error(f"database.url is not a database URL: {db.url!r}")
    if not isinstance(db.echo, bool):
        result.add_error("database.echo must be true or false")
    if not _is_int(db.pool_size) or db.pool_size < 1:
        result.add_error("database.pool_size must be a positive integer")

    reg = config.registration
    if not isinstance(reg.bootstrap_code, str) or not reg.bootstrap_code.strip():
        result.add_error("registration.bootstrap_code is required")
    elif reg.bootstrap_code == "QA-BOOTSTRAP-2024":
        result.add_warning("registration.bootstrap_code is the shipped default")
    if reg.default_role is not None and reg.default_role not in REGISTRABLE_ROLES:
        result.add_error(
            f"registration.default_role must be one of {', '.join(REGISTRABLE_ROLES)} "
            f"or null, got {reg.default_role!r}"
        )

    insp = config.inspections
    if not isinstance(insp.number_prefix, str) or not insp.number_prefix.strip():
        result.add_error("inspections.number_prefix is required")
    elif not insp.number_prefix.replace("_", "").isalnum():
        result.add_error("inspections.number_prefix must be alphanumeric")
    if not isinstance(insp.enforce_evidence_flags, bool):
        result.add_error("inspections.enforce_evidence_flags must be true or false")

    level = config.logging.level
    if not isinstance(level, str) or level.upper() not in _LOG_LEVELS:
        result.add_error(f"logging.level must be one of {', '.join(_LOG_LEVELS)}")

    return result


def log_level(config: KernelConfig) -> int:
    return getattr(logging, config.logging.level.upper())
