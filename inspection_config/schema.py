"""
Kernel configuration schema.

Typed, frozen view of a deployment configuration file.  The loader parses
YAML into these types, the validator checks them, and the bridges turn
them into kernel policy value objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 5


@dataclass(frozen=True)
class RegistrationConfig:
    bootstrap_code: str
    default_role: str | None = "auditor"


@dataclass(frozen=True)
class InspectionsConfig:
    number_prefix: str = "INS"
    enforce_evidence_flags: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class KernelConfig:
    """The sole runtime configuration artifact."""

    config_id: str
    version: int
    database: DatabaseConfig
    registration: RegistrationConfig
    inspections: InspectionsConfig
    logging: LoggingConfig
    checksum: str = ""
    source: str | None = None

    def summary(self) -> dict[str, Any]:
        """Trace-safe summary; never includes the bootstrap code."""
        return {
            "config_id": self.config_id,
            "version": self.version,
            "checksum": self.checksum,
            "source": self.source,
            "database_backend": self.database.url.split(":", 1)[0],
            "default_role": self.registration.default_role,
            "number_prefix": self.inspections.number_prefix,
            "enforce_evidence_flags": self.inspections.enforce_evidence_flags,
        }
