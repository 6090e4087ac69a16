"""
Configuration loader (``inspection_config.loader``).

Responsibility
--------------
Reads a YAML configuration file and parses it into the frozen
``inspection_config.schema`` types.  Build/test tooling only: runtime
callers go through ``inspection_config.get_active_config()``.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Top-level document that is not a mapping  -> ``ValueError``.

Type and value problems are NOT raised here; the validator reports all
of them at once.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from inspection_config.schema import (
    DatabaseConfig,
    InspectionsConfig,
    KernelConfig,
    LoggingConfig,
    RegistrationConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML document must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"section '{name}' must be a mapping")
    return section


def parse_config(
    data: dict[str, Any],
    source: str | None = None,
) -> KernelConfig:
    """Build a KernelConfig from raw YAML data, with defaults for absent keys."""
    database = _section(data, "database")
    registration = _section(data, "registration")
    inspections = _section(data, "inspections")
    logging_section = _section(data, "logging")

    return KernelConfig(
        config_id=data.get("config_id", "inspection"),
        version=data.get("version", 1),
        database=DatabaseConfig(
            url=database.get("url", ""),
            echo=database.get("echo", False),
            pool_size=database.get("pool_size", 5),
        ),
        registration=RegistrationConfig(
            bootstrap_code=registration.get("bootstrap_code", ""),
            default_role=registration.get("default_role", "auditor"),
        ),
        inspections=InspectionsConfig(
            number_prefix=inspections.get("number_prefix", "INS"),
            enforce_evidence_flags=inspections.get("enforce_evidence_flags", False),
        ),
        logging=LoggingConfig(level=logging_section.get("level", "INFO")),
        checksum=compute_checksum(data),
        source=source,
    )
